#!/usr/bin/env python3
"""
Tests for origin URL rewriting and the git repository wrapper, with git mocked out.
"""

import subprocess
from unittest.mock import patch

import pytest

from gittool.errors import CapabilityError, CapabilityMissing, OriginError
from gittool.git_remote import GitRepo, rewrite_origin_url


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode,
                                       stdout=stdout, stderr=stderr)


def test_rewrite_origin_url():
    assert rewrite_origin_url("git@github.com:me/repo.git", "work") == "git@work:me/repo.git"
    assert rewrite_origin_url("git@personal:org/sub/repo\n", "work") == "git@work:org/sub/repo"

    for url in ("https://github.com/me/repo.git", "ssh://git@github.com/me/repo.git", "git@github.com"):
        with pytest.raises(OriginError, match="not an SSH URL"):
            rewrite_origin_url(url, "work")


@patch("gittool.git_remote.shutil.which", return_value="/usr/bin/git")
@patch("gittool.git_remote.subprocess.run")
def test_repo_queries(mock_run, _which):
    repo = GitRepo("/src/project")

    mock_run.return_value = completed(stdout="true\n")
    assert repo.is_work_tree()
    assert mock_run.call_args[0][0] == ["git", "-C", "/src/project", "rev-parse", "--is-inside-work-tree"]

    mock_run.return_value = completed(returncode=128, stderr="fatal: not a git repository")
    assert not repo.is_work_tree()

    mock_run.return_value = completed(stdout="git@github.com:me/repo.git\n")
    assert repo.origin_url() == "git@github.com:me/repo.git"

    mock_run.return_value = completed(returncode=2, stderr="error: No such remote 'origin'")
    assert repo.origin_url() is None


@patch("gittool.git_remote.shutil.which", return_value="/usr/bin/git")
@patch("gittool.git_remote.subprocess.run")
def test_set_origin_url(mock_run, _which):
    mock_run.return_value = completed()
    GitRepo().set_origin_url("git@work:me/repo.git")
    assert mock_run.call_args[0][0] == ["git", "-C", ".", "remote", "set-url", "origin", "git@work:me/repo.git"]

    mock_run.return_value = completed(returncode=2, stderr="error: No such remote")
    with pytest.raises(CapabilityError, match="No such remote"):
        GitRepo().set_origin_url("git@work:me/repo.git")


def test_repo_without_git():
    with patch("gittool.git_remote.shutil.which", return_value=None):
        with pytest.raises(CapabilityMissing, match="git"):
            GitRepo().is_work_tree()


if __name__ == "__main__":
    pytest.main([__file__])
