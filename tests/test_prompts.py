#!/usr/bin/env python3
"""
Tests for master secret input decisions.
"""

import base64

import pytest

from gittool.prompts import (
    MasterSource,
    Prompter,
    choose_master,
    decide_master_source,
    generate_master_secret,
)


def scripted(*answers):
    """Input function returning the given answers in order."""
    queue = list(answers)
    return lambda prompt: queue.pop(0)


def test_decide_master_source():
    assert decide_master_source("secret", interactive=False) is MasterSource.PROVIDED
    assert decide_master_source("secret", interactive=True) is MasterSource.PROVIDED
    assert decide_master_source("", interactive=True) is MasterSource.PROMPT
    assert decide_master_source(None, interactive=False) is MasterSource.GENERATE


def test_generated_secret_is_32_random_bytes():
    first = generate_master_secret()
    assert len(base64.b64decode(first)) == 32
    assert first != generate_master_secret()


def test_new_password_confirmed():
    prompter = Prompter(secret_input=scripted("hunter2", "hunter2"))
    assert prompter.new_password() == "hunter2"


def test_new_password_mismatch():
    prompter = Prompter(secret_input=scripted("hunter2", "hunter3"))
    with pytest.raises(ValueError, match="do not match"):
        prompter.new_password()


def test_new_password_empty_means_generate():
    prompter = Prompter(secret_input=scripted(""))
    assert prompter.new_password() == ""

    secret, generated = choose_master("", True, Prompter(secret_input=scripted("")))
    assert generated
    assert secret


def test_ask_default():
    prompter = Prompter(text_input=scripted("  ", "gitlab.com"))
    assert prompter.ask("Host", default="github.com") == "github.com"
    assert prompter.ask("Host", default="github.com") == "gitlab.com"


def test_choose_by_number():
    shown = []
    prompter = Prompter(text_input=scripted("2"))
    assert prompter.choose("Select", ["work", "personal"], output=shown.append) == "personal"
    assert shown == ["  1) work", "  2) personal"]


def test_choose_rejects_bad_answers():
    for answer in ("", "0", "3", "work"):
        prompter = Prompter(text_input=scripted(answer))
        with pytest.raises(ValueError, match="No selection"):
            prompter.choose("Select", ["work", "personal"], output=lambda line: None)


def test_choose_master():
    assert choose_master("given", interactive=False) == ("given", False)

    secret, generated = choose_master("", interactive=True,
                                      prompter=Prompter(secret_input=scripted("typed", "typed")))
    assert (secret, generated) == ("typed", False)

    secret, generated = choose_master(None, interactive=False)
    assert generated
    assert len(base64.b64decode(secret)) == 32


if __name__ == "__main__":
    pytest.main([__file__])
