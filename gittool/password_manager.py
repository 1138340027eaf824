#!/usr/bin/env python3
"""
Bitwarden CLI session capture for the external vault provider.
"""

import os
import shutil
import subprocess
from typing import Optional

from .errors import CapabilityError, CapabilityMissing


class BitwardenCli:
    """Obtains a session token from ``bw unlock``."""

    tool = "bw"

    def available(self) -> bool:
        return shutil.which(self.tool) is not None

    def unlock(self, password: Optional[str] = None) -> str:
        """
        Unlock the Bitwarden vault and return the raw session token.

        When ``password`` is given it is handed to ``bw`` through the child
        environment; otherwise ``bw`` prompts on the terminal itself.
        """
        if not self.available():
            raise CapabilityMissing(self.tool, "install the Bitwarden CLI")

        cmd = [self.tool, "unlock", "--raw"]
        env = None
        if password:
            env = dict(os.environ)
            env["GITTOOL_BW_PASSWORD"] = password
            cmd += ["--passwordenv", "GITTOOL_BW_PASSWORD"]

        result = subprocess.run(cmd, stdout=subprocess.PIPE, text=True, env=env)
        token = (result.stdout or "").strip()
        if result.returncode != 0 or not token:
            raise CapabilityError(self.tool, "could not obtain a session token")
        return token
