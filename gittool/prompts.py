#!/usr/bin/env python3
"""
Operator input.

``decide_master_source`` is the pure decision (what input is needed given the
flags and whether we can prompt); ``Prompter`` is the terminal boundary that
supplies it. Tests drive the decision directly and hand ``Prompter`` fake
input functions.
"""

import base64
import getpass
import secrets
from enum import Enum
from typing import Callable, List, Optional, Tuple


class MasterSource(Enum):
    PROVIDED = "provided"
    PROMPT = "prompt"
    GENERATE = "generate"


def decide_master_source(password: Optional[str], interactive: bool) -> MasterSource:
    """Explicit password wins, then a prompt when a TTY is available, else generate."""
    if password:
        return MasterSource.PROVIDED
    if interactive:
        return MasterSource.PROMPT
    return MasterSource.GENERATE


def generate_master_secret() -> str:
    """Random 32-byte secret, base64 encoded."""
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


class Prompter:
    """Asks the operator for input on the terminal."""

    def __init__(
        self,
        secret_input: Callable[[str], str] = getpass.getpass,
        text_input: Callable[[str], str] = input,
    ):
        self.secret_input = secret_input
        self.text_input = text_input

    def new_password(self) -> str:
        """
        Ask for a new password twice.

        Returns "" when the operator leaves the first prompt empty, meaning
        "generate one for me".

        Raises:
            ValueError: If the confirmation does not match
        """
        first = self.secret_input("Enter master password (leave empty to auto-generate): ")
        if not first:
            return ""
        confirm = self.secret_input("Confirm master password: ")
        if first != confirm:
            raise ValueError("Passwords do not match. Aborting.")
        return first

    def ask(self, question: str, default: Optional[str] = None) -> str:
        suffix = f" (default: {default})" if default else ""
        answer = self.text_input(f"{question}{suffix}: ").strip()
        return answer or (default or "")

    def choose(self, question: str, options: List[str], output: Callable[[str], None] = print) -> str:
        """
        Let the operator pick one of ``options`` by number.

        Raises:
            ValueError: If the answer is not one of the listed numbers
        """
        for number, option in enumerate(options, 1):
            output(f"  {number}) {option}")
        answer = self.ask(question)
        if not answer.isdigit() or not 1 <= int(answer) <= len(options):
            raise ValueError("No selection made.")
        return options[int(answer) - 1]


def choose_master(
    password: Optional[str],
    interactive: bool,
    prompter: Optional[Prompter] = None
) -> Tuple[str, bool]:
    """
    Resolve the master secret to store.

    Returns:
        Tuple of (secret, generated)
    """
    source = decide_master_source(password, interactive)
    if source is MasterSource.PROVIDED:
        return password, False
    if source is MasterSource.PROMPT:
        entered = (prompter or Prompter()).new_password()
        if entered:
            return entered, False
    return generate_master_secret(), True
