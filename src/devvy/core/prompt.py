"""User prompts.

Business logic only sees the ``Prompter`` protocol, so decisions can be
scripted in tests and answered on the console in the CLI.
"""

import getpass
from collections.abc import Sequence
from typing import Protocol


class Prompter(Protocol):
    """Confirmation, selection and text input primitives."""

    def confirm(self, message: str, default: bool = False) -> bool: ...

    def select(self, message: str, choices: Sequence[str], default: int = 0) -> str: ...

    def input(self, message: str, default: str = "") -> str: ...

    def password(self, message: str) -> str: ...


class ConsolePrompter:
    """Prompter reading answers from the terminal."""

    def confirm(self, message: str, default: bool = False) -> bool:
        """Ask a yes/no question.

        Args:
            message: Question text.
            default: Answer used for an empty reply.

        Returns:
            True for yes.
        """
        hint = "Y/n" if default else "y/N"
        while True:
            answer = input(f"{message} [{hint}]: ").strip().lower()
            if not answer:
                return default
            if answer in ("y", "yes"):
                return True
            if answer in ("n", "no"):
                return False
            print("Please answer 'y' or 'n'.")

    def select(self, message: str, choices: Sequence[str], default: int = 0) -> str:
        """Ask the user to pick one of several choices.

        Args:
            message: Question text.
            choices: Options to list.
            default: Index used for an empty reply.

        Returns:
            The chosen option.
        """
        if not choices:
            raise ValueError("select() requires at least one choice")

        print(message)
        for index, choice in enumerate(choices, start=1):
            marker = "*" if index - 1 == default else " "
            print(f" {marker} {index}) {choice}")

        while True:
            answer = input(f"Choice [{default + 1}]: ").strip()
            if not answer:
                return choices[default]
            if answer.isdigit() and 1 <= int(answer) <= len(choices):
                return choices[int(answer) - 1]
            print(f"Please enter a number between 1 and {len(choices)}.")

    def input(self, message: str, default: str = "") -> str:
        """Ask for a line of text."""
        suffix = f" [{default}]" if default else ""
        answer = input(f"{message}{suffix}: ").strip()
        return answer or default

    def password(self, message: str) -> str:
        """Ask for masked input."""
        return getpass.getpass(f"{message}: ")
