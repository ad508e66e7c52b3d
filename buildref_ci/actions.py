"""CI workflow commands (GitHub Actions file commands and annotations).

Outputs, exported variables and saved state are appended to the files named by
GITHUB_OUTPUT / GITHUB_ENV / GITHUB_STATE using the heredoc form so multi-line
values survive. Masks, warnings, errors and groups are printed to stdout as
`::command::message` lines.
"""

from __future__ import annotations

import os
import sys
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager

from loguru import logger


def _escape_data(value: str) -> str:
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


class WorkflowCommands:
    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env: Mapping[str, str] = os.environ if env is None else env

    def _issue(self, command: str, message: str = "") -> None:
        sys.stdout.write(f"::{command}::{_escape_data(message)}\n")
        sys.stdout.flush()

    def _append_file_command(self, file_var: str, name: str, value: str) -> bool:
        path = self._env.get(file_var)
        if not path:
            return False

        delimiter = f"ghadelimiter_{uuid.uuid4()}"
        if delimiter in name or delimiter in value:
            raise ValueError(f"Unexpected input: name or value contains the delimiter {delimiter}")

        with open(path, "a", encoding="utf-8") as f:
            f.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")
        return True

    def set_secret(self, value: str) -> None:
        """Register a value to be masked in the job log (one mask per line)."""
        for line in value.splitlines():
            if line.strip():
                self._issue("add-mask", line)

    def set_output(self, name: str, value: str, secret: bool = False) -> None:
        if not self._append_file_command("GITHUB_OUTPUT", name, value):
            shown = "***" if secret else value
            logger.info(f"output {name}={shown}")

    def export_variable(self, name: str, value: str) -> None:
        if not self._append_file_command("GITHUB_ENV", name, value):
            logger.info(f"export {name} ({len(value)} chars)")

    def save_state(self, name: str, value: str) -> bool:
        return self._append_file_command("GITHUB_STATE", name, value)

    def get_state(self, name: str) -> str:
        return self._env.get(f"STATE_{name}", "")

    def warning(self, message: str) -> None:
        logger.warning(message)
        self._issue("warning", message)

    def error(self, message: str) -> None:
        logger.error(message)
        self._issue("error", message)

    @contextmanager
    def group(self, title: str) -> Iterator[None]:
        self._issue("group", title)
        try:
            yield
        finally:
            self._issue("endgroup")
