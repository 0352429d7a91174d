"""Run PowerShell commands and scripts to completion and report their output as JSON."""

from __future__ import annotations

import json
import logging
import os
import subprocess
from dataclasses import asdict, dataclass
from typing import Iterable, Optional, Sequence, Union

log = logging.getLogger(__name__)

Shell = Union[str, Sequence[str]]

POWERSHELL: tuple[str, ...] = ("powershell.exe",)
_FLAGS = ("-NoProfile", "-NonInteractive")


@dataclass(frozen=True)
class CommandOutput:
    """What a finished command wrote and how it ended."""

    stdout: str
    stderr: str
    exit_code: Optional[int]
    success: bool

    @classmethod
    def from_completed(cls, completed: subprocess.CompletedProcess) -> "CommandOutput":
        return cls(
            stdout=_decode(completed.stdout),
            stderr=_decode(completed.stderr),
            exit_code=_exit_code(completed.returncode),
            success=completed.returncode == 0,
        )

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2, ensure_ascii=False)


def _decode(data: Optional[bytes]) -> str:
    return (data or b"").decode("utf-8", errors="replace")


def _exit_code(returncode: Optional[int]) -> Optional[int]:
    """A negative return code means the process died from a signal and has no exit code."""
    if returncode is None or returncode < 0:
        return None
    return returncode


def _shell_prefix(shell: Shell) -> list[str]:
    return [shell] if isinstance(shell, str) else list(shell)


def _command_argv(command: str, shell: Shell = POWERSHELL) -> list[str]:
    return [*_shell_prefix(shell), *_FLAGS, "-Command", command]


def _script_argv(script_path: str, shell: Shell = POWERSHELL) -> list[str]:
    return [*_shell_prefix(shell), *_FLAGS, "-File", script_path]


def _run(argv: list[str]) -> str:
    completed = subprocess.run(
        argv,
        stdin=subprocess.DEVNULL,
        capture_output=True,
        check=False,
    )
    return CommandOutput.from_completed(completed).to_json()


def execute_command(command: str, shell: Shell = POWERSHELL) -> str:
    """Run one command, wait for it, and return its output as JSON."""
    log.info("Executing PowerShell command: %s", command)
    return _run(_command_argv(command, shell))


def execute_command_sequence(commands: Iterable[str], shell: Shell = POWERSHELL) -> str:
    """Run several commands, joined with ``; ``, in a single session."""
    commands = list(commands)
    if not commands:
        raise ValueError("No commands provided to execute")
    return execute_command("; ".join(commands), shell)


def execute_script_file(script_path: str, shell: Shell = POWERSHELL) -> str:
    """Run a ``.ps1`` script file and return its output as JSON."""
    if not os.path.exists(script_path):
        raise FileNotFoundError(f"Script file does not exist: {script_path}")
    extension = os.path.splitext(script_path)[1]
    if extension and extension != ".ps1":
        raise ValueError(f"File is not a PowerShell script (.ps1): {script_path}")
    log.info("Executing PowerShell script: %s", script_path)
    return _run(_script_argv(script_path, shell))