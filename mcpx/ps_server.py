"""PowerShell tool server: synchronous and background command execution."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Callable, Iterable, Optional, Sequence

from mcpx import ps_execute
from mcpx.ps_execute import POWERSHELL, Shell
from mcpx.ps_process import ProcessRegistry
from mcpx.rpc import ToolServer

log = logging.getLogger(__name__)

SERVER_NAME = "mcpx-powershell"
SERVER_VERSION = "0.1.0"
INSTRUCTIONS = (
    "This server provides PowerShell command execution through the Model Context Protocol. "
    "It allows running PowerShell commands synchronously or as background processes, "
    "checking their status, and retrieving their output."
)

_RESTRICTED_FLAG = "--restricted"
_ALLOW_PREFIX = "--allow="


def _report(prefix: str, action: Callable[..., str], *args: Any) -> str:
    """Run ``action`` and turn any failure into ``prefix: message``."""
    try:
        return action(*args)
    except Exception as exc:  # noqa: BLE001 - every failure is reported to the client
        return f"{prefix}: {exc}"


def _refusal(command: str) -> str:
    return f"Error: Command '{command}' is not allowed in restricted mode"


class PowerShellService:
    """The PowerShell tools, each answering with text."""

    def __init__(self, args: Iterable[str] = (), shell: Shell = POWERSHELL) -> None:
        self.restricted_mode = False
        self.allowed_commands: list[str] = []
        for arg in args:
            if arg == _RESTRICTED_FLAG:
                self.restricted_mode = True
            elif arg.startswith(_ALLOW_PREFIX):
                self.allowed_commands.append(arg[len(_ALLOW_PREFIX):])
        self.shell = shell
        self.processes = ProcessRegistry(shell)

    def is_command_allowed(self, command: str) -> bool:
        """Everything is allowed unless restricted; then the command must mention an allowed one."""
        if not self.restricted_mode:
            return True
        return any(allowed in command for allowed in self.allowed_commands)

    def execute_command(self, command: str) -> str:
        if not self.is_command_allowed(command):
            return _refusal(command)
        return _report(
            "Error executing PowerShell command", ps_execute.execute_command, command, self.shell
        )

    def start_background_process(self, command: str) -> str:
        if not self.is_command_allowed(command):
            return _refusal(command)
        try:
            process_id = self.processes.start(command)
        except Exception as exc:  # noqa: BLE001 - reported to the client
            return f"Error starting background process: {exc}"
        return json.dumps({"process_id": process_id, "status": "started"})

    def get_process_status(self, process_id: str) -> str:
        return _report("Error checking process status", self.processes.status, process_id)

    def kill_process(self, process_id: str) -> str:
        return _report("Error killing process", self.processes.kill, process_id)

    def get_process_output(self, process_id: str) -> str:
        return _report("Error retrieving process output", self.processes.output, process_id)

    def execute_command_sequence(self, commands: Sequence[str]) -> str:
        commands = list(commands)
        if self.restricted_mode:
            for command in commands:
                if not self.is_command_allowed(command):
                    return _refusal(command)
        return _report(
            "Error executing command sequence",
            ps_execute.execute_command_sequence,
            commands,
            self.shell,
        )

    def list_running_processes(self) -> str:
        return _report("Error listing processes", self.processes.list)

    def execute_script_file(self, script_path: str) -> str:
        if self.restricted_mode:
            return "Error: Script execution is not allowed in restricted mode"
        return _report(
            "Error executing script file", ps_execute.execute_script_file, script_path, self.shell
        )


def _schema(properties: dict, required: Sequence[str] = ()) -> dict:
    return {"type": "object", "properties": properties, "required": list(required)}


_STRING = {"type": "string"}
_COMMAND = _schema({"command": _STRING}, ["command"])
_PROCESS = _schema({"process_id": _STRING}, ["process_id"])


def build_server(service: PowerShellService) -> ToolServer:
    """Register every PowerShell tool of ``service`` on a new server."""
    server = ToolServer(SERVER_NAME, SERVER_VERSION, INSTRUCTIONS)
    tools = [
        (
            "execute_command",
            "Execute a PowerShell command and wait for it to complete. Returns the complete "
            "output of the command including standard output and error streams.",
            _COMMAND,
            service.execute_command,
        ),
        (
            "start_background_process",
            "Start a PowerShell command as a background process. Returns a process ID that can "
            "be used to check status or retrieve output later.",
            _COMMAND,
            service.start_background_process,
        ),
        (
            "get_process_status",
            "Check the status of a previously started background process. Returns whether the "
            "process is still running, its exit code if completed, and its times.",
            _PROCESS,
            service.get_process_status,
        ),
        (
            "kill_process",
            "Terminate a running PowerShell process by its process ID.",
            _PROCESS,
            service.kill_process,
        ),
        (
            "get_process_output",
            "Attach to a background process and retrieve its current output. This does not "
            "wait for the process to complete.",
            _PROCESS,
            service.get_process_output,
        ),
        (
            "execute_command_sequence",
            "Execute a sequence of PowerShell commands in the same session, preserving state "
            "between commands.",
            _schema({"commands": {"type": "array", "items": _STRING}}, ["commands"]),
            service.execute_command_sequence,
        ),
        (
            "list_running_processes",
            "List all background PowerShell processes started by this server, with their "
            "process IDs and current status.",
            _schema({}),
            service.list_running_processes,
        ),
        (
            "execute_script_file",
            "Execute a PowerShell script file (.ps1) at the specified path. Returns the output "
            "of the script execution.",
            _schema({"script_path": _STRING}, ["script_path"]),
            service.execute_script_file,
        ),
    ]
    for name, description, schema, handler in tools:
        server.tool(name=name, description=description, schema=schema)(handler)
    return server


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Serve the PowerShell tools over stdio; accepts ``--restricted`` and ``--allow=CMD``."""
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    log.info("Starting PowerShell MCP Server...")
    args = list(sys.argv[1:] if argv is None else argv)
    server = build_server(PowerShellService(args))
    log.info("Initializing MCP server...")
    server.serve()
    log.info("Server shutdown")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())