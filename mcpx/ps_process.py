"""Background PowerShell processes whose status and output can be polled."""

from __future__ import annotations

import json
import logging
import subprocess
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import IO, Any, Optional

from mcpx.ps_execute import POWERSHELL, Shell, _command_argv, _decode, _exit_code

log = logging.getLogger(__name__)

_CHUNK = 4096


class ProcessNotFound(LookupError):
    """Raised for an id that no background process was started under."""

    def __init__(self, process_id: str) -> None:
        super().__init__(f"Process not found: {process_id}")
        self.process_id = process_id


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


@dataclass
class BackgroundProcess:
    """A started command, its collected output and its state."""

    process_id: str
    command: str
    process: subprocess.Popen
    start_time: datetime = field(default_factory=_now)
    end_time: Optional[datetime] = None
    running: bool = True
    exit_code: Optional[int] = None
    stdout: bytearray = field(default_factory=bytearray)
    stderr: bytearray = field(default_factory=bytearray)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def status(self) -> dict:
        with self.lock:
            return {
                "process_id": self.process_id,
                "command": self.command,
                "running": self.running,
                "exit_code": self.exit_code,
                "start_time": self.start_time.isoformat(),
                "end_time": self.end_time.isoformat() if self.end_time else None,
            }

    def output(self) -> dict:
        with self.lock:
            return {
                "process_id": self.process_id,
                "stdout": _decode(bytes(self.stdout)),
                "stderr": _decode(bytes(self.stderr)),
                "exit_code": self.exit_code,
                "completed": not self.running,
            }

    def _collect(self, stream: IO[bytes], buffer: bytearray, name: str) -> None:
        try:
            for chunk in iter(lambda: stream.read1(_CHUNK), b""):
                with self.lock:
                    buffer.extend(chunk)
        except (OSError, ValueError) as exc:
            log.error("Error reading %s: %s", name, exc)
        finally:
            stream.close()

    def _finished(self, returncode: Optional[int]) -> None:
        with self.lock:
            self.running = False
            self.exit_code = _exit_code(returncode)
            if self.end_time is None:
                self.end_time = _now()

    def _monitor(self, readers: list[threading.Thread]) -> None:
        try:
            returncode = self.process.wait()
        except OSError as exc:
            log.error("Error waiting for process to complete: %s", exc)
            returncode = None
        for reader in readers:
            reader.join()
        self._finished(returncode)
        log.info(
            "Background process completed: %s, exit code: %s", self.process_id, self.exit_code
        )


class ProcessRegistry:
    """Starts background processes and keeps track of them by id."""

    def __init__(self, shell: Shell = POWERSHELL) -> None:
        self.shell = shell
        self._processes: dict[str, BackgroundProcess] = {}
        self._lock = threading.Lock()

    def _get(self, process_id: str) -> BackgroundProcess:
        with self._lock:
            entry = self._processes.get(process_id)
        if entry is None:
            raise ProcessNotFound(process_id)
        return entry

    def start(self, command: str) -> str:
        """Start ``command`` in the background and return its new process id."""
        log.info("Starting background PowerShell process: %s", command)
        process = subprocess.Popen(
            _command_argv(command, self.shell),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        process_id = str(uuid.uuid4())
        entry = BackgroundProcess(process_id=process_id, command=command, process=process)
        with self._lock:
            self._processes[process_id] = entry

        readers = [
            threading.Thread(
                target=entry._collect, args=(process.stdout, entry.stdout, "stdout"), daemon=True
            ),
            threading.Thread(
                target=entry._collect, args=(process.stderr, entry.stderr, "stderr"), daemon=True
            ),
        ]
        for reader in readers:
            reader.start()
        threading.Thread(target=entry._monitor, args=(readers,), daemon=True).start()
        return process_id

    def status(self, process_id: str) -> str:
        """Return whether the process runs, its exit code and times, as JSON."""
        return _to_json(self._get(process_id).status())

    def kill(self, process_id: str) -> str:
        """Terminate a running process."""
        entry = self._get(process_id)
        with entry.lock:
            if not entry.running:
                return f"Process {process_id} is already terminated"
        try:
            entry.process.kill()
        except OSError as exc:
            raise OSError(f"Failed to kill process {process_id}: {exc}") from exc
        with entry.lock:
            entry.running = False
            entry.end_time = _now()
        return f"Process {process_id} killed successfully"

    def output(self, process_id: str) -> str:
        """Return the output collected so far, as JSON."""
        return _to_json(self._get(process_id).output())

    def list(self) -> str:
        """Return the status of every process started, as a JSON list."""
        with self._lock:
            entries = list(self._processes.values())
        return _to_json([entry.status() for entry in entries])