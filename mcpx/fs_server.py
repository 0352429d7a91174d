"""Filesystem tool server: file and directory operations within allowed directories."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Union

from mcpx import fs_tools
from mcpx.fs_tools import AccessPolicy, Edit
from mcpx.rpc import ToolServer

log = logging.getLogger(__name__)

SERVER_NAME = "mcpx-filesystem"
SERVER_VERSION = "0.1.0"
INSTRUCTIONS = (
    "This server provides filesystem operations through the Model Context Protocol. "
    "It allows reading, writing, and managing files and directories, but only within "
    "the allowed directories specified when starting the server."
)


def _report(action: Callable[..., str], *args: Any) -> str:
    """Run a tool action and turn any failure into an ``Error: ...`` message."""
    try:
        return action(*args)
    except Exception as exc:  # noqa: BLE001 - every failure is reported to the client
        return f"Error: {exc}"


class FilesystemService:
    """The filesystem tools, each answering with text."""

    def __init__(self, allowed_dirs: Iterable[str]) -> None:
        self.policy = AccessPolicy(allowed_dirs)

    @property
    def allowed_dirs(self) -> list[str]:
        return self.policy.allowed_dirs

    def read_file(self, path: str) -> str:
        return _report(fs_tools.read_file, self.policy, path)

    def read_multiple_files(self, paths: Sequence[str]) -> str:
        return _report(fs_tools.read_multiple_files, self.policy, paths)

    def write_file(self, path: str, content: str) -> str:
        return _report(fs_tools.write_file, self.policy, path, content)

    def edit_file(
        self,
        path: str,
        edits: Iterable[Union[Edit, Mapping[str, str]]],
        dry_run: Optional[bool] = None,
    ) -> str:
        return _report(fs_tools.edit_file, self.policy, path, edits, dry_run)

    def create_directory(self, path: str) -> str:
        return _report(fs_tools.create_directory, self.policy, path)

    def list_directory(self, path: str) -> str:
        return _report(fs_tools.list_directory, self.policy, path)

    def directory_tree(self, path: str) -> str:
        return _report(fs_tools.directory_tree, self.policy, path)

    def move_file(self, source: str, destination: str) -> str:
        return _report(fs_tools.move_file, self.policy, source, destination)

    def search_files(
        self, path: str, pattern: str, exclude_patterns: Optional[Iterable[str]] = None
    ) -> str:
        return _report(fs_tools.search_files, self.policy, path, pattern, exclude_patterns)

    def get_file_info(self, path: str) -> str:
        return _report(fs_tools.get_file_info, self.policy, path)

    def list_allowed_directories(self) -> str:
        return json.dumps(self.allowed_dirs, indent=2, ensure_ascii=False)


def _schema(properties: dict, required: Sequence[str] = ()) -> dict:
    return {"type": "object", "properties": properties, "required": list(required)}


_STRING = {"type": "string"}
_STRING_LIST = {"type": "array", "items": {"type": "string"}}
_EDIT = {
    "type": "object",
    "properties": {"old_text": _STRING, "new_text": _STRING},
    "required": ["old_text", "new_text"],
}


def build_server(service: FilesystemService) -> ToolServer:
    """Register every filesystem tool of ``service`` on a new server."""
    server = ToolServer(SERVER_NAME, SERVER_VERSION, INSTRUCTIONS)
    path_only = _schema({"path": _STRING}, ["path"])

    tools = [
        (
            "read_file",
            "Read the complete contents of a file from the file system. Handles various text "
            "encodings and provides detailed error messages if the file cannot be read. Use this "
            "tool when you need to examine the contents of a single file. Only works within "
            "allowed directories.",
            path_only,
            service.read_file,
        ),
        (
            "read_multiple_files",
            "Read the contents of multiple files simultaneously. Each file's content is returned "
            "with its path as a reference. Failed reads for individual files won't stop the "
            "entire operation. Only works within allowed directories.",
            _schema({"paths": _STRING_LIST}, ["paths"]),
            service.read_multiple_files,
        ),
        (
            "write_file",
            "Create a new file or completely overwrite an existing file with new content. Use "
            "with caution as it will overwrite existing files without warning. Only works "
            "within allowed directories.",
            _schema({"path": _STRING, "content": _STRING}, ["path", "content"]),
            service.write_file,
        ),
        (
            "edit_file",
            "Make line-based edits to a text file. Each edit replaces exact line sequences with "
            "new content. Returns a diff showing the changes made. Only works within allowed "
            "directories.",
            _schema(
                {
                    "path": _STRING,
                    "edits": {"type": "array", "items": _EDIT},
                    "dry_run": {"type": "boolean"},
                },
                ["path", "edits"],
            ),
            service.edit_file,
        ),
        (
            "create_directory",
            "Create a new directory or ensure a directory exists. Can create multiple nested "
            "directories in one operation. If the directory already exists, this operation "
            "will succeed silently. Only works within allowed directories.",
            path_only,
            service.create_directory,
        ),
        (
            "list_directory",
            "Get a detailed listing of all files and directories in a specified path. Results "
            "distinguish between files and directories with [FILE] and [DIR] prefixes. Only "
            "works within allowed directories.",
            path_only,
            service.list_directory,
        ),
        (
            "directory_tree",
            "Get a recursive tree view of files and directories as a JSON structure. Each entry "
            "includes 'name', 'type' (file/directory), and 'children' for directories. Only "
            "works within allowed directories.",
            path_only,
            service.directory_tree,
        ),
        (
            "move_file",
            "Move or rename files and directories. If the destination exists, the operation "
            "will fail. Both source and destination must be within allowed directories.",
            _schema({"source": _STRING, "destination": _STRING}, ["source", "destination"]),
            service.move_file,
        ),
        (
            "search_files",
            "Recursively search for files and directories matching a pattern. The search is "
            "case-insensitive and matches partial names. Returns full paths to all matching "
            "items. Only searches within allowed directories.",
            _schema(
                {"path": _STRING, "pattern": _STRING, "exclude_patterns": _STRING_LIST},
                ["path", "pattern"],
            ),
            service.search_files,
        ),
        (
            "get_file_info",
            "Retrieve detailed metadata about a file or directory: size, creation time, last "
            "modified time, permissions, and type. Only works within allowed directories.",
            path_only,
            service.get_file_info,
        ),
        (
            "list_allowed_directories",
            "Returns the list of directories that this server is allowed to access.",
            _schema({}),
            service.list_allowed_directories,
        ),
    ]
    for name, description, schema, handler in tools:
        server.tool(name=name, description=description, schema=schema)(handler)
    return server


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Serve the filesystem tools over stdio for the directories named on the command line."""
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    allowed_dirs = list(sys.argv[1:] if argv is None else argv)
    log.info("Starting Filesystem MCP Server...")
    if not allowed_dirs:
        log.error(
            "No allowed directories specified. Please provide at least one directory "
            "as a command line argument."
        )
        sys.exit(1)
    log.info("Allowed directories: %s", allowed_dirs)
    server = build_server(FilesystemService(allowed_dirs))
    log.info("Initializing MCP server...")
    server.serve()
    log.info("Server shutdown")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())