"""Jupyter notebook tool server working directly on ``.ipynb`` files."""

from __future__ import annotations

import argparse
import json
import logging
import os
import subprocess
import sys
from typing import Any, Optional, Sequence

from mcpx.rpc import ToolServer

log = logging.getLogger(__name__)

SERVER_NAME = "mpcx-jupyter"
SERVER_VERSION = "0.1.0"
INSTRUCTIONS = "A Jupyter notebook MCP server that works directly with .ipynb files"

_EMPTY_METADATA = {
    "kernelspec": {
        "display_name": "Python 3",
        "language": "python",
        "name": "python3",
    },
    "language_info": {
        "codemirror_mode": {"name": "ipython", "version": 3},
        "file_extension": ".py",
        "mimetype": "text/x-python",
        "name": "python",
        "nbconvert_exporter": "python",
        "pygments_lexer": "ipython3",
        "version": "3.8.0",
    },
}


class _NotebookFormatError(ValueError):
    """The file is JSON but not a notebook this server understands."""


def split_into_lines(content: str) -> list[str]:
    """Split text into lines, each ending with a single newline."""
    parts = content.split("\n")
    if parts[-1] == "":
        parts.pop()
    return [part.removesuffix("\r") + "\n" for part in parts]


def _sorted(value: Any) -> Any:
    """Order mapping keys recursively, as free-form notebook values are stored."""
    if isinstance(value, dict):
        return {key: _sorted(value[key]) for key in sorted(value)}
    if isinstance(value, list):
        return [_sorted(item) for item in value]
    return value


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_cell(raw: Any) -> dict:
    if not isinstance(raw, dict):
        raise _NotebookFormatError("cell is not an object")
    cell_type = raw.get("cell_type")
    if not isinstance(cell_type, str):
        raise _NotebookFormatError("cell_type must be a string")
    source = raw.get("source")
    if not isinstance(source, list) or not all(isinstance(line, str) for line in source):
        raise _NotebookFormatError("source must be a list of strings")
    execution_count = raw.get("execution_count")
    if execution_count is not None and not _is_int(execution_count):
        raise _NotebookFormatError("execution_count must be an integer")
    outputs = raw.get("outputs", [])
    if not isinstance(outputs, list):
        raise _NotebookFormatError("outputs must be a list")
    cell: dict[str, Any] = {
        "cell_type": cell_type,
        "metadata": raw.get("metadata"),
        "source": list(source),
    }
    if execution_count is not None:
        cell["execution_count"] = execution_count
    cell["outputs"] = list(outputs)
    return cell


def _parse_notebook(text: str) -> dict:
    raw = json.loads(text)
    if not isinstance(raw, dict):
        raise _NotebookFormatError("notebook is not an object")
    cells = raw.get("cells")
    if not isinstance(cells, list):
        raise _NotebookFormatError("cells must be a list")
    for key in ("nbformat", "nbformat_minor"):
        if not _is_int(raw.get(key)):
            raise _NotebookFormatError(f"{key} must be an integer")
    return {
        "cells": [_parse_cell(cell) for cell in cells],
        "metadata": raw.get("metadata"),
        "nbformat": raw["nbformat"],
        "nbformat_minor": raw["nbformat_minor"],
    }


def _dump_notebook(notebook: dict) -> str:
    cells = []
    for cell in notebook["cells"]:
        out: dict[str, Any] = {
            "cell_type": cell["cell_type"],
            "metadata": _sorted(cell["metadata"]),
            "source": cell["source"],
        }
        if cell.get("execution_count") is not None:
            out["execution_count"] = cell["execution_count"]
        out["outputs"] = _sorted(cell.get("outputs", []))
        cells.append(out)
    document = {
        "cells": cells,
        "metadata": _sorted(notebook["metadata"]),
        "nbformat": notebook["nbformat"],
        "nbformat_minor": notebook["nbformat_minor"],
    }
    return json.dumps(document, indent=2, ensure_ascii=False)


def _new_cell(cell_type: str, content: str) -> dict:
    return {
        "cell_type": cell_type,
        "metadata": {},
        "source": split_into_lines(content),
        "outputs": [],
    }


class JupyterTools:
    """Notebook tools, each answering with text."""

    def __init__(self, python: str = "python") -> None:
        self.python = python

    # -- file handling -------------------------------------------------

    @staticmethod
    def _read(path: str) -> dict:
        with open(path, encoding="utf-8") as handle:
            return _parse_notebook(handle.read())

    @staticmethod
    def _write(path: str, notebook: dict) -> None:
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(_dump_notebook(notebook))

    def _ensure_exists(self, path: str) -> None:
        """Create an empty notebook, with its parent directories, if none exists."""
        if os.path.exists(path):
            return
        log.info("Notebook does not exist, creating a new one at %s", path)
        parent = os.path.dirname(path)
        if parent and not os.path.exists(parent):
            os.makedirs(parent, exist_ok=True)
        empty = {
            "cells": [],
            "metadata": _EMPTY_METADATA,
            "nbformat": 4,
            "nbformat_minor": 5,
        }
        self._write(path, empty)

    def _append_cell(self, path: str, cell: dict) -> Optional[str]:
        """Append ``cell``; return a failure message or ``None`` on success."""
        try:
            self._ensure_exists(path)
        except OSError as exc:
            log.warning("Failed to create notebook %s: %s", path, exc)
            return f"Failed to create or access notebook: {path}"
        try:
            notebook = self._read(path)
        except (OSError, ValueError) as exc:
            log.warning("Failed to read notebook %s: %s", path, exc)
            return f"Failed to read notebook: {path}"
        notebook["cells"].append(cell)
        try:
            self._write(path, notebook)
        except OSError as exc:
            log.warning("Failed to write notebook %s: %s", path, exc)
            return f"Failed to write notebook: {path}"
        return None

    # -- execution -----------------------------------------------------

    def execute_code(self, code: str) -> list[str]:
        """Run ``code`` with the Python interpreter and collect its output texts."""
        try:
            completed = subprocess.run(
                [self.python, "-c", code],
                capture_output=True,
                stdin=subprocess.DEVNULL,
                check=False,
            )
        except OSError as exc:
            log.warning("Failed to execute Python code: %s", exc)
            return [f"Error executing code: {exc}"]

        results = []
        for stream, prefix in ((completed.stdout, ""), (completed.stderr, "Error: ")):
            if not stream:
                continue
            try:
                text = stream.decode("utf-8")
            except UnicodeDecodeError:
                continue
            results.append(prefix + text)
        return results or ["No output"]

    # -- tools ---------------------------------------------------------

    def add_markdown_cell(self, notebook_path: str, cell_content: str) -> str:
        log.info(
            "Adding markdown cell to %s with content length: %d",
            notebook_path,
            len(cell_content.encode("utf-8")),
        )
        failure = self._append_cell(notebook_path, _new_cell("markdown", cell_content))
        return failure or f"Successfully added markdown cell to {notebook_path}"

    def add_code_cell(self, notebook_path: str, cell_content: str) -> str:
        log.info(
            "Adding code cell to %s with content length: %d",
            notebook_path,
            len(cell_content.encode("utf-8")),
        )
        failure = self._append_cell(notebook_path, _new_cell("code", cell_content))
        return failure or f"Successfully added code cell to {notebook_path}"

    def add_execute_code_cell(self, notebook_path: str, cell_content: str) -> str:
        log.info(
            "Adding and executing code cell in %s with content length: %d",
            notebook_path,
            len(cell_content.encode("utf-8")),
        )
        try:
            self._ensure_exists(notebook_path)
        except OSError as exc:
            log.warning("Failed to create notebook %s: %s", notebook_path, exc)
            return f"Failed to create or access notebook: {notebook_path}"
        try:
            self._read(notebook_path)
        except (OSError, ValueError) as exc:
            log.warning("Failed to read notebook %s: %s", notebook_path, exc)
            return f"Failed to read notebook: {notebook_path}"

        outputs = self.execute_code(cell_content)
        cell = _new_cell("code", cell_content)
        cell["execution_count"] = 1
        cell["outputs"] = [
            {"output_type": "stream", "name": "stdout", "text": text} for text in outputs
        ]
        failure = self._append_cell(notebook_path, cell)
        if failure:
            return failure
        if not outputs:
            return "Code executed successfully, but produced no output"
        rendered = json.dumps(outputs, indent=2, ensure_ascii=False)
        return f"Code executed successfully. Output:\n{rendered}"

    def read_notebook_content(self, notebook_path: str) -> str:
        log.info("Reading notebook: %s", notebook_path)
        if not os.path.exists(notebook_path):
            return f"Error: Notebook not found at path: {notebook_path}"
        try:
            with open(notebook_path, encoding="utf-8") as handle:
                content = handle.read()
        except (OSError, UnicodeDecodeError) as exc:
            return f"Error reading notebook: {exc}"
        return f"Successfully read notebook. Content:\n{content}"

    def create_notebook(self, notebook_path: str) -> str:
        log.info("Creating new notebook: %s", notebook_path)
        if os.path.exists(notebook_path):
            return f"Error: Notebook already exists at path: {notebook_path}"
        try:
            self._ensure_exists(notebook_path)
        except OSError as exc:
            log.warning("Failed to create notebook %s: %s", notebook_path, exc)
            return f"Error: Failed to create notebook at path: {notebook_path}"
        return f"Successfully created new notebook at path: {notebook_path}"


_PATH_PROPERTY = {
    "type": "string",
    "description": "Absolute or relative path to the .ipynb file, including filename",
}
_CONTENT_PROPERTY = {
    "type": "string",
    "description": "Content to be added to the cell, can be markdown or code",
}
_CELL_SCHEMA = {
    "type": "object",
    "properties": {"notebook_path": _PATH_PROPERTY, "cell_content": _CONTENT_PROPERTY},
    "required": ["notebook_path", "cell_content"],
}
_PATH_SCHEMA = {
    "type": "object",
    "properties": {"notebook_path": _PATH_PROPERTY},
    "required": ["notebook_path"],
}


def build_server(tools: JupyterTools) -> ToolServer:
    """Register every notebook tool of ``tools`` on a new server."""
    server = ToolServer(SERVER_NAME, SERVER_VERSION, INSTRUCTIONS)
    entries = [
        (
            "add_markdown_cell",
            "Append a new markdown cell to an existing Jupyter notebook file or create a new "
            "notebook if it doesn't exist",
            _CELL_SCHEMA,
            tools.add_markdown_cell,
        ),
        (
            "add_code_cell",
            "Append a new code cell to an existing Jupyter notebook file or create a new "
            "notebook if it doesn't exist",
            _CELL_SCHEMA,
            tools.add_code_cell,
        ),
        (
            "add_execute_code_cell",
            "Append a new code cell to a Jupyter notebook, execute the code, and save the "
            "outputs to the notebook",
            _CELL_SCHEMA,
            tools.add_execute_code_cell,
        ),
        (
            "read_notebook_content",
            "Read the contents of an existing Jupyter notebook file and return it as a "
            "JSON-formatted string",
            _PATH_SCHEMA,
            tools.read_notebook_content,
        ),
        (
            "create_notebook",
            "Create a new empty Jupyter notebook file at the specified path",
            _PATH_SCHEMA,
            tools.create_notebook,
        ),
    ]
    for name, description, schema, handler in entries:
        server.tool(name=name, description=description, schema=schema)(handler)
    return server


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Serve the notebook tools over stdio."""
    parser = argparse.ArgumentParser(
        prog="mpcx-jupyter", description="Jupyter notebook tool server over stdio."
    )
    parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    log.info("Starting Jupyter MCP Server (File Mode)")
    server = build_server(JupyterTools())
    log.info("Starting MCP server")
    server.serve()
    log.info("Server shutdown")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())