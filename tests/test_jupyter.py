import json
import sys

import pytest

from mcpx.jupyter import JupyterTools, build_server, split_into_lines


@pytest.fixture
def tools():
    return JupyterTools(python=sys.executable)


@pytest.fixture
def nb_path(tmp_path):
    return str(tmp_path / "notebook.ipynb")


def _load(path):
    with open(path, encoding="utf-8") as handle:
        return json.load(handle)


@pytest.mark.parametrize(
    "content, expected",
    [
        ("a\nb", ["a\n", "b\n"]),
        ("", []),
        ("a\r\nb\n", ["a\n", "b\n"]),
        ("a\n\nb", ["a\n", "\n", "b\n"]),
        ("\n", ["\n"]),
    ],
)
def test_split_into_lines(content, expected):
    assert split_into_lines(content) == expected


def test_create_notebook_writes_empty_notebook(tools, nb_path):
    result = tools.create_notebook(nb_path)
    assert result == f"Successfully created new notebook at path: {nb_path}"
    notebook = _load(nb_path)
    assert notebook["cells"] == []
    assert notebook["nbformat"] == 4
    assert notebook["nbformat_minor"] == 5
    assert notebook["metadata"]["kernelspec"]["name"] == "python3"
    assert notebook["metadata"]["language_info"]["file_extension"] == ".py"


def test_create_notebook_refuses_existing(tools, nb_path):
    tools.create_notebook(nb_path)
    assert tools.create_notebook(nb_path) == f"Error: Notebook already exists at path: {nb_path}"


def test_create_notebook_makes_parent_directories(tools, tmp_path):
    path = str(tmp_path / "deep" / "er" / "nb.ipynb")
    assert tools.create_notebook(path).startswith("Successfully created new notebook")
    assert _load(path)["cells"] == []


def test_add_markdown_cell_creates_notebook(tools, nb_path):
    result = tools.add_markdown_cell(nb_path, "# Title\ntext")
    assert result == f"Successfully added markdown cell to {nb_path}"
    cells = _load(nb_path)["cells"]
    assert len(cells) == 1
    cell = cells[0]
    assert cell["cell_type"] == "markdown"
    assert cell["source"] == split_into_lines("# Title\ntext")
    assert cell["outputs"] == []
    assert cell["metadata"] == {}
    assert "execution_count" not in cell


def test_cells_are_appended_in_order(tools, nb_path):
    tools.add_markdown_cell(nb_path, "intro")
    assert tools.add_code_cell(nb_path, "x = 1") == f"Successfully added code cell to {nb_path}"
    cells = _load(nb_path)["cells"]
    assert [c["cell_type"] for c in cells] == ["markdown", "code"]
    assert cells[1]["source"] == split_into_lines("x = 1")


def test_add_cell_to_invalid_json_fails(tools, nb_path):
    with open(nb_path, "w", encoding="utf-8") as handle:
        handle.write("not json")
    assert tools.add_code_cell(nb_path, "x") == f"Failed to read notebook: {nb_path}"


def test_add_cell_to_notebook_with_string_source_fails(tools, nb_path):
    document = {
        "cells": [{"cell_type": "code", "metadata": {}, "source": "x = 1"}],
        "metadata": {},
        "nbformat": 4,
        "nbformat_minor": 5,
    }
    with open(nb_path, "w", encoding="utf-8") as handle:
        json.dump(document, handle)
    assert tools.add_markdown_cell(nb_path, "x") == f"Failed to read notebook: {nb_path}"


def test_existing_cells_are_kept(tools, nb_path):
    document = {
        "cells": [
            {"cell_type": "code", "metadata": {}, "source": ["y = 2\n"], "execution_count": None}
        ],
        "metadata": {"b": 1, "a": 2},
        "nbformat": 4,
        "nbformat_minor": 2,
    }
    with open(nb_path, "w", encoding="utf-8") as handle:
        json.dump(document, handle)
    tools.add_markdown_cell(nb_path, "note")
    notebook = _load(nb_path)
    assert notebook["nbformat_minor"] == 2
    assert notebook["metadata"] == {"a": 2, "b": 1}
    assert notebook["cells"][0]["source"] == ["y = 2\n"]
    assert notebook["cells"][0]["outputs"] == []
    assert "execution_count" not in notebook["cells"][0]
    assert notebook["cells"][1]["source"] == ["note\n"]


def test_execute_code_captures_stdout(tools):
    assert tools.execute_code("print('hi')") == ["hi\n"]


def test_execute_code_reports_stderr(tools):
    results = tools.execute_code("import sys; sys.stderr.write('bad')")
    assert results == ["Error: bad"]


def test_execute_code_without_output(tools):
    assert tools.execute_code("x = 1") == ["No output"]


def test_execute_code_missing_interpreter(tmp_path):
    runner = JupyterTools(python=str(tmp_path / "no-such-python"))
    results = runner.execute_code("print(1)")
    assert len(results) == 1
    assert results[0].startswith("Error executing code: ")


def test_add_execute_code_cell_stores_outputs(tools, nb_path):
    result = tools.add_execute_code_cell(nb_path, "print('hi')")
    prefix = "Code executed successfully. Output:\n"
    assert result.startswith(prefix)
    assert json.loads(result[len(prefix):]) == ["hi\n"]
    cell = _load(nb_path)["cells"][-1]
    assert cell["cell_type"] == "code"
    assert cell["execution_count"] == 1
    assert cell["outputs"] == [{"name": "stdout", "output_type": "stream", "text": "hi\n"}]
    assert list(cell["outputs"][0]) == ["name", "output_type", "text"]


def test_add_execute_code_cell_invalid_notebook(tools, nb_path):
    with open(nb_path, "w", encoding="utf-8") as handle:
        handle.write("[]")
    assert tools.add_execute_code_cell(nb_path, "print(1)") == f"Failed to read notebook: {nb_path}"


def test_read_notebook_content_missing(tools, nb_path):
    assert tools.read_notebook_content(nb_path) == f"Error: Notebook not found at path: {nb_path}"


def test_read_notebook_content_returns_file_text(tools, nb_path):
    tools.add_markdown_cell(nb_path, "hello")
    with open(nb_path, encoding="utf-8") as handle:
        text = handle.read()
    assert tools.read_notebook_content(nb_path) == "Successfully read notebook. Content:\n" + text


def test_server_lists_and_calls_tools(tools, nb_path):
    server = build_server(tools)
    listing = server.handle({"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
    names = [tool["name"] for tool in listing["result"]["tools"]]
    assert names == [
        "add_markdown_cell",
        "add_code_cell",
        "add_execute_code_cell",
        "read_notebook_content",
        "create_notebook",
    ]
    reply = server.handle(
        {
            "jsonrpc": "2.0",
            "id": 2,
            "method": "tools/call",
            "params": {"name": "create_notebook", "arguments": {"notebook_path": nb_path}},
        }
    )
    assert reply["result"]["content"][0]["text"] == (
        f"Successfully created new notebook at path: {nb_path}"
    )
    assert _load(nb_path)["cells"] == []


def test_server_instructions(tools):
    server = build_server(tools)
    reply = server.handle({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}})
    assert reply["result"]["instructions"] == (
        "A Jupyter notebook MCP server that works directly with .ipynb files"
    )