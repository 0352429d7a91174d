import io
import json
import os
import sys

import pytest

from mcpx.fs_server import INSTRUCTIONS, FilesystemService, build_server, main


@pytest.fixture
def service(tmp_path):
    return FilesystemService([str(tmp_path)])


def test_write_then_read_round_trip(service, tmp_path):
    path = str(tmp_path / "sub" / "note.txt")
    assert service.write_file(path, "hello\nworld\n") == f"Successfully wrote to file: {path}"
    assert service.read_file(path) == "hello\nworld\n"


def test_read_outside_allowed_reports_error(service, tmp_path):
    outside = str(tmp_path.parent / "elsewhere.txt")
    assert service.read_file(outside) == f"Error: Access to path '{outside}' is not allowed"


def test_read_missing_file_reports_error(service, tmp_path):
    path = str(tmp_path / "missing.txt")
    result = service.read_file(path)
    assert result.startswith(f"Error: Failed to read file '{path}'")


def test_read_multiple_files(service, tmp_path):
    good = str(tmp_path / "a.txt")
    service.write_file(good, "alpha")
    outside = str(tmp_path.parent / "x.txt")
    results = json.loads(service.read_multiple_files([good, outside]))
    assert results[0] == {"path": good, "content": "alpha", "error": None}
    assert results[1]["content"] is None
    assert results[1]["error"] == f"Access to path '{outside}' is not allowed"


def test_edit_file_dry_run_leaves_file(service, tmp_path):
    path = str(tmp_path / "e.txt")
    service.write_file(path, "one\ntwo\n")
    result = service.edit_file(path, [{"old_text": "two", "new_text": "three"}], True)
    assert result.startswith("Dry run - no changes made. Diff:\n")
    assert "- two\n+ three" in result
    assert service.read_file(path) == "one\ntwo\n"


def test_edit_file_applies(service, tmp_path):
    path = str(tmp_path / "e.txt")
    service.write_file(path, "one\ntwo\n")
    result = service.edit_file(path, [{"old_text": "one", "new_text": "uno"}])
    assert result.startswith(f"File edited successfully: {path}")
    assert service.read_file(path) == "uno\ntwo\n"


def test_directory_operations(service, tmp_path):
    nested = str(tmp_path / "d1" / "d2")
    assert service.create_directory(nested) == f"Directory created successfully: {nested}"
    assert os.path.isdir(nested)
    service.write_file(str(tmp_path / "d1" / "f.txt"), "x")
    listing = service.list_directory(str(tmp_path / "d1"))
    assert "[DIR] d2\n" in listing
    assert "[FILE] f.txt\n" in listing
    tree = json.loads(service.directory_tree(str(tmp_path / "d1")))
    assert tree["name"] == "d1"
    assert tree["type"] == "directory"
    names = sorted(child["name"] for child in tree["children"])
    assert names == ["d2", "f.txt"]


def test_move_file_and_existing_destination(service, tmp_path):
    src = str(tmp_path / "a.txt")
    dst = str(tmp_path / "moved" / "b.txt")
    service.write_file(src, "data")
    assert service.move_file(src, dst) == f"Successfully moved '{src}' to '{dst}'"
    assert service.read_file(dst) == "data"
    other = str(tmp_path / "c.txt")
    service.write_file(other, "more")
    assert service.move_file(other, dst) == f"Error: Destination already exists: {dst}"


def test_search_files(service, tmp_path):
    service.write_file(str(tmp_path / "Report.TXT"), "")
    service.write_file(str(tmp_path / "skip" / "report2.txt"), "")
    found = json.loads(service.search_files(str(tmp_path), "report", ["skip"]))
    assert found == [str(tmp_path / "Report.TXT")]


def test_get_file_info(service, tmp_path):
    path = str(tmp_path / "info.txt")
    service.write_file(path, "12345")
    info = json.loads(service.get_file_info(path))
    assert info["name"] == "info.txt"
    assert info["is_file"] is True
    assert info["is_dir"] is False
    assert info["size_bytes"] == 5


def test_list_allowed_directories(tmp_path):
    dirs = [str(tmp_path / "a"), str(tmp_path / "b")]
    assert json.loads(FilesystemService(dirs).list_allowed_directories()) == dirs


def test_build_server_lists_tools(service):
    server = build_server(service)
    response = server.handle({"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
    names = {tool["name"] for tool in response["result"]["tools"]}
    assert names == {
        "read_file",
        "read_multiple_files",
        "write_file",
        "edit_file",
        "create_directory",
        "list_directory",
        "directory_tree",
        "move_file",
        "search_files",
        "get_file_info",
        "list_allowed_directories",
    }


def test_build_server_initialize_has_instructions(service):
    server = build_server(service)
    response = server.handle({"jsonrpc": "2.0", "id": 2, "method": "initialize", "params": {}})
    assert response["result"]["instructions"] == INSTRUCTIONS


def test_build_server_call_tool(service, tmp_path):
    server = build_server(service)
    path = str(tmp_path / "rpc.txt")
    service.write_file(path, "via rpc")
    response = server.handle(
        {
            "jsonrpc": "2.0",
            "id": 3,
            "method": "tools/call",
            "params": {"name": "read_file", "arguments": {"path": path}},
        }
    )
    assert response["result"]["content"][0]["text"] == "via rpc"


def test_main_without_directories_exits(monkeypatch):
    with pytest.raises(SystemExit) as excinfo:
        main([])
    assert excinfo.value.code == 1


def test_main_serves_stdio(monkeypatch, tmp_path):
    request = {
        "jsonrpc": "2.0",
        "id": 7,
        "method": "tools/call",
        "params": {"name": "list_allowed_directories", "arguments": {}},
    }
    out = io.StringIO()
    monkeypatch.setattr(sys, "stdin", io.StringIO(json.dumps(request) + "\n"))
    monkeypatch.setattr(sys, "stdout", out)
    assert main([str(tmp_path)]) == 0
    response = json.loads(out.getvalue().strip())
    assert response["id"] == 7
    assert json.loads(response["result"]["content"][0]["text"]) == [str(tmp_path)]