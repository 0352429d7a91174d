# mcpx

Three small Model Context Protocol (MCP) servers. Each one speaks
newline-delimited JSON-RPC 2.0 over standard input and output and offers
its features as MCP tools (`initialize`, `ping`, `tools/list`, `tools/call`).

- **mcpx-filesystem**: read, write, edit, list, search and move files. It
  works only inside the directories named on the command line.
- **mcpx-jupyter**: create `.ipynb` notebooks, append markdown and code cells,
  and run code cells with a Python interpreter and save their output.
- **mcpx-powershell**: run PowerShell commands, command sequences and script
  files, or start commands in the background and check on them later.

The package has no dependencies outside the standard library.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Filesystem server

Name one or more allowed directories. The server will not start without at
least one.

```
mcpx-filesystem /home/me/projects /tmp/scratch
```

A path is allowed when it sits under an allowed directory, comparing path
components. Paths are compared as written. They are not resolved, so
symbolic links and `..` are not followed first.

Tools:

- `read_file` and `read_multiple_files`. The second returns a JSON list. Each
  entry has a `path`, its `content` and an `error`.
- `write_file`. It creates any missing parent directories.
- `edit_file`. It applies each `old_text` → `new_text` replacement in order
  and returns a line-by-line diff. With `dry_run` set, it only reports the
  diff and leaves the file alone.
- `create_directory`. It also creates missing parents.
- `list_directory`. Each entry is marked `[DIR]` or `[FILE]`.
- `directory_tree`. It returns JSON objects with `name`, `type` and
  `children`.
- `move_file`. It refuses to overwrite an existing destination.
- `search_files`. It matches entry names case-insensitively by substring. It
  skips any path that contains one of the `exclude_patterns`.
- `get_file_info`. It returns size, times, type and read-only or read-write
  permissions as JSON.
- `list_allowed_directories`.

Failures come back to the client as text that begins with `Error: `.

## Jupyter server

```
mcpx-jupyter
```

Tools:

- `add_markdown_cell`
- `add_code_cell`
- `add_execute_code_cell`
- `read_notebook_content`
- `create_notebook`

When you add a cell to a notebook that does not exist yet, the server first
creates an empty nbformat 4.5 notebook, along with its parent directories.

`add_execute_code_cell` works like this:

- It runs the cell with `python -c`, in a new process each time.
- It stores standard output, and standard error prefixed with `Error: `, as
  stream outputs.
- It sets the cell's execution count to 1.

## PowerShell server

```
mcpx-powershell
mcpx-powershell --restricted --allow=Get-ChildItem --allow=Get-Date
```

Commands run as `powershell.exe -NoProfile -NonInteractive -Command ...`.

With `--restricted`:

- A command may run only if it contains one of the `--allow=` entries.
- In `execute_command_sequence`, every command must pass this check.
- Script files are refused.

Tools:

- `execute_command`
- `execute_command_sequence`. It joins the commands with `; ` and runs them
  in one session.
- `execute_script_file`. It accepts `.ps1` files.
- `start_background_process`
- `get_process_status`
- `get_process_output`
- `kill_process`
- `list_running_processes`

Finished commands are reported as JSON with `stdout`, `stderr`, `exit_code`
and `success`.

## Using the pieces from Python

Each server is built from a plain service object and a `ToolServer` from
`mcpx.rpc`:

```python
from mcpx.fs_server import FilesystemService, build_server

service = FilesystemService(["/tmp/scratch"])
print(service.list_directory("/tmp/scratch"))

server = build_server(service)
reply = server.handle({"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
```

Other building blocks:

- `mcpx.fs_tools`. The filesystem functions take an `AccessPolicy` and raise
  `AccessDenied` for paths outside it.
- `mcpx.ps_execute`. Holds `execute_command`, `execute_command_sequence` and
  `execute_script_file`.
- `mcpx.ps_process.ProcessRegistry`. Manages background processes.
- `mcpx.jupyter.JupyterTools`. The notebook tools.

`PowerShellService` and `ProcessRegistry` take a `shell` argument, so another
executable can stand in for `powershell.exe`. `JupyterTools` takes a `python`
argument that names the interpreter to use.

## What it does not do

- The servers offer tools only. They have no MCP resources or prompts, and
  their only transport is stdio.
- The Jupyter server does not talk to a Jupyter kernel. Each executed cell is
  a separate Python process, so no state carries over between cells.
- Background PowerShell processes are tracked in memory only. They are
  forgotten when the server exits.