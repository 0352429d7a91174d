"""Filesystem operations confined to a set of allowed directories."""

from __future__ import annotations

import json
import os
import stat
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Any, Iterable, Iterator, Mapping, Optional, Union


class AccessDenied(PermissionError):
    """Raised when a path lies outside every allowed directory."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class AccessPolicy:
    """Decides which paths may be touched."""

    def __init__(self, allowed_dirs: Iterable[str]) -> None:
        self.allowed_dirs = list(allowed_dirs)

    def is_path_allowed(self, path: str) -> bool:
        """True if ``path`` lies, component by component, under an allowed directory."""
        candidate = PurePath(path)
        return any(candidate.is_relative_to(PurePath(allowed)) for allowed in self.allowed_dirs)

    def check(self, path: str) -> None:
        """Raise :class:`AccessDenied` unless ``path`` is allowed."""
        if not self.is_path_allowed(path):
            raise AccessDenied(f"Access to path '{path}' is not allowed")


@dataclass(frozen=True)
class Edit:
    """Replace every occurrence of ``old_text`` with ``new_text``."""

    old_text: str
    new_text: str


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def _entry_name(path: str) -> str:
    name = PurePath(path).name
    return name if name not in ("", "..") else path


def _read_text(path: str) -> str:
    with open(path, encoding="utf-8", newline="") as handle:
        return handle.read()


def _write_text(path: str, content: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as handle:
        handle.write(content)


def _ensure_parent(path: str) -> None:
    parent = os.path.dirname(path)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)


def read_file(policy: AccessPolicy, path: str) -> str:
    """Return the whole text of a file."""
    policy.check(path)
    try:
        return _read_text(path)
    except (OSError, UnicodeDecodeError) as exc:
        raise OSError(f"Failed to read file '{path}': {exc}") from exc


def read_multiple_files(policy: AccessPolicy, paths: Iterable[str]) -> str:
    """Read several files; each result carries its own content or error, as JSON."""
    results = []
    for path in paths:
        if not policy.is_path_allowed(path):
            results.append(
                {"path": path, "content": None, "error": f"Access to path '{path}' is not allowed"}
            )
            continue
        try:
            results.append({"path": path, "content": _read_text(path), "error": None})
        except (OSError, UnicodeDecodeError) as exc:
            results.append({"path": path, "content": None, "error": f"Failed to read file: {exc}"})
    return _to_json(results)


def write_file(policy: AccessPolicy, path: str, content: str) -> str:
    """Create or overwrite a file, creating missing parent directories."""
    policy.check(path)
    _ensure_parent(path)
    _write_text(path, content)
    return f"Successfully wrote to file: {path}"


def _as_edit(edit: Union[Edit, Mapping[str, str]]) -> Edit:
    if isinstance(edit, Edit):
        return edit
    return Edit(old_text=edit["old_text"], new_text=edit["new_text"])


def edit_file(
    policy: AccessPolicy,
    path: str,
    edits: Iterable[Union[Edit, Mapping[str, str]]],
    dry_run: Optional[bool] = None,
) -> str:
    """Apply text replacements in order and describe the change line by line."""
    policy.check(path)
    original = _read_text(path)
    updated = original
    for edit in map(_as_edit, edits):
        updated = updated.replace(edit.old_text, edit.new_text)

    diff = generate_diff(original, updated)
    if dry_run:
        return f"Dry run - no changes made. Diff:\n{diff}"
    _write_text(path, updated)
    return f"File edited successfully: {path}\n\nChanges:\n{diff}"


def _lines(text: str) -> list[str]:
    if not text:
        return []
    parts = text.split("\n")
    last = parts.pop()
    lines = [part.removesuffix("\r") for part in parts]
    if last:
        lines.append(last)
    return lines


def generate_diff(original: str, modified: str) -> str:
    """Describe differing, added and removed lines with 1-based line numbers."""
    old_lines = _lines(original)
    new_lines = _lines(modified)
    chunks = [
        f"Line {number}: \n- {old}\n+ {new}\n"
        for number, (old, new) in enumerate(zip(old_lines, new_lines), start=1)
        if old != new
    ]
    common = min(len(old_lines), len(new_lines))
    chunks.extend(
        f"Line {number}: \n+ {line}\n"
        for number, line in enumerate(new_lines[common:], start=common + 1)
    )
    chunks.extend(
        f"Line {number}: \n- {line}\n"
        for number, line in enumerate(old_lines[common:], start=common + 1)
    )
    return "".join(chunks) or "No changes detected."


def create_directory(policy: AccessPolicy, path: str) -> str:
    """Create a directory and any missing parents; existing ones are fine."""
    policy.check(path)
    os.makedirs(path, exist_ok=True)
    return f"Directory created successfully: {path}"


def list_directory(policy: AccessPolicy, path: str) -> str:
    """List a directory's entries, each marked [DIR] or [FILE]."""
    policy.check(path)
    lines = [f"Contents of directory: {path}\n"]
    with os.scandir(path) as entries:
        for entry in entries:
            prefix = "[DIR]" if entry.is_dir(follow_symlinks=False) else "[FILE]"
            lines.append(f"{prefix} {entry.name}\n")
    return "".join(lines)


def _build_tree(policy: AccessPolicy, path: str) -> dict:
    name = _entry_name(path)
    policy.check(path)
    if not os.path.isdir(path):
        os.stat(path)
        return {"name": name, "type": "file"}
    children = []
    with os.scandir(path) as entries:
        for entry in entries:
            child_path = os.path.join(path, entry.name)
            try:
                children.append(_build_tree(policy, child_path))
            except OSError as exc:
                print(f"Error processing {child_path}: {exc}", file=sys.stderr)
    return {"name": name, "type": "directory", "children": children}


def directory_tree(policy: AccessPolicy, path: str) -> str:
    """Return a recursive JSON tree of names and types below ``path``."""
    policy.check(path)
    return _to_json(_build_tree(policy, path))


def move_file(policy: AccessPolicy, source: str, destination: str) -> str:
    """Move or rename without overwriting an existing destination."""
    if not policy.is_path_allowed(source):
        raise AccessDenied(f"Access to source path '{source}' is not allowed")
    if not policy.is_path_allowed(destination):
        raise AccessDenied(f"Access to destination path '{destination}' is not allowed")
    if os.path.exists(destination):
        raise FileExistsError(f"Destination already exists: {destination}")
    _ensure_parent(destination)
    os.rename(source, destination)
    return f"Successfully moved '{source}' to '{destination}'"


def _walk_children(directory: str) -> Iterator[tuple[str, str]]:
    try:
        with os.scandir(directory) as iterator:
            entries = list(iterator)
    except OSError:
        return
    for entry in entries:
        path = os.path.join(directory, entry.name)
        yield path, entry.name
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
        except OSError:
            is_dir = False
        if is_dir:
            yield from _walk_children(path)


def _walk(root: str) -> Iterator[tuple[str, str]]:
    if not os.path.exists(root):
        return
    yield root, _entry_name(root)
    if os.path.isdir(root):
        yield from _walk_children(root)


def search_files(
    policy: AccessPolicy,
    path: str,
    pattern: str,
    exclude_patterns: Optional[Iterable[str]] = None,
) -> str:
    """Find entries whose name contains ``pattern``, ignoring case; JSON list of paths."""
    policy.check(path)
    needle = pattern.lower()
    excludes = list(exclude_patterns or [])
    matches = [
        entry_path
        for entry_path, name in _walk(path)
        if not any(exclude in entry_path for exclude in excludes) and needle in name.lower()
    ]
    return _to_json(matches)


def _timestamp(seconds: Optional[float]) -> Optional[str]:
    if seconds is None:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()


def get_file_info(policy: AccessPolicy, path: str) -> str:
    """Return size, times, type and permissions of a path as JSON."""
    policy.check(path)
    info = os.stat(path)
    return _to_json(
        {
            "path": path,
            "name": _entry_name(path),
            "is_file": stat.S_ISREG(info.st_mode),
            "is_dir": stat.S_ISDIR(info.st_mode),
            "size_bytes": info.st_size,
            "created": _timestamp(getattr(info, "st_birthtime", None)),
            "modified": _timestamp(info.st_mtime),
            "accessed": _timestamp(info.st_atime),
            "permissions": "read-write" if info.st_mode & 0o222 else "read-only",
        }
    )