"""
默认本地工具

The ten tools the proxy can run itself in proxy-exec mode. Handlers take the
argument dict and return the text fed back to the agent; failures are raised
and turned into ExecutionResult errors by LocalExecutor.

Nothing here goes through a shell except `bash` itself: grep and glob walk
the filesystem in-process so patterns cannot inject commands. Filesystem
handlers run in a worker thread (asyncio.to_thread) and `bash` is an asyncio
subprocess, so no tool blocks the event loop.
"""

import asyncio
import fnmatch
import functools
import json
import os
import re
import shutil
import stat as stat_module
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List

from .registry import ToolRegistry
from .types import ToolDefinition, ToolHandler

__all__ = [
    "register_default_tools",
    "get_default_tool_names",
    "DEFAULT_BASH_TIMEOUT_MS",
    "MAX_GLOB_RESULTS",
]

DEFAULT_BASH_TIMEOUT_MS = 30000
MAX_GLOB_RESULTS = 50
MAX_GREP_MATCHES = 500

_DEFAULT_TOOL_NAMES = ["bash", "read", "write", "edit", "grep", "ls", "mkdir", "rm", "stat", "glob"]


def _require_str(args: Dict[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value:
        raise ValueError(f"Missing required argument: {key}")
    return value


def _optional_int(args: Dict[str, Any], key: str):
    value = args.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Argument {key} must be a number")
    return int(value)


# ==================== Handlers ====================

def _blocking(func: Callable[[Dict[str, Any]], str]) -> ToolHandler:
    """Run a filesystem handler in a worker thread so the event loop keeps serving."""
    @functools.wraps(func)
    async def wrapper(args: Dict[str, Any]) -> str:
        return await asyncio.to_thread(func, args)

    return wrapper


async def _bash(args: Dict[str, Any]) -> str:
    command = _require_str(args, "command")
    timeout_ms = _optional_int(args, "timeout") or DEFAULT_BASH_TIMEOUT_MS
    cwd = args.get("cwd") if isinstance(args.get("cwd"), str) else None

    process = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout_ms / 1000)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise TimeoutError(f"Command timed out after {timeout_ms}ms: {command}")

    out = stdout.decode("utf-8", errors="replace")
    err = stderr.decode("utf-8", errors="replace")
    if process.returncode != 0:
        raise RuntimeError(f"Command failed with exit code {process.returncode}: {err or out}".rstrip())
    return out or err or "Command executed successfully"


@_blocking
def _read(args: Dict[str, Any]) -> str:
    path = _require_str(args, "path")
    offset = _optional_int(args, "offset")
    limit = _optional_int(args, "limit")

    content = Path(path).read_text(encoding="utf-8")
    if offset is None and limit is None:
        return content

    lines = content.split("\n")
    start = offset or 0
    end = start + limit if limit else len(lines)
    return "\n".join(lines[start:end])


@_blocking
def _write(args: Dict[str, Any]) -> str:
    path = _require_str(args, "path")
    content = args.get("content")
    if not isinstance(content, str):
        raise ValueError("Missing required argument: content")

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
    return f"File written successfully: {path}"


@_blocking
def _edit(args: Dict[str, Any]) -> str:
    path = _require_str(args, "path")
    old_string = args.get("old_string")
    new_string = args.get("new_string")
    if not isinstance(old_string, str) or not isinstance(new_string, str):
        raise ValueError("Missing required argument: old_string / new_string")

    target = Path(path)
    if not target.exists():
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(new_string, encoding="utf-8")
        return f"Created and wrote content: {path}"

    content = target.read_text(encoding="utf-8")
    if old_string not in content:
        raise ValueError(f"Could not find the text to replace in {path}")

    target.write_text(content.replace(old_string, new_string, 1), encoding="utf-8")
    return f"File edited successfully: {path}"


def _grep_files(root: Path, include: str) -> List[Path]:
    if root.is_file():
        return [root]
    files = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in sorted(filenames):
            if include and not fnmatch.fnmatch(filename, include):
                continue
            files.append(Path(dirpath) / filename)
    return files


@_blocking
def _grep(args: Dict[str, Any]) -> str:
    pattern = _require_str(args, "pattern")
    path = _require_str(args, "path")
    include = args.get("include") if isinstance(args.get("include"), str) else ""

    try:
        regex = re.compile(pattern)
    except re.error:
        regex = re.compile(re.escape(pattern))

    root = Path(path)
    if not root.exists():
        raise FileNotFoundError(f"No such file or directory: {path}")

    matches: List[str] = []
    for file_path in _grep_files(root, include):
        try:
            with open(file_path, "r", encoding="utf-8", errors="ignore") as f:
                for line_no, line in enumerate(f, start=1):
                    if regex.search(line):
                        matches.append(f"{file_path}:{line_no}:{line.rstrip()}")
                        if len(matches) >= MAX_GREP_MATCHES:
                            return "\n".join(matches)
        except OSError:
            # unreadable entries are skipped, like grep -s
            continue

    return "\n".join(matches) or "No matches found"


@_blocking
def _ls(args: Dict[str, Any]) -> str:
    path = _require_str(args, "path")
    lines = []
    with os.scandir(path) as entries:
        for entry in sorted(entries, key=lambda e: e.name):
            if entry.is_symlink():
                kind = "l"
            elif entry.is_dir():
                kind = "d"
            elif entry.is_file():
                kind = "f"
            else:
                kind = "?"
            lines.append(f"[{kind}] {entry.name}")
    return "\n".join(lines) or "Empty directory"


@_blocking
def _mkdir(args: Dict[str, Any]) -> str:
    path = _require_str(args, "path")
    Path(path).mkdir(parents=True, exist_ok=True)
    return f"Created directory: {path}"


@_blocking
def _rm(args: Dict[str, Any]) -> str:
    path = _require_str(args, "path")
    force = args.get("force") is True
    target = Path(path)

    if target.is_dir() and not target.is_symlink():
        if not force:
            raise IsADirectoryError(f"Path is a directory, use force=true to delete: {path}")
        shutil.rmtree(target)
    else:
        target.unlink()
    return f"Deleted: {path}"


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


@_blocking
def _stat(args: Dict[str, Any]) -> str:
    path = _require_str(args, "path")
    info = os.stat(path, follow_symlinks=False)

    if stat_module.S_ISDIR(info.st_mode):
        kind = "directory"
    elif stat_module.S_ISLNK(info.st_mode):
        kind = "symlink"
    elif stat_module.S_ISREG(info.st_mode):
        kind = "file"
    else:
        kind = "other"

    created = getattr(info, "st_birthtime", info.st_ctime)
    return json.dumps({
        "type": kind,
        "size": info.st_size,
        "modified": _iso(info.st_mtime),
        "created": _iso(created),
        "mode": oct(stat_module.S_IMODE(info.st_mode)),
    }, indent=2)


@_blocking
def _glob(args: Dict[str, Any]) -> str:
    pattern = _require_str(args, "pattern")
    base = Path(args.get("path") if isinstance(args.get("path"), str) and args.get("path") else ".")
    if not base.is_dir():
        raise NotADirectoryError(f"Not a directory: {base}")

    # bare names ("*.py") match at any depth
    search = pattern if "/" in pattern or "**" in pattern else f"**/{pattern}"
    results = []
    for match in sorted(base.glob(search)):
        if match.is_file():
            results.append(str(match))
            if len(results) >= MAX_GLOB_RESULTS:
                break
    return "\n".join(results) or "No files found"


# ==================== Registration ====================

def _schema(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


def _string(description: str) -> Dict[str, str]:
    return {"type": "string", "description": description}


def _number(description: str) -> Dict[str, str]:
    return {"type": "number", "description": description}


_DEFAULT_TOOLS = [
    (
        "bash",
        "Execute a shell command",
        _schema({
            "command": _string("The shell command to execute"),
            "timeout": _number(f"Timeout in milliseconds (default: {DEFAULT_BASH_TIMEOUT_MS})"),
            "cwd": _string("Working directory for the command"),
        }, ["command"]),
        _bash,
    ),
    (
        "read",
        "Read the contents of a file",
        _schema({
            "path": _string("Absolute path to the file to read"),
            "offset": _number("Line number to start reading from (0-based)"),
            "limit": _number("Maximum number of lines to read"),
        }, ["path"]),
        _read,
    ),
    (
        "write",
        "Write content to a file (creates or overwrites)",
        _schema({
            "path": _string("Absolute path to the file to write"),
            "content": _string("Content to write to the file"),
        }, ["path", "content"]),
        _write,
    ),
    (
        "edit",
        "Edit a file by replacing the first occurrence of old text with new text",
        _schema({
            "path": _string("Absolute path to the file to edit"),
            "old_string": _string("The text to replace"),
            "new_string": _string("The replacement text"),
        }, ["path", "old_string", "new_string"]),
        _edit,
    ),
    (
        "grep",
        "Search for a regex pattern in files",
        _schema({
            "pattern": _string("The search pattern (regex supported)"),
            "path": _string("Directory or file to search in"),
            "include": _string("File pattern to include (e.g., '*.py')"),
        }, ["pattern", "path"]),
        _grep,
    ),
    (
        "ls",
        "List directory contents",
        _schema({"path": _string("Absolute path to the directory")}, ["path"]),
        _ls,
    ),
    (
        "mkdir",
        "Create a directory (including parents)",
        _schema({"path": _string("Directory to create")}, ["path"]),
        _mkdir,
    ),
    (
        "rm",
        "Delete a file, or a directory when force is true",
        _schema({
            "path": _string("Path to delete"),
            "force": {"type": "boolean", "description": "Required to delete directories"},
        }, ["path"]),
        _rm,
    ),
    (
        "stat",
        "Show file metadata as JSON",
        _schema({"path": _string("Path to inspect")}, ["path"]),
        _stat,
    ),
    (
        "glob",
        "Find files matching a glob pattern",
        _schema({
            "pattern": _string("Glob pattern (e.g., '**/*.py')"),
            "path": _string("Directory to search in (default: current directory)"),
        }, ["pattern"]),
        _glob,
    ),
]


def register_default_tools(registry: ToolRegistry) -> None:
    """注册全部默认本地工具"""
    for name, description, parameters, handler in _DEFAULT_TOOLS:
        registry.register(
            ToolDefinition(
                id=name,
                name=name,
                description=description,
                parameters=parameters,
                source="local",
            ),
            handler,
        )


def get_default_tool_names() -> List[str]:
    return list(_DEFAULT_TOOL_NAMES)
