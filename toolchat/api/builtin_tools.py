"""Built-in file tools: readFile, writeFile, deleteFile.

Paths are confined to the configured workspace directory. Every tool
reports failure through its returned text, so a bad path or a missing
file never aborts the turn.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from toolchat.api.models import ParameterSpec, Tool, ToolSpec
from toolchat.config import Settings

logger = logging.getLogger(__name__)

_MAX_FILE_SIZE = 1 * 1024 * 1024  # 1MB


def _validate_path(path_str: str, workspace_dir: str) -> Path:
    """Validate that a path is under workspace_dir.

    Raises ValueError if path escapes workspace.
    """
    workspace = Path(workspace_dir).resolve()
    target = (workspace / path_str).resolve() if not Path(path_str).is_absolute() else Path(path_str).resolve()

    if not target.is_relative_to(workspace):
        raise ValueError(
            f"Path '{path_str}' is outside workspace '{workspace_dir}'. "
            "Only paths within the workspace directory are allowed."
        )
    return target


# ---------------------------------------------------------------------------
# Tool handlers
# ---------------------------------------------------------------------------


async def read_file_tool(path: str, *, _workspace_dir: str = ".") -> str:
    """Read a UTF-8 text file from the workspace directory.

    Args:
        path: File path (relative to workspace or absolute within workspace)
        _workspace_dir: Internal param set by registration closure

    Returns:
        File contents, or a description of why it could not be read
    """
    try:
        target = _validate_path(path, _workspace_dir)

        if not target.is_file():
            return f"Error reading file at {path}: not a file or does not exist"

        file_size = target.stat().st_size
        if file_size > _MAX_FILE_SIZE:
            return (
                f"Error reading file at {path}: file too large "
                f"({file_size:,} bytes, limit {_MAX_FILE_SIZE:,} bytes)"
            )

        content = await asyncio.to_thread(target.read_text, encoding="utf-8", errors="replace")
        return content if content else "(empty file)"

    except ValueError as e:
        return str(e)
    except OSError as e:
        logger.warning("readFile failed for %s: %s", path, e)
        return f"Error reading file at {path}: {e}"


async def write_file_tool(path: str, content: str, *, _workspace_dir: str = ".") -> str:
    """Write content to a file in the workspace, creating parent directories."""
    try:
        target = _validate_path(path, _workspace_dir)
        await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(target.write_text, content, encoding="utf-8")
        return f"Successfully wrote to {path}"

    except ValueError as e:
        return str(e)
    except OSError as e:
        logger.warning("writeFile failed for %s: %s", path, e)
        return f"Error writing to file at {path}: {e}"


async def delete_file_tool(path: str, *, _workspace_dir: str = ".") -> str:
    try:
        target = _validate_path(path, _workspace_dir)
        await asyncio.to_thread(target.unlink)
        return f"Successfully deleted {path}"

    except ValueError as e:
        return str(e)
    except OSError as e:
        logger.warning("deleteFile failed for %s: %s", path, e)
        return f"Error deleting file at {path}: {e}"


# ---------------------------------------------------------------------------
# Tool specs
# ---------------------------------------------------------------------------

READ_FILE_SPEC = ToolSpec(
    name="readFile",
    description="Read a local file from disk",
    parameters={
        "path": ParameterSpec("string", "Path to the file to read"),
    },
)

WRITE_FILE_SPEC = ToolSpec(
    name="writeFile",
    description="Write content to a file on disk",
    parameters={
        "path": ParameterSpec("string", "Path to the file to write"),
        "content": ParameterSpec("string", "Content to write into the file"),
    },
)

DELETE_FILE_SPEC = ToolSpec(
    name="deleteFile",
    description="Delete a local file from disk",
    parameters={
        "path": ParameterSpec("string", "Path to the file to delete"),
    },
)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def create_builtin_tools(settings: Settings) -> list[Tool]:
    """Create the file tools with workspace_dir injected from settings."""
    workspace = settings.workspace_dir

    async def _read_file(path: str) -> str:
        return await read_file_tool(path, _workspace_dir=workspace)

    async def _write_file(path: str, content: str) -> str:
        return await write_file_tool(path, content, _workspace_dir=workspace)

    async def _delete_file(path: str) -> str:
        return await delete_file_tool(path, _workspace_dir=workspace)

    return [
        Tool(READ_FILE_SPEC, _read_file),
        Tool(WRITE_FILE_SPEC, _write_file),
        Tool(DELETE_FILE_SPEC, _delete_file),
    ]
