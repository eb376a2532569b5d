"""Best-effort previews of pending changes.

Previews exist to inform the human at the approval prompt. They never gate
a decision: any failure to build one yields ``None`` and the caller carries
on without it.

The line comparison is positional, not a minimal edit script. Both line
sequences are walked by index and every index whose content differs is
reported.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, Protocol, Union

from pydantic import BaseModel, Field, ValidationError

from trustgate.permissions.params import (
    CommandParams,
    EditFileParams,
    MultiFileReplaceParams,
    RenameSymbolParams,
    WriteFileParams,
    parse_params,
)

logger = logging.getLogger(__name__)

# Context window around the changed region
CONTEXT_BEFORE = 2
CONTEXT_AFTER = 3


class Filesystem(Protocol):
    """Read-only view of the workspace, pre-scoped by the caller."""

    def exists(self, path: str) -> bool: ...

    def read_file(self, path: str) -> bytes: ...


class LocalFilesystem:
    """Filesystem collaborator backed by the local disk.

    Relative paths resolve against ``root``. No containment checks are made
    here; the caller scopes paths to the workspace.
    """

    def __init__(self, root: str | Path = "."):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        target = Path(path)
        if not target.is_absolute():
            target = self.root / target
        return target

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def read_file(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()


class ChangeType(str, Enum):
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"
    RENAME = "rename"


class LineEntry(BaseModel):
    line_number: int = Field(..., ge=1, description="1-indexed line number")
    content: str


class PreviewLines(BaseModel):
    before: list[LineEntry] = Field(default_factory=list, description="Lines removed")
    after: list[LineEntry] = Field(default_factory=list, description="Lines added")
    context_start: int = Field(1, description="First line of the context window")
    context_end: int = Field(0, description="Last line of the context window")


class FileChange(BaseModel):
    file: str
    change_type: ChangeType = ChangeType.MODIFY
    before_content: str | None = None
    after_content: str | None = None
    preview_lines: PreviewLines | None = None


class FileChangePreview(BaseModel):
    type: Literal["file_change"] = "file_change"
    changes: list[FileChange] = Field(default_factory=list)


class FileCreatePreview(BaseModel):
    type: Literal["file_create"] = "file_create"
    file: str = ""
    new_content: str = ""


class CommandPreview(BaseModel):
    type: Literal["command"] = "command"
    command: str


class MultiFilePreview(BaseModel):
    type: Literal["multi_file"] = "multi_file"
    changes: list[FileChange] = Field(default_factory=list)


Preview = Annotated[
    Union[FileChangePreview, FileCreatePreview, CommandPreview, MultiFilePreview],
    Field(discriminator="type"),
]


def compute_line_diff(before_lines: list[str], after_lines: list[str]) -> PreviewLines:
    """Positional single-pass comparison of two line sequences."""
    max_length = max(len(before_lines), len(after_lines))
    removed: list[LineEntry] = []
    added: list[LineEntry] = []
    first_index: int | None = None
    last_index: int | None = None

    for i in range(max_length):
        before_line = before_lines[i] if i < len(before_lines) else ""
        after_line = after_lines[i] if i < len(after_lines) else ""
        if before_line == after_line:
            continue

        if i < len(before_lines):
            removed.append(LineEntry(line_number=i + 1, content=before_line))
        if i < len(after_lines):
            added.append(LineEntry(line_number=i + 1, content=after_line))
        if first_index is None:
            first_index = i
        last_index = i

    if first_index is not None:
        return PreviewLines(
            before=removed,
            after=added,
            context_start=max(1, first_index + 1 - CONTEXT_BEFORE),
            context_end=min(max_length, last_index + 1 + CONTEXT_AFTER),
        )

    # Only missing-vs-empty lines differ (e.g. a trailing newline)
    if before_lines != after_lines:
        for i in range(max_length):
            before_line = before_lines[i] if i < len(before_lines) else None
            after_line = after_lines[i] if i < len(after_lines) else None
            if before_line != after_line:
                return PreviewLines(
                    before=[LineEntry(line_number=i + 1, content=before_line or "")],
                    after=[LineEntry(line_number=i + 1, content=after_line or "")],
                    context_start=max(1, i),
                    context_end=min(max_length, i + 3),
                )

    return PreviewLines(context_start=1, context_end=max_length)


def build_file_change(
    file_path: str,
    before_content: str,
    after_content: str,
    change_type: ChangeType = ChangeType.MODIFY,
) -> FileChange:
    return FileChange(
        file=file_path,
        change_type=change_type,
        before_content=before_content,
        after_content=after_content,
        preview_lines=compute_line_diff(before_content.split("\n"), after_content.split("\n")),
    )


def _read_text(filesystem: Filesystem, path: str) -> str:
    return filesystem.read_file(path).decode("utf-8")


def _preview_write(params: WriteFileParams, filesystem: Filesystem) -> FileChangePreview | FileCreatePreview:
    if not filesystem.exists(params.path):
        return FileCreatePreview(file=params.path, new_content=params.content)
    old_content = _read_text(filesystem, params.path)
    return FileChangePreview(changes=[build_file_change(params.path, old_content, params.content)])


def _preview_append(params: WriteFileParams, filesystem: Filesystem) -> FileChangePreview | FileCreatePreview:
    if not filesystem.exists(params.path):
        return FileCreatePreview(file=params.path, new_content=params.content)
    old_content = _read_text(filesystem, params.path)
    return FileChangePreview(
        changes=[build_file_change(params.path, old_content, old_content + params.content)]
    )


def _preview_edit(params: EditFileParams, filesystem: Filesystem) -> FileChangePreview:
    if not filesystem.exists(params.path):
        return FileChangePreview(changes=[])

    original = _read_text(filesystem, params.path)
    if params.line_number is not None:
        lines = original.split("\n")
        if params.line_number <= len(lines):
            index = params.line_number - 1
            lines[index] = lines[index].replace(params.search, params.replace, 1)
        updated = "\n".join(lines)
    else:
        updated = original.replace(params.search, params.replace)

    return FileChangePreview(changes=[build_file_change(params.path, original, updated)])


def _preview_multi_file(
    files: list[str],
    pattern: re.Pattern[str],
    replacement: str,
    filesystem: Filesystem,
) -> MultiFilePreview:
    changes = []
    for file_path in files:
        if not filesystem.exists(file_path):
            continue
        original = _read_text(filesystem, file_path)
        updated = pattern.sub(lambda _match: replacement, original)
        if updated != original:
            changes.append(build_file_change(file_path, original, updated))
    return MultiFilePreview(changes=changes)


def _dispatch(tool_name: str, params: dict, filesystem: Filesystem):
    parsed = parse_params(tool_name, params)

    if isinstance(parsed, CommandParams):
        return CommandPreview(command=parsed.command)
    if tool_name == "write_file":
        return _preview_write(parsed, filesystem)
    if tool_name == "append_to_file":
        return _preview_append(parsed, filesystem)
    if isinstance(parsed, EditFileParams):
        return _preview_edit(parsed, filesystem)
    if isinstance(parsed, MultiFileReplaceParams):
        pattern = re.compile(re.escape(parsed.search))
        return _preview_multi_file(parsed.files, pattern, parsed.replace, filesystem)
    if isinstance(parsed, RenameSymbolParams):
        pattern = re.compile(rf"\b{re.escape(parsed.old_name)}\b")
        return _preview_multi_file(parsed.files, pattern, parsed.new_name, filesystem)
    return None


def generate_preview(tool_name: str, params: dict, filesystem: Filesystem) -> Preview | None:
    """Build a preview of what ``tool_name`` would change.

    Args:
        tool_name: Tool about to run.
        params: Raw parameter bag for the tool.
        filesystem: Workspace view used to read current file content.

    Returns:
        A preview, or None when the tool has no preview or one could not
        be built.
    """
    try:
        return _dispatch(tool_name, params, filesystem)
    except ValidationError as e:
        logger.debug(f"No preview for {tool_name}: parameters did not validate ({e.error_count()} errors)")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Preview generation failed for {tool_name}: {e}")
    except Exception as e:
        logger.warning(f"Preview generation failed for {tool_name}: {type(e).__name__}: {e}")
    return None
