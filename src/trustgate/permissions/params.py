"""Typed accessors for tool parameter bags.

The dispatch pipeline hands over plain ``dict`` parameters. The models here
validate the fields each known tool needs; unknown fields are ignored.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class _ToolParams(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class WriteFileParams(_ToolParams):
    path: str
    content: str = ""


class EditFileParams(_ToolParams):
    path: str
    search: str
    replace: str = ""
    line_number: int | None = Field(default=None, ge=1)


class MoveFileParams(_ToolParams):
    source: str = Field(..., alias="from")
    destination: str = Field(..., alias="to")


class MultiFileReplaceParams(_ToolParams):
    files: list[str]
    search: str
    replace: str = ""


class RenameSymbolParams(_ToolParams):
    files: list[str]
    old_name: str
    new_name: str


class CommandParams(_ToolParams):
    command: str


class GitCommitParams(_ToolParams):
    message: str = ""


class GitAddParams(_ToolParams):
    files: list[str] = Field(default_factory=list)


PARAM_MODELS: dict[str, type[_ToolParams]] = {
    "write_file": WriteFileParams,
    "append_to_file": WriteFileParams,
    "edit_file": EditFileParams,
    "move_file": MoveFileParams,
    "multi_file_replace": MultiFileReplaceParams,
    "rename_symbol": RenameSymbolParams,
    "bash": CommandParams,
    "git_commit": GitCommitParams,
    "git_add": GitAddParams,
}


def parse_params(tool_name: str, params: Mapping[str, Any]) -> _ToolParams | None:
    """Validate ``params`` against the model registered for ``tool_name``.

    Returns:
        The parsed model, or None for unknown tools.

    Raises:
        pydantic.ValidationError: If the bag does not fit the tool's model.
    """
    model = PARAM_MODELS.get(tool_name)
    if model is None:
        return None
    return model.model_validate(dict(params))


def try_parse_params(tool_name: str, params: Mapping[str, Any]) -> _ToolParams | None:
    """Like parse_params but returns None instead of raising."""
    try:
        return parse_params(tool_name, params)
    except ValidationError:
        return None


def extract_files(params: Mapping[str, Any]) -> list[str]:
    """Collect the paths a parameter bag refers to, in a stable order."""
    files: list[str] = []
    for key in ("path", "from", "to"):
        value = params.get(key)
        if isinstance(value, str) and value:
            files.append(value)
    listed = params.get("files")
    if isinstance(listed, (list, tuple)):
        files.extend(str(item) for item in listed)
    return files
