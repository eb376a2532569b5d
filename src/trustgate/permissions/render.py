"""Rich markup rendering for approval prompts and previews."""

from __future__ import annotations

from rich.markup import escape

from trustgate.permissions.policy import RiskLevel
from trustgate.permissions.preview import (
    ChangeType,
    CommandPreview,
    FileChange,
    FileChangePreview,
    FileCreatePreview,
    MultiFilePreview,
)

# Display limits
MAX_CHANGED_LINES = 5
MAX_CREATE_LINES = 25
MAX_MULTI_FILES = 3

RISK_STYLES = {
    RiskLevel.LOW: "green",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.HIGH: "bold red",
}


def render_risk(risk: RiskLevel) -> str:
    style = RISK_STYLES[risk]
    return f"[{style}]{risk.value.upper()}[/{style}]"


def _render_change(change: FileChange, max_lines: int = MAX_CHANGED_LINES) -> list[str]:
    lines = [f"[cyan]{escape(change.file)}[/cyan] [magenta]({change.change_type.value})[/magenta]"]
    preview_lines = change.preview_lines
    if preview_lines is None:
        return lines
    if not preview_lines.before and not preview_lines.after:
        lines.append("[dim]  no changes[/dim]")
        return lines

    lines.append(f"[dim]Lines {preview_lines.context_start}-{preview_lines.context_end}:[/dim]")
    for entry in preview_lines.before[:max_lines]:
        lines.append(f"[red]- {entry.line_number}: {escape(entry.content)}[/red]")
    for entry in preview_lines.after[:max_lines]:
        lines.append(f"[green]+ {entry.line_number}: {escape(entry.content)}[/green]")

    hidden = max(len(preview_lines.before), len(preview_lines.after)) - max_lines
    if hidden > 0:
        lines.append(f"[dim]... and {hidden} more lines[/dim]")
    return lines


def _render_create(preview: FileCreatePreview) -> list[str]:
    title = f"New file {escape(preview.file)}:" if preview.file else "New file content:"
    lines = [f"[green]{title}[/green]"]
    content_lines = preview.new_content.split("\n")
    for number, line in enumerate(content_lines[:MAX_CREATE_LINES], start=1):
        lines.append(f"[green]{number:>3}│ + {escape(line)}[/green]")
    if len(content_lines) > MAX_CREATE_LINES:
        lines.append(f"[dim]  ...and {len(content_lines) - MAX_CREATE_LINES} more lines[/dim]")
    return lines


def _render_multi(preview: MultiFilePreview) -> list[str]:
    lines = [f"[cyan]{len(preview.changes)} files will be modified:[/cyan]"]
    for change in preview.changes[:MAX_MULTI_FILES]:
        lines.extend("  " + line for line in _render_change(change, max_lines=3))
    if len(preview.changes) > MAX_MULTI_FILES:
        lines.append(f"[dim]  ... and {len(preview.changes) - MAX_MULTI_FILES} more files[/dim]")
    return lines


def render_preview(preview) -> list[str]:
    """Render a preview as a list of rich markup lines."""
    if isinstance(preview, CommandPreview):
        return ["[yellow]Command to execute:[/yellow]", f"[yellow]$ {escape(preview.command)}[/yellow]"]
    if isinstance(preview, FileCreatePreview):
        return _render_create(preview)
    if isinstance(preview, MultiFilePreview):
        return _render_multi(preview)
    if isinstance(preview, FileChangePreview):
        if not preview.changes:
            return ["[dim]No matching content to change[/dim]"]
        lines = []
        for change in preview.changes:
            if change.change_type == ChangeType.CREATE:
                lines.extend(_render_create(FileCreatePreview(file=change.file, new_content=change.after_content or "")))
            else:
                lines.extend(_render_change(change))
        return lines
    return [f"[dim]Preview type: {escape(type(preview).__name__)}[/dim]"]


def render_request_header(request) -> list[str]:
    """Render the operation summary shown above the choices."""
    lines = ["", "[bold yellow]Approval required[/bold yellow]"]
    lines.append(f"Operation: {escape(request.operation)}")
    if request.description and request.description != request.operation:
        lines.append(f"[dim]Description:[/dim] {escape(request.description)}")
    lines.append(f"[dim]Risk:[/dim] {render_risk(request.risk)}")
    if request.command:
        lines.append(f"[dim]Command:[/dim] {escape(request.command)}")
    if request.files:
        lines.append(f"[dim]Files:[/dim] {escape(', '.join(request.files))}")
    return lines


def render_menu(labels: list[str], selected: int) -> list[str]:
    """Render the choice list with the selected entry highlighted."""
    lines = ["[dim]Select an option (↑/↓ or 1-4, Enter to confirm, Esc to cancel):[/dim]"]
    for index, label in enumerate(labels):
        text = f"{index + 1}. {escape(label)}"
        if index == selected:
            lines.append(f"[cyan]▸ {text}[/cyan]")
        else:
            lines.append(f"[dim]  {text}[/dim]")
    return lines
