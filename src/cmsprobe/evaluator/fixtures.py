"""Markdown documents committed by the scenarios."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable


def render_document(title: str, front_matter: Dict[str, str], body: Iterable[str]) -> str:
    """Render a front-matter markdown page the CMS can index."""
    created = datetime.now(timezone.utc).isoformat()
    header = [f"title: {title}", *(f"{key}: {value}" for key, value in front_matter.items()), f"created: {created}"]
    lines = ["---", *header, "---", "", f"# {title}", "", *body, ""]
    return "\n".join(lines)


def preview(text: str, width: int = 50) -> str:
    """First front-matter line of a document, truncated for logs."""
    lines = text.splitlines()
    line = lines[1] if len(lines) > 1 else (lines[0] if lines else "")
    return line[:width]
