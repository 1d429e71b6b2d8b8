"""Helpers for rendering multi-line, aligned log blocks."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from textwrap import wrap
from typing import List, Union

WRAP_WIDTH = 100
MAX_LABEL_WIDTH = 20
INDENT = "    "

Fields = Union[Mapping[str, object], Sequence[tuple[str, object]]]


def _as_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, float):
        return f"{value:.1f}"
    if isinstance(value, (list, tuple, set, frozenset)):
        return ", ".join(_as_text(item) for item in value)
    return str(value)


def _wrapped(text: str, width: int) -> List[str]:
    lines: List[str] = []
    for raw in text.splitlines() or [""]:
        lines.extend(wrap(raw, width=width) or [""])
    return lines


class LogBlock:
    """Titled block of ``label: value`` rows and bulleted sections."""

    def __init__(self, title: str, *, pad_top: bool = True) -> None:
        self._lines: List[str] = [""] if pad_top else []
        self._lines.extend([title, "-" * len(title)])

    def fields(self, fields: Fields | None) -> "LogBlock":
        if not fields:
            return self
        rows = list(fields.items()) if isinstance(fields, Mapping) else list(fields)
        label_width = max(min(max(len(str(key)) for key, _ in rows), MAX_LABEL_WIDTH), 8)
        value_width = max(WRAP_WIDTH - len(INDENT) - label_width - 2, 32)
        for key, value in rows:
            first, *rest = _wrapped(_as_text(value), value_width)
            self._lines.append(f"{INDENT}{str(key):<{label_width}}: {first}")
            self._lines.extend(f"{INDENT}{'':<{label_width}}  {line}" for line in rest)
        return self

    def section(self, heading: str, items: Iterable[object], *, empty_label: str = "(none)") -> "LogBlock":
        if self._lines and self._lines[-1]:
            self._lines.append("")
        self._lines.append(f"{heading}:")
        entries = [item for item in items if item is not None]
        if not entries:
            self._lines.append(f"{INDENT}{empty_label}")
            return self
        width = max(WRAP_WIDTH - len(INDENT) - 2, 24)
        for entry in entries:
            first, *rest = _wrapped(_as_text(entry), width)
            self._lines.append(f"{INDENT}- {first}")
            self._lines.extend(f"{INDENT}  {line}" for line in rest)
        return self

    def render(self) -> str:
        return "\n".join(self._lines).rstrip()


def render_fields_block(title: str, fields: Fields, *, pad_top: bool = True) -> str:
    return LogBlock(title, pad_top=pad_top).fields(fields).render()


def render_section_block(
    title: str,
    sections: Sequence[tuple[str, Sequence[object]]],
    *,
    fields: Fields | None = None,
    pad_top: bool = True,
) -> str:
    block = LogBlock(title, pad_top=pad_top).fields(fields)
    for heading, items in sections:
        block.section(heading, items)
    return block.render()
