"""Line-style preservation when splicing replacement text into a template.

The first non-blank line of the existing section body decides the style of
the new lines: a bullet marker, a numbered prefix (renumbered from the
original start), or plain indentation. Bodies with several non-blank lines get
one sentence per line; single-line bodies stay single-line.
"""

import re

from sonoscribe.composer.sections import normalize_whitespace

_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+(?=[A-Z0-9(])")
_BULLET_LINE = re.compile(r"^(\s*)([-*•]\s+).*")
_NUMBERED_LINE = re.compile(r"^(\s*)(\d+)([.)]\s+).*")
_INDENT = re.compile(r"^(\s*)")
_LINE_BREAK = re.compile(r"(\r?\n)")


def split_sentences(text: str) -> list[str]:
    return [s for s in (normalize_whitespace(p) for p in _SENTENCE_BREAK.split(text)) if s]


def split_replacement_lines(text: str, prefer_multiple_lines: bool) -> list[str]:
    trimmed = (text or "").strip()
    if not trimmed:
        return []

    explicit = [line for line in (normalize_whitespace(l) for l in re.split(r"\r?\n", trimmed)) if line]
    if len(explicit) > 1:
        return explicit

    single = explicit[0] if explicit else normalize_whitespace(trimmed)
    if not prefer_multiple_lines:
        return [single]
    return split_sentences(single)


def apply_existing_line_style(existing_body: list[str], replacement_text: str) -> list[str]:
    non_blank = [line for line in existing_body if line.strip()]
    lines = split_replacement_lines(replacement_text, prefer_multiple_lines=len(non_blank) > 1)
    if not lines or not non_blank:
        return lines

    sample = non_blank[0]

    bullet = _BULLET_LINE.match(sample)
    if bullet:
        indent, marker = bullet.group(1), bullet.group(2)
        return [f"{indent}{marker}{line}" for line in lines]

    numbered = _NUMBERED_LINE.match(sample)
    if numbered:
        indent, start, suffix = numbered.group(1), int(numbered.group(2)), numbered.group(3)
        return [f"{indent}{start + i}{suffix}{line}" for i, line in enumerate(lines)]

    indent = _INDENT.match(sample).group(1)
    return [f"{indent}{line}" for line in lines]


def split_lines_with_endings(text: str) -> tuple[list[str], list[str]]:
    """Split into lines plus the terminator that followed each one ("" for the last)."""
    parts = _LINE_BREAK.split(text or "")
    return parts[0::2], parts[1::2] + [""]


def join_lines(lines: list[str], endings: list[str]) -> str:
    return "".join(line + ending for line, ending in zip(lines, endings))


def splice(lines: list[str], endings: list[str], start: int, end: int, replacement: list[str]) -> None:
    """Replace ``lines[start:end]`` in place, keeping the terminators around the region.

    ``start`` is always just below a heading line. New lines take the line
    ending already used in the region (or by the heading); the last one
    inherits the region's closing terminator.
    """
    end = max(start, end)
    closing = endings[end - 1] if end > start else endings[start - 1]
    newline = next(
        (e for e in endings[start:end] if e),
        endings[start - 1] or next((e for e in endings if e), "\n"),
    )

    if not replacement:
        if end > start and not closing:
            endings[start - 1] = ""
        del lines[start:end]
        del endings[start:end]
        return

    if end == start and not closing:
        endings[start - 1] = newline
    lines[start:end] = replacement
    endings[start:end] = [newline] * (len(replacement) - 1) + [closing]


def trailing_blank_lines(body: list[str]) -> list[str]:
    """Blank lines closing a section body, kept as the separator before the next heading."""
    count = 0
    for line in reversed(body):
        if line.strip():
            break
        count += 1
    return body[len(body) - count:] if count else []
