"""Split the canonical report back into taxonomy sections.

The canonical headings are known verbatim, so this uses exact prefix matching
rather than the heuristic heading detector. The result is the single source of
truth for what replacement text a custom template section should receive.
"""

import re

from sonoscribe.composer.sections import (
    SECTION_KEYS,
    Gender,
    SectionKey,
    normalize_heading,
    normalize_whitespace,
)

# (section, accepted heading prefixes), checked in order
_LABELLED_SECTIONS = (
    (SectionKey.LIVER, ("Liver:",)),
    (SectionKey.GALL_CBD, ("Gall bladder:", "Gall Bladder:", "Gallbladder:")),
    (SectionKey.PANCREAS, ("Pancreas:",)),
    (SectionKey.SPLEEN, ("Spleen:",)),
    (SectionKey.KIDNEYS, ("Kidneys:",)),
    (SectionKey.BLADDER, ("Urinary Bladder:",)),
    (SectionKey.PROSTATE, ("Prostate:",)),
    (SectionKey.UTERUS, ("Uterus:",)),
    (SectionKey.ADNEXA, ("Adenexa:", "Adnexa:")),
)

_HEADER_LINE = re.compile(r"^name\s*:", re.IGNORECASE)
_TITLE_LINE = re.compile(r"^sonography\b", re.IGNORECASE)
_BANNER_LINE = re.compile(r"^-{5,}\s*end", re.IGNORECASE)
_LIMITATIONS_LINE = re.compile(r"sonography has its limitations", re.IGNORECASE)
_IMPRESSION_LINE = re.compile(r"^(impression\s*:|significant findings\s*:)", re.IGNORECASE)
_NOTE_LINE = re.compile(r"^please correlate clinically\.?$", re.IGNORECASE)
_LYMPH_LINE = re.compile(r"lymph\s*nodes?", re.IGNORECASE)
_PERITONEUM_LINE = re.compile(r"peritone|ascites|free fluid", re.IGNORECASE)
_PELVIC_LINE = re.compile(r"pelvi", re.IGNORECASE)

# Unlabelled continuation lines only ever belong to these sections
_CARRY_SECTIONS = frozenset({SectionKey.KIDNEYS, SectionKey.PROSTATE})


def _starts_with_heading(line: str, heading: str) -> bool:
    return normalize_heading(line).startswith(normalize_heading(heading))


def _heading_value(line: str) -> str:
    head, sep, value = line.partition(":")
    return normalize_whitespace(value) if sep else ""


def extract_canonical_sections(report_text: str, gender: Gender | str | None = None) -> dict[SectionKey, str]:
    gender = Gender.coerce(gender)
    buckets: dict[SectionKey, list[str]] = {key: [] for key in SECTION_KEYS}

    def append(key: SectionKey, text: str):
        text = normalize_whitespace(text)
        if text:
            buckets[key].append(text)

    carry = None
    for raw_line in re.split(r"\r?\n", report_text or ""):
        line = raw_line.strip()
        if not line:
            continue

        if (
            _HEADER_LINE.match(line)
            or _TITLE_LINE.match(line)
            or _BANNER_LINE.match(line)
            or _LIMITATIONS_LINE.search(line)
        ):
            carry = None
            continue

        labelled = next(
            (
                key for key, prefixes in _LABELLED_SECTIONS
                if any(_starts_with_heading(line, p) for p in prefixes)
            ),
            None,
        )
        if labelled is not None:
            append(labelled, _heading_value(line))
            carry = labelled
            continue

        if _IMPRESSION_LINE.match(line):
            append(SectionKey.IMPRESSION, _IMPRESSION_LINE.sub("", line, count=1))
            carry = SectionKey.IMPRESSION
            continue
        if _NOTE_LINE.match(line):
            append(SectionKey.NOTE, line)
            carry = SectionKey.NOTE
            continue

        if _LYMPH_LINE.search(line):
            append(SectionKey.LYMPH, line)
            carry = SectionKey.LYMPH
            continue
        if _PERITONEUM_LINE.search(line):
            append(SectionKey.PERITONEUM, line)
            if _PELVIC_LINE.search(line):
                append(SectionKey.PELVIC, line)
            carry = SectionKey.PERITONEUM
            continue
        if _PELVIC_LINE.search(line):
            append(SectionKey.PELVIC, line)
            carry = SectionKey.PELVIC
            continue

        if carry in _CARRY_SECTIONS:
            append(carry, line)

    if not buckets[SectionKey.PELVIC] and gender is Gender.FEMALE:
        merged = " ".join(buckets[SectionKey.UTERUS] + buckets[SectionKey.ADNEXA]).strip()
        if merged:
            buckets[SectionKey.PELVIC].append(merged)

    peritoneum_nodes = buckets[SectionKey.PERITONEUM] + buckets[SectionKey.LYMPH]
    if peritoneum_nodes:
        buckets[SectionKey.PERITONEUM_NODES] = peritoneum_nodes

    return {key: "\n".join(buckets[key]).strip() for key in SECTION_KEYS}
