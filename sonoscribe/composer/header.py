"""Patient header filling for user templates.

Substitutes ``{{patient_name}}`` / ``[patient name]`` / ``<patient-name>``
style placeholders and fills labelled header values (``Name: ____``) when the
current value is itself a placeholder. Real values are never overwritten.
"""

import re

_PLACEHOLDER_VALUE = re.compile(
    r"^(?:[_\-./\s]+|na|n/a|unknown|nil|none|\[.*\]|<.*>|\{\{.*\}\})$",
    re.IGNORECASE,
)
_LABELLED_LINE = re.compile(r"^\s*([^:]+:\s*)(.*)$")

_NAME_TOKEN = r"patient[_\s-]*name"
_GENDER_TOKEN = r"patient[_\s-]*(?:gender|sex)"
_DATE_TOKEN = r"(?:exam[_\s-]*date|date)"

_NAME_LABEL = r"(?:patient\s*name|name)"
_GENDER_LABEL = r"(?:gender|sex)"
_DATE_LABEL = r"(?:exam\s*date|date)"


def is_placeholder_value(text: str) -> bool:
    trimmed = (text or "").strip()
    return not trimmed or bool(_PLACEHOLDER_VALUE.match(trimmed))


def _replace_tokens(text: str, token: str, value: str) -> str:
    for pattern in (
        r"\{\{\s*" + token + r"\s*\}\}",
        r"\[\s*" + token + r"\s*\]",
        r"<\s*" + token + r"\s*>",
    ):
        text = re.sub(pattern, lambda _m: value, text, flags=re.IGNORECASE)
    return text


def replace_labelled_value(line: str, label: str, value: str) -> str:
    if not value.strip():
        return line
    label_re = re.compile(label, re.IGNORECASE)
    if not label_re.search(line):
        return line

    direct = _LABELLED_LINE.match(line)
    if direct and label_re.search(direct.group(1)) and is_placeholder_value(direct.group(2)):
        return f"{direct.group(1)}{value}"

    # "NAME: ____    GENDER: ____" style rows: fill each labelled slot in place
    inline = re.compile(
        r"(" + label + r"\s*:\s*)([^\n]*?)(?=(\s+[A-Z][A-Z ]*\s*:|$))",
        re.IGNORECASE,
    )

    def fill(match):
        if not is_placeholder_value(match.group(2)):
            return match.group(0)
        return f"{match.group(1)}{value}"

    return inline.sub(fill, line, count=1)


def apply_deterministic_header_updates(
    template_text: str,
    patient_name: str = "",
    patient_gender_label: str = "",
    exam_date: str = "",
) -> str:
    text = template_text or ""
    patient_name = (patient_name or "").strip()
    patient_gender_label = (patient_gender_label or "").strip()
    exam_date = (exam_date or "").strip()

    if patient_name:
        text = _replace_tokens(text, _NAME_TOKEN, patient_name)
    if patient_gender_label:
        text = _replace_tokens(text, _GENDER_TOKEN, patient_gender_label)
    if exam_date:
        text = _replace_tokens(text, _DATE_TOKEN, exam_date)

    lines = []
    for line in re.split(r"\r?\n", text):
        if patient_name:
            line = replace_labelled_value(line, _NAME_LABEL, patient_name)
        if patient_gender_label:
            line = replace_labelled_value(line, _GENDER_LABEL, patient_gender_label)
        if exam_date:
            line = replace_labelled_value(line, _DATE_LABEL, exam_date)
        lines.append(line)
    return "\n".join(lines)
