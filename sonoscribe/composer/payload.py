"""Adapt loosely-structured model output into engine inputs.

Model responses arrive as JSON-ish text: sometimes fenced, sometimes with raw
newlines inside strings or trailing commas, and with field names in either
snake or camel case. Everything here is forgiving; nothing raises on bad
content.
"""

import json
import logging
import math
import re

from sonoscribe.composer.canonical import FIELD_KEYS
from sonoscribe.composer.sections import normalize_whitespace

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_CONTROL_CHARS = re.compile(
    "[\u0000-\u0008\u000b\u000c\u000e-\u001f\u007f-\u009f\u200b-\u200d\ufeff]"
)
_TRAILING_COMMA = re.compile(r",\s*([}\]])")

# Field id -> accepted keys, first non-empty wins
FIELD_ALIASES = {
    "liver_main": ("liver_main", "liverMain"),
    "liver_focal_lesion": ("liver_focal_lesion", "liverFocalLesion"),
    "liver_hepatic_veins": ("liver_hepatic_veins", "liverHepaticVeins", "hepatic_veins", "hepaticVeins"),
    "liver_ihbr": ("liver_ihbr", "liverIhbr"),
    "liver_portal_vein": ("liver_portal_vein", "liverPortalVein"),
    "gallbladder_main": ("gallbladder_main", "gallBladderMain", "gall_bladder_main"),
    "gallbladder_calculus_sludge": (
        "gallbladder_calculus_sludge", "gallBladderCalculusSludge", "gall_bladder_calculus_sludge",
    ),
    "cbd_main": ("cbd_main", "cbdMain", "cbd", "common_bile_duct"),
    "pancreas_main": ("pancreas_main", "pancreasMain"),
    "pancreas_echotexture": ("pancreas_echotexture", "pancreasEchotexture"),
    "spleen_main": ("spleen_main", "spleenMain"),
    "spleen_focal_lesion": ("spleen_focal_lesion", "spleenFocalLesion"),
    "kidneys_size": ("kidneys_size", "kidney_size", "kidneysSize", "kidneySize"),
    "kidneys_main": ("kidneys_main", "kidneysMain"),
    "kidneys_cmd": ("kidneys_cmd", "kidneysCmd", "cmd"),
    "kidneys_cortical_scarring": ("kidneys_cortical_scarring", "kidneysCorticalScarring", "cortical_scarring"),
    "kidneys_parenchyma": ("kidneys_parenchyma", "kidneysParenchyma", "parenchyma"),
    "kidneys_calculus_hydronephrosis": (
        "kidneys_calculus_hydronephrosis", "kidneysCalculusHydronephrosis", "renal_calculus_hydronephrosis",
    ),
    "bladder_main": ("bladder_main", "bladderMain"),
    "bladder_mass_calculus": ("bladder_mass_calculus", "bladderMassCalculus"),
    "prostate_main": ("prostate_main", "prostateMain"),
    "prostate_echotexture": ("prostate_echotexture", "prostateEchotexture"),
    "uterus_main": ("uterus_main", "uterusMain"),
    "uterus_myometrium": ("uterus_myometrium", "uterusMyometrium", "myometrium"),
    "endometrium_measurement_mm": ("endometrium_measurement_mm", "endometriumMeasurementMm", "endometrium_mm"),
    "ovaries_main": ("ovaries_main", "ovariesMain"),
    "adnexal_mass": ("adnexal_mass", "adnexalMass"),
    "peritoneal_fluid": ("peritoneal_fluid", "peritonealFluid", "free_fluid"),
    "lymph_nodes": ("lymph_nodes", "lymphNodes"),
    "impression": ("impression", "conclusion"),
    "correlate_clinically": ("correlate_clinically", "correlateClinically"),
}

PATIENT_NAME_KEYS = ("patient_name", "patientName", "name")
PATIENT_GENDER_KEYS = ("patient_gender", "patientGender", "gender", "sex")
EXAM_DATE_KEYS = ("exam_date", "examDate", "date")

OTHER_OBSERVATION_KEYS = (
    "other_observations",
    "otherObservations",
    "additional_observations",
    "additionalObservations",
    "unmapped_findings",
    "unmappedFindings",
)

ABDOMEN_KEYWORDS = (
    "abdomen", "abdominal", "liver", "hepatic", "portal vein", "ihbr", "gall",
    "gallbladder", "gall bladder", "cbd", "bile duct", "pancreas", "pancreatic",
    "spleen", "splenic", "kidney", "kidneys", "renal", "ureter", "ureteric",
    "bladder", "urinary bladder", "prostate", "uterus", "endometrium", "ovary",
    "ovaries", "adnexa", "adnexal", "pelvic", "pelvis", "peritoneal",
    "peritoneum", "ascites", "retroperitoneal", "lymph", "node", "aorta", "ivc",
)

NOISE_PATTERNS = (
    re.compile(r"\b(hello|hi|thanks|thank you|okay|ok|hmm|huh|bye)\b", re.IGNORECASE),
    re.compile(r"\b(start|stop|pause|resume)\s+(record(ing)?|dictation)\b", re.IGNORECASE),
    re.compile(r"\b(audio|noise|background|music|mic|microphone)\b", re.IGNORECASE),
    re.compile(r"\b(patient|attender|relative)\s+(said|speaks?|talking)\b", re.IGNORECASE),
    re.compile(r"\b(call|phone|mobile|speaker|network)\b", re.IGNORECASE),
    re.compile(r"\b(doctor|dr\.)\s+(please|kindly)\b", re.IGNORECASE),
)

UNCLEAR_MARKERS = ("[unclear - needs review]", "unclear - needs review")
MIN_OBSERVATION_CHARS = 4
MAX_OBSERVATION_CHARS = 260

OTHER_OBSERVATIONS_HEADING = "OTHER OBSERVATIONS:"

_MALE_TOKENS = ("male", "m", "man", "boy")
_FEMALE_TOKENS = ("female", "f", "woman", "girl")


# ---------------------------------------------------------------------------
# JSON recovery
# ---------------------------------------------------------------------------

def _extract_json_object(text: str) -> dict:
    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last <= first:
        raise ValueError("No JSON object found in response")
    value = json.loads(text[first:last + 1])
    if not isinstance(value, dict):
        raise ValueError("Response JSON is not an object")
    return value


def escape_newlines_in_strings(text: str) -> str:
    """Escape raw CR/LF characters that appear inside JSON string literals."""
    out = []
    in_string = False
    escaped = False
    for char in text:
        if not in_string:
            out.append(char)
            if char == '"':
                in_string = True
            continue
        if escaped:
            out.append(char)
            escaped = False
        elif char == "\\":
            out.append(char)
            escaped = True
        elif char == '"':
            out.append(char)
            in_string = False
        elif char == "\n":
            out.append("\\n")
        elif char == "\r":
            out.append("\\r")
        else:
            out.append(char)
    return "".join(out)


def parse_model_json(raw_text: str) -> dict | None:
    if not isinstance(raw_text, str) or not raw_text.strip():
        return None

    fence = _FENCE.search(raw_text)
    text = fence.group(1) if fence else raw_text

    sanitized = _CONTROL_CHARS.sub("", text)
    repaired = escape_newlines_in_strings(sanitized)
    attempts = (text, sanitized, repaired, _TRAILING_COMMA.sub(r"\1", repaired))

    for attempt in attempts:
        try:
            return _extract_json_object(attempt)
        except ValueError:
            continue
    logger.warning("Model output could not be parsed as JSON (%d chars)", len(raw_text))
    return None


# ---------------------------------------------------------------------------
# Field extraction
# ---------------------------------------------------------------------------

def number_text(value) -> str:
    """String form of a JSON number; "" for non-finite floats or ints too long to print."""
    if isinstance(value, float):
        return str(value) if math.isfinite(value) else ""
    try:
        return str(value)
    except ValueError:
        return ""


def get_field_value(source: dict | None, keys) -> str:
    if not isinstance(source, dict):
        return ""
    for key in keys:
        value = source.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, str) and value.strip():
            return value
        if isinstance(value, (int, float)):
            text = number_text(value)
            if text:
                return text
    return ""


def build_field_overrides(parsed: dict) -> dict[str, str]:
    source = parsed.get("fields") if isinstance(parsed.get("fields"), dict) else parsed
    return {key: get_field_value(source, FIELD_ALIASES[key]) for key in FIELD_KEYS}


def has_all_field_keys(fields) -> bool:
    return isinstance(fields, dict) and all(key in fields for key in FIELD_KEYS)


def normalize_gender(value) -> str:
    token = value.strip().lower() if isinstance(value, str) else ""
    if token in _MALE_TOKENS:
        return "male"
    if token in _FEMALE_TOKENS:
        return "female"
    return ""


def extract_patient(parsed: dict) -> dict[str, str]:
    return {
        "name": get_field_value(parsed, PATIENT_NAME_KEYS),
        "gender": get_field_value(parsed, PATIENT_GENDER_KEYS),
        "date": get_field_value(parsed, EXAM_DATE_KEYS),
    }


def extraction_confidence(parsed: dict) -> float | None:
    for key in ("extraction_confidence", "extractionConfidence"):
        value = parsed.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if isinstance(value, int):
            return float(max(0, min(1, value)))
        if math.isfinite(value):
            return max(0.0, min(1.0, value))
    return None


# ---------------------------------------------------------------------------
# OTHER OBSERVATIONS
# ---------------------------------------------------------------------------

def is_relevant_observation(text: str) -> bool:
    normalized = normalize_whitespace(text).lower()
    if len(normalized) < MIN_OBSERVATION_CHARS or len(normalized) > MAX_OBSERVATION_CHARS:
        return False
    if normalized in UNCLEAR_MARKERS:
        return False
    if any(pattern.search(normalized) for pattern in NOISE_PATTERNS):
        return False
    return any(keyword in normalized for keyword in ABDOMEN_KEYWORDS)


def _collect_observation_lines(parsed: dict) -> list[str]:
    values = []
    for key in OTHER_OBSERVATION_KEYS:
        candidate = parsed.get(key)
        if isinstance(candidate, list):
            values.extend(
                line for line in (normalize_whitespace(item) for item in candidate if isinstance(item, str))
                if line
            )
            if values:
                break
            continue
        if isinstance(candidate, str) and candidate.strip():
            values.append(normalize_whitespace(candidate))
            break
    return values


def extract_other_observations(parsed: dict) -> tuple[list[str], int]:
    """Return (accepted observations, number of lines dropped as irrelevant)."""
    seen = set()
    unique = []
    for value in _collect_observation_lines(parsed):
        lowered = value.lower()
        if lowered in seen:
            continue
        seen.add(lowered)
        unique.append(value)

    accepted = [value for value in unique if is_relevant_observation(value)]
    dropped = len(unique) - len(accepted)
    if dropped:
        logger.debug("Dropped %d irrelevant observation lines", dropped)
    return accepted, dropped


def append_other_observations_section(text: str, observations: list[str]) -> str:
    if not observations:
        return text
    bullets = "\n".join(f"- {line}" for line in observations)
    return f"{text.strip()}\n\n{OTHER_OBSERVATIONS_HEADING}\n{bullets}"
