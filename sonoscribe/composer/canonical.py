"""Canonical USG whole-abdomen report builder.

The canonical report is the safety baseline: it is always built, and the
custom template renderer falls back to it whenever a partial edit cannot be
done safely. Banner and disclaimer lines are reproduced verbatim per gender.
"""

from types import MappingProxyType

from sonoscribe.composer.sections import Gender

# ---------------------------------------------------------------------------
# Fixed boilerplate
# ---------------------------------------------------------------------------

END_OF_REPORT_LINE = MappingProxyType({
    Gender.MALE: (
        "--------------------------------------------------------------END OF REPORT "
        "--------------------------------------------------------------"
    ),
    Gender.FEMALE: (
        "------------------------------------------------END of report "
        "-----------------------------------------------------------"
    ),
})

LIMITATIONS_NOTE = (
    "NON OBSTRUCTING URETERIC CALCULI MAY BE MISSED IN NON DILATED URETERS . "
    "SONOGRAPHY HAS ITS LIMITATIONS . IT CANNOT DETECT ALL ABNORMALITIES , SOME "
    "FINDINGS MAY BE MISSED DESPITE BEST EFFORTS OF DOCTOR . HENCE IN CASE OF ANY "
    "DISCREPANCY , KINDLY CONTACT THE UNDERSIGNED FOR REVIEW/ DISCUSSION"
)

REPORT_TITLE = "SONOGRAPHY WHOLE ABDOMEN"

IMPRESSION_LABEL = MappingProxyType({
    Gender.MALE: "IMPRESSION:",
    Gender.FEMALE: "Significant findings :",
})

NAME_PLACEHOLDER = "________________"
DATE_PLACEHOLDER = "____/____/______"

# ---------------------------------------------------------------------------
# Gendered default sentence banks
# ---------------------------------------------------------------------------

_DEFAULTS_BASE = {
    "liver_main": "Is normal in size. Tissue echotexture is homogenous.",
    "liver_focal_lesion": "No focal lesion seen.",
    "liver_hepatic_veins": "Hepatic veins are not dilated.",
    "liver_ihbr": "Intrahepatic biliary radicals are not dilated.",
    "liver_portal_vein": "Portal vein is of normal diameter.",
    "gallbladder_main": "is normal in contour & wall thickness.",
    "gallbladder_calculus_sludge": (
        "There is no evidence of any calculi or biliary sludge in visualized lumen of gall bladder."
    ),
    "cbd_main": "CBD is normal.",
    "pancreas_main": "is normal in size, shape & contour.",
    "pancreas_echotexture": "Tissue echotexture is homogenous.",
    "spleen_main": "is normal in size, shape & echotexture.",
    "spleen_focal_lesion": "No focal solid/ cystic lesion is seen.",
    "kidneys_size": "",
    "kidneys_main": "Both kidneys are normal in size, shape, position.",
    "kidneys_cmd": "corticomedullary differentiation is maintained.",
    "kidneys_cortical_scarring": "No cortical scarring seen.",
    "kidneys_parenchyma": "Renal parenchymal & sinus echotexture. Appears normal.",
    "kidneys_calculus_hydronephrosis": "NO calculus, mass lesion or hydronephrosis seen.",
    "bladder_main": "partially filled",
    "bladder_mass_calculus": "",
    "prostate_main": "The volume of prostate gland is normal.",
    "prostate_echotexture": "The prostate gland has homogeneous echotexture with intact capsule.",
    "uterus_main": "Uterus is normal in size and shape.",
    "uterus_myometrium": "Musculature shows normal echopattern.",
    "endometrium_measurement_mm": "",
    "ovaries_main": "both ovaries appears normal",
    "adnexal_mass": "no cyst / mass seen",
    "peritoneal_fluid": "No free fluid seen in peritoneal cavity",
    "lymph_nodes": "No significantly enlarged lymph nodes seen",
    "impression": "no significant abnormality seen in abdomen",
    "correlate_clinically": "Please correlate clinically",
}

GENDER_DEFAULTS: MappingProxyType = MappingProxyType({
    Gender.MALE: MappingProxyType({
        **_DEFAULTS_BASE,
        "ovaries_main": "",
        "adnexal_mass": "",
    }),
    Gender.FEMALE: MappingProxyType({
        **_DEFAULTS_BASE,
        "gallbladder_calculus_sludge": (
            "There is evidence of multiple calculi or biliary sludge in visualized lumen of gall bladder."
        ),
        "bladder_main": "walls are well defined & normal in thickness.",
        "bladder_mass_calculus": "There is no filling defect,calculus or foreign body in bladder.",
        "prostate_main": "",
        "prostate_echotexture": "",
        "impression": "Chronic cholecystitis with cholilithiasis",
        "correlate_clinically": "",
    }),
})

FIELD_KEYS: tuple[str, ...] = tuple(_DEFAULTS_BASE)

_TERMINAL_PUNCTUATION = (".", "!", "?")
_IMPRESSION_PREFIXES = ("impression", "conclusion", "significant findings")


def ensure_period(text: str) -> str:
    trimmed = (text or "").strip()
    if not trimmed:
        return ""
    return trimmed if trimmed.endswith(_TERMINAL_PUNCTUATION) else f"{trimmed}."


def join_sentences(parts: list[str]) -> str:
    return " ".join(p for p in (ensure_period(part) for part in parts) if p)


def _join_fragments(parts: list[str]) -> str:
    return " ".join(p.strip() for p in parts if p and p.strip())


def _starts_with_impression_label(text: str) -> bool:
    lowered = text.lower()
    for prefix in _IMPRESSION_PREFIXES:
        if lowered.startswith(prefix):
            rest = lowered[len(prefix):]
            if not rest or not (rest[0].isalnum() or rest[0] == "_"):
                return True
    return False


class _FieldResolver:
    """Resolve ``override.strip() or default`` for one render."""

    def __init__(self, overrides: dict | None, gender: Gender, suppressed: frozenset[str]):
        self._overrides = overrides or {}
        self._defaults = GENDER_DEFAULTS[gender]
        self._suppressed = suppressed

    def __call__(self, key: str) -> str:
        if key in self._suppressed:
            return ""
        value = self._overrides.get(key)
        trimmed = value.strip() if isinstance(value, str) else ""
        return trimmed or self._defaults[key]


def resolve_patient_info(patient: dict | None, gender: Gender) -> dict[str, str]:
    patient = patient or {}
    name = (patient.get("name") or "").strip() or NAME_PLACEHOLDER
    label = (patient.get("gender") or "").strip() or ("Female" if gender is Gender.FEMALE else "Male")
    date = (patient.get("date") or "").strip() or DATE_PLACEHOLDER
    return {"name": name, "gender": label, "date": date}


def build_impression_line(impression: str, gender: Gender) -> str:
    label = IMPRESSION_LABEL[gender]
    trimmed = (impression or "").strip()
    if not trimmed:
        return ensure_period(f"{label} {GENDER_DEFAULTS[gender]['impression']}")
    if _starts_with_impression_label(trimmed):
        return ensure_period(trimmed)
    return ensure_period(f"{label} {trimmed}")


def build_usg_report(
    gender: Gender | str | None = None,
    patient: dict | None = None,
    overrides: dict | None = None,
    suppressed_fields: list[str] | tuple[str, ...] | None = None,
) -> str:
    """Build the full canonical report text.

    Pure function of its arguments: blank overrides fall back to the gendered
    defaults, suppressed fields render as if their default were empty.
    """
    gender = Gender.coerce(gender)
    field = _FieldResolver(overrides, gender, frozenset(suppressed_fields or ()))
    info = resolve_patient_info(patient, gender)

    lines = [
        f"NAME: {info['name']}    GENDER: {info['gender']}    DATE: {info['date']}",
        REPORT_TITLE,
    ]

    liver = join_sentences([
        field("liver_main"),
        field("liver_focal_lesion"),
        field("liver_hepatic_veins"),
        field("liver_ihbr"),
        field("liver_portal_vein"),
    ])
    lines.append(f"Liver: {liver}")

    gallbladder = join_sentences([
        field("gallbladder_main"),
        field("gallbladder_calculus_sludge"),
        field("cbd_main"),
    ])
    lines.append(f"Gall bladder: {gallbladder}")

    pancreas = join_sentences([field("pancreas_main"), field("pancreas_echotexture")])
    lines.append(f"Pancreas: {pancreas}")

    spleen = join_sentences([field("spleen_main"), field("spleen_focal_lesion")])
    lines.append(f"Spleen: {spleen}")

    kidney_size = field("kidneys_size")
    if kidney_size.strip():
        lines.append(f"Kidneys: {ensure_period(kidney_size)}")
    kidney_details = join_sentences([
        field("kidneys_main"),
        field("kidneys_cmd"),
        field("kidneys_cortical_scarring"),
        field("kidneys_parenchyma"),
        field("kidneys_calculus_hydronephrosis"),
    ])
    if kidney_details:
        lines.append(kidney_details if kidney_size.strip() else f"Kidneys: {kidney_details}")

    bladder = join_sentences([field("bladder_main"), field("bladder_mass_calculus")])
    lines.append(f"Urinary Bladder: {bladder}")

    if gender is Gender.MALE:
        prostate_main = field("prostate_main")
        if prostate_main.strip():
            lines.append(f"Prostate: {ensure_period(prostate_main)}")
        prostate_echo = field("prostate_echotexture")
        if prostate_echo.strip():
            lines.append(ensure_period(prostate_echo))
    else:
        endometrium = field("endometrium_measurement_mm")
        endometrium_line = (
            f"Endometrial echoes are central ({endometrium} mm)."
            if endometrium.strip()
            else "Endometrial echoes are central."
        )
        uterus = _join_fragments([
            ensure_period(field("uterus_main")),
            ensure_period(field("uterus_myometrium")),
            endometrium_line,
        ])
        if uterus:
            lines.append(f"Uterus: {uterus}")
        adnexa = join_sentences([field("adnexal_mass"), field("ovaries_main")])
        if adnexa:
            lines.append(f"Adenexa: {adnexa}")

    peritoneal = field("peritoneal_fluid")
    if peritoneal.strip():
        lines.append(ensure_period(peritoneal))

    lymph_nodes = field("lymph_nodes")
    if lymph_nodes.strip():
        lines.append(ensure_period(lymph_nodes))

    lines.append(build_impression_line(field("impression"), gender))

    correlation = field("correlate_clinically")
    if correlation.strip():
        lines.append(ensure_period(correlation))

    lines.append(END_OF_REPORT_LINE[gender])
    lines.append(LIMITATIONS_NOTE)
    return "\n".join(lines)
