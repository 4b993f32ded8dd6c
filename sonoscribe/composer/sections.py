"""Canonical section taxonomy for USG whole-abdomen reports.

Everything the resolver, extractor and renderers agree on lives here:

- the ordered set of canonical section keys (enumeration order is the
  tie-break and pass order everywhere)
- which override fields each section depends on
- the keyword banks used to classify free-form headings
- gender applicability and the organ -> section map for safety fallback
- heading normalisation shared with template profiles
"""

import enum
import re
from types import MappingProxyType


class Gender(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"

    @classmethod
    def coerce(cls, value: "Gender | str | None") -> "Gender":
        """Accept enum members or loose strings; anything unknown is MALE."""
        if isinstance(value, Gender):
            return value
        if isinstance(value, str) and value.strip().lower() == "female":
            return cls.FEMALE
        return cls.MALE


class SectionKey(str, enum.Enum):
    LIVER = "LIVER"
    GALL_CBD = "GALL_CBD"
    PANCREAS = "PANCREAS"
    SPLEEN = "SPLEEN"
    KIDNEYS = "KIDNEYS"
    BLADDER = "BLADDER"
    PROSTATE = "PROSTATE"
    UTERUS = "UTERUS"
    ADNEXA = "ADNEXA"
    PELVIC = "PELVIC"
    PERITONEUM = "PERITONEUM"
    LYMPH = "LYMPH"
    PERITONEUM_NODES = "PERITONEUM_NODES"
    IMPRESSION = "IMPRESSION"
    NOTE = "NOTE"


SECTION_KEYS: tuple[SectionKey, ...] = tuple(SectionKey)


class OrganState(str, enum.Enum):
    NORMAL = "normal"
    ABNORMAL = "abnormal"
    HIGH_RISK = "high_risk"

    @classmethod
    def parse(cls, value) -> "OrganState":
        if isinstance(value, OrganState):
            return value
        if not isinstance(value, str):
            return cls.NORMAL
        token = re.sub(r"[^a-z]+", "_", value.strip().lower()).strip("_")
        if token in ("high_risk", "highrisk", "critical", "severe", "urgent"):
            return cls.HIGH_RISK
        if token in ("abnormal", "mild", "moderate"):
            return cls.ABNORMAL
        return cls.NORMAL


def is_high_risk(state) -> bool:
    return OrganState.parse(state) is OrganState.HIGH_RISK


# ---------------------------------------------------------------------------
# Section -> override field dependencies
# ---------------------------------------------------------------------------

SECTION_DEPENDENCIES: MappingProxyType = MappingProxyType({
    SectionKey.LIVER: (
        "liver_main",
        "liver_focal_lesion",
        "liver_hepatic_veins",
        "liver_ihbr",
        "liver_portal_vein",
    ),
    SectionKey.GALL_CBD: (
        "gallbladder_main",
        "gallbladder_calculus_sludge",
        "cbd_main",
    ),
    SectionKey.PANCREAS: ("pancreas_main", "pancreas_echotexture"),
    SectionKey.SPLEEN: ("spleen_main", "spleen_focal_lesion"),
    SectionKey.KIDNEYS: (
        "kidneys_size",
        "kidneys_main",
        "kidneys_cmd",
        "kidneys_cortical_scarring",
        "kidneys_parenchyma",
        "kidneys_calculus_hydronephrosis",
    ),
    SectionKey.BLADDER: ("bladder_main", "bladder_mass_calculus"),
    SectionKey.PROSTATE: ("prostate_main", "prostate_echotexture"),
    SectionKey.UTERUS: (
        "uterus_main",
        "uterus_myometrium",
        "endometrium_measurement_mm",
    ),
    SectionKey.ADNEXA: ("ovaries_main", "adnexal_mass"),
    SectionKey.PELVIC: ("peritoneal_fluid", "adnexal_mass"),
    SectionKey.PERITONEUM: ("peritoneal_fluid",),
    SectionKey.LYMPH: ("lymph_nodes",),
    SectionKey.PERITONEUM_NODES: ("peritoneal_fluid", "lymph_nodes"),
    SectionKey.IMPRESSION: ("impression",),
    SectionKey.NOTE: ("correlate_clinically",),
})

# ---------------------------------------------------------------------------
# Heading keyword banks (classifier input)
# ---------------------------------------------------------------------------

SECTION_KEYWORDS: MappingProxyType = MappingProxyType({
    SectionKey.LIVER: ("liver", "hepatic", "portal vein", "ihbr"),
    SectionKey.GALL_CBD: (
        "gall", "gallbladder", "gall bladder", "cbd", "common bile duct", "chole",
    ),
    SectionKey.PANCREAS: ("pancreas", "pancreatic"),
    SectionKey.SPLEEN: ("spleen", "splenic"),
    SectionKey.KIDNEYS: ("kidney", "kidneys", "renal"),
    SectionKey.BLADDER: ("bladder", "urinary bladder"),
    SectionKey.PROSTATE: ("prostate",),
    SectionKey.UTERUS: ("uterus", "myometrium", "endometrium", "endometrial"),
    SectionKey.ADNEXA: ("adnexa", "adenexa", "ovary", "ovaries", "adnexal"),
    SectionKey.PELVIC: ("pelvis", "pelvic", "pouch of douglas", "pod"),
    SectionKey.PERITONEUM: ("peritoneum", "peritoneal", "ascites", "free fluid"),
    SectionKey.LYMPH: ("lymph", "node", "adenopathy"),
    SectionKey.PERITONEUM_NODES: (
        "peritoneum", "peritoneal", "lymph", "nodes", "peritoneum and nodes",
    ),
    SectionKey.IMPRESSION: ("impression", "conclusion", "significant findings"),
    SectionKey.NOTE: ("note", "remarks", "correlate", "clinical correlation"),
})

GENDER_INAPPLICABLE_SECTIONS: MappingProxyType = MappingProxyType({
    Gender.MALE: frozenset({SectionKey.UTERUS, SectionKey.ADNEXA}),
    Gender.FEMALE: frozenset({SectionKey.PROSTATE}),
})

# Organ -> sections. PELVIC only carries peritoneal findings for female anatomy.
ORGAN_SECTION_MAP: MappingProxyType = MappingProxyType({
    "liver": ((SectionKey.LIVER, None),),
    "gallbladder": ((SectionKey.GALL_CBD, None),),
    "pancreas": ((SectionKey.PANCREAS, None),),
    "spleen": ((SectionKey.SPLEEN, None),),
    "kidneys": ((SectionKey.KIDNEYS, None),),
    "bladder": ((SectionKey.BLADDER, None),),
    "prostate": ((SectionKey.PROSTATE, None),),
    "uterus": ((SectionKey.UTERUS, None),),
    "adnexa": ((SectionKey.ADNEXA, None),),
    "peritoneal_cavity": (
        (SectionKey.PERITONEUM, None),
        (SectionKey.PERITONEUM_NODES, None),
        (SectionKey.PELVIC, Gender.FEMALE),
    ),
})

ORGANS: tuple[str, ...] = tuple(ORGAN_SECTION_MAP)


def organ_sections(organ: str, gender: Gender) -> tuple[SectionKey, ...]:
    """Sections an organ's state drives for the given anatomy."""
    entries = ORGAN_SECTION_MAP.get(organ, ())
    return tuple(key for key, only_for in entries if only_for is None or only_for is gender)


def normalize_organ_states(organ_states) -> dict[str, OrganState]:
    """Coerce a loose ``{organ: state}`` payload; unknown organs are dropped."""
    if not isinstance(organ_states, dict):
        return {}
    result = {}
    for organ, state in organ_states.items():
        key = re.sub(r"[^a-z]+", "_", str(organ).strip().lower()).strip("_")
        if key == "peritoneum" or key == "peritoneal":
            key = "peritoneal_cavity"
        if key not in ORGAN_SECTION_MAP:
            continue
        result[key] = OrganState.parse(state)
    return result


# ---------------------------------------------------------------------------
# Normalisation helpers
# ---------------------------------------------------------------------------

_WHITESPACE_RE = re.compile(r"\s+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def normalize_heading(text: str) -> str:
    """Lowercase, collapse non-alphanumerics to single spaces, trim."""
    return _NON_ALNUM_RE.sub(" ", normalize_whitespace(text).lower()).strip()


def is_meaningful(value) -> bool:
    return isinstance(value, str) and bool(value.strip())


def has_section_overrides(section: SectionKey, overrides: dict | None) -> bool:
    if not overrides:
        return False
    return any(is_meaningful(overrides.get(field)) for field in SECTION_DEPENDENCIES[section])


def is_section_applicable(section: SectionKey, gender: Gender) -> bool:
    return section not in GENDER_INAPPLICABLE_SECTIONS[gender]


def is_section_high_risk(
    section: SectionKey,
    organ_states: dict[str, OrganState] | None,
    gender: Gender,
) -> bool:
    if not organ_states:
        return False
    for organ, state in organ_states.items():
        if state is not OrganState.HIGH_RISK:
            continue
        if section in organ_sections(organ, gender):
            return True
    return False
