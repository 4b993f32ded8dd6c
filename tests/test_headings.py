"""Tests for heading candidate detection and classification."""

import pytest


@pytest.mark.parametrize("line", ["LIVER:", "Gall Bladder & CBD", "  Impression  ", "Findings", "Pancreas:"])
def test_heading_candidates_accepted(line):
    from sonoscribe.composer.headings import is_heading_candidate

    assert is_heading_candidate(line)


@pytest.mark.parametrize(
    "line",
    [
        "",
        "   ",
        "Name: ________",
        "Patient Name: Asha",
        "Date: 01/02/2026",
        "- normal study",
        "2) no focal lesion",
        "-----------",
        "Liver is normal. No focal lesion.",
        "The liver is normal in size and shows homogenous echotexture throughout the organ.",
        "a, b, c; d",
        "x" * 91,
    ],
)
def test_heading_candidates_rejected(line):
    from sonoscribe.composer.headings import is_heading_candidate

    assert not is_heading_candidate(line)


def test_detect_keeps_line_indexes():
    from sonoscribe.composer.headings import detect_heading_candidates

    text = "LIVER\r\n- normal\r\n\r\nSPLEEN:\r\nnormal in size and echotexture with no lesions seen anywhere at all."
    candidates = detect_heading_candidates(text)
    assert [(c.line_index, c.raw_text) for c in candidates] == [(0, "LIVER"), (3, "SPLEEN:")]


@pytest.mark.parametrize(
    "line, expected",
    [
        ("Liver", "LIVER"),
        ("HEPATIC STUDY:", "LIVER"),
        ("Gall bladder & CBD", "GALL_CBD"),
        ("Urinary bladder", "BLADDER"),
        ("Pancreas:", "PANCREAS"),
        ("Kidneys", "KIDNEYS"),
        ("Peritoneum and lymph nodes", "PERITONEUM_NODES"),
        ("Ovaries", "ADNEXA"),
        ("Significant findings", "IMPRESSION"),
        ("Remarks", "NOTE"),
    ],
)
def test_classify_heading(line, expected):
    from sonoscribe.composer.headings import classify_heading_candidate

    assert classify_heading_candidate(line).value == expected


def test_classify_tie_keeps_taxonomy_order():
    from sonoscribe.composer.headings import classify_heading_candidate, score_heading
    from sonoscribe.composer.sections import SectionKey

    assert score_heading("peritoneal", SectionKey.PERITONEUM) == score_heading("peritoneal", SectionKey.PERITONEUM_NODES)
    assert classify_heading_candidate("Peritoneal") is SectionKey.PERITONEUM


def test_classify_unknown_heading():
    from sonoscribe.composer.headings import classify_heading_candidate

    assert classify_heading_candidate("Findings") is None
    assert classify_heading_candidate("USG ABDOMEN REPORT") is None
    assert classify_heading_candidate("::") is None


def test_auto_map_heading_candidates():
    from sonoscribe.composer.headings import auto_map_heading_candidates, detect_heading_candidates
    from sonoscribe.composer.sections import SectionKey

    text = "Findings\nLIVER\n- ok\nSpleen:\n- ok\nLiver again\nIMPRESSION"
    mapping = auto_map_heading_candidates(detect_heading_candidates(text))
    assert mapping == {
        SectionKey.LIVER: "LIVER",
        SectionKey.SPLEEN: "Spleen:",
        SectionKey.IMPRESSION: "IMPRESSION",
    }
