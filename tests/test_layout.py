"""Tests for line-style preservation, header filling and taxonomy helpers."""


def test_bullet_style_single_line():
    from sonoscribe.composer.layout import apply_existing_line_style

    assert apply_existing_line_style(["- normal study"], "Mild fatty infiltration.") == ["- Mild fatty infiltration."]
    assert apply_existing_line_style(["  * ok"], "A. B.") == ["  * A. B."]


def test_numbered_style_multi_line():
    from sonoscribe.composer.layout import apply_existing_line_style

    body = ["  3) first", "  4) second", ""]
    assert apply_existing_line_style(body, "Liver is enlarged. A 12 mm cyst is seen. (Segment VI).") == [
        "  3) Liver is enlarged.",
        "  4) A 12 mm cyst is seen.",
        "  5) (Segment VI).",
    ]


def test_plain_indent_and_explicit_newlines():
    from sonoscribe.composer.layout import apply_existing_line_style

    assert apply_existing_line_style(["    old text"], "New. Text.") == ["    New. Text."]
    assert apply_existing_line_style(["old"], "Span: 15 cm\nEcho: coarse") == ["Span: 15 cm", "Echo: coarse"]
    assert apply_existing_line_style([], "A. B.") == ["A. B."]
    assert apply_existing_line_style(["- x"], "   ") == []


def test_split_sentences_keeps_decimals():
    from sonoscribe.composer.layout import split_sentences

    assert split_sentences("CBD measures 5.5 mm. Normal.  ") == ["CBD measures 5.5 mm.", "Normal."]


def test_trailing_blank_lines():
    from sonoscribe.composer.layout import trailing_blank_lines

    assert trailing_blank_lines(["a", "", "b", "", "  "]) == ["", "  "]
    assert trailing_blank_lines(["a"]) == []
    assert trailing_blank_lines([]) == []


def test_header_placeholders_and_labels():
    from sonoscribe.composer.header import apply_deterministic_header_updates

    template = "Name: ____\nDate: {{exam_date}}\nRef: [patient name]\nLIVER\n- normal"
    result = apply_deterministic_header_updates(template, patient_name="Asha", exam_date="01/02/2026")
    assert result == "Name: Asha\nDate: 01/02/2026\nRef: Asha\nLIVER\n- normal"


def test_header_inline_slots():
    from sonoscribe.composer.header import apply_deterministic_header_updates

    result = apply_deterministic_header_updates(
        "NAME: ____    GENDER: N/A", patient_name="Asha", patient_gender_label="Female",
    )
    assert result == "NAME: Asha    GENDER: Female"


def test_header_never_overwrites_real_values():
    from sonoscribe.composer.header import apply_deterministic_header_updates

    template = "Name: Ravi Kumar\nSex: M"
    assert apply_deterministic_header_updates(template, patient_name="Asha", patient_gender_label="Female") == template


def test_placeholder_values():
    from sonoscribe.composer.header import is_placeholder_value

    for value in ("", "  ", "____", "--", "N/A", "unknown", "[name]", "<name>", "{{name}}"):
        assert is_placeholder_value(value)
    assert not is_placeholder_value("Asha")


def test_normalize_organ_states():
    from sonoscribe.composer.sections import OrganState, normalize_organ_states

    states = normalize_organ_states({"Peritoneum": "critical", "heart": "high_risk", "Liver": "mild", "spleen": None})
    assert states == {
        "peritoneal_cavity": OrganState.HIGH_RISK,
        "liver": OrganState.ABNORMAL,
        "spleen": OrganState.NORMAL,
    }
    assert normalize_organ_states(["liver"]) == {}


def test_organ_sections_follow_anatomy():
    from sonoscribe.composer.sections import Gender, SectionKey, organ_sections

    assert organ_sections("peritoneal_cavity", Gender.MALE) == (SectionKey.PERITONEUM, SectionKey.PERITONEUM_NODES)
    assert organ_sections("peritoneal_cavity", Gender.FEMALE) == (
        SectionKey.PERITONEUM, SectionKey.PERITONEUM_NODES, SectionKey.PELVIC,
    )
    assert organ_sections("heart", Gender.MALE) == ()


def test_normalize_heading():
    from sonoscribe.composer.sections import normalize_heading

    assert normalize_heading("  Gall-Bladder & C.B.D.:  ") == "gall bladder c b d"
    assert normalize_heading("***") == ""


def test_split_and_join_keep_line_endings():
    from sonoscribe.composer.layout import join_lines, split_lines_with_endings

    text = "a\r\nb\nc\n"
    lines, endings = split_lines_with_endings(text)
    assert lines == ["a", "b", "c", ""]
    assert endings == ["\r\n", "\n", "\n", ""]
    assert join_lines(lines, endings) == text


def test_splice_with_endings():
    from sonoscribe.composer.layout import join_lines, splice, split_lines_with_endings

    lines, endings = split_lines_with_endings("H\r\nold\r\nNEXT")
    splice(lines, endings, 1, 2, ["x", "y"])
    assert join_lines(lines, endings) == "H\r\nx\r\ny\r\nNEXT"

    lines, endings = split_lines_with_endings("A\nH\nold")
    splice(lines, endings, 2, 3, [])
    assert join_lines(lines, endings) == "A\nH"

    lines, endings = split_lines_with_endings("A\nH")
    splice(lines, endings, 2, 2, ["new"])
    assert join_lines(lines, endings) == "A\nH\nnew"
