"""Tests for the canonical report builder and section extractor."""


def test_male_default_report_layout():
    from sonoscribe.composer.canonical import END_OF_REPORT_LINE, LIMITATIONS_NOTE, build_usg_report
    from sonoscribe.composer.sections import Gender

    lines = build_usg_report().split("\n")
    assert lines[0] == "NAME: ________________    GENDER: Male    DATE: ____/____/______"
    assert lines[1] == "SONOGRAPHY WHOLE ABDOMEN"
    assert lines[2].startswith("Liver: Is normal in size. Tissue echotexture is homogenous. No focal lesion seen.")
    assert "Prostate: The volume of prostate gland is normal." in lines
    assert "IMPRESSION: no significant abnormality seen in abdomen." in lines
    assert "Please correlate clinically." in lines
    assert lines[-2] == END_OF_REPORT_LINE[Gender.MALE]
    assert lines[-1] == LIMITATIONS_NOTE


def test_female_default_report_layout():
    from sonoscribe.composer.canonical import END_OF_REPORT_LINE, build_usg_report
    from sonoscribe.composer.sections import Gender

    text = build_usg_report(gender="female")
    assert "Prostate:" not in text
    assert "Uterus: Uterus is normal in size and shape. Musculature shows normal echopattern. Endometrial echoes are central." in text
    assert "Adenexa: no cyst / mass seen. both ovaries appears normal." in text
    assert "Significant findings : Chronic cholecystitis with cholilithiasis." in text
    assert "Please correlate clinically" not in text
    assert text.split("\n")[-2] == END_OF_REPORT_LINE[Gender.FEMALE]


def test_overrides_and_patient_info():
    from sonoscribe.composer.canonical import build_usg_report

    text = build_usg_report(
        patient={"name": "Asha Rao", "date": "01/02/2026"},
        overrides={"liver_main": "  Liver is enlarged  ", "impression": "Hepatomegaly", "spleen_main": "   "},
    )
    assert text.startswith("NAME: Asha Rao    GENDER: Male    DATE: 01/02/2026\n")
    assert "Liver: Liver is enlarged. No focal lesion seen." in text
    assert "Spleen: is normal in size, shape & echotexture." in text
    assert "IMPRESSION: Hepatomegaly." in text


def test_impression_with_own_label_is_kept():
    from sonoscribe.composer.canonical import build_impression_line
    from sonoscribe.composer.sections import Gender

    assert build_impression_line("Impression: fatty liver", Gender.MALE) == "Impression: fatty liver."
    assert build_impression_line("Conclusion - normal study!", Gender.MALE) == "Conclusion - normal study!"
    assert build_impression_line("Impressionable", Gender.MALE) == "IMPRESSION: Impressionable."


def test_kidney_size_gets_its_own_line():
    from sonoscribe.composer.canonical import build_usg_report

    lines = build_usg_report(overrides={"kidneys_size": "Right kidney 110 mm, left kidney 105 mm"}).split("\n")
    index = lines.index("Kidneys: Right kidney 110 mm, left kidney 105 mm.")
    assert lines[index + 1].startswith("Both kidneys are normal in size")


def test_suppressed_fields_render_empty():
    from sonoscribe.composer.canonical import build_usg_report

    text = build_usg_report(
        overrides={"liver_main": "Mild fatty infiltration"},
        suppressed_fields=["liver_focal_lesion", "liver_hepatic_veins", "liver_ihbr", "liver_portal_vein"],
    )
    assert "Liver: Mild fatty infiltration.\n" in text


def test_builder_is_deterministic():
    from sonoscribe.composer.canonical import build_usg_report

    args = dict(gender="female", patient={"name": "X"}, overrides={"endometrium_measurement_mm": "8"})
    assert build_usg_report(**args) == build_usg_report(**args)
    assert "Endometrial echoes are central (8 mm)." in build_usg_report(**args)


def test_extract_male_sections():
    from sonoscribe.composer.canonical import build_usg_report
    from sonoscribe.composer.extractor import extract_canonical_sections
    from sonoscribe.composer.sections import SECTION_KEYS, SectionKey

    sections = extract_canonical_sections(build_usg_report(), "male")
    assert set(sections) == set(SECTION_KEYS)
    assert sections[SectionKey.LIVER].startswith("Is normal in size.")
    assert sections[SectionKey.PANCREAS] == "is normal in size, shape & contour. Tissue echotexture is homogenous."
    assert sections[SectionKey.PROSTATE] == (
        "The volume of prostate gland is normal.\n"
        "The prostate gland has homogeneous echotexture with intact capsule."
    )
    assert sections[SectionKey.IMPRESSION] == "no significant abnormality seen in abdomen."
    assert sections[SectionKey.NOTE] == "Please correlate clinically."
    assert sections[SectionKey.UTERUS] == ""
    assert sections[SectionKey.PELVIC] == ""


def test_extract_female_derived_sections():
    from sonoscribe.composer.canonical import build_usg_report
    from sonoscribe.composer.extractor import extract_canonical_sections
    from sonoscribe.composer.sections import SectionKey

    sections = extract_canonical_sections(build_usg_report(gender="female"), "female")
    assert sections[SectionKey.PROSTATE] == ""
    assert sections[SectionKey.PERITONEUM] == "No free fluid seen in peritoneal cavity."
    assert sections[SectionKey.LYMPH] == "No significantly enlarged lymph nodes seen."
    assert sections[SectionKey.PERITONEUM_NODES] == (
        "No free fluid seen in peritoneal cavity.\nNo significantly enlarged lymph nodes seen."
    )
    assert sections[SectionKey.PELVIC].startswith("Uterus is normal in size and shape.")
    assert "both ovaries appears normal." in sections[SectionKey.PELVIC]
    assert sections[SectionKey.IMPRESSION] == "Chronic cholecystitis with cholilithiasis."
