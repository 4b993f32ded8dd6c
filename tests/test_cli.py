"""Tests for the click CLI."""

import json


def test_canonical_command():
    from click.testing import CliRunner

    from sonoscribe.cli import cli

    result = CliRunner().invoke(cli, ["canonical", "--gender", "female", "--name", "Asha"])
    assert result.exit_code == 0
    assert "NAME: Asha    GENDER: Female" in result.output
    assert "Significant findings :" in result.output


def test_candidates_command(tmp_path):
    from click.testing import CliRunner

    from sonoscribe.cli import cli

    template = tmp_path / "template.txt"
    template.write_text("LIVER FINDINGS\n- normal\nSomething else\n", encoding="utf-8")
    result = CliRunner().invoke(cli, ["candidates", str(template)])
    assert result.exit_code == 0
    assert "Template hash: t" in result.output
    assert "LIVER" in result.output
    assert "Something else" in result.output


def test_render_command(tmp_path):
    from click.testing import CliRunner

    from sonoscribe.cli import cli

    template = tmp_path / "template.txt"
    template.write_text("Hepatobiliary\n- ok\n", encoding="utf-8")
    overrides = tmp_path / "overrides.json"
    overrides.write_text(json.dumps({"liver_main": "Coarse echotexture"}), encoding="utf-8")
    mapping = tmp_path / "mapping.json"
    mapping.write_text(json.dumps({"LIVER": "Hepatobiliary"}), encoding="utf-8")

    result = CliRunner().invoke(cli, [
        "render", str(template), "--overrides", str(overrides), "--mapping", str(mapping),
    ])
    assert result.exit_code == 0
    assert "- Coarse echotexture. No focal lesion seen." in result.output
    assert "sections detected: 1, replaced: 1" in result.output


def test_render_command_missing_file(tmp_path):
    from click.testing import CliRunner

    from sonoscribe.cli import cli

    result = CliRunner().invoke(cli, ["render", str(tmp_path / "missing.txt")])
    assert result.exit_code == 1
    assert "Could not read template" in result.output


def test_sanitize_profile_command(tmp_path):
    from click.testing import CliRunner

    from sonoscribe.cli import cli

    good = tmp_path / "profile.json"
    good.write_text(json.dumps({"sections": [{"heading": "Hepatic survey"}]}), encoding="utf-8")
    result = CliRunner().invoke(cli, ["sanitize-profile", str(good), "--template-hash", "tabc"])
    assert result.exit_code == 0
    assert json.loads(result.output)["sections"][0]["id"] == "hepatic_survey"

    bad = tmp_path / "bad.json"
    bad.write_text("[]", encoding="utf-8")
    result = CliRunner().invoke(cli, ["sanitize-profile", str(bad)])
    assert result.exit_code == 1
