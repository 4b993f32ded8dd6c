"""Click CLI for SonoScribe."""

import json
import logging
import sys

import click

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def _read_json_file(path: str | None, label: str):
    if not path:
        return None
    try:
        with open(path, encoding="utf-8") as fh:
            return json.load(fh)
    except (OSError, ValueError) as e:
        click.echo(f"Could not read {label} from {path}: {e}", err=True)
        sys.exit(1)


def _read_text_file(path: str) -> str:
    try:
        with open(path, encoding="utf-8", newline="") as fh:
            return fh.read()
    except OSError as e:
        click.echo(f"Could not read template {path}: {e}", err=True)
        sys.exit(1)


@click.group()
def cli():
    """SonoScribe: USG report template rendering."""


@cli.command()
def init_db():
    """Create the SQLite schema."""
    from sonoscribe.database import init_db
    init_db()
    click.echo("Database initialized successfully.")


@cli.command()
@click.option("--gender", type=click.Choice(["male", "female"]), default="male")
@click.option("--name", default="", help="Patient name")
@click.option("--date", "exam_date", default="", help="Exam date")
@click.option("--overrides", "overrides_path", type=click.Path(), default=None, help="JSON file of field overrides")
def canonical(gender, name, exam_date, overrides_path):
    """Print the canonical whole-abdomen report."""
    from sonoscribe.composer.canonical import build_usg_report

    overrides = _read_json_file(overrides_path, "overrides") or {}
    patient = {"name": name, "date": exam_date}
    click.echo(build_usg_report(gender=gender, patient=patient, overrides=overrides))


@cli.command()
@click.argument("template_path", type=click.Path())
def candidates(template_path):
    """List heading candidates in a template with their section classification."""
    from sonoscribe.composer.headings import classify_heading_candidate, detect_heading_candidates
    from sonoscribe.composer.resolver import hash_template_text

    text = _read_text_file(template_path)
    click.echo(f"Template hash: {hash_template_text(text)}")
    for c in detect_heading_candidates(text):
        key = classify_heading_candidate(c.raw_text)
        label = key.value if key else "-"
        click.echo(f"  {c.line_index:4d}  {label:16s}  {c.raw_text}")


@cli.command()
@click.argument("template_path", type=click.Path())
@click.option("--overrides", "overrides_path", type=click.Path(), default=None, help="JSON file of field overrides")
@click.option("--mapping", "mapping_path", type=click.Path(), default=None, help="JSON file of heading mapping")
@click.option("--organ-states", "states_path", type=click.Path(), default=None, help="JSON file of organ states")
@click.option("--profile", "profile_path", type=click.Path(), default=None, help="JSON file of template profile")
@click.option("--gender", type=click.Choice(["male", "female"]), default="male")
@click.option("--name", default="", help="Patient name")
@click.option("--date", "exam_date", default="", help="Exam date")
def render(template_path, overrides_path, mapping_path, states_path, profile_path, gender, name, exam_date):
    """Render dictated overrides into a custom template."""
    from sonoscribe.composer.profile import render_profile_sections, sanitize_template_profile
    from sonoscribe.composer.renderer import render_custom_template

    text = _read_text_file(template_path)
    overrides = _read_json_file(overrides_path, "overrides") or {}
    mapping = _read_json_file(mapping_path, "mapping")
    organ_states = _read_json_file(states_path, "organ states")

    result = render_custom_template(
        text,
        mapping=mapping,
        overrides=overrides,
        gender=gender,
        patient={"name": name, "date": exam_date},
        organ_states=organ_states,
    )
    output = result.text

    if profile_path and not result.forced_canonical_fallback:
        profile = sanitize_template_profile(_read_json_file(profile_path, "profile"))
        if profile is None:
            click.echo("Profile file is not a usable template profile.", err=True)
            sys.exit(1)
        output = render_profile_sections(output, profile, overrides).text

    click.echo(output)
    click.echo(
        f"\n[sections detected: {result.sections_detected}, replaced: {result.sections_replaced}, "
        f"heuristic: {'yes' if result.used_fallback_detection else 'no'}]",
        err=True,
    )
    if result.forced_canonical_fallback:
        click.echo(f"[{result.fallback_reason}]", err=True)


@cli.command()
@click.argument("profile_path", type=click.Path())
@click.option("--template-hash", default=None, help="Template hash to stamp on the profile")
def sanitize_profile(profile_path, template_hash):
    """Validate a template profile JSON file and print the sanitized form."""
    from sonoscribe.composer.profile import sanitize_template_profile

    profile = sanitize_template_profile(_read_json_file(profile_path, "profile"), template_hash=template_hash)
    if profile is None:
        click.echo("Profile file is not a usable template profile.", err=True)
        sys.exit(1)
    click.echo(profile.model_dump_json(indent=2))


@cli.command()
@click.option("--status", default=None, help="Only reports with this status")
@click.option("--limit", default=20, type=int, help="Max reports to list")
def reports(status, limit):
    """List saved reports, newest first."""
    from sonoscribe.database import get_db, init_db
    from sonoscribe.models import ReportRecord

    init_db()
    with get_db() as session:
        query = session.query(ReportRecord)
        if status:
            query = query.filter(ReportRecord.status == status)
        rows = query.order_by(ReportRecord.id.desc()).limit(limit).all()
        for r in rows:
            flags = len(json.loads(r.flags_json or "[]"))
            click.echo(
                f"  {r.id:6d}  {r.template_id:20s}  {r.status:15s}  "
                f"{r.patient_name or '-':30s}  {flags} flag(s)"
            )


@cli.command()
def run_web():
    """Start the FastAPI web interface."""
    import uvicorn
    from sonoscribe.config import settings
    from sonoscribe.database import init_db
    init_db()
    uvicorn.run(
        "sonoscribe.web.app:app",
        host=settings.web_host,
        port=settings.web_port,
        reload=False,
    )


if __name__ == "__main__":
    cli()
