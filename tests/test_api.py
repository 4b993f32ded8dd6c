"""Tests for the JSON API."""

import pytest

TEMPLATE = "LIVER FINDINGS\n- normal study\nSPLEEN\n- normal"


@pytest.fixture
def client(store):
    from fastapi.testclient import TestClient

    from sonoscribe.web.app import app
    from sonoscribe.web.routes.api import get_store

    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_render_endpoint(client):
    resp = client.post("/api/render", json={
        "template_text": TEMPLATE,
        "mapping": {"LIVER": "Liver findings"},
        "overrides": {"liver_main": "Mild fatty infiltration"},
        "suppressed_fields": ["liver_focal_lesion", "liver_hepatic_veins", "liver_ihbr", "liver_portal_vein"],
    })
    assert resp.status_code == 200
    data = resp.json()
    assert data["text"] == "LIVER FINDINGS\n- Mild fatty infiltration.\nSPLEEN\n- normal"
    assert data["sections_replaced"] == 1
    assert data["used_fallback_detection"] is True
    assert data["forced_canonical_fallback"] is False


def test_render_rejects_bad_templates(client):
    from sonoscribe.config import settings

    assert client.post("/api/render", json={"template_text": "   "}).status_code == 400
    too_long = "x" * (settings.max_template_chars + 1)
    assert client.post("/api/render", json={"template_text": too_long}).status_code == 413


def test_render_uses_saved_mapping(client):
    from sonoscribe.composer.resolver import hash_template_text

    template = "Hepatobiliary\n- ok"
    template_hash = hash_template_text(template)
    assert client.put(f"/api/mappings/{template_hash}", json={"mapping": {"LIVER": "Hepatobiliary"}}).status_code == 200

    data = client.post("/api/render", json={
        "template_text": template,
        "overrides": {"liver_main": "Coarse"},
    }).json()
    assert data["template_hash"] == template_hash
    assert data["text"].startswith("Hepatobiliary\n- Coarse.")


def test_mapping_endpoints(client):
    assert client.get("/api/mappings/t1").status_code == 404
    resp = client.put("/api/mappings/t1", json={"LIVER": "Hepatic", "NOPE": "x"})
    assert resp.json() == {"template_hash": "t1", "mapping": {"LIVER": "Hepatic"}}
    assert client.get("/api/mappings/t1").json()["mapping"] == {"LIVER": "Hepatic"}


def test_headings_endpoint(client):
    data = client.post("/api/headings", json={"template_text": TEMPLATE}).json()
    assert data["candidates"] == [
        {"line_index": 0, "text": "LIVER FINDINGS", "section": "LIVER"},
        {"line_index": 2, "text": "SPLEEN", "section": "SPLEEN"},
    ]
    assert data["auto_mapping"] == {"LIVER": "LIVER FINDINGS", "SPLEEN": "SPLEEN"}
    assert data["saved_mapping"] is None


def test_template_profile_seed(client):
    data = client.post("/api/template-profile", json={"template_text": TEMPLATE}).json()
    assert data["profile"]["template_hash"] == data["template_hash"]
    assert [s["heading"] for s in data["profile"]["sections"]] == ["LIVER FINDINGS", "SPLEEN"]


def test_profile_lifecycle(client):
    assert client.get("/api/profiles/t1").status_code == 404
    assert client.post("/api/profiles/t1/approve").status_code == 404
    assert client.put("/api/profiles/t1", json={"profile": "garbage"}).status_code == 400

    profile = {"sections": [{"id": "spleen", "heading": "SPLEEN", "depends_on": ["spleen_size"]}]}
    saved = client.put("/api/profiles/t1", json=profile).json()
    assert saved["approved"] is False
    assert client.post("/api/profiles/t1/approve").json()["approved"] is True
    assert client.get("/api/profiles/t1").json()["approved"] is True


def test_render_applies_approved_profile(client):
    from sonoscribe.composer.resolver import hash_template_text

    template_hash = hash_template_text(TEMPLATE)
    profile = {"sections": [{"id": "spleen", "heading": "SPLEEN", "depends_on": ["spleen_size"]}]}
    client.put(f"/api/profiles/{template_hash}", json=profile)
    client.post(f"/api/profiles/{template_hash}/approve")

    data = client.post("/api/render", json={
        "template_text": TEMPLATE,
        "profile_values": {"spleen_size": "11 cm"},
    }).json()
    assert data["text"] == "LIVER FINDINGS\n- normal study\nSPLEEN\n- 11 cm"
    assert data["profile_sections_replaced"] == 1


def test_compose_and_report_lifecycle(client):
    resp = client.post("/api/compose", json={
        "raw_model_text": '```json\n{"fields": {"liver_main": "Enlarged"}, "patient_name": "Ravi",}\n```',
        "save": True,
    })
    assert resp.status_code == 200
    data = resp.json()
    assert data["gender"] == "male"
    assert "Liver: Enlarged." in data["observations"]

    report = client.get(f"/api/reports/{data['report_id']}").json()
    assert report["patient_name"] == "Ravi"
    assert report["status"] == "pending_review"
    assert report["flags"] == data["flags"]

    assert client.put(f"/api/reports/{data['report_id']}/status", json={"status": "completed"}).json()["status"] == "completed"
    assert client.put(f"/api/reports/{data['report_id']}/status", json={"status": "nope"}).status_code == 400
    assert client.get("/api/reports/9999").status_code == 404
    assert client.put("/api/reports/9999/status", json={"status": "completed"}).status_code == 404


def test_compose_rejects_bad_payloads(client):
    assert client.post("/api/compose", json={}).status_code == 400
    assert client.post("/api/compose", json={"raw_model_text": "no json"}).status_code == 400
    assert client.post("/api/compose", json={
        "parsed": {},
        "template_id": "USG_ABDOMEN_CUSTOM",
        "custom_template_text": "",
    }).status_code == 400


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}
