import base64
import json

import anthropic
import httpx
from fastapi.testclient import TestClient

from conftest import make_image
from incident_scan.main import create_app

FORM = {
    "act_number": "1234",
    "date": "05/03/2024",
    "time": "14:32",
    "address": "Av. Argentina 455",
    "commander": "J. Pérez",
    "vehicles": [{"brand": "Toyota", "plate": "AB-CD-12"}],
    "involved_people": [{"name": "Ana Rojas"}, {"name": "Luis Soto", "run": "22.222.222-2"}],
}


def _upload(*images):
    return [("files", (f"page{n}.jpg", data, "image/jpeg")) for n, data in enumerate(images, 1)]


def _save(client, extraction=FORM, schema_version="v2"):
    resp = client.post("/api/incidents", json={"schema_version": schema_version, "extraction": extraction})
    assert resp.status_code == 201
    return resp.json()


def test_health_sets_security_headers(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers["X-Frame-Options"] == "DENY"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


# -- extraction ---------------------------------------------------------------


def test_extract_uploaded_photos(client, fake_messages):
    fake_messages.text = f"```json\n{json.dumps(FORM)}\n```"

    resp = client.post("/api/extract", files=_upload(make_image(3000, 4000), make_image(800, 600)))

    assert resp.status_code == 200
    body = resp.json()
    assert body["outcome"] == "extracted"
    assert body["fields"] == FORM
    assert body["image_count"] == 2
    assert body["schema_version"] == "v2"
    assert len(fake_messages.calls) == 1


def test_extract_with_requested_spec_version(client, fake_messages):
    resp = client.post("/api/extract", files=_upload(make_image(100, 100)), data={"spec_version": "v1"})

    assert resp.status_code == 200
    assert resp.json()["schema_version"] == "v1"


def test_extract_inline_data_uris(client, fake_messages):
    uri = "data:image/png;base64," + base64.b64encode(make_image(50, 50, fmt="PNG")).decode()
    resp = client.post("/api/extract/inline", json={"images": [uri]})

    assert resp.status_code == 200
    assert resp.json()["image_count"] == 1


def test_extract_parse_failure_is_a_result(client, fake_messages):
    fake_messages.text = "I could not read the form."

    resp = client.post("/api/extract", files=_upload(make_image(100, 100)))

    assert resp.status_code == 200
    body = resp.json()
    assert body["outcome"] == "parse_failure"
    assert body["fields"] == {}
    assert body["note"]


def test_extract_rejects_too_many_images_before_upstream(client, fake_messages):
    resp = client.post("/api/extract", files=_upload(*[make_image(20, 20)] * 6))

    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_input"
    assert fake_messages.calls == []


def test_extract_rejects_non_images(client, fake_messages):
    resp = client.post("/api/extract", files=[("files", ("notes.txt", b"hello", "text/plain"))])

    assert resp.status_code == 400
    assert resp.json()["code"] == "unsupported_image_format"
    assert fake_messages.calls == []


def test_extract_requires_files(client):
    resp = client.post("/api/extract")

    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_input"


def test_upstream_quota_surfaces_as_429_without_provider_text(client, fake_messages):
    response = httpx.Response(429, request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))
    fake_messages.error = anthropic.RateLimitError("org quota 4000 tpm exceeded", response=response, body=None)

    resp = client.post("/api/extract", files=_upload(make_image(100, 100)))

    assert resp.status_code == 429
    body = resp.json()
    assert body["code"] == "quota_exceeded"
    assert "tpm" not in body["error"]


def test_rate_limit_ignores_rotating_client_ids(settings, extraction_service, fake_messages):
    app = create_app(settings.model_copy(update={"rate_limit_requests": 2}))
    app.state.extraction_service = extraction_service

    with TestClient(app) as client:
        codes = [
            client.post(
                "/api/extract", files=_upload(make_image(20, 20)), headers={"X-Client-Id": f"rotating-{n}"}
            ).status_code
            for n in range(6)
        ]

    assert codes == [200, 200, 429, 429, 429, 429]
    assert len(fake_messages.calls) == 2


def test_rate_limit_per_trusted_client_id(settings, extraction_service):
    app = create_app(
        settings.model_copy(update={"rate_limit_requests": 2, "rate_limit_trust_client_id": True})
    )
    app.state.extraction_service = extraction_service

    with TestClient(app) as client:
        headers = {"X-Client-Id": "station-7"}
        for _ in range(2):
            assert client.post("/api/extract", files=_upload(make_image(20, 20)), headers=headers).status_code == 200

        resp = client.post("/api/extract", files=_upload(make_image(20, 20)), headers=headers)
        assert resp.status_code == 429
        assert resp.json()["code"] == "rate_limited"

        other = client.post("/api/extract", files=_upload(make_image(20, 20)), headers={"X-Client-Id": "station-8"})
        assert other.status_code == 200


def test_missing_api_key_is_a_configuration_error(settings):
    app = create_app(settings.model_copy(update={"anthropic_api_key": ""}))

    with TestClient(app) as client:
        resp = client.post("/api/extract", files=_upload(make_image(20, 20)))

    assert resp.status_code == 500
    assert resp.json()["code"] == "configuration_error"


# -- incidents ----------------------------------------------------------------


def test_save_and_read_incident(client):
    result = _save(client)

    assert result["success"] is True
    assert result["status"] == "saved"

    resp = client.get(f"/api/incidents/{result['incident_id']}")
    assert resp.status_code == 200
    incident = resp.json()
    assert incident["report_date"] == "2024-03-05"
    assert incident["status"] == "saved"
    assert incident["schema_version"] == "v2"
    assert len(incident["vehicles"]) == 1
    assert [p["run"] for p in incident["involved_people"]] == [None, "22.222.222-2"]
    assert incident["raw_data"] == FORM


def test_list_incidents(client):
    first = _save(client)
    second = _save(client, {**FORM, "date": "20/04/2024", "address": "Blanco 1"})

    resp = client.get("/api/incidents")
    assert resp.status_code == 200
    assert [i["id"] for i in resp.json()] == [second["incident_id"], first["incident_id"]]

    resp = client.get("/api/incidents", params={"date_from": "2024-04-01"})
    assert [i["id"] for i in resp.json()] == [second["incident_id"]]

    assert client.get("/api/incidents", params={"date_from": "April"}).status_code == 400


def test_reextract_twice_yields_same_state(client):
    incident_id = _save(client)["incident_id"]
    newer = {**FORM, "vehicles": [{"plate": "KK-00-01"}, {"plate": "KK-00-02"}]}

    states = []
    for _ in range(2):
        resp = client.put(f"/api/incidents/{incident_id}/extraction", json={"extraction": newer})
        assert resp.status_code == 200
        assert resp.json()["status"] == "re_extracted"
        states.append(client.get(f"/api/incidents/{incident_id}").json())

    plates = [[v["plate"] for v in s["vehicles"]] for s in states]
    assert plates == [["KK-00-01", "KK-00-02"]] * 2
    assert len(states[1]["involved_people"]) == 2


def test_patch_sanitizes_and_marks_edited(client):
    incident_id = _save(client)["incident_id"]

    resp = client.patch(
        f"/api/incidents/{incident_id}",
        json={"address": "<script>alert(1)</script> Blanco 1", "injured_count": 3},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "edited"
    assert "<" not in body["address"]
    assert body["injured_count"] == 3
    assert body["act_number"] == "1234"


def test_patch_rejects_unknown_fields_and_bad_values(client):
    incident_id = _save(client)["incident_id"]

    assert client.patch(f"/api/incidents/{incident_id}", json={"raw_data": {}}).status_code == 400
    assert client.patch(f"/api/incidents/{incident_id}", json={"injured_count": -1}).status_code == 400
    assert client.patch(f"/api/incidents/{incident_id}", json={"report_date": "05/03/2024"}).status_code == 400


def test_delete_incident(client):
    incident_id = _save(client)["incident_id"]

    assert client.delete(f"/api/incidents/{incident_id}").status_code == 204

    resp = client.get(f"/api/incidents/{incident_id}")
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"
    assert client.delete(f"/api/incidents/{incident_id}").status_code == 404


def test_save_rejects_unknown_schema_version(client):
    resp = client.post("/api/incidents", json={"schema_version": "v9", "extraction": FORM})

    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_input"


# -- reports ------------------------------------------------------------------


def test_monthly_report(client):
    _save(client)
    _save(client, {**FORM, "date": "20/04/2024"})

    resp = client.get("/api/reports/monthly", params={"month": "2024-03"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["month"] == "2024-03"
    assert body["total_incidents"] == 1
    assert body["compliance_percentage"] == 100


def test_monthly_report_rejects_bad_month(client):
    assert client.get("/api/reports/monthly", params={"month": "2024-13"}).status_code == 400
    assert client.get("/api/reports/monthly", params={"month": "March"}).status_code == 400


def test_dashboard(client):
    _save(client)

    resp = client.get("/api/reports/dashboard")

    assert resp.status_code == 200
    body = resp.json()
    assert body["total_incidents"] == 1
    assert body["total_people"] == 2
    assert len(body["incidents_trend"]) == 6
