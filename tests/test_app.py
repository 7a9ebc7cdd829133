"""HTTP tests through Flask's test client."""

import io

import app as app_module

RESUME_TXT = (
    "Jane Doe\n"
    "Experience\n"
    "- Led a team of 5, improved deployment time by 40%\n"
    "Skills: Python, Docker\n"
).encode("utf-8")


def _upload(client, filename="cv.txt", data=RESUME_TXT, application_id="app-1"):
    form = {"file": (io.BytesIO(data), filename)}
    if application_id is not None:
        form["application_id"] = application_id
    return client.post("/api/ats/resumes/upload", data=form, content_type="multipart/form-data")


def test_health_reports_ocr_availability(client, monkeypatch):
    monkeypatch.setattr(app_module, "verify_ocr_setup", lambda: True)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json()["ocr_ready"] is True

    monkeypatch.setattr(app_module, "verify_ocr_setup", lambda: False)
    response = client.get("/health")
    assert response.status_code == 503
    assert response.get_json()["status"] == "degraded"


def test_security_headers(client):
    response = client.get("/health")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"


def test_upload_and_rank(client):
    response = _upload(client)
    assert response.status_code == 200
    body = response.get_json()
    assert body["ok"] is True
    assert body["extractionMethod"] == "txt"

    response = client.get("/api/ats/jobs/job-1/rank")
    assert response.status_code == 200
    ranking = response.get_json()
    assert ranking["ok"] is True
    assert ranking["ranked"][0]["resumeId"] == body["resumeId"]
    assert ranking["ranked"][0]["breakdown"]["skillCoverage"] == 1.0


def test_upload_requires_file_and_application(client):
    response = client.post("/api/ats/resumes/upload", data={"application_id": "app-1"},
                           content_type="multipart/form-data")
    assert response.status_code == 400
    assert response.get_json() == {"ok": False, "error": "No file uploaded"}

    response = _upload(client, application_id=None)
    assert response.status_code == 400


def test_upload_unsupported_type(client):
    response = _upload(client, filename="photo.png", data=b"\x89PNG\r\n\x1a\n\x00\x00")
    assert response.status_code == 415
    assert response.get_json()["ok"] is False


def test_upload_scanned_pdf_without_ocr(client, monkeypatch):
    from resume_intel import text_extractor

    monkeypatch.setattr(text_extractor, "_read_pdf_text_layer", lambda data: "")
    response = _upload(client, filename="scan.pdf", data=b"%PDF-1.4 image only")

    assert response.status_code == 503
    assert "OCR tools are unavailable" in response.get_json()["error"]
    assert client.get("/api/ats/jobs/job-1/rank").get_json()["ranked"] == []


def test_rank_unknown_job(client):
    response = client.get("/api/ats/jobs/nope/rank")
    assert response.status_code == 404
    assert response.get_json()["ok"] is False


def test_rank_job_without_applications(client):
    app_module.record_store.put_job({"id": "empty", "descriptionText": "Anything"})
    response = client.get("/api/ats/jobs/empty/rank")
    assert response.status_code == 200
    body = response.get_json()
    assert body["ok"] is True
    assert body["ranked"] == []


def test_rank_csv_export(client):
    _upload(client)
    response = client.get("/api/ats/jobs/job-1/rank?format=csv")
    assert response.status_code == 200
    assert response.mimetype == "text/csv"
    lines = response.get_data(as_text=True).strip().splitlines()
    assert lines[0].startswith("Rank,Resume ID,Application ID")
    assert len(lines) == 2


def test_rank_all_disables_dedup(client):
    _upload(client)
    _upload(client, data=RESUME_TXT + b"- Reduced costs by 20%\n")
    assert len(client.get("/api/ats/jobs/job-1/rank").get_json()["ranked"]) == 1

    body = client.get("/api/ats/jobs/job-1/rank?all=true").get_json()
    assert body["deduped"] is False
    assert len(body["ranked"]) == 2
    assert len(client.get("/api/ats/jobs/job-1/rank?dedupe=false").get_json()["ranked"]) == 2


def test_ingest_route_errors(client):
    assert client.post("/api/ats/applications/app-404/ingest").status_code == 404
    response = client.post("/api/ats/applications/app-1/ingest")
    assert response.status_code == 422


def test_ingest_route_success(client):
    _upload(client)
    response = client.post("/api/ats/applications/app-1/ingest")
    assert response.status_code == 200
    assert response.get_json()["applicationId"] == "app-1"


def test_backfill_route(client):
    response = client.post("/api/ats/jobs/job-1/backfill")
    assert response.status_code == 200
    body = response.get_json()
    assert body["total"] == 2
    assert body["failedCount"] == 2


def test_unknown_route_is_json(client):
    response = client.get("/api/ats/nothing-here")
    assert response.status_code == 404
    assert response.get_json()["ok"] is False


def test_rate_limit():
    app_module.rate_limit_store.clear()
    assert app_module.check_rate_limit("10.0.0.1", max_requests=2)
    assert app_module.check_rate_limit("10.0.0.1", max_requests=2)
    assert not app_module.check_rate_limit("10.0.0.1", max_requests=2)
    assert app_module.check_rate_limit("10.0.0.2", max_requests=2)
