"""Tests for the HTTP surface; extraction itself is replaced by a stub."""

import pytest
from fastapi.testclient import TestClient

from foldcss.core.config import settings
from foldcss.core.errors import EngineCrashError, InputError, PipelineTimeoutError
from foldcss.main import app
from foldcss.models.critical_css import CriticalCSSResult
from foldcss.services import job_store
from foldcss.services.critical_css import critical_css_extractor

AUTH = {"Authorization": "change-me"}
PAYLOAD = {"url": "https://example.com/", "css_string": ".hero { color: red; }"}


@pytest.fixture
def client():
    job_store.job_store.clear()
    with TestClient(app) as test_client:
        yield test_client
    job_store.job_store.clear()


@pytest.fixture
def stub_extract(monkeypatch):
    """Replace the extractor's ``extract`` with one returning or raising ``outcome``."""

    calls = []

    def install(outcome):
        async def fake_extract(request, browser=None):
            calls.append(request)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        monkeypatch.setattr(critical_css_extractor, "extract", fake_extract)
        return calls

    return install


RESULT = CriticalCSSResult(
    critical_css=".hero {\n  color: red;\n}\n",
    viewport={"width": 1300, "height": 900},
    duration_ms=12,
    attempts=1,
)


class TestHealth:
    def test_healthz_needs_no_key(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_auth_check(self, client):
        assert client.get("/auth-check").status_code == 401
        assert client.get("/auth-check", headers=AUTH).json() == {"status": "authorized"}
        assert client.get("/auth-check", headers={"Authorization": "Bearer change-me"}).status_code == 200


class TestExtractRoute:
    def test_returns_result(self, client, stub_extract):
        calls = stub_extract(RESULT)
        response = client.post(
            "/v1/critical-css/extract",
            json={**PAYLOAD, "width": 375, "force_include": [".modal", {"kind": "pattern", "value": "^\\.nav"}]},
            headers=AUTH,
        )
        assert response.status_code == 200
        assert response.json()["critical_css"] == RESULT.critical_css

        sent = calls[0]
        assert sent.width == 375
        assert [entry.kind for entry in sent.force_include] == ["exact", "pattern"]

    def test_requires_api_key(self, client, stub_extract):
        stub_extract(RESULT)
        assert client.post("/v1/critical-css/extract", json=PAYLOAD).status_code == 401

    def test_rejects_request_without_stylesheet(self, client, stub_extract):
        calls = stub_extract(RESULT)
        response = client.post("/v1/critical-css/extract", json={"url": "https://example.com/"}, headers=AUTH)
        assert response.status_code == 422
        assert calls == []

    def test_rejects_invalid_property_pattern(self, client, stub_extract):
        stub_extract(RESULT)
        response = client.post(
            "/v1/critical-css/extract",
            json={**PAYLOAD, "properties_to_remove": ["("]},
            headers=AUTH,
        )
        assert response.status_code == 422

    def test_rejects_invalid_force_include_pattern(self, client, stub_extract):
        calls = stub_extract(RESULT)
        response = client.post(
            "/v1/critical-css/extract",
            json={**PAYLOAD, "force_include": [{"kind": "pattern", "value": "(unclosed"}]},
            headers=AUTH,
        )
        assert response.status_code == 422
        assert calls == []

    @pytest.mark.parametrize(
        "error, status_code, kind",
        [
            (InputError("css should not be empty"), 400, "input"),
            (PipelineTimeoutError("too slow"), 504, "timeout"),
            (EngineCrashError("crashed twice"), 500, "engine_crash"),
        ],
    )
    def test_errors_are_mapped(self, client, stub_extract, error, status_code, kind):
        stub_extract(error)
        response = client.post("/v1/critical-css/extract", json=PAYLOAD, headers=AUTH)
        assert response.status_code == status_code
        assert response.json() == {"detail": str(error), "kind": kind}


class TestJobs:
    def test_job_completes(self, client, stub_extract):
        stub_extract(RESULT)
        response = client.post("/v1/critical-css/generate", json=PAYLOAD, headers=AUTH)
        assert response.status_code == 202
        job_id = response.json()["job_id"]
        assert job_id.startswith("css_")

        status = client.get(f"/v1/critical-css/{job_id}", headers=AUTH).json()
        assert status["status"] == "completed"
        assert status["url"] == PAYLOAD["url"]
        assert status["result"]["critical_css"] == RESULT.critical_css
        assert status["error"] is None

    def test_job_failure_keeps_error_kind(self, client, stub_extract):
        stub_extract(PipelineTimeoutError("critical css generation exceeded 30000ms"))
        job_id = client.post("/v1/critical-css/generate", json=PAYLOAD, headers=AUTH).json()["job_id"]

        status = client.get(f"/v1/critical-css/{job_id}", headers=AUTH).json()
        assert status["status"] == "failed"
        assert status["error_kind"] == "timeout"
        assert status["result"] is None

    def test_unknown_job(self, client):
        response = client.get("/v1/critical-css/css_missing", headers=AUTH)
        assert response.status_code == 404


class TestStylesheetPaths:
    def test_file_paths_are_rejected_without_a_root(self, client, stub_extract, monkeypatch):
        monkeypatch.setattr(settings, "stylesheet_root", None)
        calls = stub_extract(RESULT)
        response = client.post(
            "/v1/critical-css/extract",
            json={"url": "https://example.com/", "css_file_path": "/etc/passwd"},
            headers=AUTH,
        )
        assert response.status_code == 400
        assert calls == []

    def test_file_paths_resolve_inside_the_root(self, client, stub_extract, monkeypatch, tmp_path):
        monkeypatch.setattr(settings, "stylesheet_root", str(tmp_path))
        calls = stub_extract(RESULT)
        response = client.post(
            "/v1/critical-css/extract",
            json={"url": "https://example.com/", "css_file_path": "themes/site.css"},
            headers=AUTH,
        )
        assert response.status_code == 200
        assert calls[0].css_file_path == str(tmp_path.resolve() / "themes" / "site.css")

    @pytest.mark.parametrize("path", ["../secret.css", "/etc/passwd"])
    def test_file_paths_cannot_escape_the_root(self, client, stub_extract, monkeypatch, tmp_path, path):
        monkeypatch.setattr(settings, "stylesheet_root", str(tmp_path / "styles"))
        calls = stub_extract(RESULT)
        response = client.post(
            "/v1/critical-css/extract",
            json={"url": "https://example.com/", "css_file_path": path},
            headers=AUTH,
        )
        assert response.status_code == 400
        assert calls == []

    def test_rejected_path_creates_no_job(self, client, stub_extract, monkeypatch):
        monkeypatch.setattr(settings, "stylesheet_root", None)
        calls = stub_extract(RESULT)
        response = client.post(
            "/v1/critical-css/generate",
            json={"url": "https://example.com/", "css_file_path": "site.css"},
            headers=AUTH,
        )
        assert response.status_code == 400
        assert job_store.job_store.all_jobs() == {}
        assert calls == []
