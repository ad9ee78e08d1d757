"""
HTTP API tests using FastAPI's TestClient.
"""
import io
from unittest.mock import AsyncMock, patch

import pytest
from docx import Document
from fastapi.testclient import TestClient

from main import app
from mathword.config import DOCX_MIME_TYPE, Settings
from mathword.errors import ApiKeyInvalidError, ApiKeyMissingError, RateLimitedError


@pytest.fixture
def client():
    return TestClient(app)


def test_root(client):
    assert client.get("/").status_code == 200


def test_parse_formula(client):
    response = client.post("/parse-formula", json={"latex": "\\frac{1}{2}"})
    assert response.status_code == 200
    data = response.json()
    assert data["outcome"]["type"] == "parsed"
    fraction = data["outcome"]["nodes"][0]
    assert fraction["type"] == "fraction"
    assert fraction["numerator"] == [{"type": "run", "text": "1"}]
    assert data["text"] == "(1)/(2)"


def test_parse_formula_fallback(client):
    latex = "x^{" * 200 + "1" + "}" * 200
    data = client.post("/parse-formula", json={"latex": latex}).json()
    assert data["outcome"]["type"] == "fallback"
    assert data["text"] == latex


def test_segment(client):
    data = client.post("/segment", json={"text": "**a** $x$\nplain"}).json()
    assert len(data) == 2
    assert [r["type"] for r in data[0]["runs"]] == ["bold", "plain", "formula"]
    assert data[1]["runs"] == [{"type": "plain", "text": "plain", "error": None}]


def test_correct_rejects_empty_text(client):
    assert client.post("/correct", json={"text": "  "}).status_code == 400


def test_correct_maps_errors(client):
    with patch("main.correct_text", AsyncMock(side_effect=ApiKeyMissingError("no key"))):
        assert client.post("/correct", json={"text": "x"}).status_code == 401
    with patch("main.correct_text", AsyncMock(side_effect=RateLimitedError("slow down"))):
        assert client.post("/correct", json={"text": "x"}).status_code == 503
    with patch("main.correct_text", AsyncMock(return_value="fixed")):
        assert client.post("/correct", json={"text": "x"}).json() == {"corrected_text": "fixed"}


def test_export_returns_docx(client):
    response = client.post("/export", json={"text": "Area $\\pi r^2$", "file_name": "my doc"})
    assert response.status_code == 200
    assert response.headers["content-type"] == DOCX_MIME_TYPE
    assert 'filename="my_doc.docx"' in response.headers["content-disposition"]
    doc = Document(io.BytesIO(response.content))
    assert any(p.text.startswith("Area") for p in doc.paragraphs)


def test_export_file_upload(client):
    files = {"file": ("notes.md", b"# Title\n$x_1$", "text/markdown")}
    response = client.post("/export-file", files=files)
    assert response.status_code == 200
    assert 'filename="notes.docx"' in response.headers["content-disposition"]


def test_export_file_rejects_other_types(client):
    files = {"file": ("scan.pdf", b"%PDF", "application/pdf")}
    assert client.post("/export-file", files=files).status_code == 400


def test_export_stream_sends_file_events(client):
    response = client.post("/export/stream", json={"text": "$a$"})
    assert response.status_code == 200
    body = response.text
    assert '"type": "log"' in body
    assert '"type": "file_chunk"' in body
    assert '"type": "file_end"' in body


def test_export_without_key_is_unauthorized(client):
    with patch("mathword.app_logic.get_settings", return_value=Settings(gemini_api_key="")):
        response = client.post("/export", json={"text": "x", "correct": True})
    assert response.status_code == 401


def test_export_with_rejected_key_is_unauthorized(client):
    with patch("main.convert_text_to_docx", AsyncMock(side_effect=ApiKeyInvalidError("bad key"))):
        response = client.post("/export", json={"text": "x", "correct": True})
    assert response.status_code == 401
    assert response.json()["detail"] == "bad key"


def test_export_file_key_errors_are_unauthorized(client):
    files = {"file": ("notes.txt", b"$x$", "text/plain")}
    with patch("mathword.app_logic.get_settings", return_value=Settings(gemini_api_key="")):
        response = client.post("/export-file", files=files, data={"correct": "true"})
    assert response.status_code == 401
    with patch("main.convert_text_to_docx", AsyncMock(side_effect=ApiKeyInvalidError("bad key"))):
        response = client.post("/export-file", files=files, data={"correct": "true"})
    assert response.status_code == 401


def test_export_service_failure_is_unavailable(client):
    with patch("main.convert_text_to_docx", AsyncMock(return_value=(None, "x", "AI correction failed"))):
        response = client.post("/export", json={"text": "x", "correct": True})
    assert response.status_code == 503


def test_export_stream_rejects_empty_text(client):
    assert client.post("/export/stream", json={"text": "   "}).status_code == 400
