import io

from docx import Document
from fastapi.testclient import TestClient

from src.aiba.api.main import app
from src.aiba.services import docx_export


client = TestClient(app)


def test_export_docx_returns_attachment():
    r = client.post("/api/export-docx", json={"content": "# Title\n## Section\nBody text", "title": "AI_BA_PRD"})

    assert r.status_code == 200
    assert r.headers["content-type"] == docx_export.DOCX_MEDIA_TYPE
    assert r.headers["content-disposition"] == 'attachment; filename="AI_BA_PRD.docx"'
    doc = Document(io.BytesIO(r.content))
    assert [p.text for p in doc.paragraphs] == ["Title", "Section", "Body text"]


def test_export_docx_default_filename():
    r = client.post("/export-docx", json={"content": "text"})
    assert r.headers["content-disposition"] == 'attachment; filename="PRD.docx"'


def test_export_docx_failure_is_json_500(monkeypatch):
    def _boom(_content):
        raise docx_export.ExportError("Could not build document: disk full")

    monkeypatch.setattr("src.aiba.api.routers.export.render_docx", _boom)
    r = client.post("/api/export-docx", json={"content": "x"})
    assert r.status_code == 500
    assert r.json() == {"error": "Could not build document: disk full"}


def test_export_docx_missing_content_is_400():
    r = client.post("/api/export-docx", json={"title": "x"})
    assert r.status_code == 400
    assert "content" in r.json()["error"]


def test_project_crud_flow():
    r = client.post("/api/projects", json={"title": "Bulk approvals"})
    assert r.status_code == 201
    proj = r.json()
    pid = proj["project_id"]
    assert proj["full_prd"] == ""

    r = client.put(f"/api/projects/{pid}", json={"full_prd": "# PRD"})
    assert r.status_code == 200
    assert r.json()["full_prd"] == "# PRD"
    assert r.json()["title"] == "Bulk approvals"

    r = client.get("/api/projects")
    assert [p["project_id"] for p in r.json()] == [pid]

    assert client.get("/api/projects/unknown").json() == {"error": "Project not found"}
    assert client.put("/api/projects/unknown", json={"title": "x"}).status_code == 404
