from __future__ import annotations

import json
from pathlib import Path

import pytest
from sqlalchemy import func, select

from conftest import build_pdf
from scrum_sensei.models import Material
from scrum_sensei.storage import PublicStorage, unique_name


def _uploads(settings) -> Path:
    return Path(settings.public_dir) / "uploads"


def test_unique_name_keeps_stem_and_extension() -> None:
    first = unique_name("Scrum Guide.PDF")
    second = unique_name("Scrum Guide.PDF")
    assert first.startswith("Scrum_Guide_")
    assert first.endswith(".pdf")
    assert first != second


def test_resolve_refuses_paths_outside_public_dir(tmp_path: Path) -> None:
    storage = PublicStorage(tmp_path / "public")
    storage.ensure()
    assert storage.resolve("/uploads/a.pdf") == (tmp_path / "public" / "uploads" / "a.pdf").resolve()
    with pytest.raises(ValueError):
        storage.resolve("/../secret.txt")


def test_remove_missing_file_is_best_effort(tmp_path: Path) -> None:
    storage = PublicStorage(tmp_path / "public")
    assert storage.remove("/uploads/missing.pdf") is False
    assert storage.remove(None) is False


def test_non_pdf_upload_is_rejected_and_nothing_written(client, settings) -> None:
    response = client.post(
        "/api/admin/upload",
        files={"file": ("notes.txt", b"plain text", "text/plain")},
    )
    assert response.status_code == 400
    assert list(_uploads(settings).iterdir()) == []


def test_missing_file_is_rejected(client) -> None:
    response = client.post("/api/admin/upload")
    assert response.status_code == 400


def test_admin_upload_list_and_delete(client, settings) -> None:
    response = client.post(
        "/api/admin/upload",
        files={"file": ("guide.pdf", build_pdf(["Scrum roles"]), "application/pdf")},
    )
    assert response.status_code == 200
    stored = response.json()["file"]["id"]
    assert (_uploads(settings) / stored).is_file()

    files = client.get("/api/admin/upload").json()["files"]
    assert [f["filename"] for f in files] == [stored]

    assert client.delete("/api/admin/upload").status_code == 400
    assert client.delete("/api/admin/upload", params={"filename": "nope.pdf"}).status_code == 404
    assert client.delete("/api/admin/upload", params={"filename": f"../uploads/{stored}"}).status_code == 200
    assert not (_uploads(settings) / stored).exists()


def test_upload_creates_pdf_material_with_chunks(client, session) -> None:
    pdf = build_pdf(["The Product Owner orders the backlog.", "The Developers build the increment."])
    response = client.post("/api/upload", files={"file": ("roles.pdf", pdf, "application/pdf")})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["chunks"]
    assert "Product Owner" in body["chunks"][0]["text"]
    assert body["chunks"][0]["metadata"]["title"] == "roles"

    material = session.get(Material, body["materialId"])
    assert material.type == "pdf"
    assert material.status == "draft"
    assert json.loads(material.content)[0]["metadata"]["source"] == body["fileName"]


def test_unreadable_pdf_still_creates_material(client, session) -> None:
    response = client.post("/api/upload", files={"file": ("broken.pdf", b"%PDF-garbage", "application/pdf")})
    assert response.status_code == 200
    assert response.json()["chunks"] == []
    assert session.scalar(select(func.count()).select_from(Material)) == 1


def test_pdf_files_listing_and_delete(client, settings, session) -> None:
    body = client.post(
        "/api/upload",
        files={"file": ("events.pdf", build_pdf(["Sprint Planning"]), "application/pdf")},
    ).json()
    files = client.get("/api/admin/pdf-files").json()["files"]
    assert [f["id"] for f in files] == [str(body["materialId"])]

    assert client.delete("/api/admin/pdf-files").status_code == 400
    assert client.delete("/api/admin/pdf-files", params={"id": 999}).status_code == 404
    assert client.delete("/api/admin/pdf-files", params={"id": body["materialId"]}).status_code == 200
    assert not (_uploads(settings) / body["fileName"]).exists()
    assert session.get(Material, body["materialId"]) is None


def test_pdf_files_skip_materials_whose_file_is_gone(client, settings) -> None:
    body = client.post(
        "/api/upload",
        files={"file": ("artifacts.pdf", build_pdf(["Increment"]), "application/pdf")},
    ).json()
    (_uploads(settings) / body["fileName"]).unlink()
    assert client.get("/api/admin/pdf-files").json()["files"] == []


def test_delete_material_survives_missing_file(client, settings, session) -> None:
    body = client.post(
        "/api/upload",
        files={"file": ("values.pdf", build_pdf(["Courage"]), "application/pdf")},
    ).json()
    (_uploads(settings) / body["fileName"]).unlink()
    response = client.delete(f"/api/admin/materials/{body['materialId']}")
    assert response.status_code == 200
    assert session.get(Material, body["materialId"]) is None


def test_extract_pdf(client) -> None:
    stored = client.post(
        "/api/admin/upload",
        files={"file": ("pillars.pdf", build_pdf(["Transparency", "Inspection", "Adaptation"]), "application/pdf")},
    ).json()["file"]["id"]

    assert client.post("/api/admin/extract-pdf", json={}).status_code == 400
    assert client.post("/api/admin/extract-pdf", json={"fileName": "missing.pdf"}).status_code == 404

    body = client.post("/api/admin/extract-pdf", json={"fileName": stored}).json()
    assert body["pageCount"] == 1
    assert "Inspection" in body["text"]
