from __future__ import annotations

from sqlalchemy import func, select

from scrum_sensei.models import MATERIAL_STATUSES, Material, MaterialSection, Question


def _create(client, **payload):
    body = {"title": "Scrum Guide", "description": "Framework basics", **payload}
    response = client.post("/api/admin/materials", json=body)
    assert response.status_code == 200, response.text
    return response.json()["material"]


def test_create_material_without_title_writes_nothing(client, session) -> None:
    response = client.post("/api/admin/materials", json={"description": "No title"})
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Title is required"}
    assert session.scalar(select(func.count()).select_from(Material)) == 0


def test_create_material_rejects_unknown_type(client) -> None:
    response = client.post("/api/admin/materials", json={"title": "Video", "type": "video"})
    assert response.status_code == 400


def test_create_and_list_materials_with_sections(client) -> None:
    material = _create(client, sections=[{"title": "Roles", "content": "PO, SM, Developers"}])
    assert material["status"] == "draft"
    assert material["type"] == "text"

    listing = client.get("/api/admin/materials").json()
    assert listing["success"] is True
    assert len(listing["materials"]) == 1
    entry = listing["materials"][0]
    assert entry["questionCount"] == 0
    assert [s["title"] for s in entry["sections"]] == ["Roles"]


def test_get_material_not_found(client) -> None:
    response = client.get("/api/admin/materials/999")
    assert response.status_code == 404
    assert response.json()["success"] is False


def test_non_numeric_id_is_a_validation_error(client) -> None:
    response = client.get("/api/admin/materials/abc")
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request"


def test_update_material_requires_title(client) -> None:
    material = _create(client)
    response = client.put(f"/api/admin/materials/{material['id']}", json={"title": ""})
    assert response.status_code == 400

    response = client.put(f"/api/admin/materials/{material['id']}", json={"title": "Scrum Guide 2020"})
    assert response.status_code == 200
    assert response.json()["material"]["title"] == "Scrum Guide 2020"


def test_delete_material_cascades_and_second_delete_404(client, session) -> None:
    created = client.post(
        "/api/quiz",
        json={
            "title": "Events",
            "questions": [{"question": "How long is a sprint?", "options": [{"text": "1 month", "isCorrect": True}]}],
        },
    ).json()
    material_id = created["materialId"]
    assert session.scalar(select(func.count()).select_from(Question).where(Question.material_id == material_id)) == 1

    response = client.delete(f"/api/admin/materials/{material_id}")
    assert response.status_code == 200
    session.expire_all()
    assert session.get(Material, material_id) is None
    assert session.scalar(select(func.count()).select_from(Question)) == 0

    assert client.delete(f"/api/admin/materials/{material_id}").status_code == 404
    assert client.delete(f"/api/materials/{material_id}").status_code == 404


def test_delete_material_removes_sections(client, session) -> None:
    material = _create(client, sections=[{"title": "Artifacts"}])
    assert client.delete(f"/api/materials/{material['id']}").status_code == 200
    session.expire_all()
    assert session.scalar(select(func.count()).select_from(MaterialSection)) == 0


def test_publish_toggles_status_and_timestamp(client) -> None:
    material = _create(client)
    response = client.patch(f"/api/admin/materials/publish/{material['id']}", json={"status": "published"})
    body = response.json()
    assert response.status_code == 200
    assert body["material"]["status"] == "published"
    assert body["material"]["published_at"] is not None

    response = client.patch(f"/api/admin/materials/publish/{material['id']}", json={"status": "draft"})
    assert response.json()["material"]["published_at"] is None


def test_publish_to_current_status_is_a_no_op(client) -> None:
    material = _create(client)
    first = client.patch(f"/api/admin/materials/publish/{material['id']}", json={"status": "published"}).json()
    again = client.patch(f"/api/admin/materials/publish/{material['id']}", json={"status": "published"}).json()
    assert again["success"] is True
    assert "already" in again["message"]
    assert again["material"]["updated_at"] == first["material"]["updated_at"]


def test_publish_rejects_unknown_status(client) -> None:
    material = _create(client)
    response = client.patch(f"/api/admin/materials/publish/{material['id']}", json={"status": "archived"})
    assert response.status_code == 400


def test_user_content_lists_published_only(client) -> None:
    draft = _create(client, title="Draft notes")
    published = _create(client, title="Published notes")
    client.patch(f"/api/admin/materials/publish/{published['id']}", json={"status": "published"})

    body = client.get("/api/user/content").json()
    assert body["count"] == 1
    assert body["contents"][0]["title"] == "Published notes"

    assert client.get(f"/api/user/content/{draft['id']}").status_code == 404
    detail = client.get(f"/api/user/content/{published['id']}").json()
    assert detail["content"]["title"] == "Published notes"


def test_user_content_can_exclude_quizzes(client) -> None:
    client.post("/api/quiz", json={"title": "Roles quiz", "questions": [{"question": "Who owns the backlog?"}]})
    assert client.get("/api/user/content").json()["count"] == 1
    assert client.get("/api/user/content", params={"includeQuizzes": "false"}).json()["count"] == 0


def test_update_material_status_is_checked(client) -> None:
    material = _create(client)
    response = client.put(f"/api/admin/materials/{material['id']}", json={"title": "Guide", "status": "archived"})
    assert response.status_code == 400

    for status in MATERIAL_STATUSES:
        response = client.put(f"/api/admin/materials/{material['id']}", json={"title": "Guide", "status": status})
        assert response.json()["material"]["status"] == status
