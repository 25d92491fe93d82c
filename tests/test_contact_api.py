from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from dzakcloud.config import Settings
from dzakcloud.service import create_app


CONTACT = {
    "name": "Rina",
    "email": "rina@example.com",
    "topic": "hosting",
    "subject": "Upgrade plan",
    "description": "I would like to move to the business plan.",
}


@pytest.fixture()
def client(tmp_path: Path):
    settings = Settings(database_path=tmp_path / "site.sqlite3", secret_key="tests-secret")
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def _contact_count(client: TestClient) -> int:
    with sqlite3.connect(client.app.state.database.path) as conn:
        return conn.execute("SELECT COUNT(*) FROM contacts").fetchone()[0]


def _submit(client: TestClient, **overrides) -> dict:
    body = dict(CONTACT)
    body.update(overrides)
    response = client.post("/api/contact", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_contact_defaults_to_new(client: TestClient) -> None:
    payload = _submit(client)

    assert payload["success"] is True
    assert payload["message"] == "Your message has been received. We'll get back to you soon!"
    contact = payload["contact"]
    assert payload["contactId"] == contact["id"]
    assert contact["status"] == "new"
    assert contact["notes"] == ""
    for key, value in CONTACT.items():
        assert contact[key] == value
    assert "createdAt" in contact and "updatedAt" in contact


@pytest.mark.parametrize("missing", sorted(CONTACT))
def test_create_contact_requires_every_field(client: TestClient, missing: str) -> None:
    body = {key: value for key, value in CONTACT.items() if key != missing}

    response = client.post("/api/contact", json=body)

    assert response.status_code == 400, response.text
    assert response.json() == {"success": False, "error": "Missing required fields"}
    assert _contact_count(client) == 0


def test_create_contact_rejects_invalid_email(client: TestClient) -> None:
    response = client.post("/api/contact", json={**CONTACT, "email": "rina at example"})

    assert response.status_code == 400, response.text
    assert response.json()["error"] == "Invalid email format"


def test_get_contact(client: TestClient) -> None:
    contact_id = _submit(client)["contactId"]

    found = client.get(f"/api/contact/{contact_id}")
    assert found.status_code == 200, found.text
    assert found.json()["contact"]["subject"] == CONTACT["subject"]

    missing = client.get("/api/contact/9999")
    assert missing.status_code == 404, missing.text
    assert missing.json() == {"success": False, "error": "Contact not found"}


def test_list_contacts_with_status_filter_and_paging(client: TestClient) -> None:
    ids = [_submit(client, subject=f"Subject {index}")["contactId"] for index in range(3)]
    client.patch(f"/api/contact/{ids[0]}", json={"status": "resolved"})

    listing = client.get("/api/contacts")
    assert listing.status_code == 200, listing.text
    payload = listing.json()
    assert payload["success"] is True
    assert payload["count"] == 3
    assert payload["total"] == 3
    assert [contact["id"] for contact in payload["contacts"]] == list(reversed(ids))

    resolved = client.get("/api/contacts", params={"status": "RESOLVED"}).json()
    assert resolved["count"] == 1
    assert resolved["total"] == 1
    assert resolved["contacts"][0]["id"] == ids[0]

    page = client.get("/api/contacts", params={"limit": 1, "offset": 1}).json()
    assert page["count"] == 1
    assert page["total"] == 3
    assert page["limit"] == 1
    assert page["offset"] == 1
    assert page["contacts"][0]["id"] == ids[1]

    invalid = client.get("/api/contacts", params={"limit": 0})
    assert invalid.status_code == 400, invalid.text


def test_update_contact_status_and_notes(client: TestClient) -> None:
    contact_id = _submit(client)["contactId"]

    response = client.patch(
        f"/api/contact/{contact_id}",
        json={"status": "in_progress", "notes": "Called the customer"},
    )

    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["message"] == "Contact updated successfully"
    assert payload["contact"]["status"] == "in_progress"
    assert payload["contact"]["notes"] == "Called the customer"


def test_update_contact_stores_arbitrary_status_verbatim(client: TestClient) -> None:
    # Status values outside new/in_progress/resolved are not rejected.
    contact_id = _submit(client)["contactId"]

    response = client.patch(f"/api/contact/{contact_id}", json={"status": "archived"})
    assert response.status_code == 200, response.text
    assert response.json()["contact"]["status"] == "archived"

    stored = client.get(f"/api/contact/{contact_id}").json()["contact"]
    assert stored["status"] == "archived"


def test_update_contact_errors(client: TestClient) -> None:
    contact_id = _submit(client)["contactId"]

    empty = client.patch(f"/api/contact/{contact_id}", json={})
    assert empty.status_code == 400, empty.text
    assert empty.json()["error"] == "No fields to update"

    missing = client.patch("/api/contact/9999", json={"status": "resolved"})
    assert missing.status_code == 404, missing.text

    missing_and_empty = client.patch("/api/contact/9999", json={})
    assert missing_and_empty.status_code == 404, missing_and_empty.text


def test_delete_contact(client: TestClient) -> None:
    contact_id = _submit(client)["contactId"]

    response = client.delete(f"/api/contact/{contact_id}")
    assert response.status_code == 200, response.text
    assert response.json()["message"] == "Contact deleted successfully"
    assert response.json()["contact"]["id"] == contact_id
    assert _contact_count(client) == 0


def test_delete_missing_contact_leaves_table_unchanged(client: TestClient) -> None:
    _submit(client)
    _submit(client, subject="Another")

    response = client.delete("/api/contact/9999")

    assert response.status_code == 404, response.text
    assert response.json() == {"success": False, "error": "Contact not found"}
    assert _contact_count(client) == 2


def test_contact_stats(client: TestClient) -> None:
    first = _submit(client, topic="hosting")["contactId"]
    second = _submit(client, topic="domain")["contactId"]
    _submit(client, topic="hosting")
    _submit(client, topic="email")
    client.patch(f"/api/contact/{first}", json={"status": "in_progress"})
    client.patch(f"/api/contact/{second}", json={"status": "resolved"})

    response = client.get("/api/contacts/stats")

    assert response.status_code == 200, response.text
    stats = response.json()["stats"]
    assert stats["total"] == 4
    assert stats["new"] == 2
    assert stats["inProgress"] == 1
    assert stats["resolved"] == 1
    assert stats["total"] == stats["new"] + stats["inProgress"] + stats["resolved"]
    assert stats["topicBreakdown"] == {"hosting": 2, "domain": 1, "email": 1}


def test_contact_stats_on_empty_table(client: TestClient) -> None:
    stats = client.get("/api/contacts/stats").json()["stats"]
    assert stats == {"total": 0, "new": 0, "inProgress": 0, "resolved": 0, "topicBreakdown": {}}


def test_admin_routes_require_token_when_configured(tmp_path: Path) -> None:
    settings = Settings(
        database_path=tmp_path / "site.sqlite3",
        secret_key="tests-secret",
        admin_tokens=("admin-token",),
    )
    with TestClient(create_app(settings)) as client:
        created = client.post("/api/contact", json=CONTACT)
        assert created.status_code == 201, created.text

        anonymous = client.get("/api/contacts")
        assert anonymous.status_code == 401, anonymous.text

        wrong = client.get("/api/contacts/stats", headers={"Authorization": "Bearer nope"})
        assert wrong.status_code == 403, wrong.text
        assert wrong.json() == {"success": False, "error": "Invalid admin token"}

        allowed = client.get("/api/contacts", headers={"Authorization": "Bearer admin-token"})
        assert allowed.status_code == 200, allowed.text
        assert allowed.json()["count"] == 1
