# tests/test_tasks.py

from __future__ import annotations

from fastapi.testclient import TestClient


def test_create_task_defaults_and_owner(client: TestClient, alice) -> None:
    r = client.post("/tasks", json={"title": "  Buy milk  "}, headers=alice)
    assert r.status_code == 201
    task = r.json()
    assert task["title"] == "Buy milk"
    assert task["description"] == ""
    assert task["status"] == "pending"
    assert task["dueDate"] is None
    assert task["tagIds"] == []
    assert task["user"]["name"] == "Alice"
    assert task["user"]["email"] == "alice@example.com"
    assert "passwordHash" not in task["user"]


def test_create_requires_session(client: TestClient, db) -> None:
    r = client.post("/tasks", json={"title": "Sneaky"})
    assert r.status_code == 401
    assert db["task"].count_documents({}) == 0


def test_blank_title_is_rejected_without_write(client: TestClient, alice, db) -> None:
    for title in ("", "   ", None):
        r = client.post("/tasks", json={"title": title}, headers=alice)
        assert r.status_code == 400
        assert r.json()["detail"] == "Title is required"
    r = client.post("/tasks", json={"description": "no title"}, headers=alice)
    assert r.status_code == 400
    assert db["task"].count_documents({}) == 0


def test_invalid_status_is_a_validation_error(client: TestClient, alice) -> None:
    r = client.post("/tasks", json={"title": "x", "status": "done"}, headers=alice)
    assert r.status_code == 400
    assert "status" in r.json()["detail"]


def test_unparseable_due_date_becomes_null(client: TestClient, alice, make_task) -> None:
    task = make_task(alice, dueDate="next tuesday")
    assert task["dueDate"] is None


def test_create_then_read_round_trip(client: TestClient, alice, make_task) -> None:
    created = make_task(
        alice,
        title="Ship release",
        description="tag and publish",
        status="in-progress",
        dueDate="2030-01-15T09:30:00Z",
    )
    r = client.get(f"/tasks/{created['id']}")
    assert r.status_code == 200
    task = r.json()
    for field in ("title", "description", "status", "dueDate"):
        assert task[field] == created[field]
    assert task["dueDate"] == "2030-01-15T09:30:00+00:00"
    assert task["tags"] == []
    assert task["user"]["avatar"] is None


def test_read_missing_task(client: TestClient) -> None:
    assert client.get("/tasks/64b7f0000000000000000000").status_code == 404
    assert client.get("/tasks/not-an-id").status_code == 404


def test_list_is_public_and_newest_first(client: TestClient, alice, bob, make_task) -> None:
    make_task(alice, title="first")
    make_task(bob, title="second")
    make_task(alice, title="third")

    r = client.get("/tasks")
    assert r.status_code == 200
    tasks = r.json()
    assert [t["title"] for t in tasks] == ["third", "second", "first"]
    assert {t["user"]["name"] for t in tasks} == {"Alice", "Bob"}
    assert set(tasks[0]["user"]) == {"id", "name", "email"}


def test_list_query_parameters(client: TestClient, alice, bob, make_task) -> None:
    make_task(alice, title="Pay rent", status="completed")
    make_task(bob, title="Call plumber", description="kitchen sink")
    make_task(bob, title="Fix bike", status="in-progress")

    r = client.get("/tasks", params={"status": "completed"})
    assert [t["title"] for t in r.json()] == ["Pay rent"]

    r = client.get("/tasks", params={"search": "SINK"})
    assert [t["title"] for t in r.json()] == ["Call plumber"]

    r = client.get("/tasks", params={"search": "bob"})
    assert {t["title"] for t in r.json()} == {"Call plumber", "Fix bike"}

    r = client.get("/tasks", params={"sort": "title"})
    assert [t["title"] for t in r.json()] == ["Call plumber", "Fix bike", "Pay rent"]

    r = client.get("/tasks", params={"sort": "sideways"})
    assert r.status_code == 400


def test_owner_can_update(client: TestClient, alice, make_task, make_tag) -> None:
    task = make_task(alice, dueDate="2030-01-01")
    tag = make_tag(alice, "Home", color="green")

    r = client.put(
        f"/tasks/{task['id']}",
        json={"title": "Renamed", "status": "completed", "tagIds": [tag["id"]]},
        headers=alice,
    )
    assert r.status_code == 200
    updated = r.json()
    assert updated["title"] == "Renamed"
    assert updated["status"] == "completed"
    assert updated["tagIds"] == [tag["id"]]
    assert [t["name"] for t in updated["tags"]] == ["Home"]
    # fields not sent are left alone
    assert updated["dueDate"] == "2030-01-01T00:00:00+00:00"

    r = client.put(f"/tasks/{task['id']}", json={"dueDate": None, "tagIds": []}, headers=alice)
    assert r.json()["dueDate"] is None
    assert r.json()["tagIds"] == []


def test_update_rejects_foreign_tags(client: TestClient, alice, bob, make_task, make_tag) -> None:
    task = make_task(alice)
    bobs_tag = make_tag(bob, "Bob only")
    r = client.put(f"/tasks/{task['id']}", json={"tagIds": [bobs_tag["id"]]}, headers=alice)
    assert r.status_code == 400


def test_non_owner_cannot_mutate(client: TestClient, alice, bob, make_task) -> None:
    task = make_task(alice, title="Mine")

    r = client.put(f"/tasks/{task['id']}", json={"title": "Hijacked"}, headers=bob)
    assert r.status_code == 403
    r = client.delete(f"/tasks/{task['id']}", headers=bob)
    assert r.status_code == 403

    assert client.get(f"/tasks/{task['id']}").json()["title"] == "Mine"


def test_mutations_require_session(client: TestClient, alice, make_task) -> None:
    task = make_task(alice)
    assert client.put(f"/tasks/{task['id']}", json={"title": "x"}).status_code == 401
    assert client.delete(f"/tasks/{task['id']}").status_code == 401


def test_update_or_delete_missing_task(client: TestClient, alice) -> None:
    missing = "64b7f0000000000000000000"
    assert client.put(f"/tasks/{missing}", json={"title": "x"}, headers=alice).status_code == 404
    assert client.delete(f"/tasks/{missing}", headers=alice).status_code == 404


def test_owner_can_delete(client: TestClient, alice, make_task) -> None:
    task = make_task(alice)
    r = client.delete(f"/tasks/{task['id']}", headers=alice)
    assert r.status_code == 200
    assert r.json() == {"message": "Task deleted successfully"}
    assert client.get(f"/tasks/{task['id']}").status_code == 404
