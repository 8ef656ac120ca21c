"""End-to-end approval flow over the HTTP API."""

import pytest

pytestmark = [pytest.mark.integration, pytest.mark.db]


def current_task_id(client, process_id, headers):
    response = client.get(f"/api/processes/{process_id}", headers=headers)
    assert response.status_code == 200
    return response.json()["task"]["id"]


def approve_entity(client, process_id, entity, rows, maker_headers, checker_headers):
    submitted = client.post(
        f"/api/processes/{process_id}/stages/{entity}/submit",
        json={"rows": rows},
        headers=maker_headers,
    )
    assert submitted.status_code == 200, submitted.text
    sheet_id = submitted.json()["sheet_id"]

    bulk = client.post(f"/api/sheets/{sheet_id}/approve-all", headers=checker_headers)
    assert bulk.status_code == 200

    approved = client.post(
        f"/api/sheets/{sheet_id}/approve",
        json={"task_id": current_task_id(client, process_id, checker_headers)},
        headers=checker_headers,
    )
    assert approved.status_code == 200, approved.text
    return approved.json()


def test_full_approval_flow(client, maker_headers, checker_headers, admin_headers, sample_rows):
    # Maker starts the process and submits items
    started = client.post("/api/processes", json={"business_key": "2026-RATES"}, headers=maker_headers)
    assert started.status_code == 201
    process = started.json()
    pid = process["id"]
    assert process["stage"] == "ITEM_EDIT"
    assert process["available_transitions"] == ["FORWARD"]

    submitted = client.post(
        f"/api/processes/{pid}/stages/item/submit",
        json={"rows": sample_rows["item"]},
        headers=maker_headers,
    )
    assert submitted.status_code == 200
    assert submitted.json()["stage"] == "ITEM_APPROVE"
    item_sheet = submitted.json()["sheet_id"]

    # Checker picks up the approval task
    inbox = client.get("/api/tasks", headers=checker_headers).json()
    assert [t["name"] for t in inbox] == ["Stage 3: Approve Items"]
    claimed = client.post(f"/api/tasks/{inbox[0]['id']}/claim", headers=checker_headers)
    assert claimed.json()["assignee"] == "checker1"

    rows = client.get(f"/api/processes/{pid}/approval-data/item", headers=checker_headers).json()["rows"]
    first = client.post(f"/api/rows/item/{rows[0]['id']}/approve", headers=checker_headers)
    assert first.status_code == 200
    assert first.json()["approved_by"] == "checker1"

    again = client.post(f"/api/rows/item/{rows[0]['id']}/approve", headers=checker_headers)
    assert again.status_code == 409
    assert again.json()["code"] == "ALREADY_APPROVED"

    early = client.post(
        f"/api/sheets/{item_sheet}/approve", json={"task_id": inbox[0]["id"]}, headers=checker_headers
    )
    assert early.status_code == 409
    assert early.json()["code"] == "INCOMPLETE_APPROVAL"

    bulk = client.post(f"/api/sheets/{item_sheet}/approve-all", headers=checker_headers)
    assert bulk.json() == {"sheet_id": item_sheet, "approved_count": 1}

    approved = client.post(
        f"/api/sheets/{item_sheet}/approve", json={"task_id": inbox[0]["id"]}, headers=checker_headers
    )
    assert approved.status_code == 200
    assert approved.json()["stage"] == "PLAN_EDIT"

    # Plans: rejected once, then approved
    client.post(f"/api/processes/{pid}/stages/plan/submit", json={"rows": sample_rows["plan"]},
                headers=maker_headers)
    task_id = current_task_id(client, pid, checker_headers)

    no_comment = client.post(f"/api/tasks/{task_id}/reject", json={}, headers=checker_headers)
    assert no_comment.status_code == 409

    rejected = client.post(f"/api/tasks/{task_id}/reject", json={"comments": "Gold premium is too low"},
                           headers=checker_headers)
    assert rejected.status_code == 200
    assert rejected.json()["stage"] == "PLAN_EDIT"

    maker_view = client.get(f"/api/processes/{pid}/maker-data/plan", headers=maker_headers).json()
    assert maker_view["is_existing_sheet"] is True
    assert maker_view["sheet_id"] == rejected.json()["sheet_id"]
    assert maker_view["comments"] == "Gold premium is too low"

    assert approve_entity(client, pid, "plan", sample_rows["plan"], maker_headers, checker_headers)["stage"] \
        == "PRODUCT_EDIT"
    assert approve_entity(client, pid, "product", sample_rows["product"], maker_headers, checker_headers)["stage"] \
        == "MIGRATION"

    # Only an admin may migrate
    assert client.post(f"/api/processes/{pid}/migrate", headers=checker_headers).status_code == 403

    migrated = client.post(f"/api/processes/{pid}/migrate", headers=admin_headers)
    assert migrated.status_code == 200
    assert migrated.json() == {
        "process_instance_id": pid,
        "stage": "DONE",
        "item_count": 2,
        "plan_count": 3,
        "product_count": 1,
    }

    master = client.get("/api/master/plan", headers=maker_headers).json()
    assert master["total"] == 3
    assert {r["plan_name"] for r in master["items"]} == {"Silver", "Gold", "Family Floater"}

    history = client.get(f"/api/processes/{pid}/history", headers=maker_headers).json()
    assert [h["transition"] for h in history] == [
        "FORWARD", "APPROVE",
        "FORWARD", "REJECT", "FORWARD", "APPROVE",
        "FORWARD", "APPROVE",
        "MIGRATE",
    ]
    assert history[3]["comment"] == "Gold premium is too low"


def test_back_navigation(client, maker_headers, checker_headers, sample_rows):
    pid = client.post("/api/processes", json={}, headers=maker_headers).json()["id"]
    approve_entity(client, pid, "item", sample_rows["item"], maker_headers, checker_headers)

    back = client.post(f"/api/tasks/{current_task_id(client, pid, maker_headers)}/back", headers=maker_headers)
    assert back.status_code == 200
    assert back.json()["stage"] == "ITEM_APPROVE"
    assert back.json()["variables"]["planDecision"] == "BACK"

    reapproved = client.post(
        f"/api/tasks/{current_task_id(client, pid, checker_headers)}/approve", headers=checker_headers
    )
    assert reapproved.status_code == 200
    assert reapproved.json()["stage"] == "PLAN_EDIT"


def test_migrate_before_approval(client, maker_headers, admin_headers):
    pid = client.post("/api/processes", json={}, headers=maker_headers).json()["id"]
    response = client.post(f"/api/processes/{pid}/migrate", headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_TRANSITION"


def test_maker_cannot_approve(client, maker_headers, sample_rows):
    pid = client.post("/api/processes", json={}, headers=maker_headers).json()["id"]
    sheet_id = client.post(
        f"/api/processes/{pid}/stages/item/submit", json={"rows": sample_rows["item"]}, headers=maker_headers
    ).json()["sheet_id"]

    assert client.post(f"/api/sheets/{sheet_id}/approve-all", headers=maker_headers).status_code == 403
