import re
from datetime import datetime, timedelta

from issue_tracker.models.common import utcnow
from issue_tracker.models.models import Comment, Issue, IssuePriority, IssueStatus
from issue_tracker.models.user import UserRole


def new_issue_payload(category, **overrides):
    payload = {
        "title": "Σπασμένη λάμπα",
        "description": "The street light has been out for a week",
        "address": "Λεωφόρος Βουλιαγμένης 100",
        "categoryId": category.id,
    }
    payload.update(overrides)
    return payload


# -------------------------------------------------------
# CREATE
# -------------------------------------------------------
def test_create_emergency_issue_forces_emergency_priority(client, citizen, category, auth_headers):
    response = client.post(
        "/api/issues",
        json=new_issue_payload(category, priority="LOW", isEmergency=True),
        headers=auth_headers(citizen),
    )
    assert response.status_code == 201
    issue = response.json()["data"]["issue"]
    assert issue["priority"] == "EMERGENCY"
    assert issue["status"] == "PENDING"
    assert issue["isEmergency"] is True
    assert issue["createdById"] == citizen.id
    assert issue["completedAt"] is None
    assert re.fullmatch(r"GLY-\d{14}-[0-9A-F]{6}", issue["referenceNumber"])
    assert issue["category"]["name"] == "Ηλεκτροφωτισμός"


def test_create_with_subcategory_sets_estimated_completion(client, citizen, category, auth_headers):
    subcategory = category.subcategories[0]
    response = client.post(
        "/api/issues",
        json=new_issue_payload(category, subcategoryId=subcategory.id),
        headers=auth_headers(citizen),
    )
    assert response.status_code == 201
    issue = response.json()["data"]["issue"]
    assert issue["subcategory"]["id"] == subcategory.id
    assert issue["estimatedCompletionDate"] is not None


def test_create_rejects_subcategory_of_other_category(client, citizen, category, make_category, auth_headers):
    other = make_category(subcategories=[("Other", None)])
    response = client.post(
        "/api/issues",
        json=new_issue_payload(category, subcategoryId=other.subcategories[0].id),
        headers=auth_headers(citizen),
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid subcategory"


def test_create_rejects_inactive_category(client, citizen, make_category, auth_headers):
    inactive = make_category(is_active=False)
    response = client.post("/api/issues", json=new_issue_payload(inactive), headers=auth_headers(citizen))
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid category"


def test_create_rejects_short_description(client, citizen, category, auth_headers):
    response = client.post(
        "/api/issues",
        json=new_issue_payload(category, description="short"),
        headers=auth_headers(citizen),
    )
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "description"


# -------------------------------------------------------
# LIST: visibility
# -------------------------------------------------------
def test_citizen_lists_only_own_issues(client, make_user, category, make_issue, auth_headers):
    alice = make_user()
    bob = make_user()
    for _ in range(3):
        make_issue(alice, category)
    make_issue(bob, category)

    response = client.get("/api/issues", headers=auth_headers(alice))
    assert response.status_code == 200
    issues = response.json()["data"]["issues"]
    assert len(issues) == 3
    assert all(issue["createdById"] == alice.id for issue in issues)


def test_supervisor_sees_assigned_unassigned_and_own(client, make_user, citizen, category, make_issue, auth_headers):
    supervisor = make_user(UserRole.SUPERVISOR)
    other = make_user(UserRole.SUPERVISOR)
    mine = make_issue(citizen, category, assigned_to_id=supervisor.id)
    open_issue = make_issue(citizen, category)
    own = make_issue(supervisor, category, assigned_to_id=other.id)
    hidden = make_issue(citizen, category, assigned_to_id=other.id)

    response = client.get("/api/issues", headers=auth_headers(supervisor))
    ids = {issue["id"] for issue in response.json()["data"]["issues"]}
    assert ids == {mine.id, open_issue.id, own.id}
    assert hidden.id not in ids

    for issue in response.json()["data"]["issues"]:
        assert (
            issue["assignedToId"] in (supervisor.id, None) or issue["createdById"] == supervisor.id
        )


def test_office_sees_everything(client, make_user, citizen, category, make_issue, auth_headers):
    office = make_user(UserRole.OFFICE)
    supervisor = make_user(UserRole.SUPERVISOR)
    make_issue(citizen, category)
    make_issue(citizen, category, assigned_to_id=supervisor.id)
    response = client.get("/api/issues", headers=auth_headers(office))
    assert response.json()["pagination"]["total"] == 2


def test_citizen_cannot_widen_scope_with_creator_filter(client, make_user, category, make_issue, auth_headers):
    alice = make_user()
    bob = make_user()
    make_issue(bob, category)
    response = client.get(f"/api/issues?createdById={bob.id}", headers=auth_headers(alice))
    assert response.json()["data"]["issues"] == []


# -------------------------------------------------------
# LIST: filters, ordering, pagination
# -------------------------------------------------------
def test_status_filter_accepts_repeated_and_bracketed_keys(client, admin, citizen, category, make_issue, auth_headers):
    make_issue(citizen, category, status=IssueStatus.PENDING)
    make_issue(citizen, category, status=IssueStatus.IN_PROGRESS)
    make_issue(citizen, category, status=IssueStatus.REJECTED)

    response = client.get("/api/issues?status=PENDING&status=IN_PROGRESS", headers=auth_headers(admin))
    statuses = {issue["status"] for issue in response.json()["data"]["issues"]}
    assert statuses == {"PENDING", "IN_PROGRESS"}

    response = client.get("/api/issues?status[]=REJECTED", headers=auth_headers(admin))
    assert [issue["status"] for issue in response.json()["data"]["issues"]] == ["REJECTED"]


def test_invalid_status_filter_is_rejected(client, admin, auth_headers):
    response = client.get("/api/issues?status=DONE", headers=auth_headers(admin))
    assert response.status_code == 400


def test_search_is_case_insensitive_across_fields(client, admin, citizen, category, make_issue, auth_headers):
    make_issue(citizen, category, title="Fallen tree")
    make_issue(citizen, category, address="Kyprou 12", title="Noise")
    make_issue(citizen, category, reference_number="GLY-SEARCH-1", title="Graffiti")

    def search(term):
        response = client.get("/api/issues", params={"search": term}, headers=auth_headers(admin))
        return [issue["title"] for issue in response.json()["data"]["issues"]]

    assert search("fallen TREE") == ["Fallen tree"]
    assert search("kyprou") == ["Noise"]
    assert search("search-1") == ["Graffiti"]


def test_search_wildcards_match_literally(client, admin, citizen, category, make_issue, auth_headers):
    make_issue(citizen, category, title="Repairs 50% done")
    make_issue(citizen, category, title="Pipe_burst")
    make_issue(citizen, category, title="Pipe burst")

    def search(term):
        response = client.get("/api/issues", params={"search": term}, headers=auth_headers(admin))
        return sorted(issue["title"] for issue in response.json()["data"]["issues"])

    assert search("%") == ["Repairs 50% done"]
    assert search("pipe_") == ["Pipe_burst"]
    assert search("0%") == ["Repairs 50% done"]


def test_date_range_with_date_only_upper_bound_is_inclusive(
    client, admin, citizen, category, make_issue, auth_headers
):
    make_issue(citizen, category, title="Early", created_at=datetime(2025, 1, 10, 8, 0))
    make_issue(citizen, category, title="Late in day", created_at=datetime(2025, 1, 20, 23, 30))
    make_issue(citizen, category, title="After", created_at=datetime(2025, 1, 21, 0, 30))

    response = client.get(
        "/api/issues",
        params={"dateFrom": "2025-01-15", "dateTo": "2025-01-20"},
        headers=auth_headers(admin),
    )
    assert [issue["title"] for issue in response.json()["data"]["issues"]] == ["Late in day"]


def test_emergency_filter_and_ordering(client, admin, citizen, category, make_issue, auth_headers):
    now = utcnow()
    old_emergency = make_issue(citizen, category, is_emergency=True, created_at=now - timedelta(days=5))
    newest = make_issue(citizen, category, created_at=now)
    older = make_issue(citizen, category, created_at=now - timedelta(days=1))

    response = client.get("/api/issues", headers=auth_headers(admin))
    ids = [issue["id"] for issue in response.json()["data"]["issues"]]
    assert ids == [old_emergency.id, newest.id, older.id]

    response = client.get("/api/issues?isEmergency=true", headers=auth_headers(admin))
    assert [issue["id"] for issue in response.json()["data"]["issues"]] == [old_emergency.id]


def test_pagination(client, admin, citizen, category, make_issue, auth_headers):
    for _ in range(5):
        make_issue(citizen, category)

    response = client.get("/api/issues?page=2&limit=2", headers=auth_headers(admin))
    body = response.json()
    assert len(body["data"]["issues"]) == 2
    assert body["pagination"] == {"page": 2, "limit": 2, "total": 5, "pages": 3}

    response = client.get("/api/issues?page=9&limit=2", headers=auth_headers(admin))
    assert response.json()["data"]["issues"] == []


def test_pagination_limit_is_capped(client, admin, auth_headers):
    response = client.get("/api/issues?limit=500", headers=auth_headers(admin))
    assert response.status_code == 400


# -------------------------------------------------------
# READ
# -------------------------------------------------------
def test_get_issue_hides_internal_comments_from_citizen(
    client, db_session, make_user, citizen, category, make_issue, auth_headers
):
    office = make_user(UserRole.OFFICE)
    issue = make_issue(citizen, category)
    db_session.add_all(
        [
            Comment(issue_id=issue.id, user_id=office.id, text="Public note", is_internal=False),
            Comment(issue_id=issue.id, user_id=office.id, text="Staff only", is_internal=True),
        ]
    )
    db_session.commit()

    response = client.get(f"/api/issues/{issue.id}", headers=auth_headers(citizen))
    assert response.status_code == 200
    comments = response.json()["data"]["issue"]["comments"]
    assert [comment["text"] for comment in comments] == ["Public note"]

    response = client.get(f"/api/issues/{issue.id}", headers=auth_headers(office))
    assert len(response.json()["data"]["issue"]["comments"]) == 2


def test_get_issue_of_other_citizen_is_forbidden(client, make_user, category, make_issue, auth_headers):
    owner = make_user()
    stranger = make_user()
    issue = make_issue(owner, category)
    response = client.get(f"/api/issues/{issue.id}", headers=auth_headers(stranger))
    assert response.status_code == 403
    assert response.json() == {"success": False, "message": "Access denied"}


def test_get_missing_issue(client, admin, auth_headers):
    response = client.get("/api/issues/999", headers=auth_headers(admin))
    assert response.status_code == 404
    assert response.json()["message"] == "Issue not found"


# -------------------------------------------------------
# UPDATE
# -------------------------------------------------------
def test_citizen_update_drops_staff_fields(client, citizen, category, make_issue, auth_headers):
    issue = make_issue(citizen, category)
    response = client.put(
        f"/api/issues/{issue.id}",
        json={"title": "Updated title", "status": "COMPLETED", "priority": "HIGH"},
        headers=auth_headers(citizen),
    )
    assert response.status_code == 200
    updated = response.json()["data"]["issue"]
    assert updated["title"] == "Updated title"
    assert updated["status"] == "PENDING"
    assert updated["priority"] == "MEDIUM"


def test_non_owner_citizen_update_is_forbidden(client, make_user, category, make_issue, auth_headers):
    owner = make_user()
    stranger = make_user()
    issue = make_issue(owner, category)
    response = client.put(f"/api/issues/{issue.id}", json={"title": "Hijack"}, headers=auth_headers(stranger))
    assert response.status_code == 403


def test_completed_at_follows_status(client, make_user, citizen, category, make_issue, auth_headers):
    office = make_user(UserRole.OFFICE)
    issue = make_issue(citizen, category)
    headers = auth_headers(office)

    completed = client.put(f"/api/issues/{issue.id}", json={"status": "COMPLETED"}, headers=headers).json()
    stamp = completed["data"]["issue"]["completedAt"]
    assert stamp is not None

    again = client.put(f"/api/issues/{issue.id}", json={"status": "COMPLETED"}, headers=headers).json()
    assert again["data"]["issue"]["completedAt"] == stamp

    reopened = client.put(f"/api/issues/{issue.id}", json={"status": "IN_PROGRESS"}, headers=headers).json()
    assert reopened["data"]["issue"]["completedAt"] is None


def test_staff_marking_emergency_escalates_priority(client, admin, citizen, category, make_issue, auth_headers):
    issue = make_issue(citizen, category, priority=IssuePriority.LOW)
    response = client.put(
        f"/api/issues/{issue.id}",
        json={"isEmergency": True, "priority": "LOW"},
        headers=auth_headers(admin),
    )
    assert response.json()["data"]["issue"]["priority"] == "EMERGENCY"


def test_assign_and_unassign(client, make_user, citizen, category, make_issue, auth_headers):
    office = make_user(UserRole.OFFICE)
    supervisor = make_user(UserRole.SUPERVISOR)
    issue = make_issue(citizen, category)
    headers = auth_headers(office)

    response = client.put(f"/api/issues/{issue.id}", json={"assignedToId": supervisor.id}, headers=headers)
    assert response.json()["data"]["issue"]["assignedTo"]["id"] == supervisor.id

    response = client.put(f"/api/issues/{issue.id}", json={"assignedToId": None}, headers=headers)
    assert response.json()["data"]["issue"]["assignedTo"] is None


def test_assigning_to_citizen_is_rejected(client, make_user, citizen, category, make_issue, auth_headers):
    office = make_user(UserRole.OFFICE)
    issue = make_issue(citizen, category)
    response = client.put(f"/api/issues/{issue.id}", json={"assignedToId": citizen.id}, headers=auth_headers(office))
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid assignee"


def test_null_for_required_field_is_rejected(client, citizen, category, make_issue, auth_headers):
    issue = make_issue(citizen, category)
    response = client.put(f"/api/issues/{issue.id}", json={"title": None}, headers=auth_headers(citizen))
    assert response.status_code == 400
    assert response.json()["errors"] == [{"field": "title", "message": "Field cannot be null"}]


def test_category_change_drops_foreign_subcategory(
    client, db_session, admin, citizen, category, make_category, make_issue, auth_headers
):
    other = make_category()
    issue = make_issue(citizen, category, subcategory_id=category.subcategories[0].id)
    response = client.put(f"/api/issues/{issue.id}", json={"categoryId": other.id}, headers=auth_headers(admin))
    assert response.status_code == 200
    updated = response.json()["data"]["issue"]
    assert updated["categoryId"] == other.id
    assert updated["subcategoryId"] is None


# -------------------------------------------------------
# DELETE
# -------------------------------------------------------
def test_owner_can_delete(client, db_session, citizen, category, make_issue, auth_headers):
    issue_id = make_issue(citizen, category).id
    response = client.delete(f"/api/issues/{issue_id}", headers=auth_headers(citizen))
    assert response.status_code == 200
    db_session.expire_all()
    assert db_session.query(Issue).filter(Issue.id == issue_id).count() == 0


def test_office_cannot_delete(client, make_user, citizen, category, make_issue, auth_headers):
    office = make_user(UserRole.OFFICE)
    issue = make_issue(citizen, category)
    response = client.delete(f"/api/issues/{issue.id}", headers=auth_headers(office))
    assert response.status_code == 403


def test_admin_can_delete_any(client, admin, citizen, category, make_issue, auth_headers):
    issue = make_issue(citizen, category)
    response = client.delete(f"/api/issues/{issue.id}", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Issue deleted successfully"}
