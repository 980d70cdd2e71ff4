from issue_tracker.models.models import Category, Subcategory


def test_list_categories_includes_active_subcategories(
    client, db_session, citizen, make_category, auth_headers
):
    category = make_category(name="Καθαριότητα", subcategories=[("Κάδοι", 3), ("Ογκώδη", 7)])
    category.subcategories[1].is_active = False
    db_session.commit()
    make_category(name="Old", is_active=False)

    response = client.get("/api/categories", headers=auth_headers(citizen))
    assert response.status_code == 200
    categories = response.json()["data"]["categories"]
    assert [c["name"] for c in categories] == ["Καθαριότητα"]
    assert [s["name"] for s in categories[0]["subcategories"]] == ["Κάδοι"]
    assert categories[0]["subcategories"][0]["estimatedDays"] == 3


def test_get_category_not_found(client, citizen, auth_headers):
    response = client.get("/api/categories/404", headers=auth_headers(citizen))
    assert response.status_code == 404
    assert response.json()["message"] == "Category not found"


def test_create_category_admin_only(client, admin, citizen, auth_headers):
    payload = {"name": "Πράσινο", "nameEn": "Green spaces", "color": "#22AA44", "icon": "tree"}

    response = client.post("/api/categories", json=payload, headers=auth_headers(citizen))
    assert response.status_code == 403

    response = client.post("/api/categories", json=payload, headers=auth_headers(admin))
    assert response.status_code == 201
    category = response.json()["data"]["category"]
    assert category["nameEn"] == "Green spaces"
    assert category["subcategories"] == []


def test_create_category_rejects_bad_color(client, admin, auth_headers):
    response = client.post("/api/categories", json={"name": "X", "color": "red"}, headers=auth_headers(admin))
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "color"


def test_duplicate_category_name(client, admin, category, auth_headers):
    response = client.post(
        "/api/categories",
        json={"name": category.name, "color": "#000000"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Category with this name already exists"


def test_update_category(client, admin, category, auth_headers):
    response = client.put(
        f"/api/categories/{category.id}",
        json={"color": "#123456", "name": None},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200
    updated = response.json()["data"]["category"]
    assert updated["color"] == "#123456"
    assert updated["name"] == "Ηλεκτροφωτισμός"


def test_delete_category_with_issues_conflicts(client, admin, citizen, category, make_issue, auth_headers):
    make_issue(citizen, category)
    response = client.delete(f"/api/categories/{category.id}", headers=auth_headers(admin))
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot delete category with existing issues"


def test_delete_empty_category_soft_deletes_with_subcategories(
    client, db_session, admin, make_category, auth_headers
):
    category = make_category(subcategories=[("A", None), ("B", 2)])
    category_id = category.id

    response = client.delete(f"/api/categories/{category_id}", headers=auth_headers(admin))
    assert response.status_code == 200

    db_session.expire_all()
    stored = db_session.query(Category).filter(Category.id == category_id).one()
    assert stored.is_active is False
    subcategories = db_session.query(Subcategory).filter(Subcategory.category_id == category_id).all()
    assert len(subcategories) == 2
    assert all(not sub.is_active for sub in subcategories)


# -------------------------------------------------------
# Subcategories
# -------------------------------------------------------
def test_create_subcategory(client, admin, category, auth_headers):
    response = client.post(
        "/api/categories/subcategories",
        json={"categoryId": category.id, "name": "Κολόνες", "color": "#AABBCC", "estimatedDays": 10},
        headers=auth_headers(admin),
    )
    assert response.status_code == 201
    subcategory = response.json()["data"]["subcategory"]
    assert subcategory["categoryId"] == category.id
    assert subcategory["estimatedDays"] == 10


def test_subcategory_name_unique_within_category(client, admin, category, auth_headers):
    response = client.post(
        "/api/categories/subcategories",
        json={"categoryId": category.id, "name": "Λάμπες", "color": "#AABBCC"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Subcategory with this name already exists in this category"


def test_subcategory_estimated_days_must_be_positive(client, admin, category, auth_headers):
    response = client.post(
        "/api/categories/subcategories",
        json={"categoryId": category.id, "name": "Νέα", "color": "#AABBCC", "estimatedDays": 0},
        headers=auth_headers(admin),
    )
    assert response.status_code == 400


def test_update_subcategory(client, admin, category, auth_headers):
    subcategory = category.subcategories[0]
    response = client.put(
        f"/api/categories/subcategories/{subcategory.id}",
        json={"estimatedDays": 9},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200
    assert response.json()["data"]["subcategory"]["estimatedDays"] == 9


def test_delete_subcategory_with_issues_conflicts(client, admin, citizen, category, make_issue, auth_headers):
    subcategory = category.subcategories[0]
    make_issue(citizen, category, subcategory_id=subcategory.id)
    response = client.delete(f"/api/categories/subcategories/{subcategory.id}", headers=auth_headers(admin))
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot delete subcategory with existing issues"


def test_delete_unused_subcategory(client, admin, category, auth_headers):
    subcategory_id = category.subcategories[0].id
    response = client.delete(f"/api/categories/subcategories/{subcategory_id}", headers=auth_headers(admin))
    assert response.status_code == 200

    response = client.get(f"/api/categories/{category.id}", headers=auth_headers(admin))
    assert response.json()["data"]["category"]["subcategories"] == []
