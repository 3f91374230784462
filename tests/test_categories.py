def test_category_crud(client, admin_headers):
    res = client.post("/admin/categories", json={"name": "Visage"}, headers=admin_headers)
    assert res.status_code == 201
    category = res.json()
    assert category["name"] == "Visage"

    res = client.get(f"/admin/categories/{category['id']}", headers=admin_headers)
    assert res.status_code == 200

    res = client.put(f"/admin/categories/{category['id']}", json={"name": "Face"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["name"] == "Face"

    res = client.get("/admin/categories", headers=admin_headers)
    assert [c["name"] for c in res.json()] == ["Face"]

    res = client.delete(f"/admin/categories/{category['id']}", headers=admin_headers)
    assert res.status_code == 204
    assert client.get(f"/admin/categories/{category['id']}", headers=admin_headers).status_code == 404


def test_duplicate_category_name(client, admin_headers):
    client.post("/admin/categories", json={"name": "Corps"}, headers=admin_headers)
    res = client.post("/admin/categories", json={"name": "Corps"}, headers=admin_headers)
    assert res.status_code == 409


def test_rename_to_existing_name(client, admin_headers):
    client.post("/admin/categories", json={"name": "Corps"}, headers=admin_headers)
    other = client.post("/admin/categories", json={"name": "Homme"}, headers=admin_headers).json()
    res = client.put(f"/admin/categories/{other['id']}", json={"name": "Corps"}, headers=admin_headers)
    assert res.status_code == 409


def test_category_name_required(client, admin_headers):
    res = client.post("/admin/categories", json={"name": ""}, headers=admin_headers)
    assert res.status_code == 400


def test_missing_category(client, admin_headers):
    assert client.delete("/admin/categories/unknown", headers=admin_headers).status_code == 404
    res = client.put("/admin/categories/unknown", json={"name": "X"}, headers=admin_headers)
    assert res.status_code == 404


def test_deleting_category_unlinks_products(client, admin_headers, make_product):
    category = client.post("/admin/categories", json={"name": "Cheveux"}, headers=admin_headers).json()
    product = make_product("Shampoo", categoryID=category["id"])
    assert product["category"]["name"] == "Cheveux"

    client.delete(f"/admin/categories/{category['id']}", headers=admin_headers)
    res = client.get(f"/products/{product['id']}", headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["categoryID"] is None
    assert res.json()["category"] is None


def test_categories_require_admin(client, user_headers):
    res = client.post("/admin/categories", json={"name": "Visage"}, headers=user_headers)
    assert res.status_code == 403
