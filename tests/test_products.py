def test_create_and_get_product(client, user_headers, make_product):
    product = make_product(
        "Serum", price=49.99, stock=30, description="Peptides", imageURL="https://img.io/serum.jpg"
    )
    assert product["price"] == 49.99
    assert product["imageURL"] == "https://img.io/serum.jpg"
    assert product["categoryID"] is None

    res = client.get(f"/products/{product['id']}", headers=user_headers)
    assert res.status_code == 200
    assert res.json()["name"] == "Serum"
    assert res.json()["description"] == "Peptides"


def test_products_require_authentication(client):
    assert client.get("/products").status_code == 401


def test_list_without_pagination_returns_all(client, user_headers, make_product):
    for i in range(3):
        make_product(f"Product {i}")
    res = client.get("/products", headers=user_headers)
    assert res.status_code == 200
    assert isinstance(res.json(), list)
    assert len(res.json()) == 3


def test_pagination(client, user_headers, make_product):
    for i in range(15):
        make_product(f"Product {i:02d}")

    res = client.get("/products", params={"page": 2, "limit": 10}, headers=user_headers)
    assert res.status_code == 200
    body = res.json()
    assert len(body["products"]) == 5
    assert body["total"] == 15
    assert body["page"] == 2
    assert body["limit"] == 10
    assert body["totalPages"] == 2
    assert body["hasNext"] is False
    assert body["hasPrev"] is True

    first = client.get("/products", params={"page": 1, "limit": 10}, headers=user_headers).json()
    assert first["hasNext"] is True
    assert first["hasPrev"] is False
    ids = {p["id"] for p in first["products"]} | {p["id"] for p in body["products"]}
    assert len(ids) == 15


def test_pagination_clamps_bad_values(client, user_headers, make_product):
    make_product("Only")
    body = client.get("/products", params={"page": 0, "limit": 500}, headers=user_headers).json()
    assert body["page"] == 1
    assert body["limit"] == 100
    assert body["totalPages"] == 1


def test_pagination_of_empty_catalogue(client, user_headers):
    body = client.get("/products", params={"page": 1}, headers=user_headers).json()
    assert body["products"] == []
    assert body["total"] == 0
    assert body["totalPages"] == 1
    assert body["limit"] == 10


def test_create_product_validation(client, admin_headers):
    for body in (
        {"name": "", "price": 10, "stock": 1},
        {"name": "Free", "price": 0, "stock": 1},
        {"name": "Negative", "price": 5, "stock": -1},
    ):
        res = client.post("/admin/products", json=body, headers=admin_headers)
        assert res.status_code == 400, body


def test_create_product_with_unknown_category(client, admin_headers):
    body = {"name": "Lost", "price": 5, "stock": 1, "categoryID": "missing"}
    res = client.post("/admin/products", json=body, headers=admin_headers)
    assert res.status_code == 400


def test_duplicate_product_name(client, admin_headers, make_product):
    make_product("Cream")
    res = client.post("/admin/products", json={"name": "Cream", "price": 5, "stock": 1}, headers=admin_headers)
    assert res.status_code == 409


def test_update_product(client, admin_headers, make_product):
    product = make_product("Cream", description="Old")
    body = {"name": "Rich cream", "price": 12.5, "stock": 8}
    res = client.put(f"/admin/products/{product['id']}", json=body, headers=admin_headers)
    assert res.status_code == 200
    updated = res.json()
    assert updated["name"] == "Rich cream"
    assert updated["price"] == 12.5
    assert updated["stock"] == 8
    assert updated["description"] == "Old"


def test_patch_product(client, admin_headers, make_product):
    category = client.post("/admin/categories", json={"name": "Visage"}, headers=admin_headers).json()
    product = make_product("Cream", price=10, stock=5)

    res = client.patch(
        f"/admin/products/{product['id']}",
        json={"stock": 42, "categoryID": category["id"]},
        headers=admin_headers,
    )
    assert res.status_code == 200
    assert res.json()["stock"] == 42
    assert res.json()["price"] == 10
    assert res.json()["category"]["name"] == "Visage"

    res = client.patch(f"/admin/products/{product['id']}", json={"categoryID": ""}, headers=admin_headers)
    assert res.json()["categoryID"] is None


def test_patch_product_rejects_empty_and_invalid(client, admin_headers, make_product):
    product = make_product("Cream")
    assert client.patch(f"/admin/products/{product['id']}", json={}, headers=admin_headers).status_code == 400
    res = client.patch(f"/admin/products/{product['id']}", json={"price": -3}, headers=admin_headers)
    assert res.status_code == 400


def test_delete_product(client, admin_headers, make_product):
    product = make_product("Cream")
    res = client.delete(f"/admin/products/{product['id']}", headers=admin_headers)
    assert res.status_code == 204
    assert client.get(f"/products/{product['id']}", headers=admin_headers).status_code == 404


def test_missing_product(client, admin_headers, user_headers):
    assert client.get("/products/unknown", headers=user_headers).status_code == 404
    assert client.delete("/admin/products/unknown", headers=admin_headers).status_code == 404
    body = {"name": "X", "price": 1, "stock": 1}
    assert client.put("/admin/products/unknown", json=body, headers=admin_headers).status_code == 404


def test_product_management_requires_admin(client, user_headers):
    res = client.post("/admin/products", json={"name": "X", "price": 1, "stock": 1}, headers=user_headers)
    assert res.status_code == 403
