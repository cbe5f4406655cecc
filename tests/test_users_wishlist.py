from decimal import Decimal

from storefront.db import models

ADDRESS = {
    "title": "Home", "province": "Tehran", "city": "Tehran", "postal_code": "1234567890",
    "address": "12 Example Street, Unit 4", "recipient_name": "Test User", "recipient_phone": "09120000000",
}

def test_profile_read_and_update(client, customer_headers):
    body = client.get("/users/v1/profile", headers=customer_headers).json()
    assert body["email"] == "customer@example.com"
    assert body["phone_number"] is None

    r = client.patch("/users/v1/profile", headers=customer_headers, json={
        "first_name": "Sara", "phone_number": "09121234567", "national_code": "0012345678",
        "birth_date": "1995-04-01", "gender": "female",
    })
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["first_name"] == "Sara" and body["last_name"] == "User"
    assert body["birth_date"] == "1995-04-01"
    assert client.get("/auth/me", headers=customer_headers).json()["first_name"] == "Sara"

def test_profile_validation(client, customer_headers):
    for bad in ({"national_code": "123"}, {"gender": "other"}, {"phone_number": "call me"}):
        assert client.patch("/users/v1/profile", headers=customer_headers, json=bad).status_code == 422
    assert client.get("/users/v1/profile").status_code == 401

def test_change_password_revokes_sessions(client, customer, customer_headers):
    tokens = client.post("/auth/login", json={"email": customer.email, "password": "12345678"}).json()
    url = "/users/v1/profile/password"
    wrong = client.put(url, headers=customer_headers, json={"current_password": "nope", "new_password": "new-password"})
    assert wrong.status_code == 400
    r = client.put(url, headers=customer_headers, json={"current_password": "12345678", "new_password": "new-password"})
    assert r.status_code == 200
    assert client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]}).status_code == 401
    assert client.post("/auth/login", json={"email": customer.email, "password": "12345678"}).status_code == 401
    assert client.post("/auth/login", json={"email": customer.email, "password": "new-password"}).status_code == 200

def test_address_book_keeps_one_default(client, customer_headers):
    first = client.post("/users/v1/addresses", headers=customer_headers, json={**ADDRESS, "is_default": True}).json()
    second = client.post("/users/v1/addresses", headers=customer_headers,
                         json={**ADDRESS, "title": "Work", "is_default": True}).json()
    listed = client.get("/users/v1/addresses", headers=customer_headers).json()
    assert [(a["id"], a["is_default"]) for a in listed] == [(second["id"], True), (first["id"], False)]

    r = client.patch(f"/users/v1/addresses/{first['id']}", headers=customer_headers, json={"is_default": True, "city": "Karaj"})
    assert r.json()["city"] == "Karaj"
    listed = client.get("/users/v1/addresses", headers=customer_headers).json()
    assert [a["id"] for a in listed if a["is_default"]] == [first["id"]]

    assert client.delete(f"/users/v1/addresses/{second['id']}", headers=customer_headers).status_code == 200
    assert len(client.get("/users/v1/addresses", headers=customer_headers).json()) == 1

def test_addresses_are_owner_only(client, customer_headers, make_user, auth_for):
    aid = client.post("/users/v1/addresses", headers=customer_headers, json=ADDRESS).json()["id"]
    other = auth_for(make_user(email="other@example.com"))
    assert client.get("/users/v1/addresses", headers=other).json() == []
    assert client.patch(f"/users/v1/addresses/{aid}", headers=other, json={"city": "Qom"}).status_code == 404
    assert client.delete(f"/users/v1/addresses/{aid}", headers=other).status_code == 404
    assert client.post("/users/v1/addresses", headers=other, json={**ADDRESS, "postal_code": "x"}).status_code == 422

def test_wishlist_add_list_remove(client, customer_headers, make_product):
    shoe = make_product(name="Trainer", price="100000", discount_percent=10)
    mat = make_product(name="Yoga Mat")
    r = client.post("/wishlist/v1/wishlist", json={"product_id": shoe.id}, headers=customer_headers)
    assert r.status_code == 201
    assert Decimal(r.json()["product"]["final_price"]) == Decimal("90000")
    assert client.post("/wishlist/v1/wishlist", json={"product_id": shoe.id}, headers=customer_headers).status_code == 400
    client.post("/wishlist/v1/wishlist", json={"product_id": mat.id}, headers=customer_headers)

    body = client.get("/wishlist/v1/wishlist", params={"limit": 1}, headers=customer_headers).json()
    assert body["pagination"] == {"total": 2, "page": 1, "limit": 1, "total_pages": 2}
    assert len(body["items"]) == 1

    assert client.delete(f"/wishlist/v1/wishlist/{shoe.id}", headers=customer_headers).status_code == 200
    assert client.delete(f"/wishlist/v1/wishlist/{shoe.id}", headers=customer_headers).status_code == 404
    body = client.get("/wishlist/v1/wishlist", headers=customer_headers).json()
    assert [i["product"]["name"] for i in body["items"]] == ["Yoga Mat"]

def test_wishlist_rejects_missing_or_inactive_products(client, db, customer_headers, make_product):
    hidden = make_product(is_active=False)
    assert client.post("/wishlist/v1/wishlist", json={"product_id": hidden.id}, headers=customer_headers).status_code == 404
    assert client.post("/wishlist/v1/wishlist", json={"product_id": 999}, headers=customer_headers).status_code == 404
    assert db.query(models.WishlistItem).count() == 0

def test_wishlists_are_per_user(client, customer_headers, make_user, make_product, auth_for):
    p = make_product()
    client.post("/wishlist/v1/wishlist", json={"product_id": p.id}, headers=customer_headers)
    other = auth_for(make_user(email="other@example.com"))
    assert client.get("/wishlist/v1/wishlist", headers=other).json()["items"] == []
    assert client.delete(f"/wishlist/v1/wishlist/{p.id}", headers=other).status_code == 404
