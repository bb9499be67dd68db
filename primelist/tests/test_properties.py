import json

from conftest import auth_headers, make_property, make_user
from primelist.config import settings
from primelist.models.property import Property
from primelist.models.property_images import PropertyImage
from primelist.models.user import UserRole
from primelist.services.image_store import DatabaseImageStore


NEW_LISTING = {
    "title": "Maple Street Cottage",
    "description": "Two storey cottage close to the park",
    "property_type": "house",
    "listing_type": "sale",
    "price": 315000,
    "address": "12 Maple St",
    "city": "Bangor",
    "state": "ME",
    "bedrooms": 2,
    "bathrooms": 1.5,
}


def _jpeg(name="photo.jpg", data=b"\xff\xd8\xff-jpeg"):
    return ("images", (name, data, "image/jpeg"))


def _images(db, property_id):
    db.expire_all()
    return (
        db.query(PropertyImage)
        .filter(PropertyImage.property_id == property_id)
        .order_by(PropertyImage.id)
        .all()
    )


def _seed_images(db, upload_root, property_id, count):
    store = DatabaseImageStore(db, upload_root, "/uploads")
    ids = [
        store.put(property_id, f"img-{i}".encode(), "image/png", is_primary=(i == 0))
        for i in range(count)
    ]
    db.commit()
    return ids


def test_list_properties_includes_agent_and_images(client, db_session, listing, agent, upload_root):
    ids = _seed_images(db_session, upload_root, listing.id, 2)

    response = client.get("/properties")

    assert response.status_code == 200
    [prop] = response.json()["properties"]
    assert prop["title"] == "Harbor View"
    assert prop["agent_name"] == agent.full_name
    assert prop["agent_email"] == agent.email
    assert [image["id"] for image in prop["images"]] == ids
    assert prop["images"][0]["is_primary"] is True
    assert prop["images"][0]["url"] == f"/images/{ids[0]}"


def test_list_properties_filters(client, db_session, agent):
    make_property(db_session, agent, title="Cheap", price=90000, city="Augusta")
    make_property(db_session, agent, title="Pricey", price=900000, city="Portland")
    make_property(db_session, agent, title="Starred", featured=True)

    by_city = client.get("/properties", params={"city": "augus"}).json()["properties"]
    assert [p["title"] for p in by_city] == ["Cheap"]

    by_price = client.get(
        "/properties", params={"min_price": 100000, "max_price": 500000}
    ).json()["properties"]
    assert [p["title"] for p in by_price] == ["Starred"]

    featured = client.get("/properties", params={"featured": "true"}).json()["properties"]
    assert [p["title"] for p in featured] == ["Starred"]


def test_get_property_detail(client, listing):
    response = client.get(f"/properties/{listing.id}")

    assert response.status_code == 200
    body = response.json()["property"]
    assert body["id"] == listing.id
    assert body["status"] == "available"
    assert body["images"] == []


def test_get_missing_property_returns_404(client):
    response = client.get("/properties/999")

    assert response.status_code == 404
    assert response.json()["detail"] == "Property not found"


def test_create_property_from_json(client, db_session, agent):
    response = client.post("/properties", json=NEW_LISTING, headers=auth_headers(agent))

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Property created successfully"
    db_session.expire_all()
    prop = db_session.get(Property, body["propertyId"])
    assert prop.title == "Maple Street Cottage"
    assert prop.agent_id == agent.id


def test_create_property_with_uploaded_images(client, db_session, agent):
    response = client.post(
        "/properties",
        data={"propertyData": json.dumps(NEW_LISTING)},
        files=[_jpeg("front.jpg"), _jpeg("back.jpg", b"\xff\xd8\xff-back")],
        headers=auth_headers(agent),
    )

    assert response.status_code == 201
    rows = _images(db_session, response.json()["propertyId"])
    assert [row.is_primary for row in rows] == [True, False]
    assert rows[1].image_data == b"\xff\xd8\xff-back"
    assert rows[0].mime_type == "image/jpeg"


def test_create_property_from_plain_form_fields(client, db_session, agent):
    fields = {key: str(value) for key, value in NEW_LISTING.items()}

    response = client.post(
        "/properties", data=fields, files=[_jpeg()], headers=auth_headers(agent)
    )

    assert response.status_code == 201
    assert len(_images(db_session, response.json()["propertyId"])) == 1


def test_create_property_rejects_invalid_property_data(client, agent):
    response = client.post(
        "/properties",
        data={"propertyData": "{not json"},
        files=[_jpeg()],
        headers=auth_headers(agent),
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "propertyData invalid JSON"


def test_create_property_validates_fields(client, agent):
    response = client.post(
        "/properties",
        json={**NEW_LISTING, "price": -5},
        headers=auth_headers(agent),
    )

    assert response.status_code == 422


def test_create_property_rejects_non_image_upload(client, db_session, agent):
    response = client.post(
        "/properties",
        data={"propertyData": json.dumps(NEW_LISTING)},
        files=[_jpeg(), ("images", ("notes.pdf", b"%PDF-1.4", "application/pdf"))],
        headers=auth_headers(agent),
    )

    assert response.status_code == 400
    assert "Only image files are allowed" in response.json()["detail"]
    db_session.expire_all()
    assert db_session.query(Property).count() == 0
    assert db_session.query(PropertyImage).count() == 0


def test_create_property_rejects_oversized_upload(client, agent, monkeypatch):
    monkeypatch.setattr(settings, "MAX_IMAGE_SIZE_BYTES", 8)

    response = client.post(
        "/properties",
        data={"propertyData": json.dumps(NEW_LISTING)},
        files=[_jpeg(data=b"0123456789")],
        headers=auth_headers(agent),
    )

    assert response.status_code == 413


def test_create_property_rejects_too_many_files(client, agent, monkeypatch):
    monkeypatch.setattr(settings, "MAX_PROPERTY_IMAGES", 1)

    response = client.post(
        "/properties",
        data={"propertyData": json.dumps(NEW_LISTING)},
        files=[_jpeg("a.jpg"), _jpeg("b.jpg")],
        headers=auth_headers(agent),
    )

    assert response.status_code == 400


def test_buyer_cannot_create_property(client, db_session):
    buyer = make_user(db_session, "buyer@example.com", UserRole.BUYER)

    response = client.post("/properties", json=NEW_LISTING, headers=auth_headers(buyer))

    assert response.status_code == 403


def test_create_requires_authentication(client):
    response = client.post("/properties", json=NEW_LISTING)

    assert response.status_code == 401


def test_update_removes_primary_and_promotes_next(client, db_session, listing, agent, upload_root):
    first, second, third = _seed_images(db_session, upload_root, listing.id, 3)

    response = client.put(
        f"/properties/{listing.id}",
        json={"price": 399000, "imagesToRemove": [f"/images/{first}"]},
        headers=auth_headers(agent),
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Property updated successfully"
    rows = _images(db_session, listing.id)
    assert [(row.id, row.is_primary) for row in rows] == [
        (second, True),
        (third, False),
    ]
    assert db_session.get(Property, listing.id).price == 399000


def test_update_with_form_fields_and_new_upload(client, db_session, listing, agent, upload_root):
    [existing] = _seed_images(db_session, upload_root, listing.id, 1)

    response = client.put(
        f"/properties/{listing.id}",
        data={"propertyData": json.dumps({"title": "Harbor View II"})},
        files=[_jpeg()],
        headers=auth_headers(agent),
    )

    assert response.status_code == 200
    rows = _images(db_session, listing.id)
    assert [(row.id == existing, row.is_primary) for row in rows] == [
        (True, True),
        (False, False),
    ]
    assert db_session.get(Property, listing.id).title == "Harbor View II"


def test_update_replace_images(client, db_session, listing, agent, upload_root):
    _seed_images(db_session, upload_root, listing.id, 2)

    response = client.put(
        f"/properties/{listing.id}",
        data={"propertyData": "{}", "replaceImages": "true"},
        files=[_jpeg("x.jpg"), _jpeg("y.jpg")],
        headers=auth_headers(agent),
    )

    assert response.status_code == 200
    rows = _images(db_session, listing.id)
    assert len(rows) == 2
    assert [row.mime_type for row in rows] == ["image/jpeg", "image/jpeg"]
    assert [row.is_primary for row in rows] == [True, False]


def test_update_rejects_unparseable_image_reference(client, listing, agent):
    response = client.put(
        f"/properties/{listing.id}",
        json={"imagesToRemove": ["/uploads/properties/a.jpg"]},
        headers=auth_headers(agent),
    )

    assert response.status_code == 400


def test_update_by_other_agent_is_denied(client, db_session, listing):
    other = make_user(db_session, "other@example.com", UserRole.AGENT)

    response = client.put(
        f"/properties/{listing.id}", json={"title": "Mine now"}, headers=auth_headers(other)
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "Access denied"


def test_admin_can_update_any_property(client, db_session, listing):
    admin = make_user(db_session, "admin@example.com", UserRole.ADMIN)

    response = client.put(
        f"/properties/{listing.id}", json={"status": "sold"}, headers=auth_headers(admin)
    )

    assert response.status_code == 200
    db_session.expire_all()
    assert db_session.get(Property, listing.id).status.value == "sold"


def test_update_missing_property_returns_404(client, agent):
    response = client.put("/properties/999", json={"title": "x"}, headers=auth_headers(agent))

    assert response.status_code == 404


def test_delete_property_removes_images(client, db_session, listing, agent, upload_root):
    property_id = listing.id
    _seed_images(db_session, upload_root, property_id, 2)

    response = client.delete(f"/properties/{property_id}", headers=auth_headers(agent))

    assert response.status_code == 200
    assert response.json()["message"] == "Property deleted successfully"
    db_session.expire_all()
    assert db_session.get(Property, property_id) is None
    assert db_session.query(PropertyImage).count() == 0


def test_delete_by_other_agent_is_denied(client, db_session, listing, upload_root):
    property_id = listing.id
    ids = _seed_images(db_session, upload_root, property_id, 2)
    other = make_user(db_session, "other@example.com", UserRole.AGENT)

    response = client.delete(f"/properties/{property_id}", headers=auth_headers(other))

    assert response.status_code == 403
    assert response.json()["detail"] == "Access denied"
    assert db_session.get(Property, property_id) is not None
    assert [row.id for row in _images(db_session, property_id)] == ids


def test_buyer_cannot_delete_property(client, db_session, listing):
    buyer = make_user(db_session, "buyer@example.com", UserRole.BUYER)

    response = client.delete(f"/properties/{listing.id}", headers=auth_headers(buyer))

    assert response.status_code == 403


def test_admin_can_delete_any_property(client, db_session, listing, upload_root):
    property_id = listing.id
    _seed_images(db_session, upload_root, property_id, 1)
    admin = make_user(db_session, "admin@example.com", UserRole.ADMIN)

    response = client.delete(f"/properties/{property_id}", headers=auth_headers(admin))

    assert response.status_code == 200
    db_session.expire_all()
    assert db_session.get(Property, property_id) is None
    assert db_session.query(PropertyImage).count() == 0


def test_delete_removes_legacy_files(client, db_session, listing, agent, upload_root):
    folder = upload_root / "properties"
    folder.mkdir()
    (folder / "old.jpg").write_bytes(b"old")
    db_session.add(
        PropertyImage(
            property_id=listing.id, image_url="/uploads/properties/old.jpg", is_primary=True
        )
    )
    db_session.commit()

    response = client.delete(f"/properties/{listing.id}", headers=auth_headers(agent))

    assert response.status_code == 200
    assert not (folder / "old.jpg").exists()
