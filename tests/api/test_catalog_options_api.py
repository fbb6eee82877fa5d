"""API tests for sizes, frames, formats and prices."""

import pytest
from bson import ObjectId


@pytest.fixture
def size(client, auth_headers):
    response = client.post(
        "/api/sizes",
        json={"name": "8x10", "width": 8, "height": 10, "price": 45},
        headers=auth_headers,
    )
    assert response.status_code == 201
    return response.get_json()


class TestSizes:
    def test_create_and_get(self, client, size) -> None:
        assert size["unit"] == "in"
        assert size["price"] == 45
        fetched = client.get(f"/api/sizes/{size['id']}").get_json()
        assert fetched["name"] == "8x10"

    def test_create_validation(self, client, auth_headers) -> None:
        for payload in ({}, {"name": "A", "price": -1}, {"name": "A", "unit": "ft"}):
            response = client.post("/api/sizes", json=payload, headers=auth_headers)
            assert response.status_code == 400

    def test_update(self, client, auth_headers, size) -> None:
        response = client.put(
            f"/api/sizes/{size['id']}", json={"price": 50, "unit": "cm"}, headers=auth_headers
        )
        assert response.status_code == 200
        data = response.get_json()
        assert data["price"] == 50
        assert data["unit"] == "cm"
        assert data["name"] == "8x10"

    def test_update_empty_body(self, client, auth_headers, size) -> None:
        assert client.put(f"/api/sizes/{size['id']}", json={}, headers=auth_headers).status_code == 400

    def test_delete_blocked_by_references(self, client, auth_headers, size) -> None:
        client.post(
            "/api/photos",
            json={"title": "Lake", "use_default_sizes": False, "sizes": [size["id"]]},
            headers=auth_headers,
        )
        client.post("/api/prices", json={"size_id": size["id"], "price": 10}, headers=auth_headers)

        response = client.delete(f"/api/sizes/{size['id']}", headers=auth_headers)
        assert response.status_code == 409
        details = response.get_json()["details"]
        assert "1 photo(s) and 1 price(s)" in details

    def test_delete(self, client, auth_headers, size) -> None:
        assert client.delete(f"/api/sizes/{size['id']}", headers=auth_headers).status_code == 204
        assert client.get(f"/api/sizes/{size['id']}").status_code == 404

    def test_mutations_require_auth(self, client, size) -> None:
        assert client.post("/api/sizes", json={"name": "5x7"}).status_code == 401
        assert client.put(f"/api/sizes/{size['id']}", json={"price": 1}).status_code == 401
        assert client.delete(f"/api/sizes/{size['id']}").status_code == 401


class TestFrames:
    def test_crud(self, client, auth_headers) -> None:
        created = client.post(
            "/api/frames", json={"style": "Oak", "price": 30}, headers=auth_headers
        )
        assert created.status_code == 201
        frame = created.get_json()
        assert frame["style"] == "Oak"

        updated = client.put(
            f"/api/frames/{frame['id']}", json={"price": 35}, headers=auth_headers
        ).get_json()
        assert updated["price"] == 35
        assert updated["style"] == "Oak"

        assert [f["style"] for f in client.get("/api/frames").get_json()] == ["Oak"]
        assert client.delete(f"/api/frames/{frame['id']}", headers=auth_headers).status_code == 204
        assert client.get(f"/api/frames/{frame['id']}").status_code == 404

    def test_duplicate_style_conflict(self, client, auth_headers) -> None:
        client.post("/api/frames", json={"style": "Oak", "price": 30}, headers=auth_headers)
        response = client.post(
            "/api/frames", json={"style": "Oak", "price": 40}, headers=auth_headers
        )
        assert response.status_code == 409

    def test_validation(self, client, auth_headers) -> None:
        assert client.post("/api/frames", json={"style": "Oak"}, headers=auth_headers).status_code == 400
        assert client.post("/api/frames", json={"price": 3}, headers=auth_headers).status_code == 400
        assert client.get("/api/frames/bad-id").status_code == 400

    def test_requires_auth(self, client) -> None:
        response = client.post("/api/frames", json={"style": "Oak", "price": 30})
        assert response.status_code == 401


class TestFormats:
    def test_defaults_are_seeded(self, client, db) -> None:
        names = [f["name"] for f in client.get("/api/formats").get_json()]
        assert names == ["Acrylic", "Canvas", "Metal", "Paper"]
        client.get("/api/formats")
        assert db.formats.count_documents({}) == 4

    def test_no_seed_when_formats_exist(self, client, auth_headers) -> None:
        client.post("/api/formats", json={"name": "Wood", "price": 80}, headers=auth_headers)
        names = [f["name"] for f in client.get("/api/formats").get_json()]
        assert names == ["Wood"]

    def test_update_and_delete(self, client, auth_headers) -> None:
        created = client.post(
            "/api/formats", json={"name": "Wood", "price": 80}, headers=auth_headers
        ).get_json()
        updated = client.put(
            f"/api/formats/{created['id']}", json={"name": "Bamboo"}, headers=auth_headers
        ).get_json()
        assert updated["name"] == "Bamboo"
        assert client.delete(f"/api/formats/{created['id']}", headers=auth_headers).status_code == 204
        assert client.delete(f"/api/formats/{created['id']}", headers=auth_headers).status_code == 404

    def test_requires_auth(self, client) -> None:
        assert client.delete(f"/api/formats/{ObjectId()}").status_code == 401


class TestPrices:
    def test_create_embeds_size(self, client, auth_headers, size) -> None:
        response = client.post(
            "/api/prices",
            json={"size_id": size["id"], "price": 55, "label": "Holiday Sale"},
            headers=auth_headers,
        )
        assert response.status_code == 201
        data = response.get_json()
        assert data["size"]["name"] == "8x10"
        assert data["label"] == "Holiday Sale"

        listed = client.get("/api/prices").get_json()
        assert listed[0]["size"]["id"] == size["id"]

    def test_size_must_exist(self, client, auth_headers) -> None:
        response = client.post(
            "/api/prices", json={"size_id": str(ObjectId()), "price": 5}, headers=auth_headers
        )
        assert response.status_code == 400
        assert response.get_json()["error"] == "Size not found"

    def test_update_and_delete(self, client, auth_headers, size) -> None:
        price = client.post(
            "/api/prices", json={"size_id": size["id"], "price": 55}, headers=auth_headers
        ).get_json()
        updated = client.put(
            f"/api/prices/{price['id']}", json={"price": 60}, headers=auth_headers
        ).get_json()
        assert updated["price"] == 60
        assert client.delete(f"/api/prices/{price['id']}", headers=auth_headers).status_code == 204
        assert client.put(
            f"/api/prices/{price['id']}", json={"price": 1}, headers=auth_headers
        ).status_code == 404

    def test_requires_auth(self, client, size) -> None:
        response = client.post("/api/prices", json={"size_id": size["id"], "price": 5})
        assert response.status_code == 401
