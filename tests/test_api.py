"""Tests for the HTTP endpoints."""

import main
from exceptions import StoreUnavailable, WriteConflict


class TestRootEndpoint:

    def test_root_endpoint_exists(self, test_client):
        response = test_client.get("/")
        assert response.status_code == 200
        assert response.json() == {"message": "Bitespeed API is up"}


class TestIdentifyEndpoint:

    def test_new_contact(self, test_client):
        response = test_client.post("/identify", json={"email": "lorraine@hillvalley.edu", "phoneNumber": "123456"})

        assert response.status_code == 200
        assert response.json() == {
            "contact": {
                "primaryContactId": 1,
                "emails": ["lorraine@hillvalley.edu"],
                "phoneNumbers": ["123456"],
                "secondaryContactIds": [],
            }
        }

    def test_secondary_contact(self, test_client):
        test_client.post("/identify", json={"email": "lorraine@hillvalley.edu", "phoneNumber": "123456"})
        response = test_client.post("/identify", json={"email": "mcfly@hillvalley.edu", "phoneNumber": "123456"})

        assert response.json()["contact"] == {
            "primaryContactId": 1,
            "emails": ["lorraine@hillvalley.edu", "mcfly@hillvalley.edu"],
            "phoneNumbers": ["123456"],
            "secondaryContactIds": [2],
        }

    def test_merging_two_primaries(self, test_client):
        test_client.post("/identify", json={"email": "george@hillvalley.edu", "phoneNumber": "919191"})
        test_client.post("/identify", json={"email": "biffsucks@hillvalley.edu", "phoneNumber": "717171"})

        response = test_client.post("/identify", json={"email": "george@hillvalley.edu", "phoneNumber": "717171"})

        contact = response.json()["contact"]
        assert contact["primaryContactId"] == 1
        assert contact["emails"] == ["george@hillvalley.edu", "biffsucks@hillvalley.edu"]
        assert contact["phoneNumbers"] == ["919191", "717171"]
        assert contact["secondaryContactIds"][0] == 2

    def test_numeric_phone_number(self, test_client):
        response = test_client.post("/identify", json={"phoneNumber": 123456})

        assert response.status_code == 200
        assert response.json()["contact"]["phoneNumbers"] == ["123456"]

    def test_null_email(self, test_client):
        response = test_client.post("/identify", json={"email": None, "phoneNumber": "555"})

        assert response.status_code == 200
        assert response.json()["contact"]["emails"] == []

    def test_missing_fields_returns_400(self, test_client):
        response = test_client.post("/identify", json={})

        assert response.status_code == 400
        assert "detail" in response.json()

    def test_write_conflict_returns_409(self, test_client, monkeypatch):
        def busy(database, email, phone):
            raise WriteConflict("contact store is busy")

        monkeypatch.setattr(main, "identify_contact", busy)

        response = test_client.post("/identify", json={"email": "a@x.com"})
        assert response.status_code == 409

    def test_store_unavailable_returns_503(self, test_client, monkeypatch):
        def down(database, email, phone):
            raise StoreUnavailable("contact store failed")

        monkeypatch.setattr(main, "identify_contact", down)

        response = test_client.post("/identify", json={"email": "a@x.com"})
        assert response.status_code == 503
        assert response.json() == {"detail": "contact store failed"}


class TestContactsEndpoint:

    def test_lists_all_contacts(self, test_client):
        test_client.post("/identify", json={"email": "a@x.com"})
        test_client.post("/identify", json={"email": "a@x.com", "phoneNumber": "555"})

        response = test_client.get("/contacts")

        assert response.status_code == 200
        contacts = response.json()
        assert [c["id"] for c in contacts] == [1, 2]
        assert contacts[0]["linkPrecedence"] == "primary"
        assert contacts[1]["linkPrecedence"] == "secondary"
        assert contacts[1]["linkedId"] == 1
