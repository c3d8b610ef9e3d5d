"""Pytest fixtures for the contact reconciliation tests."""

from typing import Generator

import pytest

from config import Settings
from db_models import LinkPrecedence
from db_setup import Database


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(db_name=str(tmp_path / "contacts.db"), busy_timeout=5.0, log_level="DEBUG")


@pytest.fixture
def database(settings) -> Database:
    database = Database.from_settings(settings)
    database.init()
    return database


@pytest.fixture
def seed(database):
    """Insert a contact directly, bypassing the reconciliation logic."""

    def _seed(email=None, phone=None, linked_to=None):
        precedence = LinkPrecedence.SECONDARY if linked_to else LinkPrecedence.PRIMARY
        with database.transaction() as store:
            return store.create(email, phone, precedence, linked_to.id if linked_to else None)

    return _seed


@pytest.fixture
def contacts(database):
    """Current (createdAt ordered) contents of the store, keyed by id."""

    def _contacts():
        with database.session() as store:
            return {record.id: record for record in store.list_all()}

    return _contacts


@pytest.fixture
def test_client(settings) -> Generator:
    """Create a test client for the FastAPI application."""
    from fastapi.testclient import TestClient
    from main import create_app

    with TestClient(create_app(settings)) as client:
        yield client
