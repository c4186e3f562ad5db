"""Shared fixtures for the exchange tests."""

from __future__ import annotations

import dataclasses

import pytest

from catalog_exchange.auth.gate import AuthGate
from catalog_exchange.auth.session_store import SessionStore
from catalog_exchange.auth.validator import SessionValidator
from catalog_exchange.core.config import ExchangeSettings
from catalog_exchange.exchange.dispatcher import ProtocolDispatcher
from catalog_exchange.storage.blobs import LocalBlobStorage
from catalog_exchange.storage.documents import InMemoryDocumentStore
from catalog_exchange.storage.router import StorageRouter, namespaces_from_settings

USERNAME = "x"
PASSWORD = "y"


@pytest.fixture
def settings() -> ExchangeSettings:
    return ExchangeSettings(username=USERNAME, password=PASSWORD, session_duration_seconds=3600)


@pytest.fixture
def csrf_settings(settings) -> ExchangeSettings:
    return dataclasses.replace(settings, csrf_protection=True)


@pytest.fixture
def documents() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def blobs(tmp_path) -> LocalBlobStorage:
    return LocalBlobStorage(tmp_path / "blobs")


@pytest.fixture
def sessions(settings, documents) -> SessionStore:
    return SessionStore(documents, collection=settings.sessions_storage_path, timeout=1.0)


def make_dispatcher(settings: ExchangeSettings, documents, blobs, event_log=None) -> ProtocolDispatcher:
    store = SessionStore(documents, collection=settings.sessions_storage_path, timeout=1.0)
    return ProtocolDispatcher(
        settings=settings,
        auth_gate=AuthGate(settings, store),
        validator=SessionValidator(settings, store),
        storage=StorageRouter(blobs, namespaces_from_settings(settings), timeout=1.0),
        event_log=event_log,
    )


@pytest.fixture
def dispatcher(settings, documents, blobs) -> ProtocolDispatcher:
    return make_dispatcher(settings, documents, blobs)
