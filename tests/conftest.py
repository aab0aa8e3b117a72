"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PAYMENT__STRIPE__SECRET_KEY", "sk_test_123")
os.environ.setdefault("PAYMENT__STRIPE__WEBHOOK_SECRET", "whsec_test")

import functools

import pytest

from fakes import InMemoryStore, FakeUnitOfWork


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def uow_factory(store):
    return functools.partial(FakeUnitOfWork, store)
