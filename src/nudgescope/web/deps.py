"""Dependency injection for web routes."""

from __future__ import annotations

from contextlib import contextmanager

from fastapi import Request

from nudgescope.storage.database import Database
from nudgescope.storage.repository import Repository


def get_services(request: Request):
    """Pipeline components attached by create_app."""
    return request.app.state.services


@contextmanager
def get_db(services):
    """Open a database connection for one request, ensuring it's closed."""
    with Database(services.settings.db_path) as db:
        yield db


def get_repo(db: Database) -> Repository:
    return Repository(db)
