from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002

from caseflow.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyCaseUnitOfWork,
    shutdown,
    startup,
)
from caseflow.domain.model import CallerIdentity, Role
from tests.helpers.cases import FakeStore

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_unit_of_work(
    sqlite_engine: Engine,
) -> Iterator[Callable[[], SqlAlchemyCaseUnitOfWork]]:
    startup(engine=sqlite_engine, force=True)

    def factory() -> SqlAlchemyCaseUnitOfWork:
        return SqlAlchemyCaseUnitOfWork()

    try:
        yield factory
    finally:
        shutdown()


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def operator() -> CallerIdentity:
    return CallerIdentity(user_id="user-1", role=Role.OPERATOR)


@pytest.fixture
def other_operator() -> CallerIdentity:
    return CallerIdentity(user_id="user-2", role=Role.OPERATOR)


@pytest.fixture
def admin() -> CallerIdentity:
    return CallerIdentity(user_id="admin-1", role=Role.ADMIN)
