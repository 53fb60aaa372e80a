"""
pytest plugin

Enable it from a conftest:

    pytest_plugins = ["aftercommit.testing.pytest_plugin"]

Provides the `with_commits` marker and the `after_commit_emulation`,
`after_commit_database`, `after_commit_engine` and `transaction_manager`
fixtures. Projects override `after_commit_engine` to create their tables.
"""
from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from aftercommit.config import get_settings
from aftercommit.dispatch.emulation import get_emulation
from aftercommit.infrastructure.database.session import SessionFactory
from aftercommit.infrastructure.database.transaction_manager import TransactionManager
from aftercommit.infrastructure.observability.logger import configure_logging, log_context
from aftercommit.testing.harness import HarnessTransaction


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "with_commits(enabled=True): force emulated commit callbacks on or off for one test",
    )
    settings = get_settings()
    configure_logging(log_level=settings.log_level, json_logs=settings.json_logs)


def _marker_value(marker) -> bool:
    if "enabled" in marker.kwargs:
        return bool(marker.kwargs["enabled"])
    if marker.args:
        return bool(marker.args[0])
    return True


@pytest.fixture(autouse=True)
def after_commit_emulation(request):
    """Scope emulated commits to the test and restore the global default afterwards."""
    emulation = get_emulation()
    marker = request.node.get_closest_marker("with_commits")
    with log_context(test=request.node.nodeid), emulation.default_scope(emulation.default):
        if marker is None:
            yield emulation
        else:
            with emulation.with_scope(_marker_value(marker)):
                yield emulation


@pytest.fixture(scope="session")
def after_commit_database():
    factory = SessionFactory(get_settings().database_url)
    yield factory
    factory.dispose()


@pytest.fixture(scope="session")
def after_commit_engine(after_commit_database):
    return after_commit_database.engine


@pytest.fixture
def transaction_manager(after_commit_engine, after_commit_emulation):
    """
    TransactionManager for the test.

    Wrapped in a HarnessTransaction, or bound to a plain session that
    really commits when AFTER_COMMIT_REAL is set.
    """
    if get_settings().real_transactions:
        session = Session(bind=after_commit_engine, expire_on_commit=False, autoflush=False)
        try:
            yield TransactionManager(session)
        finally:
            session.close()
        return

    with HarnessTransaction(after_commit_engine) as manager:
        yield manager
