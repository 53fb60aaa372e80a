import pytest
from sqlalchemy import delete

from aftercommit.config import get_settings
from aftercommit.infrastructure.observability import configure_metrics
from tests.models import MODELS, Base, CarObserver

pytest_plugins = ["aftercommit.testing.pytest_plugin"]


def real_transactions():
    return get_settings().real_transactions


@pytest.fixture(scope="session")
def after_commit_engine(after_commit_engine):
    Base.metadata.create_all(after_commit_engine)
    return after_commit_engine


@pytest.fixture(autouse=True)
def reset_models():
    for model in MODELS:
        model.called.clear()
    CarObserver.recording = False
    CarObserver.callback = None
    yield
    CarObserver.recording = False
    CarObserver.callback = None


@pytest.fixture
def clean_tables(after_commit_engine):
    """Delete committed rows after a test that ran without the harness."""
    yield
    if not real_transactions():
        return
    with after_commit_engine.begin() as conn:
        for model in MODELS:
            conn.execute(delete(model))


@pytest.fixture
def manager(clean_tables, transaction_manager):
    return transaction_manager


@pytest.fixture
def collector():
    collector = configure_metrics(enabled=True)
    yield collector
    configure_metrics(enabled=get_settings().metrics_enabled)
