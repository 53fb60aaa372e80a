import pytest

from aftercommit import observe
from aftercommit.dispatch.observers import get_observer_bridge

from tests.models import CarObserver


@pytest.fixture(scope="session", autouse=True)
def car_observer():
    # Registered after Car is defined, so its callbacks run before Car's own.
    observer = CarObserver()
    observe(observer)
    yield observer
    get_observer_bridge().remove(observer)
