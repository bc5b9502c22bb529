import pytest

from microchat.app import app
from microchat.event_broker import get_broker


# ---- Route the app to a fresh broker per test ----
@pytest.fixture(autouse=True)
def override_get_broker(broker):
    app.dependency_overrides[get_broker] = lambda: broker
    yield
    app.dependency_overrides.pop(get_broker, None)
