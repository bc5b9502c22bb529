import os

# Keep test runs independent of a developer's .env
os.environ.setdefault("MICROCHAT_MAX_TIMEOUT_SECONDS", "10")
os.environ.setdefault("MICROCHAT_POLL_TIMEOUT_SECONDS", "5")
os.environ.setdefault("MICROCHAT_LOG_LEVEL", "DEBUG")

from httpx import ASGITransport
from httpx import AsyncClient
import pytest

from microchat.app import app
from microchat.longpoll.broker import LongpollBroker
from microchat.longpoll.broker import LongpollOptions


class FakeClock:
    """Millisecond clock the tests move by hand."""

    def __init__(self, now=1_000_000):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def options():
    return LongpollOptions(max_event_buffer_size=250, max_timeout_seconds=10)


@pytest.fixture
async def broker(options):
    b = LongpollBroker(options)
    yield b
    await b.shutdown()


@pytest.fixture
async def clocked_broker(options, clock):
    b = LongpollBroker(options, clock=clock)
    yield b
    await b.shutdown()



# ---- HTTP client bound to the ASGI app ----
@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


# ---- BeautifulSoup helper ----
@pytest.fixture
def soup():
    from bs4 import BeautifulSoup

    return lambda html: BeautifulSoup(html, "html.parser")
