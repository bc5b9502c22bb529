from contextlib import asynccontextmanager
from pathlib import Path

import air
from starlette.staticfiles import StaticFiles

from microchat.event_broker import broker
from microchat.middleware import RequestLogMiddleware
from microchat.routes.chat import router as chat_router
from microchat.routes.subscribe import router as subscribe_router

BASE_DIR = Path(__file__).resolve().parent
STATIC_DIR = BASE_DIR / "static"


@asynccontextmanager
async def lifespan(app):
    broker.start()
    try:
        yield
    finally:
        # parked long-polls get an "aborted" answer instead of hanging
        await broker.shutdown()


app = air.Air(lifespan=lifespan)

app.add_middleware(RequestLogMiddleware)
app.include_router(chat_router)
app.include_router(subscribe_router)

if STATIC_DIR.exists():
    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")
