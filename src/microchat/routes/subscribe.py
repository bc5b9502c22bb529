import asyncio
import contextlib
import logging
from typing import Optional

import air
from air.responses import JSONResponse
from air.responses import Response
from fastapi import APIRouter
from fastapi import Depends
from fastapi import status

from microchat.event_broker import get_broker
from microchat.longpoll.broker import LongpollBroker
from microchat.longpoll.broker import SubscribeResult
from microchat.longpoll.errors import InternalError
from microchat.longpoll.errors import InvalidArgument

logger = logging.getLogger(__name__)

router = APIRouter(tags=["subscribe"])

# how often a parked long-poll checks whether its client is still there
DISCONNECT_POLL_SECONDS = 1.0


def parse_subscription(params, max_timeout: int) -> tuple[list[str], Optional[int], int]:
    """Read ``timeout``, ``category`` and ``since_time`` from the query string.

    ``category`` may list several topics separated by commas.
    """
    try:
        timeout = int(params.get("timeout", ""))
    except ValueError:
        raise InvalidArgument(f"Invalid timeout arg.  Must be 1-{max_timeout}.")
    if not 1 <= timeout <= max_timeout:
        raise InvalidArgument(f"Invalid timeout arg.  Must be 1-{max_timeout}.")

    topics = [t.strip() for t in params.get("category", "").split(",") if t.strip()]
    if not topics:
        raise InvalidArgument("Invalid subscription category, must be 1-1024 characters long.")

    since = None
    raw_since = params.get("since_time")
    if raw_since:
        try:
            since = int(raw_since)
        except ValueError:
            raise InvalidArgument("Invalid since_time arg.")
    return topics, since, timeout


def result_to_wire(result: SubscribeResult) -> dict:
    if result.status == "data":
        return {"events": [event.to_wire() for event in result.events]}
    if result.status == "timeout":
        return {"timeout": "no events before timeout", "timestamp": result.timestamp}
    return {"error": "subscription aborted, server is shutting down"}


async def wait_for_disconnect(request: air.Request, poll_interval: float = DISCONNECT_POLL_SECONDS):
    while not await request.is_disconnected():
        await asyncio.sleep(poll_interval)


@router.get("/subscribe")
async def subscribe(request: air.Request, broker: LongpollBroker = Depends(get_broker)):
    try:
        topics, since, timeout = parse_subscription(
            request.query_params, broker.options.max_timeout_seconds
        )
    except InvalidArgument as exc:
        return JSONResponse({"error": str(exc)})

    poll = asyncio.create_task(broker.subscribe(topics, since, timeout=timeout))
    watcher = asyncio.create_task(wait_for_disconnect(request))
    try:
        await asyncio.wait({poll, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        # cancelling a parked poll aborts and unregisters its waiter
        for task in (poll, watcher):
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    if poll.cancelled():
        logger.info("client left, dropped subscription to %s", ",".join(topics))
        return Response("", status.HTTP_204_NO_CONTENT)

    try:
        result = poll.result()
    except InvalidArgument as exc:
        return JSONResponse({"error": str(exc)})
    except InternalError as exc:
        logger.warning("subscription to %s failed: %s", ",".join(topics), exc)
        return JSONResponse({"error": str(exc)}, status.HTTP_503_SERVICE_UNAVAILABLE)

    if result.status == "aborted":
        return JSONResponse(result_to_wire(result), status.HTTP_503_SERVICE_UNAVAILABLE)
    return JSONResponse(result_to_wire(result))


@router.get("/healthz")
def healthz(broker: LongpollBroker = Depends(get_broker)):
    return JSONResponse({"ok": not broker.closed, **broker.stats()})
