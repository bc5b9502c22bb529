import logging
from urllib.parse import urlencode

import air
from air.responses import RedirectResponse
from air.responses import Response
from fastapi import APIRouter
from fastapi import Depends
from fastapi import HTTPException
from fastapi import status

from microchat.event_broker import get_broker
from microchat.longpoll.broker import LongpollBroker
from microchat.longpoll.errors import InternalError
from microchat.schemas import ChatForm
from microchat.schemas import MAX_TOPIC_LENGTH
from microchat.settings import settings
from microchat.utils import ALL_CHATS
from microchat.utils import jinja
from microchat.utils import normalize_topic
from microchat.utils import truncate_input

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


@router.get("/")
def index(request: air.Request, topic: str = "", display_name: str = ""):
    topic = truncate_input(normalize_topic(topic), MAX_TOPIC_LENGTH)
    return jinja(
        request,
        "index.html",
        {
            "topic": topic,
            "display_name": display_name,
            "all_chats": ALL_CHATS,
            "max_chat_hours": settings.max_chat_hours,
            "topic_refresh_seconds": settings.topic_refresh_seconds,
            "max_topic_lists": settings.max_topic_lists,
            "chats_on_screen": settings.chats_on_screen,
            "poll_timeout_seconds": settings.poll_timeout_seconds,
        },
    )


@router.post("/post")
async def post_chat(request: air.Request, broker: LongpollBroker = Depends(get_broker)):
    form_data = {k: str(v) for k, v in (await request.form()).items()}
    form = ChatForm(**form_data)
    logger.info("chat post topic: %s, display_name: %s", form.topic, form.display_name)

    try:
        chat = form.clean()
    except ValueError as exc:
        return Response(str(exc), status.HTTP_400_BAD_REQUEST)

    payload = chat.model_dump()
    try:
        await broker.publish(chat.topic, payload)
        # the homepage shows every topic through the catch-all feed
        await broker.publish(ALL_CHATS, payload)
    except InternalError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))

    if form.wants_ajax:
        return Response("ok", status.HTTP_200_OK)

    query = urlencode({"topic": chat.topic, "display_name": chat.display_name})
    return RedirectResponse(url=f"/?{query}", status_code=status.HTTP_303_SEE_OTHER)
