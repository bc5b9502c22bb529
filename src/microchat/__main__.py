import argparse
import logging

import uvicorn

from microchat.settings import normalize_addr
from microchat.settings import settings


def parse_args(argv=None):
    p = argparse.ArgumentParser(prog="microchat", description="Topic chat over long-polling.")
    p.add_argument("--addr", type=normalize_addr, default=settings.addr, help="address:port to serve")
    p.add_argument(
        "--max-chat-hrs",
        type=int,
        default=settings.max_chat_hours,
        help="how long chats are stored (hours)",
    )
    p.add_argument(
        "--topic-refresh-sec",
        type=int,
        default=settings.topic_refresh_seconds,
        help="how often the popular/recent topic boards are refreshed in browser (seconds)",
    )
    p.add_argument(
        "--max-topic-lists",
        type=int,
        default=settings.max_topic_lists,
        help="how many topics listed in top popular/recent topics",
    )
    p.add_argument(
        "--chats-on-screen",
        type=int,
        default=settings.chats_on_screen,
        help="how many chats to display on a screen",
    )
    args = p.parse_args(argv)
    for name in ("max_chat_hrs", "topic_refresh_sec", "max_topic_lists", "chats_on_screen"):
        if getattr(args, name) < 1:
            p.error(f"--{name.replace('_', '-')} must be >= 1")
    return args


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # settings are read by the app on import, so apply overrides first
    settings.addr = args.addr
    settings.max_chat_hours = args.max_chat_hrs
    settings.topic_refresh_seconds = args.topic_refresh_sec
    settings.max_topic_lists = args.max_topic_lists
    settings.chats_on_screen = args.chats_on_screen

    from microchat.app import app

    logging.getLogger(__name__).info(
        "addr:%s, maxChatHrs:%s, topicRefreshSec:%s, maxTopicLists:%s chatsOnScreen:%s",
        settings.addr,
        settings.max_chat_hours,
        settings.topic_refresh_seconds,
        settings.max_topic_lists,
        settings.chats_on_screen,
    )
    logging.getLogger(__name__).info("Launching chat server on %s", settings.addr)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
