import re
from pathlib import Path

import air
import markdown
import nh3

BASE_DIR = Path(__file__).resolve().parent
jinja = air.JinjaRenderer(directory=str(BASE_DIR / "templates"))

# catch-all topic: every chat is published here too
ALL_CHATS = "all_chats"

_NON_SLUG = re.compile(r"[^A-Za-z0-9]+")


def normalize_topic(topic: str) -> str:
    """Collapse anything outside A-Za-z0-9 into single dashes, trim the ends."""
    return _NON_SLUG.sub("-", topic).strip("-")


def truncate_input(value: str, max_length: int) -> str:
    return value[:max_length]


def sanitize_input(value: str) -> str:
    # user-generated content policy: formatting, links and images survive,
    # scripts, styles and event handlers don't
    return nh3.clean(value)


def to_markdown(value: str) -> str:
    return markdown.markdown(value)
