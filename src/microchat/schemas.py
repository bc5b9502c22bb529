# schemas.py
from pydantic import BaseModel

from microchat.utils import normalize_topic
from microchat.utils import sanitize_input
from microchat.utils import to_markdown
from microchat.utils import truncate_input

MAX_TOPIC_LENGTH = 48
MAX_DISPLAY_NAME_LENGTH = 28
MAX_MESSAGE_LENGTH = 512

INVALID_CHAT_MESSAGE = (
    "Invalid request.  Blank/Invalid topic (must be A-Za-z0-9), display_name, or message."
)


class ChatPost(BaseModel):
    display_name: str
    message: str
    topic: str


class ChatForm(BaseModel):
    topic: str = ""
    display_name: str = ""
    message: str = ""
    doAjax: str = ""

    @property
    def wants_ajax(self) -> bool:
        return self.doAjax == "yes"

    def clean(self) -> ChatPost:
        """Normalize, truncate and sanitize into the published payload.

        Raises ValueError when topic, display name or message end up blank.
        """
        topic = normalize_topic(self.topic)
        if not topic.strip() or not self.display_name.strip() or not self.message.strip():
            raise ValueError(INVALID_CHAT_MESSAGE)

        # lengths are in characters, not bytes
        return ChatPost(
            topic=truncate_input(topic, MAX_TOPIC_LENGTH),
            display_name=sanitize_input(truncate_input(self.display_name, MAX_DISPLAY_NAME_LENGTH)),
            message=sanitize_input(to_markdown(truncate_input(self.message, MAX_MESSAGE_LENGTH))),
        )
