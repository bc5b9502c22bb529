from pydantic import Field
from pydantic import field_validator
from pydantic import model_validator
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict

from microchat.longpoll.broker import LongpollOptions


def normalize_addr(value: str) -> str:
    """Return ``value`` as ``host:port``; a bare port listens on every interface."""
    addr = str(value).strip()
    if addr.isdigit():
        addr = f":{addr}"
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit() or not 1 <= int(port) <= 65535:
        raise ValueError(f"address must look like host:port or :port, got {value!r}")
    return f"{host}:{int(port)}"


class Settings(BaseSettings):
    # === Server ===
    addr: str = Field(default=":8080", validation_alias="MICROCHAT_ADDR")
    log_level: str = Field(default="INFO", validation_alias="MICROCHAT_LOG_LEVEL")

    # === Chat ===
    max_chat_hours: int = Field(default=24, ge=1, validation_alias="MICROCHAT_MAX_CHAT_HOURS")
    topic_refresh_seconds: int = Field(
        default=30, ge=1, validation_alias="MICROCHAT_TOPIC_REFRESH_SECONDS"
    )
    max_topic_lists: int = Field(default=10, ge=1, validation_alias="MICROCHAT_MAX_TOPIC_LISTS")
    chats_on_screen: int = Field(default=50, ge=1, validation_alias="MICROCHAT_CHATS_ON_SCREEN")

    # === Long-poll ===
    max_timeout_seconds: int = Field(
        default=110, ge=1, validation_alias="MICROCHAT_MAX_TIMEOUT_SECONDS"
    )
    # what the page asks the browser to poll with
    poll_timeout_seconds: int = Field(
        default=50, ge=1, validation_alias="MICROCHAT_POLL_TIMEOUT_SECONDS"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        validate_assignment=True,
    )

    @field_validator("addr", mode="before")
    @classmethod
    def check_addr(cls, v: str) -> str:
        return normalize_addr(v)

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return str(v).strip().upper()

    @model_validator(mode="after")
    def check_poll_timeout(self):
        if self.poll_timeout_seconds > self.max_timeout_seconds:
            raise ValueError(
                f"poll timeout ({self.poll_timeout_seconds}s) must not exceed "
                f"the max timeout ({self.max_timeout_seconds}s)"
            )
        return self

    @property
    def host(self) -> str:
        host, _, _ = self.addr.rpartition(":")
        return host or "0.0.0.0"

    @property
    def port(self) -> int:
        _, _, port = self.addr.rpartition(":")
        return int(port)

    def longpoll_options(self) -> LongpollOptions:
        return LongpollOptions(
            # keep more than is shown so topic stats reach further back
            max_event_buffer_size=self.chats_on_screen * 10,
            event_ttl_seconds=self.max_chat_hours * 60 * 60,
            max_timeout_seconds=self.max_timeout_seconds,
        )


settings = Settings()
