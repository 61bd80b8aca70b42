"""
Application configuration using pydantic-settings.
All environment variables are validated and typed.
"""

import os
from datetime import timedelta

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

DEFAULT_WELCOME_MESSAGE = (
    "Привет, {name}! Чтобы остаться в чате, напиши сообщением слово «{answer}».\n"
    "На ответ есть {minutes} мин. и {attempts} попыт(ки)."
)
DEFAULT_RETRY_MESSAGE = (
    "{name}, ответ неверный. Напиши слово «{answer}».\n"
    "Осталось попыток: {remaining}."
)
DEFAULT_JOIN_MESSAGE = "Добро пожаловать, {name}! Теперь ты можешь писать в чат."

# Placeholders each template may use
TEMPLATE_FIELDS: dict[str, tuple[str, ...]] = {
    "captcha_welcome_message": ("name", "answer", "minutes", "seconds", "attempts"),
    "captcha_retry_message": ("name", "answer", "remaining"),
    "captcha_join_message": ("name",),
    "captcha_ban_message": ("name",),
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Required
    tg_token: str = Field(min_length=1)
    captcha_answer: str

    # Challenge limits
    captcha_timeout_seconds: int = Field(default=300, gt=0)
    captcha_max_retries: int = Field(default=3, ge=1)
    sweep_interval_seconds: float = Field(default=10.0, gt=0)

    # Message templates (str.format placeholders, see TEMPLATE_FIELDS)
    captcha_welcome_message: str = DEFAULT_WELCOME_MESSAGE
    captcha_retry_message: str = DEFAULT_RETRY_MESSAGE
    captcha_join_message: str = DEFAULT_JOIN_MESSAGE
    # Empty disables the ban notice
    captcha_ban_message: str = ""

    # Ban behaviour: 0 means permanent; kick unbans right away so the user may rejoin
    ban_duration_seconds: int = Field(default=0, ge=0)
    captcha_kick: bool = False

    # User IDs never challenged (comma/space separated)
    whitelist_ids: str | None = None

    # Chat IDs to guard (comma/space separated); every chat when unset
    guarded_chat_ids: str | None = None

    # Messages older than this are not evaluated
    update_expiration_seconds: int = Field(default=60, gt=0)

    # SQLite file for pending members; in-memory when unset
    storage_path: str | None = None

    shutdown_grace_seconds: float = Field(default=5.0, ge=0)

    # Health check server
    health_host: str = "0.0.0.0"
    health_port: int = 8081

    log_level: str = "INFO"

    @property
    def challenge_timeout(self) -> timedelta:
        return timedelta(seconds=self.captcha_timeout_seconds)

    @property
    def ban_duration(self) -> timedelta | None:
        """Ban length, None for a permanent ban."""
        if not self.ban_duration_seconds:
            return None
        return timedelta(seconds=self.ban_duration_seconds)

    @staticmethod
    def _parse_int_list(raw: str | None) -> list[int]:
        if raw is None:
            return []
        tokens = str(raw).replace(",", " ").split()
        result: list[int] = []
        for token in tokens:
            try:
                result.append(int(token))
            except ValueError:
                continue
        return result

    @property
    def whitelist(self) -> set[int]:
        """Get parsed whitelisted user IDs."""
        return set(self._parse_int_list(self.whitelist_ids))

    @property
    def guarded_chats(self) -> set[int]:
        """Get parsed guarded chat IDs; empty means every chat."""
        return set(self._parse_int_list(self.guarded_chat_ids))

    @field_validator("captcha_answer")
    @classmethod
    def _require_answer(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("CAPTCHA_ANSWER must not be blank")
        return cleaned

    @field_validator("storage_path", mode="before")
    @classmethod
    def _normalize_storage_path(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    @model_validator(mode="after")
    def check_templates(self):
        """Reject templates with placeholders that will never be filled."""
        for field_name, placeholders in TEMPLATE_FIELDS.items():
            template = getattr(self, field_name)
            sample = {key: key for key in placeholders}
            try:
                template.format_map(sample)
            except (KeyError, IndexError, ValueError) as exc:
                raise ValueError(f"{field_name.upper()} is not a valid template: {exc!r}") from exc
        return self

    model_config = {
        "env_file": os.path.join(
            os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))),
            ".env",
        ),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Singleton settings instance
settings = Settings()
