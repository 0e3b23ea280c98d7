"""Option models shared by the session manager, its ports and sessions."""

from __future__ import annotations

from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt

from sessionport.config import SessionSettings, get_settings

Sender = Callable[[Any], None]
OverflowPolicy = Callable[..., Union[int, str]]


def reclaim_first(port: Any) -> int:
    """Default overflow policy: reclaim session id 1."""

    return 1


class PortOptions(BaseModel):
    """Per-port options; the manager holds one instance used as defaults for new ports."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = "default"
    sender: Sender
    session_timeout_ms: PositiveInt = 60_000
    session_max_life_ms: PositiveInt = 600_000
    session_id_name: str = Field(default="sid", min_length=1)
    max_session_count: PositiveInt = 65535
    retry_count: NonNegativeInt = 0
    retry_interval_ms: NonNegativeInt = 1000
    on_session_overflow: OverflowPolicy = reclaim_first

    @classmethod
    def from_settings(cls, settings: Optional[SessionSettings] = None, **overrides: Any) -> "PortOptions":
        settings = settings or get_settings()
        values: dict[str, Any] = {
            "session_timeout_ms": settings.session_timeout_ms,
            "session_max_life_ms": settings.session_max_life_ms,
            "session_id_name": settings.session_id_name,
            "max_session_count": settings.max_session_count,
            "retry_count": settings.retry_count,
            "retry_interval_ms": settings.retry_interval_ms,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    def derive(self, **overrides: Any) -> "PortOptions":
        """Return an independent copy with ``overrides`` applied and validated."""

        data = self.model_dump()
        data.update({key: value for key, value in overrides.items() if value is not None})
        return type(self)(**data)


class SessionOptions(BaseModel):
    """Per-session or per-call overrides; ``None`` falls back to the next level."""

    timeout_ms: Optional[NonNegativeInt] = None
    retry_count: Optional[NonNegativeInt] = None
    retry_interval_ms: Optional[NonNegativeInt] = None

    def merged(self, override: Optional["SessionOptions"]) -> "SessionOptions":
        if override is None:
            return self
        data = self.model_dump()
        data.update(override.model_dump(exclude_none=True))
        return SessionOptions(**data)


__all__ = ["PortOptions", "SessionOptions", "Sender", "OverflowPolicy", "reclaim_first"]
