"""Helpers for reading and stamping the session id field of a message envelope."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any, Optional, TypeVar

from pydantic import BaseModel

M = TypeVar("M")

_MISSING = object()


def coerce_sid(value: Any) -> Optional[int]:
    """Return ``value`` as an int session id, or ``None`` when it is not one."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip(), 10)
        except ValueError:
            return None
    return None


def _field_value(message: Any, field: str) -> Any:
    if isinstance(message, Mapping):
        return message.get(field, _MISSING)
    return getattr(message, field, _MISSING)


def read_sid(message: Any, field: str) -> Optional[int]:
    if message is None:
        return None
    raw = _field_value(message, field)
    if raw is _MISSING:
        return None
    return coerce_sid(raw)


def is_session_message(message: Any, field: str) -> bool:
    """True when ``message`` carries ``field`` with a positive session id."""

    try:
        sid = read_sid(message, field)
        return sid is not None and sid > 0
    except Exception:  # noqa: BLE001
        return False


def stamp(message: M, field: str, sid: int) -> M:
    """Return a copy of ``message`` carrying ``sid`` under ``field``.

    Mappings become a new ``dict`` and any other object is shallow-copied
    before the attribute is set. A pydantic model must either declare
    ``field`` or allow extra fields, otherwise the id would not survive
    ``model_dump`` and a ``TypeError`` is raised. The caller's object is left
    untouched.
    """

    if isinstance(message, Mapping):
        data = dict(message)
        data[field] = sid
        return data  # type: ignore[return-value]
    if isinstance(message, BaseModel):
        model_cls = type(message)
        if field in model_cls.model_fields:
            return message.model_copy(update={field: sid})
        if model_cls.model_config.get("extra") == "allow":
            return model_cls.model_validate({**message.model_dump(), field: sid})
        raise TypeError(
            f"{model_cls.__name__} does not declare the session id field {field!r} "
            "and does not allow extra fields"
        )
    stamped = copy.copy(message)
    setattr(stamped, field, sid)
    return stamped


__all__ = ["coerce_sid", "read_sid", "is_session_message", "stamp"]
