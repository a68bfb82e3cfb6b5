"""Serialization contracts for cache namespaces.

Values cross the cache boundary as UTF-8 strings. Each namespace picks a
codec; decode failures are treated as misses by ServiceCache.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Generic, Protocol, TypeVar
from uuid import UUID

from pydantic import BaseModel, TypeAdapter

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)
M = TypeVar("M", bound=BaseModel)


class CacheCodec(Protocol[T]):
    """Encode/decode contract between Python values and cached strings."""

    def dumps(self, value: T) -> str:
        """Return the string payload. Raise TypeError/ValueError if unsupported."""
        ...

    def loads(self, raw: str) -> T:
        """Return the decoded value. Raise ValueError on malformed payloads."""
        ...


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


class JsonCodec:
    """JSON codec for plain dict/list/scalar payloads."""

    def dumps(self, value: Any) -> str:
        return json.dumps(value, default=_json_default, separators=(",", ":"))

    def loads(self, raw: str) -> Any:
        return json.loads(raw)


class StrCodec:
    """Identity codec for raw string values (lock tokens, mapped IDs)."""

    def dumps(self, value: str) -> str:
        if not isinstance(value, str):
            raise TypeError(f"StrCodec expects str, got {type(value).__name__}")
        return value

    def loads(self, raw: str) -> str:
        return raw


class PydanticCodec(Generic[M]):
    """Codec validating payloads against a pydantic model on read."""

    def __init__(self, model: type[M]) -> None:
        self.model = model
        self._adapter = TypeAdapter(model)

    def dumps(self, value: M) -> str:
        return self._adapter.dump_json(value).decode("utf-8")

    def loads(self, raw: str) -> M:
        # ValidationError subclasses ValueError
        return self._adapter.validate_json(raw)


JSON_CODEC = JsonCodec()
STR_CODEC = StrCodec()
