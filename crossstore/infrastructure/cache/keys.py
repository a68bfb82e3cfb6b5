"""Cache key builders. Single place for the {purpose}:{id} part of keys.

ServiceCache prepends {global_prefix}{service}:. Key components used as
namespaces must not contain CACHE_KEY_SEP; no component may contain glob
metacharacters, so delete_by_pattern never matches more than intended.
"""

from crossstore.core.constants import (
    CACHE_KEY_SEP,
    CACHE_PURPOSE_LOCK,
    CACHE_PURPOSE_MAPPING,
    CACHE_PURPOSE_RECORD,
)

_GLOB_CHARS = frozenset("*?[]")


def _validate_key_component(value: str, name: str, *, allow_sep: bool = False) -> None:
    """Raise ValueError if value is empty, holds glob characters, or (optionally) the separator."""
    if not value:
        raise ValueError(f"Cache key component {name!r} must not be empty")
    if _GLOB_CHARS.intersection(value):
        raise ValueError(f"Cache key component {name!r} must not contain glob characters")
    if not allow_sep and CACHE_KEY_SEP in value:
        raise ValueError(
            f"Cache key component {name!r} must not contain separator {CACHE_KEY_SEP!r}"
        )


def build_key(purpose: str, identifier: str) -> str:
    """Generic {purpose}:{id} key. The identifier may itself contain ':'."""
    _validate_key_component(purpose, "purpose")
    _validate_key_component(identifier, "id", allow_sep=True)
    return f"{purpose}{CACHE_KEY_SEP}{identifier}"


def lock_key(resource: str) -> str:
    """Key for a distributed lock on a resource (e.g. 'user:42:balance')."""
    return build_key(CACHE_PURPOSE_LOCK, resource)


def mapping_source(entity_type: str, side: str) -> str:
    """Source label for identity mapping keys, e.g. 'user.canonical'."""
    _validate_key_component(entity_type, "entity_type")
    _validate_key_component(side, "side")
    return f"{entity_type}.{side}"


def mapping_key(source: str, identifier: str) -> str:
    """Key for an identity mapping entry: mapping:{source}:{id}."""
    _validate_key_component(source, "source")
    return build_key(CACHE_PURPOSE_MAPPING, f"{source}{CACHE_KEY_SEP}{identifier}")


def mapping_pattern(source: str | None = None) -> str:
    """Glob matching all mapping keys, or those of one source."""
    if source is None:
        return f"{CACHE_PURPOSE_MAPPING}{CACHE_KEY_SEP}*"
    _validate_key_component(source, "source")
    return f"{CACHE_PURPOSE_MAPPING}{CACHE_KEY_SEP}{source}{CACHE_KEY_SEP}*"


def record_key(entity_type: str, canonical_id: str) -> str:
    """Key for a write-through cached canonical record."""
    _validate_key_component(entity_type, "entity_type")
    return build_key(CACHE_PURPOSE_RECORD, f"{entity_type}{CACHE_KEY_SEP}{canonical_id}")
