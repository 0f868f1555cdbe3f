"""Shared schema helpers."""

from enum import Enum
from typing import Any, Optional, Type

from cafepos.core.exceptions import ValidationError


def coerce_enum(enum_cls: Type[Enum], value: Any) -> Any:
    """Match a string against enum values/names ignoring case.

    Unknown strings are passed through so pydantic reports the error.
    """
    if isinstance(value, str):
        wanted = value.strip().lower()
        for member in enum_cls:
            if wanted in (str(member.value).lower(), member.name.lower()):
                return member
    return value


def parse_enum_param(enum_cls: Type[Enum], value: Optional[str], name: str) -> Optional[Enum]:
    """Query-string enum filter; unknown values are a 400, not an empty result."""
    if value is None or value == "":
        return None
    member = coerce_enum(enum_cls, value)
    if not isinstance(member, enum_cls):
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {name} '{value}'. Allowed: {allowed}")
    return member
