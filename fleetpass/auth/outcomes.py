"""
FleetPass - Flow Outcomes

Auth flows return an Outcome instead of raising. The HTTP layer maps the
tag to a status code; nothing below the routes knows about HTTP.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar


T = TypeVar("T")


class OutcomeTag(str, Enum):
    OK = "ok"
    VALIDATION_ERROR = "validation_error"
    POLICY_VIOLATION = "policy_violation"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    INVALID_TOKEN = "invalid_token"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of one auth flow: a tag, a payload on success, a message on failure."""
    tag: OutcomeTag
    value: Optional[T] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.tag is OutcomeTag.OK

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(OutcomeTag.OK, value=value)

    @classmethod
    def failure(cls, tag: OutcomeTag, message: str) -> "Outcome[T]":
        return cls(tag, message=message)
