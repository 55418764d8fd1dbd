"""Caller identity passed explicitly into service operations."""
from dataclasses import dataclass


def normalize_email(raw: str) -> str:
    return (raw or "").strip().lower()


@dataclass(frozen=True)
class Identity:
    """Authenticated caller: user id plus verified email (validated upstream)."""

    user_id: str
    email: str

    def __post_init__(self):
        object.__setattr__(self, "email", normalize_email(self.email))
