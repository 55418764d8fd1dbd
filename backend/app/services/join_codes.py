"""Join-code generation.

Codes are 6 characters from a 32-symbol alphabet without the look-alikes
I, O, 0 and 1. The generator alone does not guarantee uniqueness; callers
check the store and retry.
"""
import secrets

JOIN_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
JOIN_CODE_LENGTH = 6


def generate_join_code() -> str:
    """Return a uniformly random join code."""
    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH))


def normalize_join_code(raw: str) -> str:
    """Trim and upper-case user-typed input."""
    return (raw or "").strip().upper()


def is_valid_join_code(code: str) -> bool:
    return len(code) == JOIN_CODE_LENGTH and all(c in JOIN_CODE_ALPHABET for c in code)
