"""Human-typeable redemption codes."""

from __future__ import annotations

import random
import re
import secrets

CODE_PREFIX = "RL-"
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_BODY_LENGTH = 6

_CODE_PATTERN = re.compile(rf"^{re.escape(CODE_PREFIX)}[{CODE_ALPHABET}]{{{CODE_BODY_LENGTH}}}$")
_SYSTEM_RANDOM = secrets.SystemRandom()


def generate_redemption_code(rng: random.Random | None = None) -> str:
    """Return a fresh ``RL-XXXXXX`` code.

    Uniqueness is not guaranteed here; callers check collisions against the
    redemption store.
    """

    source = rng or _SYSTEM_RANDOM
    body = "".join(source.choice(CODE_ALPHABET) for _ in range(CODE_BODY_LENGTH))
    return f"{CODE_PREFIX}{body}"


def normalize_redemption_code(raw: str | None) -> str:
    """Canonicalize a vendor-entered code (whitespace and case)."""

    return "".join((raw or "").split()).upper()


def is_redemption_code(value: str | None) -> bool:
    return bool(value) and _CODE_PATTERN.match(value) is not None


__all__ = [
    "CODE_ALPHABET",
    "CODE_BODY_LENGTH",
    "CODE_PREFIX",
    "generate_redemption_code",
    "is_redemption_code",
    "normalize_redemption_code",
]
