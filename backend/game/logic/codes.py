"""Session code generation."""

from __future__ import annotations

import secrets
import string
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import random

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 4


def generate_game_code(rng: random.Random | None = None) -> str:
    """
    Return a random session code of CODE_LENGTH characters from A-Z0-9.

    Uniqueness is the caller's concern: codes are retried on collision.
    """
    if rng is None:
        return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
    return "".join(rng.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
