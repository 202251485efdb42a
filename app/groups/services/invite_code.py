"""
Invite codes: short, human-enterable group identifiers.

Codes are not unique by construction. The store checks each candidate
against existing groups and retries on collision.
"""

import secrets
from typing import Callable, Optional

# No I, O, 0 or 1: they are easy to misread when typed from a screenshot
ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 6


class InviteCodeGenerator:
    """Draws codes uniformly at random from ALPHABET."""

    def __init__(self, choice: Optional[Callable[[str], str]] = None):
        """
        Args:
            choice: Picks one character from a string; defaults to the
                CSPRNG-backed ``secrets.choice``. Injected in tests.
        """
        self._choice = choice or secrets.choice

    def generate(self) -> str:
        return "".join(self._choice(ALPHABET) for _ in range(CODE_LENGTH))


def normalize(code: str) -> str:
    """Invite codes are matched case-insensitively."""
    return code.strip().upper()


def looks_like_invite_code(value: str) -> bool:
    candidate = normalize(value)
    return len(candidate) == CODE_LENGTH and all(c in ALPHABET for c in candidate)
