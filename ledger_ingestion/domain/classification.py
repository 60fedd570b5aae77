"""
Account token classification.

An import row names its account with a free-text token that may be an
account code ("1010") or an account name ("Cash at Bank").  The classifier
decides which lookups the resolver tries first.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Protocol


class TokenKind(str, Enum):
    CODE = "code"
    NAME = "name"


class AccountTokenClassifier(Protocol):
    def classify(self, token: str) -> TokenKind: ...


class RegexTokenClassifier:
    """A token is a code when it matches ``pattern`` and fits ``max_length``."""

    def __init__(self, pattern: str = r"^[A-Za-z0-9-]+$", max_length: int = 20):
        self._pattern = re.compile(pattern)
        self._max_length = max_length

    def classify(self, token: str) -> TokenKind:
        if len(token) <= self._max_length and self._pattern.match(token):
            return TokenKind.CODE
        return TokenKind.NAME
