# -*- coding: utf-8 -*-
"""Exceptions raised inside the bot core. None of them reach the user raw."""


class BotError(Exception):
    """Base error for the movie search bot."""


# ---------------- Catalog ----------------

class SourceUnavailable(BotError):
    """A catalog feed could not be fetched (network error or bad status)."""

    def __init__(self, category: str, url: str, reason: str):
        super().__init__(f"{category} feed unavailable ({url}): {reason}")
        self.category = category
        self.url = url
        self.reason = reason


# ---------------- Tokens ----------------

class InvalidToken(BotError):
    """Callback data that does not decode to a known token."""


class TokenTooLong(BotError):
    """Encoded token would not fit into a button's callback payload."""


# ---------------- Integrations ----------------

class RegistryError(BotError):
    """The chat registry web app rejected or failed a request."""
