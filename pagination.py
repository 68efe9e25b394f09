# -*- coding: utf-8 -*-
"""
Callback tokens for result pages and verify buttons.

A token is "<intent>|<page>|<query>". The query always comes last and the
decoder splits at most twice, so a "|" typed by the user stays inside the
query. Telegram caps callback_data at 64 bytes; queries are clipped to whole
words before searching so that every token built for them fits.
"""
import enum
import math
from dataclasses import dataclass
from typing import List, Sequence, TypeVar

from errors import InvalidToken, TokenTooLong

SEPARATOR = "|"
TOKEN_MAX_BYTES = 64
PAGE_DIGITS = 4
T = TypeVar("T")


class Intent(enum.Enum):
    PREVIOUS = "prev"
    NEXT = "next"
    VERIFY_SEARCH = "vs"
    VERIFY_ITEM = "vi"


_LONGEST_CODE = max(len(i.value) for i in Intent)
MAX_QUERY_BYTES = TOKEN_MAX_BYTES - _LONGEST_CODE - 2 * len(SEPARATOR) - PAGE_DIGITS


@dataclass(frozen=True)
class PaginationToken:
    intent: Intent
    query: str  # movie key for VERIFY_ITEM
    page: int = 0


def encode(token: PaginationToken) -> str:
    if token.page < 0:
        raise ValueError(f"negative page: {token.page}")
    data = SEPARATOR.join((token.intent.value, str(token.page), token.query))
    if len(data.encode("utf-8")) > TOKEN_MAX_BYTES:
        raise TokenTooLong(f"{len(data.encode('utf-8'))} bytes: {data!r}")
    return data


def decode(data: str) -> PaginationToken:
    parts = (data or "").split(SEPARATOR, 2)
    if len(parts) != 3:
        raise InvalidToken(data)
    code, page_str, query = parts
    try:
        intent = Intent(code)
    except ValueError:
        raise InvalidToken(data) from None
    if not (page_str.isascii() and page_str.isdigit()):
        raise InvalidToken(data)
    return PaginationToken(intent=intent, query=query, page=int(page_str))


def is_token(data: str) -> bool:
    try:
        decode(data)
    except InvalidToken:
        return False
    return True


def fits_token(text: str) -> bool:
    """True when text can ride in the query field of any token."""
    return len(text.encode("utf-8")) <= MAX_QUERY_BYTES


def fit_query(query: str) -> str:
    """Collapse whitespace and keep as many leading words as a token can carry."""
    words = (query or "").split()
    kept: List[str] = []
    for word in words:
        if len(" ".join(kept + [word]).encode("utf-8")) > MAX_QUERY_BYTES:
            break
        kept.append(word)
    if not kept and words:
        # a single oversized word, cut on a character boundary
        kept = [words[0].encode("utf-8")[:MAX_QUERY_BYTES].decode("utf-8", "ignore")]
    return " ".join(kept)


# ------------------ PAGE STATE ------------------
def page_count(total: int, page_size: int) -> int:
    return max(1, math.ceil(total / page_size))


def has_next(page: int, total: int, page_size: int) -> bool:
    return (page + 1) * page_size < total


def has_previous(page: int) -> bool:
    return page > 0


def page_slice(items: Sequence[T], page: int, page_size: int) -> Sequence[T]:
    if page < 0:
        return items[0:0]
    start = page * page_size
    return items[start:start + page_size]


def next_token(query: str, page: int) -> PaginationToken:
    return PaginationToken(Intent.NEXT, query, page + 1)


def previous_token(query: str, page: int) -> PaginationToken:
    return PaginationToken(Intent.PREVIOUS, query, page - 1)
