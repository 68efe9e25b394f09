# -*- coding: utf-8 -*-
"""
Outbound message payloads: text, parse mode and inline keyboard.

Nothing here talks to Telegram; bot.py turns an OutboundResponse into
send_message / send_photo / edit_message_text calls.
"""
import enum
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence

from telegram.helpers import escape_markdown

from access_gate import GroupDescriptor
from catalog import CatalogRecord
from pagination import (
    Intent, PaginationToken, encode, has_next, has_previous, next_token, page_count,
    page_slice, previous_token,
)
from ranking import SearchMatch


class ParseStyle(enum.Enum):
    PLAIN = "plain"
    MARKDOWN = "markdown"        # legacy Markdown, no escaping
    MARKDOWN_V2 = "markdown_v2"  # every dynamic value escaped


@dataclass(frozen=True)
class Button:
    label: str
    url: Optional[str] = None
    callback_data: Optional[str] = None

    def __post_init__(self):
        if (self.url is None) == (self.callback_data is None):
            raise ValueError("a button needs exactly one of url / callback_data")


@dataclass(frozen=True)
class OutboundResponse:
    text: str
    parse_mode: ParseStyle = ParseStyle.PLAIN
    buttons: List[List[Button]] = field(default_factory=list)
    photo: Optional[str] = None   # sent as photo with `text` as caption
    notice: Optional[str] = None  # callback answer shown as a toast
    edit: bool = False            # replace the message the button belongs to

    def without_photo(self) -> "OutboundResponse":
        return replace(self, photo=None)


def md(text: str) -> str:
    return escape_markdown(str(text), version=2)


def deep_link(bot_username: str, key: str) -> str:
    return f"https://t.me/{bot_username}?start={key}"


def join_buttons(groups: Sequence[GroupDescriptor]) -> List[List[Button]]:
    return [[Button(f"Join {g.name}", url=g.invite_link)] for g in groups]


# ------------------ SEARCH RESULTS ------------------
def render_results(
    query: str,
    matches: Sequence[SearchMatch],
    page: int,
    page_size: int,
    bot_username: str,
    mention: str = "",
    groups: Sequence[GroupDescriptor] = (),
    suggestions: Sequence[CatalogRecord] = (),
) -> OutboundResponse:
    """One page of ranked matches with per-movie and navigation buttons."""
    page_matches = page_slice(matches, page, page_size)
    if not page_matches:
        return render_no_results(query, suggestions, bot_username)

    start = page * page_size
    total = len(matches)
    lead = f"{md(mention)}, found" if mention else "Found"
    header = (
        f"🔍 {lead} *{total}* matches for *{md(query)}* "
        f"\\(Page {page + 1}/{page_count(total, page_size)}\\):"
    )
    lines = []
    rows: List[List[Button]] = []
    for index, match in enumerate(page_matches, start=start + 1):
        record = match.record
        link = deep_link(bot_username, record.key)
        lines.append(
            f"{index}\\. [{md(record.title)}]({escape_markdown(link, version=2, entity_type='text_link')}) "
            f"\\({md(record.category)}\\)"
        )
        rows.append([Button(f"{index}. {record.title}", url=link)])

    nav = []
    if has_previous(page):
        nav.append(Button("⬅️ Previous", callback_data=encode(previous_token(query, page))))
    if has_next(page, total, page_size):
        nav.append(Button("Next ➡️", callback_data=encode(next_token(query, page))))
    if nav:
        rows.append(nav)
    rows.extend(join_buttons(groups))

    return OutboundResponse(
        text=header + "\n\n" + "\n".join(lines),
        parse_mode=ParseStyle.MARKDOWN_V2,
        buttons=rows,
    )


def render_no_results(query: str, suggestions: Sequence[CatalogRecord] = (), bot_username: str = "") -> OutboundResponse:
    text = f'❌ No movies found for "{query}".'
    rows = []
    if suggestions and bot_username:
        text += "\n\nDid you mean:"
        rows = [[Button(f"🎬 {r.title}", url=deep_link(bot_username, r.key))] for r in suggestions]
    return OutboundResponse(text=text, buttons=rows)


# ------------------ ACCESS GATE ------------------
def render_join_prompt(missing: Sequence[GroupDescriptor], verify: PaginationToken, notice: Optional[str] = None) -> OutboundResponse:
    """Join buttons for the missing groups plus a Verify button; no catalog content."""
    if verify.intent is Intent.VERIFY_SEARCH:
        text = f'🔍 Please join all our groups to access the search results for "{verify.query}":'
    else:
        text = "🎬 Please join all our groups to access the movie:"
    rows = join_buttons(missing)
    rows.append([Button("✅ Verify", callback_data=encode(verify))])
    return OutboundResponse(text=text, buttons=rows, notice=notice)


# ------------------ MOVIE DETAILS ------------------
def render_detail(record: CatalogRecord, media_bot_username: str) -> OutboundResponse:
    caption = (
        f"🎬 *{md(record.title)}* \\({md(record.category)}\\)\n\n"
        f"Wiki: {md(record.info_link)}\n\n"
        f"Access the movie via @{md(media_bot_username)}\\."
    )
    rows = [
        [Button("Watch Movie", url=deep_link(media_bot_username, record.key))],
        [Button("Wikipedia", url=record.info_link)],
    ]
    return OutboundResponse(text=caption, parse_mode=ParseStyle.MARKDOWN_V2, buttons=rows, photo=record.media_ref)


# ------------------ MISC REPLIES ------------------
def render_movie_not_found() -> OutboundResponse:
    return OutboundResponse(text="❌ Movie not found.")


def render_expired_button() -> OutboundResponse:
    return OutboundResponse(text="❌ This button has expired. Please search again.", notice="Expired")


def render_empty_query() -> OutboundResponse:
    return OutboundResponse(text="❌ Please enter a movie name.")


def render_unknown_user() -> OutboundResponse:
    return OutboundResponse(text="❌ Unable to verify user.")


def render_error() -> OutboundResponse:
    return OutboundResponse(text="❌ Something went wrong. Please try again later.")


def render_greeting(first_name: str, bot_username: str) -> OutboundResponse:
    text = (
        f"👋 Hey *{md(first_name or 'there')}*\\!\n\n"
        "Send me a movie name and I will search the catalog for you\\.\n"
        f"In groups, mention me: *@{md(bot_username)} sholay*"
    )
    return OutboundResponse(text=text, parse_mode=ParseStyle.MARKDOWN_V2)


def render_welcome(first_name: str, bot_username: str, is_self: bool) -> OutboundResponse:
    hint = f"Type *@{md(bot_username)} movie name* to search movies\\."
    if is_self:
        text = f"*Thanks for adding me\\!*\n\n{hint}"
    else:
        text = f"*Hi {md(first_name or 'there')}\\!* Welcome\\!\n\n{hint}"
    return OutboundResponse(text=text, parse_mode=ParseStyle.MARKDOWN_V2)


def render_user_count(count: int, refreshed: bool = False) -> OutboundResponse:
    suffix = " (refreshed)" if refreshed else ""
    return OutboundResponse(
        text=f"📊 Total users: {count}{suffix}",
        buttons=[[Button("Refresh", callback_data="refresh_users")]],
        edit=refreshed,
    )
