# -*- coding: utf-8 -*-
"""
Search, pagination and deep-link flows.

Every entry point returns an OutboundResponse and never raises: unexpected
errors are logged and answered with a generic "try again later" reply.
Membership is checked on every gated action, after the requested movie or
query is known, and is never remembered between calls.
"""
import functools
import logging
from dataclasses import replace
from typing import List, Optional, Sequence

from access_gate import GroupDescriptor, MembershipLookup, check_membership
from catalog import CatalogStore
from errors import InvalidToken
from pagination import Intent, PaginationToken, decode, fit_query, fits_token
from presenter import (
    OutboundResponse, render_detail, render_empty_query, render_error,
    render_expired_button, render_join_prompt, render_movie_not_found,
    render_results, render_welcome,
)
from ranking import SearchMatch, rank, suggest
from updates import (
    ButtonPress, ChatContext, DeepLinkStart, InboundUpdate, MembershipChanged,
    TextMessage,
)

logger = logging.getLogger(__name__)

SEARCH_LINK_PREFIX = "q_"
JOIN_FIRST = "Please join all groups first."
ACCESS_GRANTED = "Access granted!"


def answers_errors(handler):
    @functools.wraps(handler)
    async def wrapper(*args, **kwargs):
        try:
            return await handler(*args, **kwargs)
        except Exception:
            logger.exception("Unhandled error in %s", handler.__name__)
            return render_error()
    return wrapper


class SearchBot:
    def __init__(
        self,
        store: CatalogStore,
        lookup: MembershipLookup,
        groups: Sequence[GroupDescriptor],
        bot_username: str,
        media_bot_username: str,
        page_size: int = 10,
    ):
        self.store = store
        self.lookup = lookup
        self.groups = list(groups)
        self.bot_username = bot_username
        self.media_bot_username = media_bot_username
        self.page_size = page_size

    # ------------------ ENTRY POINTS ------------------
    @answers_errors
    async def handle_search(self, user_id: int, chat: ChatContext, text: str) -> OutboundResponse:
        query = fit_query(text)
        if not query:
            return render_empty_query()
        catalog = await self.store.get()
        status = await check_membership(user_id, self.groups, self.lookup)
        if not status.satisfied:
            return render_join_prompt(status.missing_groups, PaginationToken(Intent.VERIFY_SEARCH, query))
        return self._results(query, rank(query, catalog), 0, chat)

    @answers_errors
    async def handle_pagination(self, user_id: int, chat: ChatContext, data: str) -> OutboundResponse:
        try:
            token = decode(data)
        except InvalidToken:
            logger.info("Stale or unknown callback data: %r", data)
            return render_expired_button()

        if token.intent is Intent.VERIFY_ITEM:
            return await self._show_movie(user_id, token.query, verifying=True)

        query = fit_query(token.query)
        if not query:
            return render_expired_button()
        status = await check_membership(user_id, self.groups, self.lookup)
        if not status.satisfied:
            prompt = render_join_prompt(
                status.missing_groups, PaginationToken(Intent.VERIFY_SEARCH, query), notice=JOIN_FIRST,
            )
            return replace(prompt, edit=True)

        catalog = await self.store.get()
        matches = rank(query, catalog)
        if token.intent is Intent.VERIFY_SEARCH:
            response = self._results(query, matches, 0, chat)
            return replace(response, edit=True, notice=ACCESS_GRANTED)
        response = self._results(query, matches, token.page, chat)
        return replace(response, edit=True)

    @answers_errors
    async def handle_deep_link(self, user_id: int, chat: ChatContext, parameter: str) -> OutboundResponse:
        parameter = (parameter or "").strip()
        if parameter.startswith(SEARCH_LINK_PREFIX):
            words = parameter[len(SEARCH_LINK_PREFIX):].replace("_", " ")
            return await self.handle_search(user_id, chat, words)
        return await self._show_movie(user_id, parameter)

    @answers_errors
    async def handle_membership_changed(self, update: MembershipChanged) -> Optional[OutboundResponse]:
        if not update.joined:
            return None
        return render_welcome(update.chat.first_name, self.bot_username, update.is_self)

    async def dispatch(self, update: InboundUpdate) -> Optional[OutboundResponse]:
        if isinstance(update, TextMessage):
            return await self.handle_search(update.user_id, update.chat, update.text)
        if isinstance(update, ButtonPress):
            return await self.handle_pagination(update.user_id, update.chat, update.data)
        if isinstance(update, DeepLinkStart):
            return await self.handle_deep_link(update.user_id, update.chat, update.parameter)
        if isinstance(update, MembershipChanged):
            return await self.handle_membership_changed(update)
        raise TypeError(f"unsupported inbound update: {update!r}")

    # ------------------ HELPERS ------------------
    def _results(self, query: str, matches: List[SearchMatch], page: int, chat: ChatContext) -> OutboundResponse:
        suggestions = []
        if not matches:
            suggestions = suggest(query, self.store.catalog)
        return render_results(
            query,
            matches,
            page,
            self.page_size,
            bot_username=self.bot_username,
            mention=chat.mention,
            groups=self.groups,
            suggestions=suggestions,
        )

    async def _show_movie(self, user_id: int, key: str, verifying: bool = False) -> OutboundResponse:
        catalog = await self.store.get()
        record = catalog.get(key)
        # the key must fit in a verify button
        if record is None or not fits_token(record.key):
            return render_movie_not_found()
        status = await check_membership(user_id, self.groups, self.lookup)
        if not status.satisfied:
            prompt = render_join_prompt(status.missing_groups, PaginationToken(Intent.VERIFY_ITEM, record.key))
            if verifying:
                prompt = replace(prompt, notice=JOIN_FIRST, edit=True)
            return prompt
        response = render_detail(record, self.media_bot_username)
        if verifying:
            # details carry a photo, so they are sent as a new message
            response = replace(response, notice=ACCESS_GRANTED)
        return response
