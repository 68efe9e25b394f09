# -*- coding: utf-8 -*-
"""
Admin notifications and the chat registry.

These run after the user already got a reply. Every failure is logged and
swallowed here so it can never affect the search flow.
"""
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Set

import requests
from telegram import Bot, Chat, Message, User
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.helpers import escape_markdown

from errors import RegistryError

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=2)

IST = timezone(timedelta(hours=5, minutes=30))


def ist_now() -> datetime:
    return datetime.now(timezone.utc).astimezone(IST)


class UserRegistry:
    """
    Chat registry kept by a Google Apps Script web app.

    POST {"id", "username", "first_name"} answers "Saved" for a new chat and
    "Already Notified" for a known one; GET ?action=getChatIds lists all
    chat ids. Without a URL the registry only remembers chats in memory.
    """

    def __init__(self, url: str = "", timeout: float = 10):
        self.url = url
        self.timeout = timeout
        self._seen: Set[str] = set()

    # -- blocking helpers, run in the executor --
    def _post_chat(self, payload: dict) -> str:
        res = requests.post(self.url, json=payload, timeout=self.timeout)
        if not res.ok:
            raise RegistryError(f"registry answered {res.status_code} {res.reason}")
        return res.text

    def _get_chat_ids(self) -> List[str]:
        res = requests.get(self.url, params={"action": "getChatIds"}, timeout=self.timeout)
        if not res.ok:
            raise RegistryError(f"registry answered {res.status_code} {res.reason}")
        data = res.json()
        return [str(x) for x in data] if isinstance(data, list) else []

    async def register(self, chat_id: int, username: str = "", first_name: str = "") -> bool:
        """Store the chat; True when it was already known."""
        if not self.url:
            known = str(chat_id) in self._seen
            self._seen.add(str(chat_id))
            return known
        payload = {"id": str(chat_id), "username": username or "", "first_name": first_name or ""}
        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(_executor, self._post_chat, payload)
        except (requests.RequestException, RegistryError) as e:
            logger.error("Error saving chat %s to registry: %s", chat_id, e)
            return False
        logger.debug("Registry response for %s: %s", chat_id, text)
        return "Already Notified" in text

    async def chat_ids(self) -> List[str]:
        if not self.url:
            return sorted(self._seen)
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(_executor, self._get_chat_ids)
        except ValueError as e:
            # body was not JSON
            raise RegistryError(f"registry returned invalid JSON: {e}") from e
        except requests.RequestException as e:
            raise RegistryError(str(e)) from e


def _md(text) -> str:
    return escape_markdown(str(text), version=2)


def describe_user(user: Optional[User], chat: Chat) -> str:
    name = (user.first_name if user else None) or "Unknown"
    username = f"@{user.username}" if user and user.username else "N/A"
    return (
        f"*Name:* {_md(name)}\n"
        f"*Username:* {_md(username)}\n"
        f"*Chat ID:* {_md(chat.id)}\n"
        f"*Type:* {_md(chat.type)}"
    )


class ActivityReporter:
    """Tells the admin about new users and non-text messages."""

    def __init__(self, bot: Bot, admin_id: int, registry: UserRegistry):
        self.bot = bot
        self.admin_id = admin_id
        self.registry = registry

    async def notify_admin(self, text: str) -> bool:
        if not self.admin_id:
            return False
        try:
            await self.bot.send_message(self.admin_id, text, parse_mode=ParseMode.MARKDOWN_V2)
            return True
        except TelegramError as e:
            logger.warning("Failed to notify admin: %s", e)
            return False

    async def _register(self, user: Optional[User], chat: Chat) -> bool:
        return await self.registry.register(
            chat.id,
            username=user.username if user else "",
            first_name=user.first_name if user else "",
        )

    async def report_start(self, user: Optional[User], chat: Chat) -> None:
        try:
            known = await self._register(user, chat)
            if chat.id != self.admin_id and not known:
                await self.notify_admin("*New user started the bot\\!*\n\n" + describe_user(user, chat))
        except Exception:
            logger.exception("report_start failed for chat %s", chat.id)

    async def report_message(self, user: Optional[User], chat: Chat, message: Message) -> None:
        try:
            known = await self._register(user, chat)
            if not message.text:
                await self._forward_non_text(user, chat, message)
            if chat.id != self.admin_id and not known:
                await self.notify_admin("*New user interacted\\!*\n\n" + describe_user(user, chat))
        except Exception:
            logger.exception("report_message failed for chat %s", chat.id)

    async def _forward_non_text(self, user: Optional[User], chat: Chat, message: Message) -> None:
        header = (
            "*Non\\-text message received\\!*\n\n"
            + describe_user(user, chat)
            + f"\n*Time:* {_md(ist_now().strftime('%d/%m/%Y, %H:%M:%S'))}"
        )
        if not await self.notify_admin(header):
            return
        try:
            await message.forward(self.admin_id)
        except TelegramError as e:
            logger.warning("Failed to forward non-text message from %s: %s", chat.id, e)
