# -*- coding: utf-8 -*-
"""
Inbound events the search core understands.

bot.py converts python-telegram-bot Updates into one of these; anything it
cannot convert is ignored there, so the core only ever sees complete events.
"""
from dataclasses import dataclass
from typing import Optional, Union

PRIVATE_CHAT = "private"
GROUP_CHATS = ("group", "supergroup")


@dataclass(frozen=True)
class ChatContext:
    chat_id: int
    chat_type: str
    first_name: str = ""
    username: str = ""
    message_id: Optional[int] = None

    @property
    def is_group(self) -> bool:
        return self.chat_type in GROUP_CHATS

    @property
    def mention(self) -> str:
        """How result headers address the user: @username in groups, first name elsewhere."""
        if self.is_group and self.username:
            return f"@{self.username}"
        return self.first_name


@dataclass(frozen=True)
class TextMessage:
    user_id: int
    chat: ChatContext
    text: str


@dataclass(frozen=True)
class ButtonPress:
    user_id: int
    chat: ChatContext
    data: str


@dataclass(frozen=True)
class DeepLinkStart:
    user_id: int
    chat: ChatContext
    parameter: str


@dataclass(frozen=True)
class MembershipChanged:
    user_id: int
    chat: ChatContext
    joined: bool
    is_self: bool = False


InboundUpdate = Union[TextMessage, ButtonPress, DeepLinkStart, MembershipChanged]
