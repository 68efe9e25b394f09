"""Chat registry and admin notifications."""
from unittest.mock import AsyncMock, MagicMock

import pytest
import requests
from telegram import Chat, User
from telegram.error import Forbidden

import side_effects
from errors import RegistryError
from side_effects import ActivityReporter, UserRegistry

ADMIN = 9000


class FakeResponse:

    def __init__(self, status_code=200, text="", data=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self.reason = "OK" if self.ok else "Server Error"
        self.text = text
        self._data = data

    def json(self):
        if self._data is None:
            raise ValueError("no JSON")
        return self._data


@pytest.fixture
def user():
    return User(id=501, first_name="Asha", is_bot=False, username="asha_k")


@pytest.fixture
def chat():
    return Chat(id=501, type="private")


class TestUserRegistry:

    @pytest.mark.asyncio
    async def test_in_memory_without_url(self):
        registry = UserRegistry()
        assert await registry.register(1) is False
        assert await registry.register(1) is True
        await registry.register(2)
        assert await registry.chat_ids() == ["1", "2"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("answer,known", [("Already Notified", True), ("Saved", False)])
    async def test_remote_answer(self, monkeypatch, answer, known):
        sent = {}

        def fake_post(url, json, timeout):
            sent.update(json)
            return FakeResponse(200, answer)

        monkeypatch.setattr(side_effects.requests, "post", fake_post)
        registry = UserRegistry("https://script.example/exec")
        assert await registry.register(501, "asha_k", "Asha") is known
        assert sent == {"id": "501", "username": "asha_k", "first_name": "Asha"}

    @pytest.mark.asyncio
    async def test_remote_failure_counts_as_new(self, monkeypatch):
        def fake_post(url, json, timeout):
            raise requests.ConnectionError("unreachable")

        monkeypatch.setattr(side_effects.requests, "post", fake_post)
        assert await UserRegistry("https://script.example/exec").register(501) is False

    @pytest.mark.asyncio
    async def test_remote_error_status_counts_as_new(self, monkeypatch):
        monkeypatch.setattr(side_effects.requests, "post", lambda url, json, timeout: FakeResponse(500, "oops"))
        assert await UserRegistry("https://script.example/exec").register(501) is False

    @pytest.mark.asyncio
    async def test_remote_chat_ids(self, monkeypatch):
        monkeypatch.setattr(
            side_effects.requests, "get",
            lambda url, params, timeout: FakeResponse(200, data=[501, "502"]),
        )
        assert await UserRegistry("https://script.example/exec").chat_ids() == ["501", "502"]

    @pytest.mark.asyncio
    async def test_remote_chat_ids_bad_json(self, monkeypatch):
        monkeypatch.setattr(
            side_effects.requests, "get",
            lambda url, params, timeout: FakeResponse(200, text="<html>"),
        )
        with pytest.raises(RegistryError):
            await UserRegistry("https://script.example/exec").chat_ids()


class TestActivityReporter:

    @pytest.mark.asyncio
    async def test_new_user_is_announced_once(self, user, chat):
        bot = AsyncMock()
        reporter = ActivityReporter(bot, ADMIN, UserRegistry())
        await reporter.report_start(user, chat)
        await reporter.report_start(user, chat)
        assert bot.send_message.await_count == 1
        args, kwargs = bot.send_message.call_args
        assert args[0] == ADMIN
        assert "New user started the bot" in args[1]
        assert "@asha\\_k" in args[1]

    @pytest.mark.asyncio
    async def test_admin_is_not_announced(self):
        bot = AsyncMock()
        reporter = ActivityReporter(bot, ADMIN, UserRegistry())
        admin = User(id=ADMIN, first_name="Admin", is_bot=False)
        await reporter.report_start(admin, Chat(id=ADMIN, type="private"))
        bot.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_notification_failure_is_swallowed(self, user, chat):
        bot = AsyncMock()
        bot.send_message.side_effect = Forbidden("bot was blocked by the user")
        reporter = ActivityReporter(bot, ADMIN, UserRegistry())
        await reporter.report_start(user, chat)
        assert bot.send_message.await_count == 1

    @pytest.mark.asyncio
    async def test_non_text_message_is_forwarded(self, user, chat):
        bot = AsyncMock()
        registry = UserRegistry()
        await registry.register(chat.id)
        reporter = ActivityReporter(bot, ADMIN, registry)
        message = MagicMock(text=None)
        message.forward = AsyncMock()

        await reporter.report_message(user, chat, message)

        message.forward.assert_awaited_once_with(ADMIN)
        assert "Non\\-text message received" in bot.send_message.call_args[0][1]

    @pytest.mark.asyncio
    async def test_text_message_from_known_user_is_quiet(self, user, chat):
        bot = AsyncMock()
        registry = UserRegistry()
        await registry.register(chat.id)
        reporter = ActivityReporter(bot, ADMIN, registry)
        await reporter.report_message(user, chat, MagicMock(text="sholay"))
        bot.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_admin_configured(self, user, chat):
        bot = AsyncMock()
        reporter = ActivityReporter(bot, 0, UserRegistry())
        await reporter.report_start(user, chat)
        bot.send_message.assert_not_awaited()
