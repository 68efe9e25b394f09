"""Telegram adapter: Update conversion and response delivery."""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram import Chat, InlineKeyboardMarkup, Message, MessageEntity, Update, User
from telegram.constants import ParseMode
from telegram.error import BadRequest

from bot import button_handler, deliver, member_updates, start, text_update, to_keyboard
from catalog import CatalogStore
from pagination import Intent, PaginationToken, encode
from presenter import Button, OutboundResponse, ParseStyle
from search_flow import ACCESS_GRANTED, SearchBot
from updates import TextMessage

BOT_USERNAME = "Search_indianMoviesbot"
ASHA = User(id=501, first_name="Asha", is_bot=False, username="asha_k")


def make_update(text, chat_type="private", chat_id=501, entities=None, **extra):
    message = Message(
        message_id=10,
        date=datetime.now(timezone.utc),
        chat=Chat(id=chat_id, type=chat_type),
        from_user=ASHA,
        text=text,
        entities=entities,
        **extra,
    )
    return Update(update_id=1, message=message)


class TestTextUpdate:

    def test_private_text(self):
        event = text_update(make_update("  sholay  "), BOT_USERNAME)
        assert isinstance(event, TextMessage)
        assert event.text == "sholay"
        assert event.user_id == 501
        assert event.chat.message_id == 10
        assert event.chat.mention == "Asha"

    def test_group_mention_is_stripped(self):
        handle = f"@{BOT_USERNAME}"
        update = make_update(
            f"{handle} dil se",
            chat_type="supergroup",
            chat_id=-100,
            entities=[MessageEntity(type=MessageEntity.MENTION, offset=0, length=len(handle))],
        )
        event = text_update(update, BOT_USERNAME)
        assert event.text == "dil se"
        assert event.chat.mention == "@asha_k"

    def test_group_without_mention_is_ignored(self):
        update = make_update("dil se", chat_type="group", chat_id=-100)
        assert text_update(update, BOT_USERNAME) is None

    def test_other_mention_is_ignored(self):
        update = make_update(
            "@someone_else dil se",
            chat_type="group",
            chat_id=-100,
            entities=[MessageEntity(type=MessageEntity.MENTION, offset=0, length=13)],
        )
        assert text_update(update, BOT_USERNAME) is None


def test_member_updates():
    newcomer = User(id=77, first_name="Ravi", is_bot=False)
    me = User(id=1, first_name="Movies", is_bot=True, username=BOT_USERNAME)
    update = make_update(None, chat_type="supergroup", chat_id=-100, new_chat_members=[newcomer, me])
    events = member_updates(update, BOT_USERNAME)
    assert [(e.user_id, e.is_self, e.joined) for e in events] == [(77, False, True), (1, True, True)]
    assert events[0].chat.first_name == "Ravi"
    assert member_updates(make_update("hi"), BOT_USERNAME) == []


def test_to_keyboard():
    markup = to_keyboard([
        [Button("1. Sholay", url="https://t.me/bot?start=tt001")],
        [],
        [Button("Next ➡️", callback_data="next|1|sholay")],
    ])
    assert isinstance(markup, InlineKeyboardMarkup)
    assert len(markup.inline_keyboard) == 2
    assert markup.inline_keyboard[1][0].callback_data == "next|1|sholay"
    assert to_keyboard([]) is None


class TestDeliver:

    @pytest.mark.asyncio
    async def test_plain_reply(self):
        bot = AsyncMock()
        await deliver(bot, 501, OutboundResponse(text="❌ Movie not found."), reply_to=10)
        kwargs = bot.send_message.call_args.kwargs
        assert kwargs["text"] == "❌ Movie not found."
        assert kwargs["parse_mode"] is None
        assert kwargs["reply_parameters"].message_id == 10

    @pytest.mark.asyncio
    async def test_photo_falls_back_to_text(self):
        bot = AsyncMock()
        bot.send_photo.side_effect = BadRequest("Wrong file identifier/http url specified")
        response = OutboundResponse(
            text="🎬 *Sholay*",
            parse_mode=ParseStyle.MARKDOWN_V2,
            buttons=[[Button("Wikipedia", url="https://en.wikipedia.org/wiki/Sholay")]],
            photo="https://img.example/broken.jpg",
        )
        await deliver(bot, 501, response)
        bot.send_photo.assert_awaited_once()
        kwargs = bot.send_message.call_args.kwargs
        assert kwargs["text"] == "🎬 *Sholay*"
        assert kwargs["parse_mode"] == ParseMode.MARKDOWN_V2
        assert kwargs["reply_markup"].inline_keyboard[0][0].url == "https://en.wikipedia.org/wiki/Sholay"

    @pytest.mark.asyncio
    async def test_edit_in_place(self):
        bot = AsyncMock()
        await deliver(bot, 501, OutboundResponse(text="page 2", edit=True), edit_message_id=33)
        assert bot.edit_message_text.call_args.kwargs["message_id"] == 33
        bot.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unchanged_edit_sends_nothing(self):
        bot = AsyncMock()
        bot.edit_message_text.side_effect = BadRequest("Message is not modified")
        await deliver(bot, 501, OutboundResponse(text="page 2", edit=True), edit_message_id=33)
        bot.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_edit_sends_new_message(self):
        bot = AsyncMock()
        bot.edit_message_text.side_effect = BadRequest("Message to edit not found")
        await deliver(bot, 501, OutboundResponse(text="page 2", edit=True), edit_message_id=33)
        bot.send_message.assert_awaited_once()


@pytest.fixture
def search(feed_1950, membership, groups):
    store = CatalogStore([("1950-1989", "https://feeds/a")], lambda url: feed_1950)
    return SearchBot(store, membership, groups, BOT_USERNAME, "SearchMoviesbot_bot")


def handler_context(search, args=None):
    context = MagicMock()
    context.bot = AsyncMock()
    context.args = args or []
    context.bot_data = {"search": search, "reporter": MagicMock()}
    return context


class TestHandlers:

    @pytest.mark.asyncio
    async def test_start_with_movie_key_sends_details(self, search, membership, groups):
        membership.join_all(groups)
        update = make_update("/start tt0073707")
        context = handler_context(search, args=["tt0073707"])

        await start(update, context)

        kwargs = context.bot.send_photo.call_args.kwargs
        assert kwargs["chat_id"] == 501
        assert kwargs["photo"] == "https://img.example/sholay.jpg"
        assert kwargs["reply_parameters"].message_id == 10
        context.bot_data["reporter"].report_start.assert_called_once_with(ASHA, update.effective_chat)
        context.application.create_task.assert_called_once()

    @pytest.mark.asyncio
    async def test_button_answers_notice_and_edits_pressed_message(self, search, membership, groups):
        membership.join_all(groups)
        query = MagicMock()
        query.data = encode(PaginationToken(Intent.VERIFY_SEARCH, "sholay"))
        query.from_user.id = 501
        query.answer = AsyncMock()
        update = MagicMock()
        update.callback_query = query
        update.effective_chat = Chat(id=501, type="private")
        update.effective_user = ASHA
        update.effective_message.message_id = 33
        context = handler_context(search)

        await button_handler(update, context)

        query.answer.assert_awaited_once_with(ACCESS_GRANTED)
        kwargs = context.bot.edit_message_text.call_args.kwargs
        assert kwargs["message_id"] == 33
        assert "[Sholay]" in kwargs["text"]
        context.bot.send_message.assert_not_awaited()
