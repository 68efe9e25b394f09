#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Movie search bot: Telegram side.

- Text in private chats (or an @mention in groups) searches the catalog.
- /start <imdb id> opens a movie, /start q_<words> runs a search.
- Results, movies and verify buttons are gated behind REQUIRED_GROUPS.
- The admin hears about new users; /users, /reload are admin only.

Configure through environment variables, see settings.py.
"""
import asyncio
import functools
import logging
from typing import List, Optional

import nest_asyncio
from telegram import (
    Bot, InlineKeyboardButton, InlineKeyboardMarkup, ReplyParameters, Update,
)
from telegram.constants import ParseMode
from telegram.error import BadRequest, Conflict, RetryAfter, TelegramError
from telegram.ext import (
    Application, ApplicationBuilder, CallbackQueryHandler, CommandHandler,
    ContextTypes, MessageHandler, filters,
)

from catalog import CatalogStore, fetch_feed
from errors import RegistryError
from presenter import (
    Button, OutboundResponse, ParseStyle, render_greeting, render_unknown_user,
    render_user_count,
)
from search_flow import SearchBot
from settings import (
    ADMIN_USER_ID, BOT_TOKEN, BOT_USERNAME, CATALOG_SOURCES, FETCH_TIMEOUT,
    ITEMS_PER_PAGE, LOG_LEVEL, MEDIA_BOT_USERNAME, REGISTRY_TIMEOUT,
    REGISTRY_WEBHOOK_URL, REQUIRED_GROUPS,
)
from side_effects import ActivityReporter, UserRegistry
from updates import (
    PRIVATE_CHAT, ButtonPress, ChatContext, DeepLinkStart, MembershipChanged,
    TextMessage,
)

logger = logging.getLogger(__name__)

PARSE_MODES = {
    ParseStyle.PLAIN: None,
    ParseStyle.MARKDOWN: ParseMode.MARKDOWN,
    ParseStyle.MARKDOWN_V2: ParseMode.MARKDOWN_V2,
}

REFRESH_USERS = "refresh_users"


# ------------------ UPDATE -> CORE EVENTS ------------------
def chat_context(update: Update) -> Optional[ChatContext]:
    chat = update.effective_chat
    if chat is None:
        return None
    user = update.effective_user
    message = update.effective_message
    return ChatContext(
        chat_id=chat.id,
        chat_type=chat.type,
        first_name=(user.first_name if user else "") or "",
        username=(user.username if user else "") or "",
        message_id=message.message_id if message else None,
    )


def text_update(update: Update, bot_username: str) -> Optional[TextMessage]:
    """Private text, or group text that @mentions the bot (mention removed)."""
    message = update.effective_message
    chat = chat_context(update)
    if message is None or chat is None or not message.text or update.effective_user is None:
        return None
    text = message.text.strip()
    if chat.is_group:
        handle = f"@{bot_username}".lower()
        mentions = message.parse_entities(["mention"])
        mentioned = [t for t in mentions.values() if t.lower() == handle]
        if not mentioned:
            return None
        for t in mentioned:
            text = text.replace(t, "")
        text = text.strip()
    elif chat.chat_type != PRIVATE_CHAT:
        return None
    return TextMessage(user_id=update.effective_user.id, chat=chat, text=text)


def member_updates(update: Update, bot_username: str) -> List[MembershipChanged]:
    message = update.effective_message
    if message is None or not message.new_chat_members:
        return []
    events = []
    for member in message.new_chat_members:
        chat = ChatContext(
            chat_id=message.chat.id,
            chat_type=message.chat.type,
            first_name=member.first_name or "",
            username=member.username or "",
        )
        is_self = (member.username or "").lower() == bot_username.lower()
        events.append(MembershipChanged(user_id=member.id, chat=chat, joined=True, is_self=is_self))
    return events


# ------------------ CORE RESPONSE -> TELEGRAM ------------------
def to_keyboard(rows: List[List[Button]]) -> Optional[InlineKeyboardMarkup]:
    keyboard = [
        [InlineKeyboardButton(b.label, url=b.url, callback_data=b.callback_data) for b in row]
        for row in rows if row
    ]
    return InlineKeyboardMarkup(keyboard) if keyboard else None


async def deliver(bot: Bot, chat_id: int, response: OutboundResponse, reply_to: Optional[int] = None, edit_message_id: Optional[int] = None):
    """Send (or edit into place) one response. Photos fall back to text."""
    parse_mode = PARSE_MODES[response.parse_mode]
    markup = to_keyboard(response.buttons)
    reply = ReplyParameters(message_id=reply_to, allow_sending_without_reply=True) if reply_to else None

    if response.photo:
        try:
            return await bot.send_photo(
                chat_id=chat_id,
                photo=response.photo,
                caption=response.text,
                parse_mode=parse_mode,
                reply_markup=markup,
                reply_parameters=reply,
            )
        except TelegramError as e:
            logger.warning("Failed to send photo %s: %s", response.photo, e)
            response = response.without_photo()

    if response.edit and edit_message_id:
        try:
            return await bot.edit_message_text(
                chat_id=chat_id,
                message_id=edit_message_id,
                text=response.text,
                parse_mode=parse_mode,
                reply_markup=markup,
            )
        except BadRequest as e:
            if "not modified" in str(e).lower():
                return None
            logger.warning("Edit failed, sending a new message instead: %s", e)
        except TelegramError as e:
            logger.warning("Edit failed, sending a new message instead: %s", e)

    return await bot.send_message(
        chat_id=chat_id,
        text=response.text,
        parse_mode=parse_mode,
        reply_markup=markup,
        reply_parameters=reply,
    )


# ------------------ HANDLERS ------------------
def search_bot(context: ContextTypes.DEFAULT_TYPE) -> SearchBot:
    return context.bot_data["search"]


def reporter(context: ContextTypes.DEFAULT_TYPE) -> ActivityReporter:
    return context.bot_data["reporter"]


async def start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    # Handles:
    # - /start
    # - /start <imdb id>
    # - /start q_<search_words>
    chat = chat_context(update)
    user = update.effective_user
    if chat is None or update.effective_message is None or chat.chat_type != PRIVATE_CHAT:
        return
    if user is None:
        await deliver(context.bot, chat.chat_id, render_unknown_user())
        return

    if context.args:
        event = DeepLinkStart(user_id=user.id, chat=chat, parameter=context.args[0])
        response = await search_bot(context).dispatch(event)
    else:
        response = render_greeting(user.first_name, BOT_USERNAME)
    await deliver(context.bot, chat.chat_id, response, reply_to=chat.message_id)

    context.application.create_task(reporter(context).report_start(user, update.effective_chat))


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE):
    event = text_update(update, BOT_USERNAME)
    if event is not None:
        response = await search_bot(context).dispatch(event)
        await deliver(context.bot, event.chat.chat_id, response, reply_to=event.chat.message_id)
    await report_private_message(update, context)


async def report_private_message(update: Update, context: ContextTypes.DEFAULT_TYPE):
    chat = update.effective_chat
    message = update.effective_message
    if chat is None or message is None or chat.type != PRIVATE_CHAT:
        return
    context.application.create_task(reporter(context).report_message(update.effective_user, chat, message))


async def button_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    query = update.callback_query
    if query is None:
        return
    chat = chat_context(update)
    if chat is None or not query.data:
        await query.answer()
        return

    event = ButtonPress(user_id=query.from_user.id, chat=chat, data=query.data)
    response = await search_bot(context).dispatch(event)
    try:
        await query.answer(response.notice)
    except TelegramError as e:
        logger.warning("Failed to answer callback query: %s", e)
    await deliver(context.bot, chat.chat_id, response, edit_message_id=chat.message_id)


async def handle_new_members(update: Update, context: ContextTypes.DEFAULT_TYPE):
    for event in member_updates(update, BOT_USERNAME):
        response = await search_bot(context).dispatch(event)
        if response is not None:
            await deliver(context.bot, event.chat.chat_id, response)


# ------------------ ADMIN COMMANDS ------------------
async def users_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if update.effective_user is None or update.effective_user.id != ADMIN_USER_ID:
        await update.effective_message.reply_text("❌ You are not authorized.")
        return
    try:
        chat_ids = await reporter(context).registry.chat_ids()
    except RegistryError as e:
        logger.error("Error fetching user count: %s", e)
        await update.effective_message.reply_text("❌ Unable to fetch user count.")
        return
    await deliver(context.bot, update.effective_chat.id, render_user_count(len(chat_ids)))


async def refresh_users(update: Update, context: ContextTypes.DEFAULT_TYPE):
    query = update.callback_query
    if query.from_user.id != ADMIN_USER_ID:
        await query.answer("Unauthorized")
        return
    try:
        chat_ids = await reporter(context).registry.chat_ids()
    except RegistryError as e:
        logger.error("Failed to refresh user count: %s", e)
        await query.answer("Refresh failed")
        return
    await deliver(
        context.bot,
        query.message.chat.id,
        render_user_count(len(chat_ids), refreshed=True),
        edit_message_id=query.message.message_id,
    )
    await query.answer("Refreshed!")


async def reload_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if update.effective_user is None or update.effective_user.id != ADMIN_USER_ID:
        await update.effective_message.reply_text("❌ Not allowed.")
        return
    await update.effective_message.reply_text("🔄 Reloading catalog...")
    catalog = await search_bot(context).store.reload()
    await update.effective_message.reply_text(f"✅ Catalog reloaded: {len(catalog)} movies.")


async def on_error(update: object, context: ContextTypes.DEFAULT_TYPE):
    logger.error("Error while handling update %s", update, exc_info=context.error)


# ------------------ RUN BOT ------------------
def build_application(token: str) -> Application:
    app = ApplicationBuilder().token(token).concurrent_updates(True).build()

    async def lookup(group_id: str, user_id: int) -> str:
        member = await app.bot.get_chat_member(chat_id=group_id, user_id=user_id)
        return member.status

    store = CatalogStore(CATALOG_SOURCES, functools.partial(fetch_feed, timeout=FETCH_TIMEOUT))
    app.bot_data["search"] = SearchBot(
        store=store,
        lookup=lookup,
        groups=REQUIRED_GROUPS,
        bot_username=BOT_USERNAME,
        media_bot_username=MEDIA_BOT_USERNAME,
        page_size=ITEMS_PER_PAGE,
    )
    app.bot_data["reporter"] = ActivityReporter(
        app.bot, ADMIN_USER_ID, UserRegistry(REGISTRY_WEBHOOK_URL, REGISTRY_TIMEOUT),
    )

    # Register handlers
    app.add_handler(CommandHandler("start", start))
    app.add_handler(CommandHandler("users", users_command))
    app.add_handler(CommandHandler("reload", reload_command))
    app.add_handler(CallbackQueryHandler(refresh_users, pattern=f"^{REFRESH_USERS}$"))
    app.add_handler(CallbackQueryHandler(button_handler))
    app.add_handler(MessageHandler(filters.StatusUpdate.NEW_CHAT_MEMBERS, handle_new_members))
    # User messages (search)
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_message))
    # Anything else sent in private is only reported to the admin
    app.add_handler(MessageHandler(filters.ChatType.PRIVATE & ~filters.TEXT & ~filters.COMMAND, report_private_message))
    app.add_error_handler(on_error)
    return app


async def run_bot():
    while True:
        try:
            app = build_application(BOT_TOKEN)
            async with app:
                catalog = await app.bot_data["search"].store.reload()
                logger.info("📚 Catalog ready: %d movies", len(catalog))
                await app.start()
                await app.updater.start_polling(allowed_updates=Update.ALL_TYPES)
                logger.info("✅ Bot running...")
                try:
                    await asyncio.Event().wait()
                finally:
                    await app.updater.stop()
                    await app.stop()
        except Conflict:
            logger.error("❌ Conflict: token used elsewhere. Retrying in 15s...")
            await asyncio.sleep(15)
        except RetryAfter as ra:
            wait = getattr(ra, "retry_after", 10)
            logger.warning("⏳ Rate limit. Waiting %ss...", wait)
            await asyncio.sleep(wait if isinstance(wait, (int, float)) else wait.total_seconds())
        except TelegramError as te:
            logger.error("⚠️ Telegram error: %s", te)
            await asyncio.sleep(10)


def main():
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, LOG_LEVEL, logging.INFO),
    )
    # httpx logs every Bot API URL at INFO, token included
    logging.getLogger("httpx").setLevel(logging.WARNING)
    if not BOT_TOKEN:
        raise SystemExit("BOT_TOKEN not provided!")

    nest_asyncio.apply()
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    loop.create_task(run_bot())
    try:
        loop.run_forever()
    except KeyboardInterrupt:
        logger.info("⏹️ Stopping bot...")


if __name__ == "__main__":
    main()
