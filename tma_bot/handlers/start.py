"""
Приветствие: /start с кнопкой мини‑приложения, /help и эхо для текста.
"""
import logging

from aiogram import F, Router
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.types import Message

from tma_bot.config import Settings
from tma_bot.experiments import assign_variant
from tma_bot.keyboards import webapp_keyboard
from tma_bot.services.backend_api import BackendApi
from tma_bot.utils import append_query_param, parse_start_payload

logger = logging.getLogger("telegram")

HELP_TEXT = (
    "Доступные команды:\n"
    "/start — приветствие и кнопка WebApp\n"
    "/help — эта справка"
)


async def cmd_start(msg: Message, command: CommandObject, settings: Settings, backend: BackendApi):
    payload = command.args
    if payload:
        logger.info("/start payload: %s", payload)

    user_id = msg.from_user.id if msg.from_user else None
    variant = assign_variant(user_id, settings.ab_split_a)
    referral_code, campaign = parse_start_payload(payload)

    text = "Привет! Хочешь найти собеседника?\n" + (
        " Открой мини-приложение по кнопке ниже." if settings.web_app_url
        else " URL мини-приложения не настроен."
    )
    if settings.web_app_url:
        url = append_query_param(settings.web_app_url, "exp", variant.value)
        if referral_code:
            url = append_query_param(url, "ref", referral_code)
        await msg.answer(text, reply_markup=webapp_keyboard(url), parse_mode="HTML")
    else:
        await msg.answer(text)

    backend.track("bot_start_shown", user_id, {
        "variant": variant.value,
        "startPayload": payload or None,
        "referralCode": referral_code,
        "campaign": campaign,
    })


async def cmd_help(msg: Message):
    await msg.answer(HELP_TEXT)


async def echo_text(msg: Message):
    text = msg.text or ""
    if not text.strip():
        return
    # Текст пользователя отправляем как есть, без HTML-разметки
    await msg.answer(f"Вы написали: {text}", parse_mode=None)


def create_router() -> Router:
    router = Router(name="start")
    router.message.register(cmd_start, CommandStart())
    router.message.register(cmd_help, Command("help"))
    # Эхо идёт последним, чтобы не перехватывать команды выше
    router.message.register(echo_text, F.text)
    return router
