"""
Точка входа: HTTP-сервер с вебхуком бота.
"""
import logging

import uvicorn
from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.utils.token import TokenValidationError
from fastapi import FastAPI

from tma_bot.config import Settings
from tma_bot.handlers import build_dispatcher
from tma_bot.services.backend_api import BackendApi
from tma_bot.users import UserRegistry
from tma_bot.webapp import create_app

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("startup")


def create_bot(settings: Settings) -> Bot | None:
    if not settings.bot_token:
        logger.error("BOT_TOKEN не задан. Укажите BOT_TOKEN в .env")
        return None
    try:
        return Bot(
            token=settings.bot_token,
            default=DefaultBotProperties(parse_mode=ParseMode.HTML),
        )
    except TokenValidationError as e:
        logger.error("BOT_TOKEN некорректен: %s", e)
        return None


def build_app(settings: Settings) -> FastAPI:
    bot = create_bot(settings)
    registry = UserRegistry(settings.user_ids_file)
    backend = BackendApi(settings)
    if not backend.enabled:
        logger.info("API_BASE_URL или BOT_BACKEND_SECRET не заданы — события в бэкенд не отправляются")
    dp = build_dispatcher(settings, registry, backend)
    return create_app(settings, bot, dp, registry, backend)


def main() -> None:
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    app = build_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
