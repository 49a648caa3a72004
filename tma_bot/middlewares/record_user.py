"""
Middleware: записываем id каждого написавшего пользователя в реестр.
"""
import logging

from aiogram import BaseMiddleware
from aiogram.types import Message

from tma_bot.users import UserRegistry

logger = logging.getLogger("users")


class RecordUserMiddleware(BaseMiddleware):
    def __init__(self, registry: UserRegistry):
        self.registry = registry

    async def __call__(self, handler, event, data):
        if isinstance(event, Message) and event.from_user is not None:
            try:
                self.registry.add(event.from_user.id)
            except OSError as e:
                # Ошибка реестра не блокирует ответ
                logger.error("Не удалось записать пользователя %s: %s", event.from_user.id, e)
        return await handler(event, data)
