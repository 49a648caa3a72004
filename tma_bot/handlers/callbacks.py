import logging

from aiogram import F, Router
from aiogram.types import CallbackQuery

from tma_bot.experiments import Variant
from tma_bot.services.backend_api import BackendApi

logger = logging.getLogger("analytics")


async def on_tma_click(call: CallbackQuery, backend: BackendApi):
    """Явный клик по кнопке открытия мини‑приложения: tma_click:A или tma_click:B."""
    try:
        data = call.data or ""
        variant = Variant.A if data.split(":")[1] == "A" else Variant.B
        user_id = call.from_user.id if call.from_user else None
        backend.track("bot_webapp_open_click", user_id, {"variant": variant.value})
        await call.answer("Записал")
    except Exception as e:
        logger.error("Ошибка при обработке tma_click: %s", e)
        try:
            await call.answer()
        except Exception as answer_error:
            logger.debug("Не удалось ответить на callback: %s", answer_error)


async def on_any_callback(call: CallbackQuery):
    try:
        await call.answer("Принято")
    except Exception as e:
        logging.getLogger("callback_query").error("Ошибка при ответе на callback: %s", e)


def create_router() -> Router:
    router = Router(name="callbacks")
    router.callback_query.register(on_tma_click, F.data.regexp(r"^tma_click:(A|B)$"))
    router.callback_query.register(on_any_callback)
    return router
