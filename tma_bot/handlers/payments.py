"""
Оплата звёздами: подтверждаем pre-checkout и пересылаем успешные платежи в бэкенд.
"""
import json
import logging

from aiogram import F, Router
from aiogram.types import Message, PreCheckoutQuery

from tma_bot.services.backend_api import BackendApi

logger = logging.getLogger("payments")


def parse_invoice_payload(raw: str | None) -> dict:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


async def on_pre_checkout(query: PreCheckoutQuery):
    try:
        await query.answer(ok=True)
    except Exception as e:
        logger.error("Ошибка при ответе на pre_checkout_query: %s", e)


async def on_successful_payment(msg: Message, backend: BackendApi):
    sp = msg.successful_payment
    payload = parse_invoice_payload(sp.invoice_payload)
    item_key = payload.get("itemKey")
    star_count = payload.get("starCount")
    telegram_id = msg.from_user.id if msg.from_user else None

    logger.info(
        "Успешная оплата: telegramId=%s currency=%s total_amount=%s itemKey=%s starCount=%s "
        "telegram_payment_charge_id=%s provider_payment_charge_id=%s",
        telegram_id, sp.currency, sp.total_amount, item_key, star_count,
        sp.telegram_payment_charge_id, sp.provider_payment_charge_id,
    )

    # Бэкенд активирует подписку; пользователь ответа не ждёт
    backend.track_payment(telegram_id, item_key, star_count, sp.model_dump(mode="json", exclude_none=True))

    try:
        await msg.answer("Оплата получена! Спасибо.")
    except Exception as e:
        logger.warning("Не удалось подтвердить оплату пользователю %s: %s", telegram_id, e)


def create_router() -> Router:
    router = Router(name="payments")
    router.pre_checkout_query.register(on_pre_checkout)
    router.message.register(on_successful_payment, F.successful_payment)
    return router
