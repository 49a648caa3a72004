"""
Отправка событий аналитики и уведомлений об оплате во внешний бэкенд.
"""
import logging
from typing import Any

from tma_bot.config import Settings
from tma_bot.services.delivery import BackgroundTasks, DeliveryResult, deliver

logger = logging.getLogger("backend")

ANALYTICS_PATH = "/api/analytics/bot-event"
STARS_SUCCESS_PATH = "/api/monetization/stars/success"


class BackendApi:
    def __init__(self, settings: Settings, tasks: BackgroundTasks | None = None):
        self.settings = settings
        self.tasks = tasks or BackgroundTasks()

    @property
    def enabled(self) -> bool:
        return self.settings.backend_enabled

    def _endpoint(self, path: str) -> str:
        return f"{self.settings.api_base_url.rstrip('/')}{path}"

    def _headers(self) -> dict[str, str]:
        return {"X-API-Key": self.settings.bot_backend_secret}

    async def post_analytics_event(
        self,
        name: str,
        telegram_id: int | str | None = None,
        props: dict[str, Any] | None = None,
    ) -> DeliveryResult | None:
        # Без настроек тихо пропускаем, чтобы не засорять логи в dev
        if not self.enabled:
            return None
        payload = {"name": name, "telegramId": telegram_id, "props": props}
        return await deliver(self._endpoint(ANALYTICS_PATH), payload, self._headers())

    async def notify_stars_payment_success(
        self,
        telegram_id: int | str | None,
        item_key: str | None,
        star_count: int | None,
        successful_payment: dict[str, Any] | None,
    ) -> DeliveryResult | None:
        if not self.enabled:
            return None
        body = {
            "telegramId": telegram_id,
            "itemKey": item_key,
            "starCount": star_count,
            "successfulPayment": successful_payment,
        }
        result = await deliver(self._endpoint(STARS_SUCCESS_PATH), body, self._headers())
        if result is not DeliveryResult.DELIVERED:
            logger.error("Уведомление об успешной оплате не доставлено: telegramId=%s result=%s",
                         telegram_id, result.value)
        return result

    def track(self, name: str, telegram_id: int | str | None = None, props: dict[str, Any] | None = None):
        """Запускает отправку события в фоне, не дожидаясь результата."""
        if not self.enabled:
            return None
        return self.tasks.spawn(self.post_analytics_event(name, telegram_id, props), name=f"analytics:{name}")

    def track_payment(self, telegram_id, item_key, star_count, successful_payment):
        if not self.enabled:
            return None
        return self.tasks.spawn(
            self.notify_stars_payment_success(telegram_id, item_key, star_count, successful_payment),
            name="payments:stars_success",
        )

    async def close(self) -> None:
        await self.tasks.drain()
