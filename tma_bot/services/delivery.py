"""
Доставка JSON-событий во внешний сборщик с ограниченным числом повторов.

2xx считается успехом, 400/401/403 не повторяются, остальное (5xx,
сетевые ошибки, тайм-аут) повторяется с экспоненциальной паузой
500 мс, 1000 мс, ... Ошибки доставки не выбрасываются наружу: вызывающий
код не должен страдать из-за аналитики.
"""
import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Mapping

import aiohttp

logger = logging.getLogger("analytics")

NON_RETRYABLE_STATUSES = frozenset({400, 401, 403})


class DeliveryResult(str, Enum):
    DELIVERED = "delivered"
    REJECTED = "rejected"      # 400/401/403 или тело не сериализуется, без повторов
    EXHAUSTED = "exhausted"    # повторы закончились


async def deliver(
    url: str,
    payload: Any,
    headers: Mapping[str, str] | None = None,
    timeout_ms: int = 4000,
    max_retries: int = 2,
    *,
    backoff_ms: int = 500,
    session: aiohttp.ClientSession | None = None,
) -> DeliveryResult:
    """
    POST ``payload`` как JSON на ``url``. Всего не больше ``max_retries + 1`` попыток.

    Каждая попытка ограничена ``timeout_ms``; таймер попытки освобождается
    вместе с запросом, до паузы перед следующей попыткой.
    """
    request_headers = {"Content-Type": "application/json", **(headers or {})}
    try:
        body = json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8")
    except (TypeError, ValueError) as e:
        logger.error("Событие не сериализуется в JSON, отправка отменена: %r", e)
        return DeliveryResult.REJECTED
    timeout = aiohttp.ClientTimeout(total=timeout_ms / 1000)

    own_session = session is None
    if own_session:
        session = aiohttp.ClientSession()
    try:
        attempt = 0
        while True:
            status = None
            error = None
            try:
                async with session.post(url, data=body, headers=request_headers, timeout=timeout) as resp:
                    status = resp.status
                    await resp.read()
            except Exception as e:
                error = e

            if status is not None and 200 <= status < 300:
                logger.debug("Событие доставлено: %s (попытка %d)", url, attempt + 1)
                return DeliveryResult.DELIVERED
            if status in NON_RETRYABLE_STATUSES:
                logger.warning("Неуспешный статус без ретраев: %s (%s)", status, url)
                return DeliveryResult.REJECTED

            if attempt < max_retries:
                delay_ms = backoff_ms * 2 ** attempt
                logger.info(
                    "Попытка %d не удалась (%s), повтор через %d мс",
                    attempt + 1, status if error is None else repr(error), delay_ms,
                )
                await asyncio.sleep(delay_ms / 1000)
                attempt += 1
                continue

            if error is not None:
                logger.error("Ошибка отправки события после %d попыток: %r", attempt + 1, error)
            else:
                logger.warning("Неуспешный статус после ретраев: %s (%s)", status, url)
            return DeliveryResult.EXHAUSTED
    finally:
        if own_session:
            await session.close()


class BackgroundTasks:
    """
    Хранит ссылки на запущенные «выстрелил и забыл» задачи.

    asyncio держит на задачи только слабые ссылки, поэтому без этого
    набора задачу может собрать сборщик мусора посреди работы.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable, *, name: str | None = None) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Фоновая задача %s упала: %r", task.get_name(), exc)

    async def drain(self, timeout: float = 5.0) -> None:
        """Ждёт незавершённые задачи при остановке; по тайм-ауту отменяет их."""
        if not self._tasks:
            return
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Отменено %d незавершённых фоновых задач", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)
