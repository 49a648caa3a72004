import logging

from aiogram.types import ErrorEvent

logger = logging.getLogger("telegram")


async def on_error(event: ErrorEvent) -> bool:
    """Ошибка одного обработчика не должна ронять процесс и другие апдейты."""
    logger.error(
        "Ошибка в обработчике: %r update_type=%s",
        event.exception, event.update.event_type,
        exc_info=event.exception,
    )
    return True
