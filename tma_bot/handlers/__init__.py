from aiogram import Dispatcher

from tma_bot.config import Settings
from tma_bot.handlers import callbacks, errors, payments, start
from tma_bot.middlewares.record_user import RecordUserMiddleware
from tma_bot.services.backend_api import BackendApi
from tma_bot.users import UserRegistry


def build_dispatcher(settings: Settings, registry: UserRegistry, backend: BackendApi) -> Dispatcher:
    """
    Собирает диспетчер. Настройки, реестр и клиент бэкенда попадают
    в обработчики как workflow data по имени аргумента.
    """
    dp = Dispatcher(settings=settings, registry=registry, backend=backend)

    # Платежи раньше эха
    dp.include_router(payments.create_router())
    dp.include_router(start.create_router())
    dp.include_router(callbacks.create_router())

    dp.message.outer_middleware(RecordUserMiddleware(registry))
    dp.errors.register(errors.on_error)
    return dp
