"""
HTTP-часть бота на FastAPI.

- GET  /healthz                        — проверка живости
- POST {TELEGRAM_WEBHOOK_PATH}         — вебхук Telegram (заголовок секрета)
- POST /monetization/stars/invoice     — ссылка на счёт в звёздах (X-API-Key)
- GET  /users                          — список записанных пользователей (X-API-Key)
"""
from contextlib import asynccontextmanager
import hmac
import json
import logging
import time

from aiogram import Bot, Dispatcher
from aiogram.types import BotCommand, LabeledPrice, Update
from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from tma_bot.config import Settings
from tma_bot.services.backend_api import BackendApi
from tma_bot.users import UserRegistry

logger = logging.getLogger("webapp")
startup_logger = logging.getLogger("startup")

ALLOWED_UPDATES = ["message", "callback_query", "chat_member", "chat_join_request", "pre_checkout_query"]
BOT_COMMANDS = [
    BotCommand(command="start", description="Приветствие и кнопка WebApp"),
    BotCommand(command="help", description="Краткая справка"),
]
SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _same_secret(given: str | None, expected: str) -> bool:
    if not given:
        return False
    return hmac.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


def parse_star_count(value) -> int | None:
    """Положительное целое число звёзд; строки вида "50" тоже принимаются."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            value = float(value)
        except ValueError:
            return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if not isinstance(value, int) or value <= 0:
        return None
    return value


async def ensure_webhook(bot: Bot | None, settings: Settings) -> None:
    if not settings.auto_set_webhook:
        startup_logger.info("AUTO_SET_WEBHOOK=false — пропускаю установку вебхука")
        return
    if bot is None or not settings.bot_webhook_url or not settings.webhook_path or not settings.webhook_secret:
        startup_logger.warning("Недостаточно переменных окружения для автоматической установки вебхука.")
        full_url = f"{settings.bot_webhook_url or 'https://your-domain.com'}{settings.webhook_path}"
        body = json.dumps({
            "url": full_url,
            "secret_token": settings.webhook_secret or "your-strong-secret",
            "drop_pending_updates": True,
            "allowed_updates": ALLOWED_UPDATES,
        })
        startup_logger.warning(
            "Вебхук можно установить вручную: curl -sS -X POST "
            "https://api.telegram.org/bot<YOUR_BOT_TOKEN>/setWebhook "
            "-H \"Content-Type: application/json\" -d '%s'", body,
        )
        return
    try:
        await bot.set_webhook(
            settings.webhook_url,
            secret_token=settings.webhook_secret,
            drop_pending_updates=True,
            allowed_updates=ALLOWED_UPDATES,
        )
        startup_logger.info("Webhook установлен: %s", settings.webhook_url)
    except Exception as e:
        startup_logger.error("Не удалось установить вебхук: %s", e)


async def ensure_bot_commands(bot: Bot | None) -> None:
    if bot is None:
        return
    try:
        await bot.set_my_commands(BOT_COMMANDS)
        startup_logger.info("Команды бота установлены")
    except Exception as e:
        startup_logger.error("Не удалось установить команды бота: %s", e)


def create_app(
    settings: Settings,
    bot: Bot | None,
    dispatcher: Dispatcher,
    registry: UserRegistry,
    backend: BackendApi,
) -> FastAPI:
    started_at = time.monotonic()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        startup_logger.info("HTTP сервер запущен на порту %s", settings.port)
        if bot is None:
            startup_logger.warning("Бот без BOT_TOKEN не будет обрабатывать запросы.")
        await ensure_webhook(bot, settings)
        await ensure_bot_commands(bot)
        yield
        logger.info("Остановка: дожидаюсь фоновых отправок")
        await backend.close()
        if bot is not None:
            await bot.session.close()

    app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.settings = settings
    app.state.registry = registry

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    async def require_backend_secret(x_api_key: str | None = Header(default=None)):
        if not settings.bot_backend_secret:
            logging.getLogger("backend").warning("BOT_BACKEND_SECRET не задан — запрос отклонён")
            raise ApiError(503, "Not configured")
        if not _same_secret(x_api_key, settings.bot_backend_secret):
            raise ApiError(401, "Unauthorized")

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok", "uptime_seconds": round(time.monotonic() - started_at, 2)}

    @app.post(settings.webhook_path)
    async def telegram_webhook(request: Request):
        webhook_logger = logging.getLogger("webhook")
        if not settings.webhook_secret:
            webhook_logger.warning("TELEGRAM_WEBHOOK_SECRET не задан, проверка заголовка пропущена")
        elif not _same_secret(request.headers.get(SECRET_HEADER), settings.webhook_secret):
            return PlainTextResponse("Unauthorized", status_code=401)

        if bot is None:
            return JSONResponse({"error": "BOT_TOKEN not configured"}, status_code=503)
        try:
            data = await request.json()
            update = Update.model_validate(data, context={"bot": bot})
        except (ValueError, ValidationError) as e:
            webhook_logger.warning("Некорректный апдейт: %s", e)
            return JSONResponse({"error": "Invalid update"}, status_code=400)

        try:
            await dispatcher.feed_update(bot, update)
        except Exception:
            # Апдейт всё равно подтверждаем
            webhook_logger.exception("Необработанная ошибка апдейта %s", update.update_id)
        return JSONResponse({"ok": True})

    @app.post("/monetization/stars/invoice", dependencies=[Depends(require_backend_secret)])
    async def create_stars_invoice(request: Request):
        payments_logger = logging.getLogger("payments")
        try:
            if bot is None:
                raise ApiError(503, "BOT_TOKEN not configured")
            try:
                body = await request.json()
            except ValueError:
                body = {}
            if not isinstance(body, dict):
                body = {}

            item_key = body.get("itemKey")
            if item_key != "premium":
                raise ApiError(400, "Unsupported itemKey")
            stars = parse_star_count(body.get("starCount"))
            if stars is None:
                raise ApiError(400, "Invalid starCount")

            payload = {
                "t": "stars",
                "itemKey": item_key,
                "starCount": stars,
                "v": 1,
                "ts": int(time.time() * 1000),
            }
            try:
                url = await bot.create_invoice_link(
                    title="Premium подписка",
                    description="Доступ к Premium функциям.",
                    payload=json.dumps(payload),
                    currency="XTR",
                    prices=[LabeledPrice(label="Premium", amount=stars)],
                )
            except Exception as e:
                payments_logger.error("Ошибка создания инвойса: %s", e)
                raise ApiError(502, "Failed to create invoice")
            return {"url": url}
        except ApiError:
            raise
        except Exception as e:
            payments_logger.error("Внутренняя ошибка при создании инвойса: %s", e)
            raise ApiError(500, "Internal error")

    @app.get("/users", dependencies=[Depends(require_backend_secret)])
    async def list_users():
        users = registry.read_all()
        return {"count": len(users), "users": users}

    return app
