import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram import Bot, Dispatcher
from fastapi.testclient import TestClient

from tma_bot.services.backend_api import BackendApi
from tma_bot.webapp import create_app, ensure_bot_commands, ensure_webhook, parse_star_count

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"

UPDATE = {
    "update_id": 77,
    "message": {
        "message_id": 1,
        "date": 1700000000,
        "chat": {"id": 5, "type": "private"},
        "from": {"id": 5, "is_bot": False, "first_name": "Ann"},
        "text": "hi",
    },
}


@pytest.fixture
def bot():
    bot = MagicMock(spec=Bot)
    bot.create_invoice_link = AsyncMock(return_value="https://t.me/$invoice")
    return bot


@pytest.fixture
def dispatcher():
    dp = MagicMock(spec=Dispatcher)
    dp.feed_update = AsyncMock()
    return dp


@pytest.fixture
def make_client(make_settings, registry, dispatcher):
    def factory(bot=None, **overrides):
        settings = make_settings(**overrides)
        app = create_app(settings, bot, dispatcher, registry, BackendApi(settings))
        return TestClient(app)
    return factory


def test_healthz(make_client):
    response = make_client().get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_webhook_accepts_valid_secret(make_client, bot, dispatcher):
    client = make_client(bot, webhook_secret="hook")

    response = client.post("/telegram/webhook", json=UPDATE, headers={SECRET_HEADER: "hook"})

    assert response.status_code == 200
    dispatcher.feed_update.assert_awaited_once()
    fed_bot, update = dispatcher.feed_update.await_args.args
    assert fed_bot is bot
    assert update.update_id == 77
    assert update.message.text == "hi"


@pytest.mark.parametrize("headers", [{}, {SECRET_HEADER: "wrong"}])
def test_webhook_rejects_bad_secret(make_client, bot, dispatcher, headers):
    client = make_client(bot, webhook_secret="hook")

    response = client.post("/telegram/webhook", json=UPDATE, headers=headers)

    assert response.status_code == 401
    assert response.text == "Unauthorized"
    dispatcher.feed_update.assert_not_awaited()


def test_webhook_without_configured_secret_is_accepted(make_client, bot, dispatcher, caplog):
    client = make_client(bot)

    response = client.post("/telegram/webhook", json=UPDATE)

    assert response.status_code == 200
    dispatcher.feed_update.assert_awaited_once()
    assert any("TELEGRAM_WEBHOOK_SECRET" in r.getMessage() for r in caplog.records)


def test_webhook_custom_path(make_client, bot, dispatcher):
    client = make_client(bot, webhook_path="/tg/secret-path")

    assert client.post("/tg/secret-path", json=UPDATE).status_code == 200
    assert client.post("/telegram/webhook", json=UPDATE).status_code == 404


def test_webhook_without_bot(make_client):
    response = make_client().post("/telegram/webhook", json=UPDATE)
    assert response.status_code == 503


def test_webhook_invalid_body(make_client, bot, dispatcher):
    client = make_client(bot)

    response = client.post("/telegram/webhook", content=b"{oops", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    dispatcher.feed_update.assert_not_awaited()


def test_webhook_swallows_dispatch_errors(make_client, bot, dispatcher):
    dispatcher.feed_update.side_effect = RuntimeError("boom")
    client = make_client(bot)

    assert client.post("/telegram/webhook", json=UPDATE).status_code == 200


def test_backend_endpoints_need_configured_secret(make_client, bot):
    client = make_client(bot)

    response = client.post("/monetization/stars/invoice", json={"itemKey": "premium", "starCount": 10})

    assert response.status_code == 503
    assert response.json() == {"error": "Not configured"}


@pytest.mark.parametrize("headers", [{}, {"X-API-Key": "nope"}])
def test_backend_endpoints_reject_wrong_key(make_client, bot, headers):
    client = make_client(bot, bot_backend_secret="key")

    response = client.get("/users", headers=headers)

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_invoice_created(make_client, bot):
    client = make_client(bot, bot_backend_secret="key")

    response = client.post(
        "/monetization/stars/invoice",
        json={"itemKey": "premium", "starCount": 250},
        headers={"x-api-key": "key"},
    )

    assert response.status_code == 200
    assert response.json() == {"url": "https://t.me/$invoice"}
    kwargs = bot.create_invoice_link.await_args.kwargs
    assert kwargs["currency"] == "XTR"
    assert kwargs["title"] == "Premium подписка"
    assert kwargs["prices"][0].amount == 250
    payload = json.loads(kwargs["payload"])
    assert payload["t"] == "stars"
    assert payload["itemKey"] == "premium"
    assert payload["starCount"] == 250
    assert payload["v"] == 1
    assert isinstance(payload["ts"], int)


def test_invoice_accepts_numeric_string(make_client, bot):
    client = make_client(bot, bot_backend_secret="key")

    response = client.post(
        "/monetization/stars/invoice",
        json={"itemKey": "premium", "starCount": "50"},
        headers={"X-API-Key": "key"},
    )

    assert response.status_code == 200
    assert bot.create_invoice_link.await_args.kwargs["prices"][0].amount == 50


@pytest.mark.parametrize("body,error", [
    ({"itemKey": "gold", "starCount": 10}, "Unsupported itemKey"),
    ({"starCount": 10}, "Unsupported itemKey"),
    ({"itemKey": "premium", "starCount": 0}, "Invalid starCount"),
    ({"itemKey": "premium", "starCount": -3}, "Invalid starCount"),
    ({"itemKey": "premium", "starCount": 1.5}, "Invalid starCount"),
    ({"itemKey": "premium", "starCount": "abc"}, "Invalid starCount"),
    ({"itemKey": "premium"}, "Invalid starCount"),
])
def test_invoice_validation(make_client, bot, body, error):
    client = make_client(bot, bot_backend_secret="key")

    response = client.post("/monetization/stars/invoice", json=body, headers={"X-API-Key": "key"})

    assert response.status_code == 400
    assert response.json() == {"error": error}
    bot.create_invoice_link.assert_not_awaited()


def test_invoice_without_bot(make_client):
    client = make_client(bot_backend_secret="key")

    response = client.post(
        "/monetization/stars/invoice",
        json={"itemKey": "premium", "starCount": 10},
        headers={"X-API-Key": "key"},
    )

    assert response.status_code == 503
    assert response.json() == {"error": "BOT_TOKEN not configured"}


def test_invoice_telegram_failure(make_client, bot):
    bot.create_invoice_link.side_effect = RuntimeError("Bad Request: currency not supported")
    client = make_client(bot, bot_backend_secret="key")

    response = client.post(
        "/monetization/stars/invoice",
        json={"itemKey": "premium", "starCount": 10},
        headers={"X-API-Key": "key"},
    )

    assert response.status_code == 502
    assert response.json() == {"error": "Failed to create invoice"}


def test_users_listing(make_client, registry):
    registry.add(11)
    registry.add(22)
    client = make_client(bot_backend_secret="key")

    response = client.get("/users", headers={"X-API-Key": "key"})

    assert response.status_code == 200
    assert response.json() == {"count": 2, "users": ["11", "22"]}


@pytest.mark.parametrize("value,expected", [
    (5, 5), ("7", 7), (3.0, 3), (" 12 ", 12),
    (0, None), (True, None), (None, None), ("", None), (2.5, None), ([1], None),
])
def test_parse_star_count(value, expected):
    assert parse_star_count(value) == expected


async def test_ensure_webhook_skipped_by_default(make_settings, bot):
    await ensure_webhook(bot, make_settings())
    bot.set_webhook.assert_not_called()


async def test_ensure_webhook_prints_hint_when_incomplete(make_settings, bot, caplog):
    await ensure_webhook(bot, make_settings(auto_set_webhook=True, bot_webhook_url="https://bot.example"))

    bot.set_webhook.assert_not_called()
    assert any("setWebhook" in r.getMessage() for r in caplog.records)


async def test_ensure_webhook_sets_url(make_settings, bot):
    bot.set_webhook = AsyncMock()
    settings = make_settings(auto_set_webhook=True, bot_webhook_url="https://bot.example", webhook_secret="hook")

    await ensure_webhook(bot, settings)

    args, kwargs = bot.set_webhook.await_args
    assert args == ("https://bot.example/telegram/webhook",)
    assert kwargs["secret_token"] == "hook"
    assert kwargs["drop_pending_updates"] is True
    assert "pre_checkout_query" in kwargs["allowed_updates"]


async def test_ensure_webhook_failure_is_logged(make_settings, bot, caplog):
    bot.set_webhook = AsyncMock(side_effect=RuntimeError("network"))
    settings = make_settings(auto_set_webhook=True, bot_webhook_url="https://bot.example", webhook_secret="hook")

    await ensure_webhook(bot, settings)

    assert any("Не удалось установить вебхук" in r.getMessage() for r in caplog.records)


async def test_ensure_bot_commands(bot):
    bot.set_my_commands = AsyncMock()

    await ensure_bot_commands(bot)
    await ensure_bot_commands(None)

    commands = bot.set_my_commands.await_args.args[0]
    assert [c.command for c in commands] == ["start", "help"]


def test_lifespan_drains_and_closes(make_settings, registry, dispatcher, bot):
    bot.set_my_commands = AsyncMock()
    bot.session = MagicMock()
    bot.session.close = AsyncMock()
    settings = make_settings()
    backend = BackendApi(settings)
    backend.close = AsyncMock()

    with TestClient(create_app(settings, bot, dispatcher, registry, backend)) as client:
        assert client.get("/healthz").status_code == 200

    bot.set_my_commands.assert_awaited_once()
    backend.close.assert_awaited_once()
    bot.session.close.assert_awaited_once()
