from dataclasses import dataclass
import os

from dotenv import load_dotenv


def _clamp_ratio(raw: str | None) -> float:
    try:
        value = float(raw) if raw not in (None, "") else 50.0
    except ValueError:
        value = 50.0
    if value != value:  # NaN
        value = 50.0
    return max(0.0, min(100.0, value))


@dataclass(frozen=True)
class Settings:
    bot_token: str = ""
    web_app_url: str = ""
    webhook_path: str = "/telegram/webhook"
    webhook_secret: str = ""
    bot_webhook_url: str = ""
    auto_set_webhook: bool = False
    host: str = "0.0.0.0"
    port: int = 7777
    api_base_url: str = ""          # например, https://api.example.com
    bot_backend_secret: str = ""    # общий секрет для X-API-Key
    ab_split_a: float = 50.0        # процент пользователей в варианте A
    user_ids_file: str = "user_ids.txt"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> "Settings":
        if env is None:
            load_dotenv()
            env = dict(os.environ)
        return cls(
            bot_token=env.get("BOT_TOKEN", ""),
            web_app_url=env.get("WEB_APP_URL", ""),
            webhook_path=env.get("TELEGRAM_WEBHOOK_PATH") or "/telegram/webhook",
            webhook_secret=env.get("TELEGRAM_WEBHOOK_SECRET", ""),
            bot_webhook_url=env.get("BOT_WEBHOOK_URL", ""),
            auto_set_webhook=env.get("AUTO_SET_WEBHOOK", "false").lower() == "true",
            host=env.get("HOST", "0.0.0.0"),
            port=int(env.get("PORT") or 7777),
            api_base_url=env.get("API_BASE_URL", ""),
            bot_backend_secret=env.get("BOT_BACKEND_SECRET", ""),
            ab_split_a=_clamp_ratio(env.get("AB_SPLIT_A")),
            user_ids_file=env.get("USER_IDS_FILE") or "user_ids.txt",
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def backend_enabled(self) -> bool:
        return bool(self.api_base_url and self.bot_backend_secret)

    @property
    def webhook_url(self) -> str:
        return f"{self.bot_webhook_url}{self.webhook_path}"
