"""
Ручная рассылка сообщения всем пользователям из реестра.

    python -m tma_bot.broadcast "Привет! У нас новая функция!"
    python -m tma_bot.broadcast "..." --dry-run
"""
import argparse
import asyncio
from dataclasses import dataclass
import logging
import sys

from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError, TelegramForbiddenError, TelegramRetryAfter

from tma_bot.config import Settings
from tma_bot.users import UserRegistry

logger = logging.getLogger("broadcast")


@dataclass
class BroadcastReport:
    sent: int = 0
    blocked: int = 0
    failed: int = 0

    def __str__(self) -> str:
        return f"Успешно: {self.sent}, заблокировали бота: {self.blocked}, ошибки: {self.failed}"


async def _send_one(bot: Bot, chat_id: str, text: str) -> None:
    try:
        await bot.send_message(chat_id=chat_id, text=text)
    except TelegramRetryAfter as e:
        logger.warning("Флуд-контроль, ждём %s с", e.retry_after)
        await asyncio.sleep(e.retry_after)
        await bot.send_message(chat_id=chat_id, text=text)


async def broadcast(bot: Bot, user_ids: list[str], text: str, delay: float = 0.05) -> BroadcastReport:
    report = BroadcastReport()
    for i, chat_id in enumerate(user_ids):
        try:
            await _send_one(bot, chat_id, text)
            report.sent += 1
        except TelegramForbiddenError:
            # Пользователь заблокировал бота
            report.blocked += 1
        except TelegramAPIError as e:
            logger.warning("Отправка %s не удалась: %s", chat_id, e)
            report.failed += 1
        if delay and i < len(user_ids) - 1:
            await asyncio.sleep(delay)
    return report


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Рассылка сообщения всем пользователям бота")
    parser.add_argument("message", nargs="?", default="", help="текст сообщения")
    parser.add_argument("--file", help="файл с id пользователей (по умолчанию USER_IDS_FILE)")
    parser.add_argument("--dry-run", action="store_true", help="только показать получателей")
    parser.add_argument("--delay", type=float, default=0.05, help="пауза между отправками, с")
    return parser.parse_args(argv)


async def run(args, settings: Settings) -> int:
    if not args.message.strip():
        print('Usage: python -m tma_bot.broadcast "Your message here"')
        print('Example: python -m tma_bot.broadcast "Привет! У нас новая функция!"')
        return 1

    registry = UserRegistry(args.file or settings.user_ids_file)
    user_ids = registry.read_all()
    print(f"Found {len(user_ids)} users:")
    for index, user_id in enumerate(user_ids, start=1):
        print(f"{index}. {user_id}")
    print(f'\nMessage to send: "{args.message}"')

    if args.dry_run:
        return 0
    if not settings.bot_token:
        print("BOT_TOKEN не задан — сообщения не отправлены.")
        return 1

    bot = Bot(token=settings.bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    try:
        report = await broadcast(bot, user_ids, args.message, delay=args.delay)
    finally:
        await bot.session.close()
    print(f"\nРассылка завершена. {report}")
    return 0


def main(argv=None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    args = parse_args(argv)
    sys.exit(asyncio.run(run(args, Settings.from_env())))


if __name__ == "__main__":
    main()
