from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton, WebAppInfo


def webapp_keyboard(url: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="Открыть приложение", web_app=WebAppInfo(url=url))],
    ])
