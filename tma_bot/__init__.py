"""
Telegram-бот с кнопкой мини‑приложения, A/B‑сплитом и доставкой событий в бэкенд.
"""

__version__ = "0.1.0"
