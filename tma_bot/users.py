"""
Реестр пользователей в текстовом файле: один идентификатор на строку.

Файл читается и перезаписывается целиком при каждом добавлении. Блокировок
нет: бот работает в одном процессе и одном потоке.
"""
import logging
import os

logger = logging.getLogger("users")


class UserRegistry:
    def __init__(self, path: str):
        self.path = path

    def read_all(self) -> list[str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                content = f.read()
        except FileNotFoundError:
            return []
        return [line.strip() for line in content.splitlines() if line.strip()]

    def add(self, identifier) -> bool:
        """Добавляет идентификатор; возвращает False, если он уже записан."""
        user_id = str(identifier).strip()
        if not user_id:
            return False
        ids = self.read_all()
        if user_id in ids:
            return False
        ids.append(user_id)
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("\n".join(ids) + "\n")
        logger.info("Новый пользователь %s (всего %d)", user_id, len(ids))
        return True

    def __contains__(self, identifier) -> bool:
        return str(identifier) in self.read_all()

    def __len__(self) -> int:
        return len(self.read_all())
