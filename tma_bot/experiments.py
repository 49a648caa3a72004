"""
Детерминированное распределение пользователей по вариантам A/B.

Вариант зависит только от идентификатора пользователя и доли варианта A,
поэтому после перезапуска бота пользователь видит тот же интерфейс.
"""
from enum import Enum
import math

FNV_OFFSET_BASIS = 0x811C9DC5
_MASK_32 = 0xFFFFFFFF


class Variant(str, Enum):
    A = "A"
    B = "B"


def _utf16_units(text: str):
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        yield data[i] | (data[i + 1] << 8)


def fnv1a_32(text: str) -> int:
    """
    32-битный FNV-1a по кодовым единицам UTF-16 (как charCodeAt в браузере).
    Сдвиги эквивалентны умножению на простое число FNV 0x01000193.
    """
    h = FNV_OFFSET_BASIS
    for unit in _utf16_units(text):
        h ^= unit
        h = (h + (h << 1) + (h << 4) + (h << 7) + (h << 8) + (h << 24)) & _MASK_32
    return h


def canonical_id(identifier) -> str:
    if identifier is None:
        return "0"
    text = str(identifier)
    return text or "0"


def bucket_for(identifier) -> int:
    """Номер корзины 0–99 для идентификатора."""
    return fnv1a_32(canonical_id(identifier)) % 100


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def clamp_ratio(ratio_a: float) -> float:
    """Доля A в пределах [0, 100]; NaN считается нулём."""
    ratio_a = float(ratio_a)
    if math.isnan(ratio_a):
        return 0.0
    return max(0.0, min(100.0, ratio_a))


def assign_variant(identifier, ratio_a: float) -> Variant:
    """
    Возвращает A, если корзина пользователя меньше округлённой доли A.

    ratio_a = 0 всегда даёт B, ratio_a = 100 всегда даёт A. Значения вне
    [0, 100] и бесконечности прижимаются к границам.
    """
    if bucket_for(identifier) < round_half_up(clamp_ratio(ratio_a)):
        return Variant.A
    return Variant.B
