"""Настройки приложения из переменных окружения (.env)."""

import os
from typing import Tuple

import pytz
from dotenv import load_dotenv

load_dotenv()


def _parse_offsets(raw: str) -> Tuple[int, ...]:
    """
    Разбирает список смещений напоминаний вида "0,7".

    Args:
        raw: Строка с целыми числами через запятую

    Returns:
        Кортеж неотрицательных смещений в днях (без повторов, по возрастанию)

    Raises:
        ValueError: Если значение не число или отрицательное
    """
    offsets = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        value = int(part)
        if value < 0:
            raise ValueError(f"ALERT_OFFSETS не может содержать отрицательные значения: {value}")
        offsets.add(value)
    return tuple(sorted(offsets))


# Часовой пояс по умолчанию для вычисления "сегодня"
DEFAULT_TIMEZONE = pytz.timezone(os.getenv("TIMEZONE", "Europe/Moscow"))

# Правило для дня рождения 29 февраля в невисокосный год: "feb28" или "mar1"
LEAP_DAY_RULE = os.getenv("LEAP_DAY_RULE", "feb28").strip().lower()
if LEAP_DAY_RULE not in ("feb28", "mar1"):
    raise ValueError(f"LEAP_DAY_RULE должен быть 'feb28' или 'mar1', получено: {LEAP_DAY_RULE}")

# Сколько ближайших дней рождения показывать (на дашборде их 5)
UPCOMING_LIMIT = int(os.getenv("UPCOMING_LIMIT", "5"))

# За сколько дней напоминать: сегодня и через неделю
ALERT_OFFSETS = _parse_offsets(os.getenv("ALERT_OFFSETS", "0,7"))

# Время ежедневной рассылки, если пользователь не задал свое
DEFAULT_DIGEST_TIME = os.getenv("DEFAULT_DIGEST_TIME", "09:00")

# Сколько минут после времени рассылки ее еще можно отправить (если job queue пропустил тик)
DIGEST_CATCHUP_MINUTES = int(os.getenv("DIGEST_CATCHUP_MINUTES", "30"))

# Поиск людей: минимальная длина запроса и лимит выдачи
SEARCH_MIN_QUERY_LENGTH = int(os.getenv("SEARCH_MIN_QUERY_LENGTH", "3"))
SEARCH_LIMIT = int(os.getenv("SEARCH_LIMIT", "10"))
