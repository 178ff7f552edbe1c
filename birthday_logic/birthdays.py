"""Чистые функции для вычисления дней рождения (framework-agnostic).

Дата рождения хранится с годом, но для повторения важны только месяц и
день. День рождения 29 февраля в невисокосный год переносится по правилу
LEAP_DAY_RULE (по умолчанию на 28 февраля), одинаково для текущего,
следующего и любого отображаемого года.
"""

import calendar
import logging
from datetime import datetime, date, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .config import ALERT_OFFSETS, DEFAULT_TIMEZONE, LEAP_DAY_RULE
from .schemas import (
    BirthdayAlert,
    BirthdayBadge,
    BirthdayOccurrence,
    BirthdayTiming,
    CalendarDay,
    LeapDayRule,
    NextOccurrence,
    Person,
)

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]
RuleLike = Union[LeapDayRule, str, None]


def _as_date(value: DateLike) -> date:
    """Отбрасывает время суток: сравнение идет по календарным дням."""
    if isinstance(value, datetime):
        return value.date()
    return value


def _leap_rule(rule: RuleLike) -> LeapDayRule:
    return LeapDayRule(rule if rule is not None else LEAP_DAY_RULE)


def today_in_timezone(tz=None) -> date:
    """
    Возвращает сегодняшнюю дату в указанном часовом поясе.

    Args:
        tz: pytz timezone (по умолчанию DEFAULT_TIMEZONE)

    Returns:
        Календарная дата "сегодня"
    """
    return datetime.now(tz or DEFAULT_TIMEZONE).date()


def occurrence_in_year(birth_date: DateLike, year: int, leap_rule: RuleLike = None) -> date:
    """
    Переносит день рождения на указанный год.

    Args:
        birth_date: Дата рождения (год игнорируется)
        year: Год, в котором нужна дата
        leap_rule: Правило для 29 февраля (feb28 или mar1)

    Returns:
        Дата дня рождения в году year

    Examples:
        >>> occurrence_in_year(date(2000, 2, 29), 2027)
        datetime.date(2027, 2, 28)
        >>> occurrence_in_year(date(2000, 2, 29), 2027, "mar1")
        datetime.date(2027, 3, 1)
    """
    birth_date = _as_date(birth_date)
    if birth_date.month == 2 and birth_date.day == 29 and not calendar.isleap(year):
        if _leap_rule(leap_rule) == LeapDayRule.MAR_1:
            return date(year, 3, 1)
        return date(year, 2, 28)
    return date(year, birth_date.month, birth_date.day)


def next_occurrence(
    birth_date: DateLike,
    reference_date: DateLike,
    leap_rule: RuleLike = None,
) -> NextOccurrence:
    """
    Вычисляет ближайший день рождения начиная с reference_date.

    Если в этом году день рождения уже прошел, берется следующий год.
    День рождения в сам reference_date считается "сегодня" (days_until = 0).

    Args:
        birth_date: Дата рождения
        reference_date: Дата, от которой считаем (время суток игнорируется)
        leap_rule: Правило для 29 февраля

    Returns:
        NextOccurrence с датой и количеством дней до нее (0..366)

    Examples:
        >>> next_occurrence(date(1990, 1, 5), date(2025, 12, 20)).days_until
        16
    """
    reference = _as_date(reference_date)
    candidate = occurrence_in_year(birth_date, reference.year, leap_rule)
    if candidate < reference:
        candidate = occurrence_in_year(birth_date, reference.year + 1, leap_rule)

    return NextOccurrence(
        occurrence_date=candidate,
        days_until=(candidate - reference).days,
    )


def upcoming(
    people: Iterable[Person],
    reference_date: DateLike,
    limit: int,
    leap_rule: RuleLike = None,
) -> List[BirthdayOccurrence]:
    """
    Возвращает ближайшие дни рождения, отсортированные по близости.

    Люди без даты рождения пропускаются. При равном количестве дней порядок
    определяется ID человека.

    Args:
        people: Люди (обычно подтвержденные друзья)
        reference_date: Дата "сегодня"
        limit: Максимальное количество записей
        leap_rule: Правило для 29 февраля

    Returns:
        Не более limit записей BirthdayOccurrence
    """
    if limit <= 0:
        return []

    occurrences = []
    for person in people:
        if person.birthday is None:
            continue
        nearest = next_occurrence(person.birthday, reference_date, leap_rule)
        occurrences.append(BirthdayOccurrence(
            person=person,
            occurrence_date=nearest.occurrence_date,
            days_until=nearest.days_until,
        ))

    occurrences.sort(key=lambda occurrence: (occurrence.days_until, occurrence.person.id))
    return occurrences[:limit]


def on_day(people: Iterable[Person], month: int, day: int) -> List[Person]:
    """
    Находит людей, у которых день рождения в указанный день месяца.

    Сравниваются только месяц и день, год рождения не важен. Каждый
    человек попадает в результат один раз.

    Args:
        people: Люди
        month: Месяц (1-12)
        day: День месяца

    Returns:
        Список людей в исходном порядке

    Raises:
        ValueError: Если такого дня не бывает ни в одном году
    """
    if not 1 <= month <= 12:
        raise ValueError(f"Месяц должен быть от 1 до 12, получено: {month}")
    # 2000 - високосный, так что 29 февраля допустимо
    if not 1 <= day <= calendar.monthrange(2000, month)[1]:
        raise ValueError(f"В месяце {month} нет дня {day}")

    seen = set()
    matches = []
    for person in people:
        if person.birthday is None or person.id in seen:
            continue
        if person.birthday.month == month and person.birthday.day == day:
            seen.add(person.id)
            matches.append(person)
    return matches


def todays_birthdays(
    people: Iterable[Person],
    reference_date: DateLike,
    leap_rule: RuleLike = None,
) -> List[Person]:
    """
    Находит людей, у которых день рождения сегодня.

    В отличие от on_day() учитывает правило 29 февраля: в невисокосный год
    такие люди празднуют 28 февраля (или 1 марта).

    Args:
        people: Люди
        reference_date: Дата "сегодня"
        leap_rule: Правило для 29 февраля

    Returns:
        Список людей в исходном порядке
    """
    reference = _as_date(reference_date)
    seen = set()
    result = []
    for person in people:
        if person.birthday is None or person.id in seen:
            continue
        if occurrence_in_year(person.birthday, reference.year, leap_rule) == reference:
            seen.add(person.id)
            result.append(person)
    return result


def in_month(
    people: Iterable[Person],
    reference_date: DateLike,
    display_month: int,
    display_year: int,
    leap_rule: RuleLike = None,
) -> List[BirthdayOccurrence]:
    """
    Дни рождения в отображаемом месяце календаря.

    Это проекция на конкретный год, а не обратный отсчет: прошедшие в этом
    месяце дни рождения тоже попадают в результат. Для них days_until -
    сколько дней до следующего дня рождения после сегодняшнего, так что
    days_until == 0 только у даты, совпадающей с reference_date.

    Args:
        people: Люди
        reference_date: Дата "сегодня"
        display_month: Отображаемый месяц (1-12)
        display_year: Отображаемый год
        leap_rule: Правило для 29 февраля

    Returns:
        Список BirthdayOccurrence, отсортированный по дню месяца
    """
    if not 1 <= display_month <= 12:
        raise ValueError(f"Месяц должен быть от 1 до 12, получено: {display_month}")

    reference = _as_date(reference_date)
    result = []
    for person in people:
        if person.birthday is None:
            continue
        projected = occurrence_in_year(person.birthday, display_year, leap_rule)
        if projected.month != display_month:
            continue
        days_until = (projected - reference).days
        if days_until < 0:
            following = next_occurrence(person.birthday, reference + timedelta(days=1), leap_rule)
            days_until = following.days_until + 1
        result.append(BirthdayOccurrence(
            person=person,
            occurrence_date=projected,
            days_until=days_until,
        ))

    result.sort(key=lambda occurrence: (occurrence.occurrence_date.day, occurrence.person.id))
    return result


def birthday_badge(days_until: int) -> BirthdayBadge:
    """Метка для списка ближайших дней рождения."""
    if days_until < 0:
        raise ValueError(f"days_until не может быть отрицательным: {days_until}")
    if days_until == 0:
        return BirthdayBadge.TODAY
    if days_until == 1:
        return BirthdayBadge.TOMORROW
    if days_until <= 7:
        return BirthdayBadge.THIS_WEEK
    return BirthdayBadge.LATER


def birthday_timing(occurrence_date: DateLike, reference_date: DateLike) -> BirthdayTiming:
    """Прошел, сегодня или еще будет (для списка в календаре)."""
    occurrence = _as_date(occurrence_date)
    reference = _as_date(reference_date)
    if occurrence == reference:
        return BirthdayTiming.TODAY
    if occurrence < reference:
        return BirthdayTiming.PAST
    return BirthdayTiming.UPCOMING


def shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    """
    Сдвигает месяц календаря вперед или назад.

    Examples:
        >>> shift_month(2025, 12, 1)
        (2026, 1)
        >>> shift_month(2025, 1, -1)
        (2024, 12)
    """
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def calendar_grid(
    people: Sequence[Person],
    display_year: int,
    display_month: int,
    reference_date: DateLike,
    leap_rule: RuleLike = None,
) -> List[List[CalendarDay]]:
    """
    Строит сетку месяца по неделям (с воскресенья по субботу).

    Ячейки соседних месяцев тоже заполняются днями рождения, спроецированными
    на год самой ячейки.

    Args:
        people: Люди
        display_year: Отображаемый год
        display_month: Отображаемый месяц (1-12)
        reference_date: Дата "сегодня" (для отметки is_today)
        leap_rule: Правило для 29 февраля

    Returns:
        Список недель, каждая из 7 CalendarDay
    """
    if not 1 <= display_month <= 12:
        raise ValueError(f"Месяц должен быть от 1 до 12, получено: {display_month}")

    reference = _as_date(reference_date)
    first_day = date(display_year, display_month, 1)
    last_day = date(display_year, display_month, calendar.monthrange(display_year, display_month)[1])

    # weekday(): понедельник = 0, воскресенье = 6
    grid_start = first_day - timedelta(days=(first_day.weekday() + 1) % 7)
    grid_end = last_day + timedelta(days=(5 - last_day.weekday()) % 7)

    by_date = {}
    for year in range(grid_start.year, grid_end.year + 1):
        for person in people:
            if person.birthday is None:
                continue
            projected = occurrence_in_year(person.birthday, year, leap_rule)
            by_date.setdefault(projected, []).append(person)

    weeks = []
    current = grid_start
    while current <= grid_end:
        week = []
        for _ in range(7):
            week.append(CalendarDay(
                day=current,
                in_display_month=current.month == display_month and current.year == display_year,
                is_today=current == reference,
                birthdays=by_date.get(current, []),
            ))
            current += timedelta(days=1)
        weeks.append(week)
    return weeks


def birthday_alerts(
    people: Iterable[Person],
    reference_date: DateLike,
    offsets: Optional[Iterable[int]] = None,
    leap_rule: RuleLike = None,
) -> List[BirthdayAlert]:
    """
    Собирает напоминания: у кого день рождения ровно через N дней.

    Args:
        people: Люди (обычно подтвержденные друзья)
        reference_date: Дата "сегодня"
        offsets: Смещения в днях (по умолчанию ALERT_OFFSETS: сегодня и через неделю)
        leap_rule: Правило для 29 февраля

    Returns:
        Непустые напоминания в порядке возрастания смещения
    """
    wanted = sorted(set(offsets if offsets is not None else ALERT_OFFSETS))
    people = [person for person in people if person.birthday is not None]

    alerts = []
    for offset in wanted:
        matched = [
            person for person in people
            if next_occurrence(person.birthday, reference_date, leap_rule).days_until == offset
        ]
        if matched:
            alerts.append(BirthdayAlert(offset_days=offset, people=matched))
    return alerts
