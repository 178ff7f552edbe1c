"""Telegram бот для напоминаний о днях рождения друзей."""

import os
import html
import logging
from datetime import date, datetime
from typing import Optional, List
from dotenv import load_dotenv
from pydantic import ValidationError
from telegram import Update
from telegram.constants import ParseMode
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
)
from birthday_logic.birthdays import (
    birthday_badge,
    birthday_timing,
    calendar_grid,
    in_month,
    shift_month,
    today_in_timezone,
    todays_birthdays,
)
from birthday_logic.config import DEFAULT_TIMEZONE, DIGEST_CATCHUP_MINUTES
from birthday_logic.database import (
    add_wishlist_item,
    create_event,
    delete_wishlist_item,
    find_new_people,
    get_connections,
    get_dashboard_stats,
    get_events_by_creator,
    get_friends,
    get_greetings_for_day,
    get_invitations,
    get_profile_by_telegram_id,
    get_profiles_with_telegram,
    get_wishlist,
    respond_to_friend_request,
    respond_to_invitation,
    send_birthday_greeting,
    send_friend_request,
    update_wishlist_item,
)
from birthday_logic.notification_service import get_notification_service
from birthday_logic.schemas import (
    BirthdayBadge,
    BirthdayTiming,
    Event,
    InvitationStatus,
    Person,
    PriceTier,
    WishlistItem,
)
from birthday_logic.supabase_client import get_shared_service_client

load_dotenv()

logger = logging.getLogger(__name__)

MONTHS_GENITIVE = [
    "января", "февраля", "марта", "апреля", "мая", "июня",
    "июля", "августа", "сентября", "октября", "ноября", "декабря",
]

MONTHS_NOMINATIVE = [
    "Январь", "Февраль", "Март", "Апрель", "Май", "Июнь",
    "Июль", "Август", "Сентябрь", "Октябрь", "Ноябрь", "Декабрь",
]

BADGE_TEXT = {
    BirthdayBadge.TODAY: "Сегодня! 🎉",
    BirthdayBadge.TOMORROW: "Завтра",
    BirthdayBadge.THIS_WEEK: "На этой неделе",
}

TIMING_TEXT = {
    BirthdayTiming.TODAY: "Сегодня! 🎉",
    BirthdayTiming.PAST: "Прошел",
    BirthdayTiming.UPCOMING: "Скоро",
}

PRICE_TIER_TEXT = {
    PriceTier.UNDER_25: "до $25",
    PriceTier.FROM_25_TO_50: "$25-50",
    PriceTier.OVER_50: "от $50",
}

LINK_INSTRUCTIONS = """Твой Telegram еще не привязан к профилю.

Передай администратору свой Telegram ID: {telegram_id}
Он выполнит:
python3 link_profile.py --profile-id <ID профиля> --telegram-id {telegram_id}"""


def _format_day_month(value: date) -> str:
    """Форматирует дату как "10 марта"."""
    return f"{value.day} {MONTHS_GENITIVE[value.month - 1]}"


def _format_person(person: Person) -> str:
    if person.birthday:
        return f"{person.display_name} 🎂 {_format_day_month(person.birthday)}"
    return person.display_name


def _parse_index(args: List[str], items: list) -> int:
    """
    Разбирает номер из аргументов команды (нумерация с 1).

    Raises:
        ValueError: Если номер не указан или вне списка
    """
    if not args or not args[0].isdigit():
        raise ValueError("Укажи номер из списка, например: 1")
    index = int(args[0]) - 1
    if not 0 <= index < len(items):
        raise ValueError(f"Нет номера {args[0]} в списке")
    return index


def _parse_month_arg(args: List[str], today: date) -> tuple:
    """
    Разбирает месяц календаря в формате MM.YYYY (по умолчанию текущий).

    Raises:
        ValueError: Если формат неверный
    """
    if not args:
        return today.year, today.month
    try:
        parsed = datetime.strptime(args[0], "%m.%Y")
    except ValueError:
        raise ValueError("Формат месяца: MM.YYYY, например 03.2026")
    return parsed.year, parsed.month


def _validation_reasons(error: ValidationError) -> str:
    """Причины ошибок pydantic без технических подробностей."""
    reasons = []
    for details in error.errors():
        cause = details.get("ctx", {}).get("error")
        reasons.append(str(cause) if cause is not None else details["msg"])
    return "; ".join(reasons)


async def _report_error(update: Update, error: Exception) -> None:
    """Сообщает пользователю об ошибке: валидация - с причиной, остальное - кратко."""
    if isinstance(error, ValidationError):
        logger.warning(f"Ошибка валидации модели: {error}")
        await update.message.reply_text(f"Не получилось: {_validation_reasons(error)}")
        return
    if isinstance(error, ValueError):
        logger.warning(f"Ошибка валидации: {error}")
        await update.message.reply_text(f"Не получилось: {error}")
        return
    logger.error(f"Ошибка при обработке команды: {error}", exc_info=True)
    await update.message.reply_text(
        f"Извини, произошла ошибка. Попробуй еще раз позже. (Ошибка: {type(error).__name__})"
    )


async def _get_viewer(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Optional[Person]:
    """
    Находит профиль пользователя по Telegram ID.

    Если аккаунт не привязан, отправляет инструкцию и возвращает None.
    """
    client = context.bot_data.get("supabase")
    if client is None:
        await update.message.reply_text("❌ Ошибка: нет подключения к базе")
        return None

    telegram_id = update.effective_user.id
    viewer = get_profile_by_telegram_id(client, telegram_id)
    if viewer is None:
        await update.message.reply_text(LINK_INSTRUCTIONS.format(telegram_id=telegram_id))
    return viewer


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обработчик команды /start."""
    if not update.message:
        return

    try:
        viewer = await _get_viewer(update, context)
        if viewer is None:
            return

        stats = get_dashboard_stats(context.bot_data["supabase"], viewer.id, today_in_timezone())
        first_name = viewer.display_name.split(" ")[0]

        welcome_message = f"""Привет, {first_name}! 👋

Друзей: {stats.friends_count}
Позиций в вишлисте: {stats.wishlist_count}

Команды:
/upcoming - ближайшие дни рождения
/today - у кого день рождения сегодня
/calendar [MM.YYYY] - дни рождения за месяц
/friends - друзья
/requests - запросы дружбы
/find <имя или email> - найти людей
/wishlist - мой вишлист
/wish <название> [under_25|25_to_50|over_50] - добавить в вишлист
/events - мои события и приглашения
/newevent <ДД.ММ.ГГГГ> <название> [| номера друзей] - создать событие"""

        await update.message.reply_text(welcome_message)
    except Exception as e:
        await _report_error(update, e)


async def friends_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обработчик команды /friends."""
    if not update.message:
        return

    try:
        viewer = await _get_viewer(update, context)
        if viewer is None:
            return

        friends = get_friends(context.bot_data["supabase"], viewer.id)
        if not friends:
            await update.message.reply_text("Друзей пока нет. Найди знакомых через /find")
            return

        context.user_data["friends"] = [friend.id for friend in friends]

        lines = [f"Твои друзья ({len(friends)}):"]
        for number, friend in enumerate(friends, start=1):
            lines.append(f"{number}. {_format_person(friend)}")
        await update.message.reply_text("\n".join(lines))
    except Exception as e:
        await _report_error(update, e)


async def requests_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обработчик команды /requests: входящие и отправленные запросы."""
    if not update.message:
        return

    try:
        viewer = await _get_viewer(update, context)
        if viewer is None:
            return

        connections = get_connections(context.bot_data["supabase"], viewer.id)
        context.user_data["incoming_requests"] = [
            connection.edge_id for connection in connections.incoming_pending
        ]

        lines = []
        if connections.incoming_pending:
            lines.append("Входящие запросы:")
            for number, connection in enumerate(connections.incoming_pending, start=1):
                lines.append(f"{number}. {connection.counterpart.display_name}")
            lines.append("\n/accept <номер> - принять, /decline <номер> - отклонить")
        else:
            lines.append("Входящих запросов нет")

        if connections.outgoing_pending:
            lines.append("\nОтправленные запросы:")
            lines.extend(
                f"• {connection.counterpart.display_name} (ожидает)"
                for connection in connections.outgoing_pending
            )

        await update.message.reply_text("\n".join(lines))
    except Exception as e:
        await _report_error(update, e)


async def _respond_to_request(update: Update, context: ContextTypes.DEFAULT_TYPE, accept: bool) -> None:
    try:
        viewer = await _get_viewer(update, context)
        if viewer is None:
            return

        incoming = context.user_data.get("incoming_requests") or []
        if not incoming:
            await update.message.reply_text("Сначала открой список запросов: /requests")
            return

        edge_id = incoming[_parse_index(context.args, incoming)]
        edge = respond_to_friend_request(context.bot_data["supabase"], viewer.id, edge_id, accept)
        # Список устарел после ответа
        context.user_data.pop("incoming_requests", None)

        if accept:
            await update.message.reply_text("Запрос дружбы принят! 🤝")
        else:
            await update.message.reply_text("Запрос дружбы отклонен")
        logger.info(f"Пользователь {viewer.id} ответил на запрос {edge.id}: {edge.status.value}")
    except Exception as e:
        await _report_error(update, e)


async def accept_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обработчик команды /accept <номер>."""
    if not update.message:
        return
    await _respond_to_request(update, context, accept=True)


async def decline_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обработчик команды /decline <номер>."""
    if not update.message:
        return
    await _respond_to_request(update, context, accept=False)


async def find_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обработчик команды /find <запрос>: поиск людей, которых можно добавить."""
    if not update.message:
        return

    try:
        viewer = await _get_viewer(update, context)
        if viewer is None:
            return

        query = " ".join(context.args or [])
        people = find_new_people(context.bot_data["supabase"], viewer.id, query)
        context.user_data["search_results"] = [person.id for person in people]

        if not people:
            await update.message.reply_text("Никого не нашлось. Попробуй другой запрос (минимум 3 символа)")
            return

        lines = ["Кого можно добавить:"]
        for number, person in enumerate(people, start=1):
            contact = f" ({person.email})" if person.email else ""
            lines.append(f"{number}. {person.display_name}{contact}")
        lines.append("\n/add <номер> - отправить запрос дружбы")
        await update.message.reply_text("\n".join(lines))
    except Exception as e:
        await _report_error(update, e)


async def add_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обработчик команды /add <номер> из результатов /find."""
    if not update.message:
        return

    try:
        viewer = await _get_viewer(update, context)
        if viewer is None:
            return

        results = context.user_data.get("search_results") or []
        if not results:
            await update.message.reply_text("Сначала найди людей: /find <имя или email>")
            return

        addressee_id = results[_parse_index(context.args, results)]
        send_friend_request(context.bot_data["supabase"], viewer.id, addressee_id)
        context.user_data.pop("search_results", None)
        await update.message.reply_text("Запрос дружбы отправлен! ✉️")
    except Exception as e:
        await _report_error(update, e)


async def upcoming_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обработчик команды /upcoming: ближайшие дни рождения друзей."""
    if not update.message:
        return

    try:
        viewer = await _get_viewer(update, context)
        if viewer is None:
            return

        stats = get_dashboard_stats(context.bot_data["supabase"], viewer.id, today_in_timezone())
        if not stats.upcoming:
            await update.message.reply_text("Нет ближайших дней рождения. Добавь друзей через /find")
            return

        lines = ["Ближайшие дни рождения:"]
        for occurrence in stats.upcoming:
            badge = BADGE_TEXT.get(
                birthday_badge(occurrence.days_until),
                f"через {occurrence.days_until} дн.",
            )
            lines.append(
                f"• {occurrence.person.display_name} - "
                f"{_format_day_month(occurrence.occurrence_date)} ({badge})"
            )
        await update.message.reply_text("\n".join(lines))
    except Exception as e:
        await _report_error(update, e)


async def today_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обработчик команды /today: сегодняшние именинники и полученные поздравления."""
    if not update.message:
        return

    try:
        viewer = await _get_viewer(update, context)
        if viewer is None:
            return

        client = context.bot_data["supabase"]
        today = today_in_timezone()
        celebrating = todays_birthdays(get_friends(client, viewer.id), today)
        context.user_data["todays_birthdays"] = [person.model_dump(mode="json") for person in celebrating]

        lines = []
        if celebrating:
            lines.append("🎉 Сегодня день рождения:")
            for number, person in enumerate(celebrating, start=1):
                lines.append(f"{number}. {person.display_name} 🎂")
            lines.append("\n/greet <номер> <текст> - поздравить")
        else:
            lines.append("Сегодня у друзей нет дней рождения")

        greetings = get_greetings_for_day(client, viewer, today)
        if greetings:
            lines.append("\nПоздравления для тебя! 🎉")
            for greeting in greetings:
                author = greeting.from_user.display_name if greeting.from_user else "Друг"
                lines.append(f"• {author}: {greeting.message}")

        await update.message.reply_text("\n".join(lines))
    except Exception as e:
        await _report_error(update, e)


async def greet_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обработчик команды /greet <номер> <текст>."""
    if not update.message:
        return

    try:
        viewer = await _get_viewer(update, context)
        if viewer is None:
            return

        celebrating = context.user_data.get("todays_birthdays") or []
        if not celebrating:
            await update.message.reply_text("Сначала открой список именинников: /today")
            return

        args = context.args or []
        birthday_person = Person.model_validate(celebrating[_parse_index(args, celebrating)])
        message = " ".join(args[1:])

        send_birthday_greeting(
            context.bot_data["supabase"],
            viewer.id,
            birthday_person,
            message,
            today_in_timezone(),
        )
        await update.message.reply_text(f"Поздравление для {birthday_person.display_name} отправлено! 🎂")
    except Exception as e:
        await _report_error(update, e)


def _render_month_grid(weeks) -> str:
    """
    Рисует сетку месяца моноширинным текстом.

    Дни соседних месяцев пустые, "*" - день рождения, "!" - сегодня.
    """
    rows = ["Вс Пн Вт Ср Чт Пт Сб"]
    for week in weeks:
        cells = []
        for cell in week:
            if not cell.in_display_month:
                cells.append("   ")
                continue
            marker = " "
            if cell.birthdays:
                marker = "*"
            elif cell.is_today:
                marker = "!"
            cells.append(f"{cell.day.day:>2}{marker}")
        rows.append("".join(cells).rstrip())
    return "\n".join(rows)


async def calendar_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обработчик команды /calendar [MM.YYYY]: сетка месяца и дни рождения друзей."""
    if not update.message:
        return

    try:
        viewer = await _get_viewer(update, context)
        if viewer is None:
            return

        today = today_in_timezone()
        year, month = _parse_month_arg(context.args or [], today)
        friends = get_friends(context.bot_data["supabase"], viewer.id)
        occurrences = in_month(friends, today, month, year)
        weeks = calendar_grid(friends, year, month, today)

        lines = [
            f"<b>{MONTHS_NOMINATIVE[month - 1]} {year}</b>",
            f"<pre>{_render_month_grid(weeks)}</pre>",
        ]
        if occurrences:
            for occurrence in occurrences:
                timing = TIMING_TEXT[birthday_timing(occurrence.occurrence_date, today)]
                lines.append(
                    f"• {_format_day_month(occurrence.occurrence_date)} - "
                    f"{html.escape(occurrence.person.display_name)} ({timing})"
                )
        else:
            lines.append("Дней рождения нет")

        prev_year, prev_month = shift_month(year, month, -1)
        next_year, next_month = shift_month(year, month, 1)
        lines.append(
            f"\n← /calendar {prev_month:02d}.{prev_year}   /calendar {next_month:02d}.{next_year} →"
        )
        await update.message.reply_text("\n".join(lines), parse_mode=ParseMode.HTML)
    except Exception as e:
        await _report_error(update, e)


# ==================== Вишлист ====================

def _parse_price_tier(value: str) -> PriceTier:
    try:
        return PriceTier(value)
    except ValueError:
        raise ValueError("Категория цены: under_25, 25_to_50 или over_50")


async def wishlist_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обработчик команды /wishlist."""
    if not update.message:
        return

    try:
        viewer = await _get_viewer(update, context)
        if viewer is None:
            return

        items = get_wishlist(context.bot_data["supabase"], viewer.id)
        context.user_data["wishlist"] = [item.model_dump(mode="json") for item in items]
        if not items:
            await update.message.reply_text("Вишлист пуст. Добавь желание: /wish <название>")
            return

        lines = ["Твой вишлист:"]
        for number, item in enumerate(items, start=1):
            line = f"{number}. {item.title} ({PRICE_TIER_TEXT[item.price_tier]})"
            if item.affiliate_link:
                line += f"\n  {item.affiliate_link}"
            lines.append(line)
        lines.append("\n/unwish <номер> - удалить, /wishprice <номер> <категория> - сменить цену")
        await update.message.reply_text("\n".join(lines))
    except Exception as e:
        await _report_error(update, e)


async def wish_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обработчик команды /wish <название> [категория цены]."""
    if not update.message:
        return

    try:
        viewer = await _get_viewer(update, context)
        if viewer is None:
            return

        args = list(context.args or [])
        price_tier = PriceTier.UNDER_25
        if args and args[-1] in {tier.value for tier in PriceTier}:
            price_tier = PriceTier(args.pop())
        if not args:
            raise ValueError("Укажи название: /wish <название> [категория цены]")

        item = WishlistItem(user_id=viewer.id, title=" ".join(args), price_tier=price_tier)
        saved = add_wishlist_item(context.bot_data["supabase"], item)
        context.user_data.pop("wishlist", None)
        await update.message.reply_text(
            f"Добавлено в вишлист: {saved.title} ({PRICE_TIER_TEXT[saved.price_tier]}) 🎁"
        )
    except Exception as e:
        await _report_error(update, e)


def _wishlist_item_from_args(context: ContextTypes.DEFAULT_TYPE) -> WishlistItem:
    """Позиция вишлиста по номеру из последнего /wishlist."""
    items = context.user_data.get("wishlist") or []
    if not items:
        raise ValueError("Сначала открой вишлист: /wishlist")
    return WishlistItem.model_validate(items[_parse_index(context.args or [], items)])


async def unwish_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обработчик команды /unwish <номер>."""
    if not update.message:
        return

    try:
        viewer = await _get_viewer(update, context)
        if viewer is None:
            return

        item = _wishlist_item_from_args(context)
        if delete_wishlist_item(context.bot_data["supabase"], viewer.id, item.id):
            await update.message.reply_text(f"Удалено из вишлиста: {item.title}")
        else:
            await update.message.reply_text("Позиция уже удалена")
        context.user_data.pop("wishlist", None)
    except Exception as e:
        await _report_error(update, e)


async def wishprice_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обработчик команды /wishprice <номер> <категория>."""
    if not update.message:
        return

    try:
        viewer = await _get_viewer(update, context)
        if viewer is None:
            return

        args = context.args or []
        if len(args) < 2:
            raise ValueError("Формат: /wishprice <номер> <under_25|25_to_50|over_50>")

        item = _wishlist_item_from_args(context)
        item.price_tier = _parse_price_tier(args[1])
        update_wishlist_item(context.bot_data["supabase"], item)
        context.user_data.pop("wishlist", None)
        await update.message.reply_text(f"{item.title}: теперь {PRICE_TIER_TEXT[item.price_tier]}")
    except Exception as e:
        await _report_error(update, e)


# ==================== События ====================

async def events_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обработчик команды /events: мои события и приглашения."""
    if not update.message:
        return

    try:
        viewer = await _get_viewer(update, context)
        if viewer is None:
            return

        client = context.bot_data["supabase"]
        events = get_events_by_creator(client, viewer.id)
        pending = [
            invitation for invitation in get_invitations(client, viewer.id)
            if invitation.status == InvitationStatus.PENDING
        ]
        context.user_data["invitations"] = [invitation.id for invitation in pending]

        lines = []
        if events:
            lines.append("Мои события:")
            lines.extend(f"• {_format_day_month(event.date)} - {event.title}" for event in events)
        else:
            lines.append("Своих событий нет. Создай: /newevent <ДД.ММ.ГГГГ> <название>")

        if pending:
            lines.append("\nПриглашения:")
            for number, invitation in enumerate(pending, start=1):
                title = invitation.event.title if invitation.event else invitation.event_id
                when = f" ({_format_day_month(invitation.event.date)})" if invitation.event else ""
                lines.append(f"{number}. {title}{when}")
            lines.append("\n/rsvp <номер> yes|no - ответить")

        await update.message.reply_text("\n".join(lines))
    except Exception as e:
        await _report_error(update, e)


async def rsvp_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обработчик команды /rsvp <номер> yes|no."""
    if not update.message:
        return

    try:
        viewer = await _get_viewer(update, context)
        if viewer is None:
            return

        invitations = context.user_data.get("invitations") or []
        if not invitations:
            await update.message.reply_text("Сначала открой приглашения: /events")
            return

        args = context.args or []
        invitation_id = invitations[_parse_index(args, invitations)]
        if len(args) < 2 or args[1].lower() not in ("yes", "no"):
            raise ValueError("Ответ: yes или no, например /rsvp 1 yes")

        accept = args[1].lower() == "yes"
        respond_to_invitation(context.bot_data["supabase"], viewer.id, invitation_id, accept)
        context.user_data.pop("invitations", None)
        await update.message.reply_text("Приглашение принято! 🎉" if accept else "Приглашение отклонено")
    except Exception as e:
        await _report_error(update, e)


def _parse_new_event(args: List[str], friend_ids: List[str]) -> tuple:
    """
    Разбирает "/newevent ДД.ММ.ГГГГ Название | 1 2".

    Returns:
        (дата, название, ID приглашенных друзей)

    Raises:
        ValueError: Если формат неверный или номер друга вне списка
    """
    if len(args) < 2:
        raise ValueError("Формат: /newevent <ДД.ММ.ГГГГ> <название> [| номера друзей из /friends]")
    try:
        event_date = datetime.strptime(args[0], "%d.%m.%Y").date()
    except ValueError:
        raise ValueError("Дата события в формате ДД.ММ.ГГГГ, например 20.07.2026")

    title_part, _, invitees_part = " ".join(args[1:]).partition("|")
    if not title_part.strip():
        raise ValueError("Укажи название события")
    invitee_ids = []
    for number in invitees_part.split():
        invitee_ids.append(friend_ids[_parse_index([number], friend_ids)])
    return event_date, title_part.strip(), invitee_ids


async def newevent_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Обработчик команды /newevent: событие с приглашением друзей."""
    if not update.message:
        return

    try:
        viewer = await _get_viewer(update, context)
        if viewer is None:
            return

        client = context.bot_data["supabase"]
        event_date, title, invitee_ids = _parse_new_event(
            context.args or [], context.user_data.get("friends") or []
        )
        event = Event(creator_id=viewer.id, title=title, date=event_date)
        confirmed = get_connections(client, viewer.id).confirmed
        saved = create_event(client, event, invitee_ids, confirmed)

        await update.message.reply_text(
            f"Событие создано: {saved.title}, {_format_day_month(saved.date)}. "
            f"Приглашено друзей: {len(set(invitee_ids))}"
        )
    except Exception as e:
        await _report_error(update, e)


async def error_handler(
    update: Optional[Update], context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Обработчик ошибок."""
    logger.error(f"Ошибка: {context.error}", exc_info=True)


# ==================== Ежедневная рассылка ====================

def _minutes_since_digest(digest_time: str, now: datetime) -> int:
    """Сколько минут прошло с времени рассылки HH:MM (отрицательно, если еще не наступило)."""
    hour, minute = digest_time.split(":")
    return (now.hour * 60 + now.minute) - (int(hour) * 60 + int(minute))


def _is_digest_due(profile: Person, now: datetime, sent_on: dict) -> bool:
    """
    Пора ли отправлять рассылку профилю.

    Рассылка уходит один раз в день в течение DIGEST_CATCHUP_MINUTES после
    digest_time, так что пропущенный тик job queue не теряет напоминания.
    """
    if sent_on.get(profile.id) == now.date():
        return False
    return 0 <= _minutes_since_digest(profile.digest_time, now) < DIGEST_CATCHUP_MINUTES


async def send_daily_digest(context: ContextTypes.DEFAULT_TYPE) -> int:
    """
    Рассылает напоминания тем, у кого наступило время рассылки.

    Запускается job queue раз в минуту. Дата последней рассылки по каждому
    профилю хранится в bot_data["digest_sent_on"].

    Returns:
        Количество отправленных сообщений
    """
    client = context.bot_data.get("supabase")
    if client is None:
        logger.warning("Нет клиента Supabase, рассылка пропущена")
        return 0

    now = datetime.now(DEFAULT_TIMEZONE)
    sent_on = context.bot_data.setdefault("digest_sent_on", {})
    service = get_notification_service()

    try:
        recipients = [
            profile for profile in get_profiles_with_telegram(client)
            if _is_digest_due(profile, now, sent_on)
        ]
    except Exception as e:
        logger.error(f"Ошибка при получении получателей рассылки: {e}", exc_info=True)
        return 0

    sent = 0
    for profile in recipients:
        sent += await service.notify_viewer(client, profile, now.date())
        sent_on[profile.id] = now.date()
    if recipients:
        logger.info(f"Рассылка {now:%H:%M}: получателей {len(recipients)}, сообщений {sent}")
    return sent


def run_bot() -> None:
    """Запускает Telegram бота."""
    # Получаем токен бота из переменных окружения
    bot_token = os.getenv("TELEGRAM_BOT_TOKEN")
    if not bot_token:
        raise ValueError("TELEGRAM_BOT_TOKEN must be set in .env file")

    # Создаем приложение
    application = Application.builder().token(bot_token).build()

    # Клиент Supabase доступен handlers через bot_data
    application.bot_data["supabase"] = get_shared_service_client()

    # Устанавливаем bot instance для напоминаний
    get_notification_service().set_bot(application.bot)

    # Регистрируем обработчики
    application.add_handler(CommandHandler("start", start_command))
    application.add_handler(CommandHandler("friends", friends_command))
    application.add_handler(CommandHandler("requests", requests_command))
    application.add_handler(CommandHandler("accept", accept_command))
    application.add_handler(CommandHandler("decline", decline_command))
    application.add_handler(CommandHandler("find", find_command))
    application.add_handler(CommandHandler("add", add_command))
    application.add_handler(CommandHandler("upcoming", upcoming_command))
    application.add_handler(CommandHandler("today", today_command))
    application.add_handler(CommandHandler("greet", greet_command))
    application.add_handler(CommandHandler("calendar", calendar_command))
    application.add_handler(CommandHandler("wishlist", wishlist_command))
    application.add_handler(CommandHandler("wish", wish_command))
    application.add_handler(CommandHandler("unwish", unwish_command))
    application.add_handler(CommandHandler("wishprice", wishprice_command))
    application.add_handler(CommandHandler("events", events_command))
    application.add_handler(CommandHandler("rsvp", rsvp_command))
    application.add_handler(CommandHandler("newevent", newevent_command))
    application.add_error_handler(error_handler)

    # Ежедневная рассылка: проверяем каждую минуту, кому пора (с догоняющим окном)
    application.job_queue.run_repeating(send_daily_digest, interval=60, first=0)

    logger.info("Бот запущен. Ожидание сообщений...")
    print("✅ Бот запущен и готов к работе!")
    try:
        application.run_polling(
            allowed_updates=Update.ALL_TYPES,
            drop_pending_updates=True,  # Игнорируем старые обновления при запуске
        )
    except KeyboardInterrupt:
        logger.info("Получен сигнал остановки")
        print("\n🛑 Остановка бота...")
    except Exception as e:
        logger.error(f"Ошибка при работе бота: {e}", exc_info=True)
        raise


def main() -> None:
    """Точка входа: настраивает логирование и запускает бота."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
    )
    run_bot()


if __name__ == "__main__":
    main()
