"""Работа с Supabase: профили, дружба, вишлисты, события и поздравления.

Функции только читают и пишут строки и превращают их в pydantic-модели.
Вся логика разбора связей и дат живет в friendships.py и birthdays.py.
После любой записи вызывающий код заново запрашивает данные.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from postgrest.exceptions import APIError
from supabase import Client

from .birthdays import today_in_timezone, todays_birthdays, upcoming
from .config import DEFAULT_TIMEZONE, SEARCH_LIMIT, SEARCH_MIN_QUERY_LENGTH, UPCOMING_LIMIT
from .friendships import (
    FriendshipEdgeError,
    FriendshipTransitionError,
    InvitationError,
    ensure_can_respond,
    ensure_invitees_are_friends,
    exclude_connected,
    resolve,
)
from .schemas import (
    BirthdayGreeting,
    DashboardStats,
    Event,
    EventInvitation,
    FriendshipEdge,
    FriendshipStatus,
    InvitationStatus,
    Person,
    ResolvedConnection,
    ResolvedConnections,
    WishlistItem,
)

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = "id, full_name, email, avatar_url, birthday, telegram_id, digest_time"

FRIENDSHIP_SELECT = (
    "id, requester_id, addressee_id, status, created_at, updated_at, "
    f"requester:profiles!friendships_requester_id_fkey({PROFILE_COLUMNS}), "
    f"addressee:profiles!friendships_addressee_id_fkey({PROFILE_COLUMNS})"
)

WISHLIST_COLUMNS = (
    "id, user_id, title, description, price_tier, affiliate_link, image_url, created_at, updated_at"
)

EVENT_COLUMNS = "id, creator_id, title, description, date, location, is_private, created_at, updated_at"

# Символы, которые ломают фильтр or=(...) в PostgREST
_FILTER_UNSAFE_CHARS = str.maketrans("", "", ",()%*\\")


def _execute(query, action: str):
    """
    Выполняет запрос к Supabase, логируя ошибки бэкенда.

    Args:
        query: Построенный запрос postgrest
        action: Описание действия для лога

    Returns:
        Ответ postgrest (data, count)

    Raises:
        APIError: Ошибка бэкенда пробрасывается дальше
    """
    try:
        return query.execute()
    except APIError as e:
        logger.error(f"Ошибка Supabase ({action}): {e}")
        raise


# ==================== Преобразование строк ====================

def person_from_row(row: Dict[str, Any]) -> Person:
    """
    Преобразует строку таблицы profiles в Person.

    Args:
        row: Словарь с колонками профиля

    Returns:
        Person
    """
    data = dict(row)
    if data.get("digest_time") is None:
        data.pop("digest_time", None)
    return Person.model_validate(data)


def edge_from_row(row: Dict[str, Any]) -> FriendshipEdge:
    """
    Преобразует строку таблицы friendships (с вложенными профилями) в FriendshipEdge.

    Args:
        row: Словарь с колонками дружбы и, опционально, requester/addressee

    Returns:
        FriendshipEdge

    Raises:
        FriendshipEdgeError: Если в строке нет одной из сторон
    """
    if not row.get("requester_id") or not row.get("addressee_id"):
        raise FriendshipEdgeError(row.get("id"), "не указан requester_id или addressee_id")

    data = dict(row)
    for side in ("requester", "addressee"):
        embedded = data.get(side)
        data[side] = person_from_row(embedded) if embedded else None
    return FriendshipEdge.model_validate(data)


def _sanitize_search_query(query: str) -> str:
    return query.strip().translate(_FILTER_UNSAFE_CHARS)


# ==================== Работа с профилями ====================

def get_profile(client: Client, profile_id: str) -> Optional[Person]:
    """
    Получает профиль по ID.

    Args:
        client: Клиент Supabase
        profile_id: ID профиля

    Returns:
        Person или None, если профиль не найден
    """
    if not profile_id:
        raise ValueError("profile_id не может быть пустым")

    response = _execute(
        client.table("profiles").select(PROFILE_COLUMNS).eq("id", profile_id).limit(1),
        "получение профиля",
    )
    if response.data:
        return person_from_row(response.data[0])
    return None


def get_profile_by_telegram_id(client: Client, telegram_id: int) -> Optional[Person]:
    """
    Получает профиль, привязанный к Telegram аккаунту.

    Args:
        client: Клиент Supabase
        telegram_id: Telegram ID пользователя

    Returns:
        Person или None, если аккаунт не привязан

    Raises:
        ValueError: Если telegram_id невалиден
    """
    if not telegram_id or telegram_id <= 0:
        raise ValueError("telegram_id должен быть положительным числом")

    response = _execute(
        client.table("profiles").select(PROFILE_COLUMNS).eq("telegram_id", telegram_id).limit(1),
        "поиск профиля по telegram_id",
    )
    if response.data:
        return person_from_row(response.data[0])
    return None


def get_profiles_with_telegram(client: Client) -> List[Person]:
    """Все профили с привязанным Telegram (получатели ежедневной рассылки)."""
    response = _execute(
        client.table("profiles").select(PROFILE_COLUMNS).not_.is_("telegram_id", "null"),
        "получение профилей с telegram_id",
    )
    return [person_from_row(row) for row in response.data or []]


def link_telegram_account(client: Client, profile_id: str, telegram_id: int) -> Optional[Person]:
    """
    Привязывает Telegram аккаунт к профилю.

    Args:
        client: Клиент Supabase (service_role)
        profile_id: ID профиля
        telegram_id: Telegram ID пользователя

    Returns:
        Обновленный Person или None, если профиль не найден

    Raises:
        ValueError: Если данные невалидны
    """
    if not profile_id:
        raise ValueError("profile_id не может быть пустым")
    if not telegram_id or telegram_id <= 0:
        raise ValueError("telegram_id должен быть положительным числом")

    response = _execute(
        client.table("profiles").update({"telegram_id": telegram_id}).eq("id", profile_id),
        "привязка telegram_id",
    )
    if not response.data:
        logger.warning(f"Профиль {profile_id} не найден, telegram_id не привязан")
        return None

    logger.info(f"К профилю {profile_id} привязан telegram_id {telegram_id}")
    return person_from_row(response.data[0])


def update_birthday(client: Client, profile_id: str, birthday: Optional[date]) -> bool:
    """
    Обновляет дату рождения в профиле (None - очистить).

    Returns:
        True если профиль обновлен
    """
    if not profile_id:
        raise ValueError("profile_id не может быть пустым")
    if birthday is not None and birthday > today_in_timezone():
        raise ValueError("Дата рождения не может быть в будущем")

    response = _execute(
        client.table("profiles")
        .update({"birthday": birthday.isoformat() if birthday else None})
        .eq("id", profile_id),
        "обновление даты рождения",
    )
    updated = bool(response.data)
    if updated:
        logger.info(f"Обновлена дата рождения профиля {profile_id}")
    return updated


def update_digest_time(client: Client, profile_id: str, digest_time: str) -> bool:
    """
    Обновляет время ежедневной рассылки (HH:MM).

    Raises:
        ValueError: Если время не в формате HH:MM
    """
    # Валидация формата через модель
    Person(id=profile_id, digest_time=digest_time)

    response = _execute(
        client.table("profiles").update({"digest_time": digest_time}).eq("id", profile_id),
        "обновление времени рассылки",
    )
    return bool(response.data)


def search_profiles(client: Client, viewer_id: str, query: str) -> List[Person]:
    """
    Ищет профили по имени или email (без учета регистра), кроме самого пользователя.

    Args:
        client: Клиент Supabase
        viewer_id: ID ищущего пользователя
        query: Строка поиска

    Returns:
        До SEARCH_LIMIT профилей; пустой список для слишком короткого запроса
    """
    cleaned = _sanitize_search_query(query or "")
    if len(cleaned) < SEARCH_MIN_QUERY_LENGTH:
        return []

    response = _execute(
        client.table("profiles")
        .select(PROFILE_COLUMNS)
        .neq("id", viewer_id)
        .or_(f"full_name.ilike.%{cleaned}%,email.ilike.%{cleaned}%")
        .limit(SEARCH_LIMIT),
        "поиск профилей",
    )
    return [person_from_row(row) for row in response.data or []]


def find_new_people(client: Client, viewer_id: str, query: str) -> List[Person]:
    """
    Поиск людей, которых можно добавить в друзья.

    Уже связанные (друзья и ожидающие запросы в обе стороны) исключаются.
    """
    candidates = search_profiles(client, viewer_id, query)
    if not candidates:
        return []

    connections = get_connections(client, viewer_id)
    return exclude_connected(
        candidates,
        connections.confirmed,
        connections.pending,
        viewer_id=viewer_id,
    )


# ==================== Работа с дружбой ====================

def get_friendship_edges(
    client: Client,
    viewer_id: str,
    status: Optional[FriendshipStatus] = None,
) -> List[FriendshipEdge]:
    """
    Получает все записи о дружбе, где пользователь с любой стороны.

    Args:
        client: Клиент Supabase
        viewer_id: ID пользователя
        status: Фильтр по статусу (опционально)

    Returns:
        Список FriendshipEdge с вложенными профилями обеих сторон
    """
    if not viewer_id:
        raise ValueError("viewer_id не может быть пустым")

    query = (
        client.table("friendships")
        .select(FRIENDSHIP_SELECT)
        .or_(f"requester_id.eq.{viewer_id},addressee_id.eq.{viewer_id}")
    )
    if status is not None:
        query = query.eq("status", status.value)

    response = _execute(query, "получение связей")
    return [edge_from_row(row) for row in response.data or []]


def get_friendship_edge(client: Client, edge_id: str) -> Optional[FriendshipEdge]:
    """Получает запись о дружбе по ID."""
    if not edge_id:
        raise ValueError("edge_id не может быть пустым")

    response = _execute(
        client.table("friendships").select(FRIENDSHIP_SELECT).eq("id", edge_id).limit(1),
        "получение записи о дружбе",
    )
    if response.data:
        return edge_from_row(response.data[0])
    return None


def get_connections(client: Client, viewer_id: str) -> ResolvedConnections:
    """Друзья, входящие и исходящие запросы пользователя."""
    return resolve(viewer_id, get_friendship_edges(client, viewer_id))


def get_friends(client: Client, viewer_id: str) -> List[Person]:
    """Профили подтвержденных друзей."""
    edges = get_friendship_edges(client, viewer_id, FriendshipStatus.ACCEPTED)
    return resolve(viewer_id, edges).confirmed_people()


def send_friend_request(client: Client, viewer_id: str, addressee_id: str) -> FriendshipEdge:
    """
    Отправляет запрос дружбы.

    Если раньше запрос между этими людьми был отклонен, запись
    переиспользуется: снова pending, отправитель - viewer_id.

    Args:
        client: Клиент Supabase
        viewer_id: ID отправителя
        addressee_id: ID получателя

    Returns:
        Созданная или обновленная FriendshipEdge

    Raises:
        ValueError: Если запрос самому себе
        FriendshipTransitionError: Если связь уже есть или ожидает ответа
    """
    if not viewer_id or not addressee_id:
        raise ValueError("viewer_id и addressee_id обязательны")
    if viewer_id == addressee_id:
        raise ValueError("Нельзя отправить запрос дружбы самому себе")

    edges = get_friendship_edges(client, viewer_id)
    connections = resolve(viewer_id, edges)
    if not exclude_connected([Person(id=addressee_id)], connections.confirmed, connections.pending):
        raise FriendshipTransitionError("Вы уже друзья или запрос ожидает ответа")

    declined = next(
        (
            edge for edge in edges
            if edge.status == FriendshipStatus.DECLINED
            and addressee_id in (edge.requester_id, edge.addressee_id)
        ),
        None,
    )

    if declined is not None:
        response = _execute(
            client.table("friendships")
            .update({
                "requester_id": viewer_id,
                "addressee_id": addressee_id,
                "status": FriendshipStatus.PENDING.value,
            })
            .eq("id", declined.id),
            "повторный запрос дружбы",
        )
    else:
        response = _execute(
            client.table("friendships").insert({
                "requester_id": viewer_id,
                "addressee_id": addressee_id,
                "status": FriendshipStatus.PENDING.value,
            }),
            "создание запроса дружбы",
        )

    edge = edge_from_row(response.data[0])
    logger.info(f"Запрос дружбы {edge.id}: {viewer_id} -> {addressee_id}")
    return edge


def respond_to_friend_request(
    client: Client,
    viewer_id: str,
    edge_id: str,
    accept: bool,
) -> FriendshipEdge:
    """
    Принимает или отклоняет входящий запрос дружбы.

    Args:
        client: Клиент Supabase
        viewer_id: ID получателя запроса
        edge_id: ID записи о дружбе
        accept: True - принять, False - отклонить

    Returns:
        Обновленная FriendshipEdge

    Raises:
        ValueError: Если запрос не найден
        FriendshipTransitionError: Если пользователь не может ответить на запрос
    """
    edge = get_friendship_edge(client, edge_id)
    if edge is None:
        raise ValueError(f"Запрос дружбы {edge_id} не найден")

    new_status = FriendshipStatus.ACCEPTED if accept else FriendshipStatus.DECLINED
    ensure_can_respond(edge, viewer_id, new_status)

    response = _execute(
        client.table("friendships").update({"status": new_status.value}).eq("id", edge_id),
        "ответ на запрос дружбы",
    )
    logger.info(f"Запрос дружбы {edge_id}: {new_status.value} (пользователь {viewer_id})")
    return edge_from_row(response.data[0])


# ==================== Работа с вишлистом ====================

def _wishlist_payload(item: WishlistItem) -> Dict[str, Any]:
    return {
        "user_id": item.user_id,
        "title": item.title,
        "description": item.description,
        "price_tier": item.price_tier.value,
        "affiliate_link": item.affiliate_link,
        "image_url": item.image_url,
    }


def get_wishlist(client: Client, user_id: str) -> List[WishlistItem]:
    """Вишлист пользователя, новые позиции сверху."""
    response = _execute(
        client.table("wishlist_items")
        .select(WISHLIST_COLUMNS)
        .eq("user_id", user_id)
        .order("created_at", desc=True),
        "получение вишлиста",
    )
    return [WishlistItem.model_validate(row) for row in response.data or []]


def count_wishlist_items(client: Client, user_id: str) -> int:
    """Количество позиций в вишлисте пользователя."""
    response = _execute(
        client.table("wishlist_items").select("id", count="exact").eq("user_id", user_id),
        "подсчет вишлиста",
    )
    return response.count or 0


def add_wishlist_item(client: Client, item: WishlistItem) -> WishlistItem:
    """
    Добавляет позицию в вишлист.

    Returns:
        Сохраненная позиция с id
    """
    response = _execute(
        client.table("wishlist_items").insert(_wishlist_payload(item)),
        "добавление в вишлист",
    )
    saved = WishlistItem.model_validate(response.data[0])
    logger.info(f"Добавлена позиция вишлиста: {saved.title} (id: {saved.id})")
    return saved


def update_wishlist_item(client: Client, item: WishlistItem) -> bool:
    """
    Обновляет позицию вишлиста (только владельцем).

    Raises:
        ValueError: Если у позиции нет id
    """
    if not item.id:
        raise ValueError("WishlistItem.id должен быть заполнен для обновления")

    response = _execute(
        client.table("wishlist_items")
        .update(_wishlist_payload(item))
        .eq("id", item.id)
        .eq("user_id", item.user_id),
        "обновление вишлиста",
    )
    return bool(response.data)


def delete_wishlist_item(client: Client, user_id: str, item_id: str) -> bool:
    """Удаляет позицию из вишлиста (только владельцем)."""
    response = _execute(
        client.table("wishlist_items").delete().eq("id", item_id).eq("user_id", user_id),
        "удаление из вишлиста",
    )
    deleted = bool(response.data)
    if deleted:
        logger.info(f"Удалена позиция вишлиста {item_id}")
    return deleted


# ==================== Работа с событиями ====================

def create_event(
    client: Client,
    event: Event,
    invitee_ids: Iterable[str],
    confirmed: Iterable[ResolvedConnection],
) -> Event:
    """
    Создает событие и рассылает приглашения друзьям.

    Args:
        client: Клиент Supabase
        event: Событие
        invitee_ids: ID приглашенных
        confirmed: Подтвержденные друзья создателя

    Returns:
        Сохраненное событие

    Raises:
        InvitationError: Если приглашен кто-то кроме друзей
    """
    invitee_ids = list(dict.fromkeys(invitee_ids))
    ensure_invitees_are_friends(invitee_ids, confirmed)

    response = _execute(
        client.table("events").insert({
            "creator_id": event.creator_id,
            "title": event.title.strip(),
            "description": event.description,
            "date": event.date.isoformat(),
            "location": event.location,
            "is_private": event.is_private,
        }),
        "создание события",
    )
    saved = Event.model_validate(response.data[0])

    if invitee_ids:
        _execute(
            client.table("event_invitations").insert([
                {"event_id": saved.id, "user_id": invitee_id, "status": InvitationStatus.PENDING.value}
                for invitee_id in invitee_ids
            ]),
            "рассылка приглашений",
        )

    logger.info(f"Создано событие: {saved.title} (id: {saved.id}), приглашено: {len(invitee_ids)}")
    return saved


def get_events_by_creator(client: Client, creator_id: str) -> List[Event]:
    """События пользователя по дате."""
    response = _execute(
        client.table("events").select(EVENT_COLUMNS).eq("creator_id", creator_id).order("date"),
        "получение событий",
    )
    return [Event.model_validate(row) for row in response.data or []]


def get_invitations(client: Client, user_id: str) -> List[EventInvitation]:
    """Приглашения пользователя, новые сверху."""
    response = _execute(
        client.table("event_invitations")
        .select(f"id, event_id, user_id, status, created_at, event:events({EVENT_COLUMNS})")
        .eq("user_id", user_id)
        .order("created_at", desc=True),
        "получение приглашений",
    )
    return [EventInvitation.model_validate(row) for row in response.data or []]


def respond_to_invitation(
    client: Client,
    viewer_id: str,
    invitation_id: str,
    accept: bool,
) -> EventInvitation:
    """
    Принимает или отклоняет приглашение на событие.

    Raises:
        ValueError: Если приглашение не найдено
        InvitationError: Если приглашение чужое или на него уже ответили
    """
    response = _execute(
        client.table("event_invitations")
        .select("id, event_id, user_id, status, created_at")
        .eq("id", invitation_id)
        .limit(1),
        "получение приглашения",
    )
    if not response.data:
        raise ValueError(f"Приглашение {invitation_id} не найдено")

    invitation = EventInvitation.model_validate(response.data[0])
    if invitation.user_id != viewer_id:
        raise InvitationError("Ответить на приглашение может только приглашенный")
    if invitation.status != InvitationStatus.PENDING:
        raise InvitationError(f"На приглашение уже ответили (статус: {invitation.status.value})")

    new_status = InvitationStatus.ACCEPTED if accept else InvitationStatus.DECLINED
    response = _execute(
        client.table("event_invitations").update({"status": new_status.value}).eq("id", invitation_id),
        "ответ на приглашение",
    )
    logger.info(f"Приглашение {invitation_id}: {new_status.value}")
    return EventInvitation.model_validate(response.data[0])


# ==================== Поздравления ====================

def send_birthday_greeting(
    client: Client,
    from_user_id: str,
    birthday_person: Person,
    message: str,
    reference_date: date,
) -> BirthdayGreeting:
    """
    Отправляет поздравление другу, у которого сегодня день рождения.

    Raises:
        ValueError: Если сообщение пустое, поздравляют себя или день рождения не сегодня
    """
    greeting = BirthdayGreeting(
        birthday_user_id=birthday_person.id,
        from_user_id=from_user_id,
        message=message,
    )
    if greeting.birthday_user_id == greeting.from_user_id:
        raise ValueError("Нельзя поздравить самого себя")
    if not todays_birthdays([birthday_person], reference_date):
        raise ValueError(f"У {birthday_person.display_name} сегодня не день рождения")

    response = _execute(
        client.table("birthday_greetings").insert({
            "birthday_user_id": greeting.birthday_user_id,
            "from_user_id": greeting.from_user_id,
            "message": greeting.message,
        }),
        "отправка поздравления",
    )
    logger.info(f"Поздравление от {from_user_id} для {birthday_person.id}")
    return BirthdayGreeting.model_validate(response.data[0])


def get_greetings_for_day(
    client: Client,
    profile: Person,
    reference_date: date,
) -> List[BirthdayGreeting]:
    """
    Поздравления, полученные пользователем сегодня.

    Если сегодня не его день рождения, возвращает пустой список без запроса.
    """
    if not todays_birthdays([profile], reference_date):
        return []

    # Начало дня в часовом поясе приложения: created_at хранится как timestamptz
    day_start = DEFAULT_TIMEZONE.localize(datetime.combine(reference_date, datetime.min.time()))
    response = _execute(
        client.table("birthday_greetings")
        .select(
            "id, birthday_user_id, from_user_id, message, created_at, "
            "from_user:profiles!birthday_greetings_from_user_id_fkey(id, full_name, avatar_url)"
        )
        .eq("birthday_user_id", profile.id)
        .gte("created_at", day_start.isoformat())
        .order("created_at", desc=True),
        "получение поздравлений",
    )

    greetings = []
    for row in response.data or []:
        data = dict(row)
        if data.get("from_user"):
            data["from_user"] = person_from_row(data["from_user"])
        greetings.append(BirthdayGreeting.model_validate(data))
    return greetings


# ==================== Сводка ====================

def get_dashboard_stats(
    client: Client,
    viewer_id: str,
    reference_date: date,
    limit: int = UPCOMING_LIMIT,
) -> DashboardStats:
    """Количество друзей, позиций вишлиста и ближайшие дни рождения друзей."""
    friends = get_friends(client, viewer_id)
    return DashboardStats(
        friends_count=len(friends),
        wishlist_count=count_wishlist_items(client, viewer_id),
        upcoming=upcoming(friends, reference_date, limit),
    )
