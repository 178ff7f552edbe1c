"""Тесты для database.py - работа с Supabase через mock клиента."""

from datetime import date, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from postgrest.exceptions import APIError

from birthday_logic.config import DEFAULT_TIMEZONE
from birthday_logic.database import (
    add_wishlist_item,
    create_event,
    edge_from_row,
    find_new_people,
    get_dashboard_stats,
    get_events_by_creator,
    get_friends,
    get_greetings_for_day,
    get_invitations,
    get_profile_by_telegram_id,
    link_telegram_account,
    person_from_row,
    respond_to_friend_request,
    respond_to_invitation,
    search_profiles,
    send_birthday_greeting,
    send_friend_request,
    update_birthday,
    update_wishlist_item,
)
from birthday_logic.friendships import (
    FriendshipEdgeError,
    FriendshipTransitionError,
    InvitationError,
    resolve,
)
from birthday_logic.schemas import (
    Event,
    FriendshipStatus,
    Person,
    PriceTier,
    WishlistItem,
)

QUERY_METHODS = [
    "select", "eq", "neq", "or_", "limit", "order", "gte",
    "insert", "update", "delete", "is_",
]


def make_query(*responses):
    """
    Создает mock цепочки запроса postgrest.

    Каждый вызов execute() возвращает следующий ответ из responses.
    """
    query = MagicMock()
    for method in QUERY_METHODS:
        getattr(query, method).return_value = query
    query.not_ = query
    query.execute.side_effect = [
        MagicMock(data=data, count=count) for data, count in responses
    ]
    return query


def make_client(*responses):
    """Создает mock клиента Supabase, у которого все таблицы отвечают по очереди."""
    client = MagicMock()
    client.table.return_value = make_query(*responses)
    return client


def profile_row(profile_id, **kwargs):
    row = {
        "id": profile_id,
        "full_name": kwargs.get("full_name"),
        "email": kwargs.get("email"),
        "avatar_url": None,
        "birthday": kwargs.get("birthday"),
        "telegram_id": kwargs.get("telegram_id"),
        "digest_time": kwargs.get("digest_time"),
    }
    return row


def edge_row(edge_id, requester_id, addressee_id, status="pending"):
    return {
        "id": edge_id,
        "requester_id": requester_id,
        "addressee_id": addressee_id,
        "status": status,
        "created_at": None,
        "updated_at": None,
        "requester": profile_row(requester_id, full_name=f"Имя {requester_id}"),
        "addressee": profile_row(addressee_id, full_name=f"Имя {addressee_id}"),
    }


class TestRowMapping:
    """Тесты преобразования строк Supabase в модели."""

    def test_person_without_digest_time_gets_default(self):
        """Тест: пустое время рассылки заменяется значением по умолчанию."""
        profile = person_from_row(profile_row("A", birthday="1990-03-10"))

        assert profile.digest_time == "09:00"
        assert profile.birthday == date(1990, 3, 10)

    def test_edge_with_embedded_profiles(self):
        """Тест: вложенные профили из join становятся Person."""
        edge = edge_from_row(edge_row("e1", "A", "B", "accepted"))

        assert edge.status == FriendshipStatus.ACCEPTED
        assert edge.addressee.full_name == "Имя B"

    def test_edge_without_side_raises(self):
        """Тест: строка без одной из сторон - ошибка."""
        with pytest.raises(FriendshipEdgeError):
            edge_from_row({"id": "e1", "requester_id": "A", "addressee_id": None, "status": "pending"})


class TestProfiles:
    """Тесты работы с профилями."""

    def test_get_profile_by_telegram_id(self):
        """Тест: профиль находится по telegram_id."""
        client = make_client(([profile_row("A", telegram_id=111)], None))

        profile = get_profile_by_telegram_id(client, 111)

        assert profile.id == "A"
        client.table.assert_called_with("profiles")

    def test_get_profile_by_telegram_id_not_linked(self):
        """Тест: непривязанный аккаунт - None."""
        client = make_client(([], None))

        assert get_profile_by_telegram_id(client, 111) is None

    def test_invalid_telegram_id(self):
        """Тест: невалидный telegram_id - ошибка без запроса."""
        client = make_client()

        with pytest.raises(ValueError):
            get_profile_by_telegram_id(client, 0)
        client.table.assert_not_called()

    def test_link_missing_profile(self):
        """Тест: привязка к несуществующему профилю возвращает None."""
        client = make_client(([], None))

        assert link_telegram_account(client, "missing", 111) is None

    def test_update_birthday_in_future(self):
        """Тест: дата рождения в будущем - ошибка."""
        client = make_client()

        with pytest.raises(ValueError, match="будущем"):
            update_birthday(client, "A", date.today() + timedelta(days=2))

    def test_update_birthday_uses_app_timezone(self):
        """Тест: "сегодня" для даты рождения берется в часовом поясе приложения."""
        app_today = date(2025, 6, 2)
        client = make_client(([profile_row("A", birthday="2025-06-02")], None))

        with patch("birthday_logic.database.today_in_timezone", return_value=app_today):
            assert update_birthday(client, "A", app_today) is True
            with pytest.raises(ValueError, match="будущем"):
                update_birthday(client, "A", app_today + timedelta(days=1))

        client.table.return_value.update.assert_called_once_with({"birthday": "2025-06-02"})

    def test_api_error_propagates(self):
        """Тест: ошибка Supabase пробрасывается дальше."""
        client = make_client()
        client.table.return_value.execute.side_effect = APIError({"message": "boom", "code": "500"})

        with pytest.raises(APIError):
            get_profile_by_telegram_id(client, 111)


class TestSearch:
    """Тесты поиска людей."""

    def test_short_query_returns_empty(self):
        """Тест: запрос короче 3 символов не выполняется."""
        client = make_client()

        assert search_profiles(client, "A", " ab ") == []
        client.table.assert_not_called()

    def test_query_is_sanitized(self):
        """Тест: спецсимволы фильтра удаляются из запроса."""
        client = make_client(([profile_row("B")], None))

        search_profiles(client, "A", "ann,(a)")

        query = client.table.return_value
        query.or_.assert_called_once_with("full_name.ilike.%anna%,email.ilike.%anna%")
        query.neq.assert_called_once_with("id", "A")

    def test_find_new_people_excludes_connected(self):
        """Тест: друзья и ожидающие запросы исключаются из результатов."""
        client = make_client(
            ([profile_row("B"), profile_row("C"), profile_row("D")], None),
            ([edge_row("e1", "A", "B", "accepted"), edge_row("e2", "C", "A")], None),
        )

        people = find_new_people(client, "A", "test")

        assert [p.id for p in people] == ["D"]


class TestFriendships:
    """Тесты работы с дружбой."""

    def test_get_friends(self):
        """Тест: друзья - собеседники из принятых связей."""
        client = make_client(([edge_row("e1", "A", "B", "accepted"), edge_row("e2", "C", "A", "accepted")], None))

        friends = get_friends(client, "A")

        assert [f.id for f in friends] == ["B", "C"]
        client.table.return_value.eq.assert_called_with("status", "accepted")

    def test_send_request_to_self(self):
        """Тест: запрос самому себе - ошибка."""
        with pytest.raises(ValueError, match="самому себе"):
            send_friend_request(make_client(), "A", "A")

    def test_send_request_creates_edge(self):
        """Тест: новый запрос создает запись pending."""
        client = make_client(([], None), ([edge_row("e1", "A", "B")], None))

        edge = send_friend_request(client, "A", "B")

        assert edge.status == FriendshipStatus.PENDING
        client.table.return_value.insert.assert_called_once_with({
            "requester_id": "A",
            "addressee_id": "B",
            "status": "pending",
        })

    def test_send_request_when_pending_raises(self):
        """Тест: повторный запрос при ожидающем - ошибка."""
        client = make_client(([edge_row("e1", "B", "A")], None))

        with pytest.raises(FriendshipTransitionError):
            send_friend_request(client, "A", "B")

    def test_send_request_reuses_declined_edge(self):
        """Тест: после отказа запись переиспользуется."""
        client = make_client(
            ([edge_row("e1", "B", "A", "declined")], None),
            ([edge_row("e1", "A", "B")], None),
        )

        edge = send_friend_request(client, "A", "B")

        assert edge.id == "e1"
        query = client.table.return_value
        query.insert.assert_not_called()
        query.update.assert_called_once_with({
            "requester_id": "A",
            "addressee_id": "B",
            "status": "pending",
        })

    def test_accept_request(self):
        """Тест: получатель принимает запрос."""
        client = make_client(
            ([edge_row("e1", "B", "A")], None),
            ([edge_row("e1", "B", "A", "accepted")], None),
        )

        edge = respond_to_friend_request(client, "A", "e1", accept=True)

        assert edge.status == FriendshipStatus.ACCEPTED
        client.table.return_value.update.assert_called_once_with({"status": "accepted"})

    def test_requester_cannot_accept(self):
        """Тест: отправитель не может принять свой запрос."""
        client = make_client(([edge_row("e1", "A", "B")], None))

        with pytest.raises(FriendshipTransitionError):
            respond_to_friend_request(client, "A", "e1", accept=True)
        client.table.return_value.update.assert_not_called()

    def test_respond_to_missing_request(self):
        """Тест: несуществующий запрос - ошибка."""
        client = make_client(([], None))

        with pytest.raises(ValueError, match="не найден"):
            respond_to_friend_request(client, "A", "missing", accept=False)


class TestWishlistAndEvents:
    """Тесты вишлиста и событий."""

    def test_update_wishlist_requires_id(self):
        """Тест: обновление позиции без id - ошибка."""
        item = WishlistItem(user_id="A", title="Книга")

        with pytest.raises(ValueError):
            update_wishlist_item(make_client(), item)

    def test_add_wishlist_item(self):
        """Тест: позиция сохраняется и возвращается с id."""
        item = WishlistItem(user_id="A", title=" Книга ", price_tier=PriceTier.OVER_50)
        saved_row = {"id": "w1", "user_id": "A", "title": "Книга", "price_tier": "over_50"}
        client = make_client(([saved_row], None))

        saved = add_wishlist_item(client, item)

        assert saved.id == "w1"
        payload = client.table.return_value.insert.call_args[0][0]
        assert payload["title"] == "Книга"
        assert payload["price_tier"] == "over_50"

    def test_get_events_by_creator(self):
        """Тест: события создателя по дате."""
        row = {"id": "ev1", "creator_id": "A", "title": "Пикник", "date": "2025-07-01"}
        client = make_client(([row], None))

        events = get_events_by_creator(client, "A")

        assert events[0].date == date(2025, 7, 1)
        client.table.return_value.order.assert_called_once_with("date")

    def test_get_invitations_with_event(self):
        """Тест: приглашения подтягивают событие из join."""
        row = {
            "id": "i1",
            "event_id": "ev1",
            "user_id": "A",
            "status": "pending",
            "event": {"id": "ev1", "creator_id": "B", "title": "Пикник", "date": "2025-07-01"},
        }
        client = make_client(([row], None))

        invitations = get_invitations(client, "A")

        assert invitations[0].event.title == "Пикник"
        client.table.assert_called_with("event_invitations")

    def test_create_event_only_friends(self):
        """Тест: на событие нельзя пригласить не друга."""
        confirmed = resolve("A", [edge_from_row(edge_row("e1", "A", "B", "accepted"))]).confirmed
        event = Event(creator_id="A", title="Пикник", date=date(2025, 7, 1))
        client = make_client()

        with pytest.raises(InvitationError):
            create_event(client, event, ["B", "C"], confirmed)
        client.table.assert_not_called()

    def test_create_event_with_invitations(self):
        """Тест: событие создается, приглашения рассылаются без повторов."""
        confirmed = resolve("A", [edge_from_row(edge_row("e1", "A", "B", "accepted"))]).confirmed
        event = Event(creator_id="A", title="  Пикник ", date=date(2025, 7, 1))
        saved_row = {"id": "ev1", "creator_id": "A", "title": "Пикник", "date": "2025-07-01", "is_private": True}
        client = make_client(([saved_row], None), ([], None))

        saved = create_event(client, event, ["B", "B"], confirmed)

        assert saved.id == "ev1"
        insert = client.table.return_value.insert
        assert insert.call_args_list[1][0][0] == [
            {"event_id": "ev1", "user_id": "B", "status": "pending"}
        ]

    def test_respond_to_foreign_invitation(self):
        """Тест: на чужое приглашение ответить нельзя."""
        client = make_client(([{"id": "i1", "event_id": "ev1", "user_id": "B", "status": "pending"}], None))

        with pytest.raises(InvitationError):
            respond_to_invitation(client, "A", "i1", accept=True)


class TestGreetings:
    """Тесты поздравлений."""

    def test_greeting_not_on_birthday(self):
        """Тест: поздравить можно только в день рождения."""
        friend = Person(id="B", full_name="Борис", birthday=date(1990, 3, 10))

        with pytest.raises(ValueError, match="не день рождения"):
            send_birthday_greeting(make_client(), "A", friend, "С днем рождения!", date(2025, 3, 11))

    def test_greeting_self(self):
        """Тест: поздравить себя нельзя."""
        me = Person(id="A", birthday=date(1990, 3, 10))

        with pytest.raises(ValueError, match="самого себя"):
            send_birthday_greeting(make_client(), "A", me, "Ура", date(2025, 3, 10))

    def test_blank_greeting(self):
        """Тест: пустое поздравление - ошибка."""
        friend = Person(id="B", birthday=date(1990, 3, 10))

        with pytest.raises(ValueError):
            send_birthday_greeting(make_client(), "A", friend, "   ", date(2025, 3, 10))

    def test_greeting_sent(self):
        """Тест: поздравление сохраняется."""
        friend = Person(id="B", birthday=date(1990, 3, 10))
        client = make_client(([{"id": "g1", "birthday_user_id": "B", "from_user_id": "A", "message": "Ура"}], None))

        greeting = send_birthday_greeting(client, "A", friend, " Ура ", date(2025, 3, 10))

        assert greeting.id == "g1"
        client.table.assert_called_with("birthday_greetings")

    def test_greetings_not_birthday_skips_query(self):
        """Тест: не в день рождения поздравления не запрашиваются."""
        me = Person(id="A", birthday=date(1990, 3, 10))
        client = make_client()

        assert get_greetings_for_day(client, me, date(2025, 3, 11)) == []
        client.table.assert_not_called()

    def test_greetings_with_author(self):
        """Тест: автор поздравления подтягивается из join."""
        me = Person(id="A", birthday=date(1990, 3, 10))
        row = {
            "id": "g1",
            "birthday_user_id": "A",
            "from_user_id": "B",
            "message": "Ура",
            "from_user": {"id": "B", "full_name": "Борис", "avatar_url": None},
        }
        client = make_client(([row], None))

        greetings = get_greetings_for_day(client, me, date(2025, 3, 10))

        assert greetings[0].from_user.display_name == "Борис"

    def test_greetings_day_start_has_timezone(self):
        """Тест: начало дня передается с часовым поясом приложения."""
        me = Person(id="A", birthday=date(1990, 6, 1))
        client = make_client(([], None))

        get_greetings_for_day(client, me, date(2025, 6, 1))

        bound = client.table.return_value.gte.call_args[0][1]
        expected = DEFAULT_TIMEZONE.localize(datetime(2025, 6, 1))
        assert datetime.fromisoformat(bound).utcoffset() is not None
        assert datetime.fromisoformat(bound) == expected
        assert bound == expected.isoformat()


def test_dashboard_stats():
    """Тест: сводка - друзья, вишлист и ближайшие дни рождения."""
    edges = [edge_row("e1", "A", "B", "accepted")]
    edges[0]["addressee"]["birthday"] = "1990-06-06"
    client = make_client((edges, None), ([], 2))

    stats = get_dashboard_stats(client, "A", date(2025, 6, 1))

    assert stats.friends_count == 1
    assert stats.wishlist_count == 2
    assert [(o.person.id, o.days_until) for o in stats.upcoming] == [("B", 5)]
