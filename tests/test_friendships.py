"""Тесты для friendships.py - разбор связей дружбы."""

import pytest

from birthday_logic.friendships import (
    FriendshipEdgeError,
    FriendshipTransitionError,
    InvitationError,
    ensure_can_respond,
    ensure_invitees_are_friends,
    exclude_connected,
    resolve,
)
from birthday_logic.schemas import FriendshipEdge, FriendshipStatus, Person


def make_edge(edge_id, requester_id, addressee_id, status=FriendshipStatus.PENDING, **kwargs):
    return FriendshipEdge(
        id=edge_id,
        requester_id=requester_id,
        addressee_id=addressee_id,
        status=status,
        **kwargs,
    )


@pytest.fixture
def mixed_edges():
    """A-B дружат, C отправил запрос A, A отправил запрос D, A отклонил E."""
    return [
        make_edge("e1", "A", "B", FriendshipStatus.ACCEPTED),
        make_edge("e2", "C", "A", FriendshipStatus.PENDING),
        make_edge("e3", "A", "D", FriendshipStatus.PENDING),
        make_edge("e4", "E", "A", FriendshipStatus.DECLINED),
    ]


class TestResolve:
    """Тесты для функции resolve()."""

    def test_accepted_edge_is_confirmed_for_both_sides(self):
        """Тест: принятая дружба видна обеим сторонам, собеседник - другая сторона."""
        edges = [make_edge("e1", "A", "B", FriendshipStatus.ACCEPTED)]

        for_a = resolve("A", edges)
        for_b = resolve("B", edges)

        assert [c.counterpart.id for c in for_a.confirmed] == ["B"]
        assert [c.counterpart.id for c in for_b.confirmed] == ["A"]
        assert for_a.confirmed[0].viewer_is_requester is True
        assert for_b.confirmed[0].viewer_is_requester is False

    def test_pending_edge_direction(self):
        """Тест: pending - исходящий для отправителя и входящий для получателя."""
        edges = [make_edge("e1", "C", "A")]

        for_c = resolve("C", edges)
        for_a = resolve("A", edges)

        assert [c.counterpart.id for c in for_c.outgoing_pending] == ["A"]
        assert for_c.incoming_pending == []
        assert [c.counterpart.id for c in for_a.incoming_pending] == ["C"]
        assert for_a.outgoing_pending == []

    def test_declined_edge_is_ignored(self):
        """Тест: отклоненная связь не попадает ни в один список."""
        result = resolve("A", [make_edge("e1", "A", "B", FriendshipStatus.DECLINED)])

        assert result.confirmed == []
        assert result.incoming_pending == []
        assert result.outgoing_pending == []

    def test_partition_is_disjoint(self, mixed_edges):
        """Тест: каждая запись попадает не более чем в один список."""
        result = resolve("A", mixed_edges)

        confirmed = {c.edge_id for c in result.confirmed}
        incoming = {c.edge_id for c in result.incoming_pending}
        outgoing = {c.edge_id for c in result.outgoing_pending}

        assert confirmed == {"e1"}
        assert incoming == {"e2"}
        assert outgoing == {"e3"}
        assert not (confirmed & incoming or confirmed & outgoing or incoming & outgoing)

    def test_counterpart_is_never_viewer(self, mixed_edges):
        """Тест: собеседник никогда не совпадает с пользователем."""
        result = resolve("A", mixed_edges)

        everyone = result.confirmed + result.pending
        assert everyone
        assert all(c.counterpart.id != "A" for c in everyone)

    def test_pending_property_combines_both_directions(self, mixed_edges):
        """Тест: pending = входящие + исходящие."""
        result = resolve("A", mixed_edges)

        assert [c.counterpart.id for c in result.pending] == ["C", "D"]

    def test_empty_edges(self):
        """Тест: нет записей - пустые списки."""
        result = resolve("A", [])

        assert result.confirmed == []
        assert result.pending == []

    def test_uses_embedded_profile(self):
        """Тест: вложенный профиль из join используется как собеседник."""
        friend = Person(id="B", full_name="Борис", birthday="1990-03-10")
        edges = [make_edge("e1", "A", "B", FriendshipStatus.ACCEPTED, addressee=friend)]

        result = resolve("A", edges)

        assert result.confirmed_people() == [friend]

    def test_uses_profiles_mapping(self):
        """Тест: без вложенного профиля берется профиль из словаря."""
        friend = Person(id="B", full_name="Борис")
        edges = [make_edge("e1", "A", "B", FriendshipStatus.ACCEPTED)]

        result = resolve("A", edges, profiles={"B": friend})

        assert result.confirmed[0].counterpart.display_name == "Борис"

    def test_falls_back_to_bare_person(self):
        """Тест: без профиля собеседник содержит только id."""
        result = resolve("A", [make_edge("e1", "A", "B", FriendshipStatus.ACCEPTED)])

        counterpart = result.confirmed[0].counterpart
        assert counterpart.id == "B"
        assert counterpart.display_name == "Без имени"

    def test_edge_without_viewer_raises(self):
        """Тест: запись, где пользователя нет, - ошибка."""
        with pytest.raises(FriendshipEdgeError, match="не участвует"):
            resolve("A", [make_edge("e1", "B", "C", FriendshipStatus.ACCEPTED)])

    def test_edge_with_missing_side_raises(self):
        """Тест: запись без одной из сторон - ошибка."""
        with pytest.raises(FriendshipEdgeError) as exc_info:
            resolve("A", [make_edge("e9", "A", None, FriendshipStatus.ACCEPTED)])

        assert exc_info.value.edge_id == "e9"

    def test_self_edge_raises(self):
        """Тест: дружба с самим собой - ошибка."""
        with pytest.raises(FriendshipEdgeError, match="совпадают"):
            resolve("A", [make_edge("e1", "A", "A", FriendshipStatus.ACCEPTED)])

    def test_edge_error_is_value_error(self):
        """Тест: ошибки записей ловятся как ValueError."""
        with pytest.raises(ValueError):
            resolve("A", [make_edge("e1", "B", "C")])


class TestExcludeConnected:
    """Тесты для функции exclude_connected()."""

    def test_removes_friends_and_pending(self, mixed_edges):
        """Тест: друзья и ожидающие в обе стороны исключаются."""
        result = resolve("A", mixed_edges)
        candidates = [Person(id=person_id) for person_id in ["B", "C", "D", "E", "F"]]

        remaining = exclude_connected(candidates, result.confirmed, result.pending)

        # E отклонен - его можно пригласить снова
        assert [person.id for person in remaining] == ["E", "F"]

    def test_no_candidates(self, mixed_edges):
        """Тест: пустой список кандидатов - пустой результат при любых связях."""
        result = resolve("A", mixed_edges)
        assert result.confirmed and result.pending

        assert exclude_connected([], result.confirmed, result.pending) == []
        assert exclude_connected([], result.confirmed, result.pending, viewer_id="A") == []

    def test_keeps_order(self):
        """Тест: порядок кандидатов сохраняется."""
        candidates = [Person(id="Z"), Person(id="M"), Person(id="A1")]

        remaining = exclude_connected(candidates, [], [])

        assert [person.id for person in remaining] == ["Z", "M", "A1"]

    def test_excludes_viewer(self):
        """Тест: сам пользователь исключается, если передан viewer_id."""
        candidates = [Person(id="A"), Person(id="B")]

        remaining = exclude_connected(candidates, [], [], viewer_id="A")

        assert [person.id for person in remaining] == ["B"]


class TestEnsureCanRespond:
    """Тесты для функции ensure_can_respond()."""

    def test_addressee_can_accept(self):
        """Тест: получатель может принять запрос."""
        edge = make_edge("e1", "C", "A")

        ensure_can_respond(edge, "A", FriendshipStatus.ACCEPTED)
        ensure_can_respond(edge, "A", FriendshipStatus.DECLINED)

    def test_requester_cannot_respond(self):
        """Тест: отправитель не может ответить на свой запрос."""
        edge = make_edge("e1", "C", "A")

        with pytest.raises(FriendshipTransitionError, match="только получатель"):
            ensure_can_respond(edge, "C", FriendshipStatus.ACCEPTED)

    def test_already_processed(self):
        """Тест: на принятый запрос ответить нельзя."""
        edge = make_edge("e1", "C", "A", FriendshipStatus.ACCEPTED)

        with pytest.raises(FriendshipTransitionError, match="уже обработан"):
            ensure_can_respond(edge, "A", FriendshipStatus.DECLINED)

    def test_cannot_move_back_to_pending(self):
        """Тест: вернуть запрос в pending нельзя."""
        edge = make_edge("e1", "C", "A")

        with pytest.raises(FriendshipTransitionError):
            ensure_can_respond(edge, "A", FriendshipStatus.PENDING)

    def test_outsider_cannot_respond(self):
        """Тест: посторонний получает ошибку записи."""
        edge = make_edge("e1", "C", "A")

        with pytest.raises(FriendshipEdgeError):
            ensure_can_respond(edge, "X", FriendshipStatus.ACCEPTED)


class TestEnsureInviteesAreFriends:
    """Тесты для функции ensure_invitees_are_friends()."""

    def test_friends_allowed(self, mixed_edges):
        """Тест: приглашать друзей можно."""
        result = resolve("A", mixed_edges)

        ensure_invitees_are_friends(["B"], result.confirmed)
        ensure_invitees_are_friends([], result.confirmed)

    def test_pending_is_not_friend(self, mixed_edges):
        """Тест: человек с ожидающим запросом еще не друг."""
        result = resolve("A", mixed_edges)

        with pytest.raises(InvitationError, match="D"):
            ensure_invitees_are_friends(["B", "D"], result.confirmed)
