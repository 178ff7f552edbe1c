"""Чистые функции для работы с графом дружбы (framework-agnostic)."""

import logging
from typing import Iterable, List, Mapping, Optional

from .schemas import (
    FriendshipEdge,
    FriendshipStatus,
    Person,
    ResolvedConnection,
    ResolvedConnections,
)

logger = logging.getLogger(__name__)


class FriendshipEdgeError(ValueError):
    """Запись о дружбе некорректна или не относится к пользователю."""

    def __init__(self, edge_id: Optional[str], reason: str):
        self.edge_id = edge_id
        self.reason = reason
        super().__init__(f"Некорректная запись о дружбе {edge_id!r}: {reason}")


class FriendshipTransitionError(ValueError):
    """Недопустимая смена статуса дружбы."""


class InvitationError(ValueError):
    """Недопустимое приглашение на событие."""


def _validate_edge(viewer_id: str, edge: FriendshipEdge) -> None:
    """
    Проверяет, что запись о дружбе корректна и относится к viewer_id.

    Raises:
        FriendshipEdgeError: Если нет одной из сторон, запись связывает
            человека с самим собой или не содержит viewer_id
    """
    if not edge.requester_id or not edge.addressee_id:
        raise FriendshipEdgeError(edge.id, "не указан requester_id или addressee_id")
    if edge.requester_id == edge.addressee_id:
        raise FriendshipEdgeError(edge.id, "requester_id и addressee_id совпадают")
    if viewer_id not in (edge.requester_id, edge.addressee_id):
        raise FriendshipEdgeError(edge.id, f"пользователь {viewer_id} не участвует в связи")


def _counterpart(
    edge: FriendshipEdge,
    viewer_is_requester: bool,
    profiles: Optional[Mapping[str, Person]],
) -> Person:
    """Профиль второй стороны: вложенный из join, из profiles или только с id."""
    if viewer_is_requester:
        counterpart_id, embedded = edge.addressee_id, edge.addressee
    else:
        counterpart_id, embedded = edge.requester_id, edge.requester

    if embedded is not None and embedded.id == counterpart_id:
        return embedded
    if profiles and counterpart_id in profiles:
        return profiles[counterpart_id]
    return Person(id=counterpart_id)


def resolve(
    viewer_id: str,
    edges: Iterable[FriendshipEdge],
    profiles: Optional[Mapping[str, Person]] = None,
) -> ResolvedConnections:
    """
    Раскладывает записи о дружбе по спискам с точки зрения пользователя.

    accepted -> confirmed; pending, где пользователь отправитель ->
    outgoing_pending; pending, где пользователь получатель ->
    incoming_pending; declined не попадает никуда.

    Args:
        viewer_id: ID пользователя, для которого строится представление
        edges: Записи о дружбе (обычно результат запроса с OR по обеим колонкам)
        profiles: Профили по ID, если в записях нет вложенных профилей

    Returns:
        ResolvedConnections с тремя непересекающимися списками

    Raises:
        FriendshipEdgeError: Если какая-либо запись некорректна

    Examples:
        >>> edges = [FriendshipEdge(id="1", requester_id="A", addressee_id="B", status="accepted")]
        >>> [c.counterpart.id for c in resolve("A", edges).confirmed]
        ['B']
    """
    result = ResolvedConnections()

    for edge in edges:
        _validate_edge(viewer_id, edge)

        viewer_is_requester = edge.requester_id == viewer_id
        connection = ResolvedConnection(
            counterpart=_counterpart(edge, viewer_is_requester, profiles),
            edge_id=edge.id,
            status=edge.status,
            viewer_is_requester=viewer_is_requester,
        )

        if edge.status == FriendshipStatus.ACCEPTED:
            result.confirmed.append(connection)
        elif edge.status == FriendshipStatus.PENDING:
            if viewer_is_requester:
                result.outgoing_pending.append(connection)
            else:
                result.incoming_pending.append(connection)

    logger.debug(
        f"Связи пользователя {viewer_id}: друзей {len(result.confirmed)}, "
        f"входящих {len(result.incoming_pending)}, исходящих {len(result.outgoing_pending)}"
    )
    return result


def exclude_connected(
    candidates: Iterable[Person],
    confirmed: Iterable[ResolvedConnection],
    pending: Iterable[ResolvedConnection],
    viewer_id: Optional[str] = None,
) -> List[Person]:
    """
    Убирает из кандидатов тех, с кем уже есть дружба или ожидающий запрос.

    Вызывается после resolve(): повторный запрос блокируется именно
    наличием pending-связи.

    Args:
        candidates: Найденные профили
        confirmed: Подтвержденные связи
        pending: Ожидающие связи (входящие и исходящие)
        viewer_id: ID самого пользователя, если его тоже нужно исключить

    Returns:
        Кандидаты без уже связанных, в исходном порядке
    """
    connected_ids = {connection.counterpart.id for connection in confirmed}
    connected_ids.update(connection.counterpart.id for connection in pending)
    if viewer_id:
        connected_ids.add(viewer_id)

    return [person for person in candidates if person.id not in connected_ids]


def ensure_can_respond(
    edge: FriendshipEdge,
    viewer_id: str,
    new_status: FriendshipStatus,
) -> None:
    """
    Проверяет, что пользователь может ответить на запрос дружбы.

    Raises:
        FriendshipEdgeError: Если запись некорректна
        FriendshipTransitionError: Если отвечает не получатель, запрос уже
            не pending или новый статус не accepted/declined
    """
    _validate_edge(viewer_id, edge)

    if new_status not in (FriendshipStatus.ACCEPTED, FriendshipStatus.DECLINED):
        raise FriendshipTransitionError(f"Нельзя перевести запрос в статус {new_status.value}")
    if edge.addressee_id != viewer_id:
        raise FriendshipTransitionError("Ответить на запрос может только получатель")
    if edge.status != FriendshipStatus.PENDING:
        raise FriendshipTransitionError(f"Запрос уже обработан (статус: {edge.status.value})")


def ensure_invitees_are_friends(
    invitee_ids: Iterable[str],
    confirmed: Iterable[ResolvedConnection],
) -> None:
    """
    Проверяет, что на событие приглашаются только подтвержденные друзья.

    Raises:
        InvitationError: Если среди приглашенных есть не друзья
    """
    friend_ids = {connection.counterpart.id for connection in confirmed}
    strangers = [invitee_id for invitee_id in invitee_ids if invitee_id not in friend_ids]
    if strangers:
        raise InvitationError(f"Пригласить можно только друзей, не друзья: {', '.join(strangers)}")
