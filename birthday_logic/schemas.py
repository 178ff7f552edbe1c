"""Pydantic models for data structures."""

from datetime import date, datetime
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator
from enum import Enum

from .config import DEFAULT_DIGEST_TIME


class FriendshipStatus(str, Enum):
    """Статус дружбы (значения совпадают с колонкой friendships.status)."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class InvitationStatus(str, Enum):
    """Статус приглашения на событие."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class PriceTier(str, Enum):
    """Ценовая категория подарка из вишлиста."""
    UNDER_25 = "under_25"
    FROM_25_TO_50 = "25_to_50"
    OVER_50 = "over_50"


class LeapDayRule(str, Enum):
    """Куда переносится день рождения 29 февраля в невисокосный год."""
    FEB_28 = "feb28"
    MAR_1 = "mar1"


class BirthdayBadge(str, Enum):
    """Метка близости дня рождения (для списка ближайших)."""
    TODAY = "today"
    TOMORROW = "tomorrow"
    THIS_WEEK = "this_week"
    LATER = "later"


class BirthdayTiming(str, Enum):
    """Положение дня рождения относительно сегодняшнего дня (для календаря)."""
    TODAY = "today"
    PAST = "past"
    UPCOMING = "upcoming"


class Person(BaseModel):
    """Профиль пользователя."""
    id: str = Field(min_length=1, description="ID профиля не может быть пустым")
    full_name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    birthday: Optional[date] = None
    telegram_id: Optional[int] = Field(default=None, gt=0)
    digest_time: str = Field(default=DEFAULT_DIGEST_TIME, pattern=r'^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$', description="Формат HH:MM")

    @property
    def display_name(self) -> str:
        """Имя для отображения: полное имя, иначе email."""
        if self.full_name and self.full_name.strip():
            return self.full_name.strip()
        if self.email:
            return self.email
        return "Без имени"


class FriendshipEdge(BaseModel):
    """
    Запись о дружбе между двумя людьми.

    Для вопроса "связаны ли эти двое" направление не важно, но ответить на
    запрос (pending -> accepted/declined) может только addressee.
    """
    id: str
    requester_id: Optional[str] = None
    addressee_id: Optional[str] = None
    status: FriendshipStatus = FriendshipStatus.PENDING
    requester: Optional[Person] = None
    addressee: Optional[Person] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ResolvedConnection(BaseModel):
    """Связь с точки зрения смотрящего: кто собеседник и кто начал."""
    counterpart: Person
    edge_id: str
    status: FriendshipStatus
    viewer_is_requester: bool


class ResolvedConnections(BaseModel):
    """Результат разбора связей пользователя."""
    confirmed: List[ResolvedConnection] = []
    incoming_pending: List[ResolvedConnection] = []
    outgoing_pending: List[ResolvedConnection] = []

    @property
    def pending(self) -> List[ResolvedConnection]:
        """Все ожидающие запросы (входящие и исходящие)."""
        return self.incoming_pending + self.outgoing_pending

    def confirmed_people(self) -> List[Person]:
        """Профили подтвержденных друзей."""
        return [connection.counterpart for connection in self.confirmed]


class NextOccurrence(BaseModel):
    """Ближайшая дата дня рождения и сколько до нее дней."""
    occurrence_date: date
    days_until: int = Field(ge=0)


class BirthdayOccurrence(BaseModel):
    """День рождения человека в конкретном году."""
    person: Person
    occurrence_date: date
    days_until: int = Field(ge=0)


class CalendarDay(BaseModel):
    """Ячейка месячного календаря."""
    day: date
    in_display_month: bool
    is_today: bool
    birthdays: List[Person] = []


class BirthdayAlert(BaseModel):
    """Напоминание: у кого день рождения ровно через offset_days дней."""
    offset_days: int = Field(ge=0)
    people: List[Person] = []


class WishlistItem(BaseModel):
    """Позиция вишлиста."""
    id: Optional[str] = None
    user_id: str
    title: str = Field(min_length=1, description="Название не может быть пустым")
    description: Optional[str] = None
    price_tier: PriceTier = PriceTier.UNDER_25
    affiliate_link: Optional[str] = None
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Название не может быть пустым")
        return value


class Event(BaseModel):
    """Событие, на которое можно пригласить друзей."""
    id: Optional[str] = None
    creator_id: str
    title: str = Field(min_length=1, description="Название не может быть пустым")
    description: Optional[str] = None
    date: date
    location: Optional[str] = None
    is_private: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EventInvitation(BaseModel):
    """Приглашение пользователя на событие."""
    id: Optional[str] = None
    event_id: str
    user_id: str
    status: InvitationStatus = InvitationStatus.PENDING
    event: Optional[Event] = None
    created_at: Optional[datetime] = None


class BirthdayGreeting(BaseModel):
    """Поздравление с днем рождения."""
    id: Optional[str] = None
    birthday_user_id: str
    from_user_id: str
    message: str
    from_user: Optional[Person] = None
    created_at: Optional[datetime] = None

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Поздравление не может быть пустым")
        return value


class DashboardStats(BaseModel):
    """Сводка для главного экрана."""
    friends_count: int = 0
    wishlist_count: int = 0
    upcoming: List[BirthdayOccurrence] = []
