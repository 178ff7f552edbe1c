"""Core business logic - framework-agnostic pure Python functions."""

from .schemas import (
    Person,
    FriendshipStatus,
    FriendshipEdge,
    ResolvedConnection,
    ResolvedConnections,
    NextOccurrence,
    BirthdayOccurrence,
    LeapDayRule,
    BirthdayBadge,
    BirthdayTiming,
    CalendarDay,
    BirthdayAlert,
    WishlistItem,
    PriceTier,
    Event,
    EventInvitation,
    InvitationStatus,
    BirthdayGreeting,
    DashboardStats,
)

from .friendships import (
    FriendshipEdgeError,
    FriendshipTransitionError,
    InvitationError,
    resolve,
    exclude_connected,
    ensure_can_respond,
    ensure_invitees_are_friends,
)

from .birthdays import (
    today_in_timezone,
    occurrence_in_year,
    next_occurrence,
    upcoming,
    on_day,
    todays_birthdays,
    in_month,
    birthday_badge,
    birthday_timing,
    shift_month,
    calendar_grid,
    birthday_alerts,
)

__all__ = [
    # Schemas
    "Person",
    "FriendshipStatus",
    "FriendshipEdge",
    "ResolvedConnection",
    "ResolvedConnections",
    "NextOccurrence",
    "BirthdayOccurrence",
    "LeapDayRule",
    "BirthdayBadge",
    "BirthdayTiming",
    "CalendarDay",
    "BirthdayAlert",
    "WishlistItem",
    "PriceTier",
    "Event",
    "EventInvitation",
    "InvitationStatus",
    "BirthdayGreeting",
    "DashboardStats",
    # Friendship graph
    "FriendshipEdgeError",
    "FriendshipTransitionError",
    "InvitationError",
    "resolve",
    "exclude_connected",
    "ensure_can_respond",
    "ensure_invitees_are_friends",
    # Birthday occurrences
    "today_in_timezone",
    "occurrence_in_year",
    "next_occurrence",
    "upcoming",
    "on_day",
    "todays_birthdays",
    "in_month",
    "birthday_badge",
    "birthday_timing",
    "shift_month",
    "calendar_grid",
    "birthday_alerts",
]
