"""
ShuffleBot — Data Models.

A Chat is the only persisted entity: one row per conversation, holding the
active flag, the exclude/skip sets, per-weekday skips and the call link.
Sets are stored as sorted JSON strings so equal sets always serialize the same.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone

DEFAULT_URL_TEXT = "call"

WEEKDAY_NAMES = (
    "Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday",
)


class ChatDataError(ValueError):
    """Raised when a persisted set/map column can't be decoded."""


def weekday_number(ts: datetime) -> int:
    """Weekday of `ts` with Sunday as 0."""
    return ts.isoweekday() % 7


def set_to_string(values: set[str]) -> str:
    if not values:
        return ""
    return json.dumps(sorted(values), separators=(",", ":"))


def string_to_set(raw: str) -> set[str]:
    if not raw:
        return set()
    try:
        items = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ChatDataError(f"failed to unmarshal set: {exc}") from exc
    if not isinstance(items, list) or not all(isinstance(i, str) for i in items):
        raise ChatDataError(f"set must be a list of strings, got {raw!r}")
    return set(items)


def days_to_string(days: dict[int, set[str]]) -> str:
    """Serialize weekday skips as {"<day>": [sorted ids]}, dropping empty days."""
    data = {str(day): sorted(users) for day, users in sorted(days.items()) if users}
    if not data:
        return ""
    return json.dumps(data, separators=(",", ":"))


def string_to_days(raw: str) -> dict[int, set[str]]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ChatDataError(f"failed to unmarshal days: {exc}") from exc
    if not isinstance(data, dict):
        raise ChatDataError(f"days must be an object, got {raw!r}")

    days: dict[int, set[str]] = {}
    for key, users in data.items():
        try:
            day = int(key)
        except ValueError as exc:
            raise ChatDataError(f"invalid weekday key {key!r}") from exc
        if not 0 <= day <= 6:
            raise ChatDataError(f"weekday {day} is out of range")
        if users:
            days[day] = set(users)
    return days


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Chat:
    """Per-conversation state.

    A Chat returned for an unknown id is not persisted yet (saved=False)
    and is inactive until someone sends /start.
    """

    id: str
    active: bool = False
    exclude_users: set[str] = field(default_factory=set)
    skip_users: set[str] = field(default_factory=set)
    week_days: dict[int, set[str]] = field(default_factory=dict)
    url: str = ""
    url_text: str = DEFAULT_URL_TEXT
    gpt: bool = False
    created: datetime = field(default_factory=_utcnow)
    updated: datetime = field(default_factory=_utcnow)
    saved: bool = False

    # -- exclude ------------------------------------------------------------

    def add_exclude(self, user_ids: set[str]) -> None:
        self.exclude_users |= user_ids

    def del_exclude(self, user_ids: set[str]) -> None:
        self.exclude_users -= user_ids

    # -- skip today ---------------------------------------------------------

    def add_skip(self, user_id: str) -> None:
        self.skip_users.add(user_id)

    def del_skip(self, user_id: str) -> None:
        self.skip_users.discard(user_id)

    # -- weekday skips ------------------------------------------------------

    def set_days(self, user_id: str, days: set[int]) -> None:
        """Replace the user's skipped weekdays with `days` (empty → clear)."""
        for day in list(self.week_days):
            self.week_days[day].discard(user_id)
            if not self.week_days[day]:
                del self.week_days[day]
        for day in days:
            self.week_days.setdefault(day, set()).add(user_id)

    def skipped_on(self, day: int) -> set[str]:
        return self.week_days.get(day, set())

    # -- persistence helpers ------------------------------------------------

    def columns(self) -> dict[str, str]:
        """String forms of the set/map fields, as stored in the DB."""
        return {
            "exclude": set_to_string(self.exclude_users),
            "skip": set_to_string(self.skip_users),
            "days": days_to_string(self.week_days),
        }

    def load_columns(self, exclude: str, skip: str, days: str) -> None:
        self.exclude_users = string_to_set(exclude)
        self.skip_users = string_to_set(skip)
        self.week_days = string_to_days(days)
