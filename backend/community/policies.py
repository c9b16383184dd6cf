"""
Edit-window and ownership rules shared by discussions, comments, reviews
and review replies.
"""
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.utils import timezone

from .exceptions import EditWindowExpired, Forbidden

DEFAULT_EDIT_WINDOW_HOURS = {
    'discussion': 48,
    'comment': 24,
    'review': 48,
    'reply': 24,
}

_LABELS = {
    'discussion': 'Discussions',
    'comment': 'Comments',
    'review': 'Reviews',
    'reply': 'Replies',
}


def edit_window_hours(kind: str) -> int:
    windows = getattr(settings, 'EDIT_WINDOW_HOURS', {})
    return windows.get(kind, DEFAULT_EDIT_WINDOW_HOURS[kind])


def hours_elapsed(created_at, now=None) -> float:
    now = now or timezone.now()
    return (now - created_at) / timedelta(hours=1)


def is_editable(kind: str, created_at, now=None) -> bool:
    """Editable iff no more than the window's hours have passed (inclusive)."""
    return hours_elapsed(created_at, now) <= edit_window_hours(kind)


def ensure_editable(kind: str, created_at, now=None) -> None:
    if not is_editable(kind, created_at, now):
        hours = edit_window_hours(kind)
        raise EditWindowExpired(
            f"{_LABELS[kind]} can only be edited within {hours} hours of submission."
        )


def can_mutate(author_id: Optional[int], acting_user_id: Optional[int]) -> bool:
    return acting_user_id is not None and author_id == acting_user_id


def ensure_owner(author_id, acting_user_id, action='modify', noun='content') -> None:
    if not can_mutate(author_id, acting_user_id):
        raise Forbidden(f"You can only {action} your own {noun}.")
