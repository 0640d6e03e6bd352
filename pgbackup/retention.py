# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgbackup Retention - Decide which backups are past the retention window.

Decisions are made from storage keys alone: the timestamp embedded in
each key is the artifact's age. Keys without a parseable timestamp are
never selected for deletion.

Ages are whole days, floored:

    age_days = (now - created_at) // 86400 seconds

A key is expired when age_days > max_age_days. An artifact exactly
max_age_days old is kept, and because of the floor it stays kept until
it is a full max_age_days + 1 days old.

Nothing here deletes anything or logs; callers act on the result.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Iterable, Set

from pgbackup.addressing import normalize_timestamp, parse_timestamp
from pgbackup.exceptions import ConfigurationError

SECONDS_PER_DAY = 86400

# Three months of daily backups
DEFAULT_MAX_AGE_DAYS = 90


@dataclass(frozen=True)
class RetentionPolicy:
    """How long backups are kept."""

    max_age_days: int = DEFAULT_MAX_AGE_DAYS

    def __post_init__(self) -> None:
        if (
            isinstance(self.max_age_days, bool)
            or not isinstance(self.max_age_days, int)
            or self.max_age_days < 0
        ):
            raise ConfigurationError(
                f"max_age_days must be an integer >= 0, got {self.max_age_days!r}",
                details={"max_age_days": self.max_age_days},
            )


@dataclass(frozen=True)
class RetentionDecision:
    """Outcome of evaluating a listing against a policy."""

    now: datetime
    max_age_days: int
    expired: FrozenSet[str] = field(default_factory=frozenset)
    retained: FrozenSet[str] = field(default_factory=frozenset)
    unparseable: FrozenSet[str] = field(default_factory=frozenset)


def age_in_days(created_at: datetime, now: datetime) -> int:
    """
    Whole days between created_at and now, floored.

    Future timestamps yield a negative age.
    """
    delta = normalize_timestamp(now) - normalize_timestamp(created_at)
    return int(delta.total_seconds()) // SECONDS_PER_DAY


def evaluate_retention(
    keys: Iterable[str],
    policy: RetentionPolicy,
    now: datetime | None = None,
) -> RetentionDecision:
    """
    Partition keys into expired, retained and unparseable.

    Args:
        keys: Storage keys (or filenames) of existing backups
        policy: Retention policy to apply
        now: Evaluation time (default: current local time)

    Returns:
        RetentionDecision
    """
    if now is None:
        now = datetime.now()

    expired: Set[str] = set()
    retained: Set[str] = set()
    unparseable: Set[str] = set()

    for key in keys:
        created_at = parse_timestamp(key)
        if created_at is None:
            unparseable.add(key)
        elif age_in_days(created_at, now) > policy.max_age_days:
            expired.add(key)
        else:
            retained.add(key)

    return RetentionDecision(
        now=normalize_timestamp(now),
        max_age_days=policy.max_age_days,
        expired=frozenset(expired),
        retained=frozenset(retained),
        unparseable=frozenset(unparseable),
    )


def select_expired(
    keys: Iterable[str],
    max_age_days: int,
    now: datetime | None = None,
) -> Set[str]:
    """
    Return the keys whose embedded timestamp is older than max_age_days.

    Example:
        >>> select_expired(
        ...     {"h/d/20230101_000000.sql.gz", "h/d/20240101_000000.sql.gz"},
        ...     90,
        ...     datetime(2024, 3, 1),
        ... )
        {'h/d/20230101_000000.sql.gz'}
    """
    decision = evaluate_retention(keys, RetentionPolicy(max_age_days), now)
    return set(decision.expired)
