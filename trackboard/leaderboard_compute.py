"""Leaderboard and personal-record computation.

Everything in this module is pure: it reads plain result/user dicts (the
same camelCase shape the documents are stored in) and returns new
structures. Both the interactive refresh in
:mod:`trackboard.leaderboard_service` and the offline backfill script call
:func:`compute_leaderboards`.
"""

from __future__ import annotations

import math
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional

AGE_CATEGORIES = (
    'overall',
    '0-19',
    '20-29',
    '30-39',
    '40-49',
    '50-59',
    '60-69',
    '70-79',
    '80+',
)

LEADERBOARD_GENDERS = ('Male', 'Female')

TOP_N = 3

# upper bound (exclusive) -> category; anything past the last bound is 80+
_AGE_BOUNDS = (
    (20, '0-19'),
    (30, '20-29'),
    (40, '30-39'),
    (50, '40-49'),
    (60, '50-59'),
    (70, '60-69'),
    (80, '70-79'),
)


def get_age_from_birthdate(birthdate: Optional[str], today: Optional[date] = None) -> Optional[int]:
    """Whole years between an ``MM/DD/YYYY`` birthdate and ``today``.

    Returns ``None`` for a missing or unparseable birthdate; bad data is never
    allowed to break aggregation.
    """
    if not birthdate:
        return None
    try:
        month, day, year = (int(part) for part in birthdate.split('/'))
        born = date(year, month, day)
    except (ValueError, TypeError, AttributeError):
        return None

    today = today or date.today()
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age


def get_age_category(age: Optional[int]) -> str:
    if age is None:
        return 'overall'
    for upper, category in _AGE_BOUNDS:
        if age < upper:
            return category
    return '80+'


def is_higher_better(activity: str, pr_direction: Optional[Mapping[str, bool]]) -> bool:
    # missing entries default to higher-is-better
    return (pr_direction or {}).get(activity) is not False


def beats(candidate: float, current: float, higher_is_better: bool) -> bool:
    return candidate > current if higher_is_better else candidate < current


def is_finite_number(value) -> bool:
    try:
        return math.isfinite(value)
    except TypeError:
        return False


def select_personal_record(results: Iterable[dict], higher_is_better: bool) -> dict:
    """Return the best result of one user in one activity.

    Ties keep the first result encountered in input order.
    """
    best = None
    for result in results:
        if best is None or beats(result['value'], best['value'], higher_is_better):
            best = result
    if best is None:
        raise ValueError("select_personal_record() needs at least one result")
    return best


def take_top_n(entries: Iterable[dict], higher_is_better: bool, n: int = TOP_N) -> List[dict]:
    """Sort best-to-worst and keep at most ``n`` entries.

    ``sorted`` is stable, so entries with equal values stay in input order.
    """
    ranked = sorted(entries, key=lambda entry: entry['value'], reverse=higher_is_better)
    return ranked[:n]


def _empty_activity_leaderboard() -> Dict[str, Dict[str, List[dict]]]:
    return {category: {gender: [] for gender in LEADERBOARD_GENDERS} for category in AGE_CATEGORIES}


def compute_leaderboards(
    results: Iterable[dict],
    users: Iterable[dict],
    activities: Iterable[str],
    pr_direction: Optional[Mapping[str, bool]] = None,
    today: Optional[date] = None,
) -> Dict[str, Dict[str, Dict[str, List[dict]]]]:
    """Build ``{activity: {age_category: {"Male": [...], "Female": [...]}}}``.

    ``results`` need ``userName``, ``activity``, ``value`` and ``date``;
    ``users`` need ``fullName`` and optionally ``gender`` / ``birthdate``.
    Activities without any results are left out of the output. Users are
    joined on their trimmed full name; the last duplicate name wins.
    """
    today = today or date.today()
    results = [result for result in results if is_finite_number(result.get('value'))]

    user_map = {}
    for user in users:
        user_map[(user.get('fullName') or '').strip()] = user

    leaderboards = {}
    for activity in activities:
        activity_results = [result for result in results if result.get('activity') == activity]
        if not activity_results:
            continue

        higher_is_better = is_higher_better(activity, pr_direction)

        by_user: Dict[str, List[dict]] = {}
        for result in activity_results:
            by_user.setdefault(result['userName'], []).append(result)

        board = _empty_activity_leaderboard()
        for user_name, user_results in by_user.items():
            best = select_personal_record(user_results, higher_is_better)
            user = user_map.get((user_name or '').strip())
            gender = user.get('gender') if user else None
            if gender not in LEADERBOARD_GENDERS:
                continue

            category = get_age_category(get_age_from_birthdate(user.get('birthdate'), today))
            entry = {
                'userName': best['userName'],
                'value': best['value'],
                'date': best['date'],
            }
            board['overall'][gender].append(entry)
            if category != 'overall':
                board[category][gender].append(entry)

        for category in AGE_CATEGORIES:
            for gender in LEADERBOARD_GENDERS:
                board[category][gender] = take_top_n(board[category][gender], higher_is_better)

        leaderboards[activity] = board

    return leaderboards
