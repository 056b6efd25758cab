from __future__ import annotations

from typing import Iterable, List, Mapping, Optional

import pandas as pd

from .leaderboard_compute import is_higher_better, select_personal_record, beats, is_finite_number

def get_personal_records(
    results: Iterable[dict],
    user_name: str,
    pr_direction: Optional[Mapping[str, bool]] = None,
) -> List[dict]:
    """One PR per activity the user has logged, sorted by activity name."""
    grouped = {}
    for result in results:
        if result.get('userName') != user_name or not is_finite_number(result.get('value')):
            continue
        grouped.setdefault(result['activity'], []).append(result)

    records = []
    for activity, activity_results in grouped.items():
        higher_is_better = is_higher_better(activity, pr_direction)
        best = select_personal_record(activity_results, higher_is_better)
        records.append({
            'activity': activity,
            'value': best['value'],
            'date': best['date'],
            'higherIsBetter': higher_is_better,
        })

    records.sort(key=lambda record: record['activity'])
    return records


def is_new_personal_record(previous_results: Iterable[dict], value: float, higher_is_better: bool) -> bool:
    """True when ``value`` strictly beats every earlier result (or there are none)."""
    previous = [result for result in previous_results if is_finite_number(result.get('value'))]
    if not previous:
        return True
    best = select_personal_record(previous, higher_is_better)
    return beats(value, best['value'], higher_is_better)


def get_progress_series(results: Iterable[dict], user_name: str, activity: str, higher_is_better: bool = True):
    """Chart data for one user's activity history.

    Returns a list of ``{"date", "value", "best"}`` rows ordered by date, where
    ``best`` is the running personal record up to and including that row.
    """
    df = pd.DataFrame(
        [
            r for r in results
            if r.get('userName') == user_name and r.get('activity') == activity and is_finite_number(r.get('value'))
        ],
        columns=['id', 'userName', 'activity', 'value', 'date'],
    )
    if df.empty:
        return []

    df['parsed_date'] = pd.to_datetime(df['date'], format='ISO8601', errors='coerce', utc=True)
    df = df[df['parsed_date'].notna()]
    df = df.sort_values('parsed_date', kind='stable').reset_index(drop=True)
    df['best'] = df['value'].cummax() if higher_is_better else df['value'].cummin()

    return [
        {'date': row['date'], 'value': float(row['value']), 'best': float(row['best'])}
        for row in df[['date', 'value', 'best']].to_dict(orient='records')
    ]
