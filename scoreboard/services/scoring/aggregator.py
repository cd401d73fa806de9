"""Point totals for scores, teams and seasons.

All functions here are pure: they read only their arguments and are safe to
re-run on every display refresh. Inputs are the plain dict shapes produced by
the models' ``to_dict()`` (``user_id``, ``team_id``, ``metrics``,
``custom_bonuses``, ``total_points`` for scores).

Two team paths exist on purpose and share the same primitives:

- ``team_weekly_total`` is the ungated truth used for finalization and
  season totals.
- ``live_team_weekly_total`` is the display path, gated by which users the
  referee has shown and whether the team's bonus was revealed.
"""
import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Set

from .membership import resolve_team_members

logger = logging.getLogger(__name__)

METRIC_CATEGORIES = ('attendance', 'one21s', 'referrals', 'tyfcb', 'visitors')
# Per-metric upper bounds; attendance is a yes/no
METRIC_CAPS = {'attendance': 1}


def _clamp(name: str, value: Any) -> int:
    try:
        number = int(value or 0)
    except (TypeError, ValueError):
        logger.warning("[clamp] metric=%s value=%r is not numeric, using 0", name, value)
        return 0
    if number < 0:
        logger.warning("[clamp] metric=%s value=%s is negative, using 0", name, number)
        return 0
    cap = METRIC_CAPS.get(name)
    if cap is not None and number > cap:
        return cap
    return number


def clamp_metrics(metrics: Optional[Dict[str, Any]]) -> Dict[str, int]:
    """Normalise a metrics mapping: every category present, non-negative ints, caps applied."""
    metrics = metrics or {}
    return {name: _clamp(name, metrics.get(name)) for name in METRIC_CATEGORIES}


def score_total(metrics, point_values, custom_bonuses=()) -> int:
    """Σ metrics[k]·point_values[k] + Σ custom_bonuses.points"""
    clean = clamp_metrics(metrics)
    point_values = point_values or {}
    total = sum(clean[name] * int(point_values.get(name, 0) or 0) for name in METRIC_CATEGORIES)
    total += sum(int(b.get('points', 0) or 0) for b in (custom_bonuses or ()))
    return total


# ---- shared team primitives ----

def _team_scores(team_id, session_scores, excluded: Set) -> List[Dict[str, Any]]:
    return [
        s for s in session_scores
        if s.get('team_id') == team_id and s.get('user_id') not in excluded
    ]


def _member_points(scores: Iterable[Dict[str, Any]]) -> int:
    return sum(int(s.get('total_points', 0) or 0) for s in scores)


def _categorical_bonus(team_scores, non_excluded_members: Set, bonus_values):
    """All-in bonuses: full participation, then every member positive per category."""
    if not non_excluded_members or len(team_scores) != len(non_excluded_members):
        return 0, []
    by_user = {s['user_id']: s for s in team_scores}
    if any(m not in by_user for m in non_excluded_members):
        return 0, []
    bonus_values = bonus_values or {}
    points = 0
    categories = []
    for category in METRIC_CATEGORIES:
        if all(clamp_metrics(by_user[m].get('metrics'))[category] > 0 for m in non_excluded_members):
            points += int(bonus_values.get(category, 0) or 0)
            categories.append(category)
    return points, categories


def _team_custom_bonuses(team_id, team_custom_bonuses) -> List[Dict[str, Any]]:
    return [b for b in (team_custom_bonuses or ()) if b.get('team_id') == team_id]


def team_weekly_total(
    team_id,
    session_scores,
    resolved_members,
    bonus_values,
    team_custom_bonuses=(),
    excluded_user_ids=(),
) -> Dict[str, Any]:
    excluded = set(excluded_user_ids or ())
    team_scores = _team_scores(team_id, session_scores, excluded)
    non_excluded = set(resolved_members) - excluded
    member_points = _member_points(team_scores)
    categorical, categories = _categorical_bonus(team_scores, non_excluded, bonus_values)
    customs = _team_custom_bonuses(team_id, team_custom_bonuses)
    bonus_points = categorical + sum(int(b.get('points', 0) or 0) for b in customs)
    return {
        'team_id': team_id,
        'member_points': member_points,
        'bonus_points': bonus_points,
        'qualifying_categories': categories,
        'custom_bonuses': customs,
        'total_points': member_points + bonus_points,
    }


def live_team_weekly_total(
    team_id,
    session_scores,
    resolved_members,
    bonus_values,
    team_custom_bonuses=(),
    excluded_user_ids=(),
    shown_user_ids=(),
    bonus_revealed: bool = True,
) -> Dict[str, Any]:
    """Display-side team total while scores are being revealed.

    Only shown users contribute member points. All-in bonuses stay pending
    until every resolved, non-excluded member has been shown, and no bonus
    at all appears before the team's bonus is revealed.
    """
    excluded = set(excluded_user_ids or ())
    shown = set(shown_user_ids or ())
    non_excluded = set(resolved_members) - excluded
    team_scores = _team_scores(team_id, session_scores, excluded)
    shown_scores = [s for s in team_scores if s.get('user_id') in shown]
    member_points = _member_points(shown_scores)

    all_shown = bool(non_excluded) and non_excluded <= shown
    categorical, categories = 0, []
    customs: List[Dict[str, Any]] = []
    if bonus_revealed:
        if all_shown:
            categorical, categories = _categorical_bonus(team_scores, non_excluded, bonus_values)
        customs = _team_custom_bonuses(team_id, team_custom_bonuses)
    bonus_points = categorical + sum(int(b.get('points', 0) or 0) for b in customs)
    return {
        'team_id': team_id,
        'member_points': member_points,
        'bonus_points': bonus_points,
        'qualifying_categories': categories,
        'custom_bonuses': customs,
        'total_points': member_points + bonus_points,
        'shown_member_count': len(non_excluded & shown),
        'member_count': len(non_excluded),
        'bonus_pending': not (bonus_revealed and all_shown),
    }


def _rank(totals: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    ordered = sorted(totals, key=lambda t: t['total_points'], reverse=True)
    prev_points = None
    rank = 0
    for idx, entry in enumerate(ordered, start=1):
        if entry['total_points'] != prev_points:
            rank = idx
            prev_points = entry['total_points']
        entry['rank'] = rank
    return ordered


def session_standings(team_ids, session, session_scores, users, bonus_values) -> List[Dict[str, Any]]:
    """Ungated standings for every team in ``team_ids``, ranked."""
    session = session or {}
    totals = []
    for team_id in team_ids:
        members = resolve_team_members(team_id, session, session_scores, users)
        totals.append(team_weekly_total(
            team_id,
            session_scores,
            members,
            bonus_values,
            session.get('team_custom_bonuses'),
            session.get('excluded_user_ids'),
        ))
    return _rank(totals)


def live_session_standings(
    team_ids,
    session,
    session_scores,
    users,
    bonus_values,
    shown_user_ids,
    revealed_bonus_team_ids,
) -> List[Dict[str, Any]]:
    """Reveal-gated standings for the audience display, ranked."""
    session = session or {}
    revealed = set(revealed_bonus_team_ids or ())
    closed = session.get('status') == 'closed'
    totals = []
    for team_id in team_ids:
        members = resolve_team_members(team_id, session, session_scores, users)
        totals.append(live_team_weekly_total(
            team_id,
            session_scores,
            members,
            bonus_values,
            session.get('team_custom_bonuses'),
            session.get('excluded_user_ids'),
            shown_user_ids,
            bonus_revealed=closed or team_id in revealed,
        ))
    return _rank(totals)


def weekly_winner(totals: Iterable[Dict[str, Any]]):
    """Team with the strictly greatest weekly total; ties (and all-zero weeks) have no winner."""
    best_points = 0
    winners: List[Any] = []
    for entry in totals:
        points = entry['total_points']
        if points > best_points:
            best_points = points
            winners = [entry['team_id']]
        elif points == best_points and points > 0:
            winners.append(entry['team_id'])
    if len(winners) == 1:
        return winners[0]
    return None


def _average(total: int, count: int) -> int:
    # half-up, matching how averages are shown on the season board
    return int(math.floor(total / count + 0.5)) if count else 0


def season_totals(sessions, scores_by_session, users, settings) -> Dict[str, Any]:
    """Cumulative user and team totals over closed, non-archived sessions."""
    bonus_values = (settings or {}).get('bonus_values') or {}
    users = list(users or ())
    user_totals: Dict[Any, Dict[str, Any]] = {}
    team_totals: Dict[Any, Dict[str, Any]] = {}
    weekly_winners = []

    for session in sessions:
        if session.get('status') != 'closed' or session.get('is_archived'):
            continue
        scores = list(scores_by_session.get(session['id'], ()))

        for score in scores:
            entry = user_totals.setdefault(score['user_id'], {
                'user_id': score['user_id'],
                'total_points': 0,
                'week_count': 0,
                'average_points': 0,
                'best_week': 0,
                'category_totals': {name: 0 for name in METRIC_CATEGORIES},
            })
            points = int(score.get('total_points', 0) or 0)
            entry['total_points'] += points
            entry['week_count'] += 1
            entry['best_week'] = max(entry['best_week'], points)
            for name, value in clamp_metrics(score.get('metrics')).items():
                entry['category_totals'][name] += value

        team_ids = {s['team_id'] for s in scores if s.get('team_id') is not None}
        team_ids.update(b['team_id'] for b in (session.get('team_custom_bonuses') or ()))
        weekly = session_standings(sorted(team_ids), session, scores, users, bonus_values)
        winner = weekly_winner(weekly)
        weekly_winners.append({'session_id': session['id'], 'team_id': winner})

        for standing in weekly:
            entry = team_totals.setdefault(standing['team_id'], {
                'team_id': standing['team_id'],
                'total_points': 0,
                'week_count': 0,
                'average_points': 0,
                'best_week': 0,
                'weekly_wins': 0,
            })
            entry['total_points'] += standing['total_points']
            entry['week_count'] += 1
            entry['best_week'] = max(entry['best_week'], standing['total_points'])
            if winner == standing['team_id']:
                entry['weekly_wins'] += 1

    for entry in list(user_totals.values()) + list(team_totals.values()):
        entry['average_points'] = _average(entry['total_points'], entry['week_count'])

    return {
        'user_totals': sorted(user_totals.values(), key=lambda t: t['total_points'], reverse=True),
        'team_totals': sorted(team_totals.values(), key=lambda t: t['total_points'], reverse=True),
        'weekly_winners': weekly_winners,
    }
