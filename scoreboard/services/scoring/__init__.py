"""Pure point arithmetic over plain dicts (the models' ``to_dict()`` shapes)."""

from .aggregator import (
    METRIC_CATEGORIES,
    clamp_metrics,
    score_total,
    team_weekly_total,
    live_team_weekly_total,
    session_standings,
    live_session_standings,
    weekly_winner,
    season_totals,
)
from .membership import ELIGIBLE_ROLES, resolve_team_members

__all__ = [
    'METRIC_CATEGORIES',
    'ELIGIBLE_ROLES',
    'clamp_metrics',
    'score_total',
    'team_weekly_total',
    'live_team_weekly_total',
    'session_standings',
    'live_session_standings',
    'weekly_winner',
    'season_totals',
    'resolve_team_members',
]
