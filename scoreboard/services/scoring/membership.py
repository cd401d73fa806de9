from typing import Any, Dict, Iterable, Optional, Set

# Roles that count toward a team's roster
ELIGIBLE_ROLES = frozenset({'member', 'team-leader', 'admin'})


def is_roster_user(user: Dict[str, Any]) -> bool:
    return bool(user.get('is_active')) and user.get('role') in ELIGIBLE_ROLES


def resolve_team_members(
    team_id,
    session: Optional[Dict[str, Any]],
    session_scores: Iterable[Dict[str, Any]],
    users: Iterable[Dict[str, Any]],
) -> Set:
    """Return the resolved membership of ``team_id`` for one session.

    Resolution order is historical first, then current:

    - every user who scored for the team in this session (the ``team_id``
      captured on the score at scoring time), then
    - every active user with an eligible role whose current ``team_id`` is
      the team.

    The union is returned so a team is never short-counted when members
    moved teams mid-season or have not scored yet. Session exclusions are
    not applied here; the aggregator removes them.
    """
    session_id = (session or {}).get('id')
    members = set()
    for score in session_scores:
        if session_id is not None and score.get('session_id', session_id) != session_id:
            continue
        if score.get('team_id') == team_id and score.get('user_id') is not None:
            members.add(score['user_id'])
    for user in users:
        if user.get('team_id') == team_id and is_roster_user(user):
            members.add(user['id'])
    return members
