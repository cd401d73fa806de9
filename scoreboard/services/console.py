"""Referee console commands.

Each command may mutate the reveal state of the session on display, may
recompute totals through the aggregator, and publishes one self-contained
display message through the broadcast hub. The console is the only writer
of reveal state.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import current_app

from scoreboard import db
from scoreboard.errors import (
    ConcurrencyError,
    ConfirmationRequiredError,
    NotFoundError,
    SessionStateError,
    ValidationError,
)
from scoreboard.models import Score, Session, Team, User
from scoreboard.services.broadcast import BroadcastHub, MessageType, build_message
from scoreboard.services.reveal import RevealState, RevealStateRegistry
from scoreboard.services.scheduler import schedule_auto_clear
from scoreboard.services.scores import (
    award_custom_bonus,
    award_team_custom_bonus,
    require_editable,
    resolve_bonus_definition,
)
from scoreboard.services.scoring import (
    live_session_standings,
    resolve_team_members,
    session_standings,
    team_weekly_total,
    weekly_winner,
)
from scoreboard.services.scoring.membership import is_roster_user
from scoreboard.services.sessions import get_session, session_inputs

TARGET_TYPES = ('user', 'team')


def get_hub() -> BroadcastHub:
    return current_app.extensions['broadcast_hub']


def get_registry() -> RevealStateRegistry:
    return current_app.extensions['reveal_registry']


def get_console() -> 'RefereeConsole':
    return RefereeConsole(get_hub(), get_registry())


def _get_or_404(model, object_id, label: str):
    if object_id is not None:
        if isinstance(object_id, bool):
            raise ValidationError(f"{label} id must be an integer", id=object_id)
        try:
            object_id = int(object_id)
        except (TypeError, ValueError):
            raise ValidationError(f"{label} id must be an integer", id=object_id)
    obj = db.session.get(model, object_id) if object_id is not None else None
    if obj is None:
        raise NotFoundError(f"{label} {object_id} not found", id=object_id)
    return obj


def _sort_key(user: Dict[str, Any]):
    return (
        user.get('team_id') is None,
        user.get('team_id') or 0,
        f"{user.get('first_name', '')} {user.get('last_name', '')}".lower(),
    )


def next_up_user(users, state: RevealState, current_user_id=None) -> Optional[Dict[str, Any]]:
    """Next roster user not yet shown, in team-then-name order after ``current_user_id``."""
    roster = sorted((u for u in users if is_roster_user(u)), key=_sort_key)
    start = 0
    for idx, user in enumerate(roster):
        if user['id'] == current_user_id:
            start = idx + 1
            break
    ordered = roster[start:] + roster[:start]
    for user in ordered:
        if user['id'] != current_user_id and not state.is_user_shown(user['id']):
            return user
    return None


class RefereeConsole:
    def __init__(self, hub: BroadcastHub, registry: RevealStateRegistry):
        self.hub = hub
        self.registry = registry

    # ---- session selection / reveal-state maintenance ----

    def select_session(self, session_id) -> Dict[str, Any]:
        session = get_session(session_id)
        if self.registry.active_session_id != session.id:
            self.hub.reset_display()
        state = self.registry.activate(session.id)
        return self._publish(MessageType.CLEAR_DISPLAY, state)

    def _state_for(self, session) -> RevealState:
        if self.registry.active_session_id != session.id:
            current_app.logger.info(
                f"[console] switching display session {self.registry.active_session_id} -> {session.id}"
            )
            self.hub.reset_display()
            return self.registry.activate(session.id)
        return self.registry.active

    def reset_reveal(self, session_id) -> Dict[str, Any]:
        session = get_session(session_id)
        state = self._state_for(session)
        state.reset()
        return state.snapshot()

    def set_shown_users(self, session_id, user_ids) -> Dict[str, Any]:
        state = self._state_for(get_session(session_id))
        state.set_shown_users(user_ids)
        return state.snapshot()

    def set_revealed_teams(self, session_id, team_ids) -> Dict[str, Any]:
        state = self._state_for(get_session(session_id))
        state.set_revealed_teams(team_ids)
        return state.snapshot()

    def _publish(self, message_type: MessageType, state: Optional[RevealState], **fields) -> Dict[str, Any]:
        message = build_message(message_type, reveal=state.snapshot() if state else None, **fields)
        self.hub.publish(message)
        return message

    # ---- display commands ----

    def display_user(self, session_id, user_id) -> Dict[str, Any]:
        session = get_session(session_id)
        user = _get_or_404(User, user_id, 'User')
        state = self._state_for(session)
        state.show_user(user.id)
        users = [u.to_dict() for u in User.query.order_by(User.id).all()]
        return self._publish(
            MessageType.DISPLAY_USER, state,
            user=user.to_dict(),
            team=user.team.to_dict() if user.team else None,
            next_user=next_up_user(users, state, user.id),
        )

    def display_stats(self, session_id, user_id) -> Dict[str, Any]:
        session = get_session(session_id)
        user = _get_or_404(User, user_id, 'User')
        inputs = session_inputs(session)
        score = next((s for s in inputs['scores'] if s['user_id'] == user.id), None)
        state = self._state_for(session)
        state.show_user(user.id)
        return self._publish(
            MessageType.DISPLAY_STATS, state,
            user=user.to_dict(),
            team=user.team.to_dict() if user.team else None,
            score=score,
            settings=inputs['settings'],
            next_user=next_up_user(inputs['users'], state, user.id),
        )

    def display_team_leaderboard(self, session_id) -> Dict[str, Any]:
        session = get_session(session_id)
        inputs = session_inputs(session)
        state = self._state_for(session)
        standings = live_session_standings(
            inputs['team_ids'], inputs['session'], inputs['scores'], inputs['users'],
            inputs['settings']['bonus_values'], state.shown_user_ids, state.revealed_bonus_team_ids,
        )
        message = self._publish(
            MessageType.DISPLAY_TEAM_LEADERBOARD, state,
            session=inputs['session'],
            teams=inputs['teams'],
            users=inputs['users'],
            scores=inputs['scores'],
            settings=inputs['settings'],
            standings=standings,
        )
        app = current_app._get_current_object()
        schedule_auto_clear(app, self.hub, self.hub.sequence,
                            int(app.config.get('TEAM_LEADERBOARD_DURATION_SEC', 0)))
        return message

    def display_team_bonus(self, session_id, team_id, category=None, points=None) -> Dict[str, Any]:
        session = get_session(session_id)
        team = _get_or_404(Team, team_id, 'Team')
        inputs = session_inputs(session)
        members = resolve_team_members(team.id, inputs['session'], inputs['scores'], inputs['users'])
        total = team_weekly_total(
            team.id, inputs['scores'], members, inputs['settings']['bonus_values'],
            inputs['session']['team_custom_bonuses'], inputs['session']['excluded_user_ids'],
        )
        if category is not None:
            if points is not None:
                try:
                    bonus_total = int(points)
                except (TypeError, ValueError):
                    raise ValidationError('points must be an integer', points=points)
            else:
                bonus_total = int(inputs['settings']['bonus_values'].get(category, 0) or 0)
            categories = [category]
        else:
            bonus_total = total['bonus_points']
            categories = total['qualifying_categories']
        state = self._state_for(session)
        state.reveal_team_bonus(team.id)
        return self._publish(
            MessageType.DISPLAY_TEAM_BONUS, state,
            team_id=team.id,
            team_name=team.name,
            team_color=team.color,
            bonus_total=bonus_total,
            bonus_categories=categories,
            custom_bonuses=total['custom_bonuses'],
        )

    def display_custom_bonus(self, session_id, target_type: str, target_id, bonus_id=None,
                             name=None, points=None, awarded_by=None) -> Dict[str, Any]:
        session = get_session(session_id)
        require_editable(session)
        if target_type not in TARGET_TYPES:
            raise ValidationError(f"target_type must be one of {', '.join(TARGET_TYPES)}")
        if target_type == 'user':
            user = _get_or_404(User, target_id, 'User')
            score = Score.query.filter_by(session_id=session.id, user_id=user.id).first()
            if score is None:
                raise NotFoundError(f"No score for user {user.id} in session {session.id}",
                                    user_id=user.id, session_id=session.id)
            bonus = resolve_bonus_definition(bonus_id, name, points)
            award_custom_bonus(score, bonus, awarded_by)
            target = {'user': user.to_dict(), 'score': score.to_dict()}
        else:
            team = _get_or_404(Team, target_id, 'Team')
            bonus = resolve_bonus_definition(bonus_id, name, points)
            award_team_custom_bonus(session, team.id, bonus, awarded_by)
            target = {'team': team.to_dict()}
        state = self._state_for(session)
        return self._publish(
            MessageType.DISPLAY_CUSTOM_BONUS, state,
            bonus=bonus.to_dict(),
            target_type=target_type,
            target=target,
        )

    def celebrate_winning_team(self, session_id) -> Dict[str, Any]:
        session = get_session(session_id)
        inputs = session_inputs(session)
        standings = session_standings(
            inputs['team_ids'], inputs['session'], inputs['scores'], inputs['users'],
            inputs['settings']['bonus_values'],
        )
        winner_id = weekly_winner(standings)
        if winner_id is None:
            raise NotFoundError('No winning team found', session_id=session.id)
        standing = next(s for s in standings if s['team_id'] == winner_id)
        team = db.session.get(Team, winner_id)
        winning_team = dict(standing)
        winning_team['team'] = team.to_dict() if team else None
        winning_team['members'] = [
            u for u in inputs['users']
            if u['id'] in resolve_team_members(winner_id, inputs['session'], inputs['scores'], inputs['users'])
        ]
        return self._publish(
            MessageType.CELEBRATE_WINNING_TEAM, self._state_for(session),
            winning_team=winning_team,
            settings=inputs['settings'],
        )

    def clear_display(self, session_id) -> Dict[str, Any]:
        state = self._state_for(get_session(session_id))
        return self._publish(MessageType.CLEAR_DISPLAY, state)

    def show_season_standings(self, session_id) -> Dict[str, Any]:
        session = get_session(session_id)
        return self._publish(MessageType.SHOW_SEASON_STANDINGS, self._state_for(session),
                             season_id=session.season_id)

    # ---- terminal ----

    def finalize_week(self, session_id, confirm: bool = False) -> Dict[str, Any]:
        """Close the session and credit the weekly winner, using ungated totals."""
        session = get_session(session_id)
        if session.status == 'closed':
            raise ConcurrencyError(f"Session {session.id} is already finalized", session_id=session.id)
        if session.status != 'open':
            raise SessionStateError(f"Session {session.id} is {session.status}; open it first",
                                    status=session.status)
        if not confirm:
            raise ConfirmationRequiredError('Finalizing closes the week; resend with confirm=true',
                                            session_id=session.id)
        inputs = session_inputs(session)
        standings = session_standings(
            inputs['team_ids'], inputs['session'], inputs['scores'], inputs['users'],
            inputs['settings']['bonus_values'],
        )
        winner_id = weekly_winner(standings)
        # Close only if still open: of two racing finalizes exactly one wins this update
        closed = Session.query.filter_by(id=session.id, status='open').update(
            {'status': 'closed', 'closed_at': datetime.now(timezone.utc), 'winning_team_id': winner_id},
            synchronize_session=False,
        )
        if closed != 1:
            db.session.rollback()
            raise ConcurrencyError(f"Session {session.id} is already finalized", session_id=session.id)
        if winner_id is not None:
            Team.query.filter_by(id=winner_id).update(
                {'weekly_wins': Team.weekly_wins + 1}, synchronize_session=False,
            )
        db.session.commit()
        current_app.logger.info(f"[finalize] session={session.id} winner={winner_id} teams={len(standings)}")
        return {
            'session': session.to_dict(),
            'standings': standings,
            'winning_team_id': winner_id,
        }
