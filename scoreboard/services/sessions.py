"""Session lifecycle and the plain-dict inputs the aggregator consumes.

Status moves draft -> open -> closed, and closed -> open to reopen.
``is_archived`` is a separate flag that can be toggled at any status.
"""
from datetime import datetime, timezone

from flask import current_app

from scoreboard import db
from scoreboard.errors import ConcurrencyError, NotFoundError, SessionStateError
from scoreboard.models import Score, Session, Settings, Team, User

_OPENABLE = {'draft', 'closed'}


def get_session(session_id) -> Session:
    session = db.session.get(Session, session_id) if session_id is not None else None
    if session is None:
        raise NotFoundError(f"Session {session_id} not found", session_id=session_id)
    return session


def get_settings() -> Settings:
    settings = Settings.query.order_by(Settings.id).first()
    if settings is None:
        settings = Settings()
        settings.point_values = current_app.config.get('DEFAULT_POINT_VALUES', {})
        settings.bonus_values = current_app.config.get('DEFAULT_BONUS_VALUES', {})
        db.session.add(settings)
        db.session.commit()
    return settings


def open_session(session: Session) -> Session:
    if session.status not in _OPENABLE:
        raise SessionStateError(f"Session {session.id} is already {session.status}", status=session.status)
    reopening = session.status == 'closed'
    previous_winner = session.winning_team_id
    opened = Session.query.filter_by(id=session.id, status=session.status).update(
        {'status': 'open', 'closed_at': None, 'winning_team_id': None},
        synchronize_session=False,
    )
    if opened != 1:
        db.session.rollback()
        raise ConcurrencyError(f"Session {session.id} changed status meanwhile", session_id=session.id)
    if reopening and previous_winner:
        # Take back the win credited at finalize so a second finalize starts clean
        Team.query.filter(Team.id == previous_winner, Team.weekly_wins > 0).update(
            {'weekly_wins': Team.weekly_wins - 1}, synchronize_session=False,
        )
    db.session.commit()
    current_app.logger.info(f"[session-open] session={session.id} reopen={reopening}")
    return session


def close_session(session: Session) -> Session:
    if session.status != 'open':
        raise SessionStateError(f"Only open sessions can be closed (status={session.status})",
                                status=session.status)
    session.status = 'closed'
    session.closed_at = datetime.now(timezone.utc)
    db.session.add(session)
    db.session.commit()
    current_app.logger.info(f"[session-close] session={session.id}")
    return session


def archive_session(session: Session, archived: bool = True) -> Session:
    session.is_archived = bool(archived)
    db.session.add(session)
    db.session.commit()
    current_app.logger.info(f"[session-archive] session={session.id} archived={session.is_archived}")
    return session


def set_excluded_users(session: Session, user_ids) -> Session:
    session.excluded_user_ids = user_ids
    db.session.add(session)
    db.session.commit()
    return session


def session_scores(session: Session, published_only: bool = True):
    query = Score.query.filter_by(session_id=session.id)
    if published_only:
        query = query.filter_by(is_draft=False)
    return query.order_by(Score.total_points.desc(), Score.id).all()


def session_inputs(session: Session, published_only: bool = True) -> dict:
    """Everything the aggregator needs for one session, as plain dicts."""
    scores = [s.to_dict() for s in session_scores(session, published_only)]
    teams = Team.query.filter((Team.season_id == session.season_id) | (Team.season_id.is_(None))) \
        .order_by(Team.id).all()
    team_ids = {t.id for t in teams}
    team_ids.update(s['team_id'] for s in scores if s['team_id'] is not None)
    settings = get_settings()
    return {
        'session': session.to_dict(),
        'scores': scores,
        'users': [u.to_dict() for u in User.query.order_by(User.id).all()],
        'teams': [t.to_dict() for t in teams],
        'team_ids': sorted(team_ids),
        'settings': settings.to_dict(),
    }
