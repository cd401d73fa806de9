"""Score entry, custom bonus awards and total re-derivation.

``Score.total_points`` is always recomputed from metrics and awarded custom
bonuses through ``score_total``; it is never patched incrementally.
"""
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy.exc import IntegrityError

from scoreboard import db
from scoreboard.errors import DuplicateBonusError, NotFoundError, SessionStateError, ValidationError
from scoreboard.models import AwardedCustomBonus, CustomBonus, Score, Session, TeamCustomBonus, User
from scoreboard.services.scoring import clamp_metrics, score_total
from scoreboard.services.sessions import get_settings


def recompute_score_total(score: Score, point_values=None) -> int:
    if point_values is None:
        point_values = get_settings().point_values
    score.total_points = score_total(
        score.metrics,
        point_values,
        [b.to_dict() for b in score.custom_bonuses],
    )
    return score.total_points


def require_editable(session: Session) -> None:
    """Scores and awards of a finalized week are frozen until it is reopened."""
    if session.status == 'closed':
        raise SessionStateError(f"Session {session.id} is closed; reopen it to change scores or bonuses",
                                session_id=session.id, status=session.status)


def upsert_score(session: Session, user: User, metrics, entered_by=None, publish: bool = False) -> Score:
    """Create or update the one score for (user, session)."""
    require_editable(session)
    score = Score.query.filter_by(user_id=user.id, session_id=session.id).first()
    if score is None:
        # Team membership is captured at scoring time
        score = Score(user_id=user.id, session_id=session.id, season_id=session.season_id,
                      team_id=user.team_id)
    score.metrics = clamp_metrics(metrics)
    score.entered_by = entered_by
    if publish:
        score.is_draft = False
        score.published_by = entered_by
        score.published_at = datetime.now(timezone.utc)
    recompute_score_total(score)
    db.session.add(score)
    db.session.commit()
    current_app.logger.info(
        f"[score] session={session.id} user={user.id} team={score.team_id} total={score.total_points} draft={score.is_draft}"
    )
    return score


def publish_scores(session: Session, published_by=None) -> int:
    drafts = Score.query.filter_by(session_id=session.id, is_draft=True).all()
    now = datetime.now(timezone.utc)
    for score in drafts:
        score.is_draft = False
        score.published_by = published_by
        score.published_at = now
        db.session.add(score)
    db.session.commit()
    current_app.logger.info(f"[publish] session={session.id} published={len(drafts)}")
    return len(drafts)


def recalculate_session_totals(session: Session) -> int:
    point_values = get_settings().point_values
    scores = Score.query.filter_by(session_id=session.id).all()
    for score in scores:
        recompute_score_total(score, point_values)
        db.session.add(score)
    db.session.commit()
    return len(scores)


def resolve_bonus_definition(bonus_id=None, name=None, points=None) -> CustomBonus:
    """Look up a custom bonus definition, or create an ad hoc one from name + points."""
    if bonus_id is not None:
        try:
            bonus_key = int(bonus_id)
        except (TypeError, ValueError):
            raise ValidationError('bonus_id must be an integer', bonus_id=bonus_id)
        bonus = db.session.get(CustomBonus, bonus_key)
        if bonus is None:
            raise NotFoundError(f"Custom bonus {bonus_id} not found", bonus_id=bonus_id)
        return bonus
    if not name or points is None:
        raise ValidationError('bonus_id or name and points are required')
    try:
        points = int(points)
    except (TypeError, ValueError):
        raise ValidationError('points must be an integer')
    bonus = CustomBonus(name=name, points=points)
    db.session.add(bonus)
    db.session.commit()
    return bonus


def award_custom_bonus(score: Score, bonus: CustomBonus, awarded_by=None) -> AwardedCustomBonus:
    """Apply a custom bonus to one score; the same bonus id twice is rejected."""
    require_editable(score.session)
    bonus_key = str(bonus.id)
    if any(b.bonus_id == bonus_key for b in score.custom_bonuses):
        raise DuplicateBonusError(
            f"'{bonus.name}' was already awarded to this score",
            bonus_id=bonus_key, score_id=score.id,
        )
    awarded = AwardedCustomBonus(bonus_id=bonus_key, bonus_name=bonus.name, points=bonus.points,
                                 awarded_by=awarded_by)
    score.custom_bonuses.append(awarded)
    recompute_score_total(score)
    db.session.add(score)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateBonusError(f"'{bonus.name}' was already awarded to this score",
                                  bonus_id=bonus_key, score_id=score.id)
    current_app.logger.info(
        f"[custom-bonus] score={score.id} bonus={bonus_key} points={bonus.points} total={score.total_points}"
    )
    return awarded


def award_team_custom_bonus(session: Session, team_id, bonus: CustomBonus, awarded_by=None) -> TeamCustomBonus:
    require_editable(session)
    bonus_key = str(bonus.id)
    if any(b.team_id == team_id and b.bonus_id == bonus_key for b in session.team_custom_bonuses):
        raise DuplicateBonusError(
            f"'{bonus.name}' was already awarded to this team",
            bonus_id=bonus_key, team_id=team_id,
        )
    awarded = TeamCustomBonus(session_id=session.id, team_id=team_id, bonus_id=bonus_key,
                              bonus_name=bonus.name, points=bonus.points, awarded_by=awarded_by)
    session.team_custom_bonuses.append(awarded)
    db.session.add(session)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateBonusError(f"'{bonus.name}' was already awarded to this team",
                                  bonus_id=bonus_key, team_id=team_id)
    current_app.logger.info(
        f"[team-bonus] session={session.id} team={team_id} bonus={bonus_key} points={bonus.points}"
    )
    return awarded
