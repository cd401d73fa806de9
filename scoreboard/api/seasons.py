from flask import Blueprint, jsonify, request, current_app
from scoreboard import db
from scoreboard.errors import NotFoundError, ValidationError
from scoreboard.models import CustomBonus, Score, Season, Session, User
from scoreboard.services.scores import recalculate_session_totals
from scoreboard.services.scoring import METRIC_CATEGORIES, season_totals
from scoreboard.services.sessions import get_settings


seasons = Blueprint('seasons', __name__)


@seasons.route('/seasons/<int:season_id>/totals', methods=['GET'])
def get_season_totals(season_id):
    season = db.session.get(Season, season_id)
    if season is None:
        raise NotFoundError(f"Season {season_id} not found")
    season_sessions = Session.query.filter_by(season_id=season.id).order_by(Session.week_number).all()
    scores_by_session = {
        s.id: [sc.to_dict() for sc in Score.query.filter_by(session_id=s.id, is_draft=False).all()]
        for s in season_sessions
    }
    totals = season_totals(
        [s.to_dict() for s in season_sessions],
        scores_by_session,
        [u.to_dict() for u in User.query.all()],
        get_settings().to_dict(),
    )
    totals['season'] = season.to_dict()
    return jsonify(totals)


@seasons.route('/settings', methods=['GET'])
def get_settings_route():
    return jsonify(get_settings().to_dict())


def _clean_values(values, label):
    if not isinstance(values, dict):
        raise ValidationError(f"{label} must be an object")
    try:
        return {k: int(values.get(k, 0) or 0) for k in METRIC_CATEGORIES}
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be integers")


@seasons.route('/settings', methods=['PUT'])
def update_settings():
    data = request.get_json(silent=True) or {}
    settings = get_settings()
    if 'point_values' in data:
        settings.point_values = _clean_values(data['point_values'], 'point_values')
    if 'bonus_values' in data:
        settings.bonus_values = _clean_values(data['bonus_values'], 'bonus_values')
    db.session.add(settings)
    db.session.commit()
    # Totals are derived from point values; re-derive every editable session
    recalculated = 0
    for session in Session.query.filter(Session.status != 'closed').all():
        recalculated += recalculate_session_totals(session)
    current_app.logger.info(f"[settings] updated recalculated_scores={recalculated}")
    return jsonify(settings.to_dict())


@seasons.route('/custom-bonuses', methods=['GET'])
def list_custom_bonuses():
    include_archived = request.args.get('archived') == '1'
    query = CustomBonus.query
    if not include_archived:
        query = query.filter_by(is_archived=False)
    return jsonify([b.to_dict() for b in query.order_by(CustomBonus.id).all()])


@seasons.route('/custom-bonuses', methods=['POST'])
def create_custom_bonus():
    data = request.get_json(silent=True) or {}
    name = data.get('name')
    try:
        points = int(data.get('points'))
    except (TypeError, ValueError):
        raise ValidationError('points must be an integer')
    if not name:
        raise ValidationError('name required')
    bonus = CustomBonus(name=name, points=points)
    db.session.add(bonus)
    db.session.commit()
    return jsonify(bonus.to_dict()), 201


@seasons.route('/custom-bonuses/<int:bonus_id>/archive', methods=['POST'])
def archive_custom_bonus(bonus_id):
    bonus = db.session.get(CustomBonus, bonus_id)
    if bonus is None:
        raise NotFoundError(f"Custom bonus {bonus_id} not found")
    data = request.get_json(silent=True) or {}
    bonus.is_archived = bool(data.get('archived', True))
    db.session.add(bonus)
    db.session.commit()
    return jsonify(bonus.to_dict())
