from flask import Blueprint, jsonify, request
from scoreboard import db
from scoreboard.errors import NotFoundError, ValidationError
from scoreboard.models import Season, Session, Team, User
from scoreboard.services.console import get_registry
from scoreboard.services.scores import (
    award_team_custom_bonus,
    publish_scores,
    require_editable,
    resolve_bonus_definition,
    upsert_score,
)
from scoreboard.services.scoring import live_session_standings, session_standings
from scoreboard.services.sessions import (
    archive_session,
    close_session,
    get_session,
    open_session,
    session_inputs,
    set_excluded_users,
)


sessions = Blueprint('sessions', __name__)


def _require(data, *names):
    missing = [n for n in names if data.get(n) in (None, '')]
    if missing:
        raise ValidationError(f"{', '.join(missing)} required")


@sessions.route('', methods=['POST'])
def create_session():
    data = request.get_json(silent=True) or {}
    _require(data, 'season_id')
    if db.session.get(Season, data['season_id']) is None:
        raise NotFoundError(f"Season {data['season_id']} not found")
    session = Session(
        season_id=data['season_id'],
        week_number=int(data.get('week_number') or 1),
        name=data.get('name'),
    )
    db.session.add(session)
    db.session.commit()
    return jsonify(session.to_dict()), 201


@sessions.route('/<int:session_id>', methods=['GET'])
def get_session_detail(session_id):
    return jsonify(get_session(session_id).to_dict())


@sessions.route('/<int:session_id>/open', methods=['POST'])
def open_session_route(session_id):
    return jsonify(open_session(get_session(session_id)).to_dict())


@sessions.route('/<int:session_id>/close', methods=['POST'])
def close_session_route(session_id):
    return jsonify(close_session(get_session(session_id)).to_dict())


@sessions.route('/<int:session_id>/archive', methods=['POST'])
def archive_session_route(session_id):
    data = request.get_json(silent=True) or {}
    return jsonify(archive_session(get_session(session_id), data.get('archived', True)).to_dict())


@sessions.route('/<int:session_id>/exclusions', methods=['PUT'])
def set_exclusions(session_id):
    data = request.get_json(silent=True) or {}
    user_ids = data.get('user_ids') or []
    if not isinstance(user_ids, list):
        raise ValidationError('user_ids must be a list')
    return jsonify(set_excluded_users(get_session(session_id), user_ids).to_dict())


@sessions.route('/<int:session_id>/scores', methods=['POST'])
def submit_score(session_id):
    data = request.get_json(silent=True) or {}
    _require(data, 'user_id')
    session = get_session(session_id)
    user = db.session.get(User, data['user_id'])
    if user is None:
        raise NotFoundError(f"User {data['user_id']} not found")
    metrics = data.get('metrics') or {}
    if not isinstance(metrics, dict):
        raise ValidationError('metrics must be an object')
    score = upsert_score(session, user, metrics, entered_by=data.get('entered_by'),
                         publish=bool(data.get('publish')))
    return jsonify(score.to_dict()), 201


@sessions.route('/<int:session_id>/scores', methods=['GET'])
def list_scores(session_id):
    session = get_session(session_id)
    include_drafts = request.args.get('drafts') == '1'
    return jsonify(session_inputs(session, published_only=not include_drafts)['scores'])


@sessions.route('/<int:session_id>/publish', methods=['POST'])
def publish_session_scores(session_id):
    data = request.get_json(silent=True) or {}
    count = publish_scores(get_session(session_id), data.get('published_by'))
    return jsonify({'published': count})


@sessions.route('/<int:session_id>/team-bonuses', methods=['POST'])
def award_team_bonus(session_id):
    data = request.get_json(silent=True) or {}
    _require(data, 'team_id')
    session = get_session(session_id)
    require_editable(session)
    team = db.session.get(Team, data['team_id'])
    if team is None:
        raise NotFoundError(f"Team {data['team_id']} not found")
    bonus = resolve_bonus_definition(data.get('bonus_id'), data.get('name'), data.get('points'))
    awarded = award_team_custom_bonus(session, team.id, bonus, data.get('awarded_by'))
    return jsonify(awarded.to_dict()), 201


@sessions.route('/<int:session_id>/standings', methods=['GET'])
def standings(session_id):
    inputs = session_inputs(get_session(session_id))
    return jsonify(session_standings(
        inputs['team_ids'], inputs['session'], inputs['scores'], inputs['users'],
        inputs['settings']['bonus_values'],
    ))


@sessions.route('/<int:session_id>/standings/live', methods=['GET'])
def live_standings(session_id):
    session = get_session(session_id)
    inputs = session_inputs(session)
    # Read only: get() loads the stored state without switching the display target
    state = get_registry().get(session.id)
    return jsonify(live_session_standings(
        inputs['team_ids'], inputs['session'], inputs['scores'], inputs['users'],
        inputs['settings']['bonus_values'], state.shown_user_ids, state.revealed_bonus_team_ids,
    ))
