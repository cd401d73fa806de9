from flask import Blueprint, jsonify, request
from scoreboard.errors import ValidationError
from scoreboard.services.console import get_console


console = Blueprint('console', __name__)


def _payload():
    return request.get_json(silent=True) or {}


def _id_list(data, key):
    ids = data.get(key)
    if not isinstance(ids, list):
        raise ValidationError(f"{key} must be a list")
    if any(isinstance(i, bool) or not isinstance(i, int) for i in ids):
        raise ValidationError(f"{key} must be a list of integer ids", **{key: ids})
    return ids


@console.route('/<int:session_id>/select', methods=['POST'])
def select_session(session_id):
    return jsonify(get_console().select_session(session_id))


@console.route('/<int:session_id>/reset', methods=['POST'])
def reset_reveal(session_id):
    return jsonify(get_console().reset_reveal(session_id))


@console.route('/<int:session_id>/shown', methods=['PUT'])
def set_shown(session_id):
    return jsonify(get_console().set_shown_users(session_id, _id_list(_payload(), 'user_ids')))


@console.route('/<int:session_id>/revealed', methods=['PUT'])
def set_revealed(session_id):
    return jsonify(get_console().set_revealed_teams(session_id, _id_list(_payload(), 'team_ids')))


@console.route('/<int:session_id>/display-user', methods=['POST'])
def display_user(session_id):
    return jsonify(get_console().display_user(session_id, _payload().get('user_id')))


@console.route('/<int:session_id>/display-stats', methods=['POST'])
def display_stats(session_id):
    return jsonify(get_console().display_stats(session_id, _payload().get('user_id')))


@console.route('/<int:session_id>/team-leaderboard', methods=['POST'])
def display_team_leaderboard(session_id):
    return jsonify(get_console().display_team_leaderboard(session_id))


@console.route('/<int:session_id>/team-bonus', methods=['POST'])
def display_team_bonus(session_id):
    data = _payload()
    return jsonify(get_console().display_team_bonus(
        session_id, data.get('team_id'), data.get('category'), data.get('points'),
    ))


@console.route('/<int:session_id>/custom-bonus', methods=['POST'])
def display_custom_bonus(session_id):
    data = _payload()
    return jsonify(get_console().display_custom_bonus(
        session_id,
        data.get('target_type'),
        data.get('target_id'),
        bonus_id=data.get('bonus_id'),
        name=data.get('name'),
        points=data.get('points'),
        awarded_by=data.get('awarded_by'),
    )), 201


@console.route('/<int:session_id>/celebrate', methods=['POST'])
def celebrate(session_id):
    return jsonify(get_console().celebrate_winning_team(session_id))


@console.route('/<int:session_id>/clear', methods=['POST'])
def clear_display(session_id):
    return jsonify(get_console().clear_display(session_id))


@console.route('/<int:session_id>/season-standings', methods=['POST'])
def season_standings(session_id):
    return jsonify(get_console().show_season_standings(session_id))


@console.route('/<int:session_id>/finalize', methods=['POST'])
def finalize_week(session_id):
    return jsonify(get_console().finalize_week(session_id, confirm=_payload().get('confirm') is True))
