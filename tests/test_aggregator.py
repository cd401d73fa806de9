import copy

from scoreboard.services.scoring import (
    METRIC_CATEGORIES,
    live_session_standings,
    live_team_weekly_total,
    score_total,
    season_totals,
    session_standings,
    team_weekly_total,
    weekly_winner,
)

POINTS = {'attendance': 10, 'one21s': 15, 'referrals': 25, 'tyfcb': 20, 'visitors': 25}
BONUS = {'attendance': 50, 'one21s': 50, 'referrals': 100, 'tyfcb': 100, 'visitors': 100}


def _score(user_id, team_id, total=0, **metrics):
    m = {k: 0 for k in METRIC_CATEGORIES}
    m.update(metrics)
    return {'user_id': user_id, 'team_id': team_id, 'metrics': m, 'custom_bonuses': [], 'total_points': total}


def _user(user_id, team_id, role='member', active=True):
    return {'id': user_id, 'team_id': team_id, 'role': role, 'is_active': active,
            'first_name': f'U{user_id}', 'last_name': ''}


def test_score_total_weights_metrics_and_adds_custom_bonuses():
    metrics = {'attendance': 1, 'one21s': 2, 'referrals': 1}
    assert score_total(metrics, POINTS) == 10 + 30 + 25
    assert score_total(metrics, POINTS, [{'bonus_id': 'x', 'points': 25}]) == 90


def test_score_total_clamps_bad_input_to_zero():
    metrics = {'attendance': -1, 'one21s': 'abc', 'referrals': 2, 'visitors': None}
    assert score_total(metrics, POINTS) == 50


def test_attendance_is_capped_at_one():
    assert score_total({'attendance': 3}, POINTS) == 10


def test_score_total_is_pure():
    metrics = {'attendance': 1, 'tyfcb': 4}
    bonuses = [{'bonus_id': 'x', 'points': 5}]
    before = (copy.deepcopy(metrics), copy.deepcopy(bonuses))
    first = score_total(metrics, POINTS, bonuses)
    second = score_total(metrics, POINTS, bonuses)
    assert first == second == 10 + 80 + 5
    assert (metrics, bonuses) == before


def test_all_in_attendance_bonus_credited_once():
    scores = [_score(1, 7, 10, attendance=1), _score(2, 7, 10, attendance=1), _score(3, 7, 10, attendance=1)]
    result = team_weekly_total(7, scores, {1, 2, 3}, BONUS)
    assert result['qualifying_categories'] == ['attendance']
    assert result['bonus_points'] == BONUS['attendance']
    assert result['member_points'] == 30
    assert result['total_points'] == 30 + BONUS['attendance']


def test_excluded_member_without_score_does_not_block_bonus():
    scores = [_score(1, 7, 10, attendance=1), _score(2, 7, 10, attendance=1)]
    result = team_weekly_total(7, scores, {1, 2, 3}, BONUS, excluded_user_ids=[3])
    assert result['qualifying_categories'] == ['attendance']
    assert result['bonus_points'] == BONUS['attendance']


def test_excluded_member_with_score_is_left_out_of_points_and_checks():
    scores = [_score(1, 7, 10, attendance=1), _score(2, 7, 10, attendance=1), _score(3, 7, 40)]
    result = team_weekly_total(7, scores, {1, 2, 3}, BONUS, excluded_user_ids=[3])
    assert result['member_points'] == 20
    assert result['qualifying_categories'] == ['attendance']


def test_missing_score_blocks_every_category():
    scores = [_score(1, 7, 10, attendance=1), _score(2, 7, 10, attendance=1)]
    result = team_weekly_total(7, scores, {1, 2, 3}, BONUS)
    assert result['bonus_points'] == 0
    assert result['qualifying_categories'] == []
    assert result['member_points'] == 20


def test_single_zero_metric_blocks_only_that_category():
    scores = [
        _score(1, 7, attendance=1, one21s=2),
        _score(2, 7, attendance=1, one21s=1),
        _score(3, 7, attendance=1, one21s=0),
    ]
    result = team_weekly_total(7, scores, {1, 2, 3}, BONUS)
    assert result['qualifying_categories'] == ['attendance']


def test_team_custom_bonuses_are_not_gated_by_participation():
    scores = [_score(1, 7, 10, attendance=1)]
    customs = [{'team_id': 7, 'bonus_id': '1', 'points': 30}, {'team_id': 8, 'bonus_id': '1', 'points': 99}]
    result = team_weekly_total(7, scores, {1, 2}, BONUS, customs)
    assert result['bonus_points'] == 30
    assert [b['points'] for b in result['custom_bonuses']] == [30]


def test_empty_team_gets_no_categorical_bonus():
    result = team_weekly_total(7, [], set(), BONUS)
    assert result['bonus_points'] == 0
    assert result['total_points'] == 0


def test_standing_total_is_member_plus_bonus_points():
    users = [_user(1, 7), _user(2, 7), _user(3, 8)]
    scores = [_score(1, 7, 20, attendance=1), _score(2, 7, 30, attendance=1), _score(3, 8, 90, attendance=1)]
    standings = session_standings([7, 8], {'id': 1}, scores, users, BONUS)
    for standing in standings:
        assert standing['total_points'] == standing['member_points'] + standing['bonus_points']
    assert [s['team_id'] for s in standings] == [8, 7]
    assert [s['rank'] for s in standings] == [1, 2]


def test_tied_top_totals_credit_no_weekly_winner():
    totals = [
        {'team_id': 1, 'total_points': 120},
        {'team_id': 2, 'total_points': 120},
        {'team_id': 3, 'total_points': 95},
        {'team_id': 4, 'total_points': 80},
    ]
    assert weekly_winner(totals) is None


def test_strict_leader_is_weekly_winner():
    totals = [{'team_id': 1, 'total_points': 80}, {'team_id': 2, 'total_points': 121}]
    assert weekly_winner(totals) == 2
    assert weekly_winner([{'team_id': 1, 'total_points': 0}]) is None


def test_live_total_counts_only_shown_members():
    scores = [_score(1, 7, 10, attendance=1), _score(2, 7, 20, attendance=1), _score(3, 7, 30, attendance=1)]
    result = live_team_weekly_total(7, scores, {1, 2, 3}, BONUS, shown_user_ids={1, 3})
    assert result['member_points'] == 40
    assert result['bonus_points'] == 0
    assert result['bonus_pending'] is True
    assert (result['shown_member_count'], result['member_count']) == (2, 3)


def test_live_bonus_credited_in_full_once_everyone_is_shown():
    scores = [_score(1, 7, 10, attendance=1), _score(2, 7, 20, attendance=1), _score(3, 7, 30, attendance=1)]
    live = live_team_weekly_total(7, scores, {1, 2, 3}, BONUS, shown_user_ids={1, 2, 3})
    full = team_weekly_total(7, scores, {1, 2, 3}, BONUS)
    assert live['bonus_points'] == full['bonus_points'] == BONUS['attendance']
    assert live['total_points'] == full['total_points']
    assert live['bonus_pending'] is False


def test_live_bonus_hidden_until_revealed():
    scores = [_score(1, 7, 10, attendance=1)]
    customs = [{'team_id': 7, 'bonus_id': '1', 'points': 30}]
    hidden = live_team_weekly_total(7, scores, {1}, BONUS, customs, shown_user_ids={1}, bonus_revealed=False)
    assert hidden['bonus_points'] == 0
    partial = live_team_weekly_total(7, scores, {1, 2}, BONUS, customs, shown_user_ids={1})
    assert partial['bonus_points'] == 30


def test_live_and_final_paths_can_disagree_mid_event():
    users = [_user(1, 7), _user(2, 7)]
    scores = [_score(1, 7, 10, attendance=1), _score(2, 7, 10, attendance=1)]
    session = {'id': 1, 'status': 'open', 'excluded_user_ids': [], 'team_custom_bonuses': []}
    live = live_session_standings([7], session, scores, users, BONUS, {1}, {7})
    final = session_standings([7], session, scores, users, BONUS)
    assert live[0]['total_points'] == 10
    assert final[0]['total_points'] == 20 + BONUS['attendance']


def test_closed_session_shows_bonus_without_reveal():
    users = [_user(1, 7)]
    scores = [_score(1, 7, 10, attendance=1)]
    session = {'id': 1, 'status': 'closed', 'excluded_user_ids': [], 'team_custom_bonuses': []}
    live = live_session_standings([7], session, scores, users, BONUS, {1}, set())
    assert live[0]['bonus_points'] == BONUS['attendance']


def test_season_totals_over_closed_unarchived_sessions():
    users = [_user(1, 10), _user(2, 10), _user(3, 20), _user(4, 20)]
    sessions = [
        {'id': 's1', 'status': 'closed', 'is_archived': False, 'excluded_user_ids': [], 'team_custom_bonuses': []},
        {'id': 's2', 'status': 'closed', 'is_archived': False, 'excluded_user_ids': [], 'team_custom_bonuses': []},
        {'id': 's3', 'status': 'open', 'is_archived': False, 'excluded_user_ids': [], 'team_custom_bonuses': []},
        {'id': 's4', 'status': 'closed', 'is_archived': True, 'excluded_user_ids': [], 'team_custom_bonuses': []},
    ]
    scores_by_session = {
        's1': [_score(1, 10, 60, attendance=1), _score(2, 10, 40, attendance=1),
               _score(3, 20, 30, attendance=1), _score(4, 20, 20)],
        's2': [_score(1, 10, 50, attendance=1), _score(3, 20, 50, attendance=1)],
        's3': [_score(1, 10, 999, attendance=1)],
        's4': [_score(2, 10, 500, attendance=1)],
    }
    totals = season_totals(sessions, scores_by_session, users, {'bonus_values': BONUS})

    users_by_id = {u['user_id']: u for u in totals['user_totals']}
    assert [u['user_id'] for u in totals['user_totals']] == [1, 3, 2, 4]
    assert users_by_id[1]['total_points'] == 110
    assert users_by_id[1]['week_count'] == 2
    assert users_by_id[1]['average_points'] == 55
    assert users_by_id[1]['best_week'] == 60
    assert users_by_id[1]['category_totals']['attendance'] == 2

    teams_by_id = {t['team_id']: t for t in totals['team_totals']}
    assert teams_by_id[10]['total_points'] == 200
    assert teams_by_id[10]['best_week'] == 150
    assert teams_by_id[10]['weekly_wins'] == 1
    assert teams_by_id[20]['total_points'] == 100
    assert teams_by_id[20]['weekly_wins'] == 0
    assert totals['weekly_winners'] == [
        {'session_id': 's1', 'team_id': 10},
        {'session_id': 's2', 'team_id': None},
    ]
