import pytest

from scoreboard.errors import ValidationError
from scoreboard.services.reveal import RevealState, RevealStateRegistry


class FakeRepository:
    def __init__(self):
        self.rows = {}
        self.saves = 0
        self.active = None

    def load(self, session_id):
        row = self.rows.get(session_id)
        return dict(row) if row else None

    def save(self, snapshot):
        self.saves += 1
        self.rows[snapshot['session_id']] = dict(snapshot)

    def delete(self, session_id):
        self.rows.pop(session_id, None)
        if self.active == session_id:
            self.active = None

    def load_active(self):
        return self.active

    def save_active(self, session_id):
        self.active = session_id


def test_show_user_bumps_version_and_notifies_before_returning():
    state = RevealState(1)
    seen = []
    state.subscribe(lambda s: seen.append(s.snapshot()))
    state.show_user(10)
    assert state.is_user_shown(10)
    assert state.version == 1
    assert seen == [{'session_id': 1, 'version': 1, 'shown_user_ids': [10], 'revealed_bonus_team_ids': []}]


def test_repeating_a_write_does_not_bump_version():
    state = RevealState(1)
    state.set_shown_users([3, 1, 2])
    state.set_shown_users([1, 2, 3])
    state.show_user(2)
    assert state.version == 1
    assert state.snapshot()['shown_user_ids'] == [1, 2, 3]


def test_team_bonus_reveal_and_clear():
    state = RevealState(1)
    state.reveal_team_bonus(7)
    assert state.is_team_bonus_revealed(7)
    state.clear_revealed()
    assert not state.is_team_bonus_revealed(7)
    assert state.version == 2


def test_unsubscribe_stops_notifications():
    state = RevealState(1)
    seen = []
    unsubscribe = state.subscribe(seen.append)
    state.show_user(1)
    unsubscribe()
    state.show_user(2)
    assert len(seen) == 1


def test_activate_switches_target_without_leaking_state():
    registry = RevealStateRegistry(FakeRepository())
    first = registry.activate('A')
    first.set_shown_users([1, 2])
    second = registry.activate('B')
    assert registry.active is second
    assert second.shown_user_ids == set()
    assert registry.get('A').shown_user_ids == {1, 2}


def test_registry_persists_every_write_and_resumes_after_reload():
    repo = FakeRepository()
    registry = RevealStateRegistry(repo)
    state = registry.get(5)
    state.show_user(1)
    state.reveal_team_bonus(9)
    assert repo.rows[5]['version'] == 2

    reloaded = RevealStateRegistry(repo).get(5)
    assert reloaded.shown_user_ids == {1}
    assert reloaded.revealed_bonus_team_ids == {9}
    assert reloaded.version == 2


def test_registry_listeners_fire_on_mutation_and_activation():
    registry = RevealStateRegistry()
    events = []
    registry.subscribe(lambda s: events.append((s.session_id, s.version)))
    registry.activate(1)
    registry.get(1).show_user(4)
    assert events == [(1, 0), (1, 1)]


def test_reset_clears_both_sets_and_destroy_forgets_session():
    repo = FakeRepository()
    registry = RevealStateRegistry(repo)
    registry.activate(3)
    state = registry.get(3)
    state.show_user(1)
    state.reveal_team_bonus(2)
    registry.reset(3)
    assert state.snapshot()['shown_user_ids'] == []
    assert state.snapshot()['revealed_bonus_team_ids'] == []
    assert state.version == 3

    registry.destroy(3)
    assert registry.active is None
    assert 3 not in repo.rows
    assert registry.get(3).version == 0


def test_bad_id_list_is_rejected_without_touching_state():
    state = RevealState(1)
    seen = []
    state.subscribe(seen.append)
    state.set_shown_users([1, 2])
    with pytest.raises(ValidationError):
        state.set_shown_users([3, 'abc'])
    with pytest.raises(ValidationError):
        state.set_revealed_teams([True])
    assert state.snapshot()['shown_user_ids'] == [1, 2]
    assert state.version == 1
    assert len(seen) == 1


def test_numeric_string_ids_are_stored_as_ints():
    state = RevealState(1)
    state.set_shown_users([2, '1'])
    state.reveal_team_bonus('7')
    assert state.snapshot()['shown_user_ids'] == [1, 2]
    assert state.is_team_bonus_revealed(7)


def test_active_session_resumes_after_reload():
    repo = FakeRepository()
    registry = RevealStateRegistry(repo)
    registry.activate(4).show_user(8)

    reloaded = RevealStateRegistry(repo)
    assert reloaded.active_session_id == 4
    assert reloaded.active.shown_user_ids == {8}

    reloaded.destroy(4)
    assert RevealStateRegistry(repo).active is None
