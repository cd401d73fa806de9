import os
import sys
import pytest

# Ensure the project root (containing the `scoreboard` package and config.py) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from config import Config
from scoreboard import create_app, db, socketio


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    TEAM_LEADERBOARD_DURATION_SEC = 0


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import scoreboard.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def league(flask_app):
    """One season, two teams of three, an open session and a custom bonus."""
    from scoreboard.models import CustomBonus, Season, Session, Team, User
    season = Season(name='Spring')
    db.session.add(season)
    db.session.flush()
    red = Team(name='Red', color='#ff0000', season_id=season.id)
    blue = Team(name='Blue', color='#0000ff', season_id=season.id)
    db.session.add_all([red, blue])
    db.session.flush()
    users = {}
    for name, team in [('Ana', red), ('Ben', red), ('Cara', red), ('Dev', blue), ('Eli', blue), ('Fay', blue)]:
        user = User(first_name=name, last_name='Test', role='member', team_id=team.id)
        db.session.add(user)
        users[name] = user
    session = Session(season_id=season.id, week_number=1, name='Week 1', status='open')
    bonus = CustomBonus(name='Testimonial', points=25)
    db.session.add_all([session, bonus])
    db.session.commit()
    return {
        'season': season,
        'teams': {'red': red, 'blue': blue},
        'users': users,
        'session': session,
        'bonus': bonus,
    }
