from scoreboard import db
from scoreboard.models import CustomBonus, Season, Session, Team, User
from scoreboard.services.sessions import get_settings

_DEMO_TEAMS = [
    ('Red Rockets', '#e53935', [('Ana', 'Lopez', 'team-leader'), ('Ben', 'Ortiz', 'member'), ('Cara', 'Nunez', 'member')]),
    ('Blue Sharks', '#1e88e5', [('Dev', 'Patel', 'team-leader'), ('Eli', 'Moss', 'member'), ('Fay', 'Kim', 'member')]),
]


def seed_demo_data():
    season = Season(name='Demo Season', week_count=12, current_week=1, is_active=True)
    db.session.add(season)
    db.session.flush()
    for name, color, members in _DEMO_TEAMS:
        team = Team(name=name, color=color, season_id=season.id)
        db.session.add(team)
        db.session.flush()
        for first, last, role in members:
            db.session.add(User(first_name=first, last_name=last, role=role, team_id=team.id,
                                email=f"{first.lower()}@example.com"))
    db.session.add(Session(season_id=season.id, week_number=1, name='Week 1', status='open'))
    db.session.add(CustomBonus(name='Best Testimonial', points=25))
    db.session.commit()
    get_settings()
