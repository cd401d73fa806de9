from scoreboard import db
from scoreboard.errors import ValidationError
from datetime import datetime, timezone
import json

METRIC_COLUMNS = ('attendance', 'one21s', 'referrals', 'tyfcb', 'visitors')


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


def _load_list(raw):
    try:
        return json.loads(raw) if raw else []
    except (TypeError, ValueError):
        return []


class Season(db.Model):
    __tablename__ = 'season'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    week_count = db.Column(db.Integer, default=12, nullable=False)
    current_week = db.Column(db.Integer, default=1, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    teams = db.relationship('Team', back_populates='season')
    sessions = db.relationship('Session', back_populates='season', order_by='Session.week_number')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'week_count': self.week_count,
            'current_week': self.current_week,
            'is_active': self.is_active,
        }


class Team(db.Model):
    __tablename__ = 'team'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    color = db.Column(db.String(16), default='#3366ff', nullable=False)
    season_id = db.Column(db.Integer, db.ForeignKey('season.id'), nullable=True)
    weekly_wins = db.Column(db.Integer, default=0, nullable=False)
    season = db.relationship('Season', back_populates='teams')
    members = db.relationship('User', back_populates='team')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'color': self.color,
            'season_id': self.season_id,
            'weekly_wins': self.weekly_wins,
        }


class User(db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(64), nullable=False)
    last_name = db.Column(db.String(64), nullable=False, default='')
    email = db.Column(db.String(128), unique=True, nullable=True, index=True)
    role = db.Column(db.String(16), default='member', nullable=False)  # admin, team-leader, member
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    team = db.relationship('Team', back_populates='members')

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self):
        return {
            'id': self.id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'email': self.email,
            'role': self.role,
            'team_id': self.team_id,
            'is_active': self.is_active,
        }


class Settings(db.Model):
    __tablename__ = 'settings'
    id = db.Column(db.Integer, primary_key=True)
    point_values_json = db.Column(db.Text, nullable=False, default='{}')
    bonus_values_json = db.Column(db.Text, nullable=False, default='{}')
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def point_values(self):
        return json.loads(self.point_values_json or '{}')

    @point_values.setter
    def point_values(self, values):
        self.point_values_json = json.dumps(dict(values or {}))

    @property
    def bonus_values(self):
        return json.loads(self.bonus_values_json or '{}')

    @bonus_values.setter
    def bonus_values(self, values):
        self.bonus_values_json = json.dumps(dict(values or {}))

    def to_dict(self):
        return {
            'point_values': self.point_values,
            'bonus_values': self.bonus_values,
            'custom_bonuses': [b.to_dict() for b in CustomBonus.query.filter_by(is_archived=False).all()],
        }


class CustomBonus(db.Model):
    __tablename__ = 'custom_bonus'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    points = db.Column(db.Integer, nullable=False)
    is_archived = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'points': self.points,
            'is_archived': self.is_archived,
        }


class Session(db.Model):
    __tablename__ = 'session'
    id = db.Column(db.Integer, primary_key=True)
    season_id = db.Column(db.Integer, db.ForeignKey('season.id'), nullable=False)
    week_number = db.Column(db.Integer, nullable=False, default=1)
    name = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(16), default='draft', nullable=False)  # draft, open, closed
    is_archived = db.Column(db.Boolean, default=False, nullable=False)
    excluded_user_ids_json = db.Column(db.Text, nullable=True)  # JSON-encoded list of user ids
    winning_team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    season = db.relationship('Season', back_populates='sessions')
    scores = db.relationship('Score', back_populates='session', lazy='dynamic')
    team_custom_bonuses = db.relationship('TeamCustomBonus', back_populates='session',
                                          order_by='TeamCustomBonus.id')

    @property
    def excluded_user_ids(self):
        return _load_list(self.excluded_user_ids_json)

    @excluded_user_ids.setter
    def excluded_user_ids(self, user_ids):
        user_ids = list(user_ids or [])
        try:
            cleaned = {int(u) for u in user_ids if not isinstance(u, bool)}
        except (TypeError, ValueError):
            cleaned = None
        if cleaned is None or any(isinstance(u, bool) for u in user_ids):
            raise ValidationError('excluded user ids must be integers', user_ids=user_ids)
        self.excluded_user_ids_json = json.dumps(sorted(cleaned))

    def to_dict(self):
        return {
            'id': self.id,
            'season_id': self.season_id,
            'week_number': self.week_number,
            'name': self.name,
            'status': self.status,
            'is_archived': self.is_archived,
            'excluded_user_ids': self.excluded_user_ids,
            'team_custom_bonuses': [b.to_dict() for b in self.team_custom_bonuses],
            'winning_team_id': self.winning_team_id,
            'closed_at': _iso(self.closed_at),
        }


class Score(db.Model):
    __tablename__ = 'score'
    __table_args__ = (db.UniqueConstraint('user_id', 'session_id', name='uq_score_user_session'),)
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    session_id = db.Column(db.Integer, db.ForeignKey('session.id'), nullable=False)
    season_id = db.Column(db.Integer, db.ForeignKey('season.id'), nullable=True)
    # Team at the time of scoring; may differ from user.team_id later
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=True)
    attendance = db.Column(db.Integer, default=0, nullable=False)
    one21s = db.Column(db.Integer, default=0, nullable=False)
    referrals = db.Column(db.Integer, default=0, nullable=False)
    tyfcb = db.Column(db.Integer, default=0, nullable=False)
    visitors = db.Column(db.Integer, default=0, nullable=False)
    total_points = db.Column(db.Integer, default=0, nullable=False)
    is_draft = db.Column(db.Boolean, default=True, nullable=False)
    entered_by = db.Column(db.Integer, nullable=True)
    published_by = db.Column(db.Integer, nullable=True)
    published_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    session = db.relationship('Session', back_populates='scores')
    user = db.relationship('User')
    custom_bonuses = db.relationship('AwardedCustomBonus', back_populates='score',
                                     order_by='AwardedCustomBonus.id', cascade='all, delete-orphan')

    @property
    def metrics(self):
        return {name: getattr(self, name) or 0 for name in METRIC_COLUMNS}

    @metrics.setter
    def metrics(self, values):
        for name in METRIC_COLUMNS:
            setattr(self, name, int((values or {}).get(name, 0) or 0))

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'session_id': self.session_id,
            'season_id': self.season_id,
            'team_id': self.team_id,
            'metrics': self.metrics,
            'custom_bonuses': [b.to_dict() for b in self.custom_bonuses],
            'total_points': self.total_points,
            'is_draft': self.is_draft,
        }


class AwardedCustomBonus(db.Model):
    __tablename__ = 'awarded_custom_bonus'
    __table_args__ = (db.UniqueConstraint('score_id', 'bonus_id', name='uq_awarded_bonus_score'),)
    id = db.Column(db.Integer, primary_key=True)
    score_id = db.Column(db.Integer, db.ForeignKey('score.id'), nullable=False)
    bonus_id = db.Column(db.String(64), nullable=False)
    bonus_name = db.Column(db.String(128), nullable=False)
    points = db.Column(db.Integer, nullable=False)
    awarded_by = db.Column(db.String(64), nullable=True)
    awarded_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    score = db.relationship('Score', back_populates='custom_bonuses')

    def to_dict(self):
        return {
            'bonus_id': self.bonus_id,
            'bonus_name': self.bonus_name,
            'points': self.points,
            'awarded_by': self.awarded_by,
            'awarded_at': _iso(self.awarded_at),
        }


class TeamCustomBonus(db.Model):
    __tablename__ = 'team_custom_bonus'
    __table_args__ = (
        db.UniqueConstraint('session_id', 'team_id', 'bonus_id', name='uq_team_bonus_session'),
    )
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('session.id'), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    bonus_id = db.Column(db.String(64), nullable=False)
    bonus_name = db.Column(db.String(128), nullable=False)
    points = db.Column(db.Integer, nullable=False)
    awarded_by = db.Column(db.String(64), nullable=True)
    awarded_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    session = db.relationship('Session', back_populates='team_custom_bonuses')

    def to_dict(self):
        return {
            'team_id': self.team_id,
            'bonus_id': self.bonus_id,
            'bonus_name': self.bonus_name,
            'points': self.points,
            'awarded_by': self.awarded_by,
            'awarded_at': _iso(self.awarded_at),
        }


class RevealStateRecord(db.Model):
    """Durable copy of a session's reveal state so a reload resumes progress."""
    __tablename__ = 'reveal_state'
    session_id = db.Column(db.Integer, db.ForeignKey('session.id'), primary_key=True)
    shown_user_ids_json = db.Column(db.Text, nullable=False, default='[]')
    revealed_bonus_team_ids_json = db.Column(db.Text, nullable=False, default='[]')
    version = db.Column(db.Integer, default=0, nullable=False)
    # The session the displays are showing; at most one row is set
    is_active = db.Column(db.Boolean, default=False, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            'session_id': self.session_id,
            'version': self.version,
            'shown_user_ids': _load_list(self.shown_user_ids_json),
            'revealed_bonus_team_ids': _load_list(self.revealed_bonus_team_ids_json),
        }


class RevealStateRepository:
    """Storage contract used by RevealStateRegistry (load / save / delete, plus the active session)."""

    def load(self, session_id):
        record = db.session.get(RevealStateRecord, session_id)
        return record.to_dict() if record else None

    def save(self, snapshot):
        record = db.session.get(RevealStateRecord, snapshot['session_id'])
        if record is None:
            record = RevealStateRecord(session_id=snapshot['session_id'])
        record.shown_user_ids_json = json.dumps(list(snapshot['shown_user_ids']))
        record.revealed_bonus_team_ids_json = json.dumps(list(snapshot['revealed_bonus_team_ids']))
        record.version = snapshot['version']
        db.session.add(record)
        db.session.commit()

    def delete(self, session_id):
        RevealStateRecord.query.filter_by(session_id=session_id).delete()
        db.session.commit()

    def load_active(self):
        record = RevealStateRecord.query.filter_by(is_active=True).first()
        return record.session_id if record else None

    def save_active(self, session_id):
        RevealStateRecord.query.filter(RevealStateRecord.session_id != session_id) \
            .update({'is_active': False}, synchronize_session=False)
        record = db.session.get(RevealStateRecord, session_id)
        if record is None:
            record = RevealStateRecord(session_id=session_id)
        record.is_active = True
        db.session.add(record)
        db.session.commit()
