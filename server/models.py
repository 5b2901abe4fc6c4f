"""
Database models using SQLAlchemy for PostgreSQL support.
Falls back to SQLite if DATABASE_URL is not set.
"""
from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

db = SQLAlchemy()

EVENT_STATES = ('SETUP', 'NOMINATIONS', 'VOTING', 'CLOSED')


def _iso(value):
    return value.isoformat() if value else None


class EventState(db.Model):
    """Singleton row holding the current event stage"""
    __tablename__ = 'event_state'

    id = db.Column(db.Integer, primary_key=True)
    state = db.Column(db.String(20), nullable=False, default='SETUP')
    winners_visible = db.Column(db.Boolean, nullable=False, default=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint(
            "state IN ('SETUP', 'NOMINATIONS', 'VOTING', 'CLOSED')",
            name='check_event_state'
        ),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'state': self.state,
            'winners_visible': self.winners_visible,
            'updated_at': _iso(self.updated_at)
        }


class Category(db.Model):
    __tablename__ = 'categories'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    short_description = db.Column(db.Text, nullable=False)
    order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    winner_candidate_id = db.Column(
        db.Integer, db.ForeignKey('candidates.id', ondelete='SET NULL'), nullable=True
    )
    winner_announced = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    winner_candidate = db.relationship('Candidate', foreign_keys=[winner_candidate_id])
    nominations = db.relationship(
        'Nomination', backref='category', lazy=True, cascade='all, delete-orphan'
    )
    votes = db.relationship(
        'Vote', backref='category', lazy=True, cascade='all, delete-orphan'
    )
    category_candidates = db.relationship(
        'CategoryCandidate', backref='category', lazy=True,
        cascade='all, delete-orphan', order_by='CategoryCandidate.id'
    )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'short_description': self.short_description,
            'order': self.order,
            'is_active': self.is_active,
            'winner_candidate_id': self.winner_candidate_id,
            'winner_announced': self.winner_announced,
            'created_at': _iso(self.created_at)
        }


class Candidate(db.Model):
    __tablename__ = 'candidates'

    id = db.Column(db.Integer, primary_key=True)
    display_name = db.Column(db.String(255), unique=True, nullable=False)
    profile_image_url = db.Column(db.String(512), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    nominations = db.relationship(
        'Nomination', backref='candidate', lazy=True, cascade='all, delete-orphan'
    )
    votes = db.relationship(
        'Vote', backref='candidate', lazy=True, cascade='all, delete-orphan'
    )
    category_candidates = db.relationship(
        'CategoryCandidate', backref='candidate', lazy=True, cascade='all, delete-orphan'
    )

    def to_dict(self):
        return {
            'id': self.id,
            'display_name': self.display_name,
            'profile_image_url': self.profile_image_url,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at)
        }


class CategoryCandidate(db.Model):
    """Finalist selected for a category"""
    __tablename__ = 'category_candidates'

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(
        db.Integer, db.ForeignKey('categories.id', ondelete='CASCADE'), nullable=False
    )
    candidate_id = db.Column(
        db.Integer, db.ForeignKey('candidates.id', ondelete='CASCADE'), nullable=False
    )
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('category_id', 'candidate_id', name='unique_category_candidate'),
    )


class Nomination(db.Model):
    __tablename__ = 'nominations'

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(
        db.Integer, db.ForeignKey('categories.id', ondelete='CASCADE'), nullable=False, index=True
    )
    candidate_id = db.Column(
        db.Integer, db.ForeignKey('candidates.id', ondelete='CASCADE'), nullable=False, index=True
    )
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'category_id': self.category_id,
            'candidate_id': self.candidate_id,
            'created_at': _iso(self.created_at)
        }


class Vote(db.Model):
    __tablename__ = 'votes'

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(
        db.Integer, db.ForeignKey('categories.id', ondelete='CASCADE'), nullable=False, index=True
    )
    candidate_id = db.Column(
        db.Integer, db.ForeignKey('candidates.id', ondelete='CASCADE'), nullable=False, index=True
    )
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'category_id': self.category_id,
            'candidate_id': self.candidate_id,
            'created_at': _iso(self.created_at)
        }


class MemberCode(db.Model):
    """Single-use member code: one nomination submission and one vote submission"""
    __tablename__ = 'member_codes'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), unique=True, nullable=False)
    used_in_nomination = db.Column(db.Boolean, nullable=False, default=False)
    used_in_voting = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'used_in_nomination': self.used_in_nomination,
            'used_in_voting': self.used_in_voting,
            'created_at': _iso(self.created_at)
        }
