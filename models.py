"""Database models for the mock interview backend: users and interview sessions."""

import json
from datetime import datetime

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

DIFFICULTY_LEVELS = ('beginner', 'intermediate', 'advanced')
DEFAULT_DIFFICULTY = 'intermediate'


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    subscription_status = db.Column(db.String(50), default='free', nullable=False)  # free / premium
    is_verified = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    interview_sessions = db.relationship(
        'InterviewSession', backref='user', cascade='all, delete-orphan',
    )

    def __repr__(self):
        return f'<User {self.email}>'


class InterviewSession(db.Model):
    """A single mock interview session.

    Questions are fixed at creation. Answers are a list of the same length
    holding ``None`` for every unanswered slot. The session is completed once
    ``completed_at`` is set and never changes afterwards.
    """
    __tablename__ = 'interview_sessions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'),
                        nullable=False, index=True)

    # Setup parameters
    resume_url = db.Column(db.String(500))
    resume_text = db.Column(db.Text)
    jd_text = db.Column(db.Text, nullable=False)
    focus_areas_json = db.Column(db.Text, default='[]')
    difficulty = db.Column(db.String(50), default=DEFAULT_DIFFICULTY, nullable=False)
    role_type = db.Column(db.String(100))

    # Session state
    questions_json = db.Column(db.Text, default='[]')
    answers_json = db.Column(db.Text, default='[]')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Results (populated on completion)
    feedback = db.Column(db.Text)
    score = db.Column(db.Integer)                                    # 1-100
    completed_at = db.Column(db.DateTime)

    def __repr__(self):
        status = 'completed' if self.is_completed else 'active'
        return f'<InterviewSession id={self.id} user={self.user_id} status={status}>'

    def _parse_json(self, field_name):
        """Parse a JSON text field into a Python list."""
        val = getattr(self, field_name, '[]')
        try:
            return json.loads(val) if val else []
        except (json.JSONDecodeError, TypeError):
            return []

    def _set_json(self, field_name, value):
        """Serialize a list to JSON text and set on the field."""
        setattr(self, field_name, json.dumps(list(value) if value else []))

    @property
    def focus_areas(self):
        return self._parse_json('focus_areas_json')

    @focus_areas.setter
    def focus_areas(self, value):
        self._set_json('focus_areas_json', value)

    @property
    def questions(self):
        return self._parse_json('questions_json')

    @questions.setter
    def questions(self, value):
        self._set_json('questions_json', value)

    @property
    def answers(self):
        """Answers padded to the question count; unanswered slots are None."""
        stored = self._parse_json('answers_json')
        total = len(self.questions)
        return (stored + [None] * total)[:total]

    @answers.setter
    def answers(self, value):
        self._set_json('answers_json', value)

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def next_question_index(self):
        """Index of the first unanswered question, or None if all are answered."""
        for i, answer in enumerate(self.answers):
            if answer is None:
                return i
        return None

    def to_dict(self):
        """Full projection returned by the session endpoint."""
        return {
            'id': self.id,
            'jd_text': self.jd_text,
            'difficulty': self.difficulty,
            'role_type': self.role_type,
            'focus_areas': self.focus_areas,
            'questions_asked': self.questions,
            'answers_given': self.answers,
            'feedback': self.feedback,
            'score': self.score,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'is_completed': self.is_completed,
        }

    def to_summary(self):
        """Compact projection used by the history listing."""
        return {
            'id': self.id,
            'jd_text': self.jd_text,
            'difficulty': self.difficulty,
            'role_type': self.role_type,
            'score': self.score,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'is_completed': self.is_completed,
        }
