"""Owner-scoped persistence for interview sessions.

``SessionStore`` wraps a SQLAlchemy session handed to it by the caller. Every
read is filtered by the owning user id, so a session that exists but belongs to
someone else is indistinguishable from one that does not exist.
"""

import logging
from datetime import datetime

from sqlalchemy import update

from errors import NotFoundOrForbidden
from models import InterviewSession

logger = logging.getLogger(__name__)


class SessionStore:

    def __init__(self, db_session):
        self.db_session = db_session

    def persist_session(self, user_id: int, **fields) -> InterviewSession:
        """Insert a new session row and return it with its id populated."""
        session = InterviewSession(user_id=user_id)
        for name, value in fields.items():
            setattr(session, name, value)
        self.db_session.add(session)
        self.db_session.commit()
        logger.info('Created interview session %d for user %d', session.id, user_id)
        return session

    def load_session(self, user_id: int, session_id: int,
                     for_update: bool = False) -> InterviewSession:
        query = self.db_session.query(InterviewSession).filter_by(
            id=session_id, user_id=user_id)
        if for_update:
            query = query.with_for_update()
        session = query.first()
        if session is None:
            raise NotFoundOrForbidden()
        return session

    def update_session(self, session: InterviewSession, **fields) -> InterviewSession:
        for name, value in fields.items():
            setattr(session, name, value)
        self.db_session.commit()
        return session

    def mark_completed(self, session: InterviewSession, feedback: str, score: int) -> bool:
        """Write the terminal fields once.

        The update only matches while ``completed_at`` is still NULL, so of two
        racing completions exactly one succeeds. Returns False for the loser.
        """
        result = self.db_session.execute(
            update(InterviewSession)
            .where(InterviewSession.id == session.id,
                   InterviewSession.user_id == session.user_id,
                   InterviewSession.completed_at.is_(None))
            .values(feedback=feedback, score=score, completed_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db_session.rollback()
            return False
        self.db_session.commit()
        self.db_session.refresh(session)
        return True

    def list_sessions(self, user_id: int, page: int = 1, limit: int = 10) -> list:
        return (
            self.db_session.query(InterviewSession)
            .filter_by(user_id=user_id)
            .order_by(InterviewSession.created_at.desc(), InterviewSession.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
            .all()
        )

    def count_sessions(self, user_id: int) -> int:
        return self.db_session.query(InterviewSession).filter_by(user_id=user_id).count()
