"""
Card store used by study sessions.

Sessions work on detached StudyCard copies; the store reads candidates
for a deck and writes scheduling fields back one card at a time.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from errors import PersistFailure
from models import CardDB

logger = logging.getLogger(__name__)


@dataclass
class StudyCard:
    id: int
    front: str
    back: str
    interval: int
    repetition: int
    efactor: float
    next_review: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: CardDB) -> "StudyCard":
        return cls(
            id=row.id,
            front=row.front,
            back=row.back,
            interval=row.interval,
            repetition=row.repetition,
            efactor=row.efactor,
            next_review=row.next_review,
            created_at=row.created_at,
        )


@dataclass(frozen=True)
class ScheduleUpdate:
    interval: int
    repetition: int
    efactor: float
    next_review: datetime

    @classmethod
    def from_result(cls, result, next_review: datetime) -> "ScheduleUpdate":
        return cls(
            interval=result.interval,
            repetition=result.repetition,
            efactor=result.efactor,
            next_review=next_review,
        )


def due_filter(query, due_before: datetime):
    """Cards that have never been reviewed are not due."""
    return query.filter(CardDB.next_review <= due_before)


def study_order(query):
    """Oldest next_review first, unreviewed cards last, then creation order."""
    return query.order_by(
        CardDB.next_review.is_(None),
        CardDB.next_review.asc(),
        CardDB.created_at.asc(),
        CardDB.id.asc(),
    )


class CardStore:
    """SQLAlchemy-backed card store; opens a short-lived session per call."""

    def __init__(self, engine):
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    def fetch(self, deck_id: int, due_before: Optional[datetime] = None) -> list[StudyCard]:
        with self._session_factory() as db:
            query = db.query(CardDB).filter(CardDB.deck_id == deck_id)
            if due_before is not None:
                query = due_filter(query, due_before)
            rows = study_order(query).all()
            return [StudyCard.from_row(row) for row in rows]

    def update(self, card_id: int, fields: ScheduleUpdate) -> None:
        with self._session_factory() as db:
            try:
                card = db.get(CardDB, card_id)
                if card is None:
                    raise PersistFailure(card_id, "card no longer exists")
                card.interval = fields.interval
                card.repetition = fields.repetition
                card.efactor = fields.efactor
                card.next_review = fields.next_review
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise PersistFailure(card_id, str(e)) from e
        logger.debug("Persisted card %s: interval=%s repetition=%s efactor=%.2f",
                     card_id, fields.interval, fields.repetition, fields.efactor)

