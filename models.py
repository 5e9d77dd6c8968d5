"""
Pydantic & SQLAlchemy models for the study app.
Cards carry the SM-2 scheduling fields.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field
from sqlalchemy import Column, Integer, String, Float, DateTime, Text, create_engine, ForeignKey
from sqlalchemy.orm import declarative_base, sessionmaker, relationship

from spaced_rep import DEFAULT_EFACTOR, utcnow

Base = declarative_base()


# SQLAlchemy ORM Models
class DeckDB(Base):
    __tablename__ = "decks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    cards = relationship("CardDB", back_populates="deck", cascade="all, delete-orphan")
    documents = relationship("DocumentDB", back_populates="deck", cascade="all, delete-orphan")


class DocumentDB(Base):
    """An uploaded source document that cards were generated from."""
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    deck_id = Column(Integer, ForeignKey("decks.id"), nullable=False, index=True)
    filename = Column(String(500), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    deck = relationship("DeckDB", back_populates="documents")
    cards = relationship("CardDB", back_populates="document", cascade="all, delete-orphan")


class CardDB(Base):
    __tablename__ = "cards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    deck_id = Column(Integer, ForeignKey("decks.id"), nullable=False, index=True)
    document_id = Column(Integer, ForeignKey("documents.id"), nullable=True)
    front = Column(Text, nullable=False)
    back = Column(Text, nullable=False)

    # SM-2 Spaced Repetition fields
    efactor = Column(Float, default=DEFAULT_EFACTOR, nullable=False)  # Ease factor, floor 1.3
    interval = Column(Integer, default=0, nullable=False)             # Days until next review
    repetition = Column(Integer, default=0, nullable=False)           # Successful reviews in a row
    next_review = Column(DateTime, nullable=True, index=True)         # Never reviewed when NULL

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    deck = relationship("DeckDB", back_populates="cards")
    document = relationship("DocumentDB", back_populates="cards")


# Pydantic models for API
class DeckCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class DeckUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class DeckResponse(BaseModel):
    id: int
    name: str
    created_at: datetime
    card_count: int = 0
    due_count: int = 0


class CardCreate(BaseModel):
    front: str = Field(..., min_length=1)
    back: str = Field(..., min_length=1)


class CardUpdate(BaseModel):
    """Content edit; scheduling fields are never touched from here."""
    front: Optional[str] = Field(None, min_length=1)
    back: Optional[str] = Field(None, min_length=1)


class CardResponse(BaseModel):
    id: int
    deck_id: int
    document_id: Optional[int] = None
    front: str
    back: str
    interval: int
    repetition: int
    efactor: float
    next_review: Optional[datetime] = None

    class Config:
        from_attributes = True


class DocumentResponse(BaseModel):
    id: int
    deck_id: int
    filename: str
    created_at: datetime
    card_count: int = 0


class GeneratedCard(BaseModel):
    front: str
    back: str


class GenerateResponse(BaseModel):
    cards: list[GeneratedCard]


class UploadResponse(BaseModel):
    document: DocumentResponse
    cards: list[CardResponse]


class GradeRequest(BaseModel):
    rating: str = Field(..., description="again | hard | good | easy")


class StudyCardView(BaseModel):
    id: int
    front: str
    back: Optional[str] = None  # Hidden until the card is flipped


class SessionView(BaseModel):
    session_id: str
    deck_id: int
    mode: Literal["review", "practice"]
    state: Literal["loading", "active", "finished"]
    flipped: bool
    card: Optional[StudyCardView] = None
    position: int = 0
    queue_length: int = 0
    pass_number: int = 0
    again_pending: int = 0
    cards_loaded: int = 0
    can_practice: bool = False


# Database setup
def get_engine(database_url: str):
    connect_args = {}
    if database_url.startswith("sqlite"):
        # The card store is driven from worker threads
        connect_args["check_same_thread"] = False
    return create_engine(database_url, echo=False, connect_args=connect_args)


def init_db(engine):
    Base.metadata.create_all(engine)


def get_session(engine):
    Session = sessionmaker(bind=engine)
    return Session()
