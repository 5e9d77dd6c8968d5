"""
FastAPI backend for the StudyCards app.
Decks of flashcards generated from uploaded documents, studied with SM-2.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

import config
from card_store import CardStore, due_filter, study_order
from chat_client import ChatClient
from errors import GenerationError, InvalidGradeInput, InvalidTransition, LoadFailure
from generator import CARD_STYLES, extract_text, generate_cards
from models import (
    CardDB, DeckDB, DocumentDB,
    CardCreate, CardUpdate, CardResponse, DeckCreate, DeckUpdate, DeckResponse,
    DocumentResponse, GenerateResponse, GradeRequest, SessionView, StudyCardView, UploadResponse,
    get_engine, init_db, get_session,
)
from spaced_rep import parse_rating, utcnow
from study_session import SessionRegistry, SessionState, StudyMode, StudySession

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
)
logger = logging.getLogger(__name__)

engine = get_engine(config.DATABASE_URL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(engine)
    logger.info("Database initialized at %s", config.DATABASE_URL)
    yield


app = FastAPI(
    title="StudyCards API",
    description="Flashcards from your documents, scheduled with SM-2",
    version="1.0.0",
    lifespan=lifespan,
)


# Dependency to get DB session
def get_db():
    session = get_session(engine)
    try:
        yield session
    finally:
        session.close()


_card_store = None

def get_card_store():
    global _card_store
    if _card_store is None:
        _card_store = CardStore(engine)
    return _card_store


_chat_client = None

def get_chat_client():
    global _chat_client
    if _chat_client is None:
        _chat_client = ChatClient()
    return _chat_client


# Live study sessions, discarded once finished, abandoned or idle too long
_sessions = SessionRegistry(timedelta(minutes=config.SESSION_TTL_MINUTES), config.MAX_SESSIONS)


def _get_deck(db: Session, deck_id: int) -> DeckDB:
    deck = db.query(DeckDB).filter(DeckDB.id == deck_id).first()
    if not deck:
        raise HTTPException(status_code=404, detail="Deck not found")
    return deck


def _get_card(db: Session, card_id: int) -> CardDB:
    card = db.query(CardDB).filter(CardDB.id == card_id).first()
    if not card:
        raise HTTPException(status_code=404, detail="Card not found")
    return card


def _deck_response(db: Session, deck: DeckDB) -> DeckResponse:
    cards = db.query(CardDB).filter(CardDB.deck_id == deck.id)
    return DeckResponse(
        id=deck.id,
        name=deck.name,
        created_at=deck.created_at,
        card_count=cards.count(),
        due_count=due_filter(cards, utcnow()).count(),
    )


def _document_response(document: DocumentDB) -> DocumentResponse:
    return DocumentResponse(
        id=document.id,
        deck_id=document.deck_id,
        filename=document.filename,
        created_at=document.created_at,
        card_count=len(document.cards),
    )


async def _generate_from_upload(file: UploadFile, count: Optional[int], style: str, client):
    if style not in CARD_STYLES:
        raise HTTPException(status_code=422, detail=f"style must be one of {', '.join(CARD_STYLES)}")
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="No file uploaded")
    try:
        text = extract_text(content)
        logger.info("Extracted %d characters from %s", len(text), file.filename)
        return await asyncio.to_thread(generate_cards, client, text, count, style)
    except GenerationError as e:
        logger.error("Generation failed for %s: %s", file.filename, e)
        raise HTTPException(status_code=502, detail=f"Generation failed: {e}")


def _session_view(session_id: str, session: StudySession) -> SessionView:
    card = session.current_card
    card_view = None
    if card is not None:
        card_view = StudyCardView(
            id=card.id,
            front=card.front,
            back=card.back if session.flipped else None,
        )
    return SessionView(
        session_id=session_id,
        deck_id=session.deck_id,
        mode=session.mode.value,
        state=session.state.value,
        flipped=session.flipped,
        card=card_view,
        position=session.cursor + 1 if card is not None else 0,
        queue_length=len(session.queue) if card is not None else 0,
        pass_number=session.pass_number,
        again_pending=len(session.again_queue),
        cards_loaded=session.cards_loaded,
        can_practice=session.can_practice,
    )


def _get_study_session(session_id: str) -> StudySession:
    session = _sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Study session not found")
    return session


def _respond(session_id: str, session: StudySession) -> SessionView:
    view = _session_view(session_id, session)
    if session.state is SessionState.FINISHED:
        _sessions.discard(session_id)
    return view


# --- Routes ---

@app.get("/")
async def root():
    return {"message": "StudyCards API - visit /docs for the API."}


@app.get("/api/decks", response_model=list[DeckResponse])
async def list_decks(db: Session = Depends(get_db)):
    """List all decks with card and due counts."""
    decks = db.query(DeckDB).order_by(DeckDB.created_at.desc()).all()
    return [_deck_response(db, deck) for deck in decks]


@app.post("/api/decks", response_model=DeckResponse)
async def create_deck(deck: DeckCreate, db: Session = Depends(get_db)):
    db_deck = DeckDB(name=deck.name)
    db.add(db_deck)
    db.commit()
    db.refresh(db_deck)
    return _deck_response(db, db_deck)


@app.get("/api/decks/{deck_id}", response_model=DeckResponse)
async def get_deck(deck_id: int, db: Session = Depends(get_db)):
    return _deck_response(db, _get_deck(db, deck_id))


@app.patch("/api/decks/{deck_id}", response_model=DeckResponse)
async def rename_deck(deck_id: int, update: DeckUpdate, db: Session = Depends(get_db)):
    deck = _get_deck(db, deck_id)
    deck.name = update.name
    db.commit()
    db.refresh(deck)
    return _deck_response(db, deck)


@app.delete("/api/decks/{deck_id}")
async def delete_deck(deck_id: int, db: Session = Depends(get_db)):
    """Delete a deck together with its cards and documents."""
    deck = _get_deck(db, deck_id)
    db.delete(deck)
    db.commit()
    return {"message": "Deck deleted"}


@app.get("/api/decks/{deck_id}/cards", response_model=list[CardResponse])
async def list_cards(deck_id: int, db: Session = Depends(get_db)):
    _get_deck(db, deck_id)
    return study_order(db.query(CardDB).filter(CardDB.deck_id == deck_id)).all()


@app.post("/api/decks/{deck_id}/cards", response_model=CardResponse)
async def create_card(deck_id: int, card: CardCreate, db: Session = Depends(get_db)):
    """Add a card by hand; it starts with default scheduling."""
    _get_deck(db, deck_id)
    db_card = CardDB(deck_id=deck_id, front=card.front, back=card.back)
    db.add(db_card)
    db.commit()
    db.refresh(db_card)
    return db_card


@app.get("/api/cards/{card_id}", response_model=CardResponse)
async def get_card(card_id: int, db: Session = Depends(get_db)):
    return _get_card(db, card_id)


@app.patch("/api/cards/{card_id}", response_model=CardResponse)
async def update_card(card_id: int, update: CardUpdate, db: Session = Depends(get_db)):
    """Edit a card's content."""
    card = _get_card(db, card_id)
    if update.front is not None:
        card.front = update.front
    if update.back is not None:
        card.back = update.back
    db.commit()
    db.refresh(card)
    return card


@app.delete("/api/cards/{card_id}")
async def delete_card(card_id: int, db: Session = Depends(get_db)):
    card = _get_card(db, card_id)
    db.delete(card)
    db.commit()
    return {"message": "Card deleted"}


@app.get("/api/decks/{deck_id}/documents", response_model=list[DocumentResponse])
async def list_documents(deck_id: int, db: Session = Depends(get_db)):
    deck = _get_deck(db, deck_id)
    return [_document_response(d) for d in deck.documents]


@app.post("/api/decks/{deck_id}/documents", response_model=UploadResponse)
async def upload_document(
    deck_id: int,
    file: UploadFile = File(...),
    count: Optional[int] = Form(None),
    style: str = Form("mixed"),
    db: Session = Depends(get_db),
    client=Depends(get_chat_client),
):
    """Generate cards from an uploaded PDF and add them to the deck."""
    _get_deck(db, deck_id)
    generated = await _generate_from_upload(file, count, style, client)

    document = DocumentDB(deck_id=deck_id, filename=file.filename or "document.pdf")
    db.add(document)
    db.flush()
    cards = [
        CardDB(deck_id=deck_id, document_id=document.id, front=c.front, back=c.back)
        for c in generated
    ]
    db.add_all(cards)
    db.commit()
    db.refresh(document)
    logger.info("Added %d cards from %s to deck %s", len(cards), document.filename, deck_id)

    return UploadResponse(
        document=_document_response(document),
        cards=[CardResponse.model_validate(c) for c in cards],
    )


@app.delete("/api/documents/{document_id}")
async def delete_document(document_id: int, db: Session = Depends(get_db)):
    """Delete a document and every card generated from it."""
    document = db.query(DocumentDB).filter(DocumentDB.id == document_id).first()
    if not document:
        raise HTTPException(status_code=404, detail="Document not found")
    db.delete(document)
    db.commit()
    return {"message": "Document deleted"}


@app.post("/api/generate", response_model=GenerateResponse)
async def generate_preview(
    file: UploadFile = File(...),
    count: Optional[int] = Form(None),
    style: str = Form("mixed"),
    client=Depends(get_chat_client),
):
    """Generate cards from a PDF without saving them."""
    cards = await _generate_from_upload(file, count, style, client)
    return GenerateResponse(cards=cards)


# --- Study sessions ---

@app.post("/api/study/{deck_id}", response_model=SessionView)
async def start_study(
    deck_id: int,
    mode: StudyMode = StudyMode.REVIEW,
    db: Session = Depends(get_db),
    store: CardStore = Depends(get_card_store),
):
    """Start a review (due cards only) or practice (all cards) session."""
    _get_deck(db, deck_id)
    session = StudySession(store, deck_id, mode)
    try:
        await session.load()
    except LoadFailure as e:
        raise HTTPException(status_code=503, detail=str(e))

    session_id = _sessions.add(session)
    return _respond(session_id, session)


@app.get("/api/study/sessions/{session_id}", response_model=SessionView)
async def get_study_session(session_id: str):
    return _respond(session_id, _get_study_session(session_id))


@app.post("/api/study/sessions/{session_id}/reveal", response_model=SessionView)
async def reveal_card(session_id: str):
    session = _get_study_session(session_id)
    try:
        session.reveal()
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _respond(session_id, session)


@app.post("/api/study/sessions/{session_id}/grade", response_model=SessionView)
async def grade_card(session_id: str, request: GradeRequest):
    """Rate the current card: again, hard, good or easy."""
    try:
        rating = parse_rating(request.rating)
    except InvalidGradeInput as e:
        raise HTTPException(status_code=422, detail=str(e))

    session = _get_study_session(session_id)
    try:
        session.grade(rating)
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _respond(session_id, session)


@app.delete("/api/study/sessions/{session_id}")
async def abandon_study(session_id: str):
    if _sessions.discard(session_id) is None:
        raise HTTPException(status_code=404, detail="Study session not found")
    return {"message": "Session abandoned"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
