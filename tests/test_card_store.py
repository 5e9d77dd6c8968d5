import asyncio
from datetime import timedelta

import pytest

from card_store import CardStore, ScheduleUpdate
from conftest import NOW
from errors import PersistFailure
from models import CardDB, DeckDB, get_engine, get_session, init_db
from spaced_rep import Rating
from study_session import StudySession


@pytest.fixture
def engine(tmp_path):
    engine = get_engine(f"sqlite:///{tmp_path / 'cards.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def deck(engine):
    db = get_session(engine)
    deck = DeckDB(name="Biology")
    other = DeckDB(name="History")
    db.add_all([deck, other])
    db.flush()
    db.add_all([
        CardDB(deck_id=deck.id, front="late", back="a", next_review=NOW - timedelta(days=1),
               created_at=NOW - timedelta(days=9)),
        CardDB(deck_id=deck.id, front="new-2", back="b", created_at=NOW - timedelta(days=2)),
        CardDB(deck_id=deck.id, front="later", back="c", next_review=NOW + timedelta(days=4),
               created_at=NOW - timedelta(days=8)),
        CardDB(deck_id=deck.id, front="new-1", back="d", created_at=NOW - timedelta(days=3)),
        CardDB(deck_id=deck.id, front="tied", back="e", next_review=NOW - timedelta(days=1),
               created_at=NOW - timedelta(days=7)),
        CardDB(deck_id=other.id, front="elsewhere", back="f"),
    ])
    db.commit()
    deck_id = deck.id
    db.close()
    return deck_id


def test_new_cards_use_default_schedule(engine, deck):
    db = get_session(engine)
    card = db.query(CardDB).filter(CardDB.front == "new-1").one()
    assert (card.interval, card.repetition, card.efactor, card.next_review) == (0, 0, 2.5, None)
    db.close()


def test_fetch_due_cards_in_study_order(engine, deck):
    cards = CardStore(engine).fetch(deck, due_before=NOW)
    assert [c.front for c in cards] == ["late", "tied"]


def test_fetch_all_cards_for_practice(engine, deck):
    cards = CardStore(engine).fetch(deck)
    assert [c.front for c in cards] == ["late", "tied", "later", "new-1", "new-2"]


def test_update_writes_schedule(engine, deck):
    store = CardStore(engine)
    card = store.fetch(deck)[0]
    store.update(card.id, ScheduleUpdate(interval=6, repetition=2, efactor=2.36,
                                         next_review=NOW + timedelta(days=6)))

    [reloaded] = [c for c in store.fetch(deck) if c.id == card.id]
    assert reloaded.interval == 6
    assert reloaded.repetition == 2
    assert reloaded.efactor == pytest.approx(2.36)
    assert reloaded.next_review == NOW + timedelta(days=6)


def test_update_missing_card_fails(engine, deck):
    with pytest.raises(PersistFailure):
        CardStore(engine).update(9999, ScheduleUpdate(1, 1, 2.5, NOW))


def test_review_session_persists_through_store(engine, deck):
    store = CardStore(engine)
    session = StudySession(store, deck, mode="review", clock=lambda: NOW)

    async def scenario():
        await session.load()
        while session.current_card is not None:
            session.reveal()
            session.grade(Rating.GOOD)
        await session.drain()

    asyncio.run(scenario())

    due_now = store.fetch(deck, due_before=NOW)
    assert due_now == []
    repetitions = {c.front: c.repetition for c in store.fetch(deck)}
    assert repetitions == {"late": 1, "tied": 1, "later": 0, "new-1": 0, "new-2": 0}


def test_practice_session_leaves_store_untouched(engine, deck):
    store = CardStore(engine)
    before = store.fetch(deck)

    async def scenario():
        for _ in range(2):
            session = StudySession(store, deck, mode="practice", clock=lambda: NOW)
            await session.load()
            while session.current_card is not None:
                session.reveal()
                session.grade(Rating.AGAIN if session.pass_number == 1 else Rating.EASY)
            await session.drain()

    asyncio.run(scenario())

    assert store.fetch(deck) == before


def test_review_of_only_new_cards_offers_practice(engine):
    db = get_session(engine)
    deck = DeckDB(name="Fresh")
    db.add(deck)
    db.flush()
    db.add_all([CardDB(deck_id=deck.id, front=f"q{i}", back=f"a{i}") for i in range(3)])
    db.commit()
    deck_id = deck.id
    db.close()

    store = CardStore(engine)
    review = StudySession(store, deck_id, mode="review", clock=lambda: NOW)
    asyncio.run(review.load())

    assert review.state.value == "finished"
    assert review.can_practice is True
    assert len(store.fetch(deck_id)) == 3
