"""
Study session state machine.

One StudySession drives a single pass-through of a deck:

    loading --> active (unflipped <-> flipped) --> finished

Cards rated "again" are collected in a fail queue and shown again, in the
order they were failed, once the current queue runs out. In review mode every
rating goes through SM-2 and the new schedule is written to the card store in
a detached task; the session never waits for that write. Cards held by the
session keep the scheduling state they were fetched with, so a requeued card
is rescheduled from that state again.
"""

import asyncio
import logging
import uuid
from datetime import timedelta
from enum import Enum
from typing import Callable, Optional

from card_store import ScheduleUpdate, StudyCard
from errors import InvalidTransition, LoadFailure, PersistFailure
from spaced_rep import (
    Rating, ReviewResult, compute, is_failing, next_review_date, rating_to_grade, utcnow,
)

logger = logging.getLogger(__name__)


class StudyMode(str, Enum):
    REVIEW = "review"
    PRACTICE = "practice"


class SessionState(str, Enum):
    LOADING = "loading"
    ACTIVE = "active"
    FINISHED = "finished"


class StudySession:
    def __init__(self, store, deck_id: int, mode=StudyMode.REVIEW,
                 clock: Callable = utcnow):
        self.store = store
        self.deck_id = deck_id
        self._mode = StudyMode(mode)
        self.clock = clock

        self.state = SessionState.LOADING
        self.queue: list[StudyCard] = []
        self.again_queue: list[StudyCard] = []
        self.cursor = 0
        self.flipped = False
        self.pass_number = 0
        self.cards_loaded = 0
        self.failed_writes = 0

        self._fetching = False
        self._pending: set[asyncio.Task] = set()

    @property
    def mode(self) -> StudyMode:
        return self._mode

    @property
    def current_card(self) -> Optional[StudyCard]:
        if self.state is not SessionState.ACTIVE:
            return None
        return self.queue[self.cursor]

    @property
    def can_practice(self) -> bool:
        """An empty review session can be retried as practice."""
        return (self.mode is StudyMode.REVIEW
                and self.state is SessionState.FINISHED
                and self.cards_loaded == 0)

    async def load(self) -> None:
        """Fetch candidate cards; raises LoadFailure if the store fails."""
        if self.state is not SessionState.LOADING or self._fetching:
            raise InvalidTransition("Session has already been loaded")
        self._fetching = True

        due_before = self.clock() if self.mode is StudyMode.REVIEW else None
        try:
            cards = await asyncio.to_thread(self.store.fetch, self.deck_id, due_before)
        except Exception as e:
            logger.error("Loading deck %s failed: %s", self.deck_id, e)
            raise LoadFailure(f"Could not load cards for deck {self.deck_id}") from e

        self.queue = list(cards)
        self.cards_loaded = len(self.queue)
        if not self.queue:
            logger.info("Deck %s has no cards to %s", self.deck_id, self.mode.value)
            self.state = SessionState.FINISHED
            return

        self.pass_number = 1
        self.state = SessionState.ACTIVE
        logger.info("Started %s session on deck %s with %d cards",
                    self.mode.value, self.deck_id, self.cards_loaded)

    def reveal(self) -> None:
        self._require_active()
        self.flipped = True

    def grade(self, rating: Rating) -> Optional[ReviewResult]:
        """
        Rate the current card and move on.

        Must be called from a running event loop in review mode, since the
        scheduling write is dispatched as a task on it.

        Returns:
            The SM-2 result in review mode, None in practice mode
        """
        self._require_active()
        if not self.flipped:
            raise InvalidTransition("Reveal the card before rating it")

        card = self.current_card
        grade = rating_to_grade(rating)

        result = None
        if self.mode is StudyMode.REVIEW:
            # Raises before any state changes when there is no running loop
            loop = asyncio.get_running_loop()
            result = compute(grade, card.interval, card.repetition, card.efactor)
            fields = ScheduleUpdate.from_result(result, next_review_date(result.interval, self.clock()))
            self._dispatch_update(loop, card.id, fields)

        if is_failing(grade):
            self.again_queue.append(card)

        self._advance()
        return result

    def abandon(self) -> None:
        """Stop the session; writes already dispatched are left to finish."""
        self.state = SessionState.FINISHED
        self.flipped = False

    async def drain(self) -> None:
        """Wait for every scheduling write dispatched so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def _require_active(self) -> None:
        if self.state is SessionState.LOADING:
            raise InvalidTransition("Session is still loading")
        if self.state is SessionState.FINISHED:
            raise InvalidTransition("Session is finished")

    def _advance(self) -> None:
        # Flip back before the next card's content is swapped in
        self.flipped = False
        if self.cursor < len(self.queue) - 1:
            self.cursor += 1
        elif self.again_queue:
            self.queue = self.again_queue
            self.again_queue = []
            self.cursor = 0
            self.pass_number += 1
        else:
            self.state = SessionState.FINISHED
            logger.info("Finished %s session on deck %s after %d pass(es)",
                        self.mode.value, self.deck_id, self.pass_number)

    def _dispatch_update(self, loop, card_id: int, fields: ScheduleUpdate) -> None:
        task = loop.create_task(self._persist(card_id, fields))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _persist(self, card_id: int, fields: ScheduleUpdate) -> None:
        try:
            await asyncio.to_thread(self.store.update, card_id, fields)
        except PersistFailure as e:
            self.failed_writes += 1
            logger.error("%s", e)
        except Exception:
            self.failed_writes += 1
            logger.error("Could not persist scheduling for card %s", card_id, exc_info=True)


class SessionRegistry:
    """
    Live sessions keyed by an opaque id.

    A session that has not been touched for `ttl` is dropped on the next
    access. When `max_sessions` are live, adding one evicts the session that
    was touched longest ago. Dropped sessions are abandoned; their dispatched
    writes still run to completion.
    """

    def __init__(self, ttl: timedelta, max_sessions: int, clock: Callable = utcnow):
        self.ttl = ttl
        self.max_sessions = max_sessions
        self.clock = clock
        self._entries: dict[str, list] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._entries

    def add(self, session: StudySession) -> str:
        self.prune()
        while self._entries and len(self._entries) >= self.max_sessions:
            oldest = min(self._entries, key=lambda sid: self._entries[sid][1])
            logger.info("Evicting study session %s; %d sessions live", oldest, len(self._entries))
            self.discard(oldest)

        session_id = uuid.uuid4().hex
        self._entries[session_id] = [session, self.clock()]
        return session_id

    def get(self, session_id: str) -> Optional[StudySession]:
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        now = self.clock()
        if now - entry[1] > self.ttl:
            logger.info("Study session %s expired", session_id)
            self.discard(session_id)
            return None
        entry[1] = now
        return entry[0]

    def discard(self, session_id: str) -> Optional[StudySession]:
        entry = self._entries.pop(session_id, None)
        if entry is None:
            return None
        entry[0].abandon()
        return entry[0]

    def prune(self) -> None:
        now = self.clock()
        expired = [sid for sid, (_, touched) in self._entries.items() if now - touched > self.ttl]
        for session_id in expired:
            logger.info("Study session %s expired", session_id)
            self.discard(session_id)

    def clear(self) -> None:
        for session_id in list(self._entries):
            self.discard(session_id)
