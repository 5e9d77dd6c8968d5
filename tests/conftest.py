import os
import sys
import tempfile
from datetime import datetime
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Point the app at a throwaway database before anything imports config
_DB_DIR = tempfile.mkdtemp(prefix="studycards-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_DB_DIR) / 'test.db'}"

from card_store import StudyCard  # noqa: E402

NOW = datetime(2024, 3, 1, 9, 0, 0)


class FakeStore:
    """In-memory card store recording every call."""

    def __init__(self, cards=None, fail_fetch=False, fail_update=False):
        self.cards = list(cards or [])
        self.fail_fetch = fail_fetch
        self.fail_update = fail_update
        self.fetch_calls = []
        self.updates = []

    def fetch(self, deck_id, due_before=None):
        self.fetch_calls.append((deck_id, due_before))
        if self.fail_fetch:
            raise ConnectionError("database unavailable")
        cards = self.cards
        if due_before is not None:
            cards = [c for c in cards if c.next_review is not None and c.next_review <= due_before]
        return list(cards)

    def update(self, card_id, fields):
        self.updates.append((card_id, fields))
        if self.fail_update:
            raise ConnectionError("write timed out")


def make_card(card_id, **fields):
    defaults = dict(
        front=f"front {card_id}",
        back=f"back {card_id}",
        interval=0,
        repetition=0,
        efactor=2.5,
        next_review=NOW,
    )
    defaults.update(fields)
    return StudyCard(id=card_id, **defaults)


@pytest.fixture
def clock():
    return lambda: NOW
