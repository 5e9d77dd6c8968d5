"""
Exceptions shared by the scheduler, the study session and the API.
"""


class StudyError(Exception):
    """Base class for study-session errors."""


class LoadFailure(StudyError):
    """Candidate cards could not be fetched; the session cannot start."""


class PersistFailure(StudyError):
    """A scheduling write for a single card failed."""

    def __init__(self, card_id, reason=None):
        self.card_id = card_id
        self.reason = reason
        message = f"Could not persist scheduling for card {card_id}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class InvalidGradeInput(StudyError, ValueError):
    """A rating token outside again/hard/good/easy."""


class InvalidTransition(StudyError):
    """Action not allowed in the session's current state."""


class GenerationError(Exception):
    """The text generation service failed or returned unusable output."""
