"""Error taxonomy surfaced to the referee console.

Each error carries the HTTP status the API layer answers with and a short
machine-readable ``code`` so the console can show an actionable message.
"""


class ScoreboardError(Exception):
    status_code = 400
    code = 'error'

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {'error': self.message, 'code': self.code}
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(ScoreboardError):
    status_code = 400
    code = 'validation'


class DuplicateBonusError(ScoreboardError):
    status_code = 409
    code = 'duplicate_bonus'


class NotFoundError(ScoreboardError):
    status_code = 404
    code = 'not_found'


class ConcurrencyError(ScoreboardError):
    """A terminal action was attempted twice (e.g. finalizing a closed session)."""
    status_code = 409
    code = 'concurrency'


class ConfirmationRequiredError(ScoreboardError):
    status_code = 428
    code = 'confirmation_required'


class SessionStateError(ScoreboardError):
    status_code = 409
    code = 'session_state'


class TransportError(ScoreboardError):
    """A single subscriber could not be reached. Never shown to the operator."""
    status_code = 502
    code = 'transport'


class StateDesyncError(ScoreboardError):
    status_code = 409
    code = 'state_desync'
