"""
Engine exception types.

Business outcomes such as a confirmed slot or an already-terminal group are
returned as result values, not raised. Only faults live here.
"""


class ValidationError(ValueError):
    """Malformed input (bad interval, unknown court, foreign group). Not retried."""


class InvalidTransition(ValidationError):
    """A lifecycle operation requested from a state that cannot accept it."""


class BusyError(RuntimeError):
    """
    A court lock or the database write lock could not be acquired in time.

    Transient contention: the caller should retry with backoff.
    """

    def __init__(self, message: str = 'Resource busy, retry later', court_id: int = None):
        super().__init__(message)
        self.court_id = court_id


class ConsistencyViolation(Exception):
    """
    Drift detected by the reconciler.

    Carries enough context to be logged and written to the audit log.
    """

    def __init__(self, kind: str, entity_type: str, entity_id: int,
                 before: dict = None, after: dict = None, repairable: bool = False):
        super().__init__(f"{kind} on {entity_type} #{entity_id}")
        self.kind = kind
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.before = before
        self.after = after
        self.repairable = repairable

    def as_dict(self) -> dict:
        return {
            'kind': self.kind,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'before': self.before,
            'after': self.after,
            'repairable': self.repairable,
        }
