class ReconciliationError(Exception):
    """Base class for every error raised by the identify pipeline."""


class InvalidInput(ReconciliationError):
    pass


class StoreError(ReconciliationError):
    """The contact store failed; the surrounding transaction was rolled back."""


class StoreUnavailable(StoreError):
    pass


class WriteConflict(StoreError):
    """The write lock could not be acquired within the busy timeout."""
