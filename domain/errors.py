"""Error types shared by the ledger layers."""


class LedgerError(Exception):
    """Base class for failures raised by the ledger store."""


class ConstraintError(LedgerError):
    """Rejected input: bad amount, direction, empty name or unknown game."""


class StoreError(LedgerError):
    """The underlying database failed or is unavailable."""


class InvalidFilterError(ValueError):
    """A stats filter that is neither empty, `all`, nor a 4-digit year."""

    def __init__(self, raw: str) -> None:
        super().__init__(f"Invalid stats filter: {raw!r}")
        self.raw = raw
