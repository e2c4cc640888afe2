# src/nexus_ledger/ledger/exceptions.py


class LedgerError(Exception):
    """Base exception for ledger related errors."""

    pass


class InvalidPortfolioError(LedgerError):
    """Raised when a portfolio identifier is not one of the known books."""

    def __init__(self, value: object):
        super().__init__(f"Unknown portfolio: {value!r}")
        self.value = value


class InvalidTransactionError(LedgerError):
    """Raised when transaction input is malformed."""

    pass


class InsufficientBalanceError(LedgerError):
    """Raised when a disposal exceeds the balance held at its own date."""

    def __init__(self, requested: float, available: float, portfolio_id: str):
        super().__init__(
            f"Insufficient balance in '{portfolio_id}': requested {requested:.4f}, "
            f"available {available:.4f}"
        )
        self.requested = requested
        self.available = available
        self.portfolio_id = portfolio_id


class LedgerSchemaError(LedgerError):
    """Raised when the stored ledger schema version is unsupported."""

    def __init__(self, found: object, expected: int):
        super().__init__(
            f"Unsupported ledger schema version {found}; expected {expected}"
        )
        self.found = found
        self.expected = expected
