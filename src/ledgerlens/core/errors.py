class LedgerLensError(Exception):
    pass


class DataSourceError(LedgerLensError):
    pass


class ConnectivityError(DataSourceError):
    """Every configured ledger endpoint failed."""


class RateLimitError(DataSourceError):
    pass


class AccountNotFoundError(DataSourceError):
    def __init__(self, address: str) -> None:
        super().__init__(f"Account not found: {address}")
        self.address = address


class TransactionNotFoundError(DataSourceError):
    def __init__(self, tx_hash: str) -> None:
        super().__init__(f"Transaction not found: {tx_hash}")
        self.tx_hash = tx_hash


class EnrichmentError(DataSourceError):
    pass


class UnsupportedTraceTargetError(LedgerLensError):
    def __init__(self, tx_hash: str, tx_type: str) -> None:
        super().__init__(
            f"Tracing is only supported for Payment transactions ({tx_hash} is {tx_type})"
        )
        self.tx_hash = tx_hash
        self.tx_type = tx_type


class MalformedRecordError(LedgerLensError):
    pass
