from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from ledgerlens.core.dto import HistoryPage, RawAccountRoot, RawTrustLine

class LedgerDataPort(ABC):
    """
    Abstract Class for reading ledger state and history.

    Implementations own transport concerns (timeouts, retries, endpoint
    failover) and report failures as DataSourceError subclasses.
    """

    # --- Account state ---

    @abstractmethod
    def get_account_root(self, address: str) -> RawAccountRoot:
        """Raises AccountNotFoundError for addresses unknown to the ledger."""
        raise NotImplementedError

    @abstractmethod
    def get_trust_lines(self, address: str) -> List[RawTrustLine]:
        raise NotImplementedError

    # --- History (newest first, marker paginated) ---

    @abstractmethod
    def get_account_history(
        self,
        address: str,
        marker: Optional[Any] = None,
        limit: int = 100,
        ledger_index_max: Optional[int] = None,
    ) -> HistoryPage:
        raise NotImplementedError

    # --- Single transaction lookup ---

    @abstractmethod
    def get_transaction(self, tx_hash: str) -> Dict[str, Any]:
        """Raises TransactionNotFoundError for unknown hashes."""
        raise NotImplementedError
