from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal, InvalidOperation
from typing import Any, List, Mapping, Optional, Set

from ledgerlens.config import settings
from ledgerlens.config.logger import get_logger
from ledgerlens.core.amounts import decode_currency_code, drops_to_xrp, format_decimal
from ledgerlens.core.errors import MalformedRecordError
from ledgerlens.core.models import (
    AccountInfo,
    AccountSummary,
    Balance,
    ProcessedTransaction,
    TransactionPage,
)
from ledgerlens.ports.label_port import LabelPort
from ledgerlens.ports.ledger_data_port import LedgerDataPort
from ledgerlens.ports.price_port import PricePort
from ledgerlens.services.normalizer import (
    apply_trade_valuation,
    normalize_batch,
    normalize_transaction,
    transaction_body,
)

logger = get_logger(__name__)


def _is_zero(value: str) -> bool:
    try:
        return Decimal(value) == 0
    except InvalidOperation:
        return False


class AccountService:
    """
    Account and transaction lookups for the presentation layer.

    Label and price snapshots are read once per call and handed down
    explicitly; nothing below this class reads shared caches.
    """

    def __init__(
        self,
        ledger: LedgerDataPort,
        price: PricePort,
        labels: Optional[LabelPort] = None,
        page_size: int = settings.HISTORY_PAGE_SIZE,
    ) -> None:
        self.ledger = ledger
        self.price = price
        self.labels = labels
        self.page_size = page_size

    def known_addresses(self) -> Mapping[str, str]:
        if self.labels is None:
            return {}
        return self.labels.get_known_addresses()

    def get_account_info(self, address: str) -> AccountInfo:
        root = self.ledger.get_account_root(address)
        lines = self.ledger.get_trust_lines(address)

        balances = [Balance(currency=settings.XRP_CURRENCY, value=format_decimal(drops_to_xrp(root.balance_drops)))]
        for line in lines:
            if _is_zero(line.balance):
                continue
            balances.append(
                Balance(currency=decode_currency_code(line.currency), value=line.balance, issuer=line.account)
            )
        return AccountInfo(address=root.account, balances=balances)

    def get_transactions(
        self,
        address: str,
        marker: Optional[Any] = None,
        labels: Optional[Mapping[str, str]] = None,
    ) -> TransactionPage:
        page = self.ledger.get_account_history(address, marker=marker, limit=self.page_size)
        if labels is None:
            labels = self.known_addresses()
        txs = normalize_batch(page.items, address, labels)
        logger.debug("history_page_decoded", address=address, raw=len(page.items), kept=len(txs))
        return TransactionPage(transactions=txs, marker=page.marker)

    def get_transaction_details(self, tx_hash: str) -> ProcessedTransaction:
        """Single lookup, seen from the initiating account. Failures propagate."""
        item = self.ledger.get_transaction(tx_hash)
        initiator = transaction_body(item).get("Account") or ""
        tx = normalize_transaction(item, initiator, self.known_addresses())
        if tx is None:
            raise MalformedRecordError(f"Failed to process transaction data: {tx_hash}")
        return apply_trade_valuation(tx)

    def get_account_summary(self, address: str) -> AccountSummary:
        """
        Prices, account snapshot and first history page, fetched concurrently.
        Any failing read fails the whole summary.
        """
        labels = self.known_addresses()
        with ThreadPoolExecutor(max_workers=3) as executor:
            prices_f = executor.submit(self.price.get_price_table)
            info_f = executor.submit(self.get_account_info, address)
            page_f = executor.submit(self.get_transactions, address, None, labels)

            info = info_f.result()
            page = page_f.result()
            prices = prices_f.result()

        logger.info(
            "account_summary_loaded",
            address=address,
            balances=len(info.balances),
            transactions=len(page.transactions),
            has_more=page.marker is not None,
        )
        return AccountSummary(
            account=info,
            transactions=page.transactions,
            marker=page.marker,
            prices=prices,
        )

    def open_history(self, summary: AccountSummary) -> "HistoryPager":
        return HistoryPager(self, summary.account.address, summary.transactions, summary.marker)


class HistoryPager:
    """
    "Load more" over one account's history.

    One fetch at a time: an overlapping load_more() is rejected rather than
    queued, and the marker only advances after a page was merged. Records
    already held are dropped from incoming pages.
    """

    def __init__(
        self,
        service: AccountService,
        address: str,
        transactions: Optional[List[ProcessedTransaction]] = None,
        marker: Optional[Any] = None,
    ) -> None:
        self._service = service
        self.address = address
        self._transactions: List[ProcessedTransaction] = list(transactions or [])
        self._known_ids: Set[str] = {t.id for t in self._transactions}
        self._marker = marker
        self._in_flight = threading.Lock()

    @property
    def transactions(self) -> List[ProcessedTransaction]:
        return list(self._transactions)

    @property
    def marker(self) -> Optional[Any]:
        return self._marker

    @property
    def has_more(self) -> bool:
        return self._marker is not None

    @property
    def in_flight(self) -> bool:
        return self._in_flight.locked()

    def load_more(self) -> List[ProcessedTransaction]:
        """Fetch the next page; returns only the records that were appended."""
        if self._marker is None:
            return []
        if not self._in_flight.acquire(blocking=False):
            logger.info("load_more_rejected", address=self.address)
            return []
        try:
            page = self._service.get_transactions(self.address, marker=self._marker)

            fresh: List[ProcessedTransaction] = []
            for tx in page.transactions:
                if tx.id in self._known_ids:
                    continue
                self._known_ids.add(tx.id)
                fresh.append(tx)

            self._transactions.extend(fresh)
            self._marker = page.marker
            logger.debug("load_more_merged", address=self.address, added=len(fresh), has_more=self.has_more)
            return fresh
        finally:
            self._in_flight.release()
