from __future__ import annotations

from collections import deque
from decimal import Decimal
from typing import Any, Deque, Dict, List, Mapping, Optional, Set, Tuple

from ledgerlens.config import settings
from ledgerlens.config.logger import get_logger
from ledgerlens.core.amounts import decode_amount, drops_to_xrp, format_decimal
from ledgerlens.core.errors import DataSourceError, MalformedRecordError, UnsupportedTraceTargetError
from ledgerlens.core.models import TraceConfig, TracePathItem
from ledgerlens.ports.ledger_data_port import LedgerDataPort
from ledgerlens.services.normalizer import ledger_index_of, transaction_body, transaction_hash

logger = get_logger(__name__)


class TracerService:
    """
    Walks Payment edges backward from a transaction to where the sender's
    funds came from.

    - One hop: the sender of the traced Payment, plus the most recent inbound
      Payment from another account in the sender's earlier history
    - Search window: the last TRACE_HISTORY_LIMIT transactions strictly below
      the traced ledger, so the chain only ever moves into the past
    - A funding source older than that window is reported as no source
    """

    def __init__(self, ledger: LedgerDataPort, history_limit: int = settings.TRACE_HISTORY_LIMIT) -> None:
        self.ledger = ledger
        self.history_limit = history_limit

    def trace_step(self, tx_id: str, prices: Optional[Mapping[str, Decimal]] = None) -> TracePathItem:
        item = self.ledger.get_transaction(tx_id)
        tx = transaction_body(item)

        tx_type = tx.get("TransactionType")
        if tx_type != "Payment":
            raise UnsupportedTraceTargetError(tx_id, str(tx_type))

        sender = tx.get("Account")
        if not sender:
            raise MalformedRecordError(f"Payment {tx_id} has no Account")
        ledger_index = ledger_index_of(item)
        if ledger_index is None:
            raise MalformedRecordError(f"Payment {tx_id} has no ledger index")

        amount = decode_amount(tx.get("Amount", tx.get("DeliverMax")))
        balance, balance_usd = self._sender_balance(sender, prices or {})
        next_tx = self._find_funding_tx(sender, ledger_index)

        return TracePathItem(
            address=sender,
            amount=amount.value,
            currency=amount.currency,
            tx_id=transaction_hash(item) or tx_id,
            balance=balance,
            balance_usd=balance_usd,
            next_funding_tx_id=next_tx,
        )

    def trace(self, cfg: TraceConfig, prices: Optional[Mapping[str, Decimal]] = None) -> List[TracePathItem]:
        """
        Repeated trace_step calls, furthest origin first.
        Stops at a step with no funding source, a revisited tx, or cfg.hops.
        """
        hops = max(0, min(int(cfg.hops), settings.TRACE_MAX_HOPS))
        path: Deque[TracePathItem] = deque()
        seen: Set[str] = set()
        tx_id: Optional[str] = cfg.tx_id

        for depth in range(hops):
            if tx_id is None:
                break
            if tx_id in seen:
                logger.info("trace_revisit", tx_id=tx_id, depth=depth)
                break
            seen.add(tx_id)

            step = self.trace_step(tx_id, prices)
            path.appendleft(step)
            logger.info(
                "trace_step",
                depth=depth,
                tx_id=step.tx_id,
                address=step.address,
                next_funding_tx_id=step.next_funding_tx_id,
            )
            tx_id = step.next_funding_tx_id

        return list(path)

    # -------------------------
    # Helpers
    # -------------------------

    def _sender_balance(self, sender: str, prices: Mapping[str, Decimal]) -> Tuple[Optional[str], Optional[Decimal]]:
        # enrichment only; the hop proceeds without it
        try:
            root = self.ledger.get_account_root(sender)
        except DataSourceError as e:
            logger.warning("trace_balance_unavailable", address=sender, error=str(e))
            return None, None

        balance = drops_to_xrp(root.balance_drops)
        xrp_price = Decimal(prices.get(settings.XRP_CURRENCY) or 0)
        balance_usd = balance * xrp_price if xrp_price > 0 else None
        return format_decimal(balance), balance_usd

    def _find_funding_tx(self, sender: str, ledger_index: int) -> Optional[str]:
        page = self.ledger.get_account_history(
            sender,
            limit=self.history_limit,
            ledger_index_max=ledger_index - 1,
        )
        for item in page.items[: self.history_limit]:
            if self._is_funding_candidate(item, sender, ledger_index):
                return transaction_hash(item)
        return None

    @staticmethod
    def _is_funding_candidate(item: Dict[str, Any], sender: str, ledger_index: int) -> bool:
        if not isinstance(item, dict) or not item.get("validated"):
            return False
        try:
            tx = transaction_body(item)
            idx = ledger_index_of(item)
        except MalformedRecordError as e:
            logger.warning("trace_candidate_malformed", sender=sender, error=str(e))
            return False
        if tx.get("TransactionType") != "Payment":
            return False
        # self-payments would make a one-node loop
        if tx.get("Destination") != sender or tx.get("Account") == sender:
            return False
        return idx is not None and idx < ledger_index
