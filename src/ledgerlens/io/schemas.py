from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

from ledgerlens.core.amounts import portfolio_value_usd
from ledgerlens.core.models import (
    AccountInfo,
    AccountSummary,
    Balance,
    DetailedBalanceChange,
    ProcessedTransaction,
    TracePathItem,
)


def _dec_to_str(x: Optional[Decimal]) -> Optional[str]:
    # keep as string for JSON precision safety
    return format(x, "f") if x is not None else None


def balance_to_dict(b: Balance) -> Dict[str, Any]:
    d: Dict[str, Any] = {"currency": b.currency, "value": b.value}
    if b.issuer is not None:
        d["issuer"] = b.issuer
    return d


def detailed_change_to_dict(c: DetailedBalanceChange) -> Dict[str, Any]:
    d: Dict[str, Any] = {"account": c.account, "currency": c.currency, "value": c.value}
    if c.issuer is not None:
        d["issuer"] = c.issuer
    return d


def transaction_to_dict(tx: ProcessedTransaction, include_raw: bool = True) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "id": tx.id,
        "date": tx.date,
        "type": tx.type,
        "details_key": tx.details_key,
        "details_params": dict(tx.details_params),
        "fee": tx.fee,
        "result": tx.result,
        "balance_changes": [balance_to_dict(b) for b in tx.balance_changes],
        "all_balance_changes": [detailed_change_to_dict(c) for c in tx.all_balance_changes],
        "xrp_price_at_tx": _dec_to_str(tx.xrp_price_at_tx),
        "xrp_value_usd": _dec_to_str(tx.xrp_value_usd),
    }
    if include_raw:
        d["raw_data"] = tx.raw_data
    return d


def account_info_to_dict(info: AccountInfo) -> Dict[str, Any]:
    return {
        "address": info.address,
        "balances": [balance_to_dict(b) for b in info.balances],
    }


def summary_to_dict(summary: AccountSummary, transactions: Optional[List[ProcessedTransaction]] = None) -> Dict[str, Any]:
    txs = summary.transactions if transactions is None else transactions
    return {
        "account": account_info_to_dict(summary.account),
        "prices": {k: _dec_to_str(v) for k, v in summary.prices.items()},
        "total_value_usd": _dec_to_str(portfolio_value_usd(summary.account.balances, summary.prices)),
        "transactions": [transaction_to_dict(t) for t in txs],
    }


def trace_item_to_dict(item: TracePathItem) -> Dict[str, Any]:
    return {
        "address": item.address,
        "amount": item.amount,
        "currency": item.currency,
        "tx_id": item.tx_id,
        "balance": item.balance,
        "balance_usd": _dec_to_str(item.balance_usd),
        "next_funding_tx_id": item.next_funding_tx_id,
    }
