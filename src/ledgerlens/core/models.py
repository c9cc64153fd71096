from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional



# Configuration model

@dataclass(frozen=True)
class TraceConfig:
    """
    Run configuration for a multi-hop funds trace.
    """

    tx_id: str
    hops: int = 1


# Balances

@dataclass(frozen=True)
class Balance:

    currency: str
    value: str                  # decimal string, signed when used as a delta
    issuer: Optional[str] = None


@dataclass(frozen=True)
class DetailedBalanceChange:

    account: str
    currency: str
    value: str
    issuer: Optional[str] = None    # trust line counterparty


@dataclass(frozen=True)
class AccountInfo:

    address: str
    balances: List[Balance] = field(default_factory=list)


# Transactions

@dataclass(frozen=True)
class ProcessedTransaction:

    id: str
    date: str                   # ISO-8601 UTC or "N/A"
    type: str
    details_key: str
    details_params: Dict[str, Any]
    fee: str
    balance_changes: List[Balance]
    result: str
    raw_data: str
    all_balance_changes: List[DetailedBalanceChange] = field(default_factory=list)

    xrp_price_at_tx: Optional[Decimal] = None
    xrp_value_usd: Optional[Decimal] = None


@dataclass(frozen=True)
class TransactionPage:

    transactions: List[ProcessedTransaction] = field(default_factory=list)
    marker: Optional[Any] = None


@dataclass(frozen=True)
class AccountSummary:

    account: AccountInfo
    transactions: List[ProcessedTransaction]
    marker: Optional[Any]
    prices: Dict[str, Decimal]


# Funds trace

@dataclass(frozen=True)
class TracePathItem:

    address: str
    amount: str
    currency: str
    tx_id: str

    balance: Optional[str] = None
    balance_usd: Optional[Decimal] = None
    next_funding_tx_id: Optional[str] = None    # None ends the chain
