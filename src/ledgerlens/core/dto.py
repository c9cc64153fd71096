from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class RawAccountRoot:
    account: str
    balance_drops: int      # XRP balance in drops (raw)
    sequence: Optional[int] = None


@dataclass(frozen=True)
class RawTrustLine:
    account: str            # counterparty of the line
    currency: str           # 3-char or 40-hex code as stored on ledger
    balance: str            # decimal string, signed from the holder's side


@dataclass(frozen=True)
class HistoryPage:
    items: List[Dict[str, Any]] = field(default_factory=list)
    marker: Optional[Any] = None    # absent on the final page
