"""
Balance deltas from transaction metadata.

One traversal over meta["AffectedNodes"] serves both modes:

- all parties: every AccountRoot delta, and two mirrored entries per changed
  RippleState (low side +delta, high side -delta, each naming the other side
  as issuer)
- perspective: the all-parties result restricted to one account

XRP deltas are computed on integer drops. Trust line deltas are float
subtractions of the stored decimal strings.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional, Tuple

from ledgerlens.config.settings import XRP_CURRENCY
from ledgerlens.core.amounts import decode_currency_code, drops_to_xrp, format_decimal, format_float
from ledgerlens.core.errors import MalformedRecordError
from ledgerlens.core.models import Balance, DetailedBalanceChange

CREATED = "CreatedNode"
MODIFIED = "ModifiedNode"
DELETED = "DeletedNode"
_NODE_KINDS = (MODIFIED, CREATED, DELETED)


def _iter_nodes(meta: Optional[Dict[str, Any]]) -> Iterator[Tuple[str, Dict[str, Any]]]:
    if not isinstance(meta, dict):
        return
    for affected in meta.get("AffectedNodes") or []:
        if not isinstance(affected, dict):
            continue
        for kind in _NODE_KINDS:
            node = affected.get(kind)
            if isinstance(node, dict) and node.get("LedgerEntryType"):
                yield kind, node
                break


def _as_dict(raw: Any, name: str) -> Dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise MalformedRecordError(f"{name} is not an object: {type(raw).__name__}")
    return raw


def _fields(node: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    final = _as_dict(node.get("FinalFields") or node.get("NewFields"), "FinalFields")
    prev = _as_dict(node.get("PreviousFields"), "PreviousFields")
    return final, prev


def _before_after(kind: str, current: Any, previous: Any, zero: Any) -> Optional[Tuple[Any, Any]]:
    """
    (before, after) for one balance field. Created entries start at zero,
    deleted ones end at zero; an unchanged field is absent from PreviousFields.
    """
    if kind == CREATED:
        return None if current is None else (zero, current)
    if kind == DELETED:
        before = previous if previous is not None else current
        return None if before is None else (before, zero)
    if current is None:
        return None
    return (previous if previous is not None else current), current


def _read_drops(raw: Any) -> Optional[int]:
    if raw is None:
        return None
    return int(raw)


def _read_line_value(raw: Any) -> Optional[float]:
    if not isinstance(raw, dict) or raw.get("value") is None:
        return None
    return float(raw["value"])


def _account_root_change(kind: str, node: Dict[str, Any]) -> Optional[DetailedBalanceChange]:
    final, prev = _fields(node)
    account = final.get("Account") or prev.get("Account")
    if not account:
        return None

    pair = _before_after(
        kind, _read_drops(final.get("Balance")), _read_drops(prev.get("Balance")), 0
    )
    if pair is None:
        return None
    before, after = pair

    delta = after - before
    if delta == 0:
        return None
    return DetailedBalanceChange(
        account=account,
        currency=XRP_CURRENCY,
        value=format_decimal(drops_to_xrp(delta)),
    )


def _trust_line_changes(kind: str, node: Dict[str, Any]) -> List[DetailedBalanceChange]:
    final, prev = _fields(node)
    low = _as_dict(final.get("LowLimit"), "LowLimit").get("issuer")
    high = _as_dict(final.get("HighLimit"), "HighLimit").get("issuer")
    balance = final.get("Balance") or prev.get("Balance")
    if not low or not high or not isinstance(balance, dict):
        return []

    pair = _before_after(
        kind, _read_line_value(final.get("Balance")), _read_line_value(prev.get("Balance")), 0.0
    )
    if pair is None:
        return []
    before, after = pair

    # stored balance is from the low side's point of view
    delta = after - before
    if delta == 0:
        return []

    currency = decode_currency_code(balance.get("currency", ""))
    return [
        DetailedBalanceChange(account=low, currency=currency, value=format_float(delta), issuer=high),
        DetailedBalanceChange(account=high, currency=currency, value=format_float(-delta), issuer=low),
    ]


def extract_all_balance_changes(meta: Optional[Dict[str, Any]]) -> List[DetailedBalanceChange]:
    changes: List[DetailedBalanceChange] = []
    for kind, node in _iter_nodes(meta):
        entry_type = node["LedgerEntryType"]
        if entry_type == "AccountRoot":
            change = _account_root_change(kind, node)
            if change is not None:
                changes.append(change)
        elif entry_type == "RippleState":
            changes.extend(_trust_line_changes(kind, node))
    return changes


def extract_balance_changes(meta: Optional[Dict[str, Any]], address: str) -> List[Balance]:
    """Signed deltas seen by `address`; trust lines carry the counterparty as issuer."""
    return [
        Balance(currency=c.currency, value=c.value, issuer=c.issuer)
        for c in extract_all_balance_changes(meta)
        if c.account == address
    ]
