from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ledgerlens.config.logger import get_logger
from ledgerlens.config.settings import RIPPLE_EPOCH_OFFSET, USD_LIKE_CURRENCIES, XRP_CURRENCY
from ledgerlens.core.amounts import NOT_AVAILABLE, decode_amount, drops_to_xrp, format_decimal
from ledgerlens.core.errors import MalformedRecordError
from ledgerlens.core.models import Balance, ProcessedTransaction
from ledgerlens.services.balance_changes import extract_all_balance_changes, extract_balance_changes

logger = get_logger(__name__)

TF_SELL = 0x00080000
FEE_EPSILON = Decimal("1e-9")


# -------------------------
# Raw record access
# -------------------------
# account_tx items wrap the body as {"tx": ..., "meta": ...} ("tx_json" on
# API v2); the tx command returns the body flat with "meta" alongside.

def transaction_body(item: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(item, dict):
        raise MalformedRecordError(f"record is not an object: {type(item).__name__}")
    tx = item.get("tx") or item.get("tx_json") or item
    if not isinstance(tx, dict):
        raise MalformedRecordError("record has no transaction body")
    return tx


def transaction_hash(item: Dict[str, Any]) -> Optional[str]:
    return transaction_body(item).get("hash") or item.get("hash")


def ledger_index_of(item: Dict[str, Any]) -> Optional[int]:
    raw = transaction_body(item).get("ledger_index", item.get("ledger_index"))
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise MalformedRecordError(f"invalid ledger_index: {raw!r}") from e


def _metadata(item: Dict[str, Any]) -> Dict[str, Any]:
    meta = item.get("meta") or item.get("metaData")
    if not isinstance(meta, dict):
        raise MalformedRecordError("record has no metadata")
    return meta


def ledger_time_to_iso(date: Optional[int]) -> str:
    """Ledger close time (seconds since 2000-01-01) as ISO-8601 UTC with milliseconds."""
    if date is None:
        return NOT_AVAILABLE
    ts = datetime.fromtimestamp(int(date) + RIPPLE_EPOCH_OFFSET, tz=timezone.utc)
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _fee_xrp(tx: Dict[str, Any]) -> Decimal:
    raw = tx.get("Fee")
    if raw is None:
        return Decimal("0")
    return drops_to_xrp(int(raw))


# -------------------------
# Fee exclusion
# -------------------------

def exclude_fee(changes: List[Balance], fee: Decimal) -> List[Balance]:
    """
    Add the fee back onto the XRP delta of the paying account, so the fee is
    reported once (in the fee column) and not again as a debit.
    """
    out = list(changes)
    for i, c in enumerate(out):
        if c.currency != XRP_CURRENCY or c.issuer is not None:
            continue
        adjusted = Decimal(c.value) + fee
        if abs(adjusted) < FEE_EPSILON:
            del out[i]
        else:
            out[i] = Balance(currency=XRP_CURRENCY, value=format_decimal(adjusted))
        break
    return out


# -------------------------
# Detail templates
# -------------------------

def _with_label(key: str, address: Optional[str], labels: Mapping[str, str], **params: Any) -> Tuple[str, Dict[str, Any]]:
    label = labels.get(address) if address else None
    if label:
        return f"{key}_known", dict(params, label=label, address=address)
    return key, dict(params, address=address)


def _unsigned(value: str) -> str:
    # string-level abs keeps the digits exactly as extracted
    return value[1:] if value.startswith("-") else value


def _payment_details(tx, perspective, labels):
    outgoing = tx.get("Account") == perspective
    counterparty = tx.get("Destination") if outgoing else tx.get("Account")
    key = "details_payment_to" if outgoing else "details_payment_from"
    return _with_label(key, counterparty, labels)


def _offer_create_details(tx, changes: Sequence[Balance]):
    debits = [c for c in changes if Decimal(c.value) < 0]
    credits = [c for c in changes if Decimal(c.value) > 0]

    if debits and credits:
        paid = next((d for d in debits if d.currency != XRP_CURRENCY), debits[0])
        got = credits[0]
        return "details_dex_order", {
            "paid_amount": _unsigned(paid.value),
            "paid_currency": paid.currency,
            "got_amount": got.value,
            "got_currency": got.currency,
        }

    # nothing crossed; report the order's stated terms
    is_sell = bool(int(tx.get("Flags") or 0) & TF_SELL)
    pays = decode_amount(tx.get("TakerPays") if is_sell else tx.get("TakerGets"))
    gets = decode_amount(tx.get("TakerGets") if is_sell else tx.get("TakerPays"))
    return "details_dex_unfilled", {
        "paid_amount": pays.value,
        "paid_currency": pays.currency,
        "got_amount": gets.value,
        "got_currency": gets.currency,
    }


def _trust_set_details(tx, labels):
    raw_limit = tx.get("LimitAmount")
    limit = decode_amount(raw_limit)
    issuer = raw_limit.get("issuer") if isinstance(raw_limit, dict) else None
    return _with_label(
        "details_trust_set", issuer, labels, amount=limit.value, currency=limit.currency
    )


def resolve_details(
    tx: Dict[str, Any],
    perspective: str,
    changes: Sequence[Balance],
    labels: Mapping[str, str],
) -> Tuple[str, Dict[str, Any]]:
    tx_type = tx.get("TransactionType")
    if tx_type == "Payment":
        return _payment_details(tx, perspective, labels)
    if tx_type == "OfferCreate":
        return _offer_create_details(tx, changes)
    if tx_type == "OfferCancel":
        return "details_offer_cancel", {}
    if tx_type == "TrustSet":
        return _trust_set_details(tx, labels)
    if tx_type == "AccountSet":
        return "details_account_set", {}
    return "details_fallback", {"type": tx_type}


# -------------------------
# Normalization
# -------------------------

def _normalize(item: Dict[str, Any], perspective: str, labels: Mapping[str, str]) -> Optional[ProcessedTransaction]:
    tx = transaction_body(item)
    meta = _metadata(item)
    tx_type = tx.get("TransactionType")
    if not tx_type:
        raise MalformedRecordError("record has no TransactionType")

    fee = _fee_xrp(tx)
    pays_fee = tx.get("Account") == perspective and fee != 0

    changes = extract_balance_changes(meta, perspective)
    all_changes = extract_all_balance_changes(meta)

    if not changes:
        if not pays_fee:
            return None
        changes = [Balance(currency=XRP_CURRENCY, value=format_decimal(-fee))]

    if pays_fee:
        changes = exclude_fee(changes, fee)

    details_key, details_params = resolve_details(tx, perspective, changes, labels)

    return ProcessedTransaction(
        id=transaction_hash(item) or "",
        date=ledger_time_to_iso(tx.get("date", item.get("date"))),
        type=tx_type,
        details_key=details_key,
        details_params=details_params,
        fee=format_decimal(fee),
        balance_changes=changes,
        all_balance_changes=all_changes,
        result=str(meta.get("TransactionResult", "")),
        raw_data=json.dumps(item, indent=2),
    )


def normalize_transaction(
    item: Dict[str, Any],
    perspective: str,
    labels: Optional[Mapping[str, str]] = None,
) -> Optional[ProcessedTransaction]:
    """
    Decode one raw ledger record as seen by `perspective`.

    Returns None when nothing observable happened for that account, and also
    when the record cannot be decoded (logged, never raised), so a bad record
    never aborts a batch.
    """
    try:
        return _normalize(item, perspective, labels or {})
    except (MalformedRecordError, KeyError, TypeError, ValueError, AttributeError, ArithmeticError) as e:
        tx_hash = item.get("hash") if isinstance(item, dict) else None
        logger.warning(
            "transaction_malformed",
            perspective=perspective,
            tx_hash=tx_hash,
            error=f"{e.__class__.__name__}: {e}",
        )
        return None


def apply_trade_valuation(
    tx: ProcessedTransaction,
    usd_like: Sequence[str] = USD_LIKE_CURRENCIES,
) -> ProcessedTransaction:
    """Price the XRP leg of a two-leg XRP/USD-like DEX fill."""
    if tx.type != "OfferCreate" or len(tx.balance_changes) != 2:
        return tx

    xrp_leg = next((c for c in tx.balance_changes if c.currency == XRP_CURRENCY), None)
    usd_leg = next((c for c in tx.balance_changes if c.currency in usd_like), None)
    if xrp_leg is None or usd_leg is None:
        return tx

    xrp_amount = abs(Decimal(xrp_leg.value))
    usd_amount = abs(Decimal(usd_leg.value))
    if xrp_amount <= 0:
        return tx
    return replace(tx, xrp_value_usd=usd_amount, xrp_price_at_tx=usd_amount / xrp_amount)


def normalize_batch(
    items: Iterable[Dict[str, Any]],
    perspective: str,
    labels: Optional[Mapping[str, str]] = None,
) -> List[ProcessedTransaction]:
    out: List[ProcessedTransaction] = []
    for item in items:
        tx = normalize_transaction(item, perspective, labels)
        if tx is not None:
            out.append(apply_trade_valuation(tx))
    return out
