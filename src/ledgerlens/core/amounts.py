"""
Amount and currency decoding for XRPL wire values.

Amounts arrive in two shapes: a string of drops for XRP, or an object
{currency, value, issuer} for issued currencies. They are decoded once at the
boundary into XrpAmount / IssuedAmount and never re-inspected by shape.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional, Union

from ledgerlens.config.settings import DROPS_PER_XRP, XRP_CURRENCY
from ledgerlens.core.models import Balance

NOT_AVAILABLE = "N/A"

_HEX_RE = re.compile(r"^[0-9A-Fa-f]+$")
_DROPS_RE = re.compile(r"^-?\d+$")
_CURRENCY_HEX_CHARS = 40    # 160-bit currency code


@dataclass(frozen=True)
class XrpAmount:
    drops: int


@dataclass(frozen=True)
class IssuedAmount:
    currency: str           # raw code, possibly hex
    value: str
    issuer: Optional[str] = None


Amount = Union[XrpAmount, IssuedAmount]


def decode_currency_code(raw: str) -> str:
    """
    Turn a ledger currency code into its display form.

    3-char codes pass through. Hex codes are decoded byte by byte (first 20
    bytes), stopping at the first NUL. Anything else is returned verbatim.
    """
    if not isinstance(raw, str):
        return raw
    if len(raw) == 3:
        return raw
    if len(raw) > 3 and _HEX_RE.match(raw):
        chars = []
        code_hex = raw[:_CURRENCY_HEX_CHARS]
        for i in range(0, len(code_hex), 2):
            char_code = int(code_hex[i:i + 2], 16)
            if char_code == 0:
                break
            chars.append(chr(char_code))
        return "".join(chars).strip()
    return raw


def drops_to_xrp(drops: int) -> Decimal:
    return Decimal(int(drops)) / DROPS_PER_XRP


def format_decimal(x: Decimal) -> str:
    # positional notation, no trailing zeros
    if x == 0:
        return "0"
    return format(x.normalize(), "f")


def format_float(x: float) -> str:
    """
    Shortest round-trip digits of a float in positional notation, integral
    values without '.0'.
    """
    s = format(Decimal(repr(float(x))), "f")
    if s.endswith(".0"):
        s = s[:-2]
    return s


def parse_amount(raw: Any) -> Optional[Amount]:
    if isinstance(raw, str):
        if _DROPS_RE.match(raw):
            return XrpAmount(drops=int(raw))
        return None
    if isinstance(raw, dict) and raw.get("currency"):
        return IssuedAmount(
            currency=str(raw["currency"]),
            value=str(raw.get("value", "0")),
            issuer=raw.get("issuer"),
        )
    return None


def amount_to_balance(amount: Amount) -> Balance:
    if isinstance(amount, XrpAmount):
        return Balance(currency=XRP_CURRENCY, value=format_decimal(drops_to_xrp(amount.drops)))
    return Balance(
        currency=decode_currency_code(amount.currency),
        value=amount.value,
        issuer=amount.issuer,
    )


def decode_amount(raw: Any) -> Balance:
    """Decode any wire amount; unknown shapes give an N/A balance."""
    amount = parse_amount(raw)
    if amount is None:
        return Balance(currency=NOT_AVAILABLE, value=NOT_AVAILABLE)
    return amount_to_balance(amount)


def balance_value_usd(balance: Balance, prices: Mapping[str, Decimal]) -> Optional[Decimal]:
    """USD value of the balance magnitude; None when its currency has no price."""
    price = Decimal(prices.get(balance.currency) or 0)
    if price <= 0:
        return None
    try:
        value = Decimal(balance.value)
    except InvalidOperation:
        return None
    return abs(value) * price


def portfolio_value_usd(balances: Iterable[Balance], prices: Mapping[str, Decimal]) -> Decimal:
    # negative trust line balances are obligations, not holdings
    total = Decimal("0")
    for b in balances:
        usd = balance_value_usd(b, prices)
        if usd is not None and Decimal(b.value) >= 0:
            total += usd
    return total
