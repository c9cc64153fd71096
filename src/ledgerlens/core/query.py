from __future__ import annotations

import re
from typing import Tuple

from xrpl.core.addresscodec import is_valid_classic_address

ADDRESS = "address"
TRANSACTION = "transaction"

_TX_HASH_RE = re.compile(r"^[A-Fa-f0-9]{64}$")


def classify_query(text: str) -> Tuple[str, str]:
    """("address" | "transaction", value) for user input; ValueError otherwise."""
    value = (text or "").strip()
    if not value:
        raise ValueError("empty query: enter an account address or transaction hash")
    if is_valid_classic_address(value):
        return ADDRESS, value
    if _TX_HASH_RE.match(value):
        return TRANSACTION, value.upper()
    raise ValueError(f"invalid query: {value!r} is neither an XRPL address nor a transaction hash")
