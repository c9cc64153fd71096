from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional

from ledgerlens.config.settings import XRP_CURRENCY
from ledgerlens.core.amounts import balance_value_usd, portfolio_value_usd
from ledgerlens.core.models import AccountSummary, ProcessedTransaction, TracePathItem


def write_json(payload: Any, out_dir: str, filename: str) -> str:
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)

    out_path = p / filename
    with out_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)

    return str(out_path)


def _dec(value: str) -> Optional[Decimal]:
    try:
        return Decimal(value)
    except InvalidOperation:
        return None


def _short(addr: Optional[str]) -> str:
    if not addr:
        return ""
    return addr if len(addr) <= 14 else f"{addr[:8]}...{addr[-4:]}"


def _details(tx: ProcessedTransaction) -> str:
    if not tx.details_params:
        return tx.details_key
    params = ", ".join(f"{k}={v}" for k, v in tx.details_params.items())
    return f"{tx.details_key} ({params})"


def write_account_summary_md(
    summary: AccountSummary,
    out_dir: str,
    transactions: Optional[List[ProcessedTransaction]] = None,
    filename: str = "summary.md",
) -> str:
    """
    Balances, net flow per currency over the loaded history, and the
    transaction list with its detail template keys.
    """
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)
    out_path = p / filename

    txs = summary.transactions if transactions is None else transactions
    xrp_price = summary.prices.get(XRP_CURRENCY) or Decimal("0")

    credits: Dict[str, Decimal] = {}
    debits: Dict[str, Decimal] = {}
    total_fees = Decimal("0")
    failed = 0
    for tx in txs:
        total_fees += _dec(tx.fee) or Decimal("0")
        if tx.result != "tesSUCCESS":
            failed += 1
        for c in tx.balance_changes:
            v = _dec(c.value)
            if v is None:
                continue
            if v > 0:
                credits[c.currency] = credits.get(c.currency, Decimal("0")) + v
            elif v < 0:
                debits[c.currency] = debits.get(c.currency, Decimal("0")) - v

    lines = []
    lines.append("# Account Summary\n\n")
    lines.append(f"- Address: **{summary.account.address}**\n")
    lines.append(f"- Transactions loaded: **{len(txs)}** ({failed} failed)\n")
    lines.append(f"- Fees paid: **{total_fees} XRP**\n")
    if xrp_price > 0:
        lines.append(f"- XRP price: **{xrp_price} USD**\n")
    total_usd = portfolio_value_usd(summary.account.balances, summary.prices)
    if total_usd > 0:
        lines.append(f"- Total value: **~{total_usd:.2f} USD**\n")
    lines.append("\n")

    lines.append("## Balances\n\n")
    for b in summary.account.balances:
        issuer = f" | issuer {b.issuer}" if b.issuer else ""
        value_usd = balance_value_usd(b, summary.prices)
        usd = f" (~{value_usd:.2f} USD)" if value_usd is not None else ""
        lines.append(f"- **{b.value} {b.currency}**{usd}{issuer}\n")
    lines.append("\n")

    lines.append("## Net Flow by Currency\n\n")
    currencies = sorted(set(credits) | set(debits))
    if not currencies:
        lines.append("_No balance changes in the loaded transactions._\n\n")
    else:
        for cur in currencies:
            cin = credits.get(cur, Decimal("0"))
            cout = debits.get(cur, Decimal("0"))
            lines.append(f"- **{cur}**: in {cin} | out {cout} | net {cin - cout}\n")
        lines.append("\n")

    lines.append("## Transactions\n\n")
    if not txs:
        lines.append("_No transactions found._\n")
    for tx in txs:
        changes = ", ".join(f"{c.value} {c.currency}" for c in tx.balance_changes) or "-"
        value = f" | ~{tx.xrp_value_usd:.4f} USD" if tx.xrp_value_usd is not None else ""
        lines.append(
            f"- {tx.date} | {tx.type} | {tx.result} | {_details(tx)} "
            f"| {changes} | fee {tx.fee}{value} | tx: {tx.id}\n"
        )

    with out_path.open("w", encoding="utf-8") as f:
        f.writelines(lines)

    return str(out_path)


def write_trace_md(path: List[TracePathItem], out_dir: str, filename: str = "trace.md") -> str:
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)
    out_path = p / filename

    lines = []
    lines.append("# Funds Trace\n\n")
    if not path:
        lines.append("_No trace steps._\n")
    else:
        origin = path[0]
        if origin.next_funding_tx_id:
            lines.append(f"_Trace stopped early; next funding tx: {origin.next_funding_tx_id}_\n\n")
        else:
            lines.append("_No earlier funding Payment found within the search window._\n\n")

        for i, step in enumerate(path):
            balance = f" | balance {step.balance} XRP" if step.balance is not None else ""
            usd = f" (~{step.balance_usd:.2f} USD)" if step.balance_usd is not None else ""
            lines.append(
                f"{i + 1}. **{_short(step.address)}** sent {step.amount} {step.currency}"
                f"{balance}{usd} | tx: {step.tx_id}\n"
            )

    with out_path.open("w", encoding="utf-8") as f:
        f.writelines(lines)

    return str(out_path)
