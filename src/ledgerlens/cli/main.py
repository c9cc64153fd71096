from __future__ import annotations

import argparse
import datetime as dt
import sys
from decimal import Decimal
from typing import Optional

from ledgerlens.config import settings
from ledgerlens.core.errors import AccountNotFoundError, LedgerLensError, UnsupportedTraceTargetError
from ledgerlens.core.models import TraceConfig
from ledgerlens.core.query import ADDRESS, classify_query
from ledgerlens.services.account_service import AccountService
from ledgerlens.services.tracer_service import TracerService
from ledgerlens.io.output_writer import write_account_summary_md, write_json, write_trace_md
from ledgerlens.io.schemas import summary_to_dict, trace_item_to_dict, transaction_to_dict

from ledgerlens.adapters.ledger.jsonrpc_ledger_adapter import JsonRpcLedgerAdapter
from ledgerlens.adapters.ledger.static_ledger_adapter import StaticLedgerAdapter
from ledgerlens.adapters.labels.xrpscan_label_adapter import XrpScanLabelAdapter
from ledgerlens.adapters.pricing.price_adapter import CoinGeckoPriceAdapter, StaticPriceAdapter


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="ledgerlens", description="XRP Ledger account and transaction explorer")
    p.add_argument("query", nargs="?", help="Account address or transaction hash")
    p.add_argument("--pages", type=int, default=0, help="Extra history pages to load after the first")
    p.add_argument("--trace", metavar="TX_HASH", help="Trace the source of funds of a Payment")
    p.add_argument("--hops", type=int, default=1, help=f"Trace hops (max {settings.TRACE_MAX_HOPS})")
    p.add_argument("--out", default="out", help="Output folder")
    p.add_argument("--fixtures", help="JSON fixture file; runs offline against a static ledger")
    p.add_argument("--xrp-usd", type=str, default=None, help="XRP price to use with --fixtures")
    p.add_argument("--servers", help="Comma-separated JSON-RPC endpoints (overrides XRPL_SERVERS)")
    p.add_argument("--no-labels", action="store_true", help="Skip the known-address label lookup")
    return p


def _ts() -> str:
    return dt.datetime.now().strftime("%H:%M:%S")


def _run_trace(tracer: TracerService, prices, args) -> int:
    cfg = TraceConfig(tx_id=args.trace.strip().upper(), hops=args.hops)
    print(f"[{_ts()}] Tracing {cfg.tx_id} • {cfg.hops} hop(s)")
    path = tracer.trace(cfg, prices)

    json_path = write_json([trace_item_to_dict(s) for s in path], args.out, "trace.json")
    md_path = write_trace_md(path, args.out)
    print(f"[{_ts()}] Done • {len(path)} step(s)")
    print(f"Wrote: {json_path}")
    print(f"Wrote: {md_path}")
    return 0


def _run_account(service: AccountService, address: str, args) -> int:
    print(f"[{_ts()}] Loading account {address}")
    summary = service.get_account_summary(address)
    pager = service.open_history(summary)
    for i in range(max(0, args.pages)):
        if not pager.has_more:
            break
        added = pager.load_more()
        print(f"Loaded page {i + 2}: {len(added)} new transaction(s)")

    txs = pager.transactions
    json_path = write_json(summary_to_dict(summary, txs), args.out, "account.json")
    md_path = write_account_summary_md(summary, args.out, transactions=txs)
    print(f"[{_ts()}] Done • {len(summary.account.balances)} balance(s) • {len(txs)} transaction(s)")
    if pager.has_more:
        print("More history available (use --pages)")
    print(f"Wrote: {json_path}")
    print(f"Wrote: {md_path}")
    return 0


def _run_transaction(service: AccountService, tx_hash: str, args) -> int:
    print(f"[{_ts()}] Loading transaction {tx_hash}")
    tx = service.get_transaction_details(tx_hash)
    json_path = write_json(transaction_to_dict(tx), args.out, "transaction.json")
    print(f"[{_ts()}] {tx.type} • {tx.result} • {tx.details_key}")
    print(f"Wrote: {json_path}")
    return 0


def main(argv: Optional[list] = None) -> int:
    args = build_arg_parser().parse_args(argv)

    if not args.query and not args.trace:
        print("Missing query (address or transaction hash) or --trace", file=sys.stderr)
        return 2

    # Ports
    labels = None
    if args.fixtures:
        ledger = StaticLedgerAdapter.from_json(args.fixtures)
        price = StaticPriceAdapter(Decimal(args.xrp_usd) if args.xrp_usd else None)
        adapter_label = f"StaticLedgerAdapter ({args.fixtures})"
    else:
        servers = [s.strip() for s in args.servers.split(",") if s.strip()] if args.servers else None
        ledger = JsonRpcLedgerAdapter(servers=servers)
        price = CoinGeckoPriceAdapter()
        if not args.no_labels:
            labels = XrpScanLabelAdapter()
        adapter_label = "JsonRpcLedgerAdapter"

    service = AccountService(ledger=ledger, price=price, labels=labels)
    tracer = TracerService(ledger=ledger)
    print(f"Adapter: {adapter_label}")

    try:
        if args.trace:
            return _run_trace(tracer, price.get_price_table(), args)

        try:
            kind, value = classify_query(args.query)
        except ValueError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 2

        if kind == ADDRESS:
            return _run_account(service, value, args)
        return _run_transaction(service, value, args)

    except AccountNotFoundError as exc:
        print(f"[{_ts()}] Error: {exc}. The account may not be activated yet.", file=sys.stderr)
        return 2
    except UnsupportedTraceTargetError as exc:
        print(f"[{_ts()}] Trace error: {exc}", file=sys.stderr)
        return 1
    except LedgerLensError as exc:
        print(f"[{_ts()}] Error: {exc.__class__.__name__}: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
