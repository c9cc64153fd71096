import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from ledgerlens.core.dto import HistoryPage, RawAccountRoot, RawTrustLine
from ledgerlens.core.errors import AccountNotFoundError, TransactionNotFoundError
from ledgerlens.ports.ledger_data_port import LedgerDataPort


def _body(item: Dict[str, Any]) -> Dict[str, Any]:
    return item.get("tx") or item.get("tx_json") or item


def _ledger_index(item: Dict[str, Any]) -> int:
    return int(_body(item).get("ledger_index", item.get("ledger_index", 0)) or 0)


class StaticLedgerAdapter(LedgerDataPort):
    """
    In-memory ledger for tests and offline runs.

    histories hold account_tx style items ({"tx", "meta", "validated"}) per
    address; get_transaction also finds any hash that appears there.
    """

    def __init__(self,
                 accounts: Optional[Dict[str, RawAccountRoot]] = None,
                 trust_lines: Optional[Dict[str, List[RawTrustLine]]] = None,
                 transactions: Optional[Dict[str, Dict[str, Any]]] = None,
                 histories: Optional[Dict[str, List[Dict[str, Any]]]] = None,
                 ):
        self._accounts = accounts or {}
        self._lines = trust_lines or {}
        self._txs = transactions or {}
        self._histories = histories or {}
        self.history_calls: List[Dict[str, Any]] = []

    @classmethod
    def from_json(cls, path: str) -> "StaticLedgerAdapter":
        with Path(path).open("r", encoding="utf-8") as f:
            data = json.load(f)
        accounts = {
            addr: RawAccountRoot(account=addr, balance_drops=int(a["balance_drops"]), sequence=a.get("sequence"))
            for addr, a in (data.get("accounts") or {}).items()
        }
        lines = {
            addr: [RawTrustLine(account=l["account"], currency=l["currency"], balance=str(l["balance"])) for l in ls]
            for addr, ls in (data.get("trust_lines") or {}).items()
        }
        return cls(
            accounts=accounts,
            trust_lines=lines,
            transactions=data.get("transactions") or {},
            histories=data.get("histories") or {},
        )

    def get_account_root(self, address):
        if address not in self._accounts:
            raise AccountNotFoundError(address)
        return self._accounts[address]

    def get_trust_lines(self, address):
        if address not in self._accounts:
            raise AccountNotFoundError(address)
        return list(self._lines.get(address, []))

    def get_account_history(self, address, marker=None, limit=100, ledger_index_max=None):
        self.history_calls.append(
            {"address": address, "marker": marker, "limit": limit, "ledger_index_max": ledger_index_max}
        )
        items = [
            t for t in self._histories.get(address, [])
            if ledger_index_max is None or _ledger_index(t) <= ledger_index_max
        ]
        items.sort(key=_ledger_index, reverse=True)

        offset = int(marker or 0)
        page = items[offset:offset + limit]
        next_marker = offset + limit if offset + limit < len(items) else None
        return HistoryPage(items=page, marker=next_marker)

    def get_transaction(self, tx_hash):
        if tx_hash in self._txs:
            return self._txs[tx_hash]
        for items in self._histories.values():
            for item in items:
                body = _body(item)
                if body.get("hash") == tx_hash:
                    # tx command shape: flat body with meta alongside
                    return dict(body, meta=item.get("meta"), validated=item.get("validated", True))
        raise TransactionNotFoundError(tx_hash)
