from typing import Any, Dict, List, Optional, Sequence
import requests

from ledgerlens.config.settings import (
    XRPL_SERVERS,
    XRPL_TIMEOUT_SEC,
    XRPL_MAX_RETRIES,
    XRPL_REQUESTS_PER_SEC,
)

from ledgerlens.adapters.ledger.rate_limiter import SimpleRateLimiter, backoff_sleep
from ledgerlens.config.logger import get_logger
from ledgerlens.core.dto import HistoryPage, RawAccountRoot, RawTrustLine
from ledgerlens.core.errors import (
    AccountNotFoundError,
    ConnectivityError,
    DataSourceError,
    RateLimitError,
    TransactionNotFoundError,
)
from ledgerlens.ports.ledger_data_port import LedgerDataPort

logger = get_logger(__name__)

# node errors worth retrying on the same endpoint
_RETRYABLE_NODE_ERRORS = {"slowDown", "tooBusy", "noNetwork", "noCurrent", "noClosed"}


class JsonRpcLedgerAdapter(LedgerDataPort):
    """
    rippled JSON-RPC over HTTP.

    Each endpoint is retried with backoff, then the next one is tried. The
    last endpoint that answered is tried first on the next call.
    """

    def __init__(
        self,
        servers: Optional[Sequence[str]] = None,
        timeout_sec: int = XRPL_TIMEOUT_SEC,
        max_retries: int = XRPL_MAX_RETRIES,
        requests_per_sec: float = XRPL_REQUESTS_PER_SEC,
    ) -> None:
        self._servers = list(servers or XRPL_SERVERS)
        if not self._servers:
            raise ValueError("at least one XRPL server is required")
        self._timeout = timeout_sec
        self._max_retries = max(1, max_retries)
        self._current = 0

        self._rl = SimpleRateLimiter(requests_per_sec)
        self._session = requests.Session()

    # ---------- internal ----------

    def _post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self._rl.wait()
        resp = self._session.post(url, json=payload, timeout=self._timeout)
        resp.raise_for_status()
        data = resp.json()
        result = data.get("result") if isinstance(data, dict) else None
        if not isinstance(result, dict):
            raise DataSourceError(f"Invalid JSON-RPC response from {url}: {data}")
        if result.get("status") == "error" and result.get("error") in _RETRYABLE_NODE_ERRORS:
            raise RateLimitError(f"{url}: {result.get('error')}")
        return result

    def _call(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        payload = {"method": method, "params": [params]}
        last_err: Optional[Exception] = None
        start = self._current

        for offset in range(len(self._servers)):
            idx = (start + offset) % len(self._servers)
            url = self._servers[idx]

            for attempt in range(self._max_retries):
                try:
                    result = self._post(url, payload)
                except (requests.RequestException, ValueError, DataSourceError) as e:
                    last_err = e
                    logger.debug("xrpl_request_failed", url=url, method=method, attempt=attempt, error=str(e))
                    if attempt + 1 < self._max_retries:
                        backoff_sleep(attempt)
                    continue

                self._current = idx
                if result.get("status") == "error":
                    raise self._node_error(method, params, result)
                return result

            logger.warning("xrpl_endpoint_unavailable", url=url, method=method, error=str(last_err))

        raise ConnectivityError(f"All XRPL endpoints failed for {method}: {last_err}")

    @staticmethod
    def _node_error(method: str, params: Dict[str, Any], result: Dict[str, Any]) -> DataSourceError:
        err = result.get("error")
        if err == "actNotFound":
            return AccountNotFoundError(str(params.get("account", "")))
        if err == "txnNotFound":
            return TransactionNotFoundError(str(params.get("transaction", "")))
        return DataSourceError(f"{method} failed: {err}: {result.get('error_message', '')}".rstrip(": "))

    # ---------- port methods ----------

    def get_account_root(self, address: str) -> RawAccountRoot:
        result = self._call("account_info", {
            "account": address,
            "ledger_index": "validated",
        })
        try:
            data = result["account_data"]
            return RawAccountRoot(
                account=data["Account"],
                balance_drops=int(data["Balance"]),
                sequence=data.get("Sequence"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DataSourceError(f"Invalid account_info result: {result}") from e

    def get_trust_lines(self, address: str) -> List[RawTrustLine]:
        lines: List[RawTrustLine] = []
        marker: Optional[Any] = None
        while True:
            params: Dict[str, Any] = {
                "account": address,
                "ledger_index": "validated",
            }
            if marker is not None:
                params["marker"] = marker

            result = self._call("account_lines", params)
            for r in result.get("lines") or []:
                lines.append(RawTrustLine(
                    account=r.get("account", ""),
                    currency=r.get("currency", ""),
                    balance=str(r.get("balance", "0")),
                ))

            marker = result.get("marker")
            if marker is None:
                break
        return lines

    def get_account_history(
        self,
        address: str,
        marker: Optional[Any] = None,
        limit: int = 100,
        ledger_index_max: Optional[int] = None,
    ) -> HistoryPage:
        params: Dict[str, Any] = {
            "account": address,
            "ledger_index_min": -1,
            "ledger_index_max": ledger_index_max if ledger_index_max is not None else -1,
            "limit": limit,
            "forward": False,
        }
        if marker is not None:
            params["marker"] = marker

        result = self._call("account_tx", params)
        items = result.get("transactions")
        return HistoryPage(
            items=items if isinstance(items, list) else [],
            marker=result.get("marker"),
        )

    def get_transaction(self, tx_hash: str) -> Dict[str, Any]:
        return self._call("tx", {"transaction": tx_hash, "binary": False})
