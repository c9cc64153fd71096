from __future__ import annotations

import threading
from typing import Dict, Mapping, Optional

import requests

from ledgerlens.config import settings
from ledgerlens.config.logger import get_logger
from ledgerlens.core.errors import EnrichmentError
from ledgerlens.ports.label_port import LabelPort

logger = get_logger(__name__)


class XrpScanLabelAdapter(LabelPort):
    """
    Well-known account names from XRPScan, fetched once and cached.

    Callers get a copy, so a snapshot handed to the normalizer never changes
    underneath it.
    """

    def __init__(
        self,
        url: str = settings.KNOWN_ADDRESSES_URL,
        timeout_sec: int = settings.LABELS_TIMEOUT_SEC,
    ) -> None:
        self._url = url
        self._timeout = timeout_sec
        self._session = requests.Session()
        self._cache: Optional[Dict[str, str]] = None
        self._lock = threading.Lock()

    def _fetch(self) -> Dict[str, str]:
        try:
            resp = self._session.get(self._url, timeout=self._timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise EnrichmentError(f"Known address lookup failed: {e}") from e

        if not isinstance(data, list):
            raise EnrichmentError(f"Unexpected known address payload: {type(data).__name__}")

        labels: Dict[str, str] = {}
        for item in data:
            if isinstance(item, dict) and item.get("account") and item.get("name"):
                labels[str(item["account"])] = str(item["name"])
        return labels

    def get_known_addresses(self, refresh: bool = False) -> Mapping[str, str]:
        with self._lock:
            if self._cache is None or refresh:
                try:
                    self._cache = self._fetch()
                    logger.info("known_addresses_loaded", count=len(self._cache))
                except EnrichmentError as e:
                    logger.warning("known_addresses_unavailable", url=self._url, error=str(e))
                    # keep the last good snapshot; an empty cache is retried next call
                    return dict(self._cache or {})
            return dict(self._cache)
