from __future__ import annotations

from decimal import Decimal
from typing import Dict, Optional

import requests

from ledgerlens.config import settings
from ledgerlens.config.logger import get_logger
from ledgerlens.core.errors import EnrichmentError
from ledgerlens.ports.price_port import PricePort

logger = get_logger(__name__)


def _base_table(xrp_usd: Decimal) -> Dict[str, Decimal]:
    table = {settings.XRP_CURRENCY: xrp_usd}
    table.update(settings.STABLECOIN_USD)
    return table


class CoinGeckoPriceAdapter(PricePort):
    def __init__(
        self,
        url: str = settings.COINGECKO_PRICE_URL,
        timeout_sec: int = settings.PRICE_TIMEOUT_SEC,
    ) -> None:
        self._url = url
        self._timeout = timeout_sec
        self._session = requests.Session()

    def _fetch_xrp_usd(self) -> Decimal:
        try:
            resp = self._session.get(self._url, timeout=self._timeout)
            resp.raise_for_status()
            data = resp.json()
            return Decimal(str(data["ripple"]["usd"]))
        except (requests.RequestException, ValueError, KeyError, TypeError, ArithmeticError) as e:
            raise EnrichmentError(f"CoinGecko price lookup failed: {e}") from e

    def get_price_table(self) -> Dict[str, Decimal]:
        try:
            xrp_usd = self._fetch_xrp_usd()
        except EnrichmentError as e:
            logger.warning("price_lookup_failed", url=self._url, error=str(e))
            xrp_usd = Decimal("0")
        return _base_table(xrp_usd)


class StaticPriceAdapter(PricePort):
    """Fixed prices for offline runs."""

    def __init__(self, xrp_usd: Optional[Decimal] = None) -> None:
        self._xrp_usd = xrp_usd if xrp_usd is not None else Decimal("0")

    def get_price_table(self) -> Dict[str, Decimal]:
        return _base_table(self._xrp_usd)
