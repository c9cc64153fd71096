from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict


class PricePort(ABC):

    @abstractmethod
    def get_price_table(self) -> Dict[str, Decimal]:
        """Currency code -> USD price. Must not raise; degrade to zero prices."""
        raise NotImplementedError
