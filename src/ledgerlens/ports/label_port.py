from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Mapping


class LabelPort(ABC):
    @abstractmethod
    def get_known_addresses(self) -> Mapping[str, str]:
        """Address -> display name snapshot. Empty when the source is unavailable."""
        raise NotImplementedError
