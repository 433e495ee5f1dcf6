"""Static reference lookup for asset symbols and venue names."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from small_ledger.domain.errors import UnknownAsset, UnknownVenue

logger = logging.getLogger(__name__)


class ReferenceRegistry:
    """Known asset symbols and venue names.

    Consumed read-only for referential validation at ingestion. An empty
    section disables its check, leaving enforcement to the store.

    Args:
        assets: Known asset symbols.
        venues: Known venue names.
    """

    def __init__(self, assets: Iterable[str] = (), venues: Iterable[str] = ()) -> None:
        self._assets = frozenset(assets)
        self._venues = frozenset(venues)

    @classmethod
    def from_config(cls, config: Any) -> ReferenceRegistry:
        """Build a registry from the ``reference`` config section.

        Args:
            config: Mapping or DictConfig with optional ``assets``/``venues`` lists.

        Returns:
            ReferenceRegistry instance.
        """
        if config is None:
            return cls()
        assets = config.get("assets") or ()
        venues = config.get("venues") or ()
        logger.info(f"ReferenceRegistry loaded: {len(assets)} assets, {len(venues)} venues")
        return cls(assets=assets, venues=venues)

    @property
    def assets(self) -> frozenset[str]:
        return self._assets

    @property
    def venues(self) -> frozenset[str]:
        return self._venues

    def is_known_asset(self, symbol: str) -> bool:
        return not self._assets or symbol in self._assets

    def is_known_venue(self, name: str) -> bool:
        return not self._venues or name in self._venues

    def validate_asset(self, symbol: str) -> None:
        """Raise UnknownAsset if the symbol is not registered."""
        if not self.is_known_asset(symbol):
            raise UnknownAsset(symbol)

    def validate_venue(self, name: str) -> None:
        """Raise UnknownVenue if the venue is not registered."""
        if not self.is_known_venue(name):
            raise UnknownVenue(name)
