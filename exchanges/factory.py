"""
Exchanges - Adapter Factory.

============================================================
PURPOSE
============================================================
Maps venue names to adapter classes.

Usage:
    adapter = AdapterFactory.create(credential)

    # extension
    AdapterFactory.register("myvenue", MyVenueAdapter)

============================================================
"""

import logging
from typing import Any, Dict, List, Optional, Type

import aiohttp

from core.clock import ClockProtocol

from .base import ExchangeAdapter, RestExchangeAdapter
from .binance import BinanceAdapter
from .bitget import BitgetAdapter
from .bybit import BybitAdapter
from .gate import GateAdapter
from .okx import OKXAdapter
from .types import ExchangeCredential


logger = logging.getLogger(__name__)


class AdapterFactory:
    """Registry of adapter classes keyed by venue name."""

    _registry: Dict[str, Type[ExchangeAdapter]] = {
        "binance": BinanceAdapter,
        "okx": OKXAdapter,
        "bybit": BybitAdapter,
        "gate": GateAdapter,
        "bitget": BitgetAdapter,
    }

    @classmethod
    def register(cls, name: str, adapter_class: Type[ExchangeAdapter]) -> None:
        cls._registry[name.lower()] = adapter_class

    @classmethod
    def unregister(cls, name: str) -> None:
        cls._registry.pop(name.lower(), None)

    @classmethod
    def supported(cls) -> List[str]:
        return sorted(cls._registry)

    @classmethod
    def create(
        cls,
        credential: ExchangeCredential,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Optional[ClockProtocol] = None,
        **kwargs: Any,
    ) -> ExchangeAdapter:
        """
        Create the adapter for ``credential.name``.

        Raises:
            ValueError: If the venue is not registered
        """
        name = credential.name.lower()
        if name not in cls._registry:
            raise ValueError(f"Unsupported exchange: {credential.name}. Supported: {', '.join(cls.supported())}")

        adapter_class = cls._registry[name]
        if issubclass(adapter_class, RestExchangeAdapter):
            adapter = adapter_class(credential, session=session, clock=clock, **kwargs)
        else:
            adapter = adapter_class(credential=credential, clock=clock, **kwargs)
        logger.debug("Created adapter %r", adapter)
        return adapter
