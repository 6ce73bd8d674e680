"""
Arbitrage - Opportunity Detector.

============================================================
PURPOSE
============================================================
Turns the manager's price spread into arbitrage opportunities.

RULES:
- Every unordered pair of quoting venues is considered
- Buy on the lower quote, sell on the higher one
- Keep min_spread_percent <= spread% <= max_spread_percent
- Drop opportunities below min_profit_amount
- Tier by (spread%, estimated profit) against nested bands;
  anything above the HIGH band is dropped

============================================================
"""

import logging
from decimal import Decimal
from typing import List, Optional, Sequence

from core.clock import ClockProtocol, get_clock
from exchanges.manager import ExchangeManager, VenuePrice

from .config import ArbitrageProtectionConfig
from .models import ArbitrageOpportunity, RiskLevel


logger = logging.getLogger(__name__)

_TIER_ORDER = (RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH)


def classify_risk(
    spread_percent: Decimal,
    estimated_profit: Decimal,
    config: ArbitrageProtectionConfig,
) -> Optional[RiskLevel]:
    """Lowest tier whose ceiling holds both values, or None when above every band."""
    for tier in _TIER_ORDER:
        band = config.risk_bands[tier]
        if spread_percent <= band.max_spread and estimated_profit <= band.max_amount:
            return tier
    return None


class ArbitrageDetector:
    """Finds cross-venue spreads through the ExchangeManager."""

    def __init__(
        self,
        manager: ExchangeManager,
        config: Optional[ArbitrageProtectionConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self.manager = manager
        self.config = config or ArbitrageProtectionConfig()
        self._clock = clock or get_clock()

    def find_opportunities(self, symbol: str, prices: Sequence[VenuePrice]) -> List[ArbitrageOpportunity]:
        """Pure detection over an already collected set of quotes."""
        quotes = sorted(prices, key=lambda item: (item.price, item.exchange))
        detected_at = self._clock.now()
        found = []

        for i in range(len(quotes)):
            for j in range(i + 1, len(quotes)):
                buy, sell = quotes[i], quotes[j]
                if buy.price <= 0:
                    continue
                spread = sell.price - buy.price
                spread_percent = spread / buy.price * 100
                if not (self.config.min_spread_percent <= spread_percent <= self.config.max_spread_percent):
                    continue

                estimated_profit = spread * self.config.max_order_amount
                if estimated_profit < self.config.min_profit_amount:
                    continue

                tier = classify_risk(spread_percent, estimated_profit, self.config)
                if tier is None:
                    logger.debug(
                        "%s %s->%s spread %.4f%% above HIGH band, dropped",
                        symbol, buy.exchange, sell.exchange, spread_percent,
                    )
                    continue

                found.append(ArbitrageOpportunity(
                    symbol=symbol.upper(),
                    buy_exchange=buy.exchange,
                    sell_exchange=sell.exchange,
                    buy_price=buy.price,
                    sell_price=sell.price,
                    spread=spread,
                    spread_percent=spread_percent,
                    estimated_profit=estimated_profit,
                    risk_tier=tier,
                    detected_at=detected_at,
                ))

        found.sort(key=lambda opp: opp.spread_percent, reverse=True)
        return found

    async def detect(self, symbol: str, timeout: Optional[float] = None) -> List[ArbitrageOpportunity]:
        """Query every venue in parallel and return opportunities, best spread first."""
        spread = await self.manager.price_spread(symbol, timeout=timeout)
        opportunities = self.find_opportunities(spread.symbol, spread.prices)
        if opportunities:
            logger.info(
                "%s: %d arbitrage opportunities, best %s->%s %.4f%%",
                spread.symbol, len(opportunities),
                opportunities[0].buy_exchange, opportunities[0].sell_exchange,
                opportunities[0].spread_percent,
            )
        return opportunities
