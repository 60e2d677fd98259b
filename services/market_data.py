"""
Market data service for fetching coin prices and market overviews from CoinGecko.
Enhanced with tenacity for retry logic and resilience.
Payloads are validated against services.schemas before use.
"""

import logging
from typing import Dict, Iterable, List, Optional

import requests
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from config import Settings, get_settings
from services.price_cache import PriceCache
from services.schemas import (
    CoinDetail,
    CoinMarket,
    GlobalMarketData,
    TrendingCoin,
    parse_coin_detail,
    parse_coin_markets,
    parse_global_data,
    parse_simple_prices,
    parse_trending,
)

logger = logging.getLogger(__name__)


class MarketDataService:
    """
    Thin CoinGecko client.
    Network failures are retried, then logged and reported as unavailable
    (empty dict / empty list / None) instead of raised.
    """

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self._settings = settings or get_settings()
        self._session = session or requests.Session()
        self._session.headers.update({"accept": "application/json"})
        if self._settings.coingecko_api_key:
            self._session.headers["x-cg-demo-api-key"] = self._settings.coingecko_api_key

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(requests.RequestException),
        reraise=True
    )
    def _get_json(self, path: str, params: Optional[dict] = None):
        """GET a CoinGecko endpoint with retry logic."""
        url = f"{self._settings.coingecko_base_url.rstrip('/')}/{path.lstrip('/')}"
        response = self._session.get(url, params=params, timeout=self._settings.market_request_timeout)
        response.raise_for_status()
        return response.json()

    def get_prices(self, coin_ids: Iterable[str]) -> Dict[str, float]:
        """
        Fetch current USD prices.

        Args:
            coin_ids: CoinGecko coin ids, e.g. ["bitcoin", "ethereum"]

        Returns:
            {coin_id: usd_price} for every coin the API priced; empty on failure
        """
        ids = sorted({c for c in coin_ids if c})
        if not ids:
            return {}
        try:
            payload = self._get_json("simple/price", params={"ids": ",".join(ids), "vs_currencies": "usd"})
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching prices for {', '.join(ids)}: {e}")
            return {}
        return parse_simple_prices(payload)

    def get_top_coins(self, limit: Optional[int] = None) -> List[CoinMarket]:
        """
        Fetch the top coins by market cap.

        Args:
            limit: Number of coins (default from settings, max 250 per CoinGecko page)

        Returns:
            List of CoinMarket rows; empty on failure
        """
        per_page = max(1, min(limit or self._settings.top_coins_limit, 250))
        try:
            payload = self._get_json("coins/markets", params={
                "vs_currency": "usd",
                "order": "market_cap_desc",
                "per_page": per_page,
                "page": 1,
                "sparkline": "false",
            })
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching coin markets: {e}")
            return []
        return parse_coin_markets(payload)

    def get_global_stats(self) -> Optional[GlobalMarketData]:
        """Fetch global market statistics; None on failure."""
        try:
            payload = self._get_json("global")
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching global market data: {e}")
            return None
        return parse_global_data(payload)

    def get_trending(self, limit: int = 7) -> List[TrendingCoin]:
        """Coins trending in CoinGecko searches, most popular first; empty on failure."""
        try:
            payload = self._get_json("search/trending")
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching trending coins: {e}")
            return []
        return parse_trending(payload)[:max(0, limit)]

    def get_coin(self, coin_id: str) -> Optional[CoinDetail]:
        """
        Fetch one coin's profile and USD market data.

        Args:
            coin_id: CoinGecko coin id, e.g. "bitcoin"

        Returns:
            CoinDetail, or None when the id is blank or the request fails
        """
        coin_id = (coin_id or "").strip().lower()
        if not coin_id:
            return None
        try:
            payload = self._get_json(f"coins/{coin_id}", params={
                "localization": "false",
                "tickers": "false",
                "community_data": "false",
                "developer_data": "false",
            })
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching coin {coin_id}: {e}")
            return None
        return parse_coin_detail(payload)


class PriceProvider:
    """
    Cached price lookups for the portfolio read path.

    Fresh cache hits are served directly; the rest are fetched in one batch.
    If the fetch comes back without a coin, its last known (stale) price is
    used when there is one.
    """

    def __init__(self, market_data: MarketDataService, cache: PriceCache):
        self._market_data = market_data
        self.cache = cache

    def get_prices(self, coin_ids: Iterable[str], force_refresh: bool = False) -> Dict[str, float]:
        """
        Current prices for coin_ids.

        Args:
            coin_ids: CoinGecko coin ids
            force_refresh: Ignore fresh cache entries and refetch everything

        Returns:
            {coin_id: usd_price}; coins with no price at all are omitted
        """
        ids = sorted({c for c in coin_ids if c})
        to_fetch = ids if force_refresh else self.cache.missing(ids)

        if to_fetch:
            fetched = self._market_data.get_prices(to_fetch)
            self.cache.set_many(fetched)
            unpriced = [c for c in to_fetch if c not in fetched]
            if unpriced:
                logger.warning(f"Price fetch incomplete for {', '.join(unpriced)}; falling back to cached values")

        prices = {}
        for coin_id in ids:
            price = self.cache.get(coin_id)
            if price is None:
                price = self.cache.get_stale(coin_id)
            if price is not None:
                prices[coin_id] = price
        return prices
