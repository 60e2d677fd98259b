"""
Boundary schemas.
Market-data payloads from CoinGecko and the request shapes accepted by the
transaction handlers are validated here before they reach the services.
"""

import logging
import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)


def _finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return value if math.isfinite(value) else None


# ==================== CoinGecko ====================
class SimplePrice(BaseModel):
    """One entry of /simple/price, e.g. {"usd": 64250.12}."""
    model_config = ConfigDict(extra='ignore')

    usd: float

    @field_validator('usd')
    @classmethod
    def _check_usd(cls, v: float) -> float:
        if not math.isfinite(v) or v < 0:
            raise ValueError("price must be a finite, non-negative number")
        return v


class CoinMarket(BaseModel):
    """One row of /coins/markets."""
    model_config = ConfigDict(extra='ignore')

    id: str = Field(min_length=1)
    symbol: str
    name: str
    image: Optional[str] = None
    current_price: Optional[float] = None
    market_cap: Optional[float] = None
    market_cap_rank: Optional[int] = None
    total_volume: Optional[float] = None
    price_change_percentage_24h: Optional[float] = None

    @field_validator('current_price', 'market_cap', 'total_volume', 'price_change_percentage_24h')
    @classmethod
    def _drop_non_finite(cls, v: Optional[float]) -> Optional[float]:
        return _finite_or_none(v)

    @field_validator('symbol')
    @classmethod
    def _upper_symbol(cls, v: str) -> str:
        return v.upper()


class GlobalMarketData(BaseModel):
    """The "data" object of /global."""
    model_config = ConfigDict(extra='ignore')

    active_cryptocurrencies: Optional[int] = None
    total_market_cap: Dict[str, float] = Field(default_factory=dict)
    total_volume: Dict[str, float] = Field(default_factory=dict)
    market_cap_percentage: Dict[str, float] = Field(default_factory=dict)
    market_cap_change_percentage_24h_usd: Optional[float] = None

    @property
    def total_market_cap_usd(self) -> Optional[float]:
        return self.total_market_cap.get('usd')

    @property
    def total_volume_usd(self) -> Optional[float]:
        return self.total_volume.get('usd')

    @property
    def btc_dominance(self) -> Optional[float]:
        return self.market_cap_percentage.get('btc')


class TrendingCoin(BaseModel):
    """One entry of /search/trending, flattened from its "item" object."""
    model_config = ConfigDict(extra='ignore')

    id: str = Field(min_length=1)
    name: str
    symbol: str
    market_cap_rank: Optional[int] = None
    image: Optional[str] = None
    score: Optional[int] = None
    price_usd: Optional[float] = None

    @model_validator(mode='before')
    @classmethod
    def _flatten_item(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        item = data.get('item', data)
        if not isinstance(item, dict):
            return item
        flat = dict(item)
        flat.setdefault('image', item.get('small') or item.get('thumb'))
        extra = item.get('data')
        if isinstance(extra, dict):
            flat.setdefault('price_usd', extra.get('price'))
        return flat

    @field_validator('price_usd', mode='before')
    @classmethod
    def _lenient_price(cls, v: Any) -> Optional[float]:
        try:
            return _finite_or_none(float(v)) if v is not None else None
        except (TypeError, ValueError):
            return None

    @field_validator('symbol')
    @classmethod
    def _upper_symbol(cls, v: str) -> str:
        return v.upper()


def _usd(market_data: dict, key: str) -> Any:
    value = market_data.get(key)
    return value.get('usd') if isinstance(value, dict) else None


class CoinDetail(BaseModel):
    """
    /coins/{id} with localization, tickers, community and developer data off.
    Nested "image", "links", "description" and "market_data" objects are
    flattened to USD values.
    """
    model_config = ConfigDict(extra='ignore')

    id: str = Field(min_length=1)
    symbol: str
    name: str
    image: Optional[str] = None
    market_cap_rank: Optional[int] = None
    homepage: Optional[str] = None
    description: Optional[str] = None

    current_price: Optional[float] = None
    price_change_percentage_24h: Optional[float] = None
    price_change_percentage_7d: Optional[float] = None
    price_change_percentage_30d: Optional[float] = None
    price_change_percentage_1y: Optional[float] = None
    market_cap: Optional[float] = None
    total_volume: Optional[float] = None
    circulating_supply: Optional[float] = None
    max_supply: Optional[float] = None
    low_24h: Optional[float] = None
    high_24h: Optional[float] = None
    ath: Optional[float] = None
    ath_date: Optional[datetime] = None
    atl: Optional[float] = None
    atl_date: Optional[datetime] = None

    @model_validator(mode='before')
    @classmethod
    def _flatten(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        flat = {k: data.get(k) for k in ('id', 'symbol', 'name', 'market_cap_rank')}

        image = data.get('image')
        flat['image'] = image.get('large') if isinstance(image, dict) else image
        links = data.get('links') if isinstance(data.get('links'), dict) else {}
        homepages = [h for h in links.get('homepage') or [] if h]
        flat['homepage'] = homepages[0] if homepages else None
        description = data.get('description')
        flat['description'] = (description.get('en') or None) if isinstance(description, dict) else None

        market = data.get('market_data') if isinstance(data.get('market_data'), dict) else {}
        for key in ('current_price', 'market_cap', 'total_volume', 'low_24h', 'high_24h',
                    'ath', 'ath_date', 'atl', 'atl_date'):
            flat[key] = _usd(market, key)
        for key in ('price_change_percentage_24h', 'price_change_percentage_7d',
                    'price_change_percentage_30d', 'price_change_percentage_1y',
                    'circulating_supply', 'max_supply'):
            flat[key] = market.get(key)
        return {k: v for k, v in flat.items() if v is not None}

    @field_validator(
        'current_price', 'price_change_percentage_24h', 'price_change_percentage_7d',
        'price_change_percentage_30d', 'price_change_percentage_1y', 'market_cap',
        'total_volume', 'circulating_supply', 'max_supply', 'low_24h', 'high_24h', 'ath', 'atl'
    )
    @classmethod
    def _drop_non_finite(cls, v: Optional[float]) -> Optional[float]:
        return _finite_or_none(v)

    @field_validator('symbol')
    @classmethod
    def _upper_symbol(cls, v: str) -> str:
        return v.upper()


def parse_simple_prices(payload: Any) -> Dict[str, float]:
    """
    Map a /simple/price payload to {coin_id: usd}.
    Entries that do not match the schema are dropped with a warning.
    """
    if not isinstance(payload, dict):
        logger.warning(f"Unexpected price payload type: {type(payload).__name__}")
        return {}

    prices = {}
    for coin_id, entry in payload.items():
        try:
            prices[coin_id] = SimplePrice.model_validate(entry).usd
        except ValidationError as e:
            logger.warning(f"Dropping malformed price for {coin_id}: {e.error_count()} error(s)")
    return prices


def parse_coin_markets(payload: Any) -> List[CoinMarket]:
    """Validate a /coins/markets payload, skipping malformed rows."""
    if not isinstance(payload, list):
        logger.warning(f"Unexpected markets payload type: {type(payload).__name__}")
        return []

    coins = []
    for row in payload:
        try:
            coins.append(CoinMarket.model_validate(row))
        except ValidationError as e:
            logger.warning(f"Dropping malformed market row: {e.error_count()} error(s)")
    return coins


def parse_global_data(payload: Any) -> Optional[GlobalMarketData]:
    """Validate a /global payload; None if its shape is wrong."""
    if not isinstance(payload, dict) or not isinstance(payload.get('data'), dict):
        logger.warning("Unexpected global market payload shape")
        return None
    try:
        return GlobalMarketData.model_validate(payload['data'])
    except ValidationError as e:
        logger.warning(f"Malformed global market data: {e.error_count()} error(s)")
        return None


def parse_trending(payload: Any) -> List[TrendingCoin]:
    """Validate a /search/trending payload, skipping malformed coins."""
    if not isinstance(payload, dict) or not isinstance(payload.get('coins'), list):
        logger.warning("Unexpected trending payload shape")
        return []

    coins = []
    for entry in payload['coins']:
        try:
            coins.append(TrendingCoin.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Dropping malformed trending coin: {e.error_count()} error(s)")
    return coins


def parse_coin_detail(payload: Any) -> Optional[CoinDetail]:
    """Validate a /coins/{id} payload; None if its shape is wrong."""
    try:
        return CoinDetail.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"Malformed coin detail: {e.error_count()} error(s)")
        return None


# ==================== Transaction requests ====================
class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')


class CreateTransactionRequest(_Request):
    asset_id: str = Field(alias='assetId', min_length=1)
    asset_name: Optional[str] = Field(default=None, alias='assetName')
    asset_symbol: Optional[str] = Field(default=None, alias='assetSymbol')
    kind: str
    quantity: float
    unit_price: float = Field(alias='unitPrice')
    effective_date: Optional[Union[datetime, date, str]] = Field(default=None, alias='date')


class EditTransactionRequest(_Request):
    transaction_id: int = Field(alias='transactionId')
    kind: str
    quantity: float
    unit_price: float = Field(alias='unitPrice')
    effective_date: Union[datetime, date, str] = Field(alias='date')


class DeleteTransactionRequest(_Request):
    transaction_id: int = Field(alias='transactionId')
