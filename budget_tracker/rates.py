"""
Budget Tracker - Exchange Rate Service

PURPOSE: KRW-per-USD rate with a cached value and a staleness window
SCOPE: Rate lookup, caching in the settings table, non-fatal refresh
DEPENDENCIES: httpx, managers.py (SettingsManager)

The external service quotes USD per KRW; the app works in KRW per USD, so
fetched values are inverted before caching. A failed refresh keeps the last
known rate (or the configured default) and reports an error message.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import httpx

from .auth import utcnow, parse_iso_datetime
from .config import config
from .managers import SettingsManager

logger = logging.getLogger(__name__)

RATE_KEY = 'krw_per_usd'
FETCHED_AT_KEY = 'rate_fetched_at'
REFRESH_FAILED_MESSAGE = 'Unable to refresh exchange rate. Using the last known value.'


class RateFetchError(Exception):
    """Raised when the rate service cannot supply a usable rate."""


@dataclass
class RateStatus:
    rate: float
    fetched_at: Optional[datetime] = None
    refreshed: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rate': self.rate,
            'fetchedAt': self.fetched_at.isoformat() if self.fetched_at else None,
            'refreshed': self.refreshed,
            'error': self.error,
        }


def is_rate_stale(fetched_at: Optional[datetime], now: datetime, max_age: timedelta) -> bool:
    return fetched_at is None or (now - fetched_at) > max_age


def parse_rate_response(data: Any) -> float:
    """Turn the service's USD-per-KRW payload into KRW per USD."""
    try:
        usd_per_krw = float(data.get('rates', {}).get('USD'))
    except (AttributeError, TypeError, ValueError):
        raise RateFetchError('Invalid rate data')
    if not math.isfinite(usd_per_krw) or usd_per_krw <= 0:
        raise RateFetchError('Invalid rate data')
    return 1 / usd_per_krw


def _valid_rate(value: Optional[str]) -> Optional[float]:
    try:
        rate = float(value)
    except (TypeError, ValueError):
        return None
    return rate if math.isfinite(rate) and rate > 0 else None


class ExchangeRateService:
    """Serves the cached rate, refreshing it once when it has gone stale."""

    def __init__(self, settings_manager: SettingsManager, api_url: str = config.RATE_API_URL,
                 max_age_hours: int = config.RATE_MAX_AGE_HOURS,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings_manager = settings_manager
        self.api_url = api_url
        self.max_age = timedelta(hours=max_age_hours)
        self.transport = transport
        self._refresh_lock: Optional[asyncio.Lock] = None

    async def get_cached(self) -> RateStatus:
        """Last known rate and fetch time, falling back to the default rate."""
        rate = _valid_rate(await self.settings_manager.get_value(RATE_KEY))
        fetched_at = parse_iso_datetime(await self.settings_manager.get_value(FETCHED_AT_KEY))
        if rate is None:
            return RateStatus(rate=config.DEFAULT_RATE, fetched_at=fetched_at)
        return RateStatus(rate=rate, fetched_at=fetched_at)

    async def get_rate(self) -> RateStatus:
        cached = await self.get_cached()
        if not is_rate_stale(cached.fetched_at, utcnow(), self.max_age):
            return cached

        # Concurrent stale reads share one fetch
        if self._refresh_lock is None:
            self._refresh_lock = asyncio.Lock()
        async with self._refresh_lock:
            cached = await self.get_cached()
            if not is_rate_stale(cached.fetched_at, utcnow(), self.max_age):
                return cached
            return await self.refresh_rate(cached)

    async def refresh_rate(self, cached: Optional[RateStatus] = None) -> RateStatus:
        """Fetch once; on failure return the cached rate with an error message."""
        if cached is None:
            cached = await self.get_cached()

        try:
            rate = await self._fetch_rate()
        except (RateFetchError, httpx.HTTPError) as e:
            logger.error(f"Failed to fetch KRW to USD rate: {e}")
            logger.warning(f"Using last known rate: 1 USD = {cached.rate} KRW")
            cached.error = REFRESH_FAILED_MESSAGE
            return cached

        fetched_at = utcnow()
        await self.settings_manager.set_values({
            RATE_KEY: repr(rate),
            FETCHED_AT_KEY: fetched_at.isoformat(),
        })
        logger.info(f"Cached exchange rate: 1 USD = {rate:.2f} KRW")
        return RateStatus(rate=rate, fetched_at=fetched_at, refreshed=True)

    async def _fetch_rate(self) -> float:
        async with httpx.AsyncClient(timeout=config.RATE_TIMEOUT_SECONDS,
                                     transport=self.transport) as client:
            response = await client.get(self.api_url)
            response.raise_for_status()
            try:
                data = response.json()
            except ValueError:
                raise RateFetchError('Rate service returned invalid JSON')
            return parse_rate_response(data)
