"""
Async client for the Vybe Network analytics API.

Exposes the point queries the alert scheduler needs (token price, wallet
holdings, program TVL and program active users) and the lookups behind the
chat commands: token details, wallet holdings with USD values and market
pairs. Retries, the request timeout and the outbound rate limit live here;
callers only see parsed values or ProviderUnavailable.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from vybebot import config
from vybebot.errors import ProviderUnavailable
from vybebot.models import DEFAULT_TIMEFRAME, NATIVE_ASSET

logger = logging.getLogger(__name__)

NATIVE_MINT = "11111111111111111111111111111111"

TIMEFRAME_DAYS = {"24h": 1, "7d": 7, "30d": 30}


@dataclass(frozen=True)
class Holding:
    mint: str
    symbol: str
    amount: float
    value_usd: float = 0.0


@dataclass(frozen=True)
class WalletHoldings:
    address: str
    holdings: List[Holding]
    total_usd: float


@dataclass(frozen=True)
class MarketPair:
    base_symbol: str
    quote_symbol: str
    last_price: Optional[float]
    volume_24h: Optional[float]
    price_change_24h: Optional[float]


class RateLimiter:
    """Cap concurrent requests and keep a minimum spacing between request starts."""

    def __init__(self, max_concurrent: int, min_interval: float):
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._min_interval = min_interval
        self._lock = asyncio.Lock()
        self._last_start = 0.0

    async def __aenter__(self):
        await self._semaphore.acquire()
        async with self._lock:
            loop = asyncio.get_running_loop()
            wait = self._last_start + self._min_interval - loop.time()
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_start = loop.time()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self._semaphore.release()


class VybeClient:
    """Thin wrapper over httpx.AsyncClient with retry and rate limiting."""

    def __init__(
        self,
        api_key: str = config.VYBE_API_KEY,
        base_url: str = config.VYBE_API_BASE,
        timeout: float = config.HTTP_TIMEOUT_SEC,
        max_retries: int = 3,
        backoff: float = 1.0,
        max_concurrent: int = config.VYBE_MAX_CONCURRENT,
        min_interval: float = config.VYBE_MIN_INTERVAL_MS / 1000,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.max_retries = max_retries
        self.backoff = backoff
        self._limiter = RateLimiter(max_concurrent, min_interval)
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"X-API-KEY": api_key, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self):
        await self._client.aclose()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET a JSON document, retrying on rate limits, server errors and transport errors.

        Raises:
            ProviderUnavailable: once retries are exhausted or on a non-retryable 4xx
        """
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                async with self._limiter:
                    response = await self._client.get(path, params=params)

                if response.status_code == 429:
                    wait_time = self.backoff * 2 ** attempt
                    logger.warning(f"Rate limited on {path}, waiting {wait_time}s before retry")
                    last_error = ProviderUnavailable(f"{path}: rate limited")
                    if attempt < self.max_retries - 1:
                        await asyncio.sleep(wait_time)
                    continue

                response.raise_for_status()
                return response.json()

            except httpx.HTTPStatusError as e:
                if e.response.status_code >= 500:
                    wait_time = self.backoff * 2 ** attempt
                    logger.warning(f"Server error {e.response.status_code} on {path}, waiting {wait_time}s")
                    last_error = e
                    if attempt < self.max_retries - 1:
                        await asyncio.sleep(wait_time)
                    continue
                logger.error(f"HTTP error on {path}: {e}")
                raise ProviderUnavailable(f"{path}: HTTP {e.response.status_code}") from e
            except (httpx.TransportError, ValueError) as e:
                logger.warning(f"Request to {path} failed: {e}")
                last_error = e
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.backoff * 2 ** attempt)

        raise ProviderUnavailable(f"{path}: giving up after {self.max_retries} attempts") from last_error

    # ------------------------------------------------------------------
    # Point queries
    # ------------------------------------------------------------------

    async def get_price(self, mint: str) -> float:
        """Latest daily close price in USD for a token mint."""
        payload = await self._get(f"/price/{mint}/token-ohlcv", {"resolution": "1d", "limit": 1})
        rows = _rows(payload)
        if not rows:
            raise ProviderUnavailable(f"No price data for {mint}")
        return _number(rows[-1], "close", "price")

    async def get_wallet_holdings(self, wallet: str) -> WalletHoldings:
        """
        Fetch every token holding of a wallet with its symbol and USD value.

        Rows that cannot be parsed are logged and skipped.
        """
        payload = await self._get(f"/account/token-balance/{wallet}")
        holdings = []
        for row in _rows(payload):
            try:
                holdings.append(Holding(
                    mint=row["mintAddress"],
                    symbol=row.get("symbol") or "Unknown",
                    amount=float(row.get("amount") or 0),
                    value_usd=float(row.get("valueUsd") or 0),
                ))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Failed to parse holding for {wallet}: {e}")
                continue

        total = payload.get("totalTokenValueUsd") if isinstance(payload, dict) else None
        try:
            total_usd = float(total) if total is not None else sum(h.value_usd for h in holdings)
        except (TypeError, ValueError):
            total_usd = sum(h.value_usd for h in holdings)

        logger.debug(f"Fetched {len(holdings)} holdings for {wallet}")
        return WalletHoldings(address=wallet, holdings=holdings, total_usd=total_usd)

    async def get_wallet_balances(self, wallet: str) -> Dict[str, float]:
        """
        Fetch all token holdings of a wallet.

        Returns:
            Dictionary mapping mint address to token amount. Native SOL is
            reachable both by its mint and by the NATIVE_ASSET sentinel.
        """
        summary = await self.get_wallet_holdings(wallet)
        balances = {holding.mint: holding.amount for holding in summary.holdings}
        if NATIVE_MINT in balances:
            balances[NATIVE_ASSET] = balances[NATIVE_MINT]
        return balances

    async def get_balance(self, wallet: str, asset: str) -> float:
        holdings = await self.get_wallet_balances(wallet)
        if asset not in holdings:
            raise ProviderUnavailable(f"No balance for {asset} in {wallet}")
        return holdings[asset]

    async def get_tvl(self, program_id: str) -> float:
        """Most recent daily TVL in USD for a program."""
        payload = await self._get(f"/program/{program_id}/tvl", {"resolution": "1d"})
        rows = _rows(payload)
        if not rows:
            raise ProviderUnavailable(f"No TVL data for {program_id}")
        return _number(rows[-1], "tvl")

    async def get_active_users(self, program_id: str, timeframe: str = DEFAULT_TIMEFRAME) -> float:
        """Distinct active users of a program over a 24h, 7d or 30d window."""
        days = TIMEFRAME_DAYS.get(timeframe, 1)
        payload = await self._get(f"/program/{program_id}/active-users", {"days": days})

        # Only an explicit count is trusted; any other shape is a provider failure
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            payload = payload["data"]
        if not isinstance(payload, dict) or "count" not in payload:
            raise ProviderUnavailable(f"No active user count for {program_id}")
        return _number(payload, "count")

    async def get_market_pairs(self) -> List[MarketPair]:
        """Markets known to the price service, with last price, 24h volume and 24h change."""
        payload = await self._get("/price/markets")
        rows = payload.get("markets") if isinstance(payload, dict) and "markets" in payload else _rows(payload)
        if not isinstance(rows, list):
            raise ProviderUnavailable("Unexpected market pairs payload")

        pairs = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            try:
                pairs.append(MarketPair(
                    base_symbol=row.get("baseSymbol") or "Unknown",
                    quote_symbol=row.get("quoteSymbol") or "Unknown",
                    last_price=_optional_float(row.get("lastPrice")),
                    volume_24h=_optional_float(row.get("volume24h")),
                    price_change_24h=_optional_float(row.get("priceChange24h")),
                ))
            except (TypeError, ValueError) as e:
                logger.warning(f"Failed to parse market pair: {e}")
        return pairs

    async def get_token_details(self, mint: str) -> Dict[str, Any]:
        payload = await self._get(f"/token/{mint}")
        if not isinstance(payload, dict):
            raise ProviderUnavailable(f"Unexpected token details payload for {mint}")
        return payload


def _rows(payload: Any) -> List[Dict[str, Any]]:
    """Unwrap the list of records from either a bare list or a {"data": [...]} envelope."""
    if isinstance(payload, dict):
        payload = payload.get("data", [])
    if isinstance(payload, dict):
        payload = payload.get("data", [])
    if not isinstance(payload, list):
        return []
    return [row for row in payload if isinstance(row, dict)]


def _number(row: Dict[str, Any], *fields: str) -> float:
    for name in fields:
        if row.get(name) is not None:
            try:
                return float(row[name])
            except (TypeError, ValueError) as e:
                raise ProviderUnavailable(f"Bad {name} value: {row[name]!r}") from e
    raise ProviderUnavailable(f"Missing {'/'.join(fields)} in response")


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)
