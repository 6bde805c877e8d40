"""HttpFallbackOracle: fallback asset prices read from an HTTP price API.

Endpoint: {base_url}/simple/token_price/{platform}?contract_addresses={asset}&vs_currencies={native}

Prices are returned denominated in the native asset, as the fallback
interface requires. Any HTTP, network or parsing failure yields 0, which
the router treats as "unavailable".
"""

from __future__ import annotations

import logging

import httpx

from .fixed_point import from_decimal
from .identifiers import to_address
from .interfaces import FallbackOracle

logger = logging.getLogger(__name__)


class HttpFallbackOracle(FallbackOracle):
    """Fallback oracle backed by a CoinGecko-compatible token price API.

    :cvar DEFAULT_BASE_URL: Public API root.
    :cvar DEFAULT_TIMEOUT: Request timeout in seconds.
    :ivar address: Identifier reported in notifications (the API root).
    :ivar platform: Chain slug used in the endpoint path.
    :ivar vs_currency: Native currency symbol prices are quoted in.
    """

    DEFAULT_BASE_URL = "https://api.coingecko.com/api/v3"
    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        native_asset: str,
        base_url: str = DEFAULT_BASE_URL,
        platform: str = "ethereum",
        vs_currency: str = "eth",
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the oracle.

        :param native_asset: Wrapped native asset identifier.
        :param base_url: API root (default public CoinGecko).
        :param platform: Chain slug (default "ethereum").
        :param vs_currency: Quote currency (default "eth").
        :param api_key: Optional demo API key sent as a header.
        :param timeout: Request timeout in seconds (default: 10).
        :param client: Preconfigured client (a private one is created if omitted).
        """
        self._native_asset = to_address(native_asset)
        self.base_url = base_url.rstrip("/")
        self.address = self.base_url
        self.platform = platform
        self.vs_currency = vs_currency.lower()
        self.api_key = api_key
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self._client = client

    @property
    def client(self) -> httpx.Client:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            self._client.close()

    def native_asset(self) -> str:
        return self._native_asset

    def get_asset_price(self, asset: str) -> int:
        """Fetch the native-denominated price of ``asset``.

        :returns: Price with 18 decimals, or 0 on failure.
        """
        asset = to_address(asset)
        if asset == self._native_asset:
            return from_decimal(1)

        url = f"{self.base_url}/simple/token_price/{self.platform}"
        headers = {"x-cg-demo-api-key": self.api_key} if self.api_key else None
        try:
            response = self.client.get(
                url,
                params={"contract_addresses": asset.lower(), "vs_currencies": self.vs_currency},
                headers=headers,
            )
            if not response.is_success:
                logger.warning(
                    f"[fallback] HTTP {response.status_code} for {asset}: {response.text[:200]}"
                )
                return 0
            data = response.json()
            return from_decimal(data[asset.lower()][self.vs_currency])
        except httpx.HTTPError as e:
            logger.warning(f"[fallback] Failed to fetch {asset}: {e}")
            return 0
        except (KeyError, ValueError, TypeError, ArithmeticError) as e:
            logger.warning(f"[fallback] Failed to parse response for {asset}: {e}")
            return 0
