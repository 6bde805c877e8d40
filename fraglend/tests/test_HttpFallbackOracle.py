"""Unit tests for HttpFallbackOracle."""

import httpx

from fraglend.src.HttpFallbackOracle import HttpFallbackOracle
from fraglend.src.fixed_point import ONE

from conftest import USDC, WETH

BASE_URL = "https://prices.test/api/v3"


def make_oracle(handler, **kwargs) -> HttpFallbackOracle:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpFallbackOracle(WETH, base_url=BASE_URL, client=client, **kwargs)


class TestHttpFallbackOracle:
    """Test HTTP-backed fallback prices."""

    def test_native_asset_is_one(self) -> None:
        """The native asset is priced at 1.0 without a request."""
        requests = []
        oracle = make_oracle(lambda request: requests.append(request))

        assert oracle.get_asset_price(WETH) == ONE
        assert oracle.native_asset() == WETH
        assert requests == []

    def test_price_parsed(self) -> None:
        """Prices are read from the nested response."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={USDC.lower(): {"eth": 0.0005}})

        oracle = make_oracle(handler)

        assert oracle.get_asset_price(USDC) == 5 * 10**14
        assert seen["path"] == "/api/v3/simple/token_price/ethereum"
        assert seen["params"] == {"contract_addresses": USDC.lower(), "vs_currencies": "eth"}

    def test_api_key_header(self) -> None:
        """The API key is sent as a header."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["key"] = request.headers.get("x-cg-demo-api-key")
            return httpx.Response(200, json={USDC.lower(): {"eth": 1}})

        make_oracle(handler, api_key="secret").get_asset_price(USDC)
        assert seen["key"] == "secret"

    def test_http_error_is_zero(self) -> None:
        """Non-success status codes degrade to 0."""
        oracle = make_oracle(lambda request: httpx.Response(429, text="rate limited"))
        assert oracle.get_asset_price(USDC) == 0

    def test_network_error_is_zero(self) -> None:
        """Transport failures degrade to 0."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        assert make_oracle(handler).get_asset_price(USDC) == 0

    def test_missing_asset_is_zero(self) -> None:
        """Assets absent from the response price at 0."""
        oracle = make_oracle(lambda request: httpx.Response(200, json={}))
        assert oracle.get_asset_price(USDC) == 0

    def test_malformed_body_is_zero(self) -> None:
        """Non-JSON bodies price at 0."""
        oracle = make_oracle(lambda request: httpx.Response(200, text="<html>"))
        assert oracle.get_asset_price(USDC) == 0

    def test_close(self) -> None:
        """Closing releases the client; a new one is created on demand."""
        oracle = make_oracle(lambda request: httpx.Response(200, json={}))
        first = oracle.client
        oracle.close()
        assert first.is_closed
        assert oracle.client is not first
