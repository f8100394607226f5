"""Bybit v5 REST client for the funding account, tickers and coin catalog."""

import hashlib
import hmac
import logging
import time
from typing import Any
from urllib.parse import urlencode

import httpx

from portfolio_valuator.core.config import BybitSettings, ConfigurationError, MissingCredentialsError

logger = logging.getLogger(__name__)


class BybitAPIError(Exception):
    """
    Exception raised for Bybit API errors.

    Parameters
    ----------
    message : str
        Error description
    ret_code : int | None
        Bybit ``retCode`` when the venue answered with an error envelope

    """

    def __init__(self, message: str, ret_code: int | None = None) -> None:
        super().__init__(message)
        self.ret_code = ret_code


class BybitClient:
    """
    Async client for the Bybit v5 API.

    Private endpoints are signed with HMAC-SHA256 over
    ``timestamp + api_key + recv_window + query_string``.

    Parameters
    ----------
    api_key : str | None
        API key, required for private endpoints
    api_secret : str | None
        API secret, required for private endpoints
    base_url : str
        API base URL
    recv_window : int
        Milliseconds a signed request stays valid
    timeout : float
        Request timeout in seconds
    transport : httpx.AsyncBaseTransport | None
        Custom transport, used by tests

    """

    BASE_URL = "https://api.bybit.com"

    RECORD_PATHS = {
        "deposits": "/v5/asset/deposit/query-record",
        "withdrawals": "/v5/asset/withdraw/query-record",
        "exchanges": "/v5/asset/exchange/order-record",
    }

    def __init__(
        self,
        api_key: str | None = None,
        api_secret: str | None = None,
        base_url: str = BASE_URL,
        recv_window: int = 5000,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = base_url.rstrip("/")
        self.recv_window = recv_window
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: BybitSettings,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "BybitClient":
        """Build a client from configuration."""
        return cls(
            api_key=settings.api_key.get_secret_value() if settings.api_key else None,
            api_secret=settings.api_secret.get_secret_value() if settings.api_secret else None,
            base_url=settings.base_url,
            recv_window=settings.recv_window,
            timeout=timeout,
            transport=transport,
        )

    def sign(self, timestamp: str, query_string: str) -> str:
        """
        Compute the request signature.

        Parameters
        ----------
        timestamp : str
            Milliseconds since epoch
        query_string : str
            Encoded query string exactly as sent

        Returns
        -------
        str
            Hex HMAC-SHA256 digest

        Raises
        ------
        MissingCredentialsError
            If key or secret is missing

        """
        if not self.api_key or not self.api_secret:
            msg = "Missing BYBIT_API_KEY or BYBIT_API_SECRET"
            raise MissingCredentialsError(msg)

        payload = f"{timestamp}{self.api_key}{self.recv_window}{query_string}"
        return hmac.new(self.api_secret.encode(), payload.encode(), hashlib.sha256).hexdigest()

    async def request(self, path: str, params: dict[str, Any] | None = None, *, signed: bool = True) -> Any:
        """
        Make a GET request and unwrap the Bybit response envelope.

        Parameters
        ----------
        path : str
            Endpoint path
        params : dict[str, Any] | None
            Query parameters
        signed : bool
            Sign the request (private endpoints)

        Returns
        -------
        Any
            The ``result`` member of the response

        Raises
        ------
        BybitAPIError
            On transport errors, HTTP errors, or a non-zero ``retCode``

        """
        query_string = urlencode(sorted((params or {}).items()))
        headers = {}
        if signed:
            timestamp = str(int(time.time() * 1000))
            headers = {
                "X-BAPI-API-KEY": self.api_key or "",
                "X-BAPI-TIMESTAMP": timestamp,
                "X-BAPI-RECV-WINDOW": str(self.recv_window),
                "X-BAPI-SIGN": self.sign(timestamp, query_string),
            }

        url = f"{path}?{query_string}" if query_string else path
        logger.debug("GET %s", path, extra={"event": "bybit_request", "path": path})

        try:
            response = await self.client.get(url, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            msg = f"Request timeout on {path}: {e}"
            raise BybitAPIError(msg) from e
        except httpx.HTTPStatusError as e:
            msg = f"HTTP error {e.response.status_code} on {path}: {e}"
            raise BybitAPIError(msg) from e
        except httpx.HTTPError as e:
            msg = f"HTTP request failed on {path}: {e}"
            raise BybitAPIError(msg) from e
        except ValueError as e:
            msg = f"Invalid JSON from {path}: {e}"
            raise BybitAPIError(msg) from e

        if not isinstance(data, dict):
            msg = f"Unexpected response from {path}"
            raise BybitAPIError(msg)

        ret_code = data.get("retCode")
        if ret_code != 0:
            msg = f"Bybit error {ret_code} on {path}: {data.get('retMsg')}"
            raise BybitAPIError(msg, ret_code=ret_code)

        return data.get("result") or {}

    async def get_tickers(self, category: str = "spot") -> list[dict[str, Any]]:
        """
        Fetch the bulk ticker snapshot for a market category.

        Parameters
        ----------
        category : str
            Market category

        Returns
        -------
        list[dict[str, Any]]
            One ticker per trading pair, with ``symbol`` and ``lastPrice``

        """
        result = await self.request("/v5/market/tickers", {"category": category}, signed=False)
        return result.get("list") or []

    async def get_account_coins_balance(self, account_type: str = "FUND", coins: list[str] | None = None) -> list[dict[str, Any]]:
        """
        Fetch every coin balance of an account type.

        Parameters
        ----------
        account_type : str
            FUND, UNIFIED, CONTRACT or SPOT
        coins : list[str] | None
            Restrict to these coins

        Returns
        -------
        list[dict[str, Any]]
            Balances with ``coin``, ``walletBalance`` and ``transferBalance``

        """
        params: dict[str, Any] = {"accountType": account_type}
        if coins:
            params["coin"] = ",".join(coins)
        result = await self.request("/v5/asset/transfer/query-account-coins-balance", params)
        return result.get("balance") or []

    async def get_account_coin_balance(self, account_type: str, coin: str) -> dict[str, Any]:
        """
        Fetch the detailed balance of one coin.

        Parameters
        ----------
        account_type : str
            FUND, UNIFIED, CONTRACT or SPOT
        coin : str
            Coin symbol

        Returns
        -------
        dict[str, Any]
            Balance with ``walletBalance`` and ``transferBalance``

        Raises
        ------
        ConfigurationError
            If no coin is given

        """
        if not coin:
            msg = "Coin parameter is required"
            raise ConfigurationError(msg)

        result = await self.request(
            "/v5/asset/transfer/query-account-coin-balance",
            {"accountType": account_type, "coin": coin},
        )
        balance = result.get("balance")
        if not isinstance(balance, dict):
            msg = f"No balance returned for {coin}"
            raise BybitAPIError(msg)
        return balance

    async def get_coin_info(self, coin: str | None = None) -> list[dict[str, Any]]:
        """
        Fetch the exchange coin catalog.

        Parameters
        ----------
        coin : str | None
            Restrict to one coin

        Returns
        -------
        list[dict[str, Any]]
            Catalog rows with ``coin`` and ``name``

        """
        params = {"coin": coin} if coin else None
        result = await self.request("/v5/asset/coin/query-info", params)
        return result.get("rows") or []

    async def get_records(self, kind: str, limit: int = 50, **params: Any) -> list[dict[str, Any]]:
        """
        Fetch deposit, withdrawal or exchange order records.

        Parameters
        ----------
        kind : str
            One of ``deposits``, ``withdrawals``, ``exchanges``
        limit : int
            Page size
        **params : Any
            Extra query parameters

        Returns
        -------
        list[dict[str, Any]]
            Records, newest first

        Raises
        ------
        ConfigurationError
            If the record kind is unknown

        """
        path = self.RECORD_PATHS.get(kind)
        if path is None:
            msg = f"Unknown record kind {kind!r}; expected one of {', '.join(self.RECORD_PATHS)}"
            raise ConfigurationError(msg)

        result = await self.request(path, {"limit": str(limit), **params})
        return result.get("rows") or result.get("orderBody") or []

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> "BybitClient":
        """Async context manager entry."""
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: object | None,
    ) -> None:
        """Async context manager exit."""
        await self.close()
