"""Trading212 REST client for account cash, positions and instrument metadata."""

import logging
from typing import Any

import httpx

from portfolio_valuator.core.config import BrokerageAccountConfig, MissingCredentialsError

logger = logging.getLogger(__name__)


class Trading212APIError(Exception):
    """Exception raised for Trading212 API errors."""


class Trading212Client:
    """
    Async client for one Trading212 account.

    The API key is sent as-is in the ``Authorization`` header.

    Parameters
    ----------
    api_key : str
        Account API key
    base_url : str
        API base URL
    timeout : float
        Request timeout in seconds
    transport : httpx.AsyncBaseTransport | None
        Custom transport, used by tests

    """

    BASE_URL = "https://live.trading212.com/api/v0"

    def __init__(
        self,
        api_key: str,
        base_url: str = BASE_URL,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            msg = "Trading212 API key not configured"
            raise MissingCredentialsError(msg)

        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Authorization": api_key, "Content-Type": "application/json"},
            transport=transport,
        )

    @classmethod
    def for_account(
        cls,
        account: BrokerageAccountConfig,
        base_url: str = BASE_URL,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "Trading212Client":
        """
        Build a client for a configured account.

        Raises
        ------
        MissingCredentialsError
            If the account has no API key

        """
        if account.api_key is None:
            msg = f"API key for Trading212 account {account.id} ({account.name}) not configured"
            raise MissingCredentialsError(msg)
        return cls(account.api_key.get_secret_value(), base_url=base_url, timeout=timeout, transport=transport)

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        logger.debug("GET %s", path, extra={"event": "trading212_request", "path": path})
        try:
            response = await self.client.get(path, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            msg = f"Request timeout on {path}: {e}"
            raise Trading212APIError(msg) from e
        except httpx.HTTPStatusError as e:
            msg = f"HTTP error {e.response.status_code} on {path}: {e}"
            raise Trading212APIError(msg) from e
        except httpx.HTTPError as e:
            msg = f"HTTP request failed on {path}: {e}"
            raise Trading212APIError(msg) from e
        except ValueError as e:
            msg = f"Invalid JSON from {path}: {e}"
            raise Trading212APIError(msg) from e

    async def get_account_cash(self) -> dict[str, Any]:
        """
        Fetch the account cash summary.

        Returns
        -------
        dict[str, Any]
            ``total``, ``free``, ``invested``, ``ppl`` (unrealised) and ``result`` (realised)

        """
        data = await self._get("/equity/account/cash")
        if not isinstance(data, dict):
            msg = "Unexpected cash response"
            raise Trading212APIError(msg)
        return data

    async def get_account_info(self) -> dict[str, Any]:
        """Fetch account metadata (id, currency)."""
        return await self._get("/equity/account/info")

    async def get_portfolio(self) -> list[dict[str, Any]]:
        """
        Fetch open positions.

        Returns
        -------
        list[dict[str, Any]]
            Positions with ``ticker``, ``quantity``, ``averagePrice``, ``currentPrice`` and ``ppl``

        """
        data = await self._get("/equity/portfolio")
        if not isinstance(data, list):
            msg = "Unexpected portfolio response"
            raise Trading212APIError(msg)
        return data

    async def get_instruments(self) -> list[dict[str, Any]]:
        """Fetch instrument metadata."""
        return await self._get("/equity/metadata/instruments")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> "Trading212Client":
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
