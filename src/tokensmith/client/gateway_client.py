"""HTTP client for the gateway API."""
from __future__ import annotations
import logging
import math
from typing import Any

import httpx

from tokensmith.common.errors import GenerationFailed, NoPriceData
from tokensmith.common.schema import Chain, FeeQuote, TokenForm, TokenType

LOGGER = logging.getLogger("tokensmith.client.gateway")


class GatewayClient:
    """
    Talks to ``/api/get-prices`` and ``/api/generate-token``.

    Args:
        base_url: Gateway root, e.g. http://localhost:8000.
        client: Optional preconfigured httpx.Client (tests pass a MockTransport).
        timeout: Request timeout in seconds; generation can take a while.
    """

    def __init__(self, base_url: str, client: httpx.Client | None = None, timeout: float = 180.0) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "GatewayClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()

    def fetch_prices(self, address: str | None = None) -> FeeQuote:
        params = {"address": address} if address else None
        try:
            r = self._client.get(f"{self.base_url}/api/get-prices", params=params)
            r.raise_for_status()
            data = r.json()
            standard, liquidity = float(data["standard"]), float(data["liquidity"])
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            LOGGER.error("Failed to fetch prices: %s", e)
            raise NoPriceData()
        for fee in (standard, liquidity):
            if not math.isfinite(fee) or fee < 0:
                LOGGER.error("Gateway sent an unusable fee: %r", fee)
                raise NoPriceData()
        return FeeQuote(standard=standard, liquidity=liquidity)

    def generate_token_contract(
        self,
        token_type: TokenType,
        form: TokenForm,
        chain: Chain | None = None,
    ) -> str:
        """
        Request generated Solidity for a form.

        Raises:
            GenerationFailed: non-2xx answer, transport error, or no code in the body.
        """
        payload: dict[str, Any] = {"tokenType": token_type.value, "formData": form.model_dump()}
        if chain is not None:
            payload["selectedChain"] = chain.value

        try:
            r = self._client.post(f"{self.base_url}/api/generate-token", json=payload)
        except httpx.HTTPError as e:
            LOGGER.error("Error calling gateway: %s", e)
            raise GenerationFailed(f"Failed to generate smart contract. Reason: {e}")

        try:
            result = r.json()
        except ValueError:
            result = {}
        if not isinstance(result, dict):
            result = {}

        if r.is_error:
            reason = result.get("error") or f"Server responded with status: {r.status_code}"
            raise GenerationFailed(f"Failed to generate smart contract. Reason: {reason}")

        code = result.get("solidityCode")
        if not isinstance(code, str) or not code.strip():
            raise GenerationFailed(
                "Failed to generate smart contract. Reason: Received an invalid response from the server."
            )
        return code
