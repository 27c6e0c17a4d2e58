"""
Swap aggregator client (Jupiter-style quote/swap API).

Two calls drive a rebalance swap:
    1. GET  /quote - route and amounts for input/output mint, amount, slippage
    2. POST /swap  - serialized transaction for the quote, signed locally

Retries are NOT handled here: the position manager wraps the full
quote -> build -> submit sequence in the RetryExecutor, so every retry gets
a fresh quote.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

import aiohttp
from solders.transaction import VersionedTransaction

from dlmm_rebalancer.chain.client import NetworkError

logger = logging.getLogger(__name__)


class SwapAPIError(Exception):
    """Base exception for swap API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(SwapAPIError):
    """Rate limit exceeded."""
    pass


@dataclass(frozen=True)
class QuoteRecord:
    """A swap quote as returned by the aggregator."""

    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    slippage_bps: int
    other_amount_threshold: int = 0
    price_impact_pct: Decimal = Decimal("0")
    raw: dict = field(default_factory=dict, compare=False, repr=False)


class JupiterSwapClient:
    """
    Async client for a Jupiter-compatible swap API.

    Usage:
        async with JupiterSwapClient() as swaps:
            quote = await swaps.quote(usdc_mint, jlp_mint, 5_000_000, slippage_bps=100)
            tx = await swaps.build_signed_swap(quote, wallet)
            await chain.send_and_confirm(tx)
    """

    DEFAULT_BASE_URL = "https://quote-api.jup.ag/v6"

    REQUIRED_QUOTE_FIELDS = ("inAmount", "outAmount")
    REQUIRED_SWAP_FIELDS = ("swapTransaction",)

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        session: Optional[aiohttp.ClientSession] = None,
        rate_limit: float = 5.0,  # requests per second
        timeout: float = 30.0,
    ):
        """
        Initialize the swap client.

        Args:
            base_url: API root, without trailing slash
            session: Optional aiohttp session (created if not provided)
            rate_limit: Maximum requests per second
            timeout: Request timeout in seconds
        """
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._rate_limit = rate_limit
        self._timeout = aiohttp.ClientTimeout(total=timeout)

        self._request_times: list[float] = []
        self._rate_lock = asyncio.Lock()

    async def __aenter__(self) -> "JupiterSwapClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the client session."""
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def _rate_limit_wait(self) -> None:
        """Wait if necessary to respect rate limits."""
        async with self._rate_lock:
            now = time.time()
            self._request_times = [t for t in self._request_times if now - t < 1.0]

            if len(self._request_times) >= self._rate_limit:
                wait_time = 1.0 - (now - self._request_times[0])
                if wait_time > 0:
                    await asyncio.sleep(wait_time)

            self._request_times.append(time.time())

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """
        Make a single HTTP request.

        Raises:
            RateLimitError: HTTP 429
            SwapAPIError: Any other non-2xx status
            NetworkError: Transport failure or timeout
        """
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        url = f"{self._base_url}{path}"
        await self._rate_limit_wait()

        try:
            async with self._session.request(method, url, **kwargs) as response:
                if response.status == 429:
                    raise RateLimitError("Rate limit exceeded", status_code=429)

                if response.status >= 400:
                    text = await response.text()
                    raise SwapAPIError(
                        f"Swap API error: {response.status} - {text}",
                        status_code=response.status,
                    )

                return await response.json()

        except asyncio.TimeoutError as e:
            raise NetworkError(f"Swap API timeout: {method} {path}") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Swap API request failed: {e}") from e

    # =========================================================================
    # Quote / Swap
    # =========================================================================

    async def quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
    ) -> QuoteRecord:
        """
        Get a swap quote.

        Args:
            input_mint: Mint of the token being sold
            output_mint: Mint of the token being bought
            amount: Input amount in smallest units
            slippage_bps: Slippage tolerance in basis points

        Returns:
            QuoteRecord
        """
        params = {
            "inputMint": str(input_mint),
            "outputMint": str(output_mint),
            "amount": str(amount),
            "slippageBps": str(slippage_bps),
        }

        data = await self._request("GET", "/quote", params=params)
        return self._parse_quote(data, slippage_bps)

    async def build_signed_swap(self, quote: QuoteRecord, signer: Any) -> VersionedTransaction:
        """
        Get the swap transaction for a quote and sign it locally.

        Args:
            quote: Quote from quote()
            signer: Wallet keypair (solders Keypair)

        Returns:
            Signed VersionedTransaction ready for broadcast
        """
        payload = {
            "quoteResponse": quote.raw,
            "userPublicKey": str(signer.pubkey()),
            "wrapAndUnwrapSol": True,
            "prioritizationFeeLamports": "auto",
        }

        data = await self._request("POST", "/swap", json=payload)

        for name in self.REQUIRED_SWAP_FIELDS:
            if not isinstance(data, dict) or name not in data:
                raise SwapAPIError(f"Swap response missing field: {name}")

        try:
            tx_bytes = base64.b64decode(data["swapTransaction"])
        except (binascii.Error, ValueError) as e:
            raise SwapAPIError(f"Swap transaction is not valid base64: {e}") from e

        try:
            unsigned = VersionedTransaction.from_bytes(tx_bytes)
        except ValueError as e:
            raise SwapAPIError(f"Swap transaction could not be decoded: {e}") from e

        logger.debug(f"Swap transaction received ({len(tx_bytes)} bytes)")
        return VersionedTransaction(unsigned.message, [signer])

    def _parse_quote(self, data: Any, slippage_bps: int) -> QuoteRecord:
        """Validate and convert a quote payload."""
        if not isinstance(data, dict):
            raise SwapAPIError("Quote response is not a JSON object")

        for name in self.REQUIRED_QUOTE_FIELDS:
            if name not in data:
                raise SwapAPIError(f"Quote response missing field: {name}")

        try:
            return QuoteRecord(
                input_mint=str(data.get("inputMint", "")),
                output_mint=str(data.get("outputMint", "")),
                in_amount=int(data["inAmount"]),
                out_amount=int(data["outAmount"]),
                slippage_bps=int(data.get("slippageBps", slippage_bps)),
                other_amount_threshold=int(data.get("otherAmountThreshold", 0)),
                price_impact_pct=Decimal(str(data.get("priceImpactPct", "0"))),
                raw=data,
            )
        except (ValueError, ArithmeticError) as e:
            raise SwapAPIError(f"Malformed quote response: {e}") from e
