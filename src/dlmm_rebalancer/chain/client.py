"""
Solana RPC client for balance queries and transaction submission.

Thin async wrapper over solana-py's AsyncClient. Every failure is mapped to
one of two exception types so callers can reason about them uniformly:

    - NetworkError: RPC unreachable, timeout, transport failure
    - TransactionError: preflight rejection, on-chain error, unconfirmed

No retries happen here. Callers wrap fallible calls in the RetryExecutor.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Sequence

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed, Finalized, Processed
from solana.rpc.core import RPCException
from solana.rpc.models import TokenAccountOpts, TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import Transaction, VersionedTransaction

from .models import Balance

logger = logging.getLogger(__name__)

COMMITMENTS = {
    "processed": Processed,
    "confirmed": Confirmed,
    "finalized": Finalized,
}

_TRANSPORT_ERRORS = (
    SolanaRpcException,
    httpx.HTTPError,
    OSError,
    asyncio.TimeoutError,
)


class ChainError(Exception):
    """Base exception for chain client errors."""

    pass


class NetworkError(ChainError):
    """RPC endpoint unreachable or timed out."""

    pass


class TransactionError(ChainError):
    """Transaction rejected, failed on chain, or never confirmed."""

    def __init__(self, message: str, signature: Optional[str] = None):
        super().__init__(message)
        self.signature = signature


def parse_commitment(name: str) -> Commitment:
    """Map a commitment name from configuration to a solana-py Commitment."""
    try:
        return COMMITMENTS[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown commitment '{name}'. Expected one of: {', '.join(COMMITMENTS)}"
        ) from None


def _to_pubkey(value: Any) -> Pubkey:
    if isinstance(value, Pubkey):
        return value
    return Pubkey.from_string(str(value))


class SolanaChainClient:
    """
    Async Solana chain client.

    Usage:
        async with SolanaChainClient(rpc_url) as chain:
            lamports = await chain.get_native_balance(owner)
            balance = await chain.get_token_balance(owner, mint)
            signature = await chain.send_and_confirm(tx, signers=[wallet])
    """

    def __init__(
        self,
        rpc_url: str,
        commitment: str = "confirmed",
        skip_preflight: bool = False,
        client: Optional[AsyncClient] = None,
    ) -> None:
        """
        Initialize the chain client.

        Args:
            rpc_url: Solana JSON-RPC endpoint
            commitment: Confirmation policy (processed/confirmed/finalized)
            skip_preflight: Skip transaction simulation before broadcast
            client: Optional pre-built AsyncClient (for testing)
        """
        self._rpc_url = rpc_url
        self._commitment = parse_commitment(commitment)
        self._skip_preflight = skip_preflight
        self._client = client or AsyncClient(rpc_url, commitment=self._commitment)

    async def __aenter__(self) -> "SolanaChainClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying RPC session."""
        await self._client.close()

    async def is_connected(self) -> bool:
        """Check that the RPC endpoint answers."""
        try:
            return bool(await self._client.is_connected())
        except _TRANSPORT_ERRORS as e:
            logger.warning(f"RPC health check failed: {e}")
            return False

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_native_balance(self, owner: Any) -> int:
        """Get the owner's native balance in lamports."""
        try:
            resp = await self._client.get_balance(_to_pubkey(owner))
        except _TRANSPORT_ERRORS as e:
            raise NetworkError(f"get_balance failed: {e}") from e
        except RPCException as e:
            raise NetworkError(f"get_balance rejected: {e}") from e
        return int(resp.value)

    async def get_token_balance(self, owner: Any, mint: Any) -> Optional[Balance]:
        """
        Get the owner's balance of a token.

        Returns None when the owner has no token account for the mint.
        Only the first token account is read.
        """
        try:
            accounts = await self._client.get_token_accounts_by_owner(
                _to_pubkey(owner),
                TokenAccountOpts(mint=_to_pubkey(mint)),
            )
            if not accounts.value:
                return None

            resp = await self._client.get_token_account_balance(accounts.value[0].pubkey)
        except _TRANSPORT_ERRORS as e:
            raise NetworkError(f"token balance query failed for {mint}: {e}") from e
        except RPCException as e:
            raise NetworkError(f"token balance query rejected for {mint}: {e}") from e

        amount = resp.value
        return Balance.from_raw(int(amount.amount), int(amount.decimals))

    async def get_latest_blockhash(self) -> tuple[Hash, int]:
        """Get the latest blockhash and its last valid block height."""
        try:
            resp = await self._client.get_latest_blockhash()
        except _TRANSPORT_ERRORS as e:
            raise NetworkError(f"get_latest_blockhash failed: {e}") from e
        except RPCException as e:
            raise NetworkError(f"get_latest_blockhash rejected: {e}") from e
        return resp.value.blockhash, resp.value.last_valid_block_height

    # =========================================================================
    # Submission
    # =========================================================================

    async def send_and_confirm(
        self,
        transaction: Any,
        signers: Sequence[Any] = (),
    ) -> str:
        """
        Submit a transaction and wait for confirmation.

        Legacy transactions are signed here with a fresh blockhash.
        Versioned transactions must already carry their signatures.

        Returns:
            The transaction signature

        Raises:
            NetworkError: Transport failure before the transaction was accepted
            TransactionError: Rejected, failed on chain, or not confirmed
        """
        last_valid_block_height: Optional[int] = None

        if isinstance(transaction, Transaction):
            if not signers:
                raise TransactionError("Legacy transaction submitted without signers")
            blockhash, last_valid_block_height = await self.get_latest_blockhash()
            transaction.sign(list(signers), blockhash)
        elif not isinstance(transaction, VersionedTransaction):
            raise TransactionError(
                f"Unsupported transaction type: {type(transaction).__name__}"
            )

        opts = TxOpts(
            skip_preflight=self._skip_preflight,
            preflight_commitment=self._commitment,
            last_valid_block_height=last_valid_block_height,
        )

        try:
            resp = await self._client.send_transaction(transaction, opts=opts)
        except _TRANSPORT_ERRORS as e:
            raise NetworkError(f"send_transaction failed: {e}") from e
        except RPCException as e:
            raise TransactionError(f"Transaction rejected: {e}") from e

        signature = resp.value
        logger.debug(f"Submitted transaction {signature}")

        try:
            status_resp = await self._client.confirm_transaction(
                signature,
                commitment=self._commitment,
                last_valid_block_height=last_valid_block_height,
            )
        except _TRANSPORT_ERRORS as e:
            raise NetworkError(f"confirm_transaction failed for {signature}: {e}") from e
        except Exception as e:
            # UnconfirmedTxError, TransactionExpiredBlockheightExceededError, RPCException
            raise TransactionError(
                f"Transaction {signature} not confirmed: {e}",
                signature=str(signature),
            ) from e

        statuses = status_resp.value
        status = statuses[0] if statuses else None
        if status is not None and status.err is not None:
            raise TransactionError(
                f"Transaction {signature} failed on chain: {status.err}",
                signature=str(signature),
            )

        logger.info(f"Confirmed transaction {signature}")
        return str(signature)
