"""Chain client: CometBFT JSON-RPC for consensus, indexer REST for accounts."""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from contextlib import asynccontextmanager
from itertools import count
from typing import Any, AsyncIterator, TypedDict, cast

import httpx
import websockets

from .config import WorkflowConfig
from .types import (
    AccountInfo,
    Address,
    ChainRejectionError,
    InvalidInputError,
    NetworkError,
    NotFoundError,
    Receipt,
    TokenBalance,
    Transaction,
)

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Wire types
# ──────────────────────────────────────────────────────────────────────────────


class BroadcastResult(TypedDict):
    """Result of ``broadcast_tx_sync``."""

    code: int
    data: str
    log: str
    hash: str


class AbciQueryResponse(TypedDict, total=False):
    code: int
    log: str
    value: str | None  # base64
    height: str


class ChainStatus(TypedDict):
    chain_id: str
    latest_block_height: int


# ──────────────────────────────────────────────────────────────────────────────
# Chain client
# ──────────────────────────────────────────────────────────────────────────────


class ChainClient:
    def __init__(
        self, config: WorkflowConfig, *, client: httpx.AsyncClient | None = None
    ) -> None:
        self.config = config
        self.rpc_url = config.rpc_url
        self.indexer_url = config.indexer_url
        self.timeout = config.timeout
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout)
        )
        self._ids = count(1)
        self._native_token: str | None = config.native_token

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self.client:
            await self.client.aclose()

    async def __aenter__(self) -> ChainClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    # ───────────────────────── Transport ─────────────────────────────────

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request to {url} timed out") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e

    async def _rpc(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Make a JSON-RPC call to the CometBFT node."""
        body = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or {},
        }
        logger.debug("RPC %s to %s", method, self.rpc_url)
        response = await self._send("POST", self.rpc_url, json=body)

        if response.status_code >= 400:
            raise NetworkError(
                f"RPC returned {response.status_code}: {response.text}"
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise NetworkError(f"RPC returned invalid JSON for {method}") from e

        if payload.get("error"):
            error = payload["error"]
            message = error.get("data") or error.get("message") or str(error)
            raise ChainRejectionError(f"RPC {method} failed: {message}")
        return payload.get("result", {})

    async def _indexer(self, path: str) -> Any | None:
        """GET from the indexer. Returns None on 404."""
        url = f"{self.indexer_url}{path}"
        logger.debug("GET %s", url)
        response = await self._send("GET", url)

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise NetworkError(
                f"Indexer returned {response.status_code}: {response.text}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(f"Indexer returned invalid JSON for {path}") from e

    async def abci_query(self, path: str, data: bytes = b"") -> bytes:
        """Run an ABCI query and return the raw value bytes."""
        result = await self._rpc(
            "abci_query", {"path": path, "data": data.hex(), "prove": False}
        )
        response = cast(AbciQueryResponse, result.get("response", {}))
        code = int(response.get("code", 0) or 0)
        if code != 0:
            raise ChainRejectionError(
                f"Query {path} failed: {response.get('log', '')}", code=code
            )
        value = response.get("value") or ""
        try:
            return base64.b64decode(value)
        except ValueError as e:
            raise NetworkError(f"Query {path} returned invalid base64") from e

    # ───────────────────────── Queries ─────────────────────────────────

    async def status(self) -> ChainStatus:
        result = await self._rpc("status")
        try:
            return ChainStatus(
                chain_id=result["node_info"]["network"],
                latest_block_height=int(result["sync_info"]["latest_block_height"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkError(f"Unexpected status response: {result}") from e

    async def _query_u64(self, path: str) -> int:
        raw = await self.abci_query(path)
        if len(raw) != 8:
            raise NetworkError(f"Unexpected {path} encoding ({len(raw)} bytes)")
        return int.from_bytes(raw, "little")

    async def query_epoch(self) -> int:
        """Current epoch of the chain."""
        return await self._query_u64("/shell/epoch")

    async def query_masp_epoch(self) -> int:
        """Last committed MASP epoch."""
        return await self._query_u64("/shell/masp_epoch")

    async def get_account_info(self, address: Address) -> AccountInfo | None:
        """Fetch the revealed public keys of an account.

        Args:
            address: Transparent account address

        Returns:
            Account info (possibly with an empty key map), or None if the
            chain does not know the account
        """
        if address.is_shielded:
            raise InvalidInputError("Shielded addresses have no on-chain account")
        response = await self._indexer(f"/api/v1/revealed-public-key/{address}")
        if response is None:
            return None
        if not isinstance(response, dict):
            raise NetworkError(f"Unexpected account response: {response!r}")

        public_key = response.get("publicKey")
        public_keys = {0: public_key} if public_key else {}
        return AccountInfo(address=address, public_keys=public_keys)

    async def get_balances(self, owner: Address) -> list[TokenBalance]:
        """Transparent token balances of an account."""
        response = await self._indexer(f"/api/v1/account/{owner}")
        if not response:
            return []
        balances: list[TokenBalance] = []
        for entry in response:
            token = entry.get("tokenAddress")
            if token is None and isinstance(entry.get("token"), dict):
                token = entry["token"].get("address")
            amount = entry.get("minDenomAmount") or entry.get("balance") or "0"
            if token:
                balances.append(TokenBalance(token=token, amount=str(amount)))
        return balances

    async def native_token(self) -> str:
        """Address of the native token (configured or queried once)."""
        if self._native_token:
            return self._native_token
        response = await self._indexer("/api/v1/chain/token") or []
        for entry in response:
            if entry.get("type") == "native" and entry.get("address"):
                self._native_token = str(entry["address"])
                return self._native_token
        raise NotFoundError("Native token not reported by the indexer")

    # ───────────────────────── Submission ─────────────────────────────────

    async def submit(self, tx: Transaction) -> Receipt:
        """Broadcast a signed transaction.

        With ``wait_for_commit`` set, the block subscription is opened before
        the broadcast so that a fast commit cannot be missed.

        Raises:
            ChainRejectionError: If the node rejects the transaction
            NetworkError: If the node cannot be reached
        """
        if not tx.signed:
            raise InvalidInputError("Refusing to broadcast an unsigned transaction")

        height = None
        if self.config.wait_for_commit:
            async with self._block_subscription() as ws:
                result = await self._broadcast(tx)
                height = await self._await_applied(ws, result["hash"])
        else:
            result = await self._broadcast(tx)
        return Receipt(
            hash=result["hash"], code=0, log=result.get("log", ""), height=height
        )

    async def _broadcast(self, tx: Transaction) -> BroadcastResult:
        result = cast(
            BroadcastResult, await self._rpc("broadcast_tx_sync", {"tx": tx.payload})
        )
        code = int(result.get("code", 0))
        tx_hash = str(result.get("hash", ""))
        if code != 0:
            raise ChainRejectionError(
                f"Transaction {tx_hash} rejected (code {code}): "
                f"{result.get('log', '')}",
                code=code,
            )
        logger.info("Broadcast %s tx %s", tx.kind, tx_hash)
        result["hash"] = tx_hash
        return result

    async def wait_for_commit(self, tx_hash: str) -> int:
        """Wait until a broadcast transaction is applied in a block.

        Listens to new blocks on the node's websocket and returns once one
        reports ``tx_hash`` under ``applied.hash``. A transaction applied
        before the subscription was opened is not seen.

        Returns:
            Height of the block that applied the transaction
        """
        async with self._block_subscription() as ws:
            return await self._await_applied(ws, tx_hash)

    @asynccontextmanager
    async def _block_subscription(self) -> AsyncIterator[Any]:
        request = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": "subscribe",
            "params": {"query": "tm.event='NewBlock'"},
        }
        url = self.config.websocket_url
        try:
            async with websockets.connect(url, close_timeout=10) as ws:
                await ws.send(json.dumps(request))
                yield ws
        except (OSError, websockets.WebSocketException) as e:
            raise NetworkError(f"Websocket to {url} failed: {e}") from e

    async def _await_applied(self, ws: Any, tx_hash: str) -> int:
        try:
            async with asyncio.timeout(self.timeout):
                while True:
                    message = json.loads(await ws.recv())
                    if message.get("error"):
                        raise ChainRejectionError(
                            f"Subscription failed: {message['error']}"
                        )
                    result = message.get("result") or {}
                    if not result.get("data"):
                        continue  # subscription ack
                    height = self._applied_height(tx_hash, result)
                    if height is not None:
                        return height
        except TimeoutError as e:
            raise NetworkError(f"Timed out waiting for {tx_hash} to commit") from e

    @staticmethod
    def _applied_height(tx_hash: str, result: dict[str, Any]) -> int | None:
        """Height of the block in ``result`` if it applied ``tx_hash``."""
        events = result.get("events") or {}
        hashes = [str(h).upper() for h in events.get("applied.hash") or []]
        if tx_hash.upper() not in hashes:
            return None
        index = hashes.index(tx_hash.upper())
        codes = events.get("applied.code") or []
        code = str(codes[index]) if index < len(codes) else "0"
        if code != "0":
            infos = events.get("applied.info") or []
            info = infos[index] if index < len(infos) else ""
            raise ChainRejectionError(
                f"Transaction {tx_hash} failed on chain: {info}",
                code=int(code) if code.isdigit() else None,
            )
        block = result["data"].get("value", {}).get("block", {})
        return int(block.get("header", {}).get("height", 0))
