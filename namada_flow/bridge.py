"""SDK bridge client.

Transaction construction, signing, key derivation and shielded-pool work
are done by the chain SDK running behind a small HTTP bridge. This module
is the typed client for that service.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, TypedDict, cast

import httpx

from .config import WorkflowConfig
from .types import (
    InvalidInputError,
    NetworkError,
    SigningError,
    Transaction,
    TransferRequest,
    WorkflowError,
)

logger = logging.getLogger(__name__)


DEFAULT_TRANSPARENT_PATH = "m/44'/877'/0'/0'/0'"
DEFAULT_SHIELDED_PATH = "m/32'/877'/0'"


# ──────────────────────────────────────────────────────────────────────────────
# Wire types
# ──────────────────────────────────────────────────────────────────────────────


class TxResponse(TypedDict):
    kind: str
    tx: str  # base64


class DerivedKey(TypedDict):
    alias: str
    public_key: str
    address: str
    secret_key: str
    derivation_path: str


class DerivedSpendingKey(TypedDict, total=False):
    alias: str
    spending_key: str
    viewing_key: str
    derivation_path: str
    birthday: int


class SyncResult(TypedDict, total=False):
    synced_height: int
    notes_found: int


# ──────────────────────────────────────────────────────────────────────────────
# Bridge client
# ──────────────────────────────────────────────────────────────────────────────


class SdkBridge:
    def __init__(
        self, config: WorkflowConfig, *, client: httpx.AsyncClient | None = None
    ) -> None:
        self.config = config
        self.url = config.bridge_url
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout)
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self.client:
            await self.client.aclose()

    async def _request(
        self,
        path: str,
        body: dict[str, Any],
        *,
        error: type[WorkflowError] = InvalidInputError,
    ) -> dict[str, Any]:
        """POST to the bridge.

        Client errors (4xx) are raised as ``error``; server errors and
        transport failures as :class:`NetworkError`.
        """
        url = f"{self.url}{path}"
        logger.debug("Bridge request %s", path)
        try:
            response = await self.client.post(url, json=body)
        except httpx.TimeoutException as e:
            raise NetworkError(f"SDK bridge timed out on {path}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"SDK bridge unreachable at {url}: {e}") from e

        if response.status_code >= 400:
            try:
                message = response.json().get("error", response.text)
            except (AttributeError, ValueError):
                message = response.text
            if response.status_code >= 500:
                raise NetworkError(
                    f"SDK bridge returned {response.status_code}: {message}"
                )
            raise error(message)

        try:
            payload = response.json()
        except ValueError as e:
            raise NetworkError(f"SDK bridge returned invalid JSON for {path}") from e
        if not isinstance(payload, dict):
            raise NetworkError(f"SDK bridge returned a non-object for {path}")
        return payload

    @staticmethod
    def _key_fields(
        response: dict[str, Any], required: tuple[str, ...], what: str
    ) -> None:
        missing = [name for name in required if not response.get(name)]
        if missing:
            raise NetworkError(
                f"SDK bridge returned a malformed {what}: missing {', '.join(missing)}"
            )

    @staticmethod
    def _transaction(response: dict[str, Any], signing_keys: list[str]) -> Transaction:
        data = cast(TxResponse, response)
        try:
            base64.b64decode(data["tx"], validate=True)
        except (KeyError, ValueError) as e:
            raise NetworkError("SDK bridge returned a malformed transaction") from e
        return Transaction(
            kind=data.get("kind", "unknown"),
            payload=data["tx"],
            signing_keys=list(signing_keys),
        )

    # ───────────────────────── Transactions ─────────────────────────────────

    async def build_reveal_pk(self, public_key: str) -> Transaction:
        """Build a transaction publishing ``public_key`` on chain."""
        response = await self._request(
            "/v1/tx/reveal-pk",
            {"chain_id": self.config.chain_id, "public_key": public_key},
        )
        return self._transaction(response, [public_key])

    async def build_transfer(
        self, request: TransferRequest, signing_keys: list[str]
    ) -> Transaction:
        """Build a transparent, shielding or IBC transfer."""
        body = request.to_dict()
        body["chain_id"] = self.config.chain_id
        body["signing_keys"] = signing_keys
        response = await self._request(f"/v1/tx/{request.kind.value}", body)
        return self._transaction(response, signing_keys)

    async def sign(self, tx: Transaction, signing_keys: list[str]) -> Transaction:
        """Sign ``tx`` with the secret keys matching ``signing_keys``.

        The bridge looks the secret keys up in the wallet directory.
        """
        if not signing_keys:
            raise SigningError("No signing keys given")
        response = await self._request(
            "/v1/tx/sign",
            {
                "chain_id": self.config.chain_id,
                "tx": tx.payload,
                "signing_keys": signing_keys,
                "wallet_dir": str(self.config.wallet_dir),
            },
            error=SigningError,
        )
        signed = self._transaction(response, signing_keys)
        signed.kind = tx.kind
        signed.signed = True
        return signed

    # ───────────────────────── Keys ─────────────────────────────────────────

    async def derive_key(
        self,
        mnemonic: str,
        alias: str,
        *,
        path: str = DEFAULT_TRANSPARENT_PATH,
        scheme: str = "ed25519",
        passphrase: str = "",
    ) -> DerivedKey:
        """Derive a transparent key pair and its implicit address."""
        response = await self._request(
            "/v1/keys/derive",
            {
                "mnemonic": mnemonic,
                "passphrase": passphrase,
                "alias": alias,
                "path": path,
                "scheme": scheme,
            },
        )
        self._key_fields(response, ("public_key", "address"), "key")
        response.setdefault("alias", alias)
        response.setdefault("derivation_path", path)
        return cast(DerivedKey, response)

    async def derive_spending_key(
        self,
        mnemonic: str,
        alias: str,
        *,
        path: str = DEFAULT_SHIELDED_PATH,
        passphrase: str = "",
    ) -> DerivedSpendingKey:
        """Derive a shielded spending key and its viewing key."""
        response = await self._request(
            "/v1/keys/derive-spending",
            {
                "mnemonic": mnemonic,
                "passphrase": passphrase,
                "alias": alias,
                "path": path,
            },
        )
        self._key_fields(
            response, ("spending_key", "viewing_key"), "spending key"
        )
        response.setdefault("alias", alias)
        response.setdefault("derivation_path", path)
        return cast(DerivedSpendingKey, response)

    # ───────────────────────── Shielded pool ────────────────────────────────

    async def generate_payment_address(self, viewing_key: str) -> str:
        """Find a valid diversifier and return the payment address."""
        response = await self._request(
            "/v1/masp/payment-address", {"viewing_key": viewing_key}
        )
        address = response.get("payment_address")
        if not address:
            raise NetworkError("SDK bridge returned no payment address")
        return str(address)

    async def shielded_sync(self, viewing_keys: list[str]) -> SyncResult:
        response = await self._request(
            "/v1/masp/sync",
            {
                "chain_id": self.config.chain_id,
                "viewing_keys": viewing_keys,
                "masp_dir": str(self.config.masp_dir),
            },
        )
        return cast(SyncResult, response)

    async def shielded_balance(self, viewing_key: str, token: str, epoch: int) -> str:
        """Shielded balance of ``token`` for a viewing key at a MASP epoch."""
        response = await self._request(
            "/v1/masp/balance",
            {
                "viewing_key": viewing_key,
                "token": token,
                "epoch": epoch,
                "masp_dir": str(self.config.masp_dir),
            },
        )
        return str(response.get("amount", "0"))
