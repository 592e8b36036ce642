from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from mnemonic import Mnemonic

from .bridge import (
    DEFAULT_SHIELDED_PATH,
    DEFAULT_TRANSPARENT_PATH,
    SdkBridge,
    SyncResult,
)
from .chain import ChainClient, ChainStatus
from .config import WorkflowConfig
from .store import WalletStore, normalize_alias
from .types import (
    SHIELDED_PREFIX,
    TRANSPARENT_PREFIX,
    Address,
    AliasExistsError,
    InvalidInputError,
    KeyRecord,
    NotFoundError,
    RevealOutcome,
    TokenBalance,
    TransferKind,
    TransferOutcome,
    parse_amount,
    parse_channel_id,
)
from .workflow import TransferWorkflow, resolve

logger = logging.getLogger(__name__)

MNEMONIC_STRENGTH = 256  # 24 words


@dataclass(frozen=True)
class NewKey:
    """A key created or imported into the wallet.

    ``mnemonic`` is only set for freshly generated wallets and is never
    written to disk.
    """

    alias: str
    address: Address
    public_key: str
    mnemonic: str | None = None


@dataclass(frozen=True)
class NewSpendingKey:
    alias: str
    viewing_key: str


@dataclass(frozen=True)
class PaymentAddressResult:
    alias: str
    address: Address
    created: bool


# ──────────────────────────────────────────────────────────────────────────────
# Wallet implementation
# ──────────────────────────────────────────────────────────────────────────────


class Wallet:
    """Wallet store, chain client and SDK bridge behind one async handle."""

    def __init__(
        self,
        config: WorkflowConfig,
        *,
        store: WalletStore | None = None,
        chain: ChainClient | None = None,
        bridge: SdkBridge | None = None,
        shutdown: asyncio.Event | None = None,
    ) -> None:
        self.config = config
        self.store = store or WalletStore(config.wallet_file)
        self.chain = chain or ChainClient(config)
        self.bridge = bridge or SdkBridge(config)
        self.workflow = TransferWorkflow(
            config, self.store, self.chain, self.bridge, shutdown=shutdown
        )
        self._mnemonic = Mnemonic("english")

    async def __aenter__(self) -> Wallet:
        if self.store.load():
            logger.info("Existing wallet found at %s", self.store.path)
        else:
            logger.info("No existing wallet found at %s", self.store.path)
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.chain.aclose()
        await self.bridge.aclose()

    # ───────────────────────────── Keys ───────────────────────────────────

    def generate_mnemonic(self) -> str:
        return self._mnemonic.generate(strength=MNEMONIC_STRENGTH)

    def _check_mnemonic(self, phrase: str) -> str:
        phrase = " ".join(phrase.split())
        if not self._mnemonic.check(phrase):
            raise InvalidInputError("Invalid mnemonic phrase")
        return phrase

    async def _derive_and_store(
        self, alias: str, phrase: str, *, force: bool, path: str
    ) -> NewKey:
        alias = normalize_alias(alias)
        async with self.store.mutation() as store:
            if not force and alias in store.aliases():
                raise AliasExistsError(f"Alias '{alias}' already exists")
            derived = await self.bridge.derive_key(phrase, alias, path=path)
            address = Address.parse(derived["address"])
            store.insert_key(
                KeyRecord(
                    alias=alias,
                    public_key=derived["public_key"],
                    address=address,
                    derivation_path=derived["derivation_path"],
                ),
                secret_key=derived.get("secret_key"),
                force=True,
            )
        logger.info("Stored key %s for %s", alias, address)
        return NewKey(alias=alias, address=address, public_key=derived["public_key"])

    async def create_wallet(
        self,
        alias: str,
        *,
        force: bool = False,
        path: str = DEFAULT_TRANSPARENT_PATH,
    ) -> NewKey:
        """Generate a 24 word mnemonic and store the key derived from it.

        The mnemonic is returned for the caller to show once; it is not saved.
        """
        phrase = self.generate_mnemonic()
        key = await self._derive_and_store(alias, phrase, force=force, path=path)
        return NewKey(key.alias, key.address, key.public_key, mnemonic=phrase)

    async def import_key(
        self,
        alias: str,
        phrase: str,
        *,
        force: bool = False,
        path: str = DEFAULT_TRANSPARENT_PATH,
    ) -> NewKey:
        """Derive a key from an existing mnemonic and store it under ``alias``."""
        phrase = self._check_mnemonic(phrase)
        return await self._derive_and_store(alias, phrase, force=force, path=path)

    async def create_spending_key(
        self,
        alias: str,
        phrase: str,
        *,
        force: bool = False,
        path: str = DEFAULT_SHIELDED_PATH,
    ) -> NewSpendingKey:
        """Derive a shielded spending key (and its viewing key) from a mnemonic."""
        phrase = self._check_mnemonic(phrase)
        alias = normalize_alias(alias)
        async with self.store.mutation() as store:
            derived = await self.bridge.derive_spending_key(phrase, alias, path=path)
            store.insert_spending_key(
                alias,
                derived["spending_key"],
                derived["viewing_key"],
                derivation_path=derived.get("derivation_path"),
                birthday=derived.get("birthday"),
                force=force,
            )
        return NewSpendingKey(alias=alias, viewing_key=derived["viewing_key"])

    # ─────────────────────────── Addresses ────────────────────────────────

    def find_address(self, alias: str) -> Address:
        """Resolve an alias, raising :class:`NotFoundError` on a miss."""
        return resolve(self.store, alias)

    def _owner(self, owner: str) -> Address:
        if owner.startswith((TRANSPARENT_PREFIX, SHIELDED_PREFIX)):
            return Address.parse(owner)
        return resolve(self.store, owner)

    def _viewing_key(self, viewing_key: str | None, alias: str | None = None) -> str:
        if viewing_key and viewing_key.startswith("zvknam"):
            return viewing_key.strip()
        lookup = viewing_key or alias
        if lookup:
            record = self.store.find_viewing_key(lookup)
            if record is not None:
                return record.key
            if viewing_key:
                raise NotFoundError(f"No viewing key found for alias: {viewing_key}")
        records = self.store.list_viewing_keys()
        if not records:
            raise NotFoundError("No viewing keys in wallet")
        return records[0].key

    async def generate_payment_address(
        self,
        alias: str,
        *,
        viewing_key: str | None = None,
        force: bool = False,
    ) -> PaymentAddressResult:
        """Generate a shielded payment address and store it under ``alias``.

        An existing alias is kept as is unless ``force`` is set.

        Args:
            alias: Alias for the new address
            viewing_key: Raw viewing key or alias of a stored one; defaults
                to the key stored under ``alias``, then the first stored key
            force: Replace an existing address under ``alias``
        """
        alias = normalize_alias(alias)
        async with self.store.mutation() as store:
            existing = store.find_address(alias)
            if existing is not None and not force:
                logger.info("Address already exists for %s: %s", alias, existing)
                return PaymentAddressResult(alias, existing, created=False)

            key = self._viewing_key(viewing_key, alias)
            address = Address.parse(await self.bridge.generate_payment_address(key))
            store.insert_payment_address(alias, address, force=force)
        logger.info("New payment address for %s: %s", alias, address)
        return PaymentAddressResult(alias, address, created=True)

    # ─────────────────────────── Transfers ────────────────────────────────

    async def reveal(self, alias: str) -> RevealOutcome:
        return await self.workflow.reveal(alias)

    async def transfer(
        self,
        alias: str,
        target: str,
        amount: str | Decimal,
        *,
        token: str | None = None,
        memo: str | None = None,
    ) -> TransferOutcome:
        """Transparent transfer from ``alias`` to a ``tnam1`` address."""
        return await self.workflow.run(
            alias, target, amount, TransferKind.TRANSPARENT, token=token, memo=memo
        )

    async def shield(
        self,
        alias: str,
        target: str,
        amount: str | Decimal,
        *,
        token: str | None = None,
    ) -> TransferOutcome:
        """Move funds from ``alias`` into the shielded pool at ``target``."""
        return await self.workflow.run(
            alias, target, amount, TransferKind.SHIELDING, token=token
        )

    async def ibc_transfer(
        self,
        alias: str,
        receiver: str,
        amount: str | Decimal,
        *,
        channel_id: str | int = "channel-0",
        token: str | None = None,
        memo: str | None = None,
    ) -> TransferOutcome:
        """Send tokens over IBC to a receiver on a foreign chain."""
        return await self.workflow.run(
            alias,
            receiver,
            amount,
            TransferKind.IBC,
            token=token,
            channel_id=channel_id,
            memo=memo,
        )

    async def ibc_memo(
        self,
        alias: str,
        receiver: str,
        amount: str | Decimal,
        *,
        channel_id: str | int = "channel-0",
        token: str | None = None,
    ) -> str:
        """Human readable description of an IBC transfer, without sending it."""
        source = resolve(self.store, alias)
        value = parse_amount(amount)
        channel = parse_channel_id(channel_id)
        token = token or await self.chain.native_token()
        return (
            f"Transfer of {value} {token} from {source} to {receiver} "
            f"via port transfer/{channel} and channel {channel}"
        )

    # ─────────────────────────── Queries ──────────────────────────────────

    async def balance(self, owner: str, token: str | None = None) -> list[TokenBalance]:
        """Transparent balances of an alias or address, optionally one token."""
        address = self._owner(owner)
        balances = await self.chain.get_balances(address)
        if token is not None:
            balances = [b for b in balances if b["token"] == token]
            if not balances:
                balances = [TokenBalance(token=token, amount="0")]
        return balances

    async def shielded_sync(self) -> SyncResult:
        """Sync the shielded context for every stored viewing key."""
        keys = [record.key for record in self.store.list_viewing_keys()]
        if not keys:
            raise NotFoundError("No viewing keys in wallet")
        logger.info("Syncing shielded context for %d viewing key(s)", len(keys))
        return await self.bridge.shielded_sync(keys)

    async def shielded_balance(
        self, viewing_key: str | None = None, token: str | None = None
    ) -> str:
        """Shielded balance at the last committed MASP epoch.

        A balance the bridge cannot decode is reported as ``"0"``.
        """
        key = self._viewing_key(viewing_key)
        token = token or await self.chain.native_token()
        epoch = await self.chain.query_masp_epoch()
        logger.info("Last committed MASP epoch: %s", epoch)
        try:
            amount = await self.bridge.shielded_balance(key, token, epoch)
            return str(Decimal(amount))
        except (InvalidInputError, InvalidOperation) as e:
            logger.warning("Could not decode shielded balance: %s", e)
            return "0"

    async def epoch(self) -> int:
        return await self.chain.query_epoch()

    async def status(self) -> ChainStatus:
        return await self.chain.status()
