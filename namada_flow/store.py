"""Wallet store backed by the SDK's ``wallet.toml`` file."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import tomlkit
from tomlkit.exceptions import TOMLKitError

from .types import (
    ED25519_PK_PREFIX,
    Address,
    AliasExistsError,
    InvalidInputError,
    KeyRecord,
    StorageError,
    ViewingKeyRecord,
    clean_public_key,
)

logger = logging.getLogger(__name__)


SECTIONS = (
    "view_keys",
    "spend_keys",
    "payment_addrs",
    "public_keys",
    "secret_keys",
    "addresses",
    "derivation_paths",
)

# Sections whose aliases name an address; an alias lives in at most one of them
ADDRESS_SECTIONS = ("addresses", "payment_addrs")

# One lock per wallet file for the whole process
_store_locks: dict[Path, asyncio.Lock] = {}


def _lock_for(path: Path) -> asyncio.Lock:
    key = path.resolve()
    if key not in _store_locks:
        _store_locks[key] = asyncio.Lock()
    return _store_locks[key]


def normalize_alias(alias: str) -> str:
    """Aliases are case-insensitive and stored lowercase."""
    if not isinstance(alias, str) or not alias.strip():
        raise InvalidInputError("Alias must be a non-empty string")
    return alias.strip().lower()


class WalletStore:
    """Alias to address/key index persisted as a TOML document.

    The store is read and written wholesale. Callers that change it should do
    so inside :meth:`mutation`, which holds the per-file lock across the
    load, modify and save steps.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._doc: tomlkit.TOMLDocument = tomlkit.document()
        self._lock = _lock_for(self.path)

    # ───────────────────────── Persistence ─────────────────────────────────

    def load(self) -> bool:
        """Load the wallet file.

        Returns:
            True if an existing wallet was read, False if none exists yet

        Raises:
            StorageError: If the file exists but cannot be read or parsed
        """
        if not self.path.exists():
            logger.debug("No wallet file at %s, starting empty", self.path)
            self._doc = tomlkit.document()
            return False
        try:
            self._doc = tomlkit.parse(self.path.read_text(encoding="utf-8"))
        except OSError as e:
            raise StorageError(f"Unable to read wallet file {self.path}: {e}") from e
        except TOMLKitError as e:
            raise StorageError(f"Unable to parse wallet file {self.path}: {e}") from e
        logger.debug("Loaded wallet from %s", self.path)
        return True

    def save(self) -> None:
        """Write the wallet file atomically.

        Raises:
            StorageError: If the file cannot be written
        """
        tmp = self.path.with_suffix(".toml.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(tomlkit.dumps(self._doc), encoding="utf-8")
            # Key material: read/write for the owner only
            tmp.chmod(0o600)
            os.replace(tmp, self.path)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmp.unlink(missing_ok=True)
            raise StorageError(f"Could not save wallet to {self.path}: {e}") from e
        logger.debug("Saved wallet to %s", self.path)

    @asynccontextmanager
    async def mutation(self) -> AsyncIterator[WalletStore]:
        """Hold the store lock for a load, modify, save cycle.

        The latest file contents are loaded on entry and the store is saved
        on a clean exit. Nothing is written if the body raises.
        """
        async with self._lock:
            self.load()
            yield self
            self.save()

    # ───────────────────────── Raw section access ──────────────────────────

    def _section(self, name: str) -> dict[str, Any]:
        table = self._doc.get(name)
        if table is None:
            return {}
        return table.unwrap() if hasattr(table, "unwrap") else dict(table)

    def _writable_section(self, name: str) -> Any:
        if name not in self._doc:
            self._doc[name] = tomlkit.table()
        return self._doc[name]

    def _alias_taken(self, alias: str, sections: tuple[str, ...]) -> str | None:
        for name in sections:
            if alias in self._section(name):
                return name
        return None

    # ───────────────────────── Addresses ───────────────────────────────────

    def find_address(self, alias: str) -> Address | None:
        """Look up the address stored under an alias.

        Transparent addresses are checked first, then payment addresses.
        """
        alias = normalize_alias(alias)
        for name in ADDRESS_SECTIONS:
            value = self._section(name).get(alias)
            if value is not None:
                return Address.parse(str(value))
        return None

    def insert_address(
        self, alias: str, address: Address | str, force: bool = False
    ) -> Address:
        """Store an address under an alias.

        Payment addresses go to ``payment_addrs``, transparent ones to
        ``addresses``. An alias already used by either section is only
        replaced when ``force`` is set.

        Raises:
            AliasExistsError: If the alias exists and ``force`` is False
        """
        alias = normalize_alias(alias)
        if isinstance(address, str):
            address = Address.parse(address)

        existing = self._alias_taken(alias, ADDRESS_SECTIONS)
        if existing is not None:
            if not force:
                raise AliasExistsError(f"Alias '{alias}' already exists")
            logger.info("Overwriting alias %s in %s", alias, existing)
            del self._doc[existing][alias]

        section = "payment_addrs" if address.is_shielded else "addresses"
        self._writable_section(section)[alias] = address.value
        return address

    def insert_payment_address(
        self, alias: str, address: Address | str, force: bool = False
    ) -> Address:
        if isinstance(address, str):
            address = Address.parse(address)
        if not address.is_shielded:
            raise InvalidInputError(f"Not a payment address: {address}")
        return self.insert_address(alias, address, force)

    # ───────────────────────── Keys ────────────────────────────────────────

    def insert_key(
        self, record: KeyRecord, secret_key: str | None = None, force: bool = False
    ) -> None:
        """Store a transparent key with its implicit address.

        Raises:
            AliasExistsError: If the alias already holds a key and ``force``
                is False
        """
        alias = normalize_alias(record.alias)
        if alias in self._section("public_keys") and not force:
            raise AliasExistsError(f"Key alias '{alias}' already exists")

        self._writable_section("public_keys")[alias] = (
            ED25519_PK_PREFIX + clean_public_key(record.public_key)
        )
        if secret_key is not None:
            self._writable_section("secret_keys")[alias] = secret_key
        if record.derivation_path:
            self._writable_section("derivation_paths")[alias] = record.derivation_path
        if record.address is not None:
            self.insert_address(alias, record.address, force=True)

    def insert_spending_key(
        self,
        alias: str,
        spending_key: str,
        viewing_key: str,
        *,
        derivation_path: str | None = None,
        birthday: int | None = None,
        force: bool = False,
    ) -> None:
        """Store a shielded spending key and its viewing key."""
        alias = normalize_alias(alias)
        if alias in self._section("spend_keys") and not force:
            raise AliasExistsError(f"Spending key alias '{alias}' already exists")

        self._writable_section("spend_keys")[alias] = spending_key
        view = tomlkit.inline_table()
        view["key"] = viewing_key
        if birthday is not None:
            view["birthday"] = birthday
        self._writable_section("view_keys")[alias] = view
        if derivation_path:
            self._writable_section("derivation_paths")[alias] = derivation_path

    def list_public_keys(self) -> list[KeyRecord]:
        """All stored transparent public keys, prefix stripped."""
        addresses = self._section("addresses")
        paths = self._section("derivation_paths")
        records = []
        for alias, value in self._section("public_keys").items():
            address = addresses.get(alias)
            records.append(
                KeyRecord(
                    alias=alias,
                    public_key=clean_public_key(str(value)),
                    address=Address.parse(str(address)) if address else None,
                    derivation_path=paths.get(alias),
                )
            )
        return records

    def list_viewing_keys(self) -> list[ViewingKeyRecord]:
        records = []
        for alias, value in self._section("view_keys").items():
            # Older wallets store the bare key string
            if isinstance(value, dict):
                key, birthday = value.get("key"), value.get("birthday")
            else:
                key, birthday = value, None
            if key:
                records.append(
                    ViewingKeyRecord(
                        alias=alias, key=str(key).strip(), birthday=birthday
                    )
                )
        return records

    def find_viewing_key(self, alias: str) -> ViewingKeyRecord | None:
        alias = normalize_alias(alias)
        for record in self.list_viewing_keys():
            if record.alias == alias:
                return record
        return None

    def public_keys_for(self, address: Address) -> list[str]:
        """Stored public keys whose alias maps to ``address``, in file order."""
        keys: list[str] = []
        for record in self.list_public_keys():
            if record.address == address and record.public_key not in keys:
                keys.append(record.public_key)
        return keys

    def aliases(self) -> list[str]:
        seen: list[str] = []
        for name in SECTIONS:
            for alias in self._section(name):
                if alias not in seen:
                    seen.append(alias)
        return seen
