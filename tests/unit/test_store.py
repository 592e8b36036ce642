"""Unit tests for the TOML wallet store."""

import asyncio
import stat

import pytest

from namada_flow.store import WalletStore, normalize_alias
from namada_flow.types import (
    Address,
    AliasExistsError,
    InvalidInputError,
    KeyRecord,
    StorageError,
)

from conftest import (
    NEW_PAYMENT_ADDRESS,
    PAYMENT_ADDRESS,
    PUBLIC_KEY,
    SECOND_KEY,
    SOURCE,
    TARGET,
    VIEWING_KEY,
)


class TestLoadSave:
    def test_missing_file_is_empty_store(self, tmp_path):
        store = WalletStore(tmp_path / "wallet.toml")
        assert store.load() is False
        assert store.aliases() == []
        assert store.find_address("anything") is None

    def test_existing_file_loads(self, wallet_file):
        store = WalletStore(wallet_file)
        assert store.load() is True
        assert "my-key" in store.aliases()

    def test_malformed_file_raises_storage_error(self, tmp_path):
        path = tmp_path / "wallet.toml"
        path.write_text("[addresses\nbroken = ")
        with pytest.raises(StorageError):
            WalletStore(path).load()

    def test_save_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "wallet.toml"
        store = WalletStore(path)
        store.load()
        store.insert_address("alice", TARGET)
        store.save()

        reloaded = WalletStore(path)
        assert reloaded.load() is True
        assert reloaded.find_address("alice") == Address(TARGET)

    def test_saved_file_is_owner_only(self, tmp_path):
        path = tmp_path / "wallet.toml"
        store = WalletStore(path)
        store.insert_address("alice", TARGET)
        store.save()
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_failed_save_leaves_no_temp_file(self, tmp_path, monkeypatch):
        path = tmp_path / "wallet.toml"
        store = WalletStore(path)
        store.insert_address("alice", TARGET)

        def fail(src, dst):
            raise PermissionError("read-only directory")

        monkeypatch.setattr("namada_flow.store.os.replace", fail)
        with pytest.raises(StorageError, match="read-only directory"):
            store.save()
        assert list(tmp_path.iterdir()) == []

    def test_save_keeps_unknown_sections(self, wallet_file):
        wallet_file.write_text(wallet_file.read_text() + '\n[extra]\nkeep = "me"\n')
        store = WalletStore(wallet_file)
        store.load()
        store.insert_address("alice", TARGET)
        store.save()
        assert 'keep = "me"' in wallet_file.read_text()


class TestAliasResolution:
    def test_find_transparent_address(self, store):
        assert store.find_address("my-key") == Address(SOURCE)

    def test_find_payment_address(self, store):
        address = store.find_address("shielded-addr")
        assert address == Address(PAYMENT_ADDRESS)
        assert address.is_shielded

    def test_aliases_are_case_insensitive(self, store):
        assert store.find_address("  MY-KEY ") == Address(SOURCE)

    def test_unknown_alias(self, store):
        assert store.find_address("nobody") is None

    def test_empty_alias_rejected(self, store):
        with pytest.raises(InvalidInputError):
            store.find_address("   ")

    def test_normalize_alias(self):
        assert normalize_alias(" Alice ") == "alice"


class TestInsertAddress:
    def test_insert_then_resolve(self, store):
        store.insert_address("bob", TARGET)
        assert store.find_address("bob") == Address(TARGET)

    def test_existing_alias_requires_force(self, store):
        with pytest.raises(AliasExistsError):
            store.insert_address("other", SOURCE)
        assert store.find_address("other") == Address(TARGET)

    def test_alias_exists_is_invalid_input(self):
        assert issubclass(AliasExistsError, InvalidInputError)

    def test_force_replaces_across_sections(self, store):
        store.insert_address("other", NEW_PAYMENT_ADDRESS, force=True)
        assert store.find_address("other") == Address(NEW_PAYMENT_ADDRESS)
        assert "other" not in store._section("addresses")
        assert "other" in store._section("payment_addrs")

    def test_invalid_address_rejected(self, store):
        with pytest.raises(InvalidInputError):
            store.insert_address("bad", "cosmos1abc")

    def test_payment_address_must_be_shielded(self, store):
        with pytest.raises(InvalidInputError):
            store.insert_payment_address("bad", TARGET)


class TestKeys:
    def test_public_keys_prefix_stripped(self, store):
        records = store.list_public_keys()
        assert len(records) == 1
        assert records[0].public_key == PUBLIC_KEY
        assert records[0].address == Address(SOURCE)
        assert records[0].derivation_path == "m/44'/877'/0'/0'/0'"

    def test_public_keys_for_address(self, store):
        assert store.public_keys_for(Address(SOURCE)) == [PUBLIC_KEY]
        assert store.public_keys_for(Address(TARGET)) == []

    def test_public_keys_for_several_aliases(self, store):
        store.insert_key(
            KeyRecord("second", SECOND_KEY, address=Address(SOURCE)), force=True
        )
        # Duplicate key under a third alias counts once
        store.insert_key(KeyRecord("dup", PUBLIC_KEY, address=Address(SOURCE)))
        assert store.public_keys_for(Address(SOURCE)) == [PUBLIC_KEY, SECOND_KEY]

    def test_insert_key_writes_all_sections(self, store):
        store.insert_key(
            KeyRecord(
                "Fresh",
                SECOND_KEY,
                address=Address(TARGET),
                derivation_path="m/44'/877'/0'/0'/1'",
            ),
            secret_key="unencrypted:abcd",
        )
        public_keys = store._section("public_keys")
        assert public_keys["fresh"] == f"ED25519_PK_PREFIX{SECOND_KEY}"
        assert store._section("secret_keys")["fresh"] == "unencrypted:abcd"
        assert store._section("derivation_paths")["fresh"] == "m/44'/877'/0'/0'/1'"
        assert store.find_address("fresh") == Address(TARGET)

    def test_insert_key_existing_alias(self, store):
        with pytest.raises(AliasExistsError):
            store.insert_key(KeyRecord("my-key", SECOND_KEY))

    def test_viewing_keys(self, store):
        records = store.list_viewing_keys()
        assert [(r.alias, r.key, r.birthday) for r in records] == [
            ("shielded", VIEWING_KEY, 0)
        ]

    def test_bare_string_viewing_key(self, tmp_path):
        path = tmp_path / "wallet.toml"
        path.write_text('[view_keys]\nold = "zvknam1old"\n')
        store = WalletStore(path)
        store.load()
        record = store.find_viewing_key("old")
        assert record is not None
        assert record.key == "zvknam1old"
        assert record.birthday is None

    def test_insert_spending_key(self, store):
        store.insert_spending_key(
            "spend", "unencrypted:zsknam1x", "zvknam1x", birthday=12
        )
        record = store.find_viewing_key("spend")
        assert record is not None
        assert (record.key, record.birthday) == ("zvknam1x", 12)
        assert store._section("spend_keys")["spend"] == "unencrypted:zsknam1x"

    def test_insert_spending_key_requires_force(self, store):
        with pytest.raises(AliasExistsError):
            store.insert_spending_key("shielded", "sk", "vk")
        store.insert_spending_key("shielded", "sk", "zvknam1replaced", force=True)
        assert store.find_viewing_key("shielded").key == "zvknam1replaced"


class TestMutation:
    @pytest.mark.asyncio
    async def test_mutation_saves_on_exit(self, wallet_file):
        store = WalletStore(wallet_file)
        async with store.mutation() as s:
            s.insert_address("carol", TARGET)

        reloaded = WalletStore(wallet_file)
        reloaded.load()
        assert reloaded.find_address("carol") == Address(TARGET)

    @pytest.mark.asyncio
    async def test_mutation_discards_on_error(self, wallet_file):
        before = wallet_file.read_text()
        store = WalletStore(wallet_file)
        with pytest.raises(AliasExistsError):
            async with store.mutation() as s:
                s.insert_address("dave", TARGET)
                s.insert_address("other", SOURCE)
        assert wallet_file.read_text() == before

    @pytest.mark.asyncio
    async def test_concurrent_mutations_do_not_lose_writes(self, wallet_file):
        async def add(alias: str) -> None:
            store = WalletStore(wallet_file)
            async with store.mutation() as s:
                await asyncio.sleep(0)
                s.insert_address(alias, TARGET)

        await asyncio.gather(*(add(f"alias-{i}") for i in range(5)))

        store = WalletStore(wallet_file)
        store.load()
        for i in range(5):
            assert store.find_address(f"alias-{i}") == Address(TARGET)

    @pytest.mark.asyncio
    async def test_mutation_picks_up_external_changes(self, wallet_file):
        store = WalletStore(wallet_file)
        store.load()
        other = WalletStore(wallet_file)
        other.insert_address("external", TARGET)
        other.save()

        async with store.mutation() as s:
            s.insert_address("local", SOURCE)

        assert store.find_address("external") == Address(TARGET)
        assert store.find_address("local") == Address(SOURCE)
