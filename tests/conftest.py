"""Shared fixtures: a sample wallet file and in-memory chain/bridge doubles."""

from pathlib import Path

import pytest

from namada_flow.config import WorkflowConfig
from namada_flow.store import WalletStore
from namada_flow.types import (
    AccountInfo,
    Address,
    ChainRejectionError,
    Receipt,
    Transaction,
    TransferRequest,
)

SOURCE = "tnam1qze5x6au3egfnq7qp963c793cev5z5jvkcufnfhj"
TARGET = "tnam1qqteapc3ycthpehxtqadv6nx2grr5gptzs2ptyvy"
NATIVE_TOKEN = "tnam1qy440ynh9fwrx8aewjvvmu38zxqgukgc259fzp6h"
OTHER_TOKEN = "tnam1qxgfw7myv4dh0qna4hq0xdg6lx77fzl7dcem8h7e"
PAYMENT_ADDRESS = (
    "znam1jk5dkka9gj8wqtkky5tgzy76heapcdg8r3aqn9syr9k3nmx6ms8wn3hdew79tptg9kfds960a2u"
)
NEW_PAYMENT_ADDRESS = (
    "znam1qqqqq9gj8wqtkky5tgzy76heapcdg8r3aqn9syr9k3nmx6ms8wn3hdew79tptg9kfds960zzz"
)
PUBLIC_KEY = "tpknam1qpyfnrl6qdtr9ee5l2f9wwa3pwkfm3s4yg3vkqyl3v4aqn7fsjpjx7n6pq7"
SECOND_KEY = "tpknam1qz0fh7e4v6dxd2ygu0vm9c5p4ucw0cchr3rrp8nefytucy2ye5tkv8m4d3t"
VIEWING_KEY = "zvknam1qweyj2jhqqqqpq9qs0l0535mz8d3lymgf4wg2vxmleqjy53uaglzfh96ahq9x"

# Valid BIP39 phrase (all-zero entropy)
TEST_MNEMONIC = " ".join(["abandon"] * 11 + ["about"])

SAMPLE_WALLET = f"""\
[view_keys]
shielded = {{ key = "{VIEWING_KEY}", birthday = 0 }}

[spend_keys]
shielded = "unencrypted:zsknam1example"

[payment_addrs]
shielded-addr = "{PAYMENT_ADDRESS}"

[public_keys]
my-key = "ED25519_PK_PREFIX{PUBLIC_KEY}"

[addresses]
my-key = "{SOURCE}"
other = "{TARGET}"

[derivation_paths]
my-key = "m/44'/877'/0'/0'/0'"
"""


@pytest.fixture
def config(tmp_path: Path) -> WorkflowConfig:
    return WorkflowConfig(
        rpc_url="http://rpc.test",
        indexer_url="http://indexer.test",
        bridge_url="http://bridge.test",
        chain_id="test-chain.000",
        wallet_dir=tmp_path / "sdk-wallet",
        masp_dir=tmp_path / "masp",
        timeout=5.0,
        native_token=NATIVE_TOKEN,
    )


@pytest.fixture
def wallet_file(config: WorkflowConfig) -> Path:
    config.wallet_dir.mkdir(parents=True, exist_ok=True)
    config.wallet_file.write_text(SAMPLE_WALLET)
    return config.wallet_file


@pytest.fixture
def store(wallet_file: Path) -> WalletStore:
    store = WalletStore(wallet_file)
    store.load()
    return store


class FakeChain:
    """Chain client double that records submissions.

    The source account becomes revealed once a ``reveal_pk`` transaction
    for it goes through.
    """

    def __init__(self, revealed: bool = False) -> None:
        self.accounts: dict[str, list[str]] = {SOURCE: ["pk"] if revealed else []}
        self.submitted: list[Transaction] = []
        self.account_queries = 0
        self.rejections: list[Exception | None] = []  # consumed one per submit
        self.query_error: Exception | None = None
        self.masp_epoch = 7
        self.closed = False

    async def get_account_info(self, address: Address) -> AccountInfo | None:
        self.account_queries += 1
        if self.query_error is not None:
            raise self.query_error
        if address.value not in self.accounts:
            return None
        keys = self.accounts[address.value]
        return AccountInfo(address, dict(enumerate(keys)))

    async def submit(self, tx: Transaction) -> Receipt:
        self.submitted.append(tx)
        error = self.rejections.pop(0) if self.rejections else None
        if error is not None:
            raise error
        if tx.kind == "reveal_pk":
            self.accounts.setdefault(SOURCE, []).extend(tx.signing_keys)
        return Receipt(hash=f"HASH{len(self.submitted)}")

    async def native_token(self) -> str:
        return NATIVE_TOKEN

    async def status(self) -> dict:
        return {"chain_id": "test-chain.000", "latest_block_height": 1200}

    async def query_epoch(self) -> int:
        return 42

    async def query_masp_epoch(self) -> int:
        return self.masp_epoch

    async def get_balances(self, owner: Address):
        return [
            {"token": NATIVE_TOKEN, "amount": "1500000"},
            {"token": OTHER_TOKEN, "amount": "5"},
        ]

    async def aclose(self) -> None:
        self.closed = True


class FakeBridge:
    """SDK bridge double that records every call in order."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, object]] = []
        self.build_error: Exception | None = None
        self.sign_error: Exception | None = None
        self.balance: object = "12.5"
        self.payment_addresses = [NEW_PAYMENT_ADDRESS]

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def build_reveal_pk(self, public_key: str) -> Transaction:
        self.calls.append(("build_reveal_pk", public_key))
        return Transaction("reveal_pk", "cmV2ZWFs", [public_key])

    async def build_transfer(
        self, request: TransferRequest, signing_keys: list[str]
    ) -> Transaction:
        self.calls.append(("build_transfer", request))
        if self.build_error is not None:
            raise self.build_error
        return Transaction(request.kind.value, "dHJhbnNmZXI=", list(signing_keys))

    async def sign(self, tx: Transaction, signing_keys: list[str]) -> Transaction:
        self.calls.append(("sign", list(signing_keys)))
        if self.sign_error is not None:
            raise self.sign_error
        return Transaction(tx.kind, tx.payload, list(signing_keys), signed=True)

    async def derive_key(self, mnemonic: str, alias: str, **kwargs):
        self.calls.append(("derive_key", mnemonic))
        return {
            "alias": alias,
            "public_key": SECOND_KEY,
            "address": TARGET,
            "secret_key": "unencrypted:0011",
            "derivation_path": kwargs.get("path", "m/44'/877'/0'/0'/0'"),
        }

    async def derive_spending_key(self, mnemonic: str, alias: str, **kwargs):
        self.calls.append(("derive_spending_key", mnemonic))
        return {
            "alias": alias,
            "spending_key": "unencrypted:zsknam1new",
            "viewing_key": "zvknam1new",
            "derivation_path": "m/32'/877'/0'",
        }

    async def generate_payment_address(self, viewing_key: str) -> str:
        self.calls.append(("generate_payment_address", viewing_key))
        return self.payment_addresses.pop(0)

    async def shielded_sync(self, viewing_keys: list[str]):
        self.calls.append(("shielded_sync", viewing_keys))
        return {"synced_height": 100}

    async def shielded_balance(self, viewing_key: str, token: str, epoch: int) -> str:
        self.calls.append(("shielded_balance", (viewing_key, token, epoch)))
        if isinstance(self.balance, Exception):
            raise self.balance
        return str(self.balance)

    async def aclose(self) -> None:
        pass


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def bridge() -> FakeBridge:
    return FakeBridge()


def rejection(message: str = "insufficient fee") -> ChainRejectionError:
    return ChainRejectionError(message, code=1)
