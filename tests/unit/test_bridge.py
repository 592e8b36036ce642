"""Unit tests for the SDK bridge client."""

import json
from decimal import Decimal

import httpx
import pytest

from namada_flow.bridge import SdkBridge
from namada_flow.types import (
    Address,
    InvalidInputError,
    NetworkError,
    SigningError,
    Transaction,
    TransferKind,
    TransferRequest,
)

from conftest import NATIVE_TOKEN, NEW_PAYMENT_ADDRESS, PUBLIC_KEY, SOURCE, TARGET


class Bridge:
    """Mocked bridge service: one canned response per path."""

    def __init__(self) -> None:
        self.requests: list[tuple[str, dict]] = []
        self.responses: dict[str, httpx.Response] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.url.path, json.loads(request.content)))
        return self.responses[request.url.path]


@pytest.fixture
def service():
    return Bridge()


@pytest.fixture
async def bridge(config, service):
    client = SdkBridge(
        config, client=httpx.AsyncClient(transport=httpx.MockTransport(service))
    )
    yield client
    await client.aclose()


def tx_response(kind: str = "reveal_pk") -> httpx.Response:
    return httpx.Response(200, json={"kind": kind, "tx": "cmV2ZWFs"})


class TestTransactions:
    @pytest.mark.asyncio
    async def test_build_reveal_pk(self, bridge, service):
        service.responses["/v1/tx/reveal-pk"] = tx_response()

        tx = await bridge.build_reveal_pk(PUBLIC_KEY)

        assert tx.kind == "reveal_pk"
        assert tx.payload == "cmV2ZWFs"
        assert tx.signing_keys == [PUBLIC_KEY]
        assert not tx.signed
        assert service.requests == [
            (
                "/v1/tx/reveal-pk",
                {"chain_id": "test-chain.000", "public_key": PUBLIC_KEY},
            )
        ]

    @pytest.mark.asyncio
    async def test_build_transfer_body(self, bridge, service):
        service.responses["/v1/tx/ibc"] = tx_response("ibc")
        request = TransferRequest.create(
            source=Address(SOURCE),
            target="osmo1receiver",
            token=NATIVE_TOKEN,
            amount="2.5",
            kind=TransferKind.IBC,
            channel_id=0,
        )

        tx = await bridge.build_transfer(request, [PUBLIC_KEY])

        assert tx.kind == "ibc"
        path, body = service.requests[0]
        assert path == "/v1/tx/ibc"
        assert body == {
            "kind": "ibc",
            "source": SOURCE,
            "target": "osmo1receiver",
            "token": NATIVE_TOKEN,
            "amount": str(Decimal("2.5")),
            "channel_id": "channel-0",
            "port_id": "transfer",
            "chain_id": "test-chain.000",
            "signing_keys": [PUBLIC_KEY],
        }

    @pytest.mark.asyncio
    async def test_rejected_request_is_invalid_input(self, bridge, service):
        service.responses["/v1/tx/transparent"] = httpx.Response(
            400, json={"error": "unknown token"}
        )
        request = TransferRequest.create(
            source=Address(SOURCE),
            target=TARGET,
            token=NATIVE_TOKEN,
            amount=1,
            kind="transparent",
        )
        with pytest.raises(InvalidInputError, match="unknown token"):
            await bridge.build_transfer(request, [PUBLIC_KEY])

    @pytest.mark.asyncio
    async def test_server_error_is_network_failure(self, bridge, service):
        service.responses["/v1/tx/reveal-pk"] = httpx.Response(500, text="panic")
        with pytest.raises(NetworkError, match="500"):
            await bridge.build_reveal_pk(PUBLIC_KEY)

    @pytest.mark.asyncio
    async def test_malformed_transaction(self, bridge, service):
        service.responses["/v1/tx/reveal-pk"] = httpx.Response(
            200, json={"kind": "reveal_pk", "tx": "not base64!"}
        )
        with pytest.raises(NetworkError, match="malformed"):
            await bridge.build_reveal_pk(PUBLIC_KEY)

    @pytest.mark.asyncio
    async def test_unreachable_bridge(self, config):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        bridge = SdkBridge(
            config, client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        with pytest.raises(NetworkError, match="unreachable"):
            await bridge.build_reveal_pk(PUBLIC_KEY)
        await bridge.aclose()


class TestSigning:
    @pytest.mark.asyncio
    async def test_sign_marks_transaction_signed(self, bridge, service):
        service.responses["/v1/tx/sign"] = httpx.Response(
            200, json={"tx": "c2lnbmVk"}
        )
        tx = Transaction("transparent", "dHJhbnNmZXI=", [PUBLIC_KEY])

        signed = await bridge.sign(tx, [PUBLIC_KEY])

        assert signed.signed
        assert signed.kind == "transparent"
        assert signed.payload == "c2lnbmVk"
        _, body = service.requests[0]
        assert body["tx"] == "dHJhbnNmZXI="
        assert body["signing_keys"] == [PUBLIC_KEY]
        assert body["wallet_dir"].endswith("sdk-wallet")

    @pytest.mark.asyncio
    async def test_sign_rejection_is_signing_failure(self, bridge, service):
        service.responses["/v1/tx/sign"] = httpx.Response(
            404, json={"error": "secret key not found"}
        )
        tx = Transaction("transparent", "dHJhbnNmZXI=", [PUBLIC_KEY])
        with pytest.raises(SigningError, match="secret key not found"):
            await bridge.sign(tx, [PUBLIC_KEY])

    @pytest.mark.asyncio
    async def test_sign_without_keys(self, bridge, service):
        tx = Transaction("transparent", "dHJhbnNmZXI=")
        with pytest.raises(SigningError):
            await bridge.sign(tx, [])
        assert service.requests == []


class TestKeysAndShieldedPool:
    @pytest.mark.asyncio
    async def test_derive_key_fills_defaults(self, bridge, service):
        service.responses["/v1/keys/derive"] = httpx.Response(
            200,
            json={
                "public_key": PUBLIC_KEY,
                "address": SOURCE,
                "secret_key": "unencrypted:00",
            },
        )
        derived = await bridge.derive_key("words", "alice")
        assert derived["alias"] == "alice"
        assert derived["derivation_path"] == "m/44'/877'/0'/0'/0'"
        _, body = service.requests[0]
        assert body["scheme"] == "ed25519"
        assert body["mnemonic"] == "words"

    @pytest.mark.asyncio
    async def test_derived_key_missing_fields(self, bridge, service):
        service.responses["/v1/keys/derive"] = httpx.Response(200, json={})
        with pytest.raises(NetworkError, match="malformed key: missing public_key"):
            await bridge.derive_key("words", "alice")

    @pytest.mark.asyncio
    async def test_derived_spending_key_missing_viewing_key(self, bridge, service):
        service.responses["/v1/keys/derive-spending"] = httpx.Response(
            200, json={"spending_key": "zsknam1x"}
        )
        with pytest.raises(NetworkError, match="missing viewing_key"):
            await bridge.derive_spending_key("words", "shielded")

    @pytest.mark.asyncio
    async def test_non_object_response(self, bridge, service):
        service.responses["/v1/keys/derive"] = httpx.Response(200, json=["x"])
        with pytest.raises(NetworkError, match="non-object"):
            await bridge.derive_key("words", "alice")

    @pytest.mark.asyncio
    async def test_generate_payment_address(self, bridge, service):
        service.responses["/v1/masp/payment-address"] = httpx.Response(
            200, json={"payment_address": NEW_PAYMENT_ADDRESS}
        )
        assert await bridge.generate_payment_address("zvknam1x") == NEW_PAYMENT_ADDRESS

    @pytest.mark.asyncio
    async def test_payment_address_missing(self, bridge, service):
        service.responses["/v1/masp/payment-address"] = httpx.Response(200, json={})
        with pytest.raises(NetworkError):
            await bridge.generate_payment_address("zvknam1x")

    @pytest.mark.asyncio
    async def test_shielded_balance(self, bridge, service):
        service.responses["/v1/masp/balance"] = httpx.Response(
            200, json={"amount": "12.5"}
        )
        assert await bridge.shielded_balance("zvknam1x", NATIVE_TOKEN, 3) == "12.5"
        _, body = service.requests[0]
        assert body["epoch"] == 3
