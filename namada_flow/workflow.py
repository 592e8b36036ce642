"""Account readiness and transfer workflow.

Every transfer goes through the same three steps:

1. resolve the source alias to an address in the wallet store,
2. make sure the source account's public key is revealed on chain,
3. build, sign and submit the transfer.

A failure at any step ends the attempt; nothing is retried automatically.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

from .bridge import SdkBridge
from .chain import ChainClient
from .config import WorkflowConfig
from .store import WalletStore
from .types import (
    Address,
    CancelledError,
    InvalidInputError,
    NetworkError,
    NotFoundError,
    RevealOutcome,
    RevealStatus,
    SubmitOutcome,
    SubmitStatus,
    TransferKind,
    TransferOutcome,
    TransferRequest,
    WorkflowError,
    WorkflowState,
)

logger = logging.getLogger(__name__)


def _check_shutdown(shutdown: asyncio.Event | None) -> None:
    if shutdown is not None and shutdown.is_set():
        raise CancelledError("Shutdown requested")


# ──────────────────────────────────────────────────────────────────────────────
# Alias resolution
# ──────────────────────────────────────────────────────────────────────────────


def resolve(store: WalletStore, alias: str) -> Address:
    """Resolve an alias to the address stored under it.

    Raises:
        NotFoundError: If the alias is not in the store
        InvalidInputError: If the alias is empty
    """
    address = store.find_address(alias)
    if address is None:
        raise NotFoundError(f"No address found for alias: {alias}")
    return address


# ──────────────────────────────────────────────────────────────────────────────
# Reveal gate
# ──────────────────────────────────────────────────────────────────────────────


async def ensure_revealed(
    chain: ChainClient,
    store: WalletStore,
    bridge: SdkBridge,
    address: Address,
    *,
    shutdown: asyncio.Event | None = None,
) -> RevealOutcome:
    """Reveal the account's public keys unless the chain already has them.

    Candidate keys are the stored public keys whose alias maps to
    ``address``. One reveal transaction is built, signed and submitted per
    key; the first failure stops the loop.

    Returns:
        ``already_revealed`` without submitting anything, ``revealed`` after
        every reveal went through, or ``failed`` with the cause
    """
    if address.is_shielded:
        return RevealOutcome(
            address,
            RevealStatus.FAILED,
            failure=InvalidInputError(f"{address} is a shielded payment address"),
        )

    try:
        info = await chain.get_account_info(address)
    except WorkflowError as e:
        # Reveal state unknown: keep this apart from a rejected reveal
        failure = e
        if not isinstance(e, NetworkError):
            failure = NetworkError(f"Could not query reveal status of {address}: {e}")
            failure.__cause__ = e
        return RevealOutcome(address, RevealStatus.FAILED, failure=failure)

    if info is not None and info.is_revealed:
        logger.info("Account %s already revealed", address)
        return RevealOutcome(address, RevealStatus.ALREADY_REVEALED)

    keys = store.public_keys_for(address)
    if not keys:
        return RevealOutcome(
            address,
            RevealStatus.FAILED,
            failure=NotFoundError(f"No stored public key for {address}"),
        )

    logger.info("Account %s is not revealed, revealing %d key(s)", address, len(keys))
    outcome = RevealOutcome(address, RevealStatus.REVEALED)
    for key in keys:
        try:
            _check_shutdown(shutdown)
            tx = await bridge.build_reveal_pk(key)
            tx = await bridge.sign(tx, [key])
            receipt = await chain.submit(tx)
        except WorkflowError as e:
            logger.warning("Failed to reveal public key %s: %s", key, e)
            outcome.status = RevealStatus.FAILED
            outcome.failure = e
            return outcome
        logger.info("Public key %s revealed in %s", key, receipt.hash)
        outcome.receipts.append(receipt)
    return outcome


# ──────────────────────────────────────────────────────────────────────────────
# Transfer submission
# ──────────────────────────────────────────────────────────────────────────────


async def submit_transfer(
    chain: ChainClient,
    store: WalletStore,
    bridge: SdkBridge,
    request: TransferRequest,
    reveal: RevealOutcome | None,
    *,
    shutdown: asyncio.Event | None = None,
) -> SubmitOutcome:
    """Build, sign and submit one transfer.

    ``reveal`` must be the reveal gate result for ``request.source``; the
    transfer is refused unless it says the account is revealed.
    """
    state = WorkflowState.REVEAL_CHECKED
    if reveal is None or not reveal.ok or reveal.address != request.source:
        return SubmitOutcome(
            SubmitStatus.FAILED,
            state,
            failure=InvalidInputError(
                f"Source {request.source} has not passed the reveal check"
            ),
        )

    signing_keys = store.public_keys_for(request.source)
    if not signing_keys:
        return SubmitOutcome(
            SubmitStatus.FAILED,
            state,
            failure=NotFoundError(f"No stored public key for {request.source}"),
        )

    try:
        _check_shutdown(shutdown)
        tx = await bridge.build_transfer(request, signing_keys)
        state = WorkflowState.BUILT

        _check_shutdown(shutdown)
        tx = await bridge.sign(tx, signing_keys)
        state = WorkflowState.SIGNED

        _check_shutdown(shutdown)
        receipt = await chain.submit(tx)
    except WorkflowError as e:
        logger.warning(
            "%s transfer failed after %s: %s", request.kind.value, state.value, e
        )
        return SubmitOutcome(SubmitStatus.FAILED, state, failure=e)

    logger.info("%s transfer submitted: %s", request.kind.value, receipt.hash)
    return SubmitOutcome(
        SubmitStatus.SUCCESS, WorkflowState.SUBMITTED, receipt=receipt
    )


# ──────────────────────────────────────────────────────────────────────────────
# Workflow
# ──────────────────────────────────────────────────────────────────────────────


class TransferWorkflow:
    """Resolve, reveal, then transfer, for one request at a time."""

    def __init__(
        self,
        config: WorkflowConfig,
        store: WalletStore,
        chain: ChainClient,
        bridge: SdkBridge,
        *,
        shutdown: asyncio.Event | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.chain = chain
        self.bridge = bridge
        self.shutdown = shutdown

    async def reveal(self, alias: str) -> RevealOutcome:
        """Run only the first two steps for an alias.

        Raises:
            NotFoundError: If the alias is not in the store
        """
        address = resolve(self.store, alias)
        return await ensure_revealed(
            self.chain, self.store, self.bridge, address, shutdown=self.shutdown
        )

    async def run(
        self,
        alias: str,
        target: str,
        amount: str | int | Decimal,
        kind: TransferKind | str,
        *,
        token: str | None = None,
        channel_id: str | int | None = None,
        memo: str | None = None,
    ) -> TransferOutcome:
        """Run the full workflow for one transfer.

        Args:
            alias: Wallet alias of the transparent source account
            target: Target address, or the foreign receiver for IBC
            amount: Decimal amount in token units
            kind: ``transparent``, ``shielding`` or ``ibc``
            token: Token address, defaults to the native token
            channel_id: IBC channel (``channel-0`` or ``0``)
            memo: Optional memo attached to the transfer

        Returns:
            Outcome with the terminal state and, on failure, its cause
        """
        state = WorkflowState.INIT
        try:
            _check_shutdown(self.shutdown)
            source = resolve(self.store, alias)
            state = WorkflowState.ALIAS_RESOLVED

            request = TransferRequest.create(
                source=source,
                target=target,
                token=token or await self.chain.native_token(),
                amount=amount,
                kind=kind,
                channel_id=channel_id,
                memo=memo,
            )
        except WorkflowError as e:
            logger.info("Transfer stopped at %s: %s", state.value, e)
            return TransferOutcome(state, failure=e)

        reveal = await ensure_revealed(
            self.chain, self.store, self.bridge, source, shutdown=self.shutdown
        )
        if not reveal.ok:
            return TransferOutcome(state, reveal=reveal, failure=reveal.failure)

        submit = await submit_transfer(
            self.chain,
            self.store,
            self.bridge,
            request,
            reveal,
            shutdown=self.shutdown,
        )
        return TransferOutcome(
            submit.state, reveal=reveal, submit=submit, failure=submit.failure
        )
