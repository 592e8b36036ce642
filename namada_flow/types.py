"""Type definitions for the namada-flow package."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Literal, TypedDict


TRANSPARENT_PREFIX = "tnam1"
SHIELDED_PREFIX = "znam1"
PUBLIC_KEY_PREFIX = "tpknam1"

# Prefix the SDK wallet writes in front of ed25519 public keys
ED25519_PK_PREFIX = "ED25519_PK_PREFIX"


# ──────────────────────────────────────────────────────────────────────────────
# Errors
# ──────────────────────────────────────────────────────────────────────────────


class ErrorKind(str, Enum):
    """Failure categories surfaced at the workflow boundary."""

    NOT_FOUND = "not_found"  # alias/address absent, user-correctable
    INVALID_INPUT = "invalid_input"  # malformed address/amount/key
    NETWORK_FAILURE = "network_failure"  # RPC/indexer/bridge unreachable
    CHAIN_REJECTION = "chain_rejection"  # rejected by consensus
    STORAGE_FAILURE = "storage_failure"  # wallet file unreadable/unwritable
    SIGNING_FAILURE = "signing_failure"
    CANCELLED = "cancelled"


class WorkflowError(Exception):
    """Base class for workflow errors."""

    kind: ErrorKind = ErrorKind.INVALID_INPUT


class NotFoundError(WorkflowError):
    kind = ErrorKind.NOT_FOUND


class InvalidInputError(WorkflowError):
    kind = ErrorKind.INVALID_INPUT


class AliasExistsError(InvalidInputError):
    """Raised when an alias is already taken and force was not given."""


class NetworkError(WorkflowError):
    """Raised when the chain, indexer or SDK bridge cannot be reached."""

    kind = ErrorKind.NETWORK_FAILURE


class ChainRejectionError(WorkflowError):
    """Raised when the chain rejects a submitted transaction."""

    kind = ErrorKind.CHAIN_REJECTION

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class StorageError(WorkflowError):
    kind = ErrorKind.STORAGE_FAILURE


class SigningError(WorkflowError):
    kind = ErrorKind.SIGNING_FAILURE


class CancelledError(WorkflowError):
    """Raised when the shutdown signal fires between workflow steps."""

    kind = ErrorKind.CANCELLED


# ──────────────────────────────────────────────────────────────────────────────
# Addresses and keys
# ──────────────────────────────────────────────────────────────────────────────


AddressKind = Literal["transparent", "shielded"]


@dataclass(frozen=True)
class Address:
    """Encoded chain identity, either transparent or a shielded payment address."""

    value: str

    @classmethod
    def parse(cls, value: str) -> Address:
        """Parse and validate an encoded address.

        Raises:
            InvalidInputError: If the string is not a known address encoding
        """
        value = value.strip() if isinstance(value, str) else value
        if not isinstance(value, str) or not value:
            raise InvalidInputError("Address must be a non-empty string")
        if not value.startswith((TRANSPARENT_PREFIX, SHIELDED_PREFIX)):
            raise InvalidInputError(f"Invalid address: {value}")
        if not value.isalnum() or value.lower() != value:
            raise InvalidInputError(f"Invalid address encoding: {value}")
        return cls(value)

    @property
    def kind(self) -> AddressKind:
        return "shielded" if self.value.startswith(SHIELDED_PREFIX) else "transparent"

    @property
    def is_shielded(self) -> bool:
        return self.kind == "shielded"

    def __str__(self) -> str:
        return self.value


def clean_public_key(raw: str) -> str:
    """Strip the SDK scheme prefix and whitespace from a stored public key."""
    return raw.replace(ED25519_PK_PREFIX, "").strip()


@dataclass(frozen=True)
class KeyRecord:
    """A stored transparent key as seen through the wallet store."""

    alias: str
    public_key: str
    address: Address | None = None
    derivation_path: str | None = None


@dataclass(frozen=True)
class ViewingKeyRecord:
    """A stored viewing key with its optional birthday height."""

    alias: str
    key: str
    birthday: int | None = None


# ──────────────────────────────────────────────────────────────────────────────
# Chain data
# ──────────────────────────────────────────────────────────────────────────────


@dataclass
class AccountInfo:
    """On-chain account as reported by the chain client."""

    address: Address
    public_keys: dict[int, str] = field(default_factory=dict)  # index -> pk
    threshold: int = 1

    @property
    def is_revealed(self) -> bool:
        return bool(self.public_keys)


@dataclass(frozen=True)
class Receipt:
    """Result of a broadcast transaction."""

    hash: str
    code: int = 0
    log: str = ""
    height: int | None = None


class TokenBalance(TypedDict):
    """Balance entry returned by the indexer."""

    token: str
    amount: str


# ──────────────────────────────────────────────────────────────────────────────
# Transfers
# ──────────────────────────────────────────────────────────────────────────────


class TransferKind(str, Enum):
    TRANSPARENT = "transparent"
    SHIELDING = "shielding"
    IBC = "ibc"


def parse_amount(amount: str | int | Decimal) -> Decimal:
    """Parse a user supplied token amount.

    Raises:
        InvalidInputError: If the amount is not a positive decimal number
    """
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidInputError(f"Invalid amount: {amount!r}") from e
    if not value.is_finite() or value <= 0:
        raise InvalidInputError(f"Amount must be positive: {amount!r}")
    return value


def parse_channel_id(channel_id: str | int) -> str:
    """Normalise an IBC channel identifier to the ``channel-<n>`` form."""
    text = str(channel_id).strip()
    if text.isdigit():
        text = f"channel-{text}"
    prefix, _, number = text.partition("-")
    if prefix != "channel" or not number.isdigit():
        raise InvalidInputError(f"Invalid IBC channel id: {channel_id!r}")
    return text


@dataclass(frozen=True)
class TransferRequest:
    """One transfer attempt. Built fresh per operation, never persisted."""

    source: Address
    target: str
    token: str
    amount: Decimal
    kind: TransferKind
    channel_id: str | None = None
    port_id: str = "transfer"
    memo: str | None = None

    @classmethod
    def create(
        cls,
        *,
        source: Address,
        target: str,
        token: str,
        amount: str | int | Decimal,
        kind: TransferKind | str,
        channel_id: str | int | None = None,
        port_id: str = "transfer",
        memo: str | None = None,
    ) -> TransferRequest:
        """Validate inputs and build a request.

        Raises:
            InvalidInputError: If any field is malformed for the transfer kind
        """
        try:
            kind = TransferKind(kind)
        except ValueError as e:
            raise InvalidInputError(f"Unknown transfer kind: {kind!r}") from e
        if source.is_shielded:
            raise InvalidInputError("Transfer source must be a transparent address")
        if not token:
            raise InvalidInputError("Token must be given")
        value = parse_amount(amount)
        target = target.strip()

        if kind is TransferKind.TRANSPARENT:
            if Address.parse(target).is_shielded:
                raise InvalidInputError(
                    "Transparent transfers need a transparent target"
                )
        elif kind is TransferKind.SHIELDING:
            if not Address.parse(target).is_shielded:
                raise InvalidInputError(
                    "Shielding transfers need a shielded payment address"
                )
        else:
            if not target:
                raise InvalidInputError("IBC receiver must be given")
            if channel_id is None:
                raise InvalidInputError("IBC transfers need a channel id")
            channel_id = parse_channel_id(channel_id)

        return cls(
            source=source,
            target=target,
            token=token,
            amount=value,
            kind=kind,
            channel_id=channel_id if kind is TransferKind.IBC else None,
            port_id=port_id,
            memo=memo,
        )

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "kind": self.kind.value,
            "source": str(self.source),
            "target": self.target,
            "token": self.token,
            "amount": str(self.amount),
        }
        if self.kind is TransferKind.IBC:
            body["channel_id"] = self.channel_id
            body["port_id"] = self.port_id
        if self.memo is not None:
            body["memo"] = self.memo
        return body


@dataclass
class Transaction:
    """Opaque transaction produced by the SDK bridge."""

    kind: str
    payload: str  # base64 encoded tx bytes
    signing_keys: list[str] = field(default_factory=list)
    signed: bool = False


# ──────────────────────────────────────────────────────────────────────────────
# Outcomes
# ──────────────────────────────────────────────────────────────────────────────


class WorkflowState(str, Enum):
    """States of one transfer attempt, in order."""

    INIT = "init"
    ALIAS_RESOLVED = "alias_resolved"
    REVEAL_CHECKED = "reveal_checked"
    BUILT = "built"
    SIGNED = "signed"
    SUBMITTED = "submitted"


class RevealStatus(str, Enum):
    ALREADY_REVEALED = "already_revealed"
    REVEALED = "revealed"
    FAILED = "failed"


@dataclass
class RevealOutcome:
    """Result of running the reveal gate for one address."""

    address: Address
    status: RevealStatus
    receipts: list[Receipt] = field(default_factory=list)
    failure: WorkflowError | None = None

    @property
    def ok(self) -> bool:
        return self.status is not RevealStatus.FAILED


class SubmitStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class SubmitOutcome:
    """Result of a single build, sign and submit sequence."""

    status: SubmitStatus
    state: WorkflowState  # last state reached
    receipt: Receipt | None = None
    failure: WorkflowError | None = None

    @property
    def ok(self) -> bool:
        return self.status is SubmitStatus.SUCCESS


@dataclass
class TransferOutcome:
    """Terminal result of the resolve, reveal, submit workflow."""

    state: WorkflowState
    reveal: RevealOutcome | None = None
    submit: SubmitOutcome | None = None
    failure: WorkflowError | None = None

    @property
    def ok(self) -> bool:
        return self.submit is not None and self.submit.ok

    @property
    def receipt(self) -> Receipt | None:
        return self.submit.receipt if self.submit else None
