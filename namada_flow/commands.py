"""Wallet actions as an enumeration dispatched through a lookup table.

Both the single-shot CLI commands and the interactive menu go through
:func:`dispatch`, so each action can be exercised on its own.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from .types import InvalidInputError
from .wallet import Wallet


class Command(str, Enum):
    CREATE_WALLET = "create-wallet"
    ADD_KEY = "add-key"
    PRINT_ADDRESS = "address"
    CREATE_SPENDING_KEY = "spending-key"
    GENERATE_PAYMENT_ADDRESS = "payment-address"
    REVEAL = "reveal"
    TRANSFER = "transfer"
    SHIELD = "shield"
    IBC_TRANSFER = "ibc-transfer"
    IBC_MEMO = "ibc-memo"
    BALANCE = "balance"
    SHIELDED_BALANCE = "shielded-balance"
    SHIELDED_SYNC = "shielded-sync"
    EPOCH = "epoch"


@dataclass(frozen=True)
class Param:
    """One argument the interactive menu asks for."""

    name: str
    prompt: str
    default: str | None = None
    secret: bool = False
    flag: bool = False  # yes/no question
    optional: bool = False


Handler = Callable[..., Awaitable[Any]]


async def _print_address(wallet: Wallet, *, alias: str) -> Any:
    return wallet.find_address(alias)


HANDLERS: dict[Command, Handler] = {
    Command.CREATE_WALLET: lambda w, **kw: w.create_wallet(**kw),
    Command.ADD_KEY: lambda w, **kw: w.import_key(**kw),
    Command.PRINT_ADDRESS: _print_address,
    Command.CREATE_SPENDING_KEY: lambda w, **kw: w.create_spending_key(**kw),
    Command.GENERATE_PAYMENT_ADDRESS: lambda w, **kw: w.generate_payment_address(**kw),
    Command.REVEAL: lambda w, **kw: w.reveal(**kw),
    Command.TRANSFER: lambda w, **kw: w.transfer(**kw),
    Command.SHIELD: lambda w, **kw: w.shield(**kw),
    Command.IBC_TRANSFER: lambda w, **kw: w.ibc_transfer(**kw),
    Command.IBC_MEMO: lambda w, **kw: w.ibc_memo(**kw),
    Command.BALANCE: lambda w, **kw: w.balance(**kw),
    Command.SHIELDED_BALANCE: lambda w, **kw: w.shielded_balance(**kw),
    Command.SHIELDED_SYNC: lambda w, **kw: w.shielded_sync(**kw),
    Command.EPOCH: lambda w, **kw: w.epoch(**kw),
}


_ALIAS = Param("alias", "Alias")
_FORCE = Param("force", "Overwrite if the alias already exists?", flag=True)
_TOKEN = Param("token", "Token address (empty for native token)", optional=True)

PARAMS: dict[Command, tuple[Param, ...]] = {
    Command.CREATE_WALLET: (
        Param("alias", "Enter an alias for the new wallet"),
        _FORCE,
    ),
    Command.ADD_KEY: (
        Param("phrase", "Enter the mnemonic", secret=True),
        Param("alias", "Enter an alias"),
        _FORCE,
    ),
    Command.PRINT_ADDRESS: (Param("alias", "Which alias do you want to look up?"),),
    Command.CREATE_SPENDING_KEY: (
        Param("phrase", "Enter the mnemonic for the spending key", secret=True),
        Param("alias", "Enter an alias for the spending key"),
        _FORCE,
    ),
    Command.GENERATE_PAYMENT_ADDRESS: (
        Param("alias", "Enter the alias to generate a payment address"),
        Param(
            "viewing_key",
            "Viewing key or its alias (empty for the stored one)",
            optional=True,
        ),
        Param(
            "force",
            "Do you want to force alias generation if it already exists?",
            flag=True,
        ),
    ),
    Command.REVEAL: (_ALIAS,),
    Command.TRANSFER: (
        Param("alias", "Source alias"),
        Param("target", "Target address"),
        Param("amount", "Amount"),
        _TOKEN,
    ),
    Command.SHIELD: (
        Param("alias", "Source alias"),
        Param("target", "Shielded payment address"),
        Param("amount", "Amount"),
        _TOKEN,
    ),
    Command.IBC_TRANSFER: (
        Param("alias", "Source alias"),
        Param("receiver", "Receiver on the foreign chain"),
        Param("amount", "Amount"),
        Param("channel_id", "Channel id", default="channel-0"),
        _TOKEN,
    ),
    Command.IBC_MEMO: (
        Param("alias", "Source alias"),
        Param("receiver", "Receiver on the foreign chain"),
        Param("amount", "Amount"),
        Param("channel_id", "Channel id", default="channel-0"),
    ),
    Command.BALANCE: (Param("owner", "Alias or address"), _TOKEN),
    Command.SHIELDED_BALANCE: (
        Param(
            "viewing_key",
            "Viewing key or its alias (empty for the first one)",
            optional=True,
        ),
        _TOKEN,
    ),
    Command.SHIELDED_SYNC: (),
    Command.EPOCH: (),
}

# Order of the interactive menu; the number shown is the index + 1
MENU: tuple[tuple[Command, str], ...] = (
    (Command.CREATE_WALLET, "Create a new wallet"),
    (Command.ADD_KEY, "Add a new key from a mnemonic"),
    (Command.PRINT_ADDRESS, "Print an address from the wallet"),
    (Command.CREATE_SPENDING_KEY, "Create a spending key"),
    (Command.GENERATE_PAYMENT_ADDRESS, "Generate a payment address"),
    (Command.REVEAL, "Reveal an account's public key"),
    (Command.TRANSFER, "Transparent transfer"),
    (Command.SHIELD, "Shield tokens"),
    (Command.IBC_TRANSFER, "IBC transfer"),
    (Command.IBC_MEMO, "Generate an IBC memo"),
    (Command.BALANCE, "Transparent balance"),
    (Command.SHIELDED_SYNC, "Shielded sync"),
    (Command.SHIELDED_BALANCE, "Shielded balance"),
    (Command.EPOCH, "Query the current epoch"),
)


def menu_choice(choice: str) -> Command | None:
    """Map a menu number to its command. None means exit.

    Raises:
        InvalidInputError: If the choice is not a listed number
    """
    text = choice.strip()
    if not text.isdigit():
        raise InvalidInputError(f"Invalid choice: {choice!r}")
    index = int(text)
    if index == len(MENU) + 1:
        return None
    if not 1 <= index <= len(MENU):
        raise InvalidInputError(f"Invalid choice: {choice!r}")
    return MENU[index - 1][0]


async def dispatch(command: Command, wallet: Wallet, **kwargs: Any) -> Any:
    """Run one command against an open wallet.

    Keyword arguments whose value is None are dropped so the wallet's
    defaults apply.
    """
    handler = HANDLERS[command]
    return await handler(wallet, **{k: v for k, v in kwargs.items() if v is not None})
