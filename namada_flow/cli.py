"""namflow CLI - Namada wallet and transfer workflow."""

import asyncio
import contextlib
import logging
import signal
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from . import __version__
from .commands import MENU, PARAMS, Command, dispatch, menu_choice
from .config import WorkflowConfig
from .types import (
    Address,
    ErrorKind,
    RevealOutcome,
    RevealStatus,
    TransferOutcome,
    WorkflowError,
)
from .wallet import NewKey, NewSpendingKey, PaymentAddressResult, Wallet

app = typer.Typer(
    name="namflow",
    help="namflow - Namada wallet and transfer workflow CLI",
    rich_markup_mode="markdown",
)
console = Console()


# ──────────────────────────────────────────────────────────────────────────────
# Error and result rendering
# ──────────────────────────────────────────────────────────────────────────────


def handle_workflow_error(e: BaseException) -> None:
    """Print a workflow error with a user-friendly message."""
    if isinstance(e, WorkflowError):
        if e.kind is ErrorKind.NOT_FOUND:
            console.print(f"[yellow]🔍 {e}[/yellow]")
        elif e.kind is ErrorKind.NETWORK_FAILURE:
            console.print(f"[red]🌐 Network error: {e}[/red]")
            console.print("[dim]The whole operation can be retried.[/dim]")
        elif e.kind is ErrorKind.CHAIN_REJECTION:
            console.print(f"[red]⛔ Rejected by the chain: {e}[/red]")
        elif e.kind is ErrorKind.STORAGE_FAILURE:
            console.print(f"[red]💾 Wallet storage error: {e}[/red]")
        elif e.kind is ErrorKind.CANCELLED:
            console.print("[yellow]Cancelled.[/yellow]")
        else:
            console.print(f"[red]❌ {e}[/red]")
    else:
        console.print(f"[red]❌ Error: {e}[/red]")


def _render_reveal(outcome: RevealOutcome) -> bool:
    if outcome.status is RevealStatus.ALREADY_REVEALED:
        console.print(
            f"[green]Account {outcome.address} is already revealed, "
            "skipping the reveal step.[/green]"
        )
    elif outcome.status is RevealStatus.REVEALED:
        for receipt in outcome.receipts:
            console.print(f"[green]✅ Public key revealed in tx {receipt.hash}[/green]")
    else:
        console.print(f"[red]Failed to reveal public key of {outcome.address}[/red]")
        if outcome.failure is not None:
            handle_workflow_error(outcome.failure)
        for receipt in outcome.receipts:
            console.print(f"[dim]Revealed before the failure: {receipt.hash}[/dim]")
    return outcome.ok


def _render_transfer(outcome: TransferOutcome) -> bool:
    if outcome.reveal is not None and outcome.reveal.receipts:
        _render_reveal(outcome.reveal)
    if outcome.ok and outcome.receipt is not None:
        console.print("[green]✅ Transfer successfully submitted![/green]")
        console.print(f"Transaction hash: {outcome.receipt.hash}")
        if outcome.receipt.height is not None:
            console.print(f"Committed at height {outcome.receipt.height}")
        return True

    console.print(f"[red]Transfer failed at step '{outcome.state.value}'[/red]")
    if outcome.failure is not None:
        handle_workflow_error(outcome.failure)
    return False


def render_result(command: Command, result: Any) -> bool:
    """Print a command result. Returns False for failed outcomes."""
    if isinstance(result, TransferOutcome):
        return _render_transfer(result)
    if isinstance(result, RevealOutcome):
        return _render_reveal(result)

    if isinstance(result, NewKey):
        if result.mnemonic:
            console.print(
                Panel(
                    result.mnemonic,
                    title="Generated mnemonic",
                    subtitle="write it down, it is not stored",
                    border_style="yellow",
                )
            )
        console.print(f"[green]✅ Key '{result.alias}' saved[/green]")
        console.print(f"Address: {result.address}")
    elif isinstance(result, NewSpendingKey):
        console.print(
            f"[green]✅ Spending key '{result.alias}' created and saved[/green]"
        )
        console.print(f"Viewing key: {result.viewing_key}")
    elif isinstance(result, PaymentAddressResult):
        if result.created:
            console.print(
                f"[green]New payment address generated and saved for "
                f"{result.alias}: {result.address}[/green]"
            )
        else:
            console.print(
                f"Address already exists for {result.alias}: {result.address}"
            )
            console.print("[dim]Use --force to generate a new one.[/dim]")
    elif isinstance(result, Address):
        console.print(f"Address: {result}")
    elif command is Command.BALANCE:
        table = Table(title="Balances")
        table.add_column("Token", style="cyan")
        table.add_column("Amount", style="green", justify="right")
        for entry in result:
            table.add_row(entry["token"], entry["amount"])
        if not result:
            table.add_row("-", "0")
        console.print(table)
    elif command is Command.SHIELDED_BALANCE:
        console.print(f"Shielded balance: {result}")
    elif command is Command.SHIELDED_SYNC:
        console.print("[green]✅ Shielded context synced[/green]")
        if result.get("synced_height") is not None:
            console.print(f"Synced to height {result['synced_height']}")
    elif command is Command.EPOCH:
        console.print(f"Current epoch: {result}")
    else:
        console.print(result)
    return True


# ──────────────────────────────────────────────────────────────────────────────
# Running commands
# ──────────────────────────────────────────────────────────────────────────────


def _install_shutdown(shutdown: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform
        with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
            loop.add_signal_handler(sig, shutdown.set)


def _config(ctx: typer.Context) -> WorkflowConfig:
    if isinstance(ctx.obj, WorkflowConfig):
        return ctx.obj
    return WorkflowConfig.from_env()


def run_command(ctx: typer.Context, command: Command, **kwargs: Any) -> None:
    """Run one command in a fresh wallet session and render the result."""

    async def _run() -> bool:
        shutdown = asyncio.Event()
        _install_shutdown(shutdown)
        async with Wallet(_config(ctx), shutdown=shutdown) as wallet:
            result = await dispatch(command, wallet, **kwargs)
            return render_result(command, result)

    try:
        ok = asyncio.run(_run())
    except Exception as e:
        handle_workflow_error(e)
        raise typer.Exit(1)
    if not ok:
        raise typer.Exit(1)


# ──────────────────────────────────────────────────────────────────────────────
# Commands
# ──────────────────────────────────────────────────────────────────────────────


AliasArg = Annotated[str, typer.Argument(help="Wallet alias")]
TokenOpt = Annotated[
    Optional[str],
    typer.Option("--token", "-t", help="Token address (default: native token)"),
]
ForceOpt = Annotated[
    bool, typer.Option("--force", "-f", help="Overwrite an existing alias")
]


@app.command("create-wallet")
def create_wallet(
    ctx: typer.Context,
    alias: Annotated[
        str, typer.Option("--alias", "-a", prompt="Enter an alias for the new wallet")
    ],
    force: ForceOpt = False,
) -> None:
    """Generate a new mnemonic and store the key derived from it."""
    run_command(ctx, Command.CREATE_WALLET, alias=alias, force=force)


@app.command("add-key")
def add_key(
    ctx: typer.Context,
    alias: AliasArg,
    phrase: Annotated[
        str, typer.Option("--mnemonic", prompt="Enter the mnemonic", hide_input=True)
    ],
    force: ForceOpt = False,
) -> None:
    """Import a key from an existing mnemonic."""
    run_command(ctx, Command.ADD_KEY, alias=alias, phrase=phrase, force=force)


@app.command("address")
def address(ctx: typer.Context, alias: AliasArg) -> None:
    """Print the address stored under an alias."""
    run_command(ctx, Command.PRINT_ADDRESS, alias=alias)


@app.command("spending-key")
def spending_key(
    ctx: typer.Context,
    alias: AliasArg,
    phrase: Annotated[
        str,
        typer.Option(
            "--mnemonic",
            prompt="Enter the mnemonic for the spending key",
            hide_input=True,
        ),
    ],
    force: ForceOpt = False,
) -> None:
    """Derive a shielded spending key from a mnemonic."""
    run_command(
        ctx, Command.CREATE_SPENDING_KEY, alias=alias, phrase=phrase, force=force
    )


@app.command("payment-address")
def payment_address(
    ctx: typer.Context,
    alias: AliasArg,
    viewing_key: Annotated[
        Optional[str],
        typer.Option("--viewing-key", "-k", help="Viewing key or its alias"),
    ] = None,
    force: ForceOpt = False,
) -> None:
    """Generate a shielded payment address.

    Examples:
        New address for 'default': namflow payment-address default
        Replace it: namflow payment-address default --force
    """
    run_command(
        ctx,
        Command.GENERATE_PAYMENT_ADDRESS,
        alias=alias,
        viewing_key=viewing_key,
        force=force,
    )


@app.command()
def reveal(ctx: typer.Context, alias: AliasArg) -> None:
    """Reveal an account's public key if the chain does not have it yet."""
    run_command(ctx, Command.REVEAL, alias=alias)


@app.command()
def transfer(
    ctx: typer.Context,
    alias: Annotated[str, typer.Argument(help="Source alias")],
    target: Annotated[str, typer.Argument(help="Target tnam1... address")],
    amount: Annotated[str, typer.Argument(help="Amount to send")],
    token: TokenOpt = None,
    memo: Annotated[Optional[str], typer.Option("--memo", help="Memo")] = None,
) -> None:
    """Transparent transfer.

    Examples:
        Send 10 NAM: namflow transfer my-key tnam1... 10
    """
    run_command(
        ctx,
        Command.TRANSFER,
        alias=alias,
        target=target,
        amount=amount,
        token=token,
        memo=memo,
    )


@app.command()
def shield(
    ctx: typer.Context,
    alias: Annotated[str, typer.Argument(help="Source alias")],
    target: Annotated[str, typer.Argument(help="Target znam1... payment address")],
    amount: Annotated[str, typer.Argument(help="Amount to shield")],
    token: TokenOpt = None,
) -> None:
    """Move transparent funds into the shielded pool."""
    run_command(
        ctx, Command.SHIELD, alias=alias, target=target, amount=amount, token=token
    )


@app.command("ibc-transfer")
def ibc_transfer(
    ctx: typer.Context,
    alias: Annotated[str, typer.Argument(help="Source alias")],
    receiver: Annotated[str, typer.Argument(help="Receiver on the foreign chain")],
    amount: Annotated[str, typer.Argument(help="Amount to send")],
    channel: Annotated[
        str, typer.Option("--channel", "-c", help="IBC channel id")
    ] = "channel-0",
    token: TokenOpt = None,
    memo: Annotated[Optional[str], typer.Option("--memo", help="IBC memo")] = None,
) -> None:
    """Send tokens to another chain over IBC.

    Examples:
        namflow ibc-transfer my-key cosmos1... 10 --channel channel-0
    """
    run_command(
        ctx,
        Command.IBC_TRANSFER,
        alias=alias,
        receiver=receiver,
        amount=amount,
        channel_id=channel,
        token=token,
        memo=memo,
    )


@app.command("ibc-memo")
def ibc_memo(
    ctx: typer.Context,
    alias: Annotated[str, typer.Argument(help="Source alias")],
    receiver: Annotated[str, typer.Argument(help="Receiver on the foreign chain")],
    amount: Annotated[str, typer.Argument(help="Amount")],
    channel: Annotated[
        str, typer.Option("--channel", "-c", help="IBC channel id")
    ] = "channel-0",
    token: TokenOpt = None,
) -> None:
    """Describe an IBC transfer without sending it."""
    run_command(
        ctx,
        Command.IBC_MEMO,
        alias=alias,
        receiver=receiver,
        amount=amount,
        channel_id=channel,
        token=token,
    )


@app.command()
def balance(
    ctx: typer.Context,
    owner: Annotated[str, typer.Argument(help="Alias or tnam1... address")],
    token: TokenOpt = None,
) -> None:
    """Show transparent balances."""
    run_command(ctx, Command.BALANCE, owner=owner, token=token)


@app.command("shielded-balance")
def shielded_balance(
    ctx: typer.Context,
    viewing_key: Annotated[
        Optional[str],
        typer.Option("--viewing-key", "-k", help="Viewing key or its alias"),
    ] = None,
    token: TokenOpt = None,
) -> None:
    """Show the shielded balance of a viewing key."""
    run_command(ctx, Command.SHIELDED_BALANCE, viewing_key=viewing_key, token=token)


@app.command("shielded-sync")
def shielded_sync(ctx: typer.Context) -> None:
    """Sync the shielded context for all stored viewing keys."""
    run_command(ctx, Command.SHIELDED_SYNC)


@app.command()
def epoch(ctx: typer.Context) -> None:
    """Query the current epoch."""
    run_command(ctx, Command.EPOCH)


# ──────────────────────────────────────────────────────────────────────────────
# Interactive menu
# ──────────────────────────────────────────────────────────────────────────────


def display_menu() -> None:
    console.print("\n[bold]Namada wallet example:[/bold]")
    for number, (_, label) in enumerate(MENU, start=1):
        console.print(f"{number}. {label}")
    console.print(f"{len(MENU) + 1}. Exit")


def prompt_params(command: Command) -> dict[str, Any]:
    """Ask for every argument a command takes."""
    values: dict[str, Any] = {}
    for param in PARAMS[command]:
        if param.flag:
            values[param.name] = Confirm.ask(param.prompt, default=False)
            continue
        options: dict[str, Any] = {"password": param.secret}
        if param.default is not None:
            options["default"] = param.default
        answer = Prompt.ask(param.prompt, **options)
        if param.optional and not answer:
            continue
        values[param.name] = answer
    return values


async def _menu_banner(wallet: Wallet) -> None:
    try:
        status = await wallet.status()
        epoch = await wallet.epoch()
    except WorkflowError as e:
        console.print(f"[yellow]Query error: {e}[/yellow]")
        return
    console.print(
        f"[dim]Connected to {status['chain_id']} at height "
        f"{status['latest_block_height']}, epoch {epoch}[/dim]"
    )


def _menu_loop(runner: asyncio.Runner, wallet: Wallet) -> None:
    while True:
        display_menu()
        try:
            choice = Prompt.ask("Enter your choice")
        except (KeyboardInterrupt, EOFError):
            console.print("\nInterrupted, exiting...")
            return
        try:
            command = menu_choice(choice)
        except WorkflowError:
            console.print("Invalid choice, please enter a valid option.")
            continue
        if command is None:
            console.print("Exiting...")
            return
        try:
            result = runner.run(dispatch(command, wallet, **prompt_params(command)))
            render_result(command, result)
        except KeyboardInterrupt:
            console.print("\n[yellow]Cancelled.[/yellow]")
        except EOFError:
            console.print("\nInterrupted, exiting...")
            return
        except WorkflowError as e:
            handle_workflow_error(e)


@app.command()
def menu(ctx: typer.Context) -> None:
    """Interactive numbered menu over all wallet actions.

    Prompts are read outside the event loop: Ctrl-C at a prompt leaves the
    menu, Ctrl-C while an action runs cancels that action only.
    """
    try:
        with asyncio.Runner() as runner:
            wallet = Wallet(_config(ctx))
            runner.run(wallet.__aenter__())
            try:
                runner.run(_menu_banner(wallet))
                _menu_loop(runner, wallet)
            finally:
                runner.run(wallet.aclose())
    except KeyboardInterrupt:
        console.print("\nInterrupted, exiting...")
        raise typer.Exit(130)
    except Exception as e:
        handle_workflow_error(e)
        raise typer.Exit(1)


# ──────────────────────────────────────────────────────────────────────────────
# Global options
# ──────────────────────────────────────────────────────────────────────────────


def version_callback(value: bool) -> None:
    """Handle version flag."""
    if value:
        console.print(f"namflow v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, help="Show version"),
    ] = None,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="More logging (-vv for debug)"
        ),
    ] = 0,
    rpc_url: Annotated[
        Optional[str], typer.Option("--rpc", help="CometBFT RPC URL")
    ] = None,
    indexer_url: Annotated[
        Optional[str], typer.Option("--indexer", help="Indexer URL")
    ] = None,
    bridge_url: Annotated[
        Optional[str], typer.Option("--bridge", help="SDK bridge URL")
    ] = None,
    chain_id: Annotated[
        Optional[str], typer.Option("--chain-id", help="Chain id")
    ] = None,
    wallet_dir: Annotated[
        Optional[Path], typer.Option("--wallet-dir", help="Directory of wallet.toml")
    ] = None,
    timeout: Annotated[
        Optional[float], typer.Option("--timeout", help="Network timeout in seconds")
    ] = None,
    wait: Annotated[
        Optional[bool],
        typer.Option("--wait/--no-wait", help="Wait for submitted txs to commit"),
    ] = None,
) -> None:
    """namflow - Namada wallet and transfer workflow CLI.

    ⚙️ CONFIGURATION:
    Settings come from the environment or a `.env` file in the current
    directory, and the options below override them:
    • NAMADA_RPC_URL, NAMADA_INDEXER_URL, NAMADA_BRIDGE_URL
    • NAMADA_CHAIN_ID, NAMADA_WALLET_DIR, NAMADA_MASP_DIR
    • NAMADA_TIMEOUT (seconds, default 60), NAMADA_NATIVE_TOKEN
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG if verbose > 1 else logging.INFO,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
    try:
        ctx.obj = WorkflowConfig.from_env(
            rpc_url=rpc_url,
            indexer_url=indexer_url,
            bridge_url=bridge_url,
            chain_id=chain_id,
            wallet_dir=wallet_dir,
            timeout=timeout,
            wait_for_commit=wait,
        )
    except WorkflowError as e:
        handle_workflow_error(e)
        raise typer.Exit(1)


def cli() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    cli()
