import asyncio
import sys

from namada_flow import Wallet, WorkflowConfig


async def shield_tokens():
    """Reveals the source key if needed and shields native tokens."""
    if len(sys.argv) < 4:
        print("Usage: python shield_tokens.py <source_alias> <znam1...> <amount>")
        print("Example: python shield_tokens.py my-key znam1... 1")
        sys.exit(1)
    alias, target, amount = sys.argv[1:4]

    async with Wallet(WorkflowConfig.from_env()) as wallet:
        outcome = await wallet.shield(alias, target, amount)

        if outcome.reveal is not None:
            print(f"Reveal step: {outcome.reveal.status.value}")
        if outcome.ok:
            print(f"Shielded transfer successfully submitted: {outcome.receipt.hash}")
        else:
            print(f"Failed at {outcome.state.value}: {outcome.failure}")
            sys.exit(1)


if __name__ == "__main__":
    asyncio.run(shield_tokens())
