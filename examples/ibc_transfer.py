import asyncio
import sys

from namada_flow import Wallet, WorkflowConfig

CHANNEL_ID = "channel-0"


async def ibc_transfer():
    """Sends native tokens to a Cosmos chain over IBC."""
    if len(sys.argv) < 4:
        print("Usage: python ibc_transfer.py <source_alias> <receiver> <amount>")
        print("Example: python ibc_transfer.py my-key cosmos1... 10")
        sys.exit(1)
    alias, receiver, amount = sys.argv[1:4]

    async with Wallet(WorkflowConfig.from_env()) as wallet:
        memo = await wallet.ibc_memo(alias, receiver, amount, channel_id=CHANNEL_ID)
        print(memo)

        outcome = await wallet.ibc_transfer(
            alias, receiver, amount, channel_id=CHANNEL_ID, memo=memo
        )
        if outcome.ok:
            print(f"IBC transfer successfully submitted: {outcome.receipt.hash}")
        else:
            print(f"Failed to submit IBC transfer: {outcome.failure}")
            sys.exit(1)


if __name__ == "__main__":
    asyncio.run(ibc_transfer())
