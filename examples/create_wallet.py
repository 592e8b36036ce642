import asyncio
import sys

from namada_flow import Wallet, WorkflowConfig
from namada_flow.types import WorkflowError

WALLET_ALIAS = "my-key"


async def create_wallet():
    """Creates a new key from a fresh mnemonic and stores it in ./sdk-wallet."""
    alias = sys.argv[1] if len(sys.argv) > 1 else WALLET_ALIAS

    async with Wallet(WorkflowConfig.from_env()) as wallet:
        try:
            key = await wallet.create_wallet(alias)
        except WorkflowError as e:
            print(f"Error creating wallet: {e}")
            sys.exit(1)

        print("----------------------------------------------------")
        print("                 MNEMONIC (24 words)                ")
        print("----------------------------------------------------")
        print(key.mnemonic)
        print("----------------------------------------------------")
        print("Write it down: it is not stored anywhere.")
        print(f"\nWallet created and saved! Alias '{key.alias}' -> {key.address}")


if __name__ == "__main__":
    asyncio.run(create_wallet())
