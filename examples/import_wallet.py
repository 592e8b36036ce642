import asyncio
import getpass
import sys

from namada_flow import Wallet, WorkflowConfig
from namada_flow.types import WorkflowError


async def import_wallet():
    """Imports a key from an existing mnemonic."""
    if len(sys.argv) < 2:
        print("Usage: python import_wallet.py <alias>")
        sys.exit(1)
    alias = sys.argv[1]
    phrase = getpass.getpass("Enter the mnemonic: ")

    async with Wallet(WorkflowConfig.from_env()) as wallet:
        try:
            key = await wallet.import_key(alias, phrase)
        except WorkflowError as e:
            print(f"Error importing key: {e}")
            sys.exit(1)
        print(f"Key added successfully! {key.alias} -> {key.address}")


if __name__ == "__main__":
    asyncio.run(import_wallet())
