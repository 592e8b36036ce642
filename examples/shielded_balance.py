import asyncio

from namada_flow import Wallet, WorkflowConfig


async def shielded_balance():
    """Syncs the shielded context and prints the native token balance."""
    async with Wallet(WorkflowConfig.from_env()) as wallet:
        result = await wallet.shielded_sync()
        print(f"Synced to height {result.get('synced_height')}")

        token = await wallet.chain.native_token()
        balance = await wallet.shielded_balance(token=token)
        print(f"{token}: {balance}")


if __name__ == "__main__":
    asyncio.run(shielded_balance())
