import asyncio

from namada_flow import Wallet, WorkflowConfig

ALIAS = "default"


async def payment_address():
    """Generates a shielded payment address for the 'default' alias."""
    async with Wallet(WorkflowConfig.from_env()) as wallet:
        result = await wallet.generate_payment_address(ALIAS, force=True)
        print(f"New payment address generated and saved for {ALIAS}: {result.address}")

        # The alias now resolves to the new address
        print(f"Lookup: {wallet.find_address(ALIAS)}")


if __name__ == "__main__":
    asyncio.run(payment_address())
