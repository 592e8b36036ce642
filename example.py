import asyncio
from namada_flow import Wallet, WorkflowConfig


async def main():
    async with Wallet(WorkflowConfig.from_env()) as wallet:
        # Current epoch
        print(f"Epoch: {await wallet.epoch()}")

        # Address behind an alias
        source = wallet.find_address("my-key")
        print(f"Source: {source}")

        # Reveal the public key if needed, then send 1 NAM
        outcome = await wallet.transfer(
            "my-key", "tnam1qqteapc3ycthpehxtqadv6nx2grr5gptzs2ptyvy", "1"
        )
        if outcome.ok:
            print(f"\n✓ Submitted: {outcome.receipt.hash}")
        else:
            print(f"\n✗ Failed at {outcome.state.value}: {outcome.failure}")


if __name__ == "__main__":
    asyncio.run(main())
