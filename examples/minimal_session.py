import asyncio

from fhevm_session import SessionController, SessionStatus


async def main():
    controller = SessionController("http://localhost:8545", mock_chains={1337: "http://localhost:7545"})

    @controller.on_status_change()
    def on_status(status: SessionStatus):
        print(f"FHEVM session: {status.value}")

    async with controller:
        await controller.wait()
        if controller.status is not SessionStatus.READY:
            print(f"Session not ready: {controller.error}")
            return

        encrypted = controller.instance.encrypt(
            "0x5FbDB2315678afecb367f032d93F642f64180aa3",
            "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
            [42, True],
        )
        print(f"handles: {[h.hex() for h in encrypted.handles]}")


if __name__ == "__main__":
    asyncio.run(main())
