import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from seqsubmit.config.settings import Settings
from seqsubmit.gateway.gateway import RemoteServiceGateway
from seqsubmit.logging.logger import Log
from seqsubmit.notifications.listener import ChangeListener
from seqsubmit.notifications.router import NotificationRouter
from seqsubmit.pipeline.submission import SubmissionPipeline, build_pipeline


@dataclass(frozen=True)
class Services:
    gateway: RemoteServiceGateway
    pipeline: SubmissionPipeline
    listener: ChangeListener
    router: NotificationRouter


@asynccontextmanager
async def open_services(
    settings: Settings,
    listener: ChangeListener | None = None,
    gateway: RemoteServiceGateway | None = None,
) -> AsyncIterator[Services]:
    """Acquire process-wide resources once and release them in reverse order.

    The listener's LISTEN connection lives exactly as long as this context.
    """
    gateway = gateway or RemoteServiceGateway.from_settings(settings)
    listener = listener or ChangeListener.from_settings(settings)
    router = NotificationRouter.from_settings(settings, listener)
    try:
        await listener.start()
        try:
            await router.start()
            try:
                yield Services(
                    gateway=gateway,
                    pipeline=build_pipeline(settings, gateway),
                    listener=listener,
                    router=router,
                )
            finally:
                await router.stop()
        finally:
            await listener.stop()
    finally:
        await gateway.aclose()


async def serve(settings: Settings) -> None:
    """Hold the services open until cancelled."""
    async with open_services(settings):
        Log.info("Upload services started")
        await asyncio.Event().wait()


def main() -> None:
    """Entry point: configure logging -> open services -> run until interrupted."""
    settings = Settings()
    Log.configure(settings.log_level)
    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        Log.info("Upload services shutting down gracefully")


if __name__ == "__main__":
    main()
