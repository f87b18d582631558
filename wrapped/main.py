import argparse
import asyncio
import logging
import signal
import sys

import uvicorn

from .config import settings
from .session_cache import session_cache

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

MIN_JWT_SECRET_LENGTH = 32


class WrappedServer:
    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start the API server and the session sweeper."""
        logger.info("Starting Jellyfin Wrapped backend...")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(self.shutdown()))

        web_task = asyncio.create_task(self._run_web_server())
        sweep_task = asyncio.create_task(self._run_session_sweeper())

        logger.info(f"Server listening on {self.host}:{self.port}")
        logger.info(f"CORS origins: {', '.join(settings.cors_origins)}")

        await self._shutdown_event.wait()

        for task in (web_task, sweep_task):
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        logger.info("Jellyfin Wrapped backend stopped")

    async def shutdown(self) -> None:
        """Signal shutdown."""
        logger.info("Shutting down...")
        self._shutdown_event.set()

    async def _run_web_server(self) -> None:
        """Run the FastAPI web server."""
        from server.app import app

        config = uvicorn.Config(app, host=self.host, port=self.port, log_level="info")
        server = uvicorn.Server(config)
        try:
            await server.serve()
        except asyncio.CancelledError:
            pass

    async def _run_session_sweeper(self) -> None:
        """Evict expired sessions that are never read again."""
        try:
            await session_cache.run_sweeper(settings.session_sweep_interval_minutes * 60)
        except asyncio.CancelledError:
            pass


def check_settings() -> list[str]:
    """Return the configuration problems that prevent startup."""
    problems = []
    if not settings.jwt_secret:
        problems.append("JWT_SECRET is not set. Generate one with: openssl rand -base64 32")
    elif len(settings.jwt_secret) < MIN_JWT_SECRET_LENGTH:
        problems.append(f"JWT_SECRET should be at least {MIN_JWT_SECRET_LENGTH} characters long")
    if not settings.jellyfin_url:
        problems.append("JELLYFIN_URL is not set.")
    if not settings.jellyfin_api_key:
        problems.append("JELLYFIN_API_KEY is not set.")
    return problems


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Jellyfin Wrapped - year in review backend")
    parser.add_argument("--host", default=settings.host, help="Bind address")
    parser.add_argument("--port", type=int, default=settings.port, help="Listen port")
    args = parser.parse_args()

    problems = check_settings()
    if problems:
        for problem in problems:
            logger.error(problem)
        sys.exit(1)

    server = WrappedServer(args.host, args.port)
    asyncio.run(server.start())


if __name__ == "__main__":
    main()
