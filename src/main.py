"""Main entry point for the rvlights service."""

import asyncio
import logging
import sys
from pathlib import Path

from config import LightingConfig, load_config
from persistence import StateStore
from protocol.transport import WebSocketTransport
from session import LightingSession
from utils.errors import DiscoveryError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger(__name__)


def configure_logging(config: LightingConfig) -> None:
    """Apply the configured log level; ``debug`` also shows raw frames."""
    level = logging.DEBUG if config.logging.debug else config.logging.level.upper()
    logging.getLogger().setLevel(level)


def create_transport(config: LightingConfig) -> WebSocketTransport:
    """Build an unconnected transport for the configured controller."""
    return WebSocketTransport(
        config.websocket_url,
        handshake=config.connection.handshake,
        ping_interval=config.connection.ping_interval,
        reconnect_attempts=config.connection.reconnect_attempts,
        reconnect_delay=config.connection.reconnect_delay,
    )


def create_session(config: LightingConfig, store: StateStore | None = None) -> LightingSession:
    """Build an unconnected session for the configured controller."""
    return LightingSession(create_transport(config), config, store)


async def open_session(
    config: LightingConfig,
    store: StateStore | None = None,
    require_discovery: bool = True,
    transport: WebSocketTransport | None = None,
) -> LightingSession:
    """Connect, authenticate and discover.

    Args:
        config: Lighting configuration
        store: Optional persistence for scenes and schedules
        require_discovery: Raise when discovery fails instead of logging it
        transport: Transport to use; a new one is built when omitted

    Raises:
        RetryExhausted: If the controller cannot be reached
        AuthenticationError: If the PIN is rejected
        DiscoveryError: If discovery fails and ``require_discovery`` is set
    """
    transport = transport or create_transport(config)
    session = LightingSession(transport, config, store)

    await transport.connect()
    try:
        await session.wait_authenticated(config.discovery.timeout)
        await session.initialize()
    except DiscoveryError as e:
        if require_discovery:
            await session.close()
            raise
        logger.error(f"Failed to discover lights: {e}")
    except BaseException:
        await session.close()
        raise

    return session


async def main(config_dir: Path | None = None) -> None:
    """Main entry point."""
    logger.info("Starting rvlights...")

    # Load configuration
    try:
        config = load_config(config_dir)
        logger.info(f"Loaded config for controller at {config.websocket_url}")
    except Exception as e:
        logger.error(f"Failed to load configuration: {e}")
        sys.exit(1)

    configure_logging(config)

    # Initialize state store for persistence
    store = StateStore(config.storage.db_path)
    await store.initialize()

    transport = create_transport(config)
    try:
        session = await open_session(config, store, require_discovery=False, transport=transport)
    except Exception as e:
        logger.error(f"Failed to start lighting session: {e}")
        await store.close()
        sys.exit(1)

    activated = await session.activate_configured_schedules()
    logger.info(f"Lighting service running with {activated} active schedules...")

    try:
        await transport.wait_closed()
        logger.warning("Controller connection lost for good")
    except asyncio.CancelledError:
        logger.info("Shutting down...")
    finally:
        await session.close()
        await store.close()
        logger.info("Shutdown complete")


def run() -> None:
    """Synchronous entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
