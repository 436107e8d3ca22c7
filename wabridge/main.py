"""wabridge entry point.

Initializes all components and starts the server:
  Settings -> BridgeChannel -> StreamRegistry -> RequestCorrelator
  -> EventBus + NotificationRouter -> App -> Uvicorn

Components are owned instances created in the Starlette lifespan and
injected into the routes; there is no module-level service singleton.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from starlette.applications import Starlette

from wabridge.channel import BridgeChannel
from wabridge.config import Settings
from wabridge.events import EventBus
from wabridge.handlers.notifications import NotificationRouter
from wabridge.relay import RequestCorrelator, StreamRegistry

logger = logging.getLogger(__name__)


async def create_components(settings: Settings) -> dict:
    """Initialize all components in dependency order.

    1. BridgeChannel - HTTP client for the WhatsApp Web bridge
    2. StreamRegistry - reply aggregation + completion detection
    3. RequestCorrelator - single-flight send/reply pairing
    4. EventBus + NotificationRouter - serialized notification intake
    """
    channel = BridgeChannel(settings)

    registry = StreamRegistry(
        creation_timeout=settings.creation_timeout,
        edit_timeout=settings.edit_timeout,
        model=settings.completion_model,
        mark_seen=channel.mark_seen,
    )
    correlator = RequestCorrelator(
        channel,
        registry,
        poll_interval=settings.poll_interval_ms / 1000,
        poll_attempts=settings.poll_attempts,
    )

    bus = EventBus(max_queue=settings.event_queue_size)
    NotificationRouter(bus, registry, channel)
    await bus.start()

    # Bridge may be down at startup; keep serving and report not ready
    await channel.start()

    return {
        "channel": channel,
        "registry": registry,
        "correlator": correlator,
        "bus": bus,
    }


async def shutdown_components(components: dict) -> None:
    """Graceful shutdown in reverse order."""
    logger.info("Shutting down wabridge...")

    bus = components.get("bus")
    if bus:
        await bus.stop()

    registry = components.get("registry")
    if registry:
        await registry.close()

    correlator = components.get("correlator")
    if correlator:
        await correlator.close()

    channel = components.get("channel")
    if channel:
        await channel.stop()

    logger.info("wabridge shutdown complete.")


def build_app(settings: Settings) -> Starlette:
    """Build the Starlette app; components live for the lifespan."""
    components: dict = {}

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        nonlocal components
        components.update(await create_components(settings))

        # Store on app.state for access in tests
        app.state.components = components

        logger.info(
            "wabridge started: bridge=%s, creation_timeout=%.1fs, edit_timeout=%.1fs",
            settings.bridge_url,
            settings.creation_timeout,
            settings.edit_timeout,
        )
        yield

        await shutdown_components(components)

    # Import here to avoid circular imports at module level
    from wabridge.api.rest import create_app

    return create_app(
        correlator=_lazy_component(components, "correlator"),
        registry=_lazy_component(components, "registry"),
        channel=_lazy_component(components, "channel"),
        bus=_lazy_component(components, "bus"),
        settings=settings,
        lifespan=lifespan,
    )


class _LazyProxy:
    """Proxy that defers attribute access to a dict-backed component.

    Allows create_app() to receive component references before lifespan
    has initialized them.
    """

    def __init__(self, components: dict, key: str) -> None:
        object.__setattr__(self, "_components", components)
        object.__setattr__(self, "_key", key)

    def _resolve(self):
        components = object.__getattribute__(self, "_components")
        key = object.__getattribute__(self, "_key")
        obj = components.get(key)
        if obj is None:
            raise RuntimeError(f"Component '{key}' not yet initialized, lifespan hasn't started")
        return obj

    def __getattr__(self, name):
        return getattr(self._resolve(), name)

    def __len__(self):
        return len(self._resolve())


def _lazy_component(components: dict, key: str) -> _LazyProxy:
    """Create a lazy proxy for a component that will be initialized in lifespan."""
    return _LazyProxy(components, key)


def main() -> None:
    """Entry point: parse settings, build app, run server."""
    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    logger.info("Starting wabridge on %s:%d", settings.host, settings.port)
    logger.info("Bridge: %s", settings.bridge_url)
    if not settings.bridge_token:
        logger.warning("WABRIDGE_BRIDGE_TOKEN not set, webhook accepts unauthenticated notifications")

    app = build_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
