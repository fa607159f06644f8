from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from typing import Optional, Sequence

import httpx
import uvicorn
from fastapi import FastAPI
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncEngine

from bridge.api import admin as admin_api
from bridge.api.admin import BridgeRuntime
from bridge.core.config import Settings, get_settings
from bridge.core.errors import MessageStreamAborted, StartupError
from bridge.core.logging import setup_logging
from bridge.db.base import create_engine, create_sessionmaker, init_db
from bridge.gateway.base import BackendError
from bridge.gateway.intentkit import IntentKitGateway
from bridge.services.conversation_registry import ConversationRegistry
from bridge.services.dispatcher import ReplyDispatcher
from bridge.services.engine import IngestionEngine
from bridge.services.state_store import SqlStateStore, StateStore
from bridge.transport.base import MessagingClient
from bridge.transport.connect import ConnectionStrategy, connect_first, load_transport_factory
from bridge.transport.signer import create_signer, get_encryption_key_from_hex

logger = logging.getLogger(__name__)


def create_app(runtime: BridgeRuntime) -> FastAPI:
    """Create the operator API for a running bridge."""

    app = FastAPI(title="IntentKit XMTP Bridge")
    app.state.runtime = runtime
    app.include_router(admin_api.router)
    return app


async def open_state_store(settings: Settings) -> tuple[Optional[StateStore], Optional[AsyncEngine]]:
    """Create the SQLite state store when persistence is enabled."""

    if not settings.persistence_enabled:
        return None, None
    engine = create_engine(settings.db_url)
    await init_db(engine)
    logger.info("State persistence enabled (%s)", settings.db_url)
    return SqlStateStore(create_sessionmaker(engine)), engine


async def start_bridge(
    settings: Settings,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    store: Optional[StateStore] = None,
    strategies: Optional[Sequence[ConnectionStrategy]] = None,
) -> BridgeRuntime:
    """Run the startup sequence; any failure raises StartupError."""

    missing = settings.missing_required()
    if missing:
        raise StartupError(
            f"Missing required environment variables: {', '.join(missing)}. "
            "Run 'intentkit-bridge-keys' to generate WALLET_KEY and ENCRYPTION_KEY."
        )
    try:
        encryption_key = get_encryption_key_from_hex(settings.encryption_key)
    except ValueError as exc:
        raise StartupError(str(exc)) from exc

    gateway = IntentKitGateway(
        settings.intentkit_api_url,
        settings.intentkit_api_key,
        timeout_sec=settings.http_timeout_sec,
        stream_timeout_sec=settings.stream_timeout_sec,
        http_client=http_client,
        session_store=store,
    )
    logger.info("IntentKit client initialized for %s", gateway.base_url)

    check = await gateway.probe_connectivity()
    if not check.ok:
        raise StartupError(f"IntentKit API validation failed: {check.error}")
    try:
        agent_address = await gateway.resolve_agent_identity()
    except BackendError as exc:
        raise StartupError(f"Unable to resolve agent wallet address: {exc.message}") from exc

    try:
        signer = create_signer(settings.wallet_key, agent_address)
    except ValueError as exc:
        raise StartupError(str(exc)) from exc

    if strategies is None:
        try:
            factory = load_transport_factory(settings.transport_factory)
        except (ImportError, ValueError) as exc:
            raise StartupError(f"Invalid TRANSPORT_FACTORY: {exc}") from exc
        strategies = factory(settings, signer, encryption_key)
    client = await connect_first(strategies)
    log_agent_details(client, agent_address, gateway.base_url, settings)

    registry = ConversationRegistry(store)
    await gateway.sessions.load()
    await registry.load()

    engine = IngestionEngine(
        client,
        gateway,
        ReplyDispatcher(),
        registry,
        max_retries=settings.stream_max_retries,
        retry_delay_sec=settings.stream_retry_delay_sec,
        discovery_enabled=settings.discovery_enabled,
        discovery_interval_sec=settings.discovery_interval_sec,
        greeting_text=settings.greeting_text,
    )
    try:
        await engine.seed_known_conversations()
    except Exception as exc:  # noqa: BLE001
        raise StartupError(f"Conversation sync failed: {exc}") from exc

    return BridgeRuntime(
        engine=engine,
        sessions=gateway.sessions,
        registry=registry,
        inbox_id=client.inbox_id,
        agent_address=agent_address,
        backend_url=gateway.base_url,
    )


def log_agent_details(
    client: MessagingClient, agent_address: str, backend_url: str, settings: Settings
) -> None:
    logger.info(
        "Agent details: inbox_id=%s installation_id=%s address=%s backend=%s env=%s",
        client.inbox_id,
        client.installation_id,
        agent_address,
        backend_url,
        settings.xmtp_env,
    )


async def serve(settings: Settings, runtime: BridgeRuntime) -> int:
    """Run the engine (and the operator API) until abort or shutdown."""

    engine_task = asyncio.create_task(runtime.engine.run(), name="bridge-engine")
    waiters: list[asyncio.Task] = [engine_task]
    server: Optional[uvicorn.Server] = None

    if settings.admin_enabled:
        config = uvicorn.Config(
            create_app(runtime),
            host=settings.admin_host,
            port=settings.admin_port,
            log_level=settings.log_level.lower(),
            lifespan="off",
        )
        server = uvicorn.Server(config)
        waiters.append(asyncio.create_task(server.serve(), name="bridge-admin"))
    else:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, engine_task.cancel)

    done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    if server is not None:
        server.should_exit = True
    if engine_task not in done:
        logger.info("Shutting down bridge")
        engine_task.cancel()
    results = await asyncio.gather(*waiters, return_exceptions=True)

    outcome = results[0]
    if isinstance(outcome, MessageStreamAborted):
        logger.error("Exiting: %s", outcome)
        return 1
    if isinstance(outcome, BaseException) and not isinstance(outcome, asyncio.CancelledError):
        logger.error("Engine failed: %s", outcome)
        return 1
    return 0


async def run_bridge(settings: Settings) -> int:
    """Start the bridge and serve until it stops; return the exit status."""

    logger.info("Starting IntentKit XMTP bridge")
    db_engine: Optional[AsyncEngine] = None
    async with httpx.AsyncClient(timeout=settings.http_timeout_sec) as http_client:
        try:
            store, db_engine = await open_state_store(settings)
            runtime = await start_bridge(settings, http_client=http_client, store=store)
            return await serve(settings, runtime)
        except StartupError as exc:
            logger.error("Fatal error: %s", exc)
            return 1
        finally:
            if db_engine is not None:
                await db_engine.dispose()


def main() -> None:
    """Console entry point."""

    try:
        settings = get_settings()
    except ValidationError as exc:
        setup_logging("INFO")
        logger.error("Invalid configuration: %s", exc)
        sys.exit(1)
    setup_logging(settings.log_level)
    try:
        code = asyncio.run(run_bridge(settings))
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
