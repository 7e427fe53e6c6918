"""SafeGuard server — main entry point.

This is the only file that knows about concrete implementations.
It wires together the core, channels, queue, storage, and API layers.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI

from safeguard.api.monitoring import router as monitoring_router
from safeguard.api.sessions import router as sessions_router
from safeguard.capture.client_capture import ClientEvidenceCapture
from safeguard.channels.chat import TelegramChannel, WhatsAppChannel
from safeguard.channels.email import EmailChannel
from safeguard.channels.push import PushChannel
from safeguard.channels.sms import HttpSmsGatewayProvider, SmsChannel, TwilioSmsProvider
from safeguard.config import AppConfig, load_config
from safeguard.core.dispatcher import AlertDispatcher
from safeguard.core.geo import GeoRiskLookup
from safeguard.core.recorder import EventRecorder
from safeguard.core.session import SafetySession, SessionRegistry, SessionSettings
from safeguard.core.stats import EngineStats
from safeguard.queue.asyncio_queue import AsyncioEventQueue
from safeguard.storage.file_storage import FileEventStorage

log = structlog.get_logger()

VERSION = "0.1.0"

# Module-level singletons (set during startup)
_registry: SessionRegistry | None = None
_recorder: EventRecorder | None = None
_stats: EngineStats | None = None
_config: AppConfig | None = None
_lookup: GeoRiskLookup | None = None


def get_registry() -> SessionRegistry:
    assert _registry is not None, "Server not initialized"
    return _registry


def get_recorder() -> EventRecorder:
    assert _recorder is not None, "Server not initialized"
    return _recorder


def get_stats() -> EngineStats:
    assert _stats is not None, "Server not initialized"
    return _stats


def get_config() -> AppConfig:
    assert _config is not None, "Server not initialized"
    return _config


def get_lookup() -> GeoRiskLookup:
    assert _lookup is not None, "Server not initialized"
    return _lookup


def _setup_logging(config: AppConfig) -> None:
    """Configure structlog based on the logging config."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if config.logging.format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.logging.level.upper()),
        ),
    )


def build_channels(config: AppConfig, client: httpx.AsyncClient) -> dict:
    """Instantiate every notification channel from the provider settings."""
    p = config.providers
    sms_providers = {
        "twilio": TwilioSmsProvider(client, p.twilio_account_sid, p.twilio_auth_token,
                                    p.twilio_from_number),
        "gateway": HttpSmsGatewayProvider(client, p.sms_gateway_url, p.sms_gateway_api_key,
                                          p.sms_gateway_sender),
    }
    unknown = [name for name in config.alerts.sms_provider_order if name not in sms_providers]
    if unknown:
        log.warning("sms_providers_unknown", providers=unknown)
    ordered = [sms_providers[name] for name in config.alerts.sms_provider_order
               if name in sms_providers]

    return {
        "sms": SmsChannel(ordered),
        "whatsapp": WhatsAppChannel(client, p.twilio_account_sid, p.twilio_auth_token,
                                    p.twilio_whatsapp_from or p.twilio_from_number),
        "email": EmailChannel(client, p.sendgrid_api_key, p.email_from),
        "telegram": TelegramChannel(client, p.telegram_bot_token),
        "push": PushChannel(client, p.push_relay_url, p.push_relay_token),
    }


def build_dispatcher(config: AppConfig, channels: dict, sleep=asyncio.sleep) -> AlertDispatcher:
    return AlertDispatcher(
        channels,
        country_code=config.alerts.country_code,
        max_retries=config.alerts.max_retries,
        retry_delay_seconds=config.alerts.retry_delay_seconds,
        sleep=sleep,
    )


def session_settings(config: AppConfig) -> SessionSettings:
    return SessionSettings(
        history_capacity=config.engine.history_capacity,
        sensitivity_window=config.engine.sensitivity_window,
        initial_sensitivity=config.engine.initial_sensitivity,
        cooldown_seconds=config.engine.cooldown_seconds,
        session_timeout_seconds=config.engine.session_timeout_seconds,
        capture_timeout_seconds=config.engine.capture_timeout_seconds,
        default_channels=config.alerts.default_channels,
        sharing_interval_seconds=config.alerts.sharing_interval_seconds,
        sharing_duration_seconds=config.alerts.sharing_duration_seconds,
        map_link_base=config.alerts.map_link_base,
        timezone=config.engine.timezone,
    )


def build_registry(
    config: AppConfig,
    lookup: GeoRiskLookup,
    dispatcher: AlertDispatcher,
    recorder: EventRecorder | None,
    stats: EngineStats | None,
    *,
    sleep=asyncio.sleep,
    clock=time.time,
) -> SessionRegistry:
    settings = session_settings(config)
    capture = ClientEvidenceCapture()

    def factory(session_id: str) -> SafetySession:
        return SafetySession(
            session_id=session_id,
            lookup=lookup,
            dispatcher=dispatcher,
            capture=capture,
            settings=settings,
            recorder=recorder,
            stats=stats,
            clock=clock,
            sleep=sleep,
        )

    return SessionRegistry(factory)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    global _registry, _recorder, _stats, _config, _lookup

    _config = load_config()
    _setup_logging(_config)

    log.info("server_starting",
             env=_config.server.env,
             storage_dir=_config.storage.base_dir,
             sms_providers=_config.alerts.sms_provider_order)

    # Create components
    _stats = EngineStats(active_window_seconds=_config.engine.active_window_seconds)
    queue = AsyncioEventQueue(max_size=_config.queue.max_size)
    storage = FileEventStorage(base_dir=_config.storage.base_dir)
    _recorder = EventRecorder(queue=queue, storage=storage, stats=_stats)
    _lookup = GeoRiskLookup()

    client = httpx.AsyncClient(timeout=_config.alerts.request_timeout_seconds)
    dispatcher = build_dispatcher(_config, build_channels(_config, client))
    _registry = build_registry(_config, _lookup, dispatcher, _recorder, _stats)

    # Start background storage consumer
    consumer_task = asyncio.create_task(_recorder.run_storage_consumer())

    log.info("server_started",
             host=_config.server.host,
             port=_config.server.port)

    yield

    # Shutdown
    await _registry.close_all()
    await client.aclose()
    consumer_task.cancel()
    try:
        await consumer_task
    except asyncio.CancelledError:
        pass
    log.info("server_stopped")


app = FastAPI(
    title="SafeGuard",
    description="Adaptive risk assessment and emergency alert server",
    version=VERSION,
    lifespan=lifespan,
)

app.include_router(sessions_router)
app.include_router(monitoring_router)


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    config = load_config()
    uvicorn.run("safeguard.main:app", host=config.server.host, port=config.server.port)
