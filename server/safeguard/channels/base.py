"""Channel interface (port) for delivering alert messages to a contact.

Concrete channels talk to HTTP providers through a shared ``httpx.AsyncClient``
and translate transport and HTTP failures into the delivery error taxonomy.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import httpx

from safeguard.core.errors import (
    ConfigurationError,
    TransientDeliveryError,
    ValidationError,
)

if TYPE_CHECKING:
    from safeguard.core.models import ChannelResult, EmergencyContact


class NotificationChannel(Protocol):
    """Port: sends a message to one contact address over one channel."""

    name: str

    async def send(self, contact: EmergencyContact, address: Any, message: str) -> ChannelResult: ...


class SmsProvider(Protocol):
    """Port: one SMS provider in the SMS fallback chain. Returns the message id."""

    name: str

    async def send_sms(self, to: str, body: str) -> str: ...


def require(provider: str, **settings: str) -> None:
    """Raise ConfigurationError if any of the named settings is empty."""
    missing = [key for key, value in settings.items() if not value]
    if missing:
        raise ConfigurationError(f"{provider} not configured: missing {', '.join(missing)}")


def check_response(provider: str, response: httpx.Response) -> None:
    """Map an HTTP status to the delivery error taxonomy."""
    status = response.status_code
    if status < 400:
        return
    detail = f"{provider} returned HTTP {status}"
    if status in (401, 403):
        raise ConfigurationError(detail)
    if status == 429 or status >= 500:
        raise TransientDeliveryError(detail)
    raise ValidationError(detail)


async def post(
    client: httpx.AsyncClient,
    provider: str,
    url: str,
    **kwargs: Any,
) -> httpx.Response:
    """POST through the shared client, turning transport errors into transient ones."""
    try:
        response = await client.post(url, **kwargs)
    except httpx.TimeoutException as exc:
        raise TransientDeliveryError(f"{provider} timed out") from exc
    except httpx.TransportError as exc:
        raise TransientDeliveryError(f"{provider} unreachable: {exc}") from exc
    check_response(provider, response)
    return response


def json_field(response: httpx.Response, key: str) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return None
    value = data.get(key) if isinstance(data, dict) else None
    return str(value) if value is not None else None
