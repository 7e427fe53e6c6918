"""SMS channel with an ordered provider fallback chain.

The first provider that accepts the message wins and its name is reported as
the provider id. A provider that is not configured or fails is skipped in
favour of the next one; the channel fails only when every provider failed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

import httpx
import structlog

from safeguard.channels.base import json_field, post, require
from safeguard.core.errors import (
    ConfigurationError,
    DeliveryError,
    TransientDeliveryError,
)
from safeguard.core.models import ChannelResult

if TYPE_CHECKING:
    from safeguard.channels.base import SmsProvider
    from safeguard.core.models import EmergencyContact

log = structlog.get_logger()

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class TwilioSmsProvider:
    name = "twilio"

    def __init__(
        self,
        client: httpx.AsyncClient,
        account_sid: str,
        auth_token: str,
        from_number: str,
    ) -> None:
        self._client = client
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number

    async def send_sms(self, to: str, body: str) -> str:
        require(self.name, account_sid=self._account_sid,
                auth_token=self._auth_token, from_number=self._from_number)
        response = await post(
            self._client, self.name,
            f"{TWILIO_API_BASE}/Accounts/{self._account_sid}/Messages.json",
            data={"To": to, "From": self._from_number, "Body": body},
            auth=(self._account_sid, self._auth_token),
        )
        return json_field(response, "sid") or ""


class HttpSmsGatewayProvider:
    """Generic JSON SMS gateway: POST {to, sender, message} with a bearer key."""

    name = "gateway"

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        api_key: str,
        sender: str = "",
    ) -> None:
        self._client = client
        self._url = url
        self._api_key = api_key
        self._sender = sender

    async def send_sms(self, to: str, body: str) -> str:
        require(self.name, url=self._url, api_key=self._api_key)
        response = await post(
            self._client, self.name, self._url,
            json={"to": to, "sender": self._sender, "message": body},
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
        return json_field(response, "id") or json_field(response, "message_id") or ""


class SmsChannel:
    name = "sms"

    def __init__(self, providers: Sequence[SmsProvider]) -> None:
        self._providers = list(providers)

    @property
    def providers(self) -> list[SmsProvider]:
        return list(self._providers)

    async def send(self, contact: EmergencyContact, address: str, message: str) -> ChannelResult:
        errors: list[DeliveryError] = []
        for provider in self._providers:
            try:
                message_id = await provider.send_sms(address, message)
            except DeliveryError as exc:
                log.warning("sms_provider_failed", provider=provider.name,
                            contact=contact.id, error=str(exc))
                errors.append(exc)
                continue
            return ChannelResult(channel=self.name, success=True,
                                 provider_id=provider.name, message_id=message_id or None)

        if not errors:
            raise ConfigurationError("no SMS providers configured")
        summary = "; ".join(str(e) for e in errors)
        if any(e.retryable for e in errors):
            raise TransientDeliveryError(summary)
        raise type(errors[-1])(summary)
