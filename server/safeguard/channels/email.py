"""Email channel over the SendGrid v3 mail API."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import httpx

from safeguard.channels.base import post, require
from safeguard.core.errors import ValidationError
from safeguard.core.models import ChannelResult

if TYPE_CHECKING:
    from safeguard.core.models import EmergencyContact

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_email(address: str) -> str:
    address = (address or "").strip()
    if not _EMAIL_RE.match(address):
        raise ValidationError(f"invalid email address: {address!r}")
    return address


class EmailChannel:
    name = "email"
    provider_id = "sendgrid"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        from_address: str,
        subject: str = "Emergency alert",
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._from = from_address
        self._subject = subject

    async def send(self, contact: EmergencyContact, address: str, message: str) -> ChannelResult:
        require(self.provider_id, api_key=self._api_key, from_address=self._from)
        payload = {
            "personalizations": [{"to": [{"email": address, "name": contact.name}]}],
            "from": {"email": self._from},
            "subject": self._subject,
            "content": [{"type": "text/plain", "value": message}],
        }
        response = await post(
            self._client, self.provider_id, SENDGRID_URL,
            json=payload,
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
        return ChannelResult(
            channel=self.name, success=True, provider_id=self.provider_id,
            message_id=response.headers.get("x-message-id"),
        )
