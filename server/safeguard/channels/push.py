"""Web push channel. Delivery goes through a push relay that holds the VAPID keys."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from safeguard.channels.base import json_field, post, require
from safeguard.core.errors import ValidationError
from safeguard.core.models import ChannelResult

if TYPE_CHECKING:
    from safeguard.core.models import EmergencyContact


class PushChannel:
    name = "push"
    provider_id = "push-relay"

    def __init__(self, client: httpx.AsyncClient, relay_url: str, relay_token: str = "") -> None:
        self._client = client
        self._relay_url = relay_url
        self._relay_token = relay_token

    async def send(self, contact: EmergencyContact, address: dict, message: str) -> ChannelResult:
        require(self.provider_id, relay_url=self._relay_url)
        if not isinstance(address, dict) or not address.get("endpoint"):
            raise ValidationError("push subscription has no endpoint")
        headers = {}
        if self._relay_token:
            headers["Authorization"] = f"Bearer {self._relay_token}"
        response = await post(
            self._client, self.provider_id, self._relay_url,
            json={
                "subscription": address,
                "payload": {"title": "Emergency alert", "body": message},
                "urgency": "high",
            },
            headers=headers,
        )
        return ChannelResult(channel=self.name, success=True,
                             provider_id=self.provider_id,
                             message_id=json_field(response, "id"))
