"""Chat channels: WhatsApp through Twilio and the Telegram Bot API."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from safeguard.channels.base import json_field, post, require
from safeguard.channels.sms import TWILIO_API_BASE
from safeguard.core.models import ChannelResult

if TYPE_CHECKING:
    from safeguard.core.models import EmergencyContact

TELEGRAM_API_BASE = "https://api.telegram.org"


class WhatsAppChannel:
    name = "whatsapp"
    provider_id = "twilio-whatsapp"

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

    async def send(self, contact: EmergencyContact, address: str, message: str) -> ChannelResult:
        require(self.provider_id, account_sid=self._account_sid,
                auth_token=self._auth_token, from_number=self._from_number)
        response = await post(
            self._client, self.provider_id,
            f"{TWILIO_API_BASE}/Accounts/{self._account_sid}/Messages.json",
            data={
                "To": f"whatsapp:{address}",
                "From": f"whatsapp:{self._from_number}",
                "Body": message,
            },
            auth=(self._account_sid, self._auth_token),
        )
        return ChannelResult(channel=self.name, success=True,
                             provider_id=self.provider_id,
                             message_id=json_field(response, "sid"))


class TelegramChannel:
    name = "telegram"
    provider_id = "telegram-bot"

    def __init__(self, client: httpx.AsyncClient, bot_token: str) -> None:
        self._client = client
        self._bot_token = bot_token

    async def send(self, contact: EmergencyContact, address: str, message: str) -> ChannelResult:
        require(self.provider_id, bot_token=self._bot_token)
        response = await post(
            self._client, self.provider_id,
            f"{TELEGRAM_API_BASE}/bot{self._bot_token}/sendMessage",
            json={"chat_id": address, "text": message},
        )
        message_id = None
        try:
            message_id = str(response.json()["result"]["message_id"])
        except (ValueError, KeyError, TypeError):
            pass
        return ChannelResult(channel=self.name, success=True,
                             provider_id=self.provider_id, message_id=message_id)
