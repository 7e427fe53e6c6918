"""Alert dispatcher. Fans a message out to every contact over several channels.

For each contact, all selected channels for which the contact has a valid
address are attempted concurrently. The contact counts as notified as soon as
one channel succeeds. If none does, the whole attempt is repeated after a
delay, up to ``max_retries`` attempts in total. Contacts are independent of
each other and are processed concurrently; each contact's retries are
sequential.

Channels that fail for configuration or validation reasons are dropped from
the remaining attempts, since another try cannot change the outcome.
"""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING, Any, Mapping, Sequence

import structlog

from safeguard.channels.email import validate_email
from safeguard.core.errors import DeliveryError, ValidationError
from safeguard.core.models import AlertAttemptResult, ChannelResult, DispatchSummary
from safeguard.core.timing import Sleep, sleep_unless_set

if TYPE_CHECKING:
    from safeguard.channels.base import NotificationChannel
    from safeguard.core.models import EmergencyContact

log = structlog.get_logger()

DEFAULT_MAX_RETRIES = 5
DEFAULT_RETRY_DELAY_SECONDS = 30.0
DEFAULT_COUNTRY_CODE = "91"

ALL_CHANNELS = ("sms", "whatsapp", "email", "telegram", "push")

CHANNEL_SELECTORS: dict[str, tuple[str, ...]] = {
    "sms": ("sms",),
    "email": ("email",),
    "whatsapp": ("whatsapp",),
    "telegram": ("telegram",),
    "push": ("push",),
    "both": ("sms", "email"),
    "all": ALL_CHANNELS,
}

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: str | None, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Return the number in +<country code><number> form.

    A 10-digit number is taken as domestic. A number that already carries the
    country code is accepted as is. Anything else raises ValidationError.
    """
    digits = _NON_DIGITS.sub("", raw or "")
    if len(digits) == 10:
        return f"+{country_code}{digits}"
    if len(digits) == 10 + len(country_code) and digits.startswith(country_code):
        return f"+{digits}"
    raise ValidationError(f"invalid phone number: {raw!r}")


def channels_for(selector: str) -> tuple[str, ...]:
    try:
        return CHANNEL_SELECTORS[selector]
    except KeyError:
        raise ValueError(f"unknown channel selector: {selector!r}") from None


class AlertDispatcher:
    """Delivers alert messages with per-contact retry and per-channel fallback."""

    def __init__(
        self,
        channels: Mapping[str, NotificationChannel],
        *,
        country_code: str = DEFAULT_COUNTRY_CODE,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._channels = dict(channels)
        self._country_code = country_code
        self._max_retries = max_retries
        self._retry_delay = retry_delay_seconds
        self._sleep = sleep

    @property
    def channel_names(self) -> list[str]:
        return list(self._channels)

    def resolve_address(self, channel: str, contact: EmergencyContact) -> Any:
        """Return the contact's address for ``channel`` or raise ValidationError."""
        if channel in ("sms", "whatsapp"):
            if not contact.phone:
                raise ValidationError("contact has no phone number")
            return normalize_phone(contact.phone, self._country_code)
        if channel == "email":
            if not contact.email:
                raise ValidationError("contact has no email address")
            return validate_email(contact.email)
        if channel == "telegram":
            if not contact.chat_id:
                raise ValidationError("contact has no chat id")
            return contact.chat_id
        if channel == "push":
            if not contact.push_subscription:
                raise ValidationError("contact has no push subscription")
            if not isinstance(contact.push_subscription, dict) or not contact.push_subscription.get("endpoint"):
                raise ValidationError("push subscription has no endpoint")
            return contact.push_subscription
        raise ValidationError(f"unsupported channel {channel!r}")

    async def send(
        self,
        contacts: Sequence[EmergencyContact],
        message: str,
        channel_selector: str = "both",
        max_retries: int | None = None,
        retry_delay_seconds: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[AlertAttemptResult]:
        """Send ``message`` to every contact. Never raises for delivery failures."""
        names = channels_for(channel_selector)
        retries = self._max_retries if max_retries is None else max_retries
        delay = self._retry_delay if retry_delay_seconds is None else retry_delay_seconds

        results = list(await asyncio.gather(*(
            self._send_to_contact(contact, message, names, retries, delay, cancel)
            for contact in contacts
        )))

        summary = DispatchSummary.from_results(results)
        log.info("alert_dispatch_summary", selector=channel_selector, **summary.to_dict())
        return results

    async def _send_to_contact(
        self,
        contact: EmergencyContact,
        message: str,
        names: tuple[str, ...],
        max_retries: int,
        retry_delay: float,
        cancel: asyncio.Event | None,
    ) -> AlertAttemptResult:
        result = AlertAttemptResult(contact_id=contact.id)

        plan: dict[str, tuple[NotificationChannel, Any]] = {}
        for name in names:
            channel = self._channels.get(name)
            if channel is None:
                result.channel_results[name] = ChannelResult(
                    channel=name, success=False, error="channel not available", skipped=True,
                )
                continue
            try:
                address = self.resolve_address(name, contact)
            except ValidationError as exc:
                log.info("alert_channel_skipped", contact=contact.id, channel=name,
                         error=str(exc))
                result.channel_results[name] = ChannelResult(
                    channel=name, success=False, error=str(exc), skipped=True,
                )
                continue
            plan[name] = (channel, address)

        last_error: str | None = None
        while plan and result.attempts_used < max_retries:
            if result.attempts_used > 0:
                if not await sleep_unless_set(self._sleep, retry_delay, cancel):
                    result.cancelled = True
                    last_error = "cancelled before retry"
                    break

            result.attempts_used += 1
            names_in_attempt = list(plan)
            outcomes = await asyncio.gather(*(
                self._attempt_channel(name, plan[name][0], contact, plan[name][1], message)
                for name in names_in_attempt
            ))

            for name, outcome in zip(names_in_attempt, outcomes):
                result.channel_results[name] = outcome
                if not outcome.success:
                    last_error = f"{name}: {outcome.error}"
                    if outcome.skipped:
                        del plan[name]

            succeeded = any(o.success for o in outcomes)
            log.info("alert_attempt", contact=contact.id, attempt=result.attempts_used,
                     channels={n: o.success for n, o in zip(names_in_attempt, outcomes)},
                     success=succeeded)
            if succeeded:
                result.overall_success = True
                break

        if not result.overall_success:
            result.error = last_error or "no deliverable channel for contact"
            log.warning("alert_contact_failed", contact=contact.id,
                        attempts=result.attempts_used, error=result.error)
        return result

    async def _attempt_channel(
        self,
        name: str,
        channel: NotificationChannel,
        contact: EmergencyContact,
        address: Any,
        message: str,
    ) -> ChannelResult:
        try:
            return await channel.send(contact, address, message)
        except DeliveryError as exc:
            return ChannelResult(channel=name, success=False, error=str(exc),
                                 skipped=not exc.retryable)
        except Exception as exc:
            log.error("alert_channel_crashed", contact=contact.id, channel=name,
                      exc_info=True)
            return ChannelResult(channel=name, success=False, error=repr(exc))
