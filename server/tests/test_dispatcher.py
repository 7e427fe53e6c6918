"""Tests for the alert dispatcher: retries, fallback and address validation."""

from __future__ import annotations

import asyncio

import pytest

from safeguard.channels.sms import SmsChannel
from safeguard.core.dispatcher import AlertDispatcher, channels_for, normalize_phone
from safeguard.core.errors import (
    ConfigurationError,
    TransientDeliveryError,
    ValidationError,
)

from fakes import FOREVER, FakeChannel, FakeClock, FakeSmsProvider, all_channels, contact


def _dispatcher(channels, clock=None, **kwargs) -> AlertDispatcher:
    clock = clock or FakeClock()
    return AlertDispatcher(channels, sleep=clock.sleep, **kwargs)


@pytest.mark.parametrize("raw,expected", [
    ("9876543210", "+919876543210"),
    ("98765 43210", "+919876543210"),
    ("+91 98765-43210", "+919876543210"),
    ("919876543210", "+919876543210"),
    ("(987) 654-3210", "+919876543210"),
])
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize("raw", ["12345", "449876543210", "", None, "98765432101234"])
def test_normalize_phone_rejects(raw):
    with pytest.raises(ValidationError):
        normalize_phone(raw)


def test_normalize_phone_other_country_code():
    assert normalize_phone("2025550143", country_code="1") == "+12025550143"
    assert normalize_phone("12025550143", country_code="1") == "+12025550143"


def test_unknown_selector():
    assert channels_for("both") == ("sms", "email")
    with pytest.raises(ValueError):
        channels_for("carrier-pigeon")


@pytest.mark.asyncio
async def test_first_attempt_success():
    channels = all_channels()
    results = await _dispatcher(channels).send([contact()], "help", "both")

    assert len(results) == 1
    result = results[0]
    assert result.overall_success is True
    assert result.attempts_used == 1
    assert result.channel_results["sms"].provider_id == "fake-sms"
    assert channels["sms"].calls == [("c1", "+919876543210", "help")]
    assert channels["email"].calls == [("c1", "c1@example.com", "help")]
    assert channels["whatsapp"].calls == []


@pytest.mark.asyncio
async def test_exhaustion_uses_exactly_max_retries():
    clock = FakeClock()
    channels = {"sms": FakeChannel("sms", FOREVER), "email": FakeChannel("email", FOREVER)}
    dispatcher = _dispatcher(channels, clock, max_retries=5, retry_delay_seconds=30)

    [result] = await dispatcher.send([contact()], "help", "both")

    assert result.overall_success is False
    assert result.attempts_used == 5
    assert len(channels["sms"].calls) == 5
    assert len(channels["email"].calls) == 5
    assert clock.sleeps == [30, 30, 30, 30]
    assert "down" in result.error


@pytest.mark.asyncio
async def test_retry_until_one_channel_succeeds():
    channels = {"sms": FakeChannel("sms", 1), "email": FakeChannel("email", FOREVER)}
    [result] = await _dispatcher(channels).send([contact()], "help", "both")

    assert result.overall_success is True
    assert result.attempts_used == 2
    assert result.channel_results["sms"].success is True
    assert result.channel_results["email"].success is False


@pytest.mark.asyncio
async def test_one_channel_success_is_enough():
    channels = {"sms": FakeChannel("sms", FOREVER), "email": FakeChannel("email")}
    [result] = await _dispatcher(channels).send([contact()], "help", "both")
    assert result.overall_success is True
    assert result.attempts_used == 1


@pytest.mark.asyncio
async def test_missing_phone_skips_sms_only():
    channels = all_channels()
    [result] = await _dispatcher(channels).send([contact(phone=None)], "help", "both")

    assert result.overall_success is True
    assert result.channel_results["sms"].skipped is True
    assert channels["sms"].calls == []
    assert len(channels["email"].calls) == 1


@pytest.mark.asyncio
async def test_invalid_addresses_consume_no_attempts():
    channels = all_channels()
    bad = contact(phone="12345", email="not-an-email")
    [result] = await _dispatcher(channels).send([bad], "help", "both")

    assert result.overall_success is False
    assert result.attempts_used == 0
    assert channels["sms"].calls == []
    assert channels["email"].calls == []
    assert result.error == "no deliverable channel for contact"
    assert "invalid phone number" in result.channel_results["sms"].error
    assert "invalid email address" in result.channel_results["email"].error


@pytest.mark.asyncio
async def test_configuration_error_is_not_retried():
    clock = FakeClock()
    channels = {"sms": FakeChannel("sms", FOREVER, error=ConfigurationError)}
    [result] = await _dispatcher(channels, clock).send([contact()], "help", "sms")

    assert result.overall_success is False
    assert result.attempts_used == 1
    assert len(channels["sms"].calls) == 1
    assert result.channel_results["sms"].skipped is True
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_sms_fallback_reports_provider():
    primary = FakeSmsProvider("twilio", error=TransientDeliveryError("twilio returned HTTP 503"))
    backup = FakeSmsProvider("gateway")
    channels = {"sms": SmsChannel([primary, backup])}

    [result] = await _dispatcher(channels).send([contact()], "help", "sms")

    assert result.overall_success is True
    assert result.channel_results["sms"].provider_id == "gateway"
    assert primary.sent == [("+919876543210", "help")]
    assert backup.sent == [("+919876543210", "help")]


@pytest.mark.asyncio
async def test_contacts_are_independent():
    channels = {"sms": FakeChannel("sms"), "email": FakeChannel("email")}
    good = contact("good")
    no_address = contact("none", phone=None, email=None)

    results = await _dispatcher(channels).send([good, no_address], "help", "both")

    by_id = {r.contact_id: r for r in results}
    assert by_id["good"].overall_success is True
    assert by_id["good"].attempts_used == 1
    assert by_id["none"].overall_success is False
    assert by_id["none"].error == "no deliverable channel for contact"
    assert by_id["none"].channel_results["email"].error == "contact has no email address"


@pytest.mark.asyncio
async def test_unavailable_channel_is_skipped():
    channels = {"sms": FakeChannel("sms")}
    [result] = await _dispatcher(channels).send([contact()], "help", "all")

    assert result.overall_success is True
    assert result.channel_results["push"].skipped is True
    assert result.channel_results["push"].error == "channel not available"


@pytest.mark.asyncio
async def test_cancel_stops_pending_retries():
    channels = {"sms": FakeChannel("sms", FOREVER)}
    cancel = asyncio.Event()
    cancel.set()

    [result] = await _dispatcher(channels).send([contact()], "help", "sms", cancel=cancel)

    assert result.cancelled is True
    assert result.attempts_used == 1
    assert len(channels["sms"].calls) == 1


@pytest.mark.asyncio
async def test_per_call_retry_override():
    channels = {"sms": FakeChannel("sms", FOREVER)}
    [result] = await _dispatcher(channels).send([contact()], "help", "sms", max_retries=1)
    assert result.attempts_used == 1


@pytest.mark.asyncio
async def test_unexpected_channel_crash_is_contained():
    class Broken:
        name = "sms"

        async def send(self, contact, address, message):
            raise RuntimeError("boom")

    [result] = await _dispatcher({"sms": Broken()}, max_retries=2).send([contact()], "help", "sms")
    assert result.overall_success is False
    assert result.attempts_used == 2
    assert "boom" in result.error


@pytest.mark.asyncio
async def test_push_subscription_without_endpoint_consumes_no_attempt():
    channels = all_channels()
    subscriber = contact(push_subscription={"keys": {"p256dh": "x", "auth": "y"}})
    [result] = await _dispatcher(channels).send([subscriber], "help", "push")

    assert result.overall_success is False
    assert result.attempts_used == 0
    assert result.channel_results["push"].skipped is True
    assert "no endpoint" in result.channel_results["push"].error
    assert channels["push"].calls == []
