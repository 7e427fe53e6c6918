"""Delivery error taxonomy shared by channels and the alert dispatcher."""

from __future__ import annotations


class DeliveryError(Exception):
    """Base class for a failed channel or provider send."""

    # Whether another attempt of the same send may succeed.
    retryable = False


class ConfigurationError(DeliveryError):
    """A provider is missing credentials or is otherwise not set up."""


class TransientDeliveryError(DeliveryError):
    """Network failure, timeout, rate limit or provider 5xx."""

    retryable = True


class ValidationError(DeliveryError):
    """Malformed or missing contact address, or a request the provider rejects."""
