# fcm_registration/retry.py
"""Caller-side retry policy layered above ``RegistrationController.register``.

The controller never retries on its own: a failed stage only invalidates
state. This helper re-drives ``register`` with exponential backoff until the
handshake settles or the attempt budget is spent.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import Awaitable, Callable

from .controller import RegistrationController

_logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 8
DEFAULT_INITIAL_BACKOFF_S = 1.5
DEFAULT_MAX_BACKOFF_S = 30.0


def compute_backoff(
    attempt: int,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF_S,
    max_backoff: float = DEFAULT_MAX_BACKOFF_S,
) -> float:
    """Return the delay before retry ``attempt`` (1-based), with ±10% jitter."""
    delay = min(initial_backoff * (2 ** (attempt - 1)), max_backoff)
    return delay * (0.9 + 0.2 * secrets.randbits(4) / 15.0)


async def async_register_until_settled(
    controller: RegistrationController,
    platform_token: bytes,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF_S,
    max_backoff: float = DEFAULT_MAX_BACKOFF_S,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> str | None:
    """Register ``platform_token`` and retry failed handshakes.

    Each attempt runs the handshake until it stops (settled or failed).
    Returns the push token once registered, or None after ``max_attempts``.
    """
    for attempt in range(1, max_attempts + 1):
        controller.register(platform_token)
        await controller.async_wait_idle()

        if controller.is_settled:
            return controller.push_token
        if controller.closed:
            _logger.debug("Controller closed; giving up registration")
            return None

        if attempt < max_attempts:
            delay = compute_backoff(attempt, initial_backoff, max_backoff)
            _logger.warning(
                "FCM handshake did not settle (attempt %d/%d); retrying in %.1fs",
                attempt,
                max_attempts,
                delay,
            )
            await sleep(delay)

    _logger.error("Unable to register push token after %d attempts", max_attempts)
    return None
