"""Credential lookup for the OpenAI integration.

The API key is read from ``OPENAI_API_KEY`` first and then from the operating
system keyring.  A missing key is not an error here: callers decide whether
its absence disables a feature.
"""

from __future__ import annotations

import os
from typing import Optional

import keyring
import structlog
from keyring.errors import KeyringError


APP_NAME = "HealthFlow"
SERVICE_NAME = "healthflow-openai"
KEYRING_USERNAME = "api_key"
API_KEY_ENV = "OPENAI_API_KEY"

logger = structlog.get_logger(__name__)


def get_api_key() -> Optional[str]:
    """Return the configured OpenAI API key or ``None``."""

    key = os.getenv(API_KEY_ENV, "").strip()
    if key:
        return key
    try:
        stored = keyring.get_password(SERVICE_NAME, KEYRING_USERNAME)
    except KeyringError as exc:
        logger.warning("keyring_lookup_failed", error=str(exc))
        return None
    if stored and stored.strip():
        return stored.strip()
    return None


def save_api_key(key: str) -> bool:
    """Store ``key`` in the keyring; returns ``False`` when no backend accepts it."""

    try:
        keyring.set_password(SERVICE_NAME, KEYRING_USERNAME, key.strip())
    except KeyringError as exc:
        logger.warning("keyring_store_failed", error=str(exc))
        return False
    return True


def delete_api_key() -> None:
    try:
        keyring.delete_password(SERVICE_NAME, KEYRING_USERNAME)
    except KeyringError:
        logger.info("keyring_delete_skipped")


__all__ = ["APP_NAME", "SERVICE_NAME", "get_api_key", "save_api_key", "delete_api_key"]
