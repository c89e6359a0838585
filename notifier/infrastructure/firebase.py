"""Firebase Admin SDK bootstrap.

Two credential sources are supported: a service account JSON file
(``FIREBASE_SERVICE_ACCOUNT_PATH``) or the inline ``FIREBASE_PROJECT_ID``,
``FIREBASE_PRIVATE_KEY`` and ``FIREBASE_CLIENT_EMAIL`` triplet. Without either,
push delivery is disabled and the rest of the service keeps working.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

import firebase_admin
from firebase_admin import credentials

from notifier.config import Settings, get_settings

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "notifier"

_lock = threading.Lock()
_state: dict[str, Any] = {"initialized": False, "app": None}


def _build_credential(settings: Settings) -> credentials.Certificate:
    if settings.firebase_service_account_path:
        logger.debug("Loading Firebase credentials from service account file")
        return credentials.Certificate(settings.firebase_service_account_path)

    # Environment variables usually carry the key with escaped newlines.
    private_key = (settings.firebase_private_key or "").replace("\\n", "\n")
    logger.debug("Loading Firebase credentials from environment variables")
    return credentials.Certificate(
        {
            "type": "service_account",
            "project_id": settings.firebase_project_id,
            "private_key": private_key,
            "client_email": settings.firebase_client_email,
            "token_uri": "https://oauth2.googleapis.com/token",
        }
    )


def initialize_firebase(settings: Settings | None = None) -> firebase_admin.App | None:
    """Initialize the Firebase app once and return it, or ``None`` when disabled."""

    with _lock:
        if _state["initialized"]:
            return _state["app"]

        settings = settings or get_settings()
        _state["initialized"] = True

        if not settings.push_credentials_configured:
            logger.warning("Firebase is not configured. Push notifications will be disabled.")
            return None

        options: dict[str, Any] = {"httpTimeout": settings.push_timeout_seconds}
        if settings.firebase_project_id:
            options["projectId"] = settings.firebase_project_id

        try:
            app = firebase_admin.initialize_app(
                _build_credential(settings), options=options, name=FIREBASE_APP_NAME
            )
        except (ValueError, OSError) as exc:
            logger.error("Failed to initialize Firebase Admin SDK: %s", exc)
            return None

        _state["app"] = app
        logger.info("Firebase Admin SDK initialized successfully")
        return app


def get_firebase_app() -> firebase_admin.App | None:
    if not _state["initialized"]:
        return initialize_firebase()
    return _state["app"]


def is_firebase_configured() -> bool:
    return get_firebase_app() is not None


def get_firebase_status() -> dict[str, Any]:
    """Return a summary suitable for the operational status endpoint."""

    settings = get_settings()
    return {
        "initialized": _state["initialized"],
        "configured": _state["app"] is not None,
        "project_id": settings.firebase_project_id or "not set",
    }


def reset_firebase() -> None:
    """Forget the cached app so the next call re-reads the configuration."""

    with _lock:
        app = _state["app"]
        _state["initialized"] = False
        _state["app"] = None
    if app is not None:
        firebase_admin.delete_app(app)


__all__ = [
    "FIREBASE_APP_NAME",
    "get_firebase_app",
    "get_firebase_status",
    "initialize_firebase",
    "is_firebase_configured",
    "reset_firebase",
]
