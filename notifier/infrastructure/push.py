"""Push delivery through Firebase Cloud Messaging."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterator, Sequence
from typing import Any

from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from notifier.config import FCM_MAX_MULTICAST_SIZE
from notifier.domain.entities import BatchPushResult, PushMessage, PushResult
from notifier.domain.errors import DeliveryError, InvalidCredentialError
from notifier.utils import utc_now

from .firebase import get_firebase_app, get_firebase_status

logger = logging.getLogger(__name__)

CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"
DEFAULT_INTER_BATCH_DELAY = 0.1

# Error codes reported for tokens that will never work again.
INVALID_TOKEN_CODES = frozenset(
    {
        "registration-token-not-registered",
        "invalid-registration-token",
        "mismatched-credential",
        "not_found",
        "unregistered",
        "sender_id_mismatch",
    }
)


def _mask(token: str) -> str:
    return f"{token[:20]}..."


def error_code(exc: BaseException | None) -> str:
    """Return a stable, lowercase code describing a provider failure."""

    if exc is None:
        return "unknown"
    if isinstance(exc, messaging.UnregisteredError):
        return "registration-token-not-registered"
    if isinstance(exc, messaging.SenderIdMismatchError):
        return "mismatched-credential"
    if isinstance(exc, firebase_exceptions.FirebaseError):
        return str(exc.code or "unknown").lower()
    return type(exc).__name__


def is_invalid_token_error(exc: BaseException | None) -> bool:
    """Return ``True`` when ``exc`` proves the device token is dead.

    Unregistered, not-found and sender-mismatch responses are permanent. Every
    other failure (timeouts, quota, malformed payloads) is transient.
    """

    if exc is None:
        return False
    if isinstance(
        exc,
        (
            messaging.UnregisteredError,
            messaging.SenderIdMismatchError,
            firebase_exceptions.NotFoundError,
        ),
    ):
        return True
    return error_code(exc) in INVALID_TOKEN_CODES


def _stringify_data(values: dict[str, Any]) -> dict[str, str]:
    """FCM data payloads only accept string values."""

    data: dict[str, str] = {}
    for key, value in values.items():
        if value is None:
            continue
        if isinstance(value, (dict, list)):
            data[key] = json.dumps(value, default=str)
        elif isinstance(value, bool):
            data[key] = "true" if value else "false"
        else:
            data[key] = str(value)
    return data


def build_payload(message: PushMessage) -> dict[str, Any]:
    """Translate ``message`` into the keyword arguments of an FCM message."""

    custom = {
        **message.data,
        "type": message.template.value,
        "action": message.action,
        "timestamp": utc_now().isoformat(),
    }
    if message.target_id:
        custom["targetId"] = message.target_id

    high = message.priority == "high"
    return {
        "notification": messaging.Notification(
            title=message.title, body=message.body, image=message.image_url
        ),
        "data": _stringify_data(custom),
        "android": messaging.AndroidConfig(
            priority="high" if high else "normal",
            notification=messaging.AndroidNotification(
                sound=message.sound,
                channel_id=message.channel_id,
                click_action=CLICK_ACTION,
            ),
        ),
        "apns": messaging.APNSConfig(
            headers={"apns-priority": "10" if high else "5"},
            payload=messaging.APNSPayload(
                aps=messaging.Aps(sound=message.sound, badge=1, content_available=True)
            ),
        ),
    }


def chunk_tokens(tokens: Sequence[str], size: int) -> Iterator[list[str]]:
    """Yield consecutive slices of ``tokens`` preserving their order."""

    if size < 1:
        raise ValueError("Chunk size must be a positive integer")
    for start in range(0, len(tokens), size):
        yield list(tokens[start : start + size])


class FirebasePushGateway:
    """Send push notifications and classify provider failures."""

    def __init__(
        self,
        app: Any = None,
        *,
        app_loader: Callable[[], Any] = get_firebase_app,
        batch_size: int = FCM_MAX_MULTICAST_SIZE,
        inter_batch_delay: float = DEFAULT_INTER_BATCH_DELAY,
    ) -> None:
        self._app = app
        self._app_loader = app_loader
        self.batch_size = min(max(batch_size, 1), FCM_MAX_MULTICAST_SIZE)
        self.inter_batch_delay = inter_batch_delay

    def _resolve_app(self) -> Any:
        if self._app is None:
            self._app = self._app_loader()
        return self._app

    @property
    def is_configured(self) -> bool:
        return self._resolve_app() is not None

    def status(self) -> dict[str, Any]:
        """Describe the provider setup for operators."""

        app = self._resolve_app()
        status = get_firebase_status()
        status["configured"] = app is not None
        if app is not None:
            status["initialized"] = True
        return status

    def send_single(self, token: str, message: PushMessage) -> PushResult:
        """Send ``message`` to one device and report the outcome."""

        if not token:
            return PushResult(success=False, error="NO_TOKEN")
        app = self._resolve_app()
        if app is None:
            logger.warning("Firebase not configured, skipping push notification")
            return PushResult(success=False, error="FIREBASE_NOT_CONFIGURED")

        try:
            message_id = self._deliver(app, token, message)
        except InvalidCredentialError as exc:
            return PushResult(success=False, error=exc.code, is_invalid_token=True)
        except DeliveryError as exc:
            return PushResult(success=False, error=str(exc))

        logger.debug("Push notification sent successfully to %s (%s)", _mask(token), message_id)
        return PushResult(success=True, message_id=message_id)

    def _deliver(self, app: Any, token: str, message: PushMessage) -> str:
        try:
            return messaging.send(
                messaging.Message(token=token, **build_payload(message)), app=app
            )
        except Exception as exc:  # provider, transport and timeout errors
            code = error_code(exc)
            logger.error(
                "Failed to send push notification to %s: %s (%s)", _mask(token), exc, code
            )
            if is_invalid_token_error(exc):
                raise InvalidCredentialError(None, token, code) from exc
            raise DeliveryError(code) from exc

    def send_batch(self, tokens: Sequence[str], message: PushMessage) -> BatchPushResult:
        """Send ``message`` to ``tokens`` in ordered, fixed-size multicast chunks.

        A failing chunk is counted as failures for its tokens only; the
        remaining chunks are still attempted.
        """

        result = BatchPushResult()
        valid_tokens = [token for token in tokens if isinstance(token, str) and token.strip()]
        if not valid_tokens:
            return result

        app = self._resolve_app()
        if app is None:
            logger.warning("Firebase not configured, skipping push notifications")
            result.failure_count = len(valid_tokens)
            result.failed_tokens.extend(valid_tokens)
            return result

        chunks = list(chunk_tokens(valid_tokens, self.batch_size))
        if len(chunks) > 1:
            logger.info(
                "Sending push notifications in batches: %s tokens, %s batches",
                len(valid_tokens),
                len(chunks),
            )

        payload = build_payload(message)
        for index, chunk in enumerate(chunks):
            result.merge(self._send_chunk(app, chunk, payload))
            if self.inter_batch_delay and index < len(chunks) - 1:
                time.sleep(self.inter_batch_delay)

        logger.info(
            "Multicast push completed: %s sent, %s failed, %s invalid tokens",
            result.success_count,
            result.failure_count,
            len(result.invalid_tokens),
        )
        return result

    def _send_chunk(
        self, app: Any, chunk: list[str], payload: dict[str, Any]
    ) -> BatchPushResult:
        outcome = BatchPushResult()
        try:
            response = messaging.send_each_for_multicast(
                messaging.MulticastMessage(tokens=chunk, **payload), app=app
            )
        except Exception as exc:  # whole chunk rejected
            logger.error("Push batch of %s tokens failed: %s", len(chunk), exc)
            outcome.failure_count = len(chunk)
            outcome.failed_tokens.extend(chunk)
            return outcome

        for token, response_item in zip(chunk, response.responses):
            if response_item.success:
                outcome.success_count += 1
                continue
            outcome.failure_count += 1
            outcome.failed_tokens.append(token)
            if is_invalid_token_error(response_item.exception):
                outcome.invalid_tokens.append(token)
        return outcome


__all__ = [
    "FirebasePushGateway",
    "INVALID_TOKEN_CODES",
    "build_payload",
    "chunk_tokens",
    "error_code",
    "is_invalid_token_error",
]
