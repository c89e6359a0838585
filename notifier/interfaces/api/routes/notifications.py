"""Endpoints and websocket handler for user notifications."""

from __future__ import annotations

import logging
import math
from typing import Any

from fastapi import (
    APIRouter,
    Body,
    Depends,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from sqlalchemy.orm import Session

from notifier.application.use_cases.notifications import (
    DeliveryCoordinator,
    PendingSweeper,
    TokenHygiene,
    dismiss_notification,
    get_notification,
    get_unread_count,
    get_unread_count_by_category,
    list_notifications,
    mark_all_notifications_read,
    mark_notification_read,
    purge_notifications,
    send_push_to_role,
    send_push_to_users,
    send_test_push,
)
from notifier.config import get_settings
from notifier.domain.entities import (
    Notification,
    NotificationCategory,
    NotificationFilters,
    NotificationType,
    PushMessage,
    User,
)
from notifier.domain.errors import NotFoundError, StorageError, ValidationError
from notifier.infrastructure.database import SessionLocal, get_db
from notifier.infrastructure.notifications import notification_manager
from notifier.infrastructure.push import FirebasePushGateway
from notifier.infrastructure.repositories import UserRepository
from notifier.interfaces.api.dependencies import (
    get_current_active_user,
    get_delivery_coordinator,
    get_pending_sweeper,
    get_push_gateway,
    get_token_hygiene,
    require_admin,
    resolve_current_user,
)
from notifier.interfaces.api.schemas import (
    DeviceTokenUpdate,
    ManualPushResultRead,
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationRead,
    NotificationSendRequest,
    NotificationSendResponse,
    PushResultRead,
    PushStatusRead,
    PushTestRequest,
    RetentionRequest,
    RetentionResultRead,
    SendPushRequest,
    SweepRequest,
    SweepResultRead,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])

WEBSOCKET_INIT_LIMIT = 20


def _notification_to_schema(notification: Notification) -> NotificationRead:
    return NotificationRead(
        id=notification.id,
        user_id=notification.recipient_id,
        title=notification.title,
        body=notification.body,
        summary=notification.summary,
        type=notification.type,
        category=notification.category,
        entity_type=notification.entity_type,
        entity_id=notification.entity_id,
        action_url=notification.action_url,
        action_type=notification.action_type,
        image_url=notification.image_url,
        icon=notification.icon,
        priority=notification.priority,
        sender_id=notification.sender_id,
        data=notification.data,
        is_read=notification.is_read,
        read_at=notification.read_at,
        is_dismissed=notification.is_dismissed,
        dismissed_at=notification.dismissed_at,
        created_at=notification.created_at,
        updated_at=notification.updated_at,
    )


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Notification storage unavailable",
    )


def _require_push(gateway: FirebasePushGateway) -> None:
    if not gateway.is_configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Push notifications are not configured",
        )


@router.get("/", response_model=NotificationListResponse)
def list_user_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: NotificationCategory | None = None,
    type: NotificationType | None = None,
    is_read: bool | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> NotificationListResponse:
    """Return one page of the visible notifications of the authenticated user."""

    try:
        result = list_notifications(
            db,
            current_user.id,
            NotificationFilters(category=category, type=type, is_read=is_read),
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    except StorageError as exc:
        raise _http_error(exc) from exc
    return NotificationListResponse(
        items=[_notification_to_schema(notification) for notification in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        pages=math.ceil(result.total / result.limit) if result.total else 0,
    )


@router.get("/unread-count", response_model=dict[str, int])
def read_unread_count(
    detailed: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> dict[str, int]:
    try:
        if detailed:
            return get_unread_count_by_category(db, current_user.id)
        return {"count": get_unread_count(db, current_user.id)}
    except StorageError as exc:
        raise _http_error(exc) from exc


@router.patch("/read-all", response_model=MarkAllReadResponse)
def read_all_notifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    coordinator: DeliveryCoordinator = Depends(get_delivery_coordinator),
) -> MarkAllReadResponse:
    try:
        count = mark_all_notifications_read(db, current_user.id)
    except StorageError as exc:
        raise _http_error(exc) from exc
    coordinator.publish_unread_count(current_user.id)
    return MarkAllReadResponse(count=count)


@router.put("/device-token", status_code=status.HTTP_204_NO_CONTENT)
def register_device_token(
    payload: DeviceTokenUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> None:
    """Store the push token of the caller's device; ``null`` removes it."""

    try:
        UserRepository(db).register_device_token(current_user.id, payload.device_token)
    except StorageError as exc:
        raise _http_error(exc) from exc


@router.post("/test-push", response_model=PushResultRead)
def send_test_push_notification(
    payload: PushTestRequest | None = Body(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    gateway: FirebasePushGateway = Depends(get_push_gateway),
    hygiene: TokenHygiene = Depends(get_token_hygiene),
) -> PushResultRead:
    _require_push(gateway)
    payload = payload or PushTestRequest()
    try:
        result = send_test_push(
            db, gateway, hygiene, current_user.id, title=payload.title, body=payload.body
        )
    except (NotFoundError, ValidationError) as exc:
        raise _http_error(exc) from exc
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Failed to send test push: {result.error}",
        )
    return PushResultRead(
        success=result.success,
        message_id=result.message_id,
        error=result.error,
        is_invalid_token=result.is_invalid_token,
    )


@router.post(
    "/send",
    response_model=NotificationSendResponse,
    status_code=status.HTTP_201_CREATED,
)
def send_notification(
    payload: NotificationSendRequest,
    current_user: User = Depends(require_admin),
    coordinator: DeliveryCoordinator = Depends(get_delivery_coordinator),
) -> NotificationSendResponse:
    """Create an inbox notification for the given users and deliver it."""

    draft = payload.to_draft(sender_id=current_user.id)
    try:
        if len(payload.user_ids) == 1:
            notification = coordinator.create(
                draft, emit_realtime=payload.emit_realtime, send_push=payload.send_push
            )
            return NotificationSendResponse(count=1, notification=notification)
        count = coordinator.create_for_many(
            payload.user_ids,
            draft,
            emit_realtime=payload.emit_realtime,
            send_push=payload.send_push,
        )
    except (ValidationError, StorageError) as exc:
        raise _http_error(exc) from exc
    return NotificationSendResponse(count=count)


@router.post("/send-push", response_model=ManualPushResultRead)
def send_push_notification(
    payload: SendPushRequest,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
    gateway: FirebasePushGateway = Depends(get_push_gateway),
    hygiene: TokenHygiene = Depends(get_token_hygiene),
) -> ManualPushResultRead:
    """Push a message without creating inbox rows, by role or user list."""

    _require_push(gateway)
    message = PushMessage(
        title=payload.title,
        body=payload.body,
        template=payload.type,
        image_url=payload.image_url,
        target_id=payload.target_id,
        action="open",
        priority=payload.priority,
        data=dict(payload.data or {}),
    )
    if payload.role:
        result = send_push_to_role(db, gateway, hygiene, payload.role, message)
    else:
        result = send_push_to_users(db, gateway, hygiene, payload.user_ids or [], message)
    return ManualPushResultRead(
        success=result.success,
        sent_count=result.sent_count,
        failed_count=result.failed_count,
        invalid_token_count=result.invalid_token_count,
        total_devices=result.total_devices,
        error=result.error,
    )


@router.get("/push-status", response_model=PushStatusRead)
def read_push_status(
    _: User = Depends(require_admin),
    gateway: FirebasePushGateway = Depends(get_push_gateway),
) -> PushStatusRead:
    return PushStatusRead(**gateway.status())


@router.post("/process-pending", response_model=SweepResultRead)
def process_pending_notifications(
    payload: SweepRequest | None = Body(default=None),
    _: User = Depends(require_admin),
    sweeper: PendingSweeper = Depends(get_pending_sweeper),
) -> SweepResultRead:
    """Retry push delivery for due notifications that were never pushed."""

    limit = payload.limit if payload else None
    try:
        result = sweeper.run(limit)
    except StorageError as exc:
        raise _http_error(exc) from exc
    return SweepResultRead(
        processed=result.processed,
        success=result.success,
        failed=result.failed,
        skipped=result.skipped,
    )


@router.post("/cleanup", response_model=RetentionResultRead)
def cleanup_notifications(
    payload: RetentionRequest | None = Body(default=None),
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> RetentionResultRead:
    days = (payload.read_older_than_days if payload else None) or get_settings().retention_read_days
    try:
        result = purge_notifications(db, read_older_than_days=days)
    except StorageError as exc:
        raise _http_error(exc) from exc
    return RetentionResultRead(expired=result.expired, old_read=result.old_read)


@router.websocket("/ws")
async def notifications_websocket(websocket: WebSocket) -> None:
    """Websocket endpoint that streams notifications to the authenticated user."""

    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=1008)
        return

    session = SessionLocal()
    try:
        user = resolve_current_user(token, session)
        if not user.is_active:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user")
        unread = list_notifications(
            session,
            user.id,
            NotificationFilters(is_read=False),
            limit=WEBSOCKET_INIT_LIMIT,
        )
    except HTTPException:
        await websocket.close(code=1008)
        return
    except StorageError:
        await websocket.close(code=1011)
        return
    finally:
        session.close()

    await notification_manager.connect(user.id, websocket, role=user.role)
    try:
        await websocket.send_json(
            {
                "type": "init",
                "data": {
                    "unread_count": unread.total,
                    "notifications": [
                        _notification_to_schema(item).model_dump(mode="json")
                        for item in unread.items
                    ],
                },
            }
        )
        while True:
            try:
                message = await websocket.receive_json()
            except WebSocketDisconnect:
                raise
            except ValueError:
                continue

            if not isinstance(message, dict):
                continue

            message_type = message.get("type")
            if message_type == "ping":
                await websocket.send_json({"type": "pong"})
                continue

            if message_type == "ack":
                ids = message.get("ids", [])
                if isinstance(ids, list) and ids:
                    count = _acknowledge(user.id, ids)
                    await websocket.send_json({"type": "ack", "data": {"unread_count": count}})
                continue
    except WebSocketDisconnect:
        notification_manager.disconnect(user.id, websocket)
    except Exception:
        notification_manager.disconnect(user.id, websocket)
        raise


def _acknowledge(user_id: str, notification_ids: list[Any]) -> int:
    """Mark the acknowledged notifications read and return the new unread count."""

    session = SessionLocal()
    try:
        for notification_id in notification_ids:
            if not isinstance(notification_id, str):
                continue
            try:
                mark_notification_read(session, notification_id, user_id)
            except NotFoundError:
                logger.debug("Ignoring ack for unknown notification %s", notification_id)
        return get_unread_count(session, user_id)
    finally:
        session.close()


@router.get("/{notification_id}", response_model=NotificationRead)
def read_notification(
    notification_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> NotificationRead:
    try:
        notification = get_notification(db, notification_id, current_user.id)
    except (NotFoundError, StorageError) as exc:
        raise _http_error(exc) from exc
    return _notification_to_schema(notification)


@router.patch("/{notification_id}/read", response_model=NotificationRead)
def read_mark_notification(
    notification_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    coordinator: DeliveryCoordinator = Depends(get_delivery_coordinator),
) -> NotificationRead:
    try:
        notification = mark_notification_read(db, notification_id, current_user.id)
    except (NotFoundError, StorageError) as exc:
        raise _http_error(exc) from exc
    coordinator.publish_unread_count(current_user.id)
    return _notification_to_schema(notification)


@router.delete("/{notification_id}", response_model=NotificationRead)
def delete_notification(
    notification_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    coordinator: DeliveryCoordinator = Depends(get_delivery_coordinator),
) -> NotificationRead:
    """Dismiss the notification; it no longer appears in listings or counts."""

    try:
        notification = dismiss_notification(db, notification_id, current_user.id)
    except (NotFoundError, StorageError) as exc:
        raise _http_error(exc) from exc
    coordinator.publish_unread_count(current_user.id)
    return _notification_to_schema(notification)
