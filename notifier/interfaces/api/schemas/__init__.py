from .notification import (
    DeviceTokenUpdate,
    ManualPushResultRead,
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationRead,
    NotificationSendRequest,
    NotificationSendResponse,
    PushResultRead,
    PushStatusRead,
    RetentionRequest,
    RetentionResultRead,
    SendPushRequest,
    SweepRequest,
    SweepResultRead,
    PushTestRequest,
)

__all__ = [
    "DeviceTokenUpdate",
    "ManualPushResultRead",
    "MarkAllReadResponse",
    "NotificationListResponse",
    "NotificationRead",
    "NotificationSendRequest",
    "NotificationSendResponse",
    "PushResultRead",
    "PushStatusRead",
    "RetentionRequest",
    "RetentionResultRead",
    "SendPushRequest",
    "SweepRequest",
    "SweepResultRead",
    "PushTestRequest",
]
