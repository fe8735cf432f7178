from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request

from syncsphere.exceptions import AuthenticationError
from syncsphere.models import User
from syncsphere.schema import (
    CompatibilityCheck,
    ConnectDevice,
    CreateUser,
    DeviceStatusUpdate,
    StartRecovery,
    UpdateDevice,
    UpdatePreferences,
    UpdateProfile,
)
from syncsphere.services import (
    DataRecoveryService,
    DeviceService,
    NotificationService,
    UserService,
)

router = APIRouter()


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def get_device_service(request: Request) -> DeviceService:
    return request.app.state.device_service


def get_recovery_service(request: Request) -> DataRecoveryService:
    return request.app.state.recovery_service


def get_notification_service(request: Request) -> NotificationService:
    return request.app.state.notification_service


def current_user(
    x_user_id: Optional[str] = Header(default=None),
    users: UserService = Depends(get_user_service),
) -> User:
    if not x_user_id:
        raise AuthenticationError("X-User-Id header is required")
    return users.require_active_user(x_user_id)


# ----------users----------

@router.post("/users", status_code=201)
async def create_user(payload: CreateUser, users: UserService = Depends(get_user_service)):
    user = users.create_user(
        payload.email,
        first_name=payload.firstName,
        last_name=payload.lastName,
        subscription_tier=payload.subscriptionTier,
    )
    return {"user": user.public_dict()}


@router.get("/users/me")
async def get_profile(user: User = Depends(current_user)):
    return {"user": user.public_dict()}


@router.put("/users/me")
async def update_profile(payload: UpdateProfile, user: User = Depends(current_user),
                         users: UserService = Depends(get_user_service)):
    updated = users.update_user_profile(user.id, payload.to_fields())
    return {"user": updated.public_dict()}


@router.delete("/users/me")
async def deactivate_account(user: User = Depends(current_user),
                             users: UserService = Depends(get_user_service)):
    users.deactivate_user(user.id)
    return {"ok": True}


@router.get("/users/me/stats")
async def get_stats(user: User = Depends(current_user),
                    users: UserService = Depends(get_user_service)):
    return {"stats": users.get_user_stats(user.id)}


@router.put("/users/me/preferences")
async def update_preferences(payload: UpdatePreferences, user: User = Depends(current_user),
                             users: UserService = Depends(get_user_service)):
    preferences = users.update_preferences(user.id, payload.model_dump(exclude_none=True))
    return {"preferences": preferences}


# ----------devices----------

@router.post("/devices/connect", status_code=201)
async def connect_device(payload: ConnectDevice, user: User = Depends(current_user),
                         devices: DeviceService = Depends(get_device_service)):
    device = devices.connect_device(
        user.id,
        device_type=payload.deviceType,
        device_model=payload.deviceModel,
        os_version=payload.osVersion,
        serial_number=payload.serialNumber,
        device_name=payload.deviceName,
        capabilities=payload.capabilities,
        metadata=payload.metadata,
    )
    return {"device": device.to_dict()}


@router.post("/devices/compatibility")
async def check_compatibility(payload: CompatibilityCheck, user: User = Depends(current_user)):
    return {"compatibility": DeviceService.check_compatibility(
        payload.deviceType, payload.osVersion, payload.capabilities)}


@router.get("/devices")
async def list_devices(
    status: Optional[str] = None,
    deviceType: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user: User = Depends(current_user),
    devices: DeviceService = Depends(get_device_service),
):
    result = devices.list_user_devices(user.id, status=status, device_type=deviceType, page=page, limit=limit)
    return {
        "devices": [device.to_dict() for device in result["devices"]],
        "pagination": result["pagination"],
    }


@router.get("/devices/{device_id}")
async def get_device(device_id: str, user: User = Depends(current_user),
                     devices: DeviceService = Depends(get_device_service)):
    return {"device": devices.get_device(user.id, device_id).to_dict()}


@router.put("/devices/{device_id}")
async def update_device(device_id: str, payload: UpdateDevice, user: User = Depends(current_user),
                        devices: DeviceService = Depends(get_device_service)):
    return {"device": devices.update_device(user.id, device_id, payload.to_fields()).to_dict()}


@router.patch("/devices/{device_id}/status")
async def update_device_status(device_id: str, payload: DeviceStatusUpdate,
                               user: User = Depends(current_user),
                               devices: DeviceService = Depends(get_device_service)):
    return {"device": devices.update_device_status(user.id, device_id, payload.status).to_dict()}


@router.post("/devices/{device_id}/disconnect")
async def disconnect_device(device_id: str, user: User = Depends(current_user),
                            devices: DeviceService = Depends(get_device_service)):
    return {"device": devices.disconnect_device(user.id, device_id).to_dict()}


@router.delete("/devices/{device_id}")
async def delete_device(device_id: str, user: User = Depends(current_user),
                        devices: DeviceService = Depends(get_device_service)):
    return {"ok": devices.delete_device(user.id, device_id)}


@router.get("/devices/{device_id}/activity")
async def device_activity(device_id: str, limit: int = Query(default=50, ge=1, le=200),
                          user: User = Depends(current_user),
                          devices: DeviceService = Depends(get_device_service)):
    return {"activity": devices.list_device_activity(user.id, device_id, limit=limit)}


# ----------recovery----------

@router.post("/recovery", status_code=201)
async def start_recovery(payload: StartRecovery, user: User = Depends(current_user),
                         recovery: DataRecoveryService = Depends(get_recovery_service)):
    session = await recovery.start_recovery(user.id, payload.deviceId, payload.recoveryType, payload.options)
    return {"session": session.to_dict()}


@router.get("/recovery")
async def list_recoveries(
    status: Optional[str] = None,
    recoveryType: Optional[str] = None,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(current_user),
    recovery: DataRecoveryService = Depends(get_recovery_service),
):
    sessions = await recovery.get_user_recovery_sessions(
        user.id, status=status, recovery_type=recoveryType, limit=limit, offset=offset)
    return {"sessions": [session.to_dict() for session in sessions]}


@router.get("/recovery/active")
async def active_recoveries(user: User = Depends(current_user),
                            recovery: DataRecoveryService = Depends(get_recovery_service)):
    sessions = await recovery.get_active_recoveries(user.id)
    return {"sessions": [session.to_dict() for session in sessions]}


@router.get("/recovery/stats")
async def recovery_stats(days: int = Query(default=30, ge=1, le=365),
                         user: User = Depends(current_user),
                         recovery: DataRecoveryService = Depends(get_recovery_service)):
    return {"stats": await recovery.get_recovery_stats(user.id, days=days)}


@router.get("/recovery/{recovery_id}")
async def get_recovery(recovery_id: str, user: User = Depends(current_user),
                       recovery: DataRecoveryService = Depends(get_recovery_service)):
    session = await recovery.get_recovery_session(recovery_id, user.id)
    return {"session": session.to_dict()}


@router.get("/recovery/{recovery_id}/progress")
async def get_progress(recovery_id: str, user: User = Depends(current_user),
                       recovery: DataRecoveryService = Depends(get_recovery_service)):
    return {"progress": await recovery.get_recovery_progress(recovery_id, user.id)}


@router.post("/recovery/{recovery_id}/cancel")
async def cancel_recovery(recovery_id: str, user: User = Depends(current_user),
                          recovery: DataRecoveryService = Depends(get_recovery_service)):
    session = await recovery.cancel_recovery(recovery_id, user.id)
    return {"session": session.to_dict()}


@router.post("/recovery/{recovery_id}/pause")
async def pause_recovery(recovery_id: str, user: User = Depends(current_user),
                         recovery: DataRecoveryService = Depends(get_recovery_service)):
    session = await recovery.pause_recovery(recovery_id, user.id)
    return {"session": session.to_dict()}


@router.post("/recovery/{recovery_id}/resume")
async def resume_recovery(recovery_id: str, user: User = Depends(current_user),
                          recovery: DataRecoveryService = Depends(get_recovery_service)):
    session = await recovery.resume_recovery(recovery_id, user.id)
    return {"session": session.to_dict()}


# ----------notifications----------

@router.get("/notifications")
async def list_notifications(
    unreadOnly: bool = False,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    items = notifications.list_notifications(user.id, unread_only=unreadOnly, limit=limit, offset=offset)
    return {"notifications": [item.to_dict() for item in items]}


@router.get("/notifications/unread-count")
async def unread_count(user: User = Depends(current_user),
                       notifications: NotificationService = Depends(get_notification_service)):
    return {"count": notifications.unread_count(user.id)}


@router.post("/notifications/read-all")
async def mark_all_read(user: User = Depends(current_user),
                        notifications: NotificationService = Depends(get_notification_service)):
    return {"updated": notifications.mark_all_read(user.id)}


@router.post("/notifications/{notification_id}/read")
async def mark_read(notification_id: str, user: User = Depends(current_user),
                    notifications: NotificationService = Depends(get_notification_service)):
    notifications.mark_read(notification_id, user.id)
    return {"ok": True}
