from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field


class CreateUser(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    firstName: Optional[str] = Field(default=None, max_length=100)
    lastName: Optional[str] = Field(default=None, max_length=100)
    subscriptionTier: str = "free"


class UpdateProfile(BaseModel):
    firstName: Optional[str] = Field(default=None, max_length=100)
    lastName: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, min_length=3, max_length=255)

    def to_fields(self) -> Dict[str, Any]:
        return {
            "first_name": self.firstName,
            "last_name": self.lastName,
            "email": self.email,
        }


class UpdatePreferences(BaseModel):
    notifications: Optional[Dict[str, Any]] = None
    privacy: Optional[Dict[str, Any]] = None
    interface: Optional[Dict[str, Any]] = None


# ----------devices----------

class ConnectDevice(BaseModel):
    deviceType: Literal["ios", "android"]
    deviceModel: str = Field(min_length=1, max_length=100)
    osVersion: str = Field(min_length=1, max_length=40)
    serialNumber: Optional[str] = Field(default=None, max_length=100)
    deviceName: Optional[str] = Field(default=None, max_length=100)
    capabilities: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class UpdateDevice(BaseModel):
    deviceName: Optional[str] = Field(default=None, max_length=100)
    capabilities: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_fields(self) -> Dict[str, Any]:
        return {
            "device_name": self.deviceName,
            "capabilities": self.capabilities,
            "metadata": self.metadata,
        }


class DeviceStatusUpdate(BaseModel):
    status: str


class CompatibilityCheck(BaseModel):
    deviceType: Literal["ios", "android"]
    osVersion: Optional[str] = None
    capabilities: Dict[str, Any] = Field(default_factory=dict)


# ----------recovery----------

class StartRecovery(BaseModel):
    deviceId: str
    recoveryType: str
    options: Dict[str, Any] = Field(default_factory=dict)
