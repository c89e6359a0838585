"""Domain entity representing the account that owns a device token."""

from dataclasses import dataclass


@dataclass
class User:
    """Subset of account attributes this service reads."""

    id: str
    name: str
    role: str
    is_active: bool = True
    device_token: str | None = None

    def has_role(self, role: str) -> bool:
        """Return ``True`` when the user's role matches ``role``."""

        return self.role.lower() == role.lower()

    def is_admin(self) -> bool:
        return self.has_role("admin") or self.has_role("super_admin")


@dataclass(frozen=True)
class DeviceTokenPair:
    """Token value observed for a user at the moment a push was sent."""

    user_id: str
    token: str
