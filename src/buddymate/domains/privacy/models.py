"""Privacy settings and family data-sharing permissions."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime

from buddymate.core.errors import ValidationError
from buddymate.core.storage.codec import camel_case

DEFAULT_RETENTION_DAYS = 365


@dataclass
class DataSharingPermissions:
    """What a family member may see. Everything but emergency data is off by default."""

    health_data: bool = False
    location_data: bool = False
    communication_data: bool = False
    activity_data: bool = False
    emergency_data: bool = True


@dataclass
class FamilyAccessPermission:
    contact_id: str
    contact_name: str
    permissions: DataSharingPermissions
    granted_at: datetime
    last_accessed: datetime | None = None


@dataclass
class PrivacySettings:
    data_retention_days: int = DEFAULT_RETENTION_DAYS
    share_anonymous_usage_data: bool = False
    allow_emergency_data_sharing: bool = True
    family_access_permissions: list[FamilyAccessPermission] = field(default_factory=list)
    encryption_enabled: bool = True
    biometric_auth_required: bool = False


# "healthData" and "health_data" both name the same permission.
_DATA_TYPE_FIELDS: dict[str, str] = {
    alias: f.name
    for f in fields(DataSharingPermissions)
    for alias in (f.name, camel_case(f.name))
}

DATA_TYPES = tuple(camel_case(f.name) for f in fields(DataSharingPermissions))


def permission_field(data_type: str) -> str:
    """Attribute name on DataSharingPermissions for a data type name."""
    try:
        return _DATA_TYPE_FIELDS[data_type]
    except KeyError:
        raise ValidationError(
            f"Unknown data type {data_type!r}, expected one of {', '.join(DATA_TYPES)}"
        ) from None
