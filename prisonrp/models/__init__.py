from .models import (
    AnnouncementType,
    ContentStatus,
    PermissionLevel,
    ReferenceType,
    StaffUser,
    SubmissionMode,
    load_images,
    searchable_text,
    serialize,
    serialize_all,
)

__all__ = [
    "AnnouncementType",
    "ContentStatus",
    "PermissionLevel",
    "ReferenceType",
    "StaffUser",
    "SubmissionMode",
    "load_images",
    "searchable_text",
    "serialize",
    "serialize_all",
]
