from __future__ import annotations


class ModerationError(Exception):
    """Base class for failures contained inside the moderation core."""


class ClassificationError(ModerationError):
    """The classifier could not be reached or its answer could not be decoded."""


class PermissionLookupError(ModerationError):
    pass


class EnforcementActionError(ModerationError):
    pass


class NotificationError(ModerationError):
    pass


class StoreError(ModerationError):
    pass


__all__ = [
    "ClassificationError",
    "EnforcementActionError",
    "ModerationError",
    "NotificationError",
    "PermissionLookupError",
    "StoreError",
]
