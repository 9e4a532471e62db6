"""
Egress Module
=============

Storage and notification collaborators invoked after a positive match.

Components:
    - ImageStore / MinioImageStore / LocalImageStore
    - Notifier / SmtpNotifier / LogNotifier
    - build_storage_key, build_notification
"""

from sentry_agent.egress.storage import (
    ImageStore,
    LocalImageStore,
    MinioImageStore,
    StorageError,
    build_storage_key,
)
from sentry_agent.egress.notifier import (
    LogNotifier,
    Notification,
    NotificationError,
    Notifier,
    SmtpNotifier,
    build_notification,
)

__all__ = [
    "ImageStore",
    "MinioImageStore",
    "LocalImageStore",
    "StorageError",
    "build_storage_key",
    "Notifier",
    "SmtpNotifier",
    "LogNotifier",
    "Notification",
    "NotificationError",
    "build_notification",
]
