"""
Egress Tests
============

Tests for storage keys, image stores and notifications.
"""

import smtplib
from datetime import datetime

import pytest

from sentry_agent.egress.notifier import (
    LogNotifier,
    NotificationError,
    SmtpNotifier,
    build_notification,
)
from sentry_agent.egress.storage import (
    LocalImageStore,
    MinioImageStore,
    StorageError,
    build_storage_key,
)


WHEN = datetime(2024, 5, 1, 12, 0, 0)


class FakeMinio:
    def __init__(self, exists: bool = False, fail: bool = False) -> None:
        self.exists = exists
        self.fail = fail
        self.created = []
        self.objects = {}

    def bucket_exists(self, bucket):
        return self.exists

    def make_bucket(self, bucket):
        self.created.append(bucket)
        self.exists = True

    def put_object(self, bucket, key, data, length, content_type=None):
        if self.fail:
            raise ConnectionError("endpoint unreachable")
        self.objects[(bucket, key)] = (data.read(), length, content_type)


class TestStorageKey:
    """Tests for build_storage_key."""

    def test_layout(self):
        key = build_storage_key("garage/motionDetector", WHEN, 80.0, 1)
        assert key == "garage_motionDetector/2024-05-01_12:00:00_80_1"

    def test_fractional_confidence(self):
        key = build_storage_key("front", WHEN, 97.5, 25)
        assert key == "front/2024-05-01_12:00:00_97.5_25"

    def test_every_slash_replaced(self):
        key = build_storage_key("site/a/cam", WHEN, 90.0, 2)
        assert key.split("/")[0] == "site_a_cam"


class TestLocalImageStore:
    """Tests for LocalImageStore."""

    def test_put_writes_file(self, tmp_path):
        store = LocalImageStore(str(tmp_path))
        key = build_storage_key("garage/motionDetector", WHEN, 80.0, 1)

        store.put(key, b"\xff\xd8jpeg")

        path = tmp_path / "garage_motionDetector" / "2024-05-01_12:00:00_80_1.jpg"
        assert path.read_bytes() == b"\xff\xd8jpeg"
        assert store.path_for(key) == path

    def test_write_failure_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = LocalImageStore(str(blocker))

        with pytest.raises(StorageError):
            store.put("garage/x", b"data")


class TestMinioImageStore:
    """Tests for MinioImageStore with an injected client."""

    def test_creates_bucket_once_and_uploads(self):
        client = FakeMinio(exists=False)
        store = MinioImageStore("minio:9000", "detections", client=client)

        store.put("cam/a", b"one")
        store.put("cam/b", b"two")

        assert client.created == ["detections"]
        assert client.objects[("detections", "cam/a")] == (b"one", 3, "image/jpeg")
        assert ("detections", "cam/b") in client.objects

    def test_existing_bucket_not_recreated(self):
        client = FakeMinio(exists=True)
        store = MinioImageStore("minio:9000", "detections", client=client)

        store.put("cam/a", b"one")

        assert client.created == []

    def test_client_failure_raises_storage_error(self):
        store = MinioImageStore("minio:9000", "detections", client=FakeMinio(fail=True))

        with pytest.raises(StorageError):
            store.put("cam/a", b"one")


class TestNotification:
    """Tests for notification content and backends."""

    def test_build_notification(self):
        notification = build_notification(
            camera_name="garage/motionDetector",
            storage_key="garage_motionDetector/2024-05-01_12:00:00_80_1",
            timestamp=WHEN,
            attachment=b"jpeg",
        )

        assert notification.subject == "garage/motionDetector"
        assert notification.body == (
            "Camera : garage/motionDetector\n"
            "Database name : garage_motionDetector/2024-05-01_12:00:00_80_1\n"
            "Time : 2024-05-01_12:00:00"
        )
        assert notification.attachment_name == "person.jpg"

    def test_smtp_requires_recipients(self):
        with pytest.raises(ValueError):
            SmtpNotifier("smtp.local", 587, "sentry@local", recipients=[])

    def test_smtp_message(self):
        notifier = SmtpNotifier(
            "smtp.local", 587, "sentry@local", recipients=["a@x.org", "b@x.org"]
        )

        message = notifier.build_message("garage", "Camera : garage", b"jpeg", "person.jpg")

        assert message["Subject"] == "garage"
        assert message["To"] == "a@x.org, b@x.org"
        attachments = list(message.iter_attachments())
        assert len(attachments) == 1
        assert attachments[0].get_filename() == "person.jpg"
        assert attachments[0].get_content_type() == "image/jpeg"
        assert attachments[0].get_content() == b"jpeg"

    def test_smtp_sends_message(self, monkeypatch):
        sent = []

        class FakeSMTP:
            def __init__(self, host, port, timeout=None):
                self.calls = []

            def __enter__(self):
                return self

            def __exit__(self, *exc):
                return False

            def starttls(self):
                self.calls.append("starttls")

            def login(self, username, password):
                self.calls.append(("login", username, password))

            def send_message(self, message):
                sent.append((self.calls, message))

        monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
        notifier = SmtpNotifier(
            "smtp.local", 587, "sentry@local", ["a@x.org"],
            username="sentry", password="secret",
        )

        notifier.notify("garage", "body", b"jpeg", "person.jpg", "garage/key")

        assert len(sent) == 1
        calls, message = sent[0]
        assert calls == ["starttls", ("login", "sentry", "secret")]
        assert message["Subject"] == "garage"

    def test_smtp_failure_raises_notification_error(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise ConnectionRefusedError("connection refused")

        monkeypatch.setattr(smtplib, "SMTP", refuse)
        notifier = SmtpNotifier("smtp.local", 587, "sentry@local", ["a@x.org"])

        with pytest.raises(NotificationError):
            notifier.notify("garage", "body", b"jpeg", "person.jpg", "garage/key")

    def test_log_notifier_counts(self):
        notifier = LogNotifier()
        notifier.notify("garage", "body", b"jpeg", "person.jpg", "garage/key")
        assert notifier.sent_count == 1
