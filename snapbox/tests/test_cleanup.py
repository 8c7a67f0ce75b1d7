import unittest
from unittest.mock import MagicMock

from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.exc import OperationalError

from snapbox.cleanup import CLEANUP_JOB_ID, build_scheduler, run_cleanup
from snapbox.codes import InMemoryCodeStore
from snapbox.config import Settings
from snapbox.db import InMemoryDbClient
from snapbox.storage import InMemoryStorageClient, StorageError

DAY = 86400


class RunCleanupTests(unittest.TestCase):
    def setUp(self):
        self.now = 10_000_000.0
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()
        self.clock_now = 0.0
        self.codes = InMemoryCodeStore(ttl_seconds=300, clock=lambda: self.clock_now)

    def _upload(self, path, age_days):
        self.storage.upload_bytes(path, b"x", "image/png")
        record = self.db.create_upload(
            name=path, path=path, url=f"https://cdn/{path}", mimetype="image/png", size=1
        )
        record.created_at = self.now - age_days * DAY
        return record

    def test_purges_expired_codes(self):
        self.codes.issue("a@fcbhealth.com")
        self.clock_now = 301
        report = run_cleanup(self.db, self.storage, self.codes, Settings(), now=self.now)
        self.assertEqual(report.codes_purged, 1)
        self.assertEqual(report.uploads_deleted, 0)

    def test_retention_disabled_keeps_uploads(self):
        self._upload("public/old.png", age_days=400)
        report = run_cleanup(self.db, self.storage, self.codes, Settings(), now=self.now)
        self.assertEqual(report.uploads_deleted, 0)
        self.assertEqual(len(self.db.list_uploads()), 1)

    def test_deletes_uploads_past_retention(self):
        old = self._upload("public/old.png", age_days=31)
        fresh = self._upload("public/fresh.png", age_days=2)
        settings = Settings(upload_retention_days=30)

        report = run_cleanup(self.db, self.storage, self.codes, settings, now=self.now)

        self.assertEqual(report.uploads_deleted, 1)
        self.assertIsNone(self.db.get_upload(old.id))
        self.assertIsNotNone(self.db.get_upload(fresh.id))
        self.assertEqual(list(self.storage.stored_objects), ["public/fresh.png"])

    def test_storage_failure_keeps_row_and_continues(self):
        first = self._upload("public/a.png", age_days=40)
        second = self._upload("public/b.png", age_days=50)
        storage = MagicMock()
        storage.remove.side_effect = [StorageError("boom"), None]

        report = run_cleanup(
            self.db, storage, self.codes, Settings(upload_retention_days=30), now=self.now
        )

        self.assertEqual(report.uploads_failed, 1)
        self.assertEqual(report.uploads_deleted, 1)
        remaining = {r.id for r in self.db.list_uploads()}
        self.assertEqual(len(remaining), 1)
        self.assertTrue(remaining <= {first.id, second.id})

    def test_database_failure_keeps_going(self):
        first = self._upload("public/a.png", age_days=40)
        second = self._upload("public/b.png", age_days=50)
        db = MagicMock(wraps=self.db)
        calls = []

        def flaky_delete(upload_id):
            calls.append(upload_id)
            if len(calls) == 1:
                raise OperationalError("DELETE", {}, Exception("connection lost"))
            return self.db.delete_upload(upload_id)

        db.delete_upload.side_effect = flaky_delete

        report = run_cleanup(
            db, self.storage, self.codes, Settings(upload_retention_days=30), now=self.now
        )

        self.assertEqual(len(calls), 2)
        self.assertEqual(report.uploads_failed, 1)
        self.assertEqual(report.uploads_deleted, 1)
        self.assertEqual(len(self.db.list_uploads()), 1)
        self.assertTrue({r.id for r in self.db.list_uploads()} <= {first.id, second.id})


class BuildSchedulerTests(unittest.TestCase):
    def test_daily_cron_job(self):
        settings = Settings(cleanup_hour=4, cleanup_minute=30, cleanup_timezone="UTC")
        job = MagicMock()
        scheduler = build_scheduler(settings, job)

        scheduled = scheduler.get_job(CLEANUP_JOB_ID)
        self.assertIsNotNone(scheduled)
        self.assertIs(scheduled.func, job)
        self.assertIsInstance(scheduled.trigger, CronTrigger)
        fields = {f.name: str(f) for f in scheduled.trigger.fields}
        self.assertEqual(fields["hour"], "4")
        self.assertEqual(fields["minute"], "30")
        self.assertFalse(scheduler.running)


if __name__ == "__main__":
    unittest.main()
