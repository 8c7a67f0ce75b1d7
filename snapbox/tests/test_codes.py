import unittest
from unittest.mock import MagicMock, patch

from snapbox.codes import (
    CONSUME_SCRIPT,
    InMemoryCodeStore,
    RedisCodeStore,
    VerifyResult,
    generate_code,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class GenerateCodeTests(unittest.TestCase):
    def test_six_digits(self):
        for _ in range(200):
            code = generate_code()
            self.assertEqual(len(code), 6)
            self.assertTrue(100000 <= int(code) <= 999999)


class InMemoryCodeStoreTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.store = InMemoryCodeStore(ttl_seconds=300, clock=self.clock)

    def test_code_is_single_use(self):
        code = self.store.issue("ana@fcbhealth.com")
        self.assertEqual(self.store.verify("ana@fcbhealth.com", code), VerifyResult.OK)
        self.assertEqual(
            self.store.verify("ana@fcbhealth.com", code), VerifyResult.MISSING
        )

    def test_email_is_normalized(self):
        code = self.store.issue("  Ana@FCBHealth.com ")
        self.assertEqual(self.store.verify("ana@fcbhealth.com", code), VerifyResult.OK)

    def test_mismatch_keeps_entry(self):
        code = self.store.issue("ana@fcbhealth.com")
        wrong = "123456" if code != "123456" else "654321"
        self.assertEqual(
            self.store.verify("ana@fcbhealth.com", wrong), VerifyResult.MISMATCH
        )
        self.assertEqual(self.store.verify("ana@fcbhealth.com", code), VerifyResult.OK)

    def test_expires_after_ttl(self):
        code = self.store.issue("ana@fcbhealth.com")
        self.clock.now += 299
        self.assertEqual(
            self.store.verify("ana@fcbhealth.com", "x"), VerifyResult.MISMATCH
        )
        self.clock.now += 1
        self.assertEqual(
            self.store.verify("ana@fcbhealth.com", code), VerifyResult.MISSING
        )
        self.assertEqual(self.store.entries, {})

    def test_reissue_resets_expiry(self):
        self.store.issue("ana@fcbhealth.com")
        self.clock.now += 200
        code = self.store.issue("ana@fcbhealth.com")
        self.clock.now += 200
        self.assertEqual(self.store.verify("ana@fcbhealth.com", code), VerifyResult.OK)

    def test_purge_expired(self):
        self.store.issue("a@fcbhealth.com")
        self.clock.now += 100
        self.store.issue("b@fcbhealth.com")
        self.clock.now += 250
        self.assertEqual(self.store.purge_expired(), 1)
        self.assertEqual(list(self.store.entries), ["b@fcbhealth.com"])

    def test_discard(self):
        code = self.store.issue("ana@fcbhealth.com")
        self.store.discard("ana@fcbhealth.com")
        self.assertEqual(
            self.store.verify("ana@fcbhealth.com", code), VerifyResult.MISSING
        )


class FakeRedis:
    """Dict-backed client; registered scripts run the compare-and-delete atomically."""

    def __init__(self):
        self.values = {}
        self.scripts = []

    def set(self, key, value, ex=None):
        self.values[key] = value

    def delete(self, key):
        self.values.pop(key, None)

    def register_script(self, source):
        self.scripts.append(source)

        def consume(keys, args):
            stored = self.values.get(keys[0])
            if stored is None:
                return 0
            if stored != args[0]:
                return -1
            del self.values[keys[0]]
            return 1

        return consume


class RedisCodeStoreTests(unittest.TestCase):
    def setUp(self):
        patcher = patch("snapbox.codes.redis.Redis.from_url")
        self.from_url = patcher.start()
        self.addCleanup(patcher.stop)
        self.client = FakeRedis()
        self.from_url.return_value = self.client
        self.store = RedisCodeStore(url="redis://localhost:6379/0", ttl_seconds=300)

    def test_issue_sets_ttl(self):
        client = MagicMock()
        self.from_url.return_value = client
        store = RedisCodeStore(url="redis://localhost:6379/0", ttl_seconds=300)
        code = store.issue("Ana@fcbhealth.com")
        client.set.assert_called_once_with(
            "snapbox:code:ana@fcbhealth.com", code, ex=300
        )

    def test_verify_runs_single_script(self):
        self.assertEqual(self.client.scripts, [CONSUME_SCRIPT])
        self.assertIn("GET", CONSUME_SCRIPT)
        self.assertIn("DEL", CONSUME_SCRIPT)

    def test_verify_consumes_on_match(self):
        code = self.store.issue("ana@fcbhealth.com")
        self.assertEqual(self.store.verify("Ana@FCBHealth.com", code), VerifyResult.OK)
        self.assertEqual(self.client.values, {})
        self.assertEqual(
            self.store.verify("ana@fcbhealth.com", code), VerifyResult.MISSING
        )

    def test_stale_code_does_not_delete_reissued_code(self):
        first = self.store.issue("ana@fcbhealth.com")
        second = self.store.issue("ana@fcbhealth.com")
        while second == first:
            second = self.store.issue("ana@fcbhealth.com")

        self.assertEqual(
            self.store.verify("ana@fcbhealth.com", first), VerifyResult.MISMATCH
        )
        self.assertEqual(
            self.client.values["snapbox:code:ana@fcbhealth.com"], second
        )
        self.assertEqual(self.store.verify("ana@fcbhealth.com", second), VerifyResult.OK)

    def test_verify_missing(self):
        self.assertEqual(
            self.store.verify("ana@fcbhealth.com", "123456"), VerifyResult.MISSING
        )

    def test_discard(self):
        self.store.issue("ana@fcbhealth.com")
        self.store.discard("ana@fcbhealth.com")
        self.assertEqual(self.client.values, {})


if __name__ == "__main__":
    unittest.main()
