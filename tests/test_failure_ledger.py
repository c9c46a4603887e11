import sys
import tempfile
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from relay.backends.failures import (
    FAILURE_WINDOW_SECONDS,
    POISON_THRESHOLD,
    FailureLedger,
    failure_key,
)
from relay.backends.storage import FileKeyStore


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailureLedgerTests(unittest.TestCase):
    def setUp(self):
        self.tempdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tempdir.cleanup)
        self.clock = FakeClock()
        self.store = FileKeyStore(Path(self.tempdir.name), clock=self.clock)
        self.ledger = FailureLedger(self.store)

    def test_counts_increase_by_one(self):
        counts = [self.ledger.record_failure("ACME", "txn-1") for _ in range(5)]
        self.assertEqual(counts, [1, 2, 3, 4, 5])

    def test_poison_threshold(self):
        self.assertEqual(POISON_THRESHOLD, 5)
        self.assertFalse(FailureLedger.is_poison(4))
        self.assertTrue(FailureLedger.is_poison(5))
        self.assertTrue(FailureLedger.is_poison(6))

    def test_pairs_are_counted_separately(self):
        self.ledger.record_failure("ACME", "txn-1")
        self.ledger.record_failure("ACME", "txn-1")
        self.assertEqual(self.ledger.record_failure("ACME", "txn-2"), 1)
        self.assertEqual(self.ledger.record_failure("GLOBEX", "txn-1"), 1)
        self.assertEqual(self.ledger.failure_count("ACME", "txn-1"), 2)

    def test_colons_in_ids_do_not_share_a_counter(self):
        self.assertEqual(failure_key("ACME", "txn-1"), "txn_error_count:ACME:txn-1")
        self.assertNotEqual(failure_key("a:b", "c"), failure_key("a", "b:c"))

        for _ in range(4):
            self.ledger.record_failure("a:b", "c")
        self.assertEqual(self.ledger.record_failure("a", "b:c"), 1)
        self.assertEqual(self.ledger.failure_count("a:b", "c"), 4)

    def test_first_failure_sets_24h_window(self):
        self.ledger.record_failure("ACME", "txn-1")
        self.assertEqual(self.store.ttl(failure_key("ACME", "txn-1")), FAILURE_WINDOW_SECONDS)

    def test_later_failures_do_not_extend_window(self):
        self.ledger.record_failure("ACME", "txn-1")
        self.clock.advance(3600)
        self.ledger.record_failure("ACME", "txn-1")
        self.assertEqual(
            self.store.ttl(failure_key("ACME", "txn-1")), FAILURE_WINDOW_SECONDS - 3600
        )

    def test_count_resets_after_window(self):
        for _ in range(5):
            self.ledger.record_failure("ACME", "txn-1")
        self.clock.advance(FAILURE_WINDOW_SECONDS - 1)
        self.assertEqual(self.ledger.failure_count("ACME", "txn-1"), 5)

        self.clock.advance(1)
        self.assertEqual(self.ledger.failure_count("ACME", "txn-1"), 0)
        self.assertEqual(self.ledger.record_failure("ACME", "txn-1"), 1)

    def test_missing_pair_has_zero_count(self):
        self.assertEqual(self.ledger.failure_count("ACME", "never"), 0)


class KeyStoreExpiryTests(unittest.TestCase):
    def setUp(self):
        self.tempdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tempdir.cleanup)
        self.clock = FakeClock()
        self.store = FileKeyStore(Path(self.tempdir.name), clock=self.clock)

    def test_expire_on_missing_key_returns_false(self):
        self.assertFalse(self.store.expire("nope", 10))

    def test_expire_applies_to_existing_counter(self):
        self.store.increment_and_get("hits")
        self.assertIsNone(self.store.ttl("hits"))
        self.assertTrue(self.store.expire("hits", 10))
        self.clock.advance(10)
        self.assertEqual(self.store.get_counter("hits"), 0)

    def test_kind_mismatch_is_rejected(self):
        self.store.increment_and_get("hits")
        with self.assertRaises(ValueError):
            self.store.get_hash("hits")


if __name__ == "__main__":
    unittest.main()
