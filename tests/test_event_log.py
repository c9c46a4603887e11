import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from relay.backends.event_log import EventLog, list_logs_impl
from relay.backends.storage import FileKeyStore, StoreUnavailable


class EventLogTests(unittest.TestCase):
    def setUp(self):
        self.tempdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tempdir.cleanup)
        self.store = FileKeyStore(Path(self.tempdir.name))

    def test_entries_are_newest_first_with_fields(self):
        log = EventLog(self.store)
        log.append("info", "first", agencyId="ACME")
        log.append("warn", "second", agencyId="ACME", transactionId="t-1")

        entries = log.entries()

        self.assertEqual([e["message"] for e in entries], ["second", "first"])
        self.assertEqual(entries[0]["level"], "warn")
        self.assertEqual(entries[0]["transactionId"], "t-1")
        self.assertIn("ts", entries[0])

    def test_retention_trims_oldest(self):
        log = EventLog(self.store, retention=3)
        for idx in range(5):
            log.append("info", f"event-{idx}")

        self.assertEqual(
            [e["message"] for e in log.entries()], ["event-4", "event-3", "event-2"]
        )

    def test_append_swallows_store_failures(self):
        store = mock.Mock(spec=FileKeyStore)
        store.push_list.side_effect = StoreUnavailable("locked")

        with self.assertLogs("relay.backends.event_log", level="WARNING"):
            EventLog(store).append("error", "boom")

    def test_list_logs_filters_by_agency_and_transaction(self):
        log = EventLog(self.store)
        log.append("info", "a1", agencyId="ACME", transactionId="t-1")
        log.append("info", "a2", agencyId="ACME", transactionId="t-2")
        log.append("info", "g1", agencyId="GLOBEX", transactionId="t-1")

        by_agency = list_logs_impl(agency_id="ACME", store=self.store)
        by_both = list_logs_impl(agency_id="ACME", transaction_id="t-1", store=self.store)
        by_txn = list_logs_impl(transaction_id="t-1", store=self.store)

        self.assertEqual([e["message"] for e in by_agency["logs"]], ["a2", "a1"])
        self.assertEqual([e["message"] for e in by_both["logs"]], ["a1"])
        self.assertEqual([e["message"] for e in by_txn["logs"]], ["g1", "a1"])

    def test_list_logs_limit_is_clamped(self):
        log = EventLog(self.store)
        for idx in range(5):
            log.append("info", f"event-{idx}")

        self.assertEqual(len(list_logs_impl(2, store=self.store)["logs"]), 2)
        self.assertEqual(len(list_logs_impl(-3, store=self.store)["logs"]), 1)
        self.assertEqual(len(list_logs_impl("abc", store=self.store)["logs"]), 5)
        self.assertEqual(len(list_logs_impl(0, store=self.store)["logs"]), 5)
        self.assertEqual(len(list_logs_impl("10000", store=self.store)["logs"]), 5)

    def test_empty_log(self):
        self.assertEqual(list_logs_impl(store=self.store), {"logs": []})


if __name__ == "__main__":
    unittest.main()
