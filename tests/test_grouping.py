import tempfile
import unittest
from datetime import timedelta, timezone
from pathlib import Path
from unittest import mock

from frames.db import FramesStore
from frames.grouping import group_by_month, month_label


def _entry(entry_id, timestamp):
    return {"id": entry_id, "timestamp": timestamp, "main": entry_id, "details": ""}


class GroupByMonthTests(unittest.TestCase):
    def test_groups_are_most_recent_month_first(self):
        entries = [
            _entry("feb01", "2024-02-01T09:00:00.000000+00:00"),
            _entry("jan20", "2024-01-20T09:00:00.000000+00:00"),
            _entry("jan15", "2024-01-15T09:00:00.000000+00:00"),
        ]

        groups = group_by_month(entries)

        self.assertEqual([label for label, _ in groups], ["February 2024", "January 2024"])
        self.assertEqual([e["id"] for e in groups[0][1]], ["feb01"])
        self.assertEqual([e["id"] for e in groups[1][1]], ["jan20", "jan15"])

    def test_orders_by_year_and_month_not_label_text(self):
        entries = [
            _entry("sep23", "2023-09-10T00:00:00.000000+00:00"),
            _entry("apr24", "2024-04-10T00:00:00.000000+00:00"),
            _entry("dec23", "2023-12-10T00:00:00.000000+00:00"),
        ]

        labels = [label for label, _ in group_by_month(entries)]

        self.assertEqual(labels, ["April 2024", "December 2023", "September 2023"])

    def test_entries_keep_input_order_within_a_group(self):
        entries = [
            _entry("b", "2024-03-02T00:00:00.000000+00:00"),
            _entry("a", "2024-03-05T00:00:00.000000+00:00"),
        ]

        groups = group_by_month(entries)

        self.assertEqual([e["id"] for e in groups[0][1]], ["b", "a"])

    def test_empty_input_gives_no_groups(self):
        self.assertEqual(group_by_month([]), [])

    def test_timezone_can_move_an_entry_across_months(self):
        entries = [_entry("edge", "2024-03-01T02:00:00.000000+00:00")]

        utc = group_by_month(entries)
        local = group_by_month(entries, tz=timezone(timedelta(hours=-5)))

        self.assertEqual(utc[0][0], "March 2024")
        self.assertEqual(local[0][0], "February 2024")

    def test_month_label(self):
        self.assertEqual(month_label(2024, 1), "January 2024")
        self.assertEqual(month_label(1999, 12), "December 1999")
        with self.assertRaises(ValueError):
            month_label(2024, 13)


class StoreGroupByMonthTests(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.store = FramesStore(db_path=str(Path(self.temp_dir.name) / "frames.db"))

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_store_groups_its_own_entries_by_default(self):
        for ts, text in [
            ("2024-01-15T10:00:00.000000+00:00", "jan15"),
            ("2024-02-01T10:00:00.000000+00:00", "feb01"),
            ("2024-01-20T10:00:00.000000+00:00", "jan20"),
        ]:
            with mock.patch("frames.db.now_iso", return_value=ts):
                self.store.create_entry(text)

        groups = self.store.group_by_month()

        self.assertEqual([(label, len(items)) for label, items in groups], [("February 2024", 1), ("January 2024", 2)])
        self.assertEqual([e["main"] for e in groups[1][1]], ["jan20", "jan15"])

    def test_store_groups_a_search_result(self):
        with mock.patch("frames.db.now_iso", return_value="2024-06-01T10:00:00.000000+00:00"):
            self.store.create_entry("beach day")
        with mock.patch("frames.db.now_iso", return_value="2024-07-01T10:00:00.000000+00:00"):
            self.store.create_entry("office day")

        groups = self.store.group_by_month(self.store.search_entries("beach"))

        self.assertEqual([label for label, _ in groups], ["June 2024"])


if __name__ == "__main__":
    unittest.main()
