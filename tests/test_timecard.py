"""
Timecard CSV reading, filtering and summaries.
"""

import pytest

from lib import config, timecard
from lib.errors import BadRequestError, NotFoundError
from tests.fixtures import write_kb_file

CSV = """\
    date,client,hours,tasks
    2026-01-05,Acme,2.5,"Homepage, sitemap"
    2026-01-20,Acme,1.25,Review

    2026-02-02,Globex,4,Kickoff
    2026-02-03,Acme,abc,Notes
    ,Acme,3,no date
    2026-02-04,,3,no client
    """


@pytest.fixture
def timecard_csv(kb_root):
    return write_kb_file(kb_root, config.TIMECARD_PATH, CSV)


class TestReadEntries:
    def test_rows_sorted_newest_first(self, timecard_csv):
        """Rows without a date or client are dropped; quoted commas survive."""
        entries = timecard.read_entries()
        assert [e.date for e in entries] == ["2026-02-03", "2026-02-02", "2026-01-20", "2026-01-05"]
        assert entries[-1].tasks == "Homepage, sitemap"

    def test_unparseable_hours_are_zero(self, timecard_csv):
        assert timecard.read_entries()[0].hours == 0.0

    def test_missing_file(self, kb_root):
        with pytest.raises(NotFoundError):
            timecard.read_entries()


class TestListEntries:
    def test_filters_and_limit(self, timecard_csv):
        result = timecard.list_entries(start_date="2026-01-10", client="Acme", limit=1)
        assert result["total"] == 2
        assert result["entries"] == [{"date": "2026-02-03", "client": "Acme", "hours": 0.0, "tasks": "Notes"}]

    def test_bad_range_is_rejected(self, timecard_csv):
        with pytest.raises(BadRequestError):
            timecard.list_entries(end_date="Feb 2026")


class TestSummary:
    def test_totals_by_client_and_month(self, timecard_csv):
        result = timecard.summary()
        assert result["total_hours"] == 7.8
        assert result["entry_count"] == 4
        assert result["clients"] == ["Acme", "Globex"]
        assert result["client_summaries"] == [
            {"client": "Globex", "total_hours": 4.0, "entry_count": 1},
            {"client": "Acme", "total_hours": 3.8, "entry_count": 3},
        ]
        assert [m["month"] for m in result["monthly_summaries"]] == ["2026-02", "2026-01"]
        january = result["monthly_summaries"][1]
        assert january["clients"] == [{"client": "Acme", "total_hours": 3.8, "entry_count": 2}]
        assert january["total_hours"] == 3.8

    def test_date_range(self, timecard_csv):
        result = timecard.summary(start_date="2026-02-01", end_date="2026-02-02")
        assert result["total_hours"] == 4.0
        assert result["clients"] == ["Globex"]
