"""
Unit tests per l'aggregazione previsto/incassato.
"""

import json
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import StorageError
from app.schemas.sale import PaymentScheduleEntry
from app.services.analytics_service import (
    AnalyticsAggregator,
    AnalyticsService,
    SaleSchedule,
)

BRANCHES = {583940: "Volgograd", 100200: "Astrakhan"}


def entry(number, planned_date, planned_amount=1000, **extra) -> PaymentScheduleEntry:
    return PaymentScheduleEntry(
        payment_number=number,
        planned_date=planned_date,
        planned_amount=planned_amount,
        **extra,
    )


@pytest.fixture
def aggregator():
    return AnalyticsAggregator(BRANCHES)


class TestAnalyticsAggregator:

    def test_paid_installment_counts_in_payment_month(self, aggregator):
        sales = [
            SaleSchedule(1, 583940, [
                entry(1, "15.01.2024", 500),
                entry(2, "15.02.2024", 500, status="paid", actual_date="10.02.2024", actual_amount=500),
            ]),
        ]

        result = aggregator.aggregate(sales, month=2, year=2024)

        assert result.total_actual == 500
        assert result.total_planned == 500
        [company] = result.by_company
        assert company.company_name == "Volgograd"
        assert company.actual == 500
        assert company.actual_people == 1
        assert company.planned_people == 1

    def test_total_planned_sums_entries_of_the_month(self, aggregator):
        sales = [
            SaleSchedule(1, 583940, [entry(1, "2024-03-01", 300), entry(2, "2024-04-01", 300)]),
            SaleSchedule(2, 100200, [entry(1, "31.03.2024", 700)]),
            SaleSchedule(3, 100200, [entry(1, "01.03.2023", 999)]),
        ]

        result = aggregator.aggregate(sales, month=3, year=2024)

        assert result.total_planned == 1000
        assert result.total_actual == 0
        assert sum(c.planned for c in result.by_company) == result.total_planned

    def test_actual_is_attributed_to_actual_date_month(self, aggregator):
        sales = [
            SaleSchedule(1, 583940, [
                entry(1, "25.01.2024", 1000, status="paid", actual_date="02.02.2024", actual_amount=1000),
            ]),
        ]

        january = aggregator.aggregate(sales, month=1, year=2024)
        february = aggregator.aggregate(sales, month=2, year=2024)

        assert (january.total_planned, january.total_actual) == (1000, 0)
        assert (february.total_planned, february.total_actual) == (0, 1000)

    def test_missing_actual_amount_falls_back_to_planned(self, aggregator):
        sales = [SaleSchedule(1, 583940, [entry(1, "01.05.2024", 800, status="paid", actual_date="01.05.2024")])]
        assert aggregator.aggregate(sales, month=5, year=2024).total_actual == 800

    def test_paid_without_actual_date_is_not_collected(self, aggregator):
        sales = [SaleSchedule(1, 583940, [entry(1, "01.05.2024", 800, status="paid")])]
        result = aggregator.aggregate(sales, month=5, year=2024)
        assert result.total_planned == 800
        assert result.total_actual == 0

    def test_unparseable_planned_date_is_skipped(self, aggregator):
        sales = [
            SaleSchedule(1, 583940, [
                entry(1, "??", 400, status="paid", actual_date="01.06.2024", actual_amount=400),
                entry(2, "01.06.2024", 400),
            ]),
        ]

        result = aggregator.aggregate(sales, month=6, year=2024)

        assert result.total_planned == 400
        assert result.total_actual == 0
        assert result.skipped_entries == 1

    def test_people_are_distinct_sales(self, aggregator):
        """Due rate della stessa vendita nello stesso mese contano una persona."""
        sales = [
            SaleSchedule(1, 583940, [entry(1, "01.07.2024", 100), entry(2, "20.07.2024", 100)]),
            SaleSchedule(2, 583940, [entry(1, "05.07.2024", 100)]),
        ]

        result = aggregator.aggregate(sales, month=7, year=2024)

        [company] = result.by_company
        assert company.planned == 300
        assert company.planned_people == 2
        [july] = result.monthly_stats
        assert july.planned_people == 2

    def test_unknown_branches(self, aggregator):
        sales = [
            SaleSchedule(1, 777, [entry(1, "01.08.2024")]),
            SaleSchedule(2, None, [entry(1, "01.08.2024")]),
        ]

        result = aggregator.aggregate(sales, month=8, year=2024)

        names = {c.company_id: c.company_name for c in result.by_company}
        assert names == {777: "Branch 777", None: "Branch Unknown"}

    def test_by_company_sorted_by_name(self, aggregator):
        sales = [
            SaleSchedule(1, 583940, [entry(1, "01.09.2024")]),
            SaleSchedule(2, 100200, [entry(1, "01.09.2024")]),
        ]
        result = aggregator.aggregate(sales, month=9, year=2024)
        assert [c.company_name for c in result.by_company] == ["Astrakhan", "Volgograd"]

    def test_monthly_stats_cover_every_month_sorted(self, aggregator):
        sales = [
            SaleSchedule(1, 583940, [
                entry(1, "15.03.2024", 100, status="paid", actual_date="15.03.2024", actual_amount=100),
                entry(2, "15.04.2024", 100),
                entry(3, "15.12.2023", 100),
            ]),
        ]

        result = aggregator.aggregate(sales, month=1, year=2020)

        assert [m.month for m in result.monthly_stats] == ["2023-12", "2024-03", "2024-04"]
        march = result.monthly_stats[1]
        assert (march.planned, march.actual) == (100, 100)
        assert result.by_company == []

    def test_empty_input(self, aggregator):
        result = aggregator.aggregate([], month=1, year=2024)
        assert result.total_planned == 0
        assert result.by_company == []
        assert result.monthly_stats == []

    def test_serialized_keys(self, aggregator):
        sales = [SaleSchedule(1, 583940, [entry(1, "01.10.2024")])]
        data = aggregator.aggregate(sales, month=10, year=2024).model_dump(by_alias=True)
        assert {"totalPlanned", "totalActual", "byCompany", "monthlyStats", "skippedEntries"} <= set(data)
        assert {"companyId", "companyName", "plannedPeople", "actualPeople"} <= set(data["byCompany"][0])


class TestAnalyticsService:

    async def test_loads_rows_and_skips_corrupted_schedules(self, mock_db, aggregator):
        result = MagicMock()
        result.all.return_value = [
            (1, 583940, '[{"payment_number": 1, "planned_date": "01.02.2024", "planned_amount": 250}]'),
            (2, 583940, "{broken"),
            (3, 100200, None),
        ]
        mock_db.execute.return_value = result

        analytics = await AnalyticsService(aggregator).get_analytics(mock_db, month=2, year=2024)

        assert analytics.total_planned == 250
        assert [c.company_name for c in analytics.by_company] == ["Volgograd"]
        assert analytics.corrupted_schedules == 1
        assert analytics.skipped_entries == 0
        assert analytics.model_dump(by_alias=True)["corruptedSchedules"] == 1

    async def test_invalid_entry_keeps_rest_of_schedule(self, mock_db, aggregator):
        """Una voce senza data prevista viene contata, le altre rate restano nei totali."""
        result = MagicMock()
        result.all.return_value = [
            (1, 583940, json.dumps([
                {"payment_number": 1, "planned_date": "15.01.2024", "planned_amount": 1000,
                 "status": "paid", "actual_date": "15.01.2024", "actual_amount": 1000},
                {"payment_number": 2, "planned_date": "15.02.2024", "planned_amount": 1000, "status": "pending"},
                {"payment_number": 3, "planned_date": None, "planned_amount": 1000},
            ])),
        ]
        mock_db.execute.return_value = result

        analytics = await AnalyticsService(aggregator).get_analytics(mock_db, month=2, year=2024)

        assert analytics.total_planned == 1000
        assert analytics.skipped_entries == 1
        assert analytics.corrupted_schedules == 0

    async def test_defaults_to_current_month(self, mock_db, aggregator, monkeypatch):
        import datetime

        monkeypatch.setattr("app.services.analytics_service.today", lambda: datetime.date(2024, 11, 3))
        result = MagicMock()
        result.all.return_value = []
        mock_db.execute.return_value = result

        analytics = await AnalyticsService(aggregator).get_analytics(mock_db)

        assert (analytics.month, analytics.year) == (11, 2024)

    async def test_database_error_becomes_storage_error(self, mock_db, aggregator):
        mock_db.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))

        with pytest.raises(StorageError):
            await AnalyticsService(aggregator).get_analytics(mock_db, month=1, year=2024)
