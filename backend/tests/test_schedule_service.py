"""
Unit tests per la logica del piano rate: ritardi, rigenerazione, codifica JSON.
"""

import datetime
import json

import pytest

from app.core.exceptions import BusinessValidationError, EmptyScheduleError
from app.schemas.sale import Discrepancy, PaymentScheduleEntry, PaymentStatus
from app.services.schedule_service import (
    calculate_overdue_days,
    decode_history,
    decode_schedule,
    encode_entries,
    regenerate_schedule,
)

TODAY = datetime.date(2024, 3, 1)


def entry(number: int, planned_date: str, status: str = "pending", **extra) -> PaymentScheduleEntry:
    return PaymentScheduleEntry(
        payment_number=number,
        planned_date=planned_date,
        planned_amount=extra.pop("planned_amount", 1000),
        status=status,
        **extra,
    )


# ============================================================
# Ritardi
# ============================================================


class TestCalculateOverdueDays:

    def test_empty_schedule(self):
        assert calculate_overdue_days([], today=TODAY) == 0
        assert calculate_overdue_days(None, today=TODAY) == 0

    def test_all_paid(self):
        schedule = [
            entry(1, "01.01.2024", "paid"),
            entry(2, "01.02.2024", "paid"),
        ]
        assert calculate_overdue_days(schedule, today=TODAY) == 0

    @pytest.mark.parametrize("days", [1, 15, 45, 400])
    def test_single_unpaid_in_the_past(self, days):
        planned = TODAY - datetime.timedelta(days=days)
        schedule = [entry(1, planned.isoformat())]
        assert calculate_overdue_days(schedule, today=TODAY) == days

    def test_due_today_is_not_overdue(self):
        assert calculate_overdue_days([entry(1, "01.03.2024")], today=TODAY) == 0

    def test_first_unpaid_wins(self):
        """Una rata futura non pagata ferma la scansione anche se dopo ce n'è una scaduta."""
        schedule = [
            entry(1, "01.04.2024"),
            entry(2, "01.01.2024"),
        ]
        assert calculate_overdue_days(schedule, today=TODAY) == 0

    def test_paid_entries_are_skipped(self, two_installment_schedule):
        """Acconto pagato il 15.01, seconda rata del 15.02 non pagata, oggi 01.03 → 15 giorni."""
        assert calculate_overdue_days(two_installment_schedule, today=TODAY) == 15

    def test_overdue_status_counts_as_unpaid(self):
        schedule = [entry(1, "2024-02-20", "overdue")]
        assert calculate_overdue_days(schedule, today=TODAY) == 10

    def test_unparseable_date_is_not_overdue(self):
        schedule = [entry(1, "sometime"), entry(2, "01.01.2024")]
        assert calculate_overdue_days(schedule, today=TODAY) == 0

    def test_uses_current_date_by_default(self, monkeypatch):
        monkeypatch.setattr("app.services.schedule_service.current_date", lambda: TODAY)
        assert calculate_overdue_days([entry(1, "28.02.2024")]) == 2


# ============================================================
# Rigenerazione
# ============================================================


class TestRegenerateSchedule:

    def test_scenario_new_purchase_date(self, two_installment_schedule):
        result = regenerate_schedule(two_installment_schedule, datetime.date(2024, 1, 20))
        assert [e.planned_date for e in result] == ["20.01.2024", "20.02.2024"]

    def test_first_payment_equals_purchase_date(self):
        result = regenerate_schedule([entry(1, "01.01.2020")], "2024-06-07")
        assert result[0].planned_date == "07.06.2024"

    def test_is_idempotent(self, two_installment_schedule):
        purchase = datetime.date(2024, 3, 10)
        once = regenerate_schedule(two_installment_schedule, purchase)
        twice = regenerate_schedule(once, purchase)
        assert [e.planned_date for e in once] == [e.planned_date for e in twice]

    def test_month_end_rolls_over(self):
        """I giorni oltre la fine del mese scorrono nel mese successivo."""
        schedule = [entry(1, "x"), entry(2, "x"), entry(3, "x")]
        result = regenerate_schedule(schedule, datetime.date(2024, 1, 31))
        assert [e.planned_date for e in result] == ["31.01.2024", "02.03.2024", "31.03.2024"]

    def test_month_end_rolls_over_in_common_year(self):
        result = regenerate_schedule([entry(2, "x")], datetime.date(2023, 1, 30))
        assert result[0].planned_date == "02.03.2023"

    def test_crosses_year_boundary(self):
        result = regenerate_schedule([entry(3, "x")], datetime.date(2024, 11, 5))
        assert result[0].planned_date == "05.01.2025"

    def test_other_fields_pass_through(self):
        original = entry(
            2, "01.01.2024", "paid",
            planned_amount=750,
            actual_date="03.02.2024",
            actual_amount=800,
            description="seconda rata",
        )
        [result] = regenerate_schedule([original], datetime.date(2024, 1, 10))
        assert result.planned_date == "10.02.2024"
        assert result.payment_number == 2
        assert result.planned_amount == 750
        assert result.status == PaymentStatus.PAID
        assert result.actual_date == "03.02.2024"
        assert result.actual_amount == 800
        assert result.discrepancy == Discrepancy.OVERPAID
        assert result.description == "seconda rata"

    def test_does_not_mutate_input(self, two_installment_schedule):
        regenerate_schedule(two_installment_schedule, datetime.date(2024, 5, 5))
        assert two_installment_schedule[0].planned_date == "15.01.2024"

    def test_empty_schedule_raises(self):
        with pytest.raises(EmptyScheduleError) as exc_info:
            regenerate_schedule([], datetime.date(2024, 1, 1))
        assert exc_info.value.error_code == "EMPTY_SCHEDULE"

    def test_invalid_purchase_date_raises(self):
        with pytest.raises(BusinessValidationError):
            regenerate_schedule([entry(1, "01.01.2024")], "garbage")


# ============================================================
# Codifica JSON e normalizzazione
# ============================================================


class TestScheduleCodec:

    def test_decode_none_and_empty(self):
        assert decode_schedule(None) == (None, [])
        assert decode_schedule("") == (None, [])
        assert decode_schedule("null") == (None, [])

    def test_decode_corrupted_json_returns_warning(self):
        schedule, warnings = decode_schedule("[{not json")
        assert schedule is None
        assert warnings == ["payment_schedule: JSON non valido"]

    def test_decode_wrong_shape_returns_warning(self):
        schedule, warnings = decode_schedule('{"payment_number": 1}')
        assert schedule is None
        assert warnings == ["payment_schedule: formato non riconosciuto"]

    def test_decode_invalid_entry_is_dropped(self):
        schedule, warnings = decode_schedule('[{"payment_number": 0, "planned_date": "x", "planned_amount": 1}]')
        assert schedule == []
        assert warnings == ["payment_schedule[0]: voce non valida scartata"]

    def test_invalid_entry_does_not_discard_valid_ones(self):
        """Una voce senza data prevista non cancella le altre rate della vendita."""
        raw = json.dumps([
            {"payment_number": 1, "planned_date": "15.01.2024", "planned_amount": 1000,
             "status": "paid", "actual_date": "15.01.2024", "actual_amount": 1000},
            {"payment_number": 2, "planned_date": "15.02.2024", "planned_amount": 1000, "status": "pending"},
            {"payment_number": 3, "planned_date": None, "planned_amount": 1000},
            {"planned_date": "15.04.2024", "planned_amount": 1000},
            {"payment_number": 5, "planned_date": "15.05.2024", "planned_amount": 1000, "status": "lost"},
        ])

        schedule, warnings = decode_schedule(raw)

        assert [e.payment_number for e in schedule] == [1, 2]
        assert warnings == [
            "payment_schedule[2]: voce non valida scartata",
            "payment_schedule[3]: voce non valida scartata",
            "payment_schedule[4]: voce non valida scartata",
        ]
        assert calculate_overdue_days(schedule, today=TODAY) == 15

    def test_legacy_entry_is_normalized(self):
        raw = json.dumps([{"payment_number": 1, "date": "10.01.2024", "amount": 500, "description": "acconto"}])
        schedule, warnings = decode_schedule(raw)
        assert warnings == []
        assert schedule[0].planned_date == "10.01.2024"
        assert schedule[0].planned_amount == 500
        assert schedule[0].status == PaymentStatus.PENDING
        assert schedule[0].date == "10.01.2024"
        assert schedule[0].is_initial_payment

    def test_encode_then_decode_keeps_entries(self, two_installment_schedule):
        raw = encode_entries(two_installment_schedule)
        decoded, warnings = decode_schedule(raw)
        assert warnings == []
        assert [e.model_dump() for e in decoded] == [e.model_dump() for e in two_installment_schedule]

    def test_encode_none(self):
        assert encode_entries(None) is None

    def test_history_uses_camel_case_keys(self):
        raw = '[{"paymentIndex": 0, "paidDate": "15.01.2024", "paidAmount": 1000}]'
        history, warnings = decode_history(raw)
        assert warnings == []
        assert history[0].paid_amount == 1000
        assert json.loads(encode_entries(history)) == [
            {"paymentIndex": 0, "paidDate": "15.01.2024", "paidAmount": 1000.0}
        ]


class TestDiscrepancy:

    def test_underpaid_is_filled(self):
        e = entry(1, "01.01.2024", "paid", planned_amount=1000, actual_amount=900)
        assert e.discrepancy == Discrepancy.UNDERPAID
        assert e.difference == 100

    def test_exact(self):
        e = entry(1, "01.01.2024", "paid", planned_amount=1000, actual_amount=1000)
        assert e.discrepancy == Discrepancy.EXACT
        assert e.difference == 0

    def test_explicit_values_are_kept(self):
        e = entry(1, "01.01.2024", "paid", actual_amount=900, difference=5, discrepancy="exact")
        assert e.difference == 5
        assert e.discrepancy == Discrepancy.EXACT

    def test_pending_entry_has_no_discrepancy(self):
        e = entry(1, "01.01.2024", actual_amount=900)
        assert e.discrepancy is None
