import dataclasses
from datetime import date

import pytest

from conftest import make_rule, make_tx
from services.recurring_service import post_single_occurrence, run_due_occurrences
from utils.errors import ValidationError


def test_monthly_catch_up_posts_each_missed_occurrence():
    rule = make_rule(amount=1000.0, start_date="2024-01-01", next_due_date="2024-01-01")
    batch = run_due_occurrences([rule], [], date(2024, 3, 15))

    assert [p.date for p in batch.postings] == ["2024-01-01", "2024-02-01", "2024-03-01"]
    assert all(p.amount == 1000.0 and p.recurring_rule_id == rule.id for p in batch.postings)
    updated = batch.updated_rules[0]
    assert updated.next_due_date == "2024-04-01"
    assert updated.occurrences_processed == 3
    assert updated.is_active


def test_inputs_are_not_mutated():
    rule = make_rule(start_date="2024-01-01", next_due_date="2024-01-01")
    snapshot = dataclasses.replace(rule)
    history = [make_tx("2023-12-01", 5.0)]
    run_due_occurrences([rule], history, date(2024, 3, 15))
    assert rule == snapshot
    assert len(history) == 1


def test_nothing_due_yields_empty_batch():
    rule = make_rule(next_due_date="2024-04-01", start_date="2024-04-01")
    batch = run_due_occurrences([rule], [], date(2024, 3, 15))
    assert batch.units == []
    assert batch.postings == []


def test_inactive_rules_are_skipped():
    rule = make_rule(next_due_date="2024-01-01", start_date="2024-01-01", is_active=False)
    assert run_due_occurrences([rule], [], date(2024, 3, 15)).postings == []


def test_cap_deactivates_and_second_run_is_empty():
    rule = make_rule(
        start_date="2024-01-01", next_due_date="2024-01-01", total_occurrences=2,
    )
    batch = run_due_occurrences([rule], [], date(2024, 6, 1))
    assert len(batch.postings) == 2
    updated = batch.updated_rules[0]
    assert updated.occurrences_processed == 2
    assert not updated.is_active

    again = run_due_occurrences([updated], batch.postings, date(2024, 6, 1))
    assert again.postings == []


@pytest.mark.parametrize("cap", [None, 0, -1])
def test_non_positive_cap_is_uncapped(cap):
    rule = make_rule(start_date="2024-01-01", next_due_date="2024-01-01", total_occurrences=cap)
    batch = run_due_occurrences([rule], [], date(2024, 6, 1))
    assert len(batch.postings) == 6
    assert batch.updated_rules[0].is_active


def test_rule_already_past_its_cap_is_retired_without_posting():
    rule = make_rule(
        start_date="2024-01-01", next_due_date="2024-03-01",
        total_occurrences=2, occurrences_processed=2,
    )
    batch = run_due_occurrences([rule], [], date(2024, 6, 1))
    assert batch.postings == []
    assert batch.updated_rules[0].is_active is False


def test_back_to_back_runs_are_idempotent():
    rule = make_rule(start_date="2024-01-01", next_due_date="2024-01-01")
    first = run_due_occurrences([rule], [], date(2024, 3, 15))
    second = run_due_occurrences(first.updated_rules, first.postings, date(2024, 3, 15))
    assert second.postings == []


def test_runaway_guard_defers_the_rest():
    rule = make_rule(frequency="weekly", start_date="2020-01-06", next_due_date="2020-01-06")
    first = run_due_occurrences([rule], [], date(2024, 1, 1), max_per_rule=24)
    assert len(first.postings) == 24
    deferred = first.updated_rules[0]
    assert deferred.next_due_date == "2020-06-22"

    second = run_due_occurrences([deferred], first.postings, date(2024, 1, 1), max_per_rule=24)
    assert second.postings[0].date == "2020-06-22"


def test_transfer_postings_keep_destination():
    rule = make_rule(type="transfer", to_account_id=2, next_due_date="2024-01-01", start_date="2024-01-01")
    batch = run_due_occurrences([rule], [], date(2024, 1, 1))
    assert batch.postings[0].to_account_id == 2

    expense = make_rule(to_account_id=2, next_due_date="2024-01-01", start_date="2024-01-01")
    assert run_due_occurrences([expense], [], date(2024, 1, 1)).postings[0].to_account_id is None


def test_average_sees_postings_from_the_same_batch():
    rule = make_rule(
        payee="Electric", amount=90.0, amount_type="average",
        start_date="2024-01-01", next_due_date="2024-01-01",
    )
    history = [make_tx("2023-12-01", 60.0, payee="Electric")]
    postings = run_due_occurrences([rule], history, date(2024, 2, 1)).postings
    # Jan averages [60]; Feb averages [60, 60]
    assert [p.amount for p in postings] == [60.0, 60.0]


class TestPostSingleOccurrence:
    def test_posts_cursor_occurrence_even_if_not_due(self):
        rule = make_rule(next_due_date="2099-05-15", start_date="2024-01-15")
        single = post_single_occurrence(rule, [])
        assert single.posting.date == "2099-05-15"
        assert single.rule.next_due_date == "2099-06-15"
        assert single.rule.occurrences_processed == 1
        assert rule.occurrences_processed == 0

    def test_last_occurrence_deactivates(self):
        rule = make_rule(total_occurrences=3, occurrences_processed=2)
        assert post_single_occurrence(rule, []).rule.is_active is False

    def test_refuses_when_cap_reached(self):
        rule = make_rule(total_occurrences=3, occurrences_processed=3)
        with pytest.raises(ValidationError):
            post_single_occurrence(rule, [])
