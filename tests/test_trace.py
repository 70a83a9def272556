import pytest

from race_lab import InvalidArgument, TracedAccount, run_lost_update_analysis, run_two_depositor_trace
from race_lab.trace import STEPS


def test_two_depositor_trace_records_every_step():
    outcome = run_two_depositor_trace()

    assert outcome.steps_for("Thread 1") == list(STEPS)
    assert outcome.steps_for("Thread 2") == list(STEPS)
    assert len(outcome.events) == 8
    timestamps = [e.timestamp for e in outcome.events]
    assert timestamps == sorted(timestamps)


def test_two_depositor_trace_outcome():
    outcome = run_two_depositor_trace()

    assert outcome.expected_balance == 180
    assert outcome.final_balance in (130, 150, 180)
    assert outcome.transaction_count == 2
    assert outcome.money_lost == 180 - outcome.final_balance


def test_narrative_explains_the_loss():
    outcome = run_two_depositor_trace()
    lines = outcome.narrative()

    assert lines[0] == "Initial balance: 100"
    assert "Expected balance: 100 + 50 + 30 = 180" in lines
    assert f"Actual balance: {outcome.final_balance}" in lines
    assert any("read balance" in line for line in lines)
    assert any(line.startswith("Money lost") for line in lines) == bool(outcome.money_lost)


def test_traced_account_validates_amount():
    account = TracedAccount(100)
    with pytest.raises(InvalidArgument):
        account.deposit_with_trace(0, "Thread 1")
    assert account.log.events() == []


def test_lost_update_analysis_every_deposit_completes():
    analysis = run_lost_update_analysis(deposits=30, amount=10, initial_balance=1000)

    assert len(analysis.completions) == 30
    assert {r.worker_id for r in analysis.completions} == set(range(30))
    stamps = [r.timestamp for r in analysis.completions]
    assert stamps == sorted(stamps)
    assert analysis.transaction_count == 30
    assert analysis.expected_balance == 1300
    assert analysis.final_balance <= 1300
    assert analysis.lost_deposits == int(analysis.money_lost / 10)
