import time
from decimal import Decimal

import pytest

from race_lab import (
    DepositOutcome,
    FrequencyReport,
    InvalidArgument,
    MixedOutcome,
    TransferOutcome,
    WithdrawalOutcome,
    measure_corruption_frequency,
    run_bidirectional_transfers,
    run_concurrent_deposits,
    run_concurrent_withdrawals,
    run_mixed_operations,
)
from race_lab.harness import TrialCounter, run_concurrently


# =============================================================================
# run_concurrently
# =============================================================================

def test_run_concurrently_keeps_result_order():
    assert run_concurrently([lambda i=i: i * 2 for i in range(8)]) == list(range(0, 16, 2))


def test_run_concurrently_reraises_after_every_worker_finished():
    finished = TrialCounter()

    def slow():
        time.sleep(0.02)
        finished.increment()

    def broken():
        raise InvalidArgument("bad amount")

    with pytest.raises(InvalidArgument, match="bad amount"):
        run_concurrently([slow, broken, slow])

    assert finished.value == 2


def test_trial_counter_is_thread_safe():
    counter = TrialCounter()
    run_concurrently([counter.increment] * 50)
    assert counter.value == 50


# =============================================================================
# Scenarios (timing dependent: only bounds and bookkeeping are asserted)
# =============================================================================

def test_concurrent_deposits_lose_balance_but_not_count():
    outcome = run_concurrent_deposits(10, 1)

    assert outcome.expected_balance == 10
    assert outcome.final_balance <= 10
    assert outcome.transaction_count == 10
    assert outcome.money_lost == 10 - outcome.final_balance
    assert outcome.lost_updates == int(outcome.money_lost)
    assert outcome.corrupted == (outcome.final_balance != 10)


def test_concurrent_deposits_with_batches():
    outcome = run_concurrent_deposits(4, 1, initial_balance=100, deposits_per_worker=5)

    assert outcome.operations == 20
    assert outcome.expected_balance == 120
    assert 100 < outcome.final_balance <= 120
    assert outcome.transaction_count == 20


@pytest.mark.parametrize("amount", [0, -5])
def test_invalid_amount_is_a_hard_failure(amount):
    with pytest.raises(InvalidArgument):
        run_concurrent_deposits(5, amount)


@pytest.mark.parametrize("workers", [0, -1])
def test_invalid_worker_count(workers):
    with pytest.raises(InvalidArgument):
        run_concurrent_deposits(workers, 1)


def test_concurrent_withdrawals_report_overdraft_consistently():
    outcome = run_concurrent_withdrawals(20, 100, 1000)

    assert outcome.attempts == 20
    assert 0 <= outcome.successful <= 20
    assert outcome.successful == outcome.transaction_count
    assert outcome.expected_balance == 1000 - 100 * outcome.successful
    assert outcome.overdraft == (outcome.final_balance < 0)
    assert outcome.corrupted == (outcome.final_balance != outcome.expected_balance)


def test_withdraw_zero_is_a_hard_failure():
    with pytest.raises(InvalidArgument):
        run_concurrent_withdrawals(3, 0, 1000)


def test_mixed_operations_bookkeeping():
    outcome = run_mixed_operations(50, 50, 10, 5, 1000)

    assert 0 <= outcome.successful_withdrawals <= 50
    assert outcome.transaction_count == 50 + outcome.successful_withdrawals
    assert outcome.expected_balance == 1000 + 500 - 5 * outcome.successful_withdrawals
    assert outcome.difference == outcome.final_balance - outcome.expected_balance


def test_mixed_operations_rejects_negative_counts():
    with pytest.raises(InvalidArgument):
        run_mixed_operations(-1, 5, 10, 5, 1000)


def test_bidirectional_transfers_totals():
    outcome = run_bidirectional_transfers(50, 10, 1000)

    assert outcome.total_before == 2000
    assert outcome.total_after == outcome.balance_a + outcome.balance_b
    assert outcome.delta == outcome.total_after - 2000
    if outcome.delta > 0:
        assert outcome.kind == "creation"
    elif outcome.delta < 0:
        assert outcome.kind == "destruction"
    else:
        assert outcome.conserved
    assert 0 <= outcome.successful_a_to_b <= 50
    assert 0 <= outcome.successful_b_to_a <= 50


@pytest.mark.parametrize("concurrent_trials", [False, True])
def test_corruption_frequency_matches_trial_outcomes(concurrent_trials):
    report = measure_corruption_frequency(20, workers=10, amount=1,
                                          concurrent_trials=concurrent_trials)

    assert report.trials == 20
    assert len(report.final_balances) == 20
    assert all(balance <= 10 for balance in report.final_balances)
    wrong = sum(1 for balance in report.final_balances if balance != 10)
    assert report.corrupted_trials == wrong
    assert report.rate == pytest.approx(wrong / 20 * 100)


def test_corruption_frequency_needs_trials():
    with pytest.raises(InvalidArgument):
        measure_corruption_frequency(0)


# =============================================================================
# Outcome arithmetic (deterministic)
# =============================================================================

def test_deposit_outcome_lost_updates():
    outcome = DepositOutcome(Decimal(1000), Decimal(10), 100, Decimal(1730), 100)

    assert outcome.expected_balance == 2000
    assert outcome.money_lost == 270
    assert outcome.lost_updates == 27
    assert outcome.corrupted


def test_withdrawal_outcome_flags_overdraft():
    outcome = WithdrawalOutcome(Decimal(1000), Decimal(100), 20, 13, Decimal(-300), 13)

    assert outcome.expected_balance == -300
    assert outcome.overdraft
    assert not outcome.corrupted


def test_withdrawal_outcome_without_overdraft():
    outcome = WithdrawalOutcome(Decimal(1000), Decimal(100), 20, 10, Decimal(0), 10)
    assert not outcome.overdraft
    assert not outcome.corrupted


@pytest.mark.parametrize("final, corrupted", [
    (Decimal("1250.00"), False),
    (Decimal("1250.005"), False),
    (Decimal("1249.98"), True),
    (Decimal("1260"), True),
])
def test_mixed_outcome_uses_tolerance(final, corrupted):
    outcome = MixedOutcome(Decimal(1000), Decimal(10), 50, Decimal(5), 50, 50, final, 100)

    assert outcome.expected_balance == 1250
    assert outcome.corrupted is corrupted


@pytest.mark.parametrize("balance_a, balance_b, kind, delta", [
    (Decimal(1010), Decimal(1000), "creation", Decimal(10)),
    (Decimal(980), Decimal(1000), "destruction", Decimal(-20)),
    (Decimal(990), Decimal(1010), None, Decimal(0)),
])
def test_transfer_outcome_reports_sign(balance_a, balance_b, kind, delta):
    outcome = TransferOutcome(Decimal(10), 50, Decimal(2000), balance_a, balance_b, 50, 50)

    assert outcome.delta == delta
    assert outcome.kind == kind
    assert outcome.conserved == (kind is None)


def test_frequency_report_rate():
    report = FrequencyReport(trials=20, workers=10, amount=Decimal(1), corrupted_trials=7)
    assert report.expected_balance == 10
    assert report.rate == pytest.approx(35.0)
