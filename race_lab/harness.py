"""
Concurrency Harness

Key concepts:
- One thread per operation, all released at the same instant through a start
  gate (threading.Event) so they pile onto the account together
- join() every thread, THEN read the account -- the only "await" point
- Compare what the account says with what arithmetic says it should say;
  the difference is the measurement, not an error
- The only lock in here guards harness bookkeeping (the corrupted-trial counter).
  It never protects the account -- that would defeat the demonstration.
- A worker that raises (e.g. a non-positive amount) is a bug in how the
  scenario was built, so its exception is re-raised after the join, unchanged
"""

import logging
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable

from .account import UnsafeBankAccount
from .config import DEFAULT_DELAYS, EPSILON, DelayProfile, as_money, require_count
from .errors import InvalidArgument

logger = logging.getLogger(__name__)


# =============================================================================
# Running N callables at once
# =============================================================================

def run_concurrently(targets: list[Callable[[], object]]) -> list:
    """
    Start one thread per callable, release them together, wait for all.

    Returns each callable's return value, in the order given. If any of them
    raised, the first exception (by position) is re-raised once every thread
    has finished -- other threads are never cancelled.
    """
    start_gate = threading.Event()
    results: list = [None] * len(targets)
    errors: list[Exception | None] = [None] * len(targets)

    def slot(index: int, fn: Callable[[], object]):
        start_gate.wait()
        try:
            # Each thread writes only its own slot (no shared counter to race on).
            results[index] = fn()
        except Exception as exc:
            errors[index] = exc

    threads = [
        threading.Thread(target=slot, args=(i, fn), name=f"worker-{i}")
        for i, fn in enumerate(targets)
    ]
    for t in threads:
        t.start()
    start_gate.set()
    for t in threads:
        t.join()

    for index, exc in enumerate(errors):
        if exc is not None:
            logger.debug("worker-%d failed: %r", index, exc)
            raise exc
    return results


class TrialCounter:
    """Thread-safe counter for harness bookkeeping (NOT for account state)."""

    def __init__(self):
        self._value = 0
        self._lock = threading.Lock()

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


# =============================================================================
# Outcome records
# =============================================================================

@dataclass
class DepositOutcome:
    initial_balance: Decimal
    amount: Decimal
    operations: int
    final_balance: Decimal
    transaction_count: int

    @property
    def expected_balance(self) -> Decimal:
        return self.initial_balance + self.operations * self.amount

    @property
    def money_lost(self) -> Decimal:
        return self.expected_balance - self.final_balance

    @property
    def lost_updates(self) -> int:
        """Approximate number of deposits whose effect was overwritten."""
        return int(self.money_lost / self.amount)

    @property
    def corrupted(self) -> bool:
        return self.final_balance != self.expected_balance


@dataclass
class WithdrawalOutcome:
    initial_balance: Decimal
    amount: Decimal
    attempts: int
    successful: int
    final_balance: Decimal
    transaction_count: int

    @property
    def expected_balance(self) -> Decimal:
        return self.initial_balance - self.amount * self.successful

    @property
    def overdraft(self) -> bool:
        return self.final_balance < 0

    @property
    def corrupted(self) -> bool:
        return self.final_balance != self.expected_balance


@dataclass
class MixedOutcome:
    initial_balance: Decimal
    deposit_amount: Decimal
    deposits: int
    withdraw_amount: Decimal
    withdrawals: int
    successful_withdrawals: int
    final_balance: Decimal
    transaction_count: int

    @property
    def expected_balance(self) -> Decimal:
        return (self.initial_balance
                + self.deposit_amount * self.deposits
                - self.withdraw_amount * self.successful_withdrawals)

    @property
    def difference(self) -> Decimal:
        return self.final_balance - self.expected_balance

    @property
    def corrupted(self) -> bool:
        # decimal rounding tolerance, not exact equality
        return abs(self.difference) > EPSILON


@dataclass
class TransferOutcome:
    amount: Decimal
    transfers_per_direction: int
    total_before: Decimal
    balance_a: Decimal
    balance_b: Decimal
    successful_a_to_b: int
    successful_b_to_a: int

    @property
    def total_after(self) -> Decimal:
        return self.balance_a + self.balance_b

    @property
    def delta(self) -> Decimal:
        """Positive = money created, negative = money destroyed."""
        return self.total_after - self.total_before

    @property
    def kind(self) -> str | None:
        if self.delta > EPSILON:
            return "creation"
        if self.delta < -EPSILON:
            return "destruction"
        return None

    @property
    def conserved(self) -> bool:
        return self.kind is None


@dataclass
class FrequencyReport:
    trials: int
    workers: int
    amount: Decimal
    corrupted_trials: int
    final_balances: list[Decimal] = field(default_factory=list)

    @property
    def expected_balance(self) -> Decimal:
        return self.workers * self.amount

    @property
    def rate(self) -> float:
        """Percentage of trials whose final balance was wrong."""
        return self.corrupted_trials / self.trials * 100


# =============================================================================
# Scenarios
# =============================================================================

def run_concurrent_deposits(
    workers: int,
    amount,
    initial_balance=0,
    deposits_per_worker: int = 1,
    delays: DelayProfile = DEFAULT_DELAYS,
) -> DepositOutcome:
    """Many threads deposit into one account; how much money vanished?"""
    require_count(workers, "workers")
    require_count(deposits_per_worker, "deposits_per_worker")
    amount = as_money(amount)
    account = UnsafeBankAccount(initial_balance, delays=delays)

    def depositor():
        for _ in range(deposits_per_worker):
            account.deposit(amount)

    run_concurrently([depositor] * workers)

    outcome = DepositOutcome(
        initial_balance=as_money(initial_balance),
        amount=amount,
        operations=workers * deposits_per_worker,
        final_balance=account.balance,
        transaction_count=account.transaction_count,
    )
    logger.info("deposits: expected %s, got %s (lost %s)",
                outcome.expected_balance, outcome.final_balance, outcome.money_lost)
    return outcome


def run_concurrent_withdrawals(
    workers: int,
    amount,
    initial_balance,
    delays: DelayProfile = DEFAULT_DELAYS,
) -> WithdrawalOutcome:
    """Many threads withdraw from one account; did it go negative?"""
    require_count(workers, "workers")
    amount = as_money(amount)
    account = UnsafeBankAccount(initial_balance, delays=delays)

    results = run_concurrently([lambda: account.withdraw(amount)] * workers)

    outcome = WithdrawalOutcome(
        initial_balance=as_money(initial_balance),
        amount=amount,
        attempts=workers,
        successful=sum(1 for ok in results if ok),
        final_balance=account.balance,
        transaction_count=account.transaction_count,
    )
    logger.info("withdrawals: %d/%d succeeded, balance %s (expected %s)",
                outcome.successful, workers, outcome.final_balance,
                outcome.expected_balance)
    return outcome


def run_mixed_operations(
    deposits: int,
    withdrawals: int,
    deposit_amount,
    withdraw_amount,
    initial_balance,
    delays: DelayProfile = DEFAULT_DELAYS,
) -> MixedOutcome:
    """Deposits and withdrawals hitting the same account at the same time."""
    if deposits < 0 or withdrawals < 0:
        raise InvalidArgument("operation counts must not be negative")
    require_count(deposits + withdrawals, "operations")
    deposit_amount = as_money(deposit_amount)
    withdraw_amount = as_money(withdraw_amount)
    account = UnsafeBankAccount(initial_balance, delays=delays)

    targets = ([lambda: account.deposit(deposit_amount)] * deposits
               + [lambda: account.withdraw(withdraw_amount)] * withdrawals)
    results = run_concurrently(targets)

    outcome = MixedOutcome(
        initial_balance=as_money(initial_balance),
        deposit_amount=deposit_amount,
        deposits=deposits,
        withdraw_amount=withdraw_amount,
        withdrawals=withdrawals,
        successful_withdrawals=sum(1 for ok in results[deposits:] if ok),
        final_balance=account.balance,
        transaction_count=account.transaction_count,
    )
    logger.info("mixed: expected %s, got %s", outcome.expected_balance,
                outcome.final_balance)
    return outcome


def run_bidirectional_transfers(
    transfers_per_direction: int,
    amount,
    initial_balance,
    delays: DelayProfile = DEFAULT_DELAYS,
) -> TransferOutcome:
    """A -> B and B -> A at the same time. Is A + B still what it was?"""
    require_count(transfers_per_direction, "transfers_per_direction")
    amount = as_money(amount)
    account_a = UnsafeBankAccount(initial_balance, delays=delays)
    account_b = UnsafeBankAccount(initial_balance, delays=delays)
    total_before = account_a.balance + account_b.balance

    targets = []
    for _ in range(transfers_per_direction):
        targets.append(lambda: account_a.transfer(account_b, amount))
        targets.append(lambda: account_b.transfer(account_a, amount))
    results = run_concurrently(targets)

    outcome = TransferOutcome(
        amount=amount,
        transfers_per_direction=transfers_per_direction,
        total_before=total_before,
        balance_a=account_a.balance,
        balance_b=account_b.balance,
        successful_a_to_b=sum(1 for ok in results[0::2] if ok),
        successful_b_to_a=sum(1 for ok in results[1::2] if ok),
    )
    logger.info("transfers: total %s -> %s (delta %s)", outcome.total_before,
                outcome.total_after, outcome.delta)
    return outcome


def measure_corruption_frequency(
    trials: int,
    workers: int = 10,
    amount=1,
    concurrent_trials: bool = False,
    delays: DelayProfile = DEFAULT_DELAYS,
) -> FrequencyReport:
    """
    Repeat a concurrent-deposit trial and count how often it comes out wrong.

    Every trial gets a fresh account. With concurrent_trials=True the trials
    themselves run in parallel, which is why the corrupted count goes through
    a TrialCounter.
    """
    require_count(trials, "trials")
    require_count(workers, "workers")
    amount = as_money(amount)
    expected = workers * amount
    corrupted = TrialCounter()
    final_balances: list[Decimal] = [Decimal(0)] * trials

    def trial(run: int):
        account = UnsafeBankAccount(0, delays=delays)
        run_concurrently([lambda: account.deposit(amount)] * workers)
        final_balances[run] = account.balance
        if account.balance != expected:
            corrupted.increment()
            logger.debug("run %d: expected %s, got %s", run + 1, expected,
                         account.balance)

    if concurrent_trials:
        run_concurrently([lambda run=run: trial(run) for run in range(trials)])
    else:
        for run in range(trials):
            trial(run)

    report = FrequencyReport(
        trials=trials,
        workers=workers,
        amount=amount,
        corrupted_trials=corrupted.value,
        final_balances=final_balances,
    )
    logger.info("frequency: %d/%d corrupted (%.1f%%)", report.corrupted_trials,
                trials, report.rate)
    return report
