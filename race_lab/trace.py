"""
Watching a Lost Update Happen

Two views of the same bug:

1. run_two_depositor_trace(): exactly two threads deposit into one account.
   Every step (read, compute, write, increment) is timestamped, so you can
   read the interleaving line by line:

       [Thread 1] read balance: 100
       [Thread 2] read balance: 100      <- both saw 100
       [Thread 1] wrote 150
       [Thread 2] wrote 130              <- Thread 1's $50 is gone

2. run_lost_update_analysis(): many threads deposit, and each one records
   that it "completed successfully". Every deposit returns normally, the
   transaction count is right, and the money is still missing.

The trace log and the completion records are the only things guarded by a
lock here. The account itself never is.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from decimal import Decimal

from .account import UnsafeBankAccount
from .config import (
    DEFAULT_DELAYS,
    DelayProfile,
    as_money,
    require_count,
    require_positive,
)
from .harness import run_concurrently

logger = logging.getLogger(__name__)

# Much wider windows than the regular account, so a two-thread race is the norm.
TRACE_DELAYS = DelayProfile(read=0.010, write=0.005, transfer=0.005)
TRACE_LEAD_IN = 0.005

STEPS = ("read", "compute", "write", "increment")


@dataclass
class TraceEvent:
    worker: str
    step: str
    value: Decimal
    timestamp: float

    def describe(self) -> str:
        messages = {
            "read": f"read balance: {self.value}",
            "compute": f"computed new balance: {self.value}",
            "write": f"wrote new balance: {self.value}",
            "increment": f"incremented transaction count to: {int(self.value)}",
        }
        return f"[{self.worker}] {messages[self.step]}"


class TraceLog:
    """Append-only, thread-safe list of TraceEvents."""

    def __init__(self):
        self._events: list[TraceEvent] = []
        self._lock = threading.Lock()
        self._origin = time.perf_counter()

    def record(self, worker: str, step: str, value) -> None:
        event = TraceEvent(worker, step, as_money(value),
                           time.perf_counter() - self._origin)
        with self._lock:
            self._events.append(event)
        logger.debug(event.describe())

    def events(self) -> list[TraceEvent]:
        with self._lock:
            return sorted(self._events, key=lambda e: e.timestamp)


class TracedAccount:
    """Same broken deposit as UnsafeBankAccount, narrated step by step."""

    def __init__(self, initial_balance=0, delays: DelayProfile = TRACE_DELAYS,
                 log: TraceLog | None = None):
        self._balance = as_money(initial_balance)
        self._transaction_count = 0
        self.delays = delays
        self.log = log or TraceLog()

    @property
    def balance(self) -> Decimal:
        return self._balance

    @property
    def transaction_count(self) -> int:
        return self._transaction_count

    def deposit_with_trace(self, amount, worker: str) -> None:
        amount = require_positive(amount)

        time.sleep(TRACE_LEAD_IN)
        current = self._balance
        self.log.record(worker, "read", current)

        time.sleep(self.delays.read)     # this is where the other thread sneaks in
        new_balance = current + amount
        self.log.record(worker, "compute", new_balance)

        time.sleep(self.delays.write)
        self._balance = new_balance
        self.log.record(worker, "write", new_balance)

        self._transaction_count += 1
        self.log.record(worker, "increment", self._transaction_count)


@dataclass
class TraceOutcome:
    initial_balance: Decimal
    amounts: dict[str, Decimal]
    final_balance: Decimal
    transaction_count: int
    events: list[TraceEvent] = field(default_factory=list)

    @property
    def expected_balance(self) -> Decimal:
        return self.initial_balance + sum(self.amounts.values())

    @property
    def money_lost(self) -> Decimal:
        return self.expected_balance - self.final_balance

    def steps_for(self, worker: str) -> list[str]:
        return [e.step for e in self.events if e.worker == worker]

    def narrative(self) -> list[str]:
        lines = [f"Initial balance: {self.initial_balance}"]
        for worker, amount in self.amounts.items():
            lines.append(f"[{worker}] deposits {amount}")
        lines.extend(f"{e.timestamp * 1000:7.2f}ms {e.describe()}" for e in self.events)
        terms = " + ".join(str(a) for a in self.amounts.values())
        lines.append(f"Expected balance: {self.initial_balance} + {terms} = {self.expected_balance}")
        lines.append(f"Actual balance: {self.final_balance}")
        if self.money_lost:
            lines.append(f"Money lost: {self.money_lost} -- both deposits "
                         "completed without errors, but one overwrote the other")
        return lines


def run_two_depositor_trace(
    initial_balance=100,
    first_amount=50,
    second_amount=30,
    stagger: float = 0.001,
    delays: DelayProfile = TRACE_DELAYS,
) -> TraceOutcome:
    """
    Two deposits, traced. The second thread starts `stagger` seconds late,
    which is still well inside the first one's read-to-write window.
    """
    account = TracedAccount(initial_balance, delays=delays)
    amounts = {"Thread 1": as_money(first_amount), "Thread 2": as_money(second_amount)}

    def first():
        account.deposit_with_trace(amounts["Thread 1"], "Thread 1")

    def second():
        time.sleep(stagger)
        account.deposit_with_trace(amounts["Thread 2"], "Thread 2")

    run_concurrently([first, second])

    return TraceOutcome(
        initial_balance=as_money(initial_balance),
        amounts=amounts,
        final_balance=account.balance,
        transaction_count=account.transaction_count,
        events=account.log.events(),
    )


# =============================================================================
# Completion records: every deposit "succeeded", money is still missing
# =============================================================================

@dataclass(frozen=True)
class CompletionRecord:
    worker_id: int
    amount: Decimal
    timestamp: float


@dataclass
class LostUpdateAnalysis:
    initial_balance: Decimal
    amount: Decimal
    deposits: int
    final_balance: Decimal
    transaction_count: int
    completions: list[CompletionRecord] = field(default_factory=list)

    @property
    def expected_balance(self) -> Decimal:
        return self.initial_balance + self.deposits * self.amount

    @property
    def money_lost(self) -> Decimal:
        return self.expected_balance - self.final_balance

    @property
    def lost_deposits(self) -> int:
        return int(self.money_lost / self.amount)


def run_lost_update_analysis(
    deposits: int = 100,
    amount=10,
    initial_balance=1000,
    delays: DelayProfile = DEFAULT_DELAYS,
) -> LostUpdateAnalysis:
    require_count(deposits, "deposits")
    amount = as_money(amount)
    account = UnsafeBankAccount(initial_balance, delays=delays)
    completions: list[CompletionRecord] = []
    completions_lock = threading.Lock()

    def depositor(worker_id: int):
        account.deposit(amount)
        record = CompletionRecord(worker_id, amount, time.time())
        with completions_lock:
            completions.append(record)

    run_concurrently([lambda i=i: depositor(i) for i in range(deposits)])

    analysis = LostUpdateAnalysis(
        initial_balance=as_money(initial_balance),
        amount=amount,
        deposits=deposits,
        final_balance=account.balance,
        transaction_count=account.transaction_count,
        completions=sorted(completions, key=lambda r: r.timestamp),
    )
    logger.info("analysis: %d deposits completed, %s lost (~%d deposits)",
                len(analysis.completions), analysis.money_lost,
                analysis.lost_deposits)
    return analysis
