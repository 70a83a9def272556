"""
race-lab: an intentionally broken bank account and the harness that measures
how badly it breaks under concurrency.
"""

from .account import UnsafeBankAccount
from .config import DEFAULT_DELAYS, EPSILON, DelayProfile
from .errors import InvalidArgument, NullTarget
from .harness import (
    DepositOutcome,
    FrequencyReport,
    MixedOutcome,
    TransferOutcome,
    WithdrawalOutcome,
    measure_corruption_frequency,
    run_bidirectional_transfers,
    run_concurrent_deposits,
    run_concurrent_withdrawals,
    run_mixed_operations,
)
from .trace import (
    CompletionRecord,
    TracedAccount,
    TraceEvent,
    run_lost_update_analysis,
    run_two_depositor_trace,
)

__all__ = [
    "UnsafeBankAccount",
    "DelayProfile",
    "DEFAULT_DELAYS",
    "EPSILON",
    "InvalidArgument",
    "NullTarget",
    "DepositOutcome",
    "WithdrawalOutcome",
    "MixedOutcome",
    "TransferOutcome",
    "FrequencyReport",
    "run_concurrent_deposits",
    "run_concurrent_withdrawals",
    "run_mixed_operations",
    "run_bidirectional_transfers",
    "measure_corruption_frequency",
    "TracedAccount",
    "TraceEvent",
    "CompletionRecord",
    "run_two_depositor_trace",
    "run_lost_update_analysis",
]
