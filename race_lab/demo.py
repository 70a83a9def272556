"""
Race Lab Demo

Runs every scenario against the unsafe account and prints what went wrong.

Run: python -m race_lab            (all scenarios)
     python -m race_lab --scenario transfers --trials 50 -v
     RACE_LAB_DELAY_SCALE=5 python -m race_lab   (wider race windows)

Numbers change from run to run -- that is the point. The scheduler picks a
different interleaving every time.
"""

import argparse
import logging

from .config import DelayProfile
from .harness import (
    measure_corruption_frequency,
    run_bidirectional_transfers,
    run_concurrent_deposits,
    run_concurrent_withdrawals,
    run_mixed_operations,
)
from .trace import run_lost_update_analysis, run_two_depositor_trace

SCENARIOS = ("deposits", "withdrawals", "mixed", "transfers", "frequency",
             "trace", "analysis")


def banner(title: str):
    print("=" * 60)
    print(title)
    print("=" * 60)


def demo_deposits(workers: int, delays: DelayProfile):
    banner(f"Lost updates: {workers} threads x 100 deposits of $1")
    outcome = run_concurrent_deposits(workers, 1, deposits_per_worker=100,
                                      delays=delays)
    print(f"Expected balance:   ${outcome.expected_balance}")
    print(f"Actual balance:     ${outcome.final_balance}")
    print(f"Transactions:       {outcome.transaction_count} "
          f"(expected {outcome.operations})")
    print(f"Money lost:         ${outcome.money_lost} "
          f"(~{outcome.lost_updates} deposits overwritten)")
    print("RACE CONDITION DETECTED" if outcome.corrupted
          else "No race condition detected (rare!)")
    print()


def demo_withdrawals(delays: DelayProfile):
    banner("Overdraft: 20 threads each withdraw $100 from $1000")
    outcome = run_concurrent_withdrawals(20, 100, 1000, delays=delays)
    print(f"Successful withdrawals: {outcome.successful}/{outcome.attempts}")
    print(f"Expected balance:       ${outcome.expected_balance}")
    print(f"Actual balance:         ${outcome.final_balance}")
    if outcome.overdraft:
        print(f"OVERDRAFT DETECTED: balance is negative (${outcome.final_balance})")
    elif outcome.corrupted:
        print("RACE CONDITION: balance does not match successful withdrawals")
    else:
        print("No race condition detected")
    print()


def demo_mixed(delays: DelayProfile):
    banner("Mixed: 50 deposits of $10 and 50 withdrawals of $5 on $1000")
    outcome = run_mixed_operations(50, 50, 10, 5, 1000, delays=delays)
    print(f"Successful withdrawals: {outcome.successful_withdrawals}/{outcome.withdrawals}")
    print(f"Expected balance:       ${outcome.expected_balance}")
    print(f"Actual balance:         ${outcome.final_balance}")
    print(f"Transactions:           {outcome.transaction_count}")
    if outcome.corrupted:
        print(f"RACE CONDITION: off by ${outcome.difference}")
    print()


def demo_transfers(delays: DelayProfile):
    banner("Transfers: 50 x $10 each way between two $1000 accounts")
    outcome = run_bidirectional_transfers(50, 10, 1000, delays=delays)
    print(f"Total before: ${outcome.total_before}")
    print(f"Total after:  ${outcome.total_after} "
          f"(A: ${outcome.balance_a}, B: ${outcome.balance_b})")
    print(f"Difference:   ${outcome.delta}")
    if outcome.kind == "creation":
        print("MONEY CREATION BUG: total balance increased!")
    elif outcome.kind == "destruction":
        print("MONEY DESTRUCTION BUG: total balance decreased!")
    else:
        print("No money creation/destruction detected")
    print()


def demo_frequency(trials: int, workers: int, delays: DelayProfile):
    banner(f"Frequency: {trials} runs of {workers} concurrent $1 deposits")
    report = measure_corruption_frequency(trials, workers=workers, delays=delays)
    for run, balance in enumerate(report.final_balances, start=1):
        if balance != report.expected_balance:
            print(f"  Run {run}: expected ${report.expected_balance}, got ${balance}")
    print(f"Race conditions detected: {report.corrupted_trials}/{report.trials} "
          f"({report.rate:.1f}%)")
    if not report.corrupted_trials:
        print("No race conditions seen -- try more trials or a bigger delay scale")
    print()


def demo_trace():
    banner("Trace: two deposits, step by step")
    outcome = run_two_depositor_trace()
    for line in outcome.narrative():
        print(f"  {line}")
    print()


def demo_analysis(delays: DelayProfile):
    banner("Analysis: 100 deposits of $10 that all 'succeed'")
    analysis = run_lost_update_analysis(delays=delays)
    print(f"Deposits that completed:   {len(analysis.completions)}")
    print(f"Transaction count:         {analysis.transaction_count}")
    print(f"Expected final balance:    ${analysis.expected_balance}")
    print(f"Actual final balance:      ${analysis.final_balance}")
    if analysis.money_lost > 0:
        print(f"LOST UPDATES: ${analysis.money_lost} lost "
              f"(approximately {analysis.lost_deposits} deposits)")
        print("  No deposit raised -- threads overwrote each other's work")
    print()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="race-lab",
        description="Reproduce race conditions on an unsynchronized bank account.",
    )
    parser.add_argument("--scenario", choices=SCENARIOS + ("all",), default="all")
    parser.add_argument("--trials", type=int, default=20,
                        help="runs for the frequency scenario (default: 20)")
    parser.add_argument("--workers", type=int, default=10,
                        help="threads per deposit run (default: 10)")
    parser.add_argument("--delay-scale", type=float, default=None,
                        help="multiply every delay (default: $RACE_LAB_DELAY_SCALE or 1)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="log every worker step")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(threadName)-10s %(name)s: %(message)s",
        )

    delays = DelayProfile.from_env()
    if args.delay_scale is not None:
        delays = DelayProfile().scaled(args.delay_scale)

    selected = SCENARIOS if args.scenario == "all" else (args.scenario,)
    runners = {
        "deposits": lambda: demo_deposits(args.workers, delays),
        "withdrawals": lambda: demo_withdrawals(delays),
        "mixed": lambda: demo_mixed(delays),
        "transfers": lambda: demo_transfers(delays),
        "frequency": lambda: demo_frequency(args.trials, args.workers, delays),
        "trace": demo_trace,
        "analysis": lambda: demo_analysis(delays),
    }
    for name in selected:
        runners[name]()

    print("Done.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
