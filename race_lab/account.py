"""
The Unsafe Bank Account

Key concepts:
- Every operation is read -> compute -> write, and NOTHING makes that atomic
- A sleep sits between the read and the write, so another thread can read the
  same (soon to be stale) balance before we write ours back = lost update
- withdraw() checks the balance, sleeps, then writes: two threads can both pass
  the check before either debits = overdraft (time-of-check to time-of-use)
- transfer() debits and credits as two separate writes: transfers running the
  other way between the same accounts can interleave and create or destroy money
- There is no lock, no version number, no atomic anything in this file.
  Adding one would defeat the point.

The transaction count is bumped with a plain "+= 1" right after the write.
That is not atomic either, but it has no sleep in the middle, so in practice
the count survives and only the balance gets corrupted.
"""

import time

from .config import DEFAULT_DELAYS, DelayProfile, as_money, require_positive
from .errors import NullTarget


class UnsafeBankAccount:
    """
    A bank account that is deliberately NOT thread-safe.

    Parameters
    ----------
    initial_balance : int | str | Decimal
        Starting balance (default 0). May be negative; nothing is enforced.
    delays : DelayProfile
        How long each operation sleeps between its read and its write.
    """

    def __init__(self, initial_balance=0, delays: DelayProfile = DEFAULT_DELAYS):
        self._balance = as_money(initial_balance)
        self._transaction_count = 0
        self.delays = delays

    def __repr__(self) -> str:
        return (f"UnsafeBankAccount(balance={self._balance}, "
                f"transactions={self._transaction_count})")

    # -- racy snapshots -----------------------------------------------------

    @property
    def balance(self):
        return self._balance

    @property
    def transaction_count(self) -> int:
        return self._transaction_count

    # -- operations ---------------------------------------------------------

    def deposit(self, amount) -> None:
        amount = require_positive(amount)

        current = self._balance          # read
        time.sleep(self.delays.read)     # window opens: others read the same value
        new_balance = current + amount   # compute from a possibly stale read
        time.sleep(self.delays.write)
        self._balance = new_balance      # write: clobbers anything written meanwhile
        self._transaction_count += 1

    def withdraw(self, amount) -> bool:
        """Return True if the money was taken, False if the balance was too low."""
        amount = require_positive(amount)

        current = self._balance
        time.sleep(self.delays.read)

        if current >= amount:            # check against a value that may be stale
            time.sleep(self.delays.write)
            self._balance = current - amount
            self._transaction_count += 1
            return True

        return False

    def transfer(self, target: "UnsafeBankAccount", amount) -> bool:
        """
        Move `amount` to `target`. Returns False if this account looked too poor.

        The debit and the credit are two separate writes. Each one is computed
        from the balance as it was read BEFORE the sleep that precedes it.
        """
        amount = require_positive(amount)
        if target is None:
            raise NullTarget("transfer target is required")

        source_before = self._balance
        if source_before >= amount:      # no delay here, but the check still races
            time.sleep(self.delays.transfer)
            self._balance = source_before - amount
            self._transaction_count += 1

            target_before = target._balance
            time.sleep(self.delays.transfer)   # "network hop" to the other account
            target._balance = target_before + amount
            target._transaction_count += 1
            return True

        return False

    def reset(self, new_balance=0) -> None:
        """
        Put the account back to a clean state between trials.

        Only call this when nothing else is touching the account; it is no
        safer than any other method here.
        """
        self._balance = as_money(new_balance)
        self._transaction_count = 0
