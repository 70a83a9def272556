"""
Fault-injection timings and money helpers.

The delays are not incidental latency. They are the mechanism that keeps the
read-to-write window open long enough for another thread to slip in, so the
failure modes show up on (almost) every run instead of once in a blue moon.

time.sleep() releases the GIL, which is what hands control to another thread
in the middle of an operation.
"""

import os
from dataclasses import dataclass
from decimal import Decimal

from .errors import InvalidArgument

DELAY_SCALE_ENV = "RACE_LAB_DELAY_SCALE"

# Balances closer than this are treated as equal (mixed scenario).
EPSILON = Decimal("0.01")


@dataclass(frozen=True)
class DelayProfile:
    """
    Seconds to sleep at each suspension point of an account operation.

    read     : after reading the balance, before computing the new value
    write    : after computing, before writing it back
    transfer : before the debit and again before the credit of a transfer
    """

    read: float = 0.001
    write: float = 0.001
    transfer: float = 0.002

    def __post_init__(self):
        for name in ("read", "write", "transfer"):
            if getattr(self, name) < 0:
                raise InvalidArgument(f"{name} delay must not be negative")

    def scaled(self, factor: float) -> "DelayProfile":
        if factor < 0:
            raise InvalidArgument("delay scale must not be negative")
        return DelayProfile(
            read=self.read * factor,
            write=self.write * factor,
            transfer=self.transfer * factor,
        )

    @classmethod
    def from_env(cls, environ=None) -> "DelayProfile":
        """Default profile, multiplied by $RACE_LAB_DELAY_SCALE when set."""
        environ = os.environ if environ is None else environ
        raw = environ.get(DELAY_SCALE_ENV, "").strip()
        if not raw:
            return cls()
        try:
            factor = float(raw)
        except ValueError:
            raise InvalidArgument(f"{DELAY_SCALE_ENV}={raw!r} is not a number")
        return cls().scaled(factor)


DEFAULT_DELAYS = DelayProfile()

# No suspension at all -- useful for single-threaded checks.
NO_DELAYS = DelayProfile(read=0.0, write=0.0, transfer=0.0)


def as_money(value) -> Decimal:
    """Normalize int/str/float/Decimal to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def require_positive(amount, name: str = "amount") -> Decimal:
    amount = as_money(amount)
    if amount <= 0:
        raise InvalidArgument(f"{name} must be positive, got {amount}")
    return amount


def require_count(value: int, name: str) -> int:
    if value <= 0:
        raise InvalidArgument(f"{name} must be positive, got {value}")
    return value
