"""
Errors raised by the unsafe account and the harness.

Only caller bugs are errors. "Balance too low" is an expected outcome under
contention and is signalled with a False return value, not an exception.
"""


class InvalidArgument(ValueError):
    """A non-positive amount (or count) was passed in."""


class NullTarget(InvalidArgument):
    """transfer() was called without a target account."""
