"""
Error types raised by the chain-state resolution layer.

Permanent errors (bad input, out-of-range targets, malformed chain data) are
distinguished from transient RPC failures through the ``permanent`` attribute
so callers never retry a validation failure.
"""


class ResolverError(Exception):
    """Base class for resolution errors."""

    permanent: bool = True


class OutOfRangeError(ResolverError):
    """The target timestamp predates the first sample of the chain."""


class UnsafeInputError(ResolverError, ValueError):
    """A search key lies outside the range where binary search is valid."""


class InvalidSearchRangeError(ResolverError, ValueError):
    """The caller supplied bounds that cannot contain the answer."""


class MalformedResponseError(ResolverError):
    """The chain returned data that contradicts a protocol invariant."""


class RpcError(ResolverError):
    """A JSON-RPC endpoint answered with an error object."""

    permanent = False

    def __init__(self, method: str, code: int | None, message: str) -> None:
        super().__init__(f"{method} failed ({code}): {message}")
        self.method = method
        self.code = code
