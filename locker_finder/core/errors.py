"""Error taxonomy raised by the discovery engine."""

from __future__ import annotations


class DiscoveryError(Exception):
    """Base class for every failure ``discover`` can surface."""


class InvalidInputError(DiscoveryError):
    """Malformed token address or hint block. Raised before any RPC."""


class TransientRpcError(DiscoveryError):
    """A chain call kept failing after all retry attempts.

    The adapter failure from the final attempt is kept on ``last_error``
    and chained as ``__cause__``.
    """

    def __init__(self, message: str, last_error: BaseException | None = None) -> None:
        super().__init__(message)
        self.last_error = last_error


class InvalidEventFormatError(DiscoveryError):
    """A mint event matched the signature but lacks required topics."""


class NotFoundError(DiscoveryError):
    """The searched range holds no locker pattern for the token."""

    def __init__(self, message: str, scope: int | str) -> None:
        super().__init__(message)
        # Probed block number (targeted) or token address (full scan)
        self.scope = scope


class RpcRequestError(Exception):
    """A single JSON-RPC request failed (transport, HTTP or RPC error)."""

    def __init__(self, method: str, message: str, code: int | None = None) -> None:
        super().__init__(f"{method}: {message}")
        self.method = method
        self.code = code
