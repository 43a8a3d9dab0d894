"""
Exceptions for the Block Grader Core.

Every error here is recoverable: callers degrade to "keep editing" rather
than tearing down the session.
"""

from typing import Optional, Any, Dict


class BlockGraderError(Exception):
    """Base exception for all block grader errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(BlockGraderError):
    """Raised when a block graph invariant would be violated."""

    def __init__(self, message: str, node_id: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.node_id = node_id


class ParseError(BlockGraderError):
    """Raised when a serialized workspace cannot be turned back into a graph."""

    def __init__(self, message: str, fragment: str = "",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.fragment = fragment

    def __str__(self) -> str:
        base = super().__str__()
        if self.fragment:
            return f"{base} (near: {self.fragment[:80]!r})"
        return base


class CodegenError(BlockGraderError):
    """Raised when a graph is structurally unfit for code generation."""

    def __init__(self, message: str, node_id: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.node_id = node_id


class RuntimeFault(BlockGraderError):
    """Raised when a generated program fails while being loaded or invoked."""

    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message)
        self.original = original


class InvocationTimeout(RuntimeFault):
    """Raised when a single invocation exceeds its wall-clock budget."""

    def __init__(self, seconds: float):
        super().__init__(f"Execution timed out after {seconds:g}s")
        self.seconds = seconds


class PersistenceError(BlockGraderError):
    """Raised when a key-value store read or write fails."""

    def __init__(self, message: str, key: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.key = key


class SubmissionTransportError(BlockGraderError):
    """Raised when the submissions API cannot be reached or rejects a payload."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        # 4xx other than throttling means the payload itself was refused
        if self.status_code is None:
            return True
        return self.status_code >= 500 or self.status_code == 429


class SessionStateError(BlockGraderError):
    """Raised when a session transition is not allowed from the current state."""
    pass


class HarnessBusyError(BlockGraderError):
    """Raised when a run is requested while another run is in flight."""
    pass
