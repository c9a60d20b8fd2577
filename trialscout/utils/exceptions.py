"""
Custom Exception Hierarchy

Provides specific exception types for each pipeline stage with structured
error information. Every error carries an ErrorKind that is decided where the
error is raised, so retry decisions never depend on message text.
"""
from enum import Enum
from typing import Optional, Dict, Any, TYPE_CHECKING

if TYPE_CHECKING:
    from trialscout.core.records import PipelineRun


class ErrorKind(str, Enum):
    """Whether a failed call may succeed if attempted again."""
    RETRYABLE = "retryable"
    FATAL = "fatal"


class TrialScoutError(Exception):
    """Base exception for all trial matching errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None,
        kind: ErrorKind = ErrorKind.FATAL,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind is ErrorKind.RETRYABLE

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "kind": self.kind.value,
            "details": self.details
        }


# ── Adapter errors (raised by external stage collaborators) ──────────────────

class AdapterError(TrialScoutError):
    """Errors raised by an external stage collaborator."""

    stage = "unknown"
    default_code = "ADAPTER_ERROR"

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.FATAL,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=code or self.default_code,
            details={"stage": self.stage, **(details or {})},
            kind=kind,
        )

    @classmethod
    def rate_limited(cls, message: str = "Rate limit exceeded", **details: Any) -> "AdapterError":
        """Build a retryable error for an upstream rate limit."""
        return cls(message, kind=ErrorKind.RETRYABLE, code="RATE_LIMITED", details=details)

    @classmethod
    def timed_out(cls, message: str = "Upstream request timed out", **details: Any) -> "AdapterError":
        """Build a retryable error for an upstream timeout."""
        return cls(message, kind=ErrorKind.RETRYABLE, code="TIMEOUT", details=details)

    @classmethod
    def not_found(cls, message: str, **details: Any) -> "AdapterError":
        return cls(message, kind=ErrorKind.FATAL, code="NOT_FOUND", details=details)


class DiscoveryError(AdapterError):
    """Errors while searching for candidate trials."""
    stage = "discovery"
    default_code = "DISCOVERY_ERROR"


class ExtractionError(AdapterError):
    """Errors while extracting eligibility criteria for a candidate."""
    stage = "extraction"
    default_code = "EXTRACTION_ERROR"


class MatchingError(AdapterError):
    """Errors while matching a profile against a candidate."""
    stage = "matching"
    default_code = "MATCHING_ERROR"


class SummarizationError(AdapterError):
    """Errors while producing the plain-language summary."""
    stage = "summarization"
    default_code = "SUMMARIZATION_ERROR"


# ── Run-level errors ─────────────────────────────────────────────────────────

class PipelineError(TrialScoutError):
    """A pipeline run ended without a regular result."""

    def __init__(
        self,
        message: str,
        code: str = "PIPELINE_ERROR",
        run: Optional["PipelineRun"] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message=message, code=code, details=details)
        self.run = run


class PipelineCancelledError(PipelineError):
    """The caller signalled cancellation; distinct from an execution failure."""

    def __init__(
        self,
        message: str = "Pipeline cancelled by user",
        run: Optional["PipelineRun"] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message=message, code="PIPELINE_CANCELLED", run=run, details=details)


class DiscoveryFailedError(PipelineError):
    """Discovery itself failed, so no candidate could be processed."""

    def __init__(
        self,
        message: str,
        run: Optional["PipelineRun"] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message=message, code="DISCOVERY_FAILED", run=run, details=details)


class PipelineStateError(TrialScoutError):
    """Illegal stage transition (pending → running → complete | error only)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INVALID_STAGE_TRANSITION", details=details)
