"""
Utilities Package - Logging and Exception Handling
"""
from .logging import get_logger, setup_logging
from .exceptions import (
    ErrorKind,
    TrialScoutError,
    AdapterError,
    DiscoveryError,
    ExtractionError,
    MatchingError,
    SummarizationError,
    PipelineError,
    PipelineCancelledError,
    DiscoveryFailedError,
    PipelineStateError,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "ErrorKind",
    "TrialScoutError",
    "AdapterError",
    "DiscoveryError",
    "ExtractionError",
    "MatchingError",
    "SummarizationError",
    "PipelineError",
    "PipelineCancelledError",
    "DiscoveryFailedError",
    "PipelineStateError",
]
