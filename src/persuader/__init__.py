"""Persuader: validation-driven retry pipeline for structured LLM output.

Send a prompt, validate the response against a schema, and feed precise
field-level corrections back to the model until the output passes or
the retry budget runs out.
"""

from persuader._version import __version__

# Core entry point
from persuader.orchestrator import Persuader, PipelineState

# Requests and results
from persuader.models.request import PipelineRequest
from persuader.models.result import (
    Attempt,
    ErrorKind,
    ExecutionMetadata,
    FailureInfo,
    FailureReason,
    Outcome,
    PersuadeResult,
    TokenUsage,
    ValidationIssue,
)

# Sessions
from persuader.models.session import (
    InitSessionResult,
    SessionInfo,
    SessionMetrics,
    SessionStatus,
)
from persuader.session import SessionCoordinator

# Configuration
from persuader.models.config import (
    BackoffConfig,
    EnhancementConfig,
    PersuaderConfig,
    SuggestionConfig,
)

# Validation
from persuader.validation import (
    FieldFailure,
    PydanticSchema,
    SchemaChecker,
    SchemaCheckResult,
    ValidationAdapter,
    decode_response,
)
from persuader.suggestions import levenshtein, suggest_values

# Retry and scoring
from persuader.retry import RetryPolicy
from persuader.orchestrator.scoring import ImprovementEvaluator, RichnessEvaluator

# Exceptions
from persuader.exceptions import (
    ConfigurationError,
    ParseError,
    PersuaderError,
    SchemaValidationError,
    SessionError,
)
from persuader.providers.errors import ProviderError, ProviderErrorKind

__all__ = [
    "__version__",
    # Core
    "Persuader",
    "PipelineState",
    # Requests and results
    "PipelineRequest",
    "PersuadeResult",
    "Attempt",
    "Outcome",
    "FailureReason",
    "FailureInfo",
    "ExecutionMetadata",
    "ValidationIssue",
    "ErrorKind",
    "TokenUsage",
    # Sessions
    "SessionCoordinator",
    "SessionInfo",
    "SessionStatus",
    "SessionMetrics",
    "InitSessionResult",
    # Configuration
    "PersuaderConfig",
    "BackoffConfig",
    "EnhancementConfig",
    "SuggestionConfig",
    # Validation
    "SchemaChecker",
    "SchemaCheckResult",
    "FieldFailure",
    "PydanticSchema",
    "ValidationAdapter",
    "decode_response",
    "levenshtein",
    "suggest_values",
    # Retry and scoring
    "RetryPolicy",
    "ImprovementEvaluator",
    "RichnessEvaluator",
    # Exceptions
    "PersuaderError",
    "ParseError",
    "SchemaValidationError",
    "SessionError",
    "ConfigurationError",
    "ProviderError",
    "ProviderErrorKind",
]
