from .policy import (
    Outcome,
    PolicyResult,
    RetryPolicy,
    build_retry_policy,
    get_or_build_policy,
    reset_policy_cache,
)
from .verifier import verify_policy_result

__all__ = [
    "Outcome",
    "PolicyResult",
    "RetryPolicy",
    "build_retry_policy",
    "get_or_build_policy",
    "reset_policy_cache",
    "verify_policy_result",
]
