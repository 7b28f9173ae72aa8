import logging
from typing import TypeVar

from sqlalchemy.exc import DBAPIError

from resilient_repo.exceptions.base import RepositoryTimeoutError
from .policy import PolicyResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


def verify_policy_result(policy_result: PolicyResult[T], repository_name: str) -> T:
    """
    Translate a captured policy outcome into the caller-visible result.

    | Final exception              | Caller sees                                  |
    | ---------------------------- | -------------------------------------------- |
    | none (success)               | the produced value                           |
    | outer timeout (timed_out)    | RepositoryTimeoutError naming the repository |
    | store error (DBAPIError)     | the same exception, unchanged                |
    | anything else                | the same exception, unchanged                |

    Raises:
        RepositoryTimeoutError: If the outer timeout fired.
        Exception: The captured final exception otherwise.
    """
    if policy_result.succeeded:
        return policy_result.result

    exc = policy_result.final_exception

    if policy_result.timed_out and not isinstance(exc, RepositoryTimeoutError):
        logger.warning(
            "policy.timeout",
            extra={"repository": repository_name, "attempts": policy_result.attempts},
        )
        raise RepositoryTimeoutError(
            f"Connecting to the store timed out for {repository_name}",
            repository=repository_name,
        ) from exc

    match exc:
        case DBAPIError():
            # Store errors keep their original type and diagnostics.
            raise exc
        case _:
            raise exc
