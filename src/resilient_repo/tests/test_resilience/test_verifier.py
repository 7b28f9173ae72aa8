import asyncio

import pytest

from resilient_repo.exceptions import (
    OperationCancelledError,
    RepositoryTimeoutError,
    RetriesExhaustedError,
)
from resilient_repo.resilience import Outcome, PolicyResult, verify_policy_result

from ..test_fixtures.repository_fixtures import store_error


def failure(exc: Exception) -> PolicyResult:
    return PolicyResult(Outcome.FAILURE, final_exception=exc, attempts=1)


def test_success_returns_value():
    result = PolicyResult(Outcome.SUCCESSFUL, result={"Id": 1}, attempts=1)

    assert verify_policy_result(result, "WidgetRepository") == {"Id": 1}


def test_success_with_none_value():
    assert verify_policy_result(PolicyResult(Outcome.SUCCESSFUL), "WidgetRepository") is None


def test_timeout_becomes_repository_timeout():
    cause = asyncio.TimeoutError()
    result = PolicyResult(Outcome.FAILURE, final_exception=cause, attempts=1, timed_out=True)

    with pytest.raises(RepositoryTimeoutError) as excinfo:
        verify_policy_result(result, "WidgetRepository")

    assert "WidgetRepository" in str(excinfo.value)
    assert excinfo.value.repository == "WidgetRepository"
    assert excinfo.value.__cause__ is cause
    assert isinstance(excinfo.value, TimeoutError)


def test_timeout_raised_by_the_action_is_reraised_unchanged():
    error = TimeoutError("socket read timed out")

    with pytest.raises(TimeoutError) as excinfo:
        verify_policy_result(failure(error), "WidgetRepository")

    assert excinfo.value is error
    assert not isinstance(excinfo.value, RepositoryTimeoutError)


def test_store_error_is_reraised_unchanged():
    error = store_error(2627, "Violation of UNIQUE KEY constraint")

    with pytest.raises(type(error)) as excinfo:
        verify_policy_result(failure(error), "WidgetRepository")

    assert excinfo.value is error


@pytest.mark.parametrize(
    "error",
    [
        RetriesExhaustedError("Retries exceeded", repository="WidgetRepository", attempts=11),
        OperationCancelledError(repository="WidgetRepository"),
        KeyError("Id"),
    ],
)
def test_other_errors_are_reraised_unchanged(error):
    with pytest.raises(type(error)) as excinfo:
        verify_policy_result(failure(error), "WidgetRepository")

    assert excinfo.value is error


def test_repository_timeout_is_not_wrapped_twice():
    error = RepositoryTimeoutError("already translated", repository="WidgetRepository")

    with pytest.raises(RepositoryTimeoutError) as excinfo:
        verify_policy_result(failure(error), "OtherRepository")

    assert excinfo.value is error
