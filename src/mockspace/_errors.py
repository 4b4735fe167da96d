from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mockspace._caller import CallSite


class MockExpectationError(AssertionError):
    """Base class for every failure a double reports to the test run."""


class UnexpectedMessageError(MockExpectationError):
    def __init__(
        self,
        subject: str,
        message: str,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
        *,
        call_site: CallSite | None = None,
        reason: str = "No expectation was set for this call.",
    ) -> None:
        self.subject = subject
        self.message = message
        self.args_received = args
        self.kwargs_received = kwargs
        self.call_site = call_site
        text = (
            f"Unexpected call to '{message}' on {subject} "
            f"with args={args}, kwargs={kwargs}. {reason}"
        )
        if call_site is not None:
            text += f" (called at {call_site})"
        super().__init__(text)


class OutOfOrderError(MockExpectationError):
    pass


@dataclass(frozen=True, kw_only=True, slots=True)
class VerificationFailure:
    subject: str
    message: str
    expected: str
    actual: int
    arguments: str = ""
    call_site: CallSite | None = None

    def describe(self) -> str:
        text = (
            f"{self.subject} expected '{self.message}'{self.arguments} "
            f"{self.expected}, received {self.actual} time(s)"
        )
        if self.call_site is not None:
            text += f" (declared at {self.call_site})"
        return text


class ExpectationsNotMetError(MockExpectationError):
    def __init__(self, failures: Sequence[VerificationFailure]) -> None:
        self.failures = list(failures)
        msg = "Unsatisfied expectations:\n" + "\n".join(
            f"  - {f.describe()}" for f in self.failures
        )
        super().__init__(msg)


class RestorationError(RuntimeError):
    """Raised after teardown when one or more originals could not be put back.

    Every restoration is attempted before this is raised, so the remaining
    objects are already back to their pre-test behavior.
    """

    def __init__(self, errors: Sequence[tuple[str, BaseException]]) -> None:
        self.errors = list(errors)
        msg = "Failed to restore original behavior:\n" + "\n".join(
            f"  - {where}: {exc!r}" for where, exc in self.errors
        )
        super().__init__(msg)


class InterceptionError(TypeError):
    pass


class ConfigurationError(ValueError):
    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        message = "Configuration validation failed:\n" + "\n".join(
            f"  - {e}" for e in errors
        )
        super().__init__(message)
