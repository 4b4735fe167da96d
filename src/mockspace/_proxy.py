from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol, final

from mockspace._caller import CallSite
from mockspace._errors import (
    ConfigurationError,
    ExpectationsNotMetError,
    InterceptionError,
    RestorationError,
    VerificationFailure,
)
from mockspace._expectation import MessageExpectation
from mockspace._handles import ABSENT, describe
from mockspace._method_double import DoubleContext, MethodDouble

logger = logging.getLogger(__name__)

KNOWN_OPTIONS = frozenset({"expected_from"})


class ProxyContext(DoubleContext, Protocol):
    def original_handle_for(self, subject: object, message: str) -> Any: ...


@final
class Proxy:
    def __init__(self, subject: object, context: ProxyContext) -> None:
        self._subject = subject
        self._context = context
        self._method_doubles: dict[str, MethodDouble] = {}
        self.description = describe(subject)

    @property
    def subject(self) -> object:
        return self._subject

    @property
    def messages(self) -> tuple[str, ...]:
        return tuple(self._method_doubles)

    def has_method_double(self, message: str) -> bool:
        return message in self._method_doubles

    def method_double_for(
        self,
        message: str,
        *,
        original: Any = None,
        owns_interception: bool = True,
    ) -> MethodDouble:
        double = self._method_doubles.get(message)
        if double is not None:
            return double

        if not isinstance(message, str) or not message.isidentifier():
            raise TypeError(f"Message must be an identifier, got {message!r}")
        if original is None:
            original = self._context.original_handle_for(self._subject, message)
        if original is ABSENT and self._context.configuration.verify_partial_doubles:
            raise InterceptionError(
                f"{self.description} does not implement '{message}'"
            )

        double = MethodDouble(
            self._subject,
            message,
            self._context,
            original=original,
            owns_interception=owns_interception,
        )
        double.install()
        self._method_doubles[message] = double
        return double

    def add_stub(
        self,
        call_site: CallSite | None,
        message: str,
        options: Mapping[str, Any] | None = None,
        response: Callable[..., Any] | None = None,
    ) -> MessageExpectation:
        check_options(options)
        record = self.method_double_for(message).add_stub(call_site)
        if response is not None:
            record.calls(response)
        return record

    def add_message_expectation(
        self,
        call_site: CallSite | None,
        message: str,
        options: Mapping[str, Any] | None = None,
        response: Callable[..., Any] | None = None,
    ) -> MessageExpectation:
        check_options(options)
        record = self.method_double_for(message).add_expectation(call_site)
        if response is not None:
            record.calls(response)
        return record

    def failures(self) -> list[VerificationFailure]:
        failures: list[VerificationFailure] = []
        for double in self._method_doubles.values():
            failures.extend(double.failures())
        return failures

    def verify(self) -> None:
        failures = self.failures()
        if failures:
            raise ExpectationsNotMetError(failures)

    def reset(self) -> None:
        errors: list[tuple[str, BaseException]] = []
        for double in reversed(list(self._method_doubles.values())):
            try:
                double.restore()
            except Exception as exc:
                logger.exception(
                    "Failed to restore '%s' on %s", double.message, self.description
                )
                errors.append((f"'{double.message}' on {self.description}", exc))
            double.clear()
        self._method_doubles.clear()

        if errors:
            raise RestorationError(errors)

    def __repr__(self) -> str:
        return f"<Proxy for {self.description} messages={list(self._method_doubles)}>"


def check_options(options: Mapping[str, Any] | None) -> None:
    unknown = sorted(set(options or {}) - KNOWN_OPTIONS)
    if unknown:
        raise ConfigurationError([f"Unknown option {key!r}" for key in unknown])
