"""Test doubles for live objects.

mockspace intercepts messages (method calls) sent to real or bare objects,
answers them with configured responses, verifies that required messages
arrived and restores every object afterwards.

The functions in this module are the integration points for a test
framework or a declaration DSL. They are not meant to be sprinkled through
tests; a runner calls `setup` before a test, `verify` at its end and
`teardown` unconditionally afterwards.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from typing import Any

from mockspace._any_instance import AnyInstanceRecorder
from mockspace._caller import CallSite, first_non_library_frame
from mockspace._config import Configuration
from mockspace._errors import (
    ConfigurationError,
    ExpectationsNotMetError,
    InterceptionError,
    MockExpectationError,
    OutOfOrderError,
    RestorationError,
    UnexpectedMessageError,
    VerificationFailure,
)
from mockspace._expectation import CountConstraint, MessageExpectation
from mockspace._handles import method_handle_for
from mockspace._method_double import MethodDouble
from mockspace._ordering import OrderGroup
from mockspace._proxy import Proxy
from mockspace._space import Space

__all__ = [
    "AnyInstanceRecorder",
    "CallSite",
    "Configuration",
    "ConfigurationError",
    "CountConstraint",
    "ExpectationsNotMetError",
    "InterceptionError",
    "MessageExpectation",
    "MethodDouble",
    "MockExpectationError",
    "OrderGroup",
    "OutOfOrderError",
    "Proxy",
    "RestorationError",
    "Space",
    "UnexpectedMessageError",
    "VerificationFailure",
    "allow_message",
    "any_instance_recorder_for",
    "expect_message",
    "method_handle_for",
    "proxies_of",
    "proxy_for",
    "setup",
    "space",
    "teardown",
    "use_space",
    "verify",
]

# Stores the global state for the running test.
space = Space()


def use_space(new_space: Space) -> Space:
    """Make `new_space` the space the module-level functions act on.

    Returns the previously active space so callers can put it back.
    """
    global space
    previous, space = space, new_space
    return previous


def setup(host: object = None) -> None:
    """Per-test setup. Call before a test begins."""
    _ = host


def verify() -> None:
    """Verify every message expectation set during the test.

    Raises `ExpectationsNotMetError` listing all unmet expectations at once.
    """
    space.verify_all()


def teardown() -> None:
    """Restore every intercepted object and clear the space.

    This must be called after each test, even if the test raised.
    """
    space.reset_all()


def allow_message(
    subject: object,
    message: str,
    options: Mapping[str, Any] | None = None,
    response: Callable[..., Any] | None = None,
) -> MessageExpectation:
    """Add an allowance (stub) for `message` on `subject`.

    Args:
        subject: the object that will receive the message.
        message: name of the method to intercept.
        options: ``expected_from`` overrides the declaration call site.
        response: optional implementation called with the message arguments.

    Example::

        calls = []
        allow_message(client, "fetch", response=lambda url: calls.append(url))
    """
    call_site = _call_site(options)
    return proxy_for(subject).add_stub(call_site, message, options, response)


def expect_message(
    subject: object,
    message: str,
    options: Mapping[str, Any] | None = None,
    response: Callable[..., Any] | None = None,
) -> MessageExpectation:
    """Require `subject` to receive `message` (exactly once unless refined).

    Example::

        expect_message(repo, "save").called_with(user).returns(True)
        repo.save(user)
    """
    call_site = _call_site(options)
    return proxy_for(subject).add_message_expectation(
        call_site, message, options, response
    )


def proxy_for(obj: object) -> Proxy:
    return space.proxy_for(obj)


def proxies_of(klass: type) -> Iterator[Proxy]:
    return space.proxies_of(klass)


def any_instance_recorder_for(klass: type) -> AnyInstanceRecorder:
    return space.any_instance_recorder_for(klass)


def _call_site(options: Mapping[str, Any] | None) -> CallSite:
    if options and "expected_from" in options:
        return CallSite.parse(options["expected_from"])
    return first_non_library_frame(space.configuration.library_paths)
