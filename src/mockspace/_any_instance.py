from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol, final

from mockspace._caller import CallSite
from mockspace._errors import (
    ExpectationsNotMetError,
    InterceptionError,
    RestorationError,
    VerificationFailure,
)
from mockspace._expectation import CountConstraint, Kind, MessageExpectation, Recipe
from mockspace._handles import (
    ABSENT,
    bind,
    class_attribute,
    describe,
    own_attribute,
    restore_attribute,
    set_attribute,
)
from mockspace._proxy import Proxy, ProxyContext, check_options

logger = logging.getLogger(__name__)


class RecorderContext(ProxyContext, Protocol):
    def proxy_for(self, obj: object) -> Proxy: ...


@final
class _Route:
    def __init__(
        self,
        recorder: AnyInstanceRecorder,
        instance: object,
        message: str,
        awaitable: bool,
    ) -> None:
        self._recorder = recorder
        self._instance = instance
        self._message = message
        if awaitable:
            inspect.markcoroutinefunction(self)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self._recorder.dispatch(self._instance, self._message, args, kwargs)


@final
class _AnyInstanceDescriptor:
    def __init__(
        self, recorder: AnyInstanceRecorder, message: str, resolved: Any
    ) -> None:
        self._recorder = recorder
        self._message = message
        self._resolved = resolved
        self._awaitable = resolved is not ABSENT and inspect.iscoroutinefunction(
            resolved
        )

    def __get__(self, instance: object, owner: type | None = None) -> Any:
        if instance is None:
            if self._resolved is ABSENT:
                raise AttributeError(self._message)
            return bind(self._resolved, None, owner or self._recorder.klass)
        return _Route(self._recorder, instance, self._message, self._awaitable)


@final
class AnyInstanceRecorder:
    """Stubs and expectations declared for every instance of a class.

    Declarations are kept as templates. The class gets one routing
    descriptor per message; the first routed call on an instance promotes it
    to a regular `Proxy` and copies every template onto it. Templates
    declared later are copied onto already promoted instances at their next
    routed call.

    An expectation template is satisfied when at least one instance received
    the message within its count constraint. Instances that never received
    it are not failures.
    """

    def __init__(self, klass: type, context: RecorderContext) -> None:
        self.klass = klass
        self._context = context
        self.description = f"any instance of {describe(klass)}"
        self._templates: list[MessageExpectation] = []
        self._copies: list[list[MessageExpectation]] = []
        self._patched: dict[str, Any] = {}
        self._resolved: dict[str, Any] = {}
        self._promoted: dict[int, Proxy] = {}
        self._adopted: dict[int, int] = {}

    @property
    def promoted_proxies(self) -> tuple[Proxy, ...]:
        return tuple(self._promoted.values())

    @property
    def templates(self) -> tuple[MessageExpectation, ...]:
        return tuple(self._templates)

    def intercepts(self, message: str) -> bool:
        return message in self._patched

    def original_handle(self, instance: object, message: str) -> Any:
        resolved = self._resolved.get(message, ABSENT)
        if resolved is ABSENT:
            return ABSENT
        return bind(resolved, instance, type(instance))

    def add_stub(
        self,
        call_site: CallSite | None,
        message: str,
        options: Mapping[str, Any] | None = None,
        response: Callable[..., Any] | None = None,
    ) -> MessageExpectation:
        return self._add_template(
            Kind.STUB, CountConstraint.any(), call_site, message, options, response
        )

    def add_message_expectation(
        self,
        call_site: CallSite | None,
        message: str,
        options: Mapping[str, Any] | None = None,
        response: Callable[..., Any] | None = None,
    ) -> MessageExpectation:
        return self._add_template(
            Kind.EXPECTATION,
            CountConstraint.exactly(1),
            call_site,
            message,
            options,
            response,
        )

    def _add_template(
        self,
        kind: Kind,
        constraint: CountConstraint,
        call_site: CallSite | None,
        message: str,
        options: Mapping[str, Any] | None,
        response: Callable[..., Any] | None,
    ) -> MessageExpectation:
        check_options(options)
        self._intercept(message)

        recipe = Recipe(
            message=message, kind=kind, constraint=constraint, call_site=call_site
        )
        template = MessageExpectation(recipe, None, subject=self.description)
        if response is not None:
            template.calls(response)
        self._templates.append(template)
        self._copies.append([])
        return template

    def _intercept(self, message: str) -> None:
        if message in self._patched:
            return
        if not isinstance(message, str) or not message.isidentifier():
            raise TypeError(f"Message must be an identifier, got {message!r}")

        resolved = class_attribute(self.klass, message)
        if resolved is ABSENT and self._context.configuration.verify_partial_doubles:
            raise InterceptionError(
                f"{describe(self.klass)} does not implement '{message}'"
            )

        raw = own_attribute(self.klass, message)
        set_attribute(
            self.klass, message, _AnyInstanceDescriptor(self, message, resolved)
        )
        self._patched[message] = raw
        self._resolved[message] = resolved
        logger.debug("Intercepted '%s' on %s", message, self.description)

    def promote(self, instance: object) -> Proxy:
        key = id(instance)
        proxy = self._promoted.get(key)
        if proxy is None:
            if not isinstance(instance, self.klass):
                raise TypeError(f"{describe(instance)} is not {self.description}")
            proxy = self._context.proxy_for(instance)
            self._promoted[key] = proxy
            self._adopted[key] = 0
            logger.debug("Promoted %s for %s", proxy.description, self.description)

        self._sync(key, proxy)
        return proxy

    def _sync(self, key: int, proxy: Proxy) -> None:
        start = self._adopted[key]
        for index in range(start, len(self._templates)):
            template = self._templates[index]
            double = proxy.method_double_for(
                template.message,
                original=self.original_handle(proxy.subject, template.message),
                owns_interception=False,
            )
            self._copies[index].append(double.adopt(template))
        self._adopted[key] = len(self._templates)

    def dispatch(
        self,
        instance: object,
        message: str,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> Any:
        proxy = self.promote(instance)
        return proxy.method_double_for(message).dispatch(args, kwargs)

    def failures(
        self, *, include_proxies: bool = True
    ) -> list[VerificationFailure]:
        failures: list[VerificationFailure] = []
        for template, copies in zip(self._templates, self._copies):
            if not template.is_expectation:
                continue

            received = [c for c in copies if c.invocation_count]
            if not received:
                failure = template.failure()
                if failure is not None:
                    failures.append(failure)

            for copy in received:
                failure = copy.failure()
                if failure is not None:
                    failures.append(failure)

        if include_proxies:
            for proxy in self._promoted.values():
                failures.extend(proxy.failures())
        return failures

    def verify(self) -> None:
        failures = self.failures()
        if failures:
            raise ExpectationsNotMetError(failures)

    def reset(self) -> None:
        errors: list[tuple[str, BaseException]] = []
        for proxy in reversed(list(self._promoted.values())):
            try:
                proxy.reset()
            except RestorationError as exc:
                errors.extend(exc.errors)

        for message in reversed(list(self._patched)):
            try:
                restore_attribute(self.klass, message, self._patched[message])
            except Exception as exc:
                logger.exception(
                    "Failed to restore '%s' on %s", message, self.description
                )
                errors.append((f"'{message}' on {self.description}", exc))
            else:
                logger.debug("Restored '%s' on %s", message, self.description)

        self._templates.clear()
        self._copies.clear()
        self._patched.clear()
        self._resolved.clear()
        self._promoted.clear()
        self._adopted.clear()

        if errors:
            raise RestorationError(errors)

    def __repr__(self) -> str:
        return (
            f"<AnyInstanceRecorder for {self.description} "
            f"templates={len(self._templates)} promoted={len(self._promoted)}>"
        )
