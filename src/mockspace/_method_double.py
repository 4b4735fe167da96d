from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import Any, Protocol, final

from mockspace._caller import CallSite, first_non_library_frame
from mockspace._config import Configuration
from mockspace._errors import (
    InterceptionError,
    UnexpectedMessageError,
    VerificationFailure,
)
from mockspace._expectation import (
    CountConstraint,
    Kind,
    MessageExpectation,
    NormalisedCall,
    Recipe,
)
from mockspace._handles import (
    ABSENT,
    bind,
    class_attribute,
    describe,
    is_class,
    own_attribute,
    restore_attribute,
    set_attribute,
)
from mockspace._ordering import OrderGroup

logger = logging.getLogger(__name__)


class DoubleContext(Protocol):
    @property
    def configuration(self) -> Configuration: ...

    @property
    def order_group(self) -> OrderGroup: ...


@final
class _Trampoline:
    def __init__(self, double: MethodDouble) -> None:
        self._double = double
        if double.awaitable:
            inspect.markcoroutinefunction(self)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self._double.dispatch(args, kwargs)

    def __repr__(self) -> str:
        return (
            f"<intercepted '{self._double.message}' of "
            f"{self._double.subject_description}>"
        )


@final
class _ClassRoute:
    """Class-level interception that leaves instance methods bound as before.

    Access through the class reaches the trampoline. Access through an
    instance binds the previous attribute, unless that attribute never
    bound to instances (class and static methods) or did not exist.
    """

    def __init__(self, trampoline: _Trampoline, previous: Any) -> None:
        self._trampoline = trampoline
        self._previous = previous
        self.routes_instances = _routes_instances(previous)

    def __get__(self, instance: object, owner: type | None = None) -> Any:
        if instance is None or self.routes_instances:
            return self._trampoline
        return bind(self._previous, instance, owner or type(instance))


def _routes_instances(previous: Any) -> bool:
    if isinstance(previous, _ClassRoute):
        return previous.routes_instances
    return previous is ABSENT or isinstance(previous, (classmethod, staticmethod))


def _signature_of(original: Any) -> inspect.Signature | None:
    if original is ABSENT:
        return None
    try:
        return inspect.signature(original)
    except (TypeError, ValueError):
        return None


@final
class MethodDouble:
    """All stubs and expectations for one message on one subject.

    Owns the original implementation captured before interception and the
    own-namespace value that has to be put back on restore. When
    ``owns_interception`` is false the double is reached through a
    class-level route instead of an attribute on the subject itself.
    """

    def __init__(
        self,
        subject: object,
        message: str,
        context: DoubleContext,
        *,
        original: Callable[..., Any] | Any = ABSENT,
        owns_interception: bool = True,
    ) -> None:
        self._subject = subject
        self.message = message
        self._context = context
        self.subject_description = describe(subject)
        self._records: list[MessageExpectation] = []
        self._original = original
        self._signature = _signature_of(original)
        self._owns_interception = owns_interception
        self._original_raw: Any = ABSENT
        self._installed = False
        self.awaitable = original is not ABSENT and inspect.iscoroutinefunction(
            original
        )

    @property
    def order_group(self) -> OrderGroup:
        return self._context.order_group

    @property
    def has_original(self) -> bool:
        return self._original is not ABSENT

    @property
    def is_installed(self) -> bool:
        return self._installed

    @property
    def records(self) -> tuple[MessageExpectation, ...]:
        return tuple(self._records)

    def install(self) -> None:
        if self._installed or not self._owns_interception:
            return
        if _is_special(self.message) and not is_class(self._subject):
            raise InterceptionError(
                f"Special method '{self.message}' is looked up on the type; "
                f"it cannot be intercepted on {self.subject_description}"
            )

        self._original_raw = own_attribute(self._subject, self.message)
        trampoline = _Trampoline(self)
        if is_class(self._subject):
            previous = class_attribute(self._subject, self.message)
            set_attribute(
                self._subject, self.message, _ClassRoute(trampoline, previous)
            )
        else:
            set_attribute(self._subject, self.message, trampoline)
        self._installed = True
        logger.debug(
            "Intercepted '%s' on %s (original %s)",
            self.message,
            self.subject_description,
            "present" if self.has_original else "absent",
        )

    def restore(self) -> None:
        if not self._installed:
            return
        restore_attribute(self._subject, self.message, self._original_raw)
        self._installed = False
        logger.debug("Restored '%s' on %s", self.message, self.subject_description)

    def clear(self) -> None:
        self._records.clear()

    def add_stub(self, call_site: CallSite | None) -> MessageExpectation:
        return self._add(Kind.STUB, CountConstraint.any(), call_site)

    def add_expectation(self, call_site: CallSite | None) -> MessageExpectation:
        return self._add(Kind.EXPECTATION, CountConstraint.exactly(1), call_site)

    def _add(
        self, kind: Kind, constraint: CountConstraint, call_site: CallSite | None
    ) -> MessageExpectation:
        recipe = Recipe(
            message=self.message, kind=kind, constraint=constraint, call_site=call_site
        )
        record = MessageExpectation(
            recipe, self, subject=self.subject_description
        )
        self._records.append(record)
        return record

    def adopt(self, template: MessageExpectation) -> MessageExpectation:
        record = template.copy_to(self, subject=self.subject_description)
        self._records.append(record)
        return record

    def normalise(
        self, args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> NormalisedCall:
        if self._signature is None:
            return args, kwargs
        try:
            bound = self._signature.bind_partial(*args, **kwargs)
        except TypeError:
            return args, kwargs
        return (), dict(bound.arguments)

    def dispatch(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        record = self._find_matching(self.normalise(args, kwargs))
        if record is not None:
            logger.debug("Dispatching %s to %r", self.message, record)
            return record.invoke(args, kwargs)

        strict = self._context.configuration.strict_arguments
        if self._original is ABSENT or (strict and self._records):
            raise UnexpectedMessageError(
                self.subject_description,
                self.message,
                args,
                kwargs,
                call_site=first_non_library_frame(
                    self._context.configuration.library_paths
                ),
                reason=self._unmatched_reason(),
            )

        logger.debug("No record accepts %s; calling original", self.message)
        return self._original(*args, **kwargs)

    def _find_matching(self, call: NormalisedCall) -> MessageExpectation | None:
        matching = [r for r in self._records if r.matches(call)]

        expectations = [r for r in matching if r.is_expectation]
        # stable sort keeps declaration order among equally specific records
        expectations.sort(key=lambda r: -r.specificity)
        for record in expectations:
            if record.allows_more or record.constraint.maximum == 0:
                return record

        stubs = [r for r in matching if not r.is_expectation]
        if stubs:
            return stubs[-1]

        if expectations:
            return expectations[0]
        return None

    def _unmatched_reason(self) -> str:
        if not self._records:
            return "No expectation was set for this call."
        accepted = "; ".join(
            r.arguments_description() or "(any args)" for r in self._records
        )
        return f"Arguments did not match any of: {accepted}."

    def call_original(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        if self._original is ABSENT:
            raise InterceptionError(
                f"{self.subject_description} has no original '{self.message}'"
            )
        return self._original(*args, **kwargs)

    def failures(self) -> list[VerificationFailure]:
        failures: list[VerificationFailure] = []
        for record in self._records:
            if record.verified_elsewhere:
                continue
            failure = record.failure()
            if failure is not None:
                failures.append(failure)
        return failures


def _is_special(name: str) -> bool:
    return name.startswith("__") and name.endswith("__") and len(name) > 4
