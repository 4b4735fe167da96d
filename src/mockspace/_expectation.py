from __future__ import annotations

import dataclasses
import enum
import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, Self, TypeAlias, final

from mockspace._caller import CallSite
from mockspace._errors import InterceptionError, VerificationFailure
from mockspace._ordering import OrderGroup

NormalisedCall: TypeAlias = tuple[tuple[Any, ...], dict[str, Any]]


class Kind(enum.Enum):
    STUB = "stub"
    EXPECTATION = "expectation"


@dataclass(frozen=True, slots=True)
class CountConstraint:
    minimum: int
    maximum: int | None

    @classmethod
    def exactly(cls, n: int) -> CountConstraint:
        return cls(_non_negative(n), n)

    @classmethod
    def at_least(cls, n: int) -> CountConstraint:
        return cls(_non_negative(n), None)

    @classmethod
    def at_most(cls, n: int) -> CountConstraint:
        return cls(0, _non_negative(n))

    @classmethod
    def any(cls) -> CountConstraint:
        return cls(0, None)

    def allows_more(self, count: int) -> bool:
        return self.maximum is None or count < self.maximum

    def is_met(self, count: int) -> bool:
        return self.minimum <= count and self.allows_more(count - 1)

    def describe(self) -> str:
        if self.maximum is None:
            if self.minimum == 0:
                return "any number of times"
            return f"at least {self.minimum} time(s)"
        if self.minimum == self.maximum:
            return f"exactly {self.minimum} time(s)"
        return f"at most {self.maximum} time(s)"


def _non_negative(n: int) -> int:
    if n < 0:
        raise ValueError(f"Call count must not be negative, got {n}")
    return n


@dataclass(kw_only=True, slots=True)
class Recipe:
    message: str
    kind: Kind
    constraint: CountConstraint
    call_site: CallSite | None = None
    args: tuple[Any, ...] | None = None
    kwargs: dict[str, Any] = field(default_factory=dict)
    awaitable: bool | None = None
    values: tuple[Any, ...] = (None,)
    exception: BaseException | None = None
    implementation: Callable[..., Any] | None = None
    call_original: bool = False
    ordered: bool = False


class RecordOwner(Protocol):
    @property
    def awaitable(self) -> bool: ...

    @property
    def has_original(self) -> bool: ...

    @property
    def order_group(self) -> OrderGroup: ...

    def normalise(
        self, args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> NormalisedCall: ...

    def call_original(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any: ...


async def _deliver(value: Any) -> Any:
    return value


async def _fail(exception: BaseException) -> Any:
    raise exception


@final
class MessageExpectation:
    """One allowance or requirement for a single message.

    The refinement methods mutate the record in place and return it so they
    can be chained right after declaration::

        proxy.add_message_expectation(site, "fetch").called_with(1).returns("x")

    A record without an owner is an any-instance template: it is never
    dispatched to, only copied onto promoted instances.
    """

    def __init__(
        self,
        recipe: Recipe,
        owner: RecordOwner | None,
        *,
        subject: str,
        verified_elsewhere: bool = False,
    ) -> None:
        self._recipe = recipe
        self._owner = owner
        self._subject = subject
        self._count = 0
        self._expected: NormalisedCall | None = None
        self.verified_elsewhere = verified_elsewhere

    @property
    def message(self) -> str:
        return self._recipe.message

    @property
    def kind(self) -> Kind:
        return self._recipe.kind

    @property
    def is_expectation(self) -> bool:
        return self._recipe.kind is Kind.EXPECTATION

    @property
    def call_site(self) -> CallSite | None:
        return self._recipe.call_site

    @property
    def constraint(self) -> CountConstraint:
        return self._recipe.constraint

    @property
    def invocation_count(self) -> int:
        return self._count

    @property
    def minimum_met(self) -> bool:
        return self._count >= self._recipe.constraint.minimum

    @property
    def allows_more(self) -> bool:
        return self._recipe.constraint.allows_more(self._count)

    @property
    def satisfied(self) -> bool:
        return not self.is_expectation or self._recipe.constraint.is_met(self._count)

    @property
    def specificity(self) -> int:
        if self._recipe.args is None:
            return 0
        return 1 + len(self._recipe.args) + len(self._recipe.kwargs)

    # arguments

    def called_with(self, *args: Any, **kwargs: Any) -> Self:
        self._recipe.args = args
        self._recipe.kwargs = kwargs
        self._expected = None
        return self

    def awaited_with(self, *args: Any, **kwargs: Any) -> Self:
        self._recipe.awaitable = True
        return self.called_with(*args, **kwargs)

    def with_any_args(self) -> Self:
        self._recipe.args = None
        self._recipe.kwargs = {}
        self._expected = None
        return self

    # counts

    def times(self, n: int) -> Self:
        self._recipe.constraint = CountConstraint.exactly(n)
        return self

    def once(self) -> Self:
        return self.times(1)

    def twice(self) -> Self:
        return self.times(2)

    def never(self) -> Self:
        return self.times(0)

    def at_least(self, n: int) -> Self:
        self._recipe.constraint = CountConstraint.at_least(n)
        return self

    def at_most(self, n: int) -> Self:
        self._recipe.constraint = CountConstraint.at_most(n)
        return self

    def any_number_of_times(self) -> Self:
        self._recipe.constraint = CountConstraint.any()
        return self

    # responses

    def returns(self, *values: Any) -> Self:
        self._reset_response()
        self._recipe.values = (values[0] if len(values) == 1 else values,)
        return self

    def returns_in_order(self, *values: Any) -> Self:
        if not values:
            raise ValueError("returns_in_order() needs at least one value")
        self._reset_response()
        self._recipe.values = values
        return self

    def raises(self, exception: BaseException | type[BaseException]) -> Self:
        self._reset_response()
        if isinstance(exception, type):
            exception = exception()
        self._recipe.exception = exception
        return self

    def calls(self, implementation: Callable[..., Any]) -> Self:
        self._reset_response()
        self._recipe.implementation = implementation
        return self

    def calls_original(self) -> Self:
        if self._owner is not None and not self._owner.has_original:
            raise InterceptionError(
                f"{self._subject} has no original implementation of "
                f"'{self.message}' to call"
            )
        self._reset_response()
        self._recipe.call_original = True
        return self

    def _reset_response(self) -> None:
        self._recipe.values = (None,)
        self._recipe.exception = None
        self._recipe.implementation = None
        self._recipe.call_original = False

    # ordering

    def ordered(self) -> Self:
        if self._owner is None:
            raise TypeError("Any-instance expectations cannot be ordered")
        if not self._recipe.ordered:
            self._recipe.ordered = True
            self._owner.order_group.register(self)
        return self

    # dispatch

    def matches(self, call: NormalisedCall) -> bool:
        if self._recipe.args is None:
            return True
        expected = self._expected_call()
        return expected[0] == call[0] and expected[1] == call[1]

    def _expected_call(self) -> NormalisedCall:
        if self._expected is None:
            args = self._recipe.args or ()
            if self._owner is None:
                self._expected = (args, self._recipe.kwargs)
            else:
                self._expected = self._owner.normalise(args, self._recipe.kwargs)
        return self._expected

    def invoke(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        if self._owner is None:
            raise TypeError("Any-instance templates cannot be invoked directly")
        if self._recipe.ordered:
            self._owner.order_group.handle_order_constraint(self)

        self._count += 1
        recipe = self._recipe
        awaitable = (
            self._owner.awaitable if recipe.awaitable is None else recipe.awaitable
        )

        if recipe.exception is not None:
            if not awaitable:
                raise recipe.exception
            return _fail(recipe.exception)

        if recipe.implementation is not None:
            value = recipe.implementation(*args, **kwargs)
        elif recipe.call_original:
            value = self._owner.call_original(args, kwargs)
        else:
            value = recipe.values[min(self._count, len(recipe.values)) - 1]

        if awaitable and not inspect.isawaitable(value):
            return _deliver(value)
        return value

    def copy_to(self, owner: RecordOwner, *, subject: str) -> MessageExpectation:
        recipe = dataclasses.replace(self._recipe, kwargs=dict(self._recipe.kwargs))
        return MessageExpectation(
            recipe, owner, subject=subject, verified_elsewhere=True
        )

    # verification

    def failure(self) -> VerificationFailure | None:
        if self.satisfied:
            return None
        return VerificationFailure(
            subject=self._subject,
            message=self.message,
            arguments=self.arguments_description(),
            expected=self._recipe.constraint.describe(),
            actual=self._count,
            call_site=self._recipe.call_site,
        )

    def arguments_description(self) -> str:
        if self._recipe.args is None:
            return ""
        parts = [repr(a) for a in self._recipe.args]
        parts.extend(f"{k}={v!r}" for k, v in self._recipe.kwargs.items())
        return f"({', '.join(parts)})"

    def describe(self) -> str:
        return f"'{self.message}'{self.arguments_description()} on {self._subject}"

    def __repr__(self) -> str:
        return (
            f"<MessageExpectation {self.kind.value} {self.describe()} "
            f"{self.constraint.describe()}, received {self._count}>"
        )
