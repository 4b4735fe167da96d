from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterator
from typing import Any, final

from mockspace._any_instance import AnyInstanceRecorder
from mockspace._config import Configuration
from mockspace._errors import (
    ExpectationsNotMetError,
    InterceptionError,
    RestorationError,
    VerificationFailure,
)
from mockspace._handles import ABSENT, is_class, method_handle_for, own_attribute
from mockspace._ordering import OrderGroup
from mockspace._proxy import Proxy

logger = logging.getLogger(__name__)


@final
class Space:
    """Registry of every proxy and any-instance recorder for one test.

    A test declares doubles, runs, calls `verify_all` once and then
    `reset_all` unconditionally. Used as a context manager the space does
    both: it verifies when the block finished cleanly and always resets.
    """

    def __init__(self, configuration: Configuration | None = None) -> None:
        self._configuration = configuration or Configuration()
        self._proxies: dict[int, Proxy] = {}
        self._recorders: dict[type, AnyInstanceRecorder] = {}
        self._registrations: list[Proxy | AnyInstanceRecorder] = []
        self._order_group = OrderGroup()

    @property
    def configuration(self) -> Configuration:
        return self._configuration

    def configure(self, **changes: Any) -> Configuration:
        self._configuration = dataclasses.replace(self._configuration, **changes)
        return self._configuration

    @property
    def order_group(self) -> OrderGroup:
        return self._order_group

    def proxy_for(self, obj: object) -> Proxy:
        proxy = self._proxies.get(id(obj))
        if proxy is None:
            proxy = Proxy(obj, self)
            self._proxies[id(obj)] = proxy
            self._registrations.append(proxy)
        return proxy

    def registered(self, obj: object) -> bool:
        return id(obj) in self._proxies

    def proxies_of(self, klass: type) -> Iterator[Proxy]:
        for proxy in list(self._proxies.values()):
            if isinstance(proxy.subject, klass):
                yield proxy

    def any_instance_recorder_for(self, klass: type) -> AnyInstanceRecorder:
        recorder = self._recorders.get(klass)
        if recorder is None:
            recorder = AnyInstanceRecorder(klass, self)
            self._recorders[klass] = recorder
            self._registrations.append(recorder)
        return recorder

    def original_handle_for(self, subject: object, message: str) -> Any:
        recorder = self._recorder_defining(subject, message)
        if recorder is not None:
            return recorder.original_handle(subject, message)
        try:
            return method_handle_for(subject, message)
        except AttributeError:
            return ABSENT

    def _recorder_defining(
        self, subject: object, message: str
    ) -> AnyInstanceRecorder | None:
        if is_class(subject):
            return None
        try:
            if own_attribute(subject, message) is not ABSENT:
                return None
        except InterceptionError:
            pass  # no instance namespace, the class attribute is used

        # an override further down the MRO hides recorders on its bases
        for klass in type(subject).__mro__:
            if message in vars(klass):
                recorder = self._recorders.get(klass)
                if recorder is not None and recorder.intercepts(message):
                    return recorder
                return None
        return None

    def failures(self) -> list[VerificationFailure]:
        failures: list[VerificationFailure] = []
        for recorder in self._recorders.values():
            failures.extend(recorder.failures(include_proxies=False))
        for proxy in self._proxies.values():
            failures.extend(proxy.failures())
        return failures

    def verify_all(self) -> None:
        failures = self.failures()
        if failures:
            raise ExpectationsNotMetError(failures)

    def reset_all(self) -> None:
        errors: list[tuple[str, BaseException]] = []
        for registration in reversed(self._registrations):
            try:
                registration.reset()
            except RestorationError as exc:
                errors.extend(exc.errors)

        logger.debug(
            "Reset %d proxies and %d any-instance recorders",
            len(self._proxies),
            len(self._recorders),
        )
        self._proxies.clear()
        self._recorders.clear()
        self._registrations.clear()
        self._order_group.clear()

        if errors:
            raise RestorationError(errors)

    def __enter__(self) -> Space:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        _ = exc_type, exc_tb
        primary = exc_val
        if primary is None:
            try:
                self.verify_all()
            except ExpectationsNotMetError as exc:
                primary = exc

        try:
            self.reset_all()
        except RestorationError as exc:
            if primary is None:
                raise
            # the first failure stays the reported one
            primary.add_note(str(exc))

        if primary is not None and primary is not exc_val:
            raise primary

    async def __aenter__(self) -> Space:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)

    def __repr__(self) -> str:
        return (
            f"<Space proxies={len(self._proxies)} "
            f"any_instance_recorders={len(self._recorders)}>"
        )
