"""Configuration for mockspace.

A `Space` carries one `Configuration`. It can be built programmatically or
read from the environment with `Configuration.from_env()`.

Environment Variables:
    MOCKSPACE_VERIFY_PARTIAL_DOUBLES: refuse to stub messages a real
        subject does not implement (default: false)
    MOCKSPACE_STRICT_ARGUMENTS: raise instead of falling back to the
        original implementation when no record accepts the arguments
        (default: false)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from mockspace._errors import ConfigurationError

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off", ""})


@dataclass(frozen=True, kw_only=True, slots=True)
class Configuration:
    """Behavior switches for interception and dispatch.

    Attributes:
        verify_partial_doubles: When set, declaring a message on a subject
            that has no such method raises `InterceptionError`.
            Env: MOCKSPACE_VERIFY_PARTIAL_DOUBLES
        strict_arguments: When set, a call that no stub or expectation
            accepts raises `UnexpectedMessageError` even if the subject
            had an original implementation.
            Env: MOCKSPACE_STRICT_ARGUMENTS
        library_paths: Extra path prefixes skipped when inferring the call
            site of a declaration, for helper layers built on mockspace.
    """

    verify_partial_doubles: bool = False
    strict_arguments: bool = False
    library_paths: tuple[str, ...] = ()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Configuration:
        env = os.environ if environ is None else environ
        errors: list[str] = []

        def flag(name: str) -> bool:
            raw = env.get(name, "").strip().lower()
            if raw in _TRUE:
                return True
            if raw not in _FALSE:
                errors.append(f"{name} must be a boolean, got {raw!r}")
            return False

        verify_partial_doubles = flag("MOCKSPACE_VERIFY_PARTIAL_DOUBLES")
        strict_arguments = flag("MOCKSPACE_STRICT_ARGUMENTS")
        if errors:
            raise ConfigurationError(errors)

        return cls(
            verify_partial_doubles=verify_partial_doubles,
            strict_arguments=strict_arguments,
        )
