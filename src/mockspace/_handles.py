"""Attribute access that the object under test cannot shadow.

Objects may override ``__getattribute__``, ``__getattr__``, ``__setattr__``
or even ``__class__``. Every lookup and write made on behalf of a double goes
through the generic slot wrappers captured here at import time.
"""

from __future__ import annotations

import types
from collections.abc import Callable, Mapping
from typing import Any, Final, final

from mockspace._errors import InterceptionError

_OBJECT_GETATTRIBUTE: Final = object.__getattribute__
_TYPE_GETATTRIBUTE: Final = type.__getattribute__
_OBJECT_SETATTR: Final = object.__setattr__
_TYPE_SETATTR: Final = type.__setattr__
_OBJECT_DELATTR: Final = object.__delattr__
_TYPE_DELATTR: Final = type.__delattr__


@final
class _Absent:
    __slots__ = ()

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT: Final = _Absent()


def is_class(obj: object) -> bool:
    return issubclass(type(obj), type)


def describe(obj: object) -> str:
    kind = type(obj)
    if issubclass(kind, type):
        return f"<class {_TYPE_GETATTRIBUTE(obj, '__qualname__')}>"
    return f"<{kind.__qualname__} object at {id(obj):#x}>"


def _defines_getattr(obj: object) -> bool:
    return any("__getattr__" in vars(k) for k in type(obj).__mro__)


def method_handle_for(obj: object, method_name: str) -> Callable[..., Any]:
    getter = _TYPE_GETATTRIBUTE if is_class(obj) else _OBJECT_GETATTRIBUTE
    try:
        handle = getter(obj, method_name)
    except AttributeError:
        # dynamic attributes are still the object's current implementation
        if not _defines_getattr(obj):
            raise
        handle = getattr(obj, method_name)
    if not callable(handle):
        raise InterceptionError(f"'{method_name}' on {describe(obj)} is not callable")
    return handle


def namespace_of(obj: object) -> Mapping[str, Any]:
    getter = _TYPE_GETATTRIBUTE if is_class(obj) else _OBJECT_GETATTRIBUTE
    try:
        return getter(obj, "__dict__")
    except AttributeError:
        raise InterceptionError(
            f"{describe(obj)} has no instance namespace; messages cannot be "
            "intercepted on it directly"
        ) from None


def own_attribute(obj: object, name: str) -> Any:
    return namespace_of(obj).get(name, ABSENT)


def class_attribute(klass: type, name: str) -> Any:
    for base in klass.__mro__:
        if name in vars(base):
            return vars(base)[name]
    return ABSENT


def bind(raw: Any, instance: object, owner: type) -> Callable[..., Any]:
    if hasattr(type(raw), "__get__"):
        return raw.__get__(instance, owner)
    return raw


def _setter_for(obj: object) -> Callable[[Any, str, Any], None]:
    if is_class(obj):
        return _TYPE_SETATTR
    if issubclass(type(obj), types.ModuleType):
        return setattr
    return _OBJECT_SETATTR


def _deleter_for(obj: object) -> Callable[[Any, str], None]:
    if is_class(obj):
        return _TYPE_DELATTR
    if issubclass(type(obj), types.ModuleType):
        return delattr
    return _OBJECT_DELATTR


def set_attribute(obj: object, name: str, value: Any) -> None:
    setter = _setter_for(obj)
    try:
        setter(obj, name, value)
    except (AttributeError, TypeError) as exc:
        raise InterceptionError(
            f"Cannot intercept '{name}' on {describe(obj)}: {exc}"
        ) from exc


def restore_attribute(obj: object, name: str, original: Any) -> None:
    if original is not ABSENT:
        _setter_for(obj)(obj, name, original)
    elif name in namespace_of(obj):
        _deleter_for(obj)(obj, name)
