from __future__ import annotations

import asyncio
import functools
import inspect
import re
import types
from io import BytesIO
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any


class NonSeekableReadStream:
    """A forward-only stream that hands out at most ``max_read`` bytes per
    read, no matter how many were asked for.
    """

    def __init__(self, data: bytes, max_read: int = 3) -> None:
        self._inner = BytesIO(data)
        self.max_read = max_read

    def seekable(self) -> bool:
        return False

    def read(self, n: int = -1) -> bytes:
        if n < 0 or n > self.max_read:
            n = self.max_read
        return self._inner.read(n)


class AsyncReadStream:
    """Wraps a blocking stream so that each read has to be awaited."""

    def __init__(self, inner: Any) -> None:
        self._inner = inner

    async def read(self, n: int = -1) -> bytes:
        await asyncio.sleep(0)
        return self._inner.read(n)


def make_stream(buffered: bool, text: str) -> BytesIO | NonSeekableReadStream:
    data = text.encode("utf-8")
    if buffered:
        return BytesIO(data)
    return NonSeekableReadStream(data)


# We don't use the pytest parametrizing function, since it seems to break
# with unittest.TestCase subclasses.
def parametrize(field_names: tuple[str] | list[str] | str, field_values: list[Any] | Any) -> Callable[..., Any]:
    # If we're not given a list of field names, we make it.
    if not isinstance(field_names, (tuple, list)):
        field_names = (field_names,)
        field_values = [(val,) for val in field_values]

    # Create a decorator that saves this list of field names and values on the
    # function for later parametrizing.
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        func.__dict__["param_names"] = field_names
        func.__dict__["param_values"] = field_values
        return func

    return decorator


def _bind(func: types.FunctionType, name: str, kwargs: dict[str, Any]) -> Callable[..., Any]:
    # Coroutine tests need a coroutine wrapper, or IsolatedAsyncioTestCase
    # will not await them.
    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def new_async_func(self: Any) -> Any:
            return await func(self, **kwargs)

        new_async_func.__name__ = name
        return new_async_func

    @functools.wraps(func)
    def new_func(self: Any) -> Any:
        return func(self, **kwargs)

    new_func.__name__ = name
    return new_func


# This is a metaclass that actually performs the parametrization.
class ParametrizingMetaclass(type):
    IDENTIFIER_RE = re.compile("[^A-Za-z0-9]")

    def __new__(klass, name: str, bases: tuple[type, ...], attrs: types.MappingProxyType[str, Any]) -> type:
        new_attrs = attrs.copy()
        for attr_name, attr in attrs.items():
            # We only care about functions
            if not isinstance(attr, types.FunctionType):
                continue

            param_names = attr.__dict__.pop("param_names", None)
            param_values = attr.__dict__.pop("param_values", None)
            if param_names is None or param_values is None:
                continue

            # Create one copy of the function per set of values.
            for values in param_values:
                assert len(param_names) == len(values)

                # Get a repr of the values, and fix it to be a valid identifier
                human = "_".join([klass.IDENTIFIER_RE.sub("", repr(x)) for x in values])
                new_name = attr.__name__ + "__" + human

                new_attrs[new_name] = _bind(attr, new_name, dict(zip(param_names, values)))

            # Remove the old attribute from our new dictionary.
            del new_attrs[attr_name]

        # We create the class as normal, except we use our new attributes.
        return type.__new__(klass, name, bases, new_attrs)


# This is a class decorator that actually applies the above metaclass.
def parametrize_class(klass: type) -> ParametrizingMetaclass:
    return ParametrizingMetaclass(klass.__name__, klass.__bases__, klass.__dict__)
