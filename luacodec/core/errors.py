import contextlib
from enum import StrEnum
from typing import Any, Generator, Self

from luacodec.core.serde.errors import DeError, SerError, Unexpected


class LuaError(Exception):
    """
    Base class of the errors raised at the Lua runtime boundary.

    This is the runtime's native error type: runtime adapters raise it when
    they fail to allocate or access values, and the value model raises it when
    a Lua value cannot be read as the requested Python type.
    """


class RuntimeFailure(LuaError):
    """
    The runtime itself failed: out of memory, a failing metamethod, an invalid
    table key, or a script error.
    """
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ToLuaConversionError(LuaError):
    """A Python value could not be converted into a Lua value."""

    def __init__(self, from_: str, to: str, message: str | None = None) -> None:
        self.from_ = from_
        self.to = to
        self.message = message
        super().__init__(str(self))

    def __str__(self) -> str:
        text = f"error converting {self.from_} to Lua {self.to}"
        if self.message is not None:
            text += f" ({self.message})"
        return text


class FromLuaConversionError(LuaError):
    """A Lua value could not be converted into a Python value."""

    def __init__(self, from_: str, to: str, message: str | None = None) -> None:
        self.from_ = from_
        self.to = to
        self.message = message
        super().__init__(str(self))

    def __str__(self) -> str:
        text = f"error converting Lua {self.from_} to {self.to}"
        if self.message is not None:
            text += f" ({self.message})"
        return text


class ErrorKind(StrEnum):
    type_mismatch = "type_mismatch"
    length_mismatch = "length_mismatch"
    encoding = "encoding"
    allocation = "allocation"
    custom = "custom"
    recursion_limit = "recursion_limit"


class Direction(StrEnum):
    serialize = "serialize"
    deserialize = "deserialize"
    runtime = "runtime"


class Error(Exception):
    """
    The codec error: a thin wrapper around exactly one native `LuaError`.

    It converts both ways (`from_lua` / `into_lua`) so callers already
    handling runtime errors can treat codec failures uniformly. `kind`
    classifies the failure and `direction` tells whether it was raised while
    producing a Lua value or while reading one.
    """

    def __init__(self, inner: LuaError, kind: ErrorKind = ErrorKind.custom) -> None:
        super().__init__(str(inner))
        self.inner = inner
        self.kind = kind

    def __str__(self) -> str:
        return str(self.inner)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.inner!r}, kind={self.kind.value})"

    @classmethod
    def from_lua(cls, err: LuaError, kind: ErrorKind = ErrorKind.allocation) -> Self:
        return cls(err, kind)

    def into_lua(self) -> LuaError:
        return self.inner

    @property
    def direction(self) -> Direction:
        match self.inner:
            case ToLuaConversionError():
                return Direction.serialize
            case FromLuaConversionError():
                return Direction.deserialize
            case _:
                return Direction.runtime

    @property
    def message(self) -> str | None:
        return getattr(self.inner, "message", None)


class SerializeError(Error, SerError):
    @classmethod
    def custom(cls, msg: Any, kind: ErrorKind = ErrorKind.custom) -> Self:
        return cls(ToLuaConversionError("serialize", "value", str(msg)), kind)

    @classmethod
    def recursion_limit(cls, limit: int) -> Self:
        return cls.custom(f"recursion limit of {limit} exceeded", ErrorKind.recursion_limit)


class DeserializeError(Error, DeError):
    @classmethod
    def custom(cls, msg: Any, kind: ErrorKind = ErrorKind.custom) -> Self:
        return cls(FromLuaConversionError("value", "deserialize", str(msg)), kind)

    @classmethod
    def recursion_limit(cls, limit: int) -> Self:
        return cls.custom(f"recursion limit of {limit} exceeded", ErrorKind.recursion_limit)

    @classmethod
    def invalid_type(cls, unexp: Unexpected, exp: Any) -> Self:
        err = super().invalid_type(unexp, exp)
        err.kind = ErrorKind.type_mismatch
        return err

    @classmethod
    def invalid_value(cls, unexp: Unexpected, exp: Any) -> Self:
        err = super().invalid_value(unexp, exp)
        err.kind = ErrorKind.type_mismatch
        return err

    @classmethod
    def invalid_length(cls, length: int, exp: Any) -> Self:
        err = super().invalid_length(length, exp)
        err.kind = ErrorKind.length_mismatch
        return err


@contextlib.contextmanager
def lua_errors(
    error: type[Error],
    kind: ErrorKind | None = None
) -> Generator[None, None, None]:
    """
    Re-raise native runtime errors escaping the block as codec errors.

    Without an explicit `kind`, conversion errors are type mismatches and any
    other runtime failure is an allocation failure. Codec errors raised by
    nested conversions pass through untouched.
    """
    try:
        yield
    except (ToLuaConversionError, FromLuaConversionError) as ex:
        raise error.from_lua(ex, kind or ErrorKind.type_mismatch) from ex
    except LuaError as ex:
        raise error.from_lua(ex, kind or ErrorKind.allocation) from ex
