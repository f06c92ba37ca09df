import contextlib
import logging
import math
from typing import Any, Generator, Iterator

from lupa import lua54

from luacodec.core.errors import FromLuaConversionError, RuntimeFailure, ToLuaConversionError
from luacodec.core.models.value import NIL, Boolean, Integer, Nil, Number, String, Table, Value
from luacodec.core.ports.runtime import LuaContext, TableStorage


@contextlib.contextmanager
def lupa_errors() -> Generator[None, None, None]:
    """
    Re-raise the errors of the lupa binding as `RuntimeFailure`.
    """
    try:
        yield
    except lua54.LuaError as ex:
        raise RuntimeFailure(str(ex)) from ex


class LupaTable(TableStorage):
    """
    Storage of a table living in a lupa runtime.
    """
    def __init__(self, context: "LupaContext", native: Any) -> None:
        self.context = context
        self.native = native

    def get(self, key: Value) -> Value:
        with lupa_errors():
            return self.context.wrap(self.native[self.context.unwrap(key)])

    def set(self, key: Value, value: Value) -> None:
        match key:
            case Nil():
                raise RuntimeFailure("index is nil")
            case Number(value=v) if math.isnan(v):
                raise RuntimeFailure("index is NaN")

        with lupa_errors():
            self.native[self.context.unwrap(key)] = self.context.unwrap(value)

    def length(self) -> int:
        # The border reported by the `#` operator is not guaranteed to be the
        # first one when the table has holes.
        count = 0
        with lupa_errors():
            while self.native[count + 1] is not None:
                count += 1
        return count

    def pairs(self) -> Iterator[tuple[Value, Value]]:
        with lupa_errors():
            for key, value in self.native.items():
                yield self.context.wrap(key), self.context.wrap(value)


class LupaContext(LuaContext):
    """
    Lua runtime backed by lupa (Lua 5.4).

    The runtime is created without a string encoding: Lua strings reach
    Python as raw bytes and are wrapped as `String` values, so text is only
    decoded when the codec reads it.
    """
    def __init__(
        self,
        register_eval: bool = False,
        register_builtins: bool = False,
        unpack_returned_tuples: bool = False,
        max_memory: int | None = None
    ) -> None:
        self._logger = logging.getLogger("infra.lupa_runtime")
        self._lua = lua54.LuaRuntime(
            encoding=None,
            register_eval=register_eval,
            register_builtins=register_builtins,
            unpack_returned_tuples=unpack_returned_tuples,
            max_memory=max_memory,
        )
        self._logger.debug(f"Started {self._lua.lua_implementation}")

    @property
    def runtime(self) -> Any:
        return self._lua

    def create_string(self, text: str | bytes) -> String:
        if isinstance(text, str):
            return String.from_text(text)
        return String(bytes(text))

    def create_table(self) -> Table:
        with lupa_errors():
            return Table(LupaTable(self, self._lua.table()))

    def wrap(self, obj: Any) -> Value:
        """Convert an object returned by lupa into a `Value`."""
        match obj:
            case None:
                return NIL
            case bool():
                return Boolean(obj)
            case int():
                return Integer(obj)
            case float():
                return Number(obj)
            case bytes():
                return String(obj)
            case str():
                return String.from_text(obj)

        kind = lua54.lua_type(obj)
        if kind == "table":
            return Table(LupaTable(self, obj))
        raise FromLuaConversionError(kind or type(obj).__name__, "Value", "unsupported Lua type")

    def unwrap(self, value: Value) -> Any:
        """Convert a `Value` into an object lupa can push into the runtime."""
        match value:
            case Nil():
                return None
            case Boolean(value=v) | Integer(value=v) | Number(value=v):
                return v
            case String(data=data):
                return data
            case Table(storage=LupaTable() as storage) if storage.context is self:
                return storage.native
        raise ToLuaConversionError(type(value).__name__, "value", "value belongs to another runtime")

    def eval(self, expression: str) -> Value:
        """Evaluate a Lua expression and return its value."""
        self._logger.debug(f"Evaluating {expression!r}")
        with lupa_errors():
            return self._first(self._lua.eval(expression))

    def execute(self, chunk: str) -> Value:
        """Run a Lua chunk and return its first result, or Nil."""
        with lupa_errors():
            return self._first(self._lua.execute(chunk))

    def set_global(self, name: str, value: Value) -> None:
        with lupa_errors():
            self._lua.globals()[name.encode("utf-8")] = self.unwrap(value)

    def get_global(self, name: str) -> Value:
        with lupa_errors():
            return self.wrap(self._lua.globals()[name.encode("utf-8")])

    def _first(self, result: Any) -> Value:
        # Multiple results come back as a tuple.
        if isinstance(result, tuple):
            return self.wrap(result[0]) if result else NIL
        return self.wrap(result)
