from dataclasses import dataclass
from typing import Iterator, TypeAlias

from luacodec.core.errors import FromLuaConversionError
from luacodec.core.ports.runtime import TableStorage


@dataclass(frozen=True, slots=True)
class Nil:
    """The absence of a value. Lua has exactly one nil."""

    def __repr__(self) -> str:
        return "Nil"


NIL = Nil()


@dataclass(frozen=True, slots=True)
class Boolean:
    value: bool


@dataclass(frozen=True, slots=True)
class Integer:
    """
    A Lua integer (64-bit signed two's complement).
    """
    value: int


@dataclass(frozen=True, slots=True)
class Number:
    """
    A Lua float (IEEE 754 double).
    """
    value: float


@dataclass(frozen=True, slots=True)
class String:
    """
    A Lua string.

    Lua strings are byte strings with no encoding attached. The text they
    carry is only checked when it is read through `to_str()`.
    """
    data: bytes

    @classmethod
    def from_text(cls, text: str) -> "String":
        return cls(text.encode("utf-8"))

    def to_str(self) -> str:
        try:
            return self.data.decode("utf-8")
        except UnicodeDecodeError as ex:
            raise FromLuaConversionError("string", "str", f"invalid utf-8: {ex}") from ex


@dataclass(frozen=True, slots=True, eq=False)
class Table:
    """
    A handle to a Lua table.

    The table itself lives in the runtime; a handle only references it, so
    copies of a handle observe the same contents. Handles compare by
    identity of the underlying storage.

    A table is both an associative container and an array. Its *sequence*
    is the run of non-nil values stored under the integer keys 1, 2, 3, ...
    up to (excluding) the first nil.
    """
    storage: TableStorage

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Table) and other.storage is self.storage

    def __hash__(self) -> int:
        return id(self.storage)

    def get(self, key: "Value") -> "Value":
        return self.storage.get(key)

    def set(self, key: "Value", value: "Value") -> None:
        self.storage.set(key, value)

    def len(self) -> int:
        """Length of the table sequence."""
        return self.storage.length()

    def pairs(self) -> Iterator[tuple["Value", "Value"]]:
        """Iterate over every key/value pair, in unspecified order."""
        return self.storage.pairs()

    def sequence_values(self) -> Iterator["Value"]:
        """Iterate over the table sequence, starting at index 1."""
        idx = 1
        while True:
            value = self.storage.get(Integer(idx))
            if isinstance(value, Nil):
                return
            yield value
            idx += 1


Value: TypeAlias = Nil | Boolean | Integer | Number | String | Table
"""
A dynamic Lua value. The union is closed: every conversion matches on
exactly these six variants.
"""
