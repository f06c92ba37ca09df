from typing import TYPE_CHECKING, Iterator, Protocol

if TYPE_CHECKING:
    from luacodec.core.models.value import String, Table, Value


class TableStorage(Protocol):
    """
    Runtime-owned storage behind a `Table` handle.

    Implementations expose the raw operations the codec needs and nothing
    more. Every operation may raise a `LuaError` when the runtime fails.
    """

    def get(self, key: "Value") -> "Value":
        """
        Return the value stored under `key`, or `Nil` if there is none.
        """

    def set(self, key: "Value", value: "Value") -> None:
        """
        Store `value` under `key`. Storing `Nil` removes the entry.

        A `Nil` key (or a NaN number key) is rejected by the runtime with a
        `RuntimeFailure`.
        """

    def length(self) -> int:
        """
        Return the length of the table sequence: the number of consecutive
        non-nil values stored under the integer keys 1, 2, 3, ...
        """

    def pairs(self) -> Iterator[tuple["Value", "Value"]]:
        """
        Iterate over every key/value pair. Integer and non-integer keys are
        both visited; the order is unspecified.
        """


class LuaContext(Protocol):
    """
    Allocation interface of an embedded Lua runtime.

    The codec only ever creates strings and empty tables; everything else is
    done through the returned `Table` handles. Both operations may raise a
    `LuaError` when the runtime cannot allocate.
    """

    def create_string(self, text: str | bytes) -> "String":
        """Allocate a Lua string holding `text` (UTF-8 encoded if given as str)."""

    def create_table(self) -> "Table":
        """Allocate a new, empty Lua table."""
