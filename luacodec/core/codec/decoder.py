from typing import Any, Iterator, Sequence

from luacodec.core.errors import DeserializeError, ErrorKind, lua_errors
from luacodec.core.models.config import DEFAULT_CONFIG, CodecConfig
from luacodec.core.models.value import Boolean, Integer, Nil, Number, String, Table, Value
from luacodec.core.serde.de import (
    END, DeserializeSeed, Deserializer, EnumAccess, MapAccess, SeqAccess,
    StrDeserializer, VariantAccess, Visitor,
)
from luacodec.core.serde.errors import Unexpected


class Decoder(Deserializer):
    """
    Deserializer reading a single Lua value.

    Lua values describe themselves, so most requests go through
    `deserialize_any`, which reports the value as what it is: tables are
    always presented as maps. Sequences, tuples, options, newtypes and enums
    are the requests interpreted specifically.
    """
    error = DeserializeError

    def __init__(
        self,
        value: Value,
        config: CodecConfig = DEFAULT_CONFIG,
        depth: int = 0
    ) -> None:
        self.value = value
        self.config = config
        self.depth = depth

    def nested(self, value: Value) -> "Decoder":
        depth = self.depth + 1
        limit = self.config.max_depth
        if limit is not None and depth > limit:
            raise self.error.recursion_limit(limit)
        return Decoder(value, self.config, depth)

    def deserialize_any(self, visitor: Visitor) -> Any:
        match self.value:
            case Nil():
                return visitor.visit_unit()
            case Boolean(value=v):
                return visitor.visit_bool(v)
            case Integer(value=v):
                return visitor.visit_i64(v)
            case Number(value=v):
                return visitor.visit_f64(v)
            case String() as string:
                return visitor.visit_str(self._text(string))
            case Table() as table:
                with lua_errors(self.error):
                    length = table.len()
                    entries = TableMapAccess(self, table.pairs())
                result = visitor.visit_map(entries)
                if entries.remaining():
                    raise self.error.invalid_length(length, "fewer elements in array")
                return result

        raise self.error.custom("invalid value type", ErrorKind.type_mismatch)

    def deserialize_option(self, visitor: Visitor) -> Any:
        if isinstance(self.value, Nil):
            return visitor.visit_none()
        return visitor.visit_some(self)

    def deserialize_newtype_struct(self, name: str, visitor: Visitor) -> Any:
        return visitor.visit_newtype_struct(self)

    def deserialize_seq(self, visitor: Visitor) -> Any:
        if not isinstance(self.value, Table):
            raise self.error.custom("invalid value type", ErrorKind.type_mismatch)

        table = self.value
        with lua_errors(self.error):
            length = table.len()
        items = TableSeqAccess(self, table.sequence_values(), length)
        result = visitor.visit_seq(items)
        if items.remaining():
            raise self.error.invalid_length(length, "fewer elements in array")
        return result

    def deserialize_tuple(self, length: int, visitor: Visitor) -> Any:
        return self.deserialize_seq(visitor)

    def deserialize_tuple_struct(self, name: str, length: int, visitor: Visitor) -> Any:
        return self.deserialize_seq(visitor)

    def deserialize_enum(self, name: str, variants: Sequence[str], visitor: Visitor) -> Any:
        match self.value:
            case Table() as table:
                with lua_errors(self.error):
                    pairs = table.pairs()
                    first = next(pairs, None)
                    extra = next(pairs, None) if first is not None else None
                if first is None or extra is not None:
                    raise self.error.invalid_value(Unexpected.map(), "map with a single key")

                key, payload = first
                variant = self._variant_name(key)

            case String() as string:
                variant, payload = self._text(string), None

            case _:
                raise self.error.custom("bad enum value", ErrorKind.type_mismatch)

        return visitor.visit_enum(TableEnumAccess(self, variant, payload))

    def _text(self, string: String) -> str:
        with lua_errors(self.error, ErrorKind.encoding):
            return string.to_str()

    def _variant_name(self, key: Value) -> str:
        # Numeric keys are read as strings, the way Lua's tostring renders them.
        match key:
            case String():
                return self._text(key)
            case Integer(value=v):
                return str(v)
            case Number(value=v):
                return format(v, ".14g")
        raise self.error.invalid_type(unexpected(key), "a variant name")


def unexpected(value: Value) -> Unexpected:
    """Describe a Lua value for type mismatch messages."""
    match value:
        case Nil():
            return Unexpected.unit()
        case Boolean(value=v):
            return Unexpected.boolean(v)
        case Integer(value=v):
            return Unexpected.integer(v)
        case Number(value=v):
            return Unexpected.floating(v)
        case String(data=data):
            return Unexpected.string(data.decode("utf-8", errors="replace"))
    return Unexpected.map()


class TableSeqAccess(SeqAccess):
    """Walks the sequence of a table, decoding one element per request."""

    def __init__(self, decoder: Decoder, values: Iterator[Value], length: int) -> None:
        self._decoder = decoder
        self._values = values
        self._length = length
        self._taken = 0

    def next_element_seed(self, seed: DeserializeSeed) -> Any:
        with lua_errors(self._decoder.error):
            item = next(self._values, END)
        if item is END:
            return END
        self._taken += 1
        return seed.deserialize(self._decoder.nested(item))

    def size_hint(self) -> int:
        return max(self._length - self._taken, 0)

    def remaining(self) -> int:
        with lua_errors(self._decoder.error):
            return sum(1 for _ in self._values)


class TableMapAccess(MapAccess):
    """
    Walks every pair of a table. Keys are decoded on `next_key_seed`; the
    value paired with a key is only decoded once it is requested.
    """

    def __init__(self, decoder: Decoder, pairs: Iterator[tuple[Value, Value]]) -> None:
        self._decoder = decoder
        self._pairs = pairs
        self._pending: Value | None = None

    def next_key_seed(self, seed: DeserializeSeed) -> Any:
        with lua_errors(self._decoder.error):
            item = next(self._pairs, None)
        if item is None:
            return END

        key, self._pending = item
        return seed.deserialize(self._decoder.nested(key))

    def next_value_seed(self, seed: DeserializeSeed) -> Any:
        if self._pending is None:
            raise self._decoder.error.custom("value is missing")

        value, self._pending = self._pending, None
        return seed.deserialize(self._decoder.nested(value))

    def remaining(self) -> int:
        with lua_errors(self._decoder.error):
            return sum(1 for _ in self._pairs)


class TableEnumAccess(EnumAccess):
    def __init__(self, decoder: Decoder, variant: str, payload: Value | None) -> None:
        self._decoder = decoder
        self._variant = variant
        self._payload = payload

    def variant_seed(self, seed: DeserializeSeed) -> tuple[Any, VariantAccess]:
        tag = seed.deserialize(StrDeserializer(self._variant, self._decoder.error))
        return tag, TableVariantAccess(self._decoder, self._payload)


class TableVariantAccess(VariantAccess):
    """
    Decodes the payload of a variant. Unit variants carry none; every other
    kind requires one.
    """

    def __init__(self, decoder: Decoder, payload: Value | None) -> None:
        self._decoder = decoder
        self._payload = payload

    def unit_variant(self) -> None:
        if self._payload is not None:
            raise self._decoder.error.invalid_type(Unexpected.newtype_variant(), "unit variant")

    def newtype_variant_seed(self, seed: DeserializeSeed) -> Any:
        return seed.deserialize(self._payload_decoder("newtype variant"))

    def tuple_variant(self, length: int, visitor: Visitor) -> Any:
        return self._payload_decoder("tuple variant").deserialize_seq(visitor)

    def struct_variant(self, fields: Sequence[str], visitor: Visitor) -> Any:
        return self._payload_decoder("struct variant").deserialize_map(visitor)

    def _payload_decoder(self, expected: str) -> Decoder:
        if self._payload is None:
            raise self._decoder.error.invalid_type(Unexpected.unit_variant(), expected)
        return self._decoder.nested(self._payload)
