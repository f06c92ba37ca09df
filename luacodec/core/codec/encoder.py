from typing import Any

from luacodec.core.errors import SerializeError, lua_errors
from luacodec.core.models.config import DEFAULT_CONFIG, CodecConfig
from luacodec.core.models.value import NIL, Boolean, Integer, Number, String, Table, Value
from luacodec.core.ports.runtime import LuaContext
from luacodec.core.serde.ser import (
    SerializeMap, SerializeSeq, SerializeStructVariant, SerializeTupleVariant,
    serialize,
)
from luacodec.core.serde.shapes import I64_WIDTH

_U64_MODULUS = 1 << 64


class Encoder:
    """
    Serializer producing Lua values.

    An encoder is bound to a runtime and to its nesting depth. Every value
    nested inside an aggregate is encoded by a fresh encoder one level deeper.
    """
    error = SerializeError

    def __init__(
        self,
        lua: LuaContext,
        config: CodecConfig = DEFAULT_CONFIG,
        depth: int = 0
    ) -> None:
        self.lua = lua
        self.config = config
        self.depth = depth

    def encode(self, value: Any, hint: Any = None) -> Value:
        return serialize(value, self, hint)

    def encode_nested(self, value: Any, hint: Any = None) -> Value:
        depth = self.depth + 1
        limit = self.config.max_depth
        if limit is not None and depth > limit:
            raise self.error.recursion_limit(limit)
        return Encoder(self.lua, self.config, depth).encode(value, hint)

    def create_string(self, text: str) -> String:
        with lua_errors(self.error):
            return self.lua.create_string(text)

    def create_table(self) -> Table:
        with lua_errors(self.error):
            return self.lua.create_table()

    def serialize_bool(self, value: bool) -> Value:
        return Boolean(value)

    def serialize_i8(self, value: int) -> Value:
        return self.serialize_i64(value)

    def serialize_i16(self, value: int) -> Value:
        return self.serialize_i64(value)

    def serialize_i32(self, value: int) -> Value:
        return self.serialize_i64(value)

    def serialize_i64(self, value: int) -> Value:
        return Integer(value)

    def serialize_u8(self, value: int) -> Value:
        return self.serialize_i64(value)

    def serialize_u16(self, value: int) -> Value:
        return self.serialize_i64(value)

    def serialize_u32(self, value: int) -> Value:
        return self.serialize_i64(value)

    def serialize_u64(self, value: int) -> Value:
        # Lua integers are signed: the upper half of the u64 range wraps
        # around to negative values.
        if value > I64_WIDTH.max:
            value -= _U64_MODULUS
        return self.serialize_i64(value)

    def serialize_f32(self, value: float) -> Value:
        return self.serialize_f64(value)

    def serialize_f64(self, value: float) -> Value:
        return Number(float(value))

    def serialize_char(self, value: str) -> Value:
        return self.serialize_str(value)

    def serialize_str(self, value: str) -> Value:
        return self.create_string(value)

    def serialize_bytes(self, value: bytes) -> Value:
        table = self.create_table()
        with lua_errors(self.error):
            for idx, byte in enumerate(value, start=1):
                table.set(Integer(idx), Integer(byte))
        return table

    def serialize_none(self) -> Value:
        return self.serialize_unit()

    def serialize_some(self, value: Any, hint: Any = None) -> Value:
        return self.encode(value, hint)

    def serialize_unit(self) -> Value:
        return NIL

    def serialize_unit_struct(self, name: str) -> Value:
        return self.serialize_unit()

    def serialize_unit_variant(self, name: str, variant_index: int, variant: str) -> Value:
        return self.serialize_str(variant)

    def serialize_newtype_struct(self, name: str, value: Any, hint: Any = None) -> Value:
        return self.encode(value, hint)

    def serialize_newtype_variant(
        self,
        name: str,
        variant_index: int,
        variant: str,
        value: Any,
        hint: Any = None
    ) -> Value:
        table = self.create_table()
        key = self.create_string(variant)
        payload = self.encode_nested(value, hint)
        with lua_errors(self.error):
            table.set(key, payload)
        return table

    def serialize_seq(self, length: int | None) -> "SequenceBuilder":
        return SequenceBuilder(self, self.create_table())

    def serialize_tuple(self, length: int) -> "SequenceBuilder":
        return self.serialize_seq(length)

    def serialize_tuple_struct(self, name: str, length: int) -> "SequenceBuilder":
        return self.serialize_seq(length)

    def serialize_tuple_variant(
        self,
        name: str,
        variant_index: int,
        variant: str,
        length: int
    ) -> "TupleVariantBuilder":
        key = self.create_string(variant)
        return TupleVariantBuilder(self, key, self.create_table())

    def serialize_map(self, length: int | None) -> "MapBuilder":
        return MapBuilder(self, self.create_table())

    def serialize_struct(self, name: str, length: int) -> "MapBuilder":
        return self.serialize_map(length)

    def serialize_struct_variant(
        self,
        name: str,
        variant_index: int,
        variant: str,
        length: int
    ) -> "StructVariantBuilder":
        key = self.create_string(variant)
        return StructVariantBuilder(self, key, self.create_table())


class SequenceBuilder(SerializeSeq[Value]):
    """
    Fills a table sequence. Elements are stored under the running index
    1, 2, 3, ...
    """

    def __init__(self, encoder: Encoder, table: Table) -> None:
        self._encoder = encoder
        self._table = table
        self._idx = 1

    def serialize_element(self, value: Any, hint: Any = None) -> None:
        item = self._encoder.encode_nested(value, hint)
        with lua_errors(self._encoder.error):
            self._table.set(Integer(self._idx), item)
        self._idx += 1

    def serialize_field(self, value: Any, hint: Any = None) -> None:
        self.serialize_element(value, hint)

    def end(self) -> Value:
        return self._table


class TupleVariantBuilder(SerializeTupleVariant[Value]):
    """
    Fills the sequence of a tuple variant, then wraps it as `{variant = seq}`.
    """

    def __init__(self, encoder: Encoder, name: String, table: Table) -> None:
        self._encoder = encoder
        self._name = name
        self._seq = SequenceBuilder(encoder, table)

    def serialize_field(self, value: Any, hint: Any = None) -> None:
        self._seq.serialize_element(value, hint)

    def end(self) -> Value:
        outer = self._encoder.create_table()
        with lua_errors(self._encoder.error):
            outer.set(self._name, self._seq.end())
        return outer


class MapBuilder(SerializeMap[Value]):
    """
    Fills a table from key/value pairs. Also used for structs, with the
    field names as string keys.
    """

    def __init__(self, encoder: Encoder, table: Table) -> None:
        self._encoder = encoder
        self._table = table
        self._next_key: Value | None = None

    def serialize_key(self, key: Any, hint: Any = None) -> None:
        self._next_key = self._encoder.encode_nested(key, hint)

    def serialize_value(self, value: Any, hint: Any = None) -> None:
        if self._next_key is None:
            raise RuntimeError("serialize_value called before serialize_key")

        key, self._next_key = self._next_key, None
        item = self._encoder.encode_nested(value, hint)
        with lua_errors(self._encoder.error):
            self._table.set(key, item)

    def serialize_field(self, key: str, value: Any, hint: Any = None) -> None:
        name = self._encoder.create_string(key)
        item = self._encoder.encode_nested(value, hint)
        with lua_errors(self._encoder.error):
            self._table.set(name, item)

    def end(self) -> Value:
        return self._table


class StructVariantBuilder(SerializeStructVariant[Value]):
    """
    Fills the field table of a struct variant, then wraps it as
    `{variant = fields}`.
    """

    def __init__(self, encoder: Encoder, name: String, table: Table) -> None:
        self._encoder = encoder
        self._name = name
        self._fields = MapBuilder(encoder, table)

    def serialize_field(self, key: str, value: Any, hint: Any = None) -> None:
        self._fields.serialize_field(key, value, hint)

    def end(self) -> Value:
        outer = self._encoder.create_table()
        with lua_errors(self._encoder.error):
            outer.set(self._name, self._fields.end())
        return outer
