import enum
from dataclasses import dataclass, field
from typing import Any, NamedTuple, NewType

import pytest

from luacodec.core.codec.decoder import Decoder, TableMapAccess
from luacodec.core.errors import DeserializeError, ErrorKind, FromLuaConversionError
from luacodec.core.facade import from_value
from luacodec.core.models.config import CodecConfig
from luacodec.core.models.value import NIL, Boolean, Integer, Number, String
from luacodec.core.serde.de import END, Visitor
from luacodec.core.serde.shapes import F32, I8, U8, U32, Char, TaggedEnum, VariantKind


def s(text: str) -> String:
    return String.from_text(text)


class Color(enum.Enum):
    Red = 1
    Green = 2


class E(TaggedEnum):
    pass


@dataclass
class Unit(E):
    pass


@dataclass
class Newtype(E, kind=VariantKind.newtype):
    value: int


@dataclass
class Tuple(E, kind=VariantKind.tuple):
    first: int
    second: int


@dataclass
class Struct(E):
    a: int


@dataclass
class Record:
    int: U32
    seq: list[str]
    map: dict[int, int]
    empty: list[None]


@dataclass
class Settings:
    name: str
    retries: int = 3
    tags: list[str] = field(default_factory=list)
    nickname: str | None = None


class Rgb(NamedTuple):
    r: U8
    g: U8
    b: U8


UserId = NewType("UserId", int)


@pytest.mark.ut
@pytest.mark.parametrize(
    "value, expected",
    [
        (NIL, None),
        (Boolean(True), True),
        (Integer(42), 42),
        (Number(1.5), 1.5),
        (String(b"hello"), "hello"),
    ],
)
def test_decode_any_scalars(value, expected):
    assert from_value(value) == expected


@pytest.mark.ut
def test_decode_any_table_is_a_map(lua):
    table = lua.table_from({Integer(1): Integer(2), Integer(4): Integer(1)})

    assert from_value(table) == {1: 2, 4: 1}


@pytest.mark.ut
def test_decode_any_sequence_table_is_a_map(lua):
    assert from_value(lua.table(s("a"), s("b"))) == {1: "a", 2: "b"}


@pytest.mark.ut
def test_decode_any_unhashable_key_fails(lua):
    table = lua.table_from({lua.table(Integer(1)): Integer(2)})

    with pytest.raises(DeserializeError, match="not hashable"):
        from_value(table)


@pytest.mark.ut
def test_decode_struct(lua):
    table = lua.table(
        int=Integer(1),
        seq=lua.table(s("a"), s("b")),
        map=lua.table_from({Integer(1): Integer(2), Integer(4): Integer(1)}),
        empty=lua.table(),
    )

    assert from_value(table, Record) == Record(
        int=1,
        seq=["a", "b"],
        map={1: 2, 4: 1},
        empty=[],
    )


@pytest.mark.ut
def test_decode_struct_defaults_and_unknown_fields(lua):
    table = lua.table(name=s("x"), extra=lua.table(Integer(1)))

    assert from_value(table, Settings) == Settings(name="x", retries=3, tags=[], nickname=None)


@pytest.mark.ut
def test_decode_struct_missing_field(lua):
    with pytest.raises(DeserializeError, match="missing field `name`"):
        from_value(lua.table(retries=Integer(1)), Settings)


@pytest.mark.ut
def test_decode_struct_from_scalar_fails(lua):
    with pytest.raises(DeserializeError) as exc:
        from_value(Integer(1), Settings)

    assert exc.value.kind is ErrorKind.type_mismatch
    assert "expected struct Settings" in str(exc.value)


@pytest.mark.ut
def test_decode_integer_range_is_checked():
    assert from_value(Integer(-128), I8) == -128

    with pytest.raises(DeserializeError) as exc:
        from_value(Integer(300), U8)

    assert exc.value.kind is ErrorKind.type_mismatch
    assert "invalid value: integer `300`, expected u8" in str(exc.value)


@pytest.mark.ut
def test_decode_float_accepts_integers():
    assert from_value(Integer(2), float) == 2.0
    assert from_value(Number(0.5), F32) == 0.5


@pytest.mark.ut
def test_decode_float_as_integer_fails():
    with pytest.raises(DeserializeError) as exc:
        from_value(Number(1.5), int)

    assert "invalid type: floating point `1.5`, expected an integer" in str(exc.value)


@pytest.mark.ut
def test_decode_char():
    assert from_value(s("x"), Char) == "x"

    with pytest.raises(DeserializeError):
        from_value(s("xy"), Char)


@pytest.mark.ut
def test_decode_invalid_utf8_is_an_encoding_error():
    with pytest.raises(DeserializeError) as exc:
        from_value(String(b"\xff"), str)

    assert exc.value.kind is ErrorKind.encoding
    assert isinstance(exc.value.into_lua(), FromLuaConversionError)


@pytest.mark.ut
def test_decode_bytes_from_sequence(lua):
    assert from_value(lua.table(Integer(1), Integer(255)), bytes) == b"\x01\xff"

    with pytest.raises(DeserializeError):
        from_value(lua.table(Integer(256)), bytes)


@pytest.mark.ut
def test_decode_sequence(lua):
    assert from_value(lua.table(Integer(1), Integer(2)), list[int]) == [1, 2]
    assert from_value(lua.table(Integer(1), Integer(1)), set[int]) == {1}
    assert from_value(lua.table(Integer(1), Integer(2)), tuple[int, ...]) == (1, 2)


@pytest.mark.ut
def test_decode_sequence_ignores_non_sequential_keys(lua):
    table = lua.table(Integer(1), Integer(2), name=s("x"))

    assert from_value(table, list[int]) == [1, 2]


@pytest.mark.ut
def test_decode_sequence_from_scalar_fails():
    with pytest.raises(DeserializeError) as exc:
        from_value(Integer(1), list[int])

    assert exc.value.kind is ErrorKind.type_mismatch
    assert "invalid value type" in str(exc.value)


@pytest.mark.ut
def test_decode_tuple(lua):
    table = lua.table(Integer(1), Integer(2), Integer(3))

    assert from_value(table, tuple[int, int, int]) == (1, 2, 3)
    assert from_value(table, Rgb) == Rgb(1, 2, 3)


@pytest.mark.ut
def test_decode_tuple_with_too_many_elements_fails(lua):
    with pytest.raises(DeserializeError) as exc:
        from_value(lua.table(Integer(1), Integer(2), Integer(3)), tuple[int, int])

    assert exc.value.kind is ErrorKind.length_mismatch
    assert "invalid length 3, expected fewer elements in array" in str(exc.value)


@pytest.mark.ut
def test_decode_tuple_with_too_few_elements_fails(lua):
    with pytest.raises(DeserializeError) as exc:
        from_value(lua.table(Integer(1), Integer(2)), tuple[int, int, int])

    assert exc.value.kind is ErrorKind.length_mismatch
    assert "invalid length 2, expected a tuple of size 3" in str(exc.value)


@pytest.mark.ut
def test_decode_map(lua):
    table = lua.table_from({s("a"): Integer(1), s("b"): Integer(2)})

    assert from_value(table, dict[str, int]) == {"a": 1, "b": 2}


@pytest.mark.ut
def test_decode_map_with_wrong_key_type_fails(lua):
    with pytest.raises(DeserializeError, match="expected an integer"):
        from_value(lua.table(name=s("x")), dict[int, str])


@pytest.mark.ut
def test_decode_option(lua):
    assert from_value(NIL, int | None) is None
    assert from_value(Integer(3), int | None) == 3
    assert from_value(lua.table(Integer(1)), list[int] | None) == [1]


@pytest.mark.ut
def test_decode_newtype_struct():
    assert from_value(Integer(5), UserId) == UserId(5)


@pytest.mark.ut
def test_decode_unit_variant():
    assert from_value(s("Unit"), E) == Unit()
    assert from_value(s("Green"), Color) is Color.Green


@pytest.mark.ut
def test_decode_unknown_variant_fails():
    with pytest.raises(DeserializeError) as exc:
        from_value(s("Other"), E)

    assert "unknown variant `Other`, expected one of `Unit`, `Newtype`, `Tuple`, `Struct`" in str(exc.value)


@pytest.mark.ut
def test_decode_payload_variants(lua):
    assert from_value(lua.table(Newtype=Integer(1)), E) == Newtype(1)
    assert from_value(lua.table(Tuple=lua.table(Integer(1), Integer(2))), E) == Tuple(1, 2)
    assert from_value(lua.table(Struct=lua.table(a=Integer(1))), E) == Struct(a=1)


@pytest.mark.ut
def test_decode_enum_from_table_with_two_entries_fails(lua):
    table = lua.table(Newtype=Integer(1), Extra=Integer(2))

    with pytest.raises(DeserializeError) as exc:
        from_value(table, E)

    assert exc.value.kind is ErrorKind.type_mismatch
    assert "invalid value: map, expected map with a single key" in str(exc.value)


@pytest.mark.ut
def test_decode_enum_from_empty_table_fails(lua):
    with pytest.raises(DeserializeError, match="map with a single key"):
        from_value(lua.table(), E)


@pytest.mark.ut
def test_decode_enum_from_scalar_fails():
    with pytest.raises(DeserializeError, match="bad enum value"):
        from_value(Integer(1), E)


@pytest.mark.ut
def test_decode_enum_with_non_string_key_fails(lua):
    table = lua.table_from({Boolean(True): Integer(1)})

    with pytest.raises(DeserializeError, match="expected a variant name"):
        from_value(table, E)


@pytest.mark.ut
@pytest.mark.parametrize(
    "make_value, message",
    [
        (lambda lua: s("Newtype"), "invalid type: unit variant, expected newtype variant"),
        (lambda lua: s("Tuple"), "invalid type: unit variant, expected tuple variant"),
        (lambda lua: s("Struct"), "invalid type: unit variant, expected struct variant"),
        (lambda lua: lua.table(Unit=Integer(1)), "invalid type: newtype variant, expected unit variant"),
    ],
)
def test_decode_variant_with_wrong_payload_presence_fails(lua, make_value, message):
    with pytest.raises(DeserializeError) as exc:
        from_value(make_value(lua), E)

    assert exc.value.kind is ErrorKind.type_mismatch
    assert message in str(exc.value)


@pytest.mark.ut
def test_decode_tuple_variant_with_wrong_arity_fails(lua):
    table = lua.table(Tuple=lua.table(Integer(1), Integer(2), Integer(3)))

    with pytest.raises(DeserializeError) as exc:
        from_value(table, E)

    assert exc.value.kind is ErrorKind.length_mismatch


@pytest.mark.ut
def test_decode_errors_are_tagged_as_deserialize():
    with pytest.raises(DeserializeError) as exc:
        from_value(Integer(1), str)

    inner = exc.value.into_lua()
    assert isinstance(inner, FromLuaConversionError)
    assert (inner.from_, inner.to) == ("value", "deserialize")
    assert exc.value.direction == "deserialize"
    assert str(exc.value) == (
        "error converting Lua value to deserialize "
        "(invalid type: integer `1`, expected a string)"
    )


class FirstKeyVisitor(Visitor):
    expecting = "a map"

    def visit_map(self, entries):
        key = entries.next_key()
        return key, entries.next_value()


@pytest.mark.ut
def test_decode_leftover_pairs_is_a_length_error(lua):
    table = lua.table(Integer(10), Integer(20))
    decoder = Decoder(table)

    with pytest.raises(DeserializeError) as exc:
        decoder.deserialize_map(FirstKeyVisitor(decoder.error))

    assert exc.value.kind is ErrorKind.length_mismatch
    assert "invalid length 2, expected fewer elements in array" in str(exc.value)


@pytest.mark.ut
def test_map_value_without_key_fails(lua):
    entries = TableMapAccess(Decoder(lua.table()), iter([]))

    assert entries.next_key() is END
    with pytest.raises(DeserializeError, match="value is missing"):
        entries.next_value()


@pytest.mark.ut
def test_decode_self_referencing_table_hits_nesting_limit(lua):
    table = lua.table()
    table.set(s("self"), table)

    with pytest.raises(DeserializeError) as exc:
        from_value(table, config=CodecConfig(max_depth=16))

    assert exc.value.kind is ErrorKind.recursion_limit


@pytest.mark.ut
def test_decode_nesting_limit(lua):
    nested = lua.table(lua.table(Integer(1)))

    assert from_value(nested, list[list[int]], CodecConfig(max_depth=2)) == [[1]]

    with pytest.raises(DeserializeError) as exc:
        from_value(nested, list[list[int]], CodecConfig(max_depth=1))

    assert exc.value.kind is ErrorKind.recursion_limit


@pytest.mark.ut
def test_decode_any_hint_is_default():
    assert from_value(Integer(1), Any) == 1


@dataclass
class Pair:
    a: int = 0
    b: int = 0


@pytest.mark.ut
def test_decode_struct_from_integer_keys_fails(lua):
    with pytest.raises(DeserializeError) as exc:
        from_value(lua.table(Integer(10), Integer(20)), Pair)

    assert exc.value.kind is ErrorKind.type_mismatch
    assert "invalid type: integer `1`, expected field identifier" in str(exc.value)


@pytest.mark.ut
def test_decode_map_with_unhashable_key_fails(lua):
    table = lua.table_from({lua.table(Integer(1)): Integer(2)})

    with pytest.raises(DeserializeError, match="map key of type `dict` is not hashable"):
        from_value(table, dict)


@pytest.mark.ut
@pytest.mark.parametrize("hint", [set, frozenset[Any]])
def test_decode_set_with_unhashable_element_fails(lua, hint):
    with pytest.raises(DeserializeError, match="set element of type `dict` is not hashable"):
        from_value(lua.table(lua.table(Integer(1))), hint)


class Status(TaggedEnum):
    pass


@dataclass
class NotFound(Status, kind=VariantKind.newtype, name="404"):
    path: str


@pytest.mark.ut
def test_decode_enum_numeric_key_is_read_as_name(lua):
    table = lua.table_from({Integer(404): s("/missing")})

    assert from_value(table, Status) == NotFound("/missing")


@pytest.mark.ut
def test_decode_enum_unknown_numeric_key_fails(lua):
    with pytest.raises(DeserializeError, match="unknown variant `7`"):
        from_value(lua.table_from({Integer(7): Integer(1)}), E)
    with pytest.raises(DeserializeError, match="unknown variant `1.5`"):
        from_value(lua.table_from({Number(1.5): Integer(1)}), E)


class SizeHintVisitor(Visitor):
    expecting = "a sequence"

    def visit_seq(self, seq):
        hints = [seq.size_hint()]
        while seq.next_element() is not END:
            hints.append(seq.size_hint())
        return hints


@pytest.mark.ut
def test_sequence_size_hint_counts_remaining_elements(lua):
    decoder = Decoder(lua.table(Integer(1), Integer(2), Integer(3)))

    assert decoder.deserialize_seq(SizeHintVisitor(decoder.error)) == [3, 2, 1, 0]
