import enum
from dataclasses import dataclass, field
from typing import NamedTuple, NewType

import pytest

from tests.fake.fake_runtime import FakeLuaContext

from luacodec.core.codec.encoder import Encoder, MapBuilder
from luacodec.core.errors import ErrorKind, RuntimeFailure, SerializeError, ToLuaConversionError
from luacodec.core.facade import to_value
from luacodec.core.models.config import CodecConfig
from luacodec.core.models.value import NIL, Boolean, Integer, Number, String, Table
from luacodec.core.serde.shapes import F32, I8, U8, U64, Char, TaggedEnum, VariantKind


def s(text: str) -> String:
    return String.from_text(text)


def entries(table: Table) -> dict:
    return dict(table.pairs())


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
    int: int
    seq: list[str]
    map: dict[int, int]
    empty: list[None] = field(default_factory=list)


@dataclass
class Marker:
    pass


class Point(NamedTuple):
    x: int
    y: int


UserId = NewType("UserId", int)


@pytest.mark.ut
@pytest.mark.parametrize(
    "value, expected",
    [
        (None, NIL),
        (True, Boolean(True)),
        (False, Boolean(False)),
        (42, Integer(42)),
        (-7, Integer(-7)),
        (1.5, Number(1.5)),
        ("hello", String(b"hello")),
        ("héllo", String("héllo".encode("utf-8"))),
    ],
)
def test_encode_scalars(lua, value, expected):
    assert to_value(lua, value) == expected


@pytest.mark.ut
def test_encode_unit_struct_is_nil(lua):
    assert to_value(lua, Marker()) == NIL


@pytest.mark.ut
def test_encode_u64_above_i64_max_wraps_around(lua):
    assert to_value(lua, 2**64 - 1, U64) == Integer(-1)
    assert to_value(lua, 2**63, U64) == Integer(-(2**63))
    assert to_value(lua, 2**63) == Integer(-(2**63))


@pytest.mark.ut
def test_encode_integer_wider_than_64_bits_fails(lua):
    with pytest.raises(SerializeError) as exc:
        to_value(lua, 2**64)

    assert exc.value.kind is ErrorKind.custom
    assert "does not fit in 64 bits" in str(exc.value)


@pytest.mark.ut
def test_encode_sized_integer_out_of_range_fails(lua):
    assert to_value(lua, -128, I8) == Integer(-128)

    with pytest.raises(SerializeError, match="out of range for i8"):
        to_value(lua, 300, I8)


@pytest.mark.ut
def test_encode_f32_widens_to_number(lua):
    assert to_value(lua, 0.5, F32) == Number(0.5)


@pytest.mark.ut
def test_encode_char(lua):
    assert to_value(lua, "x", Char) == s("x")

    with pytest.raises(SerializeError, match="single character"):
        to_value(lua, "xy", Char)


@pytest.mark.ut
def test_encode_bytes_as_sequence_of_integers(lua):
    table = to_value(lua, b"\x01\xff")

    assert isinstance(table, Table)
    assert table.len() == 2
    assert list(table.sequence_values()) == [Integer(1), Integer(255)]


@pytest.mark.ut
def test_encode_sequence_is_one_based(lua):
    table = to_value(lua, ["a", "b"])

    assert entries(table) == {Integer(1): s("a"), Integer(2): s("b")}


@pytest.mark.ut
def test_encode_empty_sequence_is_empty_table(lua):
    table = to_value(lua, [])

    assert isinstance(table, Table)
    assert entries(table) == {}


@pytest.mark.ut
def test_encode_tuple_and_tuple_struct(lua):
    assert list(to_value(lua, (1, "a")).sequence_values()) == [Integer(1), s("a")]
    assert list(to_value(lua, Point(3, 4)).sequence_values()) == [Integer(3), Integer(4)]


@pytest.mark.ut
def test_encode_tuple_with_wrong_arity_fails(lua):
    with pytest.raises(SerializeError, match="tuple of size 2"):
        to_value(lua, (1, 2, 3), tuple[int, int])


@pytest.mark.ut
def test_encode_map(lua):
    table = to_value(lua, {1: 2, 4: 1})

    assert entries(table) == {Integer(1): Integer(2), Integer(4): Integer(1)}


@pytest.mark.ut
def test_encode_struct(lua):
    value = Record(int=1, seq=["a", "b"], map={1: 2, 4: 1}, empty=[])

    table = to_value(lua, value)

    assert table.get(s("int")) == Integer(1)
    assert list(table.get(s("seq")).sequence_values()) == [s("a"), s("b")]
    assert entries(table.get(s("map"))) == {Integer(1): Integer(2), Integer(4): Integer(1)}
    assert entries(table.get(s("empty"))) == {}


@pytest.mark.ut
def test_encode_struct_rejects_other_type(lua):
    with pytest.raises(SerializeError, match="expected struct Record"):
        to_value(lua, {"int": 1}, Record)


@pytest.mark.ut
def test_encode_none_field_leaves_key_absent(lua):
    @dataclass
    class Partial:
        name: str
        nickname: str | None = None

    table = to_value(lua, Partial(name="x"))

    assert entries(table) == {s("name"): s("x")}


@pytest.mark.ut
def test_encode_option(lua):
    assert to_value(lua, None, int | None) == NIL
    assert to_value(lua, 3, int | None) == Integer(3)


@pytest.mark.ut
def test_encode_newtype_struct_is_transparent(lua):
    assert to_value(lua, UserId(5), UserId) == Integer(5)


@pytest.mark.ut
def test_encode_unit_variants(lua):
    assert to_value(lua, Unit()) == s("Unit")
    assert to_value(lua, Color.Green) == s("Green")


@pytest.mark.ut
def test_encode_newtype_variant(lua):
    table = to_value(lua, Newtype(1))

    assert entries(table) == {s("Newtype"): Integer(1)}


@pytest.mark.ut
def test_encode_tuple_variant(lua):
    table = to_value(lua, Tuple(1, 2))

    (key, inner), = table.pairs()
    assert key == s("Tuple")
    assert list(inner.sequence_values()) == [Integer(1), Integer(2)]


@pytest.mark.ut
def test_encode_struct_variant(lua):
    table = to_value(lua, Struct(a=1))

    (key, inner), = table.pairs()
    assert key == s("Struct")
    assert entries(inner) == {s("a"): Integer(1)}


@pytest.mark.ut
def test_encode_value_of_wrong_enum_fails(lua):
    with pytest.raises(SerializeError, match="not a variant of enum E"):
        to_value(lua, Color.Red, E)


@pytest.mark.ut
def test_encode_unsupported_object_fails(lua):
    with pytest.raises(SerializeError, match="cannot serialize value of type `object`"):
        to_value(lua, object())


@pytest.mark.ut
def test_encode_allocation_failure_is_wrapped():
    lua = FakeLuaContext(allocation_budget=1)

    with pytest.raises(SerializeError) as exc:
        to_value(lua, ["a", "b"])

    assert exc.value.kind is ErrorKind.allocation
    assert isinstance(exc.value.into_lua(), RuntimeFailure)
    assert str(exc.value) == "not enough memory"


@pytest.mark.ut
def test_encode_nil_key_is_rejected_by_runtime(lua):
    with pytest.raises(SerializeError) as exc:
        to_value(lua, {None: 1})

    assert isinstance(exc.value.into_lua(), RuntimeFailure)
    assert "index is nil" in str(exc.value)


@pytest.mark.ut
def test_encode_custom_error_is_tagged_as_serialize(lua):
    with pytest.raises(SerializeError) as exc:
        to_value(lua, object())

    inner = exc.value.into_lua()
    assert isinstance(inner, ToLuaConversionError)
    assert (inner.from_, inner.to) == ("serialize", "value")
    assert exc.value.direction == "serialize"


@pytest.mark.ut
def test_map_value_without_key_is_a_programming_error(lua):
    builder = MapBuilder(Encoder(lua), lua.create_table())

    with pytest.raises(RuntimeError, match="before serialize_key"):
        builder.serialize_value(1)


@pytest.mark.ut
def test_map_builder_pairs_keys_and_values(lua):
    builder = MapBuilder(Encoder(lua), lua.create_table())
    builder.serialize_key("a")
    builder.serialize_value(1)
    builder.serialize_entry("b", 2)

    assert entries(builder.end()) == {s("a"): Integer(1), s("b"): Integer(2)}


@pytest.mark.ut
def test_encode_nesting_limit(lua):
    config = CodecConfig(max_depth=2)

    assert to_value(lua, [[1]], config=config).len() == 1

    with pytest.raises(SerializeError) as exc:
        to_value(lua, [[[1]]], config=config)

    assert exc.value.kind is ErrorKind.recursion_limit


@pytest.mark.ut
def test_encode_cyclic_container_hits_nesting_limit(lua):
    cyclic: list = []
    cyclic.append(cyclic)

    with pytest.raises(SerializeError) as exc:
        to_value(lua, cyclic, config=CodecConfig(max_depth=32))

    assert exc.value.kind is ErrorKind.recursion_limit
    assert "recursion limit of 32 exceeded" in str(exc.value)


@pytest.mark.ut
def test_encode_without_nesting_limit(lua):
    nested: list = [1]
    for _ in range(100):
        nested = [nested]

    table = to_value(lua, nested, config=CodecConfig(max_depth=None))

    assert isinstance(table, Table)


@pytest.mark.ut
def test_encode_sized_element_hint(lua):
    assert list(to_value(lua, [1, 2], list[U8]).sequence_values()) == [Integer(1), Integer(2)]


@pytest.mark.ut
@pytest.mark.parametrize(
    "value, hint, message",
    [
        (5, list[int], "expected a sequence, got `int`"),
        (5, tuple[int, int], "expected a tuple, got `int`"),
        (5, dict[str, int], "expected a map, got `int`"),
        ([1, 2], dict[str, int], "expected a map, got `list`"),
        ((3, 4), Point, "expected tuple struct Point, got `tuple`"),
        (5, bytes, "expected a byte string, got `int`"),
        ("x", int, "expected int, got `str`"),
        (None, float, "expected float, got `NoneType`"),
    ],
)
def test_encode_value_not_matching_its_hint_fails(lua, value, hint, message):
    with pytest.raises(SerializeError) as exc:
        to_value(lua, value, hint)

    assert exc.value.kind is ErrorKind.custom
    assert message in str(exc.value)
