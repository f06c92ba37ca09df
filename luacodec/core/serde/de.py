"""
Deserialization side of the structured data model.

A format implements `Deserializer`. The caller states which shape it wants
by calling one of the `deserialize_*` methods with a `Visitor`; the format
then calls back exactly one `visit_*` method describing what it actually
holds. Aggregates are handed over as access objects (`SeqAccess`,
`MapAccess`, `EnumAccess`) from which the visitor pulls nested values
through seeds.

`deserialize()` picks the request and the visitor for a Python type hint.
"""
import struct
from typing import Any, Protocol, Sequence

from luacodec.core.serde.errors import DeError, Unexpected
from luacodec.core.serde.shapes import (
    U8, AnyShape, BoolShape, BytesShape, CharShape, EnumShape, Field,
    FloatShape, IntShape, IntWidth, MapShape, NewtypeStructShape,
    OptionShape, SeqShape, StrShape, StructShape, TupleShape,
    TupleStructShape, UnitShape, UnitStructShape, VariantKind,
    shape_of,
)


class _End:
    def __repr__(self) -> str:
        return "END"


END = _End()
"""
Returned by `SeqAccess.next_element_seed` and `MapAccess.next_key_seed`
once the aggregate has no more items. None cannot play that role: it is a
legitimate decoded value.
"""


class DeserializeSeed(Protocol):
    def deserialize(self, deserializer: "Deserializer") -> Any:
        ...


class TypeSeed:
    """Seed deserializing the shape described by a type hint."""

    def __init__(self, hint: Any = Any) -> None:
        self.hint = hint

    def deserialize(self, deserializer: "Deserializer") -> Any:
        return deserialize(self.hint, deserializer)


class SeqAccess(Protocol):
    def next_element_seed(self, seed: DeserializeSeed) -> Any:
        """Deserialize the next element with `seed`, or return END."""

    def size_hint(self) -> int | None:
        return None

    def next_element(self, hint: Any = Any) -> Any:
        return self.next_element_seed(TypeSeed(hint))


class MapAccess(Protocol):
    def next_key_seed(self, seed: DeserializeSeed) -> Any:
        """Deserialize the next key with `seed`, or return END."""

    def next_value_seed(self, seed: DeserializeSeed) -> Any:
        """Deserialize the value paired with the key returned last."""

    def size_hint(self) -> int | None:
        return None

    def next_key(self, hint: Any = Any) -> Any:
        return self.next_key_seed(TypeSeed(hint))

    def next_value(self, hint: Any = Any) -> Any:
        return self.next_value_seed(TypeSeed(hint))


class VariantAccess(Protocol):
    def unit_variant(self) -> None:
        ...

    def newtype_variant_seed(self, seed: DeserializeSeed) -> Any:
        ...

    def tuple_variant(self, length: int, visitor: "Visitor") -> Any:
        ...

    def struct_variant(self, fields: Sequence[str], visitor: "Visitor") -> Any:
        ...


class EnumAccess(Protocol):
    def variant_seed(self, seed: DeserializeSeed) -> tuple[Any, VariantAccess]:
        """Deserialize the variant tag with `seed`; return it with the payload accessor."""


class Visitor:
    """
    Receives the value a deserializer holds.

    Every `visit_*` method rejects its input by default; a visitor overrides
    the ones it accepts. `expecting` describes the accepted input in error
    messages.
    """
    expecting = "a value"

    def __init__(self, error: type[DeError]) -> None:
        self.error = error

    def __str__(self) -> str:
        return self.expecting

    def visit_bool(self, v: bool) -> Any:
        raise self.error.invalid_type(Unexpected.boolean(v), self)

    def visit_i64(self, v: int) -> Any:
        raise self.error.invalid_type(Unexpected.integer(v), self)

    def visit_u64(self, v: int) -> Any:
        raise self.error.invalid_type(Unexpected.integer(v), self)

    def visit_f64(self, v: float) -> Any:
        raise self.error.invalid_type(Unexpected.floating(v), self)

    def visit_char(self, v: str) -> Any:
        return self.visit_str(v)

    def visit_str(self, v: str) -> Any:
        raise self.error.invalid_type(Unexpected.string(v), self)

    def visit_bytes(self, v: bytes) -> Any:
        raise self.error.invalid_type(Unexpected.byte_array(), self)

    def visit_unit(self) -> Any:
        raise self.error.invalid_type(Unexpected.unit(), self)

    def visit_none(self) -> Any:
        raise self.error.invalid_type(Unexpected.option(), self)

    def visit_some(self, deserializer: "Deserializer") -> Any:
        raise self.error.invalid_type(Unexpected.option(), self)

    def visit_newtype_struct(self, deserializer: "Deserializer") -> Any:
        raise self.error.invalid_type(Unexpected.newtype_struct(), self)

    def visit_seq(self, seq: SeqAccess) -> Any:
        raise self.error.invalid_type(Unexpected.seq(), self)

    def visit_map(self, entries: MapAccess) -> Any:
        raise self.error.invalid_type(Unexpected.map(), self)

    def visit_enum(self, data: EnumAccess) -> Any:
        raise self.error.invalid_type(Unexpected.enum(), self)


class Deserializer:
    """
    A data format able to hand its content to visitors.

    `deserialize_any` lets the format describe itself; every other request
    states the shape the caller expects. Self-describing formats usually
    answer most requests the same way, so each request defaults to
    `deserialize_any` and a format only overrides the ones it interprets
    differently.
    """
    error: type[DeError]

    def deserialize_any(self, visitor: Visitor) -> Any:
        raise NotImplementedError

    def deserialize_bool(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_i8(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_i16(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_i32(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_i64(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_u8(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_u16(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_u32(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_u64(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_f32(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_f64(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_char(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_str(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_string(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_bytes(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_byte_buf(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_option(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_unit(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_unit_struct(self, name: str, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_newtype_struct(self, name: str, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_seq(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_tuple(self, length: int, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_tuple_struct(self, name: str, length: int, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_map(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_struct(self, name: str, fields: Sequence[str], visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_enum(self, name: str, variants: Sequence[str], visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_identifier(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)

    def deserialize_ignored_any(self, visitor: Visitor) -> Any:
        return self.deserialize_any(visitor)


class StrDeserializer(Deserializer):
    """Deserializer holding a single string, used for variant tags."""

    def __init__(self, value: str, error: type[DeError]) -> None:
        self.value = value
        self.error = error

    def deserialize_any(self, visitor: Visitor) -> Any:
        return visitor.visit_str(self.value)


def deserialize(hint: Any, deserializer: Deserializer) -> Any:
    """
    Deserialize the shape described by `hint` out of `deserializer`.

    Errors are raised through `deserializer.error`.
    """
    error = deserializer.error
    shape = shape_of(hint)

    match shape:
        case AnyShape():
            return deserializer.deserialize_any(AnyVisitor(error))

        case UnitShape():
            return deserializer.deserialize_unit(UnitVisitor(error))

        case BoolShape():
            return deserializer.deserialize_bool(BoolVisitor(error))

        case IntShape(width=None):
            return deserializer.deserialize_i64(IntVisitor(error))

        case IntShape(width=width):
            request = getattr(deserializer, f"deserialize_{width.name}")
            return request(IntVisitor(error, width))

        case FloatShape(bits=32):
            return deserializer.deserialize_f32(FloatVisitor(error, 32))

        case FloatShape():
            return deserializer.deserialize_f64(FloatVisitor(error))

        case CharShape():
            return deserializer.deserialize_char(CharVisitor(error))

        case StrShape():
            return deserializer.deserialize_string(StrVisitor(error))

        case BytesShape(container=container):
            # Byte strings are read back as sequences of u8.
            return deserializer.deserialize_seq(BytesVisitor(error, container))

        case OptionShape(inner=inner):
            return deserializer.deserialize_option(OptionVisitor(error, inner))

        case SeqShape(element=element, container=container):
            return deserializer.deserialize_seq(SeqVisitor(error, element, container))

        case TupleShape(elements=elements):
            return deserializer.deserialize_tuple(len(elements), TupleVisitor(error, elements))

        case MapShape(key=key, value=value):
            return deserializer.deserialize_map(MapVisitor(error, key, value))

        case StructShape(name=name, cls=cls, fields=fields):
            visitor = StructVisitor(error, f"struct {name}", fields, cls)
            return deserializer.deserialize_struct(name, [f.name for f in fields], visitor)

        case UnitStructShape(name=name, cls=cls):
            return deserializer.deserialize_unit_struct(name, UnitStructVisitor(error, name, cls))

        case TupleStructShape(name=name, cls=cls, elements=elements):
            visitor = TupleVisitor(error, elements, lambda items: cls(*items), f"tuple struct {name}")
            return deserializer.deserialize_tuple_struct(name, len(elements), visitor)

        case NewtypeStructShape(name=name, inner=inner):
            return deserializer.deserialize_newtype_struct(name, NewtypeVisitor(error, name, inner))

        case EnumShape(name=name):
            return deserializer.deserialize_enum(name, shape.variant_names, EnumVisitor(error, shape))

    raise TypeError(f"unhandled shape {shape!r}")


def check_hashable(value: Any, what: str, error: type[DeError]) -> Any:
    try:
        hash(value)
    except TypeError:
        raise error.custom(f"{what} of type `{type(value).__name__}` is not hashable")
    return value


class AnyVisitor(Visitor):
    """
    Accepts anything and builds plain Python values: None, bool, int, float,
    str, bytes, list and dict.
    """
    expecting = "any value"

    def visit_bool(self, v: bool) -> Any:
        return v

    def visit_i64(self, v: int) -> Any:
        return v

    def visit_u64(self, v: int) -> Any:
        return v

    def visit_f64(self, v: float) -> Any:
        return v

    def visit_str(self, v: str) -> Any:
        return v

    def visit_bytes(self, v: bytes) -> Any:
        return bytes(v)

    def visit_unit(self) -> Any:
        return None

    def visit_none(self) -> Any:
        return None

    def visit_some(self, deserializer: Deserializer) -> Any:
        return deserialize(Any, deserializer)

    def visit_newtype_struct(self, deserializer: Deserializer) -> Any:
        return deserialize(Any, deserializer)

    def visit_seq(self, seq: SeqAccess) -> Any:
        items = []
        while (item := seq.next_element()) is not END:
            items.append(item)
        return items

    def visit_map(self, entries: MapAccess) -> Any:
        out: dict[Any, Any] = {}
        while (key := entries.next_key()) is not END:
            out[check_hashable(key, "map key", self.error)] = entries.next_value()
        return out


class IgnoredAny(Visitor):
    """Accepts anything and discards it, draining nested aggregates."""
    expecting = "anything at all"

    def visit_bool(self, v: bool) -> Any:
        return None

    def visit_i64(self, v: int) -> Any:
        return None

    def visit_u64(self, v: int) -> Any:
        return None

    def visit_f64(self, v: float) -> Any:
        return None

    def visit_str(self, v: str) -> Any:
        return None

    def visit_bytes(self, v: bytes) -> Any:
        return None

    def visit_unit(self) -> Any:
        return None

    def visit_none(self) -> Any:
        return None

    def visit_some(self, deserializer: Deserializer) -> Any:
        return deserializer.deserialize_ignored_any(self)

    def visit_newtype_struct(self, deserializer: Deserializer) -> Any:
        return deserializer.deserialize_ignored_any(self)

    def visit_seq(self, seq: SeqAccess) -> Any:
        while seq.next_element_seed(IgnoredSeed()) is not END:
            pass
        return None

    def visit_map(self, entries: MapAccess) -> Any:
        while entries.next_key_seed(IgnoredSeed()) is not END:
            entries.next_value_seed(IgnoredSeed())
        return None


class IgnoredSeed:
    def deserialize(self, deserializer: Deserializer) -> Any:
        return deserializer.deserialize_ignored_any(IgnoredAny(deserializer.error))


class UnitVisitor(Visitor):
    expecting = "unit"

    def visit_unit(self) -> Any:
        return None


class BoolVisitor(Visitor):
    expecting = "a boolean"

    def visit_bool(self, v: bool) -> Any:
        return v


class IntVisitor(Visitor):
    """
    Accepts integers, checking they fit in the requested width.
    """

    def __init__(self, error: type[DeError], width: IntWidth | None = None) -> None:
        super().__init__(error)
        self.width = width
        self.expecting = width.name if width is not None else "an integer"

    def visit_i64(self, v: int) -> Any:
        if self.width is not None and not self.width.contains(v):
            raise self.error.invalid_value(Unexpected.integer(v), self)
        return v

    def visit_u64(self, v: int) -> Any:
        return self.visit_i64(v)


class FloatVisitor(Visitor):
    """
    Accepts floats and integers. Values requested as f32 are rounded to
    single precision.
    """

    def __init__(self, error: type[DeError], bits: int = 64) -> None:
        super().__init__(error)
        self.bits = bits
        self.expecting = f"f{bits}"

    def visit_f64(self, v: float) -> Any:
        if self.bits == 32:
            try:
                return struct.unpack("<f", struct.pack("<f", v))[0]
            except OverflowError:
                return float("inf") if v > 0 else float("-inf")
        return float(v)

    def visit_i64(self, v: int) -> Any:
        return self.visit_f64(float(v))

    def visit_u64(self, v: int) -> Any:
        return self.visit_f64(float(v))


class CharVisitor(Visitor):
    expecting = "a character"

    def visit_str(self, v: str) -> Any:
        if len(v) != 1:
            raise self.error.invalid_value(Unexpected.string(v), self)
        return v


class StrVisitor(Visitor):
    expecting = "a string"

    def visit_str(self, v: str) -> Any:
        return v

    def visit_bytes(self, v: bytes) -> Any:
        try:
            return v.decode("utf-8")
        except UnicodeDecodeError:
            raise self.error.invalid_value(Unexpected.byte_array(), self)


class BytesVisitor(Visitor):
    expecting = "a byte array"

    def __init__(self, error: type[DeError], container: type = bytes) -> None:
        super().__init__(error)
        self.container = container

    def visit_bytes(self, v: bytes) -> Any:
        return self.container(v)

    def visit_str(self, v: str) -> Any:
        return self.container(v.encode("utf-8"))

    def visit_seq(self, seq: SeqAccess) -> Any:
        out = bytearray()
        while (byte := seq.next_element(U8)) is not END:
            out.append(byte)
        return self.container(out)


class OptionVisitor(Visitor):
    expecting = "option"

    def __init__(self, error: type[DeError], inner: Any) -> None:
        super().__init__(error)
        self.inner = inner

    def visit_none(self) -> Any:
        return None

    def visit_unit(self) -> Any:
        return None

    def visit_some(self, deserializer: Deserializer) -> Any:
        return deserialize(self.inner, deserializer)


class SeqVisitor(Visitor):
    expecting = "a sequence"

    def __init__(self, error: type[DeError], element: Any, container: type = list) -> None:
        super().__init__(error)
        self.element = element
        self.container = container

    def visit_seq(self, seq: SeqAccess) -> Any:
        items = []
        unique = self.container in (set, frozenset)
        while (item := seq.next_element(self.element)) is not END:
            if unique:
                check_hashable(item, "set element", self.error)
            items.append(item)
        return items if self.container is list else self.container(items)


class TupleVisitor(Visitor):
    """
    Reads exactly `len(elements)` elements. A shorter sequence is a length
    error; whether a longer one is acceptable is up to the format.
    """

    def __init__(
        self,
        error: type[DeError],
        elements: Sequence[Any],
        build: Any = tuple,
        expecting: str | None = None
    ) -> None:
        super().__init__(error)
        self.elements = elements
        self.build = build
        self.expecting = expecting or f"a tuple of size {len(elements)}"

    def visit_seq(self, seq: SeqAccess) -> Any:
        items = []
        for idx, hint in enumerate(self.elements):
            item = seq.next_element(hint)
            if item is END:
                raise self.error.invalid_length(idx, self)
            items.append(item)
        return self.build(items)


class MapVisitor(Visitor):
    expecting = "a map"

    def __init__(self, error: type[DeError], key: Any, value: Any) -> None:
        super().__init__(error)
        self.key = key
        self.value = value

    def visit_map(self, entries: MapAccess) -> Any:
        out = {}
        while (key := entries.next_key(self.key)) is not END:
            out[check_hashable(key, "map key", self.error)] = entries.next_value(self.value)
        return out


class _Ignored:
    pass


IGNORED = _Ignored()


class IdentifierVisitor(Visitor):
    """
    Resolves field and variant identifiers from their names. Names outside
    `names` are reported through `on_unknown`.
    """
    expecting = "an identifier"

    def __init__(self, error: type[DeError], names: Sequence[str], on_unknown: Any) -> None:
        super().__init__(error)
        self.names = names
        self.on_unknown = on_unknown

    def visit_str(self, v: str) -> Any:
        if v in self.names:
            return v
        return self.on_unknown(v)

    def visit_bytes(self, v: bytes) -> Any:
        return self.visit_str(v.decode("utf-8", errors="replace"))


class FieldSeed:
    def __init__(self, names: Sequence[str]) -> None:
        self.names = names

    def deserialize(self, deserializer: Deserializer) -> Any:
        visitor = IdentifierVisitor(deserializer.error, self.names, lambda _: IGNORED)
        visitor.expecting = "field identifier"
        return deserializer.deserialize_identifier(visitor)


class VariantSeed:
    def __init__(self, shape: EnumShape) -> None:
        self.shape = shape

    def deserialize(self, deserializer: Deserializer) -> Any:
        names = self.shape.variant_names

        def unknown(name: str) -> Any:
            raise deserializer.error.unknown_variant(name, names)

        visitor = IdentifierVisitor(deserializer.error, names, unknown)
        visitor.expecting = "variant identifier"
        return deserializer.deserialize_identifier(visitor)


class StructVisitor(Visitor):
    """
    Builds a dataclass (or a struct variant) from a map of field names.

    Unknown keys are skipped. Missing fields fall back to their declared
    default; optional fields without a default become None.
    """

    def __init__(
        self,
        error: type[DeError],
        expecting: str,
        fields: Sequence[Field],
        build: Any
    ) -> None:
        super().__init__(error)
        self.expecting = expecting
        self.fields = fields
        self.build = build

    def visit_map(self, entries: MapAccess) -> Any:
        by_name = {f.name: f for f in self.fields}
        values: dict[str, Any] = {}
        seed = FieldSeed(list(by_name))

        while (name := entries.next_key_seed(seed)) is not END:
            if name is IGNORED:
                entries.next_value_seed(IgnoredSeed())
                continue
            if name in values:
                raise self.error.duplicate_field(name)
            values[name] = entries.next_value(by_name[name].hint)

        for field in self.fields:
            if field.name in values:
                continue
            if not field.required:
                values[field.name] = field.default_value()
            else:
                values[field.name] = deserialize(field.hint, MissingField(field.name, self.error))

        return self.build(**values)


class MissingField(Deserializer):
    """
    Stands in for a field absent from the input. Only shapes that have an
    empty form (options, unit and unit structs) accept it.
    """

    def __init__(self, name: str, error: type[DeError]) -> None:
        self.name = name
        self.error = error

    def deserialize_any(self, visitor: Visitor) -> Any:
        raise self.error.missing_field(self.name)

    def deserialize_option(self, visitor: Visitor) -> Any:
        return visitor.visit_none()

    def deserialize_unit(self, visitor: Visitor) -> Any:
        return visitor.visit_unit()

    def deserialize_unit_struct(self, name: str, visitor: Visitor) -> Any:
        return visitor.visit_unit()


class UnitStructVisitor(Visitor):
    def __init__(self, error: type[DeError], name: str, cls: type) -> None:
        super().__init__(error)
        self.expecting = f"unit struct {name}"
        self.cls = cls

    def visit_unit(self) -> Any:
        return self.cls()


class NewtypeVisitor(Visitor):
    def __init__(self, error: type[DeError], name: str, inner: Any) -> None:
        super().__init__(error)
        self.expecting = f"newtype struct {name}"
        self.inner = inner

    def visit_newtype_struct(self, deserializer: Deserializer) -> Any:
        return deserialize(self.inner, deserializer)


class EnumVisitor(Visitor):
    def __init__(self, error: type[DeError], shape: EnumShape) -> None:
        super().__init__(error)
        self.expecting = f"enum {shape.name}"
        self.shape = shape

    def visit_enum(self, data: EnumAccess) -> Any:
        name, access = data.variant_seed(VariantSeed(self.shape))
        variant = self.shape.find(name)
        if variant is None:
            raise self.error.unknown_variant(name, self.shape.variant_names)

        match variant.kind:
            case VariantKind.unit:
                access.unit_variant()
                return variant.construct()

            case VariantKind.newtype:
                value = access.newtype_variant_seed(TypeSeed(variant.fields[0].hint))
                return variant.construct(value)

            case VariantKind.tuple:
                visitor = TupleVisitor(
                    self.error,
                    [f.hint for f in variant.fields],
                    lambda items: variant.construct(*items),
                    f"tuple variant {self.shape.name}::{variant.name}",
                )
                return access.tuple_variant(len(variant.fields), visitor)

            case VariantKind.struct:
                visitor = StructVisitor(
                    self.error,
                    f"struct variant {self.shape.name}::{variant.name}",
                    variant.fields,
                    variant.construct,
                )
                return access.struct_variant([f.name for f in variant.fields], visitor)

        raise TypeError(f"unhandled variant kind {variant.kind!r}")
