"""
Serialization side of the structured data model.

A format implements `Serializer`: one method per shape, plus builder objects
for the aggregate shapes. `serialize()` walks a Python value according to
its type hint and drives the serializer; values nested inside an aggregate
are handed to the builders together with their own hint, so a format never
inspects Python types itself.
"""
import collections.abc
from typing import Any, Protocol, TypeVar

from luacodec.core.serde.errors import SerError
from luacodec.core.serde.shapes import (
    I64_WIDTH, U64_WIDTH, AnyShape, BoolShape, BytesShape, CharShape,
    EnumShape, FloatShape, IntShape, MapShape, NewtypeStructShape,
    OptionShape, SeqShape, StrShape, StructShape, TupleShape,
    TupleStructShape, UnitShape, UnitStructShape, VariantKind, infer_hint,
    shape_of,
)

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


class SerializeSeq(Protocol[T_co]):
    def serialize_element(self, value: Any, hint: Any = None) -> None:
        ...

    def end(self) -> T_co:
        ...


class SerializeTuple(Protocol[T_co]):
    def serialize_element(self, value: Any, hint: Any = None) -> None:
        ...

    def end(self) -> T_co:
        ...


class SerializeTupleStruct(Protocol[T_co]):
    def serialize_field(self, value: Any, hint: Any = None) -> None:
        ...

    def end(self) -> T_co:
        ...


class SerializeTupleVariant(Protocol[T_co]):
    def serialize_field(self, value: Any, hint: Any = None) -> None:
        ...

    def end(self) -> T_co:
        ...


class SerializeMap(Protocol[T_co]):
    """
    Builder for a map. Entries are written in two phases: `serialize_key`
    then `serialize_value`. Callers must alternate the two, starting with a
    key; `serialize_entry` does both.
    """

    def serialize_key(self, key: Any, hint: Any = None) -> None:
        ...

    def serialize_value(self, value: Any, hint: Any = None) -> None:
        ...

    def serialize_entry(
        self,
        key: Any,
        value: Any,
        key_hint: Any = None,
        value_hint: Any = None
    ) -> None:
        self.serialize_key(key, key_hint)
        self.serialize_value(value, value_hint)

    def end(self) -> T_co:
        ...


class SerializeStruct(Protocol[T_co]):
    def serialize_field(self, key: str, value: Any, hint: Any = None) -> None:
        ...

    def end(self) -> T_co:
        ...


class SerializeStructVariant(Protocol[T_co]):
    def serialize_field(self, key: str, value: Any, hint: Any = None) -> None:
        ...

    def end(self) -> T_co:
        ...


class Serializer(Protocol[T]):
    """
    A data format able to represent every shape of the data model.

    `error` is the error type the format raises; `serialize()` also uses it to
    report Python values that do not fit the requested shape.
    """
    error: type[SerError]

    def serialize_bool(self, value: bool) -> T: ...
    def serialize_i8(self, value: int) -> T: ...
    def serialize_i16(self, value: int) -> T: ...
    def serialize_i32(self, value: int) -> T: ...
    def serialize_i64(self, value: int) -> T: ...
    def serialize_u8(self, value: int) -> T: ...
    def serialize_u16(self, value: int) -> T: ...
    def serialize_u32(self, value: int) -> T: ...
    def serialize_u64(self, value: int) -> T: ...
    def serialize_f32(self, value: float) -> T: ...
    def serialize_f64(self, value: float) -> T: ...
    def serialize_char(self, value: str) -> T: ...
    def serialize_str(self, value: str) -> T: ...
    def serialize_bytes(self, value: bytes) -> T: ...
    def serialize_none(self) -> T: ...
    def serialize_some(self, value: Any, hint: Any = None) -> T: ...
    def serialize_unit(self) -> T: ...
    def serialize_unit_struct(self, name: str) -> T: ...

    def serialize_unit_variant(self, name: str, variant_index: int, variant: str) -> T:
        ...

    def serialize_newtype_struct(self, name: str, value: Any, hint: Any = None) -> T:
        ...

    def serialize_newtype_variant(
        self,
        name: str,
        variant_index: int,
        variant: str,
        value: Any,
        hint: Any = None
    ) -> T:
        ...

    def serialize_seq(self, length: int | None) -> SerializeSeq[T]: ...
    def serialize_tuple(self, length: int) -> SerializeTuple[T]: ...
    def serialize_tuple_struct(self, name: str, length: int) -> SerializeTupleStruct[T]: ...

    def serialize_tuple_variant(
        self,
        name: str,
        variant_index: int,
        variant: str,
        length: int
    ) -> SerializeTupleVariant[T]:
        ...

    def serialize_map(self, length: int | None) -> SerializeMap[T]: ...
    def serialize_struct(self, name: str, length: int) -> SerializeStruct[T]: ...

    def serialize_struct_variant(
        self,
        name: str,
        variant_index: int,
        variant: str,
        length: int
    ) -> SerializeStructVariant[T]:
        ...


def serialize(value: Any, serializer: Serializer[T], hint: Any = None) -> T:
    """
    Serialize `value` as the shape described by `hint`.

    Without a hint (or with `Any`) the shape is inferred from the value.
    Values that do not fit the shape are reported through
    `serializer.error.custom`.
    """
    if hint is None or hint is Any:
        hint = infer_hint(value)
        if hint is None:
            raise serializer.error.custom(f"cannot serialize value of type `{type(value).__name__}`")

    error = serializer.error
    shape = shape_of(hint)

    match shape:
        case AnyShape():
            return serialize(value, serializer)

        case UnitShape():
            return serializer.serialize_unit()

        case BoolShape():
            return serializer.serialize_bool(bool(value))

        case IntShape(width=None):
            value = _coerce(int, value, error)
            if I64_WIDTH.contains(value):
                return serializer.serialize_i64(value)
            if U64_WIDTH.contains(value):
                return serializer.serialize_u64(value)
            raise error.custom(f"integer `{value}` does not fit in 64 bits")

        case IntShape(width=width):
            value = _coerce(int, value, error)
            if not width.contains(value):
                raise error.custom(f"integer `{value}` out of range for {width.name}")
            return getattr(serializer, f"serialize_{width.name}")(value)

        case FloatShape(bits=32):
            return serializer.serialize_f32(_coerce(float, value, error))

        case FloatShape():
            return serializer.serialize_f64(_coerce(float, value, error))

        case CharShape():
            if not isinstance(value, str) or len(value) != 1:
                raise error.custom(f"expected a single character, got {value!r}")
            return serializer.serialize_char(value)

        case StrShape():
            return serializer.serialize_str(str(value))

        case BytesShape():
            if not isinstance(value, (bytes, bytearray, memoryview)):
                raise error.custom(f"expected a byte string, got `{type(value).__name__}`")
            return serializer.serialize_bytes(bytes(value))

        case OptionShape(inner=inner):
            if value is None:
                return serializer.serialize_none()
            return serializer.serialize_some(value, inner)

        case SeqShape(element=element):
            if not isinstance(value, collections.abc.Iterable):
                raise error.custom(f"expected a sequence, got `{type(value).__name__}`")
            items = list(value)
            seq = serializer.serialize_seq(len(items))
            for item in items:
                seq.serialize_element(item, element)
            return seq.end()

        case TupleShape(elements=elements):
            if not isinstance(value, collections.abc.Collection):
                raise error.custom(f"expected a tuple, got `{type(value).__name__}`")
            if len(value) != len(elements):
                raise error.custom(f"expected a tuple of size {len(elements)}, got {len(value)}")
            tup = serializer.serialize_tuple(len(elements))
            for item, item_hint in zip(value, elements):
                tup.serialize_element(item, item_hint)
            return tup.end()

        case MapShape(key=key_hint, value=value_hint):
            if not isinstance(value, collections.abc.Mapping):
                raise error.custom(f"expected a map, got `{type(value).__name__}`")
            entries = serializer.serialize_map(len(value))
            for key, item in value.items():
                entries.serialize_key(key, key_hint)
                entries.serialize_value(item, value_hint)
            return entries.end()

        case StructShape(name=name, cls=cls, fields=fields):
            if not isinstance(value, cls):
                raise error.custom(f"expected struct {name}, got `{type(value).__name__}`")
            struct = serializer.serialize_struct(name, len(fields))
            for field in fields:
                struct.serialize_field(field.name, getattr(value, field.name), field.hint)
            return struct.end()

        case UnitStructShape(name=name):
            return serializer.serialize_unit_struct(name)

        case TupleStructShape(name=name, cls=cls, elements=elements):
            if not isinstance(value, cls):
                raise error.custom(f"expected tuple struct {name}, got `{type(value).__name__}`")
            tup_struct = serializer.serialize_tuple_struct(name, len(elements))
            for item, item_hint in zip(value, elements):
                tup_struct.serialize_field(item, item_hint)
            return tup_struct.end()

        case NewtypeStructShape(name=name, inner=inner):
            return serializer.serialize_newtype_struct(name, value, inner)

        case EnumShape():
            return _serialize_variant(value, shape, serializer)

    raise TypeError(f"unhandled shape {shape!r}")


def _coerce(kind: type, value: Any, error: type[SerError]) -> Any:
    try:
        return kind(value)
    except (TypeError, ValueError, OverflowError):
        raise error.custom(f"expected {kind.__name__}, got `{type(value).__name__}`")


def _serialize_variant(value: Any, shape: EnumShape, serializer: Serializer[T]) -> T:
    found = shape.variant_of(value)
    if found is None:
        raise serializer.error.custom(
            f"`{type(value).__name__}` is not a variant of enum {shape.name}"
        )

    idx, variant = found
    match variant.kind:
        case VariantKind.unit:
            return serializer.serialize_unit_variant(shape.name, idx, variant.name)

        case VariantKind.newtype:
            field = variant.fields[0]
            return serializer.serialize_newtype_variant(
                shape.name, idx, variant.name, getattr(value, field.name), field.hint
            )

        case VariantKind.tuple:
            tup = serializer.serialize_tuple_variant(
                shape.name, idx, variant.name, len(variant.fields)
            )
            for field in variant.fields:
                tup.serialize_field(getattr(value, field.name), field.hint)
            return tup.end()

        case VariantKind.struct:
            struct = serializer.serialize_struct_variant(
                shape.name, idx, variant.name, len(variant.fields)
            )
            for field in variant.fields:
                struct.serialize_field(field.name, getattr(value, field.name), field.hint)
            return struct.end()

    raise TypeError(f"unhandled variant kind {variant.kind!r}")
