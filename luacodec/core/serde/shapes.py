"""
Type-hint introspection for the structured data model.

Every Python type the codec understands is reduced to a *shape*: the
structural category the serializer and the deserializer contracts dispatch
on. Hints map onto shapes as follows:

    None                               unit
    bool                               bool
    int, I8 .. I64, U8 .. U64          integer (plain int is unbounded)
    float, F32, F64                    float
    Char                               char
    str                                string
    bytes, bytearray                   byte sequence
    T | None, Optional[T]              option
    list[T], set[T], tuple[T, ...]     sequence
    tuple[A, B, C]                     tuple
    dict[K, V], Mapping[K, V]          map
    @dataclass                         struct (unit struct if it has no field)
    NamedTuple                         tuple struct
    NewType                            newtype struct
    enum.Enum                          enum of unit variants
    TaggedEnum                         enum of unit/newtype/tuple/struct variants
    Any                                inferred from the value itself
"""
import collections.abc
import dataclasses
import enum
import types
import typing
from dataclasses import dataclass
from enum import StrEnum
from functools import lru_cache
from typing import Annotated, Any, Callable, ClassVar, Union, get_args, get_origin, get_type_hints

NoneType = type(None)


@dataclass(frozen=True, slots=True)
class IntWidth:
    bits: int
    signed: bool

    @property
    def name(self) -> str:
        return f"{'i' if self.signed else 'u'}{self.bits}"

    @property
    def min(self) -> int:
        return -(1 << (self.bits - 1)) if self.signed else 0

    @property
    def max(self) -> int:
        return (1 << (self.bits - 1)) - 1 if self.signed else (1 << self.bits) - 1

    def contains(self, value: int) -> bool:
        return self.min <= value <= self.max


@dataclass(frozen=True, slots=True)
class FloatWidth:
    bits: int


@dataclass(frozen=True, slots=True)
class CharMarker:
    pass


I8 = Annotated[int, IntWidth(8, True)]
I16 = Annotated[int, IntWidth(16, True)]
I32 = Annotated[int, IntWidth(32, True)]
I64 = Annotated[int, IntWidth(64, True)]
U8 = Annotated[int, IntWidth(8, False)]
U16 = Annotated[int, IntWidth(16, False)]
U32 = Annotated[int, IntWidth(32, False)]
U64 = Annotated[int, IntWidth(64, False)]
F32 = Annotated[float, FloatWidth(32)]
F64 = Annotated[float, FloatWidth(64)]
Char = Annotated[str, CharMarker()]

I64_WIDTH = IntWidth(64, True)
U64_WIDTH = IntWidth(64, False)


class VariantKind(StrEnum):
    unit = "unit"
    newtype = "newtype"
    tuple = "tuple"
    struct = "struct"


class TaggedEnum:
    """
    Root of a tagged enum.

    A tagged enum is declared as a class deriving directly from TaggedEnum;
    its variants are dataclasses deriving from that root. Each variant
    declares its kind in the class statement. Without an explicit kind, a
    variant with no field is a unit variant and any other is a struct
    variant:

        class Shape(TaggedEnum):
            pass

        @dataclass
        class Empty(Shape):
            pass

        @dataclass
        class Circle(Shape, kind=VariantKind.newtype):
            radius: float

        @dataclass
        class Segment(Shape, kind=VariantKind.tuple):
            start: float
            end: float

        @dataclass
        class Rect(Shape):
            width: float
            height: float

    The variant name defaults to the class name and may be overridden with
    `name=`. Variants are registered in definition order. Do not declare
    variants with `@dataclass(slots=True)`: it replaces the registered class.
    """
    __variants__: ClassVar[list[type]]
    __variant_kind__: ClassVar[VariantKind | None] = None
    __variant_name__: ClassVar[str]

    def __init_subclass__(
        cls,
        kind: VariantKind | None = None,
        name: str | None = None,
        **kwargs: Any
    ) -> None:
        super().__init_subclass__(**kwargs)
        if TaggedEnum in cls.__bases__:
            cls.__variants__ = []
            return

        cls.__variant_kind__ = kind
        cls.__variant_name__ = name or cls.__name__
        cls.__variants__.append(cls)


@dataclass(frozen=True)
class Field:
    name: str
    hint: Any
    default: Any = dataclasses.MISSING
    default_factory: Callable[[], Any] | Any = dataclasses.MISSING

    @property
    def required(self) -> bool:
        return self.default is dataclasses.MISSING and self.default_factory is dataclasses.MISSING

    def default_value(self) -> Any:
        if self.default_factory is not dataclasses.MISSING:
            return self.default_factory()
        return self.default


@dataclass(frozen=True)
class AnyShape:
    pass


@dataclass(frozen=True)
class UnitShape:
    pass


@dataclass(frozen=True)
class BoolShape:
    pass


@dataclass(frozen=True)
class IntShape:
    width: IntWidth | None = None


@dataclass(frozen=True)
class FloatShape:
    bits: int = 64


@dataclass(frozen=True)
class CharShape:
    pass


@dataclass(frozen=True)
class StrShape:
    pass


@dataclass(frozen=True)
class BytesShape:
    container: type = bytes


@dataclass(frozen=True)
class OptionShape:
    inner: Any


@dataclass(frozen=True)
class SeqShape:
    element: Any
    container: type = list


@dataclass(frozen=True)
class TupleShape:
    elements: tuple[Any, ...]


@dataclass(frozen=True)
class MapShape:
    key: Any
    value: Any


@dataclass(frozen=True)
class StructShape:
    name: str
    cls: type
    fields: tuple[Field, ...]


@dataclass(frozen=True)
class UnitStructShape:
    name: str
    cls: type


@dataclass(frozen=True)
class TupleStructShape:
    name: str
    cls: type
    elements: tuple[Any, ...]


@dataclass(frozen=True)
class NewtypeStructShape:
    name: str
    inner: Any


@dataclass(frozen=True)
class VariantShape:
    """
    One alternative of an enum.

    `target` is the variant class of a TaggedEnum, or the member itself for
    a plain `enum.Enum`.
    """
    name: str
    kind: VariantKind
    target: Any
    fields: tuple[Field, ...] = ()

    def matches(self, value: Any) -> bool:
        if isinstance(self.target, type):
            return type(value) is self.target
        return value is self.target

    def construct(self, *args: Any, **kwargs: Any) -> Any:
        if isinstance(self.target, type):
            return self.target(*args, **kwargs)
        return self.target


@dataclass(frozen=True)
class EnumShape:
    name: str
    variants: tuple[VariantShape, ...]

    @property
    def variant_names(self) -> tuple[str, ...]:
        return tuple(v.name for v in self.variants)

    def find(self, name: str) -> VariantShape | None:
        for variant in self.variants:
            if variant.name == name:
                return variant
        return None

    def variant_of(self, value: Any) -> tuple[int, VariantShape] | None:
        for idx, variant in enumerate(self.variants):
            if variant.matches(value):
                return idx, variant
        return None


Shape = (
    AnyShape | UnitShape | BoolShape | IntShape | FloatShape | CharShape
    | StrShape | BytesShape | OptionShape | SeqShape | TupleShape | MapShape
    | StructShape | UnitStructShape | TupleStructShape | NewtypeStructShape
    | EnumShape
)

_SEQUENCE_ORIGINS = {
    list: list,
    collections.abc.Sequence: list,
    collections.abc.MutableSequence: list,
    collections.abc.Iterable: list,
    set: set,
    collections.abc.Set: frozenset,
    collections.abc.MutableSet: set,
    frozenset: frozenset,
}

_MAP_ORIGINS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)


def shape_of(hint: Any) -> Shape:
    """
    Return the shape described by a type hint.

    Raises TypeError if the hint has no counterpart in the data model.
    """
    try:
        hash(hint)
    except TypeError:
        return _shape_of(hint)
    return _cached_shape_of(hint)


@lru_cache(maxsize=1024)
def _cached_shape_of(hint: Any) -> Shape:
    return _shape_of(hint)


def _shape_of(hint: Any) -> Shape:
    if hint is Any or hint is object:
        return AnyShape()

    if hint is None or hint is NoneType:
        return UnitShape()

    origin = get_origin(hint)

    if origin is Annotated:
        base, *metadata = get_args(hint)
        for meta in metadata:
            match meta:
                case IntWidth():
                    return IntShape(meta)
                case FloatWidth(bits=bits):
                    return FloatShape(bits)
                case CharMarker():
                    return CharShape()
        return _shape_of(base)

    if origin is Union or origin is types.UnionType:
        args = get_args(hint)
        present = tuple(a for a in args if a is not NoneType)
        if len(present) == len(args) or len(present) != 1:
            raise TypeError(
                f"unsupported union {hint!r}: only `T | None` is allowed, "
                "declare a TaggedEnum for alternatives"
            )
        return OptionShape(present[0])

    if origin in _SEQUENCE_ORIGINS:
        args = get_args(hint)
        return SeqShape(args[0] if args else Any, _SEQUENCE_ORIGINS[origin])

    if origin is tuple:
        args = get_args(hint)
        if len(args) == 2 and args[1] is Ellipsis:
            return SeqShape(args[0], tuple)
        return TupleShape(tuple(a for a in args if a != ()))

    if origin in _MAP_ORIGINS:
        args = get_args(hint)
        key, value = args if args else (Any, Any)
        return MapShape(key, value)

    if isinstance(hint, typing.NewType):
        return NewtypeStructShape(hint.__name__, hint.__supertype__)

    if not isinstance(hint, type):
        raise TypeError(f"unsupported type hint: {hint!r}")

    if hint is bool:
        return BoolShape()
    if hint is int:
        return IntShape()
    if hint is float:
        return FloatShape()
    if hint is str:
        return StrShape()
    if hint is bytes or hint is bytearray:
        return BytesShape(hint)
    if hint in _SEQUENCE_ORIGINS:
        return SeqShape(Any, _SEQUENCE_ORIGINS[hint])
    if hint is tuple:
        return SeqShape(Any, tuple)
    if hint is dict:
        return MapShape(Any, Any)

    if issubclass(hint, enum.Enum):
        return EnumShape(
            hint.__name__,
            tuple(VariantShape(m.name, VariantKind.unit, m) for m in hint),
        )

    if issubclass(hint, TaggedEnum):
        return _tagged_enum_shape(_enum_root(hint))

    if issubclass(hint, tuple) and hasattr(hint, "_fields"):
        hints = get_type_hints(hint, include_extras=True)
        return TupleStructShape(
            hint.__name__,
            hint,
            tuple(hints.get(name, Any) for name in hint._fields),
        )

    if dataclasses.is_dataclass(hint):
        fields = _fields_of(hint)
        if not fields:
            return UnitStructShape(hint.__name__, hint)
        return StructShape(hint.__name__, hint, fields)

    raise TypeError(f"unsupported type: {hint.__qualname__}")


def _fields_of(cls: type) -> tuple[Field, ...]:
    hints = get_type_hints(cls, include_extras=True)
    return tuple(
        Field(
            name=f.name,
            hint=hints.get(f.name, Any),
            default=f.default,
            default_factory=f.default_factory,
        )
        for f in dataclasses.fields(cls)
        if f.init
    )


def _enum_root(cls: type) -> type:
    for klass in cls.__mro__:
        if TaggedEnum in klass.__bases__:
            return klass
    raise TypeError(f"{cls.__qualname__} is not part of a tagged enum")


def _tagged_enum_shape(root: type) -> EnumShape:
    variants = []
    for cls in root.__variants__:
        if not dataclasses.is_dataclass(cls):
            raise TypeError(f"variant {cls.__qualname__} must be a dataclass")

        fields = _fields_of(cls)
        kind = cls.__variant_kind__
        if kind is None:
            kind = VariantKind.struct if fields else VariantKind.unit

        if kind is VariantKind.unit and fields:
            raise TypeError(f"unit variant {cls.__qualname__} cannot have fields")
        if kind is VariantKind.newtype and len(fields) != 1:
            raise TypeError(f"newtype variant {cls.__qualname__} must have exactly one field")

        variants.append(VariantShape(cls.__variant_name__, kind, cls, fields))

    return EnumShape(root.__name__, tuple(variants))


def infer_hint(value: Any) -> Any:
    """
    Return a hint describing a Python value whose type was not declared,
    or None if the value has no counterpart in the data model.
    """
    match value:
        case None:
            return NoneType
        case enum.Enum() | TaggedEnum():
            return type(value)
        case bool():
            return bool
        case int():
            return int
        case float():
            return float
        case str():
            return str
        case bytearray():
            return bytearray
        case bytes():
            return bytes
        case tuple() if hasattr(value, "_fields"):
            return type(value)
        case tuple():
            return tuple[(Any,) * len(value)] if value else tuple[()]
        case list():
            return list[Any]
        case set() | frozenset():
            return type(value)[Any]
        case collections.abc.Mapping():
            return dict[Any, Any]
        case _ if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return type(value)
    return None
