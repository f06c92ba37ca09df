from typing import Any, Self, Sequence


class Unexpected:
    """
    Describes the value a visitor received but did not expect.

    Instances only carry a rendered description; they are used to build the
    "invalid type" and "invalid value" messages of the error contract.
    """
    __slots__ = ("_text",)

    def __init__(self, text: str) -> None:
        self._text = text

    def __str__(self) -> str:
        return self._text

    def __repr__(self) -> str:
        return f"Unexpected({self._text!r})"

    @classmethod
    def boolean(cls, v: bool) -> "Unexpected":
        return cls(f"boolean `{'true' if v else 'false'}`")

    @classmethod
    def integer(cls, v: int) -> "Unexpected":
        return cls(f"integer `{v}`")

    @classmethod
    def floating(cls, v: float) -> "Unexpected":
        return cls(f"floating point `{v!r}`")

    @classmethod
    def char(cls, v: str) -> "Unexpected":
        return cls(f"character `{v}`")

    @classmethod
    def string(cls, v: str) -> "Unexpected":
        return cls(f'string "{v}"')

    @classmethod
    def byte_array(cls) -> "Unexpected":
        return cls("byte array")

    @classmethod
    def unit(cls) -> "Unexpected":
        return cls("unit value")

    @classmethod
    def option(cls) -> "Unexpected":
        return cls("Option value")

    @classmethod
    def newtype_struct(cls) -> "Unexpected":
        return cls("newtype struct")

    @classmethod
    def seq(cls) -> "Unexpected":
        return cls("sequence")

    @classmethod
    def map(cls) -> "Unexpected":
        return cls("map")

    @classmethod
    def enum(cls) -> "Unexpected":
        return cls("enum")

    @classmethod
    def unit_variant(cls) -> "Unexpected":
        return cls("unit variant")

    @classmethod
    def newtype_variant(cls) -> "Unexpected":
        return cls("newtype variant")

    @classmethod
    def tuple_variant(cls) -> "Unexpected":
        return cls("tuple variant")

    @classmethod
    def struct_variant(cls) -> "Unexpected":
        return cls("struct variant")


def one_of(names: Sequence[str]) -> str:
    match len(names):
        case 0:
            return "there are none"
        case 1:
            return f"`{names[0]}`"
        case 2:
            return f"`{names[0]}` or `{names[1]}`"
        case _:
            return "one of " + ", ".join(f"`{n}`" for n in names)


class SerError:
    """
    Construction point a serializer's error type must offer.

    Serializers build every failure through `custom`, so the message text is
    the only information the contract relies on.
    """

    @classmethod
    def custom(cls, msg: str) -> Self:
        raise NotImplementedError


class DeError:
    """
    Construction points a deserializer's error type must offer.

    Only `custom` is mandatory. Every other constructor renders a message and
    defers to it; error types may override them to attach extra metadata.
    `exp` is anything whose `str()` describes what was expected, usually a
    visitor or a plain string.
    """

    @classmethod
    def custom(cls, msg: str) -> Self:
        raise NotImplementedError

    @classmethod
    def invalid_type(cls, unexp: Unexpected, exp: Any) -> Self:
        return cls.custom(f"invalid type: {unexp}, expected {exp}")

    @classmethod
    def invalid_value(cls, unexp: Unexpected, exp: Any) -> Self:
        return cls.custom(f"invalid value: {unexp}, expected {exp}")

    @classmethod
    def invalid_length(cls, length: int, exp: Any) -> Self:
        return cls.custom(f"invalid length {length}, expected {exp}")

    @classmethod
    def unknown_variant(cls, variant: str, expected: Sequence[str]) -> Self:
        if not expected:
            return cls.custom(f"unknown variant `{variant}`, there are no variants")
        return cls.custom(f"unknown variant `{variant}`, expected {one_of(expected)}")

    @classmethod
    def unknown_field(cls, field: str, expected: Sequence[str]) -> Self:
        if not expected:
            return cls.custom(f"unknown field `{field}`, there are no fields")
        return cls.custom(f"unknown field `{field}`, expected {one_of(expected)}")

    @classmethod
    def missing_field(cls, field: str) -> Self:
        return cls.custom(f"missing field `{field}`")

    @classmethod
    def duplicate_field(cls, field: str) -> Self:
        return cls.custom(f"duplicate field `{field}`")
