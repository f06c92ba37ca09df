import logging
from typing import Any, TypeVar, overload

from luacodec.core.codec.decoder import Decoder
from luacodec.core.codec.encoder import Encoder
from luacodec.core.errors import Error
from luacodec.core.models.config import DEFAULT_CONFIG, CodecConfig
from luacodec.core.models.value import Value
from luacodec.core.ports.runtime import LuaContext
from luacodec.core.serde.de import deserialize

T = TypeVar("T")


def to_value(
    lua: LuaContext,
    value: Any,
    hint: Any = None,
    config: CodecConfig | None = None
) -> Value:
    """
    Encode a Python value as a Lua value allocated in `lua`.

    `hint` describes the shape of `value`; without one the shape is inferred
    from the value itself. Raises `SerializeError`.
    """
    return Encoder(lua, config or DEFAULT_CONFIG).encode(value, hint)


@overload
def from_value(value: Value, hint: type[T], config: CodecConfig | None = None) -> T:
    ...


@overload
def from_value(value: Value, hint: Any = Any, config: CodecConfig | None = None) -> Any:
    ...


def from_value(value: Value, hint: Any = Any, config: CodecConfig | None = None) -> Any:
    """
    Decode a Lua value into the Python type described by `hint`.

    With the default `Any` hint, the value is decoded into plain Python
    values; tables always become dicts. Raises `DeserializeError`.
    """
    return deserialize(hint, Decoder(value, config or DEFAULT_CONFIG))


class LuaCodec:
    """
    Codec bound to one Lua runtime and one configuration.
    """
    def __init__(self, lua: LuaContext, config: CodecConfig = DEFAULT_CONFIG) -> None:
        self.lua = lua
        self.config = config
        self._logger = logging.getLogger("core.facade")

    def to_value(self, value: Any, hint: Any = None) -> Value:
        try:
            return to_value(self.lua, value, hint, self.config)
        except Error as ex:
            self._logger.debug(
                f"Failed to encode `{type(value).__name__}` ({ex.kind}): {ex}"
            )
            raise

    def from_value(self, value: Value, hint: Any = Any) -> Any:
        try:
            return from_value(value, hint, self.config)
        except Error as ex:
            self._logger.debug(f"Failed to decode {value!r} as {hint!r} ({ex.kind}): {ex}")
            raise
