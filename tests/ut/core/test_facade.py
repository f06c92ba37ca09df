import logging
from dataclasses import dataclass

import pytest

from luacodec.core.errors import DeserializeError, SerializeError
from luacodec.core.facade import LuaCodec
from luacodec.core.models.config import CodecConfig
from luacodec.core.models.value import Integer, String


@dataclass
class Item:
    name: str
    quantity: int


@pytest.mark.ut
def test_codec_roundtrip(codec):
    value = codec.to_value(Item(name="apple", quantity=3))

    assert value.get(String(b"name")) == String(b"apple")
    assert codec.from_value(value, Item) == Item(name="apple", quantity=3)


@pytest.mark.ut
def test_codec_from_value_defaults_to_plain_values(codec):
    value = codec.to_value({"a": [1, 2]})

    assert codec.from_value(value) == {"a": {1: 1, 2: 2}}


@pytest.mark.ut
def test_codec_logs_and_reraises_encode_failures(codec, caplog):
    with caplog.at_level(logging.DEBUG, logger="core.facade"):
        with pytest.raises(SerializeError):
            codec.to_value(object())

    assert "Failed to encode `object`" in caplog.text


@pytest.mark.ut
def test_codec_logs_and_reraises_decode_failures(codec, caplog):
    with caplog.at_level(logging.DEBUG, logger="core.facade"):
        with pytest.raises(DeserializeError):
            codec.from_value(Integer(1), Item)

    assert "Failed to decode" in caplog.text
    assert "type_mismatch" in caplog.text


@pytest.mark.ut
def test_codec_applies_its_config(lua):
    codec = LuaCodec(lua, CodecConfig(max_depth=1))

    with pytest.raises(SerializeError):
        codec.to_value([[1]])

    assert codec.from_value(codec.to_value([1]), list[int]) == [1]
