import pytest

from tests.fake.fake_runtime import FakeLuaContext

from luacodec.core.facade import LuaCodec
from luacodec.infra.lupa_runtime import LupaContext


@pytest.fixture
def lua() -> FakeLuaContext:
    return FakeLuaContext()


@pytest.fixture
def codec(lua: FakeLuaContext) -> LuaCodec:
    return LuaCodec(lua)


@pytest.fixture
def lupa_ctx() -> LupaContext:
    return LupaContext()
