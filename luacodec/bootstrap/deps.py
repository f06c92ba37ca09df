import json
from functools import lru_cache

from pydantic import ValidationError

from luacodec.bootstrap.config.settings import LuaCodecSettings
from luacodec.core.facade import LuaCodec
from luacodec.infra.lupa_runtime import LupaContext


@lru_cache
def get_context() -> LupaContext:
    settings = get_settings()
    return LupaContext(**settings.runtime.model_dump())


@lru_cache
def get_codec() -> LuaCodec:
    settings = get_settings()
    return LuaCodec(get_context(), settings.codec.to_config())


@lru_cache
def get_settings() -> LuaCodecSettings:
    try:
        return LuaCodecSettings()
    except ValidationError as ex:
        msg = ["Configuration validation failed:"]
        errs = json.loads(ex.json())
        for err in errs:
            msg.append(f"  {'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}")
        raise SystemExit("\n".join(msg))
