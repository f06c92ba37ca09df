from typing import Annotated

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict, YamlConfigSettingsSource

from luacodec.bootstrap.config.loader import get_configfile
from luacodec.core.models.config import CodecConfig


class CodecSettings(BaseModel):
    max_depth: Annotated[
        int | None,
        Field(
            description=(
                "Maximum nesting depth of a single conversion.\n"
                "Deeper structures, including self-referencing Lua tables, fail\n"
                "with a recursion limit error. Set to null to disable the check."
            ),
            default=64,
            ge=1
        )
    ]

    def to_config(self) -> CodecConfig:
        return CodecConfig(max_depth=self.max_depth)


class RuntimeSettings(BaseModel):
    register_eval: Annotated[
        bool,
        Field(
            description="Expose Python's eval() to Lua code as `python.eval`.",
            default=False
        )
    ]

    register_builtins: Annotated[
        bool,
        Field(
            description="Expose Python's builtins to Lua code as `python.builtins`.",
            default=False
        )
    ]

    unpack_returned_tuples: Annotated[
        bool,
        Field(
            description="Unpack tuples returned by Python callables into multiple Lua results.",
            default=False
        )
    ]

    max_memory: Annotated[
        int | None,
        Field(
            description=(
                "Upper bound, in bytes, of the memory the Lua runtime may allocate.\n"
                "Exceeding it makes allocations fail. Null means unbounded."
            ),
            default=None,
            ge=1
        )
    ]


class LuaCodecSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LUACODEC_",
        env_nested_delimiter="__",
        extra="ignore"
    )

    codec: Annotated[
        CodecSettings,
        Field(
            description="Conversion limits applied by the encoder and the decoder.",
            default_factory=CodecSettings
        )
    ]

    runtime: Annotated[
        RuntimeSettings,
        Field(
            description="Options of the embedded Lua runtime.",
            default_factory=RuntimeSettings
        )
    ]

    log_level: Annotated[
        str,
        Field(
            description="Logging verbosity when no --log-level is given.",
            default="INFO"
        )
    ]

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        configfile = get_configfile()
        if configfile is None:
            return init_settings, env_settings
        return init_settings, env_settings, YamlConfigSettingsSource(settings_cls, yaml_file=configfile)
