import logging
from pathlib import Path
from typing import Any

import yaml

from luacodec.bootstrap.config.loader import get_cli_args
from luacodec.bootstrap.deps import get_codec, get_context, get_settings
from luacodec.core.errors import Error, LuaError
from luacodec.core.helpers.utils import setup_logging


def load_data(path: Path | None) -> Any:
    if path is None:
        return None
    try:
        with path.open("r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except OSError as ex:
        raise SystemExit(f"[data] Cannot read '{path}': {ex}")
    except yaml.YAMLError as ex:
        raise SystemExit(f"[data] Invalid YAML document '{path}': {ex}")


def main():
    cli = get_cli_args()
    settings = get_settings()

    setup_logging(cli.log_level or settings.log_level)
    logger = logging.getLogger("bootstrap.boot")

    try:
        chunk = cli.script.read_text(encoding="utf-8")
    except OSError as ex:
        raise SystemExit(f"[script] Cannot read '{cli.script}': {ex}")

    data = load_data(cli.data)
    lua = get_context()
    codec = get_codec()

    try:
        lua.set_global("data", codec.to_value(data))
        logger.debug(f"Running {cli.script}")
        result = codec.from_value(lua.execute(chunk))
    except Error as ex:
        raise SystemExit(f"[{ex.direction}] {ex}")
    except LuaError as ex:
        raise SystemExit(f"[lua] {ex}")

    print(yaml.safe_dump(result, allow_unicode=True, sort_keys=False), end="")
