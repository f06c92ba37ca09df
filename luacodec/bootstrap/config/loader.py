import argparse
import os
from functools import lru_cache
from pathlib import Path


@lru_cache
def get_cli_args(argv: tuple[str, ...] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="luacodec",
        description=(
            "Run a Lua script against structured data.\n\n"
            "The data file (YAML) is encoded into Lua values and bound to the\n"
            "global `data`. The value returned by the script is decoded back\n"
            "and printed as YAML."
        ),
        formatter_class=argparse.RawTextHelpFormatter
    )

    parser.add_argument(
        "script",
        type=Path,
        help="Path to the Lua script to run"
    )

    parser.add_argument(
        "-d", "--data",
        type=Path,
        help="Path to a YAML document bound to the Lua global `data`"
    )

    parser.add_argument(
        "-c", "--config",
        type=str,
        help="Path to a luacodec configuration file"
    )

    parser.add_argument(
        "-l", "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help=(
            "Logging verbosity. Overrides the `log_level` setting.\n"
            "Choose among: DEBUG, INFO, WARNING, ERROR, CRITICAL.\n\n"
            "Example:\n"
            "  --log-level DEBUG"
        ),
    )

    return parser.parse_args(argv)


@lru_cache
def get_configfile() -> Path | None:
    """
    Locate the configuration file, if any.

    An explicitly requested file must exist; the default one is optional.
    """
    args = get_cli_args()

    # Priority: CLI > ENV > default file in current working directory
    raw = args.config or os.getenv("LUACODECCONFIG")

    if raw is None:
        file = Path.cwd() / "luacodec.yaml"
        return file if file.is_file() else None

    file = Path(raw)
    if not file.is_file():
        raise SystemExit(
            f"[config] Configuration file not found: '{file}'.\n"
            "  - Use --config <file.yaml>\n"
            "  - Or set the LUACODECCONFIG environment variable\n"
            "  - Or place a 'luacodec.yaml' file in the current working directory."
        )

    return file
