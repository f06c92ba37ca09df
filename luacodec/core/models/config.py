from dataclasses import dataclass


@dataclass(frozen=True)
class CodecConfig:
    """
    Static configuration shared by the encoder and the decoder.
    """
    max_depth: int | None = 64
    """
    Maximum nesting depth of a single conversion.

    The structured data handed to the encoder and the tables handed to the
    decoder are walked recursively. A container that (directly or
    indirectly) contains itself would otherwise recurse until the
    interpreter's own recursion limit. Once a conversion goes deeper than
    `max_depth` levels it fails with a `recursion_limit` error.

    Set to None to disable the check.
    """


DEFAULT_CONFIG = CodecConfig()
