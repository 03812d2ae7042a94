"""Translation of manifest settings into host launcher arguments."""

import math
from decimal import Decimal

from mitiru.config import ConfigError, ProjectConfig, find_manifest, load


def _format_float(x: float) -> str:
    """Shortest decimal form, exponent notation outside 1e-4 .. 1e6."""
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "+Inf" if x > 0 else "-Inf"
    sign, digit_tuple, exponent = Decimal(repr(x)).as_tuple()
    digits = list(digit_tuple)
    while len(digits) > 1 and digits[-1] == 0:
        digits.pop()
        exponent += 1
    prefix = "-" if sign else ""
    if digits == [0]:
        return prefix + "0"

    text = "".join(map(str, digits))
    count = len(digits)
    point = count + exponent
    exp10 = point - 1
    if exp10 < -4 or exp10 >= 6:
        mantissa = text[0] + ("." + text[1:] if count > 1 else "")
        exp_sign = "-" if exp10 < 0 else "+"
        return f"{prefix}{mantissa}e{exp_sign}{abs(exp10):02d}"
    if point <= 0:
        return f"{prefix}0.{'0' * -point}{text}"
    if point >= count:
        return prefix + text + "0" * (point - count)
    return f"{prefix}{text[:point]}.{text[point:]}"


def host_args_from_config(config: ProjectConfig) -> list[str]:
    """Map [window], [font] and [lofi] settings to host command-line flags."""
    extra: list[str] = []
    window = config.window
    if window.width > 0 and window.height > 0:
        extra += ["--size", f"{window.width}x{window.height}"]

    atlas = config.font.atlas.strip()
    if atlas and atlas != "none":
        extra += ["--font", atlas]

    lofi = config.lofi
    if lofi.enabled:
        extra.append("--lofi")
        if lofi.width > 0 and lofi.height > 0:
            extra += ["--lofi-size", f"{lofi.width}x{lofi.height}"]
        bits = lofi.bits.strip()
        if bits:
            extra += ["--lofi-bits", bits]
        if lofi.dither is not None:
            extra += ["--lofi-dither", _format_float(lofi.dither)]
    return extra


def toml_host_args(start_dir=".") -> list[str]:
    """Host arguments from the manifest above ``start_dir``; empty without one."""
    try:
        manifest, _ = find_manifest(start_dir)
        config = load(manifest)
    except ConfigError:
        return []
    return host_args_from_config(config)