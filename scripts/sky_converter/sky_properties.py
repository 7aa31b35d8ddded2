"""
sky_properties.py
=================

Maps OptiFine/MCPatcher sky ``.properties`` files onto FabricSkyboxes
descriptors (schema version 2).

Supported keys: ``source``, ``startFadeIn``, ``endFadeIn``, ``startFadeOut``,
``endFadeOut``, ``blend``, ``rotate``, ``speed``, ``axis``, ``weather``,
``biomes`` and ``heights``. ``transition`` has no FabricSkyboxes counterpart and
is ignored together with any unknown key.

Fade times are OptiFine ``HH:MM`` tokens. They are converted to ticks by
concatenating the digits of every component (``6:30`` -> ``630``), appending a
``0``, scaling the last three digits from minutes to ticks and shifting by
18000 so that ``6:00`` lands on tick 0.
"""

from __future__ import annotations

import copy
import logging
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from sky_types import (
    DEFAULT_NAMESPACE,
    TEXTURE_FACES,
    MalformedInputError,
    ParseError,
)

TICKS_PER_DAY = 24000
TICK_OFFSET = 18000
UNSET_TICK = -1

FADE_KEYS: Tuple[str, ...] = ("startFadeIn", "endFadeIn", "startFadeOut", "endFadeOut")
LIST_CONDITION_KEYS: Tuple[str, ...] = ("weather", "biomes")
IGNORED_KEYS = frozenset({"transition"})

# OptiFine resolves unprefixed paths against assets/minecraft/.
DEFAULT_ASSET_ROOT = Path("assets") / "minecraft"

_INTEGER_PATTERN = re.compile(r"[+-]?\d+")

DEFAULT_DESCRIPTOR: Dict[str, object] = {
    "schemaVersion": 2,
    "type": "square-textured",
    "conditions": {
        "worlds": ["minecraft:overworld"],
    },
    "blend": True,
    "properties": {
        "blend": {"type": "add"},
        "rotation": {
            "axis": [0.0, 180.0, 0.0],
        },
        "sunSkyTint": False,
    },
}


@dataclass(frozen=True)
class SkySource:
    """Where a sky layer's cubemap comes from and where its faces go.

    ``output_dir`` is relative to ``assets/<namespace>/sky``; ``image_path`` is
    ``None`` when no candidate file exists, in which case ``expected_path``
    names the first location that was tried.
    """

    resource_id: str
    output_dir: Path
    stem: str
    expected_path: Path
    image_path: Optional[Path]

    def texture_id(self, face: str) -> str:
        return f"{self.resource_id}_{face}.png"


def read_properties_lines(text: str) -> List[Tuple[str, str]]:
    """Split properties text into trimmed ``(option, value)`` pairs.

    Blank lines, comment lines and lines without ``=`` are skipped. Only the
    first ``=`` separates option from value.
    """
    entries: List[Tuple[str, str]] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line[0] in "#!":
            continue
        option, separator, value = line.partition("=")
        if not separator:
            continue
        entries.append((option.strip(), value.strip()))
    return entries


def encode_ticks(token: str, option: str = "time") -> int:
    """Convert an OptiFine time token into a FabricSkyboxes tick in [0, 24000)."""
    digits = token.replace("\\:", ":").replace(":", "") + "0"
    if not _INTEGER_PATTERN.fullmatch(digits):
        raise ParseError(option, token, "not a colon separated time")
    raw = int(digits)

    # Integer division and remainder truncate toward zero.
    sign = -1 if raw < 0 else 1
    thousands, remainder = divmod(abs(raw), 1000)
    ticks = sign * (thousands * 1000 + int(round(remainder / 3.0 * 5)))
    return (ticks + TICK_OFFSET) % TICKS_PER_DAY


def parse_number(option: str, value: str) -> float:
    try:
        number = float(value)
    except ValueError as exc:
        raise ParseError(option, value) from exc
    # JSON has no NaN or Infinity.
    if not math.isfinite(number):
        raise ParseError(option, value, "not a finite number")
    return number


def parse_axis(value: str) -> List[float]:
    components = value.split()
    if len(components) != 3:
        raise ParseError("axis", value, "expected three components")
    return [parse_number("axis", component) * 180 for component in components]


def parse_heights(value: str) -> List[Dict[str, float]]:
    heights: List[Dict[str, float]] = []
    for token in value.split():
        if "-" not in token:
            continue
        low, _, high = token.partition("-")
        heights.append({"min": parse_number("heights", low), "max": parse_number("heights", high)})
    return heights


def new_sky_descriptor() -> Dict[str, object]:
    return copy.deepcopy(DEFAULT_DESCRIPTOR)


def map_properties(
    entries: Sequence[Tuple[str, str]],
    default_source: str,
) -> Tuple[Dict[str, object], str]:
    """Build a descriptor from parsed properties entries.

    Returns the finalized descriptor (without ``textures``) and the source
    path with its ``.png`` extension removed. Raises ``ParseError`` on the
    first malformed numeric value.
    """
    descriptor = new_sky_descriptor()
    conditions = descriptor["conditions"]
    properties = descriptor["properties"]
    rotation = properties["rotation"]
    fade_ticks = {key: UNSET_TICK for key in FADE_KEYS}
    source = default_source

    for option, value in entries:
        if option == "source":
            if len(value) <= 4:
                raise MalformedInputError(f"source={value!r} is too short to name a PNG")
            source = value[:-4]
        elif option in FADE_KEYS:
            ticks = encode_ticks(value, option)
            fade_ticks[option] = ticks
            properties.setdefault("fade", {})[option] = ticks
        elif option == "blend":
            properties["blend"]["type"] = value
        elif option == "rotate":
            properties["shouldRotate"] = value == "true"
        elif option == "speed":
            rotation["rotationSpeed"] = parse_number(option, value)
        elif option == "axis":
            rotation["axis"] = parse_axis(value)
        elif option in LIST_CONDITION_KEYS:
            conditions[option] = value.split()
        elif option == "heights":
            conditions["heights"] = parse_heights(value)
        elif option in IGNORED_KEYS:
            logging.debug("Ignoring unsupported sky option %s=%s", option, value)

    rotation["static"] = [1, 1, 1]
    if fade_ticks["startFadeOut"] == UNSET_TICK:
        # Missing fades keep their -1 sentinel in this formula.
        properties.setdefault("fade", {})["startFadeOut"] = (
            fade_ticks["endFadeOut"]
            - fade_ticks["endFadeIn"]
            + fade_ticks["startFadeIn"]
            + TICKS_PER_DAY
        ) % TICKS_PER_DAY

    return descriptor, source


def _first_existing(candidates: Sequence[Path]) -> Optional[Path]:
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def resolve_source(
    source: str,
    properties_path: Path,
    pack_root: Path,
    namespace: str = DEFAULT_NAMESPACE,
) -> SkySource:
    """Resolve a properties ``source`` (extension already removed).

    ``./path`` is relative to the properties file. Anything else is rooted at
    the pack, falling back to ``assets/minecraft`` when the pack root does not
    hold the file. Raises ``MalformedInputError`` when a rooted source has no
    folder or when any part of the path is ``..``.
    """
    if ".." in Path(source).parts:
        raise MalformedInputError(f"source {source!r} climbs out of the sky folder")

    if source.startswith("./"):
        relative = source[1:]
        folder, _, stem = relative.rpartition("/")
        candidates = [properties_path.parent / f"{relative[1:]}.png"]
    else:
        folder, separator, stem = source.rpartition("/")
        if not separator:
            raise MalformedInputError(f"source {source!r} does not contain a '/'")
        rooted = source.lstrip("/")
        candidates = [
            pack_root / f"{rooted}.png",
            pack_root / DEFAULT_ASSET_ROOT / f"{rooted}.png",
        ]
        folder = "/" + folder.lstrip("/")
        relative = f"{folder.rstrip('/')}/{stem}"

    return SkySource(
        resource_id=f"{namespace}:sky{relative}",
        output_dir=Path(folder.lstrip("/")),
        stem=stem,
        expected_path=candidates[0],
        image_path=_first_existing(candidates),
    )


def assign_textures(descriptor: Dict[str, object], sky_source: SkySource) -> None:
    descriptor["textures"] = {face: sky_source.texture_id(face) for face in TEXTURE_FACES}


def build_sky_descriptor(
    properties_path: Path,
    pack_root: Path,
    namespace: str = DEFAULT_NAMESPACE,
) -> Tuple[Dict[str, object], SkySource]:
    """Read one properties file and return its descriptor and resolved source."""
    text = properties_path.read_text(encoding="utf-8", errors="replace")
    descriptor, source = map_properties(
        read_properties_lines(text),
        default_source=properties_path.stem,
    )
    sky_source = resolve_source(source, properties_path, pack_root, namespace)
    assign_textures(descriptor, sky_source)
    return descriptor, sky_source
