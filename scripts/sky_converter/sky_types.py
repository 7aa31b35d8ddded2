"""
sky_types.py
============

Shared configuration, constants and error types for the sky converter.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

DEFAULT_NAMESPACE = "fabricskyboxes"

# Tile order of a packed OptiFine cubemap: top row left-to-right, then bottom row.
FACE_ORDER: Tuple[str, ...] = ("bottom", "top", "south", "west", "north", "east")

# Order used for the descriptor `textures` object and for writing face files.
TEXTURE_FACES: Tuple[str, ...] = ("top", "bottom", "north", "south", "east", "west")


@dataclass(frozen=True)
class ConversionConfig:
    """Run-wide switches handed to the image filter and the orchestrator.

    Fields:
        transparent: Key fully opaque pixels to a brightness-proportional alpha.
        reconvert: Remove and regenerate an existing target sky tree instead of
            skipping the pack.
        namespace: Target asset namespace (``assets/<namespace>/sky``).
        dry_run: Log planned writes without touching the filesystem.
    """

    transparent: bool = True
    reconvert: bool = False
    namespace: str = DEFAULT_NAMESPACE
    dry_run: bool = False


class SkyConversionError(Exception):
    """Base class for failures scoped to a single properties file."""


class ParseError(SkyConversionError, ValueError):
    """A numeric token (tick, speed, axis, height) could not be parsed."""

    def __init__(self, option: str, value: str, reason: str = "not a number") -> None:
        super().__init__(f"{option}={value!r}: {reason}")
        self.option = option
        self.value = value


class MalformedInputError(SkyConversionError):
    """The properties file references a source that cannot be resolved."""


class DecodeError(SkyConversionError):
    """The source image could not be decoded."""


class EncodeError(SkyConversionError):
    """A face image could not be encoded to PNG."""
