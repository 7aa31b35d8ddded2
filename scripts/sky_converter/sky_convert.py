#!/usr/bin/env python3
"""
sky_convert.py
==============

Batch convert OptiFine/MCPatcher custom skies inside resource packs into the
FabricSkyboxes layout:

* every ``assets/minecraft/{optifine,mcpatcher}/sky/world0/*.properties`` file
  becomes ``assets/fabricskyboxes/sky/<name>.json``;
* the packed cubemap it references is split into six face PNGs
  (``<source>_{top,bottom,north,south,east,west}.png``) under
  ``assets/fabricskyboxes/sky/<source folder>/``. Missing images are replaced
  by 1x1 black placeholders.

Example usage:

    python sky_convert.py packs/MySkyPack packs/OtherPack \\
        --reconvert \\
        --workers 4 \\
        --report reports/sky_conversion.json

Packs that already contain ``assets/fabricskyboxes/sky`` are skipped unless
``--reconvert`` is given, in which case the old tree is removed first.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import shutil
import sys
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field, fields as dataclass_fields
from functools import partial
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from sky_image import RasterImage, decode_png, encode_png, placeholder_faces, slice_cubemap
from sky_properties import build_sky_descriptor
from sky_types import (
    DEFAULT_NAMESPACE,
    TEXTURE_FACES,
    ConversionConfig,
    DecodeError,
    EncodeError,
    SkyConversionError,
)

SOURCE_SKY_DIRS = (
    Path("assets") / "minecraft" / "optifine" / "sky",
    Path("assets") / "minecraft" / "mcpatcher" / "sky",
)
SKY_WORLD_DIR = "world0"
PROPERTIES_SUFFIX = ".properties"


@dataclass
class ConversionStats:
    packs_converted: int = 0
    packs_skipped: int = 0
    descriptors_written: int = 0
    descriptors_failed: int = 0
    faces_written: int = 0
    placeholders_written: int = 0
    images_failed: int = 0
    failures: List[str] = field(default_factory=list)


def merge_stats(target: ConversionStats, source: ConversionStats) -> None:
    """Merge *source* into *target* by summing int fields and extending list fields."""
    for f in dataclass_fields(ConversionStats):
        src_val = getattr(source, f.name)
        if isinstance(src_val, int):
            setattr(target, f.name, getattr(target, f.name) + src_val)
        elif isinstance(src_val, list):
            getattr(target, f.name).extend(src_val)


@dataclass(frozen=True)
class SkyJob:
    properties: Path
    pack_root: Path


def target_sky_root(pack_root: Path, namespace: str) -> Path:
    return pack_root / "assets" / namespace / "sky"


def ensure_dir(path: Path, dry_run: bool) -> None:
    if dry_run:
        return
    path.mkdir(parents=True, exist_ok=True)


def prepare_pack(pack_root: Path, config: ConversionConfig) -> Optional[Path]:
    """Return the pack's source sky directory, or ``None`` when it is skipped.

    An existing target sky tree is removed under ``reconvert`` and otherwise
    causes the pack to be skipped.
    """
    if target_sky_root(pack_root, config.namespace).is_dir():
        if not config.reconvert:
            logging.info(
                "%s folder found in %s, skipping.", config.namespace, pack_root.name
            )
            return None
        namespace_root = pack_root / "assets" / config.namespace
        if config.dry_run:
            logging.info("[dry-run][reconvert] would remove %s", namespace_root)
        else:
            logging.info("Reconverting %s", pack_root.name)
            shutil.rmtree(namespace_root)

    for sky_dir in SOURCE_SKY_DIRS:
        candidate = pack_root / sky_dir
        if candidate.is_dir():
            return candidate

    logging.info("Nothing to convert in %s, skipping.", pack_root.name)
    return None


def discover_sky_properties(sky_dir: Path) -> List[Path]:
    world_dir = sky_dir / SKY_WORLD_DIR
    if not world_dir.is_dir():
        return []
    return sorted(
        path
        for path in world_dir.iterdir()
        if path.is_file() and path.suffix == PROPERTIES_SUFFIX
    )


def write_faces(
    faces: Dict[str, RasterImage],
    target_dir: Path,
    stem: str,
) -> List[Path]:
    """Encode and write all six faces; on a write error none of them remain."""
    encoded = {face: encode_png(faces[face]) for face in TEXTURE_FACES}
    ensure_dir(target_dir, dry_run=False)
    written: List[Path] = []
    try:
        for face, payload in encoded.items():
            path = target_dir / f"{stem}_{face}.png"
            path.write_bytes(payload)
            written.append(path)
    except OSError:
        remove_files(written)
        raise
    return written


def remove_files(paths: Sequence[Path]) -> None:
    for path in paths:
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        except OSError as exc:
            logging.warning("Failed to remove partial output %s: %s", path, exc)


def convert_sky_properties(
    properties: Path,
    pack_root: Path,
    config: ConversionConfig,
    stats: ConversionStats,
) -> bool:
    """Convert one properties file and its cubemap. Returns ``True`` on success.

    Mapping, decoding and slicing all happen before the first write, and faces
    are removed again when the descriptor cannot be written, so a failing file
    leaves nothing behind.
    """
    try:
        descriptor, sky_source = build_sky_descriptor(properties, pack_root, config.namespace)
    except (SkyConversionError, OSError) as exc:
        stats.descriptors_failed += 1
        stats.failures.append(f"{properties}: {exc}")
        logging.error("Failed to map %s: %s", properties, exc)
        return False

    sky_root = target_sky_root(pack_root, config.namespace)
    image_dir = sky_root / sky_source.output_dir
    target = sky_root / f"{properties.stem}.json"

    placeholder = sky_source.image_path is None
    if placeholder:
        logging.warning(
            "Sky image not found: %s; emitting placeholder faces for %s.",
            sky_source.expected_path,
            properties.name,
        )
        faces = placeholder_faces()
    else:
        try:
            image = decode_png(sky_source.image_path.read_bytes())
            faces = slice_cubemap(image, config, label=str(sky_source.image_path))
        except (DecodeError, OSError) as exc:
            stats.images_failed += 1
            stats.failures.append(f"{sky_source.image_path}: {exc}")
            logging.error("Failed to slice %s: %s", sky_source.image_path, exc)
            return False

    if config.dry_run:
        logging.info("[dry-run][faces] %s -> %s", sky_source.image_path or "placeholder", image_dir)
        logging.info("[dry-run][descriptor] %s -> %s", properties, target)
        return False

    try:
        written = write_faces(faces, image_dir, sky_source.stem)
    except (EncodeError, OSError) as exc:
        stats.images_failed += 1
        stats.failures.append(f"{properties} -> {image_dir}: {exc}")
        logging.error("Failed to write faces for %s: %s", properties, exc)
        return False

    try:
        payload = json.dumps(descriptor, indent="\t", allow_nan=False) + "\n"
        ensure_dir(target.parent, dry_run=False)
        target.write_text(payload, encoding="utf-8")
    except (OSError, ValueError) as exc:
        remove_files(written)
        stats.descriptors_failed += 1
        stats.failures.append(f"{properties} -> {target}: {exc}")
        logging.error("Failed to write descriptor for %s: %s", properties, exc)
        return False

    if placeholder:
        stats.placeholders_written += len(written)
    else:
        stats.faces_written += len(written)
    stats.descriptors_written += 1
    logging.debug("Converted sky %s -> %s", properties, target)
    return True


def _sky_worker(job: SkyJob, config: ConversionConfig) -> ConversionStats:
    """Worker function for parallel sky conversion."""
    stats = ConversionStats()
    try:
        logging.info("Converting %s", job.properties.name)
        convert_sky_properties(job.properties, job.pack_root, config, stats)
    except Exception as exc:  # noqa: BLE001
        stats.descriptors_failed += 1
        stats.failures.append(f"{job.properties}: unhandled worker error: {exc}")
        logging.error("Sky worker error for %s: %s", job.properties, exc)
    return stats


def prepare_sky_jobs(
    packs: Sequence[Path],
    config: ConversionConfig,
    stats: ConversionStats,
) -> List[SkyJob]:
    jobs: List[SkyJob] = []
    for pack_root in packs:
        if not pack_root.is_dir():
            logging.error("Pack directory does not exist: %s", pack_root)
            stats.packs_skipped += 1
            continue
        sky_dir = prepare_pack(pack_root, config)
        if sky_dir is None:
            stats.packs_skipped += 1
            continue
        logging.info("Converting pack %s", pack_root.name)
        stats.packs_converted += 1
        jobs.extend(SkyJob(properties=path, pack_root=pack_root) for path in discover_sky_properties(sky_dir))
    return jobs


def convert_packs(
    packs: Sequence[Path],
    config: ConversionConfig,
    workers: int = 1,
) -> ConversionStats:
    stats = ConversionStats()
    jobs = prepare_sky_jobs(packs, config, stats)
    logging.info("Found %d sky properties file(s) to process.", len(jobs))

    if workers <= 1 or len(jobs) <= 1:
        for job in jobs:
            merge_stats(stats, _sky_worker(job, config))
    else:
        worker_fn = partial(_sky_worker, config=config)
        with ProcessPoolExecutor(max_workers=workers) as executor:
            for worker_stats in executor.map(worker_fn, jobs):
                merge_stats(stats, worker_stats)
    return stats


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Convert OptiFine/MCPatcher custom skies to FabricSkyboxes."
    )
    parser.add_argument(
        "packs",
        type=Path,
        nargs="+",
        metavar="PACK",
        help="Unpacked resource pack directories to convert.",
    )
    parser.add_argument(
        "--no-transparency",
        action="store_true",
        help="Keep sky colours as-is instead of keying opaque pixels by brightness.",
    )
    parser.add_argument(
        "--reconvert",
        action="store_true",
        help="Remove and regenerate packs that already contain converted skies.",
    )
    parser.add_argument(
        "--namespace",
        default=DEFAULT_NAMESPACE,
        help="Target asset namespace (default: %(default)s).",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=os.cpu_count() or 4,
        help="Number of parallel worker processes (default: number of CPUs).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show planned operations without modifying the filesystem.",
    )
    parser.add_argument(
        "--report",
        type=Path,
        help="Optional path to store a JSON summary of the conversion results.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    config = ConversionConfig(
        transparent=not args.no_transparency,
        reconvert=args.reconvert,
        namespace=args.namespace,
        dry_run=args.dry_run,
    )
    packs = [pack.resolve() for pack in args.packs]
    if not any(pack.is_dir() for pack in packs):
        logging.error("None of the given pack directories exist.")
        return 1

    workers = max(1, args.workers)
    logging.info("Using %d worker process(es).", workers)
    stats = convert_packs(packs, config, workers=workers)

    if args.report:
        report_payload: Dict[str, object] = {
            "packs": [str(pack) for pack in packs],
            "namespace": config.namespace,
            "transparent": config.transparent,
            "stats": {
                f.name: getattr(stats, f.name)
                for f in dataclass_fields(ConversionStats)
                if f.name != "failures"
            },
            "failures": stats.failures,
        }
        if args.dry_run:
            logging.info("[dry-run] report would be written to %s", args.report)
        else:
            ensure_dir(args.report.parent, dry_run=False)
            args.report.write_text(json.dumps(report_payload, indent=2), encoding="utf-8")
            logging.info("Wrote conversion report to %s", args.report)

    logging.info(
        "Packs: %d converted / %d skipped | "
        "Descriptors: %d written / %d failed | "
        "Faces: %d written / %d placeholders / %d image failures",
        stats.packs_converted,
        stats.packs_skipped,
        stats.descriptors_written,
        stats.descriptors_failed,
        stats.faces_written,
        stats.placeholders_written,
        stats.images_failed,
    )

    failed = stats.descriptors_failed + stats.images_failed
    if failed:
        logging.warning("%d sky file(s) failed to convert.", failed)
    return 0 if failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
