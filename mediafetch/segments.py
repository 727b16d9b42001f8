"""Concatenation of downloaded media segments into one file."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


def _file_exists(path):
    return os.path.isfile(path)


def _append_segments(output, segment_paths):
    for index, segment_path in enumerate(segment_paths):
        if not _file_exists(segment_path):
            logger.warning("segment %d does not exist: %s", index, segment_path)
            continue
        try:
            source = open(segment_path, "rb")
        except OSError as exc:
            raise OSError(
                f"failed to open segment {index} ({segment_path}): {exc}"
            ) from exc
        with source:
            try:
                shutil.copyfileobj(source, output)
            except OSError as exc:
                raise OSError(
                    f"failed to copy segment {index} ({segment_path}): {exc}"
                ) from exc


def _merge_fragmented_mp4(init_segment_path, segment_paths, output_path):
    try:
        output = open(output_path, "wb")
    except OSError as exc:
        raise OSError(f"failed to create output file: {exc}") from exc
    with output:
        try:
            init_file = open(init_segment_path, "rb")
        except OSError as exc:
            raise OSError(f"failed to open init segment: {exc}") from exc
        with init_file:
            try:
                shutil.copyfileobj(init_file, output)
            except OSError as exc:
                raise OSError(f"failed to copy init segment: {exc}") from exc
        logger.debug("copied init segment: %d bytes", output.tell())
        _append_segments(output, segment_paths)
        logger.debug(
            "merged fragmented MP4: written to %s (%d bytes)", output_path, output.tell()
        )
    return output_path


def _merge_regular_segments(segment_paths, output_path):
    try:
        output = open(output_path, "wb")
    except OSError as exc:
        raise OSError(f"failed to create output file: {exc}") from exc
    with output:
        _append_segments(output, segment_paths)
        total = output.tell()
    if total == 0:
        Path(output_path).unlink(missing_ok=True)
        raise ValueError("no valid segments found to merge")
    logger.debug("merged regular segments: written to %s (%d bytes)", output_path, total)
    return output_path


def merge_segments(init_segment_path, segment_paths, output_path):
    """Concatenate segments into ``output_path`` and return that path.

    When an existing init segment is given it is written first. Segments that
    do not exist are skipped; a plain merge that writes nothing is an error.
    """
    segment_paths = list(segment_paths)
    if not segment_paths:
        raise ValueError("no segments to merge")
    if init_segment_path and _file_exists(init_segment_path):
        return _merge_fragmented_mp4(init_segment_path, segment_paths, output_path)
    return _merge_regular_segments(segment_paths, output_path)