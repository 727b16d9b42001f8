"""File tracking and housekeeping of the downloads directory."""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import stat
import threading
import time
from datetime import timedelta

logger = logging.getLogger(__name__)


class FileTracker:
    """Keeps track of open files so that leaked handles can be closed."""

    def __init__(self):
        self._files = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._files)

    def _track(self, path, file):
        with self._lock:
            self._files[os.fspath(path)] = file
        return file

    def create(self, path):
        """Create (or truncate) a file for reading and writing and track it."""
        return self._track(path, open(path, "w+b"))

    def open(self, path):
        """Open a file for reading and track it."""
        return self._track(path, open(path, "rb"))

    def close(self, file):
        """Close a file and stop tracking it."""
        if file is None:
            return
        try:
            file.close()
        finally:
            with self._lock:
                self._files.pop(os.fspath(file.name), None)

    def cleanup(self):
        """Force-close every tracked file."""
        with self._lock:
            files, self._files = self._files, {}
        for path, file in files.items():
            logger.warning("force closing leaked file: %s", path)
            with contextlib.suppress(OSError):
                file.close()


def ensure_download_dir(directory):
    """Create the downloads directory if it does not exist."""
    try:
        os.stat(directory)
    except FileNotFoundError:
        logger.debug("creating downloads directory: %s", directory)
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as exc:
            raise OSError(f"failed to create downloads directory: {exc}") from exc
    except OSError as exc:
        raise OSError(f"error accessing directory: {exc}") from exc


def ensure_file_in_downloads_dir(file_name, downloads_dir):
    """Return an absolute path unchanged, or the name placed in the downloads dir."""
    if os.path.isabs(file_name):
        return file_name
    return os.path.join(downloads_dir, file_name)


def _sweep(directory, limit, now):
    for name in sorted(os.listdir(directory)):
        path = os.path.join(directory, name)
        info = os.lstat(path)
        is_dir = stat.S_ISDIR(info.st_mode)
        if now - info.st_mtime > limit:
            if is_dir:
                logger.debug("removing old directory: %s", path)
                shutil.rmtree(path, ignore_errors=True)
            else:
                logger.debug("removing old file: %s", path)
                with contextlib.suppress(OSError):
                    os.remove(path)
            continue
        if is_dir:
            _sweep(path, limit, now)


def cleanup_old_files(directory, max_age):
    """Remove files and directories under ``directory`` older than ``max_age``.

    ``max_age`` is a timedelta or a number of seconds. The walk stops quietly
    at the first entry that cannot be read.
    """
    limit = max_age.total_seconds() if isinstance(max_age, timedelta) else max_age
    try:
        _sweep(os.fspath(directory), limit, time.time())
    except OSError as exc:
        logger.debug("cleanup of %s stopped: %s", directory, exc)