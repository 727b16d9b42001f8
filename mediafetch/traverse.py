"""Depth-first key lookup in decoded JSON data."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


def traverse_json(data, keys):
    """Find the value at a key path anywhere inside nested dicts and lists.

    ``keys`` is a single key or a sequence of keys. The first key is looked up
    in the current dict; if absent, every nested value is searched in turn.
    Returns None when nothing matches or when ``keys`` has an unsupported type.
    """
    if isinstance(keys, str):
        key_path = (keys,)
    elif isinstance(keys, (list, tuple)) and all(isinstance(k, str) for k in keys):
        key_path = tuple(keys)
    else:
        logger.warning("unsupported keys type: %s", type(keys).__name__)
        return None
    return _traverse(data, key_path)


def _first_match(items, keys):
    return next(
        (found for found in (_traverse(item, keys) for item in items) if found is not None),
        None,
    )


def _traverse(data, keys):
    if not keys:
        return data
    key, rest = keys[0], keys[1:]
    if isinstance(data, dict):
        if key in data:
            return _traverse(data[key], rest)
        return _first_match(data.values(), keys)
    if isinstance(data, (list, tuple)):
        return _first_match(data, keys)
    return None