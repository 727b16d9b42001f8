"""AES-128-CBC decryption of HLS media segments."""

from __future__ import annotations

import os
from pathlib import Path

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

BLOCK_SIZE = 16
_IV_BITS = 128


class DecryptionError(ValueError):
    """Raised when segment data cannot be decrypted."""


def is_valid_aes_key(key):
    """Return True if the key has the AES-128 length."""
    return len(key) == 16


def is_valid_iv(iv):
    """Return True if the IV is one AES block long."""
    return len(iv) == 16


def zero_iv():
    """Return an all-zero 16-byte IV."""
    return bytes(16)


def segment_iv(base_iv, media_sequence):
    """Return the IV for a segment: the base IV plus the 32-bit sequence number."""
    if not is_valid_iv(base_iv):
        raise DecryptionError(f"invalid IV: expected 16 bytes, got {len(base_iv)}")
    value = int.from_bytes(bytes(base_iv), "big") + (media_sequence & 0xFFFFFFFF)
    return (value % (1 << _IV_BITS)).to_bytes(16, "big")


def remove_pkcs7_padding(data):
    """Strip PKCS#7 padding, raising DecryptionError if it is malformed."""
    if not data:
        raise DecryptionError("data is empty")
    padding_length = data[-1]
    if padding_length == 0 or padding_length > BLOCK_SIZE:
        raise DecryptionError(f"invalid padding length: {padding_length}")
    if padding_length > len(data):
        raise DecryptionError(
            f"padding length ({padding_length}) exceeds data length ({len(data)})"
        )
    start = len(data) - padding_length
    for position, byte in enumerate(data[start:], start):
        if byte != padding_length:
            raise DecryptionError(f"invalid padding at position {position}")
    return bytes(data[:start])


def decrypted_filename(path):
    """Return the path with '_decrypted' inserted before the extension."""
    path = os.fspath(path)
    directory, name = os.path.split(path)
    dot = name.rfind(".")
    stem, ext = (name[:dot], name[dot:]) if dot >= 0 else (name, "")
    return os.path.join(directory, f"{stem}_decrypted{ext}")


def _check_key_and_iv(key, iv):
    if not is_valid_aes_key(key):
        raise DecryptionError(f"invalid key: expected 16 bytes, got {len(key)}")
    if not is_valid_iv(iv):
        raise DecryptionError(f"invalid IV: expected 16 bytes, got {len(iv)}")


def _decrypt(data, key, base_iv, media_sequence, empty_message):
    if not data:
        raise DecryptionError(empty_message)
    if len(data) % BLOCK_SIZE:
        raise DecryptionError("encrypted data length is not a multiple of block size")
    iv = segment_iv(base_iv, media_sequence)
    decryptor = Cipher(algorithms.AES(bytes(key)), modes.CBC(iv)).decryptor()
    plain = decryptor.update(bytes(data)) + decryptor.finalize()
    try:
        return remove_pkcs7_padding(plain)
    except DecryptionError as exc:
        raise DecryptionError(f"failed to remove padding: {exc}") from exc


def decrypt_segment_bytes(data, key, iv, media_sequence):
    """Decrypt one segment held in memory and return the plaintext."""
    _check_key_and_iv(key, iv)
    return _decrypt(data, key, iv, media_sequence, "no data to decrypt")


def decrypt_segment_stream(src, dst, key, iv, media_sequence):
    """Read a whole encrypted segment from src and write the plaintext to dst."""
    _check_key_and_iv(key, iv)
    try:
        data = src.read()
    except OSError as exc:
        raise DecryptionError(f"failed to read encrypted data: {exc}") from exc
    plain = _decrypt(data, key, iv, media_sequence, "no data to decrypt")
    try:
        dst.write(plain)
    except OSError as exc:
        raise DecryptionError(f"failed to write decrypted data: {exc}") from exc


def _decrypt_file(path, key, iv, media_sequence, output_path):
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise DecryptionError(f"failed to read segment file: {exc}") from exc
    plain = _decrypt(data, key, iv, media_sequence, "segment file is empty")
    try:
        Path(output_path).write_bytes(plain)
    except OSError as exc:
        raise DecryptionError(f"failed to write decrypted file: {exc}") from exc


def _decrypt_files(segments, key, iv, sequences, in_place, show_sequence):
    _check_key_and_iv(key, iv)
    for path, sequence in zip(segments, sequences):
        output = path if in_place else decrypted_filename(path)
        try:
            _decrypt_file(path, key, iv, sequence, output)
        except DecryptionError as exc:
            where = f"{path} (sequence {sequence})" if show_sequence else f"{path}"
            raise DecryptionError(f"failed to decrypt segment {where}: {exc}") from exc


def decrypt_segments(segments, key, iv, media_sequence):
    """Decrypt segment files into sibling '_decrypted' files."""
    segments = list(segments)
    sequences = range(media_sequence, media_sequence + len(segments))
    _decrypt_files(segments, key, iv, sequences, in_place=False, show_sequence=False)


def decrypt_segments_in_place(segments, key, iv, media_sequence):
    """Decrypt segment files, overwriting each original."""
    segments = list(segments)
    sequences = range(media_sequence, media_sequence + len(segments))
    _decrypt_files(segments, key, iv, sequences, in_place=True, show_sequence=False)


def _paired(segments, media_sequences):
    segments, media_sequences = list(segments), list(media_sequences)
    if len(segments) != len(media_sequences):
        raise DecryptionError("segments and mediaSequences arrays must have the same length")
    return segments, media_sequences


def decrypt_segments_with_sequences(segments, key, iv, media_sequences):
    """Decrypt segment files with one sequence number each, into '_decrypted' files."""
    segments, media_sequences = _paired(segments, media_sequences)
    _decrypt_files(segments, key, iv, media_sequences, in_place=False, show_sequence=True)


def decrypt_segments_with_sequences_in_place(segments, key, iv, media_sequences):
    """Decrypt segment files with one sequence number each, overwriting them."""
    segments, media_sequences = _paired(segments, media_sequences)
    _decrypt_files(segments, key, iv, media_sequences, in_place=True, show_sequence=True)