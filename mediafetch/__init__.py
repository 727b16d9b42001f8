"""HLS/DASH manifest parsing, segment decryption and merging, and HTTP helpers."""

__version__ = "0.1.0"