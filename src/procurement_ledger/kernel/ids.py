"""
Identifier generation

Event, budget item, PO and line item ids are time-ordered UUIDv7-style
strings, so the event log and listings sort naturally by creation time.
"""

import secrets
import time


def generate_id() -> str:
    """
    Generate a UUIDv7-like identifier

    Layout: 48 bits of Unix milliseconds, version nibble 7, 12 random bits,
    variant bits 10, then 62 random bits.

    Returns:
        36-character hyphenated string, e.g. "01908e9a-3b87-7abc-8123-456789abcdef"
    """
    timestamp_ms = int(time.time() * 1000) & 0xFFFFFFFFFFFF
    rand_a = secrets.randbits(12)
    rand_b = secrets.randbits(62)

    hex_ts = f"{timestamp_ms:012x}"
    version_block = 0x7000 | rand_a
    variant_block = 0x8000 | (rand_b >> 48)
    node = rand_b & 0xFFFFFFFFFFFF

    return (
        f"{hex_ts[:8]}-{hex_ts[8:]}-{version_block:04x}-"
        f"{variant_block:04x}-{node:012x}"
    )

