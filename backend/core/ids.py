import os
import re
import struct
import time

OBJECT_ID_PATTERN = r"^[0-9a-fA-F]{24}$"

_OBJECT_ID_RE = re.compile(OBJECT_ID_PATTERN)


def new_object_id() -> str:
    """24-char hex id: 4-byte big-endian epoch seconds + 8 random bytes."""
    return (struct.pack(">I", int(time.time()) & 0xFFFFFFFF) + os.urandom(8)).hex()


def normalize_id(value: str) -> str:
    return (value or "").strip().lower()


def is_object_id(value: str) -> bool:
    return bool(_OBJECT_ID_RE.match(value or ""))
