"""Local identifiers and the local-vs-external classifier.

Local ids are 24 lowercase hex digits laid out like a document-store object
id: 4-byte big-endian timestamp, 5-byte per-process nonce, 3-byte counter.
Upstream catalogs never hand out ids of that shape (Google Books volume ids
are 12 mixed-case characters, TMDB ids are decimal), which is what lets
every "detail" or "ensure-exists" lookup branch on the format alone.
"""

import os
import random
import re
import struct
import threading
import time

_LOCAL_ID = re.compile(r"[0-9a-fA-F]{24}")

_PROCESS_NONCE = os.urandom(5)
_counter = random.randint(0, 0xFFFFFF)
_counter_lock = threading.Lock()


def new_object_id() -> str:
    """Generate a new local primary key."""
    global _counter
    with _counter_lock:
        _counter = (_counter + 1) & 0xFFFFFF
        count = _counter
    raw = struct.pack(">I", int(time.time()) & 0xFFFFFFFF) + _PROCESS_NONCE + count.to_bytes(3, "big")
    return raw.hex()


def is_local_id(value: object) -> bool:
    """True when ``value`` has the shape of a locally generated primary key."""
    return isinstance(value, str) and _LOCAL_ID.fullmatch(value) is not None


def normalize_local_id(value: str) -> str:
    return value.lower()
