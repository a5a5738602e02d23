"""UUID utilities for neo-storage."""

import time
import uuid
from datetime import datetime, timezone
from typing import Optional


def generate_uuid_v7() -> str:
    """
    Generate a UUIDv7 with time-based ordering.

    Identifiers created later sort after earlier ones (at millisecond
    resolution), which keeps grant and entry ids index-friendly and gives
    the resolver a stable secondary ordering.

    Returns:
        String representation of UUIDv7
    """
    # 48-bit millisecond timestamp followed by 80 random bits
    timestamp_ms = int(time.time() * 1000)
    timestamp_bytes = timestamp_ms.to_bytes(6, byteorder='big')
    random_bytes = uuid.uuid4().bytes[6:]
    uuid_bytes = timestamp_bytes + random_bytes

    # Version 7
    uuid_bytes = uuid_bytes[:6] + bytes([(uuid_bytes[6] & 0x0f) | 0x70]) + uuid_bytes[7:]
    # Variant 10
    uuid_bytes = uuid_bytes[:8] + bytes([(uuid_bytes[8] & 0x3f) | 0x80]) + uuid_bytes[9:]

    return str(uuid.UUID(bytes=uuid_bytes))


def extract_timestamp_from_uuid_v7(uuid_str: str) -> Optional[datetime]:
    """
    Extract the creation timestamp from a UUIDv7.

    Args:
        uuid_str: String representation of UUIDv7

    Returns:
        Aware UTC datetime, or None if the value is not a UUIDv7
    """
    try:
        uuid_obj = uuid.UUID(uuid_str)
    except (ValueError, TypeError):
        return None

    if uuid_obj.version != 7:
        return None

    timestamp_ms = int.from_bytes(uuid_obj.bytes[:6], byteorder='big')
    return datetime.fromtimestamp(timestamp_ms / 1000.0, tz=timezone.utc)
