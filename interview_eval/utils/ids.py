import uuid
from datetime import datetime


def generate_id(prefix: str = "") -> str:
    """Time-ordered unique id, e.g. ``batch_20250101_120000_1a2b3c``."""
    stamp = f"{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:6]}"
    return f"{prefix}_{stamp}" if prefix else stamp
