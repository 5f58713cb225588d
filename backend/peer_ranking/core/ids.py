# peer_ranking/core/ids.py
import uuid


def generate_id(prefix: str) -> str:
    """Opaque, globally unique identifier such as ``rkp_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex}"
