import uuid


def new_id(prefix: str) -> str:
    """Opaque unique id such as ``note_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex}"
