import uuid


def generate_uuid(prefix: str = None) -> str:
    if not prefix:
        return str(uuid.uuid4().hex)

    return f"{prefix}-{uuid.uuid4().hex}"
