from datetime import datetime, timezone
from typing import Optional

def now_ts() -> str:
    return datetime.now(timezone.utc).isoformat()

# Server -> client frames are built as dicts
def make_ack(message_id: int):
    return {"type": "ack", "id": message_id, "ts": now_ts()}

def make_error(code: str, message: str, message_id: Optional[int] = None):
    return {"type": "error", "id": message_id, "error": {"code": code, "message": message}, "ts": now_ts()}
