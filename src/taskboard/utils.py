from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List


def utc_now_iso() -> str:
    """ISO-8601 UTC timestamp used for createdAt fields."""
    return datetime.now(timezone.utc).isoformat()


def generate_id() -> str:
    """Random document/checklist id."""
    return uuid.uuid4().hex


# PUBLIC_INTERFACE
def sort_documents(docs: Iterable[Dict[str, Any]], order_by: str) -> List[Dict[str, Any]]:
    """
    Sort documents by a field, ascending.

    Documents missing the field go last; ties keep their arrival order
    (sorted() is stable).
    """
    return sorted(docs, key=lambda d: (d.get(order_by) is None, d.get(order_by) or 0))
