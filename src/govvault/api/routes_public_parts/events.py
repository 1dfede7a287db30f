from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from govvault.api.routes_public_parts.common import _int_param, _vault

router = APIRouter()

Json = Dict[str, Any]


@router.get("/events")
def events_list(
    request: Request,
    after: Optional[str] = None,
    limit: Optional[str] = None,
    account: Optional[str] = None,
) -> Json:
    """Persisted vault notifications in sequence order.

    Page with ?after=<last seq seen>; limit is capped at 1000.
    """
    after_seq = max(0, _int_param(after, 0))
    lim = _int_param(limit, 100)
    items = _vault(request).events(after_seq=after_seq, limit=lim, account=(account or "").strip() or None)
    next_after = items[-1]["seq"] if items else after_seq
    return {"ok": True, "events": items, "next_after": next_after}
