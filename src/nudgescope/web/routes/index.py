"""Similarity index maintenance routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from nudgescope.web.deps import get_services

router = APIRouter()


@router.post("/reinitialize")
def reinitialize_index(
    clear: bool = Query(False, description="Empty the index before rebuilding"),
    services=Depends(get_services),
):
    """Add completed analyses missing from the index."""
    sync = services.index_sync
    added = sync.clear_and_reinitialize() if clear else sync.reinitialize()
    services.analyzer.clear_similar_cache()
    return {"status": "success", "added": added, "documents": services.index.count()}
