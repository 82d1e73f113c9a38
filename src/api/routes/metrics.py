"""Prometheus metrics endpoint.

Exposes session, transcript and evaluation metrics for scraping.
"""

from __future__ import annotations

from fastapi import APIRouter, Response

from src.observability.metrics import get_content_type, get_metrics

router = APIRouter()


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Metrics in Prometheus text exposition format."""
    return Response(content=get_metrics(), media_type=get_content_type())
