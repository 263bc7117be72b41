from __future__ import annotations

from fastapi import APIRouter

from narrator.modules.telemetry.service import get_turn_telemetry_summary

router = APIRouter(prefix="/api/v1/telemetry", tags=["telemetry"])


@router.get("/turns")
def turn_telemetry() -> dict:
    return get_turn_telemetry_summary()
