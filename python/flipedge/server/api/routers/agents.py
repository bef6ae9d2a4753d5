"""Agent control, status and report endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse
from loguru import logger

from ....agents.trading_agent.registry import AgentRegistry
from ....utils.ts import utc_now
from ...config.logging import LogBuffer
from ..deps import get_logs, get_registry
from ..schemas.common import MessageResponse
from ..schemas.status import StatusResponse

router = APIRouter()


@router.get("/status", response_model=StatusResponse)
async def get_status(
    registry: AgentRegistry = Depends(get_registry),
    logs: LogBuffer = Depends(get_logs),
):
    """Agents, open positions and the most recent log lines."""
    snapshot = registry.snapshot()
    return StatusResponse.model_validate(
        {
            "agents": [s.model_dump(mode="json") for s in snapshot.agents],
            "open_positions": [p.model_dump(mode="json") for p in snapshot.open_positions],
            "logs": [e.model_dump(mode="json") for e in logs.entries()],
        }
    )


@router.post("/start", response_model=MessageResponse)
async def start_trading(registry: AgentRegistry = Depends(get_registry)):
    if registry.started:
        raise HTTPException(status_code=400, detail="Trading has already started.")
    if registry.stopped:
        raise HTTPException(
            status_code=409, detail="Trading was stopped and cannot be restarted."
        )
    if not registry.agents:
        raise HTTPException(status_code=500, detail="No agents are initialized to start.")
    if not registry.start_all():
        raise HTTPException(status_code=409, detail="No agent could be started.")
    return MessageResponse(message="Agents are starting their trading cycles.")


@router.post("/stop", response_model=MessageResponse)
async def stop_trading(registry: AgentRegistry = Depends(get_registry)):
    registry.stop_all()
    return MessageResponse(message="All agents have been stopped.")


@router.get("/reports/today.csv", response_class=PlainTextResponse)
async def todays_report(registry: AgentRegistry = Depends(get_registry)):
    """Today's closed trades as a CSV attachment."""
    logger.info("Generating live trade report...")
    now = utc_now()
    filename = f"trades-{now.date().isoformat()}.csv"
    return PlainTextResponse(
        registry.ledger.to_csv(now),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
