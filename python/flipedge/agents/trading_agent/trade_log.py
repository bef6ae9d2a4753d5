"""Append-only ledger of closed trades with daily CSV export"""

from __future__ import annotations

import csv
import io
from datetime import datetime
from typing import Callable, Dict, List, Optional

from loguru import logger

from flipedge.utils.ts import utc_now

from .models import TradeRecord

CSV_HEADER = [
    "timestamp",
    "agentId",
    "symbol",
    "side",
    "size",
    "entryPrice",
    "closePrice",
    "pnl",
]
EMPTY_REPORT_MESSAGE = "No trades executed yet today."


class TradeLedger:
    """In-memory TradeRecord store shared by all agents of a process.

    Records are keyed by `position_id`; appending a second record for the
    same position is refused so each holding episode is recorded once.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._records: List[TradeRecord] = []
        self._by_position: Dict[str, TradeRecord] = {}
        self._clock = clock if clock is not None else utc_now

    def __len__(self) -> int:
        return len(self._records)

    def append(self, record: TradeRecord) -> bool:
        """Store `record`; return False when its position was already recorded."""
        if record.position_id in self._by_position:
            logger.warning(
                "Trade for position {} already recorded, ignoring duplicate",
                record.position_id,
            )
            return False
        self._records.append(record)
        self._by_position[record.position_id] = record
        return True

    def records(self, agent_id: Optional[str] = None) -> List[TradeRecord]:
        if agent_id is None:
            return list(self._records)
        return [r for r in self._records if r.agent_id == agent_id]

    def todays_trades(self, now: Optional[datetime] = None) -> List[TradeRecord]:
        """Records whose timestamp falls on the current UTC date."""
        today = (now or self._clock()).date()
        return [r for r in self._records if r.timestamp.date() == today]

    def to_csv(self, now: Optional[datetime] = None) -> str:
        trades = self.todays_trades(now)
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        if not trades:
            buffer.write(EMPTY_REPORT_MESSAGE)
            return buffer.getvalue()
        for trade in trades:
            writer.writerow(
                [
                    trade.timestamp.isoformat(),
                    trade.agent_id,
                    trade.symbol,
                    trade.side.value,
                    trade.size,
                    trade.entry_price,
                    trade.close_price,
                    trade.pnl,
                ]
            )
        return buffer.getvalue()
