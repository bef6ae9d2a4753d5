"""Bybit V5 linear-perpetual client backed by ccxt.

The client talks to the raw V5 endpoints through ccxt's implicit API so the
agent sees Bybit's own fields (turnover, lot size filter, closed PnL ids)
while ccxt handles signing, rate limiting and error mapping.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Awaitable, Dict, List, Optional

import ccxt.pro as ccxtpro
from ccxt.base.errors import BaseError
from loguru import logger

from flipedge.utils.ts import from_timestamp_ms

from ..exceptions import ExchangeRequestError
from ..models import (
    ClosedPnl,
    ExchangePosition,
    InstrumentInfo,
    MarketTicker,
    PositionSide,
    Ticker,
)
from .interfaces import ExchangeClient

CATEGORY = "linear"
RECV_WINDOW_MS = 10_000
# Bybit retCode for "leverage not modified"
LEVERAGE_NOT_MODIFIED = "110043"


def get_exchange_cls(exchange_id: str):
    """Get CCXT exchange class by exchange ID."""

    exchange_cls = getattr(ccxtpro, exchange_id, None)
    if exchange_cls is None:
        raise RuntimeError(f"Exchange '{exchange_id}' not found in ccxt.pro")
    return exchange_cls


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _format_decimal(value: Decimal) -> str:
    return format(value.normalize(), "f")


class BybitExchangeClient(ExchangeClient):
    """ExchangeClient over Bybit V5 (live, testnet or demo account)."""

    def __init__(
        self,
        agent_id: str,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        *,
        mode: str = "live",
        exchange_id: str = "bybit",
        ccxt_options: Optional[Dict] = None,
    ) -> None:
        self._agent_id = agent_id
        self._log = logger.bind(agent_id=agent_id)
        exchange_cls = get_exchange_cls(exchange_id)
        config: Dict[str, Any] = {
            "enableRateLimit": True,
            "options": {"recvWindow": RECV_WINDOW_MS},
            **(ccxt_options or {}),
        }
        if api_key and api_secret:
            config["apiKey"] = api_key
            config["secret"] = api_secret
        self._exchange = exchange_cls(config)
        if mode == "testnet":
            self._exchange.set_sandbox_mode(True)
        elif mode == "demo":
            self._exchange.enable_demo_trading(True)
        self._mode = mode

    async def _request(self, operation: str, call: Awaitable[Dict]) -> Dict:
        try:
            response = await call
        except BaseError as exc:
            raise ExchangeRequestError(operation, str(exc)) from exc
        return response.get("result") or {}

    async def get_wallet_balance(self) -> float:
        self._log.info("Fetching wallet balance from Bybit...")
        last_error: Optional[ExchangeRequestError] = None
        for account_type in ("UNIFIED", "CONTRACT"):
            try:
                result = await self._request(
                    "get_wallet_balance",
                    self._exchange.private_get_v5_account_wallet_balance(
                        {"accountType": account_type}
                    ),
                )
            except ExchangeRequestError as exc:
                self._log.info(
                    "Could not fetch {} account balance: {}", account_type, exc.message
                )
                last_error = exc
                continue
            for account in result.get("list") or []:
                for coin in account.get("coin") or []:
                    if coin.get("coin") == "USDT" and coin.get("walletBalance"):
                        balance = _to_float(coin["walletBalance"])
                        self._log.info(
                            "Wallet balance ({}): {} USDT", account_type, balance
                        )
                        return balance
        if last_error is not None:
            raise last_error
        raise ExchangeRequestError(
            "get_wallet_balance",
            "USDT balance not found for either UNIFIED or CONTRACT account types",
        )

    async def get_market_data(self) -> List[MarketTicker]:
        result = await self._request(
            "get_market_data",
            self._exchange.public_get_v5_market_tickers({"category": CATEGORY}),
        )
        return [
            MarketTicker(
                symbol=row["symbol"],
                last_price=_to_float(row.get("lastPrice")),
                price_24h_pcnt=_to_float(row.get("price24hPcnt")),
                volume_24h=_to_float(row.get("volume24h")),
                turnover_24h=_to_float(row.get("turnover24h")),
            )
            for row in result.get("list") or []
            if row.get("symbol")
        ]

    async def get_instrument_info(self, symbol: str) -> InstrumentInfo:
        result = await self._request(
            "get_instrument_info",
            self._exchange.public_get_v5_market_instruments_info(
                {"category": CATEGORY, "symbol": symbol}
            ),
        )
        rows = result.get("list") or []
        if not rows:
            raise ExchangeRequestError(
                "get_instrument_info", f"No instrument info for {symbol}"
            )
        lot = rows[0].get("lotSizeFilter") or {}
        price = rows[0].get("priceFilter") or {}
        return InstrumentInfo(
            symbol=symbol,
            min_order_qty=Decimal(str(lot["minOrderQty"])),
            qty_step=Decimal(str(lot["qtyStep"])),
            tick_size=Decimal(str(price["tickSize"])),
        )

    async def get_ticker(self, symbol: str) -> Ticker:
        result = await self._request(
            "get_ticker",
            self._exchange.public_get_v5_market_tickers(
                {"category": CATEGORY, "symbol": symbol}
            ),
        )
        rows = result.get("list") or []
        if not rows:
            raise ExchangeRequestError("get_ticker", f"No ticker for {symbol}")
        row = rows[0]
        mark = _to_float(row.get("markPrice"))
        return Ticker(
            symbol=symbol,
            last_price=_to_float(row.get("lastPrice")),
            mark_price=mark or None,
        )

    async def set_leverage(self, symbol: str, leverage: int) -> None:
        self._log.info("Setting leverage for {} to {}x...", symbol, leverage)
        try:
            await self._request(
                "set_leverage",
                self._exchange.private_post_v5_position_set_leverage(
                    {
                        "category": CATEGORY,
                        "symbol": symbol,
                        "buyLeverage": str(leverage),
                        "sellLeverage": str(leverage),
                    }
                ),
            )
        except ExchangeRequestError as exc:
            message = exc.message.lower()
            if LEVERAGE_NOT_MODIFIED in message or "not modified" in message:
                self._log.info("Leverage for {} is already {}x", symbol, leverage)
                return
            raise

    async def place_order(
        self,
        symbol: str,
        side: PositionSide,
        qty: Decimal,
        take_profit: Optional[Decimal] = None,
        stop_loss: Optional[Decimal] = None,
    ) -> str:
        request: Dict[str, Any] = {
            "category": CATEGORY,
            "symbol": symbol,
            "side": side.order_side,
            "orderType": "Market",
            "qty": _format_decimal(qty),
        }
        if take_profit is not None:
            request["takeProfit"] = _format_decimal(take_profit)
        if stop_loss is not None:
            request["stopLoss"] = _format_decimal(stop_loss)
        self._log.info("Placing order: {}", request)
        result = await self._request(
            "place_order", self._exchange.private_post_v5_order_create(request)
        )
        order_id = str(result.get("orderId") or "")
        if not order_id:
            raise ExchangeRequestError("place_order", "Order id missing in response")
        self._log.info("Order placed successfully. Order ID: {}", order_id)
        return order_id

    async def get_position(self, symbol: str) -> Optional[ExchangePosition]:
        result = await self._request(
            "get_position",
            self._exchange.private_get_v5_position_list(
                {"category": CATEGORY, "symbol": symbol}
            ),
        )
        for row in result.get("list") or []:
            size = _to_float(row.get("size"))
            if size > 0:
                mark = _to_float(row.get("markPrice"))
                return ExchangePosition(
                    symbol=row.get("symbol") or symbol,
                    side=PositionSide.from_order_side(row.get("side", "")),
                    size=size,
                    avg_price=_to_float(row.get("avgPrice")),
                    unrealized_pnl=_to_float(row.get("unrealisedPnl")),
                    mark_price=mark or None,
                )
        return None

    async def close_position(self, symbol: str, side: PositionSide, size: float) -> str:
        self._log.info("Closing {} position of size {} for {}...", side.value, size, symbol)
        result = await self._request(
            "close_position",
            self._exchange.private_post_v5_order_create(
                {
                    "category": CATEGORY,
                    "symbol": symbol,
                    "side": side.closing_order_side,
                    "orderType": "Market",
                    "qty": _format_decimal(Decimal(str(size))),
                    "reduceOnly": True,
                }
            ),
        )
        order_id = str(result.get("orderId") or "")
        self._log.info("Position close order sent. Order ID: {}", order_id)
        return order_id

    async def get_closed_pnl(
        self,
        symbol: str,
        order_id: Optional[str] = None,
        since_ms: Optional[int] = None,
    ) -> Optional[ClosedPnl]:
        params: Dict[str, Any] = {"category": CATEGORY, "symbol": symbol, "limit": 20}
        if since_ms is not None:
            params["startTime"] = since_ms
        result = await self._request(
            "get_closed_pnl", self._exchange.private_get_v5_position_closed_pnl(params)
        )
        rows = result.get("list") or []
        if order_id:
            matched = [row for row in rows if row.get("orderId") == order_id]
            if matched:
                return self._closed_pnl_from_row(symbol, matched[0])
        if since_ms is not None:
            rows = [
                row
                for row in rows
                if int(_to_float(row.get("updatedTime") or row.get("createdTime")))
                >= since_ms
            ]
        if not rows:
            return None
        # Bybit returns newest first
        return self._closed_pnl_from_row(symbol, rows[0])

    @staticmethod
    def _closed_pnl_from_row(symbol: str, row: Dict) -> ClosedPnl:
        closed_ms = int(_to_float(row.get("updatedTime") or row.get("createdTime")))
        return ClosedPnl(
            symbol=row.get("symbol") or symbol,
            order_id=row.get("orderId"),
            realized_pnl=_to_float(row.get("closedPnl")),
            exit_price=_to_float(row.get("avgExitPrice")),
            entry_price=_to_float(row.get("avgEntryPrice")) or None,
            size=_to_float(row.get("closedSize") or row.get("qty")) or None,
            closed_at=from_timestamp_ms(closed_ms),
        )

    async def close(self) -> None:
        try:
            await self._exchange.close()
        except Exception:
            logger.exception(
                "Failed to close exchange connection for agent {}", self._agent_id
            )
