"""
Pydantic request/response schemas for the BetEdge API.

Request models validate the wire format and convert to the engine's
dataclasses with ``to_domain()``; the engine itself never sees pydantic
objects.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from betedge.models import MarketOdds, Prediction
from betedge.services.bankroll import BankrollState

#: Allowed slack when checking that 1X2 probabilities sum to 1.
PROB_SUM_TOLERANCE = 0.05


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

class PredictionIn(BaseModel):
    """Model output for one match."""

    home_win_prob: float = Field(..., ge=0.0, le=1.0)
    draw_prob: float = Field(..., ge=0.0, le=1.0)
    away_win_prob: float = Field(..., ge=0.0, le=1.0)
    expected_home_score: float = Field(0.0, ge=0.0)
    expected_away_score: float = Field(0.0, ge=0.0)
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    over25_prob: Optional[float] = Field(None, ge=0.0, le=1.0)
    home_team: str = Field("Home", max_length=120)
    away_team: str = Field("Away", max_length=120)

    @model_validator(mode="after")
    def probabilities_sum_to_one(self) -> "PredictionIn":
        total = self.home_win_prob + self.draw_prob + self.away_win_prob
        if abs(total - 1.0) > PROB_SUM_TOLERANCE:
            raise ValueError(f"Match-result probabilities must sum to 1 (got {total:.3f})")
        return self

    def to_domain(self) -> Prediction:
        return Prediction(**self.model_dump())


class OddsIn(BaseModel):
    """
    Decimal odds for one match.

    Match-result prices are required; totals and double-chance prices are
    optional.  ``bookmakers`` names the bookmaker behind individual prices.
    """

    home_win: float = Field(..., ge=1.0)
    draw: float = Field(..., ge=1.0)
    away_win: float = Field(..., ge=1.0)
    over_25: Optional[float] = Field(None, ge=1.0)
    under_25: Optional[float] = Field(None, ge=1.0)
    home_or_draw: Optional[float] = Field(None, ge=1.0)
    home_or_away: Optional[float] = Field(None, ge=1.0)
    draw_or_away: Optional[float] = Field(None, ge=1.0)
    bookmaker: Optional[str] = Field(None, max_length=80)
    bookmakers: Dict[str, str] = Field(default_factory=dict)

    def to_domain(self) -> MarketOdds:
        return MarketOdds(**self.model_dump())


class AnalysisRequest(BaseModel):
    prediction: PredictionIn
    odds: OddsIn
    bankroll: Optional[float] = Field(None, gt=0, description="Defaults to STARTING_BANKROLL")


class OddsRefreshRequest(BaseModel):
    """Payload for POST /api/odds/refresh (one snapshot pushed by a poll loop)."""

    match_id: str = Field(..., min_length=1, max_length=120)
    prediction: PredictionIn
    odds: OddsIn
    bankroll: Optional[float] = Field(None, gt=0)


class BankrollStateModel(BaseModel):
    starting_bankroll: float = Field(..., gt=0)
    current_bankroll: float
    peak_bankroll: float
    lowest_bankroll: float
    total_bets: int = Field(0, ge=0)
    won_bets: int = Field(0, ge=0)
    lost_bets: int = Field(0, ge=0)
    total_staked: float = Field(0.0, ge=0)
    total_returns: float = Field(0.0, ge=0)
    net_profit: float = 0.0
    roi: float = 0.0
    win_rate: float = 0.0
    average_odds: float = 0.0
    current_streak: int = Field(0, ge=0)
    streak_type: Literal["none", "win", "loss"] = "none"
    longest_win_streak: int = Field(0, ge=0)
    longest_loss_streak: int = Field(0, ge=0)
    max_drawdown: float = 0.0
    suggested_max_stake: float = 0.0
    risk_tolerance: Literal["Conservative", "Moderate", "Aggressive"] = "Moderate"

    def to_domain(self) -> BankrollState:
        return BankrollState(**self.model_dump())


class BankrollSimulateRequest(BaseModel):
    """
    Payload for POST /api/bankroll/simulate.

    Supply either an existing ``state`` or a ``starting_bankroll`` for a
    fresh ledger.  ``won`` settles the bet deterministically; otherwise the
    outcome is drawn from ``win_probability`` (seeded by ``seed`` if given).
    """

    state: Optional[BankrollStateModel] = None
    starting_bankroll: Optional[float] = Field(None, gt=0)
    outcome: str = Field("home_win", max_length=40)
    odds: float = Field(..., ge=1.0)
    win_probability: float = Field(..., ge=0.0, le=1.0)
    stake: float = Field(..., ge=0.0)
    won: Optional[bool] = None
    seed: Optional[int] = None

    @model_validator(mode="after")
    def state_or_starting_bankroll(self) -> "BankrollSimulateRequest":
        if self.state is None and self.starting_bankroll is None:
            raise ValueError("Provide either 'state' or 'starting_bankroll'")
        return self


class ClvRequest(BaseModel):
    bet_odds: float = Field(..., description="Decimal odds the bet was placed at")
    closing_odds: float = Field(..., description="Decimal closing odds")
    market: str = Field("match_result", max_length=40)
    outcome: str = Field("", max_length=40)
    opening_odds: Optional[float] = None

    @field_validator("bet_odds", "closing_odds")
    @classmethod
    def valid_decimal_odds(cls, v: float) -> float:
        if v < 1.0:
            raise ValueError(f"Decimal odds must be >= 1.0, got {v}")
        return v


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

class AlertOut(BaseModel):
    id: str
    timestamp: datetime
    type: str
    severity: str
    title: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    read: bool = False
    dismissed: bool = False


class AlertListResponse(BaseModel):
    alerts: List[AlertOut]
    total: int
    unread: int


class BankrollSimulateResponse(BaseModel):
    won: bool
    state: BankrollStateModel
    alerts_dispatched: int = 0


class OddsRefreshResponse(BaseModel):
    match_id: str
    movements: List[Dict[str, Any]]
    alerts_matched: int
    alerts_dispatched: int
    top_recommendations: List[Dict[str, Any]]
