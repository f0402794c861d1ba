"""
Pydantic request/response schemas for the Race Value API.

Explicit schemas keep the engine's dataclasses off the wire and generate
accurate OpenAPI docs.  Range checks here are shape validation only; the
engine still guards every input on its own.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from backend.core.odds_math import parse_odds


# ---------------------------------------------------------------------------
# Race analysis
# ---------------------------------------------------------------------------

class EntrantIn(BaseModel):
    """One starter.  Give either ``odds_decimal`` or parseable ``odds_display``."""

    id: str = Field(..., min_length=1, max_length=8, description="Program number")
    base_score: float = Field(..., description="Handicapping score, higher is better")
    odds_display: str = Field("", max_length=16, description='e.g. "5-2", "EVEN", "+150"')
    odds_decimal: Optional[float] = Field(None, description="Decimal odds; parsed from odds_display when omitted")
    name: Optional[str] = Field(None, max_length=60)
    is_scratched: bool = False

    @model_validator(mode="after")
    def fill_decimal_odds(self) -> "EntrantIn":
        if self.odds_decimal is None:
            parsed = parse_odds(self.odds_display)
            if parsed is None:
                raise ValueError(
                    f"Entrant {self.id}: odds_display {self.odds_display!r} is not recognisable odds "
                    "and no odds_decimal was given"
                )
            self.odds_decimal = parsed
        return self


class RaceAnalysisRequest(BaseModel):
    """Payload for POST /api/race/analyze."""

    entrants: List[EntrantIn] = Field(..., max_length=30)
    temperature: Optional[float] = Field(None, gt=0, description="Softmax temperature; server default when omitted")
    score_scale: float = Field(1.0, gt=0)
    use_normalization: bool = True

    model_config = {
        "json_schema_extra": {
            "example": {
                "entrants": [
                    {"id": "1", "base_score": 2.1, "odds_display": "5-2"},
                    {"id": "2", "base_score": 1.4, "odds_display": "3-1"},
                    {"id": "3", "base_score": 0.6, "odds_display": "8-1"},
                ],
                "temperature": 1.0,
            }
        }
    }


class OverlayResultOut(BaseModel):
    entrant_id: str
    odds_decimal: float
    model_probability: float
    market_probability: float
    raw_implied_probability: float
    true_overlay_percent: float
    raw_overlay_percent: float
    expected_value: float
    value_class: str
    ev_class: str
    overlay_adjustment: int
    adjustment_reason: str
    fair_odds: float
    is_positive_ev: bool
    is_value_bet: bool


class FieldMetricsOut(BaseModel):
    field_size: int
    overround: float
    takeout_percent: float
    average_model_probability: float
    probs_validated: bool
    best_value_entrant: Optional[str] = None
    best_overlay_percent: float
    value_bet_count: int


class RaceAnalysisResponse(BaseModel):
    temperature: float
    results: List[OverlayResultOut]
    metrics: FieldMetricsOut
    excluded_ids: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Wager sizing
# ---------------------------------------------------------------------------

class BankrollStateIn(BaseModel):
    current_bankroll: float = Field(..., description="Funds available now")
    initial_bankroll: Optional[float] = None
    total_wagered: float = Field(0.0, ge=0)
    total_profit: float = 0.0
    peak_bankroll: Optional[float] = None
    lowest_bankroll: Optional[float] = None


class SizingConfigIn(BaseModel):
    """Overrides applied on top of the chosen risk profile."""

    risk_profile: Literal["conservative", "moderate", "aggressive"] = "conservative"
    min_bet: Optional[float] = None
    max_bet: Optional[float] = None
    round_to: Optional[float] = None
    max_bet_percent: Optional[float] = None
    kelly_multiplier: Optional[float] = None
    min_edge: Optional[float] = None


class WagerSizingRequest(BaseModel):
    """Payload for POST /api/wagers/size."""

    entrant_id: Optional[str] = None
    probability: float = Field(..., description="Model win probability")
    decimal_odds: float = Field(..., description="Posted decimal odds")
    bankroll: BankrollStateIn
    config: Optional[SizingConfigIn] = Field(None, description="Server default config when omitted")


class WagerRecommendationOut(BaseModel):
    entrant_id: Optional[str] = None
    bet_type: str
    odds: float
    probability: float
    kelly_fraction: float
    full_kelly_fraction: float
    raw_bet_size: float
    rounded_bet_size: float
    expected_value: float
    should_bet: bool
    is_positive_ev: bool
    was_capped: bool
    expected_growth_rate: float
    reason: str


# ---------------------------------------------------------------------------
# Exotics
# ---------------------------------------------------------------------------

PoolName = Literal["EXACTA", "TRIFECTA", "SUPERFECTA"]
StructureName = Literal["STRAIGHT", "BOX", "KEY_OVER", "KEY_UNDER", "PART_WHEEL"]


class ExoticCostRequest(BaseModel):
    """Payload for POST /api/exotics/cost."""

    pool_type: PoolName
    structure: StructureName
    position_sets: List[List[str]] = Field(..., min_length=1, max_length=4)
    base_bet_unit: Optional[float] = Field(None, description="Dollars per combination; pool default when omitted")

    @field_validator("pool_type", "structure", mode="before")
    @classmethod
    def upper_case(cls, v):
        return v.upper() if isinstance(v, str) else v


class ExoticCostResponse(BaseModel):
    pool_type: str
    structure: str
    combinations: int
    total_cost: float
    base_bet_unit: float
    is_valid: bool
    error: Optional[str] = None


class SelectionIn(BaseModel):
    entrant_id: str
    decimal_odds: float = Field(..., gt=1.0)
    model_probability: float = Field(..., ge=0.0, le=1.0)


class ExoticCompareRequest(BaseModel):
    """Payload for POST /api/exotics/compare."""

    selections: List[SelectionIn] = Field(..., min_length=1, max_length=8)
    budget: float = Field(..., gt=0)
    pools: List[PoolName] = Field(default_factory=lambda: ["EXACTA", "TRIFECTA", "SUPERFECTA"])


class PayoutBandOut(BaseModel):
    min: float
    max: float
    likely: float


class ComparisonRowOut(BaseModel):
    label: str
    pool_type: str
    structure: str
    combinations: int
    total_cost: float
    payout: PayoutBandOut
    hit_probability: float
    expected_value: float
    is_recommended: bool


class ExoticCompareResponse(BaseModel):
    budget: float
    rows: List[ComparisonRowOut]
    skipped_over_budget: int
