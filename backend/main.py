"""
FastAPI application for the Race Value engine.
Stateless REST API over race analysis, wager sizing and exotic pricing.
"""

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from dataclasses import asdict, replace
from datetime import datetime, timezone
import logging
import os

from dotenv import load_dotenv

from backend.core.exotics import ExoticStructureSpec, PoolType, exotic_cost
from backend.core.race_types import BankrollState, Entrant
from backend.core.wager_config import ConfigurationError, WagerSizingConfig
from backend.services.exotic_comparison import Selection, compare_structures
from backend.services.race_analysis import analyze_race
from backend.services.wager_sizing import get_sizing_config, size_wager
from backend.schemas import (
    ComparisonRowOut,
    ExoticCompareRequest,
    ExoticCompareResponse,
    ExoticCostRequest,
    ExoticCostResponse,
    FieldMetricsOut,
    OverlayResultOut,
    PayoutBandOut,
    RaceAnalysisRequest,
    RaceAnalysisResponse,
    WagerRecommendationOut,
    WagerSizingRequest,
)

load_dotenv()

# Logging setup
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting Race Value API")
    # Invalid sizing bounds in the environment fail startup, not a request.
    get_sizing_config()
    yield
    logger.info("Race Value API stopped")


app = FastAPI(
    title="Race Value API",
    description="Win probability, overlay, Kelly sizing and exotic pricing for a single race",
    version="1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _resolve_config(cfg_in) -> WagerSizingConfig:
    """Request overrides on top of a preset, validated once here."""
    if cfg_in is None:
        return get_sizing_config()
    base = WagerSizingConfig.for_risk_profile(cfg_in.risk_profile)
    overrides = cfg_in.model_dump(exclude={"risk_profile"}, exclude_none=True)
    return replace(base, **overrides).validate()


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    return {
        "app": "Race Value API",
        "version": "1.0",
        "status": "operational",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


@app.post("/api/race/analyze", response_model=RaceAnalysisResponse)
async def analyze(request: RaceAnalysisRequest):
    """
    Calibrate, normalise and classify every entrant in one race.

    Degenerate fields (empty, walkover, all odds invalid) still return a
    response with zeroed metrics.
    """
    entrants = [
        Entrant(
            id=e.id,
            base_score=e.base_score,
            odds_display=e.odds_display,
            odds_decimal=e.odds_decimal,
            name=e.name,
            is_scratched=e.is_scratched,
        )
        for e in request.entrants
    ]
    analysis = analyze_race(
        entrants,
        temperature=request.temperature,
        use_normalization=request.use_normalization,
        score_scale=request.score_scale,
    )

    results = []
    for e in analysis.entrants:
        r = analysis.results[e.id]
        results.append(OverlayResultOut(
            entrant_id=r.entrant_id,
            odds_decimal=e.odds_decimal,
            model_probability=r.model_probability,
            market_probability=r.market_probability,
            raw_implied_probability=analysis.market.raw_probability(e.id),
            true_overlay_percent=r.true_overlay_percent,
            raw_overlay_percent=r.raw_overlay_percent,
            expected_value=r.expected_value,
            value_class=r.value_class.value,
            ev_class=r.ev_class.value,
            overlay_adjustment=r.overlay_adjustment,
            adjustment_reason=r.adjustment_reason,
            fair_odds=r.fair_odds,
            is_positive_ev=r.is_positive_ev,
            is_value_bet=r.is_value_bet,
        ))

    m = analysis.metrics
    return RaceAnalysisResponse(
        temperature=analysis.calibrated.temperature,
        results=results,
        metrics=FieldMetricsOut(
            field_size=m.field_size,
            overround=m.overround,
            takeout_percent=m.takeout_percent,
            average_model_probability=m.average_model_probability,
            probs_validated=m.probs_validated,
            best_value_entrant=m.best_value_entrant,
            best_overlay_percent=m.best_overlay_percent,
            value_bet_count=m.value_bet_count,
        ),
        excluded_ids=list(analysis.market.excluded_ids),
        warnings=analysis.warnings,
    )


@app.post("/api/wagers/size", response_model=WagerRecommendationOut)
async def size(request: WagerSizingRequest):
    """Fractional-Kelly size for one win bet.  The bankroll is not modified."""
    try:
        cfg = _resolve_config(request.config)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    b = request.bankroll
    bankroll = BankrollState(
        current_bankroll=b.current_bankroll,
        initial_bankroll=b.initial_bankroll if b.initial_bankroll is not None else b.current_bankroll,
        total_wagered=b.total_wagered,
        total_profit=b.total_profit,
        peak_bankroll=b.peak_bankroll if b.peak_bankroll is not None else b.current_bankroll,
        lowest_bankroll=b.lowest_bankroll if b.lowest_bankroll is not None else b.current_bankroll,
    )
    rec = size_wager(request.probability, request.decimal_odds, bankroll, cfg, entrant_id=request.entrant_id)
    return WagerRecommendationOut(**asdict(rec))


@app.post("/api/exotics/cost", response_model=ExoticCostResponse)
async def cost(request: ExoticCostRequest):
    """Combinations and total cost of one exotic ticket."""
    spec = ExoticStructureSpec.build(
        request.pool_type, request.structure, request.position_sets, request.base_bet_unit,
    )
    result = exotic_cost(spec)
    return ExoticCostResponse(
        pool_type=result.pool_type.value,
        structure=result.structure.value,
        combinations=result.combinations,
        total_cost=result.total_cost,
        base_bet_unit=result.base_bet_unit,
        is_valid=result.is_valid,
        error=result.error,
    )


@app.post("/api/exotics/compare", response_model=ExoticCompareResponse)
async def compare(request: ExoticCompareRequest):
    """Rank exotic tickets from the given contenders within a budget."""
    selections = [
        Selection(
            entrant_id=s.entrant_id,
            decimal_odds=s.decimal_odds,
            model_probability=s.model_probability,
        )
        for s in request.selections
    ]
    table = compare_structures(
        selections, request.budget, pools=[PoolType(p) for p in request.pools],
    )
    return ExoticCompareResponse(
        budget=table.budget,
        rows=[
            ComparisonRowOut(
                label=row.label,
                pool_type=row.spec.pool_type.value,
                structure=row.spec.structure.value,
                combinations=row.combinations,
                total_cost=row.cost.total_cost,
                payout=PayoutBandOut(min=row.payout.min, max=row.payout.max, likely=row.payout.likely),
                hit_probability=row.hit_probability,
                expected_value=row.expected_value,
                is_recommended=row.is_recommended,
            )
            for row in table.rows
        ],
        skipped_over_budget=table.skipped_over_budget,
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
