"""
FastAPI application for the BetEdge decision engine.
Exposes the analysis, bankroll and CLV calculators, the alert store, and
the scheduled odds-monitor job.
"""

from fastapi import FastAPI, Depends, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from apscheduler.schedulers.background import BackgroundScheduler
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional
import logging
import os
import random

from dotenv import load_dotenv

from betedge import __version__
from betedge.auth import verify_api_key, verify_admin_api_key
from betedge.schemas import (
    AlertListResponse,
    AnalysisRequest,
    BankrollSimulateRequest,
    BankrollSimulateResponse,
    ClvRequest,
    OddsRefreshRequest,
    OddsRefreshResponse,
)
from betedge.services.alerts import AlertRuleEngine
from betedge.services.analysis import analyze_betting_opportunities, build_recommendation, MATCH_RESULT
from betedge.services.bankroll import initialize_bankroll, settle_bet, simulate_bet
from betedge.services.clv import calculate_clv
from betedge.services.dispatcher import AlertDispatcher
from betedge.services.odds_monitor import OddsMonitor

load_dotenv()

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

STARTING_BANKROLL = float(os.getenv("STARTING_BANKROLL", "1000"))

# Application-owned engine instances
scheduler = BackgroundScheduler()
rule_engine = AlertRuleEngine()
dispatcher = AlertDispatcher.from_env()
odds_monitor = OddsMonitor(rule_engine, dispatcher, bankroll=STARTING_BANKROLL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting BetEdge %s", __version__)

    # Odds monitor: poll the feed every 5 minutes (configurable)
    interval = int(os.getenv("ODDS_MONITOR_INTERVAL_MIN", "5"))
    odds_monitor.schedule(scheduler, minutes=interval)
    scheduler.start()
    logger.info("Scheduler started: odds monitor every %dmin", interval)

    yield

    logger.info("Shutting down BetEdge")
    odds_monitor.stop()
    scheduler.shutdown(wait=False)
    dispatcher.shutdown()


app = FastAPI(
    title="BetEdge",
    description="Betting decision and alerting engine",
    version=__version__,
    lifespan=lifespan,
)

# CORS (adjust origins for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Service banner"""
    return {
        "app": "BetEdge",
        "version": __version__,
        "status": "operational",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    health = {"status": "healthy", "scheduler": "running", "alerts": "enabled"}

    if not scheduler.running:
        health["status"] = "degraded"
        health["scheduler"] = "stopped"
    if not dispatcher.enabled:
        health["alerts"] = "disabled"

    return health


# ============================================================================
# AUTHENTICATED ENDPOINTS - ANALYSIS
# ============================================================================

@app.post("/api/analysis")
async def run_analysis(
    payload: AnalysisRequest,
    dispatch_alerts: bool = Query(False, description="Run the alert rules on the result"),
    user: str = Depends(verify_api_key),
):
    """Full betting analysis for one match."""
    bankroll = payload.bankroll if payload.bankroll is not None else STARTING_BANKROLL
    analysis = analyze_betting_opportunities(
        payload.prediction.to_domain(), payload.odds.to_domain(), bankroll,
    )

    result = analysis.to_dict()
    if dispatch_alerts:
        matched = rule_engine.evaluate_analysis(analysis)
        result["alerts_dispatched"] = dispatcher.dispatch_all(matched)
    return result


@app.post("/api/odds/refresh", response_model=OddsRefreshResponse)
async def refresh_odds(
    payload: OddsRefreshRequest,
    user: str = Depends(verify_api_key),
):
    """Push one odds snapshot through the monitor (movement → analysis → alerts)."""
    result = odds_monitor.ingest(
        payload.match_id,
        payload.prediction.to_domain(),
        payload.odds.to_domain(),
        payload.bankroll,
    )
    return {
        "match_id": result.match_id,
        "movements": [m.to_dict() for m in result.movements],
        "alerts_matched": result.alerts_matched,
        "alerts_dispatched": result.alerts_dispatched,
        "top_recommendations": [r.to_dict() for r in result.analysis.top_recommendations],
    }


@app.post("/api/bankroll/simulate", response_model=BankrollSimulateResponse)
async def simulate_bankroll_bet(
    payload: BankrollSimulateRequest,
    dispatch_alerts: bool = Query(False),
    user: str = Depends(verify_api_key),
):
    """Settle or simulate one bet against a bankroll snapshot."""
    try:
        state = (
            payload.state.to_domain() if payload.state is not None
            else initialize_bankroll(payload.starting_bankroll)
        )
        if payload.won is not None:
            new_state = settle_bet(state, payload.stake, payload.odds, payload.won)
        else:
            rec = build_recommendation(
                MATCH_RESULT, payload.outcome, payload.outcome,
                payload.win_probability, payload.odds, 1.0, state.current_bankroll,
            )
            rng = random.Random(payload.seed) if payload.seed is not None else None
            new_state = simulate_bet(rec, payload.stake, state, rng)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    dispatched = 0
    if dispatch_alerts:
        dispatched = dispatcher.dispatch_all(rule_engine.evaluate_bankroll(new_state))

    return {
        "won": new_state.won_bets > state.won_bets,
        "state": new_state.to_dict(),
        "alerts_dispatched": dispatched,
    }


@app.post("/api/clv")
async def closing_line_value(
    payload: ClvRequest,
    dispatch_alerts: bool = Query(False),
    user: str = Depends(verify_api_key),
):
    """CLV for one bet against its closing price."""
    clv = calculate_clv(
        payload.bet_odds, payload.closing_odds, payload.market, payload.outcome,
        payload.opening_odds,
    )
    if clv is None:
        raise HTTPException(status_code=422, detail="Invalid odds for CLV")

    result = clv.to_dict()
    result["is_positive"] = clv.is_positive()
    if dispatch_alerts:
        result["alerts_dispatched"] = dispatcher.dispatch_all(rule_engine.evaluate_clv(clv))
    return result


# ============================================================================
# AUTHENTICATED ENDPOINTS - ALERTS
# ============================================================================

@app.get("/api/alerts", response_model=AlertListResponse)
async def list_alerts(
    unread_only: bool = Query(False),
    types: Optional[List[str]] = Query(None),
    include_dismissed: bool = Query(False),
    user: str = Depends(verify_api_key),
):
    alerts = dispatcher.get_alerts(unread_only, types, include_dismissed)
    return {
        "alerts": [a.to_dict() for a in alerts],
        "total": len(alerts),
        "unread": dispatcher.unread_count(),
    }


@app.post("/api/alerts/{alert_id}/read")
async def mark_alert_read(alert_id: str, user: str = Depends(verify_api_key)):
    if not dispatcher.mark_as_read(alert_id):
        raise HTTPException(status_code=404, detail="Alert not found")
    return {"message": "Alert marked as read", "alert_id": alert_id}


@app.post("/api/alerts/{alert_id}/dismiss")
async def dismiss_alert(alert_id: str, user: str = Depends(verify_api_key)):
    if not dispatcher.dismiss(alert_id):
        raise HTTPException(status_code=404, detail="Alert not found")
    return {"message": "Alert dismissed", "alert_id": alert_id}


@app.delete("/api/alerts")
async def clear_alerts(user: str = Depends(verify_admin_api_key)):
    dispatcher.clear_all()
    logger.info("Alert store cleared by %s", user)
    return {"message": "All alerts cleared"}


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================

@app.get("/admin/dispatcher/status")
async def get_dispatcher_status(user: str = Depends(verify_admin_api_key)):
    """Return alert dispatcher status: store size, rate window, channels."""
    return dispatcher.get_status()


@app.get("/admin/odds-monitor/status")
async def get_odds_monitor_status(user: str = Depends(verify_admin_api_key)):
    """Return odds monitor status: tracked matches, last poll time."""
    status = odds_monitor.get_status()
    status["scheduled"] = scheduler.get_job("odds_monitor") is not None
    return status


@app.get("/admin/scheduler/status")
async def get_scheduler_status(user: str = Depends(verify_admin_api_key)):
    """Get scheduler job status"""
    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
        })

    return {
        "running": scheduler.running,
        "jobs": jobs,
    }


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
