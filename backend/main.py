"""
FastAPI application for Pool Predict
Thin service layer over the hosted backend: events, quotes, bets,
leaderboards and streaks, plus the polling jobs behind live odds.
"""

from fastapi import FastAPI, Depends, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from apscheduler.triggers.interval import IntervalTrigger
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Literal, Optional
import logging

from backend.auth import ApiUser, verify_api_key, verify_admin_api_key
from backend.core.parimutuel import BetCalculationError, available_pool, display_odds
from backend.core.streak_rules import get_streak_warning_status
from backend.core.tiers import get_tier_info, points_to_next_tier
from backend.models import Bet, Event, User
from backend.scheduler import scheduler
from backend.services.analytics import event_analytics, user_summary
from backend.services.backend_client import BackendClient, BackendError, get_backend_client
from backend.services.betting import (
    BetRejected,
    EventNotFound,
    bet_result,
    filter_events,
    get_event,
    get_events,
    get_user_bets,
    matches_filters,
    place_bet,
    quote_bet,
)
from backend.services.leaderboard import (
    LEADERBOARD_SORT_FIELDS,
    get_leaderboard,
    get_monthly_leaderboard,
    get_user_activity,
    get_user_rank,
    get_weekly_leaderboard,
    refresh_leaderboard,
)
from backend.services.pool_monitor import POOL_MONITOR_INTERVAL_SEC, get_pool_monitor
from backend.services.streak_manager import (
    STREAK_CHECK_INTERVAL_MIN,
    check_and_update_streak_status,
    pop_streak_notice,
    unwatch_all,
    unwatch_user_streak,
    watch_user_streak,
)
from backend.schemas import (
    ActivityResponse,
    BetCreate,
    BetOptionResponse,
    BetQuoteRequest,
    BetQuoteResponse,
    BetResponse,
    EventListResponse,
    EventResponse,
    LeaderboardEntry,
    LeaderboardResponse,
    StreakStatusResponse,
    StreakWarningResponse,
    UserRankResponse,
)

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

APP_VERSION = "1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting Pool Predict API")

    scheduler.add_job(
        _pool_monitor_job,
        IntervalTrigger(seconds=POOL_MONITOR_INTERVAL_SEC),
        id="pool_monitor",
        name="Live Pool Monitor",
        replace_existing=True,
    )

    if not scheduler.running:
        scheduler.start()
    logger.info("Scheduler started: pool monitor every %ds", POOL_MONITOR_INTERVAL_SEC)

    yield

    logger.info("Shutting down Pool Predict API")
    unwatch_all()
    if scheduler.running:
        scheduler.shutdown()


app = FastAPI(
    title="Pool Predict",
    description="Pari-mutuel prediction events - service layer",
    version=APP_VERSION,
    lifespan=lifespan,
)

# CORS (adjust origins for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:8501"],  # Streamlit
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# SCHEDULED JOBS
# ============================================================================

def _pool_monitor_job():
    """Poll active pools for changes (every POOL_MONITOR_INTERVAL_SEC)."""
    try:
        result = get_pool_monitor().poll()
        if result.get("events_changed", 0) > 0:
            logger.info("Pool monitor: %d events changed", result["events_changed"])
    except Exception as exc:
        logger.error("Pool monitor job failed: %s", exc, exc_info=True)


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_client() -> BackendClient:
    return get_backend_client()


def get_current_user(
    caller: ApiUser = Depends(verify_api_key),
    client: BackendClient = Depends(get_client),
) -> User:
    """Load the caller's profile; admin rights come from the key or the profile."""
    row = client.select("users", filters=[("id", "eq", caller.user_id)], maybe_single=True)
    if row is None:
        raise HTTPException(status_code=404, detail="User profile not found")
    user = User.from_row(row)
    user.is_admin = user.is_admin or caller.is_admin
    return user


def _event_response(event: Event, is_admin: bool = False) -> EventResponse:
    return EventResponse(
        id=event.id,
        title=event.title,
        description=event.description,
        category=event.category,
        status=event.status,
        total_pool=event.total_pool,
        available_pool=available_pool(event.total_pool),
        participant_count=event.participant_count,
        options=[
            BetOptionResponse(
                id=o.id,
                label=o.label,
                odds=o.odds,
                total_bets=o.total_bets,
                bettors=o.bettors,
                display_odds=display_odds(event, o.id, is_admin),
            )
            for o in event.options
        ],
        winning_option=event.winning_option,
        expires_at=event.expires_at,
        created_at=event.created_at,
        resolved_at=event.resolved_at,
    )


def _load_event(event_id: str, client: BackendClient) -> Event:
    try:
        return get_event(event_id, client=client)
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Health check"""
    return {
        "app": "Pool Predict",
        "version": APP_VERSION,
        "status": "operational",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/health")
def health_check():
    """Health check endpoint"""
    health = {"status": "healthy", "backend": "connected", "scheduler": "running"}

    try:
        get_client().select("events", columns="id", limit=1)
    except (BackendError, ValueError) as e:
        logger.error("Health check backend error: %s", e)
        health["status"] = "degraded"
        health["backend"] = f"error: {e}"

    if not scheduler.running:
        health["status"] = "degraded"
        health["scheduler"] = "stopped"

    return health


# ============================================================================
# AUTHENTICATED ENDPOINTS - EVENTS
# ============================================================================

@app.get("/api/events", response_model=EventListResponse)
def list_events(
    status: Optional[Literal["active", "closed", "resolved"]] = None,
    tab: Optional[Literal["active", "completed"]] = None,
    category: str = "All",
    search: str = "",
    user: User = Depends(get_current_user),
    client: BackendClient = Depends(get_client),
):
    """
    List events filtered by category and title search.

    With ``tab`` the result follows the app's tabs: active events the caller
    bet on come first; completed events are limited to the caller's own
    unless they are an admin.
    """
    events = get_events(status=status, client=client)
    if tab is not None:
        bet_event_ids = {b.event_id for b in get_user_bets(user.id, limit=500, client=client)}
        active, completed = filter_events(
            events, search=search, category=category,
            user_bet_event_ids=bet_event_ids, is_admin=user.is_admin,
        )
        events = active if tab == "active" else completed
    else:
        events = [e for e in events if matches_filters(e, search, category)]

    return EventListResponse(
        total=len(events),
        events=[_event_response(e, user.is_admin) for e in events],
    )


@app.get("/api/events/{event_id}", response_model=EventResponse)
def read_event(
    event_id: str,
    user: User = Depends(get_current_user),
    client: BackendClient = Depends(get_client),
):
    return _event_response(_load_event(event_id, client), user.is_admin)


def _odds_payload(event: Event, is_admin: bool, source: str) -> dict:
    return {
        "event_id": event.id,
        "total_pool": event.total_pool,
        "available_pool": available_pool(event.total_pool),
        "odds": {o.id: display_odds(event, o.id, is_admin) for o in event.options},
        "source": source,
    }


@app.get("/api/events/{event_id}/odds")
def read_event_odds(
    event_id: str,
    user: User = Depends(get_current_user),
    client: BackendClient = Depends(get_client),
):
    """
    Live odds per option for a ₹100 reference stake (stored odds as fallback).

    Served from the pool monitor's last poll when it tracks the event, so
    dashboard refreshes do not each hit the backend.
    """
    snapshot = get_pool_monitor().get_snapshot(event_id)
    if snapshot is not None:
        payload = _odds_payload(snapshot.as_event(), user.is_admin, "monitor")
        payload["updated_at"] = snapshot.timestamp.isoformat()
        return payload
    payload = _odds_payload(_load_event(event_id, client), user.is_admin, "backend")
    payload["updated_at"] = datetime.now(timezone.utc).isoformat()
    return payload


@app.get("/api/events/{event_id}/odds/updates")
def wait_for_odds_update(
    event_id: str,
    timeout: float = Query(default=25, gt=0, le=60),
    user: User = Depends(get_current_user),
):
    """
    Long-poll: hold the request until the pool monitor sees the event's
    pool move, or ``timeout`` seconds pass (``changed: false``).
    """
    monitor = get_pool_monitor()
    options = monitor.wait_for_update(event_id, timeout)
    if options is None:
        return {"event_id": event_id, "changed": False, "odds": None}
    snapshot = monitor.get_snapshot(event_id)
    total_pool = snapshot.total_pool if snapshot is not None else 0.0
    event = Event(id=event_id, title="", total_pool=total_pool, options=options)
    return {**_odds_payload(event, user.is_admin, "monitor"), "changed": True}


@app.get("/api/events/{event_id}/analytics")
def read_event_analytics(
    event_id: str,
    caller: ApiUser = Depends(verify_api_key),
    client: BackendClient = Depends(get_client),
):
    return event_analytics(_load_event(event_id, client))


@app.post("/api/events/{event_id}/quote", response_model=BetQuoteResponse)
def quote(
    event_id: str,
    payload: BetQuoteRequest,
    user: User = Depends(get_current_user),
    client: BackendClient = Depends(get_client),
):
    """Price a bet against the live pool without placing it."""
    try:
        calc = quote_bet(event_id, payload.option_id, payload.amount, user, client=client)
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")
    except BetCalculationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return BetQuoteResponse.from_calculation(calc)


# ============================================================================
# AUTHENTICATED ENDPOINTS - BETS
# ============================================================================

def _bet_response(bet: Bet, event: Optional[Event] = None) -> BetResponse:
    response = BetResponse.model_validate(bet)
    response.result = bet_result(bet, event) if event is not None else bet.status
    return response


@app.post("/api/bets", response_model=BetResponse, status_code=201)
def create_bet(
    payload: BetCreate,
    user: User = Depends(get_current_user),
    client: BackendClient = Depends(get_client),
):
    try:
        bet = place_bet(user, payload.event_id, payload.option_id, payload.amount, client=client)
    except EventNotFound:
        raise HTTPException(status_code=404, detail="Event not found")
    except BetRejected as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _bet_response(bet)


@app.get("/api/bets", response_model=List[BetResponse])
def list_bets(
    limit: int = Query(default=100, ge=1, le=500),
    user: User = Depends(get_current_user),
    client: BackendClient = Depends(get_client),
):
    """The caller's bets, each with ``result`` settled against resolved events."""
    bets = get_user_bets(user.id, limit=limit, client=client)
    resolved = {e.id: e for e in get_events("resolved", client=client)} if bets else {}
    return [_bet_response(bet, resolved.get(bet.event_id)) for bet in bets]


# ============================================================================
# AUTHENTICATED ENDPOINTS - LEADERBOARD & PROFILE
# ============================================================================

@app.get("/api/leaderboard", response_model=LeaderboardResponse)
def read_leaderboard(
    period: Literal["all", "weekly", "monthly"] = "all",
    sort_by: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    caller: ApiUser = Depends(verify_api_key),
    client: BackendClient = Depends(get_client),
):
    """
    Leaderboard page; an unreachable backend yields an empty board.

    Period boards are always ordered by that period's earnings, so
    ``sort_by`` is only accepted for ``period=all``.
    """
    period_boards = {
        "weekly": ("weekly_earnings", get_weekly_leaderboard),
        "monthly": ("monthly_earnings", get_monthly_leaderboard),
    }
    if period in period_boards:
        column, loader = period_boards[period]
        if sort_by not in (None, column):
            raise HTTPException(
                status_code=422, detail=f"{period} leaderboard is sorted by {column}; omit sort_by"
            )
        sort_by = column
    else:
        sort_by = sort_by or "total_winnings"
        if sort_by not in LEADERBOARD_SORT_FIELDS:
            raise HTTPException(status_code=422, detail=f"sort_by must be one of {list(LEADERBOARD_SORT_FIELDS)}")

    try:
        if period in period_boards:
            entries = loader(limit, offset, client=client)
        else:
            entries = get_leaderboard(limit, offset, sort_by, client=client)
    except BackendError as exc:
        logger.error("Failed to load leaderboard: %s", exc)
        entries = []

    return LeaderboardResponse(
        period=period,
        sort_by=sort_by,
        entries=[LeaderboardEntry.model_validate(e, from_attributes=True) for e in entries],
    )


@app.get("/api/tiers")
async def read_tiers(caller: ApiUser = Depends(verify_api_key)):
    return get_tier_info()


@app.get("/api/me")
def read_profile(
    user: User = Depends(get_current_user),
    client: BackendClient = Depends(get_client),
):
    return user_summary(user, get_user_bets(user.id, limit=500, client=client))


@app.get("/api/me/rank", response_model=UserRankResponse)
def read_rank(
    user: User = Depends(get_current_user),
    client: BackendClient = Depends(get_client),
):
    rank = get_user_rank(user.id, client=client)
    return UserRankResponse(
        rank=rank.rank,
        total_users=rank.total_users,
        percentile=rank.percentile,
        tier=user.tier,
        points_to_next_tier=points_to_next_tier(user.total_points),
    )


@app.get("/api/me/streak", response_model=StreakStatusResponse)
def read_streak(
    caller: ApiUser = Depends(verify_api_key),
    client: BackendClient = Depends(get_client),
):
    """
    Check the 24-hour window, resetting the stored streak if it lapsed.

    A reset already made by the caller's background watch is reported here
    once, even though the stored streak is 0 by now.
    """
    notice = pop_streak_notice(caller.user_id)
    status = check_and_update_streak_status(caller.user_id, client=client)
    if notice and not status.streak_reset:
        status.streak_reset = True
        status.message = notice
    warning = get_streak_warning_status(status.hours_remaining)
    return StreakStatusResponse(
        streak_reset=status.streak_reset,
        current_streak=status.current_streak,
        hours_remaining=round(status.hours_remaining, 2),
        message=status.message,
        warning=StreakWarningResponse(
            show_warning=warning.show_warning,
            urgency_level=warning.urgency_level,
            message=warning.message,
        ),
    )


@app.post("/api/me/streak/watch")
def start_streak_watch(caller: ApiUser = Depends(verify_api_key)):
    """Re-check the caller's streak every STREAK_CHECK_INTERVAL_MIN while their session is open."""
    started = watch_user_streak(caller.user_id)
    return {"watching": True, "started": started, "interval_minutes": STREAK_CHECK_INTERVAL_MIN}


@app.delete("/api/me/streak/watch")
def stop_streak_watch(caller: ApiUser = Depends(verify_api_key)):
    return {"watching": False, "stopped": unwatch_user_streak(caller.user_id)}


@app.get("/api/me/activity", response_model=List[ActivityResponse])
def read_activity(
    limit: int = Query(default=50, ge=1, le=200),
    caller: ApiUser = Depends(verify_api_key),
    client: BackendClient = Depends(get_client),
):
    return get_user_activity(caller.user_id, limit=limit, client=client)


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================

@app.post("/admin/leaderboard/refresh")
def admin_refresh_leaderboard(
    caller: ApiUser = Depends(verify_admin_api_key),
    client: BackendClient = Depends(get_client),
):
    """Recompute rankings and refresh the leaderboard view (admin only)."""
    refresh_leaderboard(client=client)
    logger.info("Leaderboard refreshed by %s", caller.slot)
    return {"message": "Leaderboard refreshed"}


@app.get("/admin/scheduler/status")
async def get_scheduler_status(caller: ApiUser = Depends(verify_admin_api_key)):
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


@app.get("/admin/pool-monitor/status")
async def get_pool_monitor_status(caller: ApiUser = Depends(verify_admin_api_key)):
    """Return pool monitor status: tracked events, subscribers, last poll."""
    return get_pool_monitor().get_status()


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(BackendError)
async def backend_exception_handler(request, exc: BackendError):
    logger.error("Backend failure on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=502,
        content={"detail": "Backend unavailable", "operation": exc.operation},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
