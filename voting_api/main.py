"""
FastAPI application for the student council voting API.

Serves the ballot, accepts one vote per signed-in student, and publishes
aggregate and live results (polled or streamed over server-sent events).
"""
import hmac
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from pydantic import ValidationError
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .auth import GoogleTokenVerifier, SessionIdentity, read_session_token, sign_in_with_google
from .ballot import cast_vote
from .config import Settings, settings
from .database import PostgresStore
from .eligibility import EligibilityGate
from .errors import (
    AdminAccessDenied,
    AlreadyVoted,
    CandidateNotFound,
    ElectionInProgress,
    Ineligible,
    StorageUnavailable,
    Unauthenticated,
    ValidationFailed,
    VoteError,
    VoterNotFound,
)
from .models import (
    AllowListReloadResponse,
    CandidatesResponse,
    ErrorResponse,
    GoogleSignInRequest,
    HealthResponse,
    LiveResponse,
    RefreshResponse,
    ResultsResponse,
    SeedResponse,
    SessionResponse,
    SessionTokenResponse,
    VoteRequest,
    VoteResponse,
)
from .records import utc_now
from .results import ResultAggregator
from .seed import seed_election
from .store import MemoryStore, VoteStore
from .stream import SSE_HEADERS, live_update_events

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Prometheus metrics
votes_cast = Counter(
    "votes_cast_total",
    "Total number of committed votes"
)
vote_rejections = Counter(
    "vote_rejections_total",
    "Total number of rejected vote attempts",
    ["reason"]
)
live_stream_connections = Gauge(
    "live_stream_connections",
    "Number of open live result streams"
)
request_duration = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"]
)

ERROR_STATUS = {
    Unauthenticated: status.HTTP_401_UNAUTHORIZED,
    Ineligible: status.HTTP_403_FORBIDDEN,
    AdminAccessDenied: status.HTTP_403_FORBIDDEN,
    AlreadyVoted: status.HTTP_400_BAD_REQUEST,
    ValidationFailed: status.HTTP_400_BAD_REQUEST,
    VoterNotFound: status.HTTP_404_NOT_FOUND,
    CandidateNotFound: status.HTTP_404_NOT_FOUND,
    ElectionInProgress: status.HTTP_409_CONFLICT,
    StorageUnavailable: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

LIVE_NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

# Rate limiter
limiter = Limiter(key_func=get_remote_address)

bearer_scheme = HTTPBearer(auto_error=False)


def build_store(config: Settings) -> VoteStore:
    """Instantiate the configured storage backend."""
    if config.STORAGE_BACKEND == "memory":
        logger.warning("Using in-memory storage; votes are lost on restart")
        return MemoryStore()
    return PostgresStore(config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    logger.info(f"Starting {settings.SERVICE_NAME} service...")

    if not settings.sessions_configured:
        logger.error(f"Failed to start {settings.SERVICE_NAME}: SESSION_SECRET is not set")
        raise RuntimeError("SESSION_SECRET must be set to a private value")

    try:
        store = build_store(settings)
        await store.initialize()
        app.state.store = store

        # Loaded once; replaced only through the admin reload route
        app.state.gate = EligibilityGate.from_file(settings.ELIGIBLE_EMAIL_DOMAIN, settings.ACCEPTED_EMAILS_PATH)
        app.state.verifier = GoogleTokenVerifier.from_settings(settings)

        logger.info(f"{settings.SERVICE_NAME} started successfully")

    except StorageUnavailable as e:
        logger.error(f"Failed to start {settings.SERVICE_NAME}: {e}")
        raise

    yield

    logger.info(f"Shutting down {settings.SERVICE_NAME} service...")
    await app.state.store.close()
    logger.info(f"{settings.SERVICE_NAME} shut down successfully")


# Create FastAPI app
app = FastAPI(
    title="Student Council Voting API",
    description="One vote per student, live and aggregate results",
    version=settings.API_VERSION,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.middleware("http")
async def prometheus_middleware(request: Request, call_next):
    """Middleware to track request duration."""
    with request_duration.labels(method=request.method, endpoint=request.url.path).time():
        response = await call_next(request)
    return response


@app.exception_handler(VoteError)
async def vote_error_handler(request: Request, exc: VoteError) -> JSONResponse:
    """Map domain errors onto status codes with a machine-readable reason."""
    status_code = next(
        (ERROR_STATUS[cls] for cls in type(exc).__mro__ if cls in ERROR_STATUS),
        status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")

    body = ErrorResponse(error=exc.reason, message=exc.message, details=exc.details)
    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    body = ErrorResponse(
        error=ValidationFailed.reason,
        message="Invalid request",
        details={"errors": [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]}
    )
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump(mode="json"))


# Dependencies

def get_store(request: Request) -> VoteStore:
    return request.app.state.store


def get_gate(request: Request) -> EligibilityGate:
    return request.app.state.gate


def get_verifier(request: Request) -> GoogleTokenVerifier:
    return request.app.state.verifier


def get_aggregator(store: VoteStore = Depends(get_store)) -> ResultAggregator:
    return ResultAggregator(store, recent_window_seconds=settings.LIVE_RECENT_WINDOW_SECONDS)


async def current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> SessionIdentity:
    """Resolve the signed-in voter from the bearer session token."""
    if credentials is None:
        raise Unauthenticated()
    return read_session_token(credentials.credentials, settings)


async def require_admin(x_admin_token: Optional[str] = Header(default=None)) -> None:
    """Administrative routes stay closed unless ADMIN_TOKEN is configured and matches."""
    if not settings.ADMIN_TOKEN or not x_admin_token:
        raise AdminAccessDenied()
    if not hmac.compare_digest(x_admin_token.encode(), settings.ADMIN_TOKEN.encode()):
        raise AdminAccessDenied()


async def read_vote_request(request: Request) -> VoteRequest:
    """Parse the vote body by hand so authentication is always checked first."""
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationFailed("Request body must be a JSON object")
    if not isinstance(payload, dict):
        raise ValidationFailed("Request body must be a JSON object")

    try:
        return VoteRequest.model_validate(payload)
    except ValidationError as e:
        raise ValidationFailed(
            "Candidate ID must be a positive integer",
            errors=[{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]
        )


# ═══════════════════════════════════════════════════════════════════
# BALLOT AND VOTING ENDPOINTS
# ═══════════════════════════════════════════════════════════════════

@app.get(
    "/api/candidates",
    response_model=CandidatesResponse,
    responses={500: {"model": ErrorResponse, "description": "Storage unavailable"}}
)
async def get_candidates(aggregator: ResultAggregator = Depends(get_aggregator)) -> CandidatesResponse:
    """Active voting groups with their candidates."""
    return await aggregator.get_ballot()


@app.post(
    "/api/vote",
    response_model=VoteResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing candidate or already voted"},
        401: {"model": ErrorResponse, "description": "Not signed in"},
        404: {"model": ErrorResponse, "description": "Voter or candidate not found"},
        429: {"description": "Rate limit exceeded"},
        500: {"model": ErrorResponse, "description": "Storage unavailable"}
    },
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": VoteRequest.model_json_schema(by_alias=True)}}
        }
    }
)
@limiter.limit(settings.VOTE_RATE_LIMIT)
async def submit_vote(
    request: Request,
    identity: SessionIdentity = Depends(current_identity),
    store: VoteStore = Depends(get_store)
) -> VoteResponse:
    """
    Cast the signed-in student's single vote.

    - **candidateId**: Candidate ID

    A repeated submission is rejected with `already_voted` and never counted.
    """
    ballot = await read_vote_request(request)

    try:
        await cast_vote(store, identity.email, ballot.candidate_id)
    except VoteError as e:
        vote_rejections.labels(reason=e.reason).inc()
        raise

    votes_cast.inc()
    return VoteResponse(message="Vote cast successfully")


# ═══════════════════════════════════════════════════════════════════
# RESULTS ENDPOINTS
# ═══════════════════════════════════════════════════════════════════

@app.get(
    "/api/results",
    response_model=ResultsResponse,
    responses={500: {"model": ErrorResponse, "description": "Storage unavailable"}}
)
async def get_results(aggregator: ResultAggregator = Depends(get_aggregator)) -> ResultsResponse:
    """Vote counts per active group, highest first."""
    return await aggregator.get_results()


@app.get(
    "/api/live",
    response_model=LiveResponse,
    responses={500: {"model": ErrorResponse, "description": "Storage unavailable"}}
)
async def get_live_results(
    response: Response,
    aggregator: ResultAggregator = Depends(get_aggregator)
) -> LiveResponse:
    """Results plus recent voting activity. Never cached."""
    response.headers.update(LIVE_NO_CACHE_HEADERS)
    return await aggregator.get_live_results()


@app.post("/api/live", response_model=RefreshResponse)
async def trigger_live_refresh() -> RefreshResponse:
    """Acknowledge a client refresh request; readers pick up new data on their next poll."""
    return RefreshResponse(message="Live data refresh triggered", timestamp=utc_now())


@app.get("/api/live/stream")
async def stream_live_results(
    request: Request,
    aggregator: ResultAggregator = Depends(get_aggregator)
) -> StreamingResponse:
    """Server-sent events: `connection` once, then `live-update` on a fixed interval."""

    async def load_payload() -> dict:
        live = await aggregator.get_live_results()
        return live.model_dump(mode="json", by_alias=True)

    async def events():
        live_stream_connections.inc()
        try:
            async for frame in live_update_events(
                load_payload, request.is_disconnected, settings.LIVE_STREAM_INTERVAL_SECONDS
            ):
                yield frame
        finally:
            live_stream_connections.dec()

    return StreamingResponse(events(), media_type="text/event-stream", headers=SSE_HEADERS)


# ═══════════════════════════════════════════════════════════════════
# AUTHENTICATION ENDPOINTS
# ═══════════════════════════════════════════════════════════════════

@app.post(
    "/api/auth/google",
    response_model=SessionTokenResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Google token rejected"},
        403: {"model": ErrorResponse, "description": "Account not eligible"}
    }
)
async def google_sign_in(
    body: GoogleSignInRequest,
    store: VoteStore = Depends(get_store),
    gate: EligibilityGate = Depends(get_gate),
    verifier: GoogleTokenVerifier = Depends(get_verifier)
) -> SessionTokenResponse:
    """Exchange a Google ID token for a session token."""
    voter, token, expires_at = await sign_in_with_google(body.id_token, verifier, gate, store, settings)
    return SessionTokenResponse(access_token=token, expires_at=expires_at, has_voted=voter.has_voted)


@app.get(
    "/api/auth/session",
    response_model=SessionResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def get_session(
    identity: SessionIdentity = Depends(current_identity),
    store: VoteStore = Depends(get_store)
) -> SessionResponse:
    """Current voter and whether they have voted."""
    voter = await store.get_voter(identity.email)
    if voter is None:
        raise VoterNotFound()
    return SessionResponse(email=voter.email, name=voter.name, has_voted=voter.has_voted)


# ═══════════════════════════════════════════════════════════════════
# ADMINISTRATION ENDPOINTS
# ═══════════════════════════════════════════════════════════════════

@app.post(
    "/api/admin/seed",
    response_model=SeedResponse,
    dependencies=[Depends(require_admin)],
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def seed_database(
    force: bool = Query(default=False, description="Reset even if votes were cast"),
    store: VoteStore = Depends(get_store)
) -> SeedResponse:
    """Destructively replace all groups and candidates with the default ballot."""
    counts = await seed_election(store, force=force)
    return SeedResponse(message="Database seeded successfully", **counts)


@app.post(
    "/api/admin/allow-list/reload",
    response_model=AllowListReloadResponse,
    dependencies=[Depends(require_admin)],
    responses={403: {"model": ErrorResponse}}
)
async def reload_allow_list(gate: EligibilityGate = Depends(get_gate)) -> AllowListReloadResponse:
    """Re-read the accepted email list from disk."""
    size = gate.reload(settings.ACCEPTED_EMAILS_PATH)
    logger.info(f"Allow-list reloaded: {size} emails")
    return AllowListReloadResponse(message="Allow-list reloaded", emails=size)


# ═══════════════════════════════════════════════════════════════════
# SERVICE ENDPOINTS
# ═══════════════════════════════════════════════════════════════════

@app.get(
    "/api/health",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse, "description": "Service unhealthy"}}
)
async def health_check(request: Request, store: VoteStore = Depends(get_store)) -> JSONResponse:
    """Check the storage backend and report the allow-list state."""
    services = {}

    healthy = await store.check_health()
    services["storage"] = "connected" if healthy else "disconnected"
    services["allow_list"] = "loaded" if request.app.state.gate.size else "empty"

    status_code = status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE
    response = HealthResponse(
        status="healthy" if healthy else "unhealthy",
        services=services,
        timestamp=utc_now()
    )
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json", by_alias=True))


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "service": settings.SERVICE_NAME,
        "version": settings.API_VERSION,
        "status": "running",
        "endpoints": {
            "candidates": "/api/candidates",
            "vote": "/api/vote",
            "results": "/api/results",
            "live": "/api/live",
            "live_stream": "/api/live/stream",
            "sign_in": "/api/auth/google",
            "health": "/api/health",
            "metrics": "/metrics"
        }
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "voting_api.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
