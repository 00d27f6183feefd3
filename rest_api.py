import logging
import os
import time
from fastapi import (
    Body,
    Depends,
    FastAPI,
    Header,
    HTTPException,
    Request,
    Response,
)

from db import LocalStore, ProfileRepository, TokenRepository
from errors import PersistenceError, RecordNotFound

logger = logging.getLogger(__name__)


class RateLimiter:
    """Simple in-memory rate limiter."""

    def __init__(self, limit: int = 60, window: int = 60) -> None:
        self.limit = limit
        self.window = window
        self.requests: dict[str, list[float]] = {}

    async def __call__(self, request: Request, call_next):
        ip = request.client.host if request.client else "anon"
        now = time.time()
        history = [t for t in self.requests.get(ip, []) if now - t < self.window]
        if len(history) >= self.limit:
            return Response("rate limit exceeded", status_code=429)
        history.append(now)
        self.requests[ip] = history
        return await call_next(request)


def parse_filters(request: Request) -> dict:
    """Turn ``column=eq.value`` query parameters into an equality filter."""
    filters = {}
    for key, raw in request.query_params.items():
        if not raw.startswith("eq."):
            raise HTTPException(status_code=400, detail=f"unsupported filter: {key}")
        filters[key] = raw[3:]
    return filters


class GoalAPI:
    """Local stand-in for the hosted backend used by the goal and training flows.

    Development only: the record endpoints check the ``apikey`` header but do
    not scope ``goals`` or ``profiles`` rows to the Bearer token's user, so any
    caller may write any user's records.
    """

    def __init__(
        self,
        db_path: str = "goalquest.db",
        *,
        api_key: str = "",
        rate_limit: int | None = None,
        rate_window: int = 60,
    ) -> None:
        self.db_path = db_path
        self.api_key = api_key
        self.store = LocalStore(db_path)
        self.profiles = ProfileRepository(db_path)
        self.tokens = TokenRepository(db_path)
        self.app = FastAPI(
            title="GoalQuest API",
            description="Record storage and sessions for goals and training profiles",
        )
        if rate_limit is not None:
            limiter = RateLimiter(limit=rate_limit, window=rate_window)
            self.app.middleware("http")(limiter)
        self._setup_routes()

    def _check_key(self, apikey: str | None = Header(None)) -> None:
        if self.api_key and apikey != self.api_key:
            raise HTTPException(status_code=401, detail="invalid api key")

    def _user_from_header(self, authorization: str | None) -> str:
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="missing token")
        user_id = self.tokens.user_for(authorization[len("Bearer "):])
        if user_id is None:
            raise HTTPException(status_code=401, detail="invalid token")
        return user_id

    def _setup_routes(self) -> None:
        guard = [Depends(self._check_key)]

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            """Return API and database connection status."""
            try:
                self.profiles.fetch_all("SELECT 1;")
                return {"status": "ok"}
            except Exception as e:  # pragma: no cover - connectivity failure
                raise HTTPException(status_code=500, detail=str(e))

        @self.app.post("/auth/v1/signup", dependencies=guard)
        def signup(username: str):
            if not username.strip():
                raise HTTPException(status_code=400, detail="username required")
            user_id = self.profiles.create(username.strip())
            token = self.tokens.issue(user_id)
            return {"user_id": user_id, "token": token}

        @self.app.get("/auth/v1/user", dependencies=guard)
        def current_user(authorization: str | None = Header(None)):
            return {"id": self._user_from_header(authorization)}

        @self.app.post("/rest/v1/{table}", status_code=201, dependencies=guard)
        async def insert_record(table: str, record: dict = Body(...)):
            try:
                saved = await self.store.insert_one(table, record)
            except PersistenceError as e:
                logger.warning("Rejected insert: %s", e)
                raise HTTPException(status_code=400, detail=str(e))
            return [saved]

        @self.app.patch("/rest/v1/{table}", dependencies=guard)
        async def update_record(
            table: str, request: Request, patch: dict = Body(...)
        ):
            filters = parse_filters(request)
            if not filters:
                raise HTTPException(status_code=400, detail="filter required")
            try:
                await self.store.update_one(table, filters, patch)
            except RecordNotFound:
                raise HTTPException(status_code=404, detail="not found")
            except PersistenceError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"status": "updated"}

        @self.app.get("/rest/v1/{table}", dependencies=guard)
        async def select_records(table: str, request: Request):
            filters = parse_filters(request)
            try:
                return await self.store.fetch_many(table, filters)
            except PersistenceError as e:
                raise HTTPException(status_code=400, detail=str(e))


api = GoalAPI(
    os.environ.get("DB_PATH", "goalquest.db"),
    api_key=os.environ.get("BACKEND_KEY", ""),
)
app = api.app

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app)
