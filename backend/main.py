"""
Backend API behind the gateway.
/public is open; /profile, /user and /admin are enforced at the gateway and
role-checked here from the forwarded claims. Port 3000.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from backend.auth import AuthenticatedClaims, AuthorizationFailure, RequireAdmin, RequireIdentity, RequireUser
from backend.database import connect, count_items, get_items_collection

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the document store at startup, close it at shutdown. Both block, so they run off the event loop."""
    client, db = await run_in_threadpool(connect)
    app.state.db = db
    try:
        yield
    finally:
        await run_in_threadpool(client.close)


app = FastAPI(title="Backend", version="0.1.0", lifespan=lifespan)


@app.exception_handler(AuthorizationFailure)
async def authorization_failure_handler(request: Request, exc: AuthorizationFailure):
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=exc.body(), headers=headers)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "backend"}


@app.get("/public")
def public():
    """Public endpoint; no token expected."""
    return {"message": "This is a public endpoint."}


@app.get("/profile")
def profile(claims: AuthenticatedClaims = RequireIdentity):
    """Any forwarded identity. Echoes who the caller is."""
    username = claims.raw.get("preferred_username") or claims.subject or "unknown"
    return {
        "message": f"Hello, {username}",
        "roles": sorted(claims.roles),
        "subject": claims.subject,
        "issuedAt": int(claims.issued_at.timestamp()) if claims.issued_at else None,
    }


@app.get("/user")
def user(claims: AuthenticatedClaims = RequireUser):
    """Requires role user."""
    return {"message": "Hello, user-level endpoint!"}


@app.get("/admin")
def admin(
    claims: AuthenticatedClaims = RequireAdmin,
    items: Collection = Depends(get_items_collection),
):
    """Requires role admin. Counts documents in the items collection."""
    try:
        count = count_items(items)
    except PyMongoError:
        logger.exception("Counting items failed")
        return JSONResponse(status_code=500, content={"error": "Database error"})
    return {"message": "Hello, admin-level endpoint!", "itemCountDB": count}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "backend.main:app",
        host="0.0.0.0",
        port=3000,
    )
