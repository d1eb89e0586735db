"""
Development backend for the API client: auth (register, login, refresh-token, logout, profile),
users and a sample projects resource under /api, all answering with the
{success, message?, data?, errors?} envelope.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from dev_backend import store
from dev_backend.auth import ApiException, CurrentUser, issue_access_token, require_self_or_admin
from dev_backend.config import CODE_INVALID_CREDENTIALS, CODE_INVALID_REFRESH_TOKEN

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Seed the optional account from env on startup."""
    store.seed_from_env()
    yield


app = FastAPI(title="Dev Backend", version="0.1.0", lifespan=lifespan)


@app.exception_handler(ApiException)
async def api_exception_handler(request: Request, exc: ApiException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "code": exc.code, "message": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [".".join(str(p) for p in e.get("loc", ())) + ": " + e.get("msg", "") for e in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": "Validation failed", "errors": errors},
    )


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "dev_backend"}


class RegisterBody(BaseModel):
    email: str
    password: str
    name: str | None = None


class LoginBody(BaseModel):
    email: str
    password: str


class RefreshBody(BaseModel):
    refreshToken: str


class ProfileUpdate(BaseModel):
    name: str | None = None


class ProjectBody(BaseModel):
    title: str
    description: str = ""


def _session(user: store.User) -> dict:
    return {
        "user": user.to_public(),
        "accessToken": issue_access_token(user),
        "refreshToken": store.issue_refresh_token(user.id),
    }


router = APIRouter(prefix="/api")


@router.post("/auth/register", status_code=status.HTTP_201_CREATED)
def register(body: RegisterBody):
    if "@" not in body.email or len(body.password) < 6:
        raise ApiException(status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", "Valid email and 6+ character password required")
    try:
        user = store.create_user(body.email, body.password, body.name or body.email.split("@")[0])
    except ValueError as e:
        raise ApiException(status.HTTP_409_CONFLICT, "EMAIL_TAKEN", str(e))
    logger.info("Registered user %s", user.id)
    return {"success": True, "message": "User registered successfully", "data": _session(user)}


@router.post("/auth/login")
def login(body: LoginBody):
    user = store.authenticate(body.email, body.password)
    if user is None:
        raise ApiException(status.HTTP_401_UNAUTHORIZED, CODE_INVALID_CREDENTIALS, "Invalid credentials")
    return {"success": True, "message": "Login successful", "data": _session(user)}


@router.post("/auth/refresh-token")
def refresh_token(body: RefreshBody):
    """Exchange a refresh token for a new access token. The refresh token is not rotated."""
    user = store.user_for_refresh_token(body.refreshToken)
    if user is None or not user.is_active:
        raise ApiException(status.HTTP_401_UNAUTHORIZED, CODE_INVALID_REFRESH_TOKEN, "Invalid refresh token")
    logger.info("refresh-token: new access token issued for sub=%s", user.id)
    return {"success": True, "data": {"accessToken": issue_access_token(user)}}


@router.post("/auth/logout")
def logout(user: CurrentUser):
    revoked = store.revoke_refresh_tokens(user.id)
    logger.info("Logout sub=%s revoked %d refresh token(s)", user.id, revoked)
    return {"success": True, "message": "Logged out"}


@router.get("/auth/profile")
def profile(user: CurrentUser):
    return {"success": True, "data": {"user": user.to_public()}}


@router.get("/users/{user_id}")
def get_user(user_id: str, user: CurrentUser):
    require_self_or_admin(user, user_id)
    target = store.get_user(user_id)
    if target is None:
        raise ApiException(status.HTTP_404_NOT_FOUND, "NOT_FOUND", "User not found")
    return {"success": True, "data": {"user": target.to_public()}}


@router.put("/users/{user_id}")
def update_user(user_id: str, body: ProfileUpdate, user: CurrentUser):
    require_self_or_admin(user, user_id)
    target = store.update_user(user_id, body.model_dump(exclude_none=True))
    if target is None:
        raise ApiException(status.HTTP_404_NOT_FOUND, "NOT_FOUND", "User not found")
    return {"success": True, "message": "Profile updated", "data": {"user": target.to_public()}}


@router.get("/projects")
def list_projects(user: CurrentUser):
    projects = store.list_projects(user.id)
    return {
        "success": True,
        "data": projects,
        "pagination": {"page": 1, "limit": len(projects), "total": len(projects), "pages": 1},
    }


@router.post("/projects", status_code=status.HTTP_201_CREATED)
def create_project(body: ProjectBody, user: CurrentUser):
    return {"success": True, "data": store.add_project(user.id, body.title, body.description)}


app.include_router(router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "dev_backend.main:app",
        host="127.0.0.1",
        port=5000,
        reload=True,
    )
