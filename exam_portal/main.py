"""FastAPI entrypoint for the exam portal grading core."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlmodel import Session, select
from starlette.middleware.sessions import SessionMiddleware

from exam_portal import notifications  # noqa: F401  (registers change listeners)
from exam_portal.auth_utils import hash_password
from exam_portal.config import LOG_LEVEL, SEED_ADMIN_EMAIL, SEED_ADMIN_PASSWORD, SESSION_SECRET
from exam_portal.database import create_db_and_tables, engine
from exam_portal.errors import AuthorizationError, ConsistencyError, NotFoundError, ValidationError
from exam_portal.models import User, UserRole
from exam_portal.routers import admin as admin_router_module
from exam_portal.routers import auth as auth_router_module
from exam_portal.routers import profile as profile_router_module
from exam_portal.routers import results as results_router_module
from exam_portal.routers import submissions as submissions_router_module
from exam_portal.services.identity_service import AccountCreated, on_account_created

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Exam Portal Grading Core")


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request: Request, exc: AuthorizationError):
    # Same body for every denial so it never hints at whether the target exists
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": "Not permitted"})


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    content = {"detail": str(exc)}
    if exc.field:
        content["field"] = exc.field
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=content)


@app.exception_handler(ConsistencyError)
async def consistency_error_handler(request: Request, exc: ConsistencyError):
    logger.error("Unabsorbed identity consistency failure: %s", exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "Internal error"})


# Session middleware for cookie-based authentication; the cookie also carries the role claim
app.add_middleware(SessionMiddleware, secret_key=SESSION_SECRET)

# Routers
app.include_router(auth_router_module.router, prefix="/auth", tags=["auth"])
app.include_router(profile_router_module.router, prefix="/profile", tags=["profile"])
app.include_router(submissions_router_module.router, tags=["submissions"])
app.include_router(results_router_module.router, prefix="/results", tags=["results"])
app.include_router(admin_router_module.router, prefix="/admin", tags=["admin"])


@app.on_event("startup")
def on_startup():
    """Initialize database schema and seed an admin account."""
    create_db_and_tables()
    with Session(engine) as session:
        existing_admin = session.exec(select(UserRole).where(UserRole.role == "admin")).first()
        if existing_admin:
            return
        admin_user = session.exec(select(User).where(User.email == SEED_ADMIN_EMAIL)).first()
        if not admin_user:
            admin_user = User(email=SEED_ADMIN_EMAIL, password_hash=hash_password(SEED_ADMIN_PASSWORD))
            session.add(admin_user)
            session.flush()
        on_account_created(
            session,
            AccountCreated(
                user_id=admin_user.id,
                email=SEED_ADMIN_EMAIL,
                requested_role="admin",
                full_name="System Admin",
            ),
        )
        logger.info("Seeded default admin user: %s", SEED_ADMIN_EMAIL)
