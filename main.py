import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from passlib.context import CryptContext
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

import notifications
import password_reset
import tasks as task_service
import users as user_service
from config import Settings, load_settings
from database import build_engine, build_session_factory, init_db
from errors import AppError, InternalError, UnauthenticatedError
from logging_setup import setup_logging
from models import User
from schemas import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
    ResetPasswordRequest,
    TaskCreate,
    TaskOut,
    TaskUpdate,
    VerifyDateOfBirthRequest,
    dump,
    format_errors,
)
from security import build_pwd_context, create_access_token, decode_access_token

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


@dataclass
class AppContext:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    pwd_context: CryptContext


def ok(message: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return body


def fail(status_code: int, message: str, errors=None, headers=None) -> JSONResponse:
    body: Dict[str, Any] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return JSONResponse(status_code=status_code, content=body, headers=headers)


# Dependencies
def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_db(ctx: AppContext = Depends(get_context)):
    db = ctx.session_factory()
    try:
        yield db
    except SQLAlchemyError as exc:
        db.rollback()
        raise InternalError("Database error") from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    ctx: AppContext = Depends(get_context),
    db: Session = Depends(get_db),
) -> User:
    if not token:
        raise UnauthenticatedError("Not authorized, no token")

    user_id = decode_access_token(ctx.settings, token)
    user = user_service.get_user(db, user_id)
    if user is None:
        raise UnauthenticatedError("User no longer exists")
    return user


def _user_with_token(ctx: AppContext, user: User) -> Dict[str, Any]:
    return {
        "user": dump(user_service.serialize_public(user)),
        "token": create_access_token(ctx.settings, user.id),
    }


router = APIRouter(prefix="/api")


@router.get("/health")
def health():
    return ok("Backend is running!", {"timestamp": datetime.now(timezone.utc).isoformat()})


# Auth
@router.post("/auth/register", status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, ctx: AppContext = Depends(get_context), db: Session = Depends(get_db)):
    user = user_service.create_user(db, ctx.pwd_context, body)
    return ok("User registered successfully", _user_with_token(ctx, user))


@router.post("/auth/login")
def login(body: LoginRequest, ctx: AppContext = Depends(get_context), db: Session = Depends(get_db)):
    user = user_service.authenticate(db, ctx.pwd_context, body.email, body.password)
    return ok("Login successful", _user_with_token(ctx, user))


@router.post("/auth/token")
def token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    ctx: AppContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    user = user_service.authenticate(db, ctx.pwd_context, form_data.username, form_data.password)
    return {"access_token": create_access_token(ctx.settings, user.id), "token_type": "bearer"}


@router.get("/auth/me")
def me(user: User = Depends(get_current_user)):
    return ok("Current user", {"user": dump(user_service.serialize_public(user))})


# Password recovery
@router.post("/password/forgot")
def forgot_password(
    body: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    ctx: AppContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    settings = ctx.settings
    reset_token = password_reset.forgot(
        db, body.email, body.date_of_birth, expire_minutes=settings.reset_token_expire_minutes
    )
    if settings.email_enabled:
        background_tasks.add_task(notifications.password_reset_email, settings, body.email, reset_token)
        message = "A password reset link has been sent to your email"
    elif settings.expose_reset_token:
        message = "Use the reset token to choose a new password"
    else:
        message = "Password reset requested, but email delivery is not configured"

    data: Dict[str, Any] = {"message": message}
    if settings.expose_reset_token:
        data["resetToken"] = reset_token
    return ok("Password reset token generated successfully", data)


@router.post("/password/verify-dob")
def verify_dob(body: VerifyDateOfBirthRequest, db: Session = Depends(get_db)):
    is_match = password_reset.verify_date_of_birth(db, body.email, body.date_of_birth)
    message = "Date of birth verified successfully" if is_match else "Date of birth does not match"
    return ok(message, {"isMatch": is_match, "message": message})


@router.put("/password/reset")
def reset_password(body: ResetPasswordRequest, ctx: AppContext = Depends(get_context), db: Session = Depends(get_db)):
    password_reset.reset(db, ctx.pwd_context, body.token, body.new_password)
    return ok("Password reset successfully. You can now login with your new password.")


# Profile
@router.get("/users/profile")
def get_profile(user: User = Depends(get_current_user)):
    return ok("Profile fetched", {"user": dump(user_service.serialize_public(user))})


@router.put("/users/profile")
def update_profile(body: ProfileUpdate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    user = user_service.update_profile(db, user, body)
    return ok("Profile updated successfully", {"user": dump(user_service.serialize_public(user))})


@router.put("/users/change-password")
def change_password(
    body: ChangePasswordRequest,
    ctx: AppContext = Depends(get_context),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    user_service.change_password(db, ctx.pwd_context, user, body)
    return ok("Password has successfully been changed")


# Tasks
@router.get("/tasks")
def list_tasks(request: Request, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    query = task_service.parse_task_query(request.query_params)
    page = task_service.list_tasks(db, user, query)
    return ok("Tasks fetched", dump(page))


@router.get("/tasks/stats")
def task_stats(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return ok("Task stats fetched", {"stats": dump(task_service.task_stats(db, user))})


@router.get("/tasks/{task_id}")
def get_task(task_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    task = task_service.get_task(db, user, task_id)
    return ok("Task fetched", {"task": dump(TaskOut.model_validate(task))})


@router.post("/tasks", status_code=status.HTTP_201_CREATED)
def create_task(body: TaskCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    task = task_service.create_task(db, user, body)
    return ok("Task created successfully", {"task": dump(TaskOut.model_validate(task))})


@router.put("/tasks/{task_id}")
def update_task(
    task_id: int,
    body: TaskUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    task = task_service.update_task(db, user, task_id, body)
    return ok("Task updated successfully", {"task": dump(TaskOut.model_validate(task))})


@router.delete("/tasks/{task_id}")
def delete_task(task_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    task_service.delete_task(db, user, task_id)
    return ok("Task deleted successfully")


# Error handling
def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
            return fail(exc.status_code, "Something went wrong!")
        return fail(exc.status_code, exc.message, exc.errors, headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return fail(status.HTTP_400_BAD_REQUEST, "Validation failed", format_errors(exc.errors()))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = "Route not found" if exc.status_code == 404 else str(exc.detail)
        return fail(exc.status_code, message, headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return fail(status.HTTP_500_INTERNAL_SERVER_ERROR, "Something went wrong!")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    if settings is None:
        # explicit settings mean the caller (tests, an embedding server) owns logging
        settings = load_settings()
        setup_logging(settings.log_level)
    settings.check()

    engine = build_engine(settings.database_url)
    init_db(engine)

    app = FastAPI(title="Task Manager API", version="1.0.0")
    app.state.context = AppContext(
        settings=settings,
        engine=engine,
        session_factory=build_session_factory(engine),
        pwd_context=build_pwd_context(settings.bcrypt_rounds),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(router)

    logger.info("Task Manager API ready (%s)", settings.app_env)
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=8000)
