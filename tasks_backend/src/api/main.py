import logging
from contextlib import asynccontextmanager
from typing import List

from fastapi import Depends, FastAPI, Path, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.api.auth import (
    create_access_token,
    get_current_user_id,
    get_password_hash,
    verify_password,
)
from src.api.config import get_settings
from src.api.database import get_db, init_db
from src.api.errors import DuplicateEmail, InvalidCredentials, NotFound, install_error_handlers
from src.api.models import Task, User
from src.api.schemas import (
    AuthResponse,
    ErrorResponse,
    LoginRequest,
    MessageResponse,
    ProfileResponse,
    RegisterRequest,
    TaskResponse,
    TaskWriteRequest,
    UserResponse,
)

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.jwt_secret_is_generated:
        logger.warning("JWT_SECRET is not set; using a random per-process secret (tokens die on restart)")
    logger.info("Starting Task Tracker API: %s", settings.describe())
    init_db()
    yield


app = FastAPI(
    title="Task Tracker API",
    description="Task tracker backend API with JWT auth and CRUD for personal tasks.",
    version="1.0.0",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Health", "description": "Service health and status."},
        {"name": "Auth", "description": "User registration, login and profile."},
        {"name": "Tasks", "description": "CRUD operations for the caller's tasks."},
    ],
)

# CORS setup - allow frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.frontend_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)

_ERRORS = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


# PUBLIC_INTERFACE
@app.get("/", tags=["Health"], summary="Health Check")
def health_check():
    """
    Health check endpoint.

    Returns:
        JSON object indicating service status.
    """
    return {"message": "Backend is running!"}


# -------- Auth Routes --------

# PUBLIC_INTERFACE
@app.post(
    "/api/auth/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    tags=["Auth"],
    summary="Register a new user",
)
def register_user(payload: RegisterRequest, db: Session = Depends(get_db)):
    """
    Register a new user and log them in.

    Body:
        name: display name
        email: valid email address
        password: plaintext password, at least 6 characters

    Returns:
        AuthResponse with the public user fields and a bearer token.

    Raises:
        400 on invalid input or if the email is already registered.
    """
    existing = db.query(User.id).filter(User.email == payload.email).first()
    if existing:
        raise DuplicateEmail()

    user = User(name=payload.name, email=payload.email, password=get_password_hash(payload.password))
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Lost the race against a concurrent registration for the same email.
        db.rollback()
        logger.info("Duplicate registration rejected by unique constraint email=%s", payload.email)
        raise DuplicateEmail()
    db.refresh(user)

    logger.info("Registered user id=%s", user.id)
    return AuthResponse(user=UserResponse.model_validate(user), token=create_access_token(user.id))


# PUBLIC_INTERFACE
@app.post(
    "/api/auth/login",
    response_model=AuthResponse,
    responses=_ERRORS,
    tags=["Auth"],
    summary="Login and obtain JWT access token",
)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    """
    Exchange email and password for a bearer token.

    Raises:
        400 InvalidCredentials for an unknown email and for a wrong password
        alike, so the response does not reveal whether an account exists.
    """
    user = db.query(User).filter(User.email == payload.email).first()
    if not user or not verify_password(payload.password, user.password):
        logger.info("Failed login for email=%s", payload.email)
        raise InvalidCredentials()
    return AuthResponse(user=UserResponse.model_validate(user), token=create_access_token(user.id))


# PUBLIC_INTERFACE
@app.get(
    "/api/auth/profile",
    response_model=ProfileResponse,
    responses=_ERRORS,
    tags=["Auth"],
    summary="Get the authenticated user's profile",
)
def get_profile(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """
    Return the caller's public profile.

    Raises:
        404 if the token's user no longer exists (tokens are not revoked).
    """
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("User not found")
    return ProfileResponse(user=UserResponse.model_validate(user))


# -------- Tasks Routes --------

# PUBLIC_INTERFACE
@app.get(
    "/api/tasks",
    response_model=List[TaskResponse],
    responses=_ERRORS,
    tags=["Tasks"],
    summary="List the caller's tasks",
)
def list_tasks(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """
    List every task owned by the caller. Order is whatever the store returns.
    """
    return db.query(Task).filter(Task.user_id == user_id).all()


# PUBLIC_INTERFACE
@app.post(
    "/api/tasks",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    tags=["Tasks"],
    summary="Create a new task",
)
def create_task(
    payload: TaskWriteRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Create a new task for the authenticated user.

    Body:
        title: task title, must not be blank
        description: optional, defaults to ""

    Returns:
        The stored task, including its id and created_at.
    """
    task = Task(user_id=user_id, title=payload.title, description=payload.description or "")
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


# PUBLIC_INTERFACE
@app.put(
    "/api/tasks/{task_id}",
    response_model=TaskResponse,
    responses=_ERRORS,
    tags=["Tasks"],
    summary="Update a task by ID",
)
def update_task(
    payload: TaskWriteRequest,
    task_id: int = Path(...),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Replace a task's title and description. Only the owner can modify it.

    The ownership check and the write are one UPDATE statement; a task that
    belongs to someone else looks exactly like a missing one.
    """
    updated = (
        db.query(Task)
        .filter(Task.id == task_id, Task.user_id == user_id)
        .update(
            {Task.title: payload.title, Task.description: payload.description or ""},
            synchronize_session=False,
        )
    )
    if updated == 0:
        db.rollback()
        logger.info("Update matched no task id=%s user=%s", task_id, user_id)
        raise NotFound("Task not found")
    db.commit()

    task = db.query(Task).filter(Task.id == task_id, Task.user_id == user_id).first()
    if not task:
        # Deleted between our commit and the re-read.
        raise NotFound("Task not found")
    return task


# PUBLIC_INTERFACE
@app.delete(
    "/api/tasks/{task_id}",
    response_model=MessageResponse,
    responses=_ERRORS,
    tags=["Tasks"],
    summary="Delete a task by ID",
)
def delete_task(
    task_id: int = Path(...),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Delete a task. Only the owner can delete it.
    """
    deleted = (
        db.query(Task)
        .filter(Task.id == task_id, Task.user_id == user_id)
        .delete(synchronize_session=False)
    )
    if deleted == 0:
        db.rollback()
        logger.info("Delete matched no task id=%s user=%s", task_id, user_id)
        raise NotFound("Task not found")
    db.commit()
    return MessageResponse(message="Task deleted")


# PUBLIC_INTERFACE
def run() -> None:
    """Console entry point: configure logging and serve the app with uvicorn."""
    import uvicorn

    from src.api.logging_setup import setup_logging

    setup_logging(settings.log_level)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
