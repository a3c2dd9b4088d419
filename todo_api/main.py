from typing import Optional
from datetime import datetime
import logging

from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session

from todo_api import __version__, config, identity, tasks
from todo_api.auth import get_current_user_id
from todo_api.database import get_session
from todo_api.errors import TodoApiError, ValidationError, errors_from_pydantic
from todo_api.schemas import (
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    TaskCreate,
    TaskListResponse,
    TaskRead,
    TaskUpdate,
    UserOut,
)

logger = logging.getLogger(__name__)

INTERNAL_ERROR_DETAIL = "An unexpected error occurred. Please try again later."


def _error_response(exc: TodoApiError) -> JSONResponse:
    content = {"detail": exc.detail}
    if isinstance(exc, ValidationError):
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(TodoApiError)
    async def handle_api_error(request: Request, exc: TodoApiError):
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        logger.info("Invalid request to %s %s", request.method, request.url.path)
        return _error_response(ValidationError(errors_from_pydantic(exc)))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error during %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": INTERNAL_ERROR_DETAIL},
        )


def create_app() -> FastAPI:
    """
    Creates and configures the FastAPI application.
    """
    app = FastAPI(
        title="Todo API",
        description="Registration, token authentication and per-user task management.",
        version=__version__,
    )

    # --- Middleware Configuration ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # --- API Endpoints ---
    @app.get("/")
    def read_root():
        return {"message": "Welcome to the Todo API!"}

    @app.post("/api/auth/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
    def register_user(user_in: RegisterRequest, db: Session = Depends(get_session)):
        return identity.register(db, user_in.email, user_in.password, user_in.confirm_password)

    @app.post("/api/auth/login", response_model=AuthResponse)
    def login_for_access_token(credentials: LoginRequest, db: Session = Depends(get_session)):
        return identity.login(db, credentials.email, credentials.password)

    @app.get("/api/users/me", response_model=UserOut)
    def read_users_me(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_session)):
        return identity.get_user(db, user_id)

    @app.delete("/api/users/me", status_code=status.HTTP_204_NO_CONTENT)
    def delete_users_me(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_session)):
        identity.delete_user(db, user_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/api/tasks", response_model=TaskListResponse)
    def list_tasks(
        is_completed: Optional[bool] = Query(default=None, alias="isCompleted"),
        priority: Optional[int] = Query(default=None),
        due_after: Optional[datetime] = Query(default=None, alias="dueAfter"),
        due_before: Optional[datetime] = Query(default=None, alias="dueBefore"),
        search: Optional[str] = Query(default=None),
        sort_by: str = Query(default=tasks.DEFAULT_SORT_BY, alias="sortBy"),
        sort_direction: str = Query(default=tasks.DEFAULT_SORT_DIRECTION, alias="sortDirection"),
        user_id: int = Depends(get_current_user_id),
        db: Session = Depends(get_session),
    ):
        query = {
            "is_completed": is_completed,
            "priority": priority,
            "due_after": due_after,
            "due_before": due_before,
            "search": search,
            "sort_by": sort_by,
            "sort_direction": sort_direction,
        }
        return tasks.list_tasks(db, user_id, query)

    @app.get("/api/tasks/{task_id}", response_model=TaskRead)
    def get_task(task_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_session)):
        return tasks.get_task(db, user_id, task_id)

    @app.post("/api/tasks", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
    def create_task(task_in: TaskCreate, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_session)):
        return tasks.create_task(
            db,
            user_id,
            title=task_in.title,
            description=task_in.description,
            due_date=task_in.due_date,
            priority=task_in.priority,
        )

    @app.put("/api/tasks/{task_id}", response_model=TaskRead)
    def update_task(
        task_id: int,
        task_update: TaskUpdate,
        user_id: int = Depends(get_current_user_id),
        db: Session = Depends(get_session),
    ):
        return tasks.update_task(db, user_id, task_id, task_update)

    @app.delete("/api/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_task(task_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_session)):
        tasks.delete_task(db, user_id, task_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.patch("/api/tasks/{task_id}/toggle", response_model=TaskRead)
    def toggle_task(task_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_session)):
        return tasks.toggle_completion(db, user_id, task_id)

    return app


# Create the FastAPI app instance
app = create_app()


def run() -> None:
    import uvicorn

    from todo_api.database import create_db_and_tables, get_engine
    from todo_api.logging_setup import setup_logging

    setup_logging(config.LOG_LEVEL)
    create_db_and_tables(get_engine())
    uvicorn.run(app, host="0.0.0.0", port=8000, log_config=None)


if __name__ == "__main__":
    run()
