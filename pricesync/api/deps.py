"""FastAPI dependencies."""

from fastapi import Depends, Header, HTTPException, status

from pricesync.auth import RequestContext, can_configure, can_run_sync
from pricesync.db.store import RecordStore
from pricesync.sync.sandbox import SandboxService
from pricesync.worker.tasks import SyncTaskRunner, task_runner


def get_task_runner() -> SyncTaskRunner:
    return task_runner


def get_store(runner: SyncTaskRunner = Depends(get_task_runner)) -> RecordStore:
    return runner.store


sandbox_service = SandboxService(task_runner)


def get_sandbox_service() -> SandboxService:
    return sandbox_service


async def get_request_context(
    x_user_id: str = Header(..., alias="X-User-Id"),
    x_user_roles: str = Header("", alias="X-User-Roles"),
) -> RequestContext:
    """
    Resolve the caller from request headers.

    Raises:
        HTTPException: 401 if the user id is blank
    """
    if not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing user id")
    return RequestContext.from_values(x_user_id.strip(), x_user_roles.split(","))


async def require_admin(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
    if not can_configure(ctx):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return ctx


async def require_sync_role(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
    if not can_run_sync(ctx):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Admin or manager role required"
        )
    return ctx
