"""Stored routine endpoints."""

from fastapi import APIRouter, Depends, Query, status

from dbadmin.dependencies import get_database_admin, require_confirmation
from dbadmin.models.entities import Routine, RoutineKind
from dbadmin.models.responses import CreateRoutineRequest, ErrorResponse, RoutineListResponse
from dbadmin.service import WorkspaceDatabaseAdmin

router = APIRouter(prefix="/workspaces/{workspace_id}/database", tags=["routines"])


@router.get(
    "/routines",
    response_model=RoutineListResponse,
    summary="List routines",
    description="List stored functions and procedures without their bodies.",
)
async def list_routines(
    workspace_id: str,
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> RoutineListResponse:
    routines = admin.list_routines(workspace_id)
    return RoutineListResponse(routines=routines, total=len(routines))


@router.get(
    "/routines/{kind}/{routine_name}",
    response_model=Routine,
    responses={404: {"model": ErrorResponse}},
    summary="Get routine",
    description="Get a routine including its definition text.",
)
async def get_routine(
    workspace_id: str,
    kind: RoutineKind,
    routine_name: str,
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> Routine:
    return admin.get_routine(workspace_id, routine_name, kind)


@router.post(
    "/routines",
    response_model=RoutineListResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    summary="Create routine",
    description="Execute a single CREATE statement for a routine. Other statements are rejected; engine errors are returned verbatim.",
)
async def create_routine(
    workspace_id: str,
    request: CreateRoutineRequest,
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> RoutineListResponse:
    admin.create_routine(workspace_id, request.definition)
    routines = admin.list_routines(workspace_id)
    return RoutineListResponse(routines=routines, total=len(routines))


@router.delete(
    "/routines/{kind}/{routine_name}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Drop routine",
    description="Drop a routine. Irreversible; requires `confirm=true`.",
)
async def drop_routine(
    workspace_id: str,
    kind: RoutineKind,
    routine_name: str,
    confirm: bool = Query(default=False, description="Confirm the drop"),
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> None:
    require_confirmation(confirm, f"Dropping {kind.value.lower()}", routine_name)
    admin.drop_routine(workspace_id, routine_name, kind)
