"""Database role endpoints: scoped credentials with one-time secret disclosure."""

from fastapi import APIRouter, Depends, status

from dbadmin.dependencies import get_database_admin, require_confirmation
from dbadmin.models.entities import DatabaseRole
from dbadmin.models.responses import (
    CreateRoleRequest,
    ErrorResponse,
    RevokeRoleRequest,
    RoleCredentialsResponse,
    RoleListResponse,
)
from dbadmin.service import WorkspaceDatabaseAdmin

router = APIRouter(prefix="/workspaces/{workspace_id}/database", tags=["database-roles"])


@router.get(
    "/roles",
    response_model=RoleListResponse,
    summary="List database roles",
    description="All roles of the workspace, active and inactive, newest first. Secrets are never included.",
)
async def list_roles(
    workspace_id: str,
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> RoleListResponse:
    roles = admin.list_roles(workspace_id)
    return RoleListResponse(roles=roles, total=len(roles))


@router.post(
    "/roles",
    response_model=RoleCredentialsResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Create database role",
    description="""
    Create a role with a read, write or admin permission template.

    **Important:** The secret is only returned once. Store it securely.
    """,
)
async def create_role(
    workspace_id: str,
    request: CreateRoleRequest,
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> RoleCredentialsResponse:
    issued = admin.create_role(workspace_id, request.role_type, request.expires_at)
    return RoleCredentialsResponse(
        role=issued.role,
        db_username=issued.role.db_username,
        secret=issued.plaintext_secret,
    )


@router.post(
    "/roles/{role_id}/rotate",
    response_model=RoleCredentialsResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Rotate role secret",
    description="""
    Generate a new secret for an active role. The previous secret stops
    working immediately.

    **Important:** The new secret is only returned once.
    """,
)
async def rotate_role(
    workspace_id: str,
    role_id: str,
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> RoleCredentialsResponse:
    issued = admin.rotate_role(workspace_id, role_id)
    return RoleCredentialsResponse(
        role=issued.role,
        db_username=issued.role.db_username,
        secret=issued.plaintext_secret,
    )


@router.post(
    "/roles/{role_id}/revoke",
    response_model=DatabaseRole,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Revoke database role",
    description="Permanently revoke a role. Requires a reason and `confirm: true`.",
)
async def revoke_role(
    workspace_id: str,
    role_id: str,
    request: RevokeRoleRequest,
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> DatabaseRole:
    require_confirmation(request.confirm, "Revoking role", role_id)
    return admin.revoke_role(workspace_id, role_id, request.reason)
