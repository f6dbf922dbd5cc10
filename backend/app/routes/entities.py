"""
OrgTrack Backend — Hierarchy Route Handlers
============================================

What:  Create, list and read routes for the four hierarchy collections,
       mounted under the API base path:

    POST /{base}/ORGANIZATION      GET /{base}/ORGANIZATION[/{id}]
    POST /{base}/TEAMS             GET /{base}/TEAMS[/{id}]
    POST /{base}/PROJECT           GET /{base}/PROJECT[/{id}]
    POST /{base}/TASK              GET /{base}/TASK[/{id}]

How:   Handlers validate the (already sanitized) JSON body against the
       *Create schema and delegate to the matching EntityService.

Responses:
    create   201 {"<entity>": {...}, "message": "<Entity> created successfully"}
    list     200 {"<entities>": [...], "count": n}   newest first
    read     200 {"<entity>": {...}}
    failure  500 {"error": "Failed to create <entity>"} (via DatabaseError)

Parent references are stored as given; a team may name an organization
that does not exist.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.schemas.common import ErrorResponse, PersistenceErrorResponse
from app.schemas.hierarchy import (
    OrganizationCreate,
    OrganizationCreated,
    OrganizationDetail,
    OrganizationList,
    OrganizationRead,
    ProjectCreate,
    ProjectCreated,
    ProjectDetail,
    ProjectList,
    ProjectRead,
    TaskCreate,
    TaskCreated,
    TaskDetail,
    TaskList,
    TaskRead,
    TeamCreate,
    TeamCreated,
    TeamDetail,
    TeamList,
    TeamRead,
)
from app.services.hierarchy_service import (
    organization_service,
    project_service,
    task_service,
    team_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Hierarchy"])

CREATE_RESPONSES = {
    400: {"description": "Invalid request body", "model": ErrorResponse},
    413: {"description": "Body larger than 10kb", "model": ErrorResponse},
    429: {"description": "Rate limit exceeded", "model": ErrorResponse},
    500: {"description": "Persistence failure", "model": PersistenceErrorResponse},
}

READ_RESPONSES = {
    404: {"description": "No record with this id", "model": ErrorResponse},
    429: {"description": "Rate limit exceeded", "model": ErrorResponse},
    500: {"description": "Persistence failure", "model": PersistenceErrorResponse},
}

LIMIT = Query(default=20, ge=1, le=100, description="Maximum records returned (newest first)")


# ══════════════════════════════════════════════════════════════════════════
# Organization
# ══════════════════════════════════════════════════════════════════════════


@router.post(
    "/ORGANIZATION",
    status_code=201,
    response_model=OrganizationCreated,
    responses=CREATE_RESPONSES,
    summary="Create an organization",
)
async def create_organization(
    payload: OrganizationCreate,
    db: AsyncSession = Depends(get_db_session),
) -> OrganizationCreated:
    record = await organization_service.create(db, name=payload.name, details=payload.details)
    return OrganizationCreated(organization=OrganizationRead.model_validate(record))


@router.get(
    "/ORGANIZATION",
    response_model=OrganizationList,
    responses=READ_RESPONSES,
    summary="List organizations",
)
async def list_organizations(
    limit: int = LIMIT,
    db: AsyncSession = Depends(get_db_session),
) -> OrganizationList:
    records = await organization_service.list(db, limit=limit)
    return OrganizationList(
        organizations=[OrganizationRead.model_validate(r) for r in records],
        count=len(records),
    )


@router.get(
    "/ORGANIZATION/{organization_id}",
    response_model=OrganizationDetail,
    responses=READ_RESPONSES,
    summary="Get one organization",
)
async def get_organization(
    organization_id: UUID,
    db: AsyncSession = Depends(get_db_session),
) -> OrganizationDetail:
    record = await organization_service.get(db, organization_id)
    return OrganizationDetail(organization=OrganizationRead.model_validate(record))


# ══════════════════════════════════════════════════════════════════════════
# Team
# ══════════════════════════════════════════════════════════════════════════


@router.post(
    "/TEAMS",
    status_code=201,
    response_model=TeamCreated,
    responses=CREATE_RESPONSES,
    summary="Create a team inside an organization",
)
async def create_team(
    payload: TeamCreate,
    db: AsyncSession = Depends(get_db_session),
) -> TeamCreated:
    record = await team_service.create(
        db, organization_id=payload.organization_id, name=payload.name
    )
    return TeamCreated(team=TeamRead.model_validate(record))


@router.get(
    "/TEAMS",
    response_model=TeamList,
    responses=READ_RESPONSES,
    summary="List teams",
)
async def list_teams(
    limit: int = LIMIT,
    organization_id: Optional[UUID] = Query(default=None, alias="organizationId"),
    db: AsyncSession = Depends(get_db_session),
) -> TeamList:
    records = await team_service.list(db, limit=limit, parent_id=organization_id)
    return TeamList(teams=[TeamRead.model_validate(r) for r in records], count=len(records))


@router.get(
    "/TEAMS/{team_id}",
    response_model=TeamDetail,
    responses=READ_RESPONSES,
    summary="Get one team",
)
async def get_team(
    team_id: UUID,
    db: AsyncSession = Depends(get_db_session),
) -> TeamDetail:
    record = await team_service.get(db, team_id)
    return TeamDetail(team=TeamRead.model_validate(record))


# ══════════════════════════════════════════════════════════════════════════
# Project
# ══════════════════════════════════════════════════════════════════════════


@router.post(
    "/PROJECT",
    status_code=201,
    response_model=ProjectCreated,
    responses=CREATE_RESPONSES,
    summary="Create a project inside a team",
)
async def create_project(
    payload: ProjectCreate,
    db: AsyncSession = Depends(get_db_session),
) -> ProjectCreated:
    record = await project_service.create(db, team_id=payload.team_id, name=payload.name)
    return ProjectCreated(project=ProjectRead.model_validate(record))


@router.get(
    "/PROJECT",
    response_model=ProjectList,
    responses=READ_RESPONSES,
    summary="List projects",
)
async def list_projects(
    limit: int = LIMIT,
    team_id: Optional[UUID] = Query(default=None, alias="teamId"),
    db: AsyncSession = Depends(get_db_session),
) -> ProjectList:
    records = await project_service.list(db, limit=limit, parent_id=team_id)
    return ProjectList(
        projects=[ProjectRead.model_validate(r) for r in records],
        count=len(records),
    )


@router.get(
    "/PROJECT/{project_id}",
    response_model=ProjectDetail,
    responses=READ_RESPONSES,
    summary="Get one project",
)
async def get_project(
    project_id: UUID,
    db: AsyncSession = Depends(get_db_session),
) -> ProjectDetail:
    record = await project_service.get(db, project_id)
    return ProjectDetail(project=ProjectRead.model_validate(record))


# ══════════════════════════════════════════════════════════════════════════
# Task
# ══════════════════════════════════════════════════════════════════════════


@router.post(
    "/TASK",
    status_code=201,
    response_model=TaskCreated,
    responses=CREATE_RESPONSES,
    summary="Create a task inside a project",
)
async def create_task(
    payload: TaskCreate,
    db: AsyncSession = Depends(get_db_session),
) -> TaskCreated:
    record = await task_service.create(db, project_id=payload.project_id, details=payload.details)
    return TaskCreated(task=TaskRead.model_validate(record))


@router.get(
    "/TASK",
    response_model=TaskList,
    responses=READ_RESPONSES,
    summary="List tasks",
)
async def list_tasks(
    limit: int = LIMIT,
    project_id: Optional[UUID] = Query(default=None, alias="projectId"),
    db: AsyncSession = Depends(get_db_session),
) -> TaskList:
    records = await task_service.list(db, limit=limit, parent_id=project_id)
    return TaskList(tasks=[TaskRead.model_validate(r) for r in records], count=len(records))


@router.get(
    "/TASK/{task_id}",
    response_model=TaskDetail,
    responses=READ_RESPONSES,
    summary="Get one task",
)
async def get_task(
    task_id: UUID,
    db: AsyncSession = Depends(get_db_session),
) -> TaskDetail:
    record = await task_service.get(db, task_id)
    return TaskDetail(task=TaskRead.model_validate(record))
