"""
OrgTrack Backend — Hierarchy Request/Response Schemas
======================================================

What:  The API contract for Organization, Team, Project and Task.
How:   *Create models validate POST bodies; *Read models serialize ORM rows;
       *Created / *List models are the full response envelopes.

Request bodies accept exactly the documented fields; anything else is
ignored. Parent references are UUIDs and are NOT checked for existence.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from app.schemas.common import APIModel


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class OrganizationCreate(APIModel):
    name: str = Field(min_length=1, max_length=255)
    details: Optional[str] = Field(default=None)


class TeamCreate(APIModel):
    organization_id: uuid.UUID
    name: str = Field(min_length=1, max_length=255)


class ProjectCreate(APIModel):
    team_id: uuid.UUID
    name: str = Field(min_length=1, max_length=255)


class TaskCreate(APIModel):
    project_id: uuid.UUID
    details: str = Field(min_length=1)


# ══════════════════════════════════════════════════════════════════════════
# Record Models
# ══════════════════════════════════════════════════════════════════════════


class OrganizationRead(APIModel):
    id: uuid.UUID
    name: str
    details: Optional[str] = None
    created_at: datetime


class TeamRead(APIModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    name: str
    created_at: datetime


class ProjectRead(APIModel):
    id: uuid.UUID
    team_id: uuid.UUID
    name: str
    created_at: datetime


class TaskRead(APIModel):
    id: uuid.UUID
    project_id: uuid.UUID
    details: str
    created_at: datetime


# ══════════════════════════════════════════════════════════════════════════
# Response Envelopes
# ══════════════════════════════════════════════════════════════════════════
# Create responses:  {"<entity>": {...}, "message": "<Entity> created successfully"}
# Detail responses:  {"<entity>": {...}}
# List responses:    {"<entities>": [...], "count": n}


class OrganizationCreated(APIModel):
    organization: OrganizationRead
    message: str = "Organization created successfully"


class TeamCreated(APIModel):
    team: TeamRead
    message: str = "Team created successfully"


class ProjectCreated(APIModel):
    project: ProjectRead
    message: str = "Project created successfully"


class TaskCreated(APIModel):
    task: TaskRead
    message: str = "Task created successfully"


class OrganizationDetail(APIModel):
    organization: OrganizationRead


class TeamDetail(APIModel):
    team: TeamRead


class ProjectDetail(APIModel):
    project: ProjectRead


class TaskDetail(APIModel):
    task: TaskRead


class OrganizationList(APIModel):
    organizations: List[OrganizationRead]
    count: int


class TeamList(APIModel):
    teams: List[TeamRead]
    count: int


class ProjectList(APIModel):
    projects: List[ProjectRead]
    count: int


class TaskList(APIModel):
    tasks: List[TaskRead]
    count: int
