"""
Project creation, listing, completion and developer assignment.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import ValidationError

from database import create_document, get_collection, now, parse_object_id
from errors import AlreadyAssigned, InvalidInput, NotFound
from policy import Action, enforce
from schemas import Project, ProjectStatus, RoleName
from security import Principal

logger = logging.getLogger(__name__)


def serialize_project(project: dict, leads: Optional[Dict] = None) -> dict:
    lead_id = project.get("project_lead")
    lead = (leads or {}).get(lead_id) if lead_id else None
    return {
        "id": str(project["_id"]),
        "name": project["name"],
        "description": project["description"],
        "deadline": project["deadline"],
        "status": project["status"],
        "project_lead": (
            {"id": str(lead["_id"]), "username": lead["username"], "email": lead["email"]}
            if lead else (str(lead_id) if lead_id else None)
        ),
        "developers": [str(d) for d in project.get("developers", [])],
    }


def _with_leads(projects: List[dict]) -> List[dict]:
    lead_ids = {p["project_lead"] for p in projects if p.get("project_lead")}
    leads = {}
    if lead_ids:
        cursor = get_collection("user").find({"_id": {"$in": list(lead_ids)}}, {"username": 1, "email": 1})
        leads = {u["_id"]: u for u in cursor}
    return [serialize_project(p, leads) for p in projects]


def get_project(project_id: str) -> dict:
    oid = parse_object_id(project_id)
    project = get_collection("project").find_one({"_id": oid}) if oid else None
    if not project:
        raise NotFound("Project not found")
    return project


def create_project(principal: Principal, name: str, description: str, deadline: Optional[datetime],
                   project_lead_email: Optional[str] = None) -> dict:
    enforce(principal, Action.CREATE_PROJECT)
    if not name or not description or not deadline:
        raise InvalidInput("Please provide name, description, and deadline")

    lead = None
    if project_lead_email:
        lead = get_collection("user").find_one({"email": project_lead_email})
        role = get_collection("role").find_one({"_id": lead["role_id"]}) if lead else None
        if not role or role["name"] != RoleName.PROJECT_LEAD.value:
            raise InvalidInput("Project Lead not found or user is not a Project Lead")

    try:
        project = Project(
            name=name,
            description=description,
            deadline=deadline,
            project_lead=lead["_id"] if lead else None,
        )
    except ValidationError:
        raise InvalidInput("Invalid project fields")

    doc = create_document("project", project)
    logger.info("Project %r created by %s", name, principal.user_id)
    return serialize_project(doc, {lead["_id"]: lead} if lead else None)


def list_active_projects(principal: Principal) -> List[dict]:
    enforce(principal, Action.LIST_ACTIVE_PROJECTS)
    projects = list(get_collection("project").find({"status": ProjectStatus.ACTIVE.value}))
    return _with_leads(projects)


def list_assigned_projects(principal: Principal) -> List[dict]:
    enforce(principal, Action.LIST_ASSIGNED_PROJECTS)
    user_oid = parse_object_id(principal.user_id)
    if user_oid is None:
        return []
    projects = list(get_collection("project").find({
        "developers": user_oid,
        "status": ProjectStatus.ACTIVE.value,
    }))
    return _with_leads(projects)


def mark_project_complete(principal: Principal, project_id: str) -> dict:
    """Set status to Completed. Completing an already completed project is a no-op."""
    enforce(principal, Action.COMPLETE_PROJECT)
    project = get_project(project_id)
    if project["status"] != ProjectStatus.COMPLETED.value:
        get_collection("project").update_one(
            {"_id": project["_id"]},
            {"$set": {"status": ProjectStatus.COMPLETED.value, "updated_at": now()}},
        )
        project["status"] = ProjectStatus.COMPLETED.value
        logger.info("Project %s marked as completed", project_id)
    return _with_leads([project])[0]


def assign_developer(principal: Principal, project_id: str, developer_email: Optional[str]) -> dict:
    project = get_project(project_id)
    enforce(principal, Action.ASSIGN_DEVELOPER, project)

    if not developer_email:
        raise InvalidInput("Please provide the developer email")
    developer = get_collection("user").find_one({"email": developer_email})
    if not developer:
        raise NotFound("Developer not found")
    role = get_collection("role").find_one({"_id": developer.get("role_id")})
    if not role or role["name"] != RoleName.DEVELOPER.value:
        raise InvalidInput("User is not a Developer")

    projects = get_collection("project")
    result = projects.update_one(
        {"_id": project["_id"], "developers": {"$ne": developer["_id"]}},
        {"$push": {"developers": developer["_id"]}, "$set": {"updated_at": now()}},
    )
    if result.matched_count == 0:
        raise AlreadyAssigned()

    logger.info("Developer %s assigned to project %s", developer["_id"], project_id)
    return _with_leads([projects.find_one({"_id": project["_id"]})])[0]
