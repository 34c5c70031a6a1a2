"""
Authorization rules for project and document actions.

`can_perform` is pure: it looks only at the caller's identity and the
project document passed in. Callers fetch the project first.
"""

import logging
from enum import Enum
from typing import NamedTuple, Optional

from errors import Forbidden
from schemas import RoleName
from security import Principal

logger = logging.getLogger(__name__)


class Action(str, Enum):
    CREATE_PROJECT = "create_project"
    COMPLETE_PROJECT = "complete_project"
    ASSIGN_DEVELOPER = "assign_developer"
    UPLOAD_DOCUMENT = "upload_document"
    LIST_DOCUMENTS = "list_documents"
    DOWNLOAD_DOCUMENT = "download_document"
    LIST_ASSIGNED_PROJECTS = "list_assigned_projects"
    LIST_ACTIVE_PROJECTS = "list_active_projects"


class Decision(NamedTuple):
    allowed: bool
    reason: str


ALLOW = Decision(True, "allowed")

READ_ACTIONS = frozenset({
    Action.LIST_DOCUMENTS,
    Action.DOWNLOAD_DOCUMENT,
    Action.LIST_ASSIGNED_PROJECTS,
    Action.LIST_ACTIVE_PROJECTS,
})


def is_admin(principal: Principal) -> bool:
    if principal.role is RoleName.ADMIN:
        return True
    if principal.role in (RoleName.PROJECT_LEAD, RoleName.DEVELOPER):
        return False
    raise ValueError(f"Unknown role: {principal.role!r}")


def is_project_lead(principal: Principal, project: Optional[dict]) -> bool:
    lead = (project or {}).get("project_lead")
    return lead is not None and str(lead) == principal.user_id


def can_perform(principal: Principal, action: Action, project: Optional[dict] = None) -> Decision:
    if action in READ_ACTIONS:
        return ALLOW

    if action in (Action.CREATE_PROJECT, Action.COMPLETE_PROJECT):
        return ALLOW if is_admin(principal) else Decision(False, "admin_required")

    if action is Action.ASSIGN_DEVELOPER:
        if not project or project.get("project_lead") is None:
            return Decision(False, "no_project_lead")
        if not is_project_lead(principal, project):
            return Decision(False, "not_project_lead")
        return ALLOW

    if action is Action.UPLOAD_DOCUMENT:
        if is_admin(principal) or is_project_lead(principal, project):
            return ALLOW
        return Decision(False, "not_admin_or_project_lead")

    raise ValueError(f"Unknown action: {action!r}")


def enforce(principal: Principal, action: Action, project: Optional[dict] = None) -> None:
    decision = can_perform(principal, action, project)
    if not decision.allowed:
        logger.warning("Denied %s for user %s: %s", action.value, principal.user_id, decision.reason)
        raise Forbidden(decision.reason)
