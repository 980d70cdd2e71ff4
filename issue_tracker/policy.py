"""
Role-based access control.

Every handler consults the tables below instead of hand-rolling role checks:

- PERMISSIONS maps (resource, action) to a Rule naming the roles that are
  always allowed and the roles allowed only when they own the resource.
- WRITABLE_FIELDS maps (resource, role) to the fields a role may change;
  anything else in a patch is silently dropped.
- ISSUE_VISIBILITY maps each role to the slice of issues it may read.

The functions here are pure: they take a user (or role) plus ownership
facts and return a decision. Database filtering for visibility lives in
services/issue_query.py and is driven by the same ISSUE_VISIBILITY table.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from .errors import Forbidden
from .models.user import User, UserRole

ALL_ROLES: FrozenSet[UserRole] = frozenset(UserRole)
STAFF_ROLES: FrozenSet[UserRole] = frozenset({UserRole.SUPERVISOR, UserRole.OFFICE, UserRole.ADMIN})
ADMIN_ONLY: FrozenSet[UserRole] = frozenset({UserRole.ADMIN})
CITIZEN: FrozenSet[UserRole] = frozenset({UserRole.USER})


class Resource(str, Enum):
    ISSUE = "issue"
    PHOTO = "photo"
    COMMENT = "comment"
    CATEGORY = "category"
    USER = "user"
    ASSIGNEE = "assignee"
    EXCEL = "excel"
    SETTING = "setting"
    AI_VISION = "ai_vision"
    STATS = "stats"


class Action(str, Enum):
    LIST = "list"
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    EXPORT = "export"
    IMPORT = "import"


class Visibility(str, Enum):
    OWN = "own"                    # issues the caller created
    ASSIGNED_OR_OPEN = "assigned"  # assigned to caller, unassigned, or created by caller
    ALL = "all"


@dataclass(frozen=True)
class Rule:
    roles: FrozenSet[UserRole] = frozenset()
    owner_roles: FrozenSet[UserRole] = frozenset()

    def allows(self, role: UserRole, is_owner: bool = False) -> bool:
        return role in self.roles or (is_owner and role in self.owner_roles)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    denied_fields: FrozenSet[str] = field(default_factory=frozenset)


PERMISSIONS: Dict[Tuple[Resource, Action], Rule] = {
    # Issues. READ/LIST are further narrowed by ISSUE_VISIBILITY.
    (Resource.ISSUE, Action.CREATE): Rule(roles=ALL_ROLES),
    (Resource.ISSUE, Action.LIST): Rule(roles=ALL_ROLES),
    (Resource.ISSUE, Action.READ): Rule(roles=ALL_ROLES),
    (Resource.ISSUE, Action.UPDATE): Rule(roles=STAFF_ROLES, owner_roles=CITIZEN),
    (Resource.ISSUE, Action.DELETE): Rule(roles=ADMIN_ONLY, owner_roles=CITIZEN),
    # Photos inherit issue visibility for CREATE/READ.
    (Resource.PHOTO, Action.CREATE): Rule(roles=ALL_ROLES),
    (Resource.PHOTO, Action.READ): Rule(roles=ALL_ROLES),
    (Resource.PHOTO, Action.UPDATE): Rule(roles=STAFF_ROLES, owner_roles=ALL_ROLES),
    (Resource.PHOTO, Action.DELETE): Rule(roles=ADMIN_ONLY, owner_roles=ALL_ROLES),
    # Comments inherit issue visibility.
    (Resource.COMMENT, Action.CREATE): Rule(roles=ALL_ROLES),
    (Resource.COMMENT, Action.LIST): Rule(roles=ALL_ROLES),
    # Reference data
    (Resource.CATEGORY, Action.LIST): Rule(roles=ALL_ROLES),
    (Resource.CATEGORY, Action.READ): Rule(roles=ALL_ROLES),
    (Resource.CATEGORY, Action.CREATE): Rule(roles=ADMIN_ONLY),
    (Resource.CATEGORY, Action.UPDATE): Rule(roles=ADMIN_ONLY),
    (Resource.CATEGORY, Action.DELETE): Rule(roles=ADMIN_ONLY),
    # Users
    (Resource.USER, Action.LIST): Rule(roles=STAFF_ROLES),
    (Resource.USER, Action.READ): Rule(roles=STAFF_ROLES, owner_roles=ALL_ROLES),
    (Resource.USER, Action.CREATE): Rule(roles=ADMIN_ONLY),
    (Resource.USER, Action.UPDATE): Rule(roles=ADMIN_ONLY),
    (Resource.USER, Action.DELETE): Rule(roles=ADMIN_ONLY),
    (Resource.ASSIGNEE, Action.LIST): Rule(roles=ALL_ROLES),
    # Bulk import / export
    (Resource.EXCEL, Action.EXPORT): Rule(roles=STAFF_ROLES),
    (Resource.EXCEL, Action.IMPORT): Rule(roles=ADMIN_ONLY),
    # Statistics are scoped by visibility, not denied
    (Resource.STATS, Action.READ): Rule(roles=ALL_ROLES),
    # Administration
    (Resource.SETTING, Action.LIST): Rule(roles=ADMIN_ONLY),
    (Resource.SETTING, Action.READ): Rule(roles=ADMIN_ONLY),
    (Resource.SETTING, Action.UPDATE): Rule(roles=ADMIN_ONLY),
    (Resource.SETTING, Action.DELETE): Rule(roles=ADMIN_ONLY),
    (Resource.AI_VISION, Action.LIST): Rule(roles=ADMIN_ONLY),
    (Resource.AI_VISION, Action.READ): Rule(roles=ADMIN_ONLY),
    (Resource.AI_VISION, Action.CREATE): Rule(roles=ADMIN_ONLY),
}

CITIZEN_ISSUE_FIELDS: FrozenSet[str] = frozenset({"title", "description", "address", "latitude", "longitude"})
STAFF_ISSUE_FIELDS: FrozenSet[str] = CITIZEN_ISSUE_FIELDS | frozenset(
    {"status", "priority", "assigned_to_id", "category_id", "subcategory_id", "is_emergency"}
)

WRITABLE_FIELDS: Dict[Tuple[Resource, UserRole], FrozenSet[str]] = {
    (Resource.ISSUE, UserRole.USER): CITIZEN_ISSUE_FIELDS,
    (Resource.ISSUE, UserRole.SUPERVISOR): STAFF_ISSUE_FIELDS,
    (Resource.ISSUE, UserRole.OFFICE): STAFF_ISSUE_FIELDS,
    (Resource.ISSUE, UserRole.ADMIN): STAFF_ISSUE_FIELDS,
    (Resource.COMMENT, UserRole.USER): frozenset({"text"}),
    (Resource.COMMENT, UserRole.SUPERVISOR): frozenset({"text", "is_internal"}),
    (Resource.COMMENT, UserRole.OFFICE): frozenset({"text", "is_internal"}),
    (Resource.COMMENT, UserRole.ADMIN): frozenset({"text", "is_internal"}),
}

ISSUE_VISIBILITY: Dict[UserRole, Visibility] = {
    UserRole.USER: Visibility.OWN,
    UserRole.SUPERVISOR: Visibility.ASSIGNED_OR_OPEN,
    UserRole.OFFICE: Visibility.ALL,
    UserRole.ADMIN: Visibility.ALL,
}


def decide(role: UserRole, resource: Resource, action: Action, is_owner: bool = False) -> Decision:
    rule = PERMISSIONS.get((resource, action))
    if rule is None:
        return Decision(allowed=False)
    return Decision(allowed=rule.allows(role, is_owner))


def authorize(
    user: User,
    resource: Resource,
    action: Action,
    is_owner: bool = False,
    message: Optional[str] = None,
) -> None:
    """Raise Forbidden unless the permission table allows the action."""
    if not decide(user.role, resource, action, is_owner).allowed:
        raise Forbidden(message)


def writable_fields(role: UserRole, resource: Resource) -> FrozenSet[str]:
    return WRITABLE_FIELDS.get((resource, role), frozenset())


def filter_changes(role: UserRole, resource: Resource, changes: Mapping[str, Any]) -> Tuple[Dict[str, Any], FrozenSet[str]]:
    """Split a patch into the fields the role may write and the dropped rest."""
    allowed = writable_fields(role, resource)
    kept = {key: value for key, value in changes.items() if key in allowed}
    return kept, frozenset(changes) - allowed


def visibility_for(role: UserRole) -> Visibility:
    return ISSUE_VISIBILITY[role]


def can_view_issue(user: User, created_by_id: int, assigned_to_id: Optional[int]) -> bool:
    scope = visibility_for(user.role)
    if scope is Visibility.ALL:
        return True
    if scope is Visibility.OWN:
        return created_by_id == user.id
    return assigned_to_id is None or assigned_to_id == user.id or created_by_id == user.id


def ensure_can_view_issue(user: User, issue) -> None:
    if not can_view_issue(user, issue.created_by_id, issue.assigned_to_id):
        raise Forbidden()


def authorize_issue_update(user: User, issue, changes: Mapping[str, Any]) -> Decision:
    """Decide an issue update and report which patch fields are dropped."""
    is_owner = issue.created_by_id == user.id
    if not decide(user.role, Resource.ISSUE, Action.UPDATE, is_owner).allowed:
        return Decision(allowed=False)
    _, dropped = filter_changes(user.role, Resource.ISSUE, changes)
    return Decision(allowed=True, denied_fields=dropped)


def owns_photo(user: User, photo) -> bool:
    """Uploader always owns a photo; a citizen also owns photos on issues they created."""
    if photo.uploaded_by_id == user.id:
        return True
    return user.role == UserRole.USER and photo.issue.created_by_id == user.id
