"""
Closed vocabularies for the segment pipeline.

Internal values are lowercase snake_case strings stored in the database;
display labels live in separate tables so wording can change without a
data migration.
"""

import enum


class Phase(str, enum.Enum):
    PRE = "pre"
    PRODUCTION = "production"
    POST = "post"
    PUBLISH = "publish"


class StepStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    AWAITING_APPROVALS = "awaiting_approvals"
    CHANGES_REQUESTED = "changes_requested"
    COMPLETE = "complete"
    REJECTED = "rejected"


class Decision(str, enum.Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class RoleKey(str, enum.Enum):
    SCRIPT_EDITOR = "script_editor"
    CONTENT_STRATEGIST = "content_strategist"
    DIRECTOR = "director"
    POST_SUPERVISOR = "post_supervisor"
    PRODUCER = "producer"
    PUBLISHER = "publisher"


class OrgRole(str, enum.Enum):
    EXECUTIVE = "executive"
    ASSOCIATE = "associate"
    MEMBER = "member"


class EligibilityBasis(str, enum.Enum):
    PERSON_SEAT = "person_seat"
    POOL_SEAT = "pool_seat"
    OVERRIDE = "override"


# Org roles allowed to act for any gate and to take privileged actions
LEADER_ORG_ROLES = frozenset({OrgRole.EXECUTIVE.value, OrgRole.ASSOCIATE.value})

# Explicit markers that yield to a terminal derived status on gate steps
OPEN_STATUSES = frozenset({StepStatus.IN_PROGRESS.value, StepStatus.AWAITING_APPROVALS.value})

TERMINAL_STATUSES = frozenset({StepStatus.COMPLETE.value, StepStatus.REJECTED.value})

VALID_ROLE_KEYS = frozenset(r.value for r in RoleKey)
VALID_PHASES = frozenset(p.value for p in Phase)
VALID_DECISIONS = frozenset(d.value for d in Decision)
VALID_ORG_ROLES = frozenset(o.value for o in OrgRole)

STATUS_LABELS = {
    StepStatus.NOT_STARTED.value: "Not Started",
    StepStatus.IN_PROGRESS.value: "In Progress",
    StepStatus.AWAITING_APPROVALS.value: "Awaiting Approvals",
    StepStatus.CHANGES_REQUESTED.value: "Changes Requested",
    StepStatus.COMPLETE.value: "Complete",
    StepStatus.REJECTED.value: "Rejected",
}

ROLE_LABELS = {
    RoleKey.SCRIPT_EDITOR.value: "Script Editor",
    RoleKey.CONTENT_STRATEGIST.value: "Content Strategist",
    RoleKey.DIRECTOR.value: "Director",
    RoleKey.POST_SUPERVISOR.value: "Post Supervisor",
    RoleKey.PRODUCER.value: "Producer",
    RoleKey.PUBLISHER.value: "Publisher",
}

PHASE_LABELS = {
    Phase.PRE.value: "Pre-Production",
    Phase.PRODUCTION.value: "Production",
    Phase.POST.value: "Post-Production",
    Phase.PUBLISH.value: "Publish",
}

ROLE_ALIASES = {
    "pitch_editor": RoleKey.SCRIPT_EDITOR.value,
    "final_reviewer": RoleKey.POST_SUPERVISOR.value,
}

# Free-text statuses written by older clients
_LEGACY_STATUS_LABELS = {
    "under review": StepStatus.AWAITING_APPROVALS.value,
    "in review": StepStatus.AWAITING_APPROVALS.value,
    "pending": StepStatus.NOT_STARTED.value,
    "done": StepStatus.COMPLETE.value,
}


def normalize_role_key(value) -> str | None:
    """Map a role key or legacy alias onto the closed role set.

    Returns None for anything outside the set.
    """
    if value is None:
        return None
    key = str(value.value if isinstance(value, enum.Enum) else value).strip().lower()
    key = ROLE_ALIASES.get(key, key)
    return key if key in VALID_ROLE_KEYS else None


def parse_status(value) -> str | None:
    """Parse an internal status value, a display label or a legacy label."""
    if value is None:
        return None
    raw = str(value.value if isinstance(value, enum.Enum) else value).strip()
    lowered = raw.lower()
    if lowered in STATUS_LABELS:
        return lowered
    for key, label in STATUS_LABELS.items():
        if label.lower() == lowered:
            return key
    snake = lowered.replace(" ", "_").replace("-", "_")
    if snake in STATUS_LABELS:
        return snake
    return _LEGACY_STATUS_LABELS.get(lowered)


def status_label(value: str | None) -> str:
    return STATUS_LABELS.get(value or StepStatus.NOT_STARTED.value, value or "")


def role_label(value: str) -> str:
    return ROLE_LABELS.get(value, value)
