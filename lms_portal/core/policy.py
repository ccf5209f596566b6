"""
Role policy table.

``can_access`` is a pure function of (role, resource, action, ownership):
no lookups, no clock, no cache. Ownership facts are computed per request
by the route guard and passed in.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Union


class Role(str, Enum):
    """User roles in the system"""
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"

    def __str__(self):
        return self.value

    @classmethod
    def parse(cls, value: Union["Role", str, None]) -> Optional["Role"]:
        """Convert a string to a Role; unknown values give None."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class Resource(str, Enum):
    COURSE = "course"
    COURSE_ROSTER = "course_roster"
    COURSE_FILE = "course_file"
    COURSE_SESSION = "course_session"
    ASSIGNMENT = "assignment"
    QUIZ = "quiz"
    DIRECTORY = "directory"
    CONVERSATION = "conversation"


class Action(str, Enum):
    LIST = "list"
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    GRADE = "grade"
    SUBMIT = "submit"
    JOIN = "join"
    MANAGE = "manage"


class Rule(str, Enum):
    """What must hold, beyond the role, for a row of the table to allow."""
    ALWAYS = "always"
    OWNER = "owner"
    ENROLLED = "enrolled"
    ASSIGNED = "assigned"
    PARTICIPANT = "participant"


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class Ownership:
    """Ownership facts about one resource for one acting user."""
    owner: bool = False
    enrolled: bool = False
    assigned: bool = False
    participant: bool = False

    def satisfies(self, rule: Rule) -> bool:
        if rule is Rule.ALWAYS:
            return True
        if rule is Rule.OWNER:
            return self.owner
        if rule is Rule.ENROLLED:
            return self.enrolled
        if rule is Rule.ASSIGNED:
            return self.assigned
        if rule is Rule.PARTICIPANT:
            return self.participant
        return False


NO_OWNERSHIP = Ownership()

A, T, S = Role.ADMIN, Role.TEACHER, Role.STUDENT

POLICY: Dict[Tuple[Resource, Action], Dict[Role, Rule]] = {
    # Courses
    (Resource.COURSE, Action.LIST): {A: Rule.ALWAYS, T: Rule.ALWAYS, S: Rule.ALWAYS},
    (Resource.COURSE, Action.READ): {A: Rule.ALWAYS, T: Rule.OWNER, S: Rule.ENROLLED},
    (Resource.COURSE, Action.CREATE): {A: Rule.ALWAYS, T: Rule.ALWAYS},
    (Resource.COURSE, Action.UPDATE): {A: Rule.ALWAYS},
    (Resource.COURSE, Action.DELETE): {A: Rule.ALWAYS},
    (Resource.COURSE_ROSTER, Action.READ): {A: Rule.ALWAYS, T: Rule.OWNER},
    (Resource.COURSE_ROSTER, Action.UPDATE): {A: Rule.ALWAYS},
    (Resource.COURSE_FILE, Action.READ): {A: Rule.ALWAYS, T: Rule.OWNER},
    (Resource.COURSE_FILE, Action.CREATE): {A: Rule.ALWAYS, T: Rule.OWNER},
    (Resource.COURSE_FILE, Action.DELETE): {A: Rule.ALWAYS, T: Rule.OWNER},

    # Course sessions; CREATE is checked against the parent course
    (Resource.COURSE_SESSION, Action.LIST): {A: Rule.ALWAYS, T: Rule.ALWAYS, S: Rule.ALWAYS},
    (Resource.COURSE_SESSION, Action.READ): {A: Rule.ALWAYS, T: Rule.OWNER, S: Rule.ASSIGNED},
    (Resource.COURSE_SESSION, Action.CREATE): {A: Rule.ALWAYS, T: Rule.OWNER},
    (Resource.COURSE_SESSION, Action.UPDATE): {A: Rule.ALWAYS, T: Rule.OWNER},
    (Resource.COURSE_SESSION, Action.DELETE): {A: Rule.ALWAYS, T: Rule.OWNER},
    (Resource.COURSE_SESSION, Action.JOIN): {A: Rule.ALWAYS, T: Rule.OWNER, S: Rule.ASSIGNED},

    # Assignments
    (Resource.ASSIGNMENT, Action.LIST): {A: Rule.ALWAYS, T: Rule.ALWAYS, S: Rule.ALWAYS},
    (Resource.ASSIGNMENT, Action.READ): {A: Rule.ALWAYS, T: Rule.OWNER, S: Rule.ASSIGNED},
    (Resource.ASSIGNMENT, Action.CREATE): {A: Rule.ALWAYS, T: Rule.OWNER},
    (Resource.ASSIGNMENT, Action.GRADE): {A: Rule.ALWAYS, T: Rule.OWNER},
    (Resource.ASSIGNMENT, Action.SUBMIT): {S: Rule.ASSIGNED},

    # Quizzes
    (Resource.QUIZ, Action.LIST): {A: Rule.ALWAYS, T: Rule.ALWAYS, S: Rule.ALWAYS},
    (Resource.QUIZ, Action.READ): {A: Rule.ALWAYS, T: Rule.OWNER, S: Rule.ASSIGNED},
    (Resource.QUIZ, Action.CREATE): {A: Rule.ALWAYS, T: Rule.OWNER},
    (Resource.QUIZ, Action.GRADE): {A: Rule.ALWAYS, T: Rule.OWNER},
    (Resource.QUIZ, Action.SUBMIT): {S: Rule.ASSIGNED},

    # Student/teacher directory
    (Resource.DIRECTORY, Action.READ): {A: Rule.ALWAYS},
    (Resource.DIRECTORY, Action.MANAGE): {A: Rule.ALWAYS},

    # Messaging
    (Resource.CONVERSATION, Action.LIST): {A: Rule.ALWAYS, T: Rule.ALWAYS, S: Rule.ALWAYS},
    (Resource.CONVERSATION, Action.CREATE): {A: Rule.ALWAYS, T: Rule.ALWAYS, S: Rule.ALWAYS},
    (Resource.CONVERSATION, Action.READ): {A: Rule.PARTICIPANT, T: Rule.PARTICIPANT, S: Rule.PARTICIPANT},
    (Resource.CONVERSATION, Action.UPDATE): {A: Rule.PARTICIPANT, T: Rule.PARTICIPANT, S: Rule.PARTICIPANT},
}


def rule_for(role: Union[Role, str, None], resource: Resource, action: Action) -> Optional[Rule]:
    parsed = Role.parse(role)
    if parsed is None:
        return None
    return POLICY.get((resource, action), {}).get(parsed)


def can_access(role: Union[Role, str, None], resource: Resource, action: Action,
               ownership: Ownership = NO_OWNERSHIP) -> Decision:
    """
    Evaluate the policy table.

    Unknown roles and (resource, action) pairs missing from the table are
    denied. Ownership rules are allowed only when the matching fact holds.
    """
    rule = rule_for(role, resource, action)
    if rule is None:
        return Decision.DENY
    return Decision.ALLOW if ownership.satisfies(rule) else Decision.DENY


def requires_ownership(role: Union[Role, str, None], resource: Resource, action: Action) -> bool:
    """True when the table row for this role needs a secondary lookup."""
    rule = rule_for(role, resource, action)
    return rule is not None and rule is not Rule.ALWAYS
