"""
Domain error taxonomy

Services raise these; the API layer maps each family to an HTTP status.
"""

from typing import Optional


class MembershipError(Exception):
    """Base class for all domain errors"""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or self.__class__.__name__


# Validation

class InvalidInput(MembershipError):
    """Input rejected before any state change"""


# Policy

class PolicyViolation(MembershipError):
    """Operation refused by a policy; state is untouched"""


class PermissionDenied(PolicyViolation):
    """Identity lacks the permission required for this operation"""

    def __init__(self, permission: str):
        super().__init__(f"Permission required: {permission}")
        self.permission = permission


class SystemRoleProtected(PolicyViolation):
    """System roles cannot be modified, deleted or copied"""


# Not found

class NotFound(MembershipError):
    """Unknown id or token"""

    def __init__(self, entity: str, key: Optional[object] = None):
        message = f"{entity} not found" if key is None else f"{entity} not found: {key}"
        super().__init__(message)
        self.entity = entity
        self.key = key


class InvalidOrExpiredInvite(NotFound):
    """Invitation token is unknown, already accepted or expired"""

    def __init__(self):
        MembershipError.__init__(self, "Invalid or expired invitation.")
        self.entity = "Invite"
        self.key = None


# State conflicts

class StateConflict(MembershipError):
    """Operation conflicts with the current state"""


class ResendNotAllowed(StateConflict):
    """Invitation has reached its resend limit"""


class InviteNotCancellable(StateConflict):
    """Invitation is no longer pending"""


class RoleInUse(StateConflict):
    """Role still has users assigned"""


class AlreadyMember(StateConflict):
    """Email already belongs to a user of this tenant"""


class DuplicatePendingInvite(StateConflict):
    """Email already has a pending invitation"""
