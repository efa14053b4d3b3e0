"""
User roles enumeration.

Defines the role types for the gym membership system.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: System-level access, manages gyms, users and the token economy
        GYM: Owns and operates a single gym
        MEMBER: Holds a membership profile and token balance (default role)
    """
    ADMIN = "admin"
    GYM = "gym"
    MEMBER = "member"
