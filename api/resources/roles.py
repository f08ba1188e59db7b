"""
Role sets shared by resource policies.
"""

from __future__ import annotations

from auth.schemas import Role

ADMIN = frozenset({Role.ADMIN})
MANAGERS = frozenset({Role.ADMIN, Role.HIRING_MANAGER})
STAFF = frozenset({Role.ADMIN, Role.HIRING_MANAGER, Role.RECRUITER})
ANY = frozenset()
