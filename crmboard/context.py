"""Tenant context passed explicitly into every accessor call.

Resolved once at the request boundary (see dependencies.py) from the
bearer token: the authenticated user, their company (tenant) and admin
flag. Nothing in the services reads ambient session state.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TenantContext:
    empresa_id: str
    user_id: str
    access_token: str = ""
    is_admin: bool = False

    def scoped(self, row: dict) -> dict:
        """Return a copy of `row` stamped with this tenant's id."""
        return {**row, "empresa_id": self.empresa_id}
