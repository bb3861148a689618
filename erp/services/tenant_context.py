from __future__ import annotations

from dataclasses import dataclass

from erp.core.errors import InvalidRequest


@dataclass(frozen=True)
class TenantContext:
    """Identidad efectiva de una petición autenticada.

    Se construye una sola vez por request (ver ``erp.deps.get_tenant_context``)
    y se pasa explícitamente a los servicios.
    """

    user_id: int
    owner_id: int
    company_id: int | None = None

    @property
    def is_owner(self) -> bool:
        return self.user_id == self.owner_id

    def require_company_id(self) -> int:
        if self.company_id is None:
            raise InvalidRequest("Usuario sin empresa asignada")
        return self.company_id
