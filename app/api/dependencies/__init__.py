"""API-layer dependencies: request-scoped wiring (UoW, current user, admin key)."""

from app.api.dependencies.admin_key import require_admin_key
from app.api.dependencies.current_user import get_current_user
from app.api.dependencies.unit_of_work import UnitOfWork, get_uow

__all__ = ["UnitOfWork", "get_current_user", "get_uow", "require_admin_key"]
