from caseintake.db_models import ImportRecord, UserRole
from caseintake.errors import AuthorizationError
from caseintake.schemas import Identity


KNOWN_ROLES = frozenset(role.value for role in UserRole)


def can_import(identity: Identity) -> bool:
    return identity.role in KNOWN_ROLES


def can_view_import(identity: Identity, record: ImportRecord) -> bool:
    if identity.role == UserRole.ADMIN:
        return True
    return identity.role == UserRole.OPERATOR and record.created_by == identity.user_id


def import_owner_filter(identity: Identity) -> str | None:
    # Operators only see imports they created.
    if identity.role == UserRole.OPERATOR:
        return identity.user_id
    return None


def require(allowed: bool, message: str) -> None:
    if not allowed:
        raise AuthorizationError(message)
