from typing import Iterable, Optional
from .config import Config
from .errors import PermissionDeniedError
from .models.user import Identity, Role


def identity_for(user_id, email: Optional[str] = None,
                 admin_ids: Optional[Iterable[int]] = None) -> Identity:
    """Build the identity for a user, granting Admin to configured ids"""
    admin_ids = Config.ADMIN_IDS if admin_ids is None else admin_ids
    role = Role.ADMIN if str(user_id) in {str(a) for a in admin_ids} else Role.USER
    return Identity(user_id=str(user_id), email=email, role=role)


def require_admin(identity: Identity) -> str:
    """Gate an admin-only operation; returns the acting admin id"""
    if not identity.is_admin:
        raise PermissionDeniedError(identity.user_id)
    return identity.user_id
