"""
Authentication for client portal routes.

Only `client` tokens are accepted here; staff tokens are rejected, and
client tokens are in turn rejected by the staff dependencies.
"""
from uuid import UUID
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session, selectinload

from app.database.database import get_db
from app.modules.auth.utils import verify_token
from app.modules.client_portal.models import ClientUser

security = HTTPBearer()


def get_current_client_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> ClientUser:
    payload = verify_token(credentials.credentials, expected_type="client")

    try:
        client_user_id = UUID(str(payload.get("sub")))
        client_id = UUID(str(payload.get("client_id")))
        tenant_id = UUID(str(payload.get("tenant_id")))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    client_user = db.query(ClientUser).options(selectinload(ClientUser.client)).filter(
        ClientUser.id == client_user_id,
        ClientUser.client_id == client_id,
        ClientUser.tenant_id == tenant_id
    ).first()

    if client_user is None or not client_user.is_active or not client_user.has_accepted:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if client_user.client is None or client_user.client.deleted_at is not None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Client account is no longer available"
        )
    return client_user
