"""
Authentication dependencies for FastAPI.
"""
from uuid import UUID
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session, selectinload
import jwt

from app.database.database import get_db
from app.modules.auth.models import User, UserCompany
from app.modules.auth.schemas import AuthContext, UserCompanyOut
from app.core.config import settings

# Security scheme
security = HTTPBearer()

STAFF_ROLES = ["owner", "admin", "member", "accountant", "viewer"]
WRITER_ROLES = ["owner", "admin", "member"]
BILLING_ROLES = ["owner", "admin", "member", "accountant"]
MANAGER_ROLES = ["owner", "admin"]

# Token types accepted on staff endpoints
STAFF_TOKEN_TYPES = ("access", "context")


class AuthDependencies:
    """Reusable authentication dependencies."""

    @staticmethod
    def _decode_staff_token(token: str) -> dict:
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
        try:
            payload = jwt.decode(token, settings.APP_SECRET_STRING, algorithms=[settings.ALGORITHM])
        except jwt.PyJWTError:
            raise credentials_exception

        if payload.get("sub") is None or payload.get("type", "access") not in STAFF_TOKEN_TYPES:
            raise credentials_exception
        return payload

    @staticmethod
    def _load_user(db: Session, user_id: str) -> User:
        try:
            user_uuid = UUID(str(user_id))
        except ValueError:
            user_uuid = None

        user = None
        if user_uuid is not None:
            user = db.query(User).options(
                selectinload(User.profile),
                selectinload(User.user_companies).selectinload(UserCompany.company)
            ).filter(User.id == user_uuid).first()

        if user is None or not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Could not validate credentials",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return user

    @staticmethod
    def get_current_user(
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: Session = Depends(get_db)
    ) -> User:
        """
        Current user from the JWT. Does not require a tenant.
        """
        payload = AuthDependencies._decode_staff_token(credentials.credentials)
        return AuthDependencies._load_user(db, payload["sub"])

    @staticmethod
    def get_auth_context(
        request: Request,
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: Session = Depends(get_db)
    ) -> AuthContext:
        """
        Full authentication context including the tenant.
        The tenant comes from a context token or the X-Company-ID header.
        """
        payload = AuthDependencies._decode_staff_token(credentials.credentials)
        user = AuthDependencies._load_user(db, payload["sub"])

        memberships = {str(uc.company_id): uc for uc in user.user_companies if uc.is_active}

        tenant_id = None
        user_role = None

        if payload.get("type") == "context":
            tenant_id = payload.get("tenant_id")
        else:
            tenant_id = request.headers.get("X-Company-ID") or getattr(request.state, 'tenant_id', None)

        if tenant_id:
            try:
                tenant_id = str(UUID(str(tenant_id)))
            except ValueError:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Invalid company id"
                )
            # Membership is re-checked so revoked access takes effect before token expiry
            membership = memberships.get(tenant_id)
            if membership is None:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="You do not have access to this company"
                )
            user_role = membership.role

        companies = [
            UserCompanyOut(
                id=uc.id,
                company_id=uc.company_id,
                role=uc.role,
                is_active=uc.is_active,
                joined_at=uc.joined_at,
                company_name=uc.company.name
            )
            for uc in memberships.values()
        ]

        return AuthContext(
            user_id=user.id,
            tenant_id=UUID(tenant_id) if tenant_id else None,
            user_role=user_role,
            companies=companies
        )

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependency requiring one of the given roles in the selected company.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if not auth_context.tenant_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="A company must be selected"
                )

            if auth_context.user_role not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"One of these roles is required: {', '.join(allowed_roles)}"
                )

            return auth_context
        return role_checker

    @staticmethod
    def require_owner_or_admin():
        return AuthDependencies.require_role(MANAGER_ROLES)

    @staticmethod
    def require_any_role():
        return AuthDependencies.require_role(STAFF_ROLES)


get_current_user = AuthDependencies.get_current_user
get_auth_context = AuthDependencies.get_auth_context
require_owner_or_admin = AuthDependencies.require_owner_or_admin
require_any_role = AuthDependencies.require_any_role
