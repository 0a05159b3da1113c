import logging
from datetime import datetime, timezone
from uuid import UUID
from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload

from app.modules.auth.models import User, Profile, UserCompany
from app.modules.auth.schemas import (
    UserCreate, UserOut, TokenResponse, ContextTokenResponse,
    UserCompanyOut, ProfileUpdate, PasswordChange
)
from app.modules.auth.utils import (
    hash_password, verify_password, create_access_token,
    create_context_token, create_refresh_token, verify_token
)
from app.core.config import settings

logger = logging.getLogger(__name__)


class AuthService:
    """
    Multi-tenant authentication service.
    """

    def __init__(self, db: Session):
        self.db = db

    def _get_user(self, user_id: UUID) -> User:
        user = self.db.query(User).options(
            selectinload(User.profile),
            selectinload(User.user_companies).selectinload(UserCompany.company)
        ).filter(User.id == user_id).first()
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found"
            )
        return user

    def _companies_for(self, user: User) -> list[UserCompanyOut]:
        return [
            UserCompanyOut(
                id=uc.id,
                company_id=uc.company_id,
                role=uc.role,
                is_active=uc.is_active,
                joined_at=uc.joined_at,
                company_name=uc.company.name
            )
            for uc in user.user_companies if uc.is_active
        ]

    def create_user(self, user_data: UserCreate) -> User:
        """Register a new user with profile. The company is created in a later onboarding step."""
        email = user_data.email.lower()
        existing_user = self.db.query(User).filter(User.email == email).first()
        if existing_user:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="This email is already registered"
            )

        try:
            profile = Profile(
                full_name=user_data.profile.full_name,
                phone_number=user_data.profile.phone_number
            )
            self.db.add(profile)
            self.db.flush()

            user = User(
                email=email,
                password=hash_password(user_data.password),
                profile_id=profile.id,
                is_active=True
            )
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)
            logger.info(f"User registered: {user.email}")
            return user
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error registering user {email}: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error registering user: {str(e)}"
            )

    def login(self, email: str, password: str) -> TokenResponse:
        """
        Login returning an access token and the list of companies.
        """
        user = self.db.query(User).options(
            selectinload(User.profile),
            selectinload(User.user_companies).selectinload(UserCompany.company)
        ).filter(User.email == email.lower()).first()

        if not user or not verify_password(password, user.password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect email or password"
            )

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Account is inactive"
            )

        user.last_login = datetime.now(timezone.utc)
        self.db.commit()

        token_data = {
            "sub": str(user.id),
            "email": user.email,
            "user_name": user.profile.full_name if user.profile else user.email
        }

        return TokenResponse(
            access_token=create_access_token(token_data),
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            user=UserOut.model_validate(user),
            companies=self._companies_for(user),
            refresh_token=create_refresh_token(str(user.id))
        )

    def refresh(self, refresh_token: str) -> dict:
        """Exchange a refresh token for a new access token."""
        payload = verify_token(refresh_token, expected_type="refresh")
        user = self._get_user(UUID(payload["sub"]))
        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Account is inactive"
            )

        access_token = create_access_token({"sub": str(user.id), "email": user.email})
        return {
            "access_token": access_token,
            "token_type": "bearer",
            "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        }

    def select_company(self, user_id: UUID, company_id: UUID) -> ContextTokenResponse:
        """Select a company and issue a context token carrying tenant and role."""
        user_company = self.db.query(UserCompany).options(
            selectinload(UserCompany.company)
        ).filter(
            UserCompany.user_id == user_id,
            UserCompany.company_id == company_id,
            UserCompany.is_active == True
        ).first()

        if not user_company:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have access to this company"
            )

        token_data = {
            "sub": str(user_id),
            "tenant_id": str(company_id),
            "user_role": user_company.role
        }
        return ContextTokenResponse(
            access_token=create_context_token(token_data),
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            tenant_id=company_id,
            company_name=user_company.company.name,
            user_role=user_company.role
        )

    def update_profile(self, user_id: UUID, profile_data: ProfileUpdate) -> User:
        user = self._get_user(user_id)
        for field, value in profile_data.model_dump(exclude_unset=True).items():
            setattr(user.profile, field, value)
        self.db.commit()
        self.db.refresh(user)
        return user

    def change_password(self, user_id: UUID, data: PasswordChange) -> None:
        user = self._get_user(user_id)
        if not verify_password(data.current_password, user.password):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Current password is incorrect"
            )
        user.password = hash_password(data.new_password)
        self.db.commit()
        logger.info(f"Password changed for user {user.email}")
