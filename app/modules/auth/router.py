from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.auth.service import AuthService
from app.modules.auth.dependencies import get_current_user, get_auth_context
from app.modules.auth.models import User
from app.modules.auth.schemas import (
    UserCreate, UserOut, TokenResponse, ContextTokenResponse,
    CompanySelectionRequest, AuthContext, RefreshTokenRequest,
    ProfileUpdate, PasswordChange
)

auth_router = APIRouter()


@auth_router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(user_data: UserCreate, db: Session = Depends(get_db)):
    """
    Register a new user. The company is created afterwards through onboarding.
    """
    return AuthService(db).create_user(user_data)


@auth_router.post("/login", response_model=TokenResponse)
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    """
    Login. Returns an access token and the user's companies.
    """
    return AuthService(db).login(form_data.username, form_data.password)


@auth_router.post("/refresh")
def refresh_token(data: RefreshTokenRequest, db: Session = Depends(get_db)):
    return AuthService(db).refresh(data.refresh_token)


@auth_router.post("/select-company", response_model=ContextTokenResponse)
def select_company(
    selection_data: CompanySelectionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Select a company and get a context token.
    """
    return AuthService(db).select_company(current_user.id, selection_data.company_id)


@auth_router.get("/me", response_model=UserOut)
def get_current_user_info(current_user: User = Depends(get_current_user)):
    return current_user


@auth_router.patch("/me", response_model=UserOut)
def update_current_user(
    profile_data: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return AuthService(db).update_profile(current_user.id, profile_data)


@auth_router.post("/change-password", status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    data: PasswordChange,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    AuthService(db).change_password(current_user.id, data)


@auth_router.get("/context", response_model=AuthContext)
def get_auth_context_info(auth_context: AuthContext = Depends(get_auth_context)):
    """
    Full authentication context.
    """
    return auth_context
