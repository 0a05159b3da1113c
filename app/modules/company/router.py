from fastapi import APIRouter, status

from app.dependencies.companyDependencies import AnyRoleContext, ManagerContext
from app.dependencies.dbDependecies import db_dependency
from app.dependencies.userDependencies import user_dependency
from app.modules.company import service
from app.modules.company.schemas import (
    CompanyCreate, CompanyOut, CompanyOutWithRole, CompanyUpdate, MemberCreate, CompanyMemberOut
)


company_router = APIRouter()


@company_router.post("/", response_model=CompanyOut, status_code=status.HTTP_201_CREATED)
def create_company(company: CompanyCreate, db: db_dependency, current_user: user_dependency):
    """
    Onboarding: create a company owned by the current user.

    Select it afterwards with `/auth/select-company` to work inside it.
    """
    return service.create_company(db, company, current_user)


@company_router.get("/my_companies", response_model=list[CompanyOutWithRole])
def get_my_companies(db: db_dependency, current_user: user_dependency):
    """
    Companies the current user belongs to, with their role in each.
    """
    return service.get_companies_for_user(db, current_user.id)


@company_router.get("/me", response_model=CompanyOutWithRole)
def get_current_company(db: db_dependency, auth_context: AnyRoleContext):
    return service.get_current_company(db, auth_context.tenant_id, auth_context.user_id)


@company_router.patch("/me", response_model=CompanyOutWithRole)
def update_company(company_update: CompanyUpdate, db: db_dependency, auth_context: ManagerContext):
    """
    Update the selected company. Owners and admins only.
    """
    return service.update_company(db, auth_context.tenant_id, company_update, auth_context.user_id)


@company_router.get("/members", response_model=list[CompanyMemberOut])
def list_members(db: db_dependency, auth_context: AnyRoleContext):
    return service.list_members(db, auth_context.tenant_id)


@company_router.post("/members", response_model=CompanyMemberOut, status_code=status.HTTP_201_CREATED)
def add_member(member: MemberCreate, db: db_dependency, auth_context: ManagerContext):
    """
    Add an already registered user to the selected company.
    """
    return service.add_member(db, auth_context.tenant_id, member)
