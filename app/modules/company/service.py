import logging
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import selectinload

from app.dependencies.dbDependecies import db_dependency
from app.modules.auth.models import User, UserCompany
from app.modules.company.models import Company
from app.modules.company.schemas import CompanyCreate, CompanyUpdate, CompanyOut, CompanyOutWithRole, MemberCreate, CompanyMemberOut
from app.modules.invoices.models import DocumentType
from app.modules.invoices.numbering import DocumentNumberGenerator
from app.modules.pdf.models import PdfSettings
from app.modules.settings.models import CompanySettings

logger = logging.getLogger(__name__)


def create_company(db: db_dependency, company_data: CompanyCreate, current_user: User) -> Company:
    """
    Create a company and make the current user its owner.

    Settings, PDF settings and the numbering sequences are created in the
    same transaction so the company is usable right away.

    Args:
        company_data (CompanyCreate): The company data to create.
        current_user (User): The user creating the company.

    Returns:
        Company: The created company.
    """
    company = Company(**company_data.model_dump(exclude={"invoice_prefix", "quote_prefix"}))

    try:
        db.add(company)
        db.flush()

        db.add(UserCompany(user_id=current_user.id, company_id=company.id, is_active=True, role="owner"))
        db.add(CompanySettings(tenant_id=company.id, currency=company.currency, timezone=company.timezone))
        db.add(PdfSettings(tenant_id=company.id))

        numbering = DocumentNumberGenerator(db)
        numbering.configure(company.id, DocumentType.INVOICE, prefix=company_data.invoice_prefix)
        numbering.configure(company.id, DocumentType.QUOTATION, prefix=company_data.quote_prefix)

        db.commit()
        db.refresh(company)
    except HTTPException:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating company: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error creating company"
        )

    logger.info(f"Company {company.name} ({company.id}) created by {current_user.email}")
    return company


def _with_role(membership: UserCompany) -> CompanyOutWithRole:
    company = CompanyOut.model_validate(membership.company)
    return CompanyOutWithRole(**company.model_dump(), role=membership.role)


def get_companies_for_user(db: db_dependency, user_id: UUID) -> list[CompanyOutWithRole]:
    """
    Get all companies the user is an active member of.

    Args:
        db (db_dependency): The database session.
        user_id (UUID): The user for whom to retrieve companies.

    Returns:
        list[CompanyOutWithRole]: Companies with the user's role in each.
    """
    memberships = db.query(UserCompany).options(
        selectinload(UserCompany.company)
    ).filter_by(user_id=user_id, is_active=True).all()

    return [
        _with_role(membership)
        for membership in memberships
        if membership.company and membership.company.is_active
    ]


def _get_membership(db: db_dependency, company_id: UUID, user_id: UUID) -> UserCompany:
    membership = db.query(UserCompany).options(
        selectinload(UserCompany.company)
    ).filter_by(user_id=user_id, company_id=company_id, is_active=True).first()
    if not membership:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found")
    return membership


def get_current_company(db: db_dependency, company_id: UUID, user_id: UUID) -> CompanyOutWithRole:
    return _with_role(_get_membership(db, company_id, user_id))


def update_company(db: db_dependency, company_id: UUID, company_update: CompanyUpdate, user_id: UUID) -> CompanyOutWithRole:
    """
    Update the selected company. Only owners and admins get here.
    """
    membership = _get_membership(db, company_id, user_id)
    company = membership.company

    update_data = company_update.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if value is None and field in ("name", "currency", "timezone"):
            continue
        setattr(company, field, value)

    db.commit()
    db.refresh(company)
    logger.info(f"Company {company.id} updated: {', '.join(update_data)}")
    return _with_role(membership)


def _member_out(membership: UserCompany) -> CompanyMemberOut:
    user = membership.user
    return CompanyMemberOut(
        user_id=user.id,
        email=user.email,
        full_name=user.profile.full_name if user.profile else None,
        role=membership.role,
        is_active=membership.is_active,
        joined_at=membership.joined_at
    )


def list_members(db: db_dependency, company_id: UUID) -> list[CompanyMemberOut]:
    memberships = db.query(UserCompany).options(
        selectinload(UserCompany.user).selectinload(User.profile)
    ).filter_by(company_id=company_id).order_by(UserCompany.joined_at).all()
    return [_member_out(membership) for membership in memberships]


def add_member(db: db_dependency, company_id: UUID, member: MemberCreate) -> CompanyMemberOut:
    """
    Give an existing user access to the company.

    Raises:
        HTTPException: 404 if no user has that email, 409 if they are already a member.
    """
    user = db.query(User).filter(User.email == member.email.lower()).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No user registered with this email"
        )

    existing = db.query(UserCompany).filter_by(user_id=user.id, company_id=company_id).first()
    if existing and existing.is_active:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User is already a member of this company")

    if existing:
        # Former member coming back
        existing.is_active = True
        existing.role = member.role
        membership = existing
    else:
        membership = UserCompany(user_id=user.id, company_id=company_id, role=member.role, is_active=True)
        db.add(membership)

    db.commit()
    db.refresh(membership)
    logger.info(f"User {user.email} added to company {company_id} as {member.role}")
    return _member_out(membership)
