from app.database.database import Base
from sqlalchemy import Column, String, Boolean, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from app.common.mixins import TimestampMixin
import uuid


class Company(Base, TimestampMixin):
    __tablename__ = "companies"

    id = Column(UUID(as_uuid=True), primary_key=True, index=True, default=uuid.uuid4)
    name = Column(String, nullable=False, index=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    address = Column(JSON, nullable=True)  # {"street", "city", "state", "postal_code", "country"}
    logo_url = Column(String, nullable=True)
    vat_tin = Column(String(50), nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    timezone = Column(String(64), nullable=False, default="UTC")
    is_active = Column(Boolean, default=True)

    user_companies = relationship("UserCompany", back_populates="company")

    @property
    def address_lines(self) -> list[str]:
        """Address formatted for documents."""
        if not self.address:
            return []
        if isinstance(self.address, str):
            return [self.address]
        city_line = " ".join(
            part for part in (self.address.get("city"), self.address.get("state"), self.address.get("postal_code"))
            if part
        )
        return [line for line in (self.address.get("street"), city_line, self.address.get("country")) if line]
