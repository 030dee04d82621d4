from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Enum, func, Boolean, Text
from sqlalchemy.orm import relationship
from db.session import Base
from utils.dates import utcnow
import enum

class TopupStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class CreditPackage(Base):
    __tablename__ = "credit_packages"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, nullable=False, unique=True)  # SKU, e.g. pack_10
    name = Column(String, nullable=False)
    usd_price = Column(Float, nullable=False)
    credits = Column(Integer, nullable=False)  # Credits added to the wallet on approval
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    topups = relationship("CreditTopup", back_populates="package")

class CreditTopup(Base):
    """A manual crypto payment claim waiting for an admin decision."""

    __tablename__ = "credit_topups"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    package_id = Column(Integer, ForeignKey("credit_packages.id"), nullable=False)
    wallet_network = Column(String, nullable=False)
    tx_hash = Column(String, nullable=False)
    from_address = Column(String, nullable=True)
    amount = Column(String, nullable=True)
    status = Column(
        Enum(TopupStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=TopupStatus.PENDING,
        nullable=False,
        index=True,
    )
    admin_note = Column(Text, nullable=True)
    approved_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    approved_at = Column(DateTime(timezone=True), nullable=True)

    package = relationship("CreditPackage", back_populates="topups")
