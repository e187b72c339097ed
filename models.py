from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, ForeignKey
from database import Base

class RegistryState(Base):
    __tablename__ = "registry_state"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner: Mapped[str] = mapped_column(String(128))
    # currentProductId; also the id of the newest product
    product_count: Mapped[int] = mapped_column(Integer, default=0)

class Verifier(Base):
    __tablename__ = "verifiers"
    address: Mapped[str] = mapped_column(String(128), primary_key=True)

class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(255))
    category: Mapped[str] = mapped_column(String(100))
    origin_location: Mapped[str] = mapped_column(String(255))
    metadata_hash: Mapped[str] = mapped_column(String(255))
    farmer: Mapped[str] = mapped_column(String(128), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    registered_at: Mapped[int] = mapped_column(Integer)
    observations: Mapped[list["Observation"]] = relationship(
        "Observation", back_populates="product", order_by="Observation.id"
    )
    compliance_records: Mapped[list["ComplianceRecord"]] = relationship(
        "ComplianceRecord", back_populates="product", order_by="ComplianceRecord.id"
    )

class Observation(Base):
    __tablename__ = "observations"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.id"), index=True)
    temperature: Mapped[int] = mapped_column(Integer)  # tenths of a degree
    humidity: Mapped[int] = mapped_column(Integer)     # tenths of a percent
    location: Mapped[str] = mapped_column(String(255))
    timestamp: Mapped[int] = mapped_column(Integer)
    product: Mapped[Product] = relationship("Product", back_populates="observations")

class ComplianceRecord(Base):
    __tablename__ = "compliance_records"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.id"), index=True)
    claim_type: Mapped[str] = mapped_column(String(255))
    verified: Mapped[bool] = mapped_column(Boolean)
    zk_proof_hash: Mapped[str] = mapped_column(String(255))
    timestamp: Mapped[int] = mapped_column(Integer)
    verifier: Mapped[str] = mapped_column(String(128))
    product: Mapped[Product] = relationship("Product", back_populates="compliance_records")

class Event(Base):
    __tablename__ = "events"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(50), index=True)
    args: Mapped[str] = mapped_column(Text)
    timestamp: Mapped[str] = mapped_column(String(32))
    prev_hash: Mapped[str] = mapped_column(String(128))
    hash: Mapped[str] = mapped_column(String(128))
