from pydantic import BaseModel, ConfigDict, Field, computed_field
from typing import Optional, Any, Dict, List

from utils import from_fixed

class RegisterProduct(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    category: str = Field("", max_length=100)
    location: str = Field("", max_length=255)
    metadata_hash: str = Field("", max_length=255)  # e.g. an IPFS CID

class IoTReading(BaseModel):
    temperature: int  # tenths of a degree: 250 -> 25.0
    humidity: int     # tenths of a percent: 650 -> 65.0
    location: str

class ComplianceClaim(BaseModel):
    claim_type: str = Field(..., min_length=1, max_length=255)
    verified: bool
    zk_proof_hash: str = Field("", max_length=255)

class VerifierIn(BaseModel):
    address: str = Field(..., min_length=1, max_length=128)

class TransferOwnership(BaseModel):
    new_owner: str = Field(..., min_length=1, max_length=128)

class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category: str
    origin_location: str
    metadata_hash: str
    farmer: str
    is_active: bool
    registered_at: int

class ObservationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    temperature: int
    humidity: int
    location: str
    timestamp: int

    @computed_field
    @property
    def temperature_c(self) -> float:
        return from_fixed(self.temperature)

    @computed_field
    @property
    def humidity_pct(self) -> float:
        return from_fixed(self.humidity)

class ComplianceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    claim_type: str
    verified: bool
    zk_proof_hash: str
    timestamp: int
    verifier: str

class EventOut(BaseModel):
    id: int
    name: str
    args: Dict[str, Any]
    timestamp: str
    prev_hash: str
    hash: str

class ProductReceipt(BaseModel):
    product: ProductOut
    events: List[EventOut]

class ObservationReceipt(BaseModel):
    product_id: int
    observation: ObservationOut
    events: List[EventOut]

class ComplianceReceipt(BaseModel):
    product_id: int
    record: ComplianceOut
    events: List[EventOut]

class RoleReceipt(BaseModel):
    status: str = "ok"
    events: List[EventOut]

class ProductList(BaseModel):
    items: List[ProductOut]
    total: int
    page: int
    page_size: int

class VerifierStatus(BaseModel):
    address: str
    authorized: bool

class ChainStatus(BaseModel):
    verified: bool
    events: int

class OwnerOut(BaseModel):
    owner: str

class CurrentProductId(BaseModel):
    current_product_id: int

class ServiceInfo(BaseModel):
    name: str
    version: str
    owner: Optional[str] = None
