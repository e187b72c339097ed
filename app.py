import os
import io
import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Depends, Header, Request, Response, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sqlalchemy.orm import Session

import qrcode

from database import Base, engine, SessionLocal
from errors import RegistryError, AuthorizationError, NotFoundError
from logging_config import configure_logging
from registry import Registry, MAX_PAGE
import schemas
from schemas import (
    RegisterProduct, IoTReading, ComplianceClaim, VerifierIn, TransferOwnership,
    ProductOut, ObservationOut, ComplianceOut, EventOut,
)

# ---------- Config ----------
BASE_URL = os.getenv("BASE_URL", "http://localhost:8000")
REGISTRY_OWNER = os.getenv("REGISTRY_OWNER", "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "true").lower() in ("1", "true", "yes")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

log = logging.getLogger("registry.api")

app = FastAPI(title="Supply Chain Registry", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------- DB ----------
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_registry(db: Session = Depends(get_db)) -> Registry:
    return Registry(db)

def get_caller(x_caller_address: Optional[str] = Header(None)) -> str:
    """Authenticated caller identity, supplied by the gateway in front of the API."""
    if not x_caller_address or not x_caller_address.strip():
        raise HTTPException(status_code=401, detail="missing X-Caller-Address header")
    return x_caller_address.strip()

@app.on_event("startup")
def on_startup():
    configure_logging(LOG_LEVEL, json_format=LOG_JSON)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        registry = Registry.deploy(db, REGISTRY_OWNER)
        log.info("registry ready, owner %s", registry.owner())
    finally:
        db.close()

@app.exception_handler(RegistryError)
async def registry_error_handler(request: Request, exc: RegistryError):
    if isinstance(exc, AuthorizationError):
        status_code = 403
    elif isinstance(exc, NotFoundError):
        status_code = 404
    else:
        status_code = 400
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )

# ---------- Helpers ----------
def _events(registry: Registry) -> List[EventOut]:
    return [EventOut(**e) for e in registry.last_events]

# ---------- APIs: products ----------
@app.post("/api/products", response_model=schemas.ProductReceipt)
def register_product(body: RegisterProduct, caller: str = Depends(get_caller),
                     registry: Registry = Depends(get_registry)):
    product_id = registry.register_product(
        caller, body.name, body.category, body.location, body.metadata_hash
    )
    return schemas.ProductReceipt(
        product=ProductOut.model_validate(registry.get_product(product_id)),
        events=_events(registry),
    )

@app.get("/api/products", response_model=schemas.ProductList)
def list_products(
    q: Optional[str] = Query(None, description="search name/category/origin location"),
    page: int = Query(1, ge=1, le=MAX_PAGE),
    page_size: int = Query(10, ge=1, le=100),
    registry: Registry = Depends(get_registry),
):
    rows, total = registry.list_products(q, page, page_size)
    return schemas.ProductList(
        items=[ProductOut.model_validate(p) for p in rows],
        total=total,
        page=page,
        page_size=page_size,
    )

# declared before /api/products/{product_id} so the literal path wins
@app.get("/api/products/current-id", response_model=schemas.CurrentProductId)
def current_product_id(registry: Registry = Depends(get_registry)):
    return schemas.CurrentProductId(current_product_id=registry.get_current_product_id())

@app.get("/api/products/{product_id}", response_model=ProductOut)
def get_product(product_id: int, registry: Registry = Depends(get_registry)):
    return ProductOut.model_validate(registry.get_product(product_id))

@app.post("/api/products/{product_id}/iot", response_model=schemas.ObservationReceipt)
def add_iot_data(product_id: int, body: IoTReading, caller: str = Depends(get_caller),
                 registry: Registry = Depends(get_registry)):
    obs = registry.add_iot_data(caller, product_id, body.temperature, body.humidity, body.location)
    return schemas.ObservationReceipt(
        product_id=product_id,
        observation=ObservationOut.model_validate(obs),
        events=_events(registry),
    )

@app.get("/api/products/{product_id}/iot", response_model=List[ObservationOut])
def get_product_iot_data(product_id: int, registry: Registry = Depends(get_registry)):
    return [ObservationOut.model_validate(o) for o in registry.get_product_iot_data(product_id)]

@app.post("/api/products/{product_id}/compliance", response_model=schemas.ComplianceReceipt)
def verify_compliance(product_id: int, body: ComplianceClaim, caller: str = Depends(get_caller),
                      registry: Registry = Depends(get_registry)):
    rec = registry.verify_compliance(
        caller, product_id, body.claim_type, body.verified, body.zk_proof_hash
    )
    return schemas.ComplianceReceipt(
        product_id=product_id,
        record=ComplianceOut.model_validate(rec),
        events=_events(registry),
    )

@app.get("/api/products/{product_id}/compliance", response_model=List[ComplianceOut])
def get_product_compliance(product_id: int, registry: Registry = Depends(get_registry)):
    return [ComplianceOut.model_validate(r) for r in registry.get_product_compliance(product_id)]

@app.post("/api/products/{product_id}/deactivate", response_model=schemas.ProductReceipt)
def deactivate_product(product_id: int, caller: str = Depends(get_caller),
                       registry: Registry = Depends(get_registry)):
    product = registry.deactivate_product(caller, product_id)
    return schemas.ProductReceipt(
        product=ProductOut.model_validate(product),
        events=_events(registry),
    )

@app.get("/api/products/{product_id}/qrcode")
def product_qrcode(product_id: int, registry: Registry = Depends(get_registry)):
    product = registry.get_product(product_id)
    url = f"{BASE_URL}/api/products/{product.id}"
    img = qrcode.make(url)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return Response(content=buf.getvalue(), media_type="image/png")

# ---------- APIs: roles ----------
@app.get("/api/verifiers", response_model=List[str])
def list_verifiers(registry: Registry = Depends(get_registry)):
    return registry.list_verifiers()

@app.get("/api/verifiers/{address}", response_model=schemas.VerifierStatus)
def verifier_status(address: str, registry: Registry = Depends(get_registry)):
    return schemas.VerifierStatus(address=address, authorized=registry.is_verifier(address))

@app.post("/api/verifiers", response_model=schemas.RoleReceipt)
def add_verifier(body: VerifierIn, caller: str = Depends(get_caller),
                 registry: Registry = Depends(get_registry)):
    registry.add_verifier(caller, body.address)
    return schemas.RoleReceipt(events=_events(registry))

@app.delete("/api/verifiers/{address}", response_model=schemas.RoleReceipt)
def remove_verifier(address: str, caller: str = Depends(get_caller),
                    registry: Registry = Depends(get_registry)):
    registry.remove_verifier(caller, address)
    return schemas.RoleReceipt(events=_events(registry))

@app.get("/api/owner", response_model=schemas.OwnerOut)
def get_owner(registry: Registry = Depends(get_registry)):
    return schemas.OwnerOut(owner=registry.owner())

@app.post("/api/owner", response_model=schemas.RoleReceipt)
def transfer_ownership(body: TransferOwnership, caller: str = Depends(get_caller),
                       registry: Registry = Depends(get_registry)):
    registry.transfer_ownership(caller, body.new_owner)
    return schemas.RoleReceipt(events=_events(registry))

# ---------- APIs: event log ----------
@app.get("/api/events", response_model=List[EventOut])
def list_events(name: Optional[str] = Query(None, description="e.g. ProductRegistered"),
                registry: Registry = Depends(get_registry)):
    return [EventOut(**e) for e in registry.events(name)]

@app.get("/api/events/verify", response_model=schemas.ChainStatus)
def verify_events(registry: Registry = Depends(get_registry)):
    return schemas.ChainStatus(verified=registry.verify_event_chain(), events=len(registry.events()))

@app.get("/", response_model=schemas.ServiceInfo)
def root(registry: Registry = Depends(get_registry)):
    return schemas.ServiceInfo(name=app.title, version=app.version, owner=registry.owner())
