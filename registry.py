"""
The supply chain registry: products, their sensor observations and compliance
attestations, gated by owner / farmer / verifier roles.

Every mutating call runs as one transaction under a process-wide write lock:
preconditions are checked first, then state is written together with the
events it emits, then the session commits. Any exception rolls the whole call
back, so a rejected call leaves neither state nor events behind.
"""
import functools
import json
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from errors import (
    AuthorizationError, OwnershipError, NotFoundError, InvalidIdentityError, InvalidArgumentError,
)
from models import RegistryState, Verifier, Product, Observation, ComplianceRecord, Event
from utils import GENESIS, compute_hash, verify_chain

log = logging.getLogger("registry")

WRITE_LOCK = threading.RLock()

STATE_ID = 1

MSG_IOT_FORBIDDEN = "Only farmer or authorized verifier can add IoT data"
MSG_NOT_VERIFIER = "Not an authorized verifier"
MSG_DEACTIVATE_FORBIDDEN = "Only farmer or owner can deactivate product"

# deepest page list_products will serve; keeps the SQL offset within 64 bits
MAX_PAGE = 10 ** 6


def _require_identity(value: Optional[str]) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidIdentityError("identity must be a non-empty string")
    return value.strip()


def _require_reading(field: str, value: int) -> int:
    # fixed-point readings are whole tenths; anything else would be truncated
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(f"{field} must be an integer in tenths, got {value!r}")
    return value


def _require_flag(value: bool) -> bool:
    if not isinstance(value, bool):
        raise InvalidArgumentError(f"verified must be a boolean, got {value!r}")
    return value


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _mutation(fn):
    """Run a registry call atomically under the write lock."""
    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            self.last_events = []
            try:
                result = fn(self, *args, **kwargs)
                self.session.commit()
            except Exception:
                self.session.rollback()
                self.last_events = []
                raise
        return result
    return wrapper


class Registry:
    """
    Registry bound to one SQLAlchemy session.

    ``clock`` returns the runtime time in unix seconds; it stamps observations,
    compliance records and events. ``last_events`` holds the events emitted by
    the most recent successful mutation, in emission order.
    """

    def __init__(self, session: Session, clock: Optional[Callable[[], int]] = None, lock=None):
        self.session = session
        self.clock = clock or (lambda: int(time.time()))
        self._lock = lock or WRITE_LOCK
        self.last_events: List[dict] = []

    @classmethod
    def deploy(cls, session: Session, owner: str, **kwargs) -> "Registry":
        """Create the registry with ``owner`` as owner and first verifier. Idempotent."""
        registry = cls(session, **kwargs)
        registry._deploy(owner)
        return registry

    @_mutation
    def _deploy(self, owner: str) -> None:
        if self.session.get(RegistryState, STATE_ID) is not None:
            log.debug("registry already deployed")
            return
        owner = _require_identity(owner)
        self.session.add(RegistryState(id=STATE_ID, owner=owner, product_count=0))
        self.session.add(Verifier(address=owner))
        self._emit("OwnershipTransferred", {"previous_owner": "", "new_owner": owner})
        self._emit("VerifierAdded", {"verifier": owner})

    # ---------- internals ----------
    def _state(self) -> RegistryState:
        state = self.session.get(RegistryState, STATE_ID)
        if state is None:
            raise RuntimeError("registry has not been deployed")
        return state

    def _product(self, product_id: int) -> Product:
        count = self._state().product_count
        if isinstance(product_id, bool) or not isinstance(product_id, int) \
                or not 1 <= product_id <= count:
            raise NotFoundError(product_id)
        return self.session.get(Product, product_id)

    def _reject(self, operation: str, caller: str, err: Exception) -> Exception:
        log.warning("%s rejected: %s", operation, err, extra={"extra_fields": {
            "operation": operation, "caller": caller, "error": type(err).__name__,
        }})
        return err

    def _now_iso(self, ts: int) -> str:
        return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()

    def _emit(self, name: str, args: dict) -> dict:
        prev = self.session.scalar(select(Event).order_by(Event.id.desc()).limit(1))
        prev_hash = prev.hash if prev else GENESIS
        ts_iso = self._now_iso(self.clock())
        ev = Event(
            name=name,
            args=json.dumps(args, sort_keys=True),
            timestamp=ts_iso,
            prev_hash=prev_hash,
            hash=compute_hash(prev_hash, name, args, ts_iso),
        )
        self.session.add(ev)
        # the next event in this transaction must see this one as its predecessor
        self.session.flush()
        record = _event_dict(ev)
        self.last_events.append(record)
        log.info("%s", name, extra={"extra_fields": {"event": name, "args": args}})
        return record

    # ---------- roles ----------
    def owner(self) -> str:
        return self._state().owner

    def is_verifier(self, identity: str) -> bool:
        return self.session.get(Verifier, identity) is not None

    def list_verifiers(self) -> List[str]:
        return list(self.session.scalars(select(Verifier.address).order_by(Verifier.address)))

    def _only_owner(self, operation: str, caller: str) -> None:
        caller = _require_identity(caller)
        if caller != self._state().owner:
            raise self._reject(operation, caller, OwnershipError(caller))

    @_mutation
    def add_verifier(self, caller: str, identity: str) -> None:
        self._only_owner("addVerifier", caller)
        identity = _require_identity(identity)
        if not self.is_verifier(identity):
            self.session.add(Verifier(address=identity))
        self._emit("VerifierAdded", {"verifier": identity})

    @_mutation
    def remove_verifier(self, caller: str, identity: str) -> None:
        # removing the owner's own membership is allowed
        self._only_owner("removeVerifier", caller)
        identity = _require_identity(identity)
        member = self.session.get(Verifier, identity)
        if member is not None:
            self.session.delete(member)
        self._emit("VerifierRemoved", {"verifier": identity})

    @_mutation
    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self._only_owner("transferOwnership", caller)
        new_owner = _require_identity(new_owner)
        state = self._state()
        previous, state.owner = state.owner, new_owner
        self._emit("OwnershipTransferred", {"previous_owner": previous, "new_owner": new_owner})

    # ---------- products ----------
    @_mutation
    def register_product(self, caller: str, name: str, category: str, location: str,
                         metadata_hash: str) -> int:
        caller = _require_identity(caller)
        state = self._state()
        state.product_count += 1
        product = Product(
            id=state.product_count,
            name=name,
            category=category,
            origin_location=location,
            metadata_hash=metadata_hash,
            farmer=caller,
            is_active=True,
            registered_at=self.clock(),
        )
        self.session.add(product)
        self._emit("ProductRegistered", {"product_id": product.id, "name": name, "farmer": caller})
        return product.id

    @_mutation
    def add_iot_data(self, caller: str, product_id: int, temperature: int, humidity: int,
                     location: str) -> Observation:
        caller = _require_identity(caller)
        product = self._product(product_id)
        if caller != product.farmer and not self.is_verifier(caller):
            raise self._reject("addIoTData", caller, AuthorizationError(MSG_IOT_FORBIDDEN))
        obs = Observation(
            product_id=product.id,
            temperature=_require_reading("temperature", temperature),
            humidity=_require_reading("humidity", humidity),
            location=location,
            timestamp=self.clock(),
        )
        self.session.add(obs)
        self._emit("IoTDataAdded", {
            "product_id": product.id, "temperature": obs.temperature, "humidity": obs.humidity,
        })
        return obs

    @_mutation
    def verify_compliance(self, caller: str, product_id: int, claim_type: str, verified: bool,
                          zk_proof_hash: str) -> ComplianceRecord:
        caller = _require_identity(caller)
        product = self._product(product_id)
        if not self.is_verifier(caller):
            raise self._reject("verifyCompliance", caller, AuthorizationError(MSG_NOT_VERIFIER))
        rec = ComplianceRecord(
            product_id=product.id,
            claim_type=claim_type,
            verified=_require_flag(verified),
            zk_proof_hash=zk_proof_hash,
            timestamp=self.clock(),
            verifier=caller,
        )
        self.session.add(rec)
        self._emit("ComplianceVerified", {
            "product_id": product.id, "claim_type": claim_type, "verified": rec.verified,
        })
        return rec

    @_mutation
    def deactivate_product(self, caller: str, product_id: int) -> Product:
        caller = _require_identity(caller)
        product = self._product(product_id)
        if caller != product.farmer and caller != self._state().owner:
            raise self._reject("deactivateProduct", caller,
                               AuthorizationError(MSG_DEACTIVATE_FORBIDDEN))
        product.is_active = False
        self._emit("ProductDeactivated", {"product_id": product.id})
        return product

    # ---------- reads ----------
    def get_current_product_id(self) -> int:
        return self._state().product_count

    def get_product(self, product_id: int) -> Product:
        return self._product(product_id)

    def get_product_iot_data(self, product_id: int) -> List[Observation]:
        product = self._product(product_id)
        return list(self.session.scalars(
            select(Observation).where(Observation.product_id == product.id).order_by(Observation.id)
        ))

    def get_product_compliance(self, product_id: int) -> List[ComplianceRecord]:
        product = self._product(product_id)
        return list(self.session.scalars(
            select(ComplianceRecord)
            .where(ComplianceRecord.product_id == product.id)
            .order_by(ComplianceRecord.id)
        ))

    def list_products(self, q: Optional[str] = None, page: int = 1,
                      page_size: int = 10) -> Tuple[List[Product], int]:
        if page < 1 or page > MAX_PAGE or page_size < 1:
            raise InvalidArgumentError(f"page must be in [1, {MAX_PAGE}] and page_size >= 1")
        base = select(Product)
        if q:
            like = f"%{_escape_like(q)}%"
            base = base.where(
                (Product.name.ilike(like, escape="\\")) |
                (Product.category.ilike(like, escape="\\")) |
                (Product.origin_location.ilike(like, escape="\\"))
            )
        total = self.session.scalar(select(func.count()).select_from(base.subquery()))
        rows = self.session.scalars(
            base.order_by(Product.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
        ).all()
        return list(rows), total or 0

    # ---------- event log ----------
    def events(self, name: Optional[str] = None) -> List[dict]:
        query = select(Event).order_by(Event.id.asc())
        if name:
            query = query.where(Event.name == name)
        return [_event_dict(e) for e in self.session.scalars(query)]

    def verify_event_chain(self) -> bool:
        return verify_chain(self.events())


def _event_dict(ev: Event) -> dict:
    return {
        "id": ev.id,
        "name": ev.name,
        "args": json.loads(ev.args),
        "timestamp": ev.timestamp,
        "prev_hash": ev.prev_hash,
        "hash": ev.hash,
    }
