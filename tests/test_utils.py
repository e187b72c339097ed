import json
import logging

from logging_config import StructuredFormatter
from utils import GENESIS, compute_hash, verify_chain, to_fixed, from_fixed


def _chain(*items):
    events, prev = [], GENESIS
    for name, args, ts in items:
        h = compute_hash(prev, name, args, ts)
        events.append({"name": name, "args": args, "timestamp": ts, "prev_hash": prev, "hash": h})
        prev = h
    return events


def test_fixed_point_encoding():
    assert to_fixed(25.0) == 250
    assert to_fixed("65.04") == 650
    assert to_fixed(25.05) == 251
    assert to_fixed(-4) == -40


def test_fixed_point_decoding():
    assert from_fixed(250) == 25.0
    assert from_fixed(-15) == -1.5


def test_hash_depends_on_every_field():
    base = compute_hash(GENESIS, "IoTDataAdded", {"product_id": 1}, "t0")
    assert base != compute_hash("x", "IoTDataAdded", {"product_id": 1}, "t0")
    assert base != compute_hash(GENESIS, "ComplianceVerified", {"product_id": 1}, "t0")
    assert base != compute_hash(GENESIS, "IoTDataAdded", {"product_id": 2}, "t0")
    assert base != compute_hash(GENESIS, "IoTDataAdded", {"product_id": 1}, "t1")


def test_verify_chain():
    events = _chain(("ProductRegistered", {"product_id": 1}, "t0"),
                    ("IoTDataAdded", {"product_id": 1, "temperature": 250}, "t1"))
    assert verify_chain(events)
    assert verify_chain([])

    events[1]["args"]["temperature"] = 150
    assert not verify_chain(events)


def test_verify_chain_detects_reordering():
    events = _chain(("A", {}, "t0"), ("B", {}, "t1"))
    assert not verify_chain(list(reversed(events)))


def test_structured_formatter_merges_extra_fields():
    record = logging.LogRecord("registry", logging.INFO, __file__, 1, "ProductRegistered", (), None)
    record.extra_fields = {"event": "ProductRegistered", "args": {"product_id": 1}}
    data = json.loads(StructuredFormatter().format(record))
    assert data["level"] == "INFO"
    assert data["logger"] == "registry"
    assert data["message"] == "ProductRegistered"
    assert data["args"] == {"product_id": 1}
