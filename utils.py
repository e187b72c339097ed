import hashlib
import json
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Dict, Any, Union

GENESIS = "GENESIS"

# readings carry one implied decimal place: 250 -> 25.0
FIXED_POINT_SCALE = 10

def compute_hash(prev_hash: str, name: str, args: dict, timestamp: str) -> str:
    block = json.dumps({
        "prev_hash": prev_hash,
        "name": name,
        "args": args,
        "timestamp": timestamp
    }, sort_keys=True)
    return hashlib.sha256(block.encode("utf-8")).hexdigest()

def verify_chain(events: List[Dict[str, Any]]) -> bool:
    prev = GENESIS
    for ev in events:
        expected = compute_hash(prev, ev["name"], ev["args"], ev["timestamp"])
        if ev["hash"] != expected or ev["prev_hash"] != prev:
            return False
        prev = ev["hash"]
    return True

def to_fixed(value: Union[int, float, str]) -> int:
    """Encode a decimal reading as a fixed-point integer (25.04 -> 250)."""
    scaled = Decimal(str(value)) * FIXED_POINT_SCALE
    return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))

def from_fixed(value: int) -> float:
    return value / FIXED_POINT_SCALE
