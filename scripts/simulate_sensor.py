"""
Simple simulator: register a product and send a few sensor readings to the API.
Run:
    python scripts/simulate_sensor.py
"""
import os
import time
import random
import requests

from utils import to_fixed

API = os.getenv("REGISTRY_API", "http://localhost:8000")
FARMER = os.getenv("FARMER_ADDRESS", "0x70997970C51812dc3A010C7d01b50e0d17dc79C8")

def main():
    headers = {"X-Caller-Address": FARMER}
    r = requests.post(f"{API}/api/products", headers=headers, json={
        "name": "Hydro Lettuce",
        "category": "Vegetables",
        "location": "Mae Rim, Chiang Mai",
        "metadata_hash": "",
    })
    r.raise_for_status()
    product_id = r.json()["product"]["id"]
    print("registered product", product_id)

    for i in range(5):
        body = {
            "temperature": to_fixed(round(random.uniform(9, 18), 1)),
            "humidity": to_fixed(round(random.uniform(75, 95), 1)),
            "location": random.choice(["Field A", "Cold Room #1", "Truck CM-102"]),
        }
        rr = requests.post(f"{API}/api/products/{product_id}/iot", headers=headers, json=body)
        print("sensor", i, rr.status_code, rr.text)
        time.sleep(1)

    rr = requests.get(f"{API}/api/events/verify")
    print("event chain:", rr.status_code, rr.text)

if __name__ == "__main__":
    main()
