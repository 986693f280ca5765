"""
Send a test incident to the backend, the way the detection pipeline does.
A second run for the same screen should come back 409 (open incident exists).

Usage: python scripts/test/simulate_incident.py --screen 1
       python scripts/test/simulate_incident.py --screen 1 --defect segment_off --defect no_signal
       python scripts/test/simulate_incident.py --resolve 5
"""

import argparse
import requests

BACKEND_URL = "http://localhost:8080/api/v1"


def create(screen: int, defects: list[str], photo: str = None, api_key: str = None):
    payload = {"video_screen": screen, "defect_types": defects or ["segment_off"]}
    if photo:
        payload["defect_photo"] = photo
    headers = {"X-API-Key": api_key} if api_key else {}
    resp = requests.post(f"{BACKEND_URL}/incidents", json=payload, headers=headers, timeout=10)
    print(f"POST /incidents → {resp.status_code}")
    print(resp.text)


def resolve(incident_id: int, api_key: str = None):
    headers = {"X-API-Key": api_key} if api_key else {}
    resp = requests.patch(f"{BACKEND_URL}/incidents/{incident_id}",
                          json={"status": "resolved"}, headers=headers, timeout=10)
    print(f"PATCH /incidents/{incident_id} → {resp.status_code}")
    print(resp.text)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Simulate incident traffic")
    parser.add_argument("--screen", type=int, help="Screen id to open an incident for")
    parser.add_argument("--defect", action="append", default=[], help="Defect code (repeatable)")
    parser.add_argument("--photo", help="Defect photo file id")
    parser.add_argument("--resolve", type=int, help="Incident id to resolve instead")
    parser.add_argument("--url", default=BACKEND_URL)
    parser.add_argument("--api-key")
    args = parser.parse_args()

    BACKEND_URL = args.url
    if args.resolve:
        resolve(args.resolve, args.api_key)
    elif args.screen:
        create(args.screen, args.defect, args.photo, args.api_key)
    else:
        parser.error("either --screen or --resolve is required")
