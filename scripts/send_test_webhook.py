"""
Send a sample TMS webhook to a running instance.

Posts a drayage shipment with an MBL and a container number, then prints
the response. Run it twice with the same --shipment-id to exercise the
UPDATE path.

Usage:
    python scripts/send_test_webhook.py --url http://localhost:8000 --shipment-id 555
"""

import argparse
import os
import sys
from datetime import datetime, timedelta, timezone

import requests
from dotenv import load_dotenv

load_dotenv()


def build_payload(shipment_id: str, mbl: str, container: str, shipment_type: str, status: str) -> dict:
    """A realistic drayage payload: port pickup, warehouse delivery."""
    now = datetime.now(timezone.utc)
    pickup_at = (now + timedelta(days=1)).strftime("%Y-%m-%dT%H:%M:%S.000Z")
    delivery_at = (now + timedelta(days=3)).strftime("%Y-%m-%dT%H:%M:%S.000Z")

    references = [
        {"referenceType": "Shipment Id", "value": shipment_id},
        {"referenceType": "Container Number", "value": container},
        {"referenceType": "Shipper Reference Number", "value": f"BK-{shipment_id}"},
    ]
    if mbl:
        references.append({"referenceType": "MAWB Number", "value": mbl})

    return {
        "shipmentId": int(shipment_id) if shipment_id.isdigit() else shipment_id,
        "shipmentType": shipment_type,
        "status": status,
        "customer": {
            "name": "Acme Imports",
            "office": "Oakland",
            "salesRepNames": "Jordan Lee, Sam Patel",
        },
        "shipmentReferenceNumbers": references,
        "stops": [
            {
                "stopType": "First Pickup",
                "companyName": "Port of Oakland",
                "city": "Oakland",
                "state": "CA",
                "estimatedReadyDateTime": pickup_at,
            },
            {
                "stopType": "Last Drop",
                "companyName": "Acme Warehouse",
                "city": "Fresno",
                "state": "CA",
                "estimatedReadyDateTime": delivery_at,
            },
        ],
        "commodities": [
            {"description": "Porcelain tile", "weightTotal": 42000, "piecesTotal": 20},
        ],
        "carrierList": [{"name": "Bay Drayage"}],
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Send a test TMS webhook")
    parser.add_argument("--url", default="http://localhost:8000", help="Base URL of the API")
    parser.add_argument("--shipment-id", default="555", help="TMS shipment id")
    parser.add_argument("--mbl", default="MBLX1", help="MBL number (empty string for none)")
    parser.add_argument("--container", default="MSCU1234567", help="Container number")
    parser.add_argument("--type", dest="shipment_type", default="Drayage", help="Shipment type")
    parser.add_argument("--status", default="Booked", help="TMS status")
    parser.add_argument(
        "--secret",
        default=os.environ.get("TMS_WEBHOOK_SECRET"),
        help="Shared secret (defaults to TMS_WEBHOOK_SECRET)"
    )
    args = parser.parse_args()

    payload = build_payload(args.shipment_id, args.mbl, args.container, args.shipment_type, args.status)
    headers = {"x-tms-signature": args.secret} if args.secret else {}

    endpoint = f"{args.url.rstrip('/')}/api/webhooks/tms"
    print(f"POST {endpoint} (shipmentId={args.shipment_id}, type={args.shipment_type})")

    try:
        response = requests.post(endpoint, json=payload, headers=headers, timeout=30)
    except requests.exceptions.RequestException as e:
        print(f"✗ Request failed: {e}")
        return 1

    print(f"{'✓' if response.ok else '✗'} {response.status_code}: {response.text}")
    return 0 if response.ok else 1


if __name__ == "__main__":
    sys.exit(main())
