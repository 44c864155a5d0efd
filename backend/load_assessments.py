"""
Assessment Loader Script - creates assessments from a JSON file via the API.

The file holds a list of assessment payloads in the same shape the
create endpoint accepts (title, type, designation, timer, questions, ...).
Each one is posted on behalf of the given employer.

Usage:
    python load_assessments.py assessments.json EMPLOYER_ID
    python load_assessments.py assessments.json EMPLOYER_ID http://localhost:8000
"""

import json
import os
import sys

import httpx


def main():
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(1)

    data_file = sys.argv[1]
    employer_id = sys.argv[2]
    api_url = sys.argv[3] if len(sys.argv) > 3 else os.getenv("API_URL", "http://localhost:8000")
    create_url = f"{api_url}/api/employer/assessments"

    if not os.path.exists(data_file):
        print(f"Error: Could not find {data_file}")
        sys.exit(1)

    with open(data_file, 'r') as f:
        payloads = json.load(f)

    print(f"Found {len(payloads)} assessments to create")
    print(f"Sending to: {create_url}")
    print()

    headers = {"X-User-Id": employer_id, "X-User-Role": "employer"}
    created = 0
    failed = 0

    with httpx.Client(timeout=30.0, headers=headers) as client:
        for payload in payloads:
            title = payload.get("title", "?")
            resp = client.post(create_url, json=payload)
            body = resp.json()
            if resp.status_code == 201 and body.get("success"):
                created += 1
                assessment = body["assessment"]
                print(f"  ✅ #{assessment['serial_number']} {title} "
                      f"({assessment['total_questions']} questions)")
            else:
                failed += 1
                print(f"  ❌ {title}: {body.get('message', resp.status_code)}")

    print()
    print("=" * 60)
    print(f"  Created: {created}")
    print(f"  Failed:  {failed}")
    print("=" * 60)

    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
