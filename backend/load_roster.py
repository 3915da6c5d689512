"""
Roster Loader Script - imports a course roster JSON file via the API.

The file lists student numbers and, where known, real emails. Students
without an email are enrolled under the student_<id>@temp.com placeholder
until they sign in.

File format:
    {"course_id": "...", "students": [{"student_id": 2104101, "email": "..."}, ...]}

Usage:
    python load_roster.py roster.json                          # Uses default URL
    python load_roster.py roster.json http://localhost:8000    # Custom API URL
"""

import json
import os
import sys

import httpx


def post_json(url, data):
    with httpx.Client(timeout=30.0) as client:
        resp = client.post(url, json=data)
        resp.raise_for_status()
        return resp.json()


def build_payload(raw):
    """Transform the roster file into the request body expected by the API."""
    students = []
    for entry in raw.get("students", []):
        student_id = entry.get("student_id") or entry.get("studentId")
        if not student_id:
            print(f"  Skipping entry without student_id: {entry}")
            continue
        students.append({
            "student_id": int(student_id),
            "student_email": entry.get("email") or entry.get("student_email"),
        })
    return {"students": students}


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    roster_file = sys.argv[1]
    api_url = sys.argv[2] if len(sys.argv) > 2 else os.getenv("API_URL", "http://localhost:8000")

    if not os.path.exists(roster_file):
        print(f"Error: Could not find {roster_file}")
        sys.exit(1)

    print(f"Loading roster from: {roster_file}")
    with open(roster_file, 'r') as f:
        raw = json.load(f)

    course_id = raw.get("course_id")
    if not course_id:
        print("Error: roster file has no course_id")
        sys.exit(1)

    payload = build_payload(raw)
    placeholders = sum(1 for s in payload["students"] if not s["student_email"])
    roster_url = f"{api_url}/api/courses/{course_id}/roster"

    print(f"Found {len(payload['students'])} students ({placeholders} without email)")
    print(f"Sending to: {roster_url}")
    print()

    try:
        result = post_json(roster_url, payload)
    except httpx.HTTPStatusError as e:
        print(f"HTTP Error {e.response.status_code}: {e.response.text}")
        sys.exit(1)
    except httpx.HTTPError as e:
        print(f"Request failed: {e}")
        sys.exit(1)

    print("=" * 60)
    print("ROSTER IMPORT SUMMARY")
    print("=" * 60)
    print(f"  Course:    {result.get('course_id', '?')}")
    print(f"  Imported:  {result.get('imported', '?')}")
    print("=" * 60)


if __name__ == "__main__":
    main()
