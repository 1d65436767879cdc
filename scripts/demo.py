#!/usr/bin/env python3
"""
Taxonomy Governance: End-to-End Demo Script

Walks through the governance loop against a running gateway: four
evaluation recipes, then an editing session where a cross-theme rename
is turned into its workaround, applied, and cleared from the processing
gate.

Usage:
    1. uvicorn main:app --port 8000
    2. python scripts/demo.py

Requires: httpx
"""

from __future__ import annotations

import json
import os
import sys
import time

import httpx

BASE_URL = os.environ.get("GATEWAY_URL", "http://localhost:8000")

# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------

ESC = "\033["
RESET, BOLD, DIM = f"{ESC}0m", f"{ESC}1m", f"{ESC}2m"
RED, GREEN, YELLOW, BLUE, MAGENTA, CYAN = (f"{ESC}{n}m" for n in (91, 92, 93, 94, 95, 96))

BADGES = {
    "APPROVE": f"{ESC}42m",
    "REJECT": f"{ESC}41m",
    "WORKAROUND": f"{ESC}43m",
    "PARTIAL": f"{ESC}43m",
    "APPROVE WITH CONDITIONS": f"{ESC}43m",
}


def section(title: str, color: str = CYAN):
    rule = f"{color}{BOLD}{'-' * 60}{RESET}"
    print(f"\n{rule}\n{color}{BOLD} {title}{RESET}\n{rule}\n")


def say(label: str, text: str, color: str = ""):
    print(f"  {color}{BOLD}{label}{RESET} {text}")


def dim(text: str):
    print(f"    {DIM}{text}{RESET}")


def dump(data: dict):
    for line in json.dumps(data, indent=2, default=str).splitlines():
        dim(line)


def verdict_badge(verdict: str) -> str:
    return f"{BADGES.get(verdict, '')}{BOLD} {verdict} {RESET}"


def show_evaluation(body: dict):
    print(f"\n  {verdict_badge(body.get('verdict', '?'))}  "
          f"confidence={body.get('confidence', '?')}  risk={body.get('operationRisk', '?')}\n")
    for risk in body.get("risks", []):
        print(f"    {RED}x{RESET} {risk}")
    if body.get("workaround"):
        print(f"\n    {YELLOW}-> [{body.get('workaroundType', '?')}] {body['workaround']}{RESET}")
    for item in body.get("partialItems", []):
        mark = "x" if item["included"] else " "
        print(f"    [{mark}] {item['name']}  {DIM}{item.get('reason', '')}{RESET}")


def wait_resolved(entry_id: str, attempts: int = 100) -> dict:
    for _ in range(attempts):
        entry = httpx.get(f"{BASE_URL}/entries/{entry_id}").json()
        if entry["state"] != "analyzing":
            return entry
        time.sleep(0.1)
    say("FAIL", f"{entry_id} is still analyzing", RED)
    sys.exit(1)


# ---------------------------------------------------------------------------
# Recipes
# ---------------------------------------------------------------------------

RECIPES = [
    (
        "Clean rename", GREEN, "rename-subtheme",
        {"currentName": "Unknown Error", "newName": "Scheduling Error Messages"},
    ),
    (
        "Delete a catch-all", RED, "delete-subtheme",
        {"currentName": "Miscellaneous", "volume": 387, "siblingSubThemes": ["Calendar Connection Errors"]},
    ),
    (
        "Merge across unrelated parents", RED, "merge-subtheme",
        {
            "sourceName": "Refund Delays", "destinationName": "Frozen Video",
            "sourceParentTheme": "Billing", "destinationParentTheme": "Video Quality",
        },
    ),
    (
        "Split into an existing sibling", YELLOW, "split-subtheme",
        {
            "currentName": "Unknown Error During Scheduling",
            "proposedSplits": ["Calendar Connection Errors", "Timezone Errors", "Invite Errors"],
            "siblingSubThemes": ["Calendar Connection Errors", "Permission Denied Messages"],
        },
    ),
]

CROSS_THEME_RENAME = {
    "currentName": "Unknown Error",
    "newName": "One Click Join",
    "parentThemeName": "Scheduling Blocked by Error Messages",
    "crossThemeSubThemes": [{"name": "One Click Join", "parentTheme": "Easy Joining"}],
}


def check_health():
    section("Gateway health", BLUE)
    try:
        body = httpx.get(f"{BASE_URL}/health", timeout=5).json()
    except httpx.HTTPError as exc:
        say("FAIL", f"gateway unreachable at {BASE_URL}: {exc}", RED)
        dim("start it with: uvicorn main:app --port 8000")
        sys.exit(1)
    say("OK", f"{body.get('service', '?')} in {body.get('mode', '?')} mode", GREEN)


def run_recipes():
    for title, color, op, context in RECIPES:
        section(title, color)
        dim(f"POST /evaluate  {op}")
        r = httpx.post(f"{BASE_URL}/evaluate", json={"operationType": op, "context": context})
        show_evaluation(r.json())
        time.sleep(1)


def run_session():
    section("Editing session: cross-theme rename", MAGENTA)
    r = httpx.post(f"{BASE_URL}/changes", json={
        "nodeId": "st-unknown",
        "nodeName": "Unknown Error",
        "nodeLevel": "SubTheme",
        "operationType": "rename-subtheme",
        "context": CROSS_THEME_RENAME,
    })
    if r.status_code == 423:
        say("FAIL", "gateway is still processing a previous apply", RED)
        dump(r.json())
        sys.exit(1)
    entry = r.json()
    dim(f"{entry['kind']} {entry['id']}: {entry['description']}")

    analysis = wait_resolved(entry["id"])["analysis"]
    print(f"  {verdict_badge(analysis['verdict'])}  {analysis.get('workaround') or ''}")

    r = httpx.post(f"{BASE_URL}/entries/{entry['id']}/workaround")
    for change in r.json()["changes"]:
        say("+", f"[{change['field']}] {change['oldValue']} -> {change['newValue']}", CYAN)

    r = httpx.post(f"{BASE_URL}/drafts/apply")
    body = r.json()
    if r.status_code != 200:
        say("FAIL", body.get("error", f"HTTP {r.status_code}"), RED)
        sys.exit(1)
    processing = body["processing"]
    say("OK", f"applied {processing['appliedCount']} change(s), processing for {processing['estimate']}", GREEN)

    body = httpx.post(f"{BASE_URL}/processing/complete").json()
    say("OK", f"processing gate cleared (isProcessing={body['processing']['isProcessing']})", GREEN)


def main():
    section("Taxonomy governance: edit decision demo", MAGENTA)
    dim(f"gateway {BASE_URL}")
    check_health()
    run_recipes()
    run_session()
    print()


if __name__ == "__main__":
    main()
