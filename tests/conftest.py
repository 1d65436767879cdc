"""Shared fixtures for the taxonomy governance test suite."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from taxonomy_governance.config import GatewayConfig
from taxonomy_governance.decision import DecisionService
from taxonomy_governance.policy_engine import PolicyEvaluator
from taxonomy_governance.taxonomy import Taxonomy


def sample_tree() -> dict[str, Any]:
    return {
        "level1": [
            {
                "id": "zoom-meetings",
                "name": "Zoom Meetings",
                "count": 4200,
                "children": [
                    {
                        "id": "scheduling-joining",
                        "name": "Scheduling & Joining",
                        "count": 2100,
                        "children": [
                            {
                                "id": "schedule-a-meeting",
                                "name": "Schedule a Meeting",
                                "count": 1097,
                                "themes": [
                                    {
                                        "id": "theme-sched-errors",
                                        "name": "Scheduling Blocked by Error Messages",
                                        "category": "complaint",
                                        "count": 685,
                                        "children": [
                                            {"id": "st-unknown", "name": "Unknown Error During Scheduling", "count": 142},
                                            {"id": "st-calendar", "name": "Calendar Connection Errors", "count": 89},
                                            {"id": "st-permission", "name": "Permission Denied Messages", "count": 67},
                                            {"id": "st-misc", "name": "Miscellaneous Scheduling Errors", "count": 387},
                                        ],
                                    },
                                    {
                                        "id": "theme-locate",
                                        "name": "Struggle to Locate Schedule Option",
                                        "category": "complaint",
                                        "count": 412,
                                        "children": [
                                            {"id": "st-hidden", "name": "Button Hidden in Menu", "count": 156},
                                            {"id": "st-mobile", "name": "Different on Mobile vs Desktop", "count": 134},
                                        ],
                                    },
                                ],
                            },
                            {
                                "id": "join-via-link",
                                "name": "Join via Link",
                                "count": 634,
                                "themes": [
                                    {
                                        "id": "theme-sched-errors-link",
                                        "name": "Scheduling Blocked by Error Messages",
                                        "category": "complaint",
                                        "count": 685,
                                        "children": [],
                                    },
                                    {
                                        "id": "theme-link-praise",
                                        "name": "Easy Joining",
                                        "category": "praise",
                                        "count": 90,
                                        "children": [
                                            {"id": "st-one-click", "name": "One Click Join", "count": 90},
                                        ],
                                    },
                                ],
                            },
                            {
                                "id": "meeting-registration",
                                "name": "Meeting Registration",
                                "count": 445,
                                "themes": [],
                            },
                        ],
                    },
                ],
            },
        ],
    }


@pytest.fixture
def taxonomy() -> Taxonomy:
    return Taxonomy.from_dict(sample_tree())


@pytest.fixture
def evaluator() -> PolicyEvaluator:
    return PolicyEvaluator()


@pytest.fixture
def local_decision() -> DecisionService:
    return DecisionService(config=GatewayConfig())
