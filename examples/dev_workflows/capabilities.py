"""
Simulated task-runners for the demo workflows.

Each capability takes the task payload and returns an output mapping or a
TaskResult. Nothing here touches a real repository; the failure patterns are
deterministic so the loops and gates have something to do.
"""

import time
from typing import Any

from phaseflow import TaskResult
from phaseflow.infrastructure import CapabilityRegistry


def implement(payload: dict[str, Any]) -> dict[str, Any]:
    issue = payload["input"].get("issue", "unspecified issue")
    notes = payload.get("revision_feedback") or ""
    return {
        "summary": f"Patched handling of: {issue}",
        "files": ["src/parser.py"],
        "addresses_feedback": notes,
    }


def run_tests(payload: dict[str, Any]) -> dict[str, Any]:
    # The first attempt always leaves one failing test behind
    failures = 1 if payload.get("attempt", 1) == 1 else 0
    return {"failures": failures, "ran": 42}


def judge_tests(payload: dict[str, Any]) -> TaskResult:
    failures = sum(r["output"].get("failures", 0) for r in payload["results"])
    if failures:
        return TaskResult.success(
            {"passed": False}, diagnostics=f"{failures} test(s) failing"
        )
    return TaskResult.success({"passed": True})


def explore(area: str, delay: float):
    def capability(payload: dict[str, Any]) -> dict[str, Any]:
        time.sleep(delay)
        return {"area": area, "findings": [f"{area}: nothing blocking"]}

    return capability


def review_code(payload: dict[str, Any]) -> dict[str, Any]:
    return {"comments": [] if payload.get("attempt", 1) > 1 else ["missing docstring"]}


def judge_review(payload: dict[str, Any]) -> TaskResult:
    comments = [c for r in payload["results"] for c in r["output"].get("comments", [])]
    if comments:
        return TaskResult.success({"passed": False}, diagnostics="; ".join(comments))
    return TaskResult.success({"passed": True})


def finalize(payload: dict[str, Any]) -> dict[str, Any]:
    return {"merged": True, "artifacts_seen": sorted(payload["artifacts"])}


def build_registry() -> CapabilityRegistry:
    """Registry holding every demo capability (entry points are not scanned)."""
    return (
        CapabilityRegistry(discover=False)
        .register("implement", implement)
        .register("run-tests", run_tests)
        .register("judge-tests", judge_tests)
        .register("explore-code", explore("code", 0.3))
        .register("explore-docs", explore("docs", 0.1))
        .register("explore-tests", explore("tests", 0.2))
        .register("review-code", review_code)
        .register("judge-review", judge_review)
        .register("finalize", finalize)
    )
