#!/usr/bin/env python3
from __future__ import annotations

import importlib
import json
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fastapi.testclient import TestClient


@dataclass
class Scenario:
  name: str
  text: str
  expected_types: list[str]
  expected_labels: list[str] = field(default_factory=list)


SCENARIOS = [
  Scenario(
    name="Meal With Cooking Fat",
    text="Had salmon with rice, cooked in 1 tbsp olive oil.",
    expected_types=["log_meal"],
    expected_labels=["olive oil"],
  ),
  Scenario(
    name="Egg Portions",
    text="Breakfast was 2 eggs and a slice of toast.",
    expected_types=["log_meal"],
  ),
  Scenario(
    name="OTC Medication",
    text="Took 2 advil for a headache, it's about a 6 out of 10.",
    expected_types=["log_supplement", "log_symptom"],
  ),
  Scenario(
    name="Sleep",
    text="Slept from 11pm to 6:30am, woke up a few times, maybe a 2 out of 5.",
    expected_types=["log_sleep"],
  ),
  Scenario(
    name="Shopping",
    text="Add oat milk and bananas to my shopping list.",
    expected_types=["add_shopping_item"],
  ),
]


def item_labels(data: dict[str, Any]) -> list[str]:
  labels: list[str] = []
  for action in data.get("actions") or []:
    if action.get("type") != "log_meal":
      continue
    for item in action.get("data", {}).get("items") or []:
      label = item.get("label")
      if isinstance(label, str):
        labels.append(label.lower())
  return labels


def run() -> int:
  repo_root = Path(__file__).resolve().parents[1]
  backend_dir = repo_root / "backend"
  if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

  # Smoke runs call the real completion provider; keep their records apart.
  os.environ.setdefault("TIBERA_DB_PATH", str(repo_root / "tibera-smoke.sqlite"))

  backend_module = importlib.import_module("main")
  backend_module = importlib.reload(backend_module)
  if not backend_module.container.settings.configured:
    print("OPENAI_API_KEY is not set; nothing to smoke test.")
    return 2

  headers = {"Authorization": "Bearer smoke-user"}
  today = datetime.now(timezone.utc).date().isoformat()
  results: list[dict[str, Any]] = []

  with TestClient(backend_module.app) as client:
    for scenario in SCENARIOS:
      response = client.post(
        "/assistant/conversation",
        headers=headers,
        json={"text": scenario.text, "today": today},
      )
      result: dict[str, Any] = {
        "name": scenario.name,
        "text": scenario.text,
        "expected_types": scenario.expected_types,
        "status_code": response.status_code,
      }
      body = response.json()
      result["body"] = body
      if response.status_code != 200:
        result["pass"] = False
        result["error"] = body.get("error") or body.get("detail") or f"HTTP {response.status_code}"
        results.append(result)
        continue

      data = body.get("data") or {}
      actual_types = [action.get("type") for action in data.get("actions") or []]
      result["actual_types"] = actual_types
      result["decision"] = data.get("decision")
      missing = [kind for kind in scenario.expected_types if kind not in actual_types]
      labels = item_labels(data)
      missing_labels = [label for label in scenario.expected_labels if label not in labels]

      result["pass"] = not missing and not missing_labels
      if missing:
        result["error"] = f"Missing action types: {missing}"
      elif missing_labels:
        result["error"] = f"Missing meal items: {missing_labels}"
      results.append(result)

  passed = sum(1 for item in results if item.get("pass"))
  failed = len(results) - passed
  timestamp = datetime.now(timezone.utc).isoformat()
  settings = backend_module.container.settings

  report_lines = [
    "# Assistant Smoke Report",
    "",
    f"- Timestamp (UTC): `{timestamp}`",
    f"- Cheap model: `{settings.cheap_model}`",
    f"- Strong model: `{settings.strong_model}`",
    f"- Total scenarios: `{len(results)}`",
    f"- Passed: `{passed}`",
    f"- Failed: `{failed}`",
    "",
    "## Scenario Results",
    "",
  ]

  for item in results:
    status = "PASS" if item.get("pass") else "FAIL"
    report_lines.append(f"### {status} - {item['name']}")
    report_lines.append(f"- Utterance: `{item['text']}`")
    report_lines.append(f"- Expected types: `{item.get('expected_types')}`")
    report_lines.append(f"- Actual types: `{item.get('actual_types')}`")
    report_lines.append(f"- Status code: `{item.get('status_code')}`")
    if item.get("error"):
      report_lines.append(f"- Error: `{item['error']}`")
    report_lines.append("- Response payload:")
    report_lines.append("```json")
    report_lines.append(json.dumps(item.get("body"), indent=2, ensure_ascii=False))
    report_lines.append("```")
    report_lines.append("")

  report_path = repo_root / "ASSISTANT_SMOKE_REPORT.md"
  report_path.write_text("\n".join(report_lines), encoding="utf-8")
  print(f"Wrote report: {report_path}")
  print(f"Passed {passed}/{len(results)} scenarios.")

  return 0 if failed == 0 else 1


if __name__ == "__main__":
  raise SystemExit(run())
