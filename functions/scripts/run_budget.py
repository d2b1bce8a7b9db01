"""
Generate a budget locally from a narrative and write it to JSON.

Progress events are printed as they arrive. Intended for debugging the
pipeline against the Firestore emulator (catalogs must be seeded there).

Usage (Firestore emulator):
  export FIRESTORE_EMULATOR_HOST="127.0.0.1:8080"
  export GCLOUD_PROJECT="budget-engine-dev"
  python scripts/run_budget.py --narrative "Reformar baño de 6 m2 con plato de ducha" --out budget.json
  python scripts/run_budget.py --narrative-file obra.txt --mode chapters --total-area 90
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import socket
import sys
from typing import Any, Dict

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def _check_emulator_reachable() -> None:
    """Fail fast if FIRESTORE_EMULATOR_HOST is set but not reachable."""
    host = os.environ.get("FIRESTORE_EMULATOR_HOST")
    if not host or ":" not in host:
        return
    h, p = host.rsplit(":", 1)
    try:
        port = int(p)
    except ValueError:
        return

    try:
        with socket.create_connection((h, port), timeout=1.5):
            return
    except OSError as e:
        raise RuntimeError(
            f"FIRESTORE_EMULATOR_HOST is set to '{host}' but it's not reachable. "
            f"Is the Firestore emulator running? Underlying error: {e}"
        )


def _print_event(event: Dict[str, Any]) -> None:
    data = event.get("data", {})
    if event["type"] == "item_resolved":
        item = data.get("item", {})
        label = item.get("description") or item.get("name")
        print(f"  [{data.get('status')}] {label} -> {item.get('totalPrice')} €")
    else:
        print(f"- {event['type']}: {json.dumps(data, ensure_ascii=False)[:160]}")


async def _run(args: argparse.Namespace, narrative: str) -> Dict[str, Any]:
    from agents.factory import create_budget_orchestrator
    from services.firestore_service import FirestoreService
    from services.generation_events import CallbackEventSink

    firestore_service = FirestoreService()
    orchestrator = create_budget_orchestrator(
        firestore_service=firestore_service,
        event_sink=CallbackEventSink([_print_event])
    )

    session_id = args.session_id or "local-run"
    if args.mode == "chapters":
        budget = await orchestrator.generate_by_chapters(
            narrative,
            session_id=session_id,
            total_area=args.total_area
        )
    else:
        budget = await orchestrator.generate(narrative, session_id=session_id)

    if args.save:
        await firestore_service.save_budget(budget)
        print(f"Saved budgets/{budget.id}")

    return budget.to_firestore()


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate a budget from a renovation narrative")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--narrative", help="Narrative text")
    source.add_argument("--narrative-file", help="Path to a UTF-8 text file with the narrative")
    parser.add_argument("--mode", choices=["flat", "chapters"], default="flat")
    parser.add_argument("--total-area", type=float, required=False, help="Total area in m2 (chapters mode)")
    parser.add_argument("--session-id", required=False, help="Session ID attached to progress events")
    parser.add_argument("--out", required=False, help="Output file path (defaults to ./budget.json)")
    parser.add_argument("--save", action="store_true", help="Also store the budget in Firestore")
    args = parser.parse_args()

    if args.narrative_file:
        with open(args.narrative_file, "r", encoding="utf-8") as f:
            narrative = f.read()
    else:
        narrative = args.narrative

    import firebase_admin

    try:
        _check_emulator_reachable()
    except RuntimeError as e:
        print(str(e))
        return 3

    if not firebase_admin._apps:
        project_id = os.environ.get("GCLOUD_PROJECT") or os.environ.get("FIREBASE_PROJECT_ID")
        firebase_admin.initialize_app(options={"projectId": project_id} if project_id else None)

    from config.errors import ExtractionError

    try:
        budget = asyncio.run(_run(args, narrative))
    except ExtractionError as e:
        print(f"Generation failed: {e.message}")
        return 2

    out_path = args.out or "budget.json"
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(budget, f, indent=2, ensure_ascii=False)

    print(f"Wrote {out_path} (total {budget['totalEstimated']:.2f} €)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
