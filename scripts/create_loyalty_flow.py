#!/usr/bin/env python3
"""
Seed the loyalty flow — customers go to their loyal operator, everything
else goes to supervision.

Rules:
  - Loyal operator found          → that operator, HIGH priority
  - OPERADOR 0 (system)           → supervision
  - OPERADOR -2 (invalid)         → supervision
  - No loyalty record / failure   → supervision

Usage:
    python scripts/create_loyalty_flow.py --instance vollo --sector 1
    python scripts/create_loyalty_flow.py --instance vollo --sector 1 --dry-run
    python scripts/create_loyalty_flow.py --instance vollo --sector 1 --backend sql
"""
import argparse
import asyncio
import json
import os
import sys

# Ensure app root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.schemas import FlowDefinition, StepDefinition  # noqa: E402

DESCRIPTION = "Loyalty with special handling (OPERADOR 0/-2)"
SUPERVISION_STEP = 100

LOYALTY_QUERY = """SELECT
      cc.OPERADOR,
      cc.FIDELIZA,
      c.CODIGO as CUSTOMER_ID,
      c.NOME as CUSTOMER_NAME
    FROM campanhas_clientes cc
    LEFT JOIN clientes c ON cc.CLIENTE = c.CODIGO
    WHERE c.CODIGO = ?
    ORDER BY cc.CODIGO DESC
    LIMIT 1"""


def build_loyalty_flow(instance: str, sector_id: int) -> FlowDefinition:
    steps = [
        StepDefinition(
            type="QUERY", step_number=1,
            config={
                "query": LOYALTY_QUERY,
                "params": ["${contact.customerId}"],
                "storeAs": "loyalty",
                "single": True,
                "required": False,
            },
            next_step_id=2, fallback_step_id=SUPERVISION_STEP,
            description="Fetch the customer's loyalty record",
        ),
        StepDefinition(
            type="CONDITION", step_number=2,
            config={"field": "loyalty.OPERADOR", "operator": "exists", "value": True,
                    "onTrue": 3, "onFalse": SUPERVISION_STEP},
            description="Customer has a loyal operator",
        ),
        StepDefinition(
            type="CONDITION", step_number=3,
            config={"field": "loyalty.OPERADOR", "operator": "equals", "value": 0,
                    "onTrue": SUPERVISION_STEP, "onFalse": 4},
            description="Reject OPERADOR = 0 (system)",
        ),
        StepDefinition(
            type="CONDITION", step_number=4,
            config={"field": "loyalty.OPERADOR", "operator": "equals", "value": -2,
                    "onTrue": SUPERVISION_STEP, "onFalse": 10},
            description="Reject OPERADOR = -2 (invalid or disabled operator)",
        ),
        StepDefinition(
            type="ASSIGN", step_number=10,
            config={
                "userId": "${loyalty.OPERADOR}",
                "priority": "HIGH",
                "systemMessage": "Loyal customer - priority service by the usual operator",
            },
            description="Assign to the loyal operator (even when offline)",
        ),
        StepDefinition(
            type="ASSIGN", step_number=SUPERVISION_STEP,
            config={
                "userId": -1,
                "priority": "NORMAL",
                "systemMessage": (
                    "Customer without valid loyalty or with a special OPERADOR (0/-2). "
                    "Supervision must decide who handles it."
                ),
            },
            description="Send to supervision",
        ),
    ]
    return FlowDefinition(instance=instance, sector_id=sector_id,
                          description=DESCRIPTION, steps=steps)


async def seed_loyalty_flow(store, instance: str, sector_id: int) -> FlowDefinition:
    """Validate and save the loyalty flow; raises ValueError when invalid."""
    from flows.registry import get_step_registry
    from flows.validation import validate_flow

    definition = build_loyalty_flow(instance, sector_id)
    errors = validate_flow(definition, get_step_registry())
    if errors:
        raise ValueError("Loyalty flow is invalid: " + "; ".join(errors))

    existing = await store.get_flow_definition(instance, sector_id)
    if existing is not None:
        print(f"Replacing existing flow {existing.id} ({existing.description or 'no description'})")
    return await store.save_flow_definition(definition)


def _print_flow(flow: FlowDefinition) -> None:
    print("Flow details:")
    print(f"  ID:          {flow.id}")
    print(f"  Instance:    {flow.instance}")
    print(f"  Sector:      {flow.sector_id}")
    print(f"  Description: {flow.description}")
    print(f"  Steps:       {len(flow.steps)}")
    for step in flow.sorted_steps():
        print(f"\n  [{step.step_number}] {step.type}")
        print(f"      {step.description}")
        if step.next_step_id is not None:
            print(f"      Next step: {step.next_step_id}")
        if step.fallback_step_id is not None:
            print(f"      Fallback:  {step.fallback_step_id}")


async def run(instance: str, sector_id: int, backend: str = None, dry_run: bool = False):
    if dry_run:
        definition = build_loyalty_flow(instance, sector_id)
        print(json.dumps(definition.model_dump(mode="json", by_alias=True), indent=2))
        return definition

    from config.settings import load_settings
    settings = load_settings()

    from database.store_factory import create_store
    backend = backend or settings.database.store_backend
    if backend == "sql":
        from database.session import init_db, close_db
        await init_db()

    store = create_store({"store_backend": backend,
                          "store_file_dir": settings.database.store_file_dir})
    try:
        flow = await seed_loyalty_flow(store, instance, sector_id)
    finally:
        if backend == "sql":
            await close_db()

    print("Flow created.\n")
    _print_flow(flow)
    return flow


def main(argv=None):
    parser = argparse.ArgumentParser(description="Seed the loyalty routing flow")
    parser.add_argument("--instance", default="vollo", help="Tenant instance")
    parser.add_argument("--sector", type=int, default=1, help="Sector id")
    parser.add_argument("--backend", choices=["sql", "memory", "file"],
                        help="Flow store backend (default: settings.yaml)")
    parser.add_argument("--dry-run", action="store_true",
                        help="Print the flow as JSON without saving it")
    args = parser.parse_args(argv)

    try:
        asyncio.run(run(args.instance, args.sector, args.backend, args.dry_run))
    except Exception as e:
        print(f"\nFailed: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
