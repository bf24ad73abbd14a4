"""
Flow validation — static checks run by authoring tools before a flow is
saved. The engine itself does not validate; a malformed flow fails at
run time instead.
"""
from __future__ import annotations

from collections import Counter
from typing import Any, Iterable, Optional

from pydantic import BaseModel

from flows.registry import StepRegistry
from models.schemas import FlowDefinition, StepDefinition


class FlowValidationResult(BaseModel):
    valid: bool
    errors: list[str] = []


def _branch_targets(step: StepDefinition) -> Iterable[tuple[str, Any]]:
    """(label, target) pairs of a branching step, connections before config."""
    sources = (step.connections, step.config)

    if step.type == "CONDITION":
        for key in ("onTrue", "onFalse"):
            target = next((s[key] for s in sources if s.get(key) is not None), None)
            if target is not None:
                yield key, target

    elif step.type == "ROUTER":
        routes = next((s["routes"] for s in sources if s.get("routes")), {}) or {}
        for value, target in routes.items():
            yield f'route "{value}"', target
        for key in ("defaultRoute", "default"):
            target = next((s[key] for s in sources if s.get(key) is not None), None)
            if target is not None:
                yield key, target
                break


def validate_flow(definition: FlowDefinition, registry: Optional[StepRegistry] = None) -> list[str]:
    """Return the list of problems found in a flow; empty means valid."""
    errors: list[str] = []
    steps = definition.sorted_steps()
    numbers = {s.step_number for s in steps}

    if 1 not in numbers:
        errors.append("Flow must have a step with stepNumber = 1")

    for number, count in sorted(Counter(s.step_number for s in steps).items()):
        if count > 1:
            errors.append(f"Step #{number} is defined {count} times")

    for step in steps:
        n = step.step_number
        if step.next_step_id is not None and step.next_step_id not in numbers:
            errors.append(f"Step #{n} references non-existent next step #{step.next_step_id}")
        if step.fallback_step_id is not None and step.fallback_step_id not in numbers:
            errors.append(f"Step #{n} references non-existent fallback step #{step.fallback_step_id}")
        for label, target in _branch_targets(step):
            if target not in numbers:
                errors.append(f"Step #{n} {label} references non-existent step #{target}")

    if steps and not any(s.next_step_id is None for s in steps):
        errors.append("Flow must have at least one final step (nextStepId = null)")

    for step in steps:
        if step.next_step_id == step.step_number:
            errors.append(f"Step #{step.step_number} references itself (infinite loop)")

    if registry is not None:
        for step in steps:
            meta = registry.get_metadata(step.type)
            if meta is None:
                errors.append(f"Step #{step.step_number} has unregistered type {step.type}")
                continue
            for key in meta.required_config:
                if key not in step.config:
                    errors.append(
                        f"Step #{step.step_number} ({step.type}) is missing required config: {key}"
                    )

    return errors


def validate_flow_result(
    definition: FlowDefinition, registry: Optional[StepRegistry] = None,
) -> FlowValidationResult:
    errors = validate_flow(definition, registry)
    return FlowValidationResult(valid=not errors, errors=errors)
