"""
Execution Context — the per-run variable bag a flow walks with.

One context is created per flow run and discarded when the run settles.
It behaves like a dict of named variables (QUERY steps write their
`storeAs` results into it) plus a few reserved, read-only roots:

    contact    the Contact being routed
    instance   tenant instance name
    sectorId   sector the flow belongs to (also: sector_id)

so `${contact.customerId}` and `${loyalty.OPERADOR}` resolve through the
same dot-path walk.
"""
from __future__ import annotations

from collections.abc import MutableMapping
from typing import Any, Iterator, Optional

from flows.logger import ProcessingLogger
from models.schemas import Contact

RESERVED_KEYS = frozenset({"contact", "instance", "sectorId", "sector_id"})


class ExecutionContext(MutableMapping):
    """Mutable variables of one contact's pass through a flow."""

    def __init__(
        self,
        contact: Contact,
        logger: ProcessingLogger,
        instance: str = "",
        sector_id: Optional[int] = None,
        variables: Optional[dict[str, Any]] = None,
    ):
        self.contact = contact
        self.logger = logger
        self.instance = instance
        self.sector_id = sector_id
        self.variables: dict[str, Any] = dict(variables or {})

    def _reserved(self) -> dict[str, Any]:
        return {
            "contact": self.contact,
            "instance": self.instance,
            "sectorId": self.sector_id,
            "sector_id": self.sector_id,
        }

    def __getitem__(self, key: str) -> Any:
        if key in RESERVED_KEYS:
            return self._reserved()[key]
        return self.variables[key]

    def __setitem__(self, key: str, value: Any) -> None:
        if key in RESERVED_KEYS:
            raise KeyError(f"'{key}' is a reserved context name")
        self.variables[key] = value

    def __delitem__(self, key: str) -> None:
        if key in RESERVED_KEYS:
            raise KeyError(f"'{key}' is a reserved context name")
        del self.variables[key]

    def __iter__(self) -> Iterator[str]:
        yield "contact"
        yield "instance"
        yield "sectorId"
        yield from self.variables

    def __len__(self) -> int:
        return 3 + len(self.variables)

    def __repr__(self) -> str:
        return (f"<ExecutionContext contact={self.contact.id} "
                f"vars={sorted(self.variables)}>")
