"""
Core data models for the routing flow engine.
These are the universal types shared across all modules.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


ADMIN_USER_ID = -1    # conventional "administrator / supervisor" target


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class ChatType(str, Enum):
    RECEPTIVE = "RECEPTIVE"
    ACTIVE = "ACTIVE"


class ChatPriority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class ProcessStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


# ──────────────────────────────────────────────────────────────
#  Contact — the party whose inbound conversation is routed
# ──────────────────────────────────────────────────────────────

class Contact(BaseModel):
    """A messaging contact. Unknown backend columns are kept as extras."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int
    name: str = ""
    phone: str = ""
    instance: str = ""
    customer_id: Optional[int] = Field(default=None, alias="customerId")
    is_only_admin: bool = Field(default=False, alias="isOnlyAdmin")


# ──────────────────────────────────────────────────────────────
#  ChatPayload — the routing decision
# ──────────────────────────────────────────────────────────────

class ChatPayload(BaseModel):
    """
    Terminal output of a flow run: who receives the conversation.
    user_id == -1 targets the administrator / supervisor queue.
    """
    model_config = ConfigDict(frozen=True)

    instance: str
    type: ChatType = ChatType.RECEPTIVE
    user_id: Optional[int] = None
    wallet_id: Optional[int] = None
    sector_id: int
    contact_id: int
    priority: Optional[ChatPriority] = None
    system_message: Optional[str] = None


# ──────────────────────────────────────────────────────────────
#  Flow definitions — persisted, read-only for the engine
# ──────────────────────────────────────────────────────────────

class StepDefinition(BaseModel):
    """One persisted step record of a flow."""
    model_config = ConfigDict(populate_by_name=True)

    type: str
    step_number: int = Field(alias="stepNumber")
    config: dict[str, Any] = {}
    connections: dict[str, Any] = {}          # branching targets (onTrue, routes, …)
    next_step_id: Optional[int] = Field(default=None, alias="nextStepId")
    fallback_step_id: Optional[int] = Field(default=None, alias="fallbackStepId")
    enabled: bool = True
    description: str = ""

    @model_validator(mode="before")
    @classmethod
    def _null_maps(cls, data: Any) -> Any:
        # persisted rows store missing config/connections as NULL
        if isinstance(data, dict):
            data = dict(data)
            for key in ("config", "connections"):
                if key in data and data[key] is None:
                    data[key] = {}
        return data


class FlowDefinition(BaseModel):
    """The ordered step graph for one (instance, sector) pair."""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[Union[int, str]] = None
    instance: str
    sector_id: int = Field(alias="sectorId")
    description: str = ""
    steps: list[StepDefinition] = []

    def sorted_steps(self) -> list[StepDefinition]:
        return sorted(self.steps, key=lambda s: s.step_number)

    def get_step(self, step_number: int) -> Optional[StepDefinition]:
        return next((s for s in self.steps if s.step_number == step_number), None)

    @property
    def key(self) -> str:
        return f"{self.instance}:{self.sector_id}"


# ──────────────────────────────────────────────────────────────
#  Runtime step records
# ──────────────────────────────────────────────────────────────

class StepConfig(BaseModel):
    """Construction record handed to the step registry."""
    id: int
    instance: str
    sector_id: int
    config: dict[str, Any] = {}
    connections: dict[str, Any] = {}
    next_step_id: Optional[int] = None
    fallback_step_id: Optional[int] = None


class StepResult(BaseModel):
    """
    Outcome of one step: either continue at next_step_id, or finish
    with a chat payload. Exactly one of the two is populated.
    """
    model_config = ConfigDict(frozen=True)

    is_final: bool
    next_step_id: Optional[int] = None
    chat: Optional[ChatPayload] = None

    @model_validator(mode="after")
    def _one_branch(self) -> "StepResult":
        if self.is_final and self.next_step_id is not None:
            raise ValueError("final step result cannot carry a next step")
        if not self.is_final and self.chat is not None:
            raise ValueError("continue step result cannot carry a chat payload")
        return self

    @classmethod
    def continue_at(cls, step_id: Optional[int]) -> "StepResult":
        return cls(is_final=False, next_step_id=step_id)

    @classmethod
    def finish(cls, chat: Optional[ChatPayload]) -> "StepResult":
        return cls(is_final=True, chat=chat)


# ──────────────────────────────────────────────────────────────
#  Collaborator records
# ──────────────────────────────────────────────────────────────

class OnlineSession(BaseModel):
    """A logged-in operator session as reported by the session directory."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(alias="userId")
    sector_id: int = Field(alias="sectorId")
    instance: str = ""


class SectorUser(BaseModel):
    """Operator row of the legacy `operadores` table."""
    model_config = ConfigDict(extra="allow")

    CODIGO: int
    NOME: str = ""
    SETOR: Optional[int] = None
    NIVEL: str = ""


class CustomerSchedule(BaseModel):
    """Latest legacy campaign schedule row (`campanhas_clientes`)."""
    model_config = ConfigDict(extra="allow")

    CODIGO: int
    CLIENTE: int
    OPERADOR: Optional[int] = 0
    CAMPANHA: Optional[int] = None
    FIDELIZA: Optional[str] = None


class ProcessLog(BaseModel):
    """Finished record of one logged process (e.g. one flow run)."""
    instance: str
    process_name: str
    process_id: str
    status: ProcessStatus
    start_time: datetime
    end_time: datetime
    duration_ms: int
    input: Any = None
    output: list[Any] = []
    error: Optional[str] = None
    log_entries: list[str] = []
