"""Shared test fixtures for the routing flow engine."""
import pytest
from typing import Any, Optional

from backend.connector import InMemoryChatCounter, InMemoryDataSource, InMemorySessionDirectory
from database.store_memory import InMemoryFlowStore
from flows.builder import FlowBuilder
from flows.context import ExecutionContext
from flows.logger import ProcessingLogger
from flows.register import register_all_steps
from flows.registry import StepRegistry
from flows.steps.base import StepServices
from models.schemas import Contact, StepConfig

INSTANCE = "vollo"
SECTOR = 3


@pytest.fixture(autouse=True)
def _reset_singletons():
    yield
    from config.settings import reset_settings
    from database.store_factory import reset_store
    from flows.registry import reset_step_registry
    reset_settings()
    reset_store()
    reset_step_registry()


@pytest.fixture
def registry() -> StepRegistry:
    return register_all_steps(StepRegistry())


@pytest.fixture
def data_source() -> InMemoryDataSource:
    return InMemoryDataSource()


@pytest.fixture
def sessions() -> InMemorySessionDirectory:
    return InMemorySessionDirectory()


@pytest.fixture
def chat_counter() -> InMemoryChatCounter:
    return InMemoryChatCounter()


@pytest.fixture
def services(data_source, sessions, chat_counter) -> StepServices:
    return StepServices(data_source=data_source, sessions=sessions, chat_counter=chat_counter)


@pytest.fixture
def flow_store() -> InMemoryFlowStore:
    return InMemoryFlowStore()


@pytest.fixture
def builder(flow_store, services, registry) -> FlowBuilder:
    return FlowBuilder(flow_store, services, registry, max_steps=50)


@pytest.fixture
def plog() -> ProcessingLogger:
    return ProcessingLogger(INSTANCE, "test-run", process_id="t-1")


@pytest.fixture
def contact() -> Contact:
    return Contact(id=42, name="Maria Souza", phone="5511999990000",
                   instance=INSTANCE, customerId=1234)


@pytest.fixture
def admin_contact() -> Contact:
    return Contact(id=42, name="Board Member", isOnlyAdmin=True, instance=INSTANCE)


@pytest.fixture
def make_context(contact, plog):
    """Build an ExecutionContext; extra kwargs become context variables."""
    def _make(contact_: Optional[Contact] = None, **variables: Any) -> ExecutionContext:
        return ExecutionContext(
            contact_ or contact, plog, instance=INSTANCE, sector_id=SECTOR, variables=variables,
        )
    return _make


@pytest.fixture
def make_step(services):
    """Instantiate a step class directly with the shared services."""
    def _make(step_cls, config: dict = None, step_id: int = 1, next_step_id: int = None,
              fallback_step_id: int = None, connections: dict = None):
        return step_cls(
            StepConfig(
                id=step_id, instance=INSTANCE, sector_id=SECTOR,
                config=config or {}, connections=connections or {},
                next_step_id=next_step_id, fallback_step_id=fallback_step_id,
            ),
            services,
        )
    return _make
