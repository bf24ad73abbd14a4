"""Tests for the step type registry and built-in registration."""
import pytest

from flows.errors import MissingStepConfigError, UnregisteredStepTypeError
from flows.registry import StepRegistry, get_step_registry, reset_step_registry
from flows.steps import (
    AssignStep, CheckLoyaltyStep, ConditionStep, QueryStep, SendToAdminStep,
)
from models.schemas import StepConfig


def _config(**config) -> StepConfig:
    return StepConfig(id=1, instance="vollo", sector_id=3, config=config)


class TestStepRegistry:
    def test_register_and_create(self):
        reg = StepRegistry()
        reg.register("SEND_TO_ADMIN", SendToAdminStep, description="admin")
        step = reg.create("SEND_TO_ADMIN", _config())
        assert isinstance(step, SendToAdminStep)
        assert step.id == 1
        assert step.instance == "vollo"
        assert step.sector_id == 3

    def test_create_passes_services(self, services):
        reg = StepRegistry()
        reg.register("SEND_TO_ADMIN", SendToAdminStep)
        step = reg.create("SEND_TO_ADMIN", _config(), services)
        assert step.services is services

    def test_unregistered_type(self):
        with pytest.raises(UnregisteredStepTypeError) as exc:
            StepRegistry().create("NOPE", _config())
        assert exc.value.step_type == "NOPE"

    def test_missing_required_config(self):
        reg = StepRegistry()
        reg.register("QUERY", QueryStep, required_config=["query", "storeAs"])
        with pytest.raises(MissingStepConfigError) as exc:
            reg.create("QUERY", _config(query="SELECT 1"))
        assert exc.value.key == "storeAs"

    def test_required_key_present_with_null_value(self):
        reg = StepRegistry()
        reg.register("CONDITION", ConditionStep, required_config=["field", "operator", "value"])
        step = reg.create("CONDITION", _config(field="a", operator="exists", value=None))
        assert isinstance(step, ConditionStep)

    def test_last_registration_wins(self):
        reg = StepRegistry()
        reg.register("X", SendToAdminStep, description="first")
        reg.register("X", AssignStep, description="second")
        assert isinstance(reg.create("X", _config()), AssignStep)
        assert reg.get_metadata("X").description == "second"

    def test_custom_factory(self):
        reg = StepRegistry()
        calls = []

        def factory(step_config, services):
            calls.append(step_config.id)
            return SendToAdminStep(step_config, services)

        reg.register("CUSTOM", factory)
        reg.create("CUSTOM", _config())
        assert calls == [1]

    def test_introspection(self):
        reg = StepRegistry()
        reg.register("A", SendToAdminStep, optional_config=["systemMessage"])
        assert reg.has("A")
        assert "A" in reg
        assert len(reg) == 1
        [meta] = reg.get_available_types()
        assert meta.type == "A"
        assert meta.optional_config == ["systemMessage"]
        assert reg.get_metadata("B") is None

    def test_unregister_and_clear(self):
        reg = StepRegistry()
        reg.register("A", SendToAdminStep)
        reg.register("B", SendToAdminStep)
        reg.unregister("A")
        assert not reg.has("A")
        reg.unregister("A")  # no error
        reg.clear()
        assert len(reg) == 0


class TestBuiltinRegistration:
    def test_all_builtin_types(self, registry):
        for tag in ("QUERY", "CONDITION", "ROUTER", "ASSIGN", "CHECK_ONLY_ADMIN",
                    "CHECK_LOALTY", "CHECK_LOYALTY", "CHECK_AVAILABLE_USERS",
                    "SEND_TO_ADMIN", "SEND_TO_SECTOR_USER"):
            assert registry.has(tag), tag

    def test_required_config_lists(self, registry):
        assert registry.get_metadata("CONDITION").required_config == ["field", "operator", "value"]
        assert registry.get_metadata("QUERY").required_config == ["query", "storeAs"]
        assert registry.get_metadata("QUERY").optional_config == ["params", "single", "required"]
        assert registry.get_metadata("ROUTER").required_config == ["field"]
        assert registry.get_metadata("ASSIGN").required_config == []
        assert registry.get_metadata("SEND_TO_SECTOR_USER").optional_config == [
            "preferAdmin", "systemMessage",
        ]

    def test_loyalty_alias(self, registry):
        assert isinstance(registry.create("CHECK_LOYALTY", _config()), CheckLoyaltyStep)
        assert isinstance(registry.create("CHECK_LOALTY", _config()), CheckLoyaltyStep)


class TestDefaultRegistry:
    def test_singleton_is_populated(self):
        reg = get_step_registry()
        assert reg is get_step_registry()
        assert reg.has("QUERY")

    def test_reset(self):
        reg = get_step_registry()
        reg.clear()
        reset_step_registry()
        assert get_step_registry().has("QUERY")
