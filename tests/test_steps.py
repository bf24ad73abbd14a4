"""Tests for the step runtime and the generic steps (QUERY, CONDITION, ROUTER, ASSIGN)."""
import pytest
from unittest.mock import AsyncMock

from backend.connector import DataSource
from flows.errors import (
    FlowConfigurationError, NoRouteError, RequiredQueryEmptyError, UnsupportedOperatorError,
)
from flows.steps import AssignStep, BaseStep, ConditionStep, QueryStep, RouterStep, StepServices
from flows.steps.router import route_key
from models.schemas import ChatPriority, ChatType, StepConfig, StepResult


class _Boom(BaseStep):
    async def execute(self, context):
        raise RuntimeError("lookup failed")


# ──────────────────────────────────────────────────────────────
#  BaseStep.run — logging and fallback
# ──────────────────────────────────────────────────────────────

class TestBaseStepRun:
    @pytest.mark.asyncio
    async def test_exception_reroutes_to_fallback(self, make_step, make_context):
        step = make_step(_Boom, step_id=2, next_step_id=3, fallback_step_id=9)
        result = await step.run(make_context())
        assert result == StepResult.continue_at(9)

    @pytest.mark.asyncio
    async def test_exception_propagates_without_fallback(self, make_step, make_context):
        step = make_step(_Boom, step_id=2, next_step_id=3)
        with pytest.raises(RuntimeError, match="lookup failed"):
            await step.run(make_context())

    @pytest.mark.asyncio
    async def test_configuration_errors_also_use_fallback(self, make_step, make_context):
        step = make_step(ConditionStep, {"field": "x", "operator": "??", "value": 1},
                         fallback_step_id=7)
        result = await step.run(make_context())
        assert result.next_step_id == 7

    @pytest.mark.asyncio
    async def test_run_logs_entries(self, make_step, make_context, plog):
        step = make_step(_Boom, step_id=5, fallback_step_id=6)
        await step.run(make_context())
        joined = "\n".join(plog.entries)
        assert "[Step 5] Starting _Boom" in joined
        assert "[Step 5] Using fallback: 6" in joined

    def test_config_is_read_only(self, make_step):
        step = make_step(AssignStep, {"userId": 3})
        with pytest.raises(TypeError):
            step.config["userId"] = 4

    @pytest.mark.asyncio
    async def test_missing_collaborator(self, make_context):
        step = QueryStep(
            StepConfig(id=1, instance="vollo", sector_id=3,
                       config={"query": "SELECT 1", "storeAs": "x"}),
            StepServices(),
        )
        with pytest.raises(FlowConfigurationError, match="data_source"):
            await step.run(make_context())


# ──────────────────────────────────────────────────────────────
#  QUERY
# ──────────────────────────────────────────────────────────────

class TestQueryStep:
    @pytest.mark.asyncio
    async def test_stores_all_rows(self, make_step, make_context, data_source):
        data_source.add("FROM pedidos", [{"id": 1}, {"id": 2}])
        step = make_step(QueryStep, {"query": "SELECT * FROM pedidos", "storeAs": "orders"},
                         next_step_id=2)
        ctx = make_context()
        result = await step.run(ctx)
        assert result.next_step_id == 2
        assert ctx["orders"] == [{"id": 1}, {"id": 2}]

    @pytest.mark.asyncio
    async def test_single_stores_first_row(self, make_step, make_context, data_source):
        data_source.add("FROM clientes", [{"CODIGO": 1}, {"CODIGO": 2}])
        step = make_step(QueryStep, {"query": "SELECT * FROM clientes", "storeAs": "customer",
                                     "single": True}, next_step_id=2)
        ctx = make_context()
        await step.run(ctx)
        assert ctx["customer"] == {"CODIGO": 1}

    @pytest.mark.asyncio
    async def test_single_with_no_rows_stores_none(self, make_step, make_context):
        step = make_step(QueryStep, {"query": "SELECT 1", "storeAs": "customer", "single": True},
                         next_step_id=2)
        ctx = make_context()
        result = await step.run(ctx)
        assert result.next_step_id == 2
        assert "customer" in ctx
        assert ctx["customer"] is None

    @pytest.mark.asyncio
    async def test_params_are_resolved(self, make_step, make_context, data_source):
        step = make_step(QueryStep, {
            "query": "SELECT * FROM clientes WHERE CODIGO = ? AND ATIVO = ?",
            "params": ["${contact.customerId}", "SIM"],
            "storeAs": "customer",
        }, next_step_id=2)
        await step.run(make_context())
        [(instance, _query, params)] = data_source.calls
        assert instance == "vollo"
        assert params == [1234, "SIM"]

    @pytest.mark.asyncio
    async def test_required_empty_goes_to_fallback(self, make_step, make_context):
        step = make_step(QueryStep, {"query": "SELECT 1", "storeAs": "x", "required": True},
                         next_step_id=2, fallback_step_id=9)
        result = await step.run(make_context())
        assert result.next_step_id == 9

    @pytest.mark.asyncio
    async def test_required_empty_without_fallback_raises(self, make_step, make_context):
        step = make_step(QueryStep, {"query": "SELECT 1", "storeAs": "x", "required": True},
                         next_step_id=2)
        with pytest.raises(RequiredQueryEmptyError):
            await step.run(make_context())

    @pytest.mark.asyncio
    async def test_data_source_failure_uses_fallback(self, make_step, make_context, data_source):
        data_source.add("SELECT", ConnectionError("db down"))
        step = make_step(QueryStep, {"query": "SELECT 1", "storeAs": "x"},
                         next_step_id=2, fallback_step_id=4)
        result = await step.run(make_context())
        assert result.next_step_id == 4


# ──────────────────────────────────────────────────────────────
#  CONDITION
# ──────────────────────────────────────────────────────────────

class TestConditionStep:
    @pytest.mark.asyncio
    async def test_true_branch_from_connections(self, make_step, make_context):
        step = make_step(ConditionStep,
                         {"field": "loyalty.OPERADOR", "operator": "exists", "value": True},
                         connections={"onTrue": 3, "onFalse": 100})
        result = await step.run(make_context(loyalty={"OPERADOR": 8}))
        assert result.next_step_id == 3

    @pytest.mark.asyncio
    async def test_false_branch_from_config(self, make_step, make_context):
        step = make_step(ConditionStep, {"field": "loyalty.OPERADOR", "operator": "equals",
                                         "value": 0, "onTrue": 100, "onFalse": 4})
        result = await step.run(make_context(loyalty={"OPERADOR": 8}))
        assert result.next_step_id == 4

    @pytest.mark.asyncio
    async def test_connections_take_precedence(self, make_step, make_context):
        step = make_step(ConditionStep,
                         {"field": "x", "operator": "exists", "value": None, "onTrue": 1},
                         connections={"onTrue": 2})
        result = await step.run(make_context(x=1))
        assert result.next_step_id == 2

    @pytest.mark.asyncio
    async def test_never_terminal(self, make_step, make_context):
        step = make_step(ConditionStep, {"field": "x", "operator": "exists", "value": None},
                         next_step_id=6)
        result = await step.run(make_context())
        assert not result.is_final
        assert result.next_step_id == 6

    @pytest.mark.asyncio
    async def test_unsupported_operator(self, make_step, make_context):
        step = make_step(ConditionStep, {"field": "x", "operator": "like", "value": 1})
        with pytest.raises(UnsupportedOperatorError):
            await step.run(make_context())


# ──────────────────────────────────────────────────────────────
#  ROUTER
# ──────────────────────────────────────────────────────────────

class TestRouterStep:
    @pytest.mark.asyncio
    async def test_matching_route(self, make_step, make_context):
        step = make_step(RouterStep, {"field": "topic"},
                         connections={"routes": {"sales": 3, "support": 4}})
        result = await step.run(make_context(topic="support"))
        assert result.next_step_id == 4

    @pytest.mark.asyncio
    async def test_default_route(self, make_step, make_context):
        step = make_step(RouterStep, {"field": "topic"},
                         connections={"routes": {"sales": 3}, "defaultRoute": 5})
        result = await step.run(make_context(topic="support"))
        assert result.next_step_id == 5

    @pytest.mark.asyncio
    async def test_config_default_key(self, make_step, make_context):
        step = make_step(RouterStep, {"field": "topic", "routes": {"sales": 3}, "default": 8})
        result = await step.run(make_context(topic="billing"))
        assert result.next_step_id == 8

    @pytest.mark.asyncio
    async def test_falls_back_to_next_step(self, make_step, make_context):
        step = make_step(RouterStep, {"field": "topic", "routes": {"sales": 3}}, next_step_id=11)
        result = await step.run(make_context(topic="other"))
        assert result.next_step_id == 11

    @pytest.mark.asyncio
    async def test_no_route(self, make_step, make_context):
        step = make_step(RouterStep, {"field": "topic", "routes": {"sales": 3}})
        with pytest.raises(NoRouteError):
            await step.run(make_context(topic="other"))

    @pytest.mark.asyncio
    async def test_empty_connection_routes_use_config(self, make_step, make_context):
        step = make_step(RouterStep, {"field": "contact.name", "routes": {"Maria Souza": 2}},
                         connections={"routes": {}})
        result = await step.run(make_context())
        assert result.next_step_id == 2

    @pytest.mark.asyncio
    async def test_numeric_value_matches_string_key(self, make_step, make_context):
        step = make_step(RouterStep, {"field": "loyalty.OPERADOR"},
                         connections={"routes": {"0": 100, "17": 10}})
        result = await step.run(make_context(loyalty={"OPERADOR": 17}))
        assert result.next_step_id == 10

    def test_route_key(self):
        assert route_key(None) == "None"
        assert route_key(True) == "true"
        assert route_key(3.0) == "3"
        assert route_key(2.5) == "2.5"
        assert route_key("x") == "x"


# ──────────────────────────────────────────────────────────────
#  ASSIGN
# ──────────────────────────────────────────────────────────────

class TestAssignStep:
    @pytest.mark.asyncio
    async def test_literal_user(self, make_step, make_context):
        step = make_step(AssignStep, {"userId": 17, "walletId": 4})
        result = await step.run(make_context())
        assert result.is_final
        assert result.chat.user_id == 17
        assert result.chat.wallet_id == 4
        assert result.chat.contact_id == 42
        assert result.chat.sector_id == 3
        assert result.chat.instance == "vollo"
        assert result.chat.type == ChatType.RECEPTIVE

    @pytest.mark.asyncio
    async def test_interpolated_user_and_message(self, make_step, make_context):
        step = make_step(AssignStep, {
            "userId": "${loyalty.OPERADOR}",
            "priority": "HIGH",
            "systemMessage": "Loyal customer ${contact.name} for ${loyalty.OPERADOR}",
        })
        result = await step.run(make_context(loyalty={"OPERADOR": 17}))
        assert result.chat.user_id == 17
        assert result.chat.priority == ChatPriority.HIGH
        assert result.chat.system_message == "Loyal customer Maria Souza for 17"

    @pytest.mark.asyncio
    async def test_missing_user_defaults_to_admin(self, make_step, make_context):
        step = make_step(AssignStep, {"userId": "${nobody.here}"})
        result = await step.run(make_context())
        assert result.chat.user_id == -1
        assert result.chat.wallet_id is None

    @pytest.mark.asyncio
    async def test_no_config(self, make_step, make_context):
        result = await make_step(AssignStep).run(make_context())
        assert result.chat.user_id == -1
        assert result.chat.priority is None
        assert result.chat.system_message is None

    @pytest.mark.asyncio
    async def test_active_type(self, make_step, make_context):
        result = await make_step(AssignStep, {"userId": 2, "type": "ACTIVE"}).run(make_context())
        assert result.chat.type == ChatType.ACTIVE

    @pytest.mark.asyncio
    async def test_numeric_string_user(self, make_step, make_context):
        step = make_step(AssignStep, {"userId": "${loyalty.OPERADOR}"})
        result = await step.run(make_context(loyalty={"OPERADOR": "23"}))
        assert result.chat.user_id == 23

    @pytest.mark.asyncio
    async def test_ignores_next_pointer(self, make_step, make_context):
        result = await make_step(AssignStep, {"userId": 1}, next_step_id=2).run(make_context())
        assert result.is_final
        assert result.next_step_id is None


class TestMockedCollaborators:
    @pytest.mark.asyncio
    async def test_query_step_with_mock_data_source(self, make_context):
        data_source = AsyncMock(spec=DataSource)
        data_source.execute_query.return_value = [{"OPERADOR": 3}]
        step = QueryStep(
            StepConfig(id=1, instance="vollo", sector_id=3, next_step_id=2,
                       config={"query": "SELECT 1", "storeAs": "row", "single": True}),
            StepServices(data_source=data_source),
        )
        ctx = make_context()
        await step.run(ctx)
        data_source.execute_query.assert_awaited_once_with("vollo", "SELECT 1", [])
        assert ctx["row"] == {"OPERADOR": 3}
