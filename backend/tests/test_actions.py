"""Tests for underwriting business actions and the action invoker."""

import pytest

from actions.base_action import ActionResult, BaseAction
from actions.registry import BusinessActionInvoker
from core.constants import ConnectorType


class FlakyAction(BaseAction):
    action_type = "flaky"
    display_name = "Flaky"

    async def execute(self, config, variables):
        raise ConnectionError("core banking offline")


class RoutingAction(BaseAction):
    action_type = "routing"

    async def execute(self, config, variables):
        return ActionResult(success=True, next_connector=ConnectorType.APPROVED)


@pytest.mark.unit
class TestBusinessActionInvoker:

    async def test_credit_check_uses_configured_score(self):
        result = await BusinessActionInvoker(seed=1).invoke("credit_check", {"score": 705}, {"applicant_id": "a-1"})
        assert result.success
        assert result.output["credit_score"] == 705
        assert result.output["applicant_id"] == "a-1"

    async def test_seeded_invokers_agree(self):
        first = await BusinessActionInvoker(seed=9).invoke("credit_check", {}, {})
        second = await BusinessActionInvoker(seed=9).invoke("credit_check", {}, {})
        assert first.output["credit_score"] == second.output["credit_score"]

    async def test_risk_assessment_uses_decision_policy(self, strong_applicant):
        result = await BusinessActionInvoker().invoke("risk_assessment", {}, strong_applicant)
        assert result.output["decision"] == "approved"
        assert "confidence" in result.output

    async def test_risk_assessment_with_partial_inputs(self):
        result = await BusinessActionInvoker().invoke("risk_assessment", {}, {"credit_score": 720})
        assert result.output["risk_score"] == 0.3
        assert result.output["risk_level"] == "low"

    async def test_risk_assessment_rejects_invalid_inputs(self):
        result = await BusinessActionInvoker().invoke(
            "risk_assessment", {}, {"credit_score": 720, "debt_to_income_ratio": -1, "annual_income": 50000}
        )
        assert not result.success

    async def test_debt_calculation(self):
        result = await BusinessActionInvoker().invoke(
            "debt_calculation", {}, {"annual_income": 60000, "monthly_debt_payments": 1000}
        )
        assert result.output["debt_to_income_ratio"] == 0.2
        assert result.output["monthly_income"] == 5000

    async def test_data_update_sets_variables(self):
        result = await BusinessActionInvoker().invoke("data_update", {"updates": {"tier": "gold"}}, {})
        assert result.variable_updates == {"tier": "gold"}
        assert result.output["updated_fields"] == ["tier"]

    async def test_manual_review_suspends(self):
        result = await BusinessActionInvoker().invoke("manual_review", {"queue": "senior"}, {})
        assert result.suspend
        assert result.output["queue"] == "senior"

    async def test_unknown_action_uses_default(self):
        result = await BusinessActionInvoker().invoke("send_fax", {"to": "branch"}, {})
        assert result.success
        assert result.output["config"] == {"to": "branch"}

    async def test_unknown_action_without_default(self):
        invoker = BusinessActionInvoker(register_builtins=False)
        result = await invoker.invoke("send_fax", {}, {})
        assert not result.success
        assert "Unknown action type" in result.error

    async def test_exceptions_become_failed_results(self):
        invoker = BusinessActionInvoker()
        invoker.register("flaky", FlakyAction)
        result = await invoker.invoke("flaky", {}, {})
        assert not result.success
        assert result.error == "core banking offline"
        assert result.duration_ms >= 0

    async def test_action_can_choose_connector(self):
        invoker = BusinessActionInvoker()
        invoker.register("routing", RoutingAction())
        result = await invoker.invoke("routing", {}, {})
        assert result.to_dict()["next_connector"] == "approved"

    async def test_variables_are_not_mutated(self):
        variables = {"annual_income": 50000}
        await BusinessActionInvoker().invoke("income_verification", {}, variables)
        assert variables == {"annual_income": 50000}

    def test_catalog(self):
        invoker = BusinessActionInvoker()
        listed = {entry["action_type"] for entry in invoker.list_all()}
        assert {"credit_check", "manual_review", "default"} <= listed
        assert invoker.has("notification")
        assert not invoker.has("send_fax")
