"""Tests for connector resolution."""

import pytest

from core.constants import ConnectorType, ErrorCode
from workflow.context import ExecutionContext, ExecutionError, NodeExecutionResult
from workflow.models import WorkflowConnection
from workflow.resolver import ConnectorResolver


def conn(target, connector="default", priority=0, condition=None, source="a", **kw):
    return WorkflowConnection(
        id=f"{source}_{target}",
        source=source,
        target=target,
        connector_type=connector,
        priority=priority,
        condition=condition,
        **kw,
    )


def ctx(**variables):
    context = ExecutionContext(execution_id="ex-1", workflow_id="wf-1")
    context.variables.update(variables)
    return context


def ok(connector=ConnectorType.DEFAULT, **output):
    return NodeExecutionResult.succeeded(output, connector)


@pytest.mark.unit
class TestResolve:

    def test_matching_connector(self):
        connections = [conn("no", "false"), conn("yes", "true")]
        assert ConnectorResolver().resolve("a", connections, ctx(), ok(ConnectorType.TRUE)) == "yes"

    def test_priority_beats_declaration_order(self):
        connections = [conn("low", "success", priority=1), conn("high", "success", priority=10)]
        assert ConnectorResolver().resolve("a", connections, ctx(), ok(ConnectorType.SUCCESS)) == "high"

    def test_equal_priority_keeps_declaration_order(self):
        connections = [conn("first", "success"), conn("second", "success")]
        assert ConnectorResolver().resolve("a", connections, ctx(), ok(ConnectorType.SUCCESS)) == "first"

    def test_default_connector_matches_anything(self):
        connections = [conn("fallback", "default")]
        assert ConnectorResolver().resolve("a", connections, ctx(), ok(ConnectorType.APPROVED)) == "fallback"

    def test_condition_on_output_and_variables(self):
        connections = [
            conn("big", "success", priority=5, condition="output.amount > limit"),
            conn("small", "success"),
        ]
        resolver = ConnectorResolver()
        assert resolver.resolve("a", connections, ctx(limit=100), ok(ConnectorType.SUCCESS, amount=500)) == "big"
        assert resolver.resolve("a", connections, ctx(limit=100), ok(ConnectorType.SUCCESS, amount=50)) == "small"

    def test_bad_condition_is_false_with_warning(self):
        context = ctx()
        connections = [conn("x", "success", condition="amount >"), conn("y", "success")]
        assert ConnectorResolver().resolve("a", connections, context, ok(ConnectorType.SUCCESS)) == "y"
        assert context.warnings[0].code == ErrorCode.INVALID_CONDITION
        assert context.warnings[0].context["connection_id"] == "a_x"

    def test_default_competes_in_rank_order(self):
        connections = [conn("fallback", "default", priority=5), conn("exact", "approved")]
        assert ConnectorResolver().resolve("a", connections, ctx(), ok(ConnectorType.APPROVED)) == "fallback"

    def test_bad_default_condition_warns_once(self):
        context = ctx()
        connections = [conn("x", "default", condition="amount >")]
        assert ConnectorResolver().resolve("a", connections, context, ok(ConnectorType.SUCCESS)) is None
        assert len(context.warnings) == 1

    def test_no_match_returns_none(self):
        connections = [conn("x", "true"), conn("y", "false", source="b")]
        assert ConnectorResolver().resolve("a", connections, ctx(), ok(ConnectorType.SUCCESS)) is None

    def test_error_handlers_excluded_from_normal_routing(self):
        connections = [conn("handler", "default", is_error_handler=True), conn("next", "success")]
        assert ConnectorResolver().resolve("a", connections, ctx(), ok(ConnectorType.SUCCESS)) == "next"


@pytest.mark.unit
class TestResolveAll:

    def test_collects_every_passing_target_once(self):
        connections = [
            conn("b1", "success"),
            conn("b2", "default"),
            conn("b1", "default", priority=-1),
            conn("b3", "success", condition="false"),
        ]
        assert ConnectorResolver().resolve_all("a", connections, ctx(), ok(ConnectorType.SUCCESS)) == ["b1", "b2"]


@pytest.mark.unit
class TestErrorHandler:

    def _failed(self):
        return NodeExecutionResult.failed(ExecutionError(code=ErrorCode.NODE_EXECUTION_FAILED, message="boom"))

    def test_error_connector(self):
        connections = [conn("next", "success"), conn("recover", "error")]
        assert ConnectorResolver().resolve_error_handler("a", connections, ctx(), self._failed()) == "recover"

    def test_flagged_handler(self):
        connections = [conn("recover", "default", is_error_handler=True)]
        assert ConnectorResolver().resolve_error_handler("a", connections, ctx(), self._failed()) == "recover"

    def test_no_handler(self):
        connections = [conn("next", "success")]
        assert ConnectorResolver().resolve_error_handler("a", connections, ctx(), self._failed()) is None
