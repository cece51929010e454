"""Tests for authoring-time workflow validation."""

import pytest

from underwriting.templates import default_loan_workflow, default_rule_set_library
from workflow.executors.factory import NodeExecutorFactory
from workflow.models import load_workflow_definition
from workflow.validator import WorkflowValidator


def validator():
    return WorkflowValidator(NodeExecutorFactory.with_defaults(rule_sets=default_rule_set_library()))


def definition(nodes, connections=(), mode="enterprise"):
    return load_workflow_definition({"id": "wf", "mode": mode, "nodes": nodes, "connections": list(connections)})


START = {"id": "start", "type": "start", "data": {"label": "Start"}}
END = {"id": "end", "type": "end", "data": {"label": "End"}}


@pytest.mark.unit
class TestWorkflowValidator:

    def test_default_template_is_valid(self):
        result = validator().validate(default_loan_workflow())
        assert result.is_valid, result.errors
        assert set(result.node_results) == {"start", "underwriting", "approved", "declined", "manual_review"}

    def test_missing_start_and_end(self):
        result = validator().validate(definition([{"id": "c", "type": "condition", "data": {"condition": "x"}}]))
        assert not result.is_valid
        assert "Workflow has no start node" in result.errors
        assert "Workflow has no end node" in result.errors

    def test_multiple_start_nodes(self):
        second = {"id": "start2", "type": "start", "data": {"label": "Again"}}
        result = validator().validate(definition([START, second, END], [
            {"source": "start", "target": "end"}, {"source": "start2", "target": "end"},
        ]))
        assert any("2 start nodes" in e for e in result.errors)

    def test_bad_connection_condition(self):
        result = validator().validate(definition([START, END], [
            {"id": "c1", "source": "start", "target": "end", "condition": "a >"},
        ]))
        assert not result.is_valid
        assert any(e.startswith("Connection c1") for e in result.errors)

    def test_orphan_and_cycle_warnings(self):
        nodes = [
            START, END,
            {"id": "loop", "type": "condition", "data": {"label": "Loop", "condition": "true"}},
            {"id": "island", "type": "condition", "data": {"label": "Island", "condition": "true"}},
        ]
        result = validator().validate(definition(nodes, [
            {"source": "start", "target": "loop"},
            {"source": "loop", "target": "loop", "connector_type": "true"},
            {"source": "loop", "target": "end", "connector_type": "false"},
        ]))
        assert result.is_valid
        assert any("island is orphaned" in w for w in result.warnings)
        assert any("Cycle detected through node loop" in w for w in result.warnings)
        assert any("loops node loop onto itself" in w for w in result.warnings)

    def test_mode_restrictions_warn(self):
        nodes = [
            START, END,
            {"id": "d", "type": "decision",
             "data": {"label": "D", "condition": {"variable": "x", "operator": "==", "value": 1}}},
        ]
        result = validator().validate(definition(nodes, [
            {"source": "start", "target": "d"}, {"source": "d", "target": "end"},
        ], mode="simple"))
        assert any("not available in simple mode" in w for w in result.warnings)

    def test_generic_node_without_executor_warns(self):
        nodes = [START, END, {"id": "audit", "type": "audit_log", "data": {"label": "Audit"}}]
        result = validator().validate(definition(nodes, [
            {"source": "start", "target": "audit"}, {"source": "audit", "target": "end"},
        ]))
        assert result.is_valid
        assert any("no executor registered" in w for w in result.warnings)

    def test_node_errors_propagate(self):
        nodes = [START, END, {"id": "rs", "type": "rule_set", "data": {"label": "RS", "rule_set_id": "missing"}}]
        result = validator().validate(definition(nodes, [
            {"source": "start", "target": "rs"}, {"source": "rs", "target": "end"},
        ]))
        assert not result.is_valid
        assert result.node_results["rs"]["is_valid"] is False
