from __future__ import annotations

from ai_office.workflow.models import AgentNodeConfig, OutputNodeConfig
from ai_office.workflow.templating import resolve_config, resolve_template


def test_placeholders_are_replaced() -> None:
    assert resolve_template("Hello {{name}}, see {{ticket}}", {"name": "Ada", "ticket": "T-1"}) == "Hello Ada, see T-1"


def test_unknown_placeholders_become_empty() -> None:
    assert resolve_template("[{{missing}}]", {}) == "[]"


def test_malformed_placeholders_are_left_alone() -> None:
    assert resolve_template("{{ name }} {name}", {"name": "x"}) == "{{ name }} {name}"


def test_resolve_config_rewrites_string_fields_only() -> None:
    config = OutputNodeConfig(output_type="webhook", destination="https://hooks.local/{{team}}", template_content="Hi")

    resolved = resolve_config(config, {"team": "sales"})

    assert resolved.destination == "https://hooks.local/sales"
    assert resolved.template_content == "Hi"
    assert config.destination == "https://hooks.local/{{team}}"


def test_resolve_config_without_placeholders_returns_same_object() -> None:
    config = AgentNodeConfig(agent_id="a1")
    assert resolve_config(config, {"x": "y"}) is config
