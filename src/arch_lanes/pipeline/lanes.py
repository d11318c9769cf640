"""Per-lane model choice and prompts."""

from __future__ import annotations

from arch_lanes.gateway.models import CLAUDE_45_SONNET, GEMINI_25_PRO, GPT_5
from arch_lanes.pipeline.models import Lane

LANE_MODELS: dict[Lane, str] = {
    Lane.SPEC: CLAUDE_45_SONNET,
    Lane.SQL: GPT_5,
    Lane.UI: GEMINI_25_PRO,
    Lane.TEST: CLAUDE_45_SONNET,
    Lane.CICD: GPT_5,
}

LANE_SYSTEM_PROMPTS: dict[Lane, str] = {
    Lane.SPEC: (
        "You are a principal software architect. Output only valid JSON with keys: "
        "title, overview, functional_requirements[], non_functional_requirements[], "
        "decisions[], risks[]."
    ),
    Lane.SQL: (
        "You are a senior data engineer. Output only valid JSON with keys: "
        "ddl (string SQL), tables[{name, columns[{name,type,nullable,desc}], indexes[], fks[]}]."
    ),
    Lane.UI: (
        "You are a product designer. Output only valid JSON with keys: "
        "component_tree, routes[], design_tokens, wireframes[]."
    ),
    Lane.TEST: (
        "You are a QA lead. Output only valid JSON with keys: "
        "strategy, test_matrix[], unit_samples[], e2e_scenarios[]."
    ),
    Lane.CICD: (
        "You are a DevOps engineer. Output only valid JSON with keys: "
        "pipeline_yaml (string), jobs[], secrets[], notes."
    ),
}


def resolve_lane_model(lane: Lane, default_model: str) -> str:
    """Apply the caller default first, then the fixed lane override on top."""

    return LANE_MODELS.get(lane, default_model)


def lane_user_prompt(lane: Lane, vision: str) -> str:
    # Only the vision is embedded; earlier lane outputs are not fed forward.
    return f"Vision:\n{vision}\n\nProduce the {lane.value.upper()} artifact as JSON only."
