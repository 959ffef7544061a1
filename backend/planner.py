from typing import Any, Dict, List

from gemini_client import GeminiClient, ResponseValidationError
from models import ActionItem, ActionPlan, RecommendationResponse, RiskItem, TimelineEvent
from prompts import ACTION_PLAN_SHAPE, TIMELINE_SHAPE, build_action_plan_prompt, build_timeline_prompt
from text_utils import get_str, get_int, get_str_list, get_dict_list


def _to_action_items(items: List[Dict[str, Any]]) -> List[ActionItem]:
    return [
        ActionItem(
            action=get_str(item, "action"),
            description=get_str(item, "description"),
            priority=get_int(item, "priority"),
            estimated_effort=get_str(item, "estimated_effort"),
            dependencies=get_str_list(item, "dependencies"),
            responsible_role=get_str(item, "responsible_role"),
        )
        for item in items
        if get_str(item, "action")
    ]


def _to_timeline(items: List[Dict[str, Any]]) -> List[TimelineEvent]:
    return [
        TimelineEvent(
            phase=get_str(item, "phase"),
            description=get_str(item, "description"),
            duration=get_str(item, "duration"),
            milestones=get_str_list(item, "milestones"),
        )
        for item in items
        if get_str(item, "phase")
    ]


class Planner:
    """Turns recommendations into an action plan and a phased timeline."""

    def __init__(self, client: GeminiClient):
        self.client = client

    async def create_action_plan(
        self,
        recommendations: RecommendationResponse,
        constraints: Dict[str, Any],
    ) -> ActionPlan:
        if not recommendations.immediate_actions:
            raise ValueError("recommendations are required")

        result = await self.client.generate_content(
            build_action_plan_prompt(recommendations.model_dump(), constraints or {}),
            ACTION_PLAN_SHAPE,
        )

        return ActionPlan(
            goals=get_str_list(result, "goals"),
            immediate_actions=_to_action_items(get_dict_list(result, "immediate_actions")),
            short_term_actions=_to_action_items(get_dict_list(result, "short_term_actions")),
            long_term_actions=_to_action_items(get_dict_list(result, "long_term_actions")),
            responsible_parties=get_str_list(result, "responsible_parties"),
            timeline=_to_timeline(get_dict_list(result, "timeline")),
            success_metrics=get_str_list(result, "success_metrics"),
            risks_mitigations=[
                RiskItem(
                    risk=get_str(item, "risk"),
                    impact=get_str(item, "impact"),
                    probability=get_str(item, "probability"),
                    mitigation_plan=get_str(item, "mitigation_plan"),
                    contingency_plan=get_str(item, "contingency_plan"),
                    responsible_party=get_str(item, "responsible_party"),
                )
                for item in get_dict_list(result, "risks_mitigations")
                if get_str(item, "risk")
            ],
        )

    async def generate_timeline(self, action_plan: Dict[str, Any], resources: Dict[str, Any]) -> List[TimelineEvent]:
        """Phase ``action_plan`` given ``resources``. Accepts [...] or {"timeline": [...]} replies."""
        if not action_plan:
            raise ValueError("action plan is required")

        result = await self.client.generate_content(
            build_timeline_prompt(action_plan, resources or {}), TIMELINE_SHAPE
        )

        if isinstance(result, dict):
            if not isinstance(result.get("timeline"), list):
                raise ResponseValidationError(
                    "unexpected result format, missing timeline array", missing_field="timeline"
                )
            result = result["timeline"]
        if not isinstance(result, list):
            raise ResponseValidationError("unexpected result format")

        return _to_timeline([item for item in result if isinstance(item, dict)])
