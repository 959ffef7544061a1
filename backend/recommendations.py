from typing import Any, Dict, List

from gemini_client import GeminiClient, ResponseValidationError
from models import Recommendation, RecommendationResponse, RetentionStrategy
from prompts import (
    RECOMMENDATIONS_SHAPE, PRIORITIZED_SHAPE, RETENTION_SHAPE,
    build_recommendations_prompt, build_prioritize_prompt, build_retention_prompt,
)
from text_utils import get_str, get_int, get_str_list, get_dict_list


def _to_recommendations(items: List[Dict[str, Any]]) -> List[Recommendation]:
    return [
        Recommendation(
            action=get_str(item, "action"),
            rationale=get_str(item, "rationale"),
            expected_impact=get_str(item, "expected_impact"),
            priority=get_int(item, "priority"),
        )
        for item in items
        if get_str(item, "action")
    ]


class RecommendationEngine:
    def __init__(self, client: GeminiClient):
        self.client = client

    async def generate_recommendations(
        self,
        analysis_results: Dict[str, Any],
        focus_area: str,
    ) -> RecommendationResponse:
        if not analysis_results:
            raise ValueError("analysis results are required")
        if not focus_area:
            raise ValueError("focus area is required")

        result = await self.client.generate_content(
            build_recommendations_prompt(analysis_results, focus_area), RECOMMENDATIONS_SHAPE
        )
        return RecommendationResponse(
            immediate_actions=_to_recommendations(get_dict_list(result, "immediate_actions")),
            implementation_notes=get_str_list(result, "implementation_notes"),
            success_metrics=get_str_list(result, "success_metrics"),
        )

    async def prioritize_recommendations(
        self,
        recommendations: List[Recommendation],
        criteria: Dict[str, Any],
    ) -> List[Recommendation]:
        """Re-score ``recommendations`` against weighted ``criteria``.

        The model may answer with a bare array or with {"recommendations": [...]}.
        """
        if not recommendations:
            raise ValueError("recommendations are required")
        if not criteria:
            raise ValueError("criteria are required")

        result = await self.client.generate_content(
            build_prioritize_prompt([rec.model_dump() for rec in recommendations], criteria),
            PRIORITIZED_SHAPE,
        )

        if isinstance(result, dict):
            if not isinstance(result.get("recommendations"), list):
                raise ResponseValidationError(
                    "unexpected result format, missing recommendations array",
                    missing_field="recommendations",
                )
            result = result["recommendations"]
        if not isinstance(result, list):
            raise ResponseValidationError("unexpected result format")

        prioritized = _to_recommendations([item for item in result if isinstance(item, dict)])
        prioritized.sort(key=lambda rec: rec.priority, reverse=True)
        return prioritized

    async def generate_retention_strategies(self, analysis_results: Dict[str, Any]) -> RetentionStrategy:
        if not analysis_results:
            raise ValueError("analysis results are required")

        result = await self.client.generate_content(
            build_retention_prompt(analysis_results), RETENTION_SHAPE
        )
        return RetentionStrategy(
            target_segment=get_str(result, "target_segment"),
            immediate_actions=_to_recommendations(get_dict_list(result, "immediate_actions")),
            process_changes=get_str_list(result, "process_changes"),
            training_needs=get_str_list(result, "training_needs"),
            success_metrics=get_str_list(result, "success_metrics"),
        )
