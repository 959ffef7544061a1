import json
import logging
from typing import Any, Dict, List, Optional

from batching import process_in_batches
from gemini_client import GeminiClient, ResponseValidationError
from models import AnalysisResult
from prompts import (
    TRENDS_SHAPE, PATTERNS_SHAPE, FINDINGS_SHAPE, CONSOLIDATION_SHAPE,
    build_trends_prompt, build_patterns_prompt, build_findings_prompt,
    build_intent_grouping_prompt, build_consolidation_prompt,
)
from text_utils import get_dict_list

logger = logging.getLogger(__name__)

INTENT_GROUPS = "intent_groups"
INTENT_BATCH_SIZE = 50
DEFAULT_MAX_GROUPS = 20
DEFAULT_MIN_COUNT = 5


class Analyzer:
    """Trend, pattern and findings analysis over extracted conversation attributes."""

    TRENDS_CONFIDENCE = 0.8
    PATTERNS_CONFIDENCE = 0.8
    FINDINGS_CONFIDENCE = 0.9

    def __init__(self, client: GeminiClient):
        self.client = client

    async def analyze_trends(
        self,
        focus_areas: List[str],
        attribute_values: Optional[Dict[str, Any]] = None,
    ) -> AnalysisResult:
        if not focus_areas:
            raise ValueError("focus areas are required")

        result = await self.client.generate_content(
            build_trends_prompt(focus_areas, attribute_values), TRENDS_SHAPE
        )
        return AnalysisResult(results=result, confidence=self.TRENDS_CONFIDENCE)

    async def identify_patterns(
        self,
        pattern_types: List[str],
        attribute_values: Optional[Dict[str, Any]] = None,
        max_groups: Optional[int] = None,
        min_count: Optional[int] = None,
    ) -> AnalysisResult:
        if not pattern_types:
            raise ValueError("pattern types are required")

        if INTENT_GROUPS in pattern_types and attribute_values:
            intents = attribute_values.get("intents")
            if not isinstance(intents, list):
                raise ValueError("attribute_values.intents is required for intent grouping and must be an array")
            result = await self.group_intents(
                intents,
                max_groups=int(max_groups or attribute_values.get("max_groups") or DEFAULT_MAX_GROUPS),
                min_count=int(min_count if min_count is not None else attribute_values.get("min_count", DEFAULT_MIN_COUNT)),
            )
            return AnalysisResult(results=result, confidence=self.PATTERNS_CONFIDENCE)

        result = await self.client.generate_content(
            build_patterns_prompt(pattern_types, attribute_values), PATTERNS_SHAPE
        )
        return AnalysisResult(results=result, confidence=self.PATTERNS_CONFIDENCE)

    async def group_intents(
        self,
        intents: List[Any],
        max_groups: int = DEFAULT_MAX_GROUPS,
        min_count: int = DEFAULT_MIN_COUNT,
    ) -> Dict[str, Any]:
        """Group intent records ({..., "count": n}) into at most ``max_groups`` categories.

        Intents below ``min_count`` are dropped. The rest are grouped in
        batches of 50; when the batches together produce more than
        ``max_groups`` groups, one more call consolidates them.
        """
        max_groups = max(1, max_groups)
        filtered = [
            intent for intent in intents
            if isinstance(intent, dict) and _count(intent) is not None and _count(intent) >= min_count
        ]
        if not filtered:
            return {"patterns": [], "unexpected_patterns": []}

        batches = [
            filtered[i:i + INTENT_BATCH_SIZE]
            for i in range(0, len(filtered), INTENT_BATCH_SIZE)
        ]
        groups_per_batch = max(1, max_groups // len(batches))
        logger.info(
            "Grouping %d intents (min_count=%d) in %d batches of up to %d groups",
            len(filtered), min_count, len(batches), groups_per_batch,
        )

        async def group_batch(batch: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            result = await self.client.generate_content(
                build_intent_grouping_prompt(batch, groups_per_batch), PATTERNS_SHAPE
            )
            return get_dict_list(result, "patterns")

        batch_groups = await process_in_batches(batches, 0, group_batch)
        groups = [group for batch in batch_groups for group in batch]

        if len(batches) == 1 or len(groups) <= max_groups:
            return {"patterns": groups[:max_groups], "unexpected_patterns": []}

        return {
            "patterns": await self._consolidate_groups(groups, max_groups),
            "unexpected_patterns": [],
        }

    async def _consolidate_groups(self, groups: List[Dict[str, Any]], max_groups: int) -> List[Dict[str, Any]]:
        result = await self.client.generate_content(
            build_consolidation_prompt(groups, max_groups), CONSOLIDATION_SHAPE
        )
        consolidated = result.get("consolidated_groups")
        if not isinstance(consolidated, list):
            raise ResponseValidationError(
                "consolidated_groups field is not an array", missing_field="consolidated_groups"
            )
        return [group for group in consolidated if isinstance(group, dict)]

    async def analyze_findings(
        self,
        questions: List[str],
        attribute_values: Optional[Dict[str, Any]],
    ) -> AnalysisResult:
        if not questions:
            raise ValueError("questions are required")
        if not attribute_values:
            raise ValueError("attribute values are required")

        result = await self.client.generate_content(
            build_findings_prompt(questions, attribute_values), FINDINGS_SHAPE
        )
        gaps = result.get("data_gaps")
        data_gaps = [str(gap) for gap in gaps] if isinstance(gaps, list) else []
        return AnalysisResult(results=result, confidence=self.FINDINGS_CONFIDENCE, data_gaps=data_gaps)


def _count(intent: Dict[str, Any]) -> Optional[int]:
    count = intent.get("count")
    if isinstance(count, bool) or not isinstance(count, (int, float)):
        return None
    return int(count)


# =============================================================================
# Result reshaping between chained steps
# =============================================================================

def to_analysis_data(value: Any) -> Dict[str, Any]:
    """Turn one step's output into the ``data`` object the next step reads.

    Objects pass through, arrays become ``attribute_values`` and strings are
    parsed as JSON when possible, otherwise kept as ``text``.
    """
    if isinstance(value, dict):
        return value
    if isinstance(value, list):
        return {"attribute_values": value}
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return {"text": value}
        return parsed if isinstance(parsed, dict) else {"attribute_values": parsed}
    if value is None:
        return {}
    return {"value": value}
