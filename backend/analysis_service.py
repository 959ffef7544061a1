"""
Unified analysis dispatch.

One AnalysisService is built at startup around the shared GeminiClient and
routes StandardAnalysisRequests to the analysis engines.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from analyzer import Analyzer, to_analysis_data
from gemini_client import GeminiClient, LLMError
from mock_data import mock_action_plan, mock_recommendations, mock_timeline
from models import (
    DataQuality, FunctionMetadata, OutputDefinition, ParameterDefinition,
    RecommendationResponse, StandardAnalysisRequest, StandardAnalysisResponse,
)
from planner import Planner
from recommendations import RecommendationEngine
from text_generator import TextGenerator, parse_attribute_definitions

logger = logging.getLogger(__name__)

DEFAULT_FOCUS_AREA = "improving customer experience"

ATTRIBUTES_CONFIDENCE = 0.9
INTENT_CONFIDENCE = 0.9
RECOMMENDATIONS_CONFIDENCE = 0.85
PLAN_CONFIDENCE = 0.85
TIMELINE_CONFIDENCE = 0.8


class UnknownAnalysisType(ValueError):
    """analysis_type is not one of the supported analyses."""


def extract_string_list(params: Dict[str, Any], key: str) -> List[str]:
    value = params.get(key)
    if value is None:
        raise ValueError(f"{key} is required")
    if not isinstance(value, list):
        raise ValueError(f"{key} must be an array")
    if not all(isinstance(item, str) for item in value):
        raise ValueError(f"{key} must contain strings")
    return value


def _is_mock(params: Dict[str, Any]) -> bool:
    return params.get("use_mock_data") is True


class AnalysisService:
    def __init__(self, client: GeminiClient):
        self.analyzer = Analyzer(client)
        self.text_generator = TextGenerator(client)
        self.recommendation_engine = RecommendationEngine(client)
        self.planner = Planner(client)

        self._handlers: Dict[str, Callable[[StandardAnalysisRequest], Awaitable[StandardAnalysisResponse]]] = {
            "trends": self._trends,
            "patterns": self._patterns,
            "findings": self._findings,
            "attributes": self._attributes,
            "intent": self._intent,
            "recommendations": self._recommendations,
            "plan": self._plan,
        }

    @property
    def analysis_types(self) -> List[str]:
        return list(self._handlers)

    async def run(self, request: StandardAnalysisRequest) -> StandardAnalysisResponse:
        """Dispatch on ``analysis_type`` (case-insensitive).

        Raises UnknownAnalysisType, ValueError for bad parameters, or the
        LLMError of the failed generation.
        """
        analysis_type = (request.analysis_type or "").strip().lower()
        handler = self._handlers.get(analysis_type)
        if handler is None:
            raise UnknownAnalysisType(f"Invalid analysis type: {request.analysis_type}")

        logger.info("Running %s analysis (workflow=%s)", analysis_type, request.workflow_id)
        return await handler(request)

    async def chain(
        self,
        steps: List[str],
        text: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        step_config: Optional[Dict[str, Dict[str, Any]]] = None,
        workflow_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Run analyses in sequence; each step reads the previous step's results as its data."""
        if not steps:
            raise ValueError("at least one step is required")

        step_config = step_config or {}
        results: Dict[str, Any] = {}
        current = data or {}

        for index, step in enumerate(steps, 1):
            logger.info("Chain step %d/%d: %s", index, len(steps), step)
            response = await self.run(StandardAnalysisRequest(
                analysis_type=step,
                workflow_id=workflow_id,
                text=text,
                data=current,
                parameters=dict(step_config.get(step) or {}),
            ))
            results[step] = response.results
            current = to_analysis_data(response.results)

        return results

    def function_metadata(self) -> List[FunctionMetadata]:
        return list(FUNCTION_CATALOGUE)

    # =========================================================================
    # Handlers
    # =========================================================================

    def _response(
        self,
        request: StandardAnalysisRequest,
        analysis_type: str,
        results: Any,
        confidence: float,
        data_quality: Optional[DataQuality] = None,
    ) -> StandardAnalysisResponse:
        return StandardAnalysisResponse(
            analysis_type=analysis_type,
            workflow_id=request.workflow_id,
            timestamp=datetime.now(timezone.utc),
            results=results,
            confidence=confidence,
            data_quality=data_quality,
        )

    async def _trends(self, request: StandardAnalysisRequest) -> StandardAnalysisResponse:
        params = request.parameters or {}
        focus_areas = extract_string_list(params, "focus_areas")
        result = await self.analyzer.analyze_trends(focus_areas, request.data)

        data_quality = None
        quality = result.results.get("data_quality")
        if isinstance(quality, dict):
            limitations = quality.get("limitations")
            data_quality = DataQuality(
                assessment=quality.get("assessment") if isinstance(quality.get("assessment"), str) else None,
                limitations=[item for item in limitations if isinstance(item, str)] if isinstance(limitations, list) else [],
            )
        return self._response(request, "trends", result.results, result.confidence, data_quality)

    async def _patterns(self, request: StandardAnalysisRequest) -> StandardAnalysisResponse:
        params = request.parameters or {}
        pattern_types = extract_string_list(params, "pattern_types")
        result = await self.analyzer.identify_patterns(
            pattern_types,
            request.data,
            max_groups=params.get("max_groups"),
            min_count=params.get("min_count"),
        )
        return self._response(request, "patterns", result.results, result.confidence)

    async def _findings(self, request: StandardAnalysisRequest) -> StandardAnalysisResponse:
        params = request.parameters or {}
        questions = extract_string_list(params, "questions")
        result = await self.analyzer.analyze_findings(questions, request.data)

        data_quality = None
        if isinstance(result.results.get("data_gaps"), list):
            data_quality = DataQuality(
                assessment="Based on identified data gaps",
                limitations=result.data_gaps,
            )
        return self._response(request, "findings", result.results, result.confidence, data_quality)

    async def _attributes(self, request: StandardAnalysisRequest) -> StandardAnalysisResponse:
        params = request.parameters or {}

        if params.get("generate_required"):
            questions = extract_string_list(params, "questions")
            existing = [attr for attr in params.get("existing_attributes") or [] if isinstance(attr, str)]
            attributes = await self.text_generator.generate_required_attributes(questions, existing)
            results = {"attributes": [attr.model_dump() for attr in attributes]}
        else:
            definitions = parse_attribute_definitions(params.get("attributes"))
            values = await self.text_generator.generate_attributes(request.text or "", definitions)
            results = {"attribute_values": [value.model_dump() for value in values]}

        return self._response(request, "attributes", results, ATTRIBUTES_CONFIDENCE)

    async def _intent(self, request: StandardAnalysisRequest) -> StandardAnalysisResponse:
        if not request.text:
            raise ValueError("text is required for intent analysis")
        intent = await self.text_generator.generate_intent(request.text)
        return self._response(request, "intent", intent.model_dump(), INTENT_CONFIDENCE)

    async def _recommendations(self, request: StandardAnalysisRequest) -> StandardAnalysisResponse:
        params = request.parameters or {}
        focus_area = params.get("focus_area") or DEFAULT_FOCUS_AREA

        criteria = params.get("criteria")
        weights = {}
        if isinstance(criteria, dict):
            weights = {
                name: float(weight) for name, weight in criteria.items()
                if isinstance(weight, (int, float)) and not isinstance(weight, bool)
            }

        if _is_mock(params):
            logger.info("Using mock recommendations (focus area: %s)", focus_area)
            recs = mock_recommendations()
        else:
            recs = await self.recommendation_engine.generate_recommendations(request.data or {}, focus_area)
            if weights and recs.immediate_actions:
                try:
                    recs.immediate_actions = await self.recommendation_engine.prioritize_recommendations(
                        recs.immediate_actions, weights
                    )
                except LLMError as e:
                    # Unprioritized recommendations are still a usable answer
                    logger.warning("Failed to prioritize recommendations: %s", e)

        return self._response(request, "recommendations", recs.model_dump(), RECOMMENDATIONS_CONFIDENCE)

    async def _plan(self, request: StandardAnalysisRequest) -> StandardAnalysisResponse:
        params = request.parameters or {}
        data = request.data or {}

        if params.get("generate_timeline"):
            action_plan = data.get("action_plan")
            if not isinstance(action_plan, dict):
                raise ValueError("action_plan is required in data field")

            if _is_mock(params):
                logger.info("Using mock timeline")
                timeline = mock_timeline()
            else:
                resources = data.get("resources") if isinstance(data.get("resources"), dict) else {}
                timeline = await self.planner.generate_timeline(action_plan, resources)

            results = {"timeline": [event.model_dump() for event in timeline]}
            return self._response(request, "plan", results, TIMELINE_CONFIDENCE)

        if "recommendations" not in data:
            raise ValueError("recommendations are required in data field")

        if _is_mock(params):
            logger.info("Using mock action plan")
            plan = mock_action_plan()
        else:
            raw = data["recommendations"]
            if not isinstance(raw, dict):
                raise ValueError("recommendations must be an object")
            try:
                recommendations = RecommendationResponse.model_validate(raw)
            except ValidationError as e:
                raise ValueError(f"invalid recommendations: {e}") from e

            constraints = params.get("constraints") if isinstance(params.get("constraints"), dict) else {}
            plan = await self.planner.create_action_plan(recommendations, constraints)

        return self._response(request, "plan", plan.model_dump(), PLAN_CONFIDENCE)


# =============================================================================
# Function catalogue for the workflow builder
# =============================================================================

def _param(name: str, path: str, description: str, type_: str, required: bool = False) -> ParameterDefinition:
    return ParameterDefinition(name=name, path=path, description=description, required=required, type=type_)


def _output(name: str, path: str, description: str, type_: str) -> OutputDefinition:
    return OutputDefinition(name=name, path=path, description=description, type=type_)


FUNCTION_CATALOGUE = [
    FunctionMetadata(
        id="analysis-trends",
        label="Analyze Trends",
        description="Analyze trends in conversation data",
        inputs=[
            _param("Focus Areas", "parameters.focus_areas", "Areas to focus trend analysis on", "string[]", True),
            _param("Attribute Values", "data", "Extracted attribute values to analyze", "object"),
        ],
        outputs=[
            _output("Trends", "results.trends", "Identified trends per focus area", "object[]"),
            _output("Insights", "results.overall_insights", "Overall insights", "string[]"),
            _output("Data Quality", "results.data_quality", "Assessment and limitations of the data", "object"),
        ],
        example={"parameters": {"focus_areas": ["Customer Satisfaction", "Response Time", "Issue Resolution"]}},
    ),
    FunctionMetadata(
        id="analysis-patterns",
        label="Identify Patterns",
        description="Identify patterns in conversation data, or group intents with pattern type intent_groups",
        inputs=[
            _param("Pattern Types", "parameters.pattern_types", "Types of patterns to look for", "string[]", True),
            _param("Attribute Values", "data", "Data to search; data.intents for intent grouping", "object"),
            _param("Max Groups", "parameters.max_groups", "Maximum intent groups (default 20)", "number"),
            _param("Min Count", "parameters.min_count", "Minimum intent count to keep (default 5)", "number"),
        ],
        outputs=[
            _output("Patterns", "results.patterns", "Identified patterns or intent groups", "object[]"),
            _output("Unexpected Patterns", "results.unexpected_patterns", "Patterns outside the requested types", "object[]"),
        ],
        example={"parameters": {"pattern_types": ["communication_patterns", "recurring_issues", "customer_behavior"]}},
    ),
    FunctionMetadata(
        id="analysis-findings",
        label="Analyze Findings",
        description="Answer questions from analyzed conversation data",
        inputs=[
            _param("Questions", "parameters.questions", "Questions to answer from the data", "string[]", True),
            _param("Attribute Values", "data", "Data the answers are based on", "object", True),
        ],
        outputs=[
            _output("Answers", "results.answers", "Answers with key metrics and confidence", "object[]"),
            _output("Data Gaps", "results.data_gaps", "Data missing to answer fully", "string[]"),
        ],
        example={"parameters": {"questions": ["What are the main customer pain points?"]}},
    ),
    FunctionMetadata(
        id="analysis-attributes",
        label="Extract Attributes",
        description="Extract attribute values from a conversation, or propose the attributes needed for a set of questions",
        inputs=[
            _param("Text", "text", "Conversation text", "string"),
            _param("Attributes", "parameters.attributes", "Attribute definitions to extract", "object[]"),
            _param("Generate Required", "parameters.generate_required", "Propose attributes instead of extracting", "boolean"),
            _param("Questions", "parameters.questions", "Questions the attributes must answer", "string[]"),
        ],
        outputs=[
            _output("Attribute Values", "results.attribute_values", "Extracted values", "object[]"),
            _output("Attributes", "results.attributes", "Proposed attribute definitions", "object[]"),
        ],
    ),
    FunctionMetadata(
        id="analysis-intent",
        label="Classify Intent",
        description="Classify the customer's primary intent in a conversation",
        inputs=[_param("Text", "text", "Conversation text", "string", True)],
        outputs=[
            _output("Label", "results.label", "Machine-readable intent label", "string"),
            _output("Label Name", "results.label_name", "Human-readable intent label", "string"),
            _output("Description", "results.description", "Description of the intent", "string"),
        ],
    ),
    FunctionMetadata(
        id="analysis-recommendations",
        label="Generate Recommendations",
        description="Generate recommendations from analysis results",
        inputs=[
            _param("Analysis Results", "data", "Results of earlier analyses", "object", True),
            _param("Focus Area", "parameters.focus_area", "What the recommendations should improve", "string"),
            _param("Criteria", "parameters.criteria", "Weighted prioritization criteria", "object"),
        ],
        outputs=[
            _output("Immediate Actions", "results.immediate_actions", "Recommended actions", "object[]"),
            _output("Implementation Notes", "results.implementation_notes", "Notes for implementation", "string[]"),
            _output("Success Metrics", "results.success_metrics", "How to measure success", "string[]"),
        ],
    ),
    FunctionMetadata(
        id="analysis-plan",
        label="Create Action Plan",
        description="Create an action plan from recommendations, or a timeline from an action plan",
        inputs=[
            _param("Recommendations", "data.recommendations", "Recommendations to plan", "object"),
            _param("Constraints", "parameters.constraints", "Implementation constraints", "object"),
            _param("Generate Timeline", "parameters.generate_timeline", "Build a timeline from data.action_plan", "boolean"),
            _param("Action Plan", "data.action_plan", "Plan to build a timeline for", "object"),
        ],
        outputs=[
            _output("Goals", "results.goals", "Plan goals", "string[]"),
            _output("Immediate Actions", "results.immediate_actions", "Actions to start now", "object[]"),
            _output("Timeline", "results.timeline", "Implementation phases", "object[]"),
        ],
    ),
]
