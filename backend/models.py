from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime

# =============================================================================
# Unified analysis API
# =============================================================================

class StandardAnalysisRequest(BaseModel):
    analysis_type: str
    workflow_id: Optional[str] = None
    text: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    parameters: Optional[Dict[str, Any]] = None

class DataQuality(BaseModel):
    assessment: Optional[str] = None
    limitations: List[str] = []

class ErrorDetail(BaseModel):
    code: str  # invalid_request | invalid_analysis_type | analysis_error | analysis_timeout
    message: str

class StandardAnalysisResponse(BaseModel):
    analysis_type: str
    workflow_id: Optional[str] = None
    timestamp: datetime
    results: Any = None
    confidence: Optional[float] = None
    data_quality: Optional[DataQuality] = None
    error: Optional[ErrorDetail] = None

class ChainAnalysisRequest(BaseModel):
    steps: List[str]
    workflow_id: Optional[str] = None
    text: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    step_config: Dict[str, Dict[str, Any]] = {}

class StoredAnalysisResult(BaseModel):
    id: str
    workflow_id: Optional[str] = None
    analysis_type: str
    results: Any = None
    created_at: datetime

# =============================================================================
# Analysis engine results
# =============================================================================

class AnalysisResult(BaseModel):
    results: Dict[str, Any]
    confidence: float
    data_gaps: List[str] = []

class AttributeDefinition(BaseModel):
    field_name: str
    title: str = ""
    description: str = ""
    rationale: str = ""

class AttributeValue(BaseModel):
    field_name: str
    value: str
    confidence: float
    explanation: str = ""

class IntentClassification(BaseModel):
    label_name: str  # Human readable, e.g. "Billing Dispute"
    label: str       # snake_case, e.g. "billing_dispute"
    description: str

class Recommendation(BaseModel):
    action: str
    rationale: str = ""
    expected_impact: str = ""
    priority: int = 0

class RecommendationResponse(BaseModel):
    immediate_actions: List[Recommendation] = []
    implementation_notes: List[str] = []
    success_metrics: List[str] = []

class RetentionStrategy(BaseModel):
    target_segment: str = ""
    immediate_actions: List[Recommendation] = []
    process_changes: List[str] = []
    training_needs: List[str] = []
    success_metrics: List[str] = []

class ActionItem(BaseModel):
    action: str
    description: str = ""
    priority: int = 0
    estimated_effort: str = ""
    dependencies: List[str] = []
    responsible_role: str = ""

class TimelineEvent(BaseModel):
    phase: str
    description: str = ""
    duration: str = ""
    milestones: List[str] = []

class RiskItem(BaseModel):
    risk: str
    impact: str = ""
    probability: str = ""
    mitigation_plan: str = ""
    contingency_plan: str = ""
    responsible_party: str = ""

class ActionPlan(BaseModel):
    goals: List[str] = []
    immediate_actions: List[ActionItem] = []
    short_term_actions: List[ActionItem] = []
    long_term_actions: List[ActionItem] = []
    responsible_parties: List[str] = []
    timeline: List[TimelineEvent] = []
    success_metrics: List[str] = []
    risks_mitigations: List[RiskItem] = []

# =============================================================================
# Function catalogue (visual builder)
# =============================================================================

class ParameterDefinition(BaseModel):
    name: str
    path: str  # e.g. "parameters.focus_areas"
    description: str
    required: bool
    type: str

class OutputDefinition(BaseModel):
    name: str
    path: str  # e.g. "results.trends"
    description: str
    type: str

class FunctionMetadata(BaseModel):
    id: str  # "analysis-<type>"
    label: str
    description: str
    inputs: List[ParameterDefinition]
    outputs: List[OutputDefinition]
    example: Optional[Dict[str, Any]] = None

# =============================================================================
# Components & workflows
# =============================================================================

class Component(BaseModel):
    id: str
    type: str
    label: str

class Workflow(BaseModel):
    id: Optional[str] = None
    name: str
    date: Optional[str] = None
    nodes: List[Dict[str, Any]] = []
    edges: List[Dict[str, Any]] = []

class WorkflowExecutionRequest(BaseModel):
    text: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    parameters: Optional[Dict[str, Any]] = None

class WorkflowExecutionResponse(BaseModel):
    workflow_id: str
    workflow_name: str
    timestamp: datetime
    results: Dict[str, Any]

class WorkflowExecutionConfig(BaseModel):
    id: str
    name: str
    description: str
    inputTabs: List[Dict[str, Any]]
    parameters: List[Dict[str, Any]]

class WorkflowGenerateRequest(BaseModel):
    description: str
