# Conversation analysis prompts for Gemini
# Each builder returns the prompt text; the matching *_SHAPE constant lists the
# top-level keys the response must carry.

import json
from typing import Any, Dict, List, Optional

NO_DATA = "No data provided"


def _as_json(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def _bullets(items: List[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def _numbered(items: List[str]) -> str:
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, 1))


# =============================================================================
# Trends / patterns / findings
# =============================================================================

TRENDS_SHAPE = {"trends": [], "overall_insights": [], "data_quality": {}}

def build_trends_prompt(focus_areas: List[str], attribute_values: Optional[Dict[str, Any]]) -> str:
    data = _as_json(attribute_values) if attribute_values else NO_DATA
    return f"""Analyze trends in the following conversation data for these focus areas:

Focus Areas:
{_bullets(focus_areas)}

Data:
{data}

Identify notable trends, patterns, and insights related to the specified focus areas.
Format your response as JSON with these fields:
{{
  "trends": [
    {{
      "focus_area": str,
      "trend": str,
      "supporting_data": str,
      "confidence": float
    }}
  ],
  "overall_insights": [str],
  "data_quality": {{
    "assessment": str,
    "limitations": [str]
  }}
}}"""


PATTERNS_SHAPE = {"patterns": [], "unexpected_patterns": []}

def build_patterns_prompt(pattern_types: List[str], attribute_values: Optional[Dict[str, Any]]) -> str:
    data = _as_json(attribute_values) if attribute_values else NO_DATA
    return f"""Identify patterns in the following conversation data for these pattern types:

Pattern Types:
{_bullets(pattern_types)}

Data:
{data}

Identify specific patterns in the conversation data related to the specified pattern types.
Format your response as JSON with these fields:
{{
  "patterns": [
    {{
      "pattern_type": str,
      "pattern_description": str,
      "occurrences": int,
      "examples": [str],
      "significance": str
    }}
  ],
  "unexpected_patterns": [
    {{
      "description": str,
      "potential_causes": [str]
    }}
  ]
}}"""


def build_intent_grouping_prompt(intents: List[Dict[str, Any]], max_groups: int) -> str:
    return f"""Group the following intents into semantic categories:

Intents:
{_as_json(intents)}

Group these intents into at most {max_groups} semantic categories based on their meaning and purpose.
For each group:
1. Assign a descriptive category name
2. Include relevant examples from the input list
3. Provide a brief description of the group

Format your response as JSON with these fields:
{{
  "patterns": [
    {{
      "pattern_type": str,        // Category/group name
      "pattern_description": str, // What this group represents
      "occurrences": int,         // How many intents belong to this group
      "examples": [str],          // 5-7 example intents from this group
      "significance": str         // Why this grouping is meaningful
    }}
  ],
  "unexpected_patterns": []
}}"""


CONSOLIDATION_SHAPE = {"consolidated_groups": []}

def build_consolidation_prompt(groups: List[Dict[str, Any]], max_groups: int) -> str:
    descriptions = []
    for group in groups:
        line = f"{group.get('pattern_type', '')}: {group.get('pattern_description', '')}."
        examples = [ex for ex in group.get("examples") or [] if isinstance(ex, str)]
        if examples:
            line += f" Examples: {', '.join(examples)}"
        descriptions.append(line)

    return f"""You are a label clustering expert. Consolidate similar intent groups into higher-level categories.

INPUT GROUPS TO CONSOLIDATE:
{chr(10).join(descriptions)}

Rules:
1. Group similar intent categories together under a common, higher-level category
2. Maintain semantic meaning
3. Use consistent labeling style (Title Case)
4. Maximum number of consolidated groups: {max_groups}

Format your response as JSON with these fields:
{{
  "consolidated_groups": [
    {{
      "pattern_type": str,        // Higher-level category name
      "pattern_description": str, // What this group represents
      "occurrences": int,         // How many original groups belong to this category
      "examples": [str],          // Example original groups in this category
      "significance": str         // Why this grouping is meaningful
    }}
  ]
}}"""


FINDINGS_SHAPE = {"answers": [], "data_gaps": []}

def build_findings_prompt(questions: List[str], attribute_values: Dict[str, Any]) -> str:
    return f"""Based on the analysis of customer service conversations, help answer these questions:

Questions:
{_numbered(questions)}

Analysis Data:
{_as_json(attribute_values)}

Please provide:
1. Specific answers to each question, citing the data
2. Key metrics (1-2 words or numbers) that quantify the answer when applicable
3. Confidence level (High/Medium/Low) for each answer
4. Identification of any data gaps

Format as JSON:
{{
  "answers": [
    {{
      "question": str,
      "answer": str,
      "key_metrics": [str],
      "confidence": str,
      "supporting_data": str
    }}
  ],
  "data_gaps": [str]
}}"""


# =============================================================================
# Attributes & intent
# =============================================================================

REQUIRED_ATTRIBUTES_SHAPE = {"attributes": []}

def build_required_attributes_prompt(questions: List[str], existing_attributes: Optional[List[str]] = None) -> str:
    existing = ""
    if existing_attributes:
        existing = f"\nExisting attributes (do not repeat these):\n{_bullets(existing_attributes)}\n"

    return f"""We need to determine what data attributes are required to answer these questions:
{_numbered(questions)}
{existing}
Return a JSON object with this structure:
{{
  "attributes": [
    {{
      "field_name": str,  // Database field name in snake_case
      "title": str,       // Human readable title
      "description": str, // Detailed description of the attribute
      "rationale": str    // Why this attribute is needed for the questions
    }}
  ]
}}"""


ATTRIBUTE_SHAPE = {"value": "", "confidence": 0.0, "explanation": ""}

def build_attribute_prompt(title: str, description: str, text: str) -> str:
    return f"""Analyze this text to determine the value for the following attribute:

Attribute: {title}
Description: {description}

Text to analyze:
{text}

Return a JSON object with this structure:
{{
  "value": str,           // The extracted or determined value
  "confidence": float,    // Confidence score between 0 and 1
  "explanation": str      // How the value was determined
}}

Ensure the response is specific to the attribute definition and supported by the text content."""


ATTRIBUTE_VALUES_SHAPE = {"attribute_values": []}

def build_attributes_prompt(attributes: List[Dict[str, str]], text: str) -> str:
    listing = "".join(
        f"Attribute: {attr['field_name']} ({attr.get('title') or attr['field_name']})\n"
        f"Description: {attr.get('description', '')}\n\n"
        for attr in attributes
    )
    return f"""Analyze this text to determine values for the following attributes:

{listing}Text to analyze:
{text}

Return a JSON object with this structure:
{{
  "attribute_values": [
    {{
      "field_name": str,     // Must match one of the field names provided above
      "value": str,          // The extracted or determined value
      "confidence": float,   // Confidence score between 0 and 1
      "explanation": str     // How the value was determined
    }}
  ]
}}

Ensure each response is specific to the attribute definition and supported by the text content.
Include all requested attributes in your response, even if the confidence is low."""


INTENT_SHAPE = {"label_name": "", "label": "", "description": ""}

def build_intent_prompt(text: str) -> str:
    return f"""You classify customer service conversations. Analyze the conversation transcript below and determine the customer's *primary* intent for contacting customer service: the main reason they started the interaction, even if other topics come up briefly.

Return a JSON object with exactly these keys:

* "label_name": (string) Natural language label for the primary intent, 2-3 words maximum, Title Case (e.g. "Update Address", "Cancel Order").
* "label": (string) "label_name" in lowercase with underscores instead of spaces (e.g. "update_address").
* "description": (string) 1-2 sentences naming the specific problem or request. Not "billing issue" but "The customer is disputing a charge on their latest bill."

Rules:
1. Pick the single most important reason for the contact.
2. Base the classification only on the transcript. Do not invent details.
3. Output only the JSON object, with no extra text.

Conversation Transcript:
{text}"""


# =============================================================================
# Recommendations & planning
# =============================================================================

RECOMMENDATIONS_SHAPE = {"immediate_actions": [], "implementation_notes": [], "success_metrics": []}

def build_recommendations_prompt(analysis_results: Dict[str, Any], focus_area: str) -> str:
    return f"""Based on this analysis focused on {focus_area}:

{_as_json(analysis_results)}

Generate specific, actionable recommendations. Consider:
1. Immediate actions that can be taken
2. Rationale for each recommendation
3. Expected impact of implementation
4. Priority level (1-5, where 5 is highest)

Format your response as JSON with these fields:
{{
  "immediate_actions": [
    {{
      "action": str,
      "rationale": str,
      "expected_impact": str,
      "priority": int
    }}
  ],
  "implementation_notes": [str],
  "success_metrics": [str]
}}"""


# Array response; key presence is not checked
PRIORITIZED_SHAPE: List[Any] = []

def build_prioritize_prompt(recommendations: List[Dict[str, Any]], criteria: Dict[str, Any]) -> str:
    return f"""Prioritize these recommendations based on the given criteria:

Recommendations:
{_as_json(recommendations)}

Prioritization Criteria (with weights):
{_as_json(criteria)}

Review each recommendation and re-prioritize it based on the weighted criteria.
Assign a new priority score (1-10) to each, where 10 is highest priority.

Return the reprioritized recommendations as a JSON array with the same structure as the input,
but with updated priority values and a brief explanation in "rationale" of why each received its new priority."""


RETENTION_SHAPE = {
    "target_segment": "",
    "immediate_actions": [],
    "process_changes": [],
    "training_needs": [],
    "success_metrics": [],
}

def build_retention_prompt(analysis_results: Dict[str, Any]) -> str:
    return f"""Based on this analysis of customer cancellations and retention efforts:

{_as_json(analysis_results)}

Recommend specific, actionable steps to improve customer retention. Consider:
1. Immediate changes to agent behavior
2. Process improvements
3. Most effective retention offers
4. Training opportunities

Format as JSON:
{{
  "target_segment": str,
  "immediate_actions": [
    {{
      "action": str,
      "rationale": str,
      "expected_impact": str,
      "priority": int
    }}
  ],
  "process_changes": [str],
  "training_needs": [str],
  "success_metrics": [str]
}}"""


ACTION_PLAN_SHAPE = {
    "goals": [],
    "immediate_actions": [],
    "short_term_actions": [],
    "long_term_actions": [],
    "responsible_parties": [],
    "timeline": [],
    "success_metrics": [],
    "risks_mitigations": [],
}

_ACTION_ITEM_FORMAT = """{
      "action": str,
      "description": str,
      "priority": int,
      "estimated_effort": str,
      "dependencies": [str],
      "responsible_role": str
    }"""

def build_action_plan_prompt(recommendations: Dict[str, Any], constraints: Dict[str, Any]) -> str:
    return f"""Create a comprehensive implementation plan for these recommendations:

Recommendations:
{_as_json(recommendations)}

Implementation Constraints:
{_as_json(constraints or {})}

Develop a structured action plan that addresses all recommendations while considering the constraints.
Include short-term and long-term actions, timeline, responsible parties, and success metrics.

Format as JSON:
{{
  "goals": [str],
  "immediate_actions": [
    {_ACTION_ITEM_FORMAT}
  ],
  "short_term_actions": [
    {_ACTION_ITEM_FORMAT}
  ],
  "long_term_actions": [
    {_ACTION_ITEM_FORMAT}
  ],
  "responsible_parties": [str],
  "timeline": [
    {{
      "phase": str,
      "description": str,
      "duration": str,
      "milestones": [str]
    }}
  ],
  "success_metrics": [str],
  "risks_mitigations": [
    {{
      "risk": str,
      "impact": str,
      "probability": str,
      "mitigation_plan": str,
      "contingency_plan": str,
      "responsible_party": str
    }}
  ]
}}"""


# Array response; key presence is not checked
TIMELINE_SHAPE: List[Any] = []

def build_timeline_prompt(action_plan: Dict[str, Any], resources: Dict[str, Any]) -> str:
    return f"""Create a detailed implementation timeline for this action plan:

Action Plan:
{_as_json(action_plan)}

Available Resources:
{_as_json(resources)}

Break the plan into sequential phases that respect the dependencies between actions and
the available resources. Each phase needs a realistic duration and concrete milestones.

Return a JSON array of phases:
[
  {{
    "phase": str,
    "description": str,
    "duration": str,
    "milestones": [str]
  }}
]"""


# =============================================================================
# Workflow generation
# =============================================================================

WORKFLOW_SHAPE = {"name": "", "nodes": [], "edges": []}

def build_workflow_prompt(
    description: str,
    functions: List[Dict[str, Any]],
    agents: List[Dict[str, Any]],
    tools: List[Dict[str, Any]],
) -> str:
    function_lines = "\n".join(f"- {fn['id']}: {fn['label']} - {fn['description']}" for fn in functions)
    agent_lines = "\n".join(f"- {agent['id']}: {agent['label']}" for agent in agents) or "- (none)"
    tool_lines = "\n".join(f"- {tool['id']}: {tool['label']}" for tool in tools) or "- (none)"

    return f"""Design a conversation analysis workflow for a visual builder.

Request:
{description}

Available analysis functions (node data.nodeType = "function", data.functionId = id):
{function_lines}

Available agents (node data.nodeType = "agent"):
{agent_lines}

Available tools (node data.nodeType = "tool"):
{tool_lines}

Rules:
1. Only use the functions, agents and tools listed above
2. Every node needs a unique "id", a "type" of "custom", a "position" {{"x": int, "y": int}} and "data" with "label" and "nodeType"
3. Function nodes also need "data.functionId"
4. Edges connect nodes in execution order; no cycles
5. To pass a result field into the next function, add "data.mappings": [{{"sourceOutput": str, "targetInput": str}}] to the edge

Format as JSON:
{{
  "name": str,
  "nodes": [
    {{"id": str, "type": "custom", "position": {{"x": int, "y": int}}, "data": {{"label": str, "nodeType": str, "functionId": str}}}}
  ],
  "edges": [
    {{"id": str, "source": str, "target": str, "data": {{"mappings": []}}}}
  ]
}}"""
