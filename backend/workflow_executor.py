"""
Builder workflows: execution order, execution, run-form config and generation.
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from analysis_service import AnalysisService, FUNCTION_CATALOGUE
from database import new_workflow_id
from gemini_client import GeminiClient, LLMError
from models import StandardAnalysisRequest, Workflow, WorkflowExecutionConfig
from prompts import WORKFLOW_SHAPE, build_workflow_prompt
from text_utils import get_dict_list, get_str

logger = logging.getLogger(__name__)

FUNCTION_PREFIX = "analysis-"

# Input keys accepted for each analysis parameter (builder forms use camelCase)
PARAMETER_KEYS = {
    "focusAreas": "focus_areas",
    "focus_areas": "focus_areas",
    "patternTypes": "pattern_types",
    "pattern_types": "pattern_types",
    "questions": "questions",
    "focusArea": "focus_area",
    "focus_area": "focus_area",
    "criteria": "criteria",
    "attributes": "attributes",
    "constraints": "constraints",
    "generateRequired": "generate_required",
    "generate_required": "generate_required",
    "generateTimeline": "generate_timeline",
    "generate_timeline": "generate_timeline",
    "useMockData": "use_mock_data",
    "use_mock_data": "use_mock_data",
    "maxGroups": "max_groups",
    "max_groups": "max_groups",
    "minCount": "min_count",
    "min_count": "min_count",
}

LIST_PARAMETERS = {"focus_areas", "pattern_types", "questions"}

_MISSING = object()


class WorkflowCycleError(ValueError):
    pass


def _node_data(node: Dict[str, Any]) -> Dict[str, Any]:
    data = node.get("data")
    return data if isinstance(data, dict) else {}


def function_nodes(nodes: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        node for node in nodes
        if isinstance(node, dict)
        and isinstance(node.get("id"), str) and node["id"]
        and _node_data(node).get("nodeType") == "function"
    ]


def execution_order(nodes: List[Dict[str, Any]], edges: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Function nodes sorted so every node comes after the nodes it depends on.

    Raises WorkflowCycleError if the function nodes form a cycle.
    """
    by_id = {node["id"]: node for node in function_nodes(nodes)}
    dependencies: Dict[str, List[str]] = {node_id: [] for node_id in by_id}
    for edge in edges:
        source, target = edge.get("source"), edge.get("target")
        if isinstance(source, str) and isinstance(target, str) and target in dependencies:
            dependencies[target].append(source)

    visited = set()
    visiting = set()
    ordered: List[Dict[str, Any]] = []

    def visit(node_id: str) -> None:
        if node_id in visited:
            return
        if node_id in visiting:
            raise WorkflowCycleError("workflow contains cycles, which are not supported")

        visiting.add(node_id)
        for dependency in dependencies.get(node_id, []):
            visit(dependency)
        visiting.discard(node_id)
        visited.add(node_id)

        if node_id in by_id:
            ordered.append(by_id[node_id])

    for node_id in dependencies:
        visit(node_id)
    return ordered


def get_path(source: Any, path: str) -> Any:
    """Read a dotted path ("results.trends") out of nested dicts. Returns _MISSING if absent."""
    value = source
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def set_path(target: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    for part in parts[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            child = {}
            target[part] = child
        target = child
    target[parts[-1]] = value


def _parameter_value(key: str, value: Any) -> Any:
    # Builder forms send lists as comma-separated text
    if key in LIST_PARAMETERS and isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


def build_request(
    function_id: str,
    inputs: Dict[str, Any],
    workflow_id: Optional[str],
    node_ids: set,
) -> StandardAnalysisRequest:
    """Translate a node's merged inputs into an analysis request."""
    parameters = dict(inputs["parameters"]) if isinstance(inputs.get("parameters"), dict) else {}
    for input_key, param_key in PARAMETER_KEYS.items():
        if input_key in inputs and param_key not in parameters:
            parameters[param_key] = _parameter_value(param_key, inputs[input_key])
    for param_key in LIST_PARAMETERS:
        if param_key in parameters:
            parameters[param_key] = _parameter_value(param_key, parameters[param_key])

    data = {
        key: value for key, value in inputs.items()
        if key not in ("text", "parameters", "data") and key not in PARAMETER_KEYS and key not in node_ids
    }
    if isinstance(inputs.get("data"), dict):
        data.update(inputs["data"])

    text = inputs.get("text")
    return StandardAnalysisRequest(
        analysis_type=function_id[len(FUNCTION_PREFIX):],
        workflow_id=workflow_id,
        text=text if isinstance(text, str) else None,
        data=data,
        parameters=parameters,
    )


class WorkflowExecutor:
    def __init__(self, service: AnalysisService):
        self.service = service

    async def execute(
        self,
        workflow: Dict[str, Any],
        text: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Run every function node and return the results map.

        The map starts with ``data``, ``text`` and ``parameters`` and gains one
        entry per node id. A failing node stores {"error": message} and the
        remaining nodes still run.
        """
        nodes = workflow.get("nodes") or []
        edges = [edge for edge in workflow.get("edges") or [] if isinstance(edge, dict)]
        workflow_id = workflow.get("id")

        ordered = execution_order(nodes, edges)
        node_ids = {node["id"] for node in ordered}
        logger.info(
            "Executing workflow '%s' with %d function nodes and %d edges",
            workflow.get("name"), len(ordered), len(edges),
        )

        results: Dict[str, Any] = dict(data or {})
        if text:
            results["text"] = text
        results.update(parameters or {})

        for node in ordered:
            node_id = node["id"]
            function_id = _node_data(node).get("functionId")
            if not isinstance(function_id, str) or not function_id.startswith(FUNCTION_PREFIX):
                results[node_id] = {"error": f"unsupported function: {function_id}"}
                continue

            inputs = self._mapped_inputs(node_id, edges, results)
            for key, value in results.items():
                inputs.setdefault(key, value)

            request = build_request(function_id, inputs, workflow_id, node_ids)
            logger.info("Executing node %s (%s)", node_id, function_id)
            try:
                response = await self.service.run(request)
            except (ValueError, LLMError) as e:
                logger.warning("Node %s (%s) failed: %s", node_id, function_id, e)
                results[node_id] = {"error": str(e)}
                continue

            results[node_id] = response.model_dump(mode="json")

        return results

    def _mapped_inputs(self, node_id: str, edges: List[Dict[str, Any]], results: Dict[str, Any]) -> Dict[str, Any]:
        """Values routed to ``node_id`` by the data mappings of its incoming edges."""
        inputs: Dict[str, Any] = {}
        for edge in edges:
            if edge.get("target") != node_id:
                continue

            source_results = results.get(edge.get("source"))
            edge_data = edge.get("data") if isinstance(edge.get("data"), dict) else {}
            mappings = edge_data.get("mappings")
            if not isinstance(source_results, dict) or not isinstance(mappings, list):
                continue

            for mapping in mappings:
                if not isinstance(mapping, dict):
                    continue
                source_output = mapping.get("sourceOutput")
                target_input = mapping.get("targetInput")
                if not source_output or not target_input:
                    continue

                value = get_path(source_results, source_output)
                if value is _MISSING:
                    # Bare field names refer to the node's results
                    value = get_path(source_results.get("results"), source_output)
                if value is not _MISSING:
                    set_path(inputs, target_input, value)
        return inputs


# =============================================================================
# Execution form for the builder UI
# =============================================================================

def execution_config(workflow: Dict[str, Any]) -> WorkflowExecutionConfig:
    """Describe the input tabs and parameter groups the run dialog should show."""
    nodes = [node for node in workflow.get("nodes") or [] if isinstance(node, dict)]

    data_sources: List[Dict[str, Any]] = [{
        "id": "manualInput",
        "name": "Manual Input",
        "description": "Enter data manually for workflow execution",
        "fields": [{
            "id": "text",
            "label": "Input Text",
            "type": "textarea",
            "placeholder": "Enter text to analyze...",
            "required": False,
        }],
    }]

    has_database_node = False
    for node in nodes:
        data = _node_data(node)
        label = str(data.get("label") or "").lower()
        if data.get("nodeType") == "tool" and ("database" in label or "db" in label):
            has_database_node = True
            break

    if has_database_node:
        data_sources.append({
            "id": "databaseSource",
            "name": "Database Connection",
            "description": "Configure database connection for data retrieval",
            "fields": [
                {
                    "id": "dbPath",
                    "label": "Database Path",
                    "type": "text",
                    "description": "Path to the SQLite database file",
                    "required": True,
                },
                {
                    "id": "maxItems",
                    "label": "Maximum Items",
                    "type": "number",
                    "description": "Maximum number of items to retrieve",
                    "defaultValue": "100",
                    "required": False,
                },
            ],
        })

    parameters: List[Dict[str, Any]] = [{
        "id": "executionParams",
        "label": "Execution Parameters",
        "fields": [
            {
                "id": "batchSize",
                "label": "Batch Size",
                "type": "number",
                "description": "Number of items to process in each batch",
                "defaultValue": "10",
                "required": False,
            },
            {
                "id": "debugMode",
                "label": "Enable Debug Mode",
                "type": "checkbox",
                "defaultValue": False,
                "required": False,
            },
        ],
    }]

    function_ids = {
        str(_node_data(node).get("functionId") or "")
        for node in nodes
    }
    if any("analysis-trends" in fid for fid in function_ids):
        parameters.append(_text_param_group(
            "trendsParams", "Trends Analysis", "focusAreas", "Focus Areas",
            "Comma-separated list of focus areas for trend analysis",
            "customer_impact,financial_impact",
        ))
    if any("analysis-patterns" in fid for fid in function_ids):
        parameters.append(_text_param_group(
            "patternsParams", "Patterns Analysis", "patternTypes", "Pattern Types",
            "Comma-separated list of pattern types to identify",
            "behavior_patterns,resolution_patterns",
        ))
    if any("analysis-findings" in fid for fid in function_ids):
        parameters.append({
            "id": "findingsParams",
            "label": "Findings Analysis",
            "fields": [{
                "id": "questions",
                "label": "Questions",
                "type": "textarea",
                "description": "Questions to answer, separated by commas",
                "required": False,
            }],
        })

    name = workflow.get("name") or ""
    return WorkflowExecutionConfig(
        id=workflow.get("id") or "",
        name=name,
        description=f"Execution configuration for {name}",
        inputTabs=[{"id": "basicData", "label": "Data Sources", "dataSourceConfigs": data_sources}],
        parameters=parameters,
    )


def _text_param_group(group_id: str, label: str, field_id: str, field_label: str, description: str, default: str) -> Dict[str, Any]:
    return {
        "id": group_id,
        "label": label,
        "fields": [{
            "id": field_id,
            "label": field_label,
            "type": "text",
            "description": description,
            "defaultValue": default,
            "required": False,
        }],
    }


# =============================================================================
# Workflow generation
# =============================================================================

async def generate_workflow(
    client: GeminiClient,
    description: str,
    agents: List[Dict[str, Any]],
    tools: List[Dict[str, Any]],
) -> Workflow:
    """Ask the model to lay out a builder graph for ``description``.

    Nodes without an id and edges without both ends are dropped, as are
    edges pointing at a dropped node.
    """
    if not description or not description.strip():
        raise ValueError("description is required")

    functions = [
        {"id": fn.id, "label": fn.label, "description": fn.description}
        for fn in FUNCTION_CATALOGUE
    ]
    result = await client.generate_content(
        build_workflow_prompt(description, functions, agents, tools),
        WORKFLOW_SHAPE,
    )

    nodes = [
        node for node in get_dict_list(result, "nodes")
        if isinstance(node.get("id"), str) and node["id"]
    ]
    node_ids = {node["id"] for node in nodes}

    edges = []
    for index, edge in enumerate(get_dict_list(result, "edges")):
        source, target = edge.get("source"), edge.get("target")
        if source not in node_ids or target not in node_ids:
            continue
        edges.append({**edge, "id": edge.get("id") or f"e-{source}-{target}-{index}"})

    name = get_str(result, "name").strip() or "Generated Workflow"
    logger.info("Generated workflow '%s' with %d nodes and %d edges", name, len(nodes), len(edges))

    return Workflow(
        id=new_workflow_id(),
        name=name,
        date=date.today().isoformat(),
        nodes=nodes,
        edges=edges,
    )
