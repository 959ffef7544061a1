"""Test API endpoints."""
import asyncio

import pytest
from fastapi.testclient import TestClient

import main
from analysis_service import AnalysisService
from conftest import FakeLLM
from gemini_client import TransportError
from migrations import DEFAULT_AGENTS


@pytest.fixture(scope="module")
def client():
    with TestClient(main.app) as test_client:
        yield test_client


@pytest.fixture
def llm(client):
    fake = FakeLLM()
    main.app.dependency_overrides[main.get_service] = lambda: AnalysisService(fake)
    main.app.dependency_overrides[main.get_gemini_client] = lambda: fake
    yield fake
    main.app.dependency_overrides.clear()


def test_health_endpoint(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_startup_builds_shared_client(client):
    gemini = main.app.state.gemini_client
    assert main.app.state.analysis_service.analyzer.client is gemini
    assert gemini.rate_limiter.max_requests == main.settings.llm_requests_per_minute
    assert gemini.debug is False


def test_seeded_agents(client):
    response = client.get("/api/agents")
    assert response.status_code == 200
    assert len(response.json()) == len(DEFAULT_AGENTS)


def test_tool_crud(client):
    tool = {"id": "qa-sampler", "type": "tool", "label": "QA Sampler"}

    assert client.post("/api/tools", json=tool).status_code == 201
    assert client.post("/api/tools", json=tool).status_code == 409

    response = client.put("/api/tools/qa-sampler", json={**tool, "label": "QA Sampler v2"})
    assert response.json()["label"] == "QA Sampler v2"
    assert client.put("/api/tools/unknown", json=tool).status_code == 404

    assert client.delete("/api/tools/qa-sampler").status_code == 200
    assert client.delete("/api/tools/qa-sampler").status_code == 404


def test_workflow_crud_and_config(client):
    workflow = {
        "id": "wf-api-1",
        "name": "Support review",
        "nodes": [{"id": "t", "data": {"nodeType": "function", "functionId": "analysis-trends"}}],
        "edges": [],
    }

    created = client.post("/api/workflows", json=workflow)
    assert created.status_code == 201
    assert created.json()["date"]
    assert client.post("/api/workflows", json=workflow).status_code == 409

    assert client.get("/api/workflows/wf-api-1").json()["nodes"] == workflow["nodes"]
    assert "wf-api-1" in [w["id"] for w in client.get("/api/workflows").json()]

    config = client.get("/api/workflows/wf-api-1/config").json()
    assert [g["id"] for g in config["parameters"]] == ["executionParams", "trendsParams"]

    renamed = client.put("/api/workflows/wf-api-1", json={**workflow, "name": "Renamed"})
    assert renamed.json()["name"] == "Renamed"

    assert client.delete("/api/workflows/wf-api-1").status_code == 200
    assert client.get("/api/workflows/wf-api-1").status_code == 404
    assert client.get("/api/workflows/wf-api-1/config").status_code == 404


def test_execute_workflow(client, llm):
    llm.queue({"label_name": "Cancel Order", "label": "cancel_order", "description": "Wants to cancel"})
    client.post("/api/workflows", json={
        "id": "wf-api-2",
        "name": "Intent only",
        "nodes": [{"id": "i", "data": {"nodeType": "function", "functionId": "analysis-intent"}}],
        "edges": [],
    })

    response = client.post("/api/workflows/wf-api-2/execute", json={"text": "please cancel my order"})

    assert response.status_code == 200
    body = response.json()
    assert body["workflow_name"] == "Intent only"
    assert body["results"]["i"]["results"]["label"] == "cancel_order"


def test_execute_cyclic_workflow(client, llm):
    client.post("/api/workflows", json={
        "id": "wf-api-3",
        "name": "Loop",
        "nodes": [
            {"id": "a", "data": {"nodeType": "function", "functionId": "analysis-trends"}},
            {"id": "b", "data": {"nodeType": "function", "functionId": "analysis-findings"}},
        ],
        "edges": [{"source": "a", "target": "b"}, {"source": "b", "target": "a"}],
    })

    response = client.post("/api/workflows/wf-api-3/execute", json={})
    assert response.status_code == 400
    assert "cycles" in response.json()["detail"]


def test_generate_workflow_is_saved(client, llm):
    llm.queue({"name": "Generated", "nodes": [{"id": "n1", "data": {"nodeType": "function"}}], "edges": []})

    response = client.post("/api/workflows/generate", json={"description": "Classify intents"})

    assert response.status_code == 201
    workflow_id = response.json()["id"]
    assert client.get(f"/api/workflows/{workflow_id}").json()["name"] == "Generated"
    # The seeded agents are offered to the model
    assert "Orchestrator" in llm.prompts[0]


# =============================================================================
# Analysis
# =============================================================================

def test_analysis_is_persisted_per_workflow(client, llm):
    llm.queue({"label_name": "Billing Dispute", "label": "billing_dispute", "description": "d"})

    response = client.post("/api/analysis", json={
        "analysis_type": "intent", "workflow_id": "wf-results", "text": "charged twice",
    })

    assert response.status_code == 200
    assert response.json()["confidence"] == 0.9

    stored = client.get("/api/analysis/results", params={"workflow_id": "wf-results"}).json()
    assert len(stored) == 1
    assert stored[0]["results"]["label"] == "billing_dispute"

    result_id = stored[0]["id"]
    assert client.get(f"/api/analysis/results/{result_id}").json()["analysis_type"] == "intent"
    assert client.delete(f"/api/analysis/results/{result_id}").status_code == 200
    assert client.get(f"/api/analysis/results/{result_id}").status_code == 404


def test_results_need_workflow_id(client):
    assert client.get("/api/analysis/results").status_code == 400


@pytest.mark.parametrize("payload, status, code", [
    ({"analysis_type": "sentiment"}, 400, "invalid_analysis_type"),
    ({"analysis_type": "trends", "parameters": {"focus_areas": "x"}}, 400, "invalid_request"),
])
def test_analysis_request_errors(client, llm, payload, status, code):
    response = client.post("/api/analysis", json=payload)

    assert response.status_code == status
    assert response.json()["error"]["code"] == code
    assert llm.prompts == []


def test_analysis_llm_failure(client, llm):
    llm.queue(TransportError("API error: 500, boom", status_code=500))

    response = client.post("/api/analysis", json={"analysis_type": "intent", "text": "hi"})

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "analysis_error"


def test_analysis_timeout(client, llm, monkeypatch):
    class SlowService:
        async def run(self, request):
            await asyncio.sleep(1)

    main.app.dependency_overrides[main.get_service] = lambda: SlowService()
    monkeypatch.setattr(main.settings, "analysis_timeout_seconds", 0.01)

    response = client.post("/api/analysis", json={"analysis_type": "intent", "text": "hi"})

    assert response.status_code == 504
    assert response.json()["error"]["code"] == "analysis_timeout"


def test_chain(client, llm):
    llm.queue({"trends": [], "overall_insights": ["steady"], "data_quality": {}})

    response = client.post("/api/analysis/chain", json={
        "steps": ["trends"],
        "data": {"calls": 5},
        "step_config": {"trends": {"focus_areas": ["volume"]}},
    })

    assert response.status_code == 200
    assert response.json()["results"]["trends"]["overall_insights"] == ["steady"]


def test_chain_invalid(client, llm):
    assert client.post("/api/analysis/chain", json={"steps": ["nope"]}).status_code == 400


def test_metadata(client, llm):
    response = client.get("/api/analysis/metadata")

    assert response.status_code == 200
    assert "analysis-intent" in [fn["id"] for fn in response.json()]
