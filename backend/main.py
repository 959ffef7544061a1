import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import FastAPI, Depends, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models import (
    Component, Workflow, WorkflowExecutionRequest, WorkflowExecutionResponse,
    WorkflowExecutionConfig, WorkflowGenerateRequest,
    StandardAnalysisRequest, StandardAnalysisResponse, ChainAnalysisRequest,
    StoredAnalysisResult, FunctionMetadata, ErrorDetail,
)
from database import (
    get_db, AgentDB, ToolDB,
    get_components, create_component, update_component, delete_component,
    get_workflows, get_workflow, create_workflow, update_workflow, delete_workflow,
    save_analysis_result, get_analysis_result, get_analysis_results_by_workflow,
    delete_analysis_result,
)
from migrations import run_migrations
from rate_limiter import RateLimiter
from gemini_client import GeminiClient, LLMError
from analysis_service import AnalysisService, UnknownAnalysisType
from workflow_executor import WorkflowExecutor, WorkflowCycleError, execution_config, generate_workflow

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="AgenticFlows")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup():
    """Migrate the database and build the shared LLM client."""
    await run_migrations()

    rate_limiter = RateLimiter(settings.llm_requests_per_minute)
    client = GeminiClient(
        settings.gemini_api_key,
        settings.gemini_model,
        rate_limiter=rate_limiter,
        debug=settings.llm_debug,
    )
    app.state.gemini_client = client
    app.state.analysis_service = AnalysisService(client)
    logger.info(
        "Gemini client ready (model=%s, %d requests/minute, debug=%s)",
        settings.gemini_model, settings.llm_requests_per_minute, settings.llm_debug,
    )


def get_service(request: Request) -> AnalysisService:
    return request.app.state.analysis_service


def get_gemini_client(request: Request) -> GeminiClient:
    return request.app.state.gemini_client


# =============================================================================
# Agents & Tools
# =============================================================================

async def _list_components(db: AsyncSession, model) -> List[Component]:
    return [Component(id=c.id, type=c.type, label=c.label) for c in await get_components(db, model)]


async def _create_component(db: AsyncSession, model, component: Component) -> Component:
    if not component.id or not component.label:
        raise HTTPException(status_code=400, detail="id and label are required")
    try:
        created = await create_component(db, model, component.id, component.type, component.label)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return Component(id=created.id, type=created.type, label=created.label)


async def _update_component(db: AsyncSession, model, id: str, component: Component) -> Component:
    updated = await update_component(db, model, id, component.type, component.label)
    if updated is None:
        raise HTTPException(status_code=404, detail=f"{id} not found")
    return Component(id=updated.id, type=updated.type, label=updated.label)


async def _delete_component(db: AsyncSession, model, id: str) -> dict:
    if not await delete_component(db, model, id):
        raise HTTPException(status_code=404, detail=f"{id} not found")
    return {"status": "deleted"}


@app.get("/api/agents", response_model=List[Component])
async def list_agents(db: AsyncSession = Depends(get_db)):
    return await _list_components(db, AgentDB)


@app.post("/api/agents", response_model=Component, status_code=201)
async def add_agent(component: Component, db: AsyncSession = Depends(get_db)):
    return await _create_component(db, AgentDB, component)


@app.put("/api/agents/{id}", response_model=Component)
async def edit_agent(id: str, component: Component, db: AsyncSession = Depends(get_db)):
    return await _update_component(db, AgentDB, id, component)


@app.delete("/api/agents/{id}")
async def remove_agent(id: str, db: AsyncSession = Depends(get_db)):
    return await _delete_component(db, AgentDB, id)


@app.get("/api/tools", response_model=List[Component])
async def list_tools(db: AsyncSession = Depends(get_db)):
    return await _list_components(db, ToolDB)


@app.post("/api/tools", response_model=Component, status_code=201)
async def add_tool(component: Component, db: AsyncSession = Depends(get_db)):
    return await _create_component(db, ToolDB, component)


@app.put("/api/tools/{id}", response_model=Component)
async def edit_tool(id: str, component: Component, db: AsyncSession = Depends(get_db)):
    return await _update_component(db, ToolDB, id, component)


@app.delete("/api/tools/{id}")
async def remove_tool(id: str, db: AsyncSession = Depends(get_db)):
    return await _delete_component(db, ToolDB, id)


# =============================================================================
# Workflows
# =============================================================================

async def _load_workflow(db: AsyncSession, workflow_id: str) -> dict:
    workflow = await get_workflow(db, workflow_id)
    if workflow is None:
        raise HTTPException(status_code=404, detail=f"workflow {workflow_id} not found")
    return workflow.to_dict()


@app.get("/api/workflows", response_model=List[Workflow])
async def list_workflows(db: AsyncSession = Depends(get_db)):
    return [w.to_dict() for w in await get_workflows(db)]


@app.post("/api/workflows", response_model=Workflow, status_code=201)
async def add_workflow(workflow: Workflow, db: AsyncSession = Depends(get_db)):
    if not workflow.name.strip():
        raise HTTPException(status_code=400, detail="name is required")
    try:
        created = await create_workflow(
            db, workflow.name, workflow.nodes, workflow.edges,
            workflow_id=workflow.id, workflow_date=workflow.date,
        )
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return created.to_dict()


@app.post("/api/workflows/generate", response_model=Workflow, status_code=201)
async def generate(
    request: WorkflowGenerateRequest,
    db: AsyncSession = Depends(get_db),
    client: GeminiClient = Depends(get_gemini_client),
):
    """Generate a workflow from a plain-language description and save it."""
    agents = [{"id": a.id, "label": a.label} for a in await get_components(db, AgentDB)]
    tools = [{"id": t.id, "label": t.label} for t in await get_components(db, ToolDB)]

    try:
        workflow = await generate_workflow(client, request.description, agents, tools)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LLMError as e:
        logger.error("Workflow generation failed: %s", e)
        raise HTTPException(status_code=500, detail=f"Workflow generation failed: {e}")

    created = await create_workflow(
        db, workflow.name, workflow.nodes, workflow.edges,
        workflow_id=workflow.id, workflow_date=workflow.date,
    )
    return created.to_dict()


@app.get("/api/workflows/{workflow_id}", response_model=Workflow)
async def read_workflow(workflow_id: str, db: AsyncSession = Depends(get_db)):
    return await _load_workflow(db, workflow_id)


@app.put("/api/workflows/{workflow_id}", response_model=Workflow)
async def edit_workflow(workflow_id: str, workflow: Workflow, db: AsyncSession = Depends(get_db)):
    updated = await update_workflow(
        db, workflow_id, workflow.name, workflow.nodes, workflow.edges, workflow_date=workflow.date
    )
    if updated is None:
        raise HTTPException(status_code=404, detail=f"workflow {workflow_id} not found")
    return updated.to_dict()


@app.delete("/api/workflows/{workflow_id}")
async def remove_workflow(workflow_id: str, db: AsyncSession = Depends(get_db)):
    if not await delete_workflow(db, workflow_id):
        raise HTTPException(status_code=404, detail=f"workflow {workflow_id} not found")
    return {"status": "deleted"}


@app.get("/api/workflows/{workflow_id}/config", response_model=WorkflowExecutionConfig)
async def workflow_config(workflow_id: str, db: AsyncSession = Depends(get_db)):
    return execution_config(await _load_workflow(db, workflow_id))


@app.post("/api/workflows/{workflow_id}/execute", response_model=WorkflowExecutionResponse)
async def execute_workflow(
    workflow_id: str,
    request: WorkflowExecutionRequest,
    db: AsyncSession = Depends(get_db),
    service: AnalysisService = Depends(get_service),
):
    workflow = await _load_workflow(db, workflow_id)

    try:
        results = await WorkflowExecutor(service).execute(
            workflow, text=request.text, data=request.data, parameters=request.parameters
        )
    except WorkflowCycleError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return WorkflowExecutionResponse(
        workflow_id=workflow_id,
        workflow_name=workflow["name"],
        timestamp=datetime.now(timezone.utc),
        results=results,
    )


# =============================================================================
# Analysis
# =============================================================================

def _error_response(
    request: StandardAnalysisRequest,
    response: Response,
    status_code: int,
    code: str,
    message: str,
) -> StandardAnalysisResponse:
    response.status_code = status_code
    return StandardAnalysisResponse(
        analysis_type=request.analysis_type,
        workflow_id=request.workflow_id,
        timestamp=datetime.now(timezone.utc),
        error=ErrorDetail(code=code, message=message),
    )


@app.post("/api/analysis", response_model=StandardAnalysisResponse)
async def run_analysis(
    request: StandardAnalysisRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    service: AnalysisService = Depends(get_service),
):
    """
    Run one analysis.

    Failures come back as a StandardAnalysisResponse with an error object:
    invalid_analysis_type / invalid_request (400), analysis_error (500),
    analysis_timeout (504).
    """
    try:
        async with asyncio.timeout(settings.analysis_timeout_seconds):
            result = await service.run(request)
    except UnknownAnalysisType as e:
        return _error_response(request, response, 400, "invalid_analysis_type", str(e))
    except ValueError as e:
        return _error_response(request, response, 400, "invalid_request", str(e))
    except TimeoutError:
        logger.error("%s analysis timed out", request.analysis_type)
        return _error_response(request, response, 504, "analysis_timeout", "analysis timed out")
    except Exception as e:
        logger.exception("%s analysis failed", request.analysis_type)
        return _error_response(request, response, 500, "analysis_error", f"Analysis failed: {e}")

    if request.workflow_id:
        await save_analysis_result(db, request.workflow_id, result.analysis_type, result.results)

    return result


@app.post("/api/analysis/chain")
async def run_chain(request: ChainAnalysisRequest, service: AnalysisService = Depends(get_service)):
    """Run several analyses in sequence, each reading the previous step's results."""
    try:
        async with asyncio.timeout(settings.analysis_timeout_seconds):
            results = await service.chain(
                request.steps,
                text=request.text,
                data=request.data,
                step_config=request.step_config,
                workflow_id=request.workflow_id,
            )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TimeoutError:
        raise HTTPException(status_code=504, detail="analysis chain timed out")
    except LLMError as e:
        logger.error("Analysis chain failed: %s", e)
        raise HTTPException(status_code=500, detail=f"Analysis chain failed: {e}")

    return {
        "workflow_id": request.workflow_id,
        "timestamp": datetime.now(timezone.utc),
        "steps": request.steps,
        "results": results,
    }


@app.get("/api/analysis/metadata", response_model=List[FunctionMetadata])
async def analysis_metadata(service: AnalysisService = Depends(get_service)):
    return service.function_metadata()


@app.get("/api/analysis/results", response_model=List[StoredAnalysisResult])
async def list_analysis_results(workflow_id: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    if not workflow_id:
        raise HTTPException(status_code=400, detail="workflow_id is required")
    return [r.to_dict() for r in await get_analysis_results_by_workflow(db, workflow_id)]


@app.get("/api/analysis/results/{result_id}", response_model=StoredAnalysisResult)
async def read_analysis_result(result_id: str, db: AsyncSession = Depends(get_db)):
    record = await get_analysis_result(db, result_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"analysis result {result_id} not found")
    return record.to_dict()


@app.delete("/api/analysis/results/{result_id}")
async def remove_analysis_result(result_id: str, db: AsyncSession = Depends(get_db)):
    if not await delete_analysis_result(db, result_id):
        raise HTTPException(status_code=404, detail=f"analysis result {result_id} not found")
    return {"status": "deleted"}


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
