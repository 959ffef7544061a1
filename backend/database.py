"""
Database module for workflow, component and analysis result storage.
Uses async SQLAlchemy; SQLite (aiosqlite) locally, PostgreSQL (asyncpg) in deployments.
"""
from datetime import datetime, date, timezone
from pathlib import Path
from typing import Any, List, Optional, Type
import json
import time
import uuid

from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base

from config import settings


def build_engine(database_url: str) -> AsyncEngine:
    url = make_url(database_url)
    options = {"echo": False}
    if url.get_backend_name() == "postgresql":
        options.update(pool_pre_ping=True, pool_size=20, max_overflow=30)
    elif url.database and url.database != ":memory:":
        # SQLite will not create the parent directory itself
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_async_engine(database_url, **options)


# Create async engine
engine = build_engine(settings.database_url)

# Async session factory
AsyncSessionLocal = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


class AgentDB(Base):
    """Agent components offered by the workflow builder palette."""
    __tablename__ = "agents"

    id = Column(String(255), primary_key=True)
    type = Column(String(50), nullable=False)
    label = Column(String(255), nullable=False)


class ToolDB(Base):
    """Tool components offered by the workflow builder palette."""
    __tablename__ = "tools"

    id = Column(String(255), primary_key=True)
    type = Column(String(50), nullable=False)
    label = Column(String(255), nullable=False)


class WorkflowDB(Base):
    """A saved builder graph. Nodes and edges are stored as JSON text."""
    __tablename__ = "workflows"

    id = Column(String(255), primary_key=True)
    name = Column(String(255), nullable=False)
    date = Column(String(50), nullable=False)
    nodes = Column(Text, nullable=False, default="[]")
    edges = Column(Text, nullable=False, default="[]")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "date": self.date,
            "nodes": json.loads(self.nodes or "[]"),
            "edges": json.loads(self.edges or "[]"),
        }


class AnalysisResultDB(Base):
    """Results of one analysis run, keyed by the workflow that requested it."""
    __tablename__ = "analysis_results"

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    workflow_id = Column(String(255), nullable=True, index=True)
    analysis_type = Column(String(50), nullable=False)
    results = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "analysis_type": self.analysis_type,
            "results": json.loads(self.results),
            "created_at": self.created_at,
        }


async def get_db():
    """Dependency for FastAPI routes to get async DB session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


# =============================================================================
# Agents & tools
# =============================================================================

ComponentModel = Type[Any]  # AgentDB | ToolDB


async def get_components(session: AsyncSession, model: ComponentModel) -> list:
    """All components of one kind, ordered by label."""
    from sqlalchemy import select

    result = await session.execute(select(model).order_by(model.label))
    return list(result.scalars().all())


async def create_component(session: AsyncSession, model: ComponentModel, id: str, type: str, label: str):
    """
    Insert a component.
    Raises ValueError if the id is taken.
    """
    if await session.get(model, id) is not None:
        raise ValueError(f"{model.__tablename__[:-1]} {id} already exists")

    component = model(id=id, type=type, label=label)
    session.add(component)
    await session.commit()
    await session.refresh(component)
    return component


async def update_component(session: AsyncSession, model: ComponentModel, id: str, type: str, label: str):
    """Update a component. Returns None if it does not exist."""
    component = await session.get(model, id)
    if component is None:
        return None

    component.type = type
    component.label = label
    await session.commit()
    await session.refresh(component)
    return component


async def delete_component(session: AsyncSession, model: ComponentModel, id: str) -> bool:
    component = await session.get(model, id)
    if component is None:
        return False

    await session.delete(component)
    await session.commit()
    return True


# =============================================================================
# Workflows
# =============================================================================

def new_workflow_id() -> str:
    return f"wf-{time.time_ns()}"


async def get_workflows(session: AsyncSession) -> List[WorkflowDB]:
    from sqlalchemy import select

    result = await session.execute(select(WorkflowDB).order_by(WorkflowDB.date.desc(), WorkflowDB.name))
    return list(result.scalars().all())


async def get_workflow(session: AsyncSession, workflow_id: str) -> Optional[WorkflowDB]:
    return await session.get(WorkflowDB, workflow_id)


async def create_workflow(
    session: AsyncSession,
    name: str,
    nodes: list,
    edges: list,
    workflow_id: Optional[str] = None,
    workflow_date: Optional[str] = None,
) -> WorkflowDB:
    """
    Store a new workflow.
    Generates an id and today's date when not given.
    Raises ValueError if the id is taken.
    """
    workflow_id = workflow_id or new_workflow_id()
    if await session.get(WorkflowDB, workflow_id) is not None:
        raise ValueError(f"workflow {workflow_id} already exists")

    workflow = WorkflowDB(
        id=workflow_id,
        name=name,
        date=workflow_date or date.today().isoformat(),
        nodes=json.dumps(nodes),
        edges=json.dumps(edges),
    )
    session.add(workflow)
    await session.commit()
    await session.refresh(workflow)
    return workflow


async def update_workflow(
    session: AsyncSession,
    workflow_id: str,
    name: str,
    nodes: list,
    edges: list,
    workflow_date: Optional[str] = None,
) -> Optional[WorkflowDB]:
    """Replace a workflow's name and graph. Returns None if it does not exist."""
    workflow = await session.get(WorkflowDB, workflow_id)
    if workflow is None:
        return None

    workflow.name = name
    workflow.nodes = json.dumps(nodes)
    workflow.edges = json.dumps(edges)
    if workflow_date:
        workflow.date = workflow_date
    await session.commit()
    await session.refresh(workflow)
    return workflow


async def delete_workflow(session: AsyncSession, workflow_id: str) -> bool:
    workflow = await session.get(WorkflowDB, workflow_id)
    if workflow is None:
        return False

    await session.delete(workflow)
    await session.commit()
    return True


# =============================================================================
# Analysis results
# =============================================================================

async def save_analysis_result(
    session: AsyncSession,
    workflow_id: Optional[str],
    analysis_type: str,
    results: Any,
) -> AnalysisResultDB:
    """Persist results (any JSON-serializable value) under a new id."""
    record = AnalysisResultDB(
        id=str(uuid.uuid4()),
        workflow_id=workflow_id,
        analysis_type=analysis_type,
        results=json.dumps(results, default=str),
        created_at=datetime.now(timezone.utc),
    )
    session.add(record)
    await session.commit()
    await session.refresh(record)
    return record


async def get_analysis_result(session: AsyncSession, result_id: str) -> Optional[AnalysisResultDB]:
    return await session.get(AnalysisResultDB, result_id)


async def get_analysis_results_by_workflow(session: AsyncSession, workflow_id: str) -> List[AnalysisResultDB]:
    """All results stored for a workflow, newest first."""
    from sqlalchemy import select

    result = await session.execute(
        select(AnalysisResultDB)
        .where(AnalysisResultDB.workflow_id == workflow_id)
        .order_by(AnalysisResultDB.created_at.desc())
    )
    return list(result.scalars().all())


async def delete_analysis_result(session: AsyncSession, result_id: str) -> bool:
    record = await session.get(AnalysisResultDB, result_id)
    if record is None:
        return False

    await session.delete(record)
    await session.commit()
    return True
