"""
Database migrations for schema changes.
Runs automatically on startup to ensure schema is up-to-date.
"""
from sqlalchemy import inspect, select, func
from sqlalchemy.ext.asyncio import AsyncEngine
from database import engine, Base, AgentDB, ToolDB
import logging

logger = logging.getLogger(__name__)

DEFAULT_AGENTS = [
    ("agent-assist", "Agent Assist"),
    ("analyzer", "Analyzer"),
    ("coach", "Coach"),
    ("evaluator", "Evaluator"),
    ("knowledge", "Knowledge"),
    ("observer", "Observer"),
    ("orchestrator", "Orchestrator"),
    ("planner", "Planner"),
    ("researcher", "Researcher"),
    ("superviser-assist", "Superviser Assist"),
    ("trainer", "Trainer"),
]

DEFAULT_TOOLS = [
    ("agent-guide", "Agent Guide"),
    ("agent-scorecard", "Agent Scorecard"),
    ("agent-training", "Agent Training"),
    ("call-observation", "Call Observation"),
    ("competitive-analysis", "Competitive Analysis"),
    ("goal-tracking", "Goal Tracking"),
    ("talent-builder", "Talent Builder"),
]


async def run_migrations(db_engine: AsyncEngine = engine):
    """Run all migrations in order."""
    await create_missing_tables(db_engine)
    await seed_components(db_engine)


async def create_missing_tables(db_engine: AsyncEngine = engine):
    """Migration: Create any table from the models that does not exist yet."""
    async with db_engine.begin() as conn:
        try:
            existing = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
            missing = [table for name, table in Base.metadata.tables.items() if name not in existing]

            if not missing:
                logger.debug('Migration skipped: all tables exist')
                return

            for table in missing:
                logger.info(f'Running migration: Creating {table.name} table')
            await conn.run_sync(lambda sync_conn: Base.metadata.create_all(sync_conn, tables=missing))
            logger.info(f'Migration completed: {len(missing)} table(s) created')
        except Exception as e:
            logger.error(f'Migration failed: {e}')
            raise


async def seed_components(db_engine: AsyncEngine = engine):
    """Migration: Insert the default agent and tool palette into empty tables."""
    async with db_engine.begin() as conn:
        try:
            for model, kind, defaults in ((AgentDB, "agent", DEFAULT_AGENTS), (ToolDB, "tool", DEFAULT_TOOLS)):
                table = model.__table__
                count = (await conn.execute(select(func.count()).select_from(table))).scalar_one()
                if count:
                    logger.debug(f'Migration skipped: {table.name} already seeded')
                    continue

                logger.info(f'Running migration: Seeding default {table.name}')
                await conn.execute(
                    table.insert(),
                    [{"id": id, "type": kind, "label": label} for id, label in defaults],
                )
                logger.info(f'Migration completed: {len(defaults)} {table.name} seeded')
        except Exception as e:
            logger.error(f'Migration failed: {e}')
            raise
