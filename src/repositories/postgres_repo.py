"""PostgreSQL repository using SQLAlchemy Core."""

import json
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Optional

import boto3
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import QueuePool

from config.settings import EngineSettings
from models.metrics import AgentDayMetrics, DailyMetric
from utils.error_handling import ExternalDependencyUnavailableError
from utils.logging_config import get_logger

logger = get_logger(__name__)

# Connection pooling for Lambda reuse.
_engine = None


def get_db_engine(settings: EngineSettings) -> Optional[Engine]:
    """Get or create SQLAlchemy engine with connection pooling."""
    global _engine
    if _engine is None:
        db_url = settings.database_url
        if not db_url:
            if settings.db_secret_arn:
                db_url = _secret_to_db_url(settings.db_secret_arn)
            if not db_url:
                logger.warning("DATABASE_URL not set; daily metrics kept in memory")
                return None
        _engine = create_engine(
            db_url,
            poolclass=QueuePool,
            pool_size=1,
            max_overflow=2,
            pool_pre_ping=True,
            pool_recycle=300,
        )
    return _engine


def _secret_to_db_url(secret_arn: str) -> Optional[str]:
    """Build a SQLAlchemy URL from an RDS secret."""
    sm = boto3.client("secretsmanager")
    secret = json.loads(sm.get_secret_value(SecretId=secret_arn)["SecretString"])
    host = secret.get("host")
    port = secret.get("port", 5432)
    username = secret.get("username")
    password = secret.get("password")
    dbname = secret.get("dbname", "postgres")
    if not (host and username and password):
        logger.warning("DB secret is missing host or credentials", extra={"secret_arn": secret_arn})
        return None
    return f"postgresql+psycopg2://{username}:{password}@{host}:{port}/{dbname}"


@contextmanager
def _db_errors(operation: str):
    try:
        yield
    except OperationalError as exc:
        logger.error("Database unavailable", extra={"operation": operation, "error": str(exc)})
        raise ExternalDependencyUnavailableError(f"Database {operation} failed") from exc


class PostgresRepository:
    """Thin wrapper to keep SQL organized and parameterized."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def fetch_one(self, query: str, params: dict) -> Optional[dict]:
        """Execute a SELECT and return one row as dict."""
        stmt = text(query)
        with _db_errors("select"), self.engine.connect() as conn:
            row = conn.execute(stmt, params).fetchone()
            return dict(row._mapping) if row else None

    def execute(self, query: str, params: dict) -> Any:
        """Execute a parameterized statement."""
        stmt = text(query)
        with _db_errors("execute"), self.engine.begin() as conn:
            return conn.execute(stmt, params)


class DailyMetricRepository(PostgresRepository):
    """
    DailyMetric rows keyed by `metric_date`.

    Upserts replace the whole row, so re-running the rollup for a date
    converges on the latest computation instead of appending.
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS daily_metrics (
            metric_date VARCHAR(10) PRIMARY KEY,
            tickets_opened INTEGER NOT NULL,
            tickets_closed INTEGER NOT NULL,
            sla_compliance DOUBLE PRECISION NOT NULL,
            agent_metrics TEXT NOT NULL,
            computed_at VARCHAR(40)
        )
    """

    UPSERT = """
        INSERT INTO daily_metrics
            (metric_date, tickets_opened, tickets_closed, sla_compliance, agent_metrics, computed_at)
        VALUES
            (:metric_date, :tickets_opened, :tickets_closed, :sla_compliance, :agent_metrics, :computed_at)
        ON CONFLICT (metric_date) DO UPDATE SET
            tickets_opened = excluded.tickets_opened,
            tickets_closed = excluded.tickets_closed,
            sla_compliance = excluded.sla_compliance,
            agent_metrics = excluded.agent_metrics,
            computed_at = excluded.computed_at
    """

    def __init__(self, engine: Engine):
        super().__init__(engine)
        self._schema_ready = False

    def create_schema(self) -> None:
        """Create the table if missing; runs once per repository instance."""
        if not self._schema_ready:
            self.execute(self.SCHEMA, {})
            self._schema_ready = True

    def upsert(self, metric: DailyMetric) -> DailyMetric:
        self.create_schema()
        self.execute(
            self.UPSERT,
            {
                "metric_date": metric.date,
                "tickets_opened": metric.tickets_opened,
                "tickets_closed": metric.tickets_closed,
                "sla_compliance": metric.sla_compliance,
                "agent_metrics": json.dumps(
                    {key: value.model_dump() for key, value in metric.agent_metrics.items()},
                    sort_keys=True,
                ),
                "computed_at": metric.computed_at.isoformat() if metric.computed_at else None,
            },
        )
        logger.info("Daily metric upserted", extra={"date": metric.date})
        return metric

    def get(self, date_key: str) -> Optional[DailyMetric]:
        self.create_schema()
        row = self.fetch_one(
            "SELECT * FROM daily_metrics WHERE metric_date = :metric_date",
            {"metric_date": date_key},
        )
        if not row:
            return None
        agent_metrics = {
            key: AgentDayMetrics.model_validate(value)
            for key, value in json.loads(row["agent_metrics"]).items()
        }
        return DailyMetric(
            date=row["metric_date"],
            tickets_opened=row["tickets_opened"],
            tickets_closed=row["tickets_closed"],
            sla_compliance=row["sla_compliance"],
            agent_metrics=agent_metrics,
            computed_at=datetime.fromisoformat(row["computed_at"]) if row["computed_at"] else None,
        )
