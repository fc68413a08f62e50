"""
Warehouse Service
Runs parameterized SQL against BigQuery and returns rows as dicts.

The BigQuery client is blocking, so each query runs in a worker thread and
is bounded by a timeout. Jobs get their id up front so a timed out or
cancelled query can be cancelled server-side.
"""
import asyncio
import concurrent.futures
import logging
import uuid
from datetime import date, datetime
from typing import Any, Awaitable, Dict, List, Optional, Protocol

from google.api_core.exceptions import GoogleAPIError
from google.cloud import bigquery

logger = logging.getLogger(__name__)

JOB_ID_PREFIX = "dashboard_"


class WarehouseQueryError(Exception):
    """A warehouse query failed. Fatal for the report that issued it."""


class WarehouseTimeoutError(WarehouseQueryError):
    """A warehouse query exceeded its time budget and was cancelled."""


class Warehouse(Protocol):
    async def query(self, sql: str, params: Dict[str, Any], location: Optional[str] = None) -> List[Dict[str, Any]]:
        ...


def _param_type(value: Any) -> str:
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "BOOL"
    if isinstance(value, int):
        return "INT64"
    if isinstance(value, float):
        return "FLOAT64"
    if isinstance(value, datetime):
        return "TIMESTAMP"
    if isinstance(value, date):
        return "DATE"
    return "STRING"


def build_query_parameters(params: Dict[str, Any]) -> List[bigquery.ScalarQueryParameter]:
    return [
        bigquery.ScalarQueryParameter(name, _param_type(value), value)
        for name, value in params.items()
    ]


class BigQueryWarehouse:

    def __init__(
        self,
        project: Optional[str] = None,
        location: Optional[str] = None,
        timeout_seconds: float = 60.0,
        client: Optional[bigquery.Client] = None,
    ):
        self.location = location
        self.timeout_seconds = timeout_seconds
        self.client = client or bigquery.Client(project=project or None, location=location)

    def _run(self, sql: str, params: Dict[str, Any], location: Optional[str], job_id: str) -> List[Dict[str, Any]]:
        job_config = bigquery.QueryJobConfig(query_parameters=build_query_parameters(params))
        try:
            job = self.client.query(sql, job_config=job_config, location=location or self.location, job_id=job_id)
        except GoogleAPIError as e:
            raise WarehouseQueryError(str(e)) from e

        try:
            return [dict(row) for row in job.result(timeout=self.timeout_seconds)]
        except (concurrent.futures.TimeoutError, TimeoutError) as e:
            job.cancel()
            raise WarehouseTimeoutError(
                f"Query job {job.job_id} exceeded {self.timeout_seconds}s and was cancelled"
            ) from e
        except GoogleAPIError as e:
            raise WarehouseQueryError(str(e)) from e

    def _cancel(self, job_id: str, location: Optional[str]) -> None:
        try:
            self.client.cancel_job(job_id, location=location or self.location)
        except GoogleAPIError as e:
            logger.warning("Could not cancel query job %s: %s", job_id, e)
            return
        logger.info("Cancelled query job %s", job_id)

    async def query(self, sql: str, params: Dict[str, Any], location: Optional[str] = None) -> List[Dict[str, Any]]:
        job_id = f"{JOB_ID_PREFIX}{uuid.uuid4().hex}"
        try:
            return await asyncio.to_thread(self._run, sql, params, location, job_id)
        except asyncio.CancelledError:
            # The worker thread keeps waiting on the job; stop it in BigQuery
            self._cancel(job_id, location)
            raise


async def run_concurrently(*awaitables: Awaitable[Any]) -> List[Any]:
    """Await independent queries together and return results in argument order.

    On the first failure the remaining siblings are cancelled (which also
    cancels their BigQuery jobs) and the error is re-raised.
    """
    tasks = [asyncio.ensure_future(a) for a in awaitables]
    if not tasks:
        return []

    done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    failed = next((t for t in tasks if t in done and not t.cancelled() and t.exception()), None)
    if failed is not None:
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)
        raise failed.exception()

    return [t.result() for t in tasks]
