"""BigQuery warehouse: query parameters, timeouts and job cancellation."""
import asyncio
import concurrent.futures
import threading
from datetime import date

import pytest

from dashboard.services.warehouse import (
    JOB_ID_PREFIX,
    BigQueryWarehouse,
    WarehouseQueryError,
    WarehouseTimeoutError,
    build_query_parameters,
    run_concurrently,
)


class FakeJob:
    def __init__(self, job_id, rows=None, timeout=False):
        self.job_id = job_id
        self.rows = rows or []
        self.timeout = timeout
        self.cancelled = False

    def result(self, timeout=None):
        if self.timeout:
            raise concurrent.futures.TimeoutError()
        return self.rows

    def cancel(self):
        self.cancelled = True


class FakeBigQueryClient:
    """Stands in for ``bigquery.Client``; ``query`` can block until the job is cancelled."""

    def __init__(self, rows=None, block=False, timeout=False):
        self.rows = rows or []
        self.block = block
        self.timeout = timeout
        self.started = threading.Event()
        self.released = threading.Event()
        self.jobs = []
        self.cancelled = []

    def query(self, sql, job_config=None, location=None, job_id=None):
        self.started.set()
        if self.block:
            self.released.wait(5)
        job = FakeJob(job_id, self.rows, self.timeout)
        self.jobs.append(job)
        return job

    def cancel_job(self, job_id, location=None):
        self.cancelled.append(job_id)
        self.released.set()


def test_query_parameters_are_typed():
    params = build_query_parameters({"start_date": date(2024, 3, 1), "website_id": "101", "limit": 5, "flag": True})

    assert [(p.name, p.type_) for p in params] == [
        ("start_date", "DATE"),
        ("website_id", "STRING"),
        ("limit", "INT64"),
        ("flag", "BOOL"),
    ]


def test_query_returns_rows_as_dicts():
    client = FakeBigQueryClient(rows=[{"total_orders": 3}])
    warehouse = BigQueryWarehouse(client=client)

    rows = asyncio.run(warehouse.query("SELECT 1", {}))

    assert rows == [{"total_orders": 3}]
    assert client.jobs[0].job_id.startswith(JOB_ID_PREFIX)
    assert client.cancelled == []


def test_timed_out_job_is_cancelled():
    client = FakeBigQueryClient(timeout=True)
    warehouse = BigQueryWarehouse(client=client, timeout_seconds=0.01)

    with pytest.raises(WarehouseTimeoutError):
        asyncio.run(warehouse.query("SELECT 1", {}))
    assert client.jobs[0].cancelled is True


def test_cancelled_query_cancels_its_job():
    client = FakeBigQueryClient(block=True)
    warehouse = BigQueryWarehouse(client=client)

    async def scenario():
        task = asyncio.ensure_future(warehouse.query("SELECT 1", {}))
        await asyncio.to_thread(client.started.wait, 5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    [job_id] = client.cancelled
    assert job_id.startswith(JOB_ID_PREFIX)


def test_failing_sibling_cancels_running_job():
    client = FakeBigQueryClient(block=True)
    warehouse = BigQueryWarehouse(client=client)

    async def failing():
        await asyncio.to_thread(client.started.wait, 5)
        raise WarehouseQueryError("boom")

    with pytest.raises(WarehouseQueryError):
        asyncio.run(run_concurrently(warehouse.query("SELECT 1", {}), failing()))
    assert len(client.cancelled) == 1
