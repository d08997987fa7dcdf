"""Unit tests for batches.

Execution tests run against the fake SQLite gateway over the HTTP transport,
so conditions are evaluated by a server, not by the client.
"""

from __future__ import annotations

import pytest

from hrana_client import BatchCond, MockClient, StepStatus
from hrana_client.errors import ClosedError, MisuseError, ResponseError


class TestBatchBuilder:
    """Building batches and conditions."""

    def test_condition_wire_form(self) -> None:
        batch = MockClient().open_stream().batch()
        first = batch.step().run("SELECT 1")
        second = batch.step().run("SELECT 2")

        cond = BatchCond.and_(BatchCond.ok(first), BatchCond.not_(BatchCond.error(second)))

        assert cond._to_proto(batch) == {
            "type": "and",
            "conds": [
                {"type": "ok", "step": 0},
                {"type": "not", "cond": {"type": "error", "step": 1}},
            ],
        }

    def test_condition_from_other_batch(self) -> None:
        stream = MockClient().open_stream()
        other = stream.batch().step().run("SELECT 1")
        batch = stream.batch()

        with pytest.raises(MisuseError):
            batch.step().condition(BatchCond.ok(other))

    def test_combining_conditions_from_different_batches(self) -> None:
        stream = MockClient().open_stream()
        a = stream.batch().step().run("SELECT 1")
        b = stream.batch().step().run("SELECT 1")

        with pytest.raises(MisuseError):
            BatchCond.or_(BatchCond.ok(a), BatchCond.ok(b))

    def test_step_takes_one_statement(self) -> None:
        step = MockClient().open_stream().batch().step().run("SELECT 1")
        with pytest.raises(MisuseError):
            step.run("SELECT 2")

    def test_result_before_execute(self) -> None:
        step = MockClient().open_stream().batch().step().run("SELECT 1")
        with pytest.raises(MisuseError):
            step.result()

    @pytest.mark.asyncio
    async def test_empty_step(self) -> None:
        batch = MockClient().open_stream().batch()
        batch.step()
        with pytest.raises(MisuseError):
            await batch.execute()

    @pytest.mark.asyncio
    async def test_rejected_batch_can_be_fixed_and_executed(self) -> None:
        """A batch rejected before sending is not spent."""
        client = MockClient()
        batch = client.open_stream().batch()
        step = batch.step()

        with pytest.raises(MisuseError):
            await batch.execute()
        step.run("SELECT 1")
        result = await batch.execute()

        assert len(result) == 1
        assert len(client.recorded_requests) == 1

    @pytest.mark.asyncio
    async def test_unencodable_value_leaves_batch_open(self) -> None:
        batch = MockClient().open_stream().batch()
        batch.step().run(("SELECT ?", [float("nan")]))

        with pytest.raises(ValueError):
            await batch.execute()
        batch.step().run("SELECT 1")

    @pytest.mark.asyncio
    async def test_single_request(self) -> None:
        client = MockClient()
        batch = client.open_stream().batch()
        batch.step().run("SELECT 1")
        batch.step().query("SELECT 2")

        await batch.execute()

        (request,) = client.recorded_requests
        assert request.type == "batch"
        assert [s.stmt.sql for s in request.batch.steps] == ["SELECT 1", "SELECT 2"]
        assert [s.stmt.want_rows for s in request.batch.steps] == [False, True]

    @pytest.mark.asyncio
    async def test_execute_twice(self) -> None:
        batch = MockClient().open_stream().batch()
        batch.step().run("SELECT 1")
        await batch.execute()

        with pytest.raises(MisuseError):
            await batch.execute()


class TestBatchExecution:
    """Outcomes reported by the server, one per step."""

    @pytest.mark.asyncio
    async def test_false_condition_is_skipped(self, make_http_client) -> None:
        """Step 2 is skipped, steps 1 and 3 run, the stream stays open."""
        async with make_http_client() as client:
            stream = client.open_stream()
            batch = stream.batch()
            first = batch.step().run("CREATE TABLE t (x)")
            second = batch.step().condition(BatchCond.error(first)).run("DROP TABLE t")
            third = batch.step().condition(BatchCond.ok(first)).run("INSERT INTO t VALUES (1)")

            result = await batch.execute()

            assert [o.status for o in result.outcomes] == [
                StepStatus.OK,
                StepStatus.SKIPPED,
                StepStatus.OK,
            ]
            assert result[1].skipped
            assert second.result() is None
            assert third.result().affected_row_count == 1
            assert not stream.closed
            assert (await stream.query_value("SELECT count(*) FROM t")).value == 1

    @pytest.mark.asyncio
    async def test_step_error_is_per_step(self, make_http_client) -> None:
        async with make_http_client() as client:
            stream = client.open_stream()
            batch = stream.batch()
            failing = batch.step().query("SELECT * FROM missing")
            recovery = batch.step().condition(BatchCond.error(failing)).query_value("SELECT 42")

            result = await batch.execute()

            assert result[0].status == StepStatus.ERROR
            with pytest.raises(ResponseError, match="no such table"):
                failing.result()
            assert recovery.result().value == 42
            assert not stream.closed

    @pytest.mark.asyncio
    async def test_query_steps_decode_rows(self, make_http_client) -> None:
        async with make_http_client() as client:
            stream = client.open_stream()
            batch = stream.batch()
            batch.step().run("CREATE TABLE t (x)")
            batch.step().run(("INSERT INTO t VALUES (?), (?)", [1, 2]))
            rows = batch.step().query("SELECT x FROM t ORDER BY x")
            row = batch.step().query_row("SELECT x FROM t WHERE x = 5")

            await batch.execute()

            assert [r[0] for r in rows.result().rows] == [1, 2]
            assert row.outcome.status == StepStatus.ERROR

    @pytest.mark.asyncio
    async def test_closed_stream(self, make_http_client) -> None:
        async with make_http_client() as client:
            stream = client.open_stream()
            batch = stream.batch()
            batch.step().run("SELECT 1")
            stream.close()

            with pytest.raises(ClosedError):
                await batch.execute()
