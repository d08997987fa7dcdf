"""Batches: several conditional statements executed in one request.

Usage:
    batch = stream.batch()
    create = batch.step().run("CREATE TABLE t (x)")
    batch.step().condition(BatchCond.error(create)).run("DELETE FROM t")
    insert = batch.step().condition(BatchCond.ok(create)).run("INSERT INTO t VALUES (1)")
    result = await batch.execute()

    result.outcomes[1].skipped   # True if the table did not exist before
    insert.result()              # StmtResult of the insert

A step whose condition is false is reported as skipped, never as an error.
Step errors are reported per step and do not close the stream.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .errors import (
    ClientError,
    MisuseError,
    NoRowsError,
    ProtocolError,
    ResponseError,
    TooManyColumnsError,
)
from .protocol.wire import (
    BatchProto,
    BatchReq,
    BatchResp,
    BatchStepProto,
    StmtResultProto,
)
from .result import (
    row_result_from_proto,
    rows_result_from_proto,
    stmt_result_from_proto,
    value_result_from_proto,
)
from .stmt import InStmt, stmt_to_proto

if TYPE_CHECKING:
    from .client import Client, StreamState

logger = logging.getLogger(__name__)


class BatchCond:
    """A condition on the outcome of earlier steps."""

    def __init__(self, batch: Batch, proto: dict[str, Any]):
        self._batch = batch
        self._proto = proto

    @staticmethod
    def ok(step: BatchStep) -> BatchCond:
        """True if `step` executed successfully."""
        return BatchCond(step._batch, {"type": "ok", "step": step._index})

    @staticmethod
    def error(step: BatchStep) -> BatchCond:
        """True if `step` executed and failed."""
        return BatchCond(step._batch, {"type": "error", "step": step._index})

    @staticmethod
    def not_(cond: BatchCond) -> BatchCond:
        return BatchCond(cond._batch, {"type": "not", "cond": cond._proto})

    @staticmethod
    def and_(*conds: BatchCond) -> BatchCond:
        return BatchCond._compound("and", conds)

    @staticmethod
    def or_(*conds: BatchCond) -> BatchCond:
        return BatchCond._compound("or", conds)

    @staticmethod
    def _compound(kind: str, conds: tuple[BatchCond, ...]) -> BatchCond:
        if not conds:
            raise MisuseError(f"BatchCond.{kind}_() needs at least one condition")
        batch = conds[0]._batch
        for cond in conds:
            if cond._batch is not batch:
                raise MisuseError("Cannot combine conditions from different batches")
        return BatchCond(batch, {"type": kind, "conds": [c._proto for c in conds]})

    def _to_proto(self, batch: Batch) -> dict[str, Any]:
        if self._batch is not batch:
            raise MisuseError("Cannot use a condition from a different batch")
        return self._proto


class StepStatus(str, Enum):
    OK = "ok"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class StepOutcome:
    """Outcome of one batch step."""

    status: StepStatus
    result: Any = None
    error: ClientError | None = None

    @property
    def skipped(self) -> bool:
        return self.status == StepStatus.SKIPPED

    @property
    def ok(self) -> bool:
        return self.status == StepStatus.OK


@dataclass
class BatchResult:
    """One outcome per step, in step order."""

    outcomes: list[StepOutcome]

    def __len__(self) -> int:
        return len(self.outcomes)

    def __getitem__(self, index: int) -> StepOutcome:
        return self.outcomes[index]


class BatchStep:
    """A step of a batch: an optional condition and a statement."""

    def __init__(self, batch: Batch, index: int):
        self._batch = batch
        self._index = index
        self._condition: BatchCond | None = None
        self._stmt: InStmt | None = None
        self._want_rows = False
        self._from_proto: Callable[[StmtResultProto], Any] = stmt_result_from_proto
        self._outcome: StepOutcome | None = None

    @property
    def index(self) -> int:
        return self._index

    def condition(self, cond: BatchCond | None) -> BatchStep:
        """Execute this step only if `cond` holds."""
        if cond is not None:
            cond._to_proto(self._batch)
        self._condition = cond
        return self

    def query(self, stmt: InStmt) -> BatchStep:
        return self._set_stmt(stmt, True, rows_result_from_proto)

    def query_row(self, stmt: InStmt) -> BatchStep:
        return self._set_stmt(stmt, True, row_result_from_proto)

    def query_value(self, stmt: InStmt) -> BatchStep:
        return self._set_stmt(stmt, True, value_result_from_proto)

    def run(self, stmt: InStmt) -> BatchStep:
        return self._set_stmt(stmt, False, stmt_result_from_proto)

    def _set_stmt(
        self, stmt: InStmt, want_rows: bool, from_proto: Callable[[StmtResultProto], Any]
    ) -> BatchStep:
        if self._stmt is not None:
            raise MisuseError(f"Batch step {self._index} already has a statement")
        self._stmt = stmt
        self._want_rows = want_rows
        self._from_proto = from_proto
        return self

    @property
    def outcome(self) -> StepOutcome | None:
        """Outcome of the step, or None before the batch was executed."""
        return self._outcome

    def result(self) -> Any:
        """Decoded result of the step; None if it was skipped.

        Raises:
            MisuseError: The batch has not been executed yet
            ResponseError: The step failed on the server
            NoRowsError, TooManyColumnsError: The step result has the wrong shape
        """
        if self._outcome is None:
            raise MisuseError("The batch has not been executed yet")
        if self._outcome.error is not None:
            raise self._outcome.error
        return self._outcome.result


class Batch:
    """Builder for a batch bound to one stream."""

    def __init__(self, client: Client, state: StreamState):
        self._client = client
        self._state = state
        self._steps: list[BatchStep] = []
        self._executed = False

    def step(self) -> BatchStep:
        """Append a new step to the batch."""
        if self._executed:
            raise MisuseError("Cannot add steps to a batch that was already executed")
        step = BatchStep(self, len(self._steps))
        self._steps.append(step)
        return step

    def _to_proto(self) -> BatchProto:
        steps = []
        for step in self._steps:
            if step._stmt is None:
                raise MisuseError(f"Batch step {step._index} has no statement")
            steps.append(
                BatchStepProto(
                    condition=step._condition._to_proto(self) if step._condition else None,
                    stmt=stmt_to_proto(step._stmt, step._want_rows, self._client),
                )
            )
        return BatchProto(steps=steps)

    async def execute(self) -> BatchResult:
        """Send the batch as one request and collect one outcome per step.

        Raises:
            The captured closing error if the stream is closed
            ResponseError: The server rejected the batch as a whole
            MisuseError: The batch was already executed or a step is empty
        """
        if self._state.closed is not None:
            raise self._state.closed
        if self._executed:
            raise MisuseError("This batch has already been executed")
        batch = self._to_proto()
        self._executed = True

        request = BatchReq(stream_id=self._state.stream_id, batch=batch)
        response = await self._client._request(self._state, request, BatchResp)
        result = response.result

        count = len(self._steps)
        if len(result.step_results) != count or len(result.step_errors) != count:
            raise ProtocolError(
                f"Batch of {count} steps returned {len(result.step_results)} results "
                f"and {len(result.step_errors)} errors"
            )

        outcomes = []
        for step, step_result, step_error in zip(
            self._steps, result.step_results, result.step_errors
        ):
            if step_result is not None and step_error is not None:
                raise ProtocolError(f"Batch step {step._index} has both a result and an error")
            if step_error is not None:
                outcome = StepOutcome(StepStatus.ERROR, error=ResponseError.from_proto(step_error))
            elif step_result is not None:
                try:
                    outcome = StepOutcome(StepStatus.OK, result=step._from_proto(step_result))
                except (NoRowsError, TooManyColumnsError) as e:
                    outcome = StepOutcome(StepStatus.ERROR, error=e)
            else:
                outcome = StepOutcome(StepStatus.SKIPPED)
            step._outcome = outcome
            outcomes.append(outcome)

        logger.debug(f"Executed batch of {count} steps on stream {self._state.stream_id}")
        return BatchResult(outcomes)
