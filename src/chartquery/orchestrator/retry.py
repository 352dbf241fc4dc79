"""Bounded synthesize -> execute -> verify loop.

States:
- attempting(n) for n in 1..max_retries + 1
- accepted: verification is valid and confidence >= threshold
- exhausted-accepted: the last imperfect result, returned with success=True
- failed: every attempt raised; a structured failure with zero rows

The loop never raises and makes at most max_retries + 1 attempts.
"""

import logging
from typing import Any, Awaitable, Callable

from chartquery.agents.contracts import (
    ColumnAnalysis,
    ColumnDescriptor,
    RetryFeedback,
    RetryOutcome,
    SampleDataset,
    SqlSynthesisResult,
    VerificationResult,
)
from chartquery.agents.sql_agent import SqlSynthesizer
from chartquery.agents.verifier_agent import ResultVerifier
from chartquery.sql.safe_executor import QueryExecutor


logger = logging.getLogger(__name__)

Notifier = Callable[..., Awaitable[None]]

ERROR_SQL_PLACEHOLDER = "-- error: no query could be executed"

# Progress band covered by the attempts
PROGRESS_START = 60
PROGRESS_END = 90


async def _no_notify(message: str, **kwargs: Any) -> None:
    return None


class RetryController:
    """Drive the synthesis/verification loop for one request.

    Usage:
        controller = RetryController(synthesizer, executor, verifier, max_retries=2)
        outcome = await controller.run(query, table, analysis, columns, sample)
    """

    def __init__(
        self,
        synthesizer: SqlSynthesizer,
        executor: QueryExecutor,
        verifier: ResultVerifier,
        *,
        max_retries: int = 2,
        acceptance_threshold: int = 70,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.synthesizer = synthesizer
        self.executor = executor
        self.verifier = verifier
        self.max_retries = max_retries
        self.acceptance_threshold = acceptance_threshold

    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1

    def _progress(self, attempt: int, step: int) -> int:
        span = (PROGRESS_END - PROGRESS_START) / self.total_attempts
        return min(PROGRESS_END, int(PROGRESS_START + span * (attempt - 1) + step * span / 3))

    def is_accepted(self, verification: VerificationResult) -> bool:
        return verification.is_valid and verification.confidence_score >= self.acceptance_threshold

    def failure(self, error: str) -> RetryOutcome:
        return RetryOutcome(
            success=False,
            query_results=[],
            sql_data=SqlSynthesisResult(
                sql_query=ERROR_SQL_PLACEHOLDER,
                explanation="All attempts failed",
                attempt=self.total_attempts,
                is_fallback=True,
            ),
            verification=VerificationResult(
                is_valid=False,
                confidence_score=0,
                issues_found=[error],
                reasoning="No attempt produced an executable query",
                data_quality="none",
            ),
            attempt=self.total_attempts,
            max_retries=self.max_retries,
            error=error,
        )

    async def run(
        self,
        query: str,
        table: str,
        analysis: ColumnAnalysis,
        columns: list[ColumnDescriptor],
        sample: SampleDataset,
        notify: Notifier | None = None,
        original_query: str | None = None,
    ) -> RetryOutcome:
        """Run attempts until one is accepted or the budget is spent.

        ``query`` drives synthesis; results are verified against
        ``original_query`` (the user's own words) when given.
        """
        notify = notify or _no_notify
        feedback: RetryFeedback | None = None
        last_error = "unknown error"

        for attempt in range(1, self.total_attempts + 1):
            sql = ""
            try:
                await notify(
                    f"Generating SQL (attempt {attempt}/{self.total_attempts})",
                    progress=self._progress(attempt, 0),
                    stage="synthesis",
                    attempt=attempt,
                )
                sql_data = await self.synthesizer.synthesize(
                    query, table, analysis, columns, sample, attempt=attempt, feedback=feedback
                )
                sql = sql_data.sql_query

                await notify(
                    f"Executing SQL (attempt {attempt}/{self.total_attempts})",
                    progress=self._progress(attempt, 1),
                    stage="execution",
                    attempt=attempt,
                )
                rows = await self.executor.execute_async(sql)

                await notify(
                    f"Verifying {len(rows)} rows (attempt {attempt}/{self.total_attempts})",
                    progress=self._progress(attempt, 2),
                    stage="verification",
                    attempt=attempt,
                )
                verification = await self.verifier.verify(original_query or query, sql, rows, analysis, columns)
            except Exception as e:
                last_error = str(e) or e.__class__.__name__
                logger.warning("Attempt %d/%d failed: %s", attempt, self.total_attempts, last_error)
                feedback = RetryFeedback(attempt=attempt, previous_sql=sql, error=last_error)
                continue

            outcome = RetryOutcome(
                success=True,
                query_results=rows,
                sql_data=sql_data,
                verification=verification,
                attempt=attempt,
                max_retries=self.max_retries,
            )

            if self.is_accepted(verification):
                logger.info("Attempt %d accepted (confidence=%d)", attempt, verification.confidence_score)
                return outcome

            if verification.should_retry and attempt < self.total_attempts:
                logger.info(
                    "Attempt %d rejected (confidence=%d), retrying", attempt, verification.confidence_score
                )
                await notify(
                    f"Low confidence ({verification.confidence_score}%), improving the query",
                    progress=self._progress(attempt, 3),
                    stage="retry",
                    attempt=attempt,
                )
                feedback = RetryFeedback(
                    attempt=attempt,
                    previous_sql=sql,
                    issues_found=verification.issues_found,
                    suggestions=verification.suggestions,
                    improved_sql=verification.improved_sql,
                )
                continue

            logger.info("Returning best-effort result from attempt %d", attempt)
            return outcome

        logger.error("All %d attempts failed: %s", self.total_attempts, last_error)
        return self.failure(last_error)
