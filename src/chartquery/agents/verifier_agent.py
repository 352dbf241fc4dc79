"""Result verification for executed chart queries.

The verifier asks the LLM whether the rows answer the question and how
confident it is. Structural checks (empty result, null rate, duplicates)
run locally and feed both the prompt and the fallback judgement used when
the LLM is unavailable.
"""

import json
import logging
from typing import Any

from pydantic import ValidationError

from chartquery.agents.base import BaseAgent
from chartquery.agents.contracts import ColumnAnalysis, ColumnDescriptor, VerificationResult
from chartquery.agents.schema_agent import describe_for_prompt
from chartquery.errors import LLMError
from chartquery.sql.guardrails import sanitize_for_prompt_injection


logger = logging.getLogger(__name__)


HIGH_NULL_RATE_THRESHOLD = 0.5
DUPLICATE_RATE_THRESHOLD = 0.1

FALLBACK_CONFIDENCE_WITH_ROWS = 70
FALLBACK_CONFIDENCE_EMPTY = 30


VERIFIER_PROMPT_TEMPLATE = """Check whether this SQL result answers the user's question.

Question: "{query}"

Chart: {chart_type} (x: {x_axis}, y: {y_axis}, aggregation: {aggregation})

Columns:
{columns}

SQL:
{sql}

Result preview ({preview_count} of {row_count} rows{remaining}):
{preview}

Automatic checks: {checks}

Judge relevance and correctness. Set "should_retry" to true only if a different
query would answer the question better, and put that query in "improved_sql".

Output JSON schema:
{{
  "is_valid": true,
  "confidence_score": 0,
  "issues_found": ["problem"],
  "suggestions": ["how to fix it"],
  "should_retry": false,
  "improved_sql": null,
  "reasoning": "why",
  "data_quality": "good|fair|poor"
}}"""


def check_null_rate(rows: list[dict[str, Any]]) -> str | None:
    if not rows:
        return None
    high = []
    for col in rows[0].keys():
        nulls = sum(1 for row in rows if row.get(col) is None)
        if nulls / len(rows) > HIGH_NULL_RATE_THRESHOLD:
            high.append(col)
    if high:
        return f"High null rate in: {', '.join(high)}"
    return None


def check_duplicates(rows: list[dict[str, Any]]) -> str | None:
    if len(rows) < 2:
        return None
    seen = set()
    duplicates = 0
    for row in rows:
        key = json.dumps(row, sort_keys=True, default=str)
        if key in seen:
            duplicates += 1
        seen.add(key)
    rate = duplicates / len(rows)
    if rate > DUPLICATE_RATE_THRESHOLD:
        return f"Found {duplicates} duplicate rows ({rate:.0%})"
    return None


def structural_checks(rows: list[dict[str, Any]]) -> list[str]:
    """Issues detectable without understanding the question."""
    if not rows:
        return ["Query returned no rows"]
    return [issue for issue in (check_null_rate(rows), check_duplicates(rows)) if issue]


def data_quality_label(rows: list[dict[str, Any]], issues: list[str]) -> str:
    if not rows:
        return "empty"
    return "fair" if issues else "good"


class ResultVerifier(BaseAgent):
    """Judge executed rows against the question."""

    name = "result_verifier"
    llm_role = "verifier"

    def __init__(self, llm=None, *, preview_rows: int = 10):
        super().__init__(llm)
        self.preview_rows = preview_rows

    def fallback(self, rows: list[dict[str, Any]], reason: str = "") -> VerificationResult:
        """Structural judgement used when the LLM cannot be consulted."""
        issues = structural_checks(rows)
        has_rows = len(rows) > 0
        return VerificationResult(
            is_valid=has_rows,
            confidence_score=FALLBACK_CONFIDENCE_WITH_ROWS if has_rows else FALLBACK_CONFIDENCE_EMPTY,
            issues_found=issues,
            suggestions=[] if has_rows else ["Relax filters or check filter values against the data"],
            should_retry=not has_rows,
            reasoning=f"Structural check only{': ' + reason if reason else ''}",
            data_quality=data_quality_label(rows, issues),
            is_fallback=True,
        )

    def build_prompt(
        self,
        query: str,
        sql: str,
        rows: list[dict[str, Any]],
        analysis: ColumnAnalysis,
        columns: list[ColumnDescriptor],
    ) -> str:
        preview = rows[: self.preview_rows]
        remaining = len(rows) - len(preview)
        preview_json = json.dumps(preview, ensure_ascii=False, default=str, indent=2) if preview else "[]"
        return VERIFIER_PROMPT_TEMPLATE.format(
            query=sanitize_for_prompt_injection(query),
            chart_type=analysis.chart_type.value,
            x_axis=analysis.x_axis or "-",
            y_axis=analysis.y_axis or "-",
            aggregation=analysis.data_aggregation.value,
            columns=describe_for_prompt(columns),
            sql=sql,
            preview_count=len(preview),
            row_count=len(rows),
            remaining=f", {remaining} more not shown" if remaining > 0 else "",
            preview=sanitize_for_prompt_injection(preview_json, max_len=4000),
            checks="; ".join(structural_checks(rows)) or "none",
        )

    async def verify(
        self,
        query: str,
        sql: str,
        rows: list[dict[str, Any]],
        analysis: ColumnAnalysis,
        columns: list[ColumnDescriptor],
    ) -> VerificationResult:
        if self.llm is None:
            return self.fallback(rows, "no LLM client")
        prompt = self.build_prompt(query, sql, rows, analysis, columns)
        try:
            response = await self.ask_llm(prompt)
            data = self.parse_json_response(response)
            data.pop("is_fallback", None)
            result = VerificationResult(**data)
        except (LLMError, ValueError, ValidationError) as e:
            logger.warning("Verification fell back to structural checks: %s", e)
            return self.fallback(rows, str(e))

        if not result.data_quality:
            result = result.model_copy(update={"data_quality": data_quality_label(rows, structural_checks(rows))})
        logger.info("Verified valid=%s confidence=%d", result.is_valid, result.confidence_score)
        return result
