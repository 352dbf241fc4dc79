"""Prompt refinement: turn a vague question into a specific one.

The refiner never fails a request. Any LLM or parsing problem returns the
original question unchanged with ``was_improved=False``.
"""

import logging

from pydantic import ValidationError

from chartquery.agents.base import BaseAgent
from chartquery.agents.contracts import ColumnDescriptor, PromptRefinement, TableDescriptor
from chartquery.agents.schema_agent import describe_for_prompt
from chartquery.errors import LLMError
from chartquery.sql.guardrails import sanitize_for_prompt_injection


logger = logging.getLogger(__name__)


REFINER_PROMPT_TEMPLATE = """You help users ask precise questions about a database so the answer can be drawn as a chart.

Original question: "{query}"

Selected table: {table}
Other tables: {other_tables}

Columns of {table}:
{columns}

Rewrite the question so it names the measure, the grouping, any filters and the
time range explicitly, using only the columns above. Keep the user's language.
If the question is already precise, return it unchanged and set "was_improved" to false.

Output JSON schema:
{{
  "improved_prompt": "the clarified question",
  "was_improved": true,
  "improvements_made": ["what was clarified"],
  "suggested_chart_type": "bar|column|line|pie|donut|area|scatter|histogram",
  "key_insights": ["what the user probably wants to learn"],
  "data_focus": "the main measure and grouping",
  "filter_suggestions": ["country = 'Thailand'"],
  "reasoning": "why these changes help"
}}"""


class PromptRefiner(BaseAgent):
    """Clarify the user's question with schema context."""

    name = "prompt_refiner"
    llm_role = "refiner"

    def unchanged(self, query: str, reason: str = "") -> PromptRefinement:
        return PromptRefinement(original_prompt=query, improved_prompt=query, was_improved=False, reasoning=reason)

    def build_prompt(
        self,
        query: str,
        columns: list[ColumnDescriptor],
        tables: list[TableDescriptor],
        table: str,
    ) -> str:
        others = ", ".join(t.name for t in tables if t.name != table) or "none"
        return REFINER_PROMPT_TEMPLATE.format(
            query=sanitize_for_prompt_injection(query),
            table=table,
            other_tables=others,
            columns=describe_for_prompt(columns),
        )

    async def refine(
        self,
        query: str,
        columns: list[ColumnDescriptor],
        tables: list[TableDescriptor],
        table: str,
    ) -> PromptRefinement:
        prompt = self.build_prompt(query, columns, tables, table)
        try:
            response = await self.ask_llm(prompt)
            data = self.parse_json_response(response)
            improved = str(data.get("improved_prompt") or "").strip()
            if not improved:
                return self.unchanged(query, "refiner returned no prompt")
            data["improved_prompt"] = improved
            data["was_improved"] = bool(data.get("was_improved", True)) and improved != query
            refinement = PromptRefinement(original_prompt=query, **{k: v for k, v in data.items() if k != "original_prompt"})
        except (LLMError, ValueError, ValidationError) as e:
            logger.warning("Prompt refinement skipped: %s", e)
            return self.unchanged(query, f"refinement unavailable: {e}")

        logger.info("Prompt refined=%s", refinement.was_improved)
        return refinement
