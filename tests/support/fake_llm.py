"""Scripted LLM client and canned responses shared by the test modules."""

from __future__ import annotations

import json
from typing import Any, Callable


Response = str | Exception | Callable[[str], str]


class FakeLLM:
    """Completion client scripted per role.

    A role maps to a response string, an exception to raise, a callable
    taking the prompt, or a list consumed one item per call (the last item
    repeats).
    """

    def __init__(self, responses: dict[str, Response | list[Response]] | None = None, default: Response = "no json here"):
        self.responses = dict(responses or {})
        self.default = default
        self.calls: list[tuple[str, str]] = []

    async def complete(
        self,
        prompt: str,
        *,
        role: str,
        temperature: float | None = None,
        system_prompt: str | None = None,
    ) -> str:
        self.calls.append((role, prompt))
        response = self.responses.get(role, self.default)
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(prompt)
        return response

    def prompts(self, role: str) -> list[str]:
        return [prompt for r, prompt in self.calls if r == role]


def as_json(data: dict[str, Any]) -> str:
    return json.dumps(data, ensure_ascii=False)


THAI_GOLD_SQL = (
    "SELECT country, COUNT(*) AS count FROM olympic_medalists "
    "WHERE country = 'Thailand' AND medal = 'Gold' GROUP BY country ORDER BY count DESC"
)


def happy_path_responses() -> dict[str, Response]:
    """LLM script answering the Thai gold medal question end to end."""
    return {
        "refiner": as_json(
            {
                "improved_prompt": "แสดงจำนวนเหรียญทองของประเทศไทย",
                "was_improved": False,
                "reasoning": "already specific",
            }
        ),
        "analyzer": "Here is my analysis:\n"
        + as_json(
            {
                "required_columns": ["country", "medal"],
                "chart_type": "bar",
                "alternative_charts": ["column", "pie"],
                "analysis": "count gold medals for Thailand",
                "chart_reasoning": "bar compares counts",
                "data_aggregation": "count",
                "x_axis": "country",
                "y_axis": "medal_count",
            }
        ),
        "synthesizer": "```json\n"
        + as_json(
            {
                "sql_query": THAI_GOLD_SQL,
                "explanation": "Gold medals won by Thailand",
                "columns_used": ["country", "medal"],
                "filters_applied": ["country = 'Thailand'", "medal = 'Gold'"],
            }
        )
        + "\n```",
        "verifier": as_json(
            {
                "is_valid": True,
                "confidence_score": 92,
                "issues_found": [],
                "should_retry": False,
                "improved_sql": None,
                "reasoning": "counts gold medals for Thailand",
                "data_quality": "good",
            }
        ),
    }
