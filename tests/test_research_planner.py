"""Tests for the research planning chain."""

import pytest

from app.chains.plan_research import plan_research
from app.context.models import ResearchPlan, SearchQuery
from app.core.retry import RetryPolicy
from tests.fakes.fake_provider import FakeProvider, RecordingSleep, TransientProviderError


def _plan(n_queries: int = 3) -> ResearchPlan:
    return ResearchPlan(
        search_queries=[
            SearchQuery(query=f"query {i}", purpose="coverage", language="en" if i % 2 else "ja")
            for i in range(n_queries)
        ],
        urls_to_analyze=[],
        expected_sources="Official docs and news",
        fallback_strategy="Broaden the search terms",
    )


def test_plan_caps_queries_at_five():
    data = {
        "searchQueries": [
            {"query": f"q{i}", "purpose": "p", "language": "en"} for i in range(8)
        ],
        "expectedSources": "docs",
        "fallbackStrategy": "broaden",
    }

    plan = ResearchPlan.model_validate(data)

    assert [q.query for q in plan.search_queries] == ["q0", "q1", "q2", "q3", "q4"]


@pytest.mark.asyncio
async def test_returns_plan():
    provider = FakeProvider(structured={"submit_research_plan": _plan(3)})

    plan = await plan_research("最新のAI動向を調べて", provider)

    assert len(plan.search_queries) == 3
    call = provider.calls_for("submit_research_plan")[0]
    assert call["schema"] is ResearchPlan
    assert "最新のAI動向を調べて" in call["prompt"]


@pytest.mark.asyncio
async def test_question_truncated():
    provider = FakeProvider(structured={"submit_research_plan": _plan()})

    await plan_research("質" * 3000, provider)

    prompt = provider.calls_for("submit_research_plan")[0]["prompt"]
    assert "質" * 2000 in prompt
    assert "質" * 2001 not in prompt


@pytest.mark.asyncio
async def test_retries_transient_errors():
    sleep = RecordingSleep()
    provider = FakeProvider(
        structured={"submit_research_plan": [TransientProviderError(), _plan(2)]}
    )

    plan = await plan_research(
        "compare vector databases",
        provider,
        retry_policy=RetryPolicy(max_attempts=2, base_delay=1.0, sleep=sleep),
    )

    assert len(plan.search_queries) == 2
    assert len(provider.calls_for("submit_research_plan")) == 2
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_raises_after_retries_exhausted():
    sleep = RecordingSleep()
    provider = FakeProvider(
        structured={"submit_research_plan": [TransientProviderError(), TransientProviderError()]}
    )

    with pytest.raises(TransientProviderError):
        await plan_research(
            "compare vector databases",
            provider,
            retry_policy=RetryPolicy(max_attempts=2, sleep=sleep),
        )
    assert len(provider.calls_for("submit_research_plan")) == 2
