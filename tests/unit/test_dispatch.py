"""Test reading dispatch failover against a mocked upstream."""

import json
from typing import List

import httpx
import pytest

from zhanwen_admin.errors import AllModelsFailed, NoActiveModel
from zhanwen_admin.services.dispatch import (
    DispatchOrchestrator,
    extract_completion_text,
    extract_tokens_used,
)
from zhanwen_admin.services.registry import DispatchCandidate


class StaticRegistry:
    """Registry stand-in returning a fixed candidate list."""

    def __init__(self, candidates: List[DispatchCandidate]):
        self.candidates = candidates

    async def list_candidates(self) -> List[DispatchCandidate]:
        return list(self.candidates)


def candidate(name: str, credential: str = "sk-test-key", base_url="https://api.example.com/v1"):
    return DispatchCandidate(
        model_id=1,
        name=name,
        display_name=name,
        role="secondary",
        priority=1,
        provider_name="openai",
        base_url=base_url,
        credential=credential,
    )


@pytest.fixture
async def three_models(providers, make_model):
    await make_model(providers["openai"], "alpha", role="primary", api_key="sk-alpha-000000")
    await make_model(providers["openai"], "gamma", priority=5, api_key="sk-gamma-000000")
    await make_model(providers["deepseek"], "beta", priority=10, api_key="sk-beta-0000000")


class TestFailover:
    """Test candidate order, first success and exhaustion."""

    @pytest.mark.asyncio
    async def test_first_success_wins(
        self, db_session, http_client, upstream, completion, three_models, sample_result
    ):
        # Arrange
        upstream.queue(completion("解读结果", request_id="chatcmpl-abc"))

        # Act
        outcome = await DispatchOrchestrator(db_session, http_client).dispatch(sample_result)

        # Assert
        assert outcome.text == "解读结果"
        assert outcome.model_name == "alpha"
        assert outcome.provider_name == "openai"
        assert outcome.tokens_used == 42
        assert outcome.upstream_request_id == "chatcmpl-abc"
        assert upstream.call_count == 1

    @pytest.mark.asyncio
    async def test_falls_through_in_order(
        self, db_session, http_client, upstream, completion, three_models, sample_result
    ):
        upstream.queue(
            httpx.Response(500, text="upstream exploded"),
            httpx.Response(429, json={"error": "rate limited"}),
            completion("第三个模型的解读"),
        )

        outcome = await DispatchOrchestrator(db_session, http_client).dispatch(sample_result)

        assert outcome.model_name == "beta"
        assert outcome.text == "第三个模型的解读"
        called_models = [json.loads(r.content)["model"] for r in upstream.requests]
        assert called_models == ["alpha", "gamma", "beta"]

    @pytest.mark.asyncio
    async def test_exhaustion_reports_every_failure(
        self, db_session, http_client, upstream, three_models, sample_result
    ):
        upstream.queue(
            httpx.Response(500, text="boom"),
            httpx.Response(401, text="bad key"),
            httpx.Response(503, text="overloaded"),
        )

        with pytest.raises(AllModelsFailed) as exc_info:
            await DispatchOrchestrator(db_session, http_client).dispatch(sample_result)

        errors = exc_info.value.errors
        assert [e["model"] for e in errors] == ["alpha", "gamma", "beta"]
        assert errors[1]["provider"] == "openai"
        assert errors[2]["provider"] == "deepseek"
        assert errors[0]["error"].startswith("HTTP 500")
        assert "bad key" in errors[1]["error"]
        assert exc_info.value.detail == {"errors": errors}
        assert upstream.call_count == 3

    @pytest.mark.asyncio
    async def test_no_candidates_makes_no_http_call(
        self, db_session, http_client, upstream, sample_result
    ):
        with pytest.raises(NoActiveModel):
            await DispatchOrchestrator(db_session, http_client).dispatch(sample_result)

        assert upstream.call_count == 0

    @pytest.mark.asyncio
    async def test_network_error_moves_to_next(
        self, db_session, http_client, upstream, completion, three_models, sample_result
    ):
        upstream.queue(httpx.ConnectError("connection refused"), completion())

        outcome = await DispatchOrchestrator(db_session, http_client).dispatch(sample_result)

        assert outcome.model_name == "gamma"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "broken",
        [
            candidate("broken", credential="sk-密钥-123456"),
            candidate("broken", base_url="http://[::1"),
        ],
    )
    async def test_request_build_error_moves_to_next(
        self, db_session, http_client, upstream, completion, broken
    ):
        # Arrange
        registry = StaticRegistry([broken, candidate("good")])
        orchestrator = DispatchOrchestrator(db_session, http_client, registry=registry)
        upstream.queue(completion())

        # Act
        outcome = await orchestrator.dispatch({})

        # Assert
        assert outcome.model_name == "good"
        assert upstream.call_count == 1

    @pytest.mark.asyncio
    async def test_request_build_errors_are_collected_on_exhaustion(
        self, db_session, http_client, upstream
    ):
        registry = StaticRegistry(
            [
                candidate("non-ascii-key", credential="sk-密钥-123456"),
                candidate("bad-url", base_url="http://[::1"),
            ]
        )
        orchestrator = DispatchOrchestrator(db_session, http_client, registry=registry)

        with pytest.raises(AllModelsFailed) as exc_info:
            await orchestrator.dispatch({})

        assert [e["model"] for e in exc_info.value.errors] == ["non-ascii-key", "bad-url"]
        assert upstream.call_count == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "bad_reply",
        [
            httpx.Response(200, text="<html>not json</html>"),
            httpx.Response(200, json={"choices": []}),
            httpx.Response(200, json={"choices": [{"message": {"content": ""}}]}),
        ],
    )
    async def test_unusable_success_body_counts_as_failure(
        self, db_session, http_client, upstream, completion, three_models, sample_result, bad_reply
    ):
        upstream.queue(bad_reply, completion())

        outcome = await DispatchOrchestrator(db_session, http_client).dispatch(sample_result)

        assert outcome.model_name == "gamma"
        assert upstream.call_count == 2


class TestAttempt:
    """Test request construction for a single candidate."""

    @pytest.mark.asyncio
    async def test_blank_credential_fails_without_http_call(
        self, db_session, http_client, upstream
    ):
        registry = StaticRegistry([candidate("blank", credential="   ")])
        orchestrator = DispatchOrchestrator(db_session, http_client, registry=registry)

        with pytest.raises(AllModelsFailed) as exc_info:
            await orchestrator.dispatch({})

        assert "API key" in exc_info.value.errors[0]["error"]
        assert upstream.call_count == 0

    @pytest.mark.asyncio
    async def test_missing_base_url_fails_without_http_call(
        self, db_session, http_client, upstream
    ):
        registry = StaticRegistry([candidate("nowhere", base_url=None)])
        orchestrator = DispatchOrchestrator(db_session, http_client, registry=registry)

        with pytest.raises(AllModelsFailed):
            await orchestrator.dispatch({})

        assert upstream.call_count == 0

    @pytest.mark.asyncio
    async def test_deepseek_request_url_headers_and_body(
        self, db_session, http_client, upstream, completion, providers, make_model, sample_result
    ):
        await make_model(
            providers["deepseek"],
            "deepseek-chat",
            role="primary",
            api_key="sk-deepseek-secret",
            parameters={"temperature": 0.3, "max_tokens": 20000},
        )
        upstream.queue(completion())

        await DispatchOrchestrator(db_session, http_client).dispatch(sample_result, "en")

        request = upstream.requests[0]
        body = json.loads(request.content)
        assert str(request.url) == "https://api.deepseek.com/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-deepseek-secret"
        assert body["model"] == "deepseek-chat"
        assert body["max_tokens"] == 8192
        assert body["temperature"] == 0.3
        assert body["stream"] is False
        assert [m["role"] for m in body["messages"]] == ["system", "user"]
        assert "术语对照表" in body["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_active_template_texts_are_used(
        self, db_session, http_client, upstream, completion, providers, make_model
    ):
        from zhanwen_admin.services.prompt_templates import PromptTemplateService

        await make_model(providers["openai"], "gpt-4o", role="primary")
        await PromptTemplateService(db_session).create(
            "custom", {"system_prompt": "自定义系统提示"}, activate=True
        )
        upstream.queue(completion())

        await DispatchOrchestrator(db_session, http_client).dispatch({})

        body = json.loads(upstream.requests[0].content)
        assert body["messages"][0]["content"] == "自定义系统提示"


class TestResponseParsing:
    @pytest.mark.parametrize(
        "data,expected",
        [
            ({"choices": [{"message": {"content": "hi"}}]}, "hi"),
            ({"choices": [{"text": "legacy"}]}, "legacy"),
            ({"choices": [{"message": {}}]}, None),
            ({"result": "x"}, None),
            ([], None),
        ],
    )
    def test_extract_completion_text(self, data, expected):
        assert extract_completion_text(data) == expected

    @pytest.mark.parametrize(
        "usage,expected",
        [
            ({"total_tokens": 99}, 99),
            ({"prompt_tokens": 10, "completion_tokens": 5}, 15),
            ({}, None),
        ],
    )
    def test_extract_tokens_used(self, usage, expected):
        assert extract_tokens_used({"usage": usage}) == expected
