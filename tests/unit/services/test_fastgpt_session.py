"""Unit tests for FastGPT chat history and feedback."""

import json
import re

import httpx
import pytest
from pytest_httpx import HTTPXMock

from llmchat.config.chat import ChatSettings
from llmchat.core.errors import (
    AgentNotFoundError,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
)
from llmchat.models.history import FeedbackRequest
from llmchat.services.fastgpt_session import (
    UNTITLED_CHAT,
    FastGPTSessionService,
    build_attempts,
    fastgpt_base_url,
    normalize_history_detail,
    normalize_history_message,
    normalize_history_summary,
)
from tests.conftest import FASTGPT_APP_ID


pytestmark = pytest.mark.unit

BASE = "https://fastgpt.example.com"
FEEDBACK_URL = f"{BASE}/api/core/chat/feedback/updateUserFeedback"


def url_pattern(path: str) -> re.Pattern[str]:
    return re.compile(re.escape(f"{BASE}{path}") + r"(\?.*)?$")


LIST_URL = url_pattern("/api/core/chat/history/list")
DETAIL_URL = url_pattern("/api/core/chat/history/detail")

LIST_RESPONSE = {
    "code": 200,
    "data": {
        "list": [
            {
                "chatId": "c1",
                "title": "Shipping question",
                "updateTime": "2024-03-09T10:00:00.000Z",
                "createTime": "2024-03-09T09:00:00.000Z",
            },
            {"_id": "c2", "createTime": 1709974800000, "msgCount": "4"},
        ]
    },
}

DETAIL_RESPONSE = {
    "code": 200,
    "data": {
        "chatId": "c1",
        "appId": FASTGPT_APP_ID,
        "title": "Shipping question",
        "total": 2,
        "list": [
            {"dataId": "d1", "obj": "Human", "value": "Where is my parcel?"},
            {
                "dataId": "d2",
                "obj": "AI",
                "value": "It ships today.",
                "userGoodFeedback": "yes",
            },
        ],
    },
}


@pytest.fixture
def session_service(agent_service, http_client) -> FastGPTSessionService:
    return FastGPTSessionService(agent_service, http_client, ChatSettings())


@pytest.mark.parametrize(
    ("endpoint", "expected"),
    [
        (f"{BASE}/api/v1/chat/completions", BASE),
        (f"{BASE}/api/v1/chat/completions/", BASE),
        (f" `{BASE}/api/v1/chat/completions` ", BASE),
        (f"{BASE}/", BASE),
    ],
)
def test_fastgpt_base_url(endpoint, expected):
    assert fastgpt_base_url(endpoint) == expected


def test_build_attempts_keeps_order_and_dedupes():
    attempts = build_attempts("GET", ["/a", "/b/"], ["list", "/list", "detail"])

    assert attempts == [
        ("GET", "/a/list"),
        ("GET", "/a/detail"),
        ("GET", "/b/list"),
        ("GET", "/b/detail"),
    ]


class TestNormalization:
    def test_summary_fields_and_fallbacks(self):
        first, second = (
            normalize_history_summary(item) for item in LIST_RESPONSE["data"]["list"]
        )

        assert first.chat_id == "c1"
        assert first.title == "Shipping question"
        assert first.updated_at == "2024-03-09T10:00:00.000Z"
        assert second.chat_id == "c2"
        assert second.title == UNTITLED_CHAT
        assert second.created_at == "2024-03-09T09:00:00.000Z"
        assert second.updated_at == second.created_at
        assert second.message_count == 4

    @pytest.mark.parametrize(
        ("entry", "role"),
        [
            ({"obj": "Human"}, "user"),
            ({"obj": "AI"}, "assistant"),
            ({"role": "assistant"}, "assistant"),
            ({"obj": "System"}, "system"),
            ({}, "user"),
        ],
    )
    def test_message_roles(self, entry, role):
        assert normalize_history_message(entry).role == role

    def test_message_list_value_is_joined(self):
        message = normalize_history_message(
            {"_id": "d9", "obj": "AI", "value": ["hi", {"type": "text"}]}
        )

        assert message.content == 'hi\n{"type": "text"}'
        assert message.data_id == "d9"
        assert message.feedback is None

    def test_detail(self):
        detail = normalize_history_detail(DETAIL_RESPONSE)

        assert detail.chat_id == "c1"
        assert [m.role for m in detail.messages] == ["user", "assistant"]
        assert detail.messages[1].feedback == "good"
        assert detail.metadata["total"] == 2


class TestHistories:
    @pytest.mark.asyncio
    async def test_list_histories(self, session_service, httpx_mock: HTTPXMock):
        httpx_mock.add_response(url=LIST_URL, json=LIST_RESPONSE)

        histories = await session_service.list_histories(
            "fastgpt-assistant", page=2, page_size=10
        )

        assert [h.chat_id for h in histories] == ["c1", "c2"]
        request = httpx_mock.get_request()
        assert request.method == "GET"
        assert request.url.params["appId"] == FASTGPT_APP_ID
        assert request.url.params["page"] == "2"
        assert request.url.params["pageSize"] == "10"
        assert request.headers["Authorization"] == "Bearer fastgpt-test-key"

    @pytest.mark.asyncio
    async def test_list_is_cached(self, session_service, httpx_mock: HTTPXMock):
        httpx_mock.add_response(url=LIST_URL, json=LIST_RESPONSE)

        await session_service.list_histories("fastgpt-assistant")
        await session_service.list_histories("fastgpt-assistant")

        assert len(httpx_mock.get_requests()) == 1
        assert session_service.list_cache.stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_next_path_on_404(
        self, session_service, httpx_mock: HTTPXMock
    ):
        httpx_mock.add_response(url=LIST_URL, status_code=404)
        httpx_mock.add_response(
            url=url_pattern("/api/core/chat/history/getHistoryList"),
            json={"code": 200, "data": [{"chatId": "c7"}]},
        )

        histories = await session_service.list_histories("fastgpt-assistant")

        assert [h.chat_id for h in histories] == ["c7"]
        assert len(httpx_mock.get_requests()) == 2

    @pytest.mark.asyncio
    async def test_every_path_missing(self, session_service, httpx_mock: HTTPXMock):
        for _ in range(12):
            httpx_mock.add_response(status_code=404)

        with pytest.raises(UpstreamError, match="endpoint not found") as exc_info:
            await session_service.list_histories("fastgpt-assistant")

        assert exc_info.value.upstream_status == 404

    @pytest.mark.asyncio
    async def test_server_error_is_not_retried(
        self, session_service, httpx_mock: HTTPXMock
    ):
        httpx_mock.add_response(url=LIST_URL, status_code=500)

        with pytest.raises(UpstreamError, match="status 500"):
            await session_service.list_histories("fastgpt-assistant")

        assert len(httpx_mock.get_requests()) == 1

    @pytest.mark.asyncio
    async def test_error_code_in_body(self, session_service, httpx_mock: HTTPXMock):
        httpx_mock.add_response(url=LIST_URL, json={"code": 403, "message": "denied"})

        with pytest.raises(UpstreamError, match="FastGPT API error: denied"):
            await session_service.list_histories("fastgpt-assistant")

    @pytest.mark.asyncio
    async def test_timeout(self, session_service, httpx_mock: HTTPXMock):
        httpx_mock.add_exception(httpx.ReadTimeout("slow"))

        with pytest.raises(UpstreamTimeoutError):
            await session_service.list_histories("fastgpt-assistant")

    @pytest.mark.asyncio
    async def test_non_fastgpt_agent(self, session_service):
        with pytest.raises(ValidationError, match="not a FastGPT agent"):
            await session_service.list_histories("openai-gpt")

    @pytest.mark.asyncio
    async def test_unknown_agent(self, session_service):
        with pytest.raises(AgentNotFoundError):
            await session_service.get_history_detail("nope", "c1")

    @pytest.mark.asyncio
    async def test_history_detail(self, session_service, httpx_mock: HTTPXMock):
        httpx_mock.add_response(url=DETAIL_URL, json=DETAIL_RESPONSE)

        detail = await session_service.get_history_detail("fastgpt-assistant", "c1")
        again = await session_service.get_history_detail("fastgpt-assistant", "c1")

        assert again is detail
        assert detail.title == "Shipping question"
        assert len(detail.messages) == 2
        assert httpx_mock.get_request().url.params["chatId"] == "c1"

    @pytest.mark.asyncio
    async def test_delete_invalidates_caches(
        self, session_service, httpx_mock: HTTPXMock
    ):
        httpx_mock.add_response(url=LIST_URL, json=LIST_RESPONSE)
        httpx_mock.add_response(url=DETAIL_URL, json=DETAIL_RESPONSE)
        httpx_mock.add_response(
            url=f"{BASE}/api/core/chat/history/delete", method="POST", json={"code": 200}
        )
        httpx_mock.add_response(url=LIST_URL, json={"code": 200, "data": {"list": []}})

        await session_service.list_histories("fastgpt-assistant")
        await session_service.get_history_detail("fastgpt-assistant", "c1")
        await session_service.delete_history("fastgpt-assistant", "c1")

        assert await session_service.list_histories("fastgpt-assistant") == []
        assert len(session_service.detail_cache) == 0
        delete_request = httpx_mock.get_requests(method="POST")[0]
        assert json.loads(delete_request.content) == {
            "appId": FASTGPT_APP_ID,
            "chatId": "c1",
        }
        # Invalidation shortens the list TTL by one step
        assert session_service.list_cache.policy.get_ttl() == 5.0

    @pytest.mark.asyncio
    async def test_clear_histories(self, session_service, httpx_mock: HTTPXMock):
        httpx_mock.add_response(
            url=f"{BASE}/api/core/chat/history/clear", method="POST", json={"code": 200}
        )

        await session_service.clear_histories("fastgpt-assistant")

        assert json.loads(httpx_mock.get_request().content) == {"appId": FASTGPT_APP_ID}


class TestFeedback:
    @pytest.mark.asyncio
    async def test_good_feedback(self, session_service, httpx_mock: HTTPXMock):
        httpx_mock.add_response(url=FEEDBACK_URL, method="POST", json={"code": 200})

        await session_service.update_user_feedback(
            FeedbackRequest(
                agent_id="fastgpt-assistant",
                chat_id="c1",
                data_id="d2",
                user_good_feedback="yes",
            )
        )

        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Bearer fastgpt-test-key"
        assert json.loads(request.content) == {
            "appId": FASTGPT_APP_ID,
            "chatId": "c1",
            "dataId": "d2",
            "userGoodFeedback": "yes",
        }

    @pytest.mark.asyncio
    async def test_clearing_feedback_sends_no_rating(
        self, session_service, httpx_mock: HTTPXMock
    ):
        httpx_mock.add_response(url=FEEDBACK_URL, method="POST", json={"code": 200})

        await session_service.update_user_feedback(
            FeedbackRequest(agent_id="fastgpt-assistant", chat_id="c1", data_id="d2")
        )

        body = json.loads(httpx_mock.get_request().content)
        assert "userGoodFeedback" not in body
        assert "userBadFeedback" not in body

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("reply", "message"),
        [
            ({"code": 500, "message": "nope"}, "FastGPT API error: nope"),
            ({"data": None}, "feedback failed"),
        ],
    )
    async def test_reply_must_carry_code_200(
        self, session_service, httpx_mock: HTTPXMock, reply, message
    ):
        httpx_mock.add_response(url=FEEDBACK_URL, method="POST", json=reply)

        with pytest.raises(UpstreamError, match=message):
            await session_service.update_user_feedback(
                FeedbackRequest(
                    agent_id="fastgpt-assistant",
                    chat_id="c1",
                    data_id="d2",
                    user_bad_feedback="wrong",
                )
            )
