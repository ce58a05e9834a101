import asyncio

import pytest

from dreamforge.ai.narrator import ResultNarrator
from dreamforge.ai.router import LLMRouter
from dreamforge.ai.verifier import ResultVerifier
from dreamforge.core.classifier import IntentClassifier
from dreamforge.core.errors import RequestValidationError, VisionProviderError
from dreamforge.core.request import ClientInfo
from dreamforge.pipeline import RequestPipeline, client_info_from_headers
from dreamforge.storage.usage_store import UsageStore
from dreamforge.vision.executor import SkillExecutor

from fakes import (
    IMAGE_B64,
    IMAGE_BYTES,
    FakeAIClient,
    FakeVisionProvider,
    RefusingBackend,
    UnreachableBackend,
)


def _pipeline(provider=None, store=None, ai=None):
    classifier = IntentClassifier()
    llm = {}
    if ai is not None:
        llm = {
            "router": LLMRouter(ai, classifier),
            "verifier": ResultVerifier(ai),
            "narrator": ResultNarrator(ai),
        }
    return RequestPipeline(
        classifier=classifier,
        executor=SkillExecutor(provider or FakeVisionProvider()),
        store=store or UsageStore(),
        **llm,
    )


def test_rule_routed_caption_request():
    provider = FakeVisionProvider()
    store = UsageStore()
    response = asyncio.run(
        _pipeline(provider, store).run({"prompt": "Describe this image", "image": IMAGE_B64})
    )

    assert response["success"] is True
    assert response["skill"] == "caption"
    assert response["params"] == {}
    assert response["result"] == {"caption": "A dog running across a park.", "confidence": 0.88}
    assert response["verified"] is True
    assert response["feedback"] == ""
    assert response["analysis"] is None
    assert response["metadata"]["routing"] == "rules"
    assert response["metadata"]["degradations"] == {}
    assert response["usage"]["totalCalls"] == 1
    assert response["usage"]["successRate"] == 100
    assert provider.calls == [("caption", IMAGE_BYTES, None)]


def test_record_captures_client_and_result_metadata():
    store = UsageStore()
    client = ClientInfo(user_agent="pytest-agent", ip_address="203.0.113.9")
    asyncio.run(_pipeline(store=store).run({"prompt": "find the dog", "image": IMAGE_B64}, client))

    record = asyncio.run(store.recent_records(1))[0]
    assert record.skill.value == "detect"
    assert record.parameters == {"threshold": 0.5, "target": "dog"}
    assert record.user_agent == "pytest-agent"
    assert record.ip_address == "203.0.113.9"
    assert record.confidence == 0.92
    assert record.result_size_bytes > 0
    assert record.success is True


@pytest.mark.parametrize(
    "body",
    [
        {"prompt": "", "image": IMAGE_B64},
        {"prompt": "x" * 2001, "image": IMAGE_B64},
        {"prompt": "describe", "image": ""},
        {"prompt": "describe", "image": "***not base64***"},
        {"prompt": "describe"},
        None,
    ],
)
def test_invalid_requests_have_no_side_effects(body):
    provider = FakeVisionProvider()
    store = UsageStore()

    with pytest.raises(RequestValidationError) as excinfo:
        asyncio.run(_pipeline(provider, store).run(body))

    assert excinfo.value.details
    assert provider.calls == []
    assert len(store.fallback) == 0


def test_validation_details_name_the_field():
    with pytest.raises(RequestValidationError) as excinfo:
        asyncio.run(_pipeline().run({"prompt": "", "image": IMAGE_B64}))
    assert excinfo.value.details[0]["loc"] == ["prompt"]
    assert "input" not in excinfo.value.details[0]


def test_data_url_images_are_accepted():
    provider = FakeVisionProvider()
    asyncio.run(_pipeline(provider).run({"prompt": "caption", "image": f"data:image/png;base64,{IMAGE_B64}"}))
    assert provider.calls[0][1] == IMAGE_BYTES


def test_vision_failure_marks_record_and_propagates():
    store = UsageStore()
    pipeline = _pipeline(FakeVisionProvider(fail_on=("detect",)), store)

    with pytest.raises(VisionProviderError):
        asyncio.run(pipeline.run({"prompt": "detect the cars", "image": IMAGE_B64}))

    records = asyncio.run(store.recent_records(10))
    assert len(records) == 1
    assert records[0].success is False
    assert "503" in records[0].error_message

    summary = asyncio.run(store.summarize(7))
    assert summary.total_calls == 1
    assert summary.success_rate == 0


def test_unreachable_durable_store_still_answers():
    store = UsageStore(durable=UnreachableBackend())
    response = asyncio.run(_pipeline(store=store).run({"prompt": "how many dogs?", "image": IMAGE_B64}))

    assert response["success"] is True
    assert response["usage"]["totalCalls"] == 1
    history = asyncio.run(store.recent_history(10))
    assert [h["prompt"] for h in history] == ["how many dogs?"]



def test_durable_backend_connection_errors_do_not_fail_the_request():
    store = UsageStore(durable=RefusingBackend())
    response = asyncio.run(_pipeline(store=store).run({"prompt": "Describe this image", "image": IMAGE_B64}))

    assert response["success"] is True
    assert response["usage"]["totalCalls"] == 1
    assert len(store.fallback) == 1
    assert asyncio.run(store.recent_history(10))[0]["success"] is True


def test_concurrent_requests_all_land_in_memory_fallback():
    store = UsageStore(durable=UnreachableBackend())
    pipeline = _pipeline(store=store)
    prompts = [f"how many dogs are in picture {i}?" for i in range(25)]

    async def go():
        await asyncio.gather(*(pipeline.run({"prompt": p, "image": IMAGE_B64}) for p in prompts))
        return await store.summarize(7), await store.recent_history(100)

    summary, history = asyncio.run(go())

    assert summary.total_calls == 25
    assert summary.successful_calls == 25
    assert len({h["id"] for h in history}) == 25
    assert sorted(h["prompt"] for h in history) == sorted(prompts)

def test_llm_assisted_request():
    ai = FakeAIClient(
        '{"skill": "query", "params": {"question": "How many dogs are there?"}}',
        '{"verified": false, "feedback": "The answer does not give a number."}',
        '{"explanation": "Three dogs are visible.", "insights": ["They are playing"], "followUp": ["What breed?"]}',
    )
    provider = FakeVisionProvider()
    store = UsageStore()
    response = asyncio.run(_pipeline(provider, store, ai).run({"prompt": "dogs?", "image": IMAGE_B64}))

    assert response["skill"] == "query"
    assert response["params"] == {"question": "How many dogs are there?"}
    assert provider.calls == [("query", IMAGE_BYTES, "How many dogs are there?")]
    assert response["verified"] is False
    assert response["feedback"] == "The answer does not give a number."
    assert response["analysis"]["followUp"] == ["What breed?"]
    assert response["metadata"]["routing"] == "llm"
    # an unverified result counts as an unsuccessful call
    assert response["usage"]["successfulCalls"] == 0


def test_llm_failures_degrade_without_failing_the_request():
    ai = FakeAIClient(TimeoutError("slow"), RuntimeError("overloaded"), "not json")
    response = asyncio.run(_pipeline(ai=ai).run({"prompt": "Describe this image", "image": IMAGE_B64}))

    assert response["success"] is True
    assert response["skill"] == "caption"
    assert response["verified"] is True
    assert response["analysis"] is None
    assert response["metadata"]["routing"] == "rules"
    assert response["metadata"]["degradations"] == {
        "routing": "provider_error",
        "verification": "provider_error",
        "narration": "invalid_output",
    }


def test_planner_can_be_disabled_per_request():
    ai = FakeAIClient('{"verified": true, "feedback": "Looks right."}', '{"explanation": "A dog."}')
    response = asyncio.run(
        _pipeline(ai=ai).run({"prompt": "point to the dog", "image": IMAGE_B64, "useAnthropicPlanner": False})
    )

    assert response["skill"] == "point"
    assert response["params"] == {"query": "dog"}
    assert response["metadata"]["routing"] == "rules"
    assert response["feedback"] == "Looks right."
    assert len(ai.prompts) == 2


def test_client_info_prefers_forwarded_for():
    info = client_info_from_headers({"x-forwarded-for": "198.51.100.7, 10.0.0.1", "user-agent": "curl"}, "127.0.0.1")
    assert info == ClientInfo(user_agent="curl", ip_address="198.51.100.7")
    assert client_info_from_headers({}, "127.0.0.1").ip_address == "127.0.0.1"
