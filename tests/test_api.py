from __future__ import annotations

import json
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from conftest import StubCompletion

from bizflow.core.config import Settings
from bizflow.dependencies import ServiceContainer, build_container
from bizflow.main import create_app


@pytest.fixture
def completion() -> StubCompletion:
    return StubCompletion(default="Got it! What should we call your business?")


@pytest.fixture
def container(settings: Settings, completion: StubCompletion) -> ServiceContainer:
    return build_container(settings, completion=completion)


@pytest.fixture
def client(container: ServiceContainer) -> Iterator[TestClient]:
    with TestClient(create_app(container=container)) as test_client:
        yield test_client


def test_health_and_metrics(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "bizflow_orchestration_runs_total" in metrics.text


def test_questionnaire_lists_every_phase(client: TestClient, container: ServiceContainer) -> None:
    response = client.get("/api/v1/questionnaire")

    assert response.status_code == 200
    body = response.json()
    assert body["question_count"] == len(container.catalog)
    assert [phase["id"] for phase in body["phases"]][:3] == ["auth", "discovery", "context"]


def test_progress_discounts_skipped_questions(client: TestClient, container: ServiceContainer) -> None:
    def progress(answers: dict, current_index: int) -> dict:
        response = client.post(
            "/api/v1/questionnaire/progress", json={"answers": answers, "current_index": current_index}
        )
        assert response.status_code == 200
        return response.json()

    one_time = {"revenue_model": "one_time"}
    start_all = progress({}, 0)
    start_one_time = progress(one_time, 0)
    assert start_one_time["total"] < start_all["total"]
    assert (start_one_time["answered"], start_one_time["skipped"], start_one_time["percentage"]) == (0, 0, 0)

    end = len(container.catalog.flat_questions())
    end_all = progress({}, end)
    end_one_time = progress(one_time, end)
    assert end_one_time["skipped"] > end_all["skipped"]
    assert end_one_time["answered"] == 1
    assert end_one_time["total"] == 1
    assert end_one_time["percentage"] == 100


def test_answer_auto_populates_location_fields(client: TestClient) -> None:
    response = client.post(
        "/api/v1/questionnaire/answer",
        json={"question_id": "user_location", "answer": "Hyderabad, India", "answers": {"user_name": "Asha"}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["auto_populated"] == {"timezone": "Asia/Kolkata", "currency": "INR"}
    assert body["updated_answers"]["user_location"] == "Hyderabad, India"
    assert body["updated_answers"]["timezone"] == "Asia/Kolkata"
    assert body["next_question"] is not None
    assert body["next_question"]["id"] != "user_location"
    assert body["progress"]["answered"] >= 2


def test_answer_keeps_user_values_over_auto_populated_ones(client: TestClient) -> None:
    response = client.post(
        "/api/v1/questionnaire/answer",
        json={"question_id": "ltv", "answer": 3000, "answers": {"target_cac": 1000, "ltv_cac_ratio": 2.5}},
    )

    body = response.json()
    assert body["auto_populated"] == {"ltv_cac_ratio": 3}
    assert body["updated_answers"]["ltv_cac_ratio"] == 2.5


def test_answer_reports_branch_activation_and_triggers(client: TestClient) -> None:
    response = client.post(
        "/api/v1/questionnaire/answer",
        json={
            "question_id": "customer_type",
            "answer": "b2b",
            "answers": {"target_industries": ["SaaS"], "primary_market": "India"},
        },
    )

    body = response.json()
    assert body["activated_branch_question_ids"]
    assert [skill["skill_id"] for skill in body["skills_to_execute"]] == ["market_sizing_calculator"]
    assert [agent["agent_id"] for agent in body["agents_to_trigger"]] == ["market_analyst"]


def test_unknown_question_is_404(client: TestClient) -> None:
    response = client.post("/api/v1/questionnaire/answer", json={"question_id": "nope", "answer": "x"})
    assert response.status_code == 404


def test_orchestrator_runs_fast_path(client: TestClient, completion: StubCompletion) -> None:
    response = client.post(
        "/api/v1/orchestrator",
        json={"message": "I'm Asha", "context": {"currentPhase": 1}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["synthesis"] == "Got it! What should we call your business?"
    assert body["intent"]["agents"] == ["context_collector"]
    assert [output["agent_id"] for output in body["agent_outputs"]] == ["context_collector"]
    assert completion.json_calls == []


def test_orchestrator_with_question_context_honours_skip_rules(client: TestClient) -> None:
    response = client.post(
        "/api/v1/orchestrator",
        json={
            "message": "5%",
            "question_context": {
                "questionId": "churn_rate",
                "phaseId": "revenue",
                "allAnswers": {"revenue_model": "one_time"},
            },
        },
    )

    body = response.json()
    assert response.status_code == 200
    assert body["synthesis"] == ""
    assert body["question_config"]["should_skip"] is True


def test_intent_failure_maps_to_bad_gateway(client: TestClient) -> None:
    response = client.post("/api/v1/orchestrator", json={"message": "help", "context": {"currentPhase": 4}})

    assert response.status_code == 502
    assert response.json() == {"code": "INTENT_PARSE_FAILED", "detail": "Failed to parse intent"}


def test_empty_message_is_rejected(client: TestClient) -> None:
    response = client.post("/api/v1/orchestrator", json={"message": ""})
    assert response.status_code == 422


def test_answer_can_run_triggered_agents(client: TestClient, completion: StubCompletion) -> None:
    payload = {
        "question_id": "customer_type",
        "answer": "b2b",
        "answers": {"target_industries": ["SaaS"], "primary_market": "India"},
    }

    queued_only = client.post("/api/v1/questionnaire/answer", json=payload).json()
    assert queued_only["triggered_outputs"] == []
    assert completion.calls == []

    response = client.post("/api/v1/questionnaire/answer", json={**payload, "run_triggers": True})

    body = response.json()
    assert response.status_code == 200
    [output] = body["triggered_outputs"]
    assert output["agent_id"] == "market_analyst"
    assert output["success"] is True
    first_message = completion.calls[0]["messages"][0].content
    assert first_message.startswith(body["agents_to_trigger"][0]["prompt"])


def _sse_events(text: str) -> list[tuple[str, dict]]:
    events = []
    for block in text.strip().split("\n\n"):
        name, data = block.split("\n", 1)
        events.append((name.removeprefix("event: "), json.loads(data.removeprefix("data: "))))
    return events


def test_orchestrator_stream_reports_stages(client: TestClient) -> None:
    response = client.get("/api/v1/orchestrator/stream", params={"message": "I'm Asha", "currentPhase": "1"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = _sse_events(response.text)
    assert [name for name, _ in events] == [
        "analyzing_intent",
        "intent_analyzed",
        "plan_created",
        "executing_agents",
        "execution_complete",
        "synthesizing",
        "complete",
    ]
    assert events[1][1]["intent"]["agents"] == ["context_collector"]
    assert events[-1][1]["synthesis"] == "Got it! What should we call your business?"


def test_orchestrator_stream_reports_errors(client: TestClient) -> None:
    response = client.get("/api/v1/orchestrator/stream", params={"message": "help", "currentPhase": "4"})

    assert response.status_code == 200
    events = _sse_events(response.text)
    assert [name for name, _ in events] == ["analyzing_intent", "error"]
    assert events[-1][1]["code"] == "INTENT_PARSE_FAILED"


def test_orchestrator_stream_requires_message(client: TestClient) -> None:
    assert client.get("/api/v1/orchestrator/stream").status_code == 422
