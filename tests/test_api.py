"""Tests for the HTTP routes."""

import pytest
from fastapi.testclient import TestClient

from agenda.main import app


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def _turn(client, session_id, text):
    resp = client.post("/command", json={"session_id": session_id, "text": text, "api_key": ""})
    assert resp.status_code == 200
    return resp.json()


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["skills"] == 3


def test_list_skills(client):
    body = client.get("/skills").json()
    assert body["total"] == 3
    names = {s["name"] for s in body["skills"]}
    assert names == {"create_meeting", "business_trip", "query_schedule"}
    assert "instructions" not in body["skills"][0]


def test_get_skill(client):
    body = client.get("/skills/create_meeting").json()
    assert body["action"] == "open_create_meeting_modal"
    assert body["instructions"].startswith("# 创建会议")
    assert client.get("/skills/nope").status_code == 404


def test_unmatched_text(client):
    body = _turn(client, "api-1", "今天天气如何")
    assert body["reply"].startswith("抱歉")
    assert body["match"]["matched"] is False
    assert body["match"]["skillName"] == ""


def test_meeting_flow_and_submit(client):
    first = _turn(client, "api-2", "明天下午3点开项目评审会，开1小时")
    assert first["skill_name"] == "create_meeting"
    assert first["form"]["completionStatus"]["missingFields"] == ["location", "attendees"]

    _turn(client, "api-2", "A301会议室")
    last = _turn(client, "api-2", "张三、李四")
    assert last["ready_to_submit"] is True
    assert last["ui_action"]["name"] == "open_create_meeting_modal"

    submitted = client.post("/command/submit", json={"session_id": "api-2"}).json()
    assert submitted["success"] is True
    event = submitted["event"]
    assert event["id"].startswith("MTG-")
    assert event["startTime"] == "15:00"

    listed = client.get("/schedules").json()
    assert [e["id"] for e in listed] == [event["id"]]
    assert client.get(f"/schedules/{event['id']}").json()["content"] == "项目评审"


def test_submit_without_form(client):
    assert client.post("/command/submit", json={"session_id": "ghost"}).status_code == 404


def test_unsupported_provider(client):
    resp = client.post("/command", json={"session_id": "x", "text": "开会", "provider": "llama"})
    assert resp.status_code == 400


def test_reset_session(client):
    _turn(client, "api-3", "明天开会")
    assert client.delete("/command/api-3").json() == {"reset": True}
    assert client.delete("/command/api-3").json() == {"reset": False}


def test_upcoming_validates_days(client):
    assert client.get("/schedules/upcoming", params={"days": 0}).status_code == 422
    assert client.get("/schedules/upcoming", params={"days": 3}).status_code == 200
