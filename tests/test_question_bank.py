import json

import requests

from conftest import make_bank
from triviabuzz import question_bank
from triviabuzz.game import build_board
from triviabuzz.question_bank import fetch_question_bank, load_question_bank, resolve_question_bank


class FakeResponse:
    def __init__(self, payload, status=200):
        self._payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def json(self):
        return self._payload


def test_packaged_bank_builds_a_full_board():
    bank = load_question_bank()
    board = build_board(bank)
    assert len(board) == 6
    assert all(len(cat.questions) == 5 for cat in board)


def test_load_accepts_plain_list(tmp_path):
    path = tmp_path / "bank.json"
    path.write_text(json.dumps([{"name": "X", "questions": []}]), encoding="utf-8")
    assert load_question_bank(path) == [{"name": "X", "questions": []}]


def remote_bank(categories=6):
    return {"categories": make_bank(categories)}


def test_fetch_drops_incomplete_categories(monkeypatch):
    payload = remote_bank()
    payload["categories"][0]["questions"][2]["answer"] = ""
    payload["categories"][1]["questions"][0]["value"] = "cent"
    payload["categories"][2]["questions"][4]["value"] = "500"
    monkeypatch.setattr(question_bank.requests, "get", lambda url, timeout: FakeResponse(payload))

    bank = fetch_question_bank("http://example.invalid/bank.json")
    assert [cat["name"] for cat in bank] == ["Cat 2", "Cat 3", "Cat 4", "Cat 5"]
    assert bank[0]["questions"][4]["value"] == 500
    # Le plateau se construit sans erreur
    assert len(build_board(bank)) == 4


def test_fetch_caps_categories_and_questions(monkeypatch):
    payload = remote_bank(categories=8)
    payload["categories"][0]["questions"].append({"value": 600, "question": "extra", "answer": "x"})
    monkeypatch.setattr(question_bank.requests, "get", lambda url, timeout: FakeResponse(payload))

    bank = fetch_question_bank("http://example.invalid/bank.json")
    assert len(bank) == 6
    assert all(len(cat["questions"]) == 5 for cat in bank)


def test_unusable_remote_bank_falls_back_to_local_file(monkeypatch):
    payload = remote_bank(categories=1)
    payload["categories"][0]["questions"][0]["question"] = ""
    monkeypatch.setattr(question_bank.requests, "get", lambda url, timeout: FakeResponse(payload))

    assert fetch_question_bank("http://example.invalid/bank.json") is None
    assert resolve_question_bank(url="http://example.invalid/bank.json") == load_question_bank()


def test_resolve_falls_back_to_local_file(monkeypatch, caplog):
    def unreachable(url, timeout):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(question_bank.requests, "get", unreachable)
    bank = resolve_question_bank(url="http://example.invalid/bank.json")
    assert bank == load_question_bank()
    assert "repli sur" in caplog.text


def test_fetch_http_error_returns_none(monkeypatch):
    monkeypatch.setattr(question_bank.requests, "get", lambda url, timeout: FakeResponse({}, 500))
    assert fetch_question_bank("http://example.invalid/bank.json") is None
