"""
Tests for the REST API
"""
import pytest

import api
from ai_client import Solution, SolutionStep
from conftest import FakeClassifier
from errors import SolverFailure
from mode_policy import CalculatorMode
from teacher_mode import TeacherMode


class FakeSolver:
    def __init__(self, error=None):
        self.error = error

    def solve(self, expression):
        if self.error:
            raise self.error
        return Solution([SolutionStep("Add", "", "4")], "4")

    def solve_equation(self, equation):
        if self.error:
            raise self.error
        return Solution([SolutionStep("Divide by 2", "", "x = 5")], "x = 5")


@pytest.fixture
def client(monkeypatch, history_manager):
    monkeypatch.setattr(api, "history_manager", history_manager)
    monkeypatch.setattr(api, "classifier", FakeClassifier(CalculatorMode.SCIENTIFIC))
    monkeypatch.setattr(api, "teacher", TeacherMode(FakeSolver()))
    monkeypatch.setattr(api, "sessions", api.SessionStore())
    api.app.config['TESTING'] = True
    return api.app.test_client()


def new_session(client, **body):
    response = client.post('/api/sessions', json=body)
    assert response.status_code == 201
    return response.get_json()['data']['id']


def press(client, session_id, *keys, user=None):
    headers = {'X-User-Id': user} if user else {}
    for key in keys:
        response = client.post(f'/api/sessions/{session_id}/keys', json={'key': key}, headers=headers)
        assert response.status_code == 200
    return response.get_json()['data']


def test_api_info(client):
    data = client.get('/api').get_json()['data']
    assert 'POST /api/evaluate' in data['endpoints']


def test_session_evaluation(client):
    session_id = new_session(client)
    data = press(client, session_id, "2", "+", "2", "=")
    assert data['result'] == "4"
    assert data['state'] == "ResultShown"
    assert data['notifications'] == []


def test_session_error_reports_notification(client):
    session_id = new_session(client)
    data = press(client, session_id, "sin", "9", "0", ")", "=")
    assert data['result'] == "Error"
    assert data['error'] == "ForbiddenFunctionError"
    assert data['mode'] == "Standard"
    assert data['notifications'][0]['title'] == "Not Available"


def test_unknown_session(client):
    assert client.get('/api/sessions/missing').status_code == 404
    assert client.post('/api/sessions/missing/keys', json={'key': '1'}).status_code == 404


def test_bad_key(client):
    session_id = new_session(client)
    response = client.post(f'/api/sessions/{session_id}/keys', json={'key': 'foo'})
    assert response.status_code == 400
    response = client.post(f'/api/sessions/{session_id}/keys', json={})
    assert response.status_code == 400


def test_keyboard_and_voice(client):
    session_id = new_session(client)
    client.post(f'/api/sessions/{session_id}/keys', json={'keyboard': '7'})
    data = client.post(f'/api/sessions/{session_id}/keys', json={'keyboard': '*'}).get_json()['data']
    assert data['expression'] == "7×"

    data = client.post(f'/api/sessions/{session_id}/voice',
                       json={'transcript': '6 times 7 equals'}).get_json()['data']
    assert data['result'] == "42"
    assert client.post(f'/api/sessions/{session_id}/voice', json={}).status_code == 400


def test_mode_switch(client):
    session_id = new_session(client)
    press(client, session_id, "1")
    data = client.post(f'/api/sessions/{session_id}/mode', json={'mode': 'Scientific'}).get_json()['data']
    assert data['changed'] is True
    assert data['mode'] == "Scientific"
    assert data['expression'] == ""
    assert data['mode_locked'] is True

    response = client.post(f'/api/sessions/{session_id}/mode', json={'mode': 'Graphing'})
    assert response.status_code == 400


def test_classify_when_nothing_due(client):
    session_id = new_session(client)
    data = client.post(f'/api/sessions/{session_id}/classify').get_json()['data']
    assert data['changed'] is False
    assert data['mode'] == "Standard"


def test_session_delete(client):
    session_id = new_session(client)
    assert client.delete(f'/api/sessions/{session_id}').status_code == 200
    assert client.delete(f'/api/sessions/{session_id}').status_code == 404


def test_teacher_mode(client):
    session_id = new_session(client)
    response = client.post(f'/api/sessions/{session_id}/teacher')
    assert response.status_code == 400

    press(client, session_id, "2", "+", "2")
    data = client.post(f'/api/sessions/{session_id}/teacher').get_json()['data']
    assert data['solution']['finalAnswer'] == "4"
    assert data['result'] == "4"


def test_evaluate_endpoint(client):
    response = client.post('/api/evaluate', json={'expression': '2×(3+4'})
    assert response.get_json()['data']['result'] == "14"

    response = client.post('/api/evaluate', json={'expression': 'sqrt(16)', 'mode': 'Scientific'})
    assert response.get_json()['data']['result'] == "4"


def test_evaluate_endpoint_errors(client):
    response = client.post('/api/evaluate', json={'expression': '1÷0'})
    assert response.status_code == 400
    body = response.get_json()
    assert body['category'] == "InvalidResultError"
    assert body['error'] == "Please check your calculation."
    assert body['data']['result'] == "Error"

    assert client.post('/api/evaluate', json={}).status_code == 400
    assert client.post('/api/evaluate', json={'expression': '1', 'mode': 'x'}).status_code == 400


def test_evaluate_endpoint_does_not_run_python(client, tmp_path):
    marker = tmp_path / "marker"
    payload = ("Integer.__new__.__globals__['__builtins__']['__import__']('os')"
               f".system('touch {marker}')")
    response = client.post('/api/evaluate', json={'expression': payload})
    assert response.status_code == 400
    body = response.get_json()
    assert body['category'] == "EvaluatorFailure"
    assert body['data']['result'] == "Error"
    assert not marker.exists()


def test_evaluate_endpoint_rejects_huge_powers(client):
    response = client.post('/api/evaluate', json={'expression': '10^10^10'})
    assert response.status_code == 400
    assert response.get_json()['category'] == "InvalidResultError"


def test_history_round_trip(client):
    headers = {'X-User-Id': 'alice'}
    client.post('/api/evaluate', json={'expression': '6×7'}, headers=headers)
    session_id = new_session(client)
    press(client, session_id, "1", "+", "1", "=", user='alice')
    client.post('/api/evaluate', json={'expression': '5+5'})

    body = client.get('/api/calculations', headers=headers).get_json()
    assert body['count'] == 2
    assert [row['expression'] for row in body['data']] == ["1+1", "6×7"]

    newest = body['data'][0]['id']
    assert client.get(f'/api/calculations?after={newest}', headers=headers).get_json()['count'] == 0

    assert client.delete('/api/calculations', headers=headers).get_json()['deleted'] == 2
    assert client.get('/api/calculations', headers=headers).get_json()['count'] == 0


def test_history_needs_user(client):
    assert client.get('/api/calculations').status_code == 401
    assert client.delete('/api/calculations').status_code == 401
    response = client.get('/api/calculations?limit=abc', headers={'X-User-Id': 'alice'})
    assert response.status_code == 400


def test_equations(client, monkeypatch):
    response = client.post('/api/equations', json={'equation': '2x = 10'})
    assert response.get_json()['data']['finalAnswer'] == "x = 5"

    monkeypatch.setattr(api, "teacher", TeacherMode(FakeSolver(SolverFailure("offline"))))
    response = client.post('/api/equations', json={'equation': '2x = 10'})
    assert response.status_code == 502


def test_graph(client):
    response = client.get('/api/graph?expression=x^2&xmin=-2&xmax=2')
    assert response.status_code == 200
    assert response.mimetype == 'image/png'
    assert response.data.startswith(b'\x89PNG')

    assert client.get('/api/graph').status_code == 400
    assert client.get('/api/graph?expression=y%2B1').status_code == 400
    assert client.get('/api/graph?expression=x&xmin=5&xmax=1').status_code == 400
