"""
Flask REST API for AllCalc
Exposes calculator sessions, history, teacher mode and graphs as JSON endpoints
"""
import logging
import uuid

from flask import Flask, Response, jsonify, request
from flask_cors import CORS

import config
from ai_client import LLMClient, ModeClassifier, StepSolver
from calculator import Calculator
from database import Database
from errors import CalculatorError, SolverFailure
from evaluator import evaluate_and_format
from graph_generator import GraphGenerator
from history_manager import HistoryManager
from mode_policy import CalculatorMode
from teacher_mode import TeacherMode

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)  # Enable CORS for all routes

# Initialize components
db = Database()
history_manager = HistoryManager(db)
llm_client = LLMClient()
classifier = ModeClassifier(llm_client)
teacher = TeacherMode(StepSolver(llm_client))
graph_generator = GraphGenerator()


class SessionStore:
    """In-process calculator sessions keyed by id"""

    def __init__(self):
        self._sessions = {}

    def create(self, mode=CalculatorMode.STANDARD):
        session_id = uuid.uuid4().hex
        self._sessions[session_id] = Calculator(
            mode=mode,
            history=history_manager,
            classifier=classifier,
        )
        return session_id, self._sessions[session_id]

    def get(self, session_id):
        return self._sessions.get(session_id)

    def delete(self, session_id):
        return self._sessions.pop(session_id, None) is not None


sessions = SessionStore()


def current_user_id():
    """Identity is supplied by the caller; absent means no persistence"""
    user_id = (request.headers.get('X-User-Id') or '').strip()
    return user_id or None


def session_payload(session_id, calc, **extra):
    data = {'id': session_id}
    data.update(calc.to_dict())
    data['notifications'] = calc.drain_notifications()
    data.update(extra)
    return data


def load_session(session_id):
    calc = sessions.get(session_id)
    if calc is not None:
        calc.user_id = current_user_id()
    return calc


def not_found():
    return jsonify({'success': False, 'error': 'Unknown session'}), 404


@app.route('/api')
def api_info():
    """API information"""
    return jsonify({
        'success': True,
        'data': {
            'name': config.APP_NAME,
            'version': config.VERSION,
            'endpoints': [
                'POST /api/sessions',
                'GET /api/sessions/<id>',
                'DELETE /api/sessions/<id>',
                'POST /api/sessions/<id>/keys',
                'POST /api/sessions/<id>/voice',
                'POST /api/sessions/<id>/mode',
                'POST /api/sessions/<id>/classify',
                'POST /api/sessions/<id>/teacher',
                'POST /api/evaluate',
                'POST /api/equations',
                'GET /api/calculations',
                'DELETE /api/calculations',
                'GET /api/graph',
            ]
        }
    })


@app.route('/api/sessions', methods=['POST'])
def create_session():
    """Start a new calculator session"""
    body = request.get_json(silent=True) or {}
    try:
        mode = CalculatorMode.parse(body.get('mode', 'Standard'))
    except ValueError as e:
        return jsonify({'success': False, 'error': str(e)}), 400

    session_id, calc = sessions.create(mode)
    calc.user_id = current_user_id()
    return jsonify({'success': True, 'data': session_payload(session_id, calc)}), 201


@app.route('/api/sessions/<session_id>', methods=['GET'])
def get_session(session_id):
    calc = load_session(session_id)
    if calc is None:
        return not_found()
    return jsonify({'success': True, 'data': session_payload(session_id, calc)})


@app.route('/api/sessions/<session_id>', methods=['DELETE'])
def delete_session(session_id):
    if not sessions.delete(session_id):
        return not_found()
    return jsonify({'success': True})


@app.route('/api/sessions/<session_id>/keys', methods=['POST'])
def press_key(session_id):
    """Keypad button (``key``) or physical keyboard key (``keyboard``)"""
    calc = load_session(session_id)
    if calc is None:
        return not_found()

    body = request.get_json(silent=True) or {}
    try:
        if 'keyboard' in body:
            calc.key_press(str(body['keyboard']))
        elif 'key' in body:
            calc.press(str(body['key']))
        else:
            return jsonify({'success': False, 'error': 'key or keyboard is required'}), 400
    except ValueError as e:
        return jsonify({'success': False, 'error': str(e)}), 400

    return jsonify({'success': True, 'data': session_payload(session_id, calc)})


@app.route('/api/sessions/<session_id>/voice', methods=['POST'])
def voice_input(session_id):
    calc = load_session(session_id)
    if calc is None:
        return not_found()

    body = request.get_json(silent=True) or {}
    transcript = body.get('transcript')
    if not isinstance(transcript, str) or not transcript.strip():
        return jsonify({'success': False, 'error': 'transcript is required'}), 400

    calc.voice_input(transcript)
    return jsonify({'success': True, 'data': session_payload(session_id, calc)})


@app.route('/api/sessions/<session_id>/mode', methods=['POST'])
def switch_mode(session_id):
    """Manual mode switch"""
    calc = load_session(session_id)
    if calc is None:
        return not_found()

    body = request.get_json(silent=True) or {}
    try:
        changed = calc.switch_mode(body.get('mode'))
    except ValueError as e:
        return jsonify({'success': False, 'error': str(e)}), 400

    return jsonify({'success': True, 'data': session_payload(session_id, calc, changed=changed)})


@app.route('/api/sessions/<session_id>/classify', methods=['POST'])
def classify(session_id):
    """Run the automatic mode classification if it is due"""
    calc = load_session(session_id)
    if calc is None:
        return not_found()

    changed = calc.tick()
    return jsonify({'success': True, 'data': session_payload(session_id, calc, changed=changed)})


@app.route('/api/sessions/<session_id>/teacher', methods=['POST'])
def teacher_mode(session_id):
    """Step-by-step solution for the session's expression"""
    calc = load_session(session_id)
    if calc is None:
        return not_found()
    if not calc.get_expression():
        return jsonify({'success': False, 'error': 'Nothing to explain'}), 400

    solution = teacher.explain(calc)
    return jsonify({
        'success': True,
        'data': session_payload(session_id, calc,
                                solution=solution.to_dict() if solution else None)
    })


@app.route('/api/evaluate', methods=['POST'])
def evaluate():
    """Stateless evaluation of one expression"""
    body = request.get_json(silent=True) or {}
    expression = body.get('expression')
    if not isinstance(expression, str) or not expression.strip():
        return jsonify({'success': False, 'error': 'expression is required'}), 400

    try:
        mode = CalculatorMode.parse(body.get('mode', 'Standard'))
    except ValueError as e:
        return jsonify({'success': False, 'error': str(e)}), 400

    try:
        result = evaluate_and_format(expression, mode, history=history_manager,
                                     user_id=current_user_id())
    except CalculatorError as e:
        return jsonify({
            'success': False,
            'error': e.user_message,
            'category': type(e).__name__,
            'data': {'expression': expression, 'result': config.ERROR_DISPLAY}
        }), 400

    return jsonify({'success': True, 'data': {'expression': expression, 'result': result}})


@app.route('/api/equations', methods=['POST'])
def solve_equation():
    """Step-by-step algebraic equation solving"""
    body = request.get_json(silent=True) or {}
    try:
        solution = teacher.solve_equation(body.get('equation'))
    except SolverFailure as e:
        logger.warning("Equation solver failed: %s", e)
        return jsonify({'success': False, 'error': e.user_message}), 502
    return jsonify({'success': True, 'data': solution.to_dict()})


@app.route('/api/calculations', methods=['GET'])
def get_calculations():
    """Get calculation history of the current user"""
    user_id = current_user_id()
    if not user_id:
        return jsonify({'success': False, 'error': 'Sign in to see your history'}), 401

    try:
        limit = int(request.args.get('limit', 50))
        after = request.args.get('after')
        after_id = int(after) if after else None
    except ValueError:
        return jsonify({'success': False, 'error': 'limit and after must be integers'}), 400

    try:
        formatted = list(history_manager.stream(user_id, after_id=after_id, limit=limit))
        return jsonify({
            'success': True,
            'data': formatted,
            'count': len(formatted)
        })
    except Exception as e:
        logger.exception("Failed to load history")
        return jsonify({'success': False, 'error': str(e)}), 500


@app.route('/api/calculations', methods=['DELETE'])
def clear_calculations():
    """Clear calculation history of the current user"""
    user_id = current_user_id()
    if not user_id:
        return jsonify({'success': False, 'error': 'Sign in to clear your history'}), 401

    try:
        deleted = history_manager.clear_calculation_history(user_id)
        return jsonify({'success': True, 'deleted': deleted})
    except Exception as e:
        logger.exception("Failed to clear history")
        return jsonify({'success': False, 'error': str(e)}), 500


@app.route('/api/graph')
def get_graph():
    """PNG plot of y = f(x)"""
    expression = request.args.get('expression', '')
    if not expression.strip():
        return jsonify({'success': False, 'error': 'expression is required'}), 400

    try:
        x_min = float(request.args.get('xmin', config.GRAPH_X_RANGE[0]))
        x_max = float(request.args.get('xmax', config.GRAPH_X_RANGE[1]))
        png = graph_generator.render_png(expression, x_min, x_max)
    except ValueError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    except CalculatorError as e:
        return jsonify({'success': False, 'error': e.user_message}), 400

    return Response(png, mimetype='image/png')


if __name__ == '__main__':
    print("\n" + "="*60)
    print("AllCalc API Server")
    print("="*60)
    print(f"Server starting on http://{config.WEB_HOST}:{config.WEB_PORT}")
    print(f"Access from this device: http://localhost:{config.WEB_PORT}")
    if config.WEB_HOST == '0.0.0.0':
        print(f"Access from network: http://<your-ip>:{config.WEB_PORT}")
    print("="*60 + "\n")

    app.run(host=config.WEB_HOST, port=config.WEB_PORT, debug=False)
