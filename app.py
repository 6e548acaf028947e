#!/usr/bin/env python3
"""
Learning Cards - Flask Web Application
Chat interface whose answers come back as learning cards or multi-level
learning pathways, with per-user progress tracking for every pathway.
Requires an OpenAI compatible API for the assistant replies.
"""

import os
import sys
import traceback
from typing import Any, Dict, Optional, Tuple

from flask import Flask, abort, jsonify, redirect, render_template, request, session, url_for

# Check for test mode
TEST_MODE = os.environ.get("TEST_MODE", "0") == "1"

# Add the current directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from llm_learning_cards import chat, db, providers
from llm_learning_cards.parsing import KIND_CARD, KIND_PATHWAY
from llm_learning_cards.progress import PathwayProgress
from llm_learning_cards.render import CARD_TABS, render_card_html, render_pathway_html
from llm_learning_cards.storage import DatabaseStorage

# Check for debug mode
DEBUG = os.environ.get("DEBUG", "0") == "1"

GUEST_EMAIL = "guest@localhost"

app = Flask(__name__)
app.secret_key = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')

# Try to initialize with environment variables by default
if not TEST_MODE:
    providers.init_ai()


@app.before_request
def initialize_app() -> None:
    """Initialize the database if needed."""
    if not hasattr(app, '_database_initialized'):
        try:
            if not db.is_db_initialized():
                db.init_db()
                print("✅ Database initialized on startup")
        except Exception as e:
            print(f"❌ Database startup check failed: {str(e)}")
        setattr(app, "_database_initialized", True)


@app.before_request
def ensure_user() -> None:
    """Ensure a user identity is set in session."""
    if 'user_email' not in session:
        session['user_email'] = GUEST_EMAIL


def current_user() -> db.User:
    return db.get_or_create_user(session.get('user_email', GUEST_EMAIL))


def _error(message: str, status: int) -> Any:
    return jsonify({'status': 'error', 'message': message}), status


def _wants_json() -> bool:
    """Form posts from the rendered page get a redirect, everything else JSON."""
    return request.mimetype not in ('application/x-www-form-urlencoded', 'multipart/form-data')


def _params() -> Dict[str, Any]:
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.form.to_dict()


def _int_param(params: Dict[str, Any], name: str) -> int:
    value = params.get(name)
    if isinstance(value, bool):
        raise ValueError(f"Missing or invalid '{name}'")
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ValueError(f"Missing or invalid '{name}'")


def _can_read(chat_row: db.Chat, user: db.User) -> bool:
    return chat_row.user_id == user.id or chat_row.visibility == "public"


def _get_chat(chat_id: str, user: db.User, write: bool = False) -> db.Chat:
    chat_row = db.get_chat_by_id(chat_id)
    if chat_row is None:
        raise LookupError('Chat not found')
    if write and chat_row.user_id != user.id:
        raise PermissionError('This chat belongs to another user')
    if not _can_read(chat_row, user):
        raise LookupError('Chat not found')
    return chat_row


def _handle(fn: Any) -> Any:
    """Run a route body, mapping failures onto JSON errors."""
    try:
        return fn()
    except ValueError as e:
        return _error(str(e), 400)
    except PermissionError as e:
        return _error(str(e), 403)
    except LookupError as e:
        return _error(str(e), 404)
    except Exception as e:
        if DEBUG:
            print(f"Error handling {request.path}: {e}")
            traceback.print_exc()
        return _error(f'Error: {str(e)}', 500)


# ----------------------------------------------------------------------
# Pages
# ----------------------------------------------------------------------

@app.route('/')
def index() -> Any:
    """Latest chat of the user, or an empty thread."""
    user = current_user()
    chats = db.get_chats_by_user(user.id)
    if chats and not request.args.get('new'):
        return redirect(url_for('chat_page', chat_id=chats[0].id))
    return render_template('chat.html', chat=None, chats=chats, messages=[],
                           models=providers.chat_models,
                           default_model=providers.DEFAULT_CHAT_MODEL,
                           ai_enabled=providers.client is not None)


def _apply_view_state(progress: PathwayProgress, message_id: str) -> None:
    """Restore level, expanded step and celebration from the query string."""
    if request.args.get('pathway') != message_id:
        return
    level = request.args.get('level')
    if level:
        try:
            progress.set_active_level(level)
        except ValueError:
            pass
    step = request.args.get('step', type=int)
    if step is not None:
        progress.expanded_step = step
    progress.show_celebration = request.args.get('celebrate') == '1'


def _message_view(message: db.Message, user: db.User) -> Dict[str, Any]:
    parsed = chat.parse_message(message)
    view: Dict[str, Any] = {'id': message.id, 'role': message.role, 'kind': parsed.kind,
                            'text': parsed.text, 'html': None}
    if parsed.kind == KIND_PATHWAY and parsed.pathway is not None:
        progress = PathwayProgress(parsed.pathway, DatabaseStorage(user.id), namespace=message.id).load()
        _apply_view_state(progress, message.id)
        view['html'] = render_pathway_html(parsed.pathway, progress,
                                           action_base=f"{request.script_root}/api/pathway/{message.id}")
    elif parsed.kind == KIND_CARD and parsed.card is not None:
        tab = request.args.get('tab') if request.args.get('card') == message.id else None
        tab_href = url_for('chat_page', chat_id=message.chat_id, card=message.id) + '&tab='
        view['html'] = render_card_html(parsed.card, active_tab=tab or CARD_TABS[0], tab_href=tab_href)
    return view


@app.route('/chat/<chat_id>')
def chat_page(chat_id: str) -> Any:
    """Render a chat thread."""
    user = current_user()
    try:
        chat_row = _get_chat(chat_id, user)
    except LookupError:
        abort(404)
    messages = [_message_view(m, user) for m in db.get_messages_by_chat(chat_id)]
    return render_template('chat.html', chat=chat_row, chats=db.get_chats_by_user(user.id),
                           messages=messages, models=providers.chat_models,
                           default_model=providers.DEFAULT_CHAT_MODEL,
                           ai_enabled=providers.client is not None)


# ----------------------------------------------------------------------
# Chat API
# ----------------------------------------------------------------------

@app.route('/api/chat', methods=['POST'])
def api_chat() -> Any:
    """Send a user message and return the assistant's reply."""
    def body() -> Any:
        data = request.get_json(silent=True) or {}
        user_message = data.get('message')
        if not isinstance(user_message, str) or not user_message.strip():
            raise ValueError("'message' is required")
        selected = data.get('selected_chat_model') or providers.DEFAULT_CHAT_MODEL
        if not providers.is_known_model(selected):
            raise ValueError(f"Unknown chat model '{selected}'")

        model = providers.get_model(selected)
        if model is None:
            return _error('AI model is not configured. Please ensure OpenAI credentials are set.', 503)

        user = current_user()
        chat_id = data.get('id')
        chat_row = db.get_chat_by_id(chat_id) if chat_id else None
        if chat_row is None:
            title = chat.generate_title(user_message, providers.get_model(providers.TITLE_MODEL))
            chat_row = db.save_chat(user.id, title, chat_id=chat_id)
        elif chat_row.user_id != user.id:
            raise PermissionError('This chat belongs to another user')

        message, parsed = chat.respond(chat_row.id, user_message, model, selected)
        return jsonify({
            'status': 'success',
            'chat_id': chat_row.id,
            'title': chat_row.title,
            'message': chat.message_payload(message, parsed),
        })
    return _handle(body)


@app.route('/api/chat/<chat_id>/messages')
def api_chat_messages(chat_id: str) -> Any:
    def body() -> Any:
        chat_row = _get_chat(chat_id, current_user())
        return jsonify({
            'status': 'success',
            'chat': {'id': chat_row.id, 'title': chat_row.title, 'visibility': chat_row.visibility},
            'messages': [chat.message_payload(m) for m in db.get_messages_by_chat(chat_id)],
            'votes': db.get_votes_by_chat(chat_id),
        })
    return _handle(body)


@app.route('/api/chat/<chat_id>', methods=['DELETE'])
def api_delete_chat(chat_id: str) -> Any:
    def body() -> Any:
        _get_chat(chat_id, current_user(), write=True)
        db.delete_chat(chat_id)
        return jsonify({'status': 'success', 'chat_id': chat_id})
    return _handle(body)


@app.route('/api/chat/<chat_id>/visibility', methods=['POST'])
def api_chat_visibility(chat_id: str) -> Any:
    def body() -> Any:
        _get_chat(chat_id, current_user(), write=True)
        visibility = _params().get('visibility')
        db.update_chat_visibility(chat_id, str(visibility))
        return jsonify({'status': 'success', 'visibility': visibility})
    return _handle(body)


@app.route('/api/append-message', methods=['POST'])
def api_append_message() -> Any:
    """Append an already produced message to a chat."""
    def body() -> Any:
        data = request.get_json(silent=True) or {}
        message = data.get('message')
        if not isinstance(message, dict):
            raise ValueError("'message' object is required")
        chat_id = message.get('chat_id') or message.get('chatId')
        if not chat_id:
            raise ValueError("'message.chat_id' is required")
        _get_chat(chat_id, current_user(), write=True)
        saved = chat.append_message(chat_id, message.get('role', 'assistant'), message.get('content', ''))
        return jsonify({'messageId': saved.id})
    return _handle(body)


@app.route('/api/vote', methods=['GET', 'POST'])
def api_vote() -> Any:
    def body() -> Any:
        user = current_user()
        if request.method == 'GET':
            chat_id = request.args.get('chatId')
            if not chat_id:
                raise ValueError("'chatId' is required")
            _get_chat(chat_id, user)
            return jsonify(db.get_votes_by_chat(chat_id))

        data = request.get_json(silent=True) or {}
        chat_id, message_id, vote_type = data.get('chatId'), data.get('messageId'), data.get('type')
        if not chat_id or not message_id or vote_type not in ('up', 'down', 'none'):
            raise ValueError("'chatId', 'messageId' and 'type' (up, down or none) are required")
        _get_chat(chat_id, user, write=True)
        if vote_type == 'none':
            db.unvote_message(chat_id, message_id)
        else:
            db.vote_message(chat_id, message_id, vote_type)
        return jsonify({'status': 'success'})
    return _handle(body)


# ----------------------------------------------------------------------
# Pathway progress
# ----------------------------------------------------------------------

def _load_pathway(message_id: str) -> Tuple[db.Message, PathwayProgress]:
    user = current_user()
    message, parsed = chat.find_pathway(message_id)
    _get_chat(message.chat_id, user)
    progress = PathwayProgress(parsed.pathway, DatabaseStorage(user.id), namespace=message.id).load()
    return message, progress


def _apply_level(progress: PathwayProgress, params: Dict[str, Any]) -> None:
    level = params.get('level')
    if level and level != progress.active_level:
        progress.set_active_level(level)


def _pathway_response(message: db.Message, progress: PathwayProgress, **extra: Any) -> Any:
    if _wants_json():
        result = {'status': 'success', 'message_id': message.id, 'progress': progress.snapshot()}
        result.update(extra)
        return jsonify(result)

    query: Dict[str, Any] = {'pathway': message.id, 'level': progress.active_level}
    if progress.expanded_step is not None:
        query['step'] = progress.expanded_step
    if progress.show_celebration:
        query['celebrate'] = 1
    return redirect(url_for('chat_page', chat_id=message.chat_id, **query) + f'#message-{message.id}')


@app.route('/api/pathway/<message_id>/progress')
def api_pathway_progress(message_id: str) -> Any:
    def body() -> Any:
        message, progress = _load_pathway(message_id)
        return jsonify({'status': 'success', 'message_id': message.id, 'progress': progress.snapshot()})
    return _handle(body)


@app.route('/api/pathway/<message_id>/level', methods=['POST'])
def api_pathway_level(message_id: str) -> Any:
    def body() -> Any:
        message, progress = _load_pathway(message_id)
        level = _params().get('level')
        if not level:
            raise ValueError("'level' is required")
        progress.set_active_level(level)
        return _pathway_response(message, progress)
    return _handle(body)


@app.route('/api/pathway/<message_id>/toggle', methods=['POST'])
def api_pathway_toggle(message_id: str) -> Any:
    """Expand or collapse a step; the client sends the currently expanded step."""
    def body() -> Any:
        message, progress = _load_pathway(message_id)
        params = _params()
        _apply_level(progress, params)
        if params.get('expanded') not in (None, ''):
            progress.expanded_step = _int_param(params, 'expanded')
        expanded = progress.toggle_step(_int_param(params, 'step'))
        return _pathway_response(message, progress, expanded_step=expanded)
    return _handle(body)


@app.route('/api/pathway/<message_id>/complete', methods=['POST'])
def api_pathway_complete(message_id: str) -> Any:
    def body() -> Any:
        message, progress = _load_pathway(message_id)
        params = _params()
        _apply_level(progress, params)
        step = _int_param(params, 'step')
        is_new = progress.mark_step_completed(step)
        progress.expanded_step = step
        return _pathway_response(message, progress, is_new_completion=is_new)
    return _handle(body)


@app.route('/api/pathway/<message_id>/quiz', methods=['POST'])
def api_pathway_quiz(message_id: str) -> Any:
    def body() -> Any:
        message, progress = _load_pathway(message_id)
        params = _params()
        _apply_level(progress, params)
        step = _int_param(params, 'step')
        answer = params.get('answer')
        if not isinstance(answer, str):
            raise ValueError("'answer' is required")
        feedback = progress.answer_quiz(step, _int_param(params, 'quiz'), answer)
        progress.expanded_step = step
        return _pathway_response(message, progress, feedback=feedback.to_dict())
    return _handle(body)


@app.route('/api/pathway/<message_id>/reset', methods=['POST'])
def api_pathway_reset(message_id: str) -> Any:
    def body() -> Any:
        message, progress = _load_pathway(message_id)
        progress.reset()
        return _pathway_response(message, progress)
    return _handle(body)


# ----------------------------------------------------------------------
# Roadmaps
# ----------------------------------------------------------------------

@app.route('/api/roadmaps/<message_id>', methods=['POST'])
def api_save_roadmap(message_id: str) -> Any:
    """Save the pathway of a message as a roadmap."""
    def body() -> Any:
        message, parsed = chat.find_pathway(message_id)
        _get_chat(message.chat_id, current_user())
        roadmap_id = db.save_roadmap_from_pathway(parsed.pathway)
        return jsonify({'status': 'success', 'roadmap_id': roadmap_id}), 201
    return _handle(body)


@app.route('/api/roadmaps/<int:roadmap_id>')
def api_get_roadmap(roadmap_id: int) -> Any:
    def body() -> Any:
        roadmap = db.get_roadmap(roadmap_id)
        if roadmap is None:
            raise LookupError('Roadmap not found')
        return jsonify({'status': 'success', 'roadmap': roadmap})
    return _handle(body)


# ----------------------------------------------------------------------
# Models
# ----------------------------------------------------------------------

@app.route('/api/models')
def api_models() -> Any:
    return jsonify({'models': providers.chat_models, 'default': providers.DEFAULT_CHAT_MODEL})


@app.route('/ai_status')
def ai_status() -> Any:
    """AI status."""
    return jsonify({
        'status': 'success',
        'ai_enabled': providers.client is not None,
        'models': dict(providers.MODEL_IDS),
    })


def get_local_ip() -> str:
    """Attempt to determine the local network IP address."""
    import socket
    try:
        # Connect to an external server (doesn't actually send data)
        # to determine the interface used for internet access
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        local_ip = s.getsockname()[0]
        s.close()
        return local_ip
    except Exception:
        return "127.0.0.1"


if __name__ == '__main__':
    import argparse

    parser = argparse.ArgumentParser(description='Learning Cards App')
    parser.add_argument('--host', help='Host IP to bind to (default: auto-detect local IP)')
    parser.add_argument('--port', type=int, default=5000, help='Port to bind to (default: 5000)')
    parser.add_argument('--openai-key', help='OpenAI API Key')
    parser.add_argument('--openrouter-key', help='OpenRouter API Key (overrides OpenAI key)')
    parser.add_argument('--model', help='Provider model name for the default chat model')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode')

    args = parser.parse_args()

    if args.debug:
        DEBUG = True

    # Re-initialize AI if arguments are provided
    if args.openai_key or args.openrouter_key or args.model:
        api_key = args.openrouter_key or args.openai_key
        base_url = providers.OPENROUTER_BASE_URL if args.openrouter_key else None
        overrides: Optional[Dict[str, str]] = {providers.DEFAULT_CHAT_MODEL: args.model} if args.model else None

        providers.init_ai(api_key=api_key, base_url=base_url, model_overrides=overrides)

    # Initialize database
    try:
        if not db.is_db_initialized():
            db.init_db()
            print("✅ Database initialized")
    except Exception as e:
        print(f"❌ Database initialization failed: {str(e)}")

    host = args.host or get_local_ip()
    print(f"🚀 Starting server on http://{host}:{args.port}")
    app.run(debug=DEBUG, host=host, port=args.port)
