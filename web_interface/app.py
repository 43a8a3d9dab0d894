"""
Flask web interface for the Block Grader.

A read-only display surface: the block vocabulary, stored workspaces and
the code generated from them. Nothing here executes learner programs.
"""

import logging
import os
from typing import Any, Dict, List, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from block_grader_core.block_vocabulary import DISPLAY_LANGUAGES, describe_vocabulary
from block_grader_core.code_generator import emit, emit_all, supported_languages
from block_grader_core.config import get_settings
from block_grader_core.exceptions import CodegenError, ParseError, PersistenceError
from block_grader_core.serializer import deserialize
from block_grader_core.storage import SessionStore, open_store
from block_grader_core.workspace import WORKSPACE_KEY_PREFIX

logger = logging.getLogger(__name__)


def _error(message: str, status: int, **extra):
    body: Dict[str, Any] = {'success': False, 'error': message}
    body.update(extra)
    return jsonify(body), status


def _parameters(raw) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        return [p.strip() for p in raw.split(',') if p.strip()]
    return [str(p) for p in raw]


def create_app(store: Optional[SessionStore] = None) -> Flask:
    app = Flask(__name__)
    CORS(app)
    if store is None:
        store = open_store(get_settings().store_path)
    app.config['WORKSPACE_STORE'] = store

    @app.errorhandler(ParseError)
    def handle_parse_error(e):
        return _error(e.message, 400, fragment=e.fragment)

    @app.errorhandler(CodegenError)
    def handle_codegen_error(e):
        return _error(e.message, 422, node_id=e.node_id)

    @app.errorhandler(PersistenceError)
    def handle_persistence_error(e):
        logger.warning("Store unavailable: %s", e)
        return _error(f'Workspace store unavailable: {e.message}', 503)

    def _stored_xml(key: str) -> Optional[str]:
        if not key.startswith(WORKSPACE_KEY_PREFIX + '_'):
            return None
        return store.get(key)

    def _generate(xml: str, language: Optional[str], entry_point: Optional[str],
                  parameters: List[str]):
        graph = deserialize(xml)
        if language is None:
            return emit_all(graph, entry_point, parameters)
        if language not in supported_languages():
            return None
        return emit(graph, language, entry_point, parameters)

    @app.route('/api/blocks', methods=['GET'])
    def get_blocks():
        """Block vocabulary with labels in the requested display language."""
        lang = request.args.get('lang', 'en')
        if lang not in DISPLAY_LANGUAGES:
            return _error(f'Unsupported display language: {lang}', 400)
        return jsonify({
            'success': True,
            'data': describe_vocabulary(lang)
        })

    @app.route('/api/languages', methods=['GET'])
    def get_languages():
        return jsonify({
            'success': True,
            'data': {
                'targets': supported_languages(),
                'display': list(DISPLAY_LANGUAGES),
            }
        })

    @app.route('/api/workspaces', methods=['GET'])
    def list_workspaces():
        """Keys of every stored workspace."""
        keys = [k for k in store.keys() if k.startswith(WORKSPACE_KEY_PREFIX + '_')]
        return jsonify({
            'success': True,
            'data': keys
        })

    @app.route('/api/workspaces/<key>/xml', methods=['GET'])
    def get_workspace_xml(key):
        xml = _stored_xml(key)
        if xml is None:
            return _error(f'No workspace stored under {key}', 404)
        return jsonify({
            'success': True,
            'data': {'key': key, 'xml': xml}
        })

    @app.route('/api/workspaces/<key>/code', methods=['GET'])
    @app.route('/api/workspaces/<key>/code/<language>', methods=['GET'])
    def get_workspace_code(key, language=None):
        """Generated code for a stored workspace, one language or all of them."""
        xml = _stored_xml(key)
        if xml is None:
            return _error(f'No workspace stored under {key}', 404)
        code = _generate(xml, language, request.args.get('entry_point'),
                         _parameters(request.args.get('parameters')))
        if code is None:
            return _error(f'Unsupported target language: {language}', 400)
        return jsonify({
            'success': True,
            'data': {'key': key, 'language': language, 'code': code}
        })

    @app.route('/api/emit', methods=['POST'])
    def emit_code():
        """Translate posted XML. Body: {xml, language?, entry_point?, parameters?}"""
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or not isinstance(data.get('xml'), str):
            return _error('Request body must be JSON with an "xml" string', 400)
        for field in ('language', 'entry_point'):
            if not isinstance(data.get(field), (str, type(None))):
                return _error(f'"{field}" must be a string', 400)
        if not isinstance(data.get('parameters'), (str, list, type(None))):
            return _error('"parameters" must be a list or comma-separated string', 400)
        language = data.get('language')
        code = _generate(data['xml'], language, data.get('entry_point'),
                         _parameters(data.get('parameters')))
        if code is None:
            return _error(f'Unsupported target language: {language}', 400)
        return jsonify({
            'success': True,
            'data': {'language': language, 'code': code}
        })

    return app


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    host = os.environ.get('BLOCKGRADER_HOST', '127.0.0.1')
    port = int(os.environ.get('BLOCKGRADER_PORT', '5002'))
    print(f"Access the interface at: http://localhost:{port}")
    create_app().run(host=host, port=port, debug=os.environ.get('BLOCKGRADER_DEBUG', '0') == '1')
