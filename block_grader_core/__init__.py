"""
Block Grader Core - build programs from visual blocks and grade them against test cases.

This package holds the block graph model and its Blockly-XML form, the
workspace persistence manager, code emitters for Python, JavaScript and PHP,
the execution harness and the timed-attempt session controller.
"""

__version__ = "0.1.0"
__author__ = "Block Grader Development Team"

from .exceptions import (
    BlockGraderError, ValidationError, ParseError, CodegenError, RuntimeFault,
    InvocationTimeout, PersistenceError, SubmissionTransportError, SessionStateError,
    HarnessBusyError,
)
from .block_vocabulary import NodeKind, BlockSpec, get_block_spec, block_types, describe_vocabulary
from .models import BlockNode, BlockGraph
from .serializer import serialize, deserialize, EMPTY_DOCUMENT

# Language generators
from .code_generator import BlockCodeGenerator, emit, emit_all, supported_languages
from .python_generator import PythonGenerator
from .js_generator import JavaScriptGenerator
from .php_generator import PHPGenerator

from .execution_engine import (
    ExecutionHarness, ExecutionResult, TestCase, TestResult, RunReport, Outcome, deep_equals,
)
from .storage import SessionStore, MemoryStore, JsonFileStore, SqliteStore, open_store
from .workspace import (
    WorkspaceManager, WorkspaceMode, HeadlessEditor, EditorBridge, EditorEventType,
    workspace_key,
)
from .session_timer import SessionController, SessionState, format_elapsed, parse_elapsed
from .submissions import SubmissionsClient, SubmissionPayload
from .challenge import Challenge, ChallengeWorkbench, Playground, open_review

__all__ = [
    # Errors
    'BlockGraderError', 'ValidationError', 'ParseError', 'CodegenError', 'RuntimeFault',
    'InvocationTimeout', 'PersistenceError', 'SubmissionTransportError', 'SessionStateError',
    'HarnessBusyError',

    # Model
    'NodeKind', 'BlockSpec', 'get_block_spec', 'block_types', 'describe_vocabulary',
    'BlockNode', 'BlockGraph', 'serialize', 'deserialize', 'EMPTY_DOCUMENT',

    # Code generation
    'BlockCodeGenerator', 'emit', 'emit_all', 'supported_languages',
    'PythonGenerator', 'JavaScriptGenerator', 'PHPGenerator',

    # Execution
    'ExecutionHarness', 'ExecutionResult', 'TestCase', 'TestResult', 'RunReport', 'Outcome',
    'deep_equals',

    # Persistence and sessions
    'SessionStore', 'MemoryStore', 'JsonFileStore', 'SqliteStore', 'open_store',
    'WorkspaceManager', 'WorkspaceMode', 'HeadlessEditor', 'EditorBridge', 'EditorEventType',
    'workspace_key', 'SessionController', 'SessionState', 'format_elapsed', 'parse_elapsed',

    # Orchestration
    'SubmissionsClient', 'SubmissionPayload', 'Challenge', 'ChallengeWorkbench', 'Playground',
    'open_review',
]
