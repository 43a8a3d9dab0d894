"""
Client for the external challenges/submissions API.

The API wraps every response as ``{"success", "message", "code", "data"}``.
Only transport concerns live here; a failure never touches local state.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import requests

from .config import get_settings
from .exceptions import SubmissionTransportError
from .execution_engine import RunReport, TestResult

logger = logging.getLogger(__name__)


@dataclass
class SubmissionPayload:
    challenge_id: Any
    xml: str
    status: str
    score: float
    time_spent: int
    test_results: List[TestResult] = field(default_factory=list)

    @classmethod
    def from_report(cls, challenge_id, xml: str, report: RunReport,
                    time_spent: int) -> 'SubmissionPayload':
        return cls(challenge_id, xml, report.status, report.score, time_spent,
                   list(report.results))

    def to_wire(self) -> Dict[str, Any]:
        return {
            'challenge_id': self.challenge_id,
            'xml': self.xml,
            'status': self.status,
            'score': self.score,
            'time_spent': self.time_spent,
            'test_results': [
                {
                    'test_case_id': result.test_case.id,
                    'passed': result.passed,
                    'output': result.output_json(),
                    'console_output': result.console_text,
                }
                for result in self.test_results
            ],
        }


class SubmissionsClient:
    """Talks to ``{base_url}/challenges`` and ``{base_url}/submissions``."""

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None,
                 timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        settings = get_settings()
        self.base_url = (base_url if base_url is not None else settings.submissions_url).rstrip('/')
        self.token = token if token is not None else settings.api_token
        self.timeout = timeout if timeout is not None else settings.http_timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {'Accept': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def _request(self, method: str, path: str, body: Optional[dict] = None) -> Any:
        if not self.base_url:
            raise SubmissionTransportError('Submissions API URL is not configured')
        url = f'{self.base_url}/{path}'
        try:
            resp = self.session.request(method, url, json=body, headers=self._headers(),
                                        timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise SubmissionTransportError(f'Could not reach submissions API: {e}')

        try:
            data = resp.json()
        except ValueError:
            data = None

        if not 200 <= resp.status_code < 300:
            message = data.get('message') if isinstance(data, dict) else None
            raise SubmissionTransportError(
                message or f'Submissions API returned HTTP {resp.status_code}',
                resp.status_code,
                {'errors': data.get('errors') if isinstance(data, dict) else None},
            )
        if not isinstance(data, dict) or 'data' not in data:
            raise SubmissionTransportError('Submissions API returned an unexpected body',
                                           resp.status_code)
        return data['data']

    def submit(self, payload: SubmissionPayload) -> Any:
        """POST the payload and return the new submission's id."""
        data = self._request('POST', 'submissions', payload.to_wire())
        submission_id = data.get('id') if isinstance(data, dict) else None
        if submission_id is None:
            raise SubmissionTransportError('Submission response carried no id')
        logger.info("Submitted challenge %s: id=%s status=%s score=%s",
                    payload.challenge_id, submission_id, payload.status, payload.score)
        return submission_id

    def get_submission(self, submission_id) -> Dict[str, Any]:
        return self._request('GET', f'submissions/{submission_id}')

    def list_submissions(self, challenge_slug: str) -> Sequence[Dict[str, Any]]:
        return self._request('GET', f'challenges/{challenge_slug}/submissions')

    def get_challenge(self, challenge_slug: str) -> Dict[str, Any]:
        return self._request('GET', f'challenges/{challenge_slug}')
