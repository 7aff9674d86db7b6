"""
GitLab REST client
Fetches projects, pipelines and jobs and parses them into domain records
"""

from typing import Any, Callable, Iterable, List, Optional, Protocol

import requests

from ..models import Job, Pipeline, Project
from .exceptions import DecodeError, NetworkError, NotFound, RateLimited, Unauthorized

DEFAULT_TIMEOUT = 10


class RemoteClient(Protocol):
    """What the dispatcher needs from a CI/CD server.

    Every call returns parsed records or raises a ClientError subclass.
    Implementations are blocking; the dispatcher runs them in worker threads.
    """

    def fetch_projects(self) -> List[Project]:
        ...

    def fetch_pipelines(self, project_id: int) -> List[Pipeline]:
        ...

    def fetch_jobs(self, project_id: int, pipeline_id: int) -> List[Job]:
        ...

    def close(self) -> None:
        ...


def _retry_after(response: requests.Response) -> Optional[float]:
    """Seconds from a numeric Retry-After header, if any"""
    value = response.headers.get('Retry-After')
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _error_message(response: requests.Response) -> str:
    """Pull the error text out of a GitLab error body"""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason or f'HTTP {response.status_code}'
    if isinstance(body, dict):
        for key in ('message', 'error_description', 'error'):
            if body.get(key):
                return str(body[key])
    return str(body)


class GitLabClient:
    """
    Blocking client for the GitLab v4 API

    Example:
        >>> client = GitLabClient('https://gitlab.example.com', token='glpat-...')
        >>> projects = client.fetch_projects()
        >>> pipelines = client.fetch_pipelines(projects[0].id)
    """

    def __init__(
        self,
        server_url: str,
        token: str,
        timeout: float = DEFAULT_TIMEOUT,
        per_page: int = 20,
        pipelines_per_project: int = 10,
        favorites: Iterable = (),
    ):
        server_url = server_url.rstrip('/')
        if not server_url.endswith('/api/v4'):
            server_url = f'{server_url}/api/v4'
        self.api_url = server_url
        self.timeout = timeout
        self.per_page = per_page
        self.pipelines_per_project = pipelines_per_project
        self.favorites = tuple(favorites)
        self.session = requests.Session()
        self.session.headers['PRIVATE-TOKEN'] = token
        self.session.headers['Accept'] = 'application/json'

    def fetch_projects(self) -> List[Project]:
        """Projects the token's user is a member of, most recently active first"""
        payload = self._request('GET', '/projects', params={
            'membership': 'true',
            'order_by': 'last_activity_at',
            'sort': 'desc',
            'per_page': self.per_page,
        })
        return self._parse(payload, lambda item: Project.from_api(item, self.favorites))

    def fetch_pipelines(self, project_id: int) -> List[Pipeline]:
        """Most recent pipelines of a project"""
        payload = self._request('GET', f'/projects/{project_id}/pipelines', params={
            'order_by': 'id',
            'sort': 'desc',
            'per_page': self.pipelines_per_project,
        })
        return self._parse(payload, Pipeline.from_api)

    def fetch_jobs(self, project_id: int, pipeline_id: int) -> List[Job]:
        """Jobs and trigger (bridge) jobs of a pipeline, ordered by id

        Job ids grow with stage order, so sorting by id keeps the pipeline's
        stage sequence.
        """
        base = f'/projects/{project_id}/pipelines/{pipeline_id}'
        jobs = self._parse(
            self._request('GET', f'{base}/jobs', params={'per_page': 100}),
            lambda item: Job.from_api(item, pipeline_id),
        )
        bridges = self._parse(
            self._request('GET', f'{base}/bridges', params={'per_page': 100}),
            lambda item: Job.from_api(item, pipeline_id),
        )
        return sorted(jobs + bridges, key=lambda job: job.id)

    def _parse(self, payload: Any, build: Callable[[dict], Any]) -> list:
        if not isinstance(payload, list):
            raise DecodeError(f'Expected a JSON list, got {type(payload).__name__}')
        try:
            return [build(item) for item in payload]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DecodeError(f'Malformed record in response: {e!r}') from e

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
    ) -> Any:
        """Make HTTP request to API and map failures onto ClientError types"""
        url = f'{self.api_url}{path}'

        try:
            response = self.session.request(method, url, params=params, timeout=self.timeout)
        except requests.Timeout as e:
            raise NetworkError(f'Request to {url} timed out after {self.timeout}s') from e
        except requests.RequestException as e:
            raise NetworkError(f'Request to {url} failed: {e}') from e

        status = response.status_code
        if status in (401, 403):
            raise Unauthorized(_error_message(response), status_code=status)
        if status == 404:
            raise NotFound(f'{path}: {_error_message(response)}')
        if status == 429:
            raise RateLimited(_error_message(response), retry_after=_retry_after(response))
        if status >= 400:
            raise NetworkError(f'{method} {path} failed with HTTP {status}: {_error_message(response)}')

        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f'Response from {path} is not JSON') from e

    def close(self):
        """Close the session"""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
