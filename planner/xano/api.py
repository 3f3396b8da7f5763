import time
import requests
from typing import Optional, Dict, List, Any
from requests.exceptions import ConnectionError, Timeout, RequestException
from urllib3.exceptions import ProtocolError

from planner.logging_config import get_logger
from planner.xano.exceptions import XanoAPIError, XanoUnauthorizedError

logger = get_logger(__name__)


class XanoAPI:
    """Xano connection layer utilizing a requests session for bearer auth and error mapping."""

    UNAUTHORIZED_STATUS_CODES = (401, 419, 440)
    UNAUTHORIZED_ERROR_CODE = "ERROR_CODE_UNAUTHORIZED"

    def __init__(self, base_url, auth_group, api_group, jobs_group,
                 token: Optional[str] = None, team_id: Optional[str] = None, timeout: int = 60):
        if not all([base_url, auth_group, api_group, jobs_group]):
            raise ValueError("Missing Xano configuration")

        self.base_url = base_url.rstrip("/")
        self.groups = {
            "auth": auth_group,
            "api": api_group,
            "jobs": jobs_group,
        }
        self.token = token
        self.team_id = team_id
        self.timeout = timeout

        # Reusable HTTP session
        self.session = requests.Session()

    def set_token(self, token: Optional[str]):
        self.token = token

    def _update_auth_header(self):
        '''Adds the Authorization and X-Team-Id headers to the session'''
        self.session.headers.update({"Content-Type": "application/json"})
        if self.token:
            self.session.headers["Authorization"] = f"Bearer {self.token}"
        else:
            self.session.headers.pop("Authorization", None)
        if self.team_id:
            self.session.headers["X-Team-Id"] = str(self.team_id)
        else:
            self.session.headers.pop("X-Team-Id", None)

    def _url(self, endpoint: str, group: str) -> str:
        return f"{self.base_url}/{self.groups[group]}{endpoint}"

    @staticmethod
    def _error_body(response) -> Dict:
        try:
            body = response.json()
        except ValueError:
            return {"message": "Request failed"}
        return body if isinstance(body, dict) else {"message": str(body)}

    def _raise_for_response(self, response, method: str, endpoint: str):
        body = self._error_body(response)
        message = body.get("message") or f"HTTP {response.status_code}"

        if (response.status_code in self.UNAUTHORIZED_STATUS_CODES
                or body.get("code") == self.UNAUTHORIZED_ERROR_CODE):
            logger.warning("Xano rejected auth token", method=method, endpoint=endpoint,
                           status_code=response.status_code)
            raise XanoUnauthorizedError(message, status_code=response.status_code, payload=body)

        logger.error("Xano request failed", method=method, endpoint=endpoint,
                     status_code=response.status_code, message=message)
        raise XanoAPIError(message, status_code=response.status_code, payload=body)

    def _request(self, method: str, endpoint: str, group: str = "api",
                 max_retries: int = 3, retry_delay: float = 1.0, **kwargs):
        """
        Make a request with retry logic for connection errors.

        Args:
            method: HTTP method
            endpoint: API endpoint (path within the API group)
            group: Xano API group key ('auth', 'api' or 'jobs')
            max_retries: Maximum number of attempts for connection errors
            retry_delay: Initial delay between retries (exponential backoff)
            **kwargs: Additional arguments for requests
        """
        self._update_auth_header()
        url = self._url(endpoint, group)

        for attempt in range(max_retries):
            try:
                r = self.session.request(method, url, timeout=self.timeout, **kwargs)
            except (ConnectionError, ProtocolError, Timeout) as e:
                # Connection errors - retry with exponential backoff
                if attempt < max_retries - 1:
                    wait_time = retry_delay * (2 ** attempt)
                    logger.warning("Xano connection error, retrying", endpoint=endpoint,
                                   attempt=attempt + 1, wait_seconds=wait_time, error=str(e))
                    time.sleep(wait_time)
                    continue
                raise XanoAPIError(
                    f"Connection error after {max_retries} attempts: {str(e)}"
                ) from e
            except RequestException as e:
                # Other request exceptions - don't retry
                raise XanoAPIError(f"Request to Xano failed: {str(e)}") from e

            if not r.ok:
                self._raise_for_response(r, method, endpoint)
            return r.json() if r.text else None

    def _get(self, endpoint: str, params: Optional[Dict] = None, group: str = "api"):
        return self._request("GET", endpoint, group=group, params=params)

    def _post(self, endpoint: str, data: Any, group: str = "api"):
        return self._request("POST", endpoint, group=group, json=data)

    def _patch(self, endpoint: str, data: Dict, group: str = "api"):
        return self._request("PATCH", endpoint, group=group, json=data)

    def _delete(self, endpoint: str, group: str = "api"):
        return self._request("DELETE", endpoint, group=group)

    @staticmethod
    def _as_list(response) -> List[Dict]:
        # Paged Xano endpoints return {"items": [...]}
        if isinstance(response, list):
            return response
        if isinstance(response, dict):
            for key in ("items", "data"):
                if key in response:
                    return response[key] or []
        return []

    # -------------------------
    # Auth
    # -------------------------
    def login(self, email: str, password: str) -> Dict:
        """Log in and keep the returned authToken on this client."""
        data = self._post("/auth/login", {"email": email, "password": password}, group="auth")
        if data and data.get("authToken"):
            self.set_token(data["authToken"])
        return data

    def signup(self, email: str, password: str, admin: bool = False) -> Dict:
        return self._post("/auth/signup", {"email": email, "password": password, "admin": admin}, group="auth")

    def get_me(self) -> Dict:
        return self._get("/auth/me", group="auth")

    # -------------------------
    # Machines
    # -------------------------
    def get_machines(self, status: Optional[str] = None, facilities_id: Optional[int] = None) -> List[Dict]:
        params = {"status": status or ""}
        if facilities_id and facilities_id > 0:
            params["facilities_id"] = facilities_id
        return self._as_list(self._get("/machines", params=params))

    def get_machine(self, machine_id: int) -> Dict:
        return self._get(f"/machines/{machine_id}")

    def create_machine(self, data: Dict) -> Dict:
        return self._post("/machines", data)

    def update_machine(self, machine_id: int, data: Dict) -> Dict:
        return self._patch(f"/machines/{machine_id}", data)

    def delete_machine(self, machine_id: int):
        return self._delete(f"/machines/{machine_id}")

    def get_machine_groups(self, process_type_key: Optional[str] = None) -> List[Dict]:
        params = {"process_type_key": process_type_key} if process_type_key else None
        return self._as_list(self._get("/machine_groups", params=params))

    # -------------------------
    # Machine rules
    # -------------------------
    def get_machine_rules(self, process_type_key: Optional[str] = None, machine_id: Optional[int] = None,
                          active_only: bool = False) -> List[Dict]:
        params = {}
        if process_type_key:
            params["process_type_key"] = process_type_key
        if machine_id is not None:
            params["machine_id"] = machine_id
        if active_only:
            params["active"] = "true"
        return self._as_list(self._get("/machine_rules", params=params or None))

    def create_machine_rule(self, data: Dict) -> Dict:
        return self._post("/machine_rules", data)

    def update_machine_rule(self, rule_id: int, data: Dict) -> Dict:
        return self._patch(f"/machine_rules/{rule_id}", data)

    def delete_machine_rule(self, rule_id: int):
        return self._delete(f"/machine_rules/{rule_id}")

    # -------------------------
    # Jobs
    # -------------------------
    def get_jobs(self, facilities_id: Optional[int] = None) -> List[Dict]:
        params = {"facilities_id": facilities_id} if facilities_id else None
        return self._as_list(self._get("/jobs", params=params, group="jobs"))

    def get_job(self, job_id: int) -> Dict:
        return self._get(f"/jobs/{job_id}", group="jobs")

    def create_job(self, data: Dict) -> Dict:
        return self._post("/jobs", data, group="jobs")

    def update_job(self, job_id: int, data: Dict) -> Dict:
        return self._patch(f"/jobs/{job_id}", data, group="jobs")

    def delete_job(self, job_id: int):
        return self._delete(f"/jobs/{job_id}", group="jobs")

    # -------------------------
    # Production entries
    # -------------------------
    def get_production_entries(self, facilities_id: Optional[int] = None,
                               start_date: Optional[int] = None, end_date: Optional[int] = None) -> List[Dict]:
        params = {}
        if facilities_id:
            params["facilities_id"] = facilities_id
        if start_date is not None:
            params["start_date"] = start_date
        if end_date is not None:
            params["end_date"] = end_date
        return self._as_list(self._get("/production_entry", params=params or None))

    def create_production_entry(self, data: Dict) -> Dict:
        return self._post("/production_entry", data)

    def batch_create_production_entries(self, entries: List[Dict]) -> List[Dict]:
        return self._as_list(self._post("/production_entry/batch", {"entries": entries}))

    def update_production_entry(self, entry_id: int, data: Dict) -> Dict:
        return self._patch(f"/production_entry/{entry_id}", data)

    def delete_production_entry(self, entry_id: int):
        return self._delete(f"/production_entry/{entry_id}")

    # -------------------------
    # Job cost entries
    # -------------------------
    def get_job_cost_entries(self, facilities_id: Optional[int] = None,
                             start_date: Optional[int] = None, end_date: Optional[int] = None) -> List[Dict]:
        params = {}
        if facilities_id:
            params["facilities_id"] = facilities_id
        if start_date is not None:
            params["start_date"] = start_date
        if end_date is not None:
            params["end_date"] = end_date
        return self._as_list(self._get("/job_cost_entry", params=params or None))

    def create_job_cost_entry(self, data: Dict) -> Dict:
        return self._post("/job_cost_entry", data)

    def update_job_cost_entry(self, entry_id: int, data: Dict) -> Dict:
        return self._patch(f"/job_cost_entry/{entry_id}", data)

    def delete_job_cost_entry(self, entry_id: int):
        return self._delete(f"/job_cost_entry/{entry_id}")

    # -------------------------
    # Job notes
    # -------------------------
    def get_job_notes(self) -> List[Dict]:
        return self._as_list(self._get("/job_notes"))

    def create_job_note(self, data: Dict) -> Dict:
        return self._post("/job_notes", data)

    def update_job_note(self, note_id: int, data: Dict) -> Dict:
        return self._patch(f"/job_notes/{note_id}", data)

    def delete_job_note(self, note_id: int):
        return self._delete(f"/job_notes/{note_id}")
