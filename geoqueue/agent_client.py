"""
Agent side of the claim protocol.

Typical loop::

    client = ProcessingAgentClient(SERVER_BASE, API_KEY)
    while True:
        job = client.next_job()
        if job:
            ...run the geometry pipeline...
            client.report_result(job["id"], True, files={"print": ("part.gcode", fh)})
        time.sleep(5)

Do not retry report_result after a success reached the server: a second
report for the same job is rejected.
"""
import base64
import logging
from typing import BinaryIO, Mapping, Optional, Union

import requests

logger = logging.getLogger(__name__)

FileArg = tuple[str, Union[bytes, BinaryIO]]


class ProcessingAgentClient:
    def __init__(self, base_url: str, api_key: str, timeout: float = 10, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers["Authorization"] = f"Bearer {api_key}"

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/geometry-processing/{path}"

    def _check(self, r: requests.Response, action: str) -> None:
        if not r.ok:
            logger.warning("%s failed with HTTP %s: %s", action, r.status_code, r.text[:200])
        r.raise_for_status()

    def next_job(self) -> Optional[dict]:
        """Claims the next job, or None when the queue is empty."""
        r = self.session.get(self._url("next-job"), timeout=self.timeout)
        if r.status_code == 204:
            return None
        self._check(r, "next-job")
        job = r.json()
        logger.info("Claimed job %s (%s)", job.get("id"), job.get("short_id"))
        return job

    def mark_started(self, job_id: int) -> dict:
        r = self.session.post(self._url("mark-started"), json={"job_id": job_id}, timeout=self.timeout)
        self._check(r, f"mark-started for job {job_id}")
        return r.json()

    def report_result(
        self,
        job_id: int,
        succeeded: bool,
        log: Optional[str] = None,
        error_message: Optional[str] = None,
        files: Optional[Mapping[str, FileArg]] = None,
    ) -> dict:
        """Multipart upload; files maps slot ("geometry" | "print") to (filename, bytes or file)."""
        data = {"job_id": str(job_id), "succeeded": "true" if succeeded else "false"}
        if log is not None:
            data["log"] = log
        if error_message is not None:
            data["error_message"] = error_message

        parts = {f"{slot}_file": (name, content) for slot, (name, content) in (files or {}).items()}

        r = self.session.post(self._url("result"), data=data, files=parts or None, timeout=self.timeout)
        self._check(r, f"result for job {job_id}")
        return r.json()

    def report_result_legacy(
        self,
        job_id: int,
        succeeded: bool,
        log: Optional[str] = None,
        error_message: Optional[str] = None,
        files: Optional[Mapping[str, tuple[str, bytes]]] = None,
    ) -> dict:
        """Base64 JSON body, for older agents. Server caps each file size."""
        body = {
            "job_id": job_id,
            "succeeded": succeeded,
            "log": log,
            "error_message": error_message,
        }
        for slot, (name, content) in (files or {}).items():
            body[f"{slot}_file_name"] = name
            body[f"{slot}_file_contents"] = base64.b64encode(content).decode("ascii")

        r = self.session.post(self._url("result"), json=body, timeout=self.timeout)
        self._check(r, f"legacy result for job {job_id}")
        return r.json()
