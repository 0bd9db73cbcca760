import aiohttp
import asyncio
import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from app.client.recovery import LocalRecoveryStore
from app.utils.file_utils import PDF_DATA_URI_PREFIX

logger = logging.getLogger(__name__)

MB = 1024 * 1024
CHUNK_DATA_URI_PREFIX = "data:application/octet-stream;base64,"

@dataclass(frozen=True)
class EmergencyEndpoint:
    path: str
    timeout: float
    strip_heavy: bool = False

# most capable first; later tiers get longer timeouts and lighter payloads
EMERGENCY_ENDPOINTS: Tuple[EmergencyEndpoint, ...] = (
    EmergencyEndpoint("/submissions/emergency", 5.0),
    EmergencyEndpoint("/exams/submit", 10.0),
    EmergencyEndpoint("/submissions/simplified", 15.0, strip_heavy=True),
    EmergencyEndpoint("/submissions/ultra-simple", 20.0, strip_heavy=True),
)
HEAVY_FIELD = "imageData"

class UploadError(Exception):
    def __init__(self, message: str, status: Optional[int] = None):
        self.message = message
        self.status = status
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.status is None or self.status >= 500 or self.status == 408

@dataclass
class SubmissionOutcome:
    success: bool
    tier: str
    submission_id: Optional[str] = None
    recovered_locally: bool = False
    degraded_reason: Optional[str] = None
    recovery_path: Optional[str] = None
    response: Dict[str, Any] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

def cdn_timeout(size: int) -> float:
    """30s plus 10s per MB, capped at two minutes"""
    return min(30.0 + 10.0 * size / MB, 120.0)

class SubmissionUploader:
    """
    Client side of the submission pipeline. Walks a fixed cascade until one
    path records the work: external CDN, chunked upload, single-shot submit,
    the streamlined retry endpoint, the emergency endpoints, and finally a
    local recovery file.
    """

    def __init__(
        self,
        base_url: str,
        session_id: Optional[str] = None,
        recovery_store: Optional[LocalRecoveryStore] = None,
        use_cdn: bool = True,
        chunk_threshold: int = 5 * MB,
        chunk_size: int = 1 * MB,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        max_parallel_chunks: int = 3,
        request_timeout: float = 45.0
    ):
        self.base_url = base_url.rstrip('/')
        self.session_id = session_id
        self.recovery_store = recovery_store
        self.use_cdn = use_cdn
        self.chunk_threshold = chunk_threshold
        self.chunk_size = chunk_size
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.max_parallel_chunks = max_parallel_chunks
        self.request_timeout = request_timeout

    async def _post_json(self, path: str, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        cookies = {"session_id": self.session_id} if self.session_id else None
        try:
            async with aiohttp.ClientSession(cookies=cookies, timeout=aiohttp.ClientTimeout(total=timeout)) as session:
                async with session.post(url, json=payload) as response:
                    try:
                        body = await response.json(content_type=None)
                    except ValueError:
                        body = {}
                    if response.status >= 400:
                        message = body.get("message") if isinstance(body, dict) else None
                        raise UploadError(message or f"Server error: {response.status}", response.status)
                    return body if isinstance(body, dict) else {}
        except asyncio.TimeoutError:
            raise UploadError(f"Request to {path} timed out after {timeout:g}s")
        except aiohttp.ClientError as e:
            raise UploadError(f"Network error calling {path}: {str(e)}")

    async def _with_retries(self, label: str, call, *args) -> Dict[str, Any]:
        """Retry transient failures with exponential backoff; client errors are final"""
        for attempt in range(self.max_retries):
            try:
                return await call(*args)
            except UploadError as e:
                if not e.retryable or attempt == self.max_retries - 1:
                    raise
                wait = self.retry_delay * (2 ** attempt)
                logger.warning(f"{label} attempt {attempt + 1}/{self.max_retries} failed: {e.message}; retrying in {wait:g}s")
                await asyncio.sleep(wait)
        raise UploadError(f"{label} failed")

    # ------------------------------------------------------------------

    async def upload_external(self, pdf: bytes, exam_id: str, file_name: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post_json("/upload-pdf/buffer", {
            "pdfBuffer": list(pdf),
            "fileName": file_name,
            "examId": exam_id,
            "metadata": metadata
        }, timeout=cdn_timeout(len(pdf)))

    async def upload_chunked(
        self,
        pdf: bytes,
        exam_id: str,
        student_name: str,
        student_id: Optional[str],
        file_name: str
    ) -> Dict[str, Any]:
        chunks = [pdf[offset:offset + self.chunk_size] for offset in range(0, len(pdf), self.chunk_size)]
        init = await self._with_retries("chunk-init", self._post_json, "/submissions/chunk-init", {
            "examId": exam_id,
            "totalChunks": len(chunks),
            "fileName": file_name,
            "studentName": student_name,
            "studentId": student_id
        }, self.request_timeout)
        submission_id = init["submissionId"]
        logger.info(f"Chunked upload {submission_id} started with {len(chunks)} chunks")

        semaphore = asyncio.Semaphore(self.max_parallel_chunks)

        async def send(index: int, chunk: bytes) -> bool:
            payload = {
                "submissionId": submission_id,
                "chunkIndex": index,
                "totalChunks": len(chunks),
                "pdfData": CHUNK_DATA_URI_PREFIX + base64.b64encode(chunk).decode("ascii"),
                "examId": exam_id,
                "studentName": student_name,
                "studentId": student_id
            }
            async with semaphore:
                try:
                    await self._with_retries(f"chunk {index}", self._post_json, "/submissions/chunk", payload, self.request_timeout)
                    return True
                except UploadError as e:
                    logger.error(f"Chunk {index} of {submission_id} not delivered: {e.message}")
                    return False

        delivered = await asyncio.gather(*(send(i, chunk) for i, chunk in enumerate(chunks)))
        if not any(delivered):
            raise UploadError("No chunks could be delivered")

        # finalize is never retried; a degraded completion is still a completion
        return await self._post_json("/submissions/chunk-finalize", {
            "submissionId": submission_id,
            "examId": exam_id,
            "totalChunks": len(chunks)
        }, timeout=120.0)

    async def submit_single_shot(
        self,
        pdf: bytes,
        exam_id: str,
        student_name: str,
        student_id: Optional[str]
    ) -> Dict[str, Any]:
        payload = {
            "examId": exam_id,
            "studentName": student_name,
            "studentId": student_id,
            "pdfData": PDF_DATA_URI_PREFIX + base64.b64encode(pdf).decode("ascii")
        }
        return await self._with_retries("single-shot", self._post_json, "/submissions", payload, self.request_timeout)

    async def submit_retry(self, pdf: bytes, exam_id: str, student_name: str, file_name: str) -> Dict[str, Any]:
        return await self._post_json("/submissions/retry", {
            "examId": exam_id,
            "studentName": student_name,
            "fileName": file_name,
            "pdfData": PDF_DATA_URI_PREFIX + base64.b64encode(pdf).decode("ascii")
        }, timeout=self.request_timeout)

    async def submit_emergency(self, payload: Dict[str, Any], errors: List[str]) -> Optional[Tuple[str, Dict[str, Any]]]:
        for endpoint in EMERGENCY_ENDPOINTS:
            body = dict(payload)
            if endpoint.strip_heavy:
                body.pop(HEAVY_FIELD, None)
            try:
                logger.info(f"Trying emergency endpoint: {endpoint.path}")
                response = await self._post_json(endpoint.path, body, timeout=endpoint.timeout)
                return endpoint.path, response
            except UploadError as e:
                logger.error(f"Failed emergency submission to {endpoint.path}: {e.message}")
                errors.append(f"{endpoint.path}: {e.message}")
        return None

    # ------------------------------------------------------------------

    async def submit(
        self,
        pdf: bytes,
        exam_id: str,
        student_name: str,
        student_id: Optional[str] = None,
        file_name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        screenshot: Optional[str] = None
    ) -> SubmissionOutcome:
        errors: List[str] = []
        file_name = file_name or f"{exam_id}_{student_id or 'student'}.pdf"
        metadata = dict(metadata or {})

        attempts = []
        if self.use_cdn:
            attempts.append(("external-cdn", lambda: self.upload_external(
                pdf, exam_id, file_name, {**metadata, "studentName": student_name})))
        if len(pdf) > self.chunk_threshold:
            attempts.append(("chunked", lambda: self.upload_chunked(
                pdf, exam_id, student_name, student_id, file_name)))
        attempts.append(("single-shot", lambda: self.submit_single_shot(
            pdf, exam_id, student_name, student_id)))
        attempts.append(("retry", lambda: self.submit_retry(
            pdf, exam_id, student_name, file_name)))

        for tier, attempt in attempts:
            try:
                response = await attempt()
            except UploadError as e:
                logger.error(f"{tier} submission failed: {e.message}")
                errors.append(f"{tier}: {e.message}")
                if e.status == 409:
                    # the exam is already on record; more fallbacks would only add noise
                    return SubmissionOutcome(success=True, tier="already-submitted", errors=errors)
                continue
            submission_id = response.get("submissionId") or (response.get("submission") or {}).get("id")
            logger.info(f"Submission recorded via {tier}: {submission_id}")
            return SubmissionOutcome(
                success=True,
                tier=tier,
                submission_id=submission_id,
                degraded_reason=response.get("degradedReason"),
                response=response,
                errors=errors
            )

        emergency_payload = {
            "examId": exam_id,
            "studentName": student_name,
            "studentId": student_id,
            "fileName": file_name,
            **metadata,
            "isEmergency": True,
            "forcedComplete": True,
            "errorStatus": errors[-1] if errors else None
        }
        if screenshot:
            emergency_payload[HEAVY_FIELD] = screenshot

        result = await self.submit_emergency(emergency_payload, errors)
        if result is not None:
            path, response = result
            return SubmissionOutcome(
                success=True,
                tier=path,
                submission_id=response.get("submissionId"),
                degraded_reason="emergency submission",
                response=response,
                errors=errors
            )

        if self.recovery_store is not None:
            try:
                saved = await self.recovery_store.save(exam_id, {
                    **emergency_payload,
                    "pdfData": PDF_DATA_URI_PREFIX + base64.b64encode(pdf).decode("ascii"),
                    "errors": errors
                })
                return SubmissionOutcome(
                    success=True,
                    tier="local-recovery",
                    recovered_locally=True,
                    recovery_path=saved,
                    degraded_reason="saved locally for manual recovery",
                    errors=errors
                )
            except Exception as e:
                logger.error(f"Failed to save emergency data locally: {str(e)}")
                errors.append(f"local-recovery: {str(e)}")

        return SubmissionOutcome(success=False, tier="none", errors=errors)
