"""Client for the durable execution backend that runs the ingestion state machine."""

import logging
import time
from typing import Optional

import httpx
from pydantic import BaseModel

from docrag.core.config import settings
from docrag.core.exceptions import WorkflowError

logger = logging.getLogger(__name__)


class ExecutionResult(BaseModel):
    """Outcome of a synchronous state-machine execution."""

    status: str
    error: Optional[str] = None
    cause: Optional[str] = None


class WorkflowClient:
    """Starts synchronous executions over HTTP."""

    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"

    def __init__(
        self,
        base_url: Optional[str] = None,
        state_machine: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = (base_url or settings.workflow_url or "").rstrip("/")
        self.state_machine = state_machine or settings.state_machine_name
        # Outlive the state machine's own timeout so it reports TIMED_OUT first
        self.client = client or httpx.AsyncClient(
            timeout=settings.workflow_timeout_seconds + settings.workflow_client_timeout_margin_seconds)

    async def close(self) -> None:
        await self.client.aclose()

    async def start_sync_execution(self, bucket: str, key: str, document_id: str) -> ExecutionResult:
        """
        Run the ingestion state machine to completion.

        A client-side timeout is also reported as TIMED_OUT. That is best
        effort: the remote execution may still finish afterwards and write
        COMPLETED over the FAILED status recorded for it.

        Args:
            bucket: Bucket holding the upload.
            key: Object key of the upload.
            document_id: Document to ingest.

        Returns:
            Execution status with error details for failed runs.

        Raises:
            WorkflowError: If the backend cannot be reached or answers badly.
        """
        body = {
            "stateMachine": self.state_machine,
            "name": f"ingest-{document_id}-{int(time.time() * 1000)}",
            "input": {"bucket": bucket, "key": key, "documentId": document_id},
        }
        try:
            response = await self.client.post(f"{self.base_url}/executions/sync", json=body)
            response.raise_for_status()
            return ExecutionResult.model_validate(response.json())
        except httpx.TimeoutException:
            logger.warning(f"Execution for document {document_id} timed out client-side")
            return ExecutionResult(status=self.TIMED_OUT, error="ClientTimeout")
        except Exception as e:
            raise WorkflowError(f"Failed to run state machine: {str(e)}") from e
