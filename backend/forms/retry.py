# backend/forms/retry.py
# Retry service for submissions whose CRM push failed

import asyncio
import time
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from pydantic import BaseModel

from core import settings, get_logger, HubError
from core.models import FormSubmission, LogStatus, Operation, ProcessingStatus, SyncStatus
from core.storage import Storage, storage as default_storage
from .processor import FormProcessor, form_processor

logger = get_logger("Retry")


class RetryResult(BaseModel):
    submission_id: int
    success: bool
    retry_count: int
    error_message: Optional[str] = None
    final_status: str


class RetryStats(BaseModel):
    total_retried: int = 0
    successful: int = 0
    failed: int = 0
    max_retries_reached: int = 0
    average_retry_count: float = 0.0


class RetryService:
    """Bounded retries: RETRY_MAX_ATTEMPTS attempts, RETRY_DELAYS_SECONDS apart"""

    def __init__(
        self,
        store: Storage = None,
        processor: FormProcessor = None,
        max_retries: int = None,
        delays: List[int] = None,
        pause_seconds: float = 0
    ):
        self.storage = store or default_storage
        self.processor = processor or form_processor
        self.max_retries = max_retries if max_retries is not None else settings.RETRY_MAX_ATTEMPTS
        self.delays = delays if delays is not None else settings.RETRY_DELAYS_SECONDS
        self.pause_seconds = pause_seconds
        self.is_processing = False

    @property
    def max_retries_message(self) -> str:
        return f"Max retries ({self.max_retries}) reached"

    def next_delay(self, retry_count: int) -> int:
        if not self.delays:
            return 0
        return self.delays[min(retry_count, len(self.delays) - 1)]

    async def retry_submission(self, submission_id: int) -> RetryResult:
        start = time.time()
        submission = self.storage.get_form_submission(submission_id)
        if not submission:
            raise HubError(f"Submission {submission_id} not found")

        if submission.retry_count >= self.max_retries:
            logger.info(f"Submission {submission_id} has reached max retries ({self.max_retries})")
            self.storage.update_form_submission(
                submission_id,
                processing_status=ProcessingStatus.FAILED,
                sync_status=SyncStatus.FAILED,
                error_message=self.max_retries_message,
                next_retry_at=None
            )
            return RetryResult(
                submission_id=submission_id,
                success=False,
                retry_count=submission.retry_count,
                error_message=self.max_retries_message,
                final_status=ProcessingStatus.FAILED.value
            )

        attempt = submission.retry_count + 1
        submission = self.storage.update_form_submission(
            submission_id,
            retry_count=attempt,
            last_retry_at=datetime.now(),
            processing_status=ProcessingStatus.PROCESSING,
            error_message=None
        )
        self.storage.create_submission_log(
            submission_id=submission_id,
            operation=Operation.RETRY_ATTEMPT,
            status=LogStatus.IN_PROGRESS,
            details={"attempt": attempt, "max_retries": self.max_retries}
        )
        logger.info(f"Retry attempt {attempt}/{self.max_retries} for submission {submission_id}")

        result = await self.processor.push_submission(submission)
        duration = int((time.time() - start) * 1000)

        if result.success:
            self.storage.create_submission_log(
                submission_id=submission_id,
                operation=Operation.RETRY_ATTEMPT,
                status=LogStatus.SUCCESS,
                details={"attempt": attempt},
                duration=duration
            )
            logger.info(f"Successfully retried submission {submission_id} on attempt {attempt}")
            return RetryResult(
                submission_id=submission_id,
                success=True,
                retry_count=attempt,
                final_status=ProcessingStatus.COMPLETED.value
            )

        error = "; ".join(result.errors) or "CRM push failed"
        self.storage.update_form_submission(
            submission_id,
            processing_status=ProcessingStatus.FAILED,
            sync_status=SyncStatus.FAILED,
            error_message=error,
            next_retry_at=datetime.now() + timedelta(seconds=self.next_delay(attempt))
        )
        self.storage.create_submission_log(
            submission_id=submission_id,
            operation=Operation.RETRY_ATTEMPT,
            status=LogStatus.FAILED,
            details={"attempt": attempt, "error": error},
            error_message=error,
            duration=duration
        )
        logger.error(f"Retry failed for submission {submission_id} on attempt {attempt}: {error}")
        return RetryResult(
            submission_id=submission_id,
            success=False,
            retry_count=attempt,
            error_message=error,
            final_status=ProcessingStatus.FAILED.value
        )

    def _failed_submissions(self) -> List[FormSubmission]:
        return self.storage.get_form_submissions(
            processing_status=ProcessingStatus.FAILED,
            sync_status=SyncStatus.FAILED
        )

    async def _retry_many(self, submissions: List[FormSubmission]) -> RetryStats:
        if self.is_processing:
            raise HubError("Retry process is already running")

        self.is_processing = True
        try:
            results: List[RetryResult] = []
            stats = RetryStats()
            for submission in submissions:
                if results and self.pause_seconds:
                    await asyncio.sleep(self.pause_seconds)

                result = await self.retry_submission(submission.id)
                results.append(result)
                if result.success:
                    stats.successful += 1
                elif result.error_message == self.max_retries_message:
                    stats.max_retries_reached += 1
                else:
                    stats.failed += 1

            stats.total_retried = len(results)
            if results:
                stats.average_retry_count = sum(r.retry_count for r in results) / len(results)
            logger.info(f"Bulk retry completed: {stats.model_dump()}")
            return stats
        finally:
            self.is_processing = False

    async def retry_all_failed(self) -> RetryStats:
        failed = self._failed_submissions()
        eligible = [s for s in failed if s.retry_count < self.max_retries]
        logger.info(f"Found {len(eligible)} eligible submissions for retry out of {len(failed)} total failed")
        return await self._retry_many(eligible)

    def get_due_submissions(self, now: datetime = None) -> List[FormSubmission]:
        now = now or datetime.now()
        return [
            s for s in self._failed_submissions()
            if s.retry_count < self.max_retries and s.next_retry_at and s.next_retry_at <= now
        ]

    async def process_due_retries(self, now: datetime = None) -> RetryStats:
        """Retry only submissions whose backoff has elapsed"""
        return await self._retry_many(self.get_due_submissions(now))

    def get_retry_statistics(self) -> Dict:
        failed = self._failed_submissions()
        retry_logs = self.storage.get_submission_logs_by_operation(Operation.RETRY_ATTEMPT)
        recent = sorted(
            (s for s in failed if s.retry_count > 0),
            key=lambda s: s.updated_at,
            reverse=True
        )[:20]

        return {
            "failed_submissions": len(failed),
            "eligible_for_retry": len([s for s in failed if s.retry_count < self.max_retries]),
            "max_retries_reached": len([s for s in failed if s.retry_count >= self.max_retries]),
            "total_retry_attempts": len([l for l in retry_logs if l.status != LogStatus.IN_PROGRESS]),
            "successful_retries": len([l for l in retry_logs if l.status == LogStatus.SUCCESS]),
            "recent_retries": [
                {
                    "submission_id": s.id,
                    "retry_count": s.retry_count,
                    "last_retry_at": s.last_retry_at.isoformat() if s.last_retry_at else None,
                    "next_retry_at": s.next_retry_at.isoformat() if s.next_retry_at else None,
                    "status": s.processing_status.value
                }
                for s in recent
            ],
            "is_processing": self.is_processing
        }


# Global instance
retry_service = RetryService()
