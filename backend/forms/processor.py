# backend/forms/processor.py
# Form processor: store submission -> map fields -> push to Zoho CRM

import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from core import settings, get_logger, HubError, ValidationFailed
from core.models import FormSubmission, FormConfiguration, LogStatus, Operation, ProcessingStatus, SyncStatus
from core.storage import Storage, storage as default_storage
from crm.client import ZohoCRMClient, crm_client as default_crm_client
from .config_engine import FormConfigEngine, form_config_engine
from .field_mapper import SmartFieldMapper, smart_field_mapper, format_value
from .field_sync import FieldSyncService

logger = get_logger("Form Processor")

SPLIT_NAME = "SPLIT_NAME"


class FormProcessingResult(BaseModel):
    success: bool
    submission_id: Optional[int] = None
    zoho_crm_id: Optional[str] = None
    form_name: str
    processed_fields: List[str] = []
    excluded_fields: List[str] = []
    errors: List[str] = []
    processing_time_ms: int = 0


class PendingRunResult(BaseModel):
    processed: int = 0
    successful: int = 0
    failed: int = 0
    results: List[FormProcessingResult] = []


def split_full_name(full_name: Any) -> Tuple[str, str]:
    """"Jane Q Doe" -> ("Jane", "Q Doe"); one word goes to the last name"""
    if not isinstance(full_name, str) or not full_name.strip():
        return "", ""
    parts = full_name.split()
    if len(parts) == 1:
        return "", parts[0]
    return parts[0], " ".join(parts[1:])


def _elapsed_ms(start: float) -> int:
    return int((time.time() - start) * 1000)


class FormProcessor:
    """Turns a website form post into a Zoho CRM record"""

    def __init__(
        self,
        store: Storage = None,
        engine: FormConfigEngine = None,
        mapper: SmartFieldMapper = None,
        crm: ZohoCRMClient = None,
        field_sync: FieldSyncService = None
    ):
        self.storage = store or default_storage
        self.engine = engine or form_config_engine
        self.mapper = mapper or smart_field_mapper
        self.crm = crm or default_crm_client
        # pushes pass self.crm through, so a swapped client is used for sync too
        self.field_sync = field_sync or FieldSyncService(
            store=self.storage, engine=self.engine, mapper=self.mapper, crm=self.crm
        )

    # ─────────────────────────────────────────────────────────────────────
    # Mapping
    # ─────────────────────────────────────────────────────────────────────

    def build_crm_record(
        self,
        form_data: Dict[str, Any],
        config: FormConfiguration,
        source_url: Optional[str] = None
    ) -> Tuple[Dict[str, Any], List[str]]:
        """-> (crm record, excluded form fields)"""
        filtered = self.engine.filter_form_data_for_zoho(form_data, config)
        excluded = list(filtered.excluded_fields)
        record: Dict[str, Any] = {}

        for mapped in filtered.mapped_fields:
            value = mapped.value
            if value is None or value == "":
                continue

            zoho_field = mapped.zoho_field
            if mapped.form_field == "fullName" and zoho_field == "fullName":
                zoho_field = SPLIT_NAME

            if zoho_field == SPLIT_NAME:
                first, last = split_full_name(value)
                if first:
                    record["First_Name"] = first
                if last:
                    record["Last_Name"] = last
                continue

            # pass-through field: let the smart mapper find the real api name
            if zoho_field == mapped.form_field and mapped.form_field not in config.submit_fields:
                match = self.mapper.find_best_match(mapped.form_field, config.zoho_module)
                if match:
                    zoho_field = match.zoho_field
                elif not self.engine.should_auto_create_fields(config):
                    excluded.append(mapped.form_field)
                    continue

            record[zoho_field] = format_value(value, zoho_field)

        record["Lead_Source"] = filtered.lead_source
        if source_url:
            record["Website"] = source_url
        return record, excluded

    # ─────────────────────────────────────────────────────────────────────
    # Processing
    # ─────────────────────────────────────────────────────────────────────

    async def process_submission(
        self,
        form_name: str,
        form_data: Dict[str, Any],
        source_url: Optional[str] = None
    ) -> FormProcessingResult:
        """
        Store, validate and push one submission

        Validation problems raise ValidationFailed; CRM failures are
        recorded on the submission and returned with success=False.
        """
        start = time.time()
        if not form_data:
            raise ValidationFailed("Submission data must not be empty")

        logger.info(f'Processing form "{form_name}" with {len(form_data)} fields')
        submission = self.storage.create_form_submission(
            form_name=form_name,
            submission_data=form_data,
            source_form=f"Web Form: {form_name}"
        )
        self.storage.create_submission_log(
            submission_id=submission.id,
            operation=Operation.RECEIVED,
            status=LogStatus.SUCCESS,
            details={"field_count": len(form_data), "source_url": source_url}
        )

        try:
            config = self.engine.get_or_create_default_config(form_name)
        except HubError as e:
            self._mark_invalid(submission, e.message)
            raise

        if config.zoho_module != submission.zoho_module:
            submission = self.storage.update_form_submission(submission.id, zoho_module=config.zoho_module)

        check = self.engine.validate_submission_data(form_data, config)
        if not check.valid:
            self._mark_invalid(submission, "; ".join(check.errors))
            raise ValidationFailed("; ".join(check.errors), errors=check.errors)

        return await self._push(submission, config, source_url, start)

    def _mark_invalid(self, submission: FormSubmission, message: str):
        self.storage.update_form_submission(
            submission.id,
            processing_status=ProcessingStatus.FAILED,
            sync_status=SyncStatus.FAILED,
            error_message=message
        )

    async def push_submission(self, submission: FormSubmission) -> FormProcessingResult:
        """Re-push an already stored submission (used by retries)"""
        config = self.engine.get_or_create_default_config(submission.form_name)
        return await self._push(submission, config, None, time.time())

    async def process_pending_submissions(self, submission_ids: List[int] = None) -> PendingRunResult:
        """
        Push stored submissions that were never sent (historical imports)

        Failures are recorded like any other CRM push, so they move on to
        the retry service.
        """
        pending = self.storage.get_form_submissions(
            processing_status=ProcessingStatus.PENDING,
            sync_status=SyncStatus.PENDING
        )
        if submission_ids is not None:
            wanted = set(submission_ids)
            pending = [s for s in pending if s.id in wanted]
        logger.info(f"Found {len(pending)} pending submissions to process")

        run = PendingRunResult(processed=len(pending))
        for submission in pending:
            try:
                result = await self.push_submission(submission)
            except HubError as e:
                self._mark_failed(submission, e.message, 0)
                result = FormProcessingResult(success=False, submission_id=submission.id,
                                              form_name=submission.form_name, errors=[e.message])
            if result.success:
                run.successful += 1
            else:
                run.failed += 1
            run.results.append(result)

        logger.info(f"Pending run complete: {run.successful} synced, {run.failed} failed")
        return run

    async def _push(
        self,
        submission: FormSubmission,
        config: FormConfiguration,
        source_url: Optional[str],
        start: float
    ) -> FormProcessingResult:
        await self.field_sync.sync_submission_fields(submission, config, crm=self.crm)
        record, excluded = self.build_crm_record(submission.submission_data, config, source_url)
        self.storage.update_form_submission(submission.id, processing_status=ProcessingStatus.PROCESSING)
        logger.info(f"Mapped {len(record)} fields for Zoho {config.zoho_module}")

        try:
            created = await self.crm.create_record(config.zoho_module, record)
        except HubError as e:
            logger.error(f'Error processing form "{submission.form_name}": {e.message}')
            self._mark_failed(submission, e.message, _elapsed_ms(start))
            return FormProcessingResult(
                success=False,
                submission_id=submission.id,
                form_name=submission.form_name,
                processed_fields=list(record.keys()),
                excluded_fields=excluded,
                errors=[e.message],
                processing_time_ms=_elapsed_ms(start)
            )

        zoho_id = created.get("id")
        self.storage.update_form_submission(
            submission.id,
            zoho_crm_id=zoho_id,
            processing_status=ProcessingStatus.COMPLETED,
            sync_status=SyncStatus.SYNCED,
            error_message=None,
            next_retry_at=None,
            last_sync_at=datetime.now()
        )
        self.storage.create_submission_log(
            submission_id=submission.id,
            operation=Operation.CRM_PUSH,
            status=LogStatus.SUCCESS,
            details={"zoho_crm_id": zoho_id, "module": config.zoho_module, "fields": list(record.keys())},
            duration=_elapsed_ms(start)
        )
        logger.info(f"CRM record created: {zoho_id}")

        return FormProcessingResult(
            success=True,
            submission_id=submission.id,
            zoho_crm_id=zoho_id,
            form_name=submission.form_name,
            processed_fields=list(record.keys()),
            excluded_fields=excluded,
            processing_time_ms=_elapsed_ms(start)
        )

    def _mark_failed(self, submission: FormSubmission, message: str, duration: int):
        delays = settings.RETRY_DELAYS_SECONDS
        self.storage.update_form_submission(
            submission.id,
            processing_status=ProcessingStatus.FAILED,
            sync_status=SyncStatus.FAILED,
            error_message=message,
            next_retry_at=datetime.now() + timedelta(seconds=delays[0] if delays else 0)
        )
        self.storage.create_submission_log(
            submission_id=submission.id,
            operation=Operation.CRM_PUSH,
            status=LogStatus.FAILED,
            error_message=message,
            duration=duration
        )


# Global instance
form_processor = FormProcessor()
