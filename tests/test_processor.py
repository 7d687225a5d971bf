# tests/test_processor.py
# Form processor + retry service tests

from datetime import datetime, timedelta

import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from core import ValidationFailed, HubError
from core.models import LogStatus, Operation, ProcessingStatus, SyncStatus
from core.storage import MemStorage
from forms.config_engine import FormConfigEngine
from forms.field_mapper import SmartFieldMapper
from forms.processor import FormProcessor, split_full_name
from forms.retry import RetryService


def build_processor(store, crm) -> FormProcessor:
    return FormProcessor(
        store=store,
        engine=FormConfigEngine(store=store, cache_seconds=300),
        mapper=SmartFieldMapper(store=store, cache_seconds=300),
        crm=crm
    )


class TestSplitFullName:

    def test_split(self):
        assert split_full_name("Jane Q Doe") == ("Jane", "Q Doe")
        assert split_full_name("Cher") == ("", "Cher")
        assert split_full_name("  ") == ("", "")
        assert split_full_name(None) == ("", "")


class TestFormProcessor:
    """process_submission"""

    def setup_method(self):
        self.store = MemStorage()

    @pytest.mark.asyncio
    async def test_configured_form(self, fake_crm, membership_config):
        processor = build_processor(self.store, fake_crm)
        processor.engine.create_form_configuration(**membership_config)

        result = await processor.process_submission(
            "Join CAS Today",
            {"fullName": "Jane Q Doe", "email": "jane@example.com", "communicationConsent": "Yes", "extra": "x"},
            source_url="https://amyloid.ca/join"
        )

        assert result.success is True
        assert result.zoho_crm_id == "5001"
        assert result.excluded_fields == ["extra"]

        module, record = fake_crm.created[0]
        assert module == "Leads"
        assert record == {
            "First_Name": "Jane",
            "Last_Name": "Q Doe",
            "Email": "jane@example.com",
            "Email_Opt_In": True,
            "Lead_Source": "Website - CAS Membership",
            "Website": "https://amyloid.ca/join"
        }

        submission = self.store.get_form_submission(result.submission_id)
        assert submission.processing_status == ProcessingStatus.COMPLETED
        assert submission.sync_status == SyncStatus.SYNCED
        assert submission.zoho_crm_id == "5001"
        assert [log.operation for log in self.store.get_submission_logs(submission.id)] == [
            Operation.RECEIVED, Operation.CRM_PUSH
        ]

    @pytest.mark.asyncio
    async def test_unconfigured_form_gets_default_config(self, fake_crm):
        processor = build_processor(self.store, fake_crm)

        result = await processor.process_submission(
            "Quick Poll", {"fullName": "Cher", "emailAddress": "cher@example.com", "favourite": "ATTR"}
        )

        assert result.success is True
        assert self.store.get_form_configuration("Quick Poll") is not None
        _, record = fake_crm.created[0]
        assert record["Last_Name"] == "Cher"
        assert record["Email"] == "cher@example.com"
        assert record["favourite"] == "ATTR"
        assert record["Lead_Source"] == "Form: Quick Poll"

    @pytest.mark.asyncio
    async def test_passthrough_dropped_without_auto_create(self, fake_crm):
        processor = build_processor(self.store, fake_crm)
        processor.engine.create_form_configuration(form_name="Survey", auto_create_fields=False)

        result = await processor.process_submission("Survey", {"email": "a@b.com", "zzqqxx": "?"})

        _, record = fake_crm.created[0]
        assert "zzqqxx" not in record
        assert "zzqqxx" in result.excluded_fields

    @pytest.mark.asyncio
    async def test_empty_submission(self, fake_crm):
        processor = build_processor(self.store, fake_crm)

        with pytest.raises(ValidationFailed):
            await processor.process_submission("Survey", {})
        assert self.store.get_form_submissions() == []

    @pytest.mark.asyncio
    async def test_missing_required_fields(self, fake_crm, membership_config):
        processor = build_processor(self.store, fake_crm)
        processor.engine.create_form_configuration(**membership_config)

        with pytest.raises(ValidationFailed) as exc:
            await processor.process_submission("Join CAS Today", {"fullName": "Jane Doe"})

        assert "email" in exc.value.message
        submission = self.store.get_form_submissions()[0]
        assert submission.processing_status == ProcessingStatus.FAILED
        assert fake_crm.created == []

    @pytest.mark.asyncio
    async def test_crm_failure_is_recorded(self, fake_crm):
        fake_crm.fail_with = "Zoho API Error 400: INVALID_DATA"
        processor = build_processor(self.store, fake_crm)

        before = datetime.now()
        result = await processor.process_submission("Survey", {"email": "a@b.com"})

        assert result.success is False
        assert result.errors == ["Zoho API Error 400: INVALID_DATA"]
        submission = self.store.get_form_submission(result.submission_id)
        assert submission.processing_status == ProcessingStatus.FAILED
        assert submission.sync_status == SyncStatus.FAILED
        assert submission.next_retry_at >= before
        push_log = self.store.get_submission_logs(submission.id)[-1]
        assert push_log.operation == Operation.CRM_PUSH
        assert push_log.status == LogStatus.FAILED


class TestRetryService:
    """Bounded retries"""

    def setup_method(self):
        self.store = MemStorage()

    async def _failed_submission(self, processor, fake_crm):
        fake_crm.fail_with = "Zoho unavailable"
        result = await processor.process_submission("Survey", {"email": "a@b.com"})
        fake_crm.fail_with = None
        return result.submission_id

    @pytest.mark.asyncio
    async def test_retry_succeeds(self, fake_crm):
        processor = build_processor(self.store, fake_crm)
        service = RetryService(store=self.store, processor=processor, max_retries=3, delays=[5, 15, 60])
        submission_id = await self._failed_submission(processor, fake_crm)

        result = await service.retry_submission(submission_id)

        assert result.success is True
        assert result.retry_count == 1
        submission = self.store.get_form_submission(submission_id)
        assert submission.sync_status == SyncStatus.SYNCED
        assert submission.last_retry_at is not None

    @pytest.mark.asyncio
    async def test_retry_failure_schedules_next(self, fake_crm):
        processor = build_processor(self.store, fake_crm)
        service = RetryService(store=self.store, processor=processor, max_retries=3, delays=[5, 15, 60])
        submission_id = await self._failed_submission(processor, fake_crm)
        fake_crm.fail_with = "still down"

        result = await service.retry_submission(submission_id)

        assert result.success is False
        assert result.error_message == "still down"
        submission = self.store.get_form_submission(submission_id)
        assert submission.retry_count == 1
        assert submission.next_retry_at > datetime.now() + timedelta(seconds=10)

    @pytest.mark.asyncio
    async def test_max_retries(self, fake_crm):
        processor = build_processor(self.store, fake_crm)
        service = RetryService(store=self.store, processor=processor, max_retries=2, delays=[0])
        submission_id = await self._failed_submission(processor, fake_crm)
        fake_crm.fail_with = "still down"

        await service.retry_submission(submission_id)
        await service.retry_submission(submission_id)
        result = await service.retry_submission(submission_id)

        assert result.success is False
        assert result.error_message == "Max retries (2) reached"
        assert result.retry_count == 2
        assert self.store.get_form_submission(submission_id).next_retry_at is None

    @pytest.mark.asyncio
    async def test_unknown_submission(self, fake_crm):
        service = RetryService(store=self.store, processor=build_processor(self.store, fake_crm))

        with pytest.raises(HubError):
            await service.retry_submission(404)

    def test_next_delay(self, fake_crm):
        service = RetryService(store=self.store, processor=build_processor(self.store, fake_crm), delays=[5, 15, 60])

        assert [service.next_delay(n) for n in range(5)] == [5, 15, 60, 60, 60]

    @pytest.mark.asyncio
    async def test_retry_all_failed(self, fake_crm):
        processor = build_processor(self.store, fake_crm)
        service = RetryService(store=self.store, processor=processor, max_retries=3, delays=[0])
        first = await self._failed_submission(processor, fake_crm)
        await self._failed_submission(processor, fake_crm)
        self.store.update_form_submission(first, retry_count=3)

        stats = await service.retry_all_failed()

        assert stats.total_retried == 1
        assert stats.successful == 1
        assert service.is_processing is False

    @pytest.mark.asyncio
    async def test_only_one_bulk_run(self, fake_crm):
        service = RetryService(store=self.store, processor=build_processor(self.store, fake_crm))
        service.is_processing = True

        with pytest.raises(HubError):
            await service.retry_all_failed()

    @pytest.mark.asyncio
    async def test_due_retries(self, fake_crm):
        processor = build_processor(self.store, fake_crm)
        service = RetryService(store=self.store, processor=processor, max_retries=3, delays=[0])
        due = await self._failed_submission(processor, fake_crm)
        later = await self._failed_submission(processor, fake_crm)
        self.store.update_form_submission(later, next_retry_at=datetime.now() + timedelta(hours=1))

        assert [s.id for s in service.get_due_submissions(datetime.now() + timedelta(minutes=1))] == [due]

        stats = await service.process_due_retries(datetime.now() + timedelta(minutes=1))
        assert stats.total_retried == 1

    @pytest.mark.asyncio
    async def test_statistics(self, fake_crm):
        processor = build_processor(self.store, fake_crm)
        service = RetryService(store=self.store, processor=processor, max_retries=3, delays=[0])
        submission_id = await self._failed_submission(processor, fake_crm)
        fake_crm.fail_with = "still down"
        await service.retry_submission(submission_id)

        stats = service.get_retry_statistics()

        assert stats["failed_submissions"] == 1
        assert stats["eligible_for_retry"] == 1
        assert stats["total_retry_attempts"] == 1
        assert stats["successful_retries"] == 0
        assert stats["recent_retries"][0]["submission_id"] == submission_id


class TestSubmissionOrdering:

    def setup_method(self):
        self.store = MemStorage()

    @pytest.mark.asyncio
    async def test_stored_before_config_lookup(self, fake_crm):
        processor = build_processor(self.store, fake_crm)

        with pytest.raises(ValidationFailed):
            await processor.process_submission("", {"email": "a@b.com"})

        submission = self.store.get_form_submissions()[0]
        assert submission.processing_status == ProcessingStatus.FAILED
        assert submission.error_message
        assert self.store.get_submission_logs(submission.id)[0].operation == Operation.RECEIVED
        assert fake_crm.created == []

    @pytest.mark.asyncio
    async def test_submission_takes_configured_module(self, fake_crm):
        processor = build_processor(self.store, fake_crm)
        processor.engine.create_form_configuration(form_name="Clinic Intake", zoho_module="Contacts")

        result = await processor.process_submission("Clinic Intake", {"email": "a@b.com"})

        assert self.store.get_form_submission(result.submission_id).zoho_module == "Contacts"
        assert fake_crm.created[0][0] == "Contacts"


class TestFieldSync:
    """Zoho field metadata + custom field creation on push"""

    def setup_method(self):
        self.store = MemStorage()

    @pytest.mark.asyncio
    async def test_metadata_feeds_mapper(self, fake_crm):
        fake_crm.fields = [
            {"api_name": "Amyloidosis_Type", "field_label": "Amyloidosis Type", "data_type": "picklist",
             "custom_field": True, "pick_list_values": [{"actual_value": "ATTR"}, {"actual_value": "AL"}]},
            {"api_name": "Email", "field_label": "Email", "data_type": "email", "system_mandatory": False}
        ]
        processor = build_processor(self.store, fake_crm)

        result = await processor.process_submission("Quick Poll", {"email": "a@b.com", "amyloidosisType": "ATTR"})

        assert result.success is True
        _, record = fake_crm.created[0]
        assert record["Amyloidosis_Type"] == "ATTR"
        assert fake_crm.created_fields == []

        cached = {f.field_api_name: f for f in self.store.get_field_metadata("Leads")}
        assert cached["Amyloidosis_Type"].data_type == "picklist"
        assert cached["Amyloidosis_Type"].picklist_values == ["ATTR", "AL"]
        assert cached["Amyloidosis_Type"].is_custom_field is True

    @pytest.mark.asyncio
    async def test_unmatched_field_is_created(self, fake_crm):
        processor = build_processor(self.store, fake_crm)

        result = await processor.process_submission(
            "Quick Poll", {"email": "a@b.com", "Areas of interest": ["research", "support groups"]}
        )

        module, request = fake_crm.created_fields[0]
        assert module == "Leads"
        assert request["api_name"] == "areasOfInterest"
        assert request["field_label"] == "Areas of interest"
        assert request["data_type"] == "multiselectpicklist"
        assert [p["actual_value"] for p in request["pick_list_values"]] == ["research", "support groups"]

        _, record = fake_crm.created[0]
        assert record["areasOfInterest"] == "research;support groups"
        assert "Areas of interest" not in record

        logs = self.store.get_submission_logs(result.submission_id)
        assert [log.operation for log in logs] == [Operation.RECEIVED, Operation.FIELD_SYNC, Operation.CRM_PUSH]
        assert logs[1].details["created"] == ["areasOfInterest"]

    @pytest.mark.asyncio
    async def test_text_field_length(self, fake_crm):
        processor = build_processor(self.store, fake_crm)

        await processor.process_submission("Quick Poll", {"email": "a@b.com", "referrer": "Dr. Smith"})

        _, request = fake_crm.created_fields[0]
        assert request["data_type"] == "text"
        assert request["length"] == 50

    @pytest.mark.asyncio
    async def test_no_creation_without_auto_create(self, fake_crm):
        processor = build_processor(self.store, fake_crm)
        processor.engine.create_form_configuration(form_name="Survey", auto_create_fields=False)

        await processor.process_submission("Survey", {"email": "a@b.com", "referrer": "Dr. Smith"})

        assert fake_crm.created_fields == []

    @pytest.mark.asyncio
    async def test_creation_failure_does_not_block_push(self, fake_crm):
        fake_crm.field_error = "Zoho API Error 400: LIMIT_EXCEEDED"
        processor = build_processor(self.store, fake_crm)

        result = await processor.process_submission("Quick Poll", {"email": "a@b.com", "referrer": "Dr. Smith"})

        assert result.success is True
        sync_log = self.store.get_submission_logs(result.submission_id)[1]
        assert sync_log.operation == Operation.FIELD_SYNC
        assert sync_log.status == LogStatus.FAILED
        assert "LIMIT_EXCEEDED" in sync_log.error_message

    @pytest.mark.asyncio
    async def test_metadata_refresh_is_cached(self, fake_crm):
        calls = []
        fetch = fake_crm.get_module_fields

        async def counting(module):
            calls.append(module)
            return await fetch(module)

        fake_crm.get_module_fields = counting
        processor = build_processor(self.store, fake_crm)

        await processor.process_submission("Survey", {"email": "a@b.com"})
        await processor.process_submission("Survey", {"email": "b@c.com"})

        assert calls == ["Leads"]


class TestPendingSubmissions:
    """Stored-but-never-pushed submissions (historical imports)"""

    def setup_method(self):
        self.store = MemStorage()

    def _pending(self, **data):
        return self.store.create_form_submission(
            form_name="Join CANN Today",
            submission_data=data,
            source_form="Historical Import - CANN Contacts"
        )

    @pytest.mark.asyncio
    async def test_pending_are_pushed(self, fake_crm):
        processor = build_processor(self.store, fake_crm)
        first = self._pending(fullName="Jane Doe", email="jane@example.com")
        second = self._pending(fullName="Sam Lee", email="sam@example.com")

        run = await processor.process_pending_submissions()

        assert (run.processed, run.successful, run.failed) == (2, 2, 0)
        assert [r["Email"] for _, r in fake_crm.created] == ["jane@example.com", "sam@example.com"]
        for submission_id in (first.id, second.id):
            submission = self.store.get_form_submission(submission_id)
            assert submission.sync_status == SyncStatus.SYNCED
            assert submission.zoho_crm_id is not None

        again = await processor.process_pending_submissions()
        assert again.processed == 0

    @pytest.mark.asyncio
    async def test_only_selected_ids(self, fake_crm):
        processor = build_processor(self.store, fake_crm)
        self._pending(email="jane@example.com")
        chosen = self._pending(email="sam@example.com")

        run = await processor.process_pending_submissions([chosen.id])

        assert run.processed == 1
        assert fake_crm.created[0][1]["Email"] == "sam@example.com"

    @pytest.mark.asyncio
    async def test_failures_move_to_retry(self, fake_crm):
        fake_crm.fail_with = "Zoho unavailable"
        processor = build_processor(self.store, fake_crm)
        submission = self._pending(email="jane@example.com")

        run = await processor.process_pending_submissions()

        assert run.failed == 1
        service = RetryService(store=self.store, processor=processor, max_retries=3, delays=[0])
        fake_crm.fail_with = None
        stats = await service.retry_all_failed()
        assert stats.successful == 1
        assert self.store.get_form_submission(submission.id).sync_status == SyncStatus.SYNCED
