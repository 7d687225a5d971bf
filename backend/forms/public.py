# backend/forms/public.py
# Public website forms: contact, newsletter, membership application

import re
import time
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from core import settings, get_logger, ConfigurationError, ValidationFailed
from core.models import LogStatus, Operation, ProcessingStatus
from core.storage import Storage, storage as default_storage
from crm.campaigns import ZohoCampaignsClient, campaigns_client as default_campaigns_client
from .processor import FormProcessor, form_processor

logger = get_logger("Public Forms")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SPAM_KEYWORDS = ("viagra", "lottery", "winner", "bitcoin", "crypto", "investment opportunity")
CAPTCHA_PREFIX = "captcha_"

CONTACT_FORM = "Contact Form"
MEMBERSHIP_FORM = "Membership Application"


def reference_id() -> str:
    """CAS-<epoch ms>"""
    return f"CAS-{int(time.time() * 1000)}"


def _check_email(v: str) -> str:
    if not EMAIL_RE.match(v or ""):
        raise ValueError("Invalid email address")
    return v


Email = Annotated[str, AfterValidator(_check_email)]


class _FormModel(BaseModel):
    # browser posts camelCase; snake_case accepted too
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ContactRequest(_FormModel):
    name: str = Field(min_length=2)
    email: Email
    organization: Optional[str] = None
    inquiry_type: str = Field(min_length=1)
    subject: str = Field(min_length=5)
    message: str = Field(min_length=20)
    privacy_consent: bool
    captcha_token: str = Field(min_length=1)

    @field_validator("privacy_consent")
    @classmethod
    def _consent_given(cls, v: bool) -> bool:
        if v is not True:
            raise ValueError("Privacy consent is required")
        return v


class NewsletterRequest(_FormModel):
    email: Email
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    list_key: Optional[str] = None


class MembershipType(str, Enum):
    INDIVIDUAL = "individual"
    FAMILY = "family"
    PROFESSIONAL = "professional"
    CORPORATE = "corporate"
    STUDENT = "student"


class Experience(str, Enum):
    PATIENT = "patient"
    CAREGIVER = "caregiver"
    HEALTHCARE = "healthcare"
    RESEARCHER = "researcher"
    ADVOCATE = "advocate"
    OTHER = "other"


class MembershipApplication(_FormModel):
    first_name: str = Field(min_length=2)
    last_name: str = Field(min_length=2)
    email: Email
    phone: str = Field(min_length=10)
    address: str = Field(min_length=5)
    city: str = Field(min_length=2)
    province: str = Field(min_length=2)
    postal_code: str = Field(min_length=6)
    membership_type: MembershipType
    interests: List[str] = Field(min_length=1)
    experience: Experience
    how_heard: str = Field(min_length=1)
    additional_info: Optional[str] = None
    newsletter: bool = True
    terms: bool

    @field_validator("terms")
    @classmethod
    def _terms_accepted(cls, v: bool) -> bool:
        if v is not True:
            raise ValueError("Terms and conditions must be accepted")
        return v


def parse_form(model: type, payload: Dict[str, Any]):
    """Validate a raw body, turning pydantic errors into ValidationFailed"""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" if err["loc"] else err["msg"]
            for err in e.errors()
        ]
        raise ValidationFailed("Validation error", errors=errors)


def is_spam(subject: str, message: str) -> bool:
    text = f"{subject} {message}".lower()
    return any(keyword in text for keyword in SPAM_KEYWORDS)


class PublicFormService:

    def __init__(
        self,
        store: Storage = None,
        processor: FormProcessor = None,
        campaigns: ZohoCampaignsClient = None
    ):
        self.storage = store or default_storage
        self.processor = processor or form_processor
        self.campaigns = campaigns or default_campaigns_client

    def submit_contact(self, contact: ContactRequest, client_ip: str) -> Dict[str, Any]:
        if is_spam(contact.subject, contact.message):
            logger.warning(f"Contact message from {client_ip} flagged as spam")
            raise ValidationFailed(
                "Message content flagged for review. "
                "Please contact us directly if this is a legitimate inquiry."
            )
        if not contact.captcha_token.startswith(CAPTCHA_PREFIX):
            raise ValidationFailed("Invalid security verification. Please complete the CAPTCHA.")

        ref = reference_id()
        data = contact.model_dump(exclude={"captcha_token"})
        data["privacy_consent_timestamp"] = datetime.now().isoformat()

        submission = self.storage.create_form_submission(
            form_name=CONTACT_FORM,
            submission_data=data,
            source_form=f"Web Form: {CONTACT_FORM}",
            processing_status=ProcessingStatus.COMPLETED
        )
        self.storage.create_submission_log(
            submission_id=submission.id,
            operation=Operation.RECEIVED,
            status=LogStatus.SUCCESS,
            details={"reference_id": ref, "client_ip": client_ip, "inquiry_type": contact.inquiry_type}
        )
        logger.info(f"Contact form submission received ({ref}, {contact.inquiry_type})")

        return {
            "message": "Contact form submitted successfully",
            "timestamp": datetime.now().isoformat(),
            "reference_id": ref
        }

    async def subscribe_newsletter(self, request: NewsletterRequest) -> Dict[str, Any]:
        list_key = request.list_key or settings.NEWSLETTER_LIST_KEY
        if not list_key:
            raise ConfigurationError("Newsletter list is not configured")

        contact = {"email": request.email}
        if request.first_name:
            contact["firstName"] = request.first_name
        if request.last_name:
            contact["lastName"] = request.last_name

        result = await self.campaigns.add_subscriber(list_key, contact)
        logger.info("Newsletter subscriber added")
        return {"success": True, "message": "Subscribed to newsletter", "result": result}

    async def submit_membership(self, application: MembershipApplication) -> Dict[str, Any]:
        data = application.model_dump(by_alias=True, mode="json")
        result = await self.processor.process_submission(MEMBERSHIP_FORM, data)

        logger.info(f"Membership application received ({application.membership_type.value})")
        return {
            "message": "Membership application submitted successfully",
            "membership_id": reference_id(),
            "submission_id": result.submission_id,
            "synced": result.success
        }


# Global instance
public_forms = PublicFormService()
