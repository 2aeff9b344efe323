from inquaire.models.analysis_job import AnalysisJob
from inquaire.models.business import Business
from inquaire.models.channel import Channel
from inquaire.models.customer import Customer
from inquaire.models.enums import IndustryType, InquiryStatus, Platform, Sentiment, Urgency
from inquaire.models.error_log import ErrorLog
from inquaire.models.industry_config import IndustryConfig
from inquaire.models.inquiry import Inquiry
from inquaire.models.webhook_event import WebhookEvent

__all__ = [
    "Business",
    "Channel",
    "IndustryConfig",
    "Customer",
    "Inquiry",
    "AnalysisJob",
    "WebhookEvent",
    "ErrorLog",
    "Platform",
    "IndustryType",
    "InquiryStatus",
    "Sentiment",
    "Urgency",
]
