from inquaire.schemas.inquiry import InquiryStats, InquiryStatusResponse, InquiryStatusUpdate
from inquaire.schemas.webhook import WebhookResponse

__all__ = ["WebhookResponse", "InquiryStats", "InquiryStatusUpdate", "InquiryStatusResponse"]
