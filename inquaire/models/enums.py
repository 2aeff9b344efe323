from enum import Enum


class Platform(str, Enum):
    KAKAO = "KAKAO"
    LINE = "LINE"
    NAVER_TALK = "NAVER_TALK"
    INSTAGRAM = "INSTAGRAM"
    WEB_CHAT = "WEB_CHAT"


class IndustryType(str, Enum):
    HOSPITAL = "HOSPITAL"
    DENTAL = "DENTAL"
    DERMATOLOGY = "DERMATOLOGY"
    PLASTIC_SURGERY = "PLASTIC_SURGERY"
    REAL_ESTATE = "REAL_ESTATE"
    BEAUTY_SALON = "BEAUTY_SALON"
    ACADEMY = "ACADEMY"
    LAW_FIRM = "LAW_FIRM"
    OTHER = "OTHER"


class InquiryStatus(str, Enum):
    NEW = "NEW"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ON_HOLD = "ON_HOLD"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class Urgency(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
