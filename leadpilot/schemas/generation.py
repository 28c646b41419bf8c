"""Content generation request schemas, one per cache namespace."""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class TitlesRequest(BaseModel):
    """Listing title generation."""

    transaction_type: Literal["sale", "rent", "short_rent"] = "sale"
    property_type: Literal["house", "apartment", "villa", "commercial", "land", "office"]
    location: str = Field(min_length=2, max_length=150)
    price: Optional[str] = Field(default=None, max_length=50)
    surface: Optional[str] = Field(default=None, max_length=50)
    rooms: Optional[str] = Field(default=None, max_length=20)
    key_points: str = Field(min_length=10, max_length=1000)
    tone: Literal["professional", "emotional", "luxury"] = "professional"


class HashtagsRequest(BaseModel):
    """Social hashtag generation."""

    property_type: str = Field(min_length=3, max_length=100)
    location: str = Field(min_length=2, max_length=150)
    strengths: str = Field(min_length=10, max_length=500)
    price: str = Field(min_length=1, max_length=50)
    tone: Literal["professional", "emotional", "luxury", "viral"] = "professional"
    market: Literal["italy", "usa"] = "italy"


class TranslateRequest(BaseModel):
    """Listing translation."""

    title: str = Field(min_length=5, max_length=200)
    description: str = Field(min_length=20, max_length=5000)
    features: Optional[str] = Field(default=None, max_length=1000)
    target_language: Literal["en", "it", "es", "fr", "de", "pt", "nl", "ru", "zh", "ar"]
    tone: Literal["standard", "luxury"] = "standard"


GENERATION_REQUESTS = {
    "titles": TitlesRequest,
    "hashtags": HashtagsRequest,
    "translate": TranslateRequest,
}
