from beanie import Document, Indexed
from pydantic import Field
from datetime import datetime, timezone
from typing import Dict, List, Union

from app.constants import Language


class SurveyResponse(Document):
    """استجابة استبيان محفوظة في MongoDB (لا تُعدَّل بعد الإنشاء)."""

    language: Language
    answers: Dict[str, Union[str, List[str]]]
    submittedAt: Indexed(datetime) = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "survey_responses"
