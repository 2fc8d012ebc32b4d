from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, List, Dict, Literal, Union

from app.constants import (
    ChatMessageType,
    Language,
    PostCategory,
    PostStatus,
    QuestionKind,
    SURVEY_QUESTIONS,
    MAX_CHOICE_LENGTH,
    MAX_TEXT_ANSWER_LENGTH,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


AnswerValue = Union[str, List[str]]

# -------------------- Stored records (shared by both backends) --------------------


class SurveyRecord(BaseModel):
    """استجابة استبيان واحدة كما تُخزَّن في MongoDB أو ملف JSON."""

    id: str
    language: Language
    answers: Dict[str, AnswerValue]
    submittedAt: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(use_enum_values=True)


class PostRecord(BaseModel):
    """مقال في WisdomHub.

    `approved` يبقى دائماً مطابقاً لـ `status == "approved"`؛ الحقلان محفوظان
    للتوافق مع البيانات القديمة.
    """

    id: str
    title: str
    category: PostCategory = PostCategory.ARTICLES
    excerpt: str = ""
    content: str
    author: str
    status: PostStatus = PostStatus.PENDING
    approved: bool = False
    date: Optional[str] = None
    createdAt: datetime = Field(default_factory=utcnow)
    updatedAt: Optional[datetime] = None

    model_config = ConfigDict(use_enum_values=True)

    @model_validator(mode="before")
    @classmethod
    def _sync_status(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("id") is not None:
            data["id"] = str(data["id"])
        status = data.get("status")
        if not status:
            # ملفات قديمة بدون status: نعتمد على approved
            status = PostStatus.APPROVED.value if data.get("approved") else PostStatus.PENDING.value
        data["status"] = status
        data["approved"] = status == PostStatus.APPROVED.value
        return data

    @model_validator(mode="after")
    def _fill_dates(self):
        if self.updatedAt is None:
            self.updatedAt = self.createdAt
        if not self.date:
            self.date = self.createdAt.date().isoformat()
        return self


class ChatUserSnapshot(BaseModel):
    nickname: str
    gender: Optional[str] = None
    avatar: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class ChatUser(BaseModel):
    """سجل حضور مستخدم في الدردشة (في الذاكرة فقط)."""

    nickname: str
    gender: str
    joinTime: datetime = Field(default_factory=utcnow)
    avatar: str
    lastSeen: datetime = Field(default_factory=utcnow)


class ChatMessage(BaseModel):
    id: str = Field(..., min_length=1, max_length=100)
    type: ChatMessageType = ChatMessageType.TEXT
    user: Optional[ChatUserSnapshot] = None
    text: str = Field("", max_length=2000)
    timestamp: datetime
    expiresAt: Optional[datetime] = None

    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    @field_validator("type", mode="before")
    @classmethod
    def _legacy_user_type(cls, value):
        # العملاء القدامى يرسلون "user" للرسائل النصية
        return ChatMessageType.TEXT.value if value == ChatMessageType.USER.value else value

    @model_validator(mode="after")
    def _user_required(self):
        if self.type != ChatMessageType.SYSTEM.value and self.user is None:
            raise ValueError("user is required for text messages")
        return self


# -------------------- Survey API --------------------


class SurveySubmitIn(BaseModel):
    language: Language
    answers: Dict[str, AnswerValue]

    @field_validator("answers")
    @classmethod
    def _check_answers(cls, answers: Dict[str, AnswerValue]) -> Dict[str, AnswerValue]:
        cleaned: Dict[str, AnswerValue] = {}
        for question_id, value in answers.items():
            kind = SURVEY_QUESTIONS.get(question_id)
            if kind is None:
                raise ValueError(f"unknown question: {question_id}")
            if kind == QuestionKind.MULTI:
                values = [value] if isinstance(value, str) else list(value)
                values = [v.strip() for v in values if v and v.strip()]
                if any(len(v) > MAX_CHOICE_LENGTH for v in values):
                    raise ValueError(f"answer too long: {question_id}")
                unique = list(dict.fromkeys(values))
                if unique:
                    cleaned[question_id] = unique
                continue
            if not isinstance(value, str):
                raise ValueError(f"single answer expected: {question_id}")
            limit = MAX_TEXT_ANSWER_LENGTH if kind == QuestionKind.TEXT else MAX_CHOICE_LENGTH
            value = value.strip()
            if len(value) > limit:
                raise ValueError(f"answer too long: {question_id}")
            if value:
                cleaned[question_id] = value
        if not cleaned:
            raise ValueError("at least one answer is required")
        return cleaned


class SurveySubmitOut(BaseModel):
    success: bool = True
    message: str
    id: str
    storage: str


class ExportIn(BaseModel):
    format: Literal["json", "csv"] = "json"


# -------------------- Posts API --------------------


class PostSubmitIn(BaseModel):
    title: str
    category: str
    excerpt: str
    content: str
    author: str
    password: Optional[str] = None


class PostCreateIn(BaseModel):
    """Legacy endpoint body (بدون فئة أو مقتطف)."""

    title: str
    content: str
    author: str


class PostStatusIn(BaseModel):
    status: Literal["approved", "rejected", "deleted"]


class InteractIn(BaseModel):
    type: Literal["like", "dislike"]
    userId: str = Field(..., min_length=1, max_length=200)


class CommentIn(BaseModel):
    author: str = Field(..., max_length=100)
    text: str


# -------------------- Chat API --------------------


class NicknameIn(BaseModel):
    nickname: str = Field(..., max_length=50)


class PingIn(BaseModel):
    nickname: Optional[str] = Field(None, max_length=50)


class ChatJoinIn(BaseModel):
    nickname: str = Field(..., max_length=50)
    gender: str = Field(..., max_length=20)
    joinTime: Optional[datetime] = None
    avatar: Optional[str] = Field(None, max_length=20)


class ChatDeleteIn(BaseModel):
    messageId: str
    userNickname: str


# -------------------- Admin API --------------------


class AdminVerifyIn(BaseModel):
    password: str


class AdminLoginIn(BaseModel):
    username: str
    password: str


class AdminTokenOut(BaseModel):
    success: bool = True
    message: str
    token: str
    token_type: str = "bearer"
