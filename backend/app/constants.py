from enum import Enum


class Language(str, Enum):
    """لغات الاستبيان المدعومة."""
    AR = "ar"
    EN = "en"


class StorageKind(str, Enum):
    """الواجهة الخلفية التي خدمت الطلب."""
    MONGODB = "mongodb"
    JSON = "json"


class PostStatus(str, Enum):
    """حالات المقال في دورة المراجعة."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PostCategory(str, Enum):
    NEWS = "news"
    ARTICLES = "articles"
    TECH = "tech"
    CULTURE = "culture"
    SPORTS = "sports"
    ECONOMY = "economy"
    ART = "art"
    RAP_RELIGION = "rap-religion"


class ChatMessageType(str, Enum):
    TEXT = "text"
    USER = "user"  # legacy clients
    SYSTEM = "system"


class QuestionKind(str, Enum):
    SINGLE = "single"   # radio
    MULTI = "multi"     # checkbox
    TEXT = "text"       # textarea


# معرّفات أسئلة الاستبيان ونوع الإجابة المتوقعة لكل سؤال
SURVEY_QUESTIONS: dict[str, QuestionKind] = {
    "belief": QuestionKind.MULTI,
    "age": QuestionKind.SINGLE,
    "location": QuestionKind.SINGLE,
    "gender": QuestionKind.SINGLE,
    "education": QuestionKind.SINGLE,
    "religious-background": QuestionKind.SINGLE,
    "religious-commitment": QuestionKind.SINGLE,
    "family-support": QuestionKind.SINGLE,
    "reason-for-leaving": QuestionKind.SINGLE,
    "additional-thoughts": QuestionKind.TEXT,
}

MAX_CHOICE_LENGTH = 200
MAX_TEXT_ANSWER_LENGTH = 5000

# Post field limits
MAX_TITLE_LENGTH = 200
MAX_EXCERPT_LENGTH = 500
MAX_CONTENT_LENGTH = 10000
MAX_AUTHOR_LENGTH = 100
MAX_COMMENT_LENGTH = 500
