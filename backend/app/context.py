from dataclasses import dataclass, field
from typing import Any, Optional

from app.config import Settings, get_settings
from app.database import ConnectionSupervisor
from app.schemas import PostRecord, SurveyRecord
from app.services.chat_service import ChatStore, empty_chat
from app.services.counter_service import CounterCache, SlidingWindowLimiter
from app.services.interaction_service import InteractionService
from app.services.post_service import PostService
from app.services.survey_service import SurveyService
from app.storage.adapter import FallbackCollection
from app.storage.base import CollectionBackend
from app.storage.flag import UsabilityFlag
from app.storage.json_file import JsonCollectionBackend, JsonFile


@dataclass
class AppContext:
    """Everything a request handler may touch, owned by the app instance."""

    settings: Settings
    flag: UsabilityFlag
    supervisor: ConnectionSupervisor
    surveys: FallbackCollection[SurveyRecord]
    posts: FallbackCollection[PostRecord]
    posts_file: JsonFile
    counter: CounterCache
    survey_service: SurveyService
    post_service: PostService
    interactions: InteractionService
    chat: ChatStore
    scheduler: Optional[Any] = field(default=None)


def build_context(
    settings: Optional[Settings] = None,
    *,
    survey_primary: Optional[CollectionBackend[SurveyRecord]] = None,
    post_primary: Optional[CollectionBackend[PostRecord]] = None,
    supervisor: Optional[ConnectionSupervisor] = None,
) -> AppContext:
    """Wire the storage layer, services and background state for one app."""
    settings = settings or get_settings()
    data_dir = settings.data_dir

    if supervisor is None:
        supervisor = ConnectionSupervisor(settings, UsabilityFlag())
    flag = supervisor.flag

    if settings.MONGODB_URI and survey_primary is None and post_primary is None:
        from app.storage.mongo import mongo_post_backend, mongo_survey_backend

        survey_primary = mongo_survey_backend()
        post_primary = mongo_post_backend()

    posts_file = JsonFile(data_dir / settings.POSTS_FILE, default=list)
    surveys = FallbackCollection(
        "surveys",
        primary=survey_primary,
        fallback=JsonCollectionBackend(
            JsonFile(data_dir / settings.SURVEY_FILE, default=list), SurveyRecord, date_field="submittedAt"
        ),
        flag=flag,
    )
    posts = FallbackCollection(
        "posts",
        primary=post_primary,
        fallback=JsonCollectionBackend(posts_file, PostRecord, date_field="createdAt"),
        flag=flag,
    )

    counter = CounterCache(
        surveys,
        ttl_seconds=settings.COUNTER_CACHE_TTL_SECONDS,
        refresh_timeout=settings.COUNTER_REFRESH_TIMEOUT_SECONDS,
        jump_warning=settings.COUNTER_JUMP_WARNING,
        rate_limiter=SlidingWindowLimiter(settings.COUNTER_RATE_LIMIT, settings.COUNTER_WINDOW_SECONDS),
        analytics_limiter=SlidingWindowLimiter(
            settings.COUNTER_ANALYTICS_RATE_LIMIT, settings.COUNTER_WINDOW_SECONDS
        ),
    )
    surveys.on_mutation(counter.sync_from)

    return AppContext(
        settings=settings,
        flag=flag,
        supervisor=supervisor,
        surveys=surveys,
        posts=posts,
        posts_file=posts_file,
        counter=counter,
        survey_service=SurveyService(surveys, counter),
        post_service=PostService(posts, settings.SUBMISSION_PASSWORD),
        interactions=InteractionService(
            JsonFile(data_dir / settings.INTERACTIONS_FILE, default=dict),
            JsonFile(data_dir / settings.COMMENTS_FILE, default=dict),
        ),
        chat=ChatStore(JsonFile(data_dir / settings.CHAT_FILE, default=empty_chat), settings),
    )
