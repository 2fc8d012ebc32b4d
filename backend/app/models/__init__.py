# Re-export Beanie documents
from .survey import SurveyResponse
from .post import Post

DOCUMENT_MODELS = [SurveyResponse, Post]
