from fastapi import APIRouter, Depends

from app.constants import StorageKind
from app.context import AppContext
from app.deps import get_context
from app.schemas import SurveySubmitIn, SurveySubmitOut

router = APIRouter(prefix="/api", tags=["survey"])


@router.post("/submit-survey", response_model=SurveySubmitOut)
async def submit_survey(payload: SurveySubmitIn, ctx: AppContext = Depends(get_context)):
    """حفظ استجابة جديدة في MongoDB أو ملف JSON عند تعذّر قاعدة البيانات."""
    served = await ctx.survey_service.submit(payload)
    if served.storage == StorageKind.MONGODB:
        message = "تم حفظ الإجابات بنجاح في MongoDB"
    else:
        message = "تم حفظ الإجابات بنجاح في ملف JSON"
    return SurveySubmitOut(message=message, id=served.value.id, storage=served.storage.value)


@router.get("/responses")
async def list_responses(ctx: AppContext = Depends(get_context)):
    served = await ctx.survey_service.list_responses()
    return {
        "responses": [r.model_dump(mode="json") for r in served.value],
        "storage": served.storage.value,
    }


@router.get("/stats")
async def basic_stats(ctx: AppContext = Depends(get_context)):
    served = await ctx.survey_service.basic_stats()
    return {**served.value, "storage": served.storage.value}
