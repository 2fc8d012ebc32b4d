import csv
import io
import json
from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Dict, List

from app.constants import Language, StorageKind, SURVEY_QUESTIONS
from app.schemas import SurveyRecord, SurveySubmitIn
from app.services.counter_service import CounterCache
from app.storage.adapter import FallbackCollection
from app.storage.base import Served
from app.utils.logger import get_logger

logger = get_logger("survey_service")

UNKNOWN = "غير محدد"

AGE_GROUPS = ["-17", "18-28", "29-39", "40plus"]

# datetime.weekday(): الإثنين = 0
WEEKDAYS_AR = ["الإثنين", "الثلاثاء", "الأربعاء", "الخميس", "الجمعة", "السبت", "الأحد"]
MONTHS_AR = [
    "يناير", "فبراير", "مارس", "أبريل", "مايو", "يونيو",
    "يوليو", "أغسطس", "سبتمبر", "أكتوبر", "نوفمبر", "ديسمبر",
]

# (اسم المفتاح في الرد، السؤال الأول، السؤال الثاني)
CROSS_PAIRS = [
    ("ageByGender", "age", "gender"),
    ("educationByAge", "education", "age"),
    ("beliefByAge", "belief", "age"),
    ("locationByBelief", "location", "belief"),
    ("familySupportByAge", "family-support", "age"),
]


def _values(answer) -> List[str]:
    """A stored answer as a list of choices (multi-select answers stay lists)."""
    if answer is None:
        return []
    if isinstance(answer, list):
        return [v for v in answer if v]
    return [answer] if answer else []


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _top(counter: Dict[str, int]) -> str:
    if not counter:
        return UNKNOWN
    return max(counter.items(), key=lambda kv: kv[1])[0]


class SurveyService:
    def __init__(self, store: FallbackCollection[SurveyRecord], counter: CounterCache) -> None:
        self.store = store
        self.counter = counter

    async def submit(self, payload: SurveySubmitIn) -> Served[SurveyRecord]:
        """حفظ استجابة جديدة؛ الكاش يُحدَّث عبر خطاف الكتابة في المخزن."""
        record = SurveyRecord(
            id="",
            language=payload.language,
            answers=payload.answers,
            submittedAt=datetime.now(timezone.utc),
        )
        served = await self.store.create(record)
        if served.storage == StorageKind.MONGODB:
            logger.info("✅ تم حفظ الاستبيان في MongoDB بنجاح")
        else:
            logger.info("✅ تم حفظ الاستبيان في ملف JSON")
        return served

    async def list_responses(self) -> Served[List[SurveyRecord]]:
        served = await self.store.read_all()
        served.value.sort(key=lambda r: _aware(r.submittedAt), reverse=True)
        return served

    async def basic_stats(self) -> Served[dict]:
        served = await self.store.read_all()
        by_language = Counter(r.language for r in served.value)
        return Served(
            {
                "total": len(served.value),
                "arabic": by_language.get(Language.AR.value, 0),
                "english": by_language.get(Language.EN.value, 0),
            },
            served.storage,
        )

    async def statistics(self) -> dict:
        """تحليل شامل للاستجابات للوحة الإدارة."""
        served = await self.store.read_all()
        responses = served.value
        total = len(responses)

        language_stats: Dict[str, int] = defaultdict(int)
        question_stats: Dict[str, Dict[str, int]] = {qid: defaultdict(int) for qid in SURVEY_QUESTIONS}
        age_groups: Dict[str, int] = {group: 0 for group in AGE_GROUPS}
        age_groups[UNKNOWN] = 0
        by_date: Dict[str, int] = defaultdict(int)
        by_hour: Dict[str, int] = defaultdict(int)
        by_weekday: Dict[str, int] = defaultdict(int)
        by_month: Dict[str, int] = defaultdict(int)
        cross: Dict[str, Dict[str, int]] = {name: defaultdict(int) for name, _, _ in CROSS_PAIRS}
        additional_thoughts: List[str] = []

        for response in responses:
            lang = {"ar": "العربية", "en": "English"}.get(response.language, UNKNOWN)
            language_stats[lang] += 1
            answers = response.answers

            for qid, answer in answers.items():
                if qid == "additional-thoughts":
                    continue
                for value in _values(answer):
                    question_stats.setdefault(qid, defaultdict(int))[value] += 1

            if "age" in answers:
                age = answers["age"]
                age_groups[age if age in age_groups else UNKNOWN] += 1

            for name, first, second in CROSS_PAIRS:
                for a in _values(answers.get(first)):
                    for b in _values(answers.get(second)):
                        cross[name][f"{a} - {b}"] += 1

            thought = answers.get("additional-thoughts")
            if isinstance(thought, str) and thought.strip():
                additional_thoughts.append(thought.strip())

            submitted = _aware(response.submittedAt)
            by_date[submitted.date().isoformat()] += 1
            by_hour[str(submitted.hour)] += 1
            by_weekday[WEEKDAYS_AR[submitted.weekday()]] += 1
            by_month[f"{MONTHS_AR[submitted.month - 1]} {submitted.year}"] += 1

        recent = sorted(responses, key=lambda r: _aware(r.submittedAt), reverse=True)[:10]
        days_active = len(by_date)
        peak_hour = _top(by_hour)

        return {
            "totalSubmissions": total,
            "languageStats": dict(language_stats),
            "questionStats": {qid: dict(counts) for qid, counts in question_stats.items()},
            "ageGroupsDetailed": age_groups,
            "submissionsByDate": dict(by_date),
            "submissionsByHour": dict(by_hour),
            "submissionsByWeekday": dict(by_weekday),
            "submissionsByMonth": dict(by_month),
            "crossAnalysis": {name: dict(counts) for name, counts in cross.items()},
            "additionalThoughts": additional_thoughts,
            "recentSubmissions": [
                {"id": r.id, "language": r.language, "submittedAt": _aware(r.submittedAt).isoformat()}
                for r in recent
            ],
            "keyMetrics": {
                "avgSubmissionsPerDay": round(total / days_active, 2) if days_active else 0,
                "peakHour": f"{peak_hour}:00" if peak_hour != UNKNOWN else UNKNOWN,
                "mostActiveDay": _top(by_weekday),
                "topLocation": _top(question_stats.get("location", {})),
                "totalDaysActive": days_active,
            },
            "storageType": "MongoDB" if served.storage == StorageKind.MONGODB else "JSON File",
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
        }

    async def export(self, fmt: str = "json") -> tuple[str, str, str]:
        """Return (body, media_type, filename) for the admin download."""
        served = await self.list_responses()
        responses = served.value
        now = datetime.now(timezone.utc)
        timestamp = now.strftime("%Y-%m-%dT%H-%M-%S")

        if fmt == "csv":
            buffer = io.StringIO()
            writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
            question_ids = list(SURVEY_QUESTIONS)
            writer.writerow(["ID", "Language", *question_ids, "Submitted At"])
            for r in responses:
                row = [r.id, r.language]
                for qid in question_ids:
                    row.append("; ".join(_values(r.answers.get(qid))))
                row.append(_aware(r.submittedAt).isoformat())
                writer.writerow(row)
            # BOM حتى يفتح Excel الملف بترميز UTF-8
            return "\ufeff" + buffer.getvalue(), "text/csv; charset=utf-8", f"survey_data_{timestamp}.csv"

        body = json.dumps(
            {
                "exportDate": now.isoformat(),
                "totalRecords": len(responses),
                "data": [r.model_dump(mode="json") for r in responses],
            },
            ensure_ascii=False,
        )
        return body, "application/json; charset=utf-8", f"survey_data_{timestamp}.json"

    async def clear(self) -> tuple[int, list[str]]:
        cleared, errors = await self.store.clear_everywhere()
        self.counter.reset()
        return cleared, errors

