from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..generation import SKILL_TOPICS, THEME_DESCRIPTIONS, QuestionGenerator, get_generator
from ..models import LEVELS
from ..responses import success_response
from ..validators import ensure_valid, missing_fields, validate_choice, validate_range

router = APIRouter(prefix="/gemini", tags=["gemini"])

MAX_MCQ_COUNT = 10
MIN_WORD_COUNT = 200
MAX_WORD_COUNT = 1000


class MCQRequest(BaseModel):
	topic: str = "General Knowledge"
	count: Any = 5


class IELTSRequest(BaseModel):
	skill: Any = "reading"
	count: Any = 5


class PassageRequest(BaseModel):
	topic: str = "Academic Research"
	level: Any = "intermediate"
	wordCount: Any = 500


class IELTSPassageRequest(BaseModel):
	theme: Any = "science"
	level: Any = "intermediate"
	wordCount: Any = 500


class ChatRequest(BaseModel):
	message: Optional[Any] = None


def _passage_violations(level: Any, word_count: Any) -> list:
	return validate_choice("level", level, LEVELS) + validate_range("wordCount", word_count, MIN_WORD_COUNT, MAX_WORD_COUNT)


@router.post("/generate-mcq")
async def generate_mcq(req: MCQRequest, generator: QuestionGenerator = Depends(get_generator)):
	ensure_valid(validate_range("count", req.count, 1, MAX_MCQ_COUNT))
	count = int(req.count)
	questions = await generator.generate_mcq(req.topic, count)
	return success_response(
		f"Generated {count} questions",
		{"topic": req.topic, "count": count, "questions": [q.model_dump() for q in questions]},
	)


@router.post("/generate-ielts")
async def generate_ielts(req: IELTSRequest, generator: QuestionGenerator = Depends(get_generator)):
	ensure_valid(validate_choice("skill", req.skill, SKILL_TOPICS) + validate_range("count", req.count, 1, MAX_MCQ_COUNT))
	skill = req.skill.lower()
	count = int(req.count)
	questions = await generator.generate_ielts(skill, count)
	return success_response(
		f"Generated {count} IELTS {skill} questions",
		{"skill": skill, "count": count, "questions": [q.model_dump() for q in questions]},
	)


@router.post("/generate-passage")
async def generate_passage(req: PassageRequest, generator: QuestionGenerator = Depends(get_generator)):
	ensure_valid(_passage_violations(req.level, req.wordCount))
	passage, metadata = await generator.generate_passage(req.topic, req.level.lower(), int(req.wordCount))
	return success_response("Passage generated", {"passage": passage.model_dump(), "metadata": metadata})


@router.post("/generate-ielts-passage")
async def generate_ielts_passage(req: IELTSPassageRequest, generator: QuestionGenerator = Depends(get_generator)):
	ensure_valid(validate_choice("theme", req.theme, THEME_DESCRIPTIONS) + _passage_violations(req.level, req.wordCount))
	passage, metadata = await generator.generate_ielts_passage(req.theme.lower(), req.level.lower(), int(req.wordCount))
	metadata["theme"] = req.theme.lower()
	return success_response("IELTS passage generated", {"passage": passage.model_dump(), "metadata": metadata})


@router.post("/chat")
async def chat(req: ChatRequest, generator: QuestionGenerator = Depends(get_generator)):
	ensure_valid(missing_fields(req.model_dump(), ("message",)))
	reply = await generator.chat(str(req.message).strip())
	return success_response("Reply generated", {"response": reply})
