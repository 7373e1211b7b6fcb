"""
AI generation adapter.

Builds prompts for the Gemini model, calls it once per request and turns the
textual answer into typed records. Nothing here touches the database; the
calling router decides what to store.

Two failure kinds leave this module:
- GenerationFormatError when the model answered but the payload is not the
  requested JSON shape;
- GenerationUnavailable (raised by the client) when the model could not be
  reached at all.
"""

from __future__ import annotations
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

from .errors import GenerationFormatError

logger = logging.getLogger(__name__)


SKILL_TOPICS: Dict[str, str] = {
    "listening": "IELTS Listening comprehension with audio scenarios, conversations, and academic lectures",
    "reading": "IELTS Reading comprehension with academic texts, articles, and passage analysis",
    "writing": "IELTS Writing skills including task response, coherence, lexical resource, and grammatical accuracy",
    "speaking": "IELTS Speaking skills including fluency, pronunciation, vocabulary, and grammar",
}

THEME_DESCRIPTIONS: Dict[str, str] = {
    "science": "Scientific discoveries and technological innovations",
    "environment": "Environmental issues and climate change",
    "education": "Educational systems and learning methodologies",
    "culture": "Cultural diversity and social anthropology",
    "business": "Business management and economic development",
    "health": "Healthcare systems and medical research",
    "technology": "Digital technology and artificial intelligence",
    "history": "Historical events and archaeological discoveries",
    "society": "Social issues and community development",
    "arts": "Arts, literature and creative expression",
}

OPTION_LETTERS = ("A", "B", "C", "D")
READING_QUESTION_TYPES = ("detail", "main_idea", "inference", "vocabulary", "reference")
QUESTION_DIFFICULTIES = ("easy", "medium", "hard")
LISTENING_QUESTION_TYPES = ("true_false", "mcq", "matching")
READING_QUESTIONS_PER_TEST = 10
LISTENING_QUESTIONS_PER_EXERCISE = 6
MAX_SOURCE_CHARS = 12000


# ============================================================================
# RECORDS
# ============================================================================

class GeneratedQuestion(BaseModel):
    id: int
    question: str
    options: List[str]
    correctAnswer: str
    explanation: str = ""


class GeneratedPassage(BaseModel):
    title: str
    content: str
    wordCount: int
    level: str
    topic: str
    summary: str = ""


class ReadingQuestion(BaseModel):
    number: int
    question: str
    options: List[str] = Field(min_length=4, max_length=4)
    correctAnswer: str
    explanation: str = ""
    difficulty: str = "medium"
    questionType: str = "detail"


class ListeningQuestion(BaseModel):
    id: str
    type: str
    question: str
    options: List[str] = Field(default_factory=list)
    correctAnswer: Union[str, List[str]]
    explanation: str = ""


class ListeningDraft(BaseModel):
    conversation: str
    questions: List[ListeningQuestion]


class ExtractedQuestion(BaseModel):
    title: str
    question: str
    options: List[str] = Field(default_factory=list)
    correctAnswer: Optional[str] = None
    explanation: str = ""
    difficulty: str = "medium"


# ============================================================================
# PARSING HELPERS
# ============================================================================

def extract_json(text: str) -> Any:
    """Pull a JSON value out of raw model text, fenced blocks, or surrounding prose."""
    if not isinstance(text, str) or not text.strip():
        raise GenerationFormatError("Model returned an empty response")
    try:
        return json.loads(text)
    except ValueError:
        pass
    code_block = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
    if code_block:
        try:
            return json.loads(code_block.group(1))
        except ValueError:
            pass
    for opener, closer in (("{", "}"), ("[", "]")):
        first = text.find(opener)
        last = text.rfind(closer)
        if first != -1 and last > first:
            try:
                return json.loads(text[first : last + 1])
            except ValueError:
                continue
    logger.warning("Unparsable model output: %s", text[:300])
    raise GenerationFormatError("Model did not return valid JSON")


def _as_list(data: Any, key: str) -> List[Any]:
    if isinstance(data, dict):
        data = data.get(key)
    if not isinstance(data, list):
        raise GenerationFormatError(f"Model response is missing a '{key}' list")
    return data


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _options_list(raw: Any) -> List[str]:
    # Options come back either as a list or as an {"A": ..., "B": ...} mapping
    if isinstance(raw, dict):
        return [_text(raw[k]) for k in OPTION_LETTERS if k in raw]
    if isinstance(raw, list):
        return [_text(o) for o in raw]
    return []


def _resolve_answer(answer: Any, options: List[str]) -> Optional[str]:
    """Map a letter, 0-based index or option text onto the option text."""
    if isinstance(answer, bool):
        return None
    if isinstance(answer, int):
        return options[answer] if 0 <= answer < len(options) else None
    text = _text(answer)
    if text in options:
        return text
    letter = text.rstrip(").").upper()
    if letter in OPTION_LETTERS and OPTION_LETTERS.index(letter) < len(options):
        return options[OPTION_LETTERS.index(letter)]
    lowered = {o.lower(): o for o in options}
    return lowered.get(text.lower())


def _normalize(value: Any, allowed: tuple, default: str) -> str:
    text = _text(value).lower().replace(" ", "_").replace("-", "_")
    return text if text in allowed else default


def parse_mcq_questions(raw: str, count: int) -> List[GeneratedQuestion]:
    items = _as_list(extract_json(raw), "questions")
    if len(items) != count:
        raise GenerationFormatError(f"Expected {count} questions, got {len(items)}")
    out: List[GeneratedQuestion] = []
    for i, item in enumerate(items, 1):
        if not isinstance(item, dict):
            raise GenerationFormatError(f"Question {i} is not an object")
        question = _text(item.get("question") or item.get("questionText"))
        options = [o for o in _options_list(item.get("options")) if o]
        if not question or len(options) < 2:
            raise GenerationFormatError(f"Question {i} is missing its text or options")
        answer = _resolve_answer(item.get("correctAnswer", item.get("correct_answer")), options)
        if answer is None:
            raise GenerationFormatError(f"Question {i} has a correct answer outside its options")
        out.append(GeneratedQuestion(id=i, question=question, options=options, correctAnswer=answer, explanation=_text(item.get("explanation"))))
    return out


def parse_passage(raw: str, *, topic: str, level: str) -> GeneratedPassage:
    data = extract_json(raw)
    passage = data.get("passage", data) if isinstance(data, dict) else None
    if not isinstance(passage, dict):
        raise GenerationFormatError("Model response is missing a passage object")
    content = _text(passage.get("content"))
    if not content:
        raise GenerationFormatError("Generated passage has no content")
    return GeneratedPassage(
        title=_text(passage.get("title")) or topic,
        content=content,
        wordCount=len(content.split()),
        level=level,
        topic=topic,
        summary=_text(passage.get("summary")),
    )


def parse_reading_questions(raw: str, count: int = READING_QUESTIONS_PER_TEST) -> List[ReadingQuestion]:
    items = _as_list(extract_json(raw), "questions")
    if len(items) != count:
        raise GenerationFormatError(f"Expected {count} questions, got {len(items)}")
    out: List[ReadingQuestion] = []
    for i, item in enumerate(items, 1):
        if not isinstance(item, dict):
            raise GenerationFormatError(f"Question {i} is not an object")
        text = _text(item.get("questionText") or item.get("question"))
        if not text:
            raise GenerationFormatError(f"Question {i} has no text")
        options = _options_list(item.get("options"))
        answer = _resolve_answer(item.get("correctAnswer"), options)
        if len(options) != 4 or not all(options) or answer is None:
            raise GenerationFormatError(f"Question {i} needs four options and a correct answer among them")
        try:
            out.append(ReadingQuestion(
                number=i,
                question=text,
                options=options,
                correctAnswer=OPTION_LETTERS[options.index(answer)],
                explanation=_text(item.get("explanation")),
                difficulty=_normalize(item.get("difficulty"), QUESTION_DIFFICULTIES, "medium"),
                questionType=_normalize(item.get("questionType"), READING_QUESTION_TYPES, "detail"),
            ))
        except SchemaError as exc:
            raise GenerationFormatError(f"Question {i} does not match the reading schema") from exc
    return out


def _listening_answer(item: Dict[str, Any], qtype: str, options: List[str], number: int) -> Union[str, List[str]]:
    answer = item.get("correctAnswer")
    if qtype == "true_false":
        if isinstance(answer, bool):
            return "true" if answer else "false"
        text = _text(answer).lower()
        if text in ("true", "false"):
            return text
    elif qtype == "mcq":
        resolved = _resolve_answer(answer, options)
        if resolved is not None:
            return resolved
    elif isinstance(answer, list) and answer:
        return [_text(a) for a in answer]
    raise GenerationFormatError(f"Listening question {number} has an invalid correct answer for type {qtype}")


def parse_listening_exercise(raw: str, count: int = LISTENING_QUESTIONS_PER_EXERCISE) -> ListeningDraft:
    data = extract_json(raw)
    if not isinstance(data, dict):
        raise GenerationFormatError("Model response is not an object")
    conversation = _text(data.get("conversation"))
    if not conversation:
        raise GenerationFormatError("Listening exercise has no conversation")
    items = _as_list(data, "questions")
    if len(items) != count:
        raise GenerationFormatError(f"Expected {count} questions, got {len(items)}")
    questions: List[ListeningQuestion] = []
    for i, item in enumerate(items, 1):
        if not isinstance(item, dict):
            raise GenerationFormatError(f"Listening question {i} is not an object")
        qtype = _normalize(item.get("type"), LISTENING_QUESTION_TYPES, "")
        if not qtype:
            raise GenerationFormatError(f"Listening question {i} has an unknown type")
        options = [o for o in _options_list(item.get("options")) if o]
        if qtype == "true_false":
            options = ["True", "False"]
        elif not options:
            raise GenerationFormatError(f"Listening question {i} needs options")
        text = _text(item.get("question"))
        if not text:
            raise GenerationFormatError(f"Listening question {i} has no text")
        questions.append(ListeningQuestion(
            id=_text(item.get("id")) or f"q{i}",
            type=qtype,
            question=text,
            options=options,
            correctAnswer=_listening_answer(item, qtype, options, i),
            explanation=_text(item.get("explanation")),
        ))
    if len({q.id for q in questions}) != len(questions):
        raise GenerationFormatError("Listening question ids are not unique")
    return ListeningDraft(conversation=conversation, questions=questions)


def parse_extracted_questions(raw: str) -> List[ExtractedQuestion]:
    items = _as_list(extract_json(raw), "questions")
    out: List[ExtractedQuestion] = []
    for i, item in enumerate(items, 1):
        if not isinstance(item, dict):
            raise GenerationFormatError(f"Extracted item {i} is not an object")
        text = _text(item.get("question"))
        if not text:
            raise GenerationFormatError(f"Extracted item {i} has no question text")
        options = [o for o in _options_list(item.get("options")) if o]
        answer = _resolve_answer(item.get("correctAnswer"), options) if options else (_text(item.get("correctAnswer")) or None)
        out.append(ExtractedQuestion(
            title=_text(item.get("title")) or text[:80],
            question=text,
            options=options,
            correctAnswer=answer,
            explanation=_text(item.get("explanation")),
            difficulty=_normalize(item.get("difficulty"), QUESTION_DIFFICULTIES, "medium"),
        ))
    return out


# ============================================================================
# PROMPTS
# ============================================================================

def _mcq_prompt(topic: str, count: int) -> str:
    return (
        f"Generate {count} multiple choice questions about {topic} for IELTS preparation.\n"
        "Return ONLY JSON in this exact format:\n"
        '{"questions": [{"id": 1, "question": "Question text?", "options": ["Option A", "Option B", "Option C", "Option D"], '
        '"correctAnswer": "Option A", "explanation": "Why this is correct"}]}\n'
        "Rules: questions at IELTS level English; 4 plausible options; exactly one correct answer; "
        "correctAnswer must repeat the text of one option verbatim; brief explanations; "
        "test comprehension, vocabulary or grammar."
    )


def _passage_prompt(topic: str, level: str, word_count: int) -> str:
    return (
        f"Write a comprehensive academic passage about {topic} for IELTS reading practice.\n"
        f"Level: {level}. Length: approximately {word_count} words.\n"
        "Use a formal academic style, complex sentences and academic vocabulary, clear paragraphs "
        "(introduction, body, conclusion), and concrete details, statistics or examples that questions can target.\n"
        "Return ONLY JSON in this exact format:\n"
        f'{{"passage": {{"title": "Passage title", "content": "Full passage text", "wordCount": {word_count}, '
        f'"level": "{level}", "topic": "{topic}", "summary": "Brief summary"}}}}'
    )


def _passage_questions_prompt(content: str, level: str, count: int) -> str:
    return (
        f"Based on the following passage, generate exactly {count} multiple choice questions "
        f"for IELTS reading comprehension at {level} level.\n"
        f"PASSAGE:\n---\n{content}\n---\n"
        "Cover: 3 detail, 2 main_idea, 2 inference, 2 vocabulary and 1 reference question.\n"
        "Return ONLY JSON in this exact format:\n"
        '{"questions": [{"questionText": "What is the main purpose of the passage?", '
        '"options": {"A": "...", "B": "...", "C": "...", "D": "..."}, "correctAnswer": "A", '
        '"explanation": "...", "difficulty": "easy|medium|hard", '
        '"questionType": "detail|main_idea|inference|vocabulary|reference"}]}\n'
        "Every question must be answerable from the passage with exactly one correct option."
    )


def _listening_prompt(topic: str, difficulty: str, count: int) -> str:
    return (
        f"Create an IELTS listening exercise about {topic} at {difficulty} level.\n"
        "Write a natural conversation between two or more speakers (250-400 words) suitable for text-to-speech, "
        "with speaker names before each line.\n"
        f"Then write exactly {count} questions about it, mixing these types:\n"
        "- true_false: correctAnswer is \"true\" or \"false\"\n"
        "- mcq: 4 options, correctAnswer repeats one option verbatim\n"
        "- matching: options to match, correctAnswer is an array of the matching options\n"
        "Return ONLY JSON in this exact format:\n"
        '{"conversation": "Speaker A: ...", "questions": [{"id": "q1", "type": "mcq", "question": "...", '
        '"options": ["..."], "correctAnswer": "...", "explanation": "..."}]}'
    )


def _extraction_prompt(text: str, section: str) -> str:
    return (
        f"The following text comes from IELTS {section} study material.\n"
        "Find every exam-style question in it (or, if it has none, write up to 10 questions it supports).\n"
        "Return ONLY JSON in this exact format:\n"
        '{"questions": [{"title": "Short title", "question": "...", "options": ["..."], '
        '"correctAnswer": "...", "explanation": "...", "difficulty": "easy|medium|hard"}]}\n'
        "Use an empty options array for open questions.\n"
        f"MATERIAL:\n---\n{text}\n---"
    )


# ============================================================================
# ADAPTER
# ============================================================================

class QuestionGenerator:
    """One model call per method; no retries, no caching."""

    def __init__(self, client: Any) -> None:
        self.client = client

    async def generate_mcq(self, topic: str, count: int) -> List[GeneratedQuestion]:
        raw = await self.client.generate(_mcq_prompt(topic, count), json_output=True)
        return parse_mcq_questions(raw, count)

    async def generate_ielts(self, skill: str, count: int) -> List[GeneratedQuestion]:
        topic = SKILL_TOPICS.get(skill.lower(), SKILL_TOPICS["reading"])
        return await self.generate_mcq(topic, count)

    async def generate_passage(self, topic: str, level: str, word_count: int) -> tuple[GeneratedPassage, Dict[str, Any]]:
        raw = await self.client.generate(_passage_prompt(topic, level, word_count), json_output=True)
        passage = parse_passage(raw, topic=topic, level=level)
        metadata = {
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "requestedWordCount": word_count,
            "actualWordCount": passage.wordCount,
        }
        return passage, metadata

    async def generate_ielts_passage(self, theme: str, level: str, word_count: int) -> tuple[GeneratedPassage, Dict[str, Any]]:
        topic = THEME_DESCRIPTIONS.get(theme.lower(), THEME_DESCRIPTIONS["science"])
        return await self.generate_passage(topic, level, word_count)

    async def generate_passage_questions(self, content: str, level: str, count: int = READING_QUESTIONS_PER_TEST) -> List[ReadingQuestion]:
        raw = await self.client.generate(_passage_questions_prompt(content, level, count), json_output=True)
        return parse_reading_questions(raw, count)

    async def generate_listening_exercise(self, topic: str, difficulty: str, count: int = LISTENING_QUESTIONS_PER_EXERCISE) -> ListeningDraft:
        raw = await self.client.generate(_listening_prompt(topic, difficulty, count), json_output=True)
        return parse_listening_exercise(raw, count)

    async def extract_questions(self, text: str, section: str) -> List[ExtractedQuestion]:
        raw = await self.client.generate(_extraction_prompt(text[:MAX_SOURCE_CHARS], section), json_output=True)
        return parse_extracted_questions(raw)

    async def chat(self, message: str) -> str:
        prompt = (
            "You are a friendly IELTS tutor. Answer the student's message concisely and accurately.\n"
            f"Student: {message}"
        )
        reply = (await self.client.generate(prompt)).strip()
        if not reply:
            raise GenerationFormatError("Model returned an empty reply")
        return reply


def get_generator() -> QuestionGenerator:
    from .gemini_client import get_gemini_client

    return QuestionGenerator(get_gemini_client())
