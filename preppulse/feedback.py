"""
Feedback generation from a finished interview transcript.

The transcript is scored by an LLM through LiteLLM, so any LiteLLM model name works:
- Google: "gemini/gemini-2.0-flash-001"
- OpenAI: "gpt-4o-mini"
- Anthropic: "anthropic/claude-haiku-4-5-20251001"
"""

from __future__ import annotations

from datetime import datetime
import json
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from litellm import acompletion
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from preppulse.backend import ActionResult, CreateFeedbackParams
from preppulse.config import DEFAULT_FEEDBACK_MODEL
from preppulse.errors import FeedbackError
from preppulse.events import SavedMessage

if TYPE_CHECKING:
    from preppulse.store import FeedbackStore

FEEDBACK_CATEGORIES = (
    "Communication Skills",
    "Technical Knowledge",
    "Problem Solving",
    "Cultural Fit",
    "Confidence and Clarity",
)

FEEDBACK_SYSTEM_PROMPT = (
    "You are a professional interviewer analyzing a mock interview. Your task is to "
    "evaluate the candidate based on structured categories. Be thorough and detailed. "
    "Don't be lenient with the candidate: point out mistakes and areas for improvement."
)

FEEDBACK_INSTRUCTIONS = """
Score the candidate from 0 to 100 in each of these categories, in this order:
{categories}

Respond with a single JSON object with these keys:
- "total_score": integer 0-100
- "category_scores": array of {{"name": string, "score": integer 0-100, "comment": string}},
  one entry per category above, using the category names exactly
- "strengths": array of strings
- "areas_for_improvement": array of strings
- "final_assessment": string

Transcript:
{transcript}
""".strip()


class CategoryScore(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    score: int = Field(ge=0, le=100)
    comment: str


class FeedbackDraft(BaseModel):
    """Evaluation produced by the model, before it is stored."""

    model_config = ConfigDict(populate_by_name=True)

    total_score: int = Field(ge=0, le=100, alias="totalScore")
    category_scores: List[CategoryScore] = Field(alias="categoryScores")
    strengths: List[str] = Field(default_factory=list)
    areas_for_improvement: List[str] = Field(default_factory=list, alias="areasForImprovement")
    final_assessment: str = Field(alias="finalAssessment")

    @field_validator("category_scores")
    @classmethod
    def _known_categories(cls, scores: List[CategoryScore]) -> List[CategoryScore]:
        by_name = {score.name: score for score in scores}
        missing = [name for name in FEEDBACK_CATEGORIES if name not in by_name]
        if missing:
            raise ValueError(f"missing categories: {', '.join(missing)}")
        return [by_name[name] for name in FEEDBACK_CATEGORIES]


class Feedback(FeedbackDraft):
    id: str
    interview_id: Optional[str] = Field(default=None, alias="interviewId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    created_at: datetime = Field(alias="createdAt")


def format_transcript(transcript: Sequence[SavedMessage]) -> str:
    """Render a transcript as ``- role: content`` lines."""
    return "".join(f"- {message.role}: {message.content}\n" for message in transcript)


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


class FeedbackGenerator:
    """Asks an LLM to evaluate a transcript and validates the structured reply."""

    def __init__(
        self,
        model: str = DEFAULT_FEEDBACK_MODEL,
        api_key: Optional[str] = None,
        temperature: Optional[float] = 0.2,
        num_retries: int = 2,
        timeout: Optional[float] = None,
    ):
        self._model = model
        self._api_key = api_key
        self._temperature = temperature
        self._num_retries = num_retries
        self._timeout = timeout

    def build_messages(self, transcript: Sequence[SavedMessage]) -> List[Dict[str, str]]:
        prompt = FEEDBACK_INSTRUCTIONS.format(
            categories="\n".join(f"- {name}" for name in FEEDBACK_CATEGORIES),
            transcript=format_transcript(transcript),
        )
        return [
            {"role": "system", "content": FEEDBACK_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    async def generate(self, transcript: Sequence[SavedMessage]) -> FeedbackDraft:
        if not transcript:
            raise FeedbackError("Cannot generate feedback from an empty transcript")

        llm_kwargs: Dict[str, Any] = {
            "model": self._model,
            "messages": self.build_messages(transcript),
            "response_format": {"type": "json_object"},
            "num_retries": self._num_retries,
        }
        if self._api_key:
            llm_kwargs["api_key"] = self._api_key
        if self._temperature is not None:
            llm_kwargs["temperature"] = self._temperature
        if self._timeout:
            llm_kwargs["timeout"] = self._timeout

        try:
            response = await acompletion(**llm_kwargs)
        except Exception as e:
            raise FeedbackError(f"Feedback model call failed: {e}") from e

        content = response.choices[0].message.content or ""
        try:
            return FeedbackDraft.model_validate(json.loads(_strip_code_fence(content)))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.debug(f"Unparseable feedback reply: {content[:500]}")
            raise FeedbackError(f"Feedback model returned an invalid evaluation: {e}") from e


class FeedbackRecorder:
    """Generates feedback and stores it. Implements the FeedbackService protocol in-process."""

    def __init__(self, generator: FeedbackGenerator, store: "FeedbackStore"):
        self.generator = generator
        self.store = store

    async def create_feedback(self, params: CreateFeedbackParams) -> ActionResult:
        try:
            draft = await self.generator.generate(params.transcript)
        except FeedbackError as e:
            logger.error(f"Error saving feedback: {e}")
            return ActionResult(success=False, message=str(e))

        feedback = await self.store.save(
            draft,
            interview_id=params.interview_id,
            user_id=params.user_id,
            feedback_id=params.feedback_id,
        )
        logger.info(f"Saved feedback {feedback.id} (score {feedback.total_score})")
        return ActionResult(success=True, feedback_id=feedback.id)
