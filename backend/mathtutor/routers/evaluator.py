from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..curriculum import get_step, matched_keywords
from ..gemini_client import GeminiClient, get_llm_client
from ..parsing import extract_json_object
from ..schemas import NEUTRAL_SCORE, Evaluation, EvaluatorRequest, Message, StepSpec

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/evaluator", tags=["evaluator"])


MIN_SCORE = 1
MAX_SCORE = 5
# Only the most recent turns are shown to the grader
EVALUATOR_CONTEXT = 3

EVALUATOR_PROMPT = """You are an AI math tutor's evaluation system that assesses student understanding.

Analyze the student's response and provide a score from 1-5:
1: Very confused, needs complete re-explanation
2: Struggling but showing some basic understanding
3: Basic understanding with some gaps
4: Good understanding with minor uncertainties
5: Excellent understanding of the concept

IMPORTANT RULES:
1. Focus on understanding, not grammar or politeness
2. Short responses like "idk" or "??" indicate confusion (score 1)
3. Consider context from previous messages
4. Look for signs of conceptual understanding over perfect answers

Provide your assessment as a JSON object with a score field and, optionally, a one-line
feedback string for the student and a short reasoning string:
{"score": number, "feedback": string, "reasoning": string}

Example scoring:
"idk" -> {"score": 1}
"it makes a U shape because the x² term" -> {"score": 4}
"i think it's related to speed and distance" -> {"score": 3}"""


def resolve_step(current_step: Optional[Union[int, StepSpec]]) -> Optional[StepSpec]:
	if current_step is None:
		return None
	if isinstance(current_step, StepSpec):
		return current_step
	return get_step(current_step)


def build_evaluator_prompt(step: Optional[StepSpec]) -> str:
	if step is None:
		return EVALUATOR_PROMPT
	keywords = ", ".join(step.keywords) or "none listed"
	return (
		f"{EVALUATOR_PROMPT}\n\n"
		f"The student is working on the step \"{step.title}\".\n"
		f"Objective: {step.objective}\n"
		f"Ideas an answer that understands this step usually mentions: {keywords}\n"
		"Also include a boolean field proceed: true only when the student has clearly met the objective "
		"and is ready for the next step."
	)


def parse_evaluation(raw: str, *, step: Optional[StepSpec] = None, message: str = "") -> Evaluation:
	"""Read the grader's JSON; malformed or out-of-range scores become neutral."""
	try:
		data: Dict[str, Any] = extract_json_object(raw)
	except ValueError:
		logger.warning("Evaluator output was not JSON, using neutral score: %r", raw)
		data = {}
	score = data.get("score")
	if isinstance(score, bool) or not isinstance(score, (int, float)) or not MIN_SCORE <= score <= MAX_SCORE:
		score = NEUTRAL_SCORE
	feedback = data.get("feedback") if isinstance(data.get("feedback"), str) else None
	reasoning = data.get("reasoning") if isinstance(data.get("reasoning"), str) else None
	proceed: Optional[bool] = None
	if step is not None:
		proceed = data.get("proceed") is True
		if not reasoning:
			hits = matched_keywords(step, message)
			if hits:
				reasoning = f"Mentioned expected ideas: {', '.join(hits)}"
	return Evaluation(
		score=float(score),
		feedback=feedback.strip() or None if feedback else None,
		reasoning=reasoning.strip() or None if reasoning else None,
		proceed=proceed,
	)


async def evaluate(
	client: GeminiClient,
	message: str,
	history: Sequence[Message],
	current_step: Optional[Union[int, StepSpec]] = None,
) -> Evaluation:
	step = resolve_step(current_step)
	turns: List[Dict[str, str]] = [{"role": m.role, "content": m.content} for m in list(history)[-EVALUATOR_CONTEXT:]]
	turns.append({"role": "user", "content": message})
	raw = await client.chat(build_evaluator_prompt(step), turns, temperature=0.3, max_tokens=150)
	evaluation = parse_evaluation(raw, step=step, message=message)
	logger.info("Evaluator score=%s proceed=%s", evaluation.score, evaluation.proceed)
	return evaluation


@router.post("")
async def evaluator(req: EvaluatorRequest, client: GeminiClient = Depends(get_llm_client)):
	logger.info("Evaluator request received (context=%d)", len(req.messages))
	try:
		evaluation = await evaluate(client, req.message, req.messages, req.current_step)
	except Exception:
		logger.exception("Evaluator request failed")
		return JSONResponse(status_code=500, content={"error": "Failed to process the request"})
	return evaluation.model_dump(exclude_none=True)
