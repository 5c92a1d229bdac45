from __future__ import annotations
import logging
from typing import Dict, List, Sequence

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..gemini_client import GeminiClient, get_llm_client
from ..schemas import START_SESSION, Message, TutorRequest, TutorResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tutor", tags=["tutor"])


FALLBACK_REPLY = "Sorry, I could not generate a response."

TUTOR_PROMPT = """You are a friendly and engaging math tutor specializing in quadratic equations.

KEY RULES:
1. Keep messages SHORT - 1-2 sentences max
2. Be casual and friendly, like texting
3. If student seems confused, break into smaller steps
4. Ask ONE question at a time
5. Give lots of encouragement
6. Never lecture or give long explanations
7. If student says "idk" or is stuck, give a simple hint
8. Use real-world examples when possible

You are teaching about:
- What quadratic equations are
- Why they make U-shaped graphs
- How to find their roots
- Real-world applications

Avoid mathematical notation unless specifically discussing an equation."""

START_PROMPT = """You are starting a friendly chat about quadratic equations.

RULES:
1. Start with ONE short greeting
2. Ask ONE simple opening question
3. Keep it super casual
4. Don't explain the format
5. Make it fun!

Example good response:
"Hey there! 👋 Ever seen a U-shaped curve in real life?"

Example bad response (TOO LONG):
"Hello! I'm your math tutor for today's session on quadratic equations. We'll be exploring various concepts including..."
"""

# Gemini needs at least one user turn to answer
START_NUDGE = "Hi! I'm ready to start."


def build_tutor_messages(message: str, history: Sequence[Message]) -> tuple[str, List[Dict[str, str]]]:
	if message == START_SESSION:
		return START_PROMPT, [{"role": "user", "content": START_NUDGE}]
	turns = [{"role": m.role, "content": m.content} for m in history]
	turns.append({"role": "user", "content": message})
	return TUTOR_PROMPT, turns


async def respond(client: GeminiClient, message: str, history: Sequence[Message]) -> str:
	system, turns = build_tutor_messages(message, history)
	reply = await client.chat(system, turns, temperature=0.8, max_tokens=150)
	reply = (reply or "").strip()
	return reply or FALLBACK_REPLY


@router.post("", response_model=TutorResponse)
async def tutor(req: TutorRequest, client: GeminiClient = Depends(get_llm_client)):
	logger.info("Tutor request received (start=%s, context=%d)", req.message == START_SESSION, len(req.messages))
	try:
		reply = await respond(client, req.message, req.messages)
	except Exception:
		logger.exception("Tutor request failed")
		return JSONResponse(status_code=500, content={"error": "Failed to get response from the tutor model"})
	return TutorResponse(reply=reply)
