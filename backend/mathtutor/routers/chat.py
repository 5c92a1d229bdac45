import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..gemini_client import GeminiClient, get_llm_client
from ..schemas import ChatRequest, ChatResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

FALLBACK_REPLY = "Sorry, I could not generate a response."

@router.post("", response_model=ChatResponse)
async def chat(req: ChatRequest, client: GeminiClient = Depends(get_llm_client)):
	try:
		text = await client.generate(req.message)
	except Exception:
		logger.exception("Chat request failed")
		return JSONResponse(status_code=500, content={"error": "Failed to process the request"})
	return ChatResponse(message=(text or "").strip() or FALLBACK_REPLY)
