from __future__ import annotations
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


Role = Literal["user", "assistant", "system"]

# Sentinel the tutor treats as "open the session"
START_SESSION = "START_SESSION"
NEUTRAL_SCORE = 3.0


class Message(BaseModel):
	role: Role
	content: str


class Verdict(BaseModel):
	safe: bool = True
	warning: Optional[str] = None
	severity: int = 0


class Evaluation(BaseModel):
	score: Optional[float] = None
	feedback: Optional[str] = None
	reasoning: Optional[str] = None
	proceed: Optional[bool] = None


class StepSpec(BaseModel):
	"""A curriculum step passed inline to the evaluator."""
	id: Optional[int] = None
	title: str
	objective: str = ""
	keywords: List[str] = Field(default_factory=list)


class TutorRequest(BaseModel):
	message: str
	messages: List[Message] = Field(default_factory=list)


class TutorResponse(BaseModel):
	reply: str


class GuardrailRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	message: str
	time_elapsed: float = Field(default=0, alias="timeElapsed")
	warning_count: int = Field(default=0, alias="warningCount")


class EvaluatorRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	message: str
	messages: List[Message] = Field(default_factory=list)
	current_step: Optional[Union[int, StepSpec]] = Field(default=None, alias="currentStep")


class ChatRequest(BaseModel):
	message: str


class ChatResponse(BaseModel):
	message: str
