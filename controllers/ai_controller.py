from typing import Literal

from fastapi import Body, Depends
from pydantic import BaseModel, Field

from auth.utils import get_current_user
from services.ai_analyzer import ResumeAnalyzer, get_analyzer


class GenerateQuestionsRequest(BaseModel):
    role: str = Field("Full Stack Developer", min_length=1, max_length=100)
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    count: int = Field(1, ge=1, le=10)


async def generate_questions(
    request: GenerateQuestionsRequest = Body(...),
    current_user=Depends(get_current_user),
    analyzer: ResumeAnalyzer = Depends(get_analyzer),
):
    outcome = await analyzer.generate_questions(request.role, request.difficulty, request.count)
    response = {"success": outcome.success, "questions": outcome.data}
    if not outcome.success:
        response["error"] = outcome.error
        response["note"] = outcome.note
    return response


async def ai_health(
    current_user=Depends(get_current_user),
    analyzer: ResumeAnalyzer = Depends(get_analyzer),
):
    return {
        "success": True,
        "configured": analyzer.configured,
        "model": analyzer.model,
        "timeout": analyzer.timeout,
    }
