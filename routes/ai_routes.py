from fastapi import APIRouter
from controllers.ai_controller import generate_questions, ai_health


ai_router = APIRouter(prefix="/api/ai", tags=["AI"])

ai_router.post("/generate-questions")(generate_questions)
ai_router.get("/health")(ai_health)
