"""
FastAPI Backend for the Adaptive Bloom Tutor

Provides REST API endpoints for:
- Single-question generation at a Bloom's level
- Study recommendations for a level and performance score
- Streaming AI problem solver (server-sent events)
- Adaptive quiz sessions driven by the engine (authenticated)
"""

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Literal
import os
import sys
import json
import time
import logging
import signal

# Setup enhanced logging with pretty formatting
from lib.logger import setup_logging, get_logger

setup_logging(level=logging.INFO, use_colors=True)

logger = get_logger("backend.quiz")

# Add the adaptive_bloom_tutor package to Python path
backend_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(backend_dir)
package_src = os.path.join(project_root, 'adaptive_bloom_tutor', 'src')
if os.path.exists(package_src) and package_src not in sys.path:
    sys.path.insert(0, package_src)

from lib.auth import get_current_user, require_lecturer
from lib.quiz_sessions import QuizSessionRegistry, QuizSessionEntry

from adaptive_bloom_tutor.adaptive_engine import AdaptiveQuizEngine
from adaptive_bloom_tutor.chat_stream import ChatAssistant, SSE_DONE, encode_sse_delta
from adaptive_bloom_tutor.config import LLMSettings
from adaptive_bloom_tutor.errors import QuizError
from adaptive_bloom_tutor.llm_client import LLMClient
from adaptive_bloom_tutor.question_provider import QuestionProvider
from adaptive_bloom_tutor.recommendations import RecommendationSynthesizer
from adaptive_bloom_tutor.session_state import SessionPhase
from adaptive_bloom_tutor.taxonomy import level_by_ordinal

# Singletons, created on first use
_llm_client: Optional[LLMClient] = None
_quiz_registry: Optional[QuizSessionRegistry] = None


def get_llm_client() -> LLMClient:
    """Get or create the shared completion service client."""
    global _llm_client
    if _llm_client is None:
        try:
            _llm_client = LLMClient(LLMSettings.from_env())
        except ValueError as e:
            logger.error("AI service not configured", error=e)
            raise HTTPException(status_code=503, detail="AI service not configured")
    return _llm_client


def get_question_provider(llm: LLMClient = Depends(get_llm_client)) -> QuestionProvider:
    return QuestionProvider(llm)


def get_recommendation_synthesizer(llm: LLMClient = Depends(get_llm_client)) -> RecommendationSynthesizer:
    return RecommendationSynthesizer(llm)


def get_chat_assistant(llm: LLMClient = Depends(get_llm_client)) -> ChatAssistant:
    return ChatAssistant(llm)


def get_quiz_registry() -> QuizSessionRegistry:
    """Get or create the quiz session registry; engines share one provider."""
    global _quiz_registry
    if _quiz_registry is None:
        _quiz_registry = QuizSessionRegistry(
            lambda: AdaptiveQuizEngine(QuestionProvider(get_llm_client()))
        )
    return _quiz_registry


app = FastAPI(
    title="Adaptive Bloom Tutor API",
    description="Adaptive Bloom's Taxonomy quizzes, study recommendations and AI problem solving",
    version="1.0.0"
)

# Permissive by default so browser pre-flight requests succeed from any origin
cors_origins = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials="*" not in cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(QuizError)
async def quiz_error_handler(request: Request, exc: QuizError):
    if exc.status_code >= 500:
        logger.warning(f"Upstream failure on {request.url.path}", data={"error": exc.message})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# ==================== Pydantic Models ====================

class GenerateQuizRequest(BaseModel):
    subject: str = Field(min_length=1)
    bloomLevel: int = Field(ge=1, le=6)
    topic: Optional[str] = None


class RecommendationRequest(BaseModel):
    subject: str = ""
    currentLevel: int = Field(ge=1, le=6)
    performanceScore: int = Field(default=75, ge=0, le=100)
    topics: List[str] = []


class SolverMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class SolverRequest(BaseModel):
    messages: List[SolverMessage] = Field(min_length=1)


class StartQuizRequest(BaseModel):
    subject: str = Field(min_length=1)
    topic: Optional[str] = None


class SelectAnswerRequest(BaseModel):
    index: int


# ==================== Helper Functions ====================

def session_view(entry: QuizSessionEntry) -> Dict[str, Any]:
    """Render a quiz session; the answer key is hidden until submission."""
    engine = entry.engine
    state = engine.state
    summary = engine.summary()

    question = None
    if state.current_question is not None:
        q = state.current_question
        question = {
            "question": q.stem,
            "options": list(q.options),
            "bloomLevel": q.level,
            "bloomName": level_by_ordinal(q.level).name,
        }
        if state.answered_current:
            question["correctIndex"] = q.correct_option_index
            question["explanation"] = q.explanation
            question["correct"] = engine.is_current_answer_correct()

    return {
        "sessionId": entry.session_id,
        "phase": state.phase.value,
        "subject": state.subject,
        "topic": state.topic,
        "currentLevel": level_by_ordinal(state.current_level).to_dict(),
        "highestLevelAchieved": state.highest_level_achieved,
        "selectedOptionIndex": state.selected_option_index,
        "question": question,
        "summary": {
            "totalAnswered": summary.total_answered,
            "correctAnswers": summary.correct_answers,
            "performanceScore": summary.performance_score,
            "highestLevel": summary.highest_level.to_dict() if summary.highest_level else None,
            "journey": [
                {"level": step["level"], "levelName": step["level_name"], "correct": step["correct"]}
                for step in summary.journey
            ],
        },
    }


# ==================== API Endpoints ====================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "Adaptive Bloom Tutor API",
        "version": "1.0.0",
        "active_quiz_sessions": len(get_quiz_registry()),
    }


@app.post("/api/generate-quiz")
async def generate_quiz(body: GenerateQuizRequest, provider: QuestionProvider = Depends(get_question_provider)):
    """Generate one multiple-choice question at the requested Bloom's level."""
    start_time = time.time()
    logger.request("POST", "/api/generate-quiz", data={"subject": body.subject, "bloomLevel": body.bloomLevel})
    try:
        question = await provider.fetch_question(body.subject, body.bloomLevel, body.topic)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.response(200, "/api/generate-quiz", duration=time.time() - start_time)
    return question.to_dict()


@app.post("/api/study-recommendations")
async def study_recommendations(body: RecommendationRequest,
                                synthesizer: RecommendationSynthesizer = Depends(get_recommendation_synthesizer)):
    """Study materials, strategies and practice for a Bloom's level."""
    start_time = time.time()
    logger.request("POST", "/api/study-recommendations", data={
        "subject": body.subject,
        "currentLevel": body.currentLevel,
        "performanceScore": body.performanceScore,
    })
    bundle = await synthesizer.get_recommendations(
        body.subject, body.currentLevel, body.performanceScore, body.topics
    )
    logger.response(200, "/api/study-recommendations", duration=time.time() - start_time, data={
        "recommendations": len(bundle.recommendations),
        "strategies": len(bundle.strategies),
    })
    return bundle.to_dict()


@app.post("/api/ai-solver")
async def ai_solver(body: SolverRequest, assistant: ChatAssistant = Depends(get_chat_assistant)):
    """
    Stream an assistant reply as server-sent events.

    The first delta is awaited before the response starts so upstream failures
    still produce a proper status code.
    """
    logger.request("POST", "/api/ai-solver", data={"messages": len(body.messages)})
    deltas = assistant.stream_reply([m.model_dump() for m in body.messages])
    try:
        first = await anext(deltas, None)
    except QuizError:
        await deltas.aclose()
        raise

    async def generate():
        try:
            if first is not None:
                yield encode_sse_delta(first)
            async for delta in deltas:
                yield encode_sse_delta(delta)
        except QuizError as e:
            logger.error("Error in ai_solver stream", error=e)
            yield f"data: {json.dumps({'error': e.message})}\n\n"
        yield SSE_DONE

    return StreamingResponse(generate(), media_type="text/event-stream")


@app.post("/api/quiz/sessions", status_code=201)
async def start_quiz_session(body: StartQuizRequest, user: dict = Depends(get_current_user),
                             registry: QuizSessionRegistry = Depends(get_quiz_registry)):
    """Create a quiz session and fetch its first (Remember-level) question."""
    logger.section("QUIZ START", {"subject": body.subject, "topic": body.topic})
    entry = registry.create(user["id"])
    try:
        async with entry.lock:
            await entry.engine.start(body.subject, body.topic)
    except ValueError as e:
        registry.remove(entry.session_id, user["id"])
        raise HTTPException(status_code=400, detail=str(e))
    except BaseException:
        registry.remove(entry.session_id, user["id"])
        raise
    logger.success("Quiz session started", data={"session_id": entry.session_id})
    return session_view(entry)


@app.get("/api/quiz/sessions/{session_id}")
async def get_quiz_session(session_id: str, user: dict = Depends(get_current_user),
                           registry: QuizSessionRegistry = Depends(get_quiz_registry)):
    return session_view(registry.get(session_id, user["id"]))


@app.post("/api/quiz/sessions/{session_id}/start")
async def restart_quiz_session(session_id: str, body: StartQuizRequest, user: dict = Depends(get_current_user),
                               registry: QuizSessionRegistry = Depends(get_quiz_registry)):
    """Start a session again after a reset."""
    entry = registry.get(session_id, user["id"])
    async with entry.lock:
        try:
            await entry.engine.start(body.subject, body.topic)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    return session_view(entry)


@app.post("/api/quiz/sessions/{session_id}/select")
async def select_quiz_answer(session_id: str, body: SelectAnswerRequest, user: dict = Depends(get_current_user),
                             registry: QuizSessionRegistry = Depends(get_quiz_registry)):
    entry = registry.get(session_id, user["id"])
    async with entry.lock:
        entry.engine.select_answer(body.index)
    return session_view(entry)


@app.post("/api/quiz/sessions/{session_id}/submit")
async def submit_quiz_answer(session_id: str, user: dict = Depends(get_current_user),
                             registry: QuizSessionRegistry = Depends(get_quiz_registry)):
    entry = registry.get(session_id, user["id"])
    async with entry.lock:
        outcome = entry.engine.submit_answer()
    logger.info("Answer recorded", data={"session_id": session_id, "level": outcome.level, "correct": outcome.correct})
    return session_view(entry)


@app.post("/api/quiz/sessions/{session_id}/advance")
async def advance_quiz_session(session_id: str, user: dict = Depends(get_current_user),
                               registry: QuizSessionRegistry = Depends(get_quiz_registry)):
    """Move up a level, retry the current level, or complete the quiz."""
    entry = registry.get(session_id, user["id"])
    async with entry.lock:
        state = await entry.engine.advance()
    if state.phase == SessionPhase.COMPLETE:
        logger.success("Quiz complete", data={"session_id": session_id, "highest_level": state.highest_level_achieved})
    return session_view(entry)


@app.post("/api/quiz/sessions/{session_id}/reset")
async def reset_quiz_session(session_id: str, user: dict = Depends(get_current_user),
                             registry: QuizSessionRegistry = Depends(get_quiz_registry)):
    entry = registry.get(session_id, user["id"])
    async with entry.lock:
        entry.engine.reset()
    return session_view(entry)


@app.delete("/api/quiz/sessions/{session_id}")
async def delete_quiz_session(session_id: str, user: dict = Depends(get_current_user),
                              registry: QuizSessionRegistry = Depends(get_quiz_registry)):
    registry.remove(session_id, user["id"])
    return {"status": "deleted", "session_id": session_id}


@app.get("/api/quiz/overview")
async def quiz_overview(user: dict = Depends(get_current_user),
                        registry: QuizSessionRegistry = Depends(get_quiz_registry)):
    """Lecturer view of every live quiz session's progress."""
    require_lecturer(user)
    overview = []
    for entry in registry.all():
        summary = entry.engine.summary()
        overview.append({
            "sessionId": entry.session_id,
            "studentId": entry.owner_id,
            "subject": summary.subject,
            "phase": summary.phase.value,
            "currentLevel": summary.current_level,
            "highestLevel": summary.highest_level.ordinal if summary.highest_level else 0,
            "performanceScore": summary.performance_score,
            "totalAnswered": summary.total_answered,
            "createdAt": entry.created_at.isoformat(),
            "lastSeen": entry.last_seen.isoformat(),
        })
    return {"sessions": overview}


@app.on_event("shutdown")
async def shutdown_event():
    """Shutdown event - close the completion service client."""
    if _llm_client is not None:
        await _llm_client.close()
        logger.info("🛑 AI client closed")


if __name__ == "__main__":
    import uvicorn

    def handle_exit(*args):
        """Handle graceful shutdown."""
        logger.section("SERVER SHUTDOWN", {"reason": "signal received"})
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_exit)
    signal.signal(signal.SIGTERM, handle_exit)

    try:
        uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
    except KeyboardInterrupt:
        logger.info("🛑 Server stopped.")
        sys.exit(0)
