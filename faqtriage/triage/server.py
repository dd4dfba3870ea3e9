"""
Triage Server

FastAPI server receiving chat webhooks and triaging each message.

Endpoints:
- POST /slack/events: Slack webhook endpoint
- GET /health: Health check
- GET /stats: Store counts and triage outcome counters
- GET /questions: Most recent questions
- GET /questions/search: Stored questions similar to a query

Pipeline (per message, in the background):
1. Parse webhook event into an InboundMessage
2. Classify: question or not
3. Question: redirect to a duplicate or open a new thread
4. Otherwise: link to open questions it answers
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from ..common.config import TriageConfig, ensure_directories, load_config, validate_config
from ..common.embedding_service import EmbeddingService
from ..common.judge import SemanticJudge
from ..common.knowledge_store import InMemoryKnowledgeStore, KnowledgeStore
from ..common.llm_client import LLMClient
from ..common.schemas import preview
from ..common.sqlite_store import SQLiteKnowledgeStore
from .claims import FingerprintClaims
from .classifier import QuestionClassifier
from .correlator import AnswerCorrelator
from .enrichment import QuestionEnricher
from .handlers import InboundMessage, SlackHandler, SlackPlatform
from .matcher import JudgedStrategy, SimilarityMatcher, VectorStrategy
from .orchestrator import TriageOrchestrator
from .rules import load_rules

logger = logging.getLogger("faqtriage.triage.server")


@dataclass
class TriageComponents:
    """Collaborators built once at startup and shared by all requests"""
    config: TriageConfig
    store: KnowledgeStore
    embedding_service: Optional[EmbeddingService]
    llm_client: Optional[LLMClient]
    judge: SemanticJudge
    classifier: QuestionClassifier
    matcher: SimilarityMatcher
    correlator: AnswerCorrelator
    orchestrator: TriageOrchestrator
    slack_handler: SlackHandler
    platform: SlackPlatform


def build_store(config: TriageConfig) -> KnowledgeStore:
    if config.store.backend == "memory":
        return InMemoryKnowledgeStore()
    return SQLiteKnowledgeStore(config.store.sqlite_path)


def build_components(config: TriageConfig) -> TriageComponents:
    """
    Wire every collaborator from a validated configuration.

    The embedding model is only loaded when the vector strategy needs it;
    with the judged strategy the embedder is used for enrichment only.
    """
    store = build_store(config)
    logger.info("Knowledge store: %s", config.store.backend)

    llm_client = LLMClient.from_config(config.llm)
    if llm_client.is_available:
        logger.info("LLM client ready (%s/%s)", llm_client.provider, llm_client.model)
    else:
        logger.warning("LLM client not available, classifier runs on heuristics only")

    judge = SemanticJudge(
        llm_client,
        timeout=config.llm.timeout_seconds,
        max_concurrent=config.matcher.max_concurrent_judge_calls,
    )

    embedding_service = EmbeddingService(model=config.embedding.model)

    rules = load_rules(config.classifier.rules_path or None)
    classifier = QuestionClassifier(judge=judge, rules=rules)
    logger.info("Classifier ready (%d rules)", classifier.rule_count)

    if config.matcher.strategy == "vector":
        strategy = VectorStrategy(embedding_service, timeout=config.embedding.timeout_seconds)
    else:
        strategy = JudgedStrategy(judge)

    options = config.to_options()
    matcher = SimilarityMatcher(
        strategy,
        similarity_threshold=options.similarity_threshold,
        confidence_tiers=options.confidence_tiers,
    )
    logger.info("Matcher ready (strategy: %s, threshold: %.2f)", matcher.strategy_name, matcher.threshold)

    correlator = AnswerCorrelator(judge=judge)

    claims = None
    if config.matcher.claims_enabled:
        claims = FingerprintClaims(ttl_seconds=config.matcher.claim_ttl_seconds)

    enricher = QuestionEnricher(
        store,
        embedding_service=embedding_service,
        llm_client=llm_client,
        timeout=config.llm.timeout_seconds,
    )

    slack_handler = SlackHandler(signing_secret=config.slack.signing_secret)
    platform = SlackPlatform(
        bot_token=config.slack.bot_token,
        forum_channel_id=config.slack.forum_channel_id,
    )

    orchestrator = TriageOrchestrator(
        store=store,
        classifier=classifier,
        matcher=matcher,
        correlator=correlator,
        platform=platform,
        options=options,
        enricher=enricher,
        claims=claims,
        notify_on_failure=config.server.notify_on_failure,
    )

    return TriageComponents(
        config=config,
        store=store,
        embedding_service=embedding_service,
        llm_client=llm_client,
        judge=judge,
        classifier=classifier,
        matcher=matcher,
        correlator=correlator,
        orchestrator=orchestrator,
        slack_handler=slack_handler,
        platform=platform,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    logger.info("Starting up...")

    ensure_directories()

    config = load_config()
    validate_config(config)

    components = build_components(config)
    app.state.components = components
    logger.info("Ready to receive events")

    yield

    logger.info("Shutting down...")
    await components.orchestrator.wait_for_background()
    await components.platform.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title="FAQ Triage",
        description="Duplicate-question detection and answer linking for chat communities",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.components = None
    _register_routes(app)
    return app


def _components(request: Request) -> TriageComponents:
    components = getattr(request.app.state, "components", None)
    if components is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return components


# =============================================================================
# Background Tasks
# =============================================================================

async def process_message(orchestrator: TriageOrchestrator, message: InboundMessage):
    """Triage one message; outcome is logged by the orchestrator"""
    outcome = await orchestrator.process(message)
    logger.info("Message %s -> %s", message.source_message_id, outcome.action.value)


# =============================================================================
# Endpoints
# =============================================================================

def _register_routes(app: FastAPI) -> None:

    @app.get("/health")
    async def health(request: Request):
        """Health check endpoint"""
        components = getattr(request.app.state, "components", None)
        if components is None:
            return {"status": "starting", "service": "faqtriage", "initialized": False}

        return {
            "status": "healthy",
            "service": "faqtriage",
            "initialized": True,
            "strategy": components.matcher.strategy_name,
            "judge_available": components.judge.is_available,
            "embedding_model": components.embedding_service.model_name if components.embedding_service else None,
            "classifier_rules": components.classifier.rule_count,
            "store_backend": components.config.store.backend,
        }

    @app.post("/slack/events")
    async def slack_events(
        request: Request,
        background_tasks: BackgroundTasks,
        x_slack_signature: Optional[str] = Header(None),
        x_slack_request_timestamp: Optional[str] = Header(None),
    ):
        """
        Handle Slack webhook events.

        Acknowledges immediately; triage runs in the background.
        """
        components = _components(request)
        handler = components.slack_handler

        body = await request.body()

        if not handler.verify_signature(
            body,
            x_slack_signature or "",
            x_slack_request_timestamp or "",
        ):
            raise HTTPException(status_code=401, detail="Invalid signature")

        try:
            data = json.loads(body)
        except json.JSONDecodeError:
            raise HTTPException(status_code=400, detail="Invalid JSON")

        if handler.is_url_verification(data):
            return JSONResponse({"challenge": handler.get_challenge(data)})

        message = await handler.parse_event(data)

        if message and handler.should_process(message):
            background_tasks.add_task(process_message, components.orchestrator, message)

        return JSONResponse({"ok": True})

    @app.get("/stats")
    async def get_stats(request: Request):
        """Get triage statistics"""
        components = _components(request)
        return {
            "service": "faqtriage",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "store": await asyncio.to_thread(components.store.get_stats),
            "outcomes": components.orchestrator.get_stats(),
            "judge": {
                "available": components.judge.is_available,
                "calls": components.judge.call_count,
                "failures": components.judge.failure_count,
            },
            "matcher": {
                "strategy": components.matcher.strategy_name,
                "threshold": components.matcher.threshold,
            },
        }

    @app.get("/questions")
    async def list_questions(request: Request, limit: int = Query(10, ge=1, le=100)):
        """Most recent questions with their answer counts"""
        components = _components(request)
        store = components.store

        questions = await asyncio.to_thread(store.list_recent_questions, limit)
        counts = await asyncio.to_thread(store.count_answers, [q.id for q in questions])
        return {
            "count": len(questions),
            "items": [
                {
                    "id": q.id,
                    "question": preview(q.content, 100),
                    "author_id": q.author_id,
                    "created_at": q.created_at.isoformat(),
                    "thread_id": q.thread_id,
                    "answers": counts[q.id],
                }
                for q in questions
            ],
        }

    @app.get("/questions/search")
    async def search_questions(
        request: Request,
        q: str = Query(..., min_length=1),
        limit: int = Query(3, ge=1, le=20),
    ):
        """Stored questions similar to ``q``, best first"""
        components = _components(request)
        store = components.store

        candidates = await asyncio.to_thread(store.list_all_questions)
        ranked = await components.matcher.rank(q, candidates, limit=limit)

        items = []
        for candidate in ranked:
            answers = await asyncio.to_thread(store.list_answers, candidate.question.id)
            thread = await asyncio.to_thread(store.find_thread_by_id, candidate.question.thread_id)
            items.append({
                "id": candidate.question.id,
                "question": preview(candidate.question.content, 100),
                "answer": preview(answers[0].content, 200) if answers else None,
                "score": round(candidate.score, 4),
                "tier": candidate.tier.value,
                "thread_url": thread.url if thread else None,
            })

        return {"query": q, "count": len(items), "items": items}


app = create_app()


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the triage server"""
    import uvicorn

    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.server.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger.info("Starting server on %s:%d", config.server.host, config.server.port)
    uvicorn.run(
        "faqtriage.triage.server:app",
        host=config.server.host,
        port=config.server.port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
