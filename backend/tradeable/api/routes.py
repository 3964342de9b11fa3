import uuid
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tradeable.cache import get_news_digest, set_news_digest
from tradeable.db.models import ChatHistory
from tradeable.db.session import get_session
from tradeable.errors import InvalidWeightingStrategy, UnknownSource
from tradeable.jobs.news_refresh import build_news_digest
from tradeable.jobs.queue import enqueue_news_refresh
from tradeable.schemas.chat import (
    ChatHistoryCreate,
    ChatHistoryResponse,
    ChatMessage,
    ChatMetadata,
    ChatRequest,
    ChatResponse,
)
from tradeable.schemas.market import MarketSnapshot
from tradeable.schemas.news import NewsDigest, NewsRefreshResponse, TrendingTopic
from tradeable.schemas.provider import SourceResult
from tradeable.schemas.sentiment import (
    BatchSentimentRequest,
    BatchSentimentResponse,
    SentimentRequest,
    SentimentVerdict,
)
from tradeable.sentiment.aggregate import calculate_overall_sentiment
from tradeable.services import Services

router = APIRouter()


def get_services(request: Request) -> Services:
    return request.app.state.services


def _market_context(snapshot: MarketSnapshot) -> dict[str, Any]:
    return {
        "origin": snapshot.origin,
        "coins": [
            {
                "symbol": coin.symbol,
                "price": coin.price,
                "price_change_percent_24h": coin.price_change_percent_24h,
                "sentiment": coin.sentiment,
                "rsi": coin.technical_indicators.rsi,
            }
            for coin in snapshot.coins
        ],
        "stats": {
            "total_market_cap": snapshot.stats.total_market_cap,
            "btc_dominance": snapshot.stats.btc_dominance,
            "fear_greed_index": snapshot.stats.fear_greed_index,
            "global_sentiment": snapshot.stats.global_sentiment,
            "trending": snapshot.stats.trending,
        },
    }


def _history_response(item: ChatHistory) -> ChatHistoryResponse:
    return ChatHistoryResponse(
        id=str(item.id),
        user_id=item.user_id,
        title=item.title,
        category=item.category,
        messages=item.messages or [],
        created_at=item.created_at,
    )


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/market", response_model=MarketSnapshot)
async def market_endpoint(services: Services = Depends(get_services)) -> MarketSnapshot:
    return await services.aggregator.get_snapshot()


@router.get("/news", response_model=NewsDigest)
async def news_endpoint(services: Services = Depends(get_services)) -> NewsDigest:
    cached = await get_news_digest()
    if cached:
        return cached
    digest = await build_news_digest(services.news, services.analyzer)
    await set_news_digest(digest)
    return digest


@router.post("/news/refresh", response_model=NewsRefreshResponse)
def refresh_news_endpoint() -> NewsRefreshResponse:
    job = enqueue_news_refresh()
    return NewsRefreshResponse(job_id=job.id, job_status="queued")


@router.get("/social/trending", response_model=SourceResult[list[TrendingTopic]])
async def trending_endpoint(
    window_hours: int = 24,
    services: Services = Depends(get_services),
) -> SourceResult[list[TrendingTopic]]:
    return await services.social.get_trending_topics(window_hours=window_hours)


@router.post("/sentiment", response_model=SentimentVerdict)
async def sentiment_endpoint(
    payload: SentimentRequest, services: Services = Depends(get_services)
) -> SentimentVerdict:
    return await services.analyzer.analyze(payload.text)


@router.post("/sentiment/batch", response_model=BatchSentimentResponse)
async def batch_sentiment_endpoint(
    payload: BatchSentimentRequest, services: Services = Depends(get_services)
) -> BatchSentimentResponse:
    verdicts = await services.analyzer.analyze_many(payload.texts)
    return BatchSentimentResponse(
        verdicts=verdicts,
        overall=calculate_overall_sentiment(verdicts, services.analyzer.settings),
    )


@router.post("/chat", response_model=ChatResponse)
async def chat_endpoint(
    payload: ChatRequest, services: Services = Depends(get_services)
) -> ChatResponse:
    message = payload.message.strip()
    if not message:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Message is required.",
        )

    snapshot = await services.aggregator.get_snapshot()
    enabled_sources: Optional[list[str]] = None
    weighting: Optional[str] = None
    if payload.options is not None:
        enabled_sources = payload.options.enabled_sources()
        weighting = payload.options.weighting_strategy

    try:
        ensemble = await services.ensembler.generate_ensemble(
            message,
            _market_context(snapshot),
            enabled_sources=enabled_sources,
            weighting=weighting,
        )
    except (InvalidWeightingStrategy, UnknownSource) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    user_message = ChatMessage(role="user", content=message, intent="USER_QUERY")
    assistant_message = ChatMessage(
        role="assistant",
        content=ensemble.final_response,
        intent="AI_RESPONSE",
        metadata=ChatMetadata(ensemble=ensemble, market_origin=snapshot.origin),
    )
    return ChatResponse(
        user_message=user_message,
        assistant_message=assistant_message,
        conversation_id=payload.conversation_id or str(uuid.uuid4()),
    )


@router.get("/chat/history", response_model=list[ChatHistoryResponse])
async def list_chat_history(
    user_id: Optional[str] = None, db: AsyncSession = Depends(get_session)
) -> list[ChatHistoryResponse]:
    stmt = select(ChatHistory).order_by(ChatHistory.created_at.desc())
    if user_id:
        stmt = stmt.where(ChatHistory.user_id == user_id)
    result = await db.execute(stmt)
    return [_history_response(item) for item in result.scalars().all()]


@router.post("/chat/history", response_model=ChatHistoryResponse)
async def create_chat_history(
    payload: ChatHistoryCreate, db: AsyncSession = Depends(get_session)
) -> ChatHistoryResponse:
    title = payload.title.strip()
    if not title:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Title is required.",
        )
    item = ChatHistory(
        user_id=payload.user_id,
        title=title,
        category=payload.category.strip() or "General",
        messages=[message.model_dump(mode="json") for message in payload.messages],
    )
    db.add(item)
    await db.commit()
    await db.refresh(item)
    return _history_response(item)


@router.delete("/chat/history")
async def clear_chat_history(
    user_id: Optional[str] = None, db: AsyncSession = Depends(get_session)
) -> dict:
    stmt = delete(ChatHistory)
    if user_id:
        stmt = stmt.where(ChatHistory.user_id == user_id)
    result = await db.execute(stmt)
    await db.commit()
    return {"deleted": int(result.rowcount or 0)}


@router.delete("/chat/history/{history_id}", response_model=ChatHistoryResponse)
async def delete_chat_history(
    history_id: str, db: AsyncSession = Depends(get_session)
) -> ChatHistoryResponse:
    try:
        history_uuid = uuid.UUID(history_id)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Chat history not found.",
        ) from exc
    item = await db.get(ChatHistory, history_uuid)
    if item is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Chat history not found.",
        )
    response = _history_response(item)
    await db.delete(item)
    await db.commit()
    return response
