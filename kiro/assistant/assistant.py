"""Chat orchestration for the Kiro weather assistant."""

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional, Protocol, Sequence

from loguru import logger

from .config import Config
from .coordinator import RequestCoordinator
from .errors import BudgetExceeded, ExternalCallFailure
from .expressions import Expression
from .llm_client import ChatMessage, ChatResult, LLMClient
from .prompts import PromptBuilder, PromptPackage, WeatherSnapshot, estimate_tokens, shorten_message
from .resolver import ExpressionResolver, ExpressionResult
from .response_cache import ResponseCache, make_cache_key
from .scoring import VarietyPolicy
from .token_tracker import TokenBudgetTracker


class ChatCapability(Protocol):
    async def send_chat(self,
                        system_prompt: str,
                        user_prompt: str,
                        history: Optional[Sequence[ChatMessage]] = None) -> ChatResult:
        ...


@dataclass(frozen=True)
class AssistantReply:
    response_text: str
    expression: Expression
    confidence: float
    reason: str = ""
    cached: bool = False
    quick_reply: bool = False


class KiroAssistant:
    """
    Single entry point for the chat UI.

    send_message() flow:
    1. Quick replies for small talk (no API call)
    2. Shorten, build the prompt, check the per-request budget
    3. Serve from cache, or dispatch through the request coordinator
    4. Track tokens and cache the reply
    5. Resolve the mascot expression for the reply
    """

    def __init__(self,
                 config: Config,
                 chat: ChatCapability,
                 resolver: ExpressionResolver,
                 tracker: TokenBudgetTracker,
                 cache: ResponseCache,
                 coordinator: RequestCoordinator,
                 prompt_builder: PromptBuilder):
        self.config = config
        self.chat = chat
        self.resolver = resolver
        self.tracker = tracker
        self.cache = cache
        self.coordinator = coordinator
        self.prompt_builder = prompt_builder

        self._history: Deque[ChatMessage] = deque(maxlen=config.prompt.history_turns * 2)
        self._cleanup_task: Optional[asyncio.Task] = None
        self._running = False

    async def __aenter__(self) -> "KiroAssistant":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def start(self) -> None:
        """Start periodic cache cleanup."""
        if self._running:
            logger.warning("Assistant already running")
            return

        self._running = True
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info("Kiro assistant started")

    async def close(self) -> None:
        """Stop background work, drop scheduled requests and release the HTTP client."""
        self._running = False
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

        self.coordinator.flush()
        close = getattr(self.chat, 'close', None)
        if close is not None:
            await close()
        logger.info("Kiro assistant stopped")

    async def _cleanup_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.config.cache.cleanup_interval_s)
            self._safely("cache cleanup", self.cache.cleanup)

    def _safely(self, label: str, func, *args) -> Any:
        # Cache/tracker trouble must never interrupt the chat flow
        try:
            return func(*args)
        except Exception:
            logger.opt(exception=True).warning(f"{label} failed")
            return None

    @property
    def history(self) -> Sequence[ChatMessage]:
        return tuple(self._history)

    def clear_history(self) -> None:
        self._history.clear()

    async def send_message(self, text: str, weather: Optional[WeatherSnapshot] = None) -> AssistantReply:
        """
        Answer one user message.

        Raises:
            ValueError: If text is empty
            BudgetExceeded: If the prompt is over the per-request ceiling
            ExternalCallFailure: If the chat provider failed
        """
        if not text or not text.strip():
            raise ValueError("message is empty")

        if self.config.prompt.quick_responses:
            quick = self.prompt_builder.quick_response(text)
            if quick is not None:
                logger.debug("Answered with quick reply")
                self._remember(text, quick)
                result = await self._resolve_expression(quick)
                return self._reply(quick, result, quick_reply=True)

        message = shorten_message(text.strip(), self.config.prompt.max_message_chars)
        package = self.prompt_builder.create_prompt_package(message, weather)

        check = self.prompt_builder.validate_budget(
            package.estimated_tokens, self.config.budget.max_tokens_per_request
        )
        if not check.is_valid:
            raise BudgetExceeded(package.estimated_tokens, self.config.budget.max_tokens_per_request, check.warning)

        key = make_cache_key(message, weather)
        cached = self._safely("cache read", self.cache.get, key)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            self._remember(message, cached)
            result = await self._resolve_expression(cached)
            return self._reply(cached, result, cached=True)

        history = self.history
        content = await self.coordinator.execute_with_dedup(
            key,
            lambda: self._dispatch(key, message, package, history),
            debounce=self.config.coordinator.debounce_enabled,
        )

        result = await self._resolve_expression(content)
        return self._reply(content, result)

    async def _dispatch(self,
                        key: str,
                        message: str,
                        package: PromptPackage,
                        history: Sequence[ChatMessage]) -> str:
        result = await self.chat.send_chat(package.system_prompt, package.user_prompt, history)
        if not result.success or not result.content:
            raise ExternalCallFailure(
                result.error_code or 'CHAT_FAILED',
                result.error_message or 'Chat failed',
            )

        self._safely(
            "token tracking",
            self.tracker.track_usage,
            package.estimated_tokens + estimate_tokens(result.content),
            "chat",
        )
        self._safely("cache write", self.cache.set, key, result.content, self.config.cache.ttl_seconds)
        # Once per run, however many callers joined it
        self._remember(message, result.content)
        return result.content

    async def _resolve_expression(self, content: str) -> ExpressionResult:
        if self.config.expression.use_vision:
            return await self.resolver.resolve_with_vision_confirmation(content)
        return self.resolver.resolve_from_text(content)

    def _remember(self, user_text: str, reply: str) -> None:
        if self._history.maxlen == 0:
            return
        self._history.append(ChatMessage('user', user_text))
        self._history.append(ChatMessage('assistant', reply))

    @staticmethod
    def _reply(text: str, result: ExpressionResult, cached: bool = False, quick_reply: bool = False) -> AssistantReply:
        return AssistantReply(
            response_text=text,
            expression=result.expression,
            confidence=result.confidence,
            reason=result.reason,
            cached=cached,
            quick_reply=quick_reply,
        )

    def get_daily_usage(self) -> Dict[str, Any]:
        return self.tracker.get_daily_usage()

    def get_cache_stats(self) -> Dict[str, Any]:
        return self.cache.get_stats()

    def get_coordinator_stats(self) -> Dict[str, int]:
        return self.coordinator.get_stats()


def create_assistant(config: Optional[Config] = None,
                     chat: Optional[ChatCapability] = None,
                     vision=None) -> KiroAssistant:
    """
    Wire up a fresh pipeline.

    Without explicit capabilities, one LLMClient built from config serves
    both chat and expression confirmation.
    """
    config = config or Config()

    if chat is None:
        client = LLMClient.from_config(config)
        chat = client
        if vision is None:
            vision = client

    variety = VarietyPolicy() if config.expression.variety else None
    resolver = ExpressionResolver(
        vision=vision if config.expression.use_vision else None,
        candidate_count=config.expression.candidate_count,
        mascot_dir=config.expression.mascot_dir,
        variety=variety,
    )
    tracker = TokenBudgetTracker(
        daily_limit=config.budget.daily_token_limit,
        warning_threshold=config.budget.warning_threshold,
        critical_threshold=config.budget.critical_threshold,
        default_tokens_per_request=config.budget.default_tokens_per_request,
    )
    coordinator = RequestCoordinator(
        debounce_ms=config.coordinator.debounce_ms,
        dedup_window_ms=config.coordinator.dedup_window_ms,
    )
    prompt_builder = PromptBuilder(
        response_buffer_tokens=config.budget.response_buffer_tokens,
        max_tokens_per_request=config.budget.max_tokens_per_request,
    )

    return KiroAssistant(
        config=config,
        chat=chat,
        resolver=resolver,
        tracker=tracker,
        cache=ResponseCache(default_ttl=config.cache.ttl_seconds),
        coordinator=coordinator,
        prompt_builder=prompt_builder,
    )
