"""OpenAI-compatible chat and vision client for Groq / OpenRouter."""

import base64
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import httpx
from loguru import logger

from .config import Config
from .errors import ExternalCallFailure, MalformedExternalResponse, RetryPolicy
from .expressions import Expression, describe_catalog


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {'role': self.role, 'content': self.content}


@dataclass(frozen=True)
class ChatResult:
    success: bool
    content: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None


@dataclass(frozen=True)
class CandidateImage:
    """An expression offered to the vision model, with its mascot artwork."""
    expression: Expression
    description: str
    image_path: Optional[Path] = None


@dataclass(frozen=True)
class VisionVerdict:
    # Raw name as the model wrote it; validated by the resolver
    selected_expression: str
    confidence: float
    reason: str


VISION_SYSTEM_PROMPT = """You are an expression analyzer for Kiro, a weather mascot chat assistant.
Read Kiro's reply and choose the facial expression that fits it best.

AVAILABLE EXPRESSIONS:
{catalog}

GUIDELINES:
1. Consider tone, sentiment and context of the reply
2. Pick exactly one expression name from the list above
3. Confidence ranges from 0.5 (minimum) to 1.0 (very sure)
4. Answer with JSON only, no extra text

RESPONSE FORMAT:
{{"selectedExpression": "expression_name", "confidence": 0.85, "reason": "short explanation"}}"""


def _is_rate_limited(error: Exception) -> bool:
    return isinstance(error, ExternalCallFailure) and error.code == 'RATE_LIMIT_EXCEEDED'


def strip_code_fences(text: str) -> str:
    """Remove a surrounding Markdown code block, if the model added one."""
    cleaned = text.strip()
    if cleaned.startswith('```json'):
        cleaned = cleaned[7:]
    elif cleaned.startswith('```'):
        cleaned = cleaned[3:]
    if cleaned.endswith('```'):
        cleaned = cleaned[:-3]
    return cleaned.strip()


class LLMClient:
    """
    Thin async client for the /chat/completions endpoint.

    send_chat() never raises; failures come back as ChatResult(success=False).
    analyze_expression_images() raises ExternalCallFailure and is never retried.
    """

    def __init__(self,
                 api_key: Optional[str],
                 base_url: str,
                 model: str,
                 vision_model: str,
                 temperature: float = 0.7,
                 max_tokens: int = 1000,
                 timeout_s: float = 30.0,
                 retry_policy: Optional[RetryPolicy] = None,
                 attach_images: bool = False,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key
        self.model = model
        self.vision_model = vision_model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.attach_images = attach_images
        self.retry_policy = retry_policy or RetryPolicy(retry_on=_is_rate_limited)
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout_s)

    @classmethod
    def from_config(cls, config: Config, http_client: Optional[httpx.AsyncClient] = None) -> "LLMClient":
        api_key = config.api_key()
        if not api_key:
            logger.warning(f"No API key configured for provider {config.llm.provider}")

        return cls(
            api_key=api_key,
            base_url=config.llm.resolved_base_url,
            model=config.llm.model,
            vision_model=config.llm.vision_model,
            temperature=config.llm.temperature,
            max_tokens=config.llm.max_tokens,
            timeout_s=config.llm.timeout_s,
            retry_policy=RetryPolicy(max_retries=config.llm.max_retries, retry_on=_is_rate_limited),
            attach_images=config.expression.attach_images,
            http_client=http_client,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _complete(self, payload: Dict[str, Any]) -> str:
        if not self.api_key:
            raise ExternalCallFailure('MISSING_API_KEY', 'API key is not configured')

        try:
            response = await self._client.post(
                '/chat/completions',
                json=payload,
                headers={'Authorization': f'Bearer {self.api_key}'},
            )
        except httpx.HTTPError as e:
            raise ExternalCallFailure('NETWORK_ERROR', f'Network error: {e}') from e

        if response.status_code != 200:
            raise self._http_failure(response)

        try:
            data = response.json()
            content = data['choices'][0]['message']['content']
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise MalformedExternalResponse(f'Unexpected completion payload: {e}') from e

        if not content:
            raise MalformedExternalResponse('No message content in response')
        return content

    def _http_failure(self, response: httpx.Response) -> ExternalCallFailure:
        try:
            details = response.json()
        except ValueError:
            details = {'body': response.text}

        status = response.status_code
        if status == 429:
            error = details.get('error') if isinstance(details, dict) else None
            message = error.get('message') if isinstance(error, dict) else None
            return ExternalCallFailure('RATE_LIMIT_EXCEEDED', message or 'Rate limit exceeded', status, details)
        if status == 401:
            return ExternalCallFailure('UNAUTHORIZED', 'Invalid or missing API key', status, details)
        if status == 403:
            return ExternalCallFailure('FORBIDDEN', 'Access forbidden', status, details)
        return ExternalCallFailure('API_REQUEST_FAILED', f'API error: {response.reason_phrase}', status, details)

    async def send_chat(self,
                        system_prompt: str,
                        user_prompt: str,
                        history: Optional[Sequence[ChatMessage]] = None) -> ChatResult:
        """Send one chat turn. Rate-limit replies are retried with backoff."""
        messages = [ChatMessage('system', system_prompt)]
        messages.extend(history or ())
        messages.append(ChatMessage('user', user_prompt))

        payload = {
            'model': self.model,
            'messages': [m.to_dict() for m in messages],
            'temperature': self.temperature,
            'max_tokens': self.max_tokens,
            'top_p': 0.95,
            'stream': False,
        }

        try:
            content = await self.retry_policy.execute(self._complete, payload)
        except ExternalCallFailure as e:
            logger.error(f"[Chat] {e.code}: {e.message}")
            return ChatResult(success=False, error_message=e.message, error_code=e.code)

        return ChatResult(success=True, content=content)

    def _image_part(self, candidate: CandidateImage) -> Optional[Dict[str, Any]]:
        path = candidate.image_path
        if path is None or not path.is_file():
            return None

        media_type = 'image/png' if path.suffix.lower() == '.png' else 'image/jpeg'
        encoded = base64.b64encode(path.read_bytes()).decode('ascii')
        return {'type': 'image_url', 'image_url': {'url': f'data:{media_type};base64,{encoded}'}}

    def _vision_user_content(self, content: str, candidates: Sequence[CandidateImage]) -> Any:
        shortlist = ', '.join(c.expression.value for c in candidates)
        text = (
            f'Analyze Kiro\'s reply and choose the fitting expression:\n\n"{content}"\n\n'
            f'Most likely candidates: {shortlist}\n\nJSON only.'
        )
        if not self.attach_images:
            return text

        parts: List[Dict[str, Any]] = []
        for candidate in candidates:
            image = self._image_part(candidate)
            if image is not None:
                parts.append({'type': 'text', 'text': f'Expression "{candidate.expression.value}":'})
                parts.append(image)

        if not parts:
            return text
        parts.append({'type': 'text', 'text': text})
        return parts

    async def analyze_expression_images(self,
                                        content: str,
                                        candidates: Sequence[CandidateImage]) -> VisionVerdict:
        """Ask the model to pick one expression for content."""
        user_content = self._vision_user_content(content, candidates)
        payload = {
            'model': self.vision_model if isinstance(user_content, list) else self.model,
            'messages': [
                {'role': 'system', 'content': VISION_SYSTEM_PROMPT.format(catalog=describe_catalog())},
                {'role': 'user', 'content': user_content},
            ],
            'temperature': 0.3,
            'max_tokens': 200,
        }

        reply = await self._complete(payload)
        try:
            parsed = json.loads(strip_code_fences(reply))
        except json.JSONDecodeError as e:
            raise MalformedExternalResponse(f'Invalid JSON from model: {reply[:80]!r}') from e

        if not isinstance(parsed, dict) or not isinstance(parsed.get('selectedExpression'), str):
            raise MalformedExternalResponse(f'No selectedExpression in reply: {reply[:80]!r}')

        try:
            confidence = float(parsed.get('confidence', 0.7))
        except (TypeError, ValueError):
            confidence = 0.7

        return VisionVerdict(
            selected_expression=parsed['selectedExpression'],
            confidence=min(1.0, max(0.5, confidence)),
            reason=str(parsed.get('reason') or 'Expression selected by model'),
        )
