"""Prompt assembly and token estimation for Kiro chat requests."""

import math
from dataclasses import dataclass
from typing import Optional, Dict

from loguru import logger


RESPONSE_BUFFER_TOKENS = 100
MAX_TOKENS_PER_REQUEST = 600
ELLIPSIS = "..."


@dataclass(frozen=True)
class WeatherSnapshot:
    """Current conditions at the user's location, as supplied by the UI."""
    temperature: Optional[float] = None
    condition: Optional[str] = None
    humidity: Optional[float] = None
    wind_speed: Optional[float] = None
    precipitation: Optional[float] = None
    location: Optional[str] = None


@dataclass(frozen=True)
class PromptPackage:
    system_prompt: str
    user_prompt: str
    estimated_tokens: int


@dataclass(frozen=True)
class BudgetCheck:
    is_valid: bool
    warning: Optional[str] = None


SYSTEM_PROMPT = """You are Kiro, a cute & helpful weather mascot! 🤖✨

PERSONALITY: Cheerful, casual, loves jokes, energetic. Use a few emojis.
TALK STYLE: Casual, friendly, dramatic but helpful. Respond in English only.
MOOD MODE: Sunny→excited! Rainy→dramatic. Hot→"wow it's hot!" Cold→"brrr!"

RULES:
- Max 3 sentences (unless excited)
- Relate answers to the weather when possible
- Answer random questions creatively
- No source attribution and no data citations
- No "weather bulletin" style responses"""


QUICK_RESPONSES: Dict[str, str] = {
    'hello': "Hey there! 👋✨ Kiro here! What can I help you with today?",
    'hi': "Hi! 👋😊 Kiro ready to help! What would you like to know?",
    'hey': "Hey! 🌟 I missed you! What brings you here today? 😆",
    'thanks': "You're welcome! 😊🎉 Kiro's always happy to help!",
    'thank you': "You're welcome! 🥰✨ It's so nice to help! Come back anytime! 💙",
    'bye': "Bye! 👋😊 Don't be a stranger! Stay safe! ☀️💙",
    'goodbye': "Goodbye! 👋✨ See you next time! 🌈",
    'good morning': "Good morning! ☀️🌅 Beautiful day ahead! Have a great one! 🎉",
    'good night': "Good night! 🌙✨ Time to rest! Sweet dreams! ⭐💤",
    'sad': "Oh no! Don't be sad! 😢💙 Kiro's here! Want to talk about it?",
    'help': "Need help? 🆘 Weather questions, activity tips, or just a chat, Kiro's ready! 😊",
    'hmm': "Hmmmm? 🤔 Thinking about something? Wondering about tomorrow's weather? 😏",
    'wow': "Wow! 😲✨ Surprised? Amazed? Tell me what's on your mind!",
}

# Matched anywhere in the message
EASTER_EGGS: Dict[str, str] = {
    'who are you': "Kiro! 🤖✨ Your friendliest weather mascot, with forecasts and unlimited jokes! 😆",
    'i love you': "OMG! 💕💘 Kiro's a robot though! *flustered* 😅 But thank you, you're so sweet! 💙",
    'tell me a joke': "Why do clouds never get lonely? They're always in a GOOD ATMOSPHERE! 😂💨",
    'miss you': "Awww Kiro missed you too! 🥺💙 Don't wait so long next time! 🤗",
}

# Greetings only match by substring in short messages
QUICK_PARTIAL_MAX_LEN = 20


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters."""
    return math.ceil(len(text) / 4)


def shorten_message(message: str, max_length: int = 200) -> str:
    """Truncate to max_length on a word boundary and append an ellipsis."""
    if len(message) <= max_length:
        return message

    truncated = message[:max_length]
    last_space = truncated.rfind(' ')
    if last_space > 0:
        truncated = truncated[:last_space]
    return truncated + ELLIPSIS


class PromptBuilder:
    """Builds the compact prompt package sent with every chat request."""

    def __init__(self,
                 response_buffer_tokens: int = RESPONSE_BUFFER_TOKENS,
                 max_tokens_per_request: int = MAX_TOKENS_PER_REQUEST):
        self.response_buffer_tokens = response_buffer_tokens
        self.max_tokens_per_request = max_tokens_per_request

    def build_system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def compact_user_prompt(self, message: str, snapshot: Optional[WeatherSnapshot] = None) -> str:
        """
        Prefix the message with a one-line weather header.

        Only fields that are present are listed; precipitation is shown only
        when it is above zero.
        """
        if snapshot is None:
            return message

        parts = []
        if snapshot.location:
            parts.append(f"📍 {snapshot.location}")
        if snapshot.temperature is not None:
            parts.append(f"🌡️ {_fmt(snapshot.temperature)}°C")
        if snapshot.condition:
            parts.append(f"☁️ {snapshot.condition}")
        if snapshot.humidity is not None:
            parts.append(f"💧 {_fmt(snapshot.humidity)}%")
        if snapshot.wind_speed is not None:
            parts.append(f"🌬️ {_fmt(snapshot.wind_speed)} km/h")
        if snapshot.precipitation is not None and snapshot.precipitation > 0:
            parts.append(f"🌧️ {_fmt(snapshot.precipitation)}mm")

        if not parts:
            return message
        return f"[{' | '.join(parts)}]\n\n{message}"

    def create_prompt_package(self, message: str, snapshot: Optional[WeatherSnapshot] = None) -> PromptPackage:
        system_prompt = self.build_system_prompt()
        user_prompt = self.compact_user_prompt(message, snapshot)
        estimated = (
            estimate_tokens(system_prompt)
            + estimate_tokens(user_prompt)
            + self.response_buffer_tokens
        )
        return PromptPackage(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            estimated_tokens=estimated,
        )

    def validate_budget(self, estimated_tokens: int, max_per_request: Optional[int] = None) -> BudgetCheck:
        """Pre-flight check against the per-request token ceiling."""
        limit = self.max_tokens_per_request if max_per_request is None else max_per_request
        if estimated_tokens > limit:
            warning = (
                f"Request is too long ({estimated_tokens} tokens). "
                f"Maximum {limit} tokens allowed."
            )
            logger.warning(warning)
            return BudgetCheck(is_valid=False, warning=warning)
        return BudgetCheck(is_valid=True)

    def quick_response(self, message: str) -> Optional[str]:
        """Canned reply for greetings and small talk, answered without the API."""
        normalized = message.strip().lower()
        if not normalized:
            return None

        if normalized in QUICK_RESPONSES:
            return QUICK_RESPONSES[normalized]

        if len(normalized) < QUICK_PARTIAL_MAX_LEN:
            for trigger, reply in QUICK_RESPONSES.items():
                if _contains_word(normalized, trigger):
                    return reply

        for trigger, reply in EASTER_EGGS.items():
            if trigger in normalized:
                return reply

        return None


def _fmt(value: float) -> str:
    # 35.0 -> "35", 12.5 -> "12.5"
    return f"{value:g}"


def _contains_word(text: str, phrase: str) -> bool:
    padded = f" {text} "
    return f" {phrase} " in padded or f" {phrase}!" in padded or f" {phrase}," in padded
