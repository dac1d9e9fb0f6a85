"""Kiro mascot expression catalog.

The rule table is data: each expression carries literal keywords, sentiment
labels, a salience priority (1-10) and trigger patterns. Patterns include a
few Indonesian phrases because the mascot's replies are often bilingual.
"""

import re
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Pattern, Tuple


class Expression(str, Enum):
    IDLE = "idle"
    THINKING = "thinking"
    TYPING = "typing"
    EXCITED = "excited"
    RAINY = "rainy"
    HOT = "hot"
    COLD = "cold"
    ALARMED = "alarmed"
    APOLOGETIC = "apologetic"
    DEEP_THINKING = "deep_thinking"
    STORMY = "stormy"
    SAD = "sad"
    SCARED = "scared"
    ANGRY = "angry"
    EMBARRASSED = "embarrassed"
    SMITTEN = "smitten"
    HOPEFUL = "hopeful"
    FAREWELL = "farewell"
    CONFUSED = "confused"


DEFAULT_EXPRESSION = Expression.IDLE

WEATHER_EXPRESSIONS = frozenset({Expression.RAINY, Expression.HOT, Expression.COLD})
SOCIABLE_EXPRESSIONS = frozenset({Expression.IDLE, Expression.SMITTEN, Expression.CONFUSED})


@dataclass(frozen=True)
class ExpressionRule:
    name: str
    description: str
    image: str
    keywords: Tuple[str, ...]
    sentiments: Tuple[str, ...]
    priority: int
    patterns: Tuple[Pattern, ...]
    keyword_patterns: Tuple[Pattern, ...] = ()
    sentiment_patterns: Tuple[Pattern, ...] = ()


def _word_start(literal: str) -> Pattern:
    return re.compile(r"\b" + re.escape(literal))


def _rule(name, description, image, keywords, sentiments, priority, pattern) -> ExpressionRule:
    # Keywords stack per distinct literal, so duplicates are dropped here
    distinct = tuple(dict.fromkeys(k.lower() for k in keywords))
    return ExpressionRule(
        name=name,
        description=description,
        image=image,
        keywords=distinct,
        sentiments=tuple(sentiments),
        priority=priority,
        patterns=(re.compile(pattern, re.IGNORECASE),),
        keyword_patterns=tuple(_word_start(k) for k in distinct),
        sentiment_patterns=tuple(_word_start(s.lower()) for s in sentiments),
    )


EXPRESSION_RULES: Mapping[Expression, ExpressionRule] = MappingProxyType({
    Expression.IDLE: _rule(
        "Relaxed & Happy", "Relaxed and happy", "idle_smile.png",
        ['ready to help', 'how are you', 'can help', 'ask', 'chat', 'talking',
         'general', 'casual', 'okay', 'alright'],
        ['happy', 'neutral', 'friendly', 'welcoming', 'helpful'],
        4,
        r"siap\s+membantu|apa\s+kabar|how\s+are\s+you|happy\s+to\s+help|general\s+chat",
    ),
    Expression.THINKING: _rule(
        "Thinking", "Thinking", "berpikir.png",
        ['think', 'wait', 'hmm', 'processing', 'check', 'let me see', 'analyze'],
        ['thinking', 'processing', 'analyzing', 'considering'],
        5,
        r"hmm+|🤔|thinking",
    ),
    Expression.TYPING: _rule(
        "Typing", "Typing", "mengetik.png",
        ['typing', 'loading', 'processing', 'generating', 'creating', 'wait'],
        ['working', 'processing', 'generating'],
        4,
        r"typing|loading|processing",
    ),
    Expression.EXCITED: _rule(
        "Very Happy", "Very happy and enthusiastic", "semangat success.png",
        ['thank you', 'thankful', 'great', 'perfect', 'awesome', 'cool', 'yay',
         'excellent', 'amazing', 'so happy', 'excited'],
        ['excited', 'happy', 'enthusiastic', 'positive', 'successful', 'gratified'],
        9,
        r"🎉|terima\s+kasih|thank\s+you|excellent|amazing|awesome|yeay|bagus\s+(sekali|banget)",
    ),
    Expression.RAINY: _rule(
        "Rainy Weather", "Rainy weather", "hujan.png",
        ['rain', 'light rain', 'heavy rain', 'rainfall', 'umbrella', 'wet',
         'drizzle', 'precipitation'],
        ['rainy', 'wet', 'drizzle', 'showers'],
        5,
        r"hujan\s+(gerimis|deras|turun)|🌧️|rainy\s+(day|weather)|raining",
    ),
    Expression.HOT: _rule(
        "Hot Weather", "Hot weather", "panas.png",
        ['hot', 'sunny', 'humid', 'overheated', 'melting', 'sun rays', 'scorching'],
        ['hot', 'sunny', 'warm', 'heat'],
        7,
        r"panas|terik|☀️|🔥|\bhot\b|heatwave",
    ),
    Expression.COLD: _rule(
        "Cold Weather", "Cold weather", "dingin.png",
        ['cold', 'chill', 'freeze', 'frosty', 'cooling'],
        ['cold', 'chilly', 'freezing'],
        7,
        r"dingin|❄️|🥶|\bcold\b|freez",
    ),
    Expression.ALARMED: _rule(
        "Surprised/Alert", "Surprised or alert", "kaget.png",
        ['danger', 'warning', 'caution', 'careful', 'alert', 'extreme', 'shock',
         'surprised'],
        ['alert', 'warning', 'danger', 'surprised'],
        9,
        r"⚠️|bahaya|peringatan|alert|danger|ekstrem",
    ),
    Expression.APOLOGETIC: _rule(
        "Apology", "Apology or error", "maaf.png",
        ['sorry', 'cannot', 'error', 'failed', 'failure', 'problem', 'issue', 'mistake'],
        ['sorry', 'error', 'failed', 'apologetic'],
        6,
        r"maaf|sorry|error|failed|problem",
    ),
    Expression.DEEP_THINKING: _rule(
        "Deep Thinking", "Deep thinking", "thinking2.png",
        ['analysis', 'complex', 'deep', 'detail', 'research', 'study', 'investigating'],
        ['analytical', 'deep_thinking', 'research', 'detailed'],
        5,
        r"analisis|riset|penelitian|detailed\s+analysis",
    ),
    Expression.STORMY: _rule(
        "Facing Storm", "Facing storm or extreme weather", "penakluk_hujan.png",
        ['storm', 'lightning', 'tornado', 'flood', 'hurricane', 'severe', 'extreme'],
        ['storm', 'severe', 'extreme', 'thunderstorm'],
        10,
        r"⛈️|badai|petir|topan|tornado|hurricane|extreme\s+weather",
    ),
    Expression.SAD: _rule(
        "Sad", "Sad or melancholic", "sedih.png",
        ['sad', 'grief', 'melancholic', 'gloomy', 'unhappy', 'sorrowful',
         'disappointed', 'disappointment'],
        ['sad', 'unhappy', 'melancholic', 'disappointed'],
        8,
        r"sedih|😢|\bsad\b|unhappy|melancholic",
    ),
    Expression.SCARED: _rule(
        "Scared/Worried", "Scared or worried", "takut.png",
        ['scared', 'worried', 'nervous', 'anxious', 'frightened', 'concerned'],
        ['scared', 'anxious', 'worried', 'afraid'],
        7,
        r"takut|khawatir|cemas|scared|anxious",
    ),
    Expression.ANGRY: _rule(
        "Angry", "Angry or upset", "marah.png",
        ['angry', 'annoyed', 'frustrated', 'irritated', 'furious', 'upset'],
        ['angry', 'furious', 'upset', 'annoyed'],
        8,
        r"marah|kesal|furious|angry|upset",
    ),
    Expression.EMBARRASSED: _rule(
        "Embarrassed", "Embarrassed or shy", "malu.png",
        ['embarrassed', 'awkward', 'shy', 'bashful', 'uncomfortable'],
        ['embarrassed', 'shy', 'awkward'],
        6,
        r"malu|embarrassed|\bshy\b|awkward",
    ),
    Expression.SMITTEN: _rule(
        "In Love", "In love or charmed", "jatuh_cinta.png",
        ['beautiful', 'handsome', 'love', 'dear', 'love you', 'kyaaaa', 'charmed',
         'crush', 'uwu', 'love is', 'i love', 'cute', 'charming', 'hug', 'heart'],
        ['love', 'romantic', 'attracted', 'adored', 'charmed', 'affectionate'],
        10,
        r"❤️|💕|💘|kamu\s+(cantik|ganteng)|you(?:'re|\s+are)\s+(?:so\s+)?(?:beautiful|cute|handsome)"
        r"|cinta|kyaa+|uwu|love\s+(you|is)|sayang|crush",
    ),
    Expression.HOPEFUL: _rule(
        "Praying", "Praying or hoping", "pray.png",
        ['pray', 'hope', 'prayer', 'blessing', 'spiritual', 'faith'],
        ['hopeful', 'spiritual', 'prayerful', 'blessing'],
        5,
        r"berdoa|harap|semoga|prayer|hope",
    ),
    Expression.FAREWELL: _rule(
        "Goodbye", "Goodbye", "da.png",
        ['bye', 'goodbye', 'see you', 'farewell', 'cheerio', 'leave'],
        ['goodbye', 'farewell', 'departure'],
        5,
        r"\bbye\b|goodbye|sampai\s+jumpa|farewell",
    ),
    Expression.CONFUSED: _rule(
        "Confused", "Confused or puzzled", "bingung.png",
        ['confused', "don't understand", 'unclear', 'confusing', 'huh', 'what?'],
        ['confused', 'unclear', 'puzzled'],
        6,
        r"bingung|confused|🤨|unclear|\bloh\b",
    ),
})


# Original mascot asset names, as an external model may still answer with them
EXPRESSION_ALIASES: Mapping[str, Expression] = MappingProxyType({
    'idle_smile': Expression.IDLE,
    'berpikir': Expression.THINKING,
    'mengetik': Expression.TYPING,
    'semangat_success': Expression.EXCITED,
    'hujan': Expression.RAINY,
    'panas': Expression.HOT,
    'dingin': Expression.COLD,
    'kaget': Expression.ALARMED,
    'maaf': Expression.APOLOGETIC,
    'thinking2': Expression.DEEP_THINKING,
    'penakluk_hujan': Expression.STORMY,
    'sedih': Expression.SAD,
    'takut': Expression.SCARED,
    'marah': Expression.ANGRY,
    'malu': Expression.EMBARRASSED,
    'jatuh_cinta': Expression.SMITTEN,
    'in_love': Expression.SMITTEN,
    'pray': Expression.HOPEFUL,
    'da': Expression.FAREWELL,
    'bingung': Expression.CONFUSED,
})


def parse_expression(raw: object) -> Optional[Expression]:
    """Strictly map an untrusted name to a catalog member, or None."""
    if not isinstance(raw, str):
        return None

    name = raw.strip().lower().replace('-', '_').replace(' ', '_')
    try:
        return Expression(name)
    except ValueError:
        return EXPRESSION_ALIASES.get(name)


def nearest_expression(raw: object) -> Optional[Expression]:
    """
    Best-effort match for a name the catalog does not know.

    Tries substring overlap with catalog and alias names first, then the
    rule keywords and sentiments.
    """
    if not isinstance(raw, str) or not raw.strip():
        return None

    lower = raw.strip().lower()
    names = [(e.value, e) for e in Expression] + list(EXPRESSION_ALIASES.items())
    for name, expression in names:
        # Two-letter aliases like 'da' would match almost anything
        if len(name) < 3:
            continue
        if name in lower or (len(lower) >= 3 and lower in name):
            return expression

    for expression, rule in EXPRESSION_RULES.items():
        for word in rule.keywords + rule.sentiments:
            if word in lower:
                return expression

    return None


def describe_catalog() -> str:
    """One line per expression, for prompts that ask a model to choose."""
    return '\n'.join(
        f"- {expression.value}: {rule.description}"
        for expression, rule in EXPRESSION_RULES.items()
    )
