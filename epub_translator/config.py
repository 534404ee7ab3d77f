"""
Centralized configuration
"""
import os
import logging
from pathlib import Path
from dataclasses import dataclass, asdict
from typing import Optional
from dotenv import load_dotenv

_config_logger = logging.getLogger('config')

# A missing .env is fine: every value has a default
_env_file = Path.cwd() / '.env'
_dotenv_result = load_dotenv(_env_file)
_config_logger.debug(f"load_dotenv({_env_file}) returned: {_dotenv_result}")


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 'yes')


# LLM Provider configuration
LLM_PROVIDER = os.getenv('LLM_PROVIDER', 'demo')  # 'demo', 'zhipu', 'openrouter' or 'custom'

# Zhipu GLM (hosted gateway, OpenAI-style API)
ZHIPU_API_KEY = os.getenv('ZHIPU_API_KEY', '')
ZHIPU_API_ENDPOINT = os.getenv('ZHIPU_API_ENDPOINT', 'https://open.bigmodel.cn/api/paas/v4/')
ZHIPU_MODEL = os.getenv('ZHIPU_MODEL', 'glm-4-flash')

# OpenRouter configuration
OPENROUTER_API_KEY = os.getenv('OPENROUTER_API_KEY', '')
OPENROUTER_MODEL = os.getenv('OPENROUTER_MODEL', 'deepseek/deepseek-chat')
OPENROUTER_API_ENDPOINT = os.getenv('OPENROUTER_API_ENDPOINT', 'https://openrouter.ai/api/v1/chat/completions')

# Custom translation endpoint
CUSTOM_API_ENDPOINT = os.getenv('CUSTOM_API_ENDPOINT', '')
CUSTOM_API_KEY = os.getenv('CUSTOM_API_KEY', '')

# Default languages from environment (ISO-like two letter codes)
DEFAULT_SOURCE_LANGUAGE = os.getenv('DEFAULT_SOURCE_LANGUAGE', 'en')
DEFAULT_TARGET_LANGUAGE = os.getenv('DEFAULT_TARGET_LANGUAGE', 'zh')

# Batching window, measured in characters (Unicode code points)
BATCH_MIN_CHARS = int(os.getenv('BATCH_MIN_CHARS', '300'))
BATCH_MAX_CHARS = int(os.getenv('BATCH_MAX_CHARS', '500'))
BATCH_MAX_FRAGMENTS = int(os.getenv('BATCH_MAX_FRAGMENTS', '8'))

# Concurrency and caching
MAX_CONCURRENT_REQUESTS = int(os.getenv('MAX_CONCURRENT_REQUESTS', '15'))
CONCURRENT_DOCUMENTS = int(os.getenv('CONCURRENT_DOCUMENTS', '4'))
CACHE_MAX_ENTRIES = int(os.getenv('CACHE_MAX_ENTRIES', '1000'))

# Turn on vertical to horizontal conversion when the book is typeset vertically
DETECT_VERTICAL_LAYOUT = _env_bool('DETECT_VERTICAL_LAYOUT')

# Retry policy
MAX_TRANSLATION_ATTEMPTS = int(os.getenv('MAX_TRANSLATION_ATTEMPTS', '3'))
RETRY_BASE_DELAY = float(os.getenv('RETRY_BASE_DELAY', '0.5'))
RETRY_MAX_DELAY = float(os.getenv('RETRY_MAX_DELAY', '2.0'))

# Request parameters
REQUEST_TIMEOUT = int(os.getenv('REQUEST_TIMEOUT', '120'))
SINGLE_FRAGMENT_TIMEOUT = int(os.getenv('SINGLE_FRAGMENT_TIMEOUT', '60'))
LLM_TEMPERATURE = float(os.getenv('LLM_TEMPERATURE', '0.3'))
BATCH_MAX_TOKENS = int(os.getenv('BATCH_MAX_TOKENS', '8000'))
SINGLE_MAX_TOKENS = int(os.getenv('SINGLE_MAX_TOKENS', '2000'))

DEBUG_MODE = _env_bool('DEBUG_MODE')

if DEBUG_MODE:
    _config_logger.setLevel(logging.DEBUG)
    _config_logger.debug(f"   LLM_PROVIDER: {LLM_PROVIDER}")
    _config_logger.debug(f"   ZHIPU_API_KEY: {'***' + ZHIPU_API_KEY[-4:] if ZHIPU_API_KEY else '(not set)'}")
    _config_logger.debug(f"   OPENROUTER_API_KEY: {'***' + OPENROUTER_API_KEY[-4:] if OPENROUTER_API_KEY else '(not set)'}")
    _config_logger.debug(f"   CUSTOM_API_ENDPOINT: {CUSTOM_API_ENDPOINT or '(not set)'}")
    _config_logger.debug(f"   BATCH window: {BATCH_MIN_CHARS}-{BATCH_MAX_CHARS} chars, {BATCH_MAX_FRAGMENTS} fragments")
    _config_logger.debug(f"   MAX_CONCURRENT_REQUESTS: {MAX_CONCURRENT_REQUESTS}")

# Supported language pair codes and the names used in prompts
SUPPORTED_LANGUAGES = {
    'en': 'English',
    'zh': 'Chinese',
    'ja': 'Japanese',
    'ko': 'Korean',
    'fr': 'French',
    'es': 'Spanish',
    'de': 'German',
    'ru': 'Russian',
    'pt': 'Portuguese',
}

# Source language value that asks for detection from the book's text
AUTO_SOURCE_LANGUAGE = 'auto'

SUPPORTED_PROVIDERS = ('demo', 'zhipu', 'openrouter', 'custom')

# EPUB-specific configuration
NAMESPACES = {
    'opf': 'http://www.idpf.org/2007/opf',
    'dc': 'http://purl.org/dc/elements/1.1/',
    'xhtml': 'http://www.w3.org/1999/xhtml',
    'epub': 'http://www.idpf.org/2007/ops'
}

# Local names; matching is namespace-agnostic so XHTML and HTML share one set
BLOCK_TAGS = frozenset({
    'p', 'div', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'li', 'td', 'th',
    'blockquote', 'article', 'section', 'header', 'footer', 'aside', 'main',
    'nav', 'figure', 'figcaption', 'caption', 'address', 'pre', 'dl', 'dt', 'dd',
})

IGNORED_TAGS = frozenset({'script', 'style'})

MARKUP_EXTENSIONS = ('.html', '.htm', '.xhtml')


def language_name(code: str) -> str:
    """Return the English name of a supported language code (the code itself if unknown)."""
    return SUPPORTED_LANGUAGES.get(code, code)


@dataclass
class TranslationConfig:
    """Settings for one translation run"""

    # Core settings
    source_language: str = DEFAULT_SOURCE_LANGUAGE
    target_language: str = DEFAULT_TARGET_LANGUAGE

    # LLM Provider settings
    llm_provider: str = LLM_PROVIDER
    api_key: Optional[str] = None
    model: Optional[str] = None
    api_endpoint: Optional[str] = None

    # Batching
    batch_min_chars: int = BATCH_MIN_CHARS
    batch_max_chars: int = BATCH_MAX_CHARS
    batch_max_fragments: int = BATCH_MAX_FRAGMENTS

    # Concurrency
    max_concurrent: int = MAX_CONCURRENT_REQUESTS
    concurrent_documents: int = CONCURRENT_DOCUMENTS
    cache_size: int = CACHE_MAX_ENTRIES

    # Retry
    max_attempts: int = MAX_TRANSLATION_ATTEMPTS
    retry_base_delay: float = RETRY_BASE_DELAY
    retry_max_delay: float = RETRY_MAX_DELAY
    timeout: int = REQUEST_TIMEOUT
    single_timeout: int = SINGLE_FRAGMENT_TIMEOUT

    # Format conversion
    convert_to_horizontal: bool = False
    detect_vertical: bool = DETECT_VERTICAL_LAYOUT

    def __post_init__(self):
        """Validate configuration values."""
        if self.source_language not in SUPPORTED_LANGUAGES and self.source_language != AUTO_SOURCE_LANGUAGE:
            raise ValueError(f"Unsupported source language: {self.source_language!r}")
        if self.target_language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Unsupported target language: {self.target_language!r}")
        if self.llm_provider not in SUPPORTED_PROVIDERS:
            raise ValueError(
                f"Unknown provider {self.llm_provider!r}, expected one of {', '.join(SUPPORTED_PROVIDERS)}"
            )
        if self.batch_min_chars <= 0 or self.batch_max_chars <= 0:
            raise ValueError("Batch window bounds must be positive")
        if self.batch_min_chars > self.batch_max_chars:
            raise ValueError(
                f"batch_min_chars ({self.batch_min_chars}) cannot exceed batch_max_chars ({self.batch_max_chars})"
            )
        if self.batch_max_fragments <= 0:
            raise ValueError("batch_max_fragments must be positive")
        if self.max_concurrent <= 0:
            raise ValueError("max_concurrent must be positive")
        if self.concurrent_documents <= 0:
            raise ValueError("concurrent_documents must be positive")
        if self.cache_size <= 0:
            raise ValueError("cache_size must be positive")
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if self.retry_base_delay < 0 or self.retry_max_delay < 0:
            raise ValueError("Retry delays cannot be negative")
        if self.timeout <= 0 or self.single_timeout <= 0:
            raise ValueError("Timeouts must be positive")

        # Credentials only matter when something will actually be sent
        if not self.is_format_only:
            if self.llm_provider == 'zhipu' and not self.resolved_api_key:
                raise ValueError("Zhipu provider requires an API key. Set ZHIPU_API_KEY or pass --api_key.")
            if self.llm_provider == 'openrouter' and not self.resolved_api_key:
                raise ValueError("OpenRouter provider requires an API key. Set OPENROUTER_API_KEY or pass --api_key.")
            if self.llm_provider == 'custom' and not (self.api_endpoint or CUSTOM_API_ENDPOINT):
                raise ValueError("Custom provider requires an endpoint. Set CUSTOM_API_ENDPOINT or pass --api_endpoint.")

    @property
    def detects_source_language(self) -> bool:
        return self.source_language == AUTO_SOURCE_LANGUAGE

    @property
    def is_format_only(self) -> bool:
        """Same-language runs only apply format conversions, nothing is sent to a backend."""
        return self.source_language == self.target_language

    @property
    def resolved_api_key(self) -> str:
        """Explicit key, falling back to the environment key of the selected provider."""
        if self.api_key:
            return self.api_key
        return {
            'zhipu': ZHIPU_API_KEY,
            'openrouter': OPENROUTER_API_KEY,
            'custom': CUSTOM_API_KEY,
        }.get(self.llm_provider, '')

    @classmethod
    def from_cli_args(cls, args) -> 'TranslationConfig':
        """Create config from CLI arguments"""
        return cls(
            source_language=args.source_lang,
            target_language=args.target_lang,
            llm_provider=getattr(args, 'provider', None) or LLM_PROVIDER,
            api_key=getattr(args, 'api_key', None),
            model=getattr(args, 'model', None),
            api_endpoint=getattr(args, 'api_endpoint', None),
            batch_min_chars=getattr(args, 'batch_min', None) or BATCH_MIN_CHARS,
            batch_max_chars=getattr(args, 'batch_max', None) or BATCH_MAX_CHARS,
            max_concurrent=getattr(args, 'max_concurrent', None) or MAX_CONCURRENT_REQUESTS,
            convert_to_horizontal=getattr(args, 'horizontal', False),
            detect_vertical=getattr(args, 'detect_vertical', False) or DETECT_VERTICAL_LAYOUT,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary, with the API key masked"""
        data = asdict(self)
        if data.get('api_key'):
            data['api_key'] = '***' + data['api_key'][-4:]
        return data
