"""
Primary AI provider: iFlow's OpenAI-compatible chat completions API.
"""

import time
from typing import Any, Dict, List, Optional

import requests

from ..config import Config
from ..logging_system import get_structured_logger, ErrorCategory, FallbackStage
from ..models import HistoryEntry
from ..resilience.errors import ProviderError
from .providers import AIProvider, build_simple_prompt, extract_json_object

GENERATE_SYSTEM_PROMPT = '你是一个温柔的AI助手，帮助情侣增进了解。请生成一个有趣的问题。'
SENTIMENT_SYSTEM_PROMPT = '分析这段话的情感倾向，返回JSON格式：{"sentiment": "positive/neutral/negative", "score": 0-100}'

# Longest Retry-After honoured on HTTP 429
MAX_RETRY_AFTER_SECONDS = 10.0


class IFlowClient(AIProvider):
    """Calls the iFlow API over requests; every failure surfaces as ProviderError."""

    name = "iflow"

    def __init__(self,
                 base_url: Optional[str] = None,
                 api_key: Optional[str] = None,
                 model: Optional[str] = None,
                 timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None,
                 logger=None):
        self.base_url = (base_url or Config.IFLOW_BASE_URL).rstrip('/')
        self.api_key = api_key if api_key is not None else Config.IFLOW_API_KEY
        self.model = model or Config.IFLOW_MODEL
        self.timeout = timeout or Config.IFLOW_TIMEOUT
        self.logger = logger or get_structured_logger("iflow_client")

        self.session = session or requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})
        if self.api_key:
            self.session.headers['Authorization'] = f"Bearer {self.api_key}"

    def generate(self, context: Dict[str, Any], history: List[HistoryEntry]) -> str:
        prompt = context.get('prompt') or build_simple_prompt(history)
        reply = self._chat(GENERATE_SYSTEM_PROMPT, prompt, temperature=0.8, max_tokens=100)

        self.logger.info("iFlow question generated",
                         stage=FallbackStage.PRIMARY,
                         structured_data={'model': self.model, 'length': len(reply)})
        return reply

    def analyze_sentiment(self, text: str) -> Dict[str, Any]:
        reply = self._chat(SENTIMENT_SYSTEM_PROMPT, text or '', temperature=0.3, max_tokens=100)
        try:
            return extract_json_object(reply)
        except ValueError as e:
            raise ProviderError(f"IFlow API error: {e}", provider=self.name) from e

    def is_available(self) -> bool:
        if not self.api_key:
            return False

        try:
            response = self.session.get(f"{self.base_url}/models", timeout=min(self.timeout, 5.0))
            response.raise_for_status()
            return True
        except requests.RequestException as e:
            self.logger.warning("iFlow service is not available",
                                stage=FallbackStage.PRIMARY,
                                error_category=ErrorCategory.NETWORK_ERROR,
                                structured_data={'error': str(e), 'url': self.base_url})
            return False

    def _chat(self, system_prompt: str, user_prompt: str,
              temperature: float, max_tokens: int) -> str:
        """POST a chat completion, retrying once when rate limited."""
        if not self.api_key:
            raise ProviderError("IFlow API key is not configured", provider=self.name)

        payload = {
            'model': self.model,
            'messages': [
                {'role': 'system', 'content': system_prompt},
                {'role': 'user', 'content': user_prompt}
            ],
            'temperature': temperature,
            'max_tokens': max_tokens
        }
        url = f"{self.base_url}/chat/completions"

        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
            if response.status_code == 429:
                delay = self._retry_after(response)
                self.logger.warning(f"Rate limited. Retrying after {delay} seconds",
                                    stage=FallbackStage.PRIMARY,
                                    error_category=ErrorCategory.RATE_LIMIT_ERROR)
                time.sleep(delay)
                response = self.session.post(url, json=payload, timeout=self.timeout)

            response.raise_for_status()
            data = response.json()
            return data['choices'][0]['message']['content'].strip()
        except requests.RequestException as e:
            status_code = e.response.status_code if e.response is not None else None
            raise ProviderError(f"IFlow API error: {e}", provider=self.name,
                                status_code=status_code) from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ProviderError(f"IFlow API error: invalid response format ({e})",
                                provider=self.name) from e

    @staticmethod
    def _retry_after(response: requests.Response) -> float:
        try:
            delay = float(response.headers.get('Retry-After', 5))
        except (TypeError, ValueError):
            delay = 5.0
        return max(0.0, min(delay, MAX_RETRY_AFTER_SECONDS))
