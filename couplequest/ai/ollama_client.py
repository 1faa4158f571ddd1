"""
Secondary AI provider: a local Ollama server.
"""

from typing import Any, Dict, List, Optional

import requests

from ..config import Config
from ..logging_system import get_structured_logger, ErrorCategory, FallbackStage
from ..models import HistoryEntry
from ..resilience.errors import ProviderError
from .providers import AIProvider, build_simple_prompt, extract_json_object


class OllamaClient(AIProvider):
    """Talks to Ollama's /api/tags and /api/generate endpoints."""

    name = "ollama"

    def __init__(self,
                 base_url: Optional[str] = None,
                 model: Optional[str] = None,
                 enabled: Optional[bool] = None,
                 timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None,
                 logger=None):
        self.base_url = (base_url or Config.OLLAMA_BASE_URL).rstrip('/')
        self.model = model or Config.OLLAMA_MODEL
        self.enabled = Config.OLLAMA_ENABLED if enabled is None else enabled
        # Local models can be slow to answer
        self.timeout = timeout or Config.OLLAMA_TIMEOUT
        self.session = session or requests.Session()
        self.logger = logger or get_structured_logger("ollama_client")

    def is_available(self) -> bool:
        if not self.enabled:
            return False

        try:
            response = self.session.get(f"{self.base_url}/api/tags", timeout=min(self.timeout, 5.0))
            response.raise_for_status()
            models = [model.get('name') for model in response.json().get('models', [])]
        except (requests.RequestException, ValueError, AttributeError) as e:
            self.logger.warning("Ollama service is not available",
                                stage=FallbackStage.SECONDARY,
                                error_category=ErrorCategory.NETWORK_ERROR,
                                structured_data={'error': str(e), 'url': self.base_url})
            return False

        self.logger.info("Ollama service is available",
                         stage=FallbackStage.SECONDARY,
                         structured_data={'models': models})
        return True

    def generate(self, context: Dict[str, Any], history: List[HistoryEntry]) -> str:
        prompt = context.get('prompt') or build_simple_prompt(history)
        reply = self._generate(f"{prompt}\n\n要求：直接返回问题，不要其他内容，控制在20字以内。",
                               temperature=0.8, num_predict=100)
        if not reply:
            raise ProviderError("Empty response from Ollama", provider=self.name)

        self.logger.info("Ollama question generated",
                         stage=FallbackStage.SECONDARY,
                         structured_data={'model': self.model, 'length': len(reply)})
        return reply

    def analyze_sentiment(self, text: str) -> Dict[str, Any]:
        prompt = ('分析这段话的情感倾向，返回JSON格式：'
                  '{"sentiment": "positive/neutral/negative", "score": 0-100}\n\n'
                  f"文本：{text or ''}")
        reply = self._generate(prompt, temperature=0.3, num_predict=100)
        try:
            return extract_json_object(reply)
        except ValueError as e:
            raise ProviderError(f"Ollama error: {e}", provider=self.name) from e

    def _generate(self, prompt: str, temperature: float, num_predict: int) -> str:
        if not self.enabled:
            raise ProviderError("Ollama is not enabled", provider=self.name)

        try:
            response = self.session.post(
                f"{self.base_url}/api/generate",
                json={
                    'model': self.model,
                    'prompt': prompt,
                    'stream': False,
                    'options': {'temperature': temperature, 'num_predict': num_predict}
                },
                timeout=self.timeout
            )
            response.raise_for_status()
            return (response.json().get('response') or '').strip()
        except requests.RequestException as e:
            status_code = e.response.status_code if e.response is not None else None
            raise ProviderError(f"Ollama error: {e}", provider=self.name,
                                status_code=status_code) from e
        except (ValueError, AttributeError) as e:
            raise ProviderError(f"Ollama error: invalid response format ({e})",
                                provider=self.name) from e
