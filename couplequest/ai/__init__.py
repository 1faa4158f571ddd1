"""
AI provider adapters for prompt generation and sentiment analysis.
"""

from .providers import AIProvider, build_simple_prompt, extract_json_object
from .iflow_client import IFlowClient
from .ollama_client import OllamaClient

__all__ = ['AIProvider', 'build_simple_prompt', 'extract_json_object', 'IFlowClient', 'OllamaClient']
