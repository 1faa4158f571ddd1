"""
Tests for the iFlow and Ollama provider adapters.
"""

import pytest
import requests
from unittest.mock import Mock, patch

from couplequest.ai.iflow_client import IFlowClient
from couplequest.ai.ollama_client import OllamaClient
from couplequest.ai.providers import build_simple_prompt, extract_json_object
from couplequest.models import HistoryEntry
from couplequest.resilience.errors import ProviderError


def make_response(status_code=200, json_data=None, headers=None):
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    response.json.return_value = json_data if json_data is not None else {}
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(
            f"{status_code} Error", response=response)
    else:
        response.raise_for_status.return_value = None
    return response


def make_session():
    session = Mock()
    session.headers = {}
    return session


def chat_reply(content):
    return {'choices': [{'message': {'content': content}}]}


class TestProviderHelpers:
    """Test prompt building and reply parsing shared by the adapters."""

    def test_simple_prompt_without_history(self):
        assert build_simple_prompt([]) == '为一对情侣生成一个温馨有趣的日常问题。'

    def test_simple_prompt_uses_recent_keywords(self):
        history = [
            HistoryEntry(keywords=['旧话题']),
            HistoryEntry(keywords=['电影', '周末']),
            {'keywords': ['旅行']},
            HistoryEntry(keywords=['做饭', '猫', '跑步']),
        ]

        prompt = build_simple_prompt(history)

        assert '旧话题' not in prompt
        assert '电影、周末、旅行、做饭、猫' in prompt
        assert '跑步' not in prompt

    def test_extract_json_object(self):
        reply = '分析结果：{"sentiment": "positive", "score": 85} 以上。'
        assert extract_json_object(reply) == {'sentiment': 'positive', 'score': 85}

    @pytest.mark.parametrize("reply", ["没有JSON", "", None, "{broken"])
    def test_extract_json_object_invalid(self, reply):
        with pytest.raises(ValueError):
            extract_json_object(reply)


class TestIFlowClient:
    """Test the primary provider adapter."""

    def setup_method(self):
        self.session = make_session()
        self.client = IFlowClient(base_url="https://iflow.test/v1/", api_key="secret",
                                  model="qwen3-max", timeout=30, session=self.session)

    def test_auth_header(self):
        assert self.session.headers['Authorization'] == "Bearer secret"
        assert self.client.base_url == "https://iflow.test/v1"

    def test_generate(self):
        self.session.post.return_value = make_response(json_data=chat_reply("  今天想吃什么？ "))

        result = self.client.generate({}, [])

        assert result == "今天想吃什么？"
        url = self.session.post.call_args[0][0]
        payload = self.session.post.call_args[1]['json']
        assert url == "https://iflow.test/v1/chat/completions"
        assert payload['model'] == "qwen3-max"
        assert payload['messages'][1]['content'] == build_simple_prompt([])

    def test_generate_uses_context_prompt(self):
        self.session.post.return_value = make_response(json_data=chat_reply("问题"))

        self.client.generate({'prompt': '自定义提示'}, [])

        payload = self.session.post.call_args[1]['json']
        assert payload['messages'][1]['content'] == '自定义提示'

    def test_analyze_sentiment(self):
        self.session.post.return_value = make_response(
            json_data=chat_reply('{"sentiment": "negative", "score": 20}'))

        assert self.client.analyze_sentiment("好累") == {'sentiment': 'negative', 'score': 20}

    def test_analyze_sentiment_without_json(self):
        self.session.post.return_value = make_response(json_data=chat_reply("我觉得很积极"))

        with pytest.raises(ProviderError):
            self.client.analyze_sentiment("好开心")

    def test_http_error_is_wrapped(self):
        self.session.post.return_value = make_response(status_code=500)

        with pytest.raises(ProviderError) as exc_info:
            self.client.generate({}, [])

        assert exc_info.value.status_code == 500
        assert exc_info.value.provider == "iflow"

    def test_network_error_is_wrapped(self):
        self.session.post.side_effect = requests.ConnectionError("connection refused")

        with pytest.raises(ProviderError) as exc_info:
            self.client.generate({}, [])

        assert exc_info.value.status_code is None

    def test_malformed_body_is_wrapped(self):
        self.session.post.return_value = make_response(json_data={'choices': []})

        with pytest.raises(ProviderError):
            self.client.generate({}, [])

    @patch('couplequest.ai.iflow_client.time')
    def test_rate_limit_retries_once(self, mock_time):
        self.session.post.side_effect = [
            make_response(status_code=429, headers={'Retry-After': '2'}),
            make_response(json_data=chat_reply("重试成功")),
        ]

        assert self.client.generate({}, []) == "重试成功"
        mock_time.sleep.assert_called_once_with(2.0)
        assert self.session.post.call_count == 2

    @patch('couplequest.ai.iflow_client.time')
    def test_rate_limit_delay_is_capped(self, mock_time):
        self.session.post.side_effect = [
            make_response(status_code=429, headers={'Retry-After': '120'}),
            make_response(status_code=429),
        ]

        with pytest.raises(ProviderError) as exc_info:
            self.client.generate({}, [])

        mock_time.sleep.assert_called_once_with(10.0)
        assert exc_info.value.status_code == 429

    def test_missing_api_key(self):
        client = IFlowClient(api_key="", session=make_session())

        with pytest.raises(ProviderError):
            client.generate({}, [])
        assert client.is_available() is False

    def test_is_available(self):
        self.session.get.return_value = make_response()
        assert self.client.is_available() is True

        self.session.get.side_effect = requests.Timeout("timed out")
        assert self.client.is_available() is False


class TestOllamaClient:
    """Test the secondary provider adapter."""

    def setup_method(self):
        self.session = make_session()
        self.client = OllamaClient(base_url="http://ollama.test:11434", model="qwen2:7b",
                                   enabled=True, timeout=60, session=self.session)

    def test_disabled_client(self):
        client = OllamaClient(enabled=False, session=self.session)

        assert client.is_available() is False
        with pytest.raises(ProviderError):
            client.generate({}, [])
        self.session.get.assert_not_called()
        self.session.post.assert_not_called()

    def test_is_available(self):
        self.session.get.return_value = make_response(json_data={'models': [{'name': 'qwen2:7b'}]})

        assert self.client.is_available() is True
        assert self.session.get.call_args[0][0] == "http://ollama.test:11434/api/tags"

    def test_is_available_connection_refused(self):
        self.session.get.side_effect = requests.ConnectionError("refused")

        assert self.client.is_available() is False

    def test_generate(self):
        self.session.post.return_value = make_response(json_data={'response': '最近在追什么剧？\n'})

        assert self.client.generate({}, []) == '最近在追什么剧？'
        payload = self.session.post.call_args[1]['json']
        assert payload['stream'] is False
        assert payload['model'] == 'qwen2:7b'

    def test_empty_generation_raises(self):
        self.session.post.return_value = make_response(json_data={'response': '  '})

        with pytest.raises(ProviderError):
            self.client.generate({}, [])

    def test_analyze_sentiment(self):
        self.session.post.return_value = make_response(
            json_data={'response': '{"sentiment": "neutral", "score": 50}'})

        assert self.client.analyze_sentiment("还行") == {'sentiment': 'neutral', 'score': 50}

    def test_http_error_is_wrapped(self):
        self.session.post.return_value = make_response(status_code=404)

        with pytest.raises(ProviderError) as exc_info:
            self.client.generate({}, [])

        assert exc_info.value.status_code == 404
        assert exc_info.value.provider == "ollama"
