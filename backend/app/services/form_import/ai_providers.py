"""
AI Provider Layer
=================

Uniform access to the generative models used by the import pipeline.

Providers:
----------
- gemini: Google Gemini through the ``google-genai`` SDK. Tries a list of
  models in order until one answers.
- openai: any OpenAI-compatible ``/chat/completions`` endpoint, called with
  ``requests``; images are sent inline as base64 data URLs.
- mock: no network access. Vision analysis returns an empty result and
  mapping generation falls back to the rule table at confidence 0.5.

Every provider exposes ``analyze(image_bytes, prompt)`` and
``generate_mappings(field_names, schema_fields)`` and reports any failure as
``ProviderError``. ``ProviderChain`` adds the per-call timeout, the shared
call budget (``RateLimiter``) and the optional fallback provider.

Provider Selection:
-------------------
``AI_PROVIDER=auto`` picks gemini when ``GOOGLE_API_KEY`` is set, then
openai when ``OPENAI_API_KEY`` is set, otherwise mock. With
``ENABLE_AI_FALLBACK=true`` a failing gemini call is retried once on openai
and vice versa. There is no other retry.
"""

import base64
import json
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any, Dict, List, Optional

import requests
from google import genai
from google.genai import types as genai_types

from app.config import Config
from app.services.errors import ProviderError
from app.utils.rate_limiter import RateLimiter

from .mapping_suggestions import apply_rule_based_matching

logger = logging.getLogger(__name__)

PROVIDER_NAMES = ('gemini', 'openai', 'mock')

MAPPING_PROMPT_TEMPLATE = """Given these PDF field names from a lender questionnaire or form,
suggest the best mapping to application data fields.

PDF Fields:
{pdf_fields}

Available Application Fields:
{application_fields}

Return a JSON array with suggestions and confidence scores (0-1).

Example format:
[
  {{
    "pdfField": "Borrower_Name",
    "suggestedMapping": "buyerName",
    "confidence": 0.95,
    "reasoning": "Direct match - borrower is the buyer"
  }}
]

Only use application field names from the list above. Use null for suggestedMapping
when no application field fits. Return only valid JSON, no markdown formatting."""


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json fence from a model response."""
    response_text = (text or '').strip()
    if "```json" in response_text:
        json_start = response_text.find("```json") + 7
        json_end = response_text.find("```", json_start)
        response_text = response_text[json_start:json_end if json_end >= 0 else None].strip()
    elif "```" in response_text:
        json_start = response_text.find("```") + 3
        json_end = response_text.find("```", json_start)
        response_text = response_text[json_start:json_end if json_end >= 0 else None].strip()
    return response_text


def parse_json_response(text: str) -> Any:
    """
    Parse a model response as JSON.

    Returns:
        The decoded JSON, or ``{'text': text, 'raw': True}`` when the
        response is not JSON
    """
    try:
        return json.loads(strip_code_fences(text))
    except (json.JSONDecodeError, TypeError):
        logger.warning(f"Model response is not JSON ({len(text or '')} chars); returning raw text")
        return {'text': text, 'raw': True}


def build_mapping_prompt(field_names: List[str], schema_fields: List[str]) -> str:
    return MAPPING_PROMPT_TEMPLATE.format(
        pdf_fields="\n".join(f"{i + 1}. {name}" for i, name in enumerate(field_names)),
        application_fields="\n".join(f"- {name}" for name in schema_fields),
    )


def parse_mapping_response(provider: str, data: Any) -> List[Dict[str, Any]]:
    """Normalize a model's mapping answer to a list of suggestion dictionaries."""
    if isinstance(data, dict):
        data = data.get('mappings') or data.get('suggestions')
    if not isinstance(data, list):
        raise ProviderError(provider, "Mapping response is not a JSON array")

    suggestions = []
    for entry in data:
        if not isinstance(entry, dict):
            continue
        suggestions.append({
            'pdfField': entry.get('pdfField') or entry.get('field'),
            'suggestedMapping': entry.get('suggestedMapping') or entry.get('mapping'),
            'confidence': entry.get('confidence', 0.5),
            'reasoning': entry.get('reasoning') or 'No reasoning provided',
        })
    return suggestions


class VisionProvider:
    """Base class for model providers."""

    name = 'base'

    @property
    def is_available(self) -> bool:
        return True

    @property
    def model(self) -> str:
        return self.name

    def complete(self, prompt: str, image_bytes: Optional[bytes] = None) -> str:
        """Send a prompt (with an optional PNG image) and return the response text."""
        raise NotImplementedError

    def analyze(self, image_bytes: bytes, prompt: str) -> Any:
        """
        Ask the model about a page image.

        Returns:
            Parsed JSON answer (or the raw-text marker dictionary)
        """
        return parse_json_response(self.complete(prompt, image_bytes))

    def generate_mappings(self, field_names: List[str], schema_fields: List[str]) -> List[Dict[str, Any]]:
        """Ask the model to map PDF field names onto schema fields."""
        text = self.complete(build_mapping_prompt(field_names, schema_fields))
        return parse_mapping_response(self.name, parse_json_response(text))


class GeminiProvider(VisionProvider):
    """Google Gemini via google-genai, trying each configured model in turn."""

    name = 'gemini'

    def __init__(self, api_key: Optional[str] = None, models: Optional[List[str]] = None):
        self.api_key = api_key or Config.GOOGLE_API_KEY
        candidates = models or [Config.GEMINI_MODEL] + list(Config.GEMINI_FALLBACK_MODELS)
        # keep order, drop blanks and duplicates
        self.models = [m for i, m in enumerate(candidates) if m and m not in candidates[:i]]
        self._client = None

    @property
    def is_available(self) -> bool:
        return bool(self.api_key)

    @property
    def model(self) -> str:
        return self.models[0] if self.models else 'unknown'

    def _get_client(self):
        if not self.api_key:
            raise ProviderError(self.name, "GOOGLE_API_KEY is not configured")
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def complete(self, prompt: str, image_bytes: Optional[bytes] = None) -> str:
        client = self._get_client()
        contents: List[Any] = [prompt]
        if image_bytes is not None:
            contents.append(genai_types.Part.from_bytes(data=image_bytes, mime_type='image/png'))

        last_error: Optional[Exception] = None
        for model_name in self.models:
            try:
                response = client.models.generate_content(model=model_name, contents=contents)
                text = (getattr(response, 'text', None) or '').strip()
                if text:
                    logger.info(f"Gemini model {model_name} answered ({len(text)} chars)")
                    return text
                logger.warning(f"Gemini model {model_name} returned an empty response")
            except Exception as e:
                last_error = e
                logger.warning(f"Gemini model {model_name} failed: {str(e)[:100]}")

        raise ProviderError(self.name, f"All model attempts failed: {last_error or 'empty responses'}")


class OpenAIProvider(VisionProvider):
    """OpenAI-compatible chat completions over HTTP."""

    name = 'openai'

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        vision_model: Optional[str] = None,
        text_model: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.api_key = api_key or Config.OPENAI_API_KEY
        self.api_base = (api_base or Config.OPENAI_API_BASE).rstrip('/')
        self.vision_model = vision_model or Config.OPENAI_MODEL_VISION
        self.text_model = text_model or Config.OPENAI_MODEL_TEXT
        self.timeout = timeout or Config.AI_PROVIDER_TIMEOUT

    @property
    def is_available(self) -> bool:
        return bool(self.api_key)

    @property
    def model(self) -> str:
        return self.vision_model

    def complete(self, prompt: str, image_bytes: Optional[bytes] = None) -> str:
        if not self.api_key:
            raise ProviderError(self.name, "OPENAI_API_KEY is not configured")

        if image_bytes is not None:
            image_data = base64.b64encode(image_bytes).decode('utf-8')
            content: Any = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{image_data}"}},
            ]
            model = self.vision_model
        else:
            content = prompt
            model = self.text_model

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        payload = {
            "model": model,
            "messages": [{"role": "user", "content": content}],
            "temperature": 0.0,
            "max_tokens": 4000
        }

        try:
            response = requests.post(
                f"{self.api_base}/chat/completions",
                headers=headers,
                json=payload,
                timeout=self.timeout
            )
            response.raise_for_status()
            result_data = response.json()
            text = result_data['choices'][0]['message']['content'] or ''
        except requests.RequestException as e:
            raise ProviderError(self.name, f"Request failed: {e}") from e
        except (KeyError, IndexError, ValueError) as e:
            raise ProviderError(self.name, f"Unexpected response shape: {e}") from e

        tokens_used = result_data.get('usage', {}).get('total_tokens', 0)
        logger.info(f"OpenAI model {model} answered ({len(text)} chars, {tokens_used} tokens)")
        return text


class MockProvider(VisionProvider):
    """Offline provider used when no API key is configured."""

    name = 'mock'

    def complete(self, prompt: str, image_bytes: Optional[bytes] = None) -> str:
        return json.dumps({'message': 'Mock analysis - no AI provider configured'})

    def generate_mappings(self, field_names: List[str], schema_fields: List[str]) -> List[Dict[str, Any]]:
        return [
            {
                'pdfField': name,
                'suggestedMapping': apply_rule_based_matching(name),
                'confidence': 0.5,
                'reasoning': 'Mock provider - rule-based matching only',
            }
            for name in field_names
        ]


def build_provider(name: str) -> VisionProvider:
    """Instantiate a provider by name."""
    if name == 'gemini':
        return GeminiProvider()
    if name == 'openai':
        return OpenAIProvider()
    if name == 'mock':
        return MockProvider()
    raise ValueError(f"Unknown AI provider: {name}")


class ProviderChain:
    """
    Primary provider with optional fallback, per-call timeout and call budget.

    Example usage:

        chain = ProviderChain(GeminiProvider(), fallback=OpenAIProvider(), timeout=60)
        answer = chain.analyze(png_bytes, prompt)
    """

    def __init__(
        self,
        primary: VisionProvider,
        fallback: Optional[VisionProvider] = None,
        timeout: Optional[float] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.primary = primary
        self.fallback = fallback
        self.timeout = timeout or Config.AI_PROVIDER_TIMEOUT
        self.rate_limiter = rate_limiter

    @property
    def name(self) -> str:
        return self.primary.name

    def analyze(self, image_bytes: bytes, prompt: str) -> Any:
        return self._run('analyze', image_bytes, prompt)

    def generate_mappings(self, field_names: List[str], schema_fields: List[str]) -> List[Dict[str, Any]]:
        return self._run('generate_mappings', field_names, schema_fields)

    def _run(self, method: str, *args) -> Any:
        try:
            return self._call(self.primary, method, *args)
        except ProviderError as primary_error:
            if self.fallback is None:
                raise
            logger.warning(
                f"Primary AI provider ({self.primary.name}) failed, trying fallback: {self.fallback.name}"
            )
            try:
                return self._call(self.fallback, method, *args)
            except ProviderError as fallback_error:
                raise ProviderError(
                    'chain',
                    f"Both AI providers failed. Primary: {primary_error}, Fallback: {fallback_error}"
                ) from fallback_error

    def _call(self, provider: VisionProvider, method: str, *args) -> Any:
        if self.rate_limiter is not None and provider.name != 'mock':
            can_call, reason = self.rate_limiter.can_make_call(provider.name)
            if not can_call:
                raise ProviderError(provider.name, f"Rate limit reached: {reason}")
            self.rate_limiter.record_call(provider.name)

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"ai-{provider.name}")
        try:
            future = executor.submit(getattr(provider, method), *args)
            return future.result(timeout=self.timeout)
        except FutureTimeoutError as e:
            raise ProviderError(provider.name, f"Timed out after {self.timeout}s") from e
        except ProviderError:
            raise
        except Exception as e:
            logger.error(f"AI provider {provider.name} raised {type(e).__name__}: {e}", exc_info=True)
            raise ProviderError(provider.name, str(e)) from e
        finally:
            # a timed-out call keeps running in its thread; its result is discarded
            executor.shutdown(wait=False)


def create_provider_chain(rate_limiter: Optional[RateLimiter] = None) -> ProviderChain:
    """Build the provider chain described by the configuration."""
    primary_name = Config.resolve_ai_provider()
    fallback = None
    if Config.ENABLE_AI_FALLBACK and primary_name != 'mock':
        fallback = build_provider('openai' if primary_name == 'gemini' else 'gemini')
    chain = ProviderChain(
        build_provider(primary_name),
        fallback=fallback,
        timeout=Config.AI_PROVIDER_TIMEOUT,
        rate_limiter=rate_limiter,
    )
    logger.info(
        f"AI provider: {primary_name}" + (f" (fallback: {fallback.name})" if fallback else "")
    )
    return chain


def get_provider_status() -> Dict[str, Dict[str, Any]]:
    """Availability and model of every provider."""
    gemini = GeminiProvider()
    openai = OpenAIProvider()
    return {
        'selected': Config.resolve_ai_provider(),
        'fallbackEnabled': Config.ENABLE_AI_FALLBACK,
        'gemini': {'available': gemini.is_available, 'model': gemini.model},
        'openai': {'available': openai.is_available, 'model': openai.model},
        'mock': {'available': True, 'model': 'mock'},
    }
