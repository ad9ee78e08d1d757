# mathword/ai_corrector.py
import asyncio
import logging
import re
from typing import Callable, List, Optional, Tuple

import httpx

from .config import GEMINI_MODELS, Settings, get_settings
from .errors import AiServiceError, ApiKeyInvalidError, ApiKeyMissingError, RateLimitedError

logger = logging.getLogger(__name__)

SPLIT_SEARCH_WINDOW = 500
PAGE_SEPARATOR = '--- Trang'

CORRECTION_PROMPT = """You are an expert at cleaning up OCR text of Vietnamese mathematics exams. Fix spelling and normalize the LaTeX in the OCR text below.

RULES:
1. Fix Vietnamese spelling mistakes without changing the meaning.
2. Convert EVERY mathematical expression to standard LaTeX:
   - inline formulas: $...$ (for example $y = -4x - 5$)
   - display formulas: $$...$$ for long or important formulas
3. Normalize notation:
   - angles: \\widehat{ABC} instead of ∠ABC
   - systems of equations: \\begin{cases}...\\end{cases}
   - fractions: \\frac{numerator}{denominator}
   - roots: \\sqrt{} or \\sqrt[n]{}
   - number sets: \\mathbb{R}, \\mathbb{N}, ...
   - limits: \\lim_{x \\to a}; integrals: \\int_{a}^{b}
4. Common OCR mistakes to repair:
   - "—", "–" used as minus -> "$-$"
   - "V" or "v" followed by a number -> $\\sqrt{}$
   - stray characters in a math context -> the matching set symbol
   - "x^" with a missing exponent -> complete it (usually $x^2$)
   - "D=" is a domain, write it as $D = ...$
   - keep multiple-choice answers A. B. C. D. as they are
5. Keep Markdown formatting (## headings, **bold**, lists).
6. Return ONLY the corrected text. Do NOT explain.
7. Keep every image placeholder of the form [[IMG:number:number]] 100% unchanged. Do not delete, edit or move them.
8. Keep every HTML comment of the form <!--...--> 100% unchanged.

TEXT:
"""

_FENCE_OPEN = re.compile(r'^```[\w]*\n?')
_FENCE_CLOSE = re.compile(r'\n?```$')


def build_correction_prompt(text: str) -> str:
    return CORRECTION_PROMPT + text


def clean_response(response: str) -> str:
    """Removes a markdown code fence the model may wrap its answer in."""
    cleaned = response.strip()
    if cleaned.startswith('```'):
        cleaned = _FENCE_CLOSE.sub('', _FENCE_OPEN.sub('', cleaned))
    return cleaned.strip()


def split_into_chunks(text: str, max_length: int) -> List[str]:
    """
    Splits text into pieces of at most `max_length` characters at natural boundaries.

    The split point is searched in the last 500 characters of each window: a page separator
    first, then a blank line, then any newline; otherwise the window is cut hard.

    Args:
        text (str): The full text.
        max_length (int): Maximum chunk size.

    Returns:
        List[str]: The chunks in order.
    """
    if len(text) <= max_length:
        return [text]

    chunks = []
    remaining = text
    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break
        window_start = max(0, max_length - SPLIT_SEARCH_WINDOW)
        search_area = remaining[window_start:max_length]
        split_at = max_length
        for marker in (PAGE_SEPARATOR, '\n\n', '\n'):
            found = search_area.rfind(marker)
            if found > 0 or (found == 0 and window_start > 0):
                split_at = window_start + found
                break
        chunks.append(remaining[:split_at])
        remaining = remaining[split_at:].lstrip()
    return chunks


class GeminiClient:
    """Async client for the Gemini generateContent endpoint with model fallback."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self.transport = transport

    def model_order(self) -> List[str]:
        selected = self.settings.gemini_model
        return [selected] + [m for m in GEMINI_MODELS if m != selected]

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.gemini_timeout, transport=self.transport)

    async def _request(self, client: httpx.AsyncClient, model: str, api_key: str, prompt: str,
                       temperature: float, max_tokens: int) -> str:
        url = f"{self.settings.gemini_api_base}/{model}:generateContent"
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens, "topP": 0.95}
        }
        response = await client.post(url, params={"key": api_key}, json=payload)

        if response.status_code != 200:
            try:
                message = response.json().get('error', {}).get('message')
            except ValueError:
                message = None
            message = message or f"HTTP {response.status_code}"
            if response.status_code in (401, 403):
                raise ApiKeyInvalidError(message)
            if response.status_code == 429:
                raise RateLimitedError(message)
            raise AiServiceError(f"API error ({response.status_code}): {message}")

        data = response.json()
        try:
            text = data['candidates'][0]['content']['parts'][0]['text']
        except (KeyError, IndexError, TypeError):
            text = None
        if not text:
            raise AiServiceError("Gemini returned no response text.")
        return text

    async def generate(self, prompt: str, temperature: float = 0.1, max_tokens: int = 65536) -> str:
        """
        Sends a prompt, trying each known model in turn until one answers.

        Args:
            prompt (str): The full prompt text.
            temperature (float): Sampling temperature.
            max_tokens (int): Output token limit.

        Raises:
            ApiKeyMissingError: No API key is configured.
            ApiKeyInvalidError: The service rejected the key; no further models are tried.
            AiServiceError: Every model failed; the last failure is raised.

        Returns:
            str: The model's text answer.
        """
        api_key = self.settings.gemini_api_key
        if not api_key:
            raise ApiKeyMissingError("GEMINI_API_KEY is not set.")

        last_error: Optional[Exception] = None
        async with self._client() as client:
            for model in self.model_order():
                logger.info("Trying model: %s", model)
                try:
                    result = await self._request(client, model, api_key, prompt, temperature, max_tokens)
                    logger.info("Success with model: %s", model)
                    return result
                except ApiKeyInvalidError:
                    raise
                except (AiServiceError, httpx.HTTPError) as e:
                    logger.warning("Model %s failed: %s", model, e)
                    last_error = e
        if isinstance(last_error, AiServiceError):
            raise last_error
        raise AiServiceError(f"All models failed: {last_error}")

    async def validate_api_key(self, api_key: str) -> Tuple[bool, Optional[str]]:
        url = f"{self.settings.gemini_api_base}/{GEMINI_MODELS[0]}:generateContent"
        payload = {"contents": [{"parts": [{"text": 'Reply "OK"'}]}], "generationConfig": {"maxOutputTokens": 10}}
        try:
            async with self._client() as client:
                response = await client.post(url, params={"key": api_key}, json=payload)
        except httpx.HTTPError as e:
            return False, f"Could not connect: {e}"
        if response.status_code in (401, 403):
            return False, "Invalid API key"
        if response.is_success:
            return True, None
        return False, f"Error: HTTP {response.status_code}"


async def correct_text(text: str, client: Optional[GeminiClient] = None,
                       on_progress: Optional[Callable[[int, str], None]] = None) -> str:
    """
    Runs OCR text through the correction model chunk by chunk.

    Args:
        text (str): Raw text extracted from the PDF.
        client (Optional[GeminiClient]): The client to use; a default one is created if omitted.
        on_progress (Optional[Callable[[int, str], None]]): Receives (percent, message) updates.

    Returns:
        str: The corrected text, chunks joined by blank lines.
    """
    if not text or not text.strip():
        return text

    client = client or GeminiClient()
    settings = client.settings

    def progress(percent: int, message: str):
        if on_progress:
            on_progress(percent, message)

    progress(10, "Preparing text for the AI service...")
    chunks = split_into_chunks(text, settings.ai_chunk_size)
    results: List[Optional[str]] = [None] * len(chunks)
    semaphore = asyncio.Semaphore(settings.ai_concurrency)
    completed = 0

    async def process(index: int, chunk: str):
        nonlocal completed
        async with semaphore:
            answer = await client.generate(build_correction_prompt(chunk), temperature=0.1)
        results[index] = clean_response(answer)
        completed += 1
        progress(10 + round(completed / len(chunks) * 80), f"Processed part {completed}/{len(chunks)}")

    tasks = [asyncio.create_task(process(i, chunk)) for i, chunk in enumerate(chunks)]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        # One chunk failed or we were cancelled: stop the remaining requests before re-raising.
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    progress(95, "Formula correction finished.")
    return "\n\n".join(results)
