"""
Backend classifier for homework segments.
Sends a page region and its OCR blocks to the selected analysis backend
and returns the raw response text for the parser and decoder.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp
import requests

from config import Config
from core.backends import AnalysisBackend
from core.dto.analysis import OCRBlock
from core.errors import (
    BackendError,
    BackendServerError,
    BackendTimeoutError,
    BackendTransportError,
)
from core.imaging import encode_image

logger = logging.getLogger(__name__)

# Approximate height of one OCR line for the multi-agent request
OCR_BLOCK_HEIGHT = 0.05

SEGMENT_SYSTEM_PROMPT = (
    "You are an expert at reading homework pages. "
    "You classify one region of a page at a time and answer only with JSON."
)

SEGMENT_PROMPT = """Look at this region of a homework page together with its OCR text.
Y coordinates are normalized: 0 is the bottom of the page and 1 is the top.

OCR text (Y: position - "text"):
{ocr_lines}

Decide whether the region contains an exercise the student must solve.
Instructions, headers, page numbers and decoration are NOT exercises.

Return JSON only:
{{"type": "exercise", "exercise": {{
    "exerciseNumber": "number printed on the page, or null",
    "type": "mathematical | multiple_choice | true_or_false | fill_in_blanks | essay | short_answer | diagram | proof | calculation | other",
    "fullContent": "complete exercise text, LaTeX allowed",
    "startY": {start_y:.3f},
    "endY": {end_y:.3f},
    "subject": "mathematics | language | science | history | other",
    "inputType": "canvas | text"
}}}}
or {{"type": "skip"}} when the region holds no exercise."""


def format_segment_lines(blocks: List[OCRBlock]) -> str:
    """Format OCR blocks for the on-device prompt, top of the region first."""
    ordered = sorted(blocks, key=lambda b: b.y, reverse=True)
    return "\n".join(f'Y: {block.y:.3f} - "{block.text}"' for block in ordered)


def format_ocr_text(blocks: List[OCRBlock]) -> str:
    """Format OCR blocks for the single-agent cloud request (Y in thousandths)."""
    result = "OCR Text Analysis with Y-coordinates:\n\n"
    for index, block in enumerate(blocks, start=1):
        result += f"Block {index} (Y: {int(block.y * 1000)}): {block.text}\n"
    return result


def agentic_ocr_blocks(blocks: List[OCRBlock]) -> List[Dict[str, Any]]:
    return [
        {"text": block.text, "startY": block.y, "endY": min(1.0, block.y + OCR_BLOCK_HEIGHT)}
        for block in blocks
    ]


class BackendClassifier:
    """Classifies page regions with the on-device model or the cloud functions."""

    def __init__(
        self,
        ollama_url: Optional[str] = None,
        model: Optional[str] = None,
        cloud_base_url: Optional[str] = None,
        app_check_token: Optional[str] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        """Initialize classifier.

        Args:
            ollama_url: Base URL of the local Ollama server
            model: On-device vision model name
            cloud_base_url: Base URL of the cloud functions
            app_check_token: Token sent in the X-Firebase-AppCheck header
            max_retries: Retries for cloud calls on 5xx, timeouts and connection errors
            retry_delay: Seconds between cloud retries
        """
        self.ollama_url = (ollama_url or Config.OLLAMA_BASE_URL).rstrip("/")
        self.model = model or Config.ON_DEVICE_MODEL
        self.cloud_base_url = (cloud_base_url or Config.CLOUD_BASE_URL).rstrip("/")
        self.app_check_token = app_check_token or Config.CLOUD_APP_CHECK_TOKEN
        self.max_retries = Config.CLOUD_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = Config.CLOUD_RETRY_DELAY if retry_delay is None else retry_delay

        # Async HTTP session (initialized in __aenter__)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry - initializes aiohttp session."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit - closes aiohttp session."""
        if self._session:
            await self._session.close()
            self._session = None

    def is_on_device_available(self) -> bool:
        """Check whether the on-device model is pulled in the local Ollama server.

        Blocking; only for synchronous callers such as the `route` command.
        Inside an event loop use is_on_device_available_async().
        """
        try:
            response = requests.get(f"{self.ollama_url}/api/tags", timeout=10)
            response.raise_for_status()

            models = response.json().get("models", [])
            available_models = [m["name"] for m in models]
            return self.model in available_models

        except (requests.exceptions.RequestException, ValueError, KeyError) as e:
            logger.debug(f"Ollama availability check failed: {e}")
            return False

    async def is_on_device_available_async(self) -> bool:
        """Check the local Ollama server through the owned aiohttp session."""
        if self._session is None:
            logger.debug("Ollama availability check skipped: no open session")
            return False

        try:
            timeout = aiohttp.ClientTimeout(total=10)
            async with self._session.get(f"{self.ollama_url}/api/tags", timeout=timeout) as response:
                if response.status != 200:
                    logger.debug(f"Ollama availability check returned HTTP {response.status}")
                    return False
                data = await response.json()

            available_models = [m["name"] for m in data.get("models", [])]
            return self.model in available_models

        except (asyncio.TimeoutError, aiohttp.ClientError, ValueError, KeyError) as e:
            logger.debug(f"Ollama availability check failed: {e}")
            return False

    async def is_available(self, backend: AnalysisBackend) -> bool:
        """Check whether a backend can be used for this run.

        Cloud backends are assumed reachable; their failures surface per call.
        """
        if backend is AnalysisBackend.ON_DEVICE:
            return await self.is_on_device_available_async()
        return bool(self.cloud_base_url)

    async def classify(self, region: Any, ocr_blocks: List[OCRBlock], backend: AnalysisBackend) -> str:
        """Classify one page region.

        Args:
            region: Cropped PIL image of the region (None for text-only analysis)
            ocr_blocks: OCR blocks inside the region
            backend: Backend to use

        Returns:
            Raw response text

        Raises:
            BackendError: On timeouts, HTTP errors or connection failures
        """
        if self._session is None:
            raise BackendError("BackendClassifier must be used as an async context manager")

        if backend is AnalysisBackend.ON_DEVICE:
            return await self._classify_on_device(region, ocr_blocks)
        if backend is AnalysisBackend.CLOUD_MULTI_AGENT:
            return await self._classify_agentic(region, ocr_blocks)
        return await self._classify_cloud(region, ocr_blocks)

    async def _classify_on_device(self, region: Any, ocr_blocks: List[OCRBlock]) -> str:
        ys = [block.y for block in ocr_blocks] or [0.0, 1.0]
        prompt = SEGMENT_PROMPT.format(
            ocr_lines=format_segment_lines(ocr_blocks),
            start_y=min(ys),
            end_y=max(ys),
        )

        payload = {
            "model": self.model,
            "prompt": prompt,
            "system": SEGMENT_SYSTEM_PROMPT,
            "stream": False,
            "format": "json",
            "options": {"temperature": Config.ON_DEVICE_TEMPERATURE},
        }
        if region is not None:
            payload["images"] = [encode_image(region)]

        url = f"{self.ollama_url}/api/generate"
        timeout = aiohttp.ClientTimeout(total=Config.ON_DEVICE_TIMEOUT)
        try:
            async with self._session.post(url, json=payload, timeout=timeout) as response:
                if response.status != 200:
                    raise BackendServerError(response.status, await response.text())
                result = await response.json()
        except asyncio.TimeoutError:
            raise BackendTimeoutError(f"On-device model timed out after {Config.ON_DEVICE_TIMEOUT}s")
        except aiohttp.ClientError as e:
            raise BackendTransportError(f"Cannot reach Ollama at {self.ollama_url}: {e}")

        return result.get("response", "")

    async def _classify_cloud(self, region: Any, ocr_blocks: List[OCRBlock]) -> str:
        if region is None:
            logger.info("[CLOUD] No image, using text-only analysis")
            text = "\n".join(block.text for block in ocr_blocks)
            return await self._post_with_retry(
                "analyzeTextOnly", {"text": text}, Config.CLOUD_REQUEST_TIMEOUT
            )

        payload = {
            "imageBase64": encode_image(region),
            "imageMimeType": "image/jpeg",
            "ocrJsonText": format_ocr_text(ocr_blocks),
        }
        return await self._post_with_retry("analyzeHomework", payload, Config.CLOUD_REQUEST_TIMEOUT)

    async def _classify_agentic(self, region: Any, ocr_blocks: List[OCRBlock]) -> str:
        if region is None:
            raise BackendError("Multi-agent analysis requires a page image")

        payload = {
            "imageBase64": encode_image(region),
            "ocrBlocks": agentic_ocr_blocks(ocr_blocks),
            "userPreferences": {
                "detailLevel": Config.AGENTIC_DETAIL_LEVEL,
                "includeExtraPractice": Config.AGENTIC_INCLUDE_EXTRA_PRACTICE,
                "preferredLanguage": Config.PREFERRED_LANGUAGE,
            },
        }
        return await self._post_with_retry(
            "analyzeHomeworkAgentic", payload, Config.AGENTIC_REQUEST_TIMEOUT
        )

    async def _post_with_retry(self, endpoint: str, payload: Dict[str, Any], timeout_s: int) -> str:
        url = f"{self.cloud_base_url}/{endpoint}"
        headers = {
            "Content-Type": "application/json",
            "X-Firebase-AppCheck": self.app_check_token,
        }
        timeout = aiohttp.ClientTimeout(total=timeout_s)
        body = json.dumps(payload)
        logger.info(f"[CLOUD] POST {endpoint} ({len(body)} bytes)")

        for attempt in range(self.max_retries + 1):
            try:
                async with self._session.post(url, data=body, headers=headers, timeout=timeout) as response:
                    text = await response.text()
                    if response.status == 200:
                        return text
                    error = BackendServerError(response.status, text)
            except asyncio.TimeoutError:
                error = BackendTimeoutError()
            except aiohttp.ClientError as e:
                error = BackendTransportError(f"Cannot connect to server: {e}")

            retryable = not isinstance(error, BackendServerError) or error.is_retryable
            if not retryable or attempt >= self.max_retries:
                raise error

            logger.warning(
                f"[CLOUD] {error}; retrying in {self.retry_delay}s "
                f"(attempt {attempt + 1}/{self.max_retries})"
            )
            await asyncio.sleep(self.retry_delay)

        raise BackendError("Max retries exceeded")
