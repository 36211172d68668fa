"""
Gemini Inference Client
=======================

Production inference client for the Generative Language REST API.

This client:
    - Calls models/{model}:generateContent over HTTPS with httpx
    - Sends images as inlineData parts (stripped base64 + mimeType)
    - Converts every transport or contract error into InferenceFailure
    - Counts calls and errors for observability

Design Rules:
    - Fail fast on misconfiguration (missing API key)
    - Never retry; the swap loop's cadence is the retry policy
    - A response without an inline image is a failure
"""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from sasa_cam.inference.client import (
    REFINE_PREFIX,
    REFINE_SYSTEM_INSTRUCTION,
    InferenceFailure,
    RefinementFailure,
    build_swap_instruction,
)
from sasa_cam.models.payload import ImagePayload


logger = logging.getLogger(__name__)


def _image_part(payload: ImagePayload) -> Dict[str, Any]:
    return {"inlineData": {"mimeType": payload.mime_type, "data": payload.data}}


class GeminiInferenceClient:
    """
    Inference client backed by the Generative Language API.

    Attributes:
        base_url: REST base URL (".../v1beta")
        swap_model: Image model used for swaps
        refine_model: Text model used for identity refinement
        timeout: Per-request transport timeout in seconds
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        swap_model: str = "gemini-2.5-flash-image",
        refine_model: str = "gemini-3-flash-preview",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            api_key: API key sent as x-goog-api-key
            base_url: REST base URL
            swap_model: Model name for swap requests
            refine_model: Model name for refinement requests
            timeout: Transport timeout per request
            transport: Optional httpx transport (used by tests)

        Raises:
            ValueError: If api_key is empty
        """
        if not api_key:
            raise ValueError(
                "An API key is required for the gemini inference backend. "
                "Set GEMINI_API_KEY or inference.api_key."
            )

        self.base_url = base_url.rstrip("/")
        self.swap_model = swap_model
        self.refine_model = refine_model
        self.timeout = timeout

        self._client = httpx.AsyncClient(
            headers={"x-goog-api-key": api_key},
            timeout=timeout,
            transport=transport,
        )

        self._swap_call_count: int = 0
        self._refine_call_count: int = 0
        self._error_count: int = 0
        self._last_latency: float = 0.0

        logger.info(
            f"GeminiInferenceClient initialized: "
            f"swap_model={swap_model}, refine_model={refine_model}, "
            f"timeout={timeout}s"
        )

    async def refine(self, identity: ImagePayload, instruction: str) -> str:
        """
        Ask the text model to describe an identity for the mapping engine.

        Args:
            identity: Stripped identity image
            instruction: Extra instruction appended to the enhancement prompt

        Returns:
            Descriptive text

        Raises:
            RefinementFailure: On service error or empty text
        """
        self._refine_call_count += 1
        body = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": f"{REFINE_PREFIX} {instruction}".strip()},
                        _image_part(identity),
                    ],
                }
            ],
            "systemInstruction": {"parts": [{"text": REFINE_SYSTEM_INSTRUCTION}]},
        }

        try:
            data = await self._generate(self.refine_model, body)
        except InferenceFailure as e:
            raise RefinementFailure(str(e))

        text = "".join(
            part["text"] for part in self._first_candidate_parts(data)
            if isinstance(part.get("text"), str)
        ).strip()
        if not text:
            self._error_count += 1
            raise RefinementFailure("Refinement response contained no text")
        return text

    async def swap(
        self,
        source: ImagePayload,
        target: ImagePayload,
        anchor: Optional[ImagePayload] = None,
    ) -> ImagePayload:
        """
        Request a face swap.

        Parts are sent in a fixed order: source, target, optional anchor,
        then one instruction block.

        Returns:
            Stripped result image

        Raises:
            InferenceFailure: On service error or a response without an image
        """
        self._swap_call_count += 1

        parts: List[Dict[str, Any]] = [_image_part(source), _image_part(target)]
        if anchor is not None:
            parts.append(_image_part(anchor))
        parts.append({"text": build_swap_instruction(with_anchor=anchor is not None)})

        data = await self._generate(self.swap_model, {"contents": [{"role": "user", "parts": parts}]})

        for part in self._first_candidate_parts(data):
            inline = part.get("inlineData") or part.get("inline_data")
            if isinstance(inline, dict) and inline.get("data"):
                mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
                return ImagePayload(data=inline["data"], mime_type=mime_type)

        self._error_count += 1
        raise InferenceFailure("Swap response contained no image")

    async def _generate(self, model: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST a generateContent request and return the decoded JSON body."""
        url = f"{self.base_url}/models/{model}:generateContent"
        start = time.monotonic()
        try:
            response = await self._client.post(url, json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            self._error_count += 1
            raise InferenceFailure(f"{model} request timed out: {e}")
        except httpx.HTTPStatusError as e:
            self._error_count += 1
            raise InferenceFailure(
                f"{model} returned HTTP {e.response.status_code}: {e.response.text[:200]}"
            )
        except httpx.HTTPError as e:
            self._error_count += 1
            raise InferenceFailure(f"{model} transport error: {e}")
        except ValueError as e:
            self._error_count += 1
            raise InferenceFailure(f"{model} returned malformed JSON: {e}")
        finally:
            self._last_latency = time.monotonic() - start

        if not isinstance(data, dict):
            self._error_count += 1
            raise InferenceFailure(f"{model} returned unexpected body type")

        logger.debug(f"{model} responded in {self._last_latency:.2f}s")
        return data

    @staticmethod
    def _first_candidate_parts(data: Dict[str, Any]) -> List[Dict[str, Any]]:
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            return []
        content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
        if not isinstance(content, dict):
            return []
        parts = content.get("parts")
        if not isinstance(parts, list):
            return []
        return [part for part in parts if isinstance(part, dict)]

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def get_metrics(self) -> dict:
        """Get client metrics for observability."""
        return {
            "backend": "gemini",
            "swap_calls": self._swap_call_count,
            "refine_calls": self._refine_call_count,
            "errors": self._error_count,
            "last_latency_sec": round(self._last_latency, 3),
        }
