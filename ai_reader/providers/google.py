import asyncio
import json as json_lib
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

import httpx

from ai_reader.common.errors import TransportNetworkError, TransportTimeout
from ai_reader.common.models import ImagePayload, ImageResult, ReaderSettings, RequestKind, TextPayload
from ai_reader.config.base.settings import ENDPOINTS
from ai_reader.providers.utils.response_parsers import IMAGE_PARSERS, TEXT_PARSERS, run_parsers

logger = logging.getLogger("AIReaderGateway")


@dataclass
class RawResponse:
    status_code: int
    body: Any = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def parse_error_message(response: httpx.Response) -> Optional[str]:
    """Extracts the provider's human-readable error message from a non-2xx response."""
    try:
        error_json = response.json()
    except (json_lib.JSONDecodeError, ValueError):
        text = response.text.strip()
        return text[:500] or None
    if isinstance(error_json, dict):
        error_details = error_json.get("error", {})
        if isinstance(error_details, dict) and "message" in error_details:
            return str(error_details["message"])
        if "detail" in error_json:
            return str(error_json["detail"])
    return None


class GeminiTransport:
    """One HTTP attempt against the Gemini REST API.

    Non-2xx responses are returned, never raised: the router needs the status code
    to classify the failure. Timeouts and network failures raise TransportTimeout
    and TransportNetworkError respectively.
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def call(
        self,
        endpoint: str,
        credential: str,
        model: str,
        payload: Dict[str, Any],
        timeout: float,
    ) -> RawResponse:
        url = endpoint.format(model=model)
        client = self._get_client()
        request = client.post(
            url,
            params={"key": credential},
            json=payload,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
        try:
            # wait_for cancels the in-flight request when the deadline passes.
            response = await asyncio.wait_for(request, timeout=timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise TransportTimeout(f"Request to {model} timed out after {timeout:g}s") from e
        except (httpx.RequestError, httpx.InvalidURL) as e:
            # Connection failures, undecodable bodies, redirect loops and bad URLs.
            raise TransportNetworkError(f"Network error calling {model}: {e.__class__.__name__}: {e}") from e

        if response.is_success:
            try:
                body = response.json()
            except (json_lib.JSONDecodeError, ValueError):
                body = None
            return RawResponse(status_code=response.status_code, body=body)

        return RawResponse(
            status_code=response.status_code,
            error_message=parse_error_message(response),
        )

    async def aclose(self):
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


def _is_imagen(model: str) -> bool:
    return model.startswith("imagen")


def build_text_request(payload: TextPayload, settings: ReaderSettings) -> Tuple[str, Dict[str, Any]]:
    body: Dict[str, Any] = {
        "contents": [{"parts": [{"text": payload.prompt}]}],
        "generationConfig": {"temperature": settings.temperature},
    }
    if payload.system_instruction:
        body["systemInstruction"] = {"parts": [{"text": payload.system_instruction}]}
    if payload.expect_json:
        body["generationConfig"]["responseMimeType"] = "application/json"
    return ENDPOINTS["generate_content"], body


def build_image_request(model: str, payload: ImagePayload) -> Tuple[str, Dict[str, Any]]:
    if _is_imagen(model):
        return ENDPOINTS["predict"], {
            "instances": [{"prompt": payload.prompt}],
            "parameters": {"sampleCount": 1},
        }
    return ENDPOINTS["generate_content"], {
        "contents": [{"parts": [{"text": payload.prompt}]}],
        "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
    }


def build_request(
    kind: RequestKind,
    model: str,
    payload: Union[TextPayload, ImagePayload],
    settings: ReaderSettings,
) -> Tuple[str, Dict[str, Any]]:
    """Returns (endpoint template, JSON body) for one attempt."""
    if RequestKind(kind) == RequestKind.TEXT:
        return build_text_request(payload, settings)
    return build_image_request(model, payload)


def parse_response(kind: RequestKind, body: Any) -> Union[str, ImageResult]:
    """Extracts the generated text or image. Raises MalformedResponseError."""
    if RequestKind(kind) == RequestKind.TEXT:
        return run_parsers(TEXT_PARSERS, body, label="API")
    return run_parsers(IMAGE_PARSERS, body, label="Image API")
