import logging
from typing import Any, Callable, List, Optional

from ai_reader.common.errors import MalformedResponseError
from ai_reader.common.models import ImageResult

logger = logging.getLogger("AIReaderGateway")

# Each parser returns a typed result, or None when the body does not have its shape.
TextParser = Callable[[Any], Optional[str]]
ImageParser = Callable[[Any], Optional[ImageResult]]


def _first_candidate_parts(body: Any) -> Optional[list]:
    if not isinstance(body, dict):
        return None
    candidates = body.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    if not isinstance(content, dict):
        return None
    parts = content.get("parts")
    if not isinstance(parts, list) or not parts:
        return None
    return parts


def parse_candidate_text(body: Any) -> Optional[str]:
    """Gemini generateContent: joins the text parts of the first candidate, skipping thoughts."""
    parts = _first_candidate_parts(body)
    if parts is None:
        return None
    texts = [
        part["text"]
        for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str) and not part.get("thought", False)
    ]
    if not texts:
        return None
    return "".join(texts)


def parse_imagen_prediction(body: Any) -> Optional[ImageResult]:
    """Imagen predict: predictions[0].bytesBase64Encoded."""
    if not isinstance(body, dict):
        return None
    predictions = body.get("predictions")
    if not isinstance(predictions, list) or not predictions or not isinstance(predictions[0], dict):
        return None
    data = predictions[0].get("bytesBase64Encoded")
    if not data:
        return None
    mime_type = predictions[0].get("mimeType") or "image/png"
    return ImageResult(data_url=f"data:{mime_type};base64,{data}", mime_type=mime_type)


def parse_inline_image(body: Any) -> Optional[ImageResult]:
    """Gemini image models: the first inlineData part of the first candidate."""
    parts = _first_candidate_parts(body)
    if parts is None:
        return None
    for part in parts:
        if not isinstance(part, dict):
            continue
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, dict) and inline.get("data"):
            mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            return ImageResult(data_url=f"data:{mime_type};base64,{inline['data']}", mime_type=mime_type)
    return None


def parse_candidate_text_as_image(body: Any) -> Optional[ImageResult]:
    """Some image models answer with text only; hand that text back instead of failing."""
    text = parse_candidate_text(body)
    if text is None:
        return None
    return ImageResult(text=text)


TEXT_PARSERS: List[TextParser] = [parse_candidate_text]

IMAGE_PARSERS: List[ImageParser] = [
    parse_imagen_prediction,
    parse_inline_image,
    parse_candidate_text_as_image,
]


def _block_reason(body: Any) -> Optional[str]:
    if isinstance(body, dict):
        feedback = body.get("promptFeedback")
        if isinstance(feedback, dict) and feedback.get("blockReason"):
            return str(feedback["blockReason"])
    return None


def run_parsers(parsers: List[Callable[[Any], Any]], body: Any, label: str = "API"):
    """Tries each parser in order and returns the first match.

    Raises MalformedResponseError when no parser recognises the body.
    """
    for parser in parsers:
        result = parser(body)
        if result is not None:
            return result

    reason = _block_reason(body)
    if reason:
        raise MalformedResponseError(f"Blocked: {reason}")
    raise MalformedResponseError(f"Unexpected {label} response structure.")
