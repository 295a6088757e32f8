"""Food photo classification through the Gemini `generateContent` API.

The model is asked for `{"detected_foods": [...], "total_calories": n}`.
Replies without a parsable JSON object fall back to a single generic item at
200 kcal so that a capture always yields a meal.
"""

import base64
import json
import math
import re
from typing import Any, Dict, Optional, Tuple

import httpx

from core.config import settings
from core.exceptions import ClassifierError, ClassifierFailure, ConfigurationError, ImageProcessingError
from core.logger import get_logger
from schemas import FoodAnalysis
from services.nutrition_calculator import round_half_up

logger = get_logger("services.food_classifier")

FALLBACK_FOODS = ["Food detected"]
FALLBACK_CALORIES = 200
DEFAULT_MIME_TYPE = "image/jpeg"

PROMPT = (
    "Analyze this food image and return a JSON response with the following structure: "
    "{\"detected_foods\": [\"food1\", \"food2\"], \"total_calories\": number}. "
    "Only identify the food items visible in the image and estimate their total calories. "
    "Be specific about the food items you can see."
)

_STATUS_FAILURES = {
    429: (ClassifierFailure.RATE_LIMITED, "Rate limit exceeded. Please wait a moment and try again."),
    400: (ClassifierFailure.BAD_REQUEST, "Invalid request. Please check your image and try again."),
    403: (ClassifierFailure.INVALID_CREDENTIAL, "API key is invalid or has insufficient permissions."),
    500: (ClassifierFailure.SERVER_ERROR, "Server error. Please try again later."),
}

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def encode_image(data: Optional[bytes], content_type: Optional[str] = None) -> str:
    """Encode raw image bytes as a `data:` URL.

    Raises:
        ImageProcessingError: If there is nothing to encode.
    """
    if not data:
        raise ImageProcessingError()
    mime_type = content_type or DEFAULT_MIME_TYPE
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def split_data_url(encoded_image: str) -> Tuple[str, str]:
    """Return (mime_type, base64 payload); HEIC/HEIF is sent as JPEG."""
    if "," not in encoded_image:
        return DEFAULT_MIME_TYPE, encoded_image
    header, payload = encoded_image.split(",", 1)
    match = re.match(r"data:([^;]+);", header)
    mime_type = match.group(1) if match else DEFAULT_MIME_TYPE
    if "heic" in mime_type or "heif" in mime_type:
        mime_type = DEFAULT_MIME_TYPE
    return mime_type, payload


def _coerce_calories(value: Any) -> Optional[int]:
    """Whole calories from a model value; None for infinities and NaN."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return None
    return round_half_up(number)


def parse_analysis(response_text: str) -> FoodAnalysis:
    """Pull the food list and calorie total out of free-form model text."""
    match = _JSON_OBJECT.search(response_text or "")
    if match is None:
        logger.warning("Classifier reply has no JSON object; using fallback estimate")
        return FoodAnalysis(foods=list(FALLBACK_FOODS), calories=FALLBACK_CALORIES, fallback=True)
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        logger.warning("Failed to parse classifier JSON (%s); using fallback estimate", exc)
        return FoodAnalysis(foods=list(FALLBACK_FOODS), calories=FALLBACK_CALORIES, fallback=True)
    if not isinstance(parsed, dict):
        logger.warning("Classifier JSON is not an object; using fallback estimate")
        return FoodAnalysis(foods=list(FALLBACK_FOODS), calories=FALLBACK_CALORIES, fallback=True)

    foods = parsed.get("detected_foods") or []
    if not isinstance(foods, list):
        foods = [foods]
    calories = _coerce_calories(parsed.get("total_calories") or 0)
    if calories is None:
        logger.warning("Classifier calorie estimate is not finite; using fallback estimate")
        return FoodAnalysis(foods=list(FALLBACK_FOODS), calories=FALLBACK_CALORIES, fallback=True)
    return FoodAnalysis(foods=[str(food) for food in foods], calories=calories)


def _response_text(payload: Dict[str, Any]) -> str:
    try:
        return payload["candidates"][0]["content"]["parts"][0].get("text") or ""
    except (KeyError, IndexError, TypeError, AttributeError):
        return ""


class FoodClassifier:
    """Async client for the image classifier.

    Pass `client` to reuse a connection pool (or to inject a mock transport);
    otherwise a client is opened per request.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.classifier_base_url).rstrip("/")
        self.model = model or settings.classifier_model
        self.timeout = timeout if timeout is not None else settings.classifier_timeout
        self._client = client

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def build_request(self, encoded_image: str) -> Dict[str, Any]:
        mime_type, data = split_data_url(encoded_image)
        return {
            "contents": [{
                "parts": [
                    {"text": PROMPT},
                    {"inline_data": {"mime_type": mime_type, "data": data}},
                ]
            }]
        }

    async def analyze(self, encoded_image: str, api_key: str) -> FoodAnalysis:
        """Classify one encoded image.

        Raises:
            ConfigurationError: If no API key is configured.
            ClassifierError: On any non-success response or transport failure.
        """
        if not api_key:
            raise ConfigurationError("API key is required. Please configure it in settings.", config_key="gemini_api_key")

        body = self.build_request(encoded_image)
        logger.info("Sending image to classifier (%s)", self.model)
        try:
            if self._client is not None:
                response = await self._client.post(self.endpoint, params={"key": api_key}, json=body)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.endpoint, params={"key": api_key}, json=body)
        except httpx.HTTPError as exc:
            logger.error("Classifier request failed: %s", exc)
            raise ClassifierError(ClassifierFailure.FAILED, "Failed to analyze image") from exc

        if not response.is_success:
            reason, message = _STATUS_FAILURES.get(
                response.status_code,
                (ClassifierFailure.FAILED, f"API call failed with status: {response.status_code}"),
            )
            logger.error("Classifier returned %s (%s)", response.status_code, reason.value)
            raise ClassifierError(reason, message, upstream_status=response.status_code)

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        return parse_analysis(_response_text(payload))
