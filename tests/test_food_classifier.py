"""Tests for image encoding, classifier requests and reply parsing."""
import json

import httpx
import pytest

from core.exceptions import ClassifierError, ClassifierFailure, ConfigurationError, ImageProcessingError
from services.food_classifier import (
    FALLBACK_CALORIES,
    FALLBACK_FOODS,
    encode_image,
    parse_analysis,
    split_data_url,
)

IMAGE = "data:image/png;base64,iVBORw0KGgo="


def test_encode_image_builds_data_url():
    assert encode_image(b"\x89PNG", "image/png") == "data:image/png;base64,iVBORw=="
    assert encode_image(b"abc").startswith("data:image/jpeg;base64,")


def test_encode_image_rejects_empty_input():
    with pytest.raises(ImageProcessingError):
        encode_image(b"", "image/png")


def test_split_data_url_sends_heic_as_jpeg():
    assert split_data_url("data:image/heic;base64,AAAA") == ("image/jpeg", "AAAA")
    assert split_data_url("data:image/heif;base64,AAAA") == ("image/jpeg", "AAAA")
    assert split_data_url(IMAGE) == ("image/png", "iVBORw0KGgo=")
    assert split_data_url("AAAA") == ("image/jpeg", "AAAA")


def test_parse_analysis_reads_embedded_json():
    text = 'Sure! ```json\n{"detected_foods": ["apple", "toast"], "total_calories": 300}\n```'
    analysis = parse_analysis(text)
    assert analysis.foods == ["apple", "toast"]
    assert analysis.calories == 300
    assert analysis.fallback is False


@pytest.mark.parametrize("text", ["I see a sandwich with about 400 calories.", "", "{not json}", "[1, 2]"])
def test_parse_analysis_falls_back_on_unparsable_reply(text):
    analysis = parse_analysis(text)
    assert analysis.foods == FALLBACK_FOODS
    assert analysis.calories == FALLBACK_CALORIES
    assert analysis.fallback is True


@pytest.mark.parametrize("calories", ["1e400", "-1e400", "Infinity", "NaN"])
def test_parse_analysis_falls_back_on_non_finite_calories(calories):
    analysis = parse_analysis('{"detected_foods": ["cake"], "total_calories": %s}' % calories)
    assert analysis.fallback is True
    assert analysis.foods == FALLBACK_FOODS
    assert analysis.calories == FALLBACK_CALORIES


def test_parse_analysis_defaults_missing_fields():
    analysis = parse_analysis('{"total_calories": 212.5}')
    assert analysis.foods == []
    assert analysis.calories == 213
    assert parse_analysis('{"detected_foods": ["soup"]}').calories == 0


@pytest.mark.asyncio
async def test_analyze_posts_prompt_and_image(make_classifier):
    seen = {}

    def handler(request):
        seen["url"] = request.url
        seen["body"] = json.loads(request.content)
        text = '{"detected_foods": ["rice"], "total_calories": 250}'
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})

    classifier = make_classifier(handler)
    analysis = await classifier.analyze("data:image/heic;base64,AAAA", "secret-key")

    assert analysis.foods == ["rice"] and analysis.calories == 250
    assert seen["url"].path == "/v1beta/models/test-model:generateContent"
    assert seen["url"].params["key"] == "secret-key"
    parts = seen["body"]["contents"][0]["parts"]
    assert "detected_foods" in parts[0]["text"]
    assert parts[1]["inline_data"] == {"mime_type": "image/jpeg", "data": "AAAA"}


@pytest.mark.asyncio
async def test_analyze_with_empty_candidates_uses_fallback(make_classifier):
    classifier = make_classifier(lambda request: httpx.Response(200, json={"candidates": []}))
    analysis = await classifier.analyze(IMAGE, "secret-key")
    assert analysis.fallback is True
    assert analysis.calories == FALLBACK_CALORIES


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code,reason",
    [
        (429, ClassifierFailure.RATE_LIMITED),
        (400, ClassifierFailure.BAD_REQUEST),
        (403, ClassifierFailure.INVALID_CREDENTIAL),
        (500, ClassifierFailure.SERVER_ERROR),
        (503, ClassifierFailure.FAILED),
    ],
)
async def test_analyze_maps_error_statuses(reply_with, status_code, reason):
    classifier = reply_with("irrelevant", status_code=status_code)
    with pytest.raises(ClassifierError) as exc_info:
        await classifier.analyze(IMAGE, "secret-key")
    assert exc_info.value.reason is reason
    assert exc_info.value.upstream_status == status_code


@pytest.mark.asyncio
async def test_unmapped_status_message_names_status(reply_with):
    with pytest.raises(ClassifierError) as exc_info:
        await reply_with("irrelevant", status_code=503).analyze(IMAGE, "secret-key")
    assert exc_info.value.message == "API call failed with status: 503"


@pytest.mark.asyncio
async def test_transport_failure_raises_classifier_error(make_classifier):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ClassifierError) as exc_info:
        await make_classifier(handler).analyze(IMAGE, "secret-key")
    assert exc_info.value.reason is ClassifierFailure.FAILED


@pytest.mark.asyncio
async def test_analyze_requires_api_key(reply_with):
    with pytest.raises(ConfigurationError):
        await reply_with("{}").analyze(IMAGE, "")
