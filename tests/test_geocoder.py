import httpx
import pytest

from comparables.errors import ResolutionFailed
from comparables.services.geocoder import AuthError, OpenCageGeocoder, breaker, parse_opencage_response

OPENCAGE_OK = {
    "results": [
        {
            "components": {"_type": "attraction", "attraction": "Plaza de Toros", "city": "Marbella"},
            "confidence": 9,
            "formatted": "Plaza de Toros, Marbella, Spain",
            "geometry": {"lat": 36.5133, "lng": -4.8837},
        }
    ],
    "status": {"code": 200, "message": "OK"},
}


@pytest.fixture(autouse=True)
def closed_breaker():
    breaker.close()
    yield
    breaker.close()


def make_geocoder(handler):
    return OpenCageGeocoder(api_key="test-key", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_geocode_success():
    seen = []

    def handler(request: httpx.Request):
        seen.append(request)
        return httpx.Response(200, json=OPENCAGE_OK)

    result = await make_geocoder(handler).geocode("next to the bull ring, Marbella")

    assert result.coordinates.lat == 36.5133
    assert result.confidence == pytest.approx(0.9)
    assert result.landmarks == ["Plaza de Toros"]
    params = seen[0].url.params
    assert params["q"] == "next to the bull ring, Marbella"
    assert params["countrycode"] == "es"
    assert params["limit"] == "1"
    assert params["key"] == "test-key"


@pytest.mark.asyncio
async def test_geocode_without_results_returns_none():
    def handler(request):
        return httpx.Response(200, json={"results": [], "status": {"code": 200}})

    assert await make_geocoder(handler).geocode("nowhere") is None


@pytest.mark.asyncio
async def test_auth_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(402, json={"status": {"code": 402, "message": "quota exceeded"}})

    with pytest.raises(AuthError) as exc:
        await make_geocoder(handler).geocode("Calle X 15, Marbella")

    assert exc.value.status_code == 402
    assert "quota exceeded" in exc.value.message
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_transport_errors_are_retried_then_reported():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ResolutionFailed):
        await make_geocoder(handler).geocode("Calle X 15, Marbella")
    assert len(calls) == 2


def test_administrative_results_have_no_landmarks():
    payload = {
        "results": [
            {
                "components": {"_type": "city", "city": "Marbella"},
                "confidence": 4,
                "geometry": {"lat": 36.51, "lng": -4.88},
            }
        ]
    }
    result = parse_opencage_response(payload)
    assert result.landmarks == []
    assert result.confidence == pytest.approx(0.4)


def test_result_without_geometry_is_ignored():
    assert parse_opencage_response({"results": [{"components": {}, "confidence": 9}]}) is None


def test_placeholder_key_is_not_configured():
    assert OpenCageGeocoder(api_key="your_opencage_key").configured is False
    assert OpenCageGeocoder(api_key="real").configured is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>proxy</html>"),
        httpx.Response(200, json=["not", "an", "object"]),
        httpx.Response(200, json={"results": "nothing"}),
    ],
)
async def test_unreadable_body_is_a_resolution_failure(response):
    def handler(request):
        return response

    with pytest.raises(ResolutionFailed) as exc:
        await make_geocoder(handler).geocode("Calle X 15, Marbella")
    assert exc.value.query == "Calle X 15, Marbella"


@pytest.mark.asyncio
async def test_breaker_opens_after_repeated_failures():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"status": {"code": 400, "message": "bad request"}})

    geocoder = make_geocoder(handler)
    for _ in range(breaker.fail_max):
        with pytest.raises(ResolutionFailed):
            await geocoder.geocode("Calle X 15, Marbella")
    assert breaker.current_state == "open"

    with pytest.raises(ResolutionFailed) as exc:
        await geocoder.geocode("Calle X 15, Marbella")
    assert exc.value.message == "Geocoding temporarily disabled"
    assert len(calls) == breaker.fail_max


@pytest.mark.asyncio
async def test_success_resets_failure_count():
    responses = [httpx.Response(400), httpx.Response(400), httpx.Response(200, json=OPENCAGE_OK)]

    def handler(request):
        return responses.pop(0)

    geocoder = make_geocoder(handler)
    for _ in range(2):
        with pytest.raises(ResolutionFailed):
            await geocoder.geocode("Calle X 15, Marbella")
    assert await geocoder.geocode("Calle X 15, Marbella") is not None
    assert breaker.fail_counter == 0
    assert breaker.current_state == "closed"
