import pytest
import requests

from tubeconvert.config import Settings
from tubeconvert.errors import (
    DecryptionError,
    ExtractionError,
    JobSubmissionError,
    ProviderUnavailableError,
)
from tubeconvert.job_state import JobStatus
from tubeconvert.models import ConversionRequest, MediaKind
from tubeconvert.normalizer import normalize_url
from tubeconvert.providers import ProviderKind, build_provider
from tubeconvert.providers.base import first_present
from tubeconvert.providers.loader import LoaderProvider
from tubeconvert.providers.savetube import SaveTubeProvider, parse_duration

from .conftest import TEST_KEY_HEX, FakeResponse, FakeSession, encrypt_payload

CDN_URL = "https://media.savetube.example/api/random-cdn"
HOST = "cdn51.savetube.example"
INFO_URL = f"https://{HOST}/v2/info"
DOWNLOAD_URL = f"https://{HOST}/download"
SUBMIT_URL = "https://loader.example/ajax/download.php"
PROGRESS_URL = "https://progress.example/ajax/progress.php"
OEMBED_URL = "https://www.youtube.example/oembed"

INFO = {"title": "Never Gonna Give You Up", "duration": 213, "key": "session-key"}


@pytest.fixture
def reference():
    return normalize_url("https://youtu.be/dQw4w9WgXcQ")


def _savetube(session):
    return SaveTubeProvider(
        cdn_url=CDN_URL, secret_key=TEST_KEY_HEX, referer="https://yt.savetube.example/", timeout=7.5, session=session
    )


def _loader(session):
    return LoaderProvider(
        submit_url=SUBMIT_URL, progress_url=PROGRESS_URL, oembed_url=OEMBED_URL, timeout=7.5, session=session
    )


def _savetube_routes(info=INFO, download=None):
    routes = {
        ("GET", CDN_URL): [FakeResponse({"cdn": HOST})],
        ("POST", INFO_URL): [FakeResponse({"status": True, "data": encrypt_payload(info)})],
    }
    if download is not None:
        routes[("POST", DOWNLOAD_URL)] = [download]
    return routes


def test_first_present_takes_first_truthy_path():
    body = {"data": {"downloadUrl": "", "url": "https://b"}, "downloadUrl": "https://c"}
    assert first_present(body, [("data", "downloadUrl"), ("data", "url"), ("downloadUrl",)]) == "https://b"
    assert first_present({"data": "flat"}, [("data", "url")]) is None
    assert first_present(None, [("a",)]) is None


@pytest.mark.parametrize("value,expected", [(213, 213), ("213", 213), ("3:33", 213), ("1:00:05", 3605), (-5, None), ("-5", None), ("1:-30", None), ("", None), ("n/a", None), (None, None), (True, None)])
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


def test_savetube_fetch_info(reference):
    session = FakeSession(_savetube_routes())
    result = _savetube(session).fetch_info(reference)

    assert result.video_id == "dQw4w9WgXcQ"
    assert result.title == "Never Gonna Give You Up"
    assert result.duration_seconds == 213
    assert result.thumbnail_url == reference.thumbnail_url
    assert 720 in result.available_qualities["video"]

    info_call = session.calls_to(INFO_URL)[0]
    assert info_call["json"] == {"url": "https://youtube.com/watch?v=dQw4w9WgXcQ"}
    assert info_call["headers"]["Referer"] == "https://yt.savetube.example/"
    assert all(call["timeout"] == 7.5 for call in session.calls)


def test_savetube_cdn_network_failure_is_unavailable(reference):
    session = FakeSession({("GET", CDN_URL): [requests.ConnectionError("refused")]})
    with pytest.raises(ProviderUnavailableError):
        _savetube(session).fetch_info(reference)
    assert len(session.calls) == 1


@pytest.mark.parametrize("response", [FakeResponse({"cdn": ""}), FakeResponse({}, status_code=503), FakeResponse(None, text="<html>")])
def test_savetube_cdn_bad_answer_is_unavailable(reference, response):
    session = FakeSession({("GET", CDN_URL): [response]})
    with pytest.raises(ProviderUnavailableError):
        _savetube(session).fetch_info(reference)


def test_savetube_missing_payload_keeps_raw_body(reference):
    session = FakeSession(
        {
            ("GET", CDN_URL): [FakeResponse({"cdn": HOST})],
            ("POST", INFO_URL): [FakeResponse({"status": False, "message": "Video unavailable"})],
        }
    )
    with pytest.raises(ExtractionError) as exc_info:
        _savetube(session).fetch_info(reference)
    assert "Video unavailable" in exc_info.value.raw_body


def test_savetube_missing_key_is_extraction_error(reference):
    session = FakeSession(_savetube_routes(info={"title": "No key here"}))
    with pytest.raises(ExtractionError):
        _savetube(session).fetch_info(reference)


def test_savetube_info_http_error_is_extraction_error(reference):
    session = FakeSession(
        {
            ("GET", CDN_URL): [FakeResponse({"cdn": HOST})],
            ("POST", INFO_URL): [FakeResponse(None, status_code=500, text="upstream exploded")],
        }
    )
    with pytest.raises(ExtractionError) as exc_info:
        _savetube(session).fetch_info(reference)
    assert exc_info.value.raw_body == "upstream exploded"


def test_savetube_corrupt_payload_is_decryption_error(reference):
    session = FakeSession(
        {
            ("GET", CDN_URL): [FakeResponse({"cdn": HOST})],
            ("POST", INFO_URL): [FakeResponse({"data": "bm90IGVuY3J5cHRlZA=="})],
        }
    )
    with pytest.raises(DecryptionError):
        _savetube(session).fetch_info(reference)


@pytest.mark.parametrize(
    "body",
    [
        {"data": {"downloadUrl": "https://dl.example/file"}},
        {"data": {"url": "https://dl.example/file"}},
        {"data": {}, "downloadUrl": "https://dl.example/file"},
    ],
)
def test_savetube_download_accepts_each_url_shape(reference, body):
    session = FakeSession(_savetube_routes(download=FakeResponse(body)))
    request = ConversionRequest.build(reference, MediaKind.AUDIO, "9999", SaveTubeProvider.qualities)

    link = _savetube(session).resolve_download(request)

    assert link.url == "https://dl.example/file"
    assert link.quality_label == "128kbps"
    assert link.filename == "Never Gonna Give You Up (128kbps).mp3"
    assert link.available_qualities == [92, 128, 256, 320]
    assert session.calls_to(DOWNLOAD_URL)[0]["json"] == {
        "downloadType": "audio",
        "quality": "128",
        "key": "session-key",
    }


def test_savetube_download_uses_its_own_referer(reference):
    session = FakeSession(_savetube_routes(download=FakeResponse({"data": {"downloadUrl": "https://dl.example/file"}})))
    provider = SaveTubeProvider(
        cdn_url=CDN_URL,
        secret_key=TEST_KEY_HEX,
        referer="https://yt.savetube.example/",
        download_referer="https://yt.savetube.example/start-download",
        timeout=7.5,
        session=session,
    )
    request = ConversionRequest.build(reference, MediaKind.VIDEO, "720", SaveTubeProvider.qualities)

    provider.resolve_download(request)

    assert session.calls_to(INFO_URL)[0]["headers"]["Referer"] == "https://yt.savetube.example/"
    assert session.calls_to(DOWNLOAD_URL)[0]["headers"]["Referer"] == "https://yt.savetube.example/start-download"


def test_savetube_download_without_url_keeps_raw_body(reference):
    session = FakeSession(_savetube_routes(download=FakeResponse({"data": {"status": "busy"}})))
    request = ConversionRequest.build(reference, MediaKind.VIDEO, "720", SaveTubeProvider.qualities)

    with pytest.raises(ExtractionError) as exc_info:
        _savetube(session).resolve_download(request)
    assert "busy" in exc_info.value.raw_body


def test_savetube_download_is_not_retried(reference):
    session = FakeSession(_savetube_routes(download=requests.Timeout("slow")))
    request = ConversionRequest.build(reference, MediaKind.VIDEO, "720", SaveTubeProvider.qualities)

    with pytest.raises(ExtractionError):
        _savetube(session).resolve_download(request)
    assert len(session.calls_to(DOWNLOAD_URL)) == 1
    assert len(session.calls_to(CDN_URL)) == 1


def test_loader_format_token(reference):
    audio = ConversionRequest.build(reference, MediaKind.AUDIO, "320", LoaderProvider.qualities)
    video = ConversionRequest.build(reference, MediaKind.VIDEO, "1080", LoaderProvider.qualities)
    fallback = ConversionRequest.build(reference, MediaKind.VIDEO, "17", LoaderProvider.qualities)

    assert LoaderProvider.format_token(audio) == "mp3"
    assert LoaderProvider.format_token(video) == "1080"
    assert LoaderProvider.format_token(fallback) == "720"


def test_loader_submit_returns_pending_job(reference):
    session = FakeSession({("GET", SUBMIT_URL): [FakeResponse({"success": True, "id": "job-123"})]})
    request = ConversionRequest.build(reference, MediaKind.AUDIO, None, LoaderProvider.qualities)

    job = _loader(session).submit(request)

    assert job.job_id == "job-123"
    assert job.status is JobStatus.PENDING
    assert session.calls[0]["params"] == {"format": "mp3", "url": "https://youtube.com/watch?v=dQw4w9WgXcQ"}


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse({"success": False, "message": "bad format"}),
        FakeResponse({"id": ""}),
        FakeResponse(None, status_code=429, text="slow down"),
        requests.ConnectionError("refused"),
    ],
)
def test_loader_submit_without_id_fails(reference, response):
    session = FakeSession({("GET", SUBMIT_URL): [response]})
    request = ConversionRequest.build(reference, MediaKind.VIDEO, "720", LoaderProvider.qualities)

    with pytest.raises(JobSubmissionError):
        _loader(session).submit(request)


@pytest.mark.parametrize(
    "body,status,url",
    [
        ({"success": 0, "progress": 350, "text": "Converting"}, JobStatus.PENDING, None),
        ({"success": 1, "progress": 1000, "text": "Finished", "download_url": "https://dl/x.mp3"}, JobStatus.SUCCEEDED, "https://dl/x.mp3"),
        ({"success": True, "download_url": "https://dl/y.mp4"}, JobStatus.SUCCEEDED, "https://dl/y.mp4"),
        ({"success": 0, "text": "Error"}, JobStatus.FAILED, None),
        ({"success": 1, "progress": 1000, "text": "Finished"}, JobStatus.PENDING, None),
        ({}, JobStatus.PENDING, None),
    ],
)
def test_loader_progress_interpretation(body, status, url):
    session = FakeSession({("GET", PROGRESS_URL): [FakeResponse(body)]})

    update = _loader(session).check_progress("job-123")

    assert update.status is status
    assert update.result_url == url
    assert session.calls[0]["params"] == {"id": "job-123"}


def test_loader_progress_passes_unknown_fields_through():
    session = FakeSession({("GET", PROGRESS_URL): [FakeResponse({"success": 0, "progress": 10, "eta": 30})]})
    update = _loader(session).check_progress("job-123")
    assert update.raw["eta"] == 30
    assert update.raw["progress"] == 10


@pytest.mark.parametrize(
    "response",
    [
        requests.Timeout("slow"),
        FakeResponse(None, status_code=502, text="bad gateway"),
        FakeResponse(None, text="not json"),
        FakeResponse({"success": "maybe"}),
    ],
)
def test_loader_progress_failures_are_transient(response):
    session = FakeSession({("GET", PROGRESS_URL): [response]})
    with pytest.raises(ProviderUnavailableError):
        _loader(session).check_progress("job-123")


def test_loader_info_from_oembed(reference):
    session = FakeSession(
        {("GET", OEMBED_URL): [FakeResponse({"title": "Never Gonna Give You Up", "thumbnail_url": "https://i.ytimg.com/vi/x/hq.jpg"})]}
    )

    result = _loader(session).fetch_info(reference)

    assert result.title == "Never Gonna Give You Up"
    assert result.duration_seconds is None
    assert result.thumbnail_url == "https://i.ytimg.com/vi/x/hq.jpg"
    assert 2160 in result.available_qualities["video"]


def test_loader_info_failures(reference):
    down = FakeSession({("GET", OEMBED_URL): [requests.ConnectionError("refused")]})
    with pytest.raises(ProviderUnavailableError):
        _loader(down).fetch_info(reference)

    missing = FakeSession({("GET", OEMBED_URL): [FakeResponse(None, status_code=404, text="Not Found")]})
    with pytest.raises(ExtractionError):
        _loader(missing).fetch_info(reference)


def test_factory_selects_variant_from_settings():
    savetube = build_provider(Settings(PROVIDER="savetube"), session=FakeSession({}))
    loader = build_provider(Settings(PROVIDER="async"), session=FakeSession({}))

    assert savetube.kind is ProviderKind.EXTRACTION
    assert loader.kind is ProviderKind.JOB
    with pytest.raises(ValueError):
        build_provider(Settings(PROVIDER="ftp"))


def test_settings_reject_bad_secret_key():
    with pytest.raises(ValueError):
        Settings(SAVETUBE_SECRET_KEY="abcd")
