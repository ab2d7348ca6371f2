import requests

from app.schemas.lead_capture import PipelineEvent
from app.services.analytics import GA4_COLLECT_URL, Ga4Notifier, capture_attribution
from app.services.connectivity import HttpConnectivity


class FakeResponse:
    def __init__(self, status_code: int = 204, text: str = "") -> None:
        self.status_code = status_code
        self.text = text


class FakeSession:
    def __init__(self, error: Exception | None = None, status_code: int = 204) -> None:
        self.error = error
        self.status_code = status_code
        self.posts = []
        self.heads = []

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        if self.error:
            raise self.error
        return FakeResponse(self.status_code, "bad request")

    def head(self, url, **kwargs):
        self.heads.append(url)
        if self.error:
            raise self.error
        return FakeResponse(self.status_code)


def test_capture_attribution_defaults() -> None:
    attribution = capture_attribution({}, referrer=None, user_agent="Mozilla/5.0 (Windows NT 10.0)")
    assert attribution.utm_source == "direct"
    assert attribution.utm_medium == "none"
    assert attribution.utm_campaign == "none"
    assert attribution.referrer == "direct"
    assert attribution.device_type == "desktop"
    assert attribution.timestamp


def test_capture_attribution_from_campaign_link() -> None:
    attribution = capture_attribution(
        {"utm_source": "instagram", "utm_campaign": "aniversario"},
        referrer="https://l.instagram.com/",
        user_agent="Mozilla/5.0 (iPhone; CPU iPhone OS 17_0)",
        landing_page="/promo",
    )
    assert attribution.utm_source == "instagram"
    assert attribution.utm_campaign == "aniversario"
    assert attribution.device_type == "mobile"
    assert attribution.landing_page == "/promo"


def test_notifier_without_config_prints(capsys) -> None:
    session = FakeSession()
    Ga4Notifier(session=session).publish([PipelineEvent(name="form_view", params={"form_name": "lead_capture"})])

    assert session.posts == []
    assert "[GA4] form_view" in capsys.readouterr().out


def test_notifier_posts_measurement_protocol_payload() -> None:
    session = FakeSession()
    notifier = Ga4Notifier("G-TEST", "secret", session=session)

    notifier.publish([PipelineEvent(name="generate_lead", params={"value": 0})], client_id="abc")

    url, kwargs = session.posts[0]
    assert url == GA4_COLLECT_URL
    assert kwargs["params"] == {"measurement_id": "G-TEST", "api_secret": "secret"}
    assert kwargs["json"] == {
        "client_id": "abc",
        "events": [{"name": "generate_lead", "params": {"value": 0}}],
    }


def test_notifier_never_raises(capsys) -> None:
    failing = Ga4Notifier("G-TEST", "secret", session=FakeSession(error=requests.ConnectionError("down")))
    failing.publish([PipelineEvent(name="form_submit")])

    rejected = Ga4Notifier("G-TEST", "secret", session=FakeSession(status_code=400))
    rejected.publish([PipelineEvent(name="form_submit")])

    out = capsys.readouterr().out
    assert "WARN: falha ao enviar eventos" in out
    assert "WARN: GA4 retornou status 400" in out


def test_notifier_skips_empty_batch() -> None:
    session = FakeSession()
    Ga4Notifier("G-TEST", "secret", session=session).publish([])
    assert session.posts == []


def test_connectivity_check() -> None:
    assert HttpConnectivity("https://db.example", session=FakeSession()).is_online()
    assert HttpConnectivity("https://db.example", session=FakeSession(status_code=503)).is_online()
    assert not HttpConnectivity(
        "https://db.example", session=FakeSession(error=requests.ConnectionError("no route"))
    ).is_online()
    assert not HttpConnectivity("https://db.example", session=FakeSession(error=requests.Timeout())).is_online()
    assert HttpConnectivity("")()
