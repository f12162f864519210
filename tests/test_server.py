import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from world_preview_site.config import Settings
from world_preview_site.fal import FalWorldGenerator, GatewayError
from world_preview_site.server import FixedWindowLimiter, create_app

PREVIEW_BODY = {"image_url": "/assets/a.png", "labels_fg1": "people", "labels_fg2": "cars", "classes": "outdoor"}

WAITLIST_BODY = {
    "firstName": "Ama",
    "email": "ama@example.com",
    "experience": "VR",
    "hype": "can't wait",
    "platform": ["Quest", "PC"],
    "earlyAccess": True,
    "consent": True,
}

APPLY_FIELDS = {
    "jobPosition": "Engineer",
    "fullName": "Kofi Mensah",
    "email": "kofi@example.com",
    "location": "Accra, Ghana, GMT",
    "flagshipUrl": "example.com/game",
    "flagshipSummary": "Built a multiplayer racer.",
    "motivation": "I love worlds.",
    "workAuth": "Citizen",
}


class FakeMailer:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def send(self, subject, text, attachments=None, reply_to=None):
        if self.fail:
            raise OSError("smtp down")
        self.sent.append({"subject": subject, "text": text, "attachments": attachments or [], "reply_to": reply_to})


class FakeGenerator:
    def __init__(self, result=None, error=None):
        self.result = result if result is not None else {"url": "https://cdn.test/w.glb", "content_type": "model/gltf-binary"}
        self.error = error
        self.calls = []

    async def generate(self, image_url, labels_fg1, labels_fg2, classes):
        self.calls.append((image_url, labels_fg1, labels_fg2, classes))
        if self.error:
            raise self.error
        return self.result


def image_http(status=200):
    fetched = []

    def handler(request):
        fetched.append(str(request.url))
        return httpx.Response(status, content=b"\x89PNG fake", headers={"content-type": "image/png"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), fetched


def client_for(settings=None, mailer=None, generator=None, http=None):
    app = create_app(settings or Settings(), mailer=mailer, generator=generator, http=http)
    return TestClient(app)


def test_ping():
    resp = client_for().get("/api/ping")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "route": "/api/ping", "method": "GET"}


@pytest.mark.parametrize("body", [{}, {**PREVIEW_BODY, "classes": ""}, {"image_url": "/a.png"}])
def test_world_preview_requires_all_fields(body):
    resp = client_for(generator=FakeGenerator()).post("/api/world-preview", json=body)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing required fields"}


def test_world_preview_without_fal_key():
    resp = client_for(generator=None).post("/api/world-preview", json=PREVIEW_BODY)
    assert resp.status_code == 500
    assert resp.json()["error"] == "FAL_KEY not configured"


def test_world_preview_success():
    http, fetched = image_http()
    gen = FakeGenerator()
    resp = client_for(generator=gen, http=http).post("/api/world-preview", json=PREVIEW_BODY)
    assert resp.status_code == 200
    assert resp.json() == {"url": "https://cdn.test/w.glb", "content_type": "model/gltf-binary"}
    assert fetched == ["http://testserver/assets/a.png"]
    image_ref, fg1, fg2, classes = gen.calls[0]
    assert image_ref.startswith("data:image/png;base64,")
    assert (fg1, fg2, classes) == ("people", "cars", "outdoor")


def test_world_preview_source_image_missing():
    http, _ = image_http(status=404)
    resp = client_for(generator=FakeGenerator(), http=http).post("/api/world-preview", json=PREVIEW_BODY)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Unable to fetch source image: 404"


def test_world_preview_source_image_unreachable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    gen = FakeGenerator()
    resp = client_for(generator=gen, http=http).post("/api/world-preview", json=PREVIEW_BODY)
    assert resp.status_code == 500
    assert resp.json()["error"] == "Fal generation failed"
    assert gen.calls == []


def test_world_preview_missing_world_file():
    http, _ = image_http()
    resp = client_for(generator=FakeGenerator(result={}), http=http).post("/api/world-preview", json=PREVIEW_BODY)
    assert resp.status_code == 502
    assert resp.json()["error"] == "Fal response missing world_file"


def test_world_preview_gateway_failure():
    http, _ = image_http()
    gen = FakeGenerator(error=GatewayError("boom"))
    resp = client_for(generator=gen, http=http).post("/api/world-preview", json=PREVIEW_BODY)
    assert resp.status_code == 500
    assert resp.json()["error"] == "Fal generation failed"


def test_waitlist_sends_mail():
    mailer = FakeMailer()
    resp = client_for(mailer=mailer).post("/api/waitlist", json=WAITLIST_BODY)
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    (msg,) = mailer.sent
    assert msg["subject"] == "[Waitlist] Afro Japan — Ama (VR)"
    assert "Platforms: Quest, PC" in msg["text"]
    assert "Early Access: Yes" in msg["text"]


def test_waitlist_validation_errors():
    resp = client_for(mailer=FakeMailer()).post("/api/waitlist", json={**WAITLIST_BODY, "email": "nope", "experience": " "})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "Invalid input"
    assert body["fields"]["email"] == ["Enter a valid email like name@example.com"]
    assert "experience" in body["fields"]


def test_waitlist_without_mailer():
    resp = client_for(mailer=None).post("/api/waitlist", json=WAITLIST_BODY)
    assert resp.status_code == 503
    assert resp.json()["error"] == "Email service not configured"


def test_waitlist_send_failure():
    resp = client_for(mailer=FakeMailer(fail=True)).post("/api/waitlist", json=WAITLIST_BODY)
    assert resp.status_code == 500
    assert resp.json()["error"] == "Failed to process waitlist"


def test_forms_are_rate_limited():
    client = client_for(Settings(rate_limit_max=2), mailer=FakeMailer())
    codes = [client.post("/api/waitlist", json=WAITLIST_BODY).status_code for _ in range(3)]
    assert codes == [200, 200, 429]


def test_limiter_resets_after_window_and_forgets_idle_clients():
    now = [0.0]
    limiter = FixedWindowLimiter(window_s=10, limit=2, clock=lambda: now[0])
    assert limiter.hit("a") and limiter.hit("a")
    assert not limiter.hit("a")
    limiter.hit("b")

    now[0] = 11.0
    assert limiter.hit("c")
    assert set(limiter._hits) == {"c"}
    assert limiter.hit("a")


def test_apply_sends_mail_with_resume():
    mailer = FakeMailer()
    resp = client_for(mailer=mailer).post(
        "/api/apply",
        data=APPLY_FIELDS,
        files={"resume": ("cv.pdf", b"%PDF-1.4 resume", "application/pdf")},
    )
    assert resp.status_code == 200, resp.text
    (msg,) = mailer.sent
    assert msg["subject"] == "[Application] Engineer — Kofi Mensah"
    assert "Flagship URL: https://example.com/game" in msg["text"]
    assert msg["reply_to"] == "kofi@example.com"
    (attachment,) = msg["attachments"]
    assert attachment.filename == "cv.pdf"
    assert attachment.content == b"%PDF-1.4 resume"
    assert attachment.content_type == "application/pdf"


def test_apply_requires_resume():
    resp = client_for(mailer=FakeMailer()).post("/api/apply", data=APPLY_FIELDS)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Resume is required"


def test_apply_rejects_large_resume():
    resp = client_for(Settings(max_resume_bytes=8), mailer=FakeMailer()).post(
        "/api/apply",
        data=APPLY_FIELDS,
        files={"resume": ("cv.pdf", b"0123456789", "application/pdf")},
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "Resume must be 10 MB or smaller"


def test_apply_validation_errors():
    resp = client_for(mailer=FakeMailer()).post(
        "/api/apply",
        data={**APPLY_FIELDS, "flagshipUrl": "", "linkGithub": "not a url"},
        files={"resume": ("cv.pdf", b"%PDF", "application/pdf")},
    )
    assert resp.status_code == 400
    fields = resp.json()["fields"]
    assert "flagshipUrl" in fields
    assert "linkGithub" in fields


def test_fal_generator_posts_with_key():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["authorization"]
        seen["url"] = str(request.url)
        return httpx.Response(200, json={"world_file": {"url": "https://fal.media/w.glb", "content_type": "model/gltf-binary"}})

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    gen = FalWorldGenerator("secret", "https://fal.run/fal-ai/hunyuan_world/image-to-world", http=http)
    out = asyncio.run(gen.generate("data:image/png;base64,AA==", "a", "b", "c"))
    assert out["url"] == "https://fal.media/w.glb"
    assert seen["auth"] == "Key secret"
    assert seen["url"].endswith("/fal-ai/hunyuan_world/image-to-world")


def test_fal_generator_error_status():
    http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500, json={"detail": "x"})))
    gen = FalWorldGenerator("secret", "https://fal.run/x", http=http)
    with pytest.raises(GatewayError):
        asyncio.run(gen.generate("data:,", "a", "b", "c"))
