import base64
import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from app import make_app
from pixelframe import compositor
from pixelframe.errors import RenderEncodingError
from pixelframe.grid_store import GridStore
from pixelframe.tile_color import tile_color

BASE_URL = "https://frame.example"


def accept(trusted: dict, untrusted: dict) -> bool:
    return True


def reject(trusted: dict, untrusted: dict) -> bool:
    return False


def frame_payload(fid=42) -> dict:
    return {
        "trustedData": {"messageBytes": base64.b64encode(b"signed").decode()},
        "untrustedData": {"fid": fid, "buttonIndex": 1},
    }


def make_client(store=None, verifier=accept, log_file=None) -> TestClient:
    store = store if store is not None else GridStore()
    return TestClient(make_app(store, verifier, BASE_URL + "/", log_file=log_file))


def test_index_has_frame_meta() -> None:
    resp = make_client().get("/")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/html")
    assert '<meta property="fc:frame" content="vNext">' in resp.text
    assert f'content="{BASE_URL}/frame-image"' in resp.text
    assert f'content="{BASE_URL}/api/frame"' in resp.text
    assert '<meta property="fc:frame:button:1" content="Claim Pixel">' in resp.text


def test_frame_image() -> None:
    store = GridStore()
    store.mark(0, 0, "42")
    resp = make_client(store).get("/frame-image")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    image = Image.open(io.BytesIO(resp.content)).convert("RGBA")
    assert image.size == (1200, 630)
    assert image.getpixel((3, 3)) == tile_color(0, 0, True)


def test_cors_header() -> None:
    resp = make_client().get("/api/user-pixels", params={"fid": "42"})
    assert resp.headers["access-control-allow-origin"] == "*"


def test_claim_through_frame_action(tmp_path) -> None:
    store = GridStore(str(tmp_path / "canvas.json"))
    client = make_client(store, log_file=str(tmp_path / "claims.log"))

    first = client.post("/api/frame", json=frame_payload(42))
    second = client.post("/api/frame", json=frame_payload(42))
    assert first.status_code == second.status_code == 200
    assert first.json()["text"].startswith("You claimed a pixel at (0, 0)!")
    assert second.json()["text"].startswith("You claimed a pixel at (10, 0)!")
    assert second.json()["frames"][0]["buttons"] == [{"label": "Pixel Claimed!"}]

    pixels = client.get("/api/user-pixels", params={"fid": "42"}).json()
    assert pixels == {"pixels": [{"x": 0, "y": 0}, {"x": 10, "y": 0}]}
    assert GridStore.load(str(tmp_path / "canvas.json")).claims_for("42") == [
        (0, 0),
        (10, 0),
    ]


def test_invalid_signature() -> None:
    store = GridStore()
    resp = make_client(store, verifier=reject).post("/api/frame", json=frame_payload())
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid Farcaster signature"}
    assert store.claimed_count() == 0


@pytest.mark.parametrize("body", [b"{not json", b"[1, 2]"])
def test_bad_payload(body: bytes) -> None:
    resp = make_client().post(
        "/api/frame", content=body, headers={"Content-Type": "application/json"}
    )
    assert resp.status_code == 400


def test_persistence_failure_is_internal_error(tmp_path) -> None:
    store = GridStore(str(tmp_path / "missing-dir" / "canvas.json"))
    resp = make_client(store).post("/api/frame", json=frame_payload())
    assert resp.status_code == 500
    assert "error" in resp.json()
    assert store.claimed_count() == 0


def test_unknown_user_has_no_pixels() -> None:
    client = make_client()
    assert client.get("/api/user-pixels", params={"fid": "nobody"}).json() == {"pixels": []}
    assert client.get("/api/user-pixels").json() == {"pixels": []}


def test_state() -> None:
    store = GridStore()
    store.mark(0, 0, "42")
    store.mark(10, 0, "7")
    state = make_client(store).get("/state").json()
    assert state == {
        "type": "state",
        "grid_size": 1000,
        "token_size": 10,
        "pixels": [{"x": 0, "y": 0, "fid": "42"}, {"x": 10, "y": 0, "fid": "7"}],
    }


def test_websocket_feed() -> None:
    store = GridStore()
    store.mark(0, 0, "1")
    with make_client(store) as client:
        with client.websocket_connect("/ws") as ws:
            state = ws.receive_json()
            assert state["type"] == "state"
            assert state["pixels"] == [{"x": 0, "y": 0, "fid": "1"}]

            client.post("/api/frame", json=frame_payload(42))
            assert ws.receive_json() == {"type": "claim", "x": 10, "y": 0, "fid": "42"}


@pytest.mark.parametrize("untrusted", [5, "x", [1]])
def test_malformed_untrusted_data(untrusted) -> None:
    store = GridStore()
    payload = {"trustedData": frame_payload()["trustedData"], "untrustedData": untrusted}
    resp = make_client(store).post("/api/frame", json=payload)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Bad payload"}
    assert store.claimed_count() == 0


def test_unwritable_claim_log(tmp_path) -> None:
    store = GridStore(str(tmp_path / "canvas.json"))
    client = make_client(store, log_file=str(tmp_path / "missing-dir" / "claims.log"))
    with client:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            resp = client.post("/api/frame", json=frame_payload(42))
            assert resp.status_code == 200
            assert resp.json()["frames"][0]["buttons"] == [{"label": "Pixel Claimed!"}]
            assert ws.receive_json() == {"type": "claim", "x": 0, "y": 0, "fid": "42"}
    assert store.claims_for("42") == [(0, 0)]


def failing_encoder(image) -> bytes:
    raise RenderEncodingError("encoder broke")


def test_frame_image_encoding_failure(monkeypatch) -> None:
    monkeypatch.setattr(compositor, "encode_png", failing_encoder)
    store = GridStore()
    store.mark(0, 0, "42")
    resp = make_client(store).get("/frame-image")
    assert resp.status_code == 500
    assert resp.headers["content-type"].startswith("text/plain")
    assert resp.text == "Error generating image"
    assert store.claims_for("42") == [(0, 0)]


def test_frame_action_encoding_failure(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(compositor, "encode_png", failing_encoder)
    path = str(tmp_path / "canvas.json")
    store = GridStore(path)
    resp = make_client(store).post("/api/frame", json=frame_payload(42))
    assert resp.status_code == 500
    assert resp.json() == {"error": "Error generating image"}
    # rendering runs after the claim is saved and never touches the grid
    assert store.claimed_count() == 1
    assert GridStore.load(path).claims_for("42") == [(0, 0)]
