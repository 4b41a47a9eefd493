# app.py — Million Pixel Frame: a Farcaster frame where every click claims a tile
# - GET  /             frame page (fc:frame meta tags)
# - GET  /frame-image  PNG of the whole canvas
# - POST /api/frame    frame action: verify, claim next tile, answer with a highlighted image
# - GET  /api/user-pixels?fid=  tiles claimed by one fid
# - GET  /state, WS /ws  claimed tiles, with live claim broadcast for term_client.py
# - CLI: --host/--port, --data-file/--log-file, --base-url, --hub-url, --no-verify, --recover
import argparse, json, logging, os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, WebSocket
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.websockets import WebSocketDisconnect
import uvicorn

from pixelframe.compositor import render
from pixelframe.errors import RenderEncodingError
from pixelframe.frame_service import FrameService, Outcome, Verifier
from pixelframe.grid_store import GRID_SIZE, TOKEN_SIZE, GridStore
from pixelframe.verifier import DEFAULT_HUB_URL, HubVerifier, skip_verification

DATA_FILE = os.getenv('PIXELFRAME_DATA_FILE', 'pixel_frame.json')
LOG_FILE  = os.getenv('PIXELFRAME_LOG_FILE',  'pixel_claims.log')
HUB_URL   = os.getenv('PIXELFRAME_HUB_URL',   DEFAULT_HUB_URL)
VERIFY    = os.getenv('PIXELFRAME_VERIFY', '1') != '0'
PORT      = int(os.getenv('PORT', '3000'))

logger = logging.getLogger("pixelframe.app")

HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Million Token Frame</title>
  <meta property="fc:frame" content="vNext">
  <meta property="fc:frame:image" content="__BASE_URL__/frame-image">
  <meta property="fc:frame:image:aspect_ratio" content="1.91:1">
  <meta property="fc:frame:button:1" content="Claim Pixel">
  <meta property="fc:frame:post_url" content="__BASE_URL__/api/frame">
</head>
<body>
  <h1>Million Token Frame</h1>
  <img src="/frame-image" alt="Million Token Frame">
</body>
</html>"""


def make_app(store: GridStore, verifier: Verifier, base_url: str, log_file: Optional[str] = None):
    service = FrameService(store, verifier, log_file=log_file)
    clients = set()

    @asynccontextmanager
    async def lifespan(app):
        try:
            yield
        finally:
            with store.lock:
                store.save()
            logger.info("Saved %d claims, stopping", store.claimed_count())

    app = FastAPI(lifespan=lifespan)
    HTML = HTML_TEMPLATE.replace("__BASE_URL__", base_url.rstrip("/"))

    @app.middleware("http")
    async def allow_any_origin(request: Request, call_next):
        response = await call_next(request)
        response.headers["Access-Control-Allow-Origin"] = "*"
        return response

    def serialize_state():
        return {"type":"state","grid_size":GRID_SIZE,"token_size":TOKEN_SIZE,
                "pixels":[{"x":x,"y":y,"fid":fid} for x,y,fid in store.claimed_tiles()]}

    async def broadcast(msg:dict):
        dead=[]
        for ws in list(clients):
            try: await ws.send_text(json.dumps(msg))
            except Exception: dead.append(ws)
        for ws in dead: clients.discard(ws)

    @app.get("/", response_class=HTMLResponse)
    async def index():
        return HTML

    @app.get("/frame-image")
    def frame_image():
        try:
            png = render(store)
        except RenderEncodingError as e:
            logger.error("Error generating image: %s", e)
            return Response("Error generating image", status_code=500, media_type="text/plain")
        return Response(png, media_type="image/png")

    @app.post("/api/frame")
    async def frame_action(request: Request):
        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse({"error": "Bad payload"}, status_code=400)
        if not isinstance(payload, dict):
            return JSONResponse({"error": "Bad payload"}, status_code=400)
        try:
            result = await run_in_threadpool(service.handle, payload)
        except RenderEncodingError as e:
            logger.error("Error generating image: %s", e)
            return JSONResponse({"error": "Error generating image"}, status_code=500)
        if result.outcome is Outcome.CLAIMED:
            x, y = result.position
            await broadcast({"type":"claim","x":x,"y":y,"fid":result.fid})
        status, body = result.to_response()
        return JSONResponse(body, status_code=status)

    @app.get("/api/user-pixels")
    async def user_pixels(fid: str = ""):
        return {"pixels": [{"x": x, "y": y} for x, y in store.claims_for(fid)]}

    @app.get("/state")
    async def state():
        return JSONResponse(serialize_state())

    @app.websocket("/ws")
    async def ws_endpoint(ws: WebSocket):
        await ws.accept()
        await ws.send_text(json.dumps(serialize_state()))
        clients.add(ws)
        try:
            while True:
                # read-only feed; incoming text just keeps the socket alive
                await ws.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            clients.discard(ws)
    return app

def main():
    ap = argparse.ArgumentParser(description="Million Pixel Frame")
    ap.add_argument("--host", default="0.0.0.0", help="Bind host")
    ap.add_argument("--port","-p", type=int, default=PORT, help="Bind port")
    ap.add_argument("--data-file", default=DATA_FILE, help="Canvas snapshot (JSON)")
    ap.add_argument("--log-file", default=LOG_FILE, help="Claim audit log")
    ap.add_argument("--base-url", default=os.getenv("BASE_URL"), help="Public URL used in frame meta tags")
    ap.add_argument("--hub-url", default=HUB_URL, help="Farcaster hub HTTP API")
    ap.add_argument("--no-verify", action="store_true", default=not VERIFY,
                    help="Skip signature verification (local development only)")
    ap.add_argument("--recover", action="store_true",
                    help="Start empty if the snapshot is unreadable instead of refusing to start")
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO)
    store = GridStore.load(args.data_file, recover=args.recover)
    if args.no_verify:
        logger.warning("Signature verification is disabled")
        verifier = skip_verification
    else:
        verifier = HubVerifier(args.hub_url)
    base_url = args.base_url or f"http://localhost:{args.port}"
    app = make_app(store, verifier, base_url, log_file=args.log_file)
    logger.info("Million Token Frame app listening at %s", base_url)
    uvicorn.run(app, host=args.host, port=args.port)

if __name__ == "__main__":
    main()
