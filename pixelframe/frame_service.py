"""Frame action handling: verify, claim, render, answer."""
import base64
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Tuple

from pixelframe.allocation import AllocationEngine
from pixelframe.compositor import render
from pixelframe.errors import PersistenceError
from pixelframe.grid_store import Coord, GridStore

Verifier = Callable[[dict, dict], bool]

logger = logging.getLogger(__name__)


class Outcome(Enum):
    CLAIMED = "claimed"
    CANVAS_FULL = "canvas_full"
    INVALID_SIGNATURE = "invalid_signature"
    MISSING_FID = "missing_fid"
    BAD_PAYLOAD = "bad_payload"
    PERSISTENCE_ERROR = "persistence_error"


@dataclass(frozen=True)
class FrameResult:
    outcome: Outcome
    fid: Optional[str] = None
    position: Optional[Coord] = None
    image: Optional[bytes] = None

    def to_response(self) -> Tuple[int, dict]:
        """(HTTP status, JSON body) for the frame protocol."""
        if self.outcome is Outcome.INVALID_SIGNATURE:
            return 400, {"error": "Invalid Farcaster signature"}
        if self.outcome is Outcome.MISSING_FID:
            return 400, {"error": "Missing fid"}
        if self.outcome is Outcome.BAD_PAYLOAD:
            return 400, {"error": "Bad payload"}
        if self.outcome is Outcome.PERSISTENCE_ERROR:
            return 500, {"error": "Could not save your pixel. Try again later!"}

        claimed = self.outcome is Outcome.CLAIMED
        if claimed:
            x, y = self.position
            text = (f"You claimed a pixel at ({x}, {y})! "
                    f"See all your pixels at /api/user-pixels?fid={self.fid}")
        else:
            text = "Sorry, no pixels available. Try again later!"
        image = base64.b64encode(self.image).decode("ascii")
        return 200, {
            "frames": [{
                "image": f"data:image/png;base64,{image}",
                "buttons": [{"label": "Pixel Claimed!" if claimed else "Claim Pixel"}],
            }],
            "text": text,
        }


def log_claim(log_file: Optional[str], fid: str, x: int, y: int):
    """Append one audit line per claim."""
    if not log_file:
        return
    entry = f"{datetime.now().isoformat()} CLAIM fid={fid} x={x} y={y}\n"
    # the claim is already persisted at this point
    try:
        with open(log_file, 'a', encoding='utf-8') as f:
            f.write(entry)
    except OSError as e:
        logger.error("Cannot write claim log %s: %s", log_file, e)


class FrameService:
    def __init__(self, store: GridStore, verifier: Verifier, log_file: Optional[str] = None):
        self.store = store
        self.engine = AllocationEngine(store)
        self.verifier = verifier
        self.log_file = log_file

    def handle(self, payload: dict) -> FrameResult:
        trusted = payload.get("trustedData")
        untrusted = payload.get("untrustedData")
        trusted = {} if trusted is None else trusted
        untrusted = {} if untrusted is None else untrusted
        if not isinstance(trusted, dict) or not isinstance(untrusted, dict):
            return FrameResult(Outcome.BAD_PAYLOAD)
        if not self.verifier(trusted, untrusted):
            return FrameResult(Outcome.INVALID_SIGNATURE)

        fid = untrusted.get("fid")
        if fid is None or str(fid) == "":
            return FrameResult(Outcome.MISSING_FID)
        fid = str(fid)

        try:
            position = self.engine.claim(fid)
        except PersistenceError as e:
            logger.error("Claim by fid=%s failed: %s", fid, e)
            return FrameResult(Outcome.PERSISTENCE_ERROR, fid=fid)

        if position is None:
            logger.info("Canvas full, nothing left for fid=%s", fid)
            return FrameResult(Outcome.CANVAS_FULL, fid=fid, image=render(self.store))

        log_claim(self.log_file, fid, *position)
        return FrameResult(
            Outcome.CLAIMED, fid=fid, position=position,
            image=render(self.store, highlight=position),
        )
