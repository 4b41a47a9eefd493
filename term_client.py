# term_client.py — live TTY view of the frame canvas (one character per tile)
import asyncio, curses, json, websockets, argparse

CLAIMED, EMPTY = "█", "·"

def parse_args():
    ap = argparse.ArgumentParser(description="Million Pixel Frame TTY viewer")
    ap.add_argument("--ws", default="ws://127.0.0.1:3000/ws", help="WebSocket URL")
    return ap.parse_args()

def draw_cell(stdscr, col, row, ch):
    # row 0 is the status line
    try: stdscr.addstr(row + 1, col, ch)
    except curses.error: pass

def draw_lattice(stdscr, canvas):
    rows, cols = stdscr.getmaxyx()
    side = canvas["side"]
    for row in range(min(side, rows - 1)):
        for col in range(min(side, cols - 1)):
            draw_cell(stdscr, col, row, CLAIMED if (col, row) in canvas["claimed"] else EMPTY)

def draw_status(stdscr, canvas):
    rows, cols = stdscr.getmaxyx()
    side = canvas["side"] or 0
    last = canvas.get("last")
    msg = f"Claimed: {len(canvas['claimed'])}/{side * side}"
    if last:
        msg += f" • last: fid {last['fid']} at ({last['x']}, {last['y']})"
    msg += " • q=quit"
    try:
        stdscr.move(0, 0); stdscr.clrtoeol()
        stdscr.addstr(0, 0, msg[:max(0, cols-1)])
    except curses.error: pass

async def recv_loop(stdscr, ws, canvas):
    while True:
        m = json.loads(await ws.recv())
        t = m.get("type")
        if t == "state":
            token = int(m.get("token_size", 10))
            canvas["token"] = token
            canvas["side"] = int(m.get("grid_size", 1000)) // token
            canvas["claimed"] = {(p["x"] // token, p["y"] // token) for p in m.get("pixels", [])}
            stdscr.clear()
            draw_lattice(stdscr, canvas)
        elif t == "claim" and canvas["side"]:
            col, row = m["x"] // canvas["token"], m["y"] // canvas["token"]
            canvas["claimed"].add((col, row))
            canvas["last"] = m
            draw_cell(stdscr, col, row, CLAIMED)
        else:
            continue
        draw_status(stdscr, canvas)
        stdscr.refresh()

async def main(stdscr, args):
    curses.curs_set(0); stdscr.nodelay(True); stdscr.keypad(True)

    canvas = {"side": None, "token": None, "claimed": set(), "last": None}
    draw_status(stdscr, canvas)
    stdscr.refresh()

    async with websockets.connect(args.ws) as ws:
        receiver = asyncio.create_task(recv_loop(stdscr, ws, canvas))
        try:
            while not receiver.done():
                k = stdscr.getch()
                if k in (ord('q'), 27):
                    break
                await asyncio.sleep(0.05)
            if receiver.done():
                receiver.result()  # re-raise a dropped connection
        finally:
            receiver.cancel()

if __name__ == "__main__":
    args = parse_args()
    curses.wrapper(lambda scr: asyncio.run(main(scr, args)))
