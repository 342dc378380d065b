import asyncio
import json
import websockets  # lightweight client; to install: pip install websockets

async def main():
    uri = "ws://localhost:8080/ws"
    async with websockets.connect(uri) as ws:
        msg = {"author": "alice", "body": "hi"}
        print("Client Message: ", msg)
        await ws.send(json.dumps(msg))
        # history replay and broadcasts share the socket; wait for our ack
        while True:
            frame = json.loads(await ws.recv())
            if frame.get("type") in ("ack", "error"):
                print("Server:", frame)
                break

if __name__ == "__main__":
    asyncio.run(main())
