import asyncio
import json
import websockets

async def main():
    watermark = 0
    # reconnect with the last seen id so nothing is missed in between
    while True:
        uri = f"ws://localhost:8080/ws?watermark={watermark}"
        try:
            async with websockets.connect(uri) as ws:
                print("Awaiting messages... (press Ctrl+C to exit)")
                async for raw in ws:
                    frame = json.loads(raw)
                    if "type" not in frame:
                        watermark = frame["id"]
                    print("Received:", frame)
        except websockets.ConnectionClosed:
            await asyncio.sleep(1)

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
