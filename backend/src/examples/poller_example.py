import httpx

def main():
    base = "http://localhost:8080"
    with httpx.Client(base_url=base, timeout=40) as client:
        for msg in client.get("/past_messages").json():
            print("History:", msg)
        print("Polling... (press Ctrl+C to exit)")
        while True:
            resp = client.get("/receive")
            if resp.status_code == 204:
                continue
            resp.raise_for_status()
            print("Received:", resp.json())

if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        pass
