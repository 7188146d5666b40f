import asyncio
import httpx

# run the gateway with GRIP_GATEWAY_PROXY_MODE=embedded, or point this at a GRIP proxy in front of it
async def main():
    url = "http://localhost:8000/stream"
    async with httpx.AsyncClient(timeout=None) as client:
        async with client.stream("GET", url, params={"topic": "orders"}) as resp:
            print("Status:", resp.status_code, resp.headers.get("content-type"))
            print("Awaiting events... (press Ctrl+C to exit)")
            try:
                async for line in resp.aiter_lines():
                    if line:
                        print("Received:", line)
            except KeyboardInterrupt:
                print("Closed.")

if __name__ == "__main__":
    asyncio.run(main())
