import asyncio
import httpx

async def main():
    url = "http://localhost:8000/publish"
    async with httpx.AsyncClient() as client:
        # publish a test event to topic 'orders'
        msg = {
            "topic": "orders",
            "event": "update",
            "data": "order ORD-1 shipped",
        }
        print("Publishing: ", msg)
        resp = await client.post(url, json=msg)
        print("Server:", resp.status_code, resp.json())

if __name__ == "__main__":
    asyncio.run(main())
