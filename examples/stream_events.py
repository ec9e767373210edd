import asyncio
import sys

from fetch_sse import HttpTransport, amake_sse_request

URL = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000/events"

# Sync: el transporte se reutiliza entre requests.
with HttpTransport() as transport:
    with transport.stream_events(URL, "POST", body={"prompt": "hola"}) as events:
        for message in events:
            print(message, flush=True)

    print("stream ok" if events.outcome else "stream failed")


# Async: amake_sse_request cierra su transporte junto con el decoder.
async def main() -> None:
    events = await amake_sse_request(URL, query_params={"lang": "es"})
    async with events:
        async for message in events:
            print(message, flush=True)
    print("stream ok" if events.outcome else "stream failed")


asyncio.run(main())
