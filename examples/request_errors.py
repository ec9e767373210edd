from fetch_sse import APIStatusError, HttpTransport, RequestTimeoutError

with HttpTransport() as transport:
    try:
        resp = transport.request("https://httpbin.org/status/503", timeout_ms=2000)
        # El transporte no levanta por status; raise_for_status es opt-in.
        transport.raise_for_status(resp)
    except RequestTimeoutError as e:
        print(f"Timed out: {e}")
    except APIStatusError as e:
        if e.is_server_error:
            print(f"Server error {e.status_code} – consider retrying.")
        else:
            print(e.to_dict())
