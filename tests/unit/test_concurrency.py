"""
Concurrent requests must never see each other's documents or files.
"""

import asyncio

import httpx
import pytest


@pytest.mark.asyncio
async def test_parallel_conversions_are_isolated(app, converters, make_rtf, leftover_files):
    converters["unrtf"].delay = 0.05
    texts = [f"Document number {n}" for n in range(20)]

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        responses = await asyncio.gather(*(
            client.post(
                "/rtf/txt" if n % 2 else "/rtf/html",
                content=make_rtf(text),
                headers={"Content-Type": "application/rtf"},
            )
            for n, text in enumerate(texts)
        ))

    for n, (text, response) in enumerate(zip(texts, responses)):
        assert response.status_code == 200
        if n % 2:
            assert response.text == text
        else:
            assert f">{text}<" in response.text
        for other in texts:
            if other != text:
                assert f"{other}<" not in response.text and response.text != other

    assert len(converters["unrtf"].commands) == len(texts)
    assert leftover_files() == []


@pytest.mark.asyncio
async def test_failures_do_not_leak_into_parallel_requests(app, converters, sample_rtf, sample_pdf,
                                                          leftover_files):
    converters["pdftotext"].returncode = 3
    converters["pdftotext"].stderr = b"I/O Error"

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        rtf, pdf = await asyncio.gather(
            client.post("/rtf/txt", content=sample_rtf, headers={"Content-Type": "application/rtf"}),
            client.post("/pdf/txt", content=sample_pdf, headers={"Content-Type": "application/pdf"}),
        )

    assert rtf.status_code == 200
    assert rtf.text == "Hello World"
    assert pdf.status_code == 500
    assert leftover_files() == []


async def call_asgi(app, path, body, content_type):
    """Drive the ASGI app directly with a client that stays connected."""
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "query_string": b"",
        "root_path": "",
        "headers": [
            (b"host", b"testserver"),
            (b"content-type", content_type.encode()),
            (b"content-length", str(len(body)).encode()),
        ],
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
    }
    messages = [{"type": "http.request", "body": body, "more_body": False}]
    sent = []

    async def receive():
        if messages:
            return messages.pop(0)
        await asyncio.Event().wait()

    async def send(message):
        sent.append(message)

    await app(scope, receive, send)
    return sent


@pytest.mark.asyncio
async def test_cancelled_request_is_cleaned_up(app, converters, sample_rtf, leftover_files):
    converters["unrtf"].delay = 5.0

    task = asyncio.create_task(call_asgi(app, "/rtf/txt", sample_rtf, "application/rtf"))
    for _ in range(200):
        if converters["unrtf"].commands:
            break
        await asyncio.sleep(0.01)

    assert converters["unrtf"].commands
    staged = leftover_files()
    assert any(name.endswith(".rtf") for name in staged)
    assert any(name.endswith(".d") for name in staged)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert leftover_files() == []
