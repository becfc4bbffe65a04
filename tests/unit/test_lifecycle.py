"""
Unit tests for request finalizers and the finalizer middleware.
"""

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from docsmith.lifecycle import RequestFinalizerMiddleware, RequestFinalizers, get_finalizers


class TestRequestFinalizers:

    @pytest.mark.asyncio
    async def test_runs_in_reverse_order_once(self):
        calls = []
        finalizers = RequestFinalizers()

        async def first():
            calls.append("first")

        async def second():
            calls.append("second")

        finalizers.register(first)
        finalizers.register(second)
        assert finalizers.pending == 2

        await finalizers.run()
        await finalizers.run()

        assert calls == ["second", "first"]
        assert finalizers.finished

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_others(self, caplog):
        calls = []
        finalizers = RequestFinalizers()

        async def ok():
            calls.append("ok")

        async def broken():
            raise OSError("disk gone")

        finalizers.register(ok)
        finalizers.register(broken, name="broken cleanup")

        with caplog.at_level("WARNING", logger="docsmith"):
            await finalizers.run()

        assert calls == ["ok"]
        assert "broken cleanup failed" in caplog.text

    @pytest.mark.asyncio
    async def test_register_after_run(self):
        finalizers = RequestFinalizers()
        await finalizers.run()

        async def late():
            pass

        with pytest.raises(RuntimeError):
            finalizers.register(late)


def make_app(events):
    app = FastAPI()
    app.add_middleware(RequestFinalizerMiddleware)

    async def record():
        events.append("finalized")

    @app.get("/ok")
    async def ok(request: Request):
        get_finalizers(request).register(record)
        events.append("handled")
        return {"status": "ok"}

    @app.get("/boom")
    async def boom(request: Request):
        get_finalizers(request).register(record)
        raise RuntimeError("handler failed")

    @app.get("/untouched")
    async def untouched(request: Request):
        return {"pending": get_finalizers(request).pending}

    return app


class TestRequestFinalizerMiddleware:

    def test_runs_after_response(self):
        events = []
        client = TestClient(make_app(events))

        response = client.get("/ok")

        assert response.status_code == 200
        assert events == ["handled", "finalized"]

    def test_runs_when_handler_raises(self):
        events = []
        client = TestClient(make_app(events), raise_server_exceptions=False)

        response = client.get("/boom")

        assert response.status_code == 500
        assert events == ["finalized"]

    def test_each_request_gets_its_own_registry(self):
        events = []
        client = TestClient(make_app(events))

        client.get("/ok")
        response = client.get("/untouched")

        assert response.json() == {"pending": 0}
        assert events == ["handled", "finalized"]

    def test_without_middleware(self):
        app = FastAPI()

        @app.get("/")
        async def index(request: Request):
            return {"installed": get_finalizers(request) is not None}

        assert TestClient(app).get("/").json() == {"installed": False}
