"""
Tests for notification sinks.
"""
import asyncio
import json

import httpx

from swap_engine.notify import LogNotifier, TelegramNotifier, safe_notify


def telegram_with(handler):
    notifier = TelegramNotifier("123:abc")
    notifier._client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url=f"{TelegramNotifier.BASE_URL}/bot123:abc",
    )
    return notifier


def test_log_notifier_keeps_messages():
    notifier = LogNotifier()

    assert asyncio.run(safe_notify(notifier, 1, "hello")) is True
    assert notifier.sent == [(1, "hello")]


def test_no_sink():
    assert asyncio.run(safe_notify(None, 1, "hello")) is False


def test_telegram_payload():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"ok": True})

    async def run():
        notifier = telegram_with(handler)
        try:
            return await safe_notify(notifier, 555, "transaction sent")
        finally:
            await notifier.close()

    assert asyncio.run(run()) is True
    assert requests[0].url.path == "/bot123:abc/sendMessage"
    body = json.loads(requests[0].content)
    assert body["chat_id"] == 555
    assert body["text"] == "transaction sent"


def test_telegram_failure_is_swallowed():
    def handler(request):
        return httpx.Response(403, json={"ok": False, "description": "bot was blocked"})

    async def run():
        notifier = telegram_with(handler)
        try:
            return await safe_notify(notifier, 555, "x")
        finally:
            await notifier.close()

    assert asyncio.run(run()) is False
