import logging

import pytest

from microchat.settings import settings


@pytest.mark.asyncio
async def test_index_without_topic(client, soup):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/html")

    dom = soup(resp.text)

    h2 = dom.select_one("h2#chat-topic-hdr")
    assert h2 and "Latest chats" in h2.text
    # free-form topic field when no topic is selected
    topic_input = dom.select_one("input#topic")
    assert topic_input is not None and topic_input["type"] == "text"
    assert dom.select_one("input#chat-submit") is not None
    body = dom.select_one("body")
    assert body["data-all-chats"] == "all_chats"
    assert body["data-topic"] == ""
    # the browser must poll within what /subscribe accepts
    assert 1 <= int(body["data-poll-timeout"]) <= settings.max_timeout_seconds


@pytest.mark.asyncio
async def test_index_with_topic_and_name(client, soup):
    resp = await client.get("/", params={"topic": "Big News", "display_name": "ann"})
    assert resp.status_code == 200

    dom = soup(resp.text)

    h2 = dom.select_one("h2#chat-topic-hdr")
    assert h2 and "Big-News" in h2.text
    assert dom.select_one("input#topic")["type"] == "hidden"
    assert dom.select_one("input#topic")["value"] == "Big-News"
    assert dom.select_one("#displayNameAlready").text.strip() == "ann"
    assert dom.select_one("button#chat-btn") is not None
    assert dom.select_one("body")["data-topic"] == "Big-News"


@pytest.mark.asyncio
async def test_index_escapes_display_name(client):
    resp = await client.get("/", params={"display_name": "<script>x</script>"})

    assert "<script>x</script>" not in resp.text


@pytest.mark.asyncio
async def test_ajax_post_publishes_to_topic_and_all_chats(client, broker):
    resp = await client.post(
        "/post",
        data={"topic": "sports", "display_name": "ann", "message": "**goal**", "doAjax": "yes"},
    )
    assert resp.status_code == 200
    assert resp.text == "ok"

    expected = {"display_name": "ann", "message": "<p><strong>goal</strong></p>", "topic": "sports"}
    topic = await broker.subscribe("sports", since=0, timeout=1)
    feed = await broker.subscribe("all_chats", since=0, timeout=1)
    assert [e.payload for e in topic.events] == [expected]
    assert [e.payload for e in feed.events] == [expected]


@pytest.mark.asyncio
async def test_form_post_redirects_to_topic_page(client, broker):
    resp = await client.post(
        "/post",
        data={"topic": "Hello World!", "display_name": "ann lee", "message": "hi"},
    )

    assert resp.status_code == 303
    assert resp.headers["location"] == "/?topic=Hello-World&display_name=ann+lee"
    assert broker.topics() == ["Hello-World", "all_chats"]


@pytest.mark.parametrize(
    "data",
    [
        {"topic": "", "display_name": "ann", "message": "hi"},
        {"topic": "!!!", "display_name": "ann", "message": "hi"},
        {"topic": "news", "display_name": "", "message": "hi"},
        {"topic": "news", "display_name": "ann", "message": "  "},
        {},
    ],
)
@pytest.mark.asyncio
async def test_blank_post_is_rejected(client, broker, data):
    resp = await client.post("/post", data=data)

    assert resp.status_code == 400
    assert "Blank/Invalid topic (must be A-Za-z0-9)" in resp.text
    assert broker.topics() == []


@pytest.mark.asyncio
async def test_post_requires_post_method(client):
    resp = await client.get("/post")

    assert resp.status_code == 405


@pytest.mark.asyncio
async def test_post_after_shutdown_fails(client, broker):
    await broker.shutdown()

    resp = await client.post(
        "/post", data={"topic": "news", "display_name": "ann", "message": "hi", "doAjax": "yes"}
    )

    assert resp.status_code == 503


@pytest.mark.asyncio
async def test_post_logs_form_topic_and_name(client, caplog):
    caplog.set_level(logging.INFO)

    resp = await client.post(
        "/post",
        data={"topic": "sports", "display_name": "ann", "message": "hi", "doAjax": "yes"},
    )
    assert resp.status_code == 200

    posted = [r.getMessage() for r in caplog.records if r.name == "microchat.routes.chat"]
    assert any("topic: sports" in m and "display_name: ann" in m for m in posted)
    # the request line carries no empty form fields for POSTs
    requests = [r.getMessage() for r in caplog.records if r.name == "microchat.middleware"]
    assert any(m.startswith("HTTP POST /post") and "topic:" not in m for m in requests)


@pytest.mark.asyncio
async def test_get_request_log_carries_query_topic(client, caplog):
    caplog.set_level(logging.INFO)

    await client.get("/", params={"topic": "sports", "display_name": "ann"})

    requests = [r.getMessage() for r in caplog.records if r.name == "microchat.middleware"]
    assert any("topic: sports, display_name: ann" in m for m in requests)
