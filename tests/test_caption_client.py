import pytest
import requests

from slideshow.caption_client import NO_CAPTION, CaptionClient, build_messages
from slideshow.errors import CaptionError

from tests.conftest import FakeResponse, make_item

URL = "https://captions.example.test/v1/chat/completions"


def completion(text):
    return FakeResponse(200, {"choices": [{"message": {"role": "assistant", "content": text}}]})


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def client(session, sleeps):
    return CaptionClient(URL, "test-model", session=session, sleep=sleeps.append)


def test_generate_caption_posts_chat_request(client, session):
    session.add("chat/completions", completion("  A calm lake at dawn.  "))
    item = make_item("a", title="Morning lake")

    caption = client.generate_caption(item, "Be brief.", "sk-test")

    assert caption == "A calm lake at dawn."
    call = session.calls[0]
    assert call["method"] == "POST"
    assert call["headers"]["Authorization"] == "Bearer sk-test"
    assert call["timeout"] == 10
    assert call["json"]["model"] == "test-model"
    assert call["json"]["messages"][0] == {"role": "system", "content": "Be brief."}


def test_user_message_describes_item():
    messages = build_messages(make_item("a", channel="travel", title="Kyoto"), "prompt")

    user = messages[1]["content"]
    assert user.startswith("Generate a caption for this Reddit post:")
    assert "Title: Kyoto" in user
    assert "Subreddit: r/travel" in user
    assert "Media Type: Image" in user


def test_blank_completion_returns_placeholder(client, session):
    session.add("chat/completions", completion("   "))

    assert client.generate_caption(make_item("a"), "p", "k") == NO_CAPTION


def test_transient_error_is_retried(client, session, sleeps):
    session.add("chat/completions", [FakeResponse(503), completion("Second time lucky.")])

    assert client.generate_caption(make_item("a"), "p", "k") == "Second time lucky."
    assert len(session.calls) == 2
    assert sleeps == [0.3]


def test_server_errors_give_up_after_max_attempts(client, session, sleeps):
    session.add("chat/completions", FakeResponse(500))

    with pytest.raises(CaptionError) as excinfo:
        client.generate_caption(make_item("a"), "p", "k")

    assert str(excinfo.value) == "Caption service is currently unavailable. Please try again later."
    assert len(session.calls) == 3
    assert sleeps == [0.3, 0.6]


def test_invalid_key_is_not_retried(client, session, sleeps):
    session.add("chat/completions", FakeResponse(401, {"error": {"message": "No auth credentials found"}}))

    with pytest.raises(CaptionError) as excinfo:
        client.generate_caption(make_item("a"), "p", "bad")

    assert "Invalid API key" in str(excinfo.value)
    assert len(session.calls) == 1
    assert sleeps == []


def test_provider_error_message_is_passed_through(client, session):
    session.add("chat/completions", FakeResponse(400, {"error": {"message": "Unknown model test-model"}}))

    with pytest.raises(CaptionError, match="Unknown model test-model"):
        client.generate_caption(make_item("a"), "p", "k")


def test_timeouts_are_retried_then_reported(client, session):
    session.add("chat/completions", requests.Timeout("read timed out"))

    with pytest.raises(CaptionError, match="Caption request timed out."):
        client.generate_caption(make_item("a"), "p", "k")

    assert len(session.calls) == 3


def test_malformed_response_is_reported(client, session):
    session.add("chat/completions", FakeResponse(200, {"unexpected": True}))

    with pytest.raises(CaptionError, match="Unexpected response from caption service."):
        client.generate_caption(make_item("a"), "p", "k")

    assert len(session.calls) == 1
