"""Chat-completion client used to caption slideshow items."""
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from .data_models import Item, RetryPolicy
from .errors import APIRequestError, CaptionError, ResponseFormatError

logger = logging.getLogger(__name__)

DEFAULT_CAPTION_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_MODEL = "meta-llama/llama-4-maverick"
REQUEST_TIMEOUT = 10  # seconds
MAX_TOKENS = 150
NO_CAPTION = "No caption generated."


def describe_item(item: Item) -> str:
    media = "Video" if item.is_video else "Image"
    return (
        f"Title: {item.title}\n"
        f"Subreddit: r/{item.channel}\n"
        f"URL: {item.url}\n"
        f"Author: u/{item.author or 'unknown'}\n"
        f"Media Type: {media}"
    )


def build_messages(item: Item, system_prompt: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": f"Generate a caption for this Reddit post:\n{describe_item(item)}"},
    ]


def _error_message(error: Exception) -> str:
    if isinstance(error, APIRequestError):
        status = error.status_code or 0
        if status == 401:
            return "Invalid API key. Please check your caption API key and try again."
        if status == 403:
            return "Access denied. The API key may have insufficient permissions."
        if status == 429:
            return "Caption service rate limit reached. Please try again shortly."
        if status >= 500:
            return "Caption service is currently unavailable. Please try again later."
        return str(error)
    if isinstance(error, ResponseFormatError):
        return "Unexpected response from caption service."
    if isinstance(error, requests.Timeout):
        return "Caption request timed out."
    if isinstance(error, requests.RequestException):
        return "Network error: Please check your internet connection and try again."
    return "Failed to generate caption"


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, APIRequestError):
        return error.status_code is None or error.status_code == 429 or error.status_code >= 500
    return isinstance(error, requests.RequestException)


class CaptionClient:
    """Posts chat-completion requests and returns the generated text."""

    def __init__(
        self,
        api_url: str = DEFAULT_CAPTION_URL,
        model: str = DEFAULT_MODEL,
        *,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
        retry_policy: RetryPolicy = RetryPolicy(),
        app_title: str = "Slideshow",
        referer: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_url = api_url
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()
        self.retry_policy = retry_policy
        self.app_title = app_title
        self.referer = referer
        self._sleep = sleep

    def _get_auth_headers(self, credential: str) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {credential}",
            "Content-Type": "application/json",
            "X-Title": self.app_title,
        }
        if self.referer:
            headers["HTTP-Referer"] = self.referer
        return headers

    def generate_caption(self, item: Item, system_prompt: str, credential: str) -> str:
        """
        Generate a caption for an item.

        Blocking; meant to be run through ``Scheduler.run_in_background``.
        Transient failures (network, 429, 5xx) are retried per the retry
        policy.

        Raises:
            CaptionError: with a user-facing message when every attempt failed
        """
        payload = {
            "model": self.model,
            "messages": build_messages(item, system_prompt),
            "max_tokens": MAX_TOKENS,
        }
        delays = self.retry_policy.delays()
        attempts = len(delays) + 1

        for attempt in range(attempts):
            try:
                return self._post(payload, credential)
            except (APIRequestError, ResponseFormatError, requests.RequestException) as exc:
                last_attempt = attempt == attempts - 1
                if last_attempt or not _is_retryable(exc):
                    logger.warning(f"Caption request for {item.id} failed: {exc}")
                    raise CaptionError(_error_message(exc)) from exc
                logger.debug("Caption attempt %d/%d failed: %s", attempt + 1, attempts, exc)
                self._sleep(delays[attempt])

        raise CaptionError("Failed to generate caption")  # pragma: no cover

    def _post(self, payload: Dict[str, Any], credential: str) -> str:
        response = self.session.post(
            self.api_url,
            json=payload,
            headers=self._get_auth_headers(credential),
            timeout=self.timeout,
        )

        if response.status_code != 200:
            message = f"API error: {response.status_code}"
            try:
                body = response.json()
                message = (body.get("error") or {}).get("message") or message
            except (ValueError, AttributeError):
                pass
            raise APIRequestError(message, status_code=response.status_code)

        try:
            data = response.json()
            choices = data["choices"]
            content = (choices[0].get("message") or {}).get("content") if choices else None
        except (ValueError, KeyError, TypeError, AttributeError, IndexError) as exc:
            raise ResponseFormatError("Malformed caption response") from exc

        return content.strip() if isinstance(content, str) and content.strip() else NO_CAPTION

    def close(self) -> None:
        self.session.close()
