import heapq
import itertools
from typing import Any, Callable, List, Optional

import pytest
import requests

from slideshow.data_models import Item, MediaKind
from slideshow.scheduler import Scheduler


class ManualTimer:
    def __init__(self, due: float, callback: Callable[..., None], args: tuple) -> None:
        self.due = due
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class BackgroundJob:
    def __init__(self, func, args, on_done, timeout) -> None:
        self.func = func
        self.args = args
        self.on_done = on_done
        self.timeout = timeout

    def complete(self) -> None:
        """Run the job now and deliver its outcome."""
        try:
            result = self.func(*self.args)
        except Exception as exc:
            self.on_done(None, exc)
        else:
            self.on_done(result, None)

    def resolve(self, result: Any) -> None:
        self.on_done(result, None)

    def fail(self, error: BaseException) -> None:
        self.on_done(None, error)


class ManualScheduler(Scheduler):
    """Deterministic scheduler: time only moves when a test calls advance()."""

    def __init__(self) -> None:
        self.now = 0.0
        self._timers: List[tuple] = []
        self._seq = itertools.count()
        self.jobs: List[BackgroundJob] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay, callback, *args):
        timer = ManualTimer(self.now + max(0.0, delay), callback, args)
        heapq.heappush(self._timers, (timer.due, next(self._seq), timer))
        return timer

    def run_in_background(self, func, *args, on_done, timeout=None) -> None:
        self.jobs.append(BackgroundJob(func, args, on_done, timeout))

    def advance(self, seconds: float) -> None:
        end = self.now + seconds
        # Tolerate float drift from summed phase durations.
        while self._timers and self._timers[0][0] <= end + 1e-9:
            due, _, timer = heapq.heappop(self._timers)
            self.now = due
            if not timer.cancelled:
                timer.callback(*timer.args)
        self.now = max(self.now, end)

    @property
    def pending_timers(self) -> int:
        return sum(1 for _, _, t in self._timers if not t.cancelled)

    def pop_job(self) -> BackgroundJob:
        return self.jobs.pop(0)

    def run_jobs(self) -> None:
        while self.jobs:
            self.pop_job().complete()


class FakeResponse:
    def __init__(self, status_code: int = 200, json_data: Any = None,
                 headers: Optional[dict] = None, raise_json: bool = False) -> None:
        self.status_code = status_code
        self._json = json_data
        self.headers = headers or {}
        self._raise_json = raise_json
        self.text = str(json_data)

    def json(self) -> Any:
        if self._raise_json:
            raise ValueError("No JSON object could be decoded")
        return self._json


class FakeSession:
    """Stands in for requests.Session; responses are served per URL substring."""

    def __init__(self) -> None:
        self.routes: List[tuple] = []
        self.calls: List[dict] = []
        self.closed = False

    def add(self, fragment: str, response) -> None:
        self.routes.append((fragment, response))

    def _serve(self, method: str, url: str, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        for fragment, response in self.routes:
            if fragment in url:
                if isinstance(response, list):
                    response = response.pop(0) if len(response) > 1 else response[0]
                if isinstance(response, Exception):
                    raise response
                return response
        raise requests.ConnectionError(f"No route for {url}")

    def get(self, url, **kwargs):
        return self._serve("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._serve("POST", url, **kwargs)

    def close(self) -> None:
        self.closed = True


def make_item(item_id: str, channel: str = "pics", title: Optional[str] = None) -> Item:
    return Item(
        id=item_id,
        title=title or f"Post {item_id}",
        channel=channel,
        url=f"https://i.redd.it/{item_id}.jpg",
        kind=MediaKind.IMAGE,
    )


def listing(*posts: dict) -> dict:
    return {"data": {"children": [{"kind": "t3", "data": p} for p in posts]}}


def image_post(post_id: str, subreddit: str = "pics", **extra) -> dict:
    post = {
        "id": post_id,
        "title": f"Image {post_id}",
        "url": f"https://i.redd.it/{post_id}.jpg",
        "subreddit": subreddit,
        "author": "someone",
        "permalink": f"/r/{subreddit}/comments/{post_id}/",
        "created_utc": 1700000000,
        "post_hint": "image",
        "thumbnail": f"https://b.thumbs.redditmedia.com/{post_id}.jpg",
    }
    post.update(extra)
    return post


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def items() -> List[Item]:
    return [make_item("a"), make_item("b"), make_item("c")]
