import json as _json


class FakeResponse:
    """Minimal stand-in for a requests/httpx response."""

    def __init__(self, status_code=200, body=None, headers=None, reason=""):
        self.status_code = status_code
        self.headers = headers or {}
        self.reason = reason
        if body is None:
            self.text = ""
        elif isinstance(body, str):
            self.text = body
        else:
            self.text = _json.dumps(body)
        self.content = self.text.encode()

    def json(self):
        return _json.loads(self.text)


class Recorder:
    """Replays queued results for each send and records what was sent."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def __call__(self, spec, token):
        self.calls.append((spec, token))
        result = self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result
