"""Shared test doubles"""

import json

from unittest.mock import Mock


class FakeClock:
    """Manually advanced time source (epoch seconds)"""

    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_response(status_code=200, json_data=None, text=None, headers=None):
    """Minimal stand-in for requests.Response"""
    resp = Mock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 400
    resp.headers = headers or {}

    if json_data is not None:
        resp.text = json.dumps(json_data)
        resp.json.return_value = json_data
    else:
        resp.text = text or ""
        resp.json.side_effect = ValueError("No JSON object could be decoded")
    return resp
