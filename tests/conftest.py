"""
pytest configuration and shared fixtures for fabrix tests.
"""

import copy
import json
import sys
from pathlib import Path

import pytest

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from fabrix.errors import AccessDenied, AuthenticationError  # noqa: E402


class FakeProvider:
    """Extraction provider returning canned responses; records every call."""

    def __init__(self, response="", error=None):
        self.response = response
        self.error = error
        self.calls = []

    async def connect(self):
        pass

    async def close(self):
        pass

    async def generate(self, prompt, model=None, system=None, temperature=None, max_tokens=None):
        self.calls.append({"prompt": prompt, "system": system, "temperature": temperature})
        if self.error is not None:
            raise self.error
        if isinstance(self.response, dict):
            return json.dumps(self.response)
        return self.response


class InMemoryProductStore:
    """ProductStore keeping rows in a dict keyed by URL."""

    def __init__(self):
        self.rows = {}
        self.inserts = []
        self.patches = []

    def get(self, url):
        row = self.rows.get(url)
        return copy.deepcopy(row) if row is not None else None

    def insert(self, row):
        self.inserts.append(copy.deepcopy(row))
        self.rows[row["url"]] = copy.deepcopy(row)

    def patch(self, url, fields):
        self.patches.append((url, copy.deepcopy(fields)))
        self.rows[url].update(copy.deepcopy(fields))


class FakeProfileStore:
    """Profile store resolving fixed tokens to user profiles."""

    def __init__(self, users=None):
        self.users = users or {}
        self.flagged = []
        self.consumed = []

    def get_user(self, token):
        user = self.users.get(token)
        if user is None:
            raise AuthenticationError("Invalid or expired token")
        if user.get("is_flagged"):
            raise AccessDenied(
                "Account suspended",
                reason=user.get("flagged_reason") or "Terms of service violation",
            )
        return dict(user)

    def flag_user(self, user_id, reason):
        self.flagged.append((user_id, reason))

    def consume_scan(self, user_id):
        self.consumed.append(user_id)
        for user in self.users.values():
            if user["id"] == user_id:
                user["scans_remaining"] -= 1
                user["scans_used_today"] += 1
                return user["scans_remaining"]
        return 0


def make_user(**overrides):
    user = {
        "id": "user-1",
        "email": "shopper@example.com",
        "subscription_tier": "free",
        "scans_remaining": 10,
        "scans_used_today": 0,
        "is_flagged": False,
    }
    user.update(overrides)
    return user


@pytest.fixture
def product_store():
    return InMemoryProductStore()


@pytest.fixture
def valid_product():
    return {
        "url": "https://x.test/a",
        "title": "Relaxed Linen Shirt",
        "brand": "everlane",
        "composition_grade": "Natural",
        "fibers": [{"name": "linen", "percentage": 100}],
        "lining": None,
        "trim": None,
        "raw_text": "Content: 100% linen",
    }
