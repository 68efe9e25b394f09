"""Shared fixtures: a small catalog, feed text and a fake membership lookup."""
import pytest
from telegram.error import TelegramError

from access_gate import GroupDescriptor
from catalog import Catalog, CatalogRecord


_FEED_1950 = "\n".join(
    [
        "Sholay,tt0073707,https://img.example/sholay.jpg,https://en.wikipedia.org/wiki/Sholay",
        "Deewaar,tt0072860,https://img.example/deewaar.jpg,https://en.wikipedia.org/wiki/Deewaar",
    ]
    + [f"Movie {n},tt9{n:06d},https://img.example/{n}.jpg,https://en.wikipedia.org/wiki/Movie_{n}" for n in range(1, 13)]
)


class FakeMembership:
    """Stands in for Bot.get_chat_member; unknown groups answer "left"."""

    def __init__(self):
        self.statuses = {}
        self.failing = set()
        self.calls = []

    async def __call__(self, group_id, user_id):
        self.calls.append((group_id, user_id))
        if group_id in self.failing:
            raise TelegramError("Bad Request: member list is inaccessible")
        return self.statuses.get(group_id, "left")

    def join_all(self, groups):
        for g in groups:
            self.statuses[g.id] = "member"


@pytest.fixture
def make_record():
    def _make(title, key, category="1950-1989"):
        return CatalogRecord(
            category=category,
            title=title,
            key=key,
            media_ref=f"https://img.example/{key}.jpg",
            info_link=f"https://en.wikipedia.org/wiki/{key}",
        )
    return _make


@pytest.fixture
def sholay_catalog(make_record):
    return Catalog([make_record("Sholay", "tt001")])


@pytest.fixture
def groups():
    return [
        GroupDescriptor(id="-1001", invite_link="https://t.me/+groupA", name="Group A"),
        GroupDescriptor(id="-1002", invite_link="https://t.me/+groupB", name="Group B"),
    ]


@pytest.fixture
def membership():
    return FakeMembership()


@pytest.fixture
def feed_1950():
    """14 movies: Sholay, Deewaar and "Movie 1" .. "Movie 12"."""
    return _FEED_1950
