import asyncio

import pytest

from src.errors import NoCursorForPage
from src.models import MessagePage
from src.pager import ListPager, collapse_conversations


class FakeListing:
    """Returns pages with a fresh continuation link until ``pages`` are exhausted."""

    def __init__(self, pages=10):
        self.pages = pages
        self.specs = []

    async def __call__(self, spec):
        self.specs.append(spec)
        served = len(self.specs)
        cursor = f"https://graph.example/next?token={served}" if served < self.pages else None
        return MessagePage(items=(), next_cursor=cursor)


class GatedListing(FakeListing):
    """Holds cursor-following requests until ``gate`` is set."""

    def __init__(self, pages=10):
        super().__init__(pages)
        self.gate = asyncio.Event()

    async def __call__(self, spec):
        if spec.cursor is not None:
            await self.gate.wait()
        return await super().__call__(spec)


def test_default_mode_uses_offsets_and_any_page_is_addressable():
    listing = FakeListing()
    pager = ListPager(listing, page_size=25)

    page = asyncio.run(pager.load_page(3))

    spec = listing.specs[0]
    assert (spec.skip, spec.top, spec.search, spec.cursor) == (75, 25, None, None)
    assert page.page_index == 3
    assert page.has_more is True
    assert pager.state.cursor_by_index == []


def test_has_more_follows_continuation_token():
    listing = FakeListing(pages=1)
    pager = ListPager(listing, page_size=10)

    page = asyncio.run(pager.load_page(0))

    assert page.has_more is False


def test_search_page_before_predecessor_is_rejected():
    listing = FakeListing()
    pager = ListPager(listing)

    with pytest.raises(NoCursorForPage) as excinfo:
        asyncio.run(pager.load_page(2, "walnut"))

    assert excinfo.value.page_index == 2
    assert listing.specs == []


def test_search_pages_chain_through_cursors():
    listing = FakeListing()
    pager = ListPager(listing)

    async def scenario():
        for index in range(3):
            await pager.load_page(index, "walnut")

    asyncio.run(scenario())

    first, second, third = listing.specs
    assert first.search == "walnut" and first.cursor is None
    assert second.cursor == pager.state.cursor_by_index[0]
    assert third.cursor == pager.state.cursor_by_index[1]
    assert len(set(pager.state.cursor_by_index)) == 3


def test_skipping_ahead_in_search_is_rejected():
    listing = FakeListing()
    pager = ListPager(listing)

    async def scenario():
        await pager.load_page(0, "walnut")
        await pager.load_page(1, "walnut")
        await pager.load_page(3, "walnut")

    with pytest.raises(NoCursorForPage):
        asyncio.run(scenario())


def test_changing_term_resets_cursors():
    listing = FakeListing()
    pager = ListPager(listing)

    async def scenario():
        await pager.load_page(0, "walnut")
        await pager.load_page(1, "walnut")
        await pager.load_page(1, "maple")

    with pytest.raises(NoCursorForPage):
        asyncio.run(scenario())
    assert pager.state.search_term == "maple"
    assert pager.state.cursor_by_index == []
    assert pager.state.page_index == 0


def test_leaving_search_returns_to_offsets():
    listing = FakeListing()
    pager = ListPager(listing, page_size=5)

    async def scenario():
        await pager.load_page(0, "walnut")
        return await pager.load_page(2, "  ")

    page = asyncio.run(scenario())

    assert listing.specs[-1].search is None
    assert listing.specs[-1].skip == 10
    assert page.page_index == 2
    assert pager.state.cursor_by_index == []


def test_end_of_search_results_has_no_next_page():
    listing = FakeListing(pages=1)
    pager = ListPager(listing)

    async def scenario():
        page = await pager.load_page(0, "walnut")
        assert page.has_more is False
        await pager.load_page(1, "walnut")

    with pytest.raises(NoCursorForPage):
        asyncio.run(scenario())


def test_collapse_conversations_keeps_first_per_thread(make_message):
    items = [
        make_message("a", conversation_id="c1"),
        make_message("b", conversation_id="c2"),
        make_message("c", conversation_id="c1"),
        make_message("d", conversation_id=None),
        make_message("e", conversation_id=None),
    ]

    assert [m.id for m in collapse_conversations(items)] == ["a", "b", "d", "e"]


def test_response_from_before_a_term_round_trip_is_discarded():
    listing = GatedListing()
    pager = ListPager(listing)

    async def scenario():
        await pager.load_page(0, "walnut")
        slow = asyncio.create_task(pager.load_page(1, "walnut"))
        await asyncio.sleep(0)
        await pager.load_page(0, "maple")
        await pager.load_page(0, "walnut")
        listing.gate.set()
        return await slow

    stale = asyncio.run(scenario())

    assert stale.page_index == 1
    assert pager.state.search_term == "walnut"
    assert pager.state.page_index == 0
    assert len(pager.state.cursor_by_index) == 1
