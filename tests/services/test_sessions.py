# tests/services/test_sessions.py
"""Tests for session creation, rescheduling, cancellation and nominations."""

from datetime import timedelta

import pytest

from conftest import COMMUNITY_ID
from watchparty_stage.core.errors import (
    ActiveSessionExists,
    InvalidItemState,
    InvalidSessionState,
    ItemNotFound,
    ScheduleValidationError,
    TitleBanned,
)
from watchparty_stage.services.events import (
    COMMUNITY_CONFIG_CHANGED,
    ITEM_BANNED,
    ITEM_NOMINATED,
    ITEM_SKIPPED,
    SESSION_CANCELLED,
    SESSION_COMPLETED,
    SESSION_CREATED,
    SESSION_RESCHEDULED,
)


def _names(events):
    return [event.name for event in events]


@pytest.mark.asyncio
async def test_create_pulls_queued_items(lifecycle, published, clock, make_item) -> None:
    """Carried-over items come first, incompatible and finished items stay out."""
    fresh = await make_item("Fresh Pick")
    carried = await make_item("Carried Pick", carried_over=True)
    series = await make_item("Long Series", content_type="tv_show")
    watched = await make_item("Seen It", status="watched")
    planned = await make_item("Planned Pick", status="planned")

    voting_session = await lifecycle.create_session(
        COMMUNITY_ID,
        "Movie Night",
        content_category="movie",
        scheduled_at=clock() + timedelta(days=3),
        voting_end_time=clock() + timedelta(days=2),
    )

    assert voting_session.status == "voting"
    items = await lifecycle.list_items(voting_session.id)
    assert {item.id for item in items} == {fresh.id, carried.id, planned.id}
    assert carried.carried_over is False
    assert series.session_id is None
    assert watched.session_id is None
    assert _names(published) == [SESSION_CREATED]
    assert published[0].payload.session_id == voting_session.id


@pytest.mark.asyncio
async def test_create_without_end_time_is_planning(lifecycle) -> None:
    planning = await lifecycle.create_session(COMMUNITY_ID, "Someday")

    assert planning.status == "planning"
    assert lifecycle.scheduler.armed_sessions() == {}


@pytest.mark.asyncio
async def test_create_arms_near_term_closure(lifecycle, clock) -> None:
    voting_session = await lifecycle.create_session(
        COMMUNITY_ID,
        "Tonight",
        voting_end_time=clock() + timedelta(hours=4),
    )

    assert voting_session.id in lifecycle.scheduler.armed_sessions()
    lifecycle.cancel_schedule(voting_session.id)


@pytest.mark.asyncio
async def test_second_voting_session_is_rejected(lifecycle, clock) -> None:
    await lifecycle.create_session(
        COMMUNITY_ID, "First", voting_end_time=clock() + timedelta(days=2)
    )

    with pytest.raises(ActiveSessionExists):
        await lifecycle.create_session(
            COMMUNITY_ID, "Second", voting_end_time=clock() + timedelta(days=3)
        )
    # Another community is unaffected; planning sessions are always allowed.
    await lifecycle.create_session(99, "Elsewhere", voting_end_time=clock() + timedelta(days=3))
    await lifecycle.create_session(COMMUNITY_ID, "Later")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("end_offset", "start_offset"),
    [
        (timedelta(minutes=-1), None),
        (timedelta(days=2), timedelta(days=1)),
        (timedelta(days=2), timedelta(days=2)),
    ],
)
async def test_create_validates_times(lifecycle, clock, end_offset, start_offset) -> None:
    with pytest.raises(ScheduleValidationError):
        await lifecycle.create_session(
            COMMUNITY_ID,
            "Bad times",
            voting_end_time=clock() + end_offset,
            scheduled_at=clock() + start_offset if start_offset else None,
        )


@pytest.mark.asyncio
async def test_reschedule_disarms_stale_timer(lifecycle, published, clock) -> None:
    voting_session = await lifecycle.create_session(
        COMMUNITY_ID, "Soon", voting_end_time=clock() + timedelta(hours=2)
    )
    assert voting_session.id in lifecycle.scheduler.armed_sessions()

    moved = await lifecycle.reschedule_session(
        voting_session.id,
        scheduled_at=None,
        voting_end_time=clock() + timedelta(days=5),
    )

    assert lifecycle.scheduler.armed_sessions() == {}
    assert moved.voting_end_time == clock() + timedelta(days=5)
    assert _names(published)[-1] == SESSION_RESCHEDULED


@pytest.mark.asyncio
async def test_reschedule_opens_planning_session(lifecycle, clock) -> None:
    planning = await lifecycle.create_session(COMMUNITY_ID, "Someday")

    opened = await lifecycle.reschedule_session(
        planning.id,
        scheduled_at=None,
        voting_end_time=clock() + timedelta(days=2),
    )

    assert opened.status == "voting"


@pytest.mark.asyncio
async def test_reschedule_rejects_finished_sessions(lifecycle, make_session, clock) -> None:
    decided = await make_session(status="decided")

    with pytest.raises(InvalidSessionState):
        await lifecycle.reschedule_session(
            decided.id, scheduled_at=None, voting_end_time=clock() + timedelta(days=1)
        )


@pytest.mark.asyncio
async def test_cancel_carries_items_over(
    lifecycle, published, clock, make_item, add_votes, store
) -> None:
    item = await make_item("Brazil")
    voting_session = await lifecycle.create_session(
        COMMUNITY_ID, "Cancelled", voting_end_time=clock() + timedelta(hours=3)
    )
    await add_votes(item.id, up=2)

    cancelled = await lifecycle.cancel_session(voting_session.id)

    assert cancelled.status == "cancelled"
    assert lifecycle.scheduler.armed_sessions() == {}
    assert item.session_id is None
    assert item.carried_over is True
    assert item.status == "pending"
    assert (await store.count_votes_by_direction(item.id)).up == 0
    assert _names(published).count(SESSION_CANCELLED) == 1

    # Cancelling again is a no-op.
    await lifecycle.cancel_session(voting_session.id)
    assert _names(published).count(SESSION_CANCELLED) == 1


@pytest.mark.asyncio
async def test_cancel_after_decision_returns_winner_to_planned(
    lifecycle, make_session, make_item, add_votes
) -> None:
    voting_session = await make_session()
    winner = await make_item("Ikiru", session_id=voting_session.id)
    await add_votes(winner.id, up=1)
    await lifecycle.close_session(voting_session.id)

    await lifecycle.cancel_session(voting_session.id)

    assert winner.status == "planned"
    assert winner.session_id is None


@pytest.mark.asyncio
async def test_complete_marks_winner_watched(
    lifecycle, published, clock, make_session, make_item, add_votes
) -> None:
    voting_session = await make_session()
    winner = await make_item("Ikiru", session_id=voting_session.id)
    await add_votes(winner.id, up=1)

    with pytest.raises(InvalidSessionState):
        await lifecycle.complete_session(voting_session.id)

    await lifecycle.close_session(voting_session.id)
    completed = await lifecycle.complete_session(voting_session.id)

    assert completed.status == "completed"
    assert winner.status == "watched"
    assert winner.watched_at == clock()
    assert _names(published)[-1] == SESSION_COMPLETED


@pytest.mark.asyncio
async def test_decided_leftovers_join_the_next_open_session(
    lifecycle, make_session, make_item, add_votes
) -> None:
    current = await make_session()
    upcoming = await make_session(status="planning", voting_end_time=None, name="Next Week")
    winner = await make_item("Ran", session_id=current.id)
    leftover = await make_item("Kagemusha", session_id=current.id)
    await add_votes(winner.id, up=2)

    await lifecycle.close_session(current.id)

    assert leftover.session_id == upcoming.id
    assert leftover.status == "pending"
    assert leftover.carried_over is False


@pytest.mark.asyncio
async def test_nominate_places_item_in_open_session(lifecycle, published, clock) -> None:
    voting_session = await lifecycle.create_session(
        COMMUNITY_ID,
        "Movies Only",
        content_category="movie",
        voting_end_time=clock() + timedelta(days=2),
    )

    movie = await lifecycle.nominate(COMMUNITY_ID, "  Ponyo ", "movie", nominated_by="fan")
    show = await lifecycle.nominate(COMMUNITY_ID, "Twin Peaks", "tv_show")

    assert movie.title == "Ponyo"
    assert movie.session_id == voting_session.id
    assert show.session_id is None
    assert _names(published).count(ITEM_NOMINATED) == 2


@pytest.mark.asyncio
async def test_nominate_rejects_banned_titles(lifecycle, make_item) -> None:
    await make_item("The Room", status="banned")

    with pytest.raises(TitleBanned):
        await lifecycle.nominate(COMMUNITY_ID, "the room", "movie")
    # Bans are per community.
    await lifecycle.nominate(COMMUNITY_ID + 1, "The Room", "movie")


@pytest.mark.asyncio
async def test_nominate_validates_input(lifecycle) -> None:
    with pytest.raises(ValueError):
        await lifecycle.nominate(COMMUNITY_ID, "   ", "movie")
    with pytest.raises(ValueError):
        await lifecycle.nominate(COMMUNITY_ID, "Cats", "podcast")


@pytest.mark.asyncio
async def test_update_community_config(lifecycle, published) -> None:
    config = await lifecycle.update_community_config(COMMUNITY_ID, vote_cap_minimum=2)

    assert config.vote_cap_minimum == 2
    assert published[-1].name == COMMUNITY_CONFIG_CHANGED
    assert published[-1].payload.changes == {"vote_cap_minimum": 2}

    with pytest.raises(ValueError):
        await lifecycle.update_community_config(COMMUNITY_ID, theme="dark")


@pytest.mark.asyncio
async def test_ban_takes_item_out_of_session(
    lifecycle, store, published, make_session, make_item, add_votes
) -> None:
    voting_session = await make_session()
    item = await make_item("The Room", session_id=voting_session.id, carried_over=True)
    await add_votes(item.id, up=2, down=1)

    banned = await lifecycle.ban_item(item.id)

    assert banned.status == "banned"
    assert banned.session_id is None
    assert banned.carried_over is False
    counts = await store.count_votes_by_direction(item.id)
    assert (counts.up, counts.down) == (0, 0)
    assert await lifecycle.list_items(voting_session.id) == []
    assert published[-1].name == ITEM_BANNED
    assert published[-1].payload.session_id == voting_session.id
    assert published[-1].payload.title == "The Room"


@pytest.mark.asyncio
async def test_banned_item_blocks_later_nominations(lifecycle, published, make_item) -> None:
    item = await make_item("Cats")
    await lifecycle.ban_item(item.id)

    with pytest.raises(TitleBanned):
        await lifecycle.nominate(COMMUNITY_ID, " CATS ", "movie")

    # A second ban changes nothing.
    await lifecycle.ban_item(item.id)
    assert _names(published) == [ITEM_BANNED]


@pytest.mark.asyncio
async def test_ban_refuses_scheduled_winner(lifecycle, make_item) -> None:
    winner = await make_item("Heat", status="scheduled")

    with pytest.raises(InvalidItemState):
        await lifecycle.ban_item(winner.id)
    assert winner.status == "scheduled"


@pytest.mark.asyncio
async def test_ban_after_watching(lifecycle, make_item) -> None:
    seen = await make_item("Seen It", status="watched")

    banned = await lifecycle.ban_item(seen.id)

    assert banned.status == "banned"


@pytest.mark.asyncio
async def test_skip_drops_queued_item(
    lifecycle, published, make_session, make_item, add_votes
) -> None:
    voting_session = await make_session()
    item = await make_item("Wonka", session_id=voting_session.id)
    await add_votes(item.id, up=1)

    skipped = await lifecycle.skip_item(item.id)

    assert skipped.status == "skipped"
    assert skipped.session_id is None
    assert published[-1].name == ITEM_SKIPPED
    assert published[-1].payload.status == "skipped"
    # A skipped title can still be nominated again.
    again = await lifecycle.nominate(COMMUNITY_ID, "Wonka", "movie")
    assert again.id != item.id


@pytest.mark.asyncio
@pytest.mark.parametrize("item_status", ["scheduled", "watched", "banned"])
async def test_skip_needs_a_queued_item(lifecycle, make_item, item_status) -> None:
    item = await make_item("Stuck", status=item_status)

    with pytest.raises(InvalidItemState):
        await lifecycle.skip_item(item.id)
    assert item.status == item_status


@pytest.mark.asyncio
async def test_ban_and_skip_unknown_item(lifecycle) -> None:
    with pytest.raises(ItemNotFound):
        await lifecycle.ban_item(424242)
    with pytest.raises(ItemNotFound):
        await lifecycle.skip_item(424242)
