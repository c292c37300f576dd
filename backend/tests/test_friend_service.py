import pytest

from app.core.errors import Conflict, NotFound, ValidationFailed
from app.services import friend_service
from conftest import make_user


@pytest.fixture
async def users(db):
    return [await make_user(db, name) for name in ("alice", "bob", "carol")]


async def test_request_accept_remove_scenario(db, users):
    alice, bob, carol = users

    request = await friend_service.request_friend(db, alice.id, bob.id)
    pending = await friend_service.get_pending_requests(db, bob.id)
    assert [p.id for p in pending] == [request.id]
    assert pending[0].requester.username == "alice"
    assert await friend_service.get_pending_requests(db, alice.id) == []

    # only the receiver may accept
    with pytest.raises(NotFound):
        await friend_service.accept_friend(db, alice.id, request.id)

    await friend_service.accept_friend(db, bob.id, request.id)

    assert await friend_service.get_friend_ids(db, alice.id) == [bob.id]
    assert await friend_service.get_friend_ids(db, bob.id) == [alice.id]
    assert await friend_service.are_friends(db, bob.id, alice.id)
    assert not await friend_service.are_friends(db, alice.id, carol.id)
    assert await friend_service.get_pending_requests(db, bob.id) == []
    assert [u.username for u in await friend_service.get_friends(db, bob.id)] == ["alice"]

    with pytest.raises(NotFound):
        await friend_service.accept_friend(db, bob.id, request.id)

    await friend_service.remove_friend(db, bob.id, alice.id)
    assert await friend_service.get_friend_ids(db, alice.id) == []
    with pytest.raises(NotFound):
        await friend_service.remove_friend(db, bob.id, alice.id)


async def test_request_validation(db, users):
    alice, bob, _ = users

    with pytest.raises(ValidationFailed):
        await friend_service.request_friend(db, alice.id, alice.id)
    with pytest.raises(NotFound):
        await friend_service.request_friend(db, alice.id, 9999)

    await friend_service.request_friend(db, alice.id, bob.id)
    with pytest.raises(Conflict, match="already sent"):
        await friend_service.request_friend(db, alice.id, bob.id)
    with pytest.raises(Conflict, match="already sent you"):
        await friend_service.request_friend(db, bob.id, alice.id)


async def test_request_after_friendship(db, users):
    alice, bob, _ = users
    request = await friend_service.request_friend(db, alice.id, bob.id)
    await friend_service.accept_friend(db, bob.id, request.id)

    with pytest.raises(Conflict, match="Already friends"):
        await friend_service.request_friend(db, bob.id, alice.id)


async def test_decline(db, users):
    alice, bob, _ = users
    request = await friend_service.request_friend(db, alice.id, bob.id)

    await friend_service.decline_friend(db, bob.id, request.id)

    assert await friend_service.get_pending_requests(db, bob.id) == []
    assert await friend_service.get_friend_ids(db, alice.id) == []
    # a declined request can be sent again
    await friend_service.request_friend(db, alice.id, bob.id)
