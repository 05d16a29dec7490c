"""댓글 스레드 탐색 테스트"""

import pytest

from core.domain.errors import AuthError, DepthExceeded, RequestError, TooManyNodes
from core.usecases.thread_resolution import ThreadResolver, parse_comment
from conftest import FakeFacebookClient


def comment(comment_id: str, parent_id: str, count=None) -> dict:
    raw = {
        "id": comment_id,
        "parent": {"id": parent_id},
        "from": {"id": f"user-{comment_id}", "name": "User"},
        "message": f"text {comment_id}",
        "created_time": "2019-01-01T00:00:00+0000",
    }
    if count is not None:
        raw["comment_count"] = count
    return raw


@pytest.fixture
def facebook():
    client = FakeFacebookClient()
    client.comments = {
        "post": [comment("a", "post"), comment("b", "post")],
        "a": [comment("a1", "a"), comment("a2", "a")],
        "a1": [comment("a1x", "a1")],
        "b": [comment("b1", "b")],
    }
    return client


async def test_resolve_returns_preorder(facebook, logger):
    resolver = ThreadResolver(facebook, logger)

    resolution = await resolver.resolve("post", "token")

    assert [node.id for node in resolution.nodes] == ["a", "a1", "a1x", "a2", "b", "b1"]
    assert [node.depth for node in resolution.nodes] == [1, 2, 3, 2, 1, 2]
    assert resolution.nodes[1].parent_id == "a"
    assert resolution.complete


async def test_nodes_without_children_are_not_expanded(logger):
    facebook = FakeFacebookClient()
    facebook.comments = {"post": [comment("a", "post", count=0), comment("b", "post", count=2)]}

    await ThreadResolver(facebook, logger).resolve("post", "token")

    assert facebook.called("get_comments") == ["post", "b"]


async def test_depth_limit_records_error_and_keeps_siblings(facebook, logger):
    resolver = ThreadResolver(facebook, logger, max_depth=2)

    resolution = await resolver.resolve("post", "token")

    assert [node.id for node in resolution.nodes] == ["a", "a1", "a2", "b", "b1"]
    depth_errors = [error for error in resolution.limit_errors if isinstance(error, DepthExceeded)]
    assert {error.node_id for error in depth_errors} == {"a1", "a2", "b1"}
    assert all(error.limit == 2 for error in depth_errors)
    assert not resolution.complete


async def test_node_limit_stops_traversal(facebook, logger):
    resolver = ThreadResolver(facebook, logger, max_nodes=3)

    resolution = await resolver.resolve("post", "token")

    assert [node.id for node in resolution.nodes] == ["a", "a1", "a1x"]
    assert len(resolution.limit_errors) == 1
    assert isinstance(resolution.limit_errors[0], TooManyNodes)
    assert resolution.limit_errors[0].value == 4


async def test_branch_failure_does_not_abort_other_branches(facebook, logger):
    facebook.comment_errors["a"] = RequestError("unsupported", status_code=400, platform="facebook")
    resolver = ThreadResolver(facebook, logger)

    resolution = await resolver.resolve("post", "token")

    assert [node.id for node in resolution.nodes] == ["a", "b", "b1"]
    assert len(resolution.failures) == 1
    assert resolution.failures[0].node_id == "a"
    assert resolution.failures[0].status_code == 400


async def test_auth_error_aborts_traversal(facebook, logger):
    facebook.comment_errors["b"] = AuthError("token expired", status_code=400, platform="facebook")
    resolver = ThreadResolver(facebook, logger)

    with pytest.raises(AuthError):
        await resolver.resolve("post", "token")


async def test_invalid_limits_are_rejected(facebook, logger):
    with pytest.raises(ValueError):
        ThreadResolver(facebook, logger, max_depth=0)


def test_parse_comment_skips_entries_without_id():
    node, reason = parse_comment({"message": "no id"}, "post", 1)

    assert node is None
    assert reason


def test_parse_comment_uses_author_id():
    node, _ = parse_comment(comment("c", "post", count=3), "post", 2)

    assert node.author == "user-c"
    assert node.child_count == 3
    assert node.depth == 2
