"""
댓글 스레드 탐색 유즈케이스

게시물 하나의 댓글/답글 트리를 명시적인 스택으로 깊이 우선 탐색합니다.
탐색 순서는 부모가 자식보다 먼저 오는 전위 순서이며, 형제 순서는 플랫폼이 반환한 순서를 따릅니다.
최대 깊이와 최대 노드 수를 넘으면 해당 분기(또는 전체 탐색)를 멈추고 결과에 기록합니다.
"""

from typing import List, Optional, Tuple

from ..domain.entities import BranchFailure, ThreadNode, ThreadResolution
from ..domain.errors import AuthError, DepthExceeded, RequestError, TooManyNodes
from ..domain.ports import FacebookApiPort, LoggerPort


class ThreadResolver:
    """댓글 스레드 탐색기"""

    def __init__(
        self,
        facebook_client: FacebookApiPort,
        logger: LoggerPort,
        max_depth: int = 10,
        max_nodes: int = 3000,
    ):
        if max_depth < 1 or max_nodes < 1:
            raise ValueError("max_depth와 max_nodes는 1 이상이어야 합니다")
        self.facebook_client = facebook_client
        self.logger = logger
        self.max_depth = max_depth
        self.max_nodes = max_nodes

    async def resolve(self, root_id: str, access_token: str) -> ThreadResolution:
        """
        루트 게시물/댓글 아래의 모든 댓글을 수집합니다.

        Args:
            root_id: 루트 게시물 또는 댓글 ID
            access_token: 페이지 액세스 토큰

        Returns:
            전위 순서의 노드 목록, 실패한 분기, 제한 초과 기록

        Raises:
            AuthError: 토큰이 유효하지 않은 경우 (모든 분기가 같은 토큰을 사용)
        """
        resolution = ThreadResolution(root_id=root_id)

        # 스택 항목: 방문할 노드 (자식은 역순으로 넣어 형제 순서 유지)
        stack: List[ThreadNode] = []
        children = await self._fetch_children(root_id, access_token, 1, resolution)
        stack.extend(reversed(children))

        while stack:
            node = stack.pop()

            if len(resolution.nodes) >= self.max_nodes:
                limit_error = TooManyNodes(node.id, len(resolution.nodes) + 1, self.max_nodes)
                resolution.limit_errors.append(limit_error)
                self.logger.warning(f"스레드 노드 수 제한 초과: root={root_id}, limit={self.max_nodes}")
                break

            resolution.nodes.append(node)

            if not node.has_children():
                continue

            if node.depth >= self.max_depth:
                limit_error = DepthExceeded(node.id, node.depth + 1, self.max_depth)
                resolution.limit_errors.append(limit_error)
                self.logger.warning(f"스레드 깊이 제한 초과: node={node.id}, limit={self.max_depth}")
                continue

            children = await self._fetch_children(node.id, access_token, node.depth + 1, resolution)
            stack.extend(reversed(children))

        self.logger.debug(
            f"스레드 탐색 완료: root={root_id}, nodes={len(resolution.nodes)}, "
            f"failures={len(resolution.failures)}, limits={len(resolution.limit_errors)}"
        )
        return resolution

    async def _fetch_children(
        self,
        object_id: str,
        access_token: str,
        depth: int,
        resolution: ThreadResolution,
    ) -> List[ThreadNode]:
        """직계 자식을 조회합니다. 실패하면 분기 실패로 기록하고 빈 목록을 반환합니다."""
        try:
            raw_children = await self.facebook_client.get_comments(object_id, access_token)
        except AuthError:
            raise
        except RequestError as e:
            resolution.failures.append(
                BranchFailure(
                    node_id=object_id,
                    depth=depth - 1,
                    error=str(e),
                    status_code=e.status_code,
                )
            )
            self.logger.warning(f"댓글 분기 조회 실패: node={object_id}, error={e}")
            return []

        nodes = []
        for raw in raw_children:
            node, reason = parse_comment(raw, object_id, depth)
            if node is None:
                self.logger.debug(f"댓글 건너뜀: parent={object_id}, reason={reason}")
                continue
            nodes.append(node)
        return nodes


def parse_comment(raw: dict, parent_id: str, depth: int) -> Tuple[Optional[ThreadNode], Optional[str]]:
    """Graph API 댓글 응답을 ThreadNode로 변환합니다."""
    if not isinstance(raw, dict) or not raw.get("id"):
        return None, "id 없음"

    parent = raw.get("parent") or {}
    author = raw.get("from") or {}
    return (
        ThreadNode(
            id=str(raw["id"]),
            parent_id=parent.get("id") or parent_id,
            author=author.get("id"),
            body=raw.get("message"),
            created_at=raw.get("created_time"),
            child_count=raw.get("comment_count"),
            depth=depth,
            attachment_url=raw.get("attachment_url"),
        ),
        None,
    )
