"""
Domain 패키지

도메인 엔티티, 값 객체, 비즈니스 규칙을 정의합니다.
외부 의존성 없이 순수한 비즈니스 로직만 포함합니다.

주요 엔티티:
- Account: 연동된 외부 계정 (uid 전역 유일)
- Integration: 계정에 연결된 페이지/메일함
- SyncCursor: 증분 동기화 위치
- Conversation / Message: 조정된 대화와 메시지
- ThreadNode: 댓글 스레드 노드
"""
