"""
플랫폼 연동 CLI 명령어

페이스북 페이지/Gmail 메일함 연결과 수동 동기화를 위한 CLI 명령어입니다.
"""

import asyncio
from typing import Optional
from uuid import UUID

import typer
from rich.console import Console
from rich.table import Table

from adapters.factory import AdapterFactory
from config.adapters import get_config

# CLI 앱 생성
app = typer.Typer(name="integration", help="플랫폼 연동 명령어")
console = Console()


@app.command("connect-page")
def connect_page(
    account_id: str = typer.Argument(..., help="계정 ID"),
    page_id: str = typer.Argument(..., help="페이스북 페이지 ID"),
):
    """페이스북 페이지를 계정에 연결하고 웹훅을 구독합니다."""

    async def _connect():
        factory = AdapterFactory(get_config())
        database = factory.get_database()
        try:
            await database.initialize()
            usecase = factory.create_account_management_usecase()
            integration = await usecase.connect_facebook_page(UUID(account_id), page_id)

            console.print("[green]✓ 페이지가 연결되었습니다![/green]")
            console.print(f"연동 ID: {integration.id}")
            console.print(f"페이지 ID: {integration.external_id}")
        except Exception as e:
            console.print(f"[red]오류: {str(e)}[/red]")
            raise typer.Exit(1)
        finally:
            await database.close()

    asyncio.run(_connect())


@app.command("connect-gmail")
def connect_gmail(
    account_id: str = typer.Argument(..., help="계정 ID"),
    watch: bool = typer.Option(True, help="받은편지함 푸시 알림 등록 여부"),
):
    """계정의 Gmail 메일함을 연결하고 초기 동기화 커서를 저장합니다."""

    async def _connect():
        config = get_config()
        factory = AdapterFactory(config)
        database = factory.get_database()
        try:
            await database.initialize()
            usecase = factory.create_account_management_usecase()

            topic_name = config.get_pubsub_config()["topic"] if watch else None
            if watch and not topic_name:
                console.print("[yellow]GOOGLE_TOPIC 설정이 없어 푸시 알림 등록을 건너뜁니다.[/yellow]")

            integration = await usecase.connect_gmail_mailbox(UUID(account_id), topic_name)

            console.print("[green]✓ 메일함이 연결되었습니다![/green]")
            console.print(f"연동 ID: {integration.id}")
            console.print(f"메일 주소: {integration.external_id}")
        except Exception as e:
            console.print(f"[red]오류: {str(e)}[/red]")
            raise typer.Exit(1)
        finally:
            await database.close()

    asyncio.run(_connect())


@app.command("sync")
def sync_mailbox(
    account_id: str = typer.Argument(..., help="계정 ID"),
):
    """Gmail 히스토리를 한 번 동기화합니다."""

    async def _sync():
        factory = AdapterFactory(get_config())
        database = factory.get_database()
        try:
            await database.initialize()
            syncer = factory.create_mail_history_sync_usecase()
            result = await syncer.sync_account(UUID(account_id))

            table = Table(title="동기화 결과")
            table.add_column("항목", style="cyan")
            table.add_column("값", style="green")
            table.add_row("시작 위치", result.start_position or "-")
            table.add_row("종료 위치", result.end_position or "-")
            table.add_row("처리", str(result.processed_count))
            table.add_row("건너뜀", str(result.skipped_count))
            table.add_row("실패", str(result.failed_count))
            console.print(table)
        except Exception as e:
            console.print(f"[red]오류: {str(e)}[/red]")
            raise typer.Exit(1)
        finally:
            await database.close()

    asyncio.run(_sync())


@app.command("resolve-thread")
def resolve_thread(
    page_id: str = typer.Argument(..., help="페이스북 페이지 ID"),
    post_id: str = typer.Argument(..., help="게시물 ID"),
    max_depth: Optional[int] = typer.Option(None, help="최대 탐색 깊이"),
):
    """게시물의 전체 댓글 스레드를 수집하여 대화로 저장합니다."""

    async def _resolve():
        factory = AdapterFactory(get_config())
        database = factory.get_database()
        try:
            await database.initialize()
            processor = factory.create_webhook_processing_usecase()
            if max_depth is not None:
                processor.resolver.max_depth = max_depth

            resolution = await processor.resolve_post_for_page(page_id, post_id)

            console.print(f"수집된 댓글: {len(resolution.nodes)}개")
            for failure in resolution.failures:
                console.print(f"[yellow]분기 실패: {failure.node_id} (depth={failure.depth}) {failure.error}[/yellow]")
            for limit_error in resolution.limit_errors:
                console.print(f"[yellow]제한 초과: {limit_error}[/yellow]")

            if resolution.complete:
                console.print("[green]✓ 스레드 수집이 완료되었습니다![/green]")
        except Exception as e:
            console.print(f"[red]오류: {str(e)}[/red]")
            raise typer.Exit(1)
        finally:
            await database.close()

    asyncio.run(_resolve())
