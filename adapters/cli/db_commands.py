"""
데이터베이스 관리 CLI 명령어

데이터베이스 초기화, 리셋, 테이블 통계 조회를 위한 CLI 명령어입니다.
"""

import asyncio

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy import func, select

from adapters.db.database import DatabaseAdapter
from adapters.db.models import (
    AccountModel,
    ConversationModel,
    IntegrationModel,
    MessageModel,
    SyncCursorModel,
)
from config.adapters import get_config

# CLI 앱 생성
app = typer.Typer(name="db", help="데이터베이스 관리 명령어")
console = Console()

STAT_TABLES = [
    ("accounts", AccountModel),
    ("integrations", IntegrationModel),
    ("sync_cursors", SyncCursorModel),
    ("conversations", ConversationModel),
    ("messages", MessageModel),
]


@app.command("init")
def init_database(
    drop_existing: bool = typer.Option(False, "--drop", help="기존 테이블을 삭제하고 재생성"),
):
    """데이터베이스를 초기화합니다."""

    async def _init():
        config = get_config()
        db_adapter = DatabaseAdapter(config)
        try:
            console.print(f"[blue]환경: {config.get_environment()}[/blue]")
            console.print("[blue]데이터베이스 초기화 시작...[/blue]")

            await db_adapter.initialize()
            if drop_existing:
                console.print("[yellow]기존 테이블을 삭제하는 중...[/yellow]")
                await db_adapter.drop_tables()
            await db_adapter.create_tables()

            console.print("[green]✓ 데이터베이스 초기화가 완료되었습니다![/green]")
        except Exception as e:
            console.print(f"[red]오류: {str(e)}[/red]")
            raise typer.Exit(1)
        finally:
            await db_adapter.close()

    asyncio.run(_init())


@app.command("reset")
def reset_database():
    """데이터베이스를 리셋합니다. (모든 데이터 삭제)"""

    confirm = typer.confirm("모든 데이터가 삭제됩니다. 계속하시겠습니까?")
    if not confirm:
        console.print("[yellow]취소되었습니다.[/yellow]")
        return

    async def _reset():
        db_adapter = DatabaseAdapter(get_config())
        try:
            console.print("[blue]데이터베이스 리셋 시작...[/blue]")
            await db_adapter.initialize()
            await db_adapter.reset()
            console.print("[green]✓ 데이터베이스 리셋이 완료되었습니다![/green]")
        except Exception as e:
            console.print(f"[red]오류: {str(e)}[/red]")
            raise typer.Exit(1)
        finally:
            await db_adapter.close()

    asyncio.run(_reset())


@app.command("stats")
def show_stats():
    """테이블별 행 수를 조회합니다."""

    async def _stats():
        db_adapter = DatabaseAdapter(get_config())
        try:
            await db_adapter.initialize()

            table = Table(title="테이블 통계")
            table.add_column("테이블", style="cyan")
            table.add_column("행 수", style="green", justify="right")

            async with db_adapter.get_session() as session:
                for name, model in STAT_TABLES:
                    result = await session.execute(select(func.count()).select_from(model))
                    table.add_row(name, str(result.scalar_one()))

            console.print(table)
        except Exception as e:
            console.print(f"[red]오류: {str(e)}[/red]")
            raise typer.Exit(1)
        finally:
            await db_adapter.close()

    asyncio.run(_stats())
