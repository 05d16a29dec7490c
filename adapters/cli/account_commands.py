"""
계정 관리 CLI 명령어

AccountManagementUseCase를 CLI 명령으로 노출하는 어댑터입니다.
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
app = typer.Typer(name="account", help="연동 계정 관리 명령어")
console = Console()


@app.command("register")
def register_account(
    kind: str = typer.Argument(..., help="플랫폼 태그 (facebook, gmail 등)"),
    uid: str = typer.Argument(..., help="플랫폼 사용자 ID"),
    token: str = typer.Option(..., help="액세스 토큰"),
    name: Optional[str] = typer.Option(None, help="표시 이름"),
    token_secret: Optional[str] = typer.Option(None, help="토큰 시크릿"),
):
    """새 연동 계정을 등록합니다."""

    async def _register():
        factory = AdapterFactory(get_config())
        database = factory.get_database()
        try:
            await database.initialize()
            usecase = factory.create_account_management_usecase()

            account = await usecase.register_account(
                kind=kind,
                uid=uid,
                name=name or uid,
                token=token,
                token_secret=token_secret,
            )
            if account is None:
                console.print(f"[yellow]이미 등록된 uid입니다: {uid}[/yellow]")
                raise typer.Exit(1)

            console.print("[green]✓ 계정이 성공적으로 등록되었습니다![/green]")
            console.print(f"계정 ID: {account.id}")
            console.print(f"플랫폼: {account.kind}")
            console.print(f"이름: {account.name}")
        except typer.Exit:
            raise
        except Exception as e:
            console.print(f"[red]오류: {str(e)}[/red]")
            raise typer.Exit(1)
        finally:
            await database.close()

    asyncio.run(_register())


@app.command("list")
def list_accounts(
    kind: Optional[str] = typer.Option(None, help="플랫폼별 필터"),
    limit: int = typer.Option(100, help="조회할 계정 수"),
    skip: int = typer.Option(0, help="건너뛸 계정 수"),
):
    """등록된 계정 목록을 조회합니다."""

    async def _list():
        factory = AdapterFactory(get_config())
        database = factory.get_database()
        try:
            await database.initialize()
            usecase = factory.create_account_management_usecase()
            accounts = await usecase.list_accounts(skip, limit)
            if kind:
                accounts = [account for account in accounts if account.kind == kind]

            if not accounts:
                console.print("[yellow]등록된 계정이 없습니다.[/yellow]")
                return

            table = Table(title="등록된 계정 목록")
            table.add_column("ID", style="cyan")
            table.add_column("플랫폼", style="magenta")
            table.add_column("UID", style="green")
            table.add_column("이름", style="blue")
            table.add_column("생성일", style="dim")

            for account in accounts:
                table.add_row(
                    str(account.id),
                    account.kind,
                    account.uid,
                    account.name or "-",
                    account.created_at.strftime("%Y-%m-%d %H:%M") if account.created_at else "-",
                )

            console.print(table)
        except Exception as e:
            console.print(f"[red]오류: {str(e)}[/red]")
            raise typer.Exit(1)
        finally:
            await database.close()

    asyncio.run(_list())


@app.command("show")
def show_account(
    account_id: Optional[str] = typer.Option(None, help="계정 ID"),
    uid: Optional[str] = typer.Option(None, help="플랫폼 사용자 ID"),
):
    """특정 계정의 상세 정보를 조회합니다."""

    if not account_id and not uid:
        console.print("[red]오류: account_id 또는 uid 중 하나는 필수입니다.[/red]")
        raise typer.Exit(1)

    async def _show():
        factory = AdapterFactory(get_config())
        database = factory.get_database()
        try:
            await database.initialize()
            usecase = factory.create_account_management_usecase()

            if account_id:
                account = await usecase.get_account(UUID(account_id))
            else:
                account = await usecase.find_account(uid=uid)

            if account is None:
                console.print("[yellow]계정을 찾을 수 없습니다.[/yellow]")
                raise typer.Exit(1)

            console.print("[bold]계정 정보[/bold]")
            console.print(f"ID: {account.id}")
            console.print(f"플랫폼: {account.kind}")
            console.print(f"UID: {account.uid}")
            console.print(f"이름: {account.name or '-'}")
            console.print(f"토큰 시크릿: {'있음' if account.token_secret else '없음'}")
            console.print(f"생성일: {account.created_at}")
        except typer.Exit:
            raise
        except Exception as e:
            console.print(f"[red]오류: {str(e)}[/red]")
            raise typer.Exit(1)
        finally:
            await database.close()

    asyncio.run(_show())


@app.command("remove")
def remove_account(
    account_id: str = typer.Argument(..., help="계정 ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="확인 없이 삭제"),
):
    """계정과 연결된 연동, 대화, 메시지를 삭제합니다."""

    if not yes and not typer.confirm("계정과 관련된 모든 데이터가 삭제됩니다. 계속하시겠습니까?"):
        console.print("[yellow]취소되었습니다.[/yellow]")
        return

    async def _remove():
        factory = AdapterFactory(get_config())
        database = factory.get_database()
        try:
            await database.initialize()
            usecase = factory.create_account_management_usecase()

            if not await usecase.remove_account(UUID(account_id)):
                console.print("[yellow]삭제할 계정이 없습니다.[/yellow]")
                raise typer.Exit(1)

            console.print("[green]✓ 계정이 삭제되었습니다.[/green]")
        except typer.Exit:
            raise
        except Exception as e:
            console.print(f"[red]오류: {str(e)}[/red]")
            raise typer.Exit(1)
        finally:
            await database.close()

    asyncio.run(_remove())
