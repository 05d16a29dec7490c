"""
대화 동기화 시스템

메인 진입점 파일입니다.
"""

import typer
from rich.console import Console

from adapters.cli.account_commands import app as account_app
from adapters.cli.db_commands import app as db_app
from adapters.cli.integration_commands import app as integration_app
from config.adapters import get_config

# 메인 CLI 앱
app = typer.Typer(
    name="convsync",
    help="페이스북/Gmail 대화 동기화 시스템",
    no_args_is_help=True,
)

# 서브 명령어 추가
app.add_typer(account_app, name="account")
app.add_typer(integration_app, name="integration")
app.add_typer(db_app, name="db")

console = Console()


@app.command("serve")
def serve():
    """웹훅 수신 및 푸시 구독 서버를 실행합니다."""
    from web_server import run_server

    run_server(get_config())


@app.command("version")
def show_version():
    """버전 정보를 표시합니다."""
    console.print("[bold]페이스북/Gmail 대화 동기화 시스템[/bold]")
    console.print("버전: 1.0.0")


@app.command("config")
def show_config():
    """현재 설정을 표시합니다."""
    try:
        config = get_config()
        pubsub_config = config.get_pubsub_config()
        thread_limits = config.get_thread_limits()
        webhook_config = config.get_webhook_config()
        web_config = config.get_web_config()

        console.print("[bold]현재 설정[/bold]")
        console.print(f"환경: {config.get_environment()}")
        console.print(f"디버그 모드: {config.is_debug()}")
        console.print(f"데이터베이스 URL: {config.get_database_url()}")
        console.print(f"페이스북 앱 ID: {config.get_facebook_app_id()}")
        console.print(f"Graph API 버전: {config.get_facebook_graph_version()}")
        console.print(f"도메인: {config.get_domain()}")
        console.print(f"Gmail 푸시: {config.is_gmail_push_enabled()}")
        console.print(f"Pub/Sub 토픽: {pubsub_config['topic'] or '-'}")
        console.print(f"Pub/Sub 구독: {pubsub_config['subscription'] or '-'}")
        console.print(
            f"스레드 제한: depth={thread_limits['max_depth']}, nodes={thread_limits['max_nodes']}, "
            f"concurrency={thread_limits['concurrency']}"
        )
        console.print(f"웹훅 작업자: {webhook_config['workers']}, 재시도: {webhook_config['max_attempts']}")
        console.print(f"웹 서버: {web_config['host']}:{web_config['port']}")
        console.print(f"로그 레벨: {config.get_log_level()}")

    except Exception as e:
        console.print(f"[red]오류: {str(e)}[/red]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
