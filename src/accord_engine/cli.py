"""Typer CLI for Accord-Engine."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="accord", help="Accord-Engine: Contract lifecycle, signing and audit")
console = Console()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Start the Accord-Engine API server."""
    import uvicorn
    from accord_engine.app import create_app

    console.print(f"[bold green]Starting Accord-Engine on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


async def _with_db(work):
    from accord_engine.deps import get_db

    db = get_db()
    await db.init()
    await db.create_all()
    try:
        return await work()
    finally:
        await db.close()


@app.command()
def sweep():
    """Run one expiry sweep and send due reminders against the configured database."""
    from accord_engine.deps import get_contract_engine

    async def work():
        engine = get_contract_engine()
        expired = await engine.check_expired_contracts()
        reminded = await engine.send_due_reminders()
        return expired, reminded

    expired, reminded = asyncio.run(_with_db(work))
    for contract in expired:
        console.print(f"[yellow]expired[/yellow] {contract.id}  {contract.title}")
    console.print(
        f"[bold]{len(expired)}[/bold] contract(s) expired, "
        f"[bold]{reminded}[/bold] reminded"
    )


@app.command()
def transitions():
    """Print the contract status transition table."""
    from accord_engine.contracts.status import TERMINAL_STATUSES, TRANSITIONS

    table = Table(title="Contract status transitions")
    table.add_column("From", style="bold")
    table.add_column("Allowed targets")
    for status, targets in TRANSITIONS.items():
        allowed = ", ".join(sorted(t.value for t in targets))
        if status in TERMINAL_STATUSES:
            allowed = "[dim](terminal)[/dim]"
        table.add_row(status.value, allowed)
    console.print(table)


@app.command("verify-audit")
def verify_audit(
    contract_id: str = typer.Argument(..., help="Contract whose audit chain to verify"),
):
    """Verify the hash chain and signatures of a contract's audit trail."""
    from accord_engine.deps import get_audit_log

    result = asyncio.run(_with_db(lambda: get_audit_log().verify_chain(contract_id)))
    if result.valid:
        console.print(
            f"[bold green]VALID[/bold green]: {result.entries_checked} entries checked"
        )
    else:
        console.print(
            f"[bold red]BROKEN[/bold red] at entry {result.break_at} "
            f"after {result.entries_checked} valid entries"
        )
        raise typer.Exit(1)


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check Accord-Engine server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green]: v{data['version']}")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
