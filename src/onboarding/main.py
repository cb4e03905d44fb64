"""
Onboarding Wizard - CLI Entry Point.

Usage:
    onboarding run               Walk through the wizard in the terminal
    onboarding lookup URL        Fetch a website's title and description
    onboarding serve             Start the HTTP API
    onboarding health            Check configuration
    onboarding --help            Show help
"""

import asyncio
import logging

import typer
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.panel import Panel
from rich.spinner import Spinner
from rich.table import Table

app = typer.Typer(
    name="onboarding",
    help="Onboarding wizard - registration, organization setup and chatbot integration.",
    add_completion=False,
)
console = Console()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


# =============================================================================
# Interactive wizard
# =============================================================================

async def _ask(prompt: str, default: str = "", password: bool = False) -> str:
    suffix = f" [dim]({default})[/dim]" if default else ""
    answer = await asyncio.to_thread(console.input, f"{prompt}{suffix}: ", password=password)
    return answer.strip() or default


async def _wait_until(predicate, text: str, poll: float = 0.1) -> None:
    with Live(Spinner("dots", text=text), console=console, transient=True):
        while not predicate():
            await asyncio.sleep(poll)


def _print_progress(orchestrator) -> None:
    marks = {"completed": "[green]done[/green]", "in_progress": "[yellow]now[/yellow]", "pending": "[dim]next[/dim]"}
    line = "  ".join(f"{marks[step['status']]} {step['title']}" for step in orchestrator.progress())
    console.print(f"\n{line}\n")


async def _registration(orchestrator, issuer, show_codes: bool) -> None:
    from .state import WorkflowStep
    from .verification import VerificationOutcome

    step = orchestrator.registration
    while not step.code_sent:
        for name, password in (("name", False), ("email", False), ("password", True)):
            value = await _ask(name.capitalize(), default="" if password else step.fields[name], password=password)
            step.set_field(name, value)
        if not step.send_code():
            for field, message in step.errors.items():
                console.print(f"[red]{field}: {message}[/red]")

    email = step.fields["email"].strip()
    console.print(f"[green]Verification code sent to {email}[/green]")
    if show_codes:
        console.print(f"[dim]Development code: {issuer.last_codes.get(email)}[/dim]")

    while not step.verified:
        verification = step.verification
        hint = "r to resend" if verification.can_resend else f"resend in {verification.expires_in_seconds}s"
        code = await _ask(f"Code ({hint})")
        if code.lower() == "r":
            if step.resend_code():
                console.print("[green]A new code has been sent[/green]")
                if show_codes:
                    console.print(f"[dim]Development code: {issuer.last_codes.get(email)}[/dim]")
            else:
                console.print(f"[yellow]Resend available in {verification.expires_in_seconds}s[/yellow]")
            continue
        outcome = step.submit_code(code)
        if outcome == VerificationOutcome.MISMATCH:
            console.print("[red]Invalid verification code[/red]")
        elif outcome == VerificationOutcome.EMPTY_CODE:
            console.print("[red]Please enter the verification code[/red]")

    orchestrator.advance(WorkflowStep.USER_REGISTRATION)


async def _organization(orchestrator) -> None:
    from .state import WorkflowStep

    step = orchestrator.organization
    settings = orchestrator.settings
    while True:
        url = await _ask("Website URL", default=step.fields["website_url"].value)
        step.set_field("website_url", url)
        if step.lookup.is_waiting:
            await asyncio.sleep(settings.lookup_debounce_seconds + 0.05)
            with Live(Spinner("dots", text="Fetching website details..."), console=console, transient=True):
                await orchestrator.wait_idle()
        if step.meta_error:
            console.print(f"[yellow]{step.meta_error}[/yellow]")

        for name, label in (("company_name", "Company name"), ("description", "Description")):
            value = await _ask(label, default=step.fields[name].value)
            if value != step.fields[name].value:
                step.set_field(name, value)

        if step.is_setup_complete:
            break
        for field, message in step.errors.items():
            console.print(f"[red]{field}: {message}[/red]")

    step.start_training()
    console.print(f"[green]Scraping {len(step.pages)} pages of {step.fields['website_url'].value}[/green]")
    wait = await _ask("Wait for scraping to finish? (y/N)", default="n")
    if wait.lower().startswith("y"):
        await _wait_until(lambda: step.all_pages_scraped, "Scraping website...")
        table = Table(title="Scraped pages")
        table.add_column("Page")
        table.add_column("Status")
        table.add_column("Chunks", justify="right")
        for item in step.tracker.job.items:
            table.add_row(item.label, item.status.value, str(len(item.result or [])))
        console.print(table)
    elif step.continues_in_background:
        console.print("[dim]Scraping continues in the background.[/dim]")

    orchestrator.advance(WorkflowStep.ORGANIZATION_SETUP)


async def _integration(orchestrator) -> None:
    from .state import WorkflowStep

    step = orchestrator.integration
    console.print(Panel(step.embed_snippet, title="Add this to your website", border_style="blue"))
    while not step.is_integrated:
        await _ask("Press Enter to test the integration")
        step.test_integration()
        await _wait_until(lambda: not step.is_loading, "Checking integration...")
        if not step.is_integrated:
            console.print("[yellow]Chatbot not detected yet[/yellow]")
    console.print("[green]Integration detected[/green]")
    orchestrator.advance(WorkflowStep.CHATBOT_INTEGRATION)


async def _run_wizard(show_codes: bool) -> None:
    from .config import get_settings
    from .orchestrator import WorkflowOrchestrator
    from .verification import RandomCodeIssuer

    settings = get_settings()
    issuer = RandomCodeIssuer(length=settings.verification_code_length)
    orchestrator = WorkflowOrchestrator(user_id="cli", settings=settings, issuer=issuer)
    try:
        _print_progress(orchestrator)
        await _registration(orchestrator, issuer, show_codes)
        _print_progress(orchestrator)
        await _organization(orchestrator)
        _print_progress(orchestrator)
        await _integration(orchestrator)
        _print_progress(orchestrator)

        console.print(Panel.fit(orchestrator.success_message(), title="Success", border_style="green"))
        if orchestrator.background_work():
            await _wait_until(lambda: not orchestrator.background_work(), "Finishing website scraping...")
    finally:
        orchestrator.close()


@app.command()
def run(
    show_codes: bool | None = typer.Option(
        None, "--show-codes/--hide-codes", help="Print verification codes (defaults to on in development)"
    ),
) -> None:
    """Walk through the onboarding wizard interactively."""
    from .config import get_settings

    settings = get_settings()
    configure_logging(settings.log_level)
    if show_codes is None:
        show_codes = settings.is_development

    console.print(
        Panel.fit(
            "[bold green]Onboarding Wizard[/bold green]\n"
            "Create your account, set up your organization and add the chatbot.\n\n"
            "[dim]Press Ctrl+C to quit.[/dim]",
            title="Welcome",
            border_style="green",
        )
    )
    try:
        asyncio.run(_run_wizard(show_codes))
    except KeyboardInterrupt:
        console.print("\n\n[dim]Onboarding interrupted.[/dim]")
        raise typer.Exit(1)


# =============================================================================
# Utilities
# =============================================================================

@app.command()
def lookup(
    url: str = typer.Argument(..., help="Website to read metadata from"),
) -> None:
    """Fetch a website's title and description (useful for testing)."""
    import httpx

    from .config import settings
    from .lookup import MANUAL_ENTRY_MESSAGE, HttpMetadataFetcher, company_name_from_title, validate_url

    configure_logging(settings.log_level)

    error = validate_url(url)
    if error:
        console.print(f"[red]{error}[/red]")
        raise typer.Exit(1)

    fetcher = HttpMetadataFetcher(timeout=settings.lookup_timeout_seconds)
    try:
        with Live(Spinner("dots", text="Fetching..."), console=console, transient=True):
            metadata = asyncio.run(fetcher.fetch(url.strip()))
    except (httpx.HTTPError, OSError) as e:
        console.print(f"[red]{MANUAL_ENTRY_MESSAGE}[/red]\n[dim]{e}[/dim]")
        raise typer.Exit(1)

    if not metadata.is_usable:
        console.print(f"[yellow]{MANUAL_ENTRY_MESSAGE}[/yellow]")
        raise typer.Exit(1)

    console.print(f"[bold]Title:[/bold] {metadata.title or '-'}")
    console.print(f"[bold]Company name:[/bold] {company_name_from_title(metadata.title) or '-'}")
    console.print(f"[bold]Description:[/bold] {metadata.description or '-'}")


@app.command()
def serve(
    port: int = typer.Option(8000, "--port", "-p", help="Port to run on"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload for development"),
) -> None:
    """Start the onboarding HTTP API."""
    import uvicorn

    from .config import get_settings

    configure_logging(get_settings().log_level)
    console.print("\n[bold green]Onboarding API[/bold green]")
    console.print(f"Starting server on http://localhost:{port}")
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")

    uvicorn.run(
        "onboarding.api:app",
        host="0.0.0.0",
        port=port,
        reload=reload,
    )


@app.command()
def health() -> None:
    """Check configuration."""
    from .config import get_settings

    console.print("\n[bold]Onboarding Health Check[/bold]\n")

    try:
        settings = get_settings()
        console.print("[green]OK[/green] Configuration loaded")
        console.print(f"   Environment: {settings.onboarding_env}")
        console.print(f"   Log level: {settings.log_level}")
        console.print(f"   Verification window: {settings.verification_window_seconds}s")
        console.print(f"   Lookup debounce: {settings.lookup_debounce_seconds}s")
        console.print(f"   Pages to scrape: {', '.join(settings.scrape_pages)}")

        if settings.chatbot_script_url.startswith("https://"):
            console.print("[green]OK[/green] Chatbot script URL configured")
        else:
            console.print("[yellow]WARN[/yellow] Chatbot script URL is not https")

        console.print("\n[green]All checks passed![/green]")

    except Exception as e:
        console.print(f"\n[red]FAIL Configuration error: {e}[/red]")
        console.print("[dim]Check your .env file and ONBOARDING_* variables.[/dim]")
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"Onboarding Wizard version {__version__}")


if __name__ == "__main__":
    app()
