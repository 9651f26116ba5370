#!/usr/bin/env python3
"""
CLI for submitting, processing and inspecting claims.

Usage:
    python -m src.claims.cli submit --policy STD-1001 --claimant john@example.com --amount 8850 --document invoice:docs/invoice.txt
    python -m src.claims.cli process <claim_id>
    python -m src.claims.cli show <claim_id>
    python -m src.claims.cli list --status under_review
    python -m src.claims.cli stats
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..utils.config import get_settings
from .errors import ClaimsError
from .pipeline import PipelineResult
from .schema import Claim, ClaimStatus, ClaimSubmission, DocumentUpload
from .service import ClaimsService, create_claims_service

console = Console()

_STATUS_COLORS = {
    ClaimStatus.APPROVED: "green",
    ClaimStatus.REJECTED: "red",
    ClaimStatus.UNDER_REVIEW: "yellow",
    ClaimStatus.PROCESSING_FAILED: "red",
    ClaimStatus.PROCESSING: "cyan",
}


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    for name in ("httpx", "httpcore", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)


def format_datetime(dt: Optional[datetime]) -> str:
    """Format a datetime for display."""
    return dt.strftime("%Y-%m-%d %H:%M") if dt else ""


def format_status(status: ClaimStatus) -> str:
    color = _STATUS_COLORS.get(status)
    return f"[{color}]{status.value}[/{color}]" if color else status.value


def format_score(score: Optional[float]) -> str:
    if score is None:
        return "-"
    color = "green" if score < 0.3 else "yellow" if score < 0.7 else "red"
    return f"[{color}]{score:.2f}[/{color}]"


def parse_document(value: str) -> DocumentUpload:
    """Parse TYPE:PATH (or just PATH) into a document upload."""
    doc_type, sep, path = value.partition(":")
    if not sep:
        return DocumentUpload(file_path=value)
    return DocumentUpload(document_type=doc_type, file_path=path)


def parse_amount(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"Invalid amount: {value}")


# =============================================================================
# Rendering
# =============================================================================


def make_claims_table(claims: List[Claim], title: str = "Claims") -> Table:
    """Create summary table with key claim info."""
    table = Table(title=title, box=box.ROUNDED, header_style="bold cyan")

    table.add_column("Claim ID", style="bold")
    table.add_column("Submitted", style="dim")
    table.add_column("Status")
    table.add_column("Policy")
    table.add_column("Claimant")
    table.add_column("Amount", justify="right")
    table.add_column("Fraud", justify="right")
    table.add_column("Approval", justify="right")

    for claim in claims:
        table.add_row(
            claim.claim_id,
            format_datetime(claim.submitted_at),
            format_status(claim.status),
            claim.policy_id,
            claim.claimant_id,
            f"${claim.total_amount:,.2f}",
            format_score(claim.fraud_score),
            format_score(claim.approval_score),
        )

    return table


def show_claim_detail(service: ClaimsService, claim_id: str):
    """Show detailed view of a single claim."""
    claim = service.get_claim(claim_id)

    console.print()
    console.print(Panel(f"[bold cyan]Claim: {claim.claim_id}[/bold cyan]", expand=False))

    console.print("\n[bold]Basic Info[/bold]")
    console.print(f"  Status: [bold]{format_status(claim.status)}[/bold]")
    console.print(f"  Policy: {claim.policy_id or '[dim]Not provided[/dim]'}")
    console.print(f"  Claimant: {claim.claimant_id or '[dim]Not provided[/dim]'}")
    console.print(f"  Amount: [bold]${claim.total_amount:,.2f}[/bold]")
    console.print(f"  Submitted: {format_datetime(claim.submitted_at)}")
    console.print(f"  Updated: {format_datetime(claim.last_updated_at)}")
    console.print(f"  Fraud Score: {format_score(claim.fraud_score)}")
    console.print(f"  Approval Score: {format_score(claim.approval_score)}")
    if claim.assigned_specialist_id:
        console.print(f"  Specialist: {claim.assigned_specialist_id}")

    console.print("\n[bold]Documents[/bold]")
    if not claim.documents:
        console.print("  [dim]None attached[/dim]")
    for doc in claim.documents:
        confidence = f" ({doc.ocr_confidence:.2f})" if doc.ocr_confidence is not None else ""
        console.print(f"  - {doc.document_type.value}: {doc.storage_uri} [{doc.ocr_status.value}{confidence}]")

    decisions = service.list_decisions(claim_id)
    console.print("\n[bold]Decisions[/bold]")
    if not decisions:
        console.print("  [dim]No decisions yet[/dim]")
    for decision in decisions:
        console.print(
            f"  - {format_datetime(decision.decided_at)} [bold]{decision.status.value}[/bold] "
            f"by {decision.decided_by}: {decision.reason or ''}"
        )


def show_pipeline_result(result: PipelineResult):
    """Print a processing result as a panel plus a document table."""
    if result.success:
        decision = result.final_decision.value if result.final_decision else "-"
        body = (
            f"[bold]Decision:[/bold] {decision}\n"
            f"[bold]Status:[/bold] {result.final_status.value if result.final_status else '-'}\n"
            f"[bold]Reason:[/bold] {result.decision_reason or '-'}"
        )
        if result.risk_scoring:
            body += (
                f"\n[bold]Fraud:[/bold] {format_score(result.risk_scoring.fraud_score)} "
                f"({result.risk_scoring.fraud_risk_level})"
                f"  [bold]Approval:[/bold] {format_score(result.risk_scoring.approval_score)}"
            )
        console.print(Panel(body, title=f"Claim {result.claim_id}", border_style="green"))
    else:
        console.print(Panel(
            f"[red]{result.error_message}[/red]",
            title=f"Processing failed: {result.claim_id}",
            border_style="red",
        ))

    if result.document_results:
        table = Table(title="Documents", box=box.SIMPLE, header_style="bold cyan")
        table.add_column("Document")
        table.add_column("OK")
        table.add_column("Confidence", justify="right")
        table.add_column("Classified As")
        table.add_column("Error")
        for doc in result.document_results:
            table.add_row(
                doc.document_id,
                "yes" if doc.success else "no",
                f"{doc.confidence:.2f}" if doc.success else "-",
                doc.classified_type or "-",
                doc.error_message or "",
            )
        console.print(table)

    console.print(f"[dim]Processed in {result.processing_time_ms:.0f}ms[/dim]")


# =============================================================================
# Commands
# =============================================================================


async def cmd_submit(service: ClaimsService, args: argparse.Namespace) -> int:
    submission = ClaimSubmission(
        policy_id=args.policy,
        claimant_id=args.claimant,
        total_amount=args.amount,
        documents=[parse_document(d) for d in args.document],
    )
    if args.process:
        result = await service.submit_and_process(submission)
        show_pipeline_result(result)
        return 0 if result.success else 1

    receipt = await service.submit_claim(submission)
    console.print(f"[green]{receipt.message}[/green]: [bold]{receipt.claim_id}[/bold]")
    return 0


async def cmd_process(service: ClaimsService, args: argparse.Namespace) -> int:
    result = await service.process_claim(args.claim_id)
    show_pipeline_result(result)
    return 0 if result.success else 1


async def cmd_show(service: ClaimsService, args: argparse.Namespace) -> int:
    show_claim_detail(service, args.claim_id)
    return 0


async def cmd_list(service: ClaimsService, args: argparse.Namespace) -> int:
    status = ClaimStatus(args.status) if args.status else None
    claims = service.list_claims(status=status, limit=args.limit)
    if not claims:
        console.print("[yellow]No claims found.[/yellow]")
        return 0
    console.print(make_claims_table(claims, title=f"Claims ({len(claims)})"))
    return 0


async def cmd_stats(service: ClaimsService, args: argparse.Namespace) -> int:
    counts = service.stats()
    table = Table(title="Status Breakdown", box=box.ROUNDED, header_style="bold cyan")
    table.add_column("Status")
    table.add_column("Claims", justify="right")
    for status in ClaimStatus:
        table.add_row(format_status(status), str(counts[status.value]))
    table.add_row("[bold]total[/bold]", f"[bold]{counts['total']}[/bold]")
    console.print(table)
    return 0


COMMANDS = {
    "submit": cmd_submit,
    "process": cmd_process,
    "show": cmd_show,
    "list": cmd_list,
    "stats": cmd_stats,
}


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Submit, process and inspect insurance claims',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Submit and process in one go
  python -m src.claims.cli submit --policy STD-1001 --claimant john@example.com \\
      --amount 8850 --document invoice:docs/invoice.txt --process

  # Process an existing claim
  python -m src.claims.cli process 3f2a...

  # Claims waiting for a specialist
  python -m src.claims.cli list --status under_review
        """
    )
    parser.add_argument('--db', type=str, help='SQLite database path (default from settings)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')

    sub = parser.add_subparsers(dest='command', required=True)

    submit = sub.add_parser('submit', help='Submit a new claim')
    submit.add_argument('--policy', required=True, help='Policy ID')
    submit.add_argument('--claimant', required=True, help='Claimant ID or email')
    submit.add_argument('--amount', required=True, type=parse_amount, help='Total claimed amount')
    submit.add_argument(
        '--document',
        action='append',
        default=[],
        help='Supporting document as TYPE:PATH or PATH (repeatable)'
    )
    submit.add_argument('--process', action='store_true', help='Process immediately after submitting')

    process = sub.add_parser('process', help='Run the processing pipeline for a claim')
    process.add_argument('claim_id')

    show = sub.add_parser('show', help='Show a claim with documents and decisions')
    show.add_argument('claim_id')

    list_cmd = sub.add_parser('list', help='List claims')
    list_cmd.add_argument('--status', choices=[s.value for s in ClaimStatus], help='Filter by status')
    list_cmd.add_argument('--limit', type=int, default=50, help='Maximum claims to show')

    sub.add_parser('stats', help='Claim counts by status')

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    args = parse_args(argv)
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    settings = get_settings()
    if args.db:
        settings = settings.model_copy(update={"database_path": args.db})

    try:
        service = create_claims_service(settings)
        return asyncio.run(COMMANDS[args.command](service, args))
    except ClaimsError as e:
        console.print(f"[red]{e}[/red]")
        return 1
    except ValueError as e:
        console.print(f"[red]Invalid input: {e}[/red]")
        return 2
    except Exception as e:
        logger.error(f"Command {args.command} failed: {e}", exc_info=True)
        return 1


if __name__ == '__main__':
    sys.exit(main())
