#!/usr/bin/env python3
"""
MailCleaner command line client
Sync, preview and clean, and bulk actions against a MailCleaner server
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from mailcleaner.bulk import ACTIONS_BY_VIEW, BulkOperationCoordinator
from mailcleaner.config import ClientConfig, configure_logging
from mailcleaner.confirm import PendingConfirmation
from mailcleaner.errors import MailCleanerError, ValidationError, friendly_message
from mailcleaner.listing import VIEWS, EmailListView
from mailcleaner.models import (
    AUTOMATION_FREQUENCIES,
    RULE_ACTIONS,
    RULE_TYPES,
    PendingUndo,
    PreviewItem,
    Rule,
)
from mailcleaner.service import InboxService


logger = logging.getLogger(__name__)

console = Console()

BULK_VERBS = sorted({verb for verbs in ACTIONS_BY_VIEW.values() for verb in verbs})


# === Rendering ===

def print_toast(toast: Optional[PendingUndo]) -> None:
    if toast is not None:
        console.print(f"[cyan]{toast.message}[/cyan]")


def print_emails(view: EmailListView) -> None:
    table = Table(
        title=f"{view.view.capitalize()} - page {view.page}/{view.total_pages} ({view.total:,} emails)",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("ID", style="dim")
    table.add_column("From", style="cyan", max_width=35)
    table.add_column("Subject", max_width=50)
    table.add_column("Date", style="green")

    for email in view.emails:
        subject = email.subject if email.is_read else f"[bold]{email.subject}[/bold]"
        table.add_row(email.id, email.sender, subject, email.date)

    console.print(table)


def print_preview(items: List[PreviewItem], excluded=()) -> None:
    table = Table(title=f"Preview: Emails to be Processed ({len(items)})", show_header=True, header_style="bold cyan")
    table.add_column("", width=3)
    table.add_column("ID", style="dim")
    table.add_column("From", style="cyan", max_width=35)
    table.add_column("Subject", max_width=50)
    table.add_column("Date", style="green")
    table.add_column("Action", style="bold")

    for item in items:
        mark = "[dim]-[/dim]" if item.id in excluded else "[green]x[/green]"
        action = f"[red]{item.action}[/red]" if item.action == 'DELETE' else item.action
        table.add_row(mark, item.id, item.sender, item.subject, item.date, action)

    console.print(table)


def print_rules(rules: List[Rule]) -> None:
    table = Table(title="Rules", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Value")
    table.add_column("Action", style="bold")
    table.add_column("Older than", justify="right")

    for rule in rules:
        table.add_row(rule.id or '', rule.type, rule.value, rule.action, f"{rule.age_days}d" if rule.age_days else "-")

    console.print(table)


async def resolve(service: InboxService, outcome, assume_yes: bool):
    """Answer a parked confirmation from the terminal"""
    if not isinstance(outcome, PendingConfirmation):
        return outcome
    if assume_yes or Confirm.ask(f"[yellow]{outcome.prompt}[/yellow]"):
        return await service.gate.confirm()
    service.gate.cancel()
    console.print("[yellow]Cancelled[/yellow]")
    return None


# === Commands ===

async def cmd_status(service: InboxService, args) -> int:
    if await service.check_session():
        console.print(f"[green]Signed in to {service.config.api_base}[/green]")
        return 0
    console.print(f"[yellow]Not signed in. Open {service.config.api_base}/auth/google/login[/yellow]")
    return 1


async def cmd_sync(service: InboxService, args) -> int:
    with console.status("Starting sync...") as status:
        service.sync.on_progress = lambda text: status.update(text or "Finishing...")
        if args.full:
            result = await service.sync.start_full()
        else:
            result = await service.sync.start_incremental()
    return 0 if result.ok else 1


async def cmd_watch(service: InboxService, args) -> int:
    if args.interval is not None:
        applied = service.set_quick_sync_interval(int(args.interval * 1000))
    else:
        service.start_background_sync()
        applied = service.quick_sync_ms

    if not applied:
        console.print("[yellow]Background quick sync is disabled (interval 0)[/yellow]")
        return 1

    console.print(f"[bold blue]Quick sync every {applied / 1000:g}s[/bold blue] - press Ctrl+C to stop")
    await service.inbox.refresh()
    while not service.session_expired:
        await asyncio.sleep(1)
    return 1


async def cmd_list(service: InboxService, args) -> int:
    view = service.views[args.view]
    view.page_size = args.page_size
    view.filter = args.filter or ''
    await view.set_page(args.page)
    if view.error:
        console.print(f"[red]{view.error}[/red]")
        return 1
    print_emails(view)
    return 0


async def cmd_preview(service: InboxService, args) -> int:
    items = await service.cleaning.preview()
    if items is None:
        console.print(f"[red]{service.cleaning.error}[/red]")
        return 1
    console.print(f"[cyan]{service.cleaning.message}[/cyan]")
    if items:
        print_preview(items)
    return 0


async def cmd_clean(service: InboxService, args) -> int:
    workflow = service.cleaning
    items = await workflow.preview()
    if items is None:
        console.print(f"[red]{workflow.error}[/red]")
        return 1

    for email_id in args.exclude or []:
        if not workflow.toggle_exclude(email_id):
            console.print(f"[yellow]{email_id} is not in the preview, ignoring[/yellow]")

    print_preview(items, workflow.excluded)
    count = len(workflow.effective_ids)
    if count == 0:
        console.print("[yellow]Nothing to clean[/yellow]")
        return 0

    if args.permanent and workflow.has_delete_actions:
        console.print("[bold red]DELETE actions will permanently delete emails (no trash)[/bold red]")

    if not args.yes and not Confirm.ask(f"Run clean on {count} emails?"):
        console.print("[yellow]Cancelled[/yellow]")
        return 0

    result = await workflow.apply(permanent_delete=args.permanent)
    if result is None:
        console.print(f"[red]{workflow.error}[/red]")
        return 1
    console.print(f"[bold green]{result.message}[/bold green]")
    return 0


async def cmd_bulk(service: InboxService, args) -> int:
    view = service.views[args.view]
    coordinator: BulkOperationCoordinator = service.bulk[args.view]
    await view.set_page(args.page)

    for email_id in args.ids:
        if not coordinator.toggle(email_id):
            console.print(f"[yellow]{email_id} is not on page {view.page} of {args.view}, skipping[/yellow]")

    outcome = await resolve(service, await coordinator.run(args.verb), args.yes)
    if outcome is None:
        return 0
    return 1 if outcome.error else 0


async def cmd_rules(service: InboxService, args) -> int:
    book = service.rules
    if args.rules_command == 'list':
        print_rules(await book.load())
    elif args.rules_command == 'add':
        rule = await book.create(Rule(type=args.type, value=args.value, action=args.action, age_days=args.age_days))
        console.print(f"[green]Rule created[/green] {rule.id or ''}")
    elif args.rules_command == 'update':
        await book.update(args.id, Rule(type=args.type, value=args.value, action=args.action, age_days=args.age_days))
        console.print(f"[green]Rule {args.id} updated[/green]")
    elif args.rules_command == 'delete':
        await book.delete(args.id)
        console.print(f"[green]Rule {args.id} deleted[/green]")
    return 0


async def cmd_block(service: InboxService, args) -> int:
    ok = await resolve(service, service.block_sender(args.sender), args.yes)
    return 1 if ok is False else 0


async def cmd_stats(service: InboxService, args) -> int:
    stats = await service.fetch_stats()
    table = Table(title="Mailbox", show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="cyan", width=25)
    table.add_column("Count", justify="right", style="green", width=10)
    for key, value in stats.items():
        if isinstance(value, (int, float)):
            table.add_row(key.replace('_', ' ').capitalize(), f"{value:,}")
    console.print(table)

    if args.top:
        senders = await service.fetch_top_senders(limit=args.top)
        table = Table(title=f"Top {len(senders)} Senders", show_header=True, header_style="bold cyan")
        table.add_column("Sender", style="cyan", max_width=50)
        table.add_column("Emails", justify="right", style="green")
        for sender in senders:
            table.add_row(sender.sender, f"{sender.count:,}")
        console.print(table)
    return 0


async def cmd_senders(service: InboxService, args) -> int:
    senders = await service.fetch_subscribed_senders()
    if not senders:
        console.print("[yellow]No newsletter senders found[/yellow]")
        return 0

    table = Table(title=f"Newsletters ({len(senders)})", show_header=True, header_style="bold cyan")
    table.add_column("Sender", style="cyan", max_width=40)
    table.add_column("Emails", justify="right", style="green")
    table.add_column("Latest subject", max_width=50)
    for sender in senders:
        table.add_row(sender.sender, str(sender.count), sender.sample_subject)
    console.print(table)
    return 0


async def cmd_unsubscribe(service: InboxService, args) -> int:
    senders = {sender.sender: sender for sender in await service.fetch_subscribed_senders()}
    sender = senders.get(args.sender)
    if sender is None or not sender.unsubscribe_header:
        console.print(f"[red]{args.sender} has no unsubscribe link[/red]")
        return 1

    method = await resolve(service, service.unsubscribe(sender.sender, sender.unsubscribe_header), args.yes)
    return 0 if method else 1


async def cmd_history(service: InboxService, args) -> int:
    history = await service.fetch_clean_history()
    if not history:
        console.print("[yellow]No clean runs yet[/yellow]")
        return 0

    table = Table(title="Clean History", show_header=True, header_style="bold cyan")
    table.add_column("When", style="green")
    table.add_column("Emails", justify="right")
    table.add_column("IDs", style="dim", max_width=60)
    for entry in history:
        table.add_row(entry.timestamp, str(len(entry.affected_emails)), ', '.join(entry.affected_emails))
    console.print(table)
    return 0


async def cmd_show(service: InboxService, args) -> int:
    email = await service.fetch_email(args.id)
    console.print(f"[bold]{email.get('subject', '')}[/bold]")
    console.print(f"[cyan]From:[/cyan] {email.get('sender') or email.get('from', '')}")
    console.print(f"[cyan]Date:[/cyan] {email.get('date', '')}")
    console.print()
    console.print(email.get('body') or email.get('snippet') or '')
    return 0


async def cmd_settings(service: InboxService, args) -> int:
    settings = await service.fetch_settings()
    changed = args.enable or args.disable or args.frequency or args.time
    if changed:
        if args.enable or args.disable:
            settings.automation_enabled = bool(args.enable)
        settings.automation_frequency = args.frequency or settings.automation_frequency
        settings.automation_time = args.time or settings.automation_time
        settings = await service.save_settings(settings)
        console.print("[green]Settings saved successfully![/green]")

    state = "[green]on[/green]" if settings.automation_enabled else "[dim]off[/dim]"
    console.print(f"Automatic cleaning: {state} ({settings.automation_frequency} at {settings.automation_time})")
    return 0


async def cmd_logout(service: InboxService, args) -> int:
    if await service.logout():
        console.print("[green]Signed out[/green]")
        return 0
    console.print("[yellow]Could not reach the server to sign out[/yellow]")
    return 1


COMMANDS = {
    'status': cmd_status,
    'sync': cmd_sync,
    'watch': cmd_watch,
    'list': cmd_list,
    'preview': cmd_preview,
    'clean': cmd_clean,
    'bulk': cmd_bulk,
    'rules': cmd_rules,
    'block': cmd_block,
    'stats': cmd_stats,
    'senders': cmd_senders,
    'unsubscribe': cmd_unsubscribe,
    'history': cmd_history,
    'show': cmd_show,
    'settings': cmd_settings,
    'logout': cmd_logout,
}


# === Entry Point ===

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='MailCleaner client - sync, preview and clean your inbox')
    parser.add_argument('--env-file', type=str, help='Path to a .env file (default: ./.env)')
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('status', help='Check that the session is valid')

    sync = sub.add_parser('sync', help='Synchronize the inbox (quick by default)')
    sync.add_argument('--full', action='store_true', help='Run a full sync instead of a quick one')

    watch = sub.add_parser('watch', help='Run quick sync in the background until interrupted')
    watch.add_argument('--interval', type=float, help='Seconds between quick syncs (5-600, 0 disables)')

    listing = sub.add_parser('list', help='Show one page of emails')
    listing.add_argument('--view', choices=VIEWS, default='inbox')
    listing.add_argument('--page', type=int, default=1)
    listing.add_argument('--page-size', type=int, default=20)
    listing.add_argument('--filter', type=str)

    sub.add_parser('preview', help='Show what the rules would do')

    clean = sub.add_parser('clean', help='Preview, then apply the rules')
    clean.add_argument('--exclude', nargs='*', metavar='ID', help='Email ids to leave alone')
    clean.add_argument('--permanent', action='store_true', help='Purge DELETE matches instead of trashing them')
    clean.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')

    bulk = sub.add_parser('bulk', help='Apply one action to several emails')
    bulk.add_argument('verb', choices=BULK_VERBS)
    bulk.add_argument('ids', nargs='+', metavar='ID')
    bulk.add_argument('--view', choices=VIEWS, default='inbox')
    bulk.add_argument('--page', type=int, default=1)
    bulk.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')

    rules = sub.add_parser('rules', help='Manage cleaning rules')
    rules_sub = rules.add_subparsers(dest='rules_command', required=True)
    rules_sub.add_parser('list')
    for name in ('add', 'update'):
        rule_parser = rules_sub.add_parser(name)
        if name == 'update':
            rule_parser.add_argument('id')
        rule_parser.add_argument('type', choices=RULE_TYPES)
        rule_parser.add_argument('value')
        rule_parser.add_argument('--action', choices=RULE_ACTIONS, default='DELETE')
        rule_parser.add_argument('--age-days', type=int, default=0)
    rule_delete = rules_sub.add_parser('delete')
    rule_delete.add_argument('id')

    block = sub.add_parser('block', help='Block a sender (creates a DELETE rule)')
    block.add_argument('sender')
    block.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')

    stats = sub.add_parser('stats', help='Show mailbox statistics')
    stats.add_argument('--top', type=int, default=10, help='Also list the N biggest senders (0 to skip)')

    sub.add_parser('senders', help='List newsletter senders you can unsubscribe from')

    unsubscribe = sub.add_parser('unsubscribe', help='Unsubscribe from a newsletter sender')
    unsubscribe.add_argument('sender')
    unsubscribe.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')

    sub.add_parser('history', help='Show past clean runs')

    show = sub.add_parser('show', help='Show one email in full')
    show.add_argument('id')

    settings = sub.add_parser('settings', help='Show or change scheduled cleaning')
    toggle = settings.add_mutually_exclusive_group()
    toggle.add_argument('--enable', action='store_true', help='Turn scheduled cleaning on')
    toggle.add_argument('--disable', action='store_true', help='Turn scheduled cleaning off')
    settings.add_argument('--frequency', choices=AUTOMATION_FREQUENCIES)
    settings.add_argument('--time', type=str, help='Time of day, HH:MM')

    sub.add_parser('logout', help='End the session')
    return parser


async def run(args) -> int:
    config = ClientConfig.from_env(args.env_file)

    def session_expired():
        console.print(f"[red]Session expired. Please sign in again: {config.api_base}/auth/google/login[/red]")

    async with InboxService(config, on_session_expired=session_expired, on_toast=print_toast) as service:
        try:
            return await COMMANDS[args.command](service, args)
        except ValidationError as error:
            console.print(f"[red]{error.message}[/red]")
            return 1
        except MailCleanerError as error:
            console.print(f"[red]{friendly_message(error)}[/red]")
            return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    configure_logging(ClientConfig.from_env(args.env_file).log_level)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
