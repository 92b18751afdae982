"""Command line interface for issuing, renewing and watching certificates."""

import time
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .acme_client import default_client_factory
from .challenges import WebrootResponder
from .config import Config, Settings
from .errors import CertKeeperError, PolicyError
from .logging_config import setup_logging
from .manager import CertificateManager
from .models import CertificateResource
from .scheduler import RenewalScheduler

console = Console()


class CliContext:
    """Shared state handed to every command."""

    def __init__(self, staging: bool = False):
        self.staging = staging
        self._settings: Optional[Settings] = None

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = Settings.from_env(staging=self.staging)
        return self._settings

    def manager(self, webroot: Optional[str] = None) -> CertificateManager:
        responder = WebrootResponder(webroot) if webroot else None
        return CertificateManager(self.settings, client_factory=default_client_factory(responder))

    def output(self, data: Dict[str, Any], title: Optional[str] = None):
        table = Table(title=title, show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        for key, value in data.items():
            table.add_row(key, "" if value is None else str(value))
        console.print(table)

    def handle_error(self, e: Exception):
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise SystemExit(1)


def _resource_summary(certificate: CertificateResource, certs_dir: str) -> Dict[str, Any]:
    return {
        'domain': certificate.domain,
        'domains': ', '.join(certificate.domains),
        'certificate url': certificate.cert_url,
        'certs dir': certs_dir,
    }


certs_dir_option = click.option(
    '--certs-dir', default=Config.CERTS_DIR, show_default=True, type=click.Path(file_okay=False),
    help='Directory holding public.crt, private.key and certs.json',
)
email_option = click.option('--email', envvar='ACME_EMAIL', required=True, help='ACME account email')
webroot_option = click.option(
    '--webroot', envvar='ACME_WEBROOT', type=click.Path(file_okay=False),
    help='Web server root used to answer HTTP-01 challenges',
)
atomic_option = click.option(
    '--atomic/--no-atomic', default=Config.CERT_ATOMIC_WRITES,
    help='Replace each file through a temporary file',
)


@click.group()
@click.option('--log-level', default=Config.LOG_LEVEL, show_default=True, help='TRACE, DEBUG, INFO, WARNING or ERROR')
@click.option('--staging', is_flag=True, help='Use the staging directory instead of production')
@click.pass_context
def cli(ctx, log_level, staging):
    """Obtain and renew TLS certificates from an ACME CA."""
    setup_logging(log_level)
    ctx.obj = CliContext(staging=staging)


@cli.command('issue')
@email_option
@click.option('--domain', required=True, help='Primary domain name')
@click.option('--sub-domain', 'sub_domains', multiple=True, help='Subdomain label to add, e.g. www (repeatable)')
@certs_dir_option
@webroot_option
@atomic_option
@click.pass_obj
def issue(ctx, email, domain, sub_domains, certs_dir, webroot, atomic):
    """Request a new certificate and save it."""
    try:
        certificate = ctx.manager(webroot).issue_and_save(certs_dir, email, domain, sub_domains, atomic=atomic)
    except (CertKeeperError, ValueError) as e:
        ctx.handle_error(e)
        return

    console.print("[green]✓ Certificate issued[/green]")
    ctx.output(_resource_summary(certificate, certs_dir), title="Certificate")


@cli.command('renew')
@email_option
@certs_dir_option
@webroot_option
@atomic_option
@click.pass_obj
def renew(ctx, email, certs_dir, webroot, atomic):
    """Renew the saved certificate when it is close to expiry."""
    try:
        certificate = ctx.manager(webroot).renew_and_save(certs_dir, email, atomic=atomic)
    except PolicyError as e:
        console.print(f"[yellow]{escape(e.message)}[/yellow]")
        return
    except (CertKeeperError, ValueError) as e:
        ctx.handle_error(e)
        return

    console.print("[green]✓ Certificate renewed[/green]")
    ctx.output(_resource_summary(certificate, certs_dir), title="Certificate")


@cli.command('status')
@certs_dir_option
@click.pass_obj
def status(ctx, certs_dir):
    """Show availability and expiry of the saved certificate."""
    try:
        cert_status = ctx.manager().certificate_status(certs_dir)
    except (CertKeeperError, ValueError) as e:
        ctx.handle_error(e)
        return

    if not cert_status.available:
        console.print(f"[yellow]No certificate available in {certs_dir}[/yellow]")
        return
    ctx.output(cert_status.model_dump(mode='json'), title="Certificate status")


@cli.command('watch')
@email_option
@certs_dir_option
@webroot_option
@atomic_option
@click.option('--interval', default=Config.RENEWAL_CHECK_INTERVAL, show_default=True, type=int,
              help='Seconds between renewal checks')
@click.pass_obj
def watch(ctx, email, certs_dir, webroot, atomic, interval):
    """Keep checking the certificate and renew it when due."""
    try:
        scheduler = RenewalScheduler(ctx.manager(webroot), certs_dir, email, check_interval=interval, atomic=atomic)
    except ValueError as e:
        ctx.handle_error(e)
        return

    scheduler.start()
    console.print(f"[green]Watching {certs_dir}, checking every {interval}s (Ctrl+C to stop)[/green]")
    try:
        while scheduler.is_running():
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()


def main():
    cli()


if __name__ == '__main__':
    main()
