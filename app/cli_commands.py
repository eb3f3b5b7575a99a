"""
Flask CLI commands for catalog and shift maintenance.

Commands:
- flask validate-combos: Check every combo definition
- flask migrate-combos [--dry-run]: Give legacy combo items a selection mode
- flask recompute-shift SHIFT_ID: Rebuild a shift's totals from its orders
"""

import click
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from app.database import get_session
from app.exceptions import DomainError
from app.models import Combo
from app.services.combo_migration_service import migrate_legacy_combos
from app.services.combo_validator import validate_definition
from app.services.shift_service import recompute_shift


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('validate-combos')
    def validate_combos():
        """Report combos whose configuration would be rejected at checkout."""
        session = get_session()
        combos = session.execute(
            select(Combo).options(selectinload(Combo.line_items)).order_by(Combo.id)
        ).scalars().all()

        invalid = 0
        for combo in combos:
            errors = validate_definition(combo)
            if not errors:
                continue
            invalid += 1
            click.echo(click.style(f'❌ Combo #{combo.id} "{combo.name}"', fg='red'))
            for error in errors:
                click.echo(f'   - {error}')

        if invalid:
            click.echo(click.style(f'\n{invalid} de {len(combos)} combos con errores', fg='red', bold=True))
            click.get_current_context().exit(1)
        click.echo(click.style(f'✅ {len(combos)} combos válidos', fg='green', bold=True))

    @app.cli.command('migrate-combos')
    @click.option('--dry-run', is_flag=True, help='Show the plan without writing it')
    def migrate_combos(dry_run):
        """Assign fixed/choice modes to legacy combo line items."""
        report = migrate_legacy_combos(get_session(), dry_run=dry_run)

        if not report.migrated:
            click.echo(click.style('✅ No hay combos para migrar', fg='green'))
            return

        verb = 'se migrarían' if dry_run else 'migrados'
        click.echo(click.style(f'✅ {len(report.migrated)} combos {verb}', fg='green', bold=True))
        click.echo(f'   IDs: {", ".join(str(combo_id) for combo_id in report.migrated)}')
        if dry_run:
            click.echo('\n💡 Ejecute sin --dry-run para aplicar los cambios')

    @app.cli.command('recompute-shift')
    @click.argument('shift_id', type=int)
    def recompute_shift_command(shift_id):
        """Recount a shift's orders and revenue from its completed orders."""
        try:
            shift = recompute_shift(get_session(), shift_id)
        except DomainError as e:
            click.echo(click.style(f'❌ {e.message}', fg='red'))
            click.get_current_context().exit(1)

        click.echo(click.style(f'✅ Jornada #{shift.id} recalculada', fg='green', bold=True))
        click.echo(f'   Órdenes: {shift.total_orders}')
        click.echo(f'   Recaudación: {shift.total_revenue}')
