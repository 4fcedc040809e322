#!/usr/bin/env python3
"""
CLI helpers for DocuSign Connect HMAC setup and local webhook replay
"""

import secrets
from pathlib import Path

import click

from leasing_esign.integrations.esignature.webhook import compute_signature


@click.group()
def cli():
    """Leasing e-signature operator tools"""
    pass


@cli.command('generate-webhook-secret')
@click.option('--bytes', 'num_bytes', default=32, show_default=True, help='Random bytes in the secret')
def generate_webhook_secret(num_bytes: int):
    """Generate a random DocuSign Connect HMAC secret"""
    secret = secrets.token_hex(num_bytes)

    click.echo("DocuSign Webhook Secret Generator")
    click.echo("=" * 43)
    click.echo(secret)
    click.echo("=" * 43)
    click.echo("Add this to your .env file:")
    click.echo(f"DOCUSIGN_WEBHOOK_SECRET={secret}")
    click.echo("Use the same secret as the HMAC key in the DocuSign Connect configuration.")


@cli.command('sign-payload')
@click.argument('payload_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--secret', '-s', envvar='DOCUSIGN_WEBHOOK_SECRET', required=True, help='HMAC secret (defaults to DOCUSIGN_WEBHOOK_SECRET)')
def sign_payload(payload_file: Path, secret: str):
    """Print the X-DocuSign-Signature-1 value for a payload file's exact bytes"""
    click.echo(compute_signature(secret, payload_file.read_bytes()))


if __name__ == '__main__':
    cli()
