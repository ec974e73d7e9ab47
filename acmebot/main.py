import asyncio
import logging
import logging.config
from pathlib import Path

import click
from cryptography import x509

from acmebot.config import Config, load_config, provisioner_registry, store_registry
from acmebot.context import Context
from acmebot.util import generate_rsa_key, generate_ec_key

logger = logging.getLogger(__name__)


def configure_logging(config: Config) -> None:
    if config.logging:
        logging.config.dictConfig(config.logging)
    else:
        logging.basicConfig(level=logging.INFO)


@click.group()
@click.pass_context
def main(ctx):
    pass


@main.command()
def plugins():
    """Lists the available plugins and their respective config strings."""
    for plugins in [
        ("Challenge provisioners", provisioner_registry.config_mapping()),
        ("Certificate stores", store_registry.config_mapping()),
    ]:
        click.echo(
            f"{plugins[0]}: {', '.join([f'{plugin.__name__} ({config_name})' for config_name, plugin in plugins[1].items()])}"
        )


@main.command()
@click.argument("account-key-file", type=click.Path())
@click.option(
    "--key-type",
    "-k",
    type=click.Choice(["rsa", "ec"], case_sensitive=False),
    default="rsa",
    show_default=True,
)
def generate_account_key(account_key_file, key_type):
    """Generates an account key for the ACME client."""
    click.echo(f"Generating client key of type {key_type} at {account_key_file}.")
    account_key_file = Path(account_key_file)
    if key_type == "rsa":
        generate_rsa_key(account_key_file)
    else:
        generate_ec_key(account_key_file)


@main.command()
@click.option("--config-file", envvar="ACMEBOT_CONFIG_FILE", type=click.Path(), required=True)
@click.pass_context
def run(ctx, config_file: str):
    """Obtains or renews the certificates listed in the config file."""
    config = load_config(config_file)
    configure_logging(config)

    failed = asyncio.run(_run(config))

    if failed:
        click.echo(
            f"Could not obtain: {', '.join(request.certificate_name for request in failed)}",
            err=True,
        )
        ctx.exit(1)


async def _run(config: Config):
    context = Context.from_config(config)
    try:
        return await context.runner().run()
    finally:
        await context.close()


@main.command()
@click.option("--config-file", envvar="ACMEBOT_CONFIG_FILE", type=click.Path(), required=True)
@click.argument("certificate-file", type=click.Path(exists=True))
@click.option("--reason", type=click.INT, default=None, help="RFC 5280 revocation reason code")
def revoke(config_file: str, certificate_file: str, reason: int):
    """Revokes a certificate issued to the configured account."""
    config = load_config(config_file)
    configure_logging(config)

    certificate = x509.load_pem_x509_certificate(Path(certificate_file).read_bytes())

    async def _revoke():
        context = Context.from_config(config)
        try:
            await context.session().revoke_certificate(certificate, reason)
        finally:
            await context.close()

    asyncio.run(_revoke())
    click.echo(f"Revoked certificate with serial {certificate.serial_number:x}.")


@main.command()
@click.option("--config-file", envvar="ACMEBOT_CONFIG_FILE", type=click.Path(), required=True)
@click.confirmation_option(prompt="The account cannot be used anymore once it is deactivated. Continue?")
def deactivate_account(config_file: str):
    """Deactivates the configured account."""
    config = load_config(config_file)
    configure_logging(config)

    async def _deactivate():
        context = Context.from_config(config)
        try:
            return await context.session().deactivate_account()
        finally:
            await context.close()

    account = asyncio.run(_deactivate())
    click.echo(f"Deactivated account {account.kid}.")


if __name__ == "__main__":
    main()
