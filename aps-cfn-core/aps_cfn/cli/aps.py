import json
import logging
import os
import sys
from typing import Optional

import click
from rich.table import Table

from aps_cfn import __version__, config

from .console import console
from .exceptions import CLIError

ACTIONS = ("CREATE", "READ", "UPDATE", "DELETE", "LIST")


def create_cli() -> click.Group:
    return aps_cfn


def _setup_cli_debug():
    from aps_cfn.logging.setup import setup_logging_for_cli

    config.DEBUG = True
    os.environ["DEBUG"] = "1"

    setup_logging_for_cli(logging.DEBUG)


@click.group(name="aps-cfn", help="Run the APS resource providers against a handler request")
@click.version_option(version=__version__, message="%(version)s")
@click.option("--debug", is_flag=True, help="Enable CLI debugging mode")
def aps_cfn(debug):
    if debug:
        _setup_cli_debug()
    else:
        from aps_cfn.logging.setup import setup_logging_from_config

        setup_logging_from_config()


@aps_cfn.command(name="invoke", help="Run a single invocation of a handler request and print the response")
@click.argument("payload_file", type=click.File("r"))
@click.option(
    "--action",
    type=click.Choice(ACTIONS, case_sensitive=False),
    help="Override the action of the handler request",
)
def cmd_invoke(payload_file, action: Optional[str]):
    """
    Reads a handler request (``-`` reads from stdin), runs it once and prints the response. An IN_PROGRESS
    response contains the ``callbackContext`` to pass with the next invocation.
    """
    from aps_cfn.services.cloudformation.resource_provider import (
        OperationStatus,
        ResourceProviderExecutor,
        progress_event_to_response,
    )

    try:
        payload = json.load(payload_file)
    except json.JSONDecodeError as e:
        raise CLIError(f"Invalid handler request: {e}") from e
    if not isinstance(payload, dict):
        raise CLIError("Invalid handler request: expected a JSON object")
    if action:
        payload["action"] = action.upper()
    if not payload.get("action"):
        raise CLIError("Handler request has no action")
    if not payload.get("resourceType"):
        raise CLIError("Handler request has no resourceType")

    event = ResourceProviderExecutor().invoke(payload)
    click.echo(json.dumps(progress_event_to_response(event), indent=2, default=str))

    if event.status == OperationStatus.FAILED:
        sys.exit(1)


@aps_cfn.command(name="resource-types", help="List the resource types that can be invoked")
def cmd_resource_types():
    from aps_cfn.services.cloudformation.resource_provider import plugin_manager

    table = Table(title="Resource providers")
    table.add_column("Resource type")
    table.add_column("Plugin")
    for spec in sorted(plugin_manager.list_plugin_specs(), key=lambda s: s.name):
        table.add_row(spec.name, spec.factory.__name__)
    console.print(table)
