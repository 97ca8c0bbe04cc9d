# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import logging
import signal
from typing import Dict, List

import click
from docker.errors import DockerException
from dotenv import find_dotenv, load_dotenv
from pydantic import ValidationError

from .. import __version__
from ..MANAGERS.generator import Generator
from ..MODELS.config import RESTART_SIGNAL, ConfigFile, GeneratorConfig, PipelineConfig
from ..PARSERS.config_parser import ConfigParser
from ..RUNTIME.docker_client import DockerClient
from ..UTILS.errors import ConfigError, GenerationError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_LEVELS = ["debug", "info", "warning", "error", "critical"]


def _parse_filters(entries) -> Dict[str, List[str]]:
    filters: Dict[str, List[str]] = {}
    for entry in entries:
        key, sep, value = entry.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{entry}'", param_hint="--notify-filter")
        filters.setdefault(key, []).append(value)
    return filters


def _build_pipeline(template, dest, watch, wait, notify, notify_output, notify_sighup, notify_container,
                    notify_restart, notify_filter, notify_filter_signal, only_exposed, only_published,
                    include_stopped, interval, keep_blank_lines) -> ConfigFile:
    notify_containers = {}
    for container in ([notify_sighup] if notify_sighup else []) + list(notify_container):
        notify_containers[container] = int(signal.SIGHUP)
    for container in notify_restart:
        notify_containers[container] = RESTART_SIGNAL

    values = dict(
        templates=template,
        dest=dest or "",
        watch=watch,
        notify_cmd=notify or "",
        notify_output=notify_output,
        notify_containers=notify_containers,
        notify_containers_filter=_parse_filters(notify_filter),
        only_exposed=only_exposed,
        only_published=only_published,
        include_stopped=include_stopped,
        interval=interval,
        keep_blank_lines=keep_blank_lines,
    )
    if wait:
        values["wait"] = wait
    if notify_filter_signal:
        values["notify_containers_signal"] = notify_filter_signal

    try:
        return ConfigFile(configs=[PipelineConfig(**values)])
    except ValidationError as e:
        raise click.UsageError(str(e)) from e


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("template", required=False)
@click.argument("dest", required=False)
@click.option("--config", "config_files", multiple=True, type=click.Path(dir_okay=False),
              help="Config file with pipeline tables (TOML or YAML); may be repeated")
@click.option("--watch", is_flag=True, help="Watch for container changes")
@click.option("--wait", default="", help="Minimum and maximum debounce wait, e.g. 500ms:2s")
@click.option("--notify", default="", help="Run command after template is regenerated")
@click.option("--notify-output", is_flag=True, help="Log the output of the notify command")
@click.option("--notify-sighup", default="", help="Send SIGHUP to this container after regeneration")
@click.option("--notify-container", multiple=True, help="Send SIGHUP to this container; may be repeated")
@click.option("--notify-restart", multiple=True, help="Restart this container; may be repeated")
@click.option("--notify-filter", multiple=True, metavar="KEY=VALUE",
              help="Signal containers matching this runtime filter; may be repeated")
@click.option("--notify-filter-signal", default="", help="Signal sent to filtered containers (default SIGHUP)")
@click.option("--only-exposed", is_flag=True, help="Only include containers with exposed ports")
@click.option("--only-published", is_flag=True, help="Only include containers with published ports")
@click.option("--include-stopped", is_flag=True, help="Include stopped containers")
@click.option("--interval", type=click.IntRange(min=0), default=0, help="Regenerate every N seconds")
@click.option("--keep-blank-lines", is_flag=True, help="Keep blank lines in the output file")
@click.option("--endpoint", default="", help="Docker API endpoint (tcp|unix://..); defaults to $DOCKER_HOST")
@click.option("--tlscert", default=None, help="Path to TLS client certificate file")
@click.option("--tlskey", default=None, help="Path to TLS client key file")
@click.option("--tlscacert", default=None, help="Path to TLS CA certificate file")
@click.option("--tlsverify/--no-tlsverify", default=None, help="Verify the docker daemon's certificate")
@click.option("--env-file", type=click.Path(dir_okay=False), default=None,
              help="Load environment variables from this file (default: ./.env if present)")
@click.option("--log-level", type=click.Choice(LOG_LEVELS, case_sensitive=False), default="info",
              help="Logging level")
@click.version_option(__version__, prog_name="dgen")
@click.pass_context
def cli(ctx, template, dest, config_files, watch, wait, notify, notify_output, notify_sighup, notify_container,
        notify_restart, notify_filter, notify_filter_signal, only_exposed, only_published, include_stopped,
        interval, keep_blank_lines, endpoint, tlscert, tlskey, tlscacert, tlsverify, env_file, log_level):
    """
    dgen - generate files from Docker container metadata.

    Renders TEMPLATE to DEST (stdout when omitted or '-') and keeps it up to
    date as containers start and stop.
    """
    load_dotenv(env_file or find_dotenv(usecwd=True))
    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT)

    try:
        if config_files:
            configs = ConfigParser().parse_many(list(config_files))
        elif template:
            configs = _build_pipeline(template, dest, watch, wait, notify, notify_output, notify_sighup,
                                      notify_container, notify_restart, notify_filter, notify_filter_signal,
                                      only_exposed, only_published, include_stopped, interval, keep_blank_lines)
        else:
            raise click.UsageError("a template or --config is required", ctx=ctx)

        if not configs.configs:
            raise click.UsageError("no pipelines configured", ctx=ctx)

        tls = {"tls_cert": tlscert, "tls_key": tlskey, "tls_ca_cert": tlscacert, "tls_verify": tlsverify}
        settings = GeneratorConfig(endpoint=endpoint, **{k: v for k, v in tls.items() if v is not None})

        client = DockerClient(settings)
        generator = Generator(client, configs, client_factory=lambda: DockerClient(settings))
        generator.generate()
    except ConfigError as e:
        logger.critical("%s", e)
        ctx.exit(1)
    except GenerationError:
        # already logged by the generator
        ctx.exit(1)
    except DockerException as e:
        logger.critical("Unable to create docker client: %s", e)
        ctx.exit(1)


def main():
    """
    Main entry point for the CLI.
    """
    cli(prog_name="dgen")


if __name__ == '__main__':
    main()
