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

"""
Rendering of template lists with Jinja2.
"""
import os
from typing import Dict, List, Optional, Sequence

from jinja2 import DictLoader, Environment, TemplateError, TemplateSyntaxError

from ..MODELS.container import DockerInfo, RuntimeContainer
from ..UTILS.errors import TemplateRenderError
from .functions import TEMPLATE_FUNCTIONS


def _template_name(index: int) -> str:
    return f"template{index}"


def _source_path(error: TemplateSyntaxError, paths: Sequence[str]) -> str:
    if error.name and error.name.startswith("template"):
        return paths[int(error.name[len("template"):])]
    return paths[-1]


class TemplateRenderer:
    """
    Renders an ordered list of template files.

    The first file is the base template. Every later file implicitly extends
    the one before it, so it can override the ``{% block %}`` sections of
    earlier files; content outside blocks in later files is ignored, as with
    any Jinja2 child template.
    """

    def __init__(self, functions: Optional[Dict] = None):
        """
        Initializes the renderer.

        :param functions: Helper functions registered as globals and filters,
            defaulting to the full dgen function set.
        """
        functions = TEMPLATE_FUNCTIONS if functions is None else functions
        self.environment = Environment(keep_trailing_newline=True)
        self.environment.globals.update(functions)
        self.environment.filters.update(functions)

    def _load_sources(self, paths: Sequence[str]) -> Dict[str, str]:
        sources = {}
        for index, path in enumerate(paths):
            try:
                with open(path, "r") as f:
                    content = f.read()
            except OSError as e:
                raise TemplateRenderError(f"unable to read template {path}: {e}") from e
            if index > 0:
                content = '{% extends "' + _template_name(index - 1) + '" %}' + content
            sources[_template_name(index)] = content
        return sources

    def render(self, paths: Sequence[str], containers: List[RuntimeContainer],
               docker: Optional[DockerInfo] = None, env: Optional[Dict[str, str]] = None) -> str:
        """
        Renders the templates against a container set.

        Template files are read on every call, so edits are picked up on the
        next generation.

        :param paths: Template files, base first.
        :param containers: Filtered containers, exposed as ``containers``.
        :param docker: Daemon info, exposed as ``docker``.
        :param env: Environment, exposed as ``env``; the process environment by default.
        :return: Rendered text.
        :raises TemplateRenderError: If a file cannot be read, parsed or rendered.
        """
        if not paths:
            raise TemplateRenderError("no template given")

        sources = self._load_sources(paths)
        environment = self.environment.overlay(loader=DictLoader(sources))
        last = _template_name(len(paths) - 1)

        try:
            template = environment.get_template(last)
        except TemplateSyntaxError as e:
            raise TemplateRenderError(f"unable to parse template {_source_path(e, paths)}: {e}") from e
        except TemplateError as e:
            raise TemplateRenderError(f"unable to parse template {paths[-1]}: {e}") from e

        try:
            return template.render(
                containers=containers,
                docker=docker or DockerInfo(),
                env=dict(os.environ) if env is None else env,
            )
        except TemplateSyntaxError as e:
            # parent templates are compiled lazily, during render
            raise TemplateRenderError(f"unable to parse template {_source_path(e, paths)}: {e}") from e
        # Helper functions raise plain Python errors; any of them aborts the render
        except Exception as e:
            raise TemplateRenderError(f"template error in {paths[0]}: {e}") from e
