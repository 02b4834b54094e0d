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
Registry of the cloud-init seed templates injected into built images.

Each entry maps the destination path of a NoCloud seed file inside the
container to the template file that LXD renders there. The destination
paths and template file names are what guests expect to find; renaming
either breaks existing images.
"""

import posixpath
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from jinja2 import Environment, TemplateSyntaxError

from ..errors import TemplateSyntaxCheckError
from ..MODELS.image_metadata import TemplateDescriptor

TEMPLATES_DIR = "templates"
SEED_DIR = "/var/lib/cloud/seed/nocloud-net"

CLOUD_INIT_META_TEMPLATE = """#cloud-config
instance-id: {{ container.name }}
local-hostname: {{ container.name }}
{{ config_get("user.meta-data", "") }}"""

CLOUD_INIT_NETWORK_TEMPLATE = """{% if config_get("user.network-config", "") == "" %}version: 1
config:
    - type: physical
      name: eth0
      subnets:
          - type: {% if config_get("user.network_mode", "") == "link-local" %}manual{% else %}dhcp{% endif %}
            control: auto{% else %}{{ config_get("user.network-config", "") }}{% endif %}"""

CLOUD_INIT_USER_TEMPLATE = """{{ config_get("user.user-data", properties.default) }}"""

CLOUD_INIT_VENDOR_TEMPLATE = """{{ config_get("user.vendor-data", properties.default) }}"""

DEFAULT_CLOUD_CONFIG = "#cloud-config\n{}"


@dataclass(frozen=True)
class SeedTemplate:
    """
    A template file plus the descriptor that tells LXD when and how to render it.
    """

    template: str
    content: str
    when: List[str] = field(default_factory=lambda: ["create", "copy"])
    properties: Dict[str, str] = field(default_factory=dict)

    @property
    def archive_name(self) -> str:
        """Name of the template file entry inside the image tarball."""
        return posixpath.join(TEMPLATES_DIR, self.template)

    def descriptor(self) -> TemplateDescriptor:
        """Builds a fresh metadata descriptor for this template."""
        return TemplateDescriptor(
            properties=dict(self.properties),
            template=self.template,
            when=list(self.when),
        )


CLOUD_INIT_TEMPLATES: Dict[str, SeedTemplate] = {
    f"{SEED_DIR}/meta-data": SeedTemplate(
        template="cloud-init-meta.tpl",
        content=CLOUD_INIT_META_TEMPLATE,
    ),
    f"{SEED_DIR}/network-config": SeedTemplate(
        template="cloud-init-network.tpl",
        content=CLOUD_INIT_NETWORK_TEMPLATE,
    ),
    f"{SEED_DIR}/user-data": SeedTemplate(
        template="cloud-init-user.tpl",
        content=CLOUD_INIT_USER_TEMPLATE,
        properties={"default": DEFAULT_CLOUD_CONFIG},
    ),
    f"{SEED_DIR}/vendor-data": SeedTemplate(
        template="cloud-init-vendor.tpl",
        content=CLOUD_INIT_VENDOR_TEMPLATE,
        properties={"default": DEFAULT_CLOUD_CONFIG},
    ),
}


class TemplateRegistry:
    """
    Read-only lookup table of seed templates keyed by destination path.

    Consumers must not rely on iteration order; every destination path is
    independent of the others.
    """

    def __init__(self, templates: Optional[Dict[str, SeedTemplate]] = None):
        """
        Args:
            templates: Destination path -> template. Defaults to the cloud-init seed set.
        """
        if templates is None:
            templates = CLOUD_INIT_TEMPLATES
        self._templates: Dict[str, SeedTemplate] = dict(templates)

    def __len__(self) -> int:
        return len(self._templates)

    def __iter__(self) -> Iterator[str]:
        return iter(self._templates)

    def __contains__(self, path: object) -> bool:
        return path in self._templates

    def get(self, path: str) -> Optional[SeedTemplate]:
        return self._templates.get(path)

    def items(self) -> Iterator[Tuple[str, SeedTemplate]]:
        return iter(self._templates.items())

    def descriptors(self) -> Dict[str, TemplateDescriptor]:
        """
        Returns a new descriptor for every registered destination path.
        """
        return {path: t.descriptor() for path, t in self._templates.items()}

    def check_syntax(self) -> None:
        """
        Parses every template body without rendering it.

        Raises:
            TemplateSyntaxCheckError: If a template body does not parse.
        """
        env = Environment()
        for path, seed in self._templates.items():
            try:
                env.parse(seed.content, name=seed.template)
            except TemplateSyntaxError as e:
                raise TemplateSyntaxCheckError(
                    f"template {seed.template} for {path} is malformed: "
                    f"line {e.lineno}: {e.message}"
                ) from e
