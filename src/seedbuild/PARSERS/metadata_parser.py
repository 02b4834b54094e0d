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
Parsing, template injection and serialization of image metadata.yaml documents.
"""
import logging
from typing import Union

import yaml
from pydantic import ValidationError

from ..errors import MetadataSchemaError
from ..MODELS.image_metadata import ImageMetadata
from ..REGISTRY.template_registry import TemplateRegistry

logger = logging.getLogger(__name__)


class MetadataParser:
    """
    Parser for the metadata document stored in an image tarball.
    """

    @staticmethod
    def parse(content: Union[bytes, str]) -> ImageMetadata:
        """
        Parses a metadata document and validates it against the schema.

        :param content: Raw YAML content of metadata.yaml.
        :return: The validated metadata.
        :raises MetadataSchemaError: If the document is not YAML, not a mapping,
                                     or has no `templates` mapping.
        """
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise MetadataSchemaError(f"metadata is not valid YAML: {e}") from e

        if not isinstance(data, dict):
            raise MetadataSchemaError(
                f"expected metadata to be a mapping, got {type(data).__name__}"
            )
        if "templates" not in data:
            raise MetadataSchemaError("metadata has no templates mapping")
        if not isinstance(data["templates"], dict):
            raise MetadataSchemaError(
                "expected a mapping at templates, got "
                f"{type(data['templates']).__name__}: {data['templates']!r}"
            )

        try:
            return ImageMetadata.model_validate(data)
        except ValidationError as e:
            raise MetadataSchemaError(f"metadata does not match schema: {e}") from e

    @staticmethod
    def dump(metadata: ImageMetadata) -> bytes:
        """
        Serializes metadata back to YAML bytes.
        """
        return yaml.safe_dump(
            metadata.to_document(),
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
            encoding="utf-8",
        )


def inject_templates(metadata: ImageMetadata, registry: TemplateRegistry) -> ImageMetadata:
    """
    Adds every registry template to the metadata `templates` mapping.

    Registry entries replace anything already present at the same
    destination path, so applying this twice gives the same result.

    :param metadata: Metadata to update in place.
    :param registry: Templates to add.
    :return: The updated metadata.
    """
    for path, descriptor in registry.descriptors().items():
        if path in metadata.templates:
            logger.debug(f"Replacing existing template entry for {path}")
        metadata.templates[path] = descriptor
    return metadata
